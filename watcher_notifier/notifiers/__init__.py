from .sessions import BotSession, BotSessionManager
from .telegram import (
    BotIdentity,
    InboundMessage,
    RenderedMessage,
    TelegramApiResult,
    TelegramClient,
)

__all__ = [
    "BotIdentity",
    "BotSession",
    "BotSessionManager",
    "InboundMessage",
    "RenderedMessage",
    "TelegramApiResult",
    "TelegramClient",
]

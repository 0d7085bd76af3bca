from __future__ import annotations


class WatcherError(Exception):
    """Base class for failures raised by the notifier core."""


class RegistrationError(WatcherError):
    """Registration rejected before any state was mutated."""


class UnknownWatcherError(WatcherError):
    def __init__(self, watcher_id: str) -> None:
        super().__init__(f"watcher not found: {watcher_id}")
        self.watcher_id = watcher_id


class SessionError(WatcherError):
    """A bot session could not be opened for a credential."""


class AdapterFetchError(WatcherError):
    """Upstream fetch failed: timeout, non-2xx or malformed payload."""


class DispatchError(WatcherError):
    def __init__(self, message: str, *, status_code: int = 0, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after

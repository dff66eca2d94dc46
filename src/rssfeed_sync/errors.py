"""Exceptions raised by rssfeed-sync."""


class RssFeedSyncError(Exception):
    """Base class for all rssfeed-sync errors."""


class ConflictError(RssFeedSyncError):
    """Raised when adding a feed whose URL is already registered."""


class NotFoundError(RssFeedSyncError):
    """Raised when an operation references a feed or item that does not exist."""


class StorageError(RssFeedSyncError):
    """Raised when the underlying database operation fails."""


class FetchFailedError(RssFeedSyncError):
    """Raised when a feed cannot be fetched or decoded."""

    def __init__(self, url: str, cause: str):
        super().__init__(f"failed to fetch {url}: {cause}")
        self.url = url
        self.cause = cause


class ScheduleError(RssFeedSyncError):
    """Base class for schedule management errors."""


class ScheduleInvalidError(ScheduleError):
    """Raised for an interval outside the supported range."""


class SchedulerUnavailableError(ScheduleError):
    """Raised when the crontab binary is not installed."""


class SchedulerFailedError(ScheduleError):
    """Raised when crontab rejects a read or write."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(f"{message}: {output}" if output else message)
        self.output = output


class ConfigError(RssFeedSyncError):
    """Raised when a setting from the environment cannot be used."""

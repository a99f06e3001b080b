"""Exception types raised by the pipeline stages."""


class LikesArchiveError(RuntimeError):
    """Base class for errors the CLI reports without a traceback."""


class ConfigError(LikesArchiveError):
    """Missing credentials or invalid settings. Raised before anything is written."""


class StoreError(LikesArchiveError):
    """A canonical or raw store file could not be read or has the wrong shape."""


class StorageError(LikesArchiveError):
    """Remote object storage failed (list, get or delete)."""


class SyncError(LikesArchiveError):
    """A sync run was aborted. The checkpoint must not be advanced."""


class TweetFetchError(LikesArchiveError):
    """Transient failure talking to the tweet-data provider."""


class SearchIndexError(LikesArchiveError):
    """The search indexing API rejected a request."""


class IntegrityError(LikesArchiveError):
    """The canonical store holds the same tweet ID in more than one place."""

    def __init__(self, message: str, duplicate_ids: list[str] | None = None):
        super().__init__(message)
        self.duplicate_ids = duplicate_ids or []

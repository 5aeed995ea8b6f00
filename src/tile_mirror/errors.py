"""Exception types raised by the mirror pipeline."""


class MirrorError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(MirrorError):
    """The config file is missing, unreadable or malformed."""


class FetchError(MirrorError):
    """A GET request for a page failed."""

    def __init__(self, url: str, cause: BaseException):
        self.url = url
        self.cause = cause
        super().__init__(f"unable to fetch {url}: {cause}")


class DownloadError(MirrorError):
    """A tile file could not be fetched or written to disk."""

    def __init__(self, url: str, cause: BaseException):
        self.url = url
        self.cause = cause
        super().__init__(f"unable to download {url}: {cause}")

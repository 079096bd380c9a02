"""Error types raised while opening and caching books."""


class RibError(Exception):
    """Base class for all errors reported to the user."""


class ArchiveError(RibError):
    """The book container or its manifest could not be read."""

    def __init__(self, path: str, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"Couldn't read {path} as EPUB: {detail}")


class InvalidToc(RibError):
    """The table of contents does not resolve into the spine in order."""

    def __init__(self, message: str, href: str | None = None, label: str | None = None):
        self.href = href
        self.label = label
        super().__init__(message)


class InvalidMarkup(RibError):
    """A spine document is not well-formed markup."""

    def __init__(self, item_href: str, detail: str):
        self.item_href = item_href
        self.detail = detail
        super().__init__(f"Ill-formed markup in spine item {item_href}: {detail}")


class CacheCorruption(RibError):
    """The library index could not be read back."""


class ConfigError(RibError):
    """The configuration is invalid; nothing may be materialized with it."""


class BrowserError(RibError):
    """The browser couldn't be launched."""

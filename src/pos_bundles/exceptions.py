"""Domain-specific exceptions for POS Bundles.

This module defines custom exceptions that are part of the public API.
All exceptions inherit from PosBundlesError for easy catching.
"""


class PosBundlesError(Exception):
    """Base exception for all POS Bundles errors.

    Users can catch this exception to handle any error raised by the
    import, decomposition and fusion layers.
    """

    pass


class ConfigError(PosBundlesError):
    """Raised when there is a configuration error.

    This exception is raised when:
    - Invalid settings values are provided (bad quota, bad timeout)
    - A rules or reference file cannot be loaded or parsed
    """

    pass


class DataQualityError(PosBundlesError):
    """Raised when an input cannot be interpreted at all.

    Per-line problems are skipped with a warning; this exception is reserved
    for whole inputs: unknown file formats, JSON documents without a
    recognised shape, sheets without usable headers.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class StorageQuotaError(PosBundlesError):
    """Raised by a JSON store when a write would exceed its size quota."""

    pass


class PersistError(PosBundlesError):
    """Raised when a write still fails after the quota cleanup retry."""

    pass


class MergeStateError(PosBundlesError):
    """Raised when a merge session step is called out of order."""

    pass

"""
ABOUTME: Exception types raised by the mapper core.
ABOUTME: Only explicit persistence calls surface errors to callers.
"""


class MapperError(Exception):
    """Base exception for mapper failures."""

    pass


class MapPersistenceError(MapperError):
    """Raised when a map snapshot cannot be read, parsed, or written."""

    pass

"""Collector exception types."""


class PeerstatsError(Exception):
    """Base class for collector errors."""
    pass


class MalformedRecord(PeerstatsError):
    """A strict-format record has the wrong field count or an unusable value."""
    pass


class MalformedAddress(PeerstatsError, ValueError):
    """An address (optionally with port) could not be parsed."""
    pass


class UnresolvedIdentity(PeerstatsError):
    """A local identifier has no canonical peer key. Callers drop the record."""
    pass


class SourceUnavailable(PeerstatsError):
    """A backing file, command or endpoint could not be read."""
    pass

"""Error types for hexstow."""


class StowError(Exception):
    """Base exception for hexstow errors."""
    pass


class NotFoundError(StowError, FileNotFoundError):
    """No stored object matches the given id or prefix."""
    pass


class AmbiguousPrefixError(StowError):
    """More than one stored object matches the given prefix."""
    pass


class CorruptionError(StowError):
    """Stored data does not match what its name or layout says it is."""
    pass


class RelocationError(StowError):
    """A stored file could not be moved to its suggested location."""
    pass

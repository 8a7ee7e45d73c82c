"""Exception hierarchy for keyprobe."""


class KeyProbeError(Exception):
    """Base exception for all keyprobe errors."""


class ValidationError(KeyProbeError):
    """Batch input was rejected before any scheduling began."""


class StateError(KeyProbeError):
    """An operation is not allowed in the current state."""

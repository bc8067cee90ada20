"""
Exception types for the debug controller.
"""


class ProfileError(Exception):
    """Raised when the debug profile cannot be read or fails validation."""
    pass


class ConflictRetryExhausted(Exception):
    """Raised when a read-modify-write keeps conflicting after the retry budget is spent."""
    pass


class ReconcileCancelled(Exception):
    """Raised when a stop is signalled, or the reconcile deadline passes, while a write is being retried."""
    pass

"""Exception types raised by clear_ffnn."""


class ClearFFNNError(Exception):
    """Base class for all library errors."""


class ShapeError(ClearFFNNError, ValueError):
    """Raised when an array or layer dimension disagrees with what is expected."""


class StaleCacheError(ClearFFNNError, RuntimeError):
    """Raised when gradients are requested from a layer without a valid forward cache.

    Call ``Network.predict_cached`` on the same input right before computing
    gradients. Any parameter update invalidates the caches again.
    """

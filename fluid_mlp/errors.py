class ConfigurationError(ValueError):
    """Raised when the network is built or driven with inconsistent settings.

    Covers bad topologies, arrays whose shape does not match a layer's fixed
    sizes, unknown activation identifiers and out-of-range layer indices.
    """


class NotReadyError(RuntimeError):
    """Raised when an operation needs state that has not been built yet.

    For example forwarding through a network before ``init()``, or calling
    ``backward()`` on a layer that has not seen a forward pass.
    """

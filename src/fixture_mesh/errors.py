"""Exception taxonomy for mesh processing."""


class MeshProcessingError(Exception):
    """Base exception for mesh processing errors."""
    pass


class MeshValidationError(MeshProcessingError):
    """Mesh buffers are malformed, empty, or options are out of range."""
    pass


class NumericDegeneracyError(MeshProcessingError):
    """A geometric quantity could not be computed from degenerate input."""
    pass


class ExternalToolFailure(MeshProcessingError):
    """An external simplifier raised or produced no geometry."""

    def __init__(self, tool: str, message: str):
        super().__init__(f"{tool}: {message}")
        self.tool = tool


class ResourceLimitExceeded(MeshProcessingError):
    """Mesh is larger than an operation is allowed to process."""
    pass

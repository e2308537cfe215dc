"""Error types raised by the GPU initializer."""


class GPUInitializerError(Exception):
    """Base class for GPU initializer errors."""


class ConfigError(GPUInitializerError):
    """Policy ConfigMap is missing or malformed. Fatal at startup."""


class AuthError(GPUInitializerError):
    """Kubernetes client configuration could not be loaded. Fatal at startup."""


class SerializationError(GPUInitializerError):
    """A pod could not be encoded for diffing."""


EncodingError = SerializationError


class PatchError(GPUInitializerError):
    """The patch request for a pod failed."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class PatchConflictOrNotFound(PatchError):
    """The pod was modified or deleted concurrently."""

"""Exception types raised by wgpu_linalg."""


class LinalgError(Exception):
    """Base class for all wgpu_linalg errors."""


class DeviceError(LinalgError):
    """A device call failed during setup or while running an operation.

    Device failures are never retried. ``stage`` names the call that failed
    (for example ``"request adapter"`` or ``"dot_matrices: read back"``).
    """

    def __init__(self, stage, cause=None):
        self.stage = stage
        self.cause = cause
        message = f"device error during {stage}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class SessionStateError(LinalgError):
    """An operation was attempted outside the Ready state of a session."""


class ShapeError(LinalgError):
    """A destination shape cannot hold the result of a reduction."""


class ConfigError(LinalgError):
    """A configuration value could not be parsed."""

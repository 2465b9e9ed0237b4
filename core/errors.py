"""
AI Chat Overlay - Error Types
Failures raised by the service supervisor and the window controller.

Nothing here is fatal: the control boundary turns every one of these into a
structured result for the UI, and the component that raised stays usable.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Any, Dict, Optional


class ServiceErrorType(Enum):
    """Categories of failures reported back to the UI."""
    CONFIGURATION = "configuration"        # Missing required launch field
    UNKNOWN_SERVICE = "unknown_service"    # Name outside the fixed set
    SPAWN = "spawn"                        # Executable missing / OS launch failure
    STOP = "stop"                          # Termination signal could not be sent
    BUSY = "busy"                          # Slot is still inside its start-up grace period
    TRANSITION = "transition"              # Window geometry/frame mutation failed


class OverlayError(Exception):
    """Base class for all overlay errors."""

    error_type: ServiceErrorType = ServiceErrorType.SPAWN


class ConfigurationError(OverlayError):
    """A required launch setting is missing (e.g. no model path)."""

    error_type = ServiceErrorType.CONFIGURATION


class UnknownServiceError(OverlayError):
    """Service name is not one of the known slots."""

    error_type = ServiceErrorType.UNKNOWN_SERVICE


class SpawnError(OverlayError):
    """The backend process could not be launched or died during startup."""

    error_type = ServiceErrorType.SPAWN


class StopError(OverlayError):
    """The termination signal could not be delivered."""

    error_type = ServiceErrorType.STOP


class ServiceBusyError(OverlayError):
    """Another start request for the same slot has not returned yet."""

    error_type = ServiceErrorType.BUSY


class TransitionError(OverlayError):
    """The window could not be moved into the requested display mode."""

    error_type = ServiceErrorType.TRANSITION


class AlreadyRunningExternally(Exception):
    """
    Informational: the backend is already running outside the overlay.

    Not a failure. The supervisor catches it internally and reports a
    successful start without spawning anything.
    """


@dataclass
class ServiceResult:
    """
    Outcome of a start/stop request.

    Attributes:
        success: Whether the request achieved its goal
        message: Human-readable note on success
        error: Human-readable reason on failure
        error_type: Failure category (None on success)
    """
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[ServiceErrorType] = None

    @classmethod
    def ok(cls, message: str) -> "ServiceResult":
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, exc: OverlayError) -> "ServiceResult":
        return cls(success=False, error=str(exc), error_type=exc.error_type)

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape used by the GUI and the HTTP control API."""
        data: Dict[str, Any] = {"success": self.success}
        if self.message is not None:
            data["message"] = self.message
        if self.error is not None:
            data["error"] = self.error
        if self.error_type is not None:
            data["error_type"] = self.error_type.value
        return data

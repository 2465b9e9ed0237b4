"""
AI Chat Overlay - Control Bridge
The request/response boundary the GUI and the HTTP control API call.

Nothing raised by the supervisor or the window controller gets past this
layer: every failure comes back as a result dict or False.
"""

from typing import Any, Dict, Optional, Union

from core.errors import ServiceResult, UnknownServiceError
from core.logger import log_error
from interface.window_controller import DisplayMode, WindowController
from subprocess_mgmt.manager import ServiceSupervisor
from subprocess_mgmt.services import ServiceConfig, ServiceName


class OverlayBridge:
    """Thin facade over the service supervisor and the window controller."""

    def __init__(
        self,
        supervisor: ServiceSupervisor,
        window_controller: Optional[WindowController] = None
    ):
        self.supervisor = supervisor
        self.window_controller = window_controller

    def start_service(self, name: str, service_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Start a backend. `service_config` uses the settings panel's keys."""
        try:
            result = self.supervisor.start(name, ServiceConfig.from_dict(service_config))
        except Exception as e:
            log_error(f"start_service({name}) failed: {e}")
            result = ServiceResult(success=False, error=str(e))
        return result.to_dict()

    def stop_service(self, name: str) -> Dict[str, Any]:
        """Stop a backend (succeeds if it was not running)."""
        try:
            result = self.supervisor.stop(name)
        except Exception as e:
            log_error(f"stop_service({name}) failed: {e}")
            result = ServiceResult(success=False, error=str(e))
        return result.to_dict()

    def get_service_status(self, name: str) -> bool:
        """Whether the overlay tracks a running process for `name`. False for unknown names."""
        try:
            return self.supervisor.status(name)
        except UnknownServiceError:
            return False
        except Exception as e:
            log_error(f"get_service_status({name}) failed: {e}")
            return False

    def get_all_service_statuses(self) -> Dict[str, bool]:
        try:
            return self.supervisor.get_all_status()
        except Exception as e:
            log_error(f"get_all_service_statuses failed: {e}")
            return {service.value: False for service in ServiceName}

    def set_display_mode(self, mode: Union[DisplayMode, str]) -> bool:
        if self.window_controller is None:
            log_error("Display mode change requested before the window exists")
            return False
        try:
            return self.window_controller.set_display_mode(mode)
        except Exception as e:
            log_error(f"set_display_mode({mode}) failed: {e}")
            return False

    def toggle_always_on_top(self) -> bool:
        """Flip always-on-top. Returns the resulting state."""
        if self.window_controller is None:
            log_error("Always-on-top toggle requested before the window exists")
            return False
        try:
            return self.window_controller.toggle_always_on_top()
        except Exception as e:
            log_error(f"toggle_always_on_top failed: {e}")
            return self.window_controller.always_on_top

    def get_window_state(self) -> Dict[str, Any]:
        """Current display mode and bounds, for status reporting."""
        if self.window_controller is None:
            return {}
        state = self.window_controller.state
        return {
            "mode": state.display_mode.value,
            "always_on_top": state.always_on_top,
            "frame_visible": state.frame_visible,
            "bounds": {
                "x": state.bounds.x,
                "y": state.bounds.y,
                "width": state.bounds.width,
                "height": state.bounds.height,
            },
        }

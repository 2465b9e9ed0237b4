"""
AI Chat Overlay - HTTP Control API
Flask-based local REST API for scripting the overlay (start/stop backends,
change display mode) from outside the window.
"""

import threading
from typing import Any, Callable, Optional
from flask import Flask, request, jsonify

from core.errors import ServiceErrorType, UnknownServiceError
from core.logger import log_info, log_error
from subprocess_mgmt.services import ServiceName

# Runs a zero-argument callable on the control thread and returns its result
Dispatcher = Callable[[Callable[[], Any]], Any]


def direct_dispatch(func: Callable[[], Any]) -> Any:
    """Run the call on the current thread (tests, headless use)."""
    return func()


def create_app(bridge, dispatch: Dispatcher = direct_dispatch) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        bridge: OverlayBridge the routes call into
        dispatch: Marshals each bridge call onto the control thread
    """
    app = Flask(__name__)

    def known_service(name: str) -> bool:
        try:
            ServiceName.parse(name)
            return True
        except UnknownServiceError:
            return False

    def unknown_service_response(name: str):
        return jsonify({
            "success": False,
            "error": f"Unknown service type: {name}",
            "error_type": ServiceErrorType.UNKNOWN_SERVICE.value
        }), 404

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({"status": "healthy", "service": "ai-chat-overlay"})

    @app.route("/services", methods=["GET"])
    def list_services():
        """Tracked state of every backend slot."""
        try:
            return jsonify({"services": dispatch(bridge.get_all_service_statuses)})
        except Exception as e:
            log_error(f"Services API error: {e}")
            return jsonify({"error": str(e)}), 500

    @app.route("/services/<name>", methods=["GET"])
    def service_status(name: str):
        if not known_service(name):
            return unknown_service_response(name)
        try:
            running = dispatch(lambda: bridge.get_service_status(name))
            return jsonify({"service": name, "running": running})
        except Exception as e:
            log_error(f"Service status API error: {e}")
            return jsonify({"error": str(e)}), 500

    @app.route("/services/<name>/start", methods=["POST"])
    def start_service(name: str):
        """
        Start a backend.

        Request body (all optional):
        {
            "workingDirectory": "/path/to/llama.cpp",
            "modelPath": "/models/model.gguf",
            "port": "8080",
            "additionalArgs": "--ctx-size 4096"
        }
        """
        if not known_service(name):
            return unknown_service_response(name)
        try:
            service_config = request.get_json(silent=True) or {}
            result = dispatch(lambda: bridge.start_service(name, service_config))
            return jsonify(result), 200 if result.get("success") else 400
        except Exception as e:
            log_error(f"Start service API error: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

    @app.route("/services/<name>/stop", methods=["POST"])
    def stop_service(name: str):
        if not known_service(name):
            return unknown_service_response(name)
        try:
            result = dispatch(lambda: bridge.stop_service(name))
            return jsonify(result), 200 if result.get("success") else 400
        except Exception as e:
            log_error(f"Stop service API error: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

    @app.route("/window", methods=["GET"])
    def window_state():
        try:
            return jsonify(dispatch(bridge.get_window_state))
        except Exception as e:
            log_error(f"Window API error: {e}")
            return jsonify({"error": str(e)}), 500

    @app.route("/window/mode", methods=["POST"])
    def set_window_mode():
        """
        Change the display mode.

        Request body:
        {
            "mode": "normal|accordion|windowless"
        }
        """
        data = request.get_json(silent=True)
        if not data or "mode" not in data:
            return jsonify({"error": "Missing 'mode' field"}), 400
        try:
            mode = data["mode"]
            success = dispatch(lambda: bridge.set_display_mode(mode))
            return jsonify({"success": success, "mode": mode}), 200 if success else 400
        except Exception as e:
            log_error(f"Window mode API error: {e}")
            return jsonify({"success": False, "error": str(e)}), 500

    @app.route("/window/always-on-top", methods=["POST"])
    def toggle_always_on_top():
        try:
            always_on_top = dispatch(bridge.toggle_always_on_top)
            return jsonify({"always_on_top": always_on_top})
        except Exception as e:
            log_error(f"Always-on-top API error: {e}")
            return jsonify({"error": str(e)}), 500

    return app


class HTTPServer:
    """
    HTTP server manager.

    Runs Flask in a background thread.
    """

    def __init__(
        self,
        bridge,
        dispatch: Dispatcher = direct_dispatch,
        host: str = "127.0.0.1",
        port: int = 5055
    ):
        self.bridge = bridge
        self.dispatch = dispatch
        self.host = host
        self.port = port
        self._app: Optional[Flask] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the HTTP server in a background thread."""
        self._app = create_app(self.bridge, self.dispatch)

        self._thread = threading.Thread(
            target=self._run_server,
            daemon=True,
            name="HTTPServer"
        )
        self._thread.start()

        log_info(f"Control API started on http://{self.host}:{self.port}", prefix="🌐")

    def _run_server(self) -> None:
        """Run the Flask server."""
        # Suppress Flask's default logging
        import logging
        log = logging.getLogger('werkzeug')
        log.setLevel(logging.ERROR)

        try:
            self._app.run(
                host=self.host,
                port=self.port,
                debug=False,
                use_reloader=False,
                threaded=True
            )
        except OSError as e:
            log_error(f"Control API could not bind {self.host}:{self.port}: {e}")

    def stop(self) -> None:
        """Stop the HTTP server."""
        # Flask has no clean shutdown in dev mode; the daemon thread ends with the process
        pass


# Global HTTP server instance
_http_server: Optional[HTTPServer] = None


def get_http_server() -> Optional[HTTPServer]:
    """Get the global HTTP server instance (None until initialized)."""
    return _http_server


def init_http_server(bridge, dispatch: Dispatcher = direct_dispatch) -> HTTPServer:
    """Initialize the global HTTP server."""
    global _http_server
    from config import HTTP_HOST, HTTP_PORT
    _http_server = HTTPServer(bridge, dispatch, host=HTTP_HOST, port=HTTP_PORT)
    return _http_server

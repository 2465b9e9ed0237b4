#!/usr/bin/env python3
"""
AI Chat Overlay - Main Entry Point
Always-on-top chat window for local AI backends

Usage:
    python main.py              # Run the overlay
    python main.py --dev        # Verbose (DEBUG) logging
    python main.py -d           # Short form for dev mode
    python main.py --no-http    # Disable the local control API
"""

import sys
import signal
import argparse
from pathlib import Path

# Ensure we can import from project root
sys.path.insert(0, str(Path(__file__).parent))

import config
from core.logger import (
    setup_logging,
    log_startup_banner,
    log_section,
    log_subsection,
    log_success,
    log_warning,
    log_error,
    log_ready
)
from subprocess_mgmt.services import ServiceName, ServiceConfig, build_command


def print_configuration(enable_http: bool) -> None:
    """Print configuration summary."""
    log_section("Configuration", "📡")
    log_subsection(f"Data Dir: {config.DATA_DIR}")
    log_subsection(f"Settings: {config.USER_SETTINGS_PATH}")
    log_subsection(f"Diagnostic Log: {config.DIAGNOSTIC_LOG_PATH}")
    log_subsection(f"Log Level: {config.LOG_LEVEL}")

    log_section("Backends", "🤖")
    log_subsection(f"Ollama: {config.OLLAMA_API_URL}")
    log_subsection(f"Llama.cpp: {config.LLAMACPP_API_URL}")
    log_subsection(f"Coqui-TTS: {config.COQUI_API_URL}")

    log_section("Local Services", "🔧")
    for service in ServiceName:
        if service is ServiceName.LLAMACPP:
            command = f"{config.LLAMACPP_SERVER_BINARY} -m <model> --port {config.LLAMACPP_DEFAULT_PORT}"
        else:
            command = " ".join(build_command(service, ServiceConfig()))
        log_subsection(f"{service.display_name}: {command}")
    log_subsection(f"Start Grace Period: {config.SERVICE_START_GRACE_PERIOD}s")
    log_subsection(f"Service Logs: {config.LOGS_DIR}")

    log_section("Control API", "🌐")
    if enable_http:
        log_subsection(f"HTTP API: http://{config.HTTP_HOST}:{config.HTTP_PORT}")
    else:
        log_subsection("HTTP API: DISABLED")


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="AI Chat Overlay - chat with local AI backends",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--dev", "-d",
        action="store_true",
        help="Enable dev mode (DEBUG logging)"
    )
    parser.add_argument(
        "--no-http",
        action="store_true",
        help="Do not start the local HTTP control API"
    )
    args = parser.parse_args()

    if args.dev:
        config.LOG_LEVEL = "DEBUG"
    enable_http = config.HTTP_ENABLED and not args.no_http

    setup_logging(
        config.DIAGNOSTIC_LOG_PATH,
        config.LOG_LEVEL,
        config.LOG_TO_FILE,
        config.LOG_TO_CONSOLE
    )
    log_startup_banner(config.VERSION, config.PROJECT_NAME)
    print_configuration(enable_http)

    try:
        from interface.gui import run_gui
    except ImportError as e:
        log_error(f"GUI requires PyQt5: {e}")
        log_error("Install with: pip install PyQt5")
        return 1

    # Let Ctrl+C in the terminal close the app
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    try:
        log_ready(config.PROJECT_NAME)
        exit_code = run_gui(enable_http=enable_http)
        log_success(f"{config.PROJECT_NAME} shutdown complete")
        return exit_code
    except KeyboardInterrupt:
        log_warning("Interrupted")
        return 130
    except Exception as e:
        log_error(f"Fatal error: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())

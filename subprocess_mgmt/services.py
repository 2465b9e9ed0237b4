"""
AI Chat Overlay - Backend Service Definitions
The fixed set of local backends the overlay can launch, and how to launch them.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

import psutil

import config
from core.errors import ConfigurationError, UnknownServiceError


class ServiceName(Enum):
    """Backend slots. The value is the wire name used by the UI and HTTP API."""
    OLLAMA = "ollama"
    LLAMACPP = "llamacpp"
    COQUI = "coqui"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: Union["ServiceName", str]) -> "ServiceName":
        """
        Resolve a slot from its wire name.

        Raises:
            UnknownServiceError: If the name is not one of the known slots
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownServiceError(f"Unknown service type: {value}") from None


_DISPLAY_NAMES = {
    ServiceName.OLLAMA: "Ollama",
    ServiceName.LLAMACPP: "Llama.cpp",
    ServiceName.COQUI: "Coqui-TTS",
}


@dataclass
class ServiceConfig:
    """Launch settings for one backend."""
    working_directory: Optional[str] = None
    port: Optional[str] = None
    model_path: Optional[str] = None
    extra_args: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ServiceConfig":
        """
        Build a config from the UI/HTTP request shape.

        Accepts both camelCase keys (workingDirectory, modelPath,
        additionalArgs/extraArgs) and their snake_case equivalents.
        Empty strings count as unset.
        """
        data = data or {}

        def pick(*keys: str) -> Optional[str]:
            for key in keys:
                value = data.get(key)
                if value is not None and str(value).strip() != "":
                    return str(value).strip()
            return None

        return cls(
            working_directory=pick("workingDirectory", "working_directory"),
            port=pick("port"),
            model_path=pick("modelPath", "model_path"),
            extra_args=pick("additionalArgs", "extraArgs", "extra_args"),
        )

    def extra_arg_tokens(self) -> List[str]:
        """Free-form extra arguments split on whitespace."""
        return self.extra_args.split() if self.extra_args else []


def build_command(service: ServiceName, service_config: ServiceConfig) -> List[str]:
    """
    Build the command line for a backend.

    Raises:
        ConfigurationError: If a required setting is missing
    """
    if service is ServiceName.OLLAMA:
        return [config.OLLAMA_EXECUTABLE, "serve"]

    if service is ServiceName.LLAMACPP:
        if not service_config.model_path:
            raise ConfigurationError("Model path required for Llama.cpp")
        return [
            config.LLAMACPP_SERVER_BINARY,
            "-m", service_config.model_path,
            "--port", service_config.port or config.LLAMACPP_DEFAULT_PORT,
            "--host", config.SERVICE_BIND_HOST,
        ] + service_config.extra_arg_tokens()

    # Coqui-TTS ships its demo server as a module
    return [
        config.COQUI_PYTHON,
        "-m", "TTS.server.server",
        "--host", config.SERVICE_BIND_HOST,
        "--port", service_config.port or config.COQUI_DEFAULT_PORT,
    ] + service_config.extra_arg_tokens()


def is_process_running(process_name: str, exclude_pids: Iterable[int] = ()) -> bool:
    """
    Check whether a process with exactly this name exists anywhere on the system.

    Args:
        process_name: Executable name to look for (e.g. "ollama")
        exclude_pids: PIDs to ignore, such as a child we just terminated

    Returns:
        True if at least one matching process is alive
    """
    excluded = set(exclude_pids)
    for proc in psutil.process_iter(["pid", "name", "status"]):
        try:
            info = proc.info
            if info["pid"] in excluded:
                continue
            if info.get("status") == psutil.STATUS_ZOMBIE:
                continue
            name = (info.get("name") or "").lower()
            if name.endswith(".exe"):
                name = name[:-4]
            if name == process_name.lower():
                return True
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return False

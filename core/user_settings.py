"""
AI Chat Overlay - User Settings Manager

Handles persistent user preferences that can be changed at runtime:
UI options, per-backend connection/launch settings, the selected backend
and the saved chat transcript. Settings are stored in a JSON file in the
data directory.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, asdict, field, fields
import threading

import config
from core.logger import log_info, log_warning, log_error
from subprocess_mgmt.services import ServiceConfig, ServiceName


@dataclass
class UISettings:
    """Chat window preferences."""
    font_size: int = 13
    compact_mode: bool = False
    auto_scroll: bool = True
    save_history: bool = True
    show_timestamps: bool = True


@dataclass
class ServiceSettings:
    """Connection and launch settings for one backend."""
    url: str = ""
    working_directory: str = ""
    model_path: str = ""
    port: str = ""
    extra_args: str = ""
    selected_model: str = ""

    def to_service_config(self) -> ServiceConfig:
        """Launch config for the supervisor. Blank fields are left unset."""
        return ServiceConfig(
            working_directory=self.working_directory or None,
            port=self.port or None,
            model_path=self.model_path or None,
            extra_args=self.extra_args or None
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], defaults: "ServiceSettings") -> "ServiceSettings":
        values = asdict(defaults)
        for f in fields(cls):
            if f.name in data and data[f.name] is not None:
                values[f.name] = str(data[f.name])
        return cls(**values)


def default_service_settings() -> Dict[ServiceName, ServiceSettings]:
    """Out-of-the-box settings for each backend."""
    return {
        ServiceName.OLLAMA: ServiceSettings(
            url=config.OLLAMA_API_URL, port=config.OLLAMA_DEFAULT_PORT
        ),
        ServiceName.LLAMACPP: ServiceSettings(
            url=config.LLAMACPP_API_URL, port=config.LLAMACPP_DEFAULT_PORT
        ),
        ServiceName.COQUI: ServiceSettings(
            url=config.COQUI_API_URL, port=config.COQUI_DEFAULT_PORT
        ),
    }


@dataclass
class UserSettings:
    """All user-configurable settings."""
    ui: UISettings = field(default_factory=UISettings)
    services: Dict[ServiceName, ServiceSettings] = field(default_factory=default_service_settings)
    current_backend: ServiceName = ServiceName.OLLAMA
    chat_history: List[Dict[str, Any]] = field(default_factory=list)


class UserSettingsManager:
    """
    Manages loading, saving, and accessing user settings.

    Thread-safe; persists settings to JSON on every change.
    """

    def __init__(self, settings_path: Optional[Path] = None):
        self._settings_path: Path = settings_path or config.USER_SETTINGS_PATH
        self._settings: UserSettings = UserSettings()
        self._file_lock = threading.Lock()

        # Ensure data directory exists
        self._settings_path.parent.mkdir(parents=True, exist_ok=True)

        # Load existing settings
        self._load()

    def _load(self) -> None:
        """Load settings from disk."""
        try:
            if self._settings_path.exists():
                with open(self._settings_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)

                ui_data = data.get('ui', {})
                self._settings.ui = UISettings(
                    font_size=int(ui_data.get('font_size', 13)),
                    compact_mode=bool(ui_data.get('compact_mode', False)),
                    auto_scroll=bool(ui_data.get('auto_scroll', True)),
                    save_history=bool(ui_data.get('save_history', True)),
                    show_timestamps=bool(ui_data.get('show_timestamps', True))
                )

                defaults = default_service_settings()
                services_data = data.get('services', {})
                for service in ServiceName:
                    self._settings.services[service] = ServiceSettings.from_dict(
                        services_data.get(service.value, {}), defaults[service]
                    )

                try:
                    self._settings.current_backend = ServiceName(
                        data.get('current_backend', ServiceName.OLLAMA.value)
                    )
                except ValueError:
                    self._settings.current_backend = ServiceName.OLLAMA

                history = data.get('chat_history', [])
                self._settings.chat_history = history if isinstance(history, list) else []

                log_info("User settings loaded", prefix="⚙️")
        except json.JSONDecodeError as e:
            log_warning(f"Invalid settings file, using defaults: {e}")
        except Exception as e:
            log_error(f"Failed to load settings: {e}")

    def _save(self) -> None:
        """Save settings to disk."""
        with self._file_lock:
            try:
                data = {
                    'ui': asdict(self._settings.ui),
                    'services': {
                        service.value: asdict(settings)
                        for service, settings in self._settings.services.items()
                    },
                    'current_backend': self._settings.current_backend.value,
                    'chat_history': self._settings.chat_history
                }

                with open(self._settings_path, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2)

            except Exception as e:
                log_error(f"Failed to save settings: {e}")

    @property
    def ui(self) -> UISettings:
        """UI preferences (mutate through update_ui to persist)."""
        return self._settings.ui

    def update_ui(self, **changes: Any) -> None:
        """Change one or more UI preferences."""
        for key, value in changes.items():
            if not hasattr(self._settings.ui, key):
                raise AttributeError(f"Unknown UI setting: {key}")
            setattr(self._settings.ui, key, value)
        self._save()

    @property
    def font_size(self) -> int:
        """Get font size."""
        return self._settings.ui.font_size

    @font_size.setter
    def font_size(self, value: int) -> None:
        """Set font size."""
        self._settings.ui.font_size = value
        self._save()

    @property
    def current_backend(self) -> ServiceName:
        """The backend the chat talks to."""
        return self._settings.current_backend

    @current_backend.setter
    def current_backend(self, value: ServiceName) -> None:
        self._settings.current_backend = ServiceName.parse(value)
        self._save()

    def service(self, name: ServiceName) -> ServiceSettings:
        """Settings for one backend."""
        return self._settings.services[ServiceName.parse(name)]

    def update_service(self, name: ServiceName, **changes: Any) -> ServiceSettings:
        """Change one or more settings of a backend."""
        settings = self.service(name)
        for key, value in changes.items():
            if not hasattr(settings, key):
                raise AttributeError(f"Unknown service setting: {key}")
            setattr(settings, key, "" if value is None else str(value))
        self._save()
        return settings

    @property
    def chat_history(self) -> List[Dict[str, Any]]:
        """Saved chat transcript (list of message dicts)."""
        return list(self._settings.chat_history)

    @chat_history.setter
    def chat_history(self, messages: List[Dict[str, Any]]) -> None:
        self._settings.chat_history = list(messages)
        self._save()

    def get_all(self) -> UserSettings:
        """Get a copy of all settings."""
        return UserSettings(
            ui=UISettings(**asdict(self._settings.ui)),
            services={
                service: ServiceSettings(**asdict(settings))
                for service, settings in self._settings.services.items()
            },
            current_backend=self._settings.current_backend,
            chat_history=list(self._settings.chat_history)
        )


# Module-level convenience functions
_manager: Optional[UserSettingsManager] = None


def get_user_settings() -> UserSettingsManager:
    """Get the global user settings manager."""
    global _manager
    if _manager is None:
        _manager = UserSettingsManager()
    return _manager

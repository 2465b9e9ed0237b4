"""
AI Chat Overlay - PyQt5 Overlay GUI
Version: 1.0.0

A small always-on-top chat window for locally hosted AI backends
(Ollama, Llama.cpp, Coqui-TTS), with controls to start and stop those
backends as local processes.

Features:
- Accordion ("minimize to bar") and windowless display modes
- Per-backend connection and launch settings
- Chat history persistence and JSON export
- Keyboard shortcuts and toast notifications
"""

import sys
import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import config
from core.logger import log_info, log_error, log_warning
from core.chat_history import ChatHistory, export_chat, word_count
from core.user_settings import UserSettingsManager, get_user_settings
from interface.bridge import OverlayBridge
from interface.gui_components import (
    OVERLAY_THEME, build_stylesheet, MessageRenderer, NotificationManager,
    KeyboardShortcutManager, StatusManager, DraggableHeader,
    MainThreadDispatcher, cooperative_wait, format_duration
)
from interface.overlay_window import QtWindowSurface
from interface.window_controller import DisplayMode, init_window_controller
from llm.llamacpp_client import LlamaCppClient
from llm.ollama_client import OllamaClient
from subprocess_mgmt.manager import ServiceSupervisor, ProcessExited, init_service_supervisor
from subprocess_mgmt.services import ServiceName
from tts.coqui_client import CoquiClient
from tts.player import play_tts, stop_tts, shutdown_tts

from PyQt5.QtWidgets import (
    QApplication, QMainWindow, QTextBrowser, QTextEdit, QVBoxLayout, QHBoxLayout,
    QWidget, QPushButton, QLineEdit, QLabel, QFrame, QComboBox, QCheckBox,
    QSpinBox, QFormLayout, QStackedWidget, QMessageBox, QAction, QMenu
)
from PyQt5.QtCore import Qt, QTimer, QUrl, pyqtSignal, QObject
from PyQt5.QtGui import QKeySequence, QTextCursor, QDesktopServices


FONT_SIZE_MIN = 10
FONT_SIZE_MAX = 24
FONT_SIZE_DEFAULT = 13


class MessageSignals(QObject):
    """Signals for thread-safe message passing to GUI."""
    new_message = pyqtSignal(str, str)  # role, content
    response_complete = pyqtSignal()
    backend_checked = pyqtSignal(str, bool, str, list)  # service, ok, detail, models
    models_loaded = pyqtSignal(str, list, str)  # service, models, error
    show_notification = pyqtSignal(str, str)  # message, level (info/success/warning/error)


class ChatInputWidget(QTextEdit):
    """Multi-line chat input with Enter to send, Shift+Enter for newline."""

    send_requested = pyqtSignal()

    def __init__(self):
        super().__init__()
        self.setAcceptRichText(False)
        self.setPlaceholderText("Type your message...")
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarAlwaysOff)
        self.setMaximumHeight(90)

    def keyPressEvent(self, event):
        """Handle Enter vs Shift+Enter."""
        if event.key() in (Qt.Key_Return, Qt.Key_Enter):
            if event.modifiers() & Qt.ShiftModifier:
                super().keyPressEvent(event)
            else:
                self.send_requested.emit()
        else:
            super().keyPressEvent(event)


class ServiceSettingsGroup(QWidget):
    """Connection and launch fields for one backend, with start/stop controls."""

    start_requested = pyqtSignal(str)
    stop_requested = pyqtSignal(str)
    refresh_requested = pyqtSignal(str)

    def __init__(self, service: ServiceName, user_settings: UserSettingsManager, parent=None):
        super().__init__(parent)
        self.service = service
        self._user_settings = user_settings
        settings = user_settings.service(service)

        layout = QFormLayout(self)
        layout.setContentsMargins(8, 4, 8, 4)

        self.url_input = QLineEdit(settings.url)
        layout.addRow("URL:", self.url_input)

        model_row = QHBoxLayout()
        self.model_combo = QComboBox()
        self.model_combo.setEditable(service is not ServiceName.LLAMACPP)
        if settings.selected_model:
            self.model_combo.addItem(settings.selected_model)
        self.model_combo.currentTextChanged.connect(self._on_model_changed)
        model_row.addWidget(self.model_combo, stretch=1)
        self.refresh_btn = QPushButton("⟳")
        self.refresh_btn.setToolTip("Refresh model list")
        self.refresh_btn.setFixedWidth(32)
        self.refresh_btn.clicked.connect(lambda: self.refresh_requested.emit(self.service.value))
        model_row.addWidget(self.refresh_btn)
        if service is ServiceName.LLAMACPP:
            # The server serves whatever model it was launched with
            self.model_combo.hide()
            self.refresh_btn.hide()
        else:
            layout.addRow("Model:", model_row)

        self.workdir_input = QLineEdit(settings.working_directory)
        self.workdir_input.setPlaceholderText("Current directory")
        layout.addRow("Work dir:", self.workdir_input)

        self.model_path_input = QLineEdit(settings.model_path)
        self.model_path_input.setPlaceholderText("/path/to/model.gguf")
        if service is ServiceName.LLAMACPP:
            layout.addRow("Model path:", self.model_path_input)
        else:
            self.model_path_input.hide()

        self.port_input = QLineEdit(settings.port)
        layout.addRow("Port:", self.port_input)

        self.args_input = QLineEdit(settings.extra_args)
        self.args_input.setPlaceholderText("Additional arguments")
        if service is ServiceName.OLLAMA:
            self.args_input.hide()
        else:
            layout.addRow("Args:", self.args_input)

        controls = QHBoxLayout()
        self.status_label = QLabel("● Stopped")
        controls.addWidget(self.status_label, stretch=1)
        self.start_btn = QPushButton("Start")
        self.start_btn.clicked.connect(lambda: self.start_requested.emit(self.service.value))
        controls.addWidget(self.start_btn)
        self.stop_btn = QPushButton("Stop")
        self.stop_btn.clicked.connect(lambda: self.stop_requested.emit(self.service.value))
        controls.addWidget(self.stop_btn)
        layout.addRow(controls)

        self.set_status("Stopped")

    def _on_model_changed(self, text: str):
        if text and text != self._user_settings.service(self.service).selected_model:
            self._user_settings.update_service(self.service, selected_model=text)

    @property
    def selected_model(self) -> str:
        return self.model_combo.currentText().strip()

    def set_models(self, models: List[str]):
        """Replace the model list, keeping the saved selection when it still exists."""
        saved = self._user_settings.service(self.service).selected_model
        self.model_combo.blockSignals(True)
        self.model_combo.clear()
        self.model_combo.addItems(models)
        if saved and saved in models:
            self.model_combo.setCurrentText(saved)
        self.model_combo.blockSignals(False)
        if models and saved not in models:
            self._on_model_changed(self.model_combo.currentText())

    def save(self):
        """Persist the text fields."""
        self._user_settings.update_service(
            self.service,
            url=self.url_input.text().strip(),
            working_directory=self.workdir_input.text().strip(),
            model_path=self.model_path_input.text().strip(),
            port=self.port_input.text().strip(),
            extra_args=self.args_input.text().strip()
        )

    def launch_config(self) -> Dict[str, str]:
        """Launch settings in the control boundary's request shape."""
        return {
            "workingDirectory": self.workdir_input.text().strip(),
            "modelPath": self.model_path_input.text().strip(),
            "port": self.port_input.text().strip(),
            "additionalArgs": self.args_input.text().strip(),
        }

    def set_status(self, text: str, detail: str = ""):
        """Show Running / Stopped / Starting... / Stopping..., with optional hover detail."""
        color = {
            "Running": OVERLAY_THEME.success,
            "Stopped": OVERLAY_THEME.text_dim,
        }.get(text, OVERLAY_THEME.warning)
        self.status_label.setText(f"● {text}")
        self.status_label.setStyleSheet(f"color: {color};")
        self.status_label.setToolTip(detail)
        busy = text.endswith("...")
        self.start_btn.setEnabled(not busy)
        self.stop_btn.setEnabled(not busy and text == "Running")


class ChatWindow(QMainWindow):
    """
    Overlay main window with:
    - Header: backend selector, model/port display, mode and pin toggles
    - Settings panel: per-backend connection/launch settings, UI options
    - Chat display: HTML messages with optional timestamps
    - Input: Enter to send, speak (Coqui only), clear
    - Status bar: connection, message count, session timer
    """

    def __init__(self, supervisor: ServiceSupervisor, user_settings: Optional[UserSettingsManager] = None):
        super().__init__()
        self.signals = MessageSignals()
        self._supervisor = supervisor
        self._user_settings = user_settings or get_user_settings()

        self._theme = OVERLAY_THEME
        self._renderer = MessageRenderer(self._theme)
        self._status_manager = StatusManager()

        # State
        self._session_start = datetime.now()
        self._is_processing = False
        self._history = ChatHistory()
        self._service_groups: Dict[ServiceName, ServiceSettingsGroup] = {}
        self.http_dispatcher: Optional[MainThreadDispatcher] = None

        self._setup_ui()
        self._setup_menus()

        self.window_controller = init_window_controller(QtWindowSurface(self, self._body))
        self.bridge = OverlayBridge(supervisor, self.window_controller)
        self._supervisor.add_exit_listener(self._on_service_exited)

        self._setup_signals()
        self._setup_timers()
        self._setup_keyboard_shortcuts()
        self._apply_style()
        self._restore_history()
        self._on_backend_changed(self.backend_combo.currentIndex())

    @property
    def current_backend(self) -> ServiceName:
        return self._user_settings.current_backend

    # =========================================================================
    # UI CONSTRUCTION
    # =========================================================================

    def _setup_ui(self):
        """Create the UI layout."""
        self.setWindowTitle(config.WINDOW_TITLE)

        central = QWidget()
        central.setObjectName("central")
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)

        self._header = self._create_header()
        layout.addWidget(self._header)

        # Everything below the header collapses in accordion mode
        self._body = QWidget()
        body_layout = QVBoxLayout(self._body)
        body_layout.setContentsMargins(8, 6, 8, 4)
        body_layout.setSpacing(6)

        self._settings_panel = self._create_settings_panel()
        self._settings_panel.hide()
        body_layout.addWidget(self._settings_panel)

        self.chat_display = QTextBrowser()
        self.chat_display.setOpenExternalLinks(True)
        body_layout.addWidget(self.chat_display, stretch=1)

        self.typing_label = QLabel("AI is typing...")
        self.typing_label.setStyleSheet(f"color: {self._theme.text_dim}; font-style: italic;")
        self.typing_label.hide()
        body_layout.addWidget(self.typing_label)

        body_layout.addWidget(self._create_input_area())
        body_layout.addWidget(self._create_status_bar())

        layout.addWidget(self._body, stretch=1)

        self._notification_manager = NotificationManager(self, self._theme)

    def _create_header(self) -> QFrame:
        """Backend selector, model display and window controls."""
        header = DraggableHeader()
        header.setFixedHeight(config.ACCORDION_HEIGHT)
        header.double_clicked.connect(self._toggle_accordion)
        layout = QHBoxLayout(header)
        layout.setContentsMargins(8, 4, 8, 4)
        layout.setSpacing(4)

        self.backend_combo = QComboBox()
        for service in ServiceName:
            self.backend_combo.addItem(service.display_name, service.value)
        self.backend_combo.setCurrentIndex(list(ServiceName).index(self.current_backend))
        self.backend_combo.currentIndexChanged.connect(self._on_backend_changed)
        layout.addWidget(self.backend_combo)

        self.model_label = QLabel("")
        self.model_label.setStyleSheet(f"color: {self._theme.text_dim}; font-size: 10px;")
        layout.addWidget(self.model_label, stretch=1)

        self.accordion_btn = self._header_button("▁", "Minimize to bar (Ctrl+M)")
        self.accordion_btn.clicked.connect(self._toggle_accordion)
        layout.addWidget(self.accordion_btn)

        self.pin_btn = self._header_button("📌", "Always on top (Ctrl+T)")
        self.pin_btn.setCheckable(True)
        self.pin_btn.setChecked(True)
        self.pin_btn.clicked.connect(self._toggle_always_on_top)
        layout.addWidget(self.pin_btn)

        self.windowless_btn = self._header_button("◻", "Windowless mode")
        self.windowless_btn.setCheckable(True)
        self.windowless_btn.clicked.connect(self._toggle_windowless)
        layout.addWidget(self.windowless_btn)

        self.settings_btn = self._header_button("⚙", "Settings (Ctrl+,)")
        self.settings_btn.setCheckable(True)
        self.settings_btn.clicked.connect(self._toggle_settings)
        layout.addWidget(self.settings_btn)

        return header

    def _header_button(self, text: str, tooltip: str) -> QPushButton:
        button = QPushButton(text)
        button.setToolTip(tooltip)
        button.setFixedSize(30, 28)
        return button

    def _create_settings_panel(self) -> QFrame:
        """Per-backend settings (one page per backend) plus UI options."""
        panel = QFrame()
        panel.setObjectName("settingsPanel")
        layout = QVBoxLayout(panel)
        layout.setContentsMargins(4, 4, 4, 4)

        self._service_stack = QStackedWidget()
        for service in ServiceName:
            group = ServiceSettingsGroup(service, self._user_settings)
            group.start_requested.connect(self._start_service)
            group.stop_requested.connect(self._stop_service)
            group.refresh_requested.connect(self._refresh_models)
            self._service_groups[service] = group
            self._service_stack.addWidget(group)
        layout.addWidget(self._service_stack)

        ui = self._user_settings.ui
        options = QHBoxLayout()
        options.addWidget(QLabel("Font:"))
        self.font_spin = QSpinBox()
        self.font_spin.setRange(FONT_SIZE_MIN, FONT_SIZE_MAX)
        self.font_spin.setValue(ui.font_size)
        self.font_spin.valueChanged.connect(self._apply_font_size)
        options.addWidget(self.font_spin)

        self.compact_check = QCheckBox("Compact")
        self.compact_check.setChecked(ui.compact_mode)
        self.compact_check.toggled.connect(lambda checked: self._update_ui_setting(compact_mode=checked))
        options.addWidget(self.compact_check)

        self.timestamps_check = QCheckBox("Times")
        self.timestamps_check.setChecked(ui.show_timestamps)
        self.timestamps_check.toggled.connect(self._on_timestamps_toggled)
        options.addWidget(self.timestamps_check)
        layout.addLayout(options)

        options2 = QHBoxLayout()
        self.autoscroll_check = QCheckBox("Auto-scroll")
        self.autoscroll_check.setChecked(ui.auto_scroll)
        self.autoscroll_check.toggled.connect(lambda checked: self._update_ui_setting(auto_scroll=checked))
        options2.addWidget(self.autoscroll_check)

        self.save_history_check = QCheckBox("Save history")
        self.save_history_check.setChecked(ui.save_history)
        self.save_history_check.toggled.connect(self._on_save_history_toggled)
        options2.addWidget(self.save_history_check)
        options2.addStretch()

        save_btn = QPushButton("Save")
        save_btn.clicked.connect(self._save_settings)
        options2.addWidget(save_btn)
        layout.addLayout(options2)

        return panel

    def _create_input_area(self) -> QWidget:
        """Input field with send/speak/clear buttons and a word count."""
        frame = QWidget()
        layout = QVBoxLayout(frame)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(4)

        self.input_field = ChatInputWidget()
        self.input_field.send_requested.connect(self._send_message)
        self.input_field.textChanged.connect(self._update_word_count)
        layout.addWidget(self.input_field)

        buttons = QHBoxLayout()
        self.word_count_label = QLabel("0 words")
        self.word_count_label.setStyleSheet(f"color: {self._theme.text_dim}; font-size: 10px;")
        buttons.addWidget(self.word_count_label, stretch=1)

        self.clear_btn = QPushButton("Clear")
        self.clear_btn.clicked.connect(self._clear_chat)
        buttons.addWidget(self.clear_btn)

        self.speak_btn = QPushButton("🔊")
        self.speak_btn.setToolTip("Speak with Coqui-TTS")
        self.speak_btn.clicked.connect(self._speak)
        buttons.addWidget(self.speak_btn)

        self.send_btn = QPushButton("Send")
        self.send_btn.clicked.connect(self._send_message)
        buttons.addWidget(self.send_btn)
        layout.addLayout(buttons)

        return frame

    def _create_status_bar(self) -> QWidget:
        bar = QWidget()
        layout = QHBoxLayout(bar)
        layout.setContentsMargins(2, 0, 2, 0)

        self.status_label = QLabel("Disconnected")
        layout.addWidget(self.status_label, stretch=1)

        self.message_count_label = QLabel("0 messages")
        layout.addWidget(self.message_count_label)

        self.session_label = QLabel("0:00")
        layout.addWidget(self.session_label)

        for label in (self.status_label, self.message_count_label, self.session_label):
            label.setStyleSheet(f"color: {self._theme.text_dim}; font-size: 10px;")
        return bar

    def _setup_menus(self):
        """AI Chat / Chat / Services / View / Help menus."""
        menu_bar = self.menuBar()

        app_menu = menu_bar.addMenu("AI Chat")
        self._add_action(app_menu, "About AI Chat Overlay", self._show_about)
        app_menu.addSeparator()
        self._add_action(app_menu, "Preferences...", self._toggle_settings_from_menu, "Ctrl+,")
        app_menu.addSeparator()
        self._add_action(app_menu, "Quit", self.close, "Ctrl+Q")

        chat_menu = menu_bar.addMenu("Chat")
        self._add_action(chat_menu, "Clear Chat", self._clear_chat, "Ctrl+K")
        self._add_action(chat_menu, "Export Chat...", self._export_chat, "Ctrl+E")
        chat_menu.addSeparator()
        self._add_action(chat_menu, "Toggle Always On Top", self._toggle_always_on_top, "Ctrl+T")
        self._add_action(chat_menu, "Minimize to Bar", self._toggle_accordion, "Ctrl+M")

        services_menu = menu_bar.addMenu("Services")
        for service in ServiceName:
            submenu = QMenu(service.display_name, self)
            self._add_action(submenu, f"Start {service.display_name}",
                             lambda checked=False, s=service: self._start_service(s.value))
            self._add_action(submenu, f"Stop {service.display_name}",
                             lambda checked=False, s=service: self._stop_service(s.value))
            services_menu.addMenu(submenu)
        services_menu.addSeparator()
        self._add_action(services_menu, "Open Claude",
                         lambda checked=False: self._open_url(config.CLAUDE_WEB_URL))
        self._add_action(services_menu, "Open Grok",
                         lambda checked=False: self._open_url(config.GROK_WEB_URL))
        self._add_action(services_menu, "Open ChatGPT",
                         lambda checked=False: self._open_url(config.CHATGPT_WEB_URL))

        view_menu = menu_bar.addMenu("View")
        self._add_action(view_menu, "Actual Size",
                         lambda checked=False: self._apply_font_size(FONT_SIZE_DEFAULT), "Ctrl+0")
        self._add_action(view_menu, "Zoom In", self._zoom_in, "Ctrl+=")
        self._add_action(view_menu, "Zoom Out", self._zoom_out, "Ctrl+-")
        view_menu.addSeparator()
        self._add_action(view_menu, "Windowless Mode", self._toggle_windowless)

        help_menu = menu_bar.addMenu("Help")
        self._add_action(help_menu, "Documentation",
                         lambda checked=False: self._open_url(config.DOCUMENTATION_URL))
        self._add_action(help_menu, "Keyboard Shortcuts", self._show_shortcuts)
        help_menu.addSeparator()
        self._add_action(help_menu, "Ollama Repository",
                         lambda checked=False: self._open_url(config.OLLAMA_REPO_URL))
        self._add_action(help_menu, "Llama.cpp Repository",
                         lambda checked=False: self._open_url(config.LLAMACPP_REPO_URL))
        self._add_action(help_menu, "Coqui-TTS Repository",
                         lambda checked=False: self._open_url(config.COQUI_REPO_URL))
        help_menu.addSeparator()
        self._add_action(help_menu, "Report Issue",
                         lambda checked=False: self._open_url(config.ISSUES_URL))

    def _add_action(self, menu: QMenu, text: str, callback, shortcut: Optional[str] = None) -> QAction:
        """Add a menu action. Actions also live on the window so shortcuts work with the menu hidden."""
        action = QAction(text, self)
        if shortcut:
            action.setShortcut(QKeySequence(shortcut))
            self.addAction(action)
        action.triggered.connect(callback)
        menu.addAction(action)
        return action

    def _setup_signals(self):
        """Connect signals to slots."""
        self.signals.new_message.connect(self._append_message)
        self.signals.response_complete.connect(self._on_response_complete)
        self.signals.backend_checked.connect(self._on_backend_checked)
        self.signals.models_loaded.connect(self._on_models_loaded)
        self.signals.show_notification.connect(self._show_notification)
        self._status_manager.status_changed.connect(self._on_status_changed)

    def _setup_timers(self):
        """Setup update timers."""
        # Session timer display (every second)
        self.timer_update = QTimer(self)
        self.timer_update.timeout.connect(self._update_timer)
        self.timer_update.start(1000)

        # Apply process exit notifications from the supervisor's watcher threads
        self.service_poll = QTimer(self)
        self.service_poll.timeout.connect(self._poll_services)
        self.service_poll.start(config.SERVICE_EVENT_POLL_INTERVAL_MS)

    def _setup_keyboard_shortcuts(self):
        """Shortcuts not attached to a menu action."""
        self._shortcut_manager = KeyboardShortcutManager(self)
        self._shortcut_manager.register("Escape", self.input_field.setFocus, "Focus input")
        self._shortcut_manager.register("Ctrl+End", self._scroll_to_bottom, "Scroll to bottom")

    def _apply_style(self):
        ui = self._user_settings.ui
        self.setStyleSheet(build_stylesheet(self._theme, ui.font_size, ui.compact_mode))

    # =========================================================================
    # BACKEND SELECTION AND CONNECTION
    # =========================================================================

    def _on_backend_changed(self, index: int):
        """Switch the chat to another backend and check its connection."""
        service = ServiceName(self.backend_combo.itemData(index))
        if service is not self._user_settings.current_backend:
            self._user_settings.current_backend = service
        self._service_stack.setCurrentWidget(self._service_groups[service])
        self.speak_btn.setEnabled(service is ServiceName.COQUI)
        self._set_input_enabled(False)
        self._update_model_label()
        self._check_backend()

    def _update_model_label(self):
        service = self.current_backend
        settings = self._user_settings.service(service)
        model = self._service_groups[service].selected_model
        parts = [p for p in (model, f":{settings.port}" if settings.port else "") if p]
        self.model_label.setText(" ".join(parts))

    def _check_backend(self):
        """Probe the current backend's API on a worker thread."""
        service = self.current_backend
        url = self._service_groups[service].url_input.text().strip()
        self._status_manager.set_connecting()
        threading.Thread(
            target=self._check_backend_worker,
            args=(service, url),
            daemon=True
        ).start()

    def _check_backend_worker(self, service: ServiceName, url: str):
        try:
            if service is ServiceName.OLLAMA:
                result = OllamaClient(url, probe_timeout=config.BACKEND_PROBE_TIMEOUT).list_models()
                detail = "Connected to Ollama" if result.success else result.error
                self.signals.backend_checked.emit(service.value, result.success, detail or "", result.models)
            elif service is ServiceName.LLAMACPP:
                ok, detail = LlamaCppClient(url, probe_timeout=config.BACKEND_PROBE_TIMEOUT).validate_connection()
                self.signals.backend_checked.emit(service.value, ok, detail, [])
            else:
                result = CoquiClient(url, probe_timeout=config.BACKEND_PROBE_TIMEOUT).list_models()
                detail = "Connected to Coqui-TTS" if result.success else result.error
                self.signals.backend_checked.emit(service.value, result.success, detail or "", result.models)
        except Exception as e:
            log_error(f"Backend check failed: {e}")
            self.signals.backend_checked.emit(service.value, False, str(e), [])

    def _on_backend_checked(self, service_name: str, ok: bool, detail: str, models: list):
        service = ServiceName(service_name)
        if models:
            self._service_groups[service].set_models(models)
        if service is not self.current_backend:
            return
        self._update_model_label()
        if ok:
            self._status_manager.set_connected(detail)
            self._set_input_enabled(True)
        else:
            self._status_manager.set_disconnected(detail)
            self._set_input_enabled(False)

    def _refresh_models(self, service_name: str):
        service = ServiceName(service_name)
        url = self._service_groups[service].url_input.text().strip()

        def worker():
            if service is ServiceName.OLLAMA:
                result = OllamaClient(url, probe_timeout=config.BACKEND_PROBE_TIMEOUT).list_models()
            else:
                result = CoquiClient(url, probe_timeout=config.BACKEND_PROBE_TIMEOUT).list_models()
            self.signals.models_loaded.emit(service.value, result.models, result.error or "")

        threading.Thread(target=worker, daemon=True).start()

    def _on_models_loaded(self, service_name: str, models: list, error: str):
        service = ServiceName(service_name)
        if error:
            self._notification_manager.error(f"{service.display_name}: {error}")
            return
        self._service_groups[service].set_models(models)
        self._update_model_label()
        self._notification_manager.info(f"{len(models)} models available")

    def _set_input_enabled(self, enabled: bool):
        self.input_field.setEnabled(enabled)
        self.send_btn.setEnabled(enabled and not self._is_processing)
        self.speak_btn.setEnabled(enabled and self.current_backend is ServiceName.COQUI)

    # =========================================================================
    # LOCAL SERVICES
    # =========================================================================

    def _start_service(self, service_name: str):
        """Start a backend process with the settings from its panel."""
        service = ServiceName(service_name)
        group = self._service_groups[service]
        group.save()
        group.set_status("Starting...")
        self._append_message("system", f"Starting {service.display_name}...")

        # Blocks for the grace period; the event loop keeps running meanwhile
        result = self.bridge.start_service(service.value, group.launch_config())

        self._refresh_service_indicators()
        if result.get("success"):
            message = result.get("message", f"{service.value} started successfully")
            self._append_message("system", f"✅ {message}")
            if service is self.current_backend:
                QTimer.singleShot(config.SERVICE_REFRESH_DELAY_MS, self._check_backend)
        else:
            error = result.get("error", "Unknown error")
            self._append_message("system", f"❌ Failed to start {service.display_name}: {error}")
            self._notification_manager.error(error)

    def _stop_service(self, service_name: str):
        service = ServiceName(service_name)
        group = self._service_groups[service]
        group.set_status("Stopping...")

        result = self.bridge.stop_service(service.value)

        self._refresh_service_indicators()
        if result.get("success"):
            self._append_message("system", f"⏹ {result.get('message', '')}")
            if service is self.current_backend:
                self._set_input_enabled(False)
                self._status_manager.set_disconnected()
        else:
            error = result.get("error", "Unknown error")
            self._append_message("system", f"❌ Failed to stop {service.display_name}: {error}")
            self._notification_manager.error(error)

    def _poll_services(self):
        if self._supervisor.process_events():
            self._refresh_service_indicators()

    def _on_service_exited(self, service: ServiceName, event: ProcessExited):
        """Supervisor callback (runs on the GUI thread) when a tracked backend ends."""
        if event.error:
            self._append_message("system", f"⚠ {service.display_name} error: {event.error}")
        else:
            self._append_message("system", f"⚠ {service.display_name} exited (code {event.returncode})")
        if service is self.current_backend:
            self._set_input_enabled(False)
            self._status_manager.set_disconnected()
        self._refresh_service_indicators()

    def _refresh_service_indicators(self):
        statuses = self.bridge.get_all_service_statuses()
        for service, group in self._service_groups.items():
            if self._supervisor.is_starting(service):
                continue
            handle = self._supervisor.handle(service) if statuses.get(service.value) else None
            if handle is None:
                group.set_status("Stopped")
            else:
                uptime = format_duration(timedelta(seconds=handle.uptime))
                group.set_status("Running", f"PID {handle.pid}, up {uptime}")

    # =========================================================================
    # DISPLAY MODES
    # =========================================================================

    def _toggle_accordion(self):
        if self.window_controller.display_mode is DisplayMode.ACCORDION:
            self.bridge.set_display_mode(DisplayMode.NORMAL)
        else:
            self.bridge.set_display_mode(DisplayMode.ACCORDION)
        self._sync_mode_buttons()

    def _toggle_windowless(self):
        if self.window_controller.display_mode is DisplayMode.WINDOWLESS:
            self.bridge.set_display_mode(DisplayMode.NORMAL)
        else:
            self.bridge.set_display_mode(DisplayMode.WINDOWLESS)
        self._sync_mode_buttons()

    def _toggle_always_on_top(self):
        always_on_top = self.bridge.toggle_always_on_top()
        self.pin_btn.setChecked(always_on_top)
        self._notification_manager.info(f"Always on top {'enabled' if always_on_top else 'disabled'}")

    def _sync_mode_buttons(self):
        mode = self.window_controller.display_mode
        self.windowless_btn.setChecked(mode is DisplayMode.WINDOWLESS)
        self.accordion_btn.setText("▢" if mode is DisplayMode.ACCORDION else "▁")
        self.pin_btn.setChecked(self.window_controller.always_on_top)

    def _toggle_settings(self):
        visible = not self._settings_panel.isVisible()
        self._settings_panel.setVisible(visible)
        self.settings_btn.setChecked(visible)

    def _toggle_settings_from_menu(self):
        if self.window_controller.display_mode is DisplayMode.ACCORDION:
            self.bridge.set_display_mode(DisplayMode.NORMAL)
            self._sync_mode_buttons()
        self._toggle_settings()

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def _save_settings(self):
        for group in self._service_groups.values():
            group.save()
        self._update_model_label()
        self._notification_manager.success("Settings saved")
        self._check_backend()

    def _update_ui_setting(self, **changes):
        self._user_settings.update_ui(**changes)
        self._apply_style()

    def _apply_font_size(self, size: int):
        size = max(FONT_SIZE_MIN, min(FONT_SIZE_MAX, int(size)))
        if size != self._user_settings.font_size:
            self._user_settings.font_size = size
        if self.font_spin.value() != size:
            self.font_spin.setValue(size)
        self._apply_style()

    def _zoom_in(self):
        self._apply_font_size(self._user_settings.font_size + 1)

    def _zoom_out(self):
        self._apply_font_size(self._user_settings.font_size - 1)

    def _on_timestamps_toggled(self, checked: bool):
        self._user_settings.update_ui(show_timestamps=checked)
        self._rerender_history()

    def _on_save_history_toggled(self, checked: bool):
        self._user_settings.update_ui(save_history=checked)
        self._user_settings.chat_history = self._history.to_list() if checked else []

    # =========================================================================
    # CHAT
    # =========================================================================

    def _append_message(self, role: str, content: str):
        """Record a message and add it to the chat display."""
        message = self._history.add(role, content)
        self._render_message(role, content, message.timestamp)
        self._update_message_count()
        self._persist_history()

    def _render_message(self, role: str, content: str, timestamp: str):
        show = self._user_settings.ui.show_timestamps
        display_time = timestamp[11:19] if len(timestamp) >= 19 else timestamp
        self.chat_display.append(self._renderer.render(role, content, display_time, show))
        if self._user_settings.ui.auto_scroll:
            self._scroll_to_bottom()

    def _rerender_history(self):
        self.chat_display.clear()
        for message in self._history:
            self._render_message(message.role, message.content, message.timestamp)

    def _restore_history(self):
        if not self._user_settings.ui.save_history:
            return
        self._history = ChatHistory.from_list(self._user_settings.chat_history)
        self._rerender_history()
        self._update_message_count()

    def _persist_history(self):
        if self._user_settings.ui.save_history:
            self._user_settings.chat_history = self._history.to_list()

    def _update_message_count(self):
        count = self._history.message_count
        self.message_count_label.setText(f"{count} message{'s' if count != 1 else ''}")

    def _update_word_count(self):
        count = word_count(self.input_field.toPlainText())
        self.word_count_label.setText(f"{count} word{'s' if count != 1 else ''}")

    def _scroll_to_bottom(self):
        self.chat_display.moveCursor(QTextCursor.End)

    def _send_message(self):
        """Handle sending a message."""
        text = self.input_field.toPlainText().strip()
        if not text or self._is_processing or not self.input_field.isEnabled():
            return

        service = self.current_backend
        group = self._service_groups[service]
        url = group.url_input.text().strip()
        model = group.selected_model

        self.input_field.clear()
        self._append_message("user", text)
        self._is_processing = True
        self.send_btn.setEnabled(False)
        self.typing_label.show()
        self._status_manager.set_thinking()

        threading.Thread(
            target=self._process_message,
            args=(service, url, model, text),
            daemon=True
        ).start()

    def _process_message(self, service: ServiceName, url: str, model: str, text: str):
        """Worker thread: send the prompt to the backend and post the reply."""
        try:
            if service is ServiceName.OLLAMA:
                response = OllamaClient(url, timeout=config.BACKEND_REQUEST_TIMEOUT).generate(model, text)
                self._post_reply(response.success, response.text, response.error)
            elif service is ServiceName.LLAMACPP:
                response = LlamaCppClient(
                    url,
                    n_predict=config.LLAMACPP_N_PREDICT,
                    temperature=config.LLAMACPP_TEMPERATURE,
                    timeout=config.BACKEND_REQUEST_TIMEOUT
                ).complete(text)
                self._post_reply(response.success, response.text, response.error)
            else:
                speech = CoquiClient(url, timeout=config.BACKEND_REQUEST_TIMEOUT).synthesize(text, model)
                if speech.success and play_tts(speech.audio):
                    self.signals.new_message.emit("system", "🔊 Speaking...")
                else:
                    self.signals.new_message.emit("system", f"❌ {speech.error or 'Audio playback unavailable'}")
        except Exception as e:
            log_error(f"Message processing failed: {e}")
            self.signals.new_message.emit("system", f"❌ {e}")
        finally:
            self.signals.response_complete.emit()

    def _post_reply(self, success: bool, text: str, error: Optional[str]):
        if success:
            self.signals.new_message.emit("assistant", text or "(empty response)")
        else:
            self.signals.new_message.emit("system", f"❌ {error}")

    def _on_response_complete(self):
        self._is_processing = False
        self.typing_label.hide()
        enabled = self.input_field.isEnabled()
        self.send_btn.setEnabled(enabled)
        if self._status_manager.current_type == StatusManager.STATUS_THINKING:
            self._status_manager.set_connected()
        self.input_field.setFocus()

    def _speak(self):
        """Speak the input text, or the last reply if the input is empty."""
        text = self.input_field.toPlainText().strip()
        if not text:
            last = self._history.last_assistant_message()
            text = last.content if last else ""
        if not text:
            self._notification_manager.warning("Nothing to speak")
            return

        group = self._service_groups[ServiceName.COQUI]
        url = group.url_input.text().strip()
        model = group.selected_model

        def worker():
            speech = CoquiClient(url, timeout=config.BACKEND_REQUEST_TIMEOUT).synthesize(text, model)
            if not speech.success:
                self.signals.show_notification.emit(speech.error or "Speech failed", "error")
            elif not play_tts(speech.audio):
                self.signals.show_notification.emit("Audio playback unavailable", "error")

        threading.Thread(target=worker, daemon=True).start()

    def _clear_chat(self):
        self._history.clear()
        self.chat_display.clear()
        self._update_message_count()
        self._persist_history()
        stop_tts()

    def _export_chat(self):
        if not self._history.message_count:
            self._notification_manager.warning("Nothing to export")
            return
        service = self.current_backend
        model = self._service_groups[service].selected_model or service.display_name
        path = export_chat(self._history, model, config.CHAT_EXPORT_DIR)
        if path:
            self._notification_manager.success(f"Exported to {path.name}")
        else:
            self._notification_manager.error("Export failed")

    # =========================================================================
    # STATUS AND NOTIFICATIONS
    # =========================================================================

    def _on_status_changed(self, text: str, status_type: str):
        color = {
            StatusManager.STATUS_CONNECTED: self._theme.success,
            StatusManager.STATUS_ERROR: self._theme.error,
            StatusManager.STATUS_DISCONNECTED: self._theme.error,
            StatusManager.STATUS_THINKING: self._theme.accent,
        }.get(status_type, self._theme.warning)
        self.status_label.setText(f"● {text}")
        self.status_label.setToolTip(text)
        self.status_label.setStyleSheet(f"color: {color}; font-size: 10px;")

    def _show_notification(self, message: str, level: str):
        self._notification_manager.show(message, level)

    def _update_timer(self):
        self.session_label.setText(format_duration(datetime.now() - self._session_start))
        self._refresh_service_indicators()

    def _open_url(self, url: str):
        QDesktopServices.openUrl(QUrl(url))

    def _show_about(self):
        QMessageBox.about(
            self,
            f"About {config.PROJECT_NAME}",
            f"{config.PROJECT_NAME} v{config.VERSION}\n\n"
            "Chat with local AI backends (Ollama, Llama.cpp, Coqui-TTS) "
            "from a small always-on-top window."
        )

    def _show_shortcuts(self):
        lines = [
            "Enter: Send message",
            "Shift+Enter: New line",
            "Ctrl+K: Clear chat",
            "Ctrl+E: Export chat",
            "Ctrl+M: Minimize to bar",
            "Ctrl+T: Toggle always on top",
            "Ctrl+,: Preferences",
            "Ctrl+0 / Ctrl+= / Ctrl+-: Font size",
            "Ctrl+Q: Quit",
        ]
        lines += [
            f"{key}: {description}"
            for key, description in self._shortcut_manager.descriptions.items()
        ]
        QMessageBox.information(self, "Keyboard Shortcuts", "\n".join(lines))

    def closeEvent(self, event):
        """Handle window close."""
        self._persist_history()
        self.service_poll.stop()
        self._supervisor.shutdown_all()
        event.accept()


# Global GUI instance
_gui: Optional[ChatWindow] = None


def get_gui() -> ChatWindow:
    """Get the global GUI instance."""
    global _gui
    if _gui is None:
        raise RuntimeError("GUI not initialized. Call init_gui() first.")
    return _gui


def init_gui(supervisor: ServiceSupervisor) -> ChatWindow:
    """Initialize the global GUI instance."""
    global _gui
    _gui = ChatWindow(supervisor)
    return _gui


def run_gui(enable_http: bool = config.HTTP_ENABLED) -> int:
    """Run the GUI application (blocking)."""
    config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    config.DATA_DIR.mkdir(parents=True, exist_ok=True)

    app = QApplication(sys.argv)
    app.setStyle("Fusion")
    app.setApplicationName(config.PROJECT_NAME)

    # The grace-period wait must not freeze the window
    supervisor = init_service_supervisor(wait=cooperative_wait)

    window = init_gui(supervisor)
    window.window_controller.initialize()

    if enable_http:
        from interface.http_api import init_http_server
        dispatcher = MainThreadDispatcher(timeout=config.HTTP_DISPATCH_TIMEOUT)
        window.http_dispatcher = dispatcher
        init_http_server(window.bridge, dispatcher.dispatch).start()

    log_info("GUI ready", prefix="🖥️")

    exit_code = app.exec_()

    # Cleanup
    log_info("Shutting down...", prefix="👋")
    supervisor.shutdown_all()
    try:
        shutdown_tts()
    except Exception as e:
        log_warning(f"TTS shutdown error: {e}")

    return exit_code


if __name__ == "__main__":
    sys.exit(run_gui())

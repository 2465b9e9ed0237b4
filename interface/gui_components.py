"""
AI Chat Overlay - GUI Components
Reusable widgets and utilities for the overlay window.

Components:
- Theme / build_stylesheet: Dark overlay palette and Qt stylesheet
- MessageRenderer: Chat message to HTML conversion
- NotificationManager: Toast notifications
- KeyboardShortcutManager: Window-wide shortcuts
- StatusManager: Connection status for the status bar
- DraggableHeader: Header bar that moves a frameless window
- MainThreadDispatcher / cooperative_wait: Threading helpers for the GUI thread
"""

import re
import html
from concurrent.futures import Future
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass

from PyQt5.QtWidgets import (
    QWidget, QHBoxLayout, QLabel, QFrame, QGraphicsOpacityEffect, QShortcut
)
from PyQt5.QtCore import (
    Qt, QTimer, QEventLoop, QPropertyAnimation, QPoint, pyqtSignal, QObject, QThread
)
from PyQt5.QtGui import QKeySequence


# =============================================================================
# THEME
# =============================================================================

@dataclass
class Theme:
    """Color theme definition."""
    name: str
    background: str
    surface: str
    header: str
    primary: str
    accent: str
    text: str
    text_dim: str
    user_bubble: str
    system: str
    timestamp: str
    code_bg: str
    border: str
    success: str
    warning: str
    error: str


OVERLAY_THEME = Theme(
    name="overlay",
    background="#1e1f24",
    surface="#272930",
    header="#16171b",
    primary="#3a3d46",
    accent="#6c9ef8",
    text="#e6e7ea",
    text_dim="#9a9ca5",
    user_bubble="#2f4f86",
    system="#d4a574",
    timestamp="#7a7d86",
    code_bg="#15161a",
    border="#3a3d46",
    success="#5bb98c",
    warning="#d4a574",
    error="#e07a6b",
)

UI_FONT_STACK = "'Segoe UI', 'Helvetica Neue', 'Arial', sans-serif"


def build_stylesheet(theme: Theme, font_size: int = 13, compact: bool = False) -> str:
    """Generate the window stylesheet."""
    t = theme
    padding = "4px 8px" if compact else "6px 12px"
    return f"""
        QMainWindow, QWidget#central {{
            background-color: {t.background};
            font-family: {UI_FONT_STACK};
        }}
        QFrame#header {{
            background-color: {t.header};
            border: none;
            border-bottom: 1px solid {t.border};
        }}
        QFrame#settingsPanel {{
            background-color: {t.surface};
            border: 1px solid {t.border};
            border-radius: 8px;
        }}
        QTextBrowser {{
            background-color: {t.background};
            color: {t.text};
            border: none;
            padding: {"6px" if compact else "12px"};
            font-size: {font_size}px;
            font-family: {UI_FONT_STACK};
        }}
        QTextEdit, QLineEdit {{
            background-color: {t.surface};
            color: {t.text};
            border: 1px solid {t.border};
            border-radius: 10px;
            padding: {padding};
            font-size: {font_size}px;
            font-family: {UI_FONT_STACK};
        }}
        QTextEdit:focus, QLineEdit:focus {{
            border: 1px solid {t.accent};
        }}
        QTextEdit:disabled, QLineEdit:disabled {{
            color: {t.text_dim};
        }}
        QPushButton {{
            background-color: {t.primary};
            color: {t.text};
            border: none;
            border-radius: 10px;
            padding: {padding};
            font-family: {UI_FONT_STACK};
        }}
        QPushButton:hover {{
            background-color: {t.accent};
            color: {t.background};
        }}
        QPushButton:checked {{
            background-color: {t.accent};
            color: {t.background};
        }}
        QPushButton:disabled {{
            background-color: {t.surface};
            color: {t.text_dim};
        }}
        QLabel {{
            color: {t.text};
            background: transparent;
            border: none;
            font-family: {UI_FONT_STACK};
        }}
        QComboBox {{
            background-color: {t.surface};
            color: {t.text};
            border: 1px solid {t.border};
            border-radius: 8px;
            padding: 2px 8px;
            font-family: {UI_FONT_STACK};
        }}
        QComboBox QAbstractItemView {{
            background-color: {t.surface};
            color: {t.text};
            selection-background-color: {t.primary};
        }}
        QCheckBox {{
            color: {t.text};
            spacing: 6px;
        }}
        QScrollBar:vertical {{
            background-color: transparent;
            width: 8px;
        }}
        QScrollBar::handle:vertical {{
            background-color: {t.border};
            border-radius: 4px;
            min-height: 20px;
        }}
        QScrollBar::add-line:vertical, QScrollBar::sub-line:vertical {{
            height: 0px;
        }}
        QMenuBar {{
            background-color: {t.header};
            color: {t.text};
        }}
        QMenuBar::item:selected, QMenu::item:selected {{
            background-color: {t.primary};
        }}
        QMenu {{
            background-color: {t.surface};
            color: {t.text};
            border: 1px solid {t.border};
        }}
    """


# =============================================================================
# MESSAGE RENDERER
# =============================================================================

class MessageRenderer:
    """Converts chat messages to HTML for QTextBrowser display."""

    def __init__(self, theme: Theme):
        self.theme = theme

    def render_content(self, text: str, role: str) -> str:
        """
        Escape message text and apply light markdown to assistant replies.

        Supports (assistant only):
        - Code blocks (```language ... ```)
        - Inline code (`code`)
        - Bold (**bold**)
        """
        result = html.escape(text)

        if role == "assistant":
            result = self._render_code_blocks(result)
            result = self._render_inline_code(result)
            result = re.sub(r'\*\*([^*]+)\*\*', r'<b>\1</b>', result)

        result = re.sub(r'\n{3,}', '\n\n', result)
        return result.replace('\n', '<br/>')

    def render(self, role: str, content: str, timestamp: str = "", show_timestamp: bool = True) -> str:
        """
        Build the HTML block for one message.

        Qt's QTextBrowser ignores background-color on divs, so bubbles are
        table cells with bgcolor.
        """
        t = self.theme
        body = self.render_content(content, role)
        stamp = ""
        if show_timestamp and timestamp:
            stamp = '<br/><span style="color: ' + t.timestamp + '; font-size: 10px;">' + html.escape(timestamp) + '</span>'

        if role == "user":
            return (
                '<table width="100%" cellspacing="0" cellpadding="0"><tr>'
                '<td width="50"></td>'
                '<td bgcolor="' + t.user_bubble + '" style="padding: 10px 14px;">'
                '<span style="color: ' + t.text + ';">' + body + '</span>' + stamp +
                '</td>'
                '</tr></table>'
            )
        if role == "assistant":
            return (
                '<table width="100%" cellspacing="0" cellpadding="0"><tr>'
                '<td bgcolor="' + t.surface + '" style="padding: 10px 14px;">'
                '<span style="color: ' + t.text + ';">' + body + '</span>' + stamp +
                '</td>'
                '<td width="30"></td>'
                '</tr></table>'
            )
        return (
            '<table width="100%" cellspacing="0" cellpadding="0"><tr>'
            '<td width="3" bgcolor="' + t.system + '"></td>'
            '<td style="padding: 6px 12px;">'
            '<span style="color: ' + t.system + '; font-size: 11px;">' + body + '</span>'
            '</td>'
            '</tr></table>'
        )

    def _render_code_blocks(self, text: str) -> str:
        pattern = r'```(\w*)\n(.*?)```'
        style = (
            f"background-color: {self.theme.code_bg}; "
            "padding: 10px 12px; "
            "font-family: 'Consolas', 'Monaco', 'Courier New', monospace; "
            "white-space: pre-wrap;"
        )

        def replace_block(match):
            return f'<pre style="{style}">{match.group(2).rstrip()}</pre>'

        return re.sub(pattern, replace_block, text, flags=re.DOTALL)

    def _render_inline_code(self, text: str) -> str:
        style = (
            f"background-color: {self.theme.code_bg}; "
            "font-family: 'Consolas', 'Monaco', 'Courier New', monospace;"
        )
        return re.sub(r'`([^`\n]+)`', rf'<span style="{style}">\1</span>', text)


# =============================================================================
# NOTIFICATION SYSTEM
# =============================================================================

class NotificationToast(QFrame):
    """A single toast notification."""

    closed = pyqtSignal()

    def __init__(self, message: str, level: str, theme: Theme, duration: int = 3000, parent=None):
        super().__init__(parent)
        self.theme = theme
        self.duration = duration

        self._setup_ui(message, level)
        self._setup_animation()

    def _setup_ui(self, message: str, level: str):
        self.setWindowFlags(Qt.FramelessWindowHint | Qt.Tool | Qt.WindowStaysOnTopHint)
        self.setAttribute(Qt.WA_ShowWithoutActivating)
        self.setMinimumWidth(220)
        self.setMaximumWidth(360)

        color, icon = {
            "success": (self.theme.success, "✓"),
            "warning": (self.theme.warning, "⚠"),
            "error": (self.theme.error, "✕"),
        }.get(level, (self.theme.text, "ℹ"))

        layout = QHBoxLayout(self)
        layout.setContentsMargins(12, 8, 12, 8)

        icon_label = QLabel(icon)
        icon_label.setStyleSheet(f"color: {color}; font-size: 14px;")
        layout.addWidget(icon_label)

        msg_label = QLabel(message)
        msg_label.setWordWrap(True)
        msg_label.setStyleSheet(f"color: {self.theme.text};")
        layout.addWidget(msg_label, stretch=1)

        self.setStyleSheet(f"""
            QFrame {{
                background-color: {self.theme.surface};
                border: 1px solid {color};
                border-radius: 8px;
            }}
        """)

    def _setup_animation(self):
        """Setup fade in/out animations."""
        self.opacity_effect = QGraphicsOpacityEffect(self)
        self.setGraphicsEffect(self.opacity_effect)

        self.fade_in = QPropertyAnimation(self.opacity_effect, b"opacity")
        self.fade_in.setDuration(200)
        self.fade_in.setStartValue(0)
        self.fade_in.setEndValue(1)

        self.fade_out = QPropertyAnimation(self.opacity_effect, b"opacity")
        self.fade_out.setDuration(200)
        self.fade_out.setStartValue(1)
        self.fade_out.setEndValue(0)
        self.fade_out.finished.connect(self._on_fade_out_done)

        self.close_timer = QTimer(self)
        self.close_timer.setSingleShot(True)
        self.close_timer.timeout.connect(self.fade_out.start)

    def show_notification(self):
        self.show()
        self.fade_in.start()
        self.close_timer.start(self.duration)

    def _on_fade_out_done(self):
        self.closed.emit()
        self.deleteLater()


class NotificationManager(QObject):
    """Manages toast notifications."""

    def __init__(self, parent_widget: QWidget, theme: Theme = OVERLAY_THEME):
        super().__init__()
        self.parent_widget = parent_widget
        self.theme = theme
        self.active_toasts: List[NotificationToast] = []
        self.toast_spacing = 8
        self.margin_right = 12
        self.margin_top = 56

    def show(self, message: str, level: str = "info", duration: int = 3000):
        """Show a toast notification."""
        toast = NotificationToast(message, level, self.theme, duration, self.parent_widget)
        toast.closed.connect(lambda: self._on_toast_closed(toast))

        self.active_toasts.append(toast)
        self._position_toasts()
        toast.show_notification()

    def _on_toast_closed(self, toast: NotificationToast):
        if toast in self.active_toasts:
            self.active_toasts.remove(toast)
            self._position_toasts()

    def _position_toasts(self):
        """Stack active toasts under the header, right-aligned."""
        if not self.parent_widget:
            return

        parent_rect = self.parent_widget.rect()
        global_pos = self.parent_widget.mapToGlobal(parent_rect.topLeft())
        y = self.margin_top

        for toast in self.active_toasts:
            toast.adjustSize()
            x = parent_rect.width() - toast.width() - self.margin_right
            toast.move(global_pos.x() + x, global_pos.y() + y)
            y += toast.height() + self.toast_spacing

    def success(self, message: str, duration: int = 3000):
        self.show(message, "success", duration)

    def warning(self, message: str, duration: int = 3000):
        self.show(message, "warning", duration)

    def error(self, message: str, duration: int = 4000):
        self.show(message, "error", duration)

    def info(self, message: str, duration: int = 3000):
        self.show(message, "info", duration)


# =============================================================================
# KEYBOARD SHORTCUT MANAGER
# =============================================================================

class KeyboardShortcutManager:
    """Manages keyboard shortcuts that are not attached to a menu action."""

    def __init__(self, parent: QWidget):
        self.parent = parent
        self.shortcuts: Dict[str, QShortcut] = {}
        self.descriptions: Dict[str, str] = {}

    def register(self, key_sequence: str, callback: Callable, description: str = ""):
        """Register a keyboard shortcut."""
        shortcut = QShortcut(QKeySequence(key_sequence), self.parent)
        shortcut.activated.connect(callback)
        self.shortcuts[key_sequence] = shortcut
        self.descriptions[key_sequence] = description
        return shortcut


# =============================================================================
# STATUS MANAGER
# =============================================================================

class StatusManager(QObject):
    """Tracks backend connection state for the status bar."""

    status_changed = pyqtSignal(str, str)  # status text, status type

    STATUS_CONNECTED = "connected"
    STATUS_CONNECTING = "connecting"
    STATUS_DISCONNECTED = "disconnected"
    STATUS_THINKING = "thinking"
    STATUS_ERROR = "error"

    def __init__(self):
        super().__init__()
        self._current_type = self.STATUS_DISCONNECTED

    def set_connected(self, detail: str = ""):
        self._update(detail or "Connected", self.STATUS_CONNECTED)

    def set_connecting(self):
        self._update("Connecting...", self.STATUS_CONNECTING)

    def set_disconnected(self, detail: str = ""):
        self._update(detail or "Disconnected", self.STATUS_DISCONNECTED)

    def set_thinking(self):
        self._update("Thinking...", self.STATUS_THINKING)

    def set_error(self, message: str):
        self._update(f"Error: {message}", self.STATUS_ERROR)

    def _update(self, text: str, status_type: str):
        self._current_type = status_type
        self.status_changed.emit(text, status_type)

    @property
    def current_type(self) -> str:
        return self._current_type


# =============================================================================
# DRAGGABLE HEADER
# =============================================================================

class DraggableHeader(QFrame):
    """Header frame that drags its top-level window (used when frameless)."""

    double_clicked = pyqtSignal()

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setObjectName("header")
        self._drag_offset: Optional[QPoint] = None

    def mousePressEvent(self, event):
        if event.button() == Qt.LeftButton:
            self._drag_offset = event.globalPos() - self.window().frameGeometry().topLeft()
            event.accept()
        else:
            super().mousePressEvent(event)

    def mouseMoveEvent(self, event):
        if self._drag_offset is not None and event.buttons() & Qt.LeftButton:
            self.window().move(event.globalPos() - self._drag_offset)
            event.accept()
        else:
            super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event):
        self._drag_offset = None
        super().mouseReleaseEvent(event)

    def mouseDoubleClickEvent(self, event):
        self.double_clicked.emit()
        super().mouseDoubleClickEvent(event)


# =============================================================================
# THREADING HELPERS
# =============================================================================

def cooperative_wait(seconds: float) -> None:
    """
    Wait without freezing the GUI.

    Runs a nested event loop until the timeout, so paints, timers and
    queued signals keep being processed while the caller is suspended.
    """
    loop = QEventLoop()
    QTimer.singleShot(int(seconds * 1000), loop.quit)
    loop.exec_()


class MainThreadDispatcher(QObject):
    """
    Runs callables on the thread that owns this object (the GUI thread).

    Worker threads call dispatch(); the call is delivered through a queued
    signal and the worker blocks on a Future for the result.
    """

    _call_requested = pyqtSignal(object, object)  # callable, Future

    def __init__(self, timeout: float = 15.0):
        super().__init__()
        self.timeout = timeout
        self._call_requested.connect(self._run, Qt.QueuedConnection)

    def dispatch(self, func: Callable[[], Any]) -> Any:
        """Run `func` on the GUI thread and return its result (or raise its exception)."""
        if QThread.currentThread() is self.thread():
            return func()
        future: Future = Future()
        self._call_requested.emit(func, future)
        return future.result(timeout=self.timeout)

    def _run(self, func: Callable[[], Any], future: Future):
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(func())
        except Exception as e:
            future.set_exception(e)


def format_duration(td: timedelta) -> str:
    """Format a timedelta as H:MM:SS (or M:SS under an hour)."""
    total_seconds = max(0, int(td.total_seconds()))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"

"""
AI Chat Overlay - Qt Window Surface
Applies WindowController states to a live QMainWindow.
"""

from typing import Optional

from PyQt5.QtWidgets import QMainWindow, QWidget
from PyQt5.QtCore import Qt, QSize

from core.logger import log_debug
from interface.window_controller import Bounds, DisplayMode, WindowState

# Qt's QWIDGETSIZE_MAX
QWIDGETSIZE_MAX = (1 << 24) - 1


class QtWindowSurface:
    """
    WindowSurface backed by a QMainWindow.

    Qt can toggle the frame of a live window by changing its flags, so
    every state is applied in place. Changing flags hides the window; it
    is shown again at the end of apply().
    """

    def __init__(
        self,
        window: QMainWindow,
        body: Optional[QWidget] = None,
        minimum_size: QSize = QSize(315, 200)
    ):
        """
        Args:
            window: The overlay's main window
            body: Everything below the header (hidden while in accordion)
            minimum_size: Smallest size the user may drag a resizable window to
        """
        self.window = window
        self.body = body
        self.minimum_size = minimum_size

    def bounds(self) -> Bounds:
        geometry = self.window.geometry()
        return Bounds(geometry.x(), geometry.y(), geometry.width(), geometry.height())

    def apply(self, state: WindowState) -> None:
        window = self.window

        flags = window.windowFlags()
        flags = self._set(flags, Qt.FramelessWindowHint, not state.frame_visible)
        flags = self._set(flags, Qt.WindowMinimizeButtonHint, state.minimizable)
        flags = self._set(flags, Qt.WindowStaysOnTopHint, state.always_on_top)
        if flags != window.windowFlags():
            window.setWindowFlags(flags)

        if self.body is not None:
            self.body.setVisible(state.display_mode is not DisplayMode.ACCORDION)
        window.menuBar().setVisible(state.menu_visible)

        b = state.bounds
        if state.resizable:
            window.setMinimumSize(self.minimum_size)
            window.setMaximumSize(QWIDGETSIZE_MAX, QWIDGETSIZE_MAX)
        else:
            window.setFixedSize(b.width, b.height)
        window.setGeometry(b.x, b.y, b.width, b.height)

        # setWindowFlags() hides the window
        window.show()
        if state.always_on_top and state.stay_above_fullscreen:
            window.raise_()

        log_debug(
            f"Window applied: mode={state.display_mode.value} frame={state.frame_visible} "
            f"on_top={state.always_on_top} bounds=({b.x}, {b.y}, {b.width}, {b.height})"
        )

    @staticmethod
    def _set(flags, flag, enabled: bool):
        return flags | flag if enabled else flags & ~flag

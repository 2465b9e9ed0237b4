"""
AI Chat Overlay - Overlay Window Controller
Display-mode state machine for the single overlay window.

The controller never touches a toolkit directly. It computes the complete
target WindowState for a transition and hands it to a WindowSurface in one
apply() call, so bounds and chrome always change together.
"""

from enum import Enum
from dataclasses import dataclass, replace
from typing import Optional, Protocol, Union

from core.errors import TransitionError
from core.logger import log_info, log_error, log_debug


class DisplayMode(Enum):
    """Window display modes."""
    NORMAL = "normal"
    ACCORDION = "accordion"
    WINDOWLESS = "windowless"

    @classmethod
    def parse(cls, value: Union["DisplayMode", str]) -> "DisplayMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise TransitionError(f"Unknown display mode: {value}") from None


@dataclass(frozen=True)
class Bounds:
    """Window position and size in screen pixels."""
    x: int
    y: int
    width: int
    height: int

    def with_size(self, width: int, height: int) -> "Bounds":
        return Bounds(self.x, self.y, width, height)


@dataclass(frozen=True)
class WindowState:
    """Everything about the window's geometry and chrome."""
    bounds: Bounds
    frame_visible: bool = True
    menu_visible: bool = True
    resizable: bool = True
    minimizable: bool = True
    always_on_top: bool = True
    # Keep the window above full-screen applications too
    stay_above_fullscreen: bool = True
    display_mode: DisplayMode = DisplayMode.NORMAL


class WindowSurface(Protocol):
    """Toolkit adapter the controller drives."""

    def bounds(self) -> Bounds:
        """Current on-screen bounds (the user may have moved the window)."""
        ...

    def apply(self, state: WindowState) -> None:
        """Make the real window match `state`. Raise on failure."""
        ...


class WindowController:
    """
    Owns the overlay's WindowState and performs display-mode transitions.

    Normal is the hub: moving between Accordion and Windowless passes
    through Normal, and a failed second leg rolls back to where it began.
    """

    def __init__(
        self,
        surface: WindowSurface,
        initial_bounds: Bounds,
        accordion_width: int = 315,
        accordion_height: int = 48,
        always_on_top: bool = True
    ):
        self._surface = surface
        self.accordion_width = accordion_width
        self.accordion_height = accordion_height
        self.default_width = initial_bounds.width
        self.default_height = initial_bounds.height

        self._state = WindowState(bounds=initial_bounds, always_on_top=always_on_top)
        # Size captured on entering accordion, restored on leaving it
        self._saved_size: Optional[tuple] = None

    @property
    def state(self) -> WindowState:
        return self._state

    @property
    def display_mode(self) -> DisplayMode:
        return self._state.display_mode

    @property
    def always_on_top(self) -> bool:
        return self._state.always_on_top

    def initialize(self) -> None:
        """Push the initial state to the surface."""
        self._surface.apply(self._state)

    def set_display_mode(self, mode: Union[DisplayMode, str]) -> bool:
        """
        Move the window into `mode`.

        Args:
            mode: Target DisplayMode or its string value

        Returns:
            True if the window is now in `mode`, False if the transition failed
            (the window is left in its previous mode)
        """
        try:
            target = DisplayMode.parse(mode)
        except TransitionError as e:
            log_error(str(e))
            return False

        current = self._state.display_mode
        if target is current:
            return True

        start_state = self._state
        start_saved_size = self._saved_size

        try:
            if current is not DisplayMode.NORMAL and target is not DisplayMode.NORMAL:
                self._transition(DisplayMode.NORMAL)
            self._transition(target)
        except Exception as e:
            log_error(f"Display mode change {current.value} -> {target.value} failed: {e}")
            self._rollback(start_state, start_saved_size)
            return False

        log_info(f"Display mode: {target.value}", prefix="🪟")
        return True

    def toggle_always_on_top(self) -> bool:
        """
        Flip the always-on-top flag.

        Returns:
            The new always-on-top state (unchanged if the surface refused)
        """
        previous = self._state
        new_state = replace(
            previous,
            bounds=self._current_bounds(),
            always_on_top=not previous.always_on_top
        )
        try:
            self._surface.apply(new_state)
        except Exception as e:
            log_error(f"Could not change always-on-top: {e}")
            self._rollback(previous, self._saved_size)
            return self._state.always_on_top

        self._state = new_state
        log_info(f"Always on top: {'on' if new_state.always_on_top else 'off'}", prefix="📌")
        return new_state.always_on_top

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def _transition(self, target: DisplayMode) -> None:
        """One leg: from the current mode to `target`, where one of the two is Normal."""
        current = self._state.display_mode
        bounds = self._current_bounds()

        if target is DisplayMode.ACCORDION:
            self._saved_size = (bounds.width, bounds.height)
            new_state = self._chrome(
                bounds.with_size(self.accordion_width, self.accordion_height),
                framed=False,
                mode=DisplayMode.ACCORDION
            )
        elif target is DisplayMode.WINDOWLESS:
            new_state = self._chrome(bounds, framed=False, mode=DisplayMode.WINDOWLESS)
        else:
            if current is DisplayMode.ACCORDION:
                width, height = self._saved_size or (self.default_width, self.default_height)
                bounds = bounds.with_size(width, height)
            new_state = self._chrome(bounds, framed=True, mode=DisplayMode.NORMAL)

        log_debug(f"Window transition {current.value} -> {target.value}: {new_state.bounds}")
        self._surface.apply(new_state)
        self._state = new_state
        if target is DisplayMode.NORMAL:
            self._saved_size = None

    def _chrome(self, bounds: Bounds, framed: bool, mode: DisplayMode) -> WindowState:
        """Full target state for a mode. Every transition re-pins the window on top."""
        resizable = mode is not DisplayMode.ACCORDION
        return WindowState(
            bounds=bounds,
            frame_visible=framed,
            menu_visible=framed,
            resizable=resizable,
            minimizable=framed,
            always_on_top=True,
            stay_above_fullscreen=True,
            display_mode=mode
        )

    def _current_bounds(self) -> Bounds:
        """Live bounds from the surface, falling back to the last applied ones."""
        try:
            return self._surface.bounds()
        except Exception as e:
            log_debug(f"Could not read window bounds: {e}")
            return self._state.bounds

    def _rollback(self, state: WindowState, saved_size: Optional[tuple]) -> None:
        """Best-effort restore of a previous state after a failed apply."""
        self._state = state
        self._saved_size = saved_size
        try:
            self._surface.apply(state)
        except Exception as e:
            log_error(f"Could not restore window state: {e}")


# Global controller instance
_controller: Optional[WindowController] = None


def get_window_controller() -> Optional[WindowController]:
    """Get the global window controller (None until the GUI creates it)."""
    return _controller


def init_window_controller(surface: WindowSurface) -> WindowController:
    """
    Initialize the global window controller for a surface.

    Args:
        surface: Adapter around the overlay's main window
    """
    global _controller
    from config import (
        ACCORDION_HEIGHT, ACCORDION_WIDTH, WINDOW_DEFAULT_HEIGHT,
        WINDOW_DEFAULT_WIDTH, WINDOW_DEFAULT_X, WINDOW_DEFAULT_Y
    )
    _controller = WindowController(
        surface,
        Bounds(WINDOW_DEFAULT_X, WINDOW_DEFAULT_Y, WINDOW_DEFAULT_WIDTH, WINDOW_DEFAULT_HEIGHT),
        accordion_width=ACCORDION_WIDTH,
        accordion_height=ACCORDION_HEIGHT
    )
    return _controller

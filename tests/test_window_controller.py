"""
Tests for the overlay window display-mode state machine.

The controller is driven against a FakeSurface that records every applied
WindowState and can be told to fail on a given apply() call.
"""

import unittest

from interface.window_controller import (
    Bounds, DisplayMode, WindowController, WindowState
)


class FakeSurface:
    """Records applied states; bounds() reports the last one (or a user move)."""

    def __init__(self, bounds):
        self.current = bounds
        self.applied = []
        self.fail_on_call = None

    def bounds(self):
        return self.current

    def apply(self, state):
        self.applied.append(state)
        if self.fail_on_call is not None and len(self.applied) == self.fail_on_call:
            raise RuntimeError("window manager refused")
        self.current = state.bounds

    def move_to(self, x, y):
        self.current = Bounds(x, y, self.current.width, self.current.height)


class WindowControllerTestCase(unittest.TestCase):

    def setUp(self):
        self.initial = Bounds(50, 50, 430, 650)
        self.surface = FakeSurface(self.initial)
        self.controller = WindowController(self.surface, self.initial)
        self.controller.initialize()


class TestAccordion(WindowControllerTestCase):

    def test_initial_state(self):
        state = self.controller.state
        self.assertEqual(state.display_mode, DisplayMode.NORMAL)
        self.assertTrue(state.frame_visible)
        self.assertTrue(state.always_on_top)
        self.assertTrue(state.stay_above_fullscreen)
        self.assertEqual(self.surface.applied[-1], state)

    def test_accordion_round_trip(self):
        """Collapse to the accordion strip and restore the exact previous size."""
        self.assertTrue(self.controller.set_display_mode("accordion"))
        state = self.controller.state
        self.assertEqual(state.bounds, Bounds(50, 50, 315, 48))
        self.assertFalse(state.frame_visible)
        self.assertFalse(state.menu_visible)
        self.assertFalse(state.resizable)

        self.assertTrue(self.controller.set_display_mode("normal"))
        state = self.controller.state
        self.assertEqual(state.bounds, Bounds(50, 50, 430, 650))
        self.assertTrue(state.frame_visible)
        self.assertTrue(state.menu_visible)
        self.assertTrue(state.resizable)

    def test_restore_keeps_current_position(self):
        """A strip dragged elsewhere expands where it now sits."""
        self.controller.set_display_mode(DisplayMode.ACCORDION)
        self.surface.move_to(300, 20)
        self.controller.set_display_mode(DisplayMode.NORMAL)

        self.assertEqual(self.controller.state.bounds, Bounds(300, 20, 430, 650))

    def test_restore_uses_size_at_collapse_time(self):
        self.surface.current = Bounds(50, 50, 600, 800)
        self.controller.set_display_mode("accordion")
        self.controller.set_display_mode("normal")

        self.assertEqual(self.controller.state.bounds, Bounds(50, 50, 600, 800))


class TestWindowless(WindowControllerTestCase):

    def test_windowless_keeps_bounds(self):
        self.assertTrue(self.controller.set_display_mode("windowless"))
        state = self.controller.state
        self.assertEqual(state.bounds, self.initial)
        self.assertFalse(state.frame_visible)
        self.assertFalse(state.menu_visible)
        self.assertFalse(state.minimizable)
        self.assertTrue(state.resizable)
        self.assertTrue(state.always_on_top)

        self.assertTrue(self.controller.set_display_mode("normal"))
        state = self.controller.state
        self.assertTrue(state.frame_visible)
        self.assertTrue(state.menu_visible)
        self.assertTrue(state.minimizable)
        self.assertEqual(state.bounds, self.initial)

    def test_accordion_to_windowless_passes_through_normal(self):
        self.controller.set_display_mode("accordion")
        before = len(self.surface.applied)

        self.assertTrue(self.controller.set_display_mode("windowless"))

        legs = self.surface.applied[before:]
        self.assertEqual(
            [s.display_mode for s in legs],
            [DisplayMode.NORMAL, DisplayMode.WINDOWLESS]
        )
        self.assertEqual(self.controller.state.bounds, self.initial)

    def test_windowless_to_accordion_passes_through_normal(self):
        self.controller.set_display_mode("windowless")
        before = len(self.surface.applied)

        self.assertTrue(self.controller.set_display_mode("accordion"))

        legs = self.surface.applied[before:]
        self.assertEqual(
            [s.display_mode for s in legs],
            [DisplayMode.NORMAL, DisplayMode.ACCORDION]
        )
        self.assertEqual(self.controller.state.bounds, Bounds(50, 50, 315, 48))


class TestTransitionEdges(WindowControllerTestCase):

    def test_same_mode_is_noop(self):
        before = len(self.surface.applied)
        self.assertTrue(self.controller.set_display_mode("normal"))
        self.assertEqual(len(self.surface.applied), before)

    def test_unknown_mode(self):
        self.assertFalse(self.controller.set_display_mode("fullscreen"))
        self.assertEqual(self.controller.display_mode, DisplayMode.NORMAL)

    def test_failed_second_leg_rolls_back(self):
        """Accordion -> windowless failing on the windowless leg ends in accordion."""
        self.controller.set_display_mode("accordion")
        accordion_state = self.controller.state
        self.surface.fail_on_call = len(self.surface.applied) + 2

        self.assertFalse(self.controller.set_display_mode("windowless"))

        self.assertEqual(self.controller.state, accordion_state)
        self.assertEqual(self.surface.applied[-1], accordion_state)

        # The saved size survives the rollback
        self.assertTrue(self.controller.set_display_mode("normal"))
        self.assertEqual(self.controller.state.bounds, self.initial)

    def test_failed_single_leg_rolls_back(self):
        normal_state = self.controller.state
        self.surface.fail_on_call = len(self.surface.applied) + 1

        self.assertFalse(self.controller.set_display_mode("accordion"))

        self.assertEqual(self.controller.state, normal_state)
        self.assertEqual(self.controller.display_mode, DisplayMode.NORMAL)


class TestAlwaysOnTop(WindowControllerTestCase):

    def test_toggle(self):
        self.assertFalse(self.controller.toggle_always_on_top())
        self.assertFalse(self.surface.applied[-1].always_on_top)
        self.assertTrue(self.controller.toggle_always_on_top())
        self.assertTrue(self.controller.always_on_top)

    def test_mode_change_repins_window(self):
        """Unpinning lasts only until the next display mode change."""
        for mode in ("windowless", "accordion", "normal"):
            self.assertFalse(self.controller.toggle_always_on_top())
            self.assertTrue(self.controller.set_display_mode(mode))
            self.assertTrue(self.controller.always_on_top)
            self.assertTrue(self.surface.applied[-1].always_on_top)
            self.assertTrue(self.surface.applied[-1].stay_above_fullscreen)

    def test_toggle_failure_keeps_flag(self):
        self.surface.fail_on_call = len(self.surface.applied) + 1
        self.assertTrue(self.controller.toggle_always_on_top())
        self.assertTrue(self.controller.always_on_top)

    def test_toggle_keeps_mode_and_bounds(self):
        self.controller.set_display_mode("accordion")
        self.controller.toggle_always_on_top()
        state = self.controller.state
        self.assertEqual(state.display_mode, DisplayMode.ACCORDION)
        self.assertEqual(state.bounds, Bounds(50, 50, 315, 48))


class TestWindowState(unittest.TestCase):

    def test_defaults(self):
        state = WindowState(bounds=Bounds(0, 0, 10, 10))
        self.assertEqual(state.display_mode, DisplayMode.NORMAL)
        self.assertTrue(state.always_on_top)
        self.assertEqual(Bounds(1, 2, 3, 4).with_size(5, 6), Bounds(1, 2, 5, 6))


if __name__ == '__main__':
    unittest.main()

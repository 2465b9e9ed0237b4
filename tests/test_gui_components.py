"""
Tests for the Qt-side helpers: message rendering and the window surface.

Runs on the offscreen Qt platform; skipped when PyQt5 is not installed.
"""

import os
import shutil
import tempfile
import unittest
from datetime import timedelta
from pathlib import Path

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from interface.window_controller import Bounds, DisplayMode, WindowState


class QtTestCase(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        try:
            from PyQt5.QtWidgets import QApplication
            cls.app = QApplication.instance() or QApplication([])
            cls.can_import = True
        except ImportError:
            cls.can_import = False

    def setUp(self):
        if not self.can_import:
            self.skipTest("PyQt5 not available")


class TestMessageRenderer(QtTestCase):

    def setUp(self):
        super().setUp()
        from interface.gui_components import OVERLAY_THEME, MessageRenderer
        self.renderer = MessageRenderer(OVERLAY_THEME)

    def test_user_text_is_escaped_not_formatted(self):
        html_out = self.renderer.render_content("<b>**hi**</b>", "user")
        self.assertIn("&lt;b&gt;", html_out)
        self.assertNotIn("<b>", html_out)

    def test_assistant_markdown(self):
        html_out = self.renderer.render_content("Use `ls` and **care**", "assistant")
        self.assertIn("<b>care</b>", html_out)
        self.assertIn(">ls</span>", html_out)

    def test_code_block(self):
        html_out = self.renderer.render_content("```python\nprint(1)\n```", "assistant")
        self.assertIn("<pre", html_out)
        self.assertIn("print(1)", html_out)

    def test_timestamp_shown_only_when_enabled(self):
        with_stamp = self.renderer.render("user", "hi", "10:42", show_timestamp=True)
        without = self.renderer.render("user", "hi", "10:42", show_timestamp=False)
        self.assertIn("10:42", with_stamp)
        self.assertNotIn("10:42", without)

    def test_format_duration(self):
        from interface.gui_components import format_duration
        self.assertEqual(format_duration(timedelta(seconds=75)), "1:15")
        self.assertEqual(format_duration(timedelta(hours=2, seconds=5)), "2:00:05")


class TestQtWindowSurface(QtTestCase):

    def setUp(self):
        super().setUp()
        from PyQt5.QtWidgets import QLabel, QMainWindow
        from interface.overlay_window import QtWindowSurface
        self.window = QMainWindow()
        self.body = QLabel("body")
        self.window.setCentralWidget(self.body)
        self.surface = QtWindowSurface(self.window, self.body)

    def tearDown(self):
        self.window.close()

    def test_accordion_then_normal(self):
        self.surface.apply(WindowState(
            bounds=Bounds(50, 50, 315, 48),
            frame_visible=False,
            menu_visible=False,
            resizable=False,
            minimizable=False,
            display_mode=DisplayMode.ACCORDION
        ))
        self.assertTrue(self.body.isHidden())
        self.assertEqual((self.window.width(), self.window.height()), (315, 48))

        self.surface.apply(WindowState(bounds=Bounds(50, 50, 430, 650)))
        self.assertFalse(self.body.isHidden())
        self.assertEqual((self.window.width(), self.window.height()), (430, 650))


class TestServiceSettingsGroup(QtTestCase):

    def setUp(self):
        super().setUp()
        from core.user_settings import UserSettingsManager
        from interface.gui import ServiceSettingsGroup
        from subprocess_mgmt.services import ServiceName
        self.tmp = Path(tempfile.mkdtemp())
        settings = UserSettingsManager(self.tmp / "user_settings.json")
        self.group = ServiceSettingsGroup(ServiceName.LLAMACPP, settings)

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_running_shows_detail_and_enables_stop(self):
        self.group.set_status("Running", "PID 4242, up 1:15")
        self.assertEqual(self.group.status_label.text(), "● Running")
        self.assertEqual(self.group.status_label.toolTip(), "PID 4242, up 1:15")
        self.assertTrue(self.group.stop_btn.isEnabled())

    def test_stopped_clears_detail(self):
        self.group.set_status("Running", "PID 4242, up 1:15")
        self.group.set_status("Stopped")
        self.assertEqual(self.group.status_label.toolTip(), "")
        self.assertFalse(self.group.stop_btn.isEnabled())

    def test_busy_disables_both_buttons(self):
        self.group.set_status("Starting...")
        self.assertFalse(self.group.start_btn.isEnabled())
        self.assertFalse(self.group.stop_btn.isEnabled())


if __name__ == '__main__':
    unittest.main()

"""
Tests for persistent user settings.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

import config
from core.user_settings import ServiceSettings, UserSettingsManager
from subprocess_mgmt.services import ServiceConfig, ServiceName


class TestUserSettings(unittest.TestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.path = self.tmp / "data" / "user_settings.json"

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_defaults_without_file(self):
        manager = UserSettingsManager(self.path)
        self.assertEqual(manager.font_size, 13)
        self.assertEqual(manager.current_backend, ServiceName.OLLAMA)
        self.assertEqual(manager.service("ollama").url, config.OLLAMA_API_URL)
        self.assertEqual(manager.service("llamacpp").port, config.LLAMACPP_DEFAULT_PORT)
        self.assertEqual(manager.chat_history, [])
        self.assertTrue(self.path.parent.exists())

    def test_changes_persist(self):
        manager = UserSettingsManager(self.path)
        manager.update_ui(font_size=16, compact_mode=True)
        manager.current_backend = "llamacpp"
        manager.update_service("llamacpp", model_path="/m.bin", port=8081)
        manager.chat_history = [{"role": "user", "content": "hi", "timestamp": "t"}]

        reloaded = UserSettingsManager(self.path)
        self.assertEqual(reloaded.font_size, 16)
        self.assertTrue(reloaded.ui.compact_mode)
        self.assertEqual(reloaded.current_backend, ServiceName.LLAMACPP)
        self.assertEqual(reloaded.service(ServiceName.LLAMACPP).model_path, "/m.bin")
        self.assertEqual(reloaded.service(ServiceName.LLAMACPP).port, "8081")
        self.assertEqual(reloaded.chat_history[0]["content"], "hi")

        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        self.assertEqual(data["current_backend"], "llamacpp")
        self.assertIn("coqui", data["services"])

    def test_unknown_keys_rejected(self):
        manager = UserSettingsManager(self.path)
        with self.assertRaises(AttributeError):
            manager.update_ui(theme="dark")
        with self.assertRaises(AttributeError):
            manager.update_service("coqui", voice="p225")

    def test_invalid_file_falls_back_to_defaults(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")

        manager = UserSettingsManager(self.path)
        self.assertEqual(manager.font_size, 13)

    def test_bad_backend_value(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({"current_backend": "vllm"}), encoding="utf-8")

        manager = UserSettingsManager(self.path)
        self.assertEqual(manager.current_backend, ServiceName.OLLAMA)

    def test_partial_service_data_keeps_defaults(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(
            json.dumps({"services": {"coqui": {"working_directory": "/opt/tts"}}}),
            encoding="utf-8"
        )

        manager = UserSettingsManager(self.path)
        coqui = manager.service("coqui")
        self.assertEqual(coqui.working_directory, "/opt/tts")
        self.assertEqual(coqui.url, config.COQUI_API_URL)

    def test_get_all_is_a_copy(self):
        manager = UserSettingsManager(self.path)
        snapshot = manager.get_all()
        snapshot.ui.font_size = 30
        snapshot.services[ServiceName.OLLAMA].url = "http://elsewhere"
        self.assertEqual(manager.font_size, 13)
        self.assertEqual(manager.service("ollama").url, config.OLLAMA_API_URL)


class TestServiceSettings(unittest.TestCase):

    def test_to_service_config(self):
        settings = ServiceSettings(url="http://x", model_path="/m.bin", port="8080")
        self.assertEqual(
            settings.to_service_config(),
            ServiceConfig(port="8080", model_path="/m.bin")
        )


if __name__ == '__main__':
    unittest.main()

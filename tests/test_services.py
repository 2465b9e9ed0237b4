"""
Tests for backend service definitions: names, launch config and commands.
"""

import unittest
from unittest.mock import MagicMock, PropertyMock, patch

import psutil

import config
from core.errors import ConfigurationError, UnknownServiceError
from subprocess_mgmt.services import (
    ServiceConfig, ServiceName, build_command, is_process_running
)


def fake_proc(pid, name, status=psutil.STATUS_RUNNING):
    proc = MagicMock()
    proc.info = {"pid": pid, "name": name, "status": status}
    return proc


class TestServiceName(unittest.TestCase):

    def test_parse_wire_names(self):
        self.assertIs(ServiceName.parse("ollama"), ServiceName.OLLAMA)
        self.assertIs(ServiceName.parse(" LlamaCpp "), ServiceName.LLAMACPP)
        self.assertIs(ServiceName.parse(ServiceName.COQUI), ServiceName.COQUI)

    def test_parse_unknown(self):
        with self.assertRaises(UnknownServiceError) as ctx:
            ServiceName.parse("vllm")
        self.assertEqual(str(ctx.exception), "Unknown service type: vllm")

    def test_display_names(self):
        self.assertEqual(ServiceName.LLAMACPP.display_name, "Llama.cpp")
        self.assertEqual(ServiceName.COQUI.display_name, "Coqui-TTS")


class TestServiceConfig(unittest.TestCase):

    def test_from_camel_case(self):
        cfg = ServiceConfig.from_dict({
            "workingDirectory": "/srv/llama",
            "port": 8081,
            "modelPath": " /models/a.gguf ",
            "additionalArgs": "-ngl 20",
        })
        self.assertEqual(cfg.working_directory, "/srv/llama")
        self.assertEqual(cfg.port, "8081")
        self.assertEqual(cfg.model_path, "/models/a.gguf")
        self.assertEqual(cfg.extra_arg_tokens(), ["-ngl", "20"])

    def test_from_snake_case(self):
        cfg = ServiceConfig.from_dict({"model_path": "/m.bin", "extra_args": "--threads 4"})
        self.assertEqual(cfg.model_path, "/m.bin")
        self.assertEqual(cfg.extra_arg_tokens(), ["--threads", "4"])

    def test_blank_values_are_unset(self):
        cfg = ServiceConfig.from_dict({"workingDirectory": "  ", "port": "", "modelPath": None})
        self.assertEqual(cfg, ServiceConfig())
        self.assertEqual(ServiceConfig.from_dict(None), ServiceConfig())
        self.assertEqual(cfg.extra_arg_tokens(), [])


class TestBuildCommand(unittest.TestCase):

    def test_ollama(self):
        self.assertEqual(
            build_command(ServiceName.OLLAMA, ServiceConfig(port="9999")),
            [config.OLLAMA_EXECUTABLE, "serve"]
        )

    def test_llamacpp_default_port(self):
        command = build_command(ServiceName.LLAMACPP, ServiceConfig(model_path="/m.bin"))
        self.assertEqual(command, [
            config.LLAMACPP_SERVER_BINARY, "-m", "/m.bin",
            "--port", config.LLAMACPP_DEFAULT_PORT,
            "--host", config.SERVICE_BIND_HOST,
        ])

    def test_llamacpp_without_model(self):
        with self.assertRaises(ConfigurationError) as ctx:
            build_command(ServiceName.LLAMACPP, ServiceConfig(port="8080"))
        self.assertEqual(str(ctx.exception), "Model path required for Llama.cpp")

    def test_coqui_port_and_args(self):
        command = build_command(
            ServiceName.COQUI, ServiceConfig(port="5010", extra_args="--use_cuda true")
        )
        self.assertEqual(command[0], config.COQUI_PYTHON)
        self.assertEqual(command[command.index("--port") + 1], "5010")
        self.assertEqual(command[-2:], ["--use_cuda", "true"])


class TestProcessProbe(unittest.TestCase):
    """System-wide process-name probe."""

    @patch("subprocess_mgmt.services.psutil.process_iter")
    def test_exact_name_match(self, process_iter):
        process_iter.return_value = [fake_proc(10, "ollama-helper"), fake_proc(11, "Ollama")]
        self.assertTrue(is_process_running("ollama"))

    @patch("subprocess_mgmt.services.psutil.process_iter")
    def test_substring_does_not_match(self, process_iter):
        process_iter.return_value = [fake_proc(10, "ollama-helper"), fake_proc(12, "bash")]
        self.assertFalse(is_process_running("ollama"))

    @patch("subprocess_mgmt.services.psutil.process_iter")
    def test_windows_executable_suffix(self, process_iter):
        process_iter.return_value = [fake_proc(20, "ollama.exe")]
        self.assertTrue(is_process_running("ollama"))

    @patch("subprocess_mgmt.services.psutil.process_iter")
    def test_excluded_pids_and_zombies(self, process_iter):
        process_iter.return_value = [
            fake_proc(30, "ollama"),
            fake_proc(31, "ollama", status=psutil.STATUS_ZOMBIE),
        ]
        self.assertFalse(is_process_running("ollama", exclude_pids=[30]))
        self.assertTrue(is_process_running("ollama"))

    @patch("subprocess_mgmt.services.psutil.process_iter")
    def test_vanished_process_is_skipped(self, process_iter):
        gone = MagicMock()
        type(gone).info = PropertyMock(side_effect=psutil.NoSuchProcess(40))
        process_iter.return_value = [gone, fake_proc(41, "ollama")]
        self.assertTrue(is_process_running("ollama"))


if __name__ == '__main__':
    unittest.main()

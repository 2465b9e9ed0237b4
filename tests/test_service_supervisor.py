"""
Tests for the local service supervisor.

Processes are faked: a FakeProcess blocks in wait() until it is terminated
or told to exit, so the supervisor's watcher threads behave as they would
with a real child.
"""

import os
import shutil
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import config
from core.errors import ServiceErrorType, UnknownServiceError
from subprocess_mgmt.manager import ServiceSupervisor
from subprocess_mgmt.services import ServiceConfig, ServiceName


class FakeProcess:
    """Stand-in for subprocess.Popen."""

    _next_pid = 4000

    def __init__(self, returncode=None):
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.returncode = returncode
        self.terminated = False
        self._exited = threading.Event()
        if returncode is not None:
            self._exited.set()

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        self._exited.wait(timeout)
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.exit(-15)

    def exit(self, code):
        if self.returncode is None:
            self.returncode = code
        self._exited.set()


class SupervisorTestCase(unittest.TestCase):
    """Supervisor wired to fake spawn/probe and a no-op grace wait."""

    def setUp(self):
        self.processes = []
        self.spawn = MagicMock(side_effect=self._spawn)
        self.probe = MagicMock(return_value=False)
        self.supervisor = ServiceSupervisor(
            grace_period=2.0,
            logs_dir=None,
            spawn=self.spawn,
            probe=self.probe,
            wait=lambda seconds: None
        )

    def tearDown(self):
        for proc in self.processes:
            proc.exit(0)

    def _spawn(self, command, **kwargs):
        proc = FakeProcess()
        self.processes.append(proc)
        return proc


class TestStartStop(SupervisorTestCase):
    """Basic lifecycle."""

    def test_stop_untracked_slot_is_idempotent(self):
        """Stopping a slot with nothing tracked succeeds, repeatedly."""
        for _ in range(2):
            result = self.supervisor.stop("coqui")
            self.assertTrue(result.success)
            self.assertEqual(result.message, "coqui was not running")
        self.assertFalse(self.supervisor.status("coqui"))

    def test_start_then_stop(self):
        result = self.supervisor.start("coqui", ServiceConfig())
        self.assertTrue(result.success)
        self.assertEqual(result.message, "coqui started successfully")
        self.assertTrue(self.supervisor.status("coqui"))

        result = self.supervisor.stop("coqui")
        self.assertTrue(result.success)
        self.assertEqual(result.message, "coqui stopped")
        self.assertTrue(self.processes[0].terminated)
        self.assertFalse(self.supervisor.status("coqui"))

    def test_double_start_leaves_one_handle(self):
        """A second start terminates the first process and tracks only the new one."""
        self.supervisor.start("coqui")
        first = self.processes[0]
        self.supervisor.start("coqui")
        second = self.processes[1]

        self.assertTrue(first.terminated)
        self.assertFalse(second.terminated)
        self.assertIs(self.supervisor.handle("coqui").process, second)
        self.assertEqual(self.spawn.call_count, 2)

    def test_stale_exit_of_replaced_process_is_ignored(self):
        """The old process's exit notification must not clear the new handle."""
        self.supervisor.start("coqui")
        old_watcher = self.supervisor.handle("coqui").watcher
        self.supervisor.start("coqui")
        old_watcher.join(timeout=2)

        self.assertTrue(self.supervisor.status("coqui"))
        self.assertIs(self.supervisor.handle("coqui").process, self.processes[1])

    def test_slots_are_independent(self):
        self.supervisor.start("coqui")
        self.supervisor.start("ollama")
        self.supervisor.stop("coqui")

        self.assertFalse(self.supervisor.status("coqui"))
        self.assertTrue(self.supervisor.status("ollama"))
        self.assertEqual(
            self.supervisor.get_all_status(),
            {"ollama": True, "llamacpp": False, "coqui": False}
        )

    def test_shutdown_all_terminates_everything(self):
        self.supervisor.start("coqui")
        self.supervisor.start("ollama")
        self.supervisor.shutdown_all()

        self.assertTrue(all(p.terminated for p in self.processes))
        self.assertEqual(
            self.supervisor.get_all_status(),
            {"ollama": False, "llamacpp": False, "coqui": False}
        )

    def test_handle_reports_pid_and_uptime(self):
        self.supervisor.start("coqui")
        handle = self.supervisor.handle("coqui")

        self.assertEqual(handle.pid, self.processes[0].pid)
        self.assertGreaterEqual(handle.uptime, 0)
        self.assertLess(handle.uptime, 60)
        self.assertIsNone(self.supervisor.handle("ollama"))

    def test_accepts_enum_names(self):
        result = self.supervisor.start(ServiceName.COQUI)
        self.assertTrue(result.success)
        self.assertTrue(self.supervisor.status(ServiceName.COQUI))


class TestLaunchCommands(SupervisorTestCase):
    """Command lines and launch options."""

    def test_llamacpp_requires_model_path(self):
        result = self.supervisor.start("llamacpp", ServiceConfig.from_dict({"modelPath": None}))

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Model path required for Llama.cpp")
        self.assertEqual(result.error_type, ServiceErrorType.CONFIGURATION)
        self.spawn.assert_not_called()
        self.assertFalse(self.supervisor.status("llamacpp"))

    def test_llamacpp_scenario(self):
        """Start with a model and port, then stop."""
        result = self.supervisor.start(
            "llamacpp", ServiceConfig.from_dict({"modelPath": "/m.bin", "port": "8080"})
        )
        self.assertTrue(result.success)

        command = self.spawn.call_args[0][0]
        self.assertEqual(command[:3], [config.LLAMACPP_SERVER_BINARY, "-m", "/m.bin"])
        self.assertIn("--port", command)
        self.assertEqual(command[command.index("--port") + 1], "8080")

        self.assertTrue(self.supervisor.stop("llamacpp").success)
        self.assertFalse(self.supervisor.status("llamacpp"))

    def test_extra_args_are_appended(self):
        self.supervisor.start(
            "llamacpp",
            ServiceConfig(model_path="/m.bin", extra_args="--ctx-size  4096 -ngl 20")
        )
        command = self.spawn.call_args[0][0]
        self.assertEqual(command[-4:], ["--ctx-size", "4096", "-ngl", "20"])

    def test_coqui_default_port(self):
        self.supervisor.start("coqui")
        command = self.spawn.call_args[0][0]
        self.assertEqual(command[1:3], ["-m", "TTS.server.server"])
        self.assertEqual(command[command.index("--port") + 1], "5002")

    def test_working_directory(self):
        self.supervisor.start("coqui", ServiceConfig(working_directory="/opt/tts"))
        self.assertEqual(self.spawn.call_args[1]["cwd"], "/opt/tts")

        self.supervisor.start("ollama")
        self.assertEqual(self.spawn.call_args[1]["cwd"], os.getcwd())

    def test_spawn_error_is_reported(self):
        self.spawn.side_effect = FileNotFoundError(2, "No such file or directory", "ollama")

        result = self.supervisor.start("ollama")

        self.assertFalse(result.success)
        self.assertEqual(result.error_type, ServiceErrorType.SPAWN)
        self.assertIn("No such file", result.error)
        self.assertFalse(self.supervisor.status("ollama"))


class TestOllamaProbe(SupervisorTestCase):
    """System-wide Ollama detection."""

    def test_already_running_system_wide(self):
        self.probe.return_value = True

        result = self.supervisor.start("ollama")

        self.assertTrue(result.success)
        self.assertEqual(result.message, "Ollama already running system-wide")
        self.spawn.assert_not_called()
        self.assertFalse(self.supervisor.status("ollama"))

    def test_probe_ignores_process_just_stopped(self):
        self.supervisor.start("ollama")
        own_pid = self.processes[0].pid

        self.supervisor.start("ollama")

        name, exclude = self.probe.call_args[0]
        self.assertEqual(name, "ollama")
        self.assertIn(own_pid, list(exclude))

    def test_probe_not_used_for_other_services(self):
        self.supervisor.start("coqui")
        self.probe.assert_not_called()


class TestExitHandling(SupervisorTestCase):
    """Processes that end on their own."""

    def test_exit_clears_status(self):
        self.supervisor.start("coqui")
        handle = self.supervisor.handle("coqui")

        self.processes[0].exit(1)
        handle.watcher.join(timeout=2)

        self.assertFalse(self.supervisor.status("coqui"))

    def test_exit_listener_is_notified(self):
        events = []
        self.supervisor.add_exit_listener(lambda service, event: events.append((service, event.returncode)))
        self.supervisor.start("coqui")
        handle = self.supervisor.handle("coqui")

        self.processes[0].exit(3)
        handle.watcher.join(timeout=2)
        self.supervisor.process_events()

        self.assertEqual(events, [(ServiceName.COQUI, 3)])

    def test_stop_does_not_notify_listeners(self):
        events = []
        self.supervisor.add_exit_listener(lambda service, event: events.append(service))
        self.supervisor.start("coqui")
        handle = self.supervisor.handle("coqui")

        self.supervisor.stop("coqui")
        handle.watcher.join(timeout=2)
        self.supervisor.process_events()

        self.assertEqual(events, [])

    def test_exit_during_grace_period(self):
        self.spawn.side_effect = lambda command, **kwargs: FakeProcess(returncode=1)

        result = self.supervisor.start("coqui")

        self.assertFalse(result.success)
        self.assertEqual(result.error_type, ServiceErrorType.SPAWN)
        self.assertIn("exited during startup (code 1)", result.error)
        self.assertFalse(self.supervisor.status("coqui"))

    def test_failed_stop_keeps_handle(self):
        self.supervisor.start("coqui")
        self.processes[0].terminate = MagicMock(side_effect=ProcessLookupError("gone"))

        result = self.supervisor.stop("coqui")

        self.assertFalse(result.success)
        self.assertEqual(result.error_type, ServiceErrorType.STOP)
        self.assertTrue(self.supervisor.status("coqui"))


class TestReentrancyAndNames(SupervisorTestCase):

    def test_start_during_grace_period_is_rejected(self):
        """A nested start for the same slot (e.g. from the event loop) is refused."""
        nested = []

        def wait(seconds):
            if not nested:
                nested.append(self.supervisor.start("coqui"))

        self.supervisor._wait = wait
        result = self.supervisor.start("coqui")

        self.assertTrue(result.success)
        self.assertFalse(nested[0].success)
        self.assertEqual(nested[0].error_type, ServiceErrorType.BUSY)
        self.assertEqual(self.spawn.call_count, 1)

    def test_stop_during_grace_period_fails_start(self):
        """A stop handled inside the grace period wins; the start is not reported as a success."""
        stopped = []
        self.supervisor._wait = lambda seconds: stopped.append(self.supervisor.stop("llamacpp"))

        result = self.supervisor.start("llamacpp", ServiceConfig(model_path="/m.bin"))

        self.assertTrue(stopped[0].success)
        self.assertEqual(stopped[0].message, "llamacpp stopped")
        self.assertFalse(result.success)
        self.assertEqual(result.error_type, ServiceErrorType.SPAWN)
        self.assertEqual(result.error, "llamacpp was stopped during startup")
        self.assertTrue(self.processes[0].terminated)
        self.assertFalse(self.supervisor.status("llamacpp"))
        self.assertFalse(self.supervisor.is_starting("llamacpp"))

    def test_shutdown_during_grace_period_fails_start(self):
        self.supervisor._wait = lambda seconds: self.supervisor.shutdown_all()

        result = self.supervisor.start("coqui")

        self.assertFalse(result.success)
        self.assertEqual(result.error, "coqui was stopped during startup")
        self.assertFalse(self.supervisor.status("coqui"))

    def test_unknown_service(self):
        result = self.supervisor.start("gpt4")
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Unknown service type: gpt4")
        self.assertEqual(result.error_type, ServiceErrorType.UNKNOWN_SERVICE)

        self.assertFalse(self.supervisor.stop("gpt4").success)
        with self.assertRaises(UnknownServiceError):
            self.supervisor.status("gpt4")


class TestServiceLogs(unittest.TestCase):
    """Child output goes to logs/<slot>.log."""

    def setUp(self):
        self.logs_dir = Path(tempfile.mkdtemp())
        self.process = FakeProcess()
        self.spawn = MagicMock(return_value=self.process)
        self.supervisor = ServiceSupervisor(
            logs_dir=self.logs_dir,
            spawn=self.spawn,
            probe=MagicMock(return_value=False),
            wait=lambda seconds: None
        )

    def tearDown(self):
        self.process.exit(0)
        shutil.rmtree(self.logs_dir, ignore_errors=True)

    def test_output_redirected_to_log_file(self):
        self.supervisor.start("coqui")

        handle = self.supervisor.handle("coqui")
        self.assertEqual(handle.log_path, self.logs_dir / "coqui.log")
        self.assertTrue(handle.log_path.exists())
        self.assertIs(self.spawn.call_args[1]["stdout"], handle.log_file)

        self.supervisor.stop("coqui")
        handle.watcher.join(timeout=2)
        self.supervisor.process_events()
        self.assertIsNone(handle.log_file)


if __name__ == '__main__':
    unittest.main()

"""
AI Chat Overlay - Local Service Supervisor
Start, stop and track the backend servers the overlay launches itself.
"""

import os
import queue
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Callable, Dict, Iterable, List, Optional, Set, Union

from core.errors import (
    AlreadyRunningExternally, OverlayError, ServiceBusyError, ServiceResult,
    SpawnError, StopError
)
from core.logger import log_info, log_warning, log_error, log_success
from subprocess_mgmt.services import (
    ServiceConfig, ServiceName, build_command, is_process_running
)


@dataclass
class ProcessHandle:
    """A backend process the supervisor launched and still tracks."""
    service: ServiceName
    process: subprocess.Popen
    command: List[str]
    log_path: Optional[Path] = None
    started_at: float = field(default_factory=time.time)
    watcher: Optional[threading.Thread] = None
    log_file: Optional[IO] = None
    stopped: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def uptime(self) -> float:
        """Seconds since the process was spawned."""
        return time.time() - self.started_at

    def close_log(self) -> None:
        if self.log_file is not None:
            try:
                self.log_file.close()
            except OSError:
                pass
            self.log_file = None


@dataclass
class ProcessExited:
    """Notification posted by a watcher thread when its process ends."""
    handle: ProcessHandle
    returncode: Optional[int]
    error: Optional[str] = None


ExitListener = Callable[[ServiceName, ProcessExited], None]


class ServiceSupervisor:
    """
    Owns at most one running process per backend slot.

    All state changes happen on the thread that calls the public methods
    (the GUI thread). Watcher threads only post ProcessExited notifications
    to a queue; process_events() applies them. Every public operation drains
    the queue first, and the GUI also drains it on a timer.
    """

    def __init__(
        self,
        grace_period: float = 2.0,
        logs_dir: Optional[Path] = None,
        spawn: Callable[..., subprocess.Popen] = subprocess.Popen,
        probe: Callable[..., bool] = is_process_running,
        wait: Callable[[float], None] = time.sleep,
        ollama_process_name: str = "ollama"
    ):
        """
        Initialize the supervisor.

        Args:
            grace_period: Seconds to wait after spawning before reporting
            logs_dir: Directory for per-service output logs (None discards output)
            spawn: Process factory with the subprocess.Popen signature
            probe: System-wide process-name probe (name, exclude_pids) -> bool
            wait: Blocking or cooperative sleep used for the grace period
            ollama_process_name: Name the Ollama probe looks for
        """
        self.grace_period = grace_period
        self.logs_dir = logs_dir
        self._spawn = spawn
        self._probe = probe
        self._wait = wait
        self._ollama_process_name = ollama_process_name

        self._slots: Dict[ServiceName, Optional[ProcessHandle]] = {
            service: None for service in ServiceName
        }
        self._starting: Set[ServiceName] = set()
        self._events: "queue.Queue[ProcessExited]" = queue.Queue()
        self._exit_listeners: List[ExitListener] = []

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    def start(
        self,
        name: Union[ServiceName, str],
        service_config: Optional[ServiceConfig] = None
    ) -> ServiceResult:
        """
        Launch a backend, replacing any process already tracked for it.

        Args:
            name: Slot to start
            service_config: Launch settings (working dir, port, model, args)

        Returns:
            ServiceResult describing the outcome
        """
        self.process_events()
        service_config = service_config or ServiceConfig()

        try:
            service = ServiceName.parse(name)
            if service in self._starting:
                raise ServiceBusyError(f"{service.value} is still starting")

            previous = self._slots[service]
            exclude_pids = []
            if previous is not None:
                exclude_pids.append(previous.pid)
                stopped = self.stop(service)
                if not stopped.success:
                    return stopped

            self._starting.add(service)
            try:
                self._launch(service, service_config, exclude_pids)
            finally:
                self._starting.discard(service)

        except AlreadyRunningExternally as e:
            log_info(str(e), prefix="ℹ️")
            return ServiceResult.ok(str(e))
        except OverlayError as e:
            log_error(str(e))
            return ServiceResult.failed(e)

        return ServiceResult.ok(f"{service.value} started successfully")

    def stop(self, name: Union[ServiceName, str]) -> ServiceResult:
        """
        Send SIGTERM to a tracked backend and forget it immediately.

        Does not wait for the process to exit. Stopping a slot with nothing
        tracked succeeds.
        """
        self.process_events()

        try:
            service = ServiceName.parse(name)
        except OverlayError as e:
            log_error(str(e))
            return ServiceResult.failed(e)

        handle = self._slots[service]
        if handle is None:
            return ServiceResult.ok(f"{service.value} was not running")

        log_info(f"Stopping {service.display_name} (PID: {handle.pid})...", prefix="🛑")
        try:
            handle.process.terminate()
        except OSError as e:
            error = StopError(f"Failed to stop {service.value}: {e}")
            log_error(str(error))
            return ServiceResult.failed(error)

        handle.stopped = True
        self._slots[service] = None
        return ServiceResult.ok(f"{service.value} stopped")

    def status(self, name: Union[ServiceName, str]) -> bool:
        """
        Whether a process is tracked for the slot.

        This is bookkeeping, not a liveness probe of the OS process.

        Raises:
            UnknownServiceError: If the name is not a known slot
        """
        self.process_events()
        return self._slots[ServiceName.parse(name)] is not None

    def get_all_status(self) -> Dict[str, bool]:
        """Tracked state of every slot, keyed by wire name."""
        self.process_events()
        return {
            service.value: handle is not None
            for service, handle in self._slots.items()
        }

    def is_starting(self, name: Union[ServiceName, str]) -> bool:
        """Whether a start call for the slot is still inside its grace period."""
        return ServiceName.parse(name) in self._starting

    def handle(self, name: Union[ServiceName, str]) -> Optional[ProcessHandle]:
        """The tracked handle for a slot, if any."""
        self.process_events()
        return self._slots[ServiceName.parse(name)]

    def shutdown_all(self) -> None:
        """Terminate every tracked process without waiting for it to exit."""
        for service, handle in self._slots.items():
            if handle is None:
                continue
            log_info(f"Terminating {service.display_name} (PID: {handle.pid})", prefix="🛑")
            try:
                handle.process.terminate()
            except OSError as e:
                log_warning(f"Could not terminate {service.value}: {e}")
            handle.stopped = True
            self._slots[service] = None

    def add_exit_listener(self, listener: ExitListener) -> None:
        """Register a callback run (on the control thread) when a tracked process exits."""
        self._exit_listeners.append(listener)

    def process_events(self) -> int:
        """
        Apply pending exit notifications.

        A notification only clears its slot if the slot still holds the same
        handle; notifications for handles already stopped or replaced are
        dropped.

        Returns:
            Number of slots cleared
        """
        cleared = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break

            handle = event.handle
            handle.close_log()
            service = handle.service

            if self._slots[service] is not handle:
                continue

            self._slots[service] = None
            cleared += 1

            if event.error:
                log_error(f"{service.value} process error: {event.error}")
            else:
                log_info(f"{service.value} process exited with code {event.returncode}", prefix="⏹️")

            for listener in self._exit_listeners:
                try:
                    listener(service, event)
                except Exception as e:
                    log_error(f"Exit listener failed for {service.value}: {e}")

        return cleared

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _launch(
        self,
        service: ServiceName,
        service_config: ServiceConfig,
        exclude_pids: Iterable[int]
    ) -> ProcessHandle:
        """Spawn the process, track it, and sit out the grace period."""
        command = build_command(service, service_config)

        if service is ServiceName.OLLAMA and self._probe(
            self._ollama_process_name, exclude_pids
        ):
            raise AlreadyRunningExternally("Ollama already running system-wide")

        cwd = service_config.working_directory or os.getcwd()
        log_path, log_file = self._open_log(service)

        log_info(f"Starting {service.display_name}: {' '.join(command)}", prefix="🚀")

        try:
            process = self._spawn(
                command,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=log_file if log_file is not None else subprocess.DEVNULL,
                stderr=subprocess.STDOUT
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            if log_file is not None:
                log_file.close()
            raise SpawnError(f"Failed to start {service.value}: {e}") from e

        handle = ProcessHandle(
            service=service,
            process=process,
            command=command,
            log_path=log_path,
            log_file=log_file
        )
        self._slots[service] = handle
        handle.watcher = threading.Thread(
            target=self._watch,
            args=(handle,),
            daemon=True,
            name=f"ServiceWatcher-{service.value}"
        )
        handle.watcher.start()

        # Give the process a moment to fall over if the launch is broken
        self._wait(self.grace_period)
        self.process_events()

        # A stop request can be handled while the wait runs the event loop
        if handle.stopped:
            raise SpawnError(f"{service.value} was stopped during startup")

        returncode = process.poll()
        if returncode is not None:
            if self._slots[service] is handle:
                self._slots[service] = None
            raise SpawnError(
                f"{service.value} exited during startup (code {returncode})"
                + (f", see {log_path}" if log_path else "")
            )

        log_success(f"{service.display_name} started (PID: {handle.pid})")
        return handle

    def _watch(self, handle: ProcessHandle) -> None:
        """Watcher thread body: block until the process ends, then post a notification."""
        try:
            returncode = handle.process.wait()
            event = ProcessExited(handle=handle, returncode=returncode)
        except Exception as e:
            event = ProcessExited(handle=handle, returncode=None, error=str(e))
        self._events.put(event)

    def _open_log(self, service: ServiceName):
        """Open the per-service output log, if a logs directory is configured."""
        if self.logs_dir is None:
            return None, None
        log_path = self.logs_dir / f"{service.value}.log"
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            return log_path, open(log_path, "a", encoding="utf-8")
        except OSError as e:
            log_warning(f"Cannot open {log_path}, discarding {service.value} output: {e}")
            return None, None


# Global supervisor instance
_supervisor: Optional[ServiceSupervisor] = None


def get_service_supervisor() -> ServiceSupervisor:
    """Get the global service supervisor instance."""
    global _supervisor
    if _supervisor is None:
        _supervisor = init_service_supervisor()
    return _supervisor


def init_service_supervisor(
    wait: Optional[Callable[[float], None]] = None
) -> ServiceSupervisor:
    """
    Initialize the global service supervisor.

    Args:
        wait: Grace-period sleep; the GUI passes a cooperative Qt wait
    """
    global _supervisor
    from config import LOGS_DIR, OLLAMA_PROCESS_NAME, SERVICE_START_GRACE_PERIOD
    _supervisor = ServiceSupervisor(
        grace_period=SERVICE_START_GRACE_PERIOD,
        logs_dir=LOGS_DIR,
        wait=wait or time.sleep,
        ollama_process_name=OLLAMA_PROCESS_NAME
    )
    return _supervisor

"""Process supervision for signal-cli.

Three ways signal-cli gets run:
- one-shot commands (receive, listContacts, send) via `SignalCli.run`
- the long-running daemon, owned by `DaemonSupervisor`
- any streamed process (link, live receive) via `ManagedProcess`, whose
  stdout and stderr are read as two independent line pipelines
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Sequence

from spark_signal.config import SparkConfig
from spark_signal.daemon.events import (
    DaemonReady,
    EventBus,
    ProcessExited,
    ProcessFailed,
    ProcessOutput,
)
from spark_signal.parsing.line_reader import iter_stream_lines

logger = logging.getLogger(__name__)

SIGNAL_MAIN_CLASS = "org.asamk.signal.Main"

LineConsumer = Callable[[str], None]


class ProcessState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXITED = "exited"


class ProcessStateError(RuntimeError):
    pass


class ManagedProcess:
    """A subprocess with an explicit NOT_STARTED → RUNNING → EXITED lifecycle.

    stdout and stderr each get their own reader thread. Each line is handed
    to that stream's consumer (if any) and published as ProcessOutput. The
    two streams are not ordered relative to each other. ProcessExited is
    published once both pipes are drained.
    """

    def __init__(
        self,
        name: str,
        argv: Sequence[str],
        bus: EventBus,
        cwd: Optional[str] = None,
        on_stdout: Optional[LineConsumer] = None,
        on_stderr: Optional[LineConsumer] = None,
    ):
        self.name = name
        self.argv = list(argv)
        self.cwd = cwd
        self._bus = bus
        self._consumers = {"stdout": on_stdout, "stderr": on_stderr}
        self._lock = threading.Lock()
        self._state = ProcessState.NOT_STARTED
        self._proc: Optional[subprocess.Popen] = None
        self._returncode: Optional[int] = None
        self._exited = threading.Event()

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def returncode(self) -> Optional[int]:
        return self._returncode

    @property
    def pid(self) -> Optional[int]:
        proc = self._proc
        return proc.pid if proc is not None else None

    def start(self) -> bool:
        """Spawn the process. Returns False if it could not be started."""
        with self._lock:
            if self._state is ProcessState.RUNNING:
                raise ProcessStateError(f"{self.name} is already running (pid {self.pid})")

            try:
                proc = subprocess.Popen(
                    self.argv,
                    cwd=self.cwd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                )
            except OSError as exc:
                logger.error("Failed to start %s: %s", self.name, exc)
                failed = ProcessFailed(self.name, str(exc))
            else:
                failed = None
                self._proc = proc
                self._returncode = None
                self._exited = threading.Event()
                self._state = ProcessState.RUNNING

        if failed is not None:
            self._bus.publish(failed)
            return False

        logger.info("Started %s (pid %d)", self.name, proc.pid)
        pumps = [
            threading.Thread(
                target=self._pump, args=(stream_name, stream),
                name=f"{self.name}-{stream_name}", daemon=True,
            )
            for stream_name, stream in (("stdout", proc.stdout), ("stderr", proc.stderr))
        ]
        for pump in pumps:
            pump.start()
        threading.Thread(
            target=self._wait_for_exit, args=(proc, pumps),
            name=f"{self.name}-waiter", daemon=True,
        ).start()
        return True

    def _pump(self, stream_name: str, stream: BinaryIO):
        consumer = self._consumers[stream_name]
        try:
            for line in iter_stream_lines(stream):
                logger.debug("%s %s: %s", self.name, stream_name, line)
                if consumer is not None:
                    try:
                        consumer(line)
                    except Exception:
                        logger.exception("%s %s consumer failed", self.name, stream_name)
                self._bus.publish(ProcessOutput(self.name, stream_name, line))
        finally:
            stream.close()

    def _wait_for_exit(self, proc: subprocess.Popen, pumps: List[threading.Thread]):
        returncode = proc.wait()
        for pump in pumps:
            pump.join()

        with self._lock:
            self._returncode = returncode
            self._state = ProcessState.EXITED

        logger.info("%s terminated with status %d", self.name, returncode)
        self._bus.publish(ProcessExited(self.name, returncode))
        self._exited.set()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for exit; returns the status, or None if still running."""
        if self._state is ProcessState.NOT_STARTED:
            return None
        self._exited.wait(timeout=timeout)
        return self._returncode

    def stop(self, timeout: float = 5.0):
        """Terminate the process, killing it if it ignores SIGTERM."""
        with self._lock:
            proc = self._proc if self._state is ProcessState.RUNNING else None
        if proc is None:
            return

        logger.info("Stopping %s (pid %d)", self.name, proc.pid)
        proc.terminate()
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("%s ignored SIGTERM, killing", self.name)
            proc.kill()
            proc.wait()
        self._exited.wait(timeout=timeout)


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class SignalCli:
    """Builds and runs signal-cli command lines for one account."""

    def __init__(self, config: SparkConfig):
        self.config = config

    @property
    def cwd(self) -> Optional[str]:
        return self.config.signal_cli_home if self._bundled else None

    @property
    def _bundled(self) -> bool:
        return bool(self.config.java_home and self.config.signal_cli_home)

    def base_command(self) -> List[str]:
        if self._bundled:
            java = Path(self.config.java_home) / "bin" / "java"
            classpath = str(Path(self.config.signal_cli_home) / "lib") + "/*"
            return [str(java), "-cp", classpath, SIGNAL_MAIN_CLASS]
        return [self.config.signal_cli]

    def command(self, *args: str, with_account: bool = True) -> List[str]:
        argv = self.base_command()
        if with_account:
            argv += ["-a", self.config.require_account()]
        return argv + list(args)

    def link_command(self) -> List[str]:
        return self.command("link", "-n", self.config.device_name, with_account=False)

    def daemon_command(self) -> List[str]:
        return self.command("daemon", "--socket", self.config.socket_path, with_account=False)

    def receive_command(self, timeout_seconds: Optional[int] = None) -> List[str]:
        timeout = self.config.receive_timeout if timeout_seconds is None else timeout_seconds
        return self.command("receive", "-t", str(timeout))

    def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        """Run a one-shot command to completion and capture its output.

        A command that cannot be started comes back with returncode -1 and
        the reason in stderr.
        """
        try:
            result = subprocess.run(
                list(argv),
                cwd=self.cwd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout,
            )
        except OSError as exc:
            logger.error("Failed to start signal-cli: %s", exc)
            return CommandResult("", f"Failed to start signal-cli: {exc}", -1)
        except subprocess.TimeoutExpired:
            logger.warning("signal-cli timed out after %ss: %s", timeout, " ".join(argv[-3:]))
            return CommandResult("", f"signal-cli timed out after {timeout}s", -1)

        return CommandResult(result.stdout or "", result.stderr or "", result.returncode)

    def receive(self, timeout_seconds: Optional[int] = None) -> CommandResult:
        argv = self.receive_command(timeout_seconds)
        result = self.run(argv)
        logger.info("receive exit code: %d", result.returncode)
        if result.stderr.strip():
            logger.warning("receive stderr:\n%s", result.stderr)
        return result

    def list_contacts(self) -> CommandResult:
        result = self.run(self.command("listContacts"))
        logger.info("listContacts exit code: %d", result.returncode)
        if result.stderr.strip():
            logger.warning("listContacts stderr:\n%s", result.stderr)
        return result

    def send(self, recipient: str, message: str) -> CommandResult:
        if not recipient or not message:
            return CommandResult("", "Recipient or message is empty", -1)

        result = self.run(self.command("send", "-m", message, recipient))
        logger.info("send exit code: %d", result.returncode)
        if result.stdout:
            logger.debug("send stdout:\n%s", result.stdout)
        if result.stderr.strip():
            logger.warning("send stderr:\n%s", result.stderr)
        return result


class DaemonSupervisor:
    """Owns the signal-cli daemon process listening on a local socket."""

    PROCESS_NAME = "daemon"

    def __init__(self, cli: SignalCli, bus: EventBus):
        self._cli = cli
        self._bus = bus
        self.socket_path = Path(cli.config.socket_path)
        self.process = ManagedProcess(
            self.PROCESS_NAME, cli.daemon_command(), bus, cwd=cli.cwd,
        )

    @property
    def state(self) -> ProcessState:
        return self.process.state

    def start(self) -> bool:
        logger.info("Starting signal-cli daemon on %s", self.socket_path)
        if self.socket_path.exists():
            try:
                os.unlink(self.socket_path)
            except OSError as exc:
                logger.warning("Could not remove stale socket %s: %s", self.socket_path, exc)
        return self.process.start()

    def wait_until_ready(self, timeout: float = 10.0, poll_interval: float = 0.2) -> bool:
        """Wait for the daemon's socket to appear, then publish DaemonReady."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.process.state is not ProcessState.RUNNING:
                logger.warning("Daemon is not running (state=%s)", self.process.state.value)
                return False
            if self.socket_path.exists():
                self._bus.publish(DaemonReady(str(self.socket_path)))
                return True
            time.sleep(poll_interval)

        logger.warning("Daemon socket %s did not appear within %.0fs", self.socket_path, timeout)
        return False

    def stop(self, timeout: float = 5.0):
        self.process.stop(timeout=timeout)

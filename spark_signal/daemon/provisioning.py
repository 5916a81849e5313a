"""Device linking via `signal-cli link`.

The link process prints a single provisioning URI (sgnl://linkdevice?...)
and then keeps running until the phone scans it. Capturing that line is
its own event; the process exiting (successfully or not) is another.
"""

from __future__ import annotations

import io
import logging
import threading
from typing import Optional

import qrcode

from spark_signal.config import StateStore
from spark_signal.daemon.events import EventBus, Linked, PairingCodeReceived, ProcessExited
from spark_signal.daemon.supervisor import ManagedProcess, ProcessState, SignalCli

logger = logging.getLogger(__name__)


def render_qr(uri: str) -> str:
    """Render a provisioning URI as a terminal-printable QR code."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=1,
        border=2,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()


class Provisioner:
    """Runs the one-time link handshake and records its outcome."""

    PROCESS_NAME = "link"

    def __init__(self, cli: SignalCli, state: StateStore, bus: EventBus):
        self._cli = cli
        self._state = state
        self._bus = bus
        self._lock = threading.Lock()
        self._process: Optional[ManagedProcess] = None
        self._uri: Optional[str] = None
        self._exit_sub = bus.subscribe(ProcessExited, self._on_exit)

    @property
    def pairing_uri(self) -> Optional[str]:
        return self._uri

    @property
    def process(self) -> Optional[ManagedProcess]:
        return self._process

    def start(self) -> bool:
        """Start linking. False if already linked, already linking, or spawn failed."""
        if self._state.linked:
            logger.info("Already linked, skipping link")
            return False

        with self._lock:
            if self._process is not None and self._process.state is ProcessState.RUNNING:
                logger.info("Link process already running")
                return False

            self._uri = None
            process = ManagedProcess(
                self.PROCESS_NAME,
                self._cli.link_command(),
                self._bus,
                cwd=self._cli.cwd,
                on_stdout=self._on_stdout,
                on_stderr=self._on_stderr,
            )
            self._process = process

        if not process.start():
            with self._lock:
                self._process = None
            return False
        return True

    def _on_stdout(self, line: str):
        uri = line.strip()
        if not uri or self._uri is not None:
            return
        self._uri = uri
        logger.info("Provisioning URI: %s", uri)
        self._bus.publish(PairingCodeReceived(uri))

    def _on_stderr(self, line: str):
        if line.strip():
            logger.warning("signal-cli link stderr: %s", line)

    def _on_exit(self, event: ProcessExited):
        if event.process != self.PROCESS_NAME:
            return
        with self._lock:
            self._process = None

        if event.returncode == 0:
            logger.info("Link completed successfully")
            self._state.linked = True
            self._bus.publish(Linked())
        else:
            logger.warning("Link failed with status %d", event.returncode)

    def stop(self):
        process = self._process
        if process is not None:
            process.stop()

    def close(self):
        self.stop()
        self._exit_sub.unsubscribe()

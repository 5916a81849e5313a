"""CLI commands for device linking and the signal-cli daemon."""

from __future__ import annotations

import logging
import sys
import threading

import click
from rich.console import Console

from spark_signal.config import StateStore, load_config
from spark_signal.daemon.events import (
    DaemonReady,
    EventBus,
    Linked,
    PairingCodeReceived,
    ProcessExited,
    ProcessFailed,
)
from spark_signal.daemon.provisioning import Provisioner, render_qr
from spark_signal.daemon.supervisor import DaemonSupervisor, SignalCli

console = Console()
logger = logging.getLogger(__name__)

LINKED_STATUS = "[green]✓[/green] Linked! Spark is now connected to your Signal account."


@click.command("link")
@click.option("--timeout", default=300, type=int, help="Seconds to wait for the phone to scan")
@click.option("--force", is_flag=True, help="Link again even if already linked")
def link(timeout: int, force: bool):
    """Link Spark as a new device on your Signal account.

    Prints a QR code; scan it from Signal on your phone under
    Settings → Linked devices.
    """
    config = load_config()
    state = StateStore()
    if state.linked and not force:
        console.print(LINKED_STATUS)
        return
    if force:
        state.linked = False

    bus = EventBus()
    provisioner = Provisioner(SignalCli(config), state, bus)
    finished = threading.Event()
    outcome = {"linked": False, "detail": ""}

    def on_code(event: PairingCodeReceived):
        console.print(render_qr(event.uri), markup=False, highlight=False)
        console.print(f"[dim]{event.uri}[/dim]", highlight=False)
        console.print("[bold]Scan with your phone to link Spark[/bold]")

    def on_linked(event: Linked):
        outcome["linked"] = True
        finished.set()

    def on_exit(event: ProcessExited):
        if event.process == Provisioner.PROCESS_NAME and event.returncode != 0:
            if not outcome["detail"]:
                outcome["detail"] = f"link exited with status {event.returncode}"
            finished.set()

    def on_failed(event: ProcessFailed):
        outcome["detail"] = event.error
        finished.set()

    subs = [
        bus.subscribe(PairingCodeReceived, on_code),
        bus.subscribe(Linked, on_linked),
        bus.subscribe(ProcessExited, on_exit),
        bus.subscribe(ProcessFailed, on_failed),
    ]

    try:
        console.print("Requesting link from Signal…")
        if provisioner.start():
            if not finished.wait(timeout=timeout):
                outcome["detail"] = f"timed out after {timeout}s"
    except KeyboardInterrupt:
        outcome["detail"] = "interrupted"
    finally:
        provisioner.close()
        for sub in subs:
            sub.unsubscribe()

    if outcome["linked"]:
        console.print(LINKED_STATUS)
        return

    detail = outcome["detail"] or "check the log output"
    console.print(f"[red]Failed to link:[/red] {detail}")
    sys.exit(1)


@click.command("daemon")
@click.option("--ready-timeout", default=10.0, type=float,
              help="Seconds to wait for the daemon socket")
def daemon(ready_timeout: float):
    """Run the signal-cli daemon in the foreground until Ctrl+C."""
    config = load_config()
    bus = EventBus()
    supervisor = DaemonSupervisor(SignalCli(config), bus)

    bus.subscribe(DaemonReady, lambda e: console.print(f"[green]✓[/green] Daemon ready on {e.socket_path}"))
    bus.subscribe(ProcessFailed, lambda e: console.print(f"[red]Failed to start daemon:[/red] {e.error}"))

    if not supervisor.start():
        sys.exit(1)

    if StateStore().linked:
        console.print(LINKED_STATUS)
    else:
        console.print("[yellow]Not linked yet.[/yellow] Run: spark-signal link")

    try:
        if not supervisor.wait_until_ready(timeout=ready_timeout):
            console.print("[yellow]Daemon socket not ready yet; still running.[/yellow]")
        returncode = supervisor.process.wait()
    except KeyboardInterrupt:
        supervisor.stop()
        returncode = supervisor.process.returncode

    console.print(f"[dim]daemon exited with status {returncode}[/dim]")

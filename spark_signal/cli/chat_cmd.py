"""CLI commands for reading and sending messages."""

from __future__ import annotations

import logging
import sys
from typing import BinaryIO, Optional

import click
from rich.console import Console

from spark_signal.cli.render import contacts_table, conversation_table, format_message
from spark_signal.config import SparkConfig, load_config
from spark_signal.daemon.events import EventBus, MessageStored
from spark_signal.daemon.supervisor import ManagedProcess, SignalCli
from spark_signal.parsing.envelope import EnvelopeParser
from spark_signal.parsing.line_reader import iter_stream_lines
from spark_signal.session import ChatSession
from spark_signal.store.conversations import ConversationStore

console = Console()
logger = logging.getLogger(__name__)


def _load_account_config(account: Optional[str] = None) -> SparkConfig:
    config = load_config()
    if account:
        config.account = account
    try:
        config.require_account()
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)
    return config


def _print_conversations(session: ChatSession, contact: Optional[str]):
    if contact:
        session.select_conversation(contact)
    else:
        session.clear_selection()

    store = session.store
    messages = session.visible_messages()
    if not messages:
        console.print("[yellow]No messages.[/yellow]")
        return
    if session.selected_contact is None and len(store.contacts()) > 1:
        contacts = store.contacts()
        console.print(contacts_table(contacts, [len(store.messages_for(c)) for c in contacts]))
    console.print(conversation_table(messages, session.selected_contact))



@click.command("receive")
@click.option("--timeout", "-t", default=None, type=int,
              help="Seconds to wait for new messages (default: from config)")
@click.option("--contact", default=None,
              help="Only show this conversation (a number or a contacts listing line)")
@click.option("--raw", is_flag=True, help="Also print the raw signal-cli output")
def receive(timeout: Optional[int], contact: Optional[str], raw: bool):
    """Receive pending messages once and show the conversations.

    \b
    Examples:
        spark-signal receive
        spark-signal receive -t 30 --contact +447700900123
    """
    config = _load_account_config()
    session = ChatSession(SignalCli(config), ConversationStore(), config.account)

    with console.status("[bold green]Receiving messages..."):
        messages = session.receive_once(timeout)

    if raw:
        for entry in session.output_log:
            console.print(entry, markup=False, highlight=False)
        console.print()

    if not messages:
        console.print("[dim](no messages)[/dim]")
        return

    console.print(f"[green]✓[/green] {len(messages)} message(s)")
    _print_conversations(session, contact)


@click.command("listen")
@click.option("--timeout", "-t", default=-1, type=int,
              help="Seconds signal-cli waits for messages (-1: until interrupted)")
def listen(timeout: int):
    """Stream incoming messages live until Ctrl+C.

    Output is parsed as it arrives, line by line.
    """
    config = _load_account_config()
    cli = SignalCli(config)
    bus = EventBus()
    store = ConversationStore(bus)
    parser = EnvelopeParser(config.account)

    def on_stdout(line: str):
        message = parser.feed_line(line)
        if message is not None:
            store.append(message.contact, message)

    def on_stderr(line: str):
        if line.strip():
            logger.warning("receive stderr: %s", line)

    bus.subscribe(MessageStored, lambda event: console.print(format_message(event.message)))

    process = ManagedProcess(
        "receive", cli.receive_command(timeout), bus,
        cwd=cli.cwd, on_stdout=on_stdout, on_stderr=on_stderr,
    )
    if not process.start():
        console.print("[red]Could not start signal-cli.[/red] Check the signal_cli setting.")
        sys.exit(1)

    console.print("[dim]Listening for messages (Ctrl+C to stop)...[/dim]")
    try:
        returncode = process.wait()
    except KeyboardInterrupt:
        process.stop()
        returncode = process.returncode

    console.print()
    console.print(f"[dim]receive exited with status {returncode}; {len(store)} message(s)[/dim]")


@click.command("send")
@click.argument("recipient")
@click.argument("message")
def send(recipient: str, message: str):
    """Send a text message to RECIPIENT.

    \b
    Examples:
        spark-signal send +447700900123 "On my way"
    """
    config = _load_account_config()
    session = ChatSession(SignalCli(config), ConversationStore(), config.account)

    with console.status("[bold green]Sending..."):
        ok, error = session.send(recipient, message)

    if not ok:
        console.print(f"[red]Send failed:[/red] {error}")
        sys.exit(1)

    console.print(f"[green]✓[/green] Message sent to [bold]{recipient.strip()}[/bold]")
    console.print(conversation_table(session.visible_messages(), session.selected_contact))


@click.command("contacts")
def contacts():
    """Print the raw contact list from signal-cli."""
    config = _load_account_config()
    session = ChatSession(SignalCli(config), ConversationStore(), config.account)

    output = session.list_contacts()
    if output.strip():
        console.print(output, markup=False, highlight=False)
    else:
        console.print("[yellow](no contacts)[/yellow]")


@click.command("parse")
@click.argument("source", type=click.File("rb"), default="-")
@click.option("--account", default=None, help="Self identifier (default: from config)")
@click.option("--contact", default=None,
              help="Only show this conversation (a number or a contacts listing line)")
def parse(source: BinaryIO, account: Optional[str], contact: Optional[str]):
    """Rebuild conversations from saved signal-cli receive output.

    Reads SOURCE (a file, or stdin when omitted).

    \b
    Examples:
        signal-cli -a +44... receive | tee receive.log
        spark-signal parse receive.log
    """
    config = _load_account_config(account)
    session = ChatSession(SignalCli(config), ConversationStore(), config.account)
    session.ingest(session.new_parser().feed_lines(iter_stream_lines(source)))

    _print_conversations(session, contact)

"""Spark CLI — a terminal chat front-end around signal-cli."""

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from spark_signal.cli.chat_cmd import contacts, listen, parse, receive, send
from spark_signal.cli.link_cmd import daemon, link
from spark_signal.config import load_config, save_config

console = Console()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose):
    """Spark — chat over Signal through a supervised signal-cli."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@cli.command("set-account")
@click.argument("account")
def set_account(account):
    """Store the Signal account (your own number) in the config file.

    Examples:

        spark-signal set-account +447700900123
    """
    if not account.startswith("+"):
        console.print("[red]Account must be a phone number in +<country><number> form.[/red]")
        sys.exit(1)

    config = load_config()
    config.account = account
    save_config(config)
    console.print(f"[green]✓[/green] Account set to [bold]{account}[/bold]")


cli.add_command(link)
cli.add_command(daemon)
cli.add_command(receive)
cli.add_command(listen)
cli.add_command(send)
cli.add_command(contacts)
cli.add_command(parse)


if __name__ == "__main__":
    cli()

"""Rich renderers shared by the CLI commands.

Contacts and bodies come from other people, so they are escaped before
going anywhere near rich markup.
"""

from __future__ import annotations

from typing import List, Optional

from rich.markup import escape
from rich.table import Table
from rich.text import Text

from spark_signal.parsing.base import ParsedMessage


def format_message(msg: ParsedMessage) -> str:
    prefix = "You" if msg.from_self else "Them"
    style = "green" if msg.from_self else "blue"
    return (
        f"[dim]{msg.timestamp.strftime('%H:%M:%S')}[/dim] "
        f"[cyan]{escape(msg.contact)}[/cyan] [{style}]{prefix}:[/{style}] {escape(msg.body)}"
    )


def conversation_table(messages: List[ParsedMessage], contact: Optional[str] = None) -> Table:
    if contact:
        title = f"Conversation with {escape(contact)}"
    else:
        title = f"All conversations ({len(messages)} messages)"
    table = Table(title=title)
    table.add_column("Time", style="dim")
    if contact is None:
        table.add_column("Contact", style="cyan")
    table.add_column("From", justify="center")
    table.add_column("Message", max_width=80)

    for msg in messages:
        who = "[green]You[/green]" if msg.from_self else "[blue]Them[/blue]"
        row = [msg.timestamp.strftime("%Y-%m-%d %H:%M:%S")]
        if contact is None:
            row.append(Text(msg.contact))
        row += [who, Text(msg.body)]
        table.add_row(*row)

    return table


def contacts_table(contacts: List[str], counts: List[int]) -> Table:
    table = Table(title="Conversations")
    table.add_column("Contact", style="cyan")
    table.add_column("Msgs", justify="right")
    for contact, count in zip(contacts, counts):
        table.add_row(Text(contact), str(count))
    return table

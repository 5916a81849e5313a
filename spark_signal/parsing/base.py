"""Core message dataclass produced by the envelope parser and the send path."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ParsedMessage:
    """One chat message reconstructed from signal-cli output.

    Created by the envelope parser for every ``Body:`` line it sees, or
    directly by the local send path for messages composed here. Consumed
    by the conversation store and the CLI renderers.
    """

    contact: str
    from_self: bool
    body: str
    timestamp: datetime

"""Envelope parser — rebuilds chat messages from signal-cli's text output.

signal-cli prints each received envelope as a block of lines ending in a
blank line, e.g.:

    Envelope from: “Alice” +15550001111 (device: 1) to +15550002222
    Timestamp: 1700000000000 (2023-11-14T22:13:20.000Z)
    Body: hello

    Envelope from: “Me” +15550002222 (device: 2) to +15550002222
    Received sync sent message
      To: “Bob” +15550003333
      Body: hi there

This is a human-oriented log format, not a protocol. Unknown lines are
ignored and a half-formed envelope falls back to the account itself as
the contact rather than raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, List, Optional

from spark_signal.parsing.base import ParsedMessage

logger = logging.getLogger(__name__)

ENVELOPE_PREFIX = "Envelope from:"
SYNC_SENT_MARKER = "Received sync sent message"
TO_PREFIX = "To:"
BODY_PREFIX = "Body:"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ParserState:
    """Context collected for the envelope block currently being read."""

    current_sender: Optional[str] = None
    current_recipient: Optional[str] = None
    in_sync_sent_block: bool = False

    def reset(self):
        self.current_sender = None
        self.current_recipient = None
        self.in_sync_sent_block = False


class EnvelopeParser:
    """Line-at-a-time state machine emitting ParsedMessage events.

    Not thread-safe: feed it from the single consumer of one output stream.
    """

    def __init__(
        self,
        self_identifier: str,
        clock: Optional[Callable[[], datetime]] = None,
        on_unparsed: Optional[Callable[[str], None]] = None,
    ):
        self.self_identifier = self_identifier
        self.state = ParserState()
        self._clock = clock or _utc_now
        self._on_unparsed = on_unparsed

    def feed_line(self, line: str) -> Optional[ParsedMessage]:
        """Process one line. Returns a message when the line is a body."""
        trimmed = line.strip()

        if trimmed.startswith(ENVELOPE_PREFIX):
            # Envelope from: “Name” +4475... (device: 1) to +4475...
            numbers = [tok for tok in trimmed.split() if tok.startswith("+")]
            if numbers:
                self.state.current_sender = numbers[0]
            if len(numbers) >= 2:
                self.state.current_recipient = numbers[1]
        elif SYNC_SENT_MARKER in trimmed:
            self.state.in_sync_sent_block = True
        elif trimmed.startswith(TO_PREFIX):
            tokens = trimmed.split()
            if tokens and tokens[-1].startswith("+"):
                self.state.current_recipient = tokens[-1]
        elif trimmed.startswith(BODY_PREFIX):
            return self._emit(line.split(BODY_PREFIX, 1)[1].strip())
        elif not trimmed:
            self.state.reset()
        else:
            logger.debug("Unparsed line: %s", line)
            if self._on_unparsed is not None:
                self._on_unparsed(line)

        return None

    def feed_lines(self, lines: Iterable[str]) -> Iterator[ParsedMessage]:
        for line in lines:
            message = self.feed_line(line)
            if message is not None:
                yield message

    def parse_text(self, text: str) -> List[ParsedMessage]:
        """Parse complete captured output, e.g. from a finished `receive`."""
        return list(self.feed_lines(text.split("\n")))

    def _resolve_contact(self) -> tuple[str, bool]:
        me = self.self_identifier
        sender = self.state.current_sender
        recipient = self.state.current_recipient

        if self.state.in_sync_sent_block:
            # Our own linked device sent this; the peer is the recipient
            if recipient is not None and recipient != me:
                return recipient, True
            return sender or me, True

        if sender is not None and sender != me:
            return sender, False
        return recipient or me, sender == me

    def _emit(self, body: str) -> ParsedMessage:
        contact, from_self = self._resolve_contact()
        message = ParsedMessage(
            contact=contact,
            from_self=from_self,
            body=body,
            timestamp=self._clock(),
        )
        logger.info(
            "Parsed message for %s: %s %s",
            contact, "[self]" if from_self else "[them]", body,
        )
        return message

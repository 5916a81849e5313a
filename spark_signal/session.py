"""ChatSession — the conversation model behind the CLI.

Glues the one-shot signal-cli commands to the parser and the store, and
tracks which conversation is selected plus the raw output log.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from spark_signal.daemon.supervisor import SignalCli
from spark_signal.parsing.base import ParsedMessage
from spark_signal.parsing.envelope import EnvelopeParser
from spark_signal.store.conversations import ConversationStore

logger = logging.getLogger(__name__)


def contact_from_listing(line: str) -> str:
    """Pull the phone number out of a contact/conversation line.

    The first whitespace token starting with "+" wins; a line without one
    is used whole as the identifier.
    """
    for token in line.split():
        if token.startswith("+"):
            return token
    return line.strip()


class ChatSession:
    def __init__(
        self,
        cli: SignalCli,
        store: ConversationStore,
        self_identifier: str,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.cli = cli
        self.store = store
        self.self_identifier = self_identifier
        self.selected_contact: Optional[str] = None
        self.output_log: List[str] = []
        self._clock = clock

    def log(self, text: str):
        self.output_log.append(text)
        logger.debug("LOG: %s", text)

    def new_parser(self) -> EnvelopeParser:
        return EnvelopeParser(self.self_identifier, clock=self._clock)

    def ingest(self, messages: Iterable[ParsedMessage]) -> List[ParsedMessage]:
        stored = []
        for message in messages:
            self.store.append(message.contact, message)
            if self.selected_contact is None:
                self.selected_contact = message.contact
            stored.append(message)
        return stored

    def ingest_text(self, text: str) -> List[ParsedMessage]:
        """Parse complete signal-cli output and store what it contains."""
        return self.ingest(self.new_parser().parse_text(text))

    def receive_once(self, timeout_seconds: Optional[int] = None) -> List[ParsedMessage]:
        self.log("== Receive messages ==")
        result = self.cli.receive(timeout_seconds)

        messages: List[ParsedMessage] = []
        if result.stdout.strip():
            self.log(result.stdout)
            messages = self.ingest_text(result.stdout)
        else:
            self.log("(no messages)")

        if result.stderr.strip():
            self.log(f"stderr: {result.stderr}")
        return messages

    def list_contacts(self) -> str:
        self.log("== Raw listContacts output ==")
        result = self.cli.list_contacts()
        if result.stdout.strip():
            self.log(result.stdout)
        else:
            self.log("(no contacts)")
        if result.stderr.strip():
            self.log(f"stderr: {result.stderr}")
        return result.stdout

    def send(self, recipient: str, message: str) -> Tuple[bool, Optional[str]]:
        recipient = recipient.strip()
        message = message.strip()
        self.log(f"== Send message to {recipient} ==")

        result = self.cli.send(recipient, message)
        if not result.ok:
            error = result.stderr.strip() or "unknown error"
            self.log(f"Send failed: {error}")
            return False, error

        self.log("Message sent")
        self.store.record_sent(recipient, message, clock=self._clock)
        if self.selected_contact is None:
            self.selected_contact = recipient
        return True, None

    def select_conversation(self, line: str) -> str:
        contact = contact_from_listing(line)
        self.selected_contact = contact
        self.log(f"Selected conversation: {line}")
        return contact

    def clear_selection(self):
        self.selected_contact = None

    def visible_messages(self) -> List[ParsedMessage]:
        return self.store.messages_for(self.selected_contact)

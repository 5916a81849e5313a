"""ConversationStore — in-memory index of messages per contact.

Append-only: no deletion, no edits, no de-duplication. A message the
daemon delivers twice is stored twice.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from spark_signal.daemon.events import EventBus, MessageStored
from spark_signal.parsing.base import ParsedMessage

logger = logging.getLogger(__name__)


class ConversationStore:
    """Maps contact identifier → messages in arrival order.

    Every contact present has at least one message. Writes and reads are
    serialised on one lock, so a UI thread may read while the receive path
    writes.
    """

    def __init__(self, bus: Optional[EventBus] = None):
        self._lock = threading.RLock()
        self._by_contact: Dict[str, List[ParsedMessage]] = {}
        self._arrivals: List[ParsedMessage] = []
        self._bus = bus

    def append(self, contact: str, message: ParsedMessage):
        with self._lock:
            self._by_contact.setdefault(contact, []).append(message)
            self._arrivals.append(message)
        logger.debug("Stored message for %s (%d total)", contact, len(self))
        if self._bus is not None:
            self._bus.publish(MessageStored(message))

    def record_sent(
        self,
        recipient: str,
        body: str,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> ParsedMessage:
        """Store a message composed locally, bypassing the parser."""
        now = clock() if clock else datetime.now(timezone.utc)
        message = ParsedMessage(contact=recipient, from_self=True, body=body, timestamp=now)
        self.append(recipient, message)
        return message

    def messages_for(self, contact: Optional[str] = None) -> List[ParsedMessage]:
        """Messages for one contact, or every message by timestamp when None.

        The merged view is a stable sort, so equal timestamps keep their
        insertion order.
        """
        with self._lock:
            if contact is not None:
                return list(self._by_contact.get(contact, []))
            merged = list(self._arrivals)
        return sorted(merged, key=lambda m: m.timestamp)

    def contacts(self) -> List[str]:
        """Contacts in the order they were first seen."""
        with self._lock:
            return list(self._by_contact)

    def __contains__(self, contact: object) -> bool:
        with self._lock:
            return contact in self._by_contact

    def __len__(self) -> int:
        with self._lock:
            return len(self._arrivals)

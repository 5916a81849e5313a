"""Typed event bus connecting the supervisor, provisioning and the UI.

Subscribers register for one event class and get a Subscription back;
dropping interest is an explicit `unsubscribe()` (or leaving a `with`
block), so nothing lingers in process-wide notification state.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Type

from spark_signal.parsing.base import ParsedMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DaemonReady:
    socket_path: str


@dataclass(frozen=True)
class Linked:
    pass


@dataclass(frozen=True)
class PairingCodeReceived:
    """The link process printed its provisioning URI (it keeps running)."""

    uri: str


@dataclass(frozen=True)
class ProcessOutput:
    process: str
    stream: str
    line: str


@dataclass(frozen=True)
class ProcessExited:
    process: str
    returncode: int


@dataclass(frozen=True)
class ProcessFailed:
    process: str
    error: str


@dataclass(frozen=True)
class MessageStored:
    message: ParsedMessage


Handler = Callable[[object], None]


class Subscription:
    """Handle returned by EventBus.subscribe."""

    def __init__(self, bus: EventBus, event_type: Type, handler: Handler):
        self._bus = bus
        self.event_type = event_type
        self.handler = handler
        self.active = True

    def unsubscribe(self):
        if self.active:
            self._bus._remove(self)
            self.active = False

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()


class EventBus:
    """Synchronous publish/subscribe keyed on the exact event class."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: Dict[Type, List[Subscription]] = {}

    def subscribe(self, event_type: Type, handler: Handler) -> Subscription:
        sub = Subscription(self, event_type, handler)
        with self._lock:
            self._subscriptions.setdefault(event_type, []).append(sub)
        return sub

    def _remove(self, sub: Subscription):
        with self._lock:
            subs = self._subscriptions.get(sub.event_type, [])
            if sub in subs:
                subs.remove(sub)

    def publish(self, event: object):
        """Deliver an event to its subscribers, in registration order.

        Handlers run on the publishing thread. One handler failing does not
        keep the others from seeing the event.
        """
        with self._lock:
            subs = list(self._subscriptions.get(type(event), []))

        for sub in subs:
            try:
                sub.handler(event)
            except Exception:
                logger.exception("Handler for %s failed", type(event).__name__)

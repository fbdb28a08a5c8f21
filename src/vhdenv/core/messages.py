"""
vhdenv notification channel.

A one-way publish/subscribe bus that carries progress and error text from
the lifecycle worker to whoever renders it (console, log file). Publishing
never blocks the worker: every subscriber is called on a small thread pool,
and anything a subscriber raises is swallowed.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Protocol

from vhdenv.core.logging import get_logger

logger = get_logger(__name__)


class Severity(Enum):
    """Kind of a published message."""

    TRACE = auto()
    WARNING = auto()
    ERROR = auto()
    EXIT = auto()


@dataclass(frozen=True)
class Message:
    """A single notification."""

    severity: Severity
    context: str
    text: str = ""
    data: Any = None
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        parts = [self.severity.name]
        content = ": ".join(part for part in (self.context, self.text) if part)
        if content:
            parts.append(content)
        return ": ".join(parts)


class Subscriber(Protocol):
    def receive(self, message: Message) -> None: ...


class Notifier(Protocol):
    """The capability the lifecycle components depend on."""

    def publish(
        self,
        severity: Severity,
        context: str,
        text: str = "",
        data: Any = None,
    ) -> None: ...


def _normalize(text: Any) -> str:
    if text is None:
        return ""
    if isinstance(text, (list, tuple)):
        text = "\n".join(str(line) for line in text)
    lines = [line.strip() for line in str(text).splitlines()]
    return "\n".join(line for line in lines if line)


class MessageBus:
    """
    Fan-out of messages to subscribers, fire-and-forget.

    Each subscriber gets its own single-thread dispatcher, so messages reach a
    subscriber in publish order while a slow subscriber delays nobody else.
    """

    def __init__(self) -> None:
        self._dispatchers: dict[int, tuple[Subscriber, ThreadPoolExecutor]] = {}
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self, subscriber: Subscriber) -> None:
        if subscriber is None:
            raise ValueError("Subscriber must not be None")
        with self._lock:
            if self._closed or id(subscriber) in self._dispatchers:
                return
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vhdenv-bus")
            self._dispatchers[id(subscriber)] = (subscriber, executor)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            entry = self._dispatchers.pop(id(subscriber), None)
        if entry is not None:
            entry[1].shutdown(wait=False)

    def publish(
        self,
        severity: Severity,
        context: str,
        text: Any = "",
        data: Any = None,
    ) -> None:
        message = Message(
            severity=severity,
            context=(context or "").strip(),
            text=_normalize(text),
            data=data,
        )
        with self._lock:
            if self._closed:
                return
            dispatchers = list(self._dispatchers.values())

        for subscriber, executor in dispatchers:
            try:
                executor.submit(self._deliver, subscriber, message)
            except RuntimeError:
                # unsubscribed concurrently
                continue

    @staticmethod
    def _deliver(subscriber: Subscriber, message: Message) -> None:
        try:
            subscriber.receive(message)
        except Exception as e:
            logger.debug("Subscriber error", subscriber=repr(subscriber), error=str(e))

    def close(self, wait: bool = True) -> None:
        """Stop accepting messages, optionally draining pending deliveries."""
        with self._lock:
            self._closed = True
            dispatchers = list(self._dispatchers.values())
            self._dispatchers.clear()
        for _, executor in dispatchers:
            executor.shutdown(wait=wait)


class LogSubscriber:
    """Forwards every message to the structured log."""

    _LEVELS = {
        Severity.TRACE: "info",
        Severity.WARNING: "warning",
        Severity.ERROR: "error",
        Severity.EXIT: "info",
    }

    def __init__(self, name: str = "vhdenv.messages") -> None:
        self.logger = get_logger(name)

    def receive(self, message: Message) -> None:
        if message.severity is Severity.EXIT and not message.text:
            return
        log = getattr(self.logger, self._LEVELS[message.severity])
        log(message.text or message.context, context=message.context)

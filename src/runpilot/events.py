"""Domain events and event bus contracts.

These are the push-channel payloads: every registry mutation is fanned out to
subscribers as one of the events below.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from uuid import uuid4

from runpilot.time import utc_now

if TYPE_CHECKING:
    from runpilot.models.entities import Autopilot, Message, Run, RunSummary


def _new_event_id() -> str:
    return uuid4().hex


class DomainEvent(Protocol):
    """Base protocol for all domain events."""

    @property
    def event_id(self) -> str: ...

    @property
    def occurred_at(self) -> datetime: ...


EventHandler = Callable[[DomainEvent], None]
EventPublisher = Callable[[DomainEvent], None]


class EventBus(Protocol):
    """Fan-out bus for domain events."""

    def emit(self, event: DomainEvent) -> None:
        """Deliver an event to handlers and subscriber queues without yielding."""
        ...

    async def publish(self, event: DomainEvent) -> None:
        """Publish a single event to subscribers."""
        ...

    def subscribe(self, event_type: type[DomainEvent] | None = None) -> AsyncIterator[DomainEvent]:
        """Subscribe to events (optionally filtered by type)."""
        ...

    def add_handler(
        self,
        handler: EventHandler,
        event_type: type[DomainEvent] | None = None,
    ) -> None:
        """Register a sync handler for events (client projections use this)."""
        ...

    def remove_handler(self, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        ...


@dataclass(frozen=True)
class RunUpserted:
    run: Run
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class RunsIndexPublished:
    """Full recency-sorted projection of every run."""

    runs: tuple[RunSummary, ...]
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class AutopilotUpserted:
    autopilot: Autopilot
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class MessagePosted:
    message: Message
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class AgentTyping:
    """Transient "working" signal emitted before each step."""

    user_id: str
    channel_id: str
    parent_id: str | None
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class StateSnapshot:
    """Initial state handed to a newly attached subscriber."""

    runs: tuple[Run, ...]
    autopilots: tuple[Autopilot, ...]
    messages: tuple[Message, ...]
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=utc_now)


__all__ = [
    "AgentTyping",
    "AutopilotUpserted",
    "DomainEvent",
    "EventBus",
    "EventHandler",
    "EventPublisher",
    "MessagePosted",
    "RunUpserted",
    "RunsIndexPublished",
    "StateSnapshot",
]

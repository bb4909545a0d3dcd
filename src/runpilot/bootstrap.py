"""Application bootstrap and dependency injection.

This module provides the AppContext which wires the registry, engine,
scheduler and event bus together. It is the single point of configuration
for the application and enables clean dependency injection for testing.

Usage:
    async with bootstrap_app() as ctx:
        run = await ctx.api.submit_command(command)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from runpilot.config import RunpilotConfig
from runpilot.events import DomainEvent, EventBus, EventHandler
from runpilot.limits import ACCELERATED_SCHEDULER_TICK_SECONDS
from runpilot.time import utc_now

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from runpilot.api import RunpilotAPI
    from runpilot.services.autopilots import AutopilotService
    from runpilot.services.engine import RunEngine
    from runpilot.services.planner import PlanProposer
    from runpilot.services.registry import RunRegistry
    from runpilot.services.scheduler import AutopilotScheduler
    from runpilot.time import Clock

log = logging.getLogger(__name__)


class InMemoryEventBus:
    """Simple event bus with fan-out to handlers and async subscribers.

    ``emit`` delivers synchronously so the registry can publish inside the
    mutation that produced an event. This implementation is suitable for
    single-process use. Events are not persisted or replayed; new subscribers
    only receive future events.
    """

    def __init__(self, *, queue_size: int = 100) -> None:
        self._handlers: list[tuple[type[DomainEvent] | None, EventHandler]] = []
        self._queues: list[tuple[type[DomainEvent] | None, asyncio.Queue[DomainEvent]]] = []
        self._queue_size = queue_size

    def emit(self, event: DomainEvent) -> None:
        """Deliver event to all matching handlers and subscribers without yielding."""
        for filter_type, handler in list(self._handlers):
            if filter_type is None or isinstance(event, filter_type):
                try:
                    handler(event)
                except Exception:
                    log.exception("Event handler failed for %s", type(event).__name__)

        for filter_type, queue in list(self._queues):
            if filter_type is None or isinstance(event, filter_type):
                with contextlib.suppress(asyncio.QueueFull):
                    queue.put_nowait(event)

    async def publish(self, event: DomainEvent) -> None:
        """Publish event to all matching handlers and subscribers."""
        self.emit(event)

    def add_handler(
        self,
        handler: EventHandler,
        event_type: type[DomainEvent] | None = None,
    ) -> None:
        """Register a synchronous handler for events."""
        self._handlers.append((event_type, handler))

    def remove_handler(self, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        self._handlers = [(t, h) for t, h in self._handlers if h is not handler]

    async def subscribe(
        self, event_type: type[DomainEvent] | None = None
    ) -> AsyncIterator[DomainEvent]:
        """Subscribe to events, yielding them as they arrive."""
        queue: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=self._queue_size)
        self._queues.append((event_type, queue))
        try:
            while True:
                event = await queue.get()
                yield event
        finally:
            self._queues = [(t, q) for t, q in self._queues if q is not queue]


@dataclass
class AppContext:
    """Central container for application dependencies.

    Attributes:
        config: Application configuration.
        event_bus: Push channel for domain events.
        registry: Authoritative run, autopilot and message table.
        engine: Run lifecycle engine.
        autopilots: Autopilot editing and firing.
        scheduler: Periodic autopilot due-check loop.
        api: Typed command surface.
    """

    config: RunpilotConfig
    event_bus: EventBus = field(default_factory=InMemoryEventBus)
    config_path: Path | None = None

    registry: RunRegistry = field(init=False)
    engine: RunEngine = field(init=False)
    autopilots: AutopilotService = field(init=False)
    scheduler: AutopilotScheduler = field(init=False)
    api: RunpilotAPI = field(init=False)

    async def close(self) -> None:
        """Stop the scheduler first so no new runs start, then the run drivers."""
        if hasattr(self, "scheduler"):
            await self.scheduler.stop()
        if hasattr(self, "engine"):
            await self.engine.shutdown()


def create_app_context(
    *,
    config: RunpilotConfig | None = None,
    config_path: Path | None = None,
    proposer: PlanProposer | None = None,
    event_bus: EventBus | None = None,
    clock: Clock = utc_now,
) -> AppContext:
    """Create a fully wired AppContext (non-context-manager)."""
    if config is None:
        config = RunpilotConfig.load(config_path)

    from runpilot.api import RunpilotAPI
    from runpilot.services.autopilots import AutopilotService
    from runpilot.services.engine import RunEngine
    from runpilot.services.planner import build_plan_proposer
    from runpilot.services.policies import build_approval_policies
    from runpilot.services.registry import RunRegistry
    from runpilot.services.scheduler import AutopilotScheduler

    ctx = AppContext(
        config=config,
        event_bus=event_bus or InMemoryEventBus(),
        config_path=config_path,
    )
    ctx.registry = RunRegistry(ctx.event_bus.emit, clock=clock)
    ctx.engine = RunEngine(
        ctx.registry,
        proposer or build_plan_proposer(config.planner),
        ctx.event_bus.emit,
        timing=config.timing,
        policies=build_approval_policies(config.approval),
        created_by=config.general.created_by,
    )
    ctx.autopilots = AutopilotService(ctx.registry, ctx.engine, clock=clock)
    timing = config.timing
    ctx.scheduler = AutopilotScheduler(
        ctx.registry.list_autopilots,
        ctx.autopilots.dispatch,
        clock=clock,
        tick_seconds=(
            ACCELERATED_SCHEDULER_TICK_SECONDS if timing.accelerated else timing.scheduler_tick_seconds
        ),
        accelerated=timing.accelerated,
    )
    ctx.api = RunpilotAPI(ctx)
    return ctx


@asynccontextmanager
async def bootstrap_app(
    config_path: Path | None = None,
    *,
    config: RunpilotConfig | None = None,
    proposer: PlanProposer | None = None,
    clock: Clock = utc_now,
    start_scheduler: bool = False,
) -> AsyncIterator[AppContext]:
    """Bootstrap the application context with all services wired.

    Args:
        config_path: Path to the config.toml file (defaults to the user config).
        config: Optional pre-loaded config (for testing).
        proposer: Optional plan proposer override.
        clock: Wall clock used for timestamps and due checks.
        start_scheduler: Start the autopilot loop on entry.

    Yields:
        Fully initialized AppContext.
    """
    ctx = create_app_context(config=config, config_path=config_path, proposer=proposer, clock=clock)
    try:
        if start_scheduler:
            ctx.scheduler.start()
        yield ctx
    finally:
        await ctx.close()


__all__ = ["AppContext", "InMemoryEventBus", "bootstrap_app", "create_app_context"]

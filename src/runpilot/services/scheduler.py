"""Autopilot scheduler: a periodic due-check over enabled autopilots.

Due-ness compares wall-clock time elapsed since ``last_run_at`` with the
cadence interval, so tick frequency never changes how often an autopilot
fires and a missed tick fires once rather than catching up repeatedly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from runpilot.debug_log import log as debug_log
from runpilot.limits import (
    ACCELERATED_SCHEDULER_TICK_SECONDS,
    DEFAULT_CUSTOM_CADENCE_MINUTES,
    SCHEDULER_TICK_SECONDS,
)
from runpilot.models.enums import CadenceKind
from runpilot.time import utc_now
from runpilot.utils import BackgroundTasks

if TYPE_CHECKING:
    from runpilot.models.entities import Autopilot, Cadence
    from runpilot.time import Clock

log = logging.getLogger(__name__)

type AutopilotSource = Callable[[], Iterable[Autopilot]]
type AutopilotDispatch = Callable[[Autopilot, datetime], Awaitable[object]]

_INTERVALS: dict[CadenceKind, timedelta] = {
    CadenceKind.HOURLY: timedelta(hours=1),
    CadenceKind.DAILY: timedelta(days=1),
    CadenceKind.WEEKDAY: timedelta(days=1),
    CadenceKind.WEEKLY: timedelta(days=7),
}


def cadence_interval(cadence: Cadence, *, accelerated: bool = False) -> timedelta:
    """Minimum time between two firings of an autopilot with ``cadence``."""
    kind = CadenceKind(cadence.kind)
    every_minutes = getattr(cadence, "every_minutes", None) or DEFAULT_CUSTOM_CADENCE_MINUTES
    if accelerated:
        if kind is CadenceKind.HOURLY:
            return timedelta(seconds=20)
        if kind is CadenceKind.CUSTOM:
            return timedelta(seconds=max(10, every_minutes * 5))
        return timedelta(seconds=60)
    if kind is CadenceKind.CUSTOM:
        return timedelta(minutes=every_minutes)
    return _INTERVALS.get(kind, timedelta(days=1))


def is_due(autopilot: Autopilot, now: datetime, *, accelerated: bool = False) -> bool:
    if not autopilot.enabled:
        return False
    if autopilot.last_run_at is None:
        return True
    return now - autopilot.last_run_at >= cadence_interval(autopilot.cadence, accelerated=accelerated)


class AutopilotScheduler:
    """Fires due autopilots through an injected dispatch function."""

    def __init__(
        self,
        list_autopilots: AutopilotSource,
        dispatch: AutopilotDispatch,
        *,
        clock: Clock = utc_now,
        tick_seconds: float | None = None,
        accelerated: bool = False,
    ) -> None:
        self._list_autopilots = list_autopilots
        self._dispatch = dispatch
        self._clock = clock
        self._accelerated = accelerated
        if tick_seconds is None:
            tick_seconds = (
                ACCELERATED_SCHEDULER_TICK_SECONDS if accelerated else SCHEDULER_TICK_SECONDS
            )
        self._tick_seconds = tick_seconds
        self._tasks = BackgroundTasks()
        self._loop_task: asyncio.Task[None] | None = None

    @property
    def tick_seconds(self) -> float:
        return self._tick_seconds

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def tick(self, now: datetime | None = None) -> list[str]:
        """Dispatch every due autopilot once; returns the ids that fired."""
        now = now or self._clock()
        fired: list[str] = []
        for autopilot in list(self._list_autopilots()):
            if not is_due(autopilot, now, accelerated=self._accelerated):
                continue
            fired.append(autopilot.id)
            try:
                await self._dispatch(autopilot, now)
            except Exception:
                log.exception("Autopilot dispatch failed: %s", autopilot.id)
                debug_log.error("Autopilot dispatch failed", autopilot_id=autopilot.id)
        return fired

    def start(self) -> None:
        if self.running:
            return
        self._loop_task = self._tasks.spawn(self._run_loop(), name="autopilot-scheduler")

    async def stop(self) -> None:
        await self._tasks.shutdown()
        self._loop_task = None

    async def _run_loop(self) -> None:
        debug_log.info("Autopilot scheduler started", tick_seconds=self._tick_seconds)
        while True:
            await asyncio.sleep(self._tick_seconds)
            await self.tick()


__all__ = [
    "AutopilotDispatch",
    "AutopilotScheduler",
    "AutopilotSource",
    "cadence_interval",
    "is_due",
]

"""Unattended agenda display: two independent periodic tasks.

One task re-fetches the agenda (default every 5 minutes); the other only
moves the clock (default every minute). Both start with an immediate tick,
are cancelled together by ``stop()``, and skip ticks they missed instead of
running them late.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone, tzinfo
from typing import Any, Awaitable, Callable, Dict, List, Optional

from dateutil.parser import isoparse

from common.timeutils import to_local

from .source import AgendaUnavailableError

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_SECONDS = 300
CLOCK_INTERVAL_SECONDS = 60

STATUS_LABELS = {
    "pending": "Pending",
    "confirmed": "Confirmed",
}


def next_tick(previous: float, interval: float, now: float) -> float:
    """
    Deadline of the next tick after ``previous``.

    Deadlines already in the past are dropped, so a slow callback never
    causes a burst of catch-up runs.
    """
    deadline = previous + interval
    if deadline <= now:
        missed = int((now - deadline) // interval) + 1
        deadline += missed * interval
    return deadline


class PeriodicTask:
    """Runs an async callback on a fixed interval until stopped."""

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[None]],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        deadline = self._clock()
        while True:
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic task %s failed; retrying next tick", self.name)
            deadline = next_tick(deadline, self.interval, self._clock())
            await asyncio.sleep(max(0.0, deadline - self._clock()))


class AgendaDisplay:
    """
    Holds the latest agenda and clock reading and re-renders on each tick.

    Parameters
    ----------
    source : Callable[[], Awaitable[List[dict]]]
        Returns agenda days; swappable for push-based sources.
    render : Callable[[AgendaDisplay], None]
        Draws the current state.
    zone : tzinfo
        Timezone of the screen; the clock and booking times are shown in it.
    """

    def __init__(
        self,
        source: Callable[[], Awaitable[List[Dict[str, Any]]]],
        render: Callable[["AgendaDisplay"], None],
        refresh_interval: float = REFRESH_INTERVAL_SECONDS,
        clock_interval: float = CLOCK_INTERVAL_SECONDS,
        zone: tzinfo = timezone.utc,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._source = source
        self._render = render
        self.zone = zone
        self._now = now or (lambda: datetime.now(zone))
        self.days: List[Dict[str, Any]] = []
        self.current_time: datetime = self._now()
        self.last_error: Optional[str] = None
        self.refresh_task = PeriodicTask("agenda-refresh", refresh_interval, self.refresh)
        self.clock_task = PeriodicTask("agenda-clock", clock_interval, self.tick_clock)

    async def refresh(self) -> None:
        try:
            self.days = await self._source()
            self.last_error = None
        except AgendaUnavailableError as exc:
            logger.warning("Agenda refresh failed, keeping previous data: %s", exc)
            self.last_error = str(exc)
        self._render(self)

    async def tick_clock(self) -> None:
        self.current_time = self._now()
        self._render(self)

    async def start(self) -> None:
        self.refresh_task.start()
        self.clock_task.start()

    async def stop(self) -> None:
        await self.refresh_task.stop()
        await self.clock_task.stop()

    async def __aenter__(self) -> "AgendaDisplay":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def _hhmm(value: str, zone: tzinfo) -> str:
    # naive timestamps are UTC, the service's storage convention
    return to_local(isoparse(value), zone).strftime("%H:%M")


def render_text(display: AgendaDisplay) -> str:
    """Plain-text frame: clock line, then one block per day."""
    lines = [display.current_time.strftime("%H:%M  %A, %d/%m/%Y"), ""]
    if display.last_error:
        lines.append(f"(showing last known agenda: {display.last_error})")
    if not display.days:
        lines.append("No bookings in the next 7 days")
    for day in display.days:
        lines.append(day["label"].upper())
        for entry in day["bookings"]:
            status = STATUS_LABELS.get(entry["status"], entry["status"].title())
            lines.append(
                f"  {_hhmm(entry['start_time'], display.zone)}-{_hhmm(entry['end_time'], display.zone)}  "
                f"{entry['room_name']}  {entry['client_name']}  [{status}]"
            )
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"

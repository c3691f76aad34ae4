"""Run the lobby agenda display in a terminal: ``python -m agenda_display``."""
import asyncio
import logging
import os
import sys

from common.timeutils import resolve_timezone

from .circuit_breaker import CircuitBreaker
from .display import (
    CLOCK_INTERVAL_SECONDS,
    REFRESH_INTERVAL_SECONDS,
    AgendaDisplay,
    render_text,
)
from .source import HttpAgendaSource

AGENDA_API_URL = os.getenv("AGENDA_API_URL", "http://localhost:8003")
AGENDA_API_TOKEN = os.getenv("AGENDA_API_TOKEN", "")
REFRESH_SECONDS = float(os.getenv("AGENDA_REFRESH_SECONDS", REFRESH_INTERVAL_SECONDS))
CLOCK_SECONDS = float(os.getenv("AGENDA_CLOCK_SECONDS", CLOCK_INTERVAL_SECONDS))
AGENDA_TIMEZONE = os.getenv("AGENDA_TIMEZONE", "UTC")

CLEAR_SCREEN = "\033[2J\033[H"


def print_frame(display: AgendaDisplay) -> None:
    sys.stdout.write(CLEAR_SCREEN + render_text(display))
    sys.stdout.flush()


async def run() -> None:
    zone = resolve_timezone(AGENDA_TIMEZONE)
    source = HttpAgendaSource(
        AGENDA_API_URL,
        AGENDA_API_TOKEN,
        timezone_name=AGENDA_TIMEZONE,
        breaker=CircuitBreaker(name="bookings_agenda", max_failures=3, reset_timeout_seconds=60),
    )
    async with AgendaDisplay(
        source,
        print_frame,
        refresh_interval=REFRESH_SECONDS,
        clock_interval=CLOCK_SECONDS,
        zone=zone,
    ):
        await asyncio.Event().wait()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    if not AGENDA_API_TOKEN:
        logging.getLogger("agenda_display").warning("AGENDA_API_TOKEN is empty; requests will be rejected")
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from agenda_display.circuit_breaker import CircuitBreaker
from agenda_display.display import AgendaDisplay, PeriodicTask, next_tick, render_text
from agenda_display.source import AGENDA_PATH, AgendaUnavailableError, HttpAgendaSource

FIXED_NOW = datetime(2026, 10, 19, 15, 30)
MINUS_THREE = timezone(timedelta(hours=-3))

DAYS = [
    {
        "date": "2026-10-20",
        "label": "tomorrow",
        "bookings": [
            {
                "id": 7,
                "start_time": "2026-10-20T10:00:00",
                "end_time": "2026-10-20T11:00:00",
                "status": "confirmed",
                "client_name": "Ana Souza",
                "room_name": "Sala Wetzel",
            }
        ],
    }
]


class FakeSource:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.mark.parametrize(
    "previous, interval, now, expected",
    [
        (0, 10, 5, 10),
        (0, 10, 10, 20),
        (0, 10, 25, 30),
        (100, 60, 100, 160),
    ],
)
def test_next_tick_skips_missed_deadlines(previous, interval, now, expected):
    assert next_tick(previous, interval, now) == expected


def test_periodic_task_rejects_non_positive_interval():
    async def noop():
        pass

    with pytest.raises(ValueError):
        PeriodicTask("bad", 0, noop)


def test_periodic_task_runs_until_stopped():
    calls = []

    async def callback():
        calls.append(1)

    async def scenario():
        task = PeriodicTask("tick", 0.01, callback)
        task.start()
        assert task.running
        await asyncio.sleep(0.05)
        await task.stop()
        assert not task.running
        count = len(calls)
        await asyncio.sleep(0.03)
        return count

    count = asyncio.run(scenario())
    assert count >= 2
    assert len(calls) == count


def test_periodic_task_survives_callback_errors():
    calls = []

    async def flaky():
        calls.append(1)
        raise RuntimeError("boom")

    async def scenario():
        task = PeriodicTask("flaky", 0.01, flaky)
        task.start()
        await asyncio.sleep(0.05)
        still_running = task.running
        await task.stop()
        return still_running

    assert asyncio.run(scenario()) is True
    assert len(calls) >= 2


def test_display_refresh_keeps_last_data_on_failure():
    frames = []
    source = FakeSource(DAYS, AgendaUnavailableError("down"))
    display = AgendaDisplay(source, frames.append, now=lambda: FIXED_NOW)

    asyncio.run(display.refresh())
    assert display.days == DAYS
    assert display.last_error is None

    asyncio.run(display.refresh())
    assert display.days == DAYS
    assert display.last_error == "down"
    assert len(frames) == 2


def test_clock_tick_does_not_fetch():
    source = FakeSource(DAYS)
    moments = iter([FIXED_NOW, FIXED_NOW + timedelta(minutes=1)])
    display = AgendaDisplay(source, lambda d: None, now=lambda: next(moments))

    asyncio.run(display.tick_clock())
    assert display.current_time == FIXED_NOW + timedelta(minutes=1)
    assert source.calls == 0


def test_display_start_ticks_both_tasks_immediately_and_stops():
    frames = []
    source = FakeSource(DAYS)

    async def scenario():
        display = AgendaDisplay(
            source,
            frames.append,
            refresh_interval=3600,
            clock_interval=3600,
            now=lambda: FIXED_NOW,
        )
        async with display:
            await asyncio.sleep(0.02)
            assert display.refresh_task.running
            assert display.clock_task.running
        return display

    display = asyncio.run(scenario())
    assert source.calls == 1
    assert len(frames) == 2
    assert not display.refresh_task.running
    assert not display.clock_task.running


def test_render_text():
    display = AgendaDisplay(FakeSource(DAYS), lambda d: None, now=lambda: FIXED_NOW)
    display.days = DAYS
    frame = render_text(display)

    assert frame.startswith("15:30  Monday, 19/10/2026")
    assert "TOMORROW" in frame
    assert "10:00-11:00  Sala Wetzel  Ana Souza  [Confirmed]" in frame


def test_render_text_empty_with_error():
    display = AgendaDisplay(FakeSource([]), lambda d: None, now=lambda: FIXED_NOW)
    display.last_error = "timeout"
    frame = render_text(display)

    assert "(showing last known agenda: timeout)" in frame
    assert "No bookings in the next 7 days" in frame


def test_http_source_fetches_days():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"generated_at": "2026-10-19T15:30:00", "days": DAYS})

    source = HttpAgendaSource("http://bookings.local/", "tok", transport=httpx.MockTransport(handler))
    days = asyncio.run(source())

    assert days == DAYS
    assert seen[0].url.path == AGENDA_PATH
    assert seen[0].headers["Authorization"] == "Bearer tok"


def test_http_source_opens_circuit_after_failures():
    hits = []

    def handler(request: httpx.Request) -> httpx.Response:
        hits.append(request)
        return httpx.Response(503, json={"detail": "down"})

    breaker = CircuitBreaker(name="test", max_failures=2, reset_timeout_seconds=60)
    source = HttpAgendaSource("http://bookings.local", "tok", breaker=breaker, transport=httpx.MockTransport(handler))

    for _ in range(2):
        with pytest.raises(AgendaUnavailableError):
            asyncio.run(source())
    assert breaker.state == "open"

    with pytest.raises(AgendaUnavailableError, match="circuit open"):
        asyncio.run(source())
    assert len(hits) == 2


def test_http_source_wraps_connection_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    source = HttpAgendaSource("http://bookings.local", "tok", transport=httpx.MockTransport(handler))
    with pytest.raises(AgendaUnavailableError):
        asyncio.run(source())


def test_circuit_breaker_half_open_recovery():
    moments = [datetime(2026, 10, 19, 12, 0)]
    breaker = CircuitBreaker(name="test", max_failures=1, reset_timeout_seconds=30, clock=lambda: moments[0])

    breaker.record_failure()
    assert not breaker.allow_request()

    moments[0] += timedelta(seconds=31)
    assert breaker.allow_request()
    assert breaker.state == "half_open"

    breaker.record_failure()
    assert breaker.state == "open"

    moments[0] += timedelta(seconds=31)
    assert breaker.allow_request()
    breaker.record_success()
    assert breaker.state == "closed"
    assert breaker.failure_count == 0


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>proxy</html>"),
        httpx.Response(200, json={"generated_at": "2026-10-19T15:30:00"}),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json={"days": "tomorrow"}),
    ],
)
def test_http_source_rejects_malformed_body(response):
    breaker = CircuitBreaker(name="test", max_failures=3)
    source = HttpAgendaSource(
        "http://bookings.local",
        "tok",
        breaker=breaker,
        transport=httpx.MockTransport(lambda request: response),
    )

    with pytest.raises(AgendaUnavailableError, match="Malformed"):
        asyncio.run(source())
    assert breaker.failure_count == 1


def test_display_keeps_rendering_after_malformed_response():
    responses = iter([
        httpx.Response(200, json={"generated_at": "2026-10-19T15:30:00", "days": DAYS}),
        httpx.Response(200, text="<html>proxy</html>"),
    ])
    source = HttpAgendaSource(
        "http://bookings.local", "tok", transport=httpx.MockTransport(lambda request: next(responses))
    )
    frames = []
    display = AgendaDisplay(source, frames.append, now=lambda: FIXED_NOW)

    asyncio.run(display.refresh())
    asyncio.run(display.refresh())

    assert display.days == DAYS
    assert "Malformed" in display.last_error
    assert len(frames) == 2


def test_http_source_sends_display_timezone():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"days": []})

    source = HttpAgendaSource(
        "http://bookings.local", "tok", timezone_name="America/Sao_Paulo", transport=httpx.MockTransport(handler)
    )
    assert asyncio.run(source()) == []
    assert seen[0].url.params["tz"] == "America/Sao_Paulo"


def test_render_text_uses_display_timezone():
    days = [
        {
            "date": "2026-10-19",
            "label": "today",
            "bookings": [
                {
                    "id": 3,
                    "start_time": "2026-10-20T00:30:00Z",
                    "end_time": "2026-10-20T01:30:00Z",
                    "status": "pending",
                    "client_name": "Ana",
                    "room_name": "Room A",
                }
            ],
        }
    ]
    display = AgendaDisplay(
        FakeSource(days),
        lambda d: None,
        zone=MINUS_THREE,
        now=lambda: datetime(2026, 10, 19, 21, 0, tzinfo=MINUS_THREE),
    )
    display.days = days
    frame = render_text(display)

    assert frame.startswith("21:00  Monday, 19/10/2026")
    assert "TODAY" in frame
    assert "21:30-22:30  Room A  Ana  [Pending]" in frame


def test_default_clock_reads_display_timezone():
    display = AgendaDisplay(FakeSource([]), lambda d: None, zone=MINUS_THREE)
    assert display.current_time.utcoffset() == timedelta(hours=-3)

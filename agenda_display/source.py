"""Fetches the grouped agenda from the bookings service."""
import logging
from typing import Any, Dict, List, Optional

import httpx

from .circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

AGENDA_PATH = "/api/v1/agenda"


class AgendaUnavailableError(Exception):
    """The agenda could not be fetched; the display keeps its last data."""


class HttpAgendaSource:
    """
    Async callable returning the agenda days as plain dicts.

    Parameters
    ----------
    base_url : str
        Root URL of the bookings service.
    token : str
        Bearer token with the 'display' (or 'admin') role.
    timezone_name : Optional[str]
        IANA zone sent as ``tz`` so days are grouped by the display's calendar.
    breaker : Optional[CircuitBreaker]
        Stops calling a failing service for a while.
    transport : Optional[httpx.AsyncBaseTransport]
        Custom transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timezone_name: Optional[str] = None,
        breaker: Optional[CircuitBreaker] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"}
        self._params = {"tz": timezone_name} if timezone_name else {}
        self._breaker = breaker or CircuitBreaker(name="bookings_agenda")
        self._timeout = timeout
        self._transport = transport

    async def __call__(self) -> List[Dict[str, Any]]:
        if not self._breaker.allow_request():
            raise AgendaUnavailableError("Bookings service temporarily unavailable (circuit open)")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(
                    f"{self.base_url}{AGENDA_PATH}", headers=self._headers, params=self._params
                )
        except httpx.RequestError as exc:
            self._breaker.record_failure()
            raise AgendaUnavailableError(f"Failed to contact bookings service: {exc}") from exc

        if response.status_code != 200:
            self._breaker.record_failure()
            raise AgendaUnavailableError(
                f"Bookings service returned {response.status_code} for the agenda"
            )

        try:
            days = response.json()["days"]
        except (ValueError, KeyError, TypeError) as exc:
            self._breaker.record_failure()
            raise AgendaUnavailableError(f"Malformed agenda response: {exc}") from exc
        if not isinstance(days, list):
            self._breaker.record_failure()
            raise AgendaUnavailableError("Malformed agenda response: 'days' is not a list")

        self._breaker.record_success()
        return days

# bookings_service/rate_limiter.py
import os
import time
from typing import Dict, List

from fastapi import HTTPException, Request, status

# Simple sliding-window rate limiter: N requests / WINDOW seconds per IP+path
WINDOW_SECONDS = 60
MAX_REQUESTS_PER_WINDOW = 10

_request_log: Dict[str, List[float]] = {}


def _evict_stale(window_start: float) -> None:
    # Keys whose newest request left the window would otherwise accumulate per IP.
    stale = [key for key, timestamps in _request_log.items() if timestamps[-1] < window_start]
    for key in stale:
        del _request_log[key]


def ip_rate_limiter(request: Request):
    """
    Rate limit based on client IP + path.

    Used for the unauthenticated intake route:
    - POST /api/v1/bookings/intake
    """
    # ❗ Skip rate limiting completely in automated tests
    if os.getenv("TESTING") == "1":
        return
    client_ip = request.client.host if request.client else "unknown"
    key = f"{client_ip}:{request.url.path}"

    now = time.time()
    window_start = now - WINDOW_SECONDS
    _evict_stale(window_start)

    timestamps = [ts for ts in _request_log.get(key, []) if ts >= window_start]

    if len(timestamps) >= MAX_REQUESTS_PER_WINDOW:
        _request_log[key] = timestamps
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many booking requests from this IP, please slow down",
        )

    timestamps.append(now)
    _request_log[key] = timestamps

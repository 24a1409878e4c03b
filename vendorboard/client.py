"""Async client for the Vendorboard API with a small response cache.

The cache keeps, per key, the last payload, when it was fetched and any
request still in flight. Callers asking for the same key while a request is
running share that request instead of issuing another one.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

log = logging.getLogger(__name__)

_USER_AGENT = "VendorboardClient/1.0"
_TIMEOUT = 15.0

REPORT_MAX_AGE = 60.0
VENDOR_MAX_AGE = 60.0
WEEKS_MAX_AGE = 24 * 60 * 60.0  # weeks of a month never change


class DashboardAPIError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


@dataclass
class _Entry:
    data: Any = None
    fetched_at: float | None = None
    pending: asyncio.Task | None = None


class ResponseCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def is_fresh(self, key: str, max_age: float) -> bool:
        entry = self._entries.get(key)
        return (
            entry is not None
            and entry.fetched_at is not None
            and self._clock() - entry.fetched_at < max_age
        )

    async def get(self, key: str, loader: Callable[[], Awaitable[Any]], max_age: float) -> Any:
        """Return cached data younger than *max_age* seconds, else load it once."""
        entry = self._entries.setdefault(key, _Entry())
        if self.is_fresh(key, max_age):
            return entry.data
        if entry.pending is None:
            entry.pending = asyncio.ensure_future(self._load(entry, loader))
        else:
            log.debug("Joining in-flight request for %s", key)
        return await asyncio.shield(entry.pending)

    async def _load(self, entry: _Entry, loader: Callable[[], Awaitable[Any]]) -> Any:
        try:
            data = await loader()
        finally:
            entry.pending = None
        entry.data = data
        entry.fetched_at = self._clock()
        return data

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


class DashboardClient:
    """Typed-ish wrapper around the JSON endpoints.

    Usage::

        async with DashboardClient("http://127.0.0.1:8001/api") as client:
            report = await client.report("2026-01-12")
    """

    def __init__(
        self, base_url: str, *, timeout: float = _TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None, cache: ResponseCache | None = None,
    ):
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": _USER_AGENT},
            transport=transport,
        )
        self.cache = cache or ResponseCache()

    async def __aenter__(self) -> DashboardClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # -- transport ---------------------------------------------------------

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        try:
            detail = resp.json().get("detail")
        except ValueError:
            detail = None
        message = detail if isinstance(detail, str) else resp.reason_phrase
        raise DashboardAPIError(resp.status_code, message)

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        params = {k: v for k, v in (params or {}).items() if v is not None}
        resp = await self._http.get(path, params=params)
        self._raise_for_status(resp)
        return resp.json()

    # -- endpoints ---------------------------------------------------------

    async def report(self, week_start: str | None = None) -> dict:
        return await self.cache.get(
            f"report:{week_start or ''}",
            lambda: self._get_json("/report", {"week_start": week_start}),
            REPORT_MAX_AGE,
        )

    async def vendor(self, vendor_id: str, week_start: str | None = None) -> dict:
        return await self.cache.get(
            f"vendor:{vendor_id}:{week_start or ''}",
            lambda: self._get_json(f"/vendors/{vendor_id}", {"week_start": week_start}),
            VENDOR_MAX_AGE,
        )

    async def vendors(self) -> list[dict]:
        data = await self.cache.get("vendors", lambda: self._get_json("/vendors"), VENDOR_MAX_AGE)
        return data["vendors"]

    async def weeks(self, year: int, month: int) -> list[dict]:
        data = await self.cache.get(
            f"weeks:{year}-{month}",
            lambda: self._get_json("/weeks", {"year": year, "month": month}),
            WEEKS_MAX_AGE,
        )
        return data["weeks"]

    async def feedback(self, vendor_id: str, week_start: str) -> list[dict]:
        # max_age=0: never served stale, but concurrent reads still share a request
        data = await self.cache.get(
            _feedback_key(vendor_id, week_start),
            lambda: self._get_json("/feedback", {"vendor_id": vendor_id, "week_start": week_start}),
            0.0,
        )
        return data["feedback"]

    async def submit_feedback(
        self, *, vendor_id: str, week_start: str, user_id: str, user_name: str, feedback_html: str,
    ) -> tuple[dict, bool]:
        """Post feedback; returns ``(feedback, created)``."""
        resp = await self._http.post("/feedback", json={
            "vendor_id": vendor_id, "week_start": week_start, "user_id": user_id,
            "user_name": user_name, "feedback_html": feedback_html,
        })
        self._raise_for_status(resp)
        self.cache.invalidate(_feedback_key(vendor_id, week_start))
        return resp.json()["feedback"], resp.status_code == 201


def _feedback_key(vendor_id: str, week_start: str) -> str:
    return f"feedback:{vendor_id}:{week_start}"

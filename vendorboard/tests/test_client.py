"""Tests for the async API client and its response cache."""
from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from vendorboard.client import DashboardAPIError, DashboardClient, ResponseCache


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _counting_transport(handler):
    calls: list[httpx.Request] = []

    def wrapped(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    return httpx.MockTransport(wrapped), calls


# =========================================================================
# ResponseCache
# =========================================================================


class TestResponseCache:
    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_load(self):
        cache = ResponseCache()
        calls = 0
        release = asyncio.Event()

        async def loader():
            nonlocal calls
            calls += 1
            await release.wait()
            return {"n": calls}

        tasks = [asyncio.create_task(cache.get("k", loader, 60)) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)
        assert calls == 1
        assert results == [{"n": 1}] * 5

    @pytest.mark.asyncio
    async def test_fresh_data_served_without_loading(self):
        clock = FakeClock()
        cache = ResponseCache(clock=clock)
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            return calls

        assert await cache.get("k", loader, 60) == 1
        clock.advance(59)
        assert await cache.get("k", loader, 60) == 1
        assert cache.is_fresh("k", 60)
        clock.advance(1)
        assert not cache.is_fresh("k", 60)
        assert await cache.get("k", loader, 60) == 2

    @pytest.mark.asyncio
    async def test_zero_max_age_always_reloads(self):
        cache = ResponseCache(clock=FakeClock())
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            return calls

        assert await cache.get("k", loader, 0) == 1
        assert await cache.get("k", loader, 0) == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        cache = ResponseCache(clock=FakeClock())
        attempts = 0

        async def loader():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError("network down")
            return "ok"

        with pytest.raises(RuntimeError):
            await cache.get("k", loader, 60)
        assert not cache.is_fresh("k", 60)
        assert await cache.get("k", loader, 60) == "ok"

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter(self):
        cache = ResponseCache()
        release = asyncio.Event()

        async def loader():
            await release.wait()
            raise RuntimeError("boom")

        tasks = [asyncio.create_task(cache.get("k", loader, 60)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, RuntimeError) for r in results)

    @pytest.mark.asyncio
    async def test_keys_are_independent_and_invalidate(self):
        cache = ResponseCache(clock=FakeClock())

        async def load_a():
            return "a"

        async def load_b():
            return "b"

        assert await cache.get("a", load_a, 60) == "a"
        assert await cache.get("b", load_b, 60) == "b"
        cache.invalidate("a")
        assert not cache.is_fresh("a", 60)
        assert cache.is_fresh("b", 60)
        cache.invalidate()
        assert not cache.is_fresh("b", 60)


# =========================================================================
# DashboardClient
# =========================================================================


REPORT = {"reportDate": "16th January 2026", "weekStart": "2026-01-12",
          "generatedAt": "2026-01-16T10:00:00.000Z", "vendors": []}


class TestDashboardClient:
    @pytest.mark.asyncio
    async def test_report_requests_are_coalesced_and_cached(self):
        transport, calls = _counting_transport(lambda req: httpx.Response(200, json=REPORT))
        async with DashboardClient("http://test/api", transport=transport,
                                   cache=ResponseCache(clock=FakeClock())) as client:
            results = await asyncio.gather(*(client.report("2026-01-12") for _ in range(4)))
            again = await client.report("2026-01-12")
        assert results == [REPORT] * 4
        assert again == REPORT
        assert len(calls) == 1
        assert calls[0].url.path == "/api/report"
        assert calls[0].url.params["week_start"] == "2026-01-12"

    @pytest.mark.asyncio
    async def test_different_weeks_are_separate_entries(self):
        transport, calls = _counting_transport(lambda req: httpx.Response(200, json=REPORT))
        async with DashboardClient("http://test/api", transport=transport) as client:
            await client.report("2026-01-12")
            await client.report("2026-01-19")
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_omits_unset_params(self):
        transport, calls = _counting_transport(lambda req: httpx.Response(200, json=REPORT))
        async with DashboardClient("http://test/api", transport=transport) as client:
            await client.report()
        assert "week_start" not in calls[0].url.params

    @pytest.mark.asyncio
    async def test_error_detail_surfaces(self):
        transport, _ = _counting_transport(
            lambda req: httpx.Response(404, json={"detail": "Vendor not found"})
        )
        async with DashboardClient("http://test/api", transport=transport) as client:
            with pytest.raises(DashboardAPIError) as exc_info:
                await client.vendor("missing")
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Vendor not found"

    @pytest.mark.asyncio
    async def test_error_without_json_body(self):
        transport, _ = _counting_transport(lambda req: httpx.Response(502, text="Bad Gateway"))
        async with DashboardClient("http://test/api", transport=transport) as client:
            with pytest.raises(DashboardAPIError) as exc_info:
                await client.vendors()
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_weeks_unwraps_list(self):
        weeks = [{"weekStart": "2025-12-29", "label": "Week of Dec 29"}]
        transport, calls = _counting_transport(
            lambda req: httpx.Response(200, json={"year": 2026, "month": 1, "weeks": weeks})
        )
        async with DashboardClient("http://test/api", transport=transport) as client:
            assert await client.weeks(2026, 1) == weeks
            assert await client.weeks(2026, 1) == weeks
        assert len(calls) == 1
        assert calls[0].url.params["month"] == "1"

    @pytest.mark.asyncio
    async def test_submit_feedback_reports_created_and_refreshes_thread(self):
        thread: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                body = json.loads(request.content)
                created = not thread
                item = {"id": "f1", "userId": body["user_id"], "feedbackHtml": body["feedback_html"]}
                thread[:] = [item]
                return httpx.Response(201 if created else 200, json={"feedback": item})
            return httpx.Response(200, json={"feedback": list(thread)})

        transport, calls = _counting_transport(handler)
        async with DashboardClient("http://test/api", transport=transport) as client:
            assert await client.feedback("v1", "2026-01-12") == []
            item, created = await client.submit_feedback(
                vendor_id="v1", week_start="2026-01-12", user_id="u1",
                user_name="Alice", feedback_html="<p>one</p>",
            )
            assert created is True
            assert item["feedbackHtml"] == "<p>one</p>"
            _, created = await client.submit_feedback(
                vendor_id="v1", week_start="2026-01-12", user_id="u1",
                user_name="Alice", feedback_html="<p>two</p>",
            )
            assert created is False
            listed = await client.feedback("v1", "2026-01-12")
        assert [f["feedbackHtml"] for f in listed] == ["<p>two</p>"]
        assert [c.method for c in calls] == ["GET", "POST", "POST", "GET"]

    @pytest.mark.asyncio
    async def test_submit_feedback_validation_error(self):
        transport, _ = _counting_transport(lambda req: httpx.Response(
            400, json={"detail": "vendor_id, week_start, user_id, user_name, and feedback_html are required"},
        ))
        async with DashboardClient("http://test/api", transport=transport) as client:
            with pytest.raises(DashboardAPIError, match="are required"):
                await client.submit_feedback(
                    vendor_id="v1", week_start="2026-01-12", user_id="u1",
                    user_name="", feedback_html="x",
                )

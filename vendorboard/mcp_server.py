from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, contextmanager

from mcp.server.fastmcp import FastMCP

from vendorboard import services
from vendorboard.db import get_session, init_db
from vendorboard.render import feedback_for_display
from vendorboard.weeks import format_date, parse_week_start, week_label, weeks_overlapping_month

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def vendorboard_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "Vendorboard",
    instructions=(
        "Vendorboard holds the weekly delivery status of external vendors. "
        "Start with list_vendors() for this week's RAG overview, then get_report(week_start) "
        "or get_vendor(vendor_id, week_start) for detail. Weeks are keyed by their Monday (YYYY-MM-DD)."
    ),
    lifespan=vendorboard_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _session():
    session = get_session()
    try:
        yield session
    finally:
        session.close()


def _week_or_error(week_start: str | None):
    try:
        return parse_week_start(week_start), None
    except ValueError as exc:
        return None, {"error": str(exc)}


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("vendorboard://overview")
def vendorboard_overview() -> str:
    """Overview of Vendorboard: data model and status vocabularies."""
    return json.dumps({
        "system": "Vendorboard - weekly vendor delivery status",
        "data_model": {
            "vendor": "External delivery partner. Owns a timeline, RAID log and resource links.",
            "weekly_report": "Per vendor and week (Monday): RAG status, achievements, focus items.",
            "feedback": "One HTML note per user per vendor/week. Stored unsanitized.",
        },
        "rag_status": ["green", "amber", "red"],
        "timeline_status": ["completed", "in_progress", "upcoming", "tbc"],
        "raid_types": ["risk", "issue", "dependency"],
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool()
def list_vendors(week_start: str | None = None) -> dict:
    """List report-included vendors with owner and RAG status for a week (default: current)."""
    week, err = _week_or_error(week_start)
    if err:
        return err
    with _session() as session:
        return {"vendors": services.vendor_summaries(session, week)}


@mcp.tool()
def get_report(week_start: str | None = None) -> dict:
    """Full weekly report for all vendors. week_start is YYYY-MM-DD, snapped to its Monday."""
    week, err = _week_or_error(week_start)
    if err:
        return err
    with _session() as session:
        return services.build_report(session, week)


@mcp.tool()
def get_vendor(vendor_id: str, week_start: str | None = None) -> dict:
    """Timeline, achievements, focus, RAID log and resources for one vendor."""
    week, err = _week_or_error(week_start)
    if err:
        return err
    with _session() as session:
        data = services.get_vendor_data(session, vendor_id, week)
        return data if data is not None else {"error": f"Vendor {vendor_id} not found"}


@mcp.tool()
def list_weeks(year: int, month: int) -> dict:
    """Weeks (Mondays) overlapping a calendar month, with display labels."""
    try:
        weeks = weeks_overlapping_month(year, month)
    except ValueError as exc:
        return {"error": str(exc)}
    return {
        "year": year, "month": month,
        "weeks": [{"weekStart": format_date(m), "label": week_label(m)} for m in weeks],
    }


@mcp.tool()
def get_feedback(vendor_id: str, week_start: str) -> dict:
    """All feedback for a vendor and week, newest first, with sanitized HTML."""
    week, err = _week_or_error(week_start)
    if err:
        return err
    with _session() as session:
        rows = services.list_feedback(session, vendor_id, week)
        return {"feedback": feedback_for_display([services.feedback_out(r) for r in rows])}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the Vendorboard MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()

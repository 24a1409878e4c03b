"""Shared business logic for the Vendorboard API, CLI and MCP server."""
from __future__ import annotations

import json
import logging
from datetime import UTC, date, datetime, timedelta
from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from vendorboard.models import (
    DeliveryManagerVendor, Feedback, Vendor, WeeklyReport, utc_now,
)
from vendorboard.weeks import format_date, format_report_date, friday_of

log = logging.getLogger(__name__)

FEEDBACK_FIELDS = ("vendor_id", "week_start", "user_id", "user_name", "feedback_html")

# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def iso_timestamp(value: datetime) -> str:
    """Stored timestamps are naive UTC; render them with an explicit ``Z``."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.isoformat(timespec="microseconds") + "Z"


def _owner_name(vendor: Vendor) -> str | None:
    if not vendor.delivery_managers:
        return None
    return vendor.delivery_managers[0].user.name


def vendor_data(vendor: Vendor, report: WeeklyReport | None) -> dict:
    """Shape a vendor and its (optional) weekly report into the dashboard payload."""
    return {
        "id": vendor.id,
        "name": vendor.name,
        "owner": _owner_name(vendor),
        "ragStatus": report.rag_status if report else None,
        "timeline": [
            {"id": m.id, "date": m.date, "title": m.title, "status": m.status,
             "platforms": json_parse(m.platforms_json, []),
             "features": json_parse(m.features_json, []),
             "sortOrder": m.sort_order}
            for m in vendor.timeline
        ],
        "achievements": [
            {"id": a.id, "description": a.description, "status": a.status, "sortOrder": a.sort_order}
            for a in (report.achievements if report else [])
        ],
        "focus": [
            {"id": f.id, "description": f.description, "sortOrder": f.sort_order}
            for f in (report.focus_items if report else [])
        ],
        "raid": [
            {"id": r.id, "type": r.type, "area": r.area, "description": r.description,
             "impact": r.impact, "owner": r.owner, "ragStatus": r.rag_status,
             "sortOrder": r.sort_order}
            for r in vendor.raid_items
        ],
        "resources": [
            {"id": r.id, "type": r.type, "name": r.name, "description": r.description,
             "url": r.url, "sortOrder": r.sort_order}
            for r in vendor.resources
        ],
    }


def vendor_summary(vendor: Vendor, report: WeeklyReport | None) -> dict:
    return {
        "id": vendor.id,
        "name": vendor.name,
        "owner": _owner_name(vendor),
        "ragStatus": report.rag_status if report else None,
    }


def feedback_out(row: Feedback) -> dict:
    return {
        "id": row.id,
        "vendorId": row.vendor_id,
        "weekStart": format_date(row.week_start),
        "userId": row.user_id,
        "userName": row.user_name,
        "feedbackHtml": row.feedback_html,
        "createdAt": iso_timestamp(row.created_at),
        "updatedAt": iso_timestamp(row.updated_at),
    }


# ---------------------------------------------------------------------------
# Report queries
# ---------------------------------------------------------------------------

_VENDOR_LOAD = (
    selectinload(Vendor.delivery_managers).selectinload(DeliveryManagerVendor.user),
    selectinload(Vendor.timeline),
    selectinload(Vendor.raid_items),
    selectinload(Vendor.resources),
)


def _reports_for_week(session: Session, vendor_ids: list[str], week_start: date) -> dict[str, WeeklyReport]:
    if not vendor_ids:
        return {}
    rows = session.execute(
        select(WeeklyReport)
        .where(WeeklyReport.vendor_id.in_(vendor_ids), WeeklyReport.week_start == week_start)
        .options(selectinload(WeeklyReport.achievements), selectinload(WeeklyReport.focus_items))
    ).scalars().all()
    return {r.vendor_id: r for r in rows}


def reportable_vendors(session: Session, *, with_children: bool = True) -> list[Vendor]:
    """Active vendors flagged for the weekly report, by name."""
    query = (
        select(Vendor)
        .where(Vendor.status == "active", Vendor.include_in_weekly_reports.is_(True))
        .order_by(Vendor.name.asc())
    )
    if with_children:
        query = query.options(*_VENDOR_LOAD)
    else:
        query = query.options(_VENDOR_LOAD[0])
    return list(session.execute(query).scalars().all())


def query_report_vendors(session: Session, week_start: date) -> list[dict]:
    vendors = reportable_vendors(session)
    reports = _reports_for_week(session, [v.id for v in vendors], week_start)
    return [vendor_data(v, reports.get(v.id)) for v in vendors]


def build_report(session: Session, week_start: date) -> dict:
    vendors = query_report_vendors(session, week_start)
    return {
        "reportDate": format_report_date(friday_of(week_start)),
        "weekStart": format_date(week_start),
        "generatedAt": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "vendors": vendors,
    }


def vendor_summaries(session: Session, week_start: date) -> list[dict]:
    vendors = reportable_vendors(session, with_children=False)
    reports = _reports_for_week(session, [v.id for v in vendors], week_start)
    return [vendor_summary(v, reports.get(v.id)) for v in vendors]


def get_vendor_data(session: Session, vendor_id: str, week_start: date) -> dict | None:
    vendor = session.execute(
        select(Vendor).where(Vendor.id == vendor_id).options(*_VENDOR_LOAD)
    ).scalars().first()
    if vendor is None:
        return None
    report = _reports_for_week(session, [vendor.id], week_start).get(vendor.id)
    return vendor_data(vendor, report)


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------


def missing_feedback_fields(body: dict[str, Any]) -> list[str]:
    """Names of required feedback fields that are absent or blank."""
    missing = []
    for field in FEEDBACK_FIELDS:
        value = body.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing


def list_feedback(session: Session, vendor_id: str, week_start: date) -> list[Feedback]:
    """All feedback for a vendor/week across users, newest first."""
    return list(session.execute(
        select(Feedback)
        .where(Feedback.vendor_id == vendor_id, Feedback.week_start == week_start)
        .order_by(Feedback.created_at.desc(), Feedback.id.desc())
    ).scalars().all())


def _find_feedback(session: Session, vendor_id: str, week_start: date, user_id: str) -> Feedback | None:
    return session.execute(
        select(Feedback).where(
            Feedback.vendor_id == vendor_id,
            Feedback.week_start == week_start,
            Feedback.user_id == user_id,
        )
    ).scalars().first()


def _next_timestamp(previous: datetime | None) -> datetime:
    now = utc_now()
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


def _apply_feedback_update(row: Feedback, user_name: str, feedback_html: str) -> None:
    row.user_name = user_name
    row.feedback_html = feedback_html
    row.updated_at = _next_timestamp(row.updated_at)


def upsert_feedback(
    session: Session, *, vendor_id: str, week_start: date, user_id: str,
    user_name: str, feedback_html: str,
) -> tuple[Feedback, bool]:
    """Create or update the caller's feedback for a vendor/week.

    Returns ``(row, created)``. The unique constraint on
    (vendor_id, week_start, user_id) decides races: a losing insert rolls back
    and updates the winner instead. Caller must commit.
    """
    existing = _find_feedback(session, vendor_id, week_start, user_id)
    if existing is None:
        now = utc_now()
        row = Feedback(
            vendor_id=vendor_id, week_start=week_start, user_id=user_id,
            user_name=user_name, feedback_html=feedback_html,
            created_at=now, updated_at=now,
        )
        session.add(row)
        try:
            session.flush()
            return row, True
        except IntegrityError:
            session.rollback()
            existing = _find_feedback(session, vendor_id, week_start, user_id)
            if existing is None:
                raise
            log.info("Concurrent feedback insert for vendor=%s week=%s, updating instead", vendor_id, week_start)
    _apply_feedback_update(existing, user_name, feedback_html)
    return existing, False


def purge_feedback(session: Session, name_markers: list[str]) -> int:
    """Delete feedback whose author name contains any marker. Caller must commit."""
    markers = [m for m in name_markers if m]
    if not markers:
        return 0
    result = session.execute(
        delete(Feedback).where(or_(*(Feedback.user_name.contains(m) for m in markers)))
    )
    return result.rowcount or 0

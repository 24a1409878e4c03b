"""Load vendor data from an XLSX workbook.

Expected sheets (names are matched case-insensitively, all optional), each
with a header row:

- ``Vendors``: name, status, include_in_weekly_reports, delivery_manager
- ``Reports``: vendor, week_start, rag_status
- ``Achievements``: vendor, week_start, description, status, sort_order
- ``Focus``: vendor, week_start, description, sort_order
- ``Timeline``: vendor, date, title, status, platforms, features, sort_order
- ``RAID``: vendor, type, area, description, impact, owner, rag_status, sort_order
- ``Resources``: vendor, type, name, description, url, sort_order

Timeline, RAID and resource lists are replaced per vendor; achievements and
focus items are replaced per report. ``platforms`` is comma separated,
``features`` one per line (or ``;`` separated).
"""
from __future__ import annotations

import json
import logging
import zipfile
from collections import defaultdict
from datetime import date, datetime
from pathlib import Path

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import select
from sqlalchemy.orm import Session

from vendorboard.models import (
    ACHIEVEMENT_STATUSES, IMPACT_LEVELS, RAG_STATUSES, RAID_TYPES, RESOURCE_TYPES,
    TIMELINE_STATUSES, VENDOR_STATUSES,
    Achievement, DeliveryManagerVendor, FocusItem, RaidItem, ResourceItem, TimelineMilestone,
    User, Vendor, WeeklyReport,
)
from vendorboard.schemas import ImportResult
from vendorboard.weeks import monday_of, parse_week_start

log = logging.getLogger(__name__)

_SHEETS = ("vendors", "reports", "achievements", "focus", "timeline", "raid", "resources")


def _s(value: object) -> str:
    """Safely coerce cell value to stripped string."""
    if value is None:
        return ""
    return str(value).strip()


def _b(value: object, default: bool = True) -> bool:
    """Safely coerce cell value to bool."""
    if value is None or _s(value) == "":
        return default
    if isinstance(value, bool):
        return value
    return _s(value).lower() in ("true", "1", "yes", "y")


def _key(name: str) -> str:
    return name.strip().casefold()


class _Row:
    """One data row with its sheet/row position for error messages."""

    def __init__(self, sheet: str, number: int, values: dict[str, object]):
        self.sheet = sheet
        self.number = number
        self.values = values

    def get(self, field: str) -> str:
        return _s(self.values.get(field))

    def raw(self, field: str) -> object:
        return self.values.get(field)

    def error(self, message: str) -> ValueError:
        return ValueError(f"{self.sheet} row {self.number}: {message}")

    def choice(self, field: str, allowed: tuple[str, ...], *, default: str | None = None,
               nullable: bool = False) -> str | None:
        value = self.get(field).lower().replace(" ", "_")
        if not value:
            if nullable:
                return None
            if default is not None:
                return default
            raise self.error(f"'{field}' is required")
        if value not in allowed:
            raise self.error(f"invalid {field} '{value}' (expected one of {', '.join(allowed)})")
        return value

    def required(self, field: str) -> str:
        value = self.get(field)
        if not value:
            raise self.error(f"'{field}' is required")
        return value

    def week(self) -> date:
        value = self.raw("week_start")
        if isinstance(value, datetime):
            return monday_of(value)
        if isinstance(value, date):
            return monday_of(value)
        text = _s(value)
        if not text:
            raise self.error("'week_start' is required")
        try:
            return parse_week_start(text)
        except ValueError as exc:
            raise self.error(str(exc)) from exc

    def sort_order(self, fallback: int) -> int:
        value = self.raw("sort_order")
        if value is None or _s(value) == "":
            return fallback
        try:
            return int(float(_s(value)))
        except ValueError as exc:
            raise self.error(f"invalid sort_order '{_s(value)}'") from exc


def _read_sheet(ws, sheet: str) -> list[_Row]:
    rows = ws.iter_rows(values_only=True)
    header = next(rows, None)
    if not header:
        return []
    fields = [_s(h).lower().replace(" ", "_") for h in header]
    out: list[_Row] = []
    for number, row in enumerate(rows, start=2):
        if not row or all(_s(v) == "" for v in row):
            continue
        values = {f: row[i] if i < len(row) else None for i, f in enumerate(fields) if f}
        out.append(_Row(sheet, number, values))
    return out


def _split(value: str, separators: tuple[str, ...]) -> list[str]:
    parts = [value]
    for sep in separators:
        parts = [p for chunk in parts for p in chunk.split(sep)]
    return [p.strip() for p in parts if p.strip()]


class _Importer:
    def __init__(self, session: Session):
        self.session = session
        self.vendors: dict[str, Vendor] = {
            _key(v.name): v for v in session.execute(select(Vendor)).scalars().all()
        }
        self.users: dict[str, User] = {
            _key(u.name): u for u in session.execute(select(User)).scalars().all()
        }
        self.reports: dict[tuple[str, date], WeeklyReport] = {}
        self.result = dict(
            vendors_created=0, vendors_updated=0, reports_imported=0,
            timeline_items=0, raid_items=0, resources=0,
        )

    def vendor_for(self, row: _Row) -> Vendor:
        name = row.required("vendor")
        vendor = self.vendors.get(_key(name))
        if vendor is None:
            raise row.error(f"unknown vendor '{name}'")
        return vendor

    def _user(self, name: str) -> User:
        user = self.users.get(_key(name))
        if user is None:
            user = User(name=name)
            self.session.add(user)
            self.users[_key(name)] = user
        return user

    def import_vendors(self, rows: list[_Row]) -> None:
        for row in rows:
            name = row.required("name")
            vendor = self.vendors.get(_key(name))
            if vendor is None:
                vendor = Vendor(name=name)
                self.session.add(vendor)
                self.vendors[_key(name)] = vendor
                self.result["vendors_created"] += 1
            else:
                self.result["vendors_updated"] += 1
            vendor.status = row.choice("status", VENDOR_STATUSES, default="active")
            vendor.include_in_weekly_reports = _b(row.raw("include_in_weekly_reports"))
            manager = row.get("delivery_manager")
            if manager:
                user = self._user(manager)
                current = vendor.delivery_managers[0].user if vendor.delivery_managers else None
                if current is not user:
                    vendor.delivery_managers = [DeliveryManagerVendor(user=user)]
        self.session.flush()

    def report_for(self, row: _Row, *, create_with: str | None = None) -> WeeklyReport:
        vendor = self.vendor_for(row)
        week = row.week()
        key = (vendor.id, week)
        report = self.reports.get(key)
        if report is None:
            report = self.session.execute(
                select(WeeklyReport).where(WeeklyReport.vendor_id == vendor.id, WeeklyReport.week_start == week)
            ).scalars().first()
        if report is None:
            if create_with is None:
                raise row.error(f"no report for {vendor.name} week {week.isoformat()}")
            report = WeeklyReport(vendor=vendor, week_start=week, rag_status=create_with)
            self.session.add(report)
        self.reports[key] = report
        return report

    def import_reports(self, rows: list[_Row]) -> None:
        for row in rows:
            rag = row.choice("rag_status", RAG_STATUSES)
            report = self.report_for(row, create_with=rag)
            report.rag_status = rag
            self.result["reports_imported"] += 1
        self.session.flush()

    def import_report_children(self, achievements: list[_Row], focus: list[_Row]) -> None:
        grouped: dict[str, list[Achievement]] = defaultdict(list)
        touched: dict[str, WeeklyReport] = {}
        for row in achievements:
            report = self.report_for(row)
            touched[report.id] = report
            items = grouped[report.id]
            items.append(Achievement(
                description=row.required("description"),
                status=row.choice("status", ACHIEVEMENT_STATUSES, nullable=True),
                sort_order=row.sort_order(len(items) + 1),
            ))
        for report_id, items in grouped.items():
            touched[report_id].achievements = items

        focus_grouped: dict[str, list[FocusItem]] = defaultdict(list)
        for row in focus:
            report = self.report_for(row)
            touched[report.id] = report
            items = focus_grouped[report.id]
            items.append(FocusItem(description=row.required("description"), sort_order=row.sort_order(len(items) + 1)))
        for report_id, items in focus_grouped.items():
            touched[report_id].focus_items = items

    def import_timeline(self, rows: list[_Row]) -> None:
        grouped: dict[str, tuple[Vendor, list[TimelineMilestone]]] = {}
        for row in rows:
            vendor = self.vendor_for(row)
            _, items = grouped.setdefault(vendor.id, (vendor, []))
            items.append(TimelineMilestone(
                date=row.get("date"),
                title=row.required("title"),
                status=row.choice("status", TIMELINE_STATUSES, default="upcoming"),
                platforms_json=json.dumps(_split(row.get("platforms"), (",",))),
                features_json=json.dumps(_split(row.get("features"), ("\n", ";"))),
                sort_order=row.sort_order(len(items) + 1),
            ))
        for vendor, items in grouped.values():
            vendor.timeline = items
            self.result["timeline_items"] += len(items)

    def import_raid(self, rows: list[_Row]) -> None:
        grouped: dict[str, tuple[Vendor, list[RaidItem]]] = {}
        for row in rows:
            vendor = self.vendor_for(row)
            _, items = grouped.setdefault(vendor.id, (vendor, []))
            items.append(RaidItem(
                type=row.choice("type", RAID_TYPES),
                area=row.get("area"),
                description=row.required("description"),
                impact=row.choice("impact", IMPACT_LEVELS, default="medium"),
                owner=row.get("owner") or None,
                rag_status=row.choice("rag_status", RAG_STATUSES, default="amber"),
                sort_order=row.sort_order(len(items) + 1),
            ))
        for vendor, items in grouped.values():
            vendor.raid_items = items
            self.result["raid_items"] += len(items)

    def import_resources(self, rows: list[_Row]) -> None:
        grouped: dict[str, tuple[Vendor, list[ResourceItem]]] = {}
        for row in rows:
            vendor = self.vendor_for(row)
            _, items = grouped.setdefault(vendor.id, (vendor, []))
            items.append(ResourceItem(
                type=row.choice("type", RESOURCE_TYPES),
                name=row.required("name"),
                description=row.get("description") or None,
                url=row.required("url"),
                sort_order=row.sort_order(len(items) + 1),
            ))
        for vendor, items in grouped.values():
            vendor.resources = items
            self.result["resources"] += len(items)


def _load_sheets(file_path: Path) -> dict[str, list[_Row]]:
    try:
        wb = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError) as exc:
        raise ValueError(f"Not a readable XLSX workbook: {exc}") from exc
    try:
        sheets: dict[str, list[_Row]] = {name: [] for name in _SHEETS}
        for sheet_name in wb.sheetnames:
            lower = sheet_name.strip().casefold()
            if lower in sheets:
                sheets[lower] = _read_sheet(wb[sheet_name], sheet_name)
            else:
                log.info("Skipping unrecognised sheet %r", sheet_name)
        return sheets
    finally:
        wb.close()


def import_workbook(file_path: str | Path, session: Session) -> ImportResult:
    """Import every recognised sheet in one transaction.

    Raises ValueError (and rolls back) on the first invalid row.
    """
    sheets = _load_sheets(Path(file_path))
    importer = _Importer(session)
    try:
        importer.import_vendors(sheets["vendors"])
        importer.import_reports(sheets["reports"])
        importer.import_report_children(sheets["achievements"], sheets["focus"])
        importer.import_timeline(sheets["timeline"])
        importer.import_raid(sheets["raid"])
        importer.import_resources(sheets["resources"])
        session.commit()
    except Exception:
        session.rollback()
        raise
    log.info("Workbook import finished: %s", importer.result)
    return ImportResult(**importer.result)

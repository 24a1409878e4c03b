from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from vendorboard.models import (
    Achievement, Base, DeliveryManagerVendor, FocusItem, RaidItem, ResourceItem,
    TimelineMilestone, User, Vendor, WeeklyReport,
)

WEEK = date(2026, 1, 12)
OTHER_WEEK = date(2026, 1, 19)


@dataclass
class Seeded:
    acme_id: str
    beta_id: str
    inactive_id: str
    hidden_id: str


# ---------------------------------------------------------------------------
# Fixtures: in-memory SQLite database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory):
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.close()


def seed_vendors(session: Session) -> Seeded:
    """Acme: full data with a report for WEEK. Beta: no report. Plus one inactive and one hidden vendor."""
    dana = User(name="Dana Scully")
    fox = User(name="Fox Mulder")
    acme = Vendor(name="Acme Mobile", status="active", include_in_weekly_reports=True)
    acme.delivery_managers = [DeliveryManagerVendor(user=dana)]
    acme.timeline = [
        TimelineMilestone(date="Mar 2026", title="Payments", status="upcoming",
                          platforms_json=json.dumps(["ios", "android"]),
                          features_json=json.dumps(["Apple Pay"]), sort_order=2),
        TimelineMilestone(date="Jan 2026", title="Beta launch", status="completed",
                          platforms_json=json.dumps(["web"]), features_json="[]", sort_order=1),
    ]
    acme.raid_items = [
        RaidItem(type="risk", area="Ops", description="third", impact="low", rag_status="green", sort_order=3),
        RaidItem(type="issue", area="API", description="first", impact="high", owner="Sam",
                 rag_status="red", sort_order=1),
        RaidItem(type="dependency", area="Design", description="second", impact="medium",
                 rag_status="amber", sort_order=2),
    ]
    acme.resources = [
        ResourceItem(type="jira", name="Board", url="https://jira.example/acme", sort_order=2),
        ResourceItem(type="confluence", name="Space", description="Docs home",
                     url="https://wiki.example/acme", sort_order=1),
    ]
    report = WeeklyReport(vendor=acme, week_start=WEEK, rag_status="amber")
    report.achievements = [
        Achievement(description="Shipped login", status="done", sort_order=2),
        Achievement(description="Started checkout", status="in_progress", sort_order=1),
        Achievement(description="Misc", status=None, sort_order=3),
    ]
    report.focus_items = [
        FocusItem(description="Harden payments", sort_order=1),
    ]

    beta = Vendor(name="Beta Labs", status="active", include_in_weekly_reports=True)
    beta.raid_items = [RaidItem(type="risk", area="Hiring", description="Team ramp-up",
                                impact="medium", rag_status="amber", sort_order=1)]
    inactive = Vendor(name="Aardvark Old", status="inactive", include_in_weekly_reports=True)
    hidden = Vendor(name="Zeta Internal", status="active", include_in_weekly_reports=False)
    hidden.delivery_managers = [DeliveryManagerVendor(user=fox)]

    session.add_all([acme, beta, inactive, hidden, report])
    session.commit()
    seeded = Seeded(acme_id=acme.id, beta_id=beta.id, inactive_id=inactive.id, hidden_id=hidden.id)
    # Collections above were assigned out of order; reload them from the database
    session.expire_all()
    return seeded


@pytest.fixture()
def seeded(session: Session) -> Seeded:
    return seed_vendors(session)

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

RAG_STATUSES = ("green", "amber", "red")
VENDOR_STATUSES = ("active", "inactive")
ACHIEVEMENT_STATUSES = ("done", "in_progress")
TIMELINE_STATUSES = ("completed", "in_progress", "upcoming", "tbc")
RAID_TYPES = ("risk", "issue", "dependency")
IMPACT_LEVELS = ("high", "medium", "low")
RESOURCE_TYPES = ("confluence", "jira", "github", "docs")


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    # Naive UTC: SQLite drops tzinfo on the way back, so keep both sides comparable
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active")  # active | inactive
    include_in_weekly_reports: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    delivery_managers: Mapped[list[DeliveryManagerVendor]] = relationship(
        "DeliveryManagerVendor", back_populates="vendor", cascade="all, delete-orphan",
        order_by="[DeliveryManagerVendor.created_at, DeliveryManagerVendor.id]",
    )
    weekly_reports: Mapped[list[WeeklyReport]] = relationship(
        "WeeklyReport", back_populates="vendor", cascade="all, delete-orphan",
    )
    timeline: Mapped[list[TimelineMilestone]] = relationship(
        "TimelineMilestone", back_populates="vendor", cascade="all, delete-orphan",
        order_by="TimelineMilestone.sort_order",
    )
    raid_items: Mapped[list[RaidItem]] = relationship(
        "RaidItem", back_populates="vendor", cascade="all, delete-orphan",
        order_by="RaidItem.sort_order",
    )
    resources: Mapped[list[ResourceItem]] = relationship(
        "ResourceItem", back_populates="vendor", cascade="all, delete-orphan",
        order_by="ResourceItem.sort_order",
    )


class DeliveryManagerVendor(Base):
    __tablename__ = "delivery_manager_vendors"
    __table_args__ = (UniqueConstraint("vendor_id", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[str] = mapped_column(String(36), ForeignKey("vendors.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    vendor: Mapped[Vendor] = relationship("Vendor", back_populates="delivery_managers")
    user: Mapped[User] = relationship("User")


class WeeklyReport(Base):
    __tablename__ = "weekly_reports"
    __table_args__ = (UniqueConstraint("vendor_id", "week_start"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    vendor_id: Mapped[str] = mapped_column(String(36), ForeignKey("vendors.id"), nullable=False, index=True)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)  # always a Monday
    rag_status: Mapped[str] = mapped_column(String(10), nullable=False)  # green | amber | red

    vendor: Mapped[Vendor] = relationship("Vendor", back_populates="weekly_reports")
    achievements: Mapped[list[Achievement]] = relationship(
        "Achievement", back_populates="report", cascade="all, delete-orphan",
        order_by="Achievement.sort_order",
    )
    focus_items: Mapped[list[FocusItem]] = relationship(
        "FocusItem", back_populates="report", cascade="all, delete-orphan",
        order_by="FocusItem.sort_order",
    )


class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    report_id: Mapped[str] = mapped_column(String(36), ForeignKey("weekly_reports.id"), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)  # done | in_progress | None
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    report: Mapped[WeeklyReport] = relationship("WeeklyReport", back_populates="achievements")


class FocusItem(Base):
    __tablename__ = "focus_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    report_id: Mapped[str] = mapped_column(String(36), ForeignKey("weekly_reports.id"), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    report: Mapped[WeeklyReport] = relationship("WeeklyReport", back_populates="focus_items")


class TimelineMilestone(Base):
    __tablename__ = "timeline_milestones"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    vendor_id: Mapped[str] = mapped_column(String(36), ForeignKey("vendors.id"), nullable=False, index=True)
    date: Mapped[str] = mapped_column(String(50), default="")  # display text, e.g. "Feb 2026" or "TBC"
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="upcoming")  # completed | in_progress | upcoming | tbc
    platforms_json: Mapped[str] = mapped_column(Text, default="[]")
    features_json: Mapped[str] = mapped_column(Text, default="[]")
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    vendor: Mapped[Vendor] = relationship("Vendor", back_populates="timeline")


class RaidItem(Base):
    __tablename__ = "raid_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    vendor_id: Mapped[str] = mapped_column(String(36), ForeignKey("vendors.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # risk | issue | dependency
    area: Mapped[str] = mapped_column(String(200), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    impact: Mapped[str] = mapped_column(String(10), default="medium")  # high | medium | low
    owner: Mapped[str | None] = mapped_column(String(200), nullable=True)
    rag_status: Mapped[str] = mapped_column(String(10), default="amber")
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    vendor: Mapped[Vendor] = relationship("Vendor", back_populates="raid_items")


class ResourceItem(Base):
    __tablename__ = "resource_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    vendor_id: Mapped[str] = mapped_column(String(36), ForeignKey("vendors.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # confluence | jira | github | docs
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    vendor: Mapped[Vendor] = relationship("Vendor", back_populates="resources")


class Feedback(Base):
    __tablename__ = "weekly_report_feedback"
    __table_args__ = (UniqueConstraint("vendor_id", "week_start", "user_id", name="uq_feedback_vendor_week_user"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    vendor_id: Mapped[str] = mapped_column(String(36), ForeignKey("vendors.id"), nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    user_id: Mapped[str] = mapped_column(String(200), nullable=False)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False)
    feedback_html: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

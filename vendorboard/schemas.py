"""Pydantic request/response schemas for the Vendorboard API."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

RagStatus = Literal["green", "amber", "red"]
TimelineStatus = Literal["completed", "in_progress", "upcoming", "tbc"]
AchievementStatus = Literal["done", "in_progress"]
RaidType = Literal["risk", "issue", "dependency"]
ImpactLevel = Literal["high", "medium", "low"]
ResourceType = Literal["confluence", "jira", "github", "docs"]


class _CamelModel(BaseModel):
    """Responses use camelCase keys on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AchievementOut(_CamelModel):
    id: str
    description: str
    status: AchievementStatus | None = None
    sort_order: int


class FocusItemOut(_CamelModel):
    id: str
    description: str
    sort_order: int


class TimelineMilestoneOut(_CamelModel):
    id: str
    date: str
    title: str
    status: TimelineStatus
    platforms: list[str] = []
    features: list[str] = []
    sort_order: int


class RaidItemOut(_CamelModel):
    id: str
    type: RaidType
    area: str
    description: str
    impact: ImpactLevel
    owner: str | None = None
    rag_status: RagStatus
    sort_order: int


class ResourceItemOut(_CamelModel):
    id: str
    type: ResourceType
    name: str
    description: str | None = None
    url: str
    sort_order: int


class VendorSummary(_CamelModel):
    id: str
    name: str
    owner: str | None = None
    rag_status: RagStatus | None = None


class VendorData(VendorSummary):
    timeline: list[TimelineMilestoneOut] = []
    achievements: list[AchievementOut] = []
    focus: list[FocusItemOut] = []
    raid: list[RaidItemOut] = []
    resources: list[ResourceItemOut] = []


class ReportOut(_CamelModel):
    report_date: str
    week_start: str
    generated_at: str
    vendors: list[VendorData]


class VendorListOut(BaseModel):
    vendors: list[VendorSummary]


class WeekOption(_CamelModel):
    week_start: str
    label: str


class WeeksOut(BaseModel):
    year: int
    month: int
    weeks: list[WeekOption]


class FeedbackOut(_CamelModel):
    id: str
    vendor_id: str
    week_start: str
    user_id: str
    user_name: str
    feedback_html: str
    created_at: str
    updated_at: str


class FeedbackListOut(BaseModel):
    feedback: list[FeedbackOut]


class FeedbackSaved(BaseModel):
    feedback: FeedbackOut


class FeedbackCreate(BaseModel):
    """All fields are required; they are optional here so a missing one maps to a 400."""
    vendor_id: str | None = None
    week_start: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    feedback_html: str | None = None


class ImportResult(BaseModel):
    vendors_created: int
    vendors_updated: int
    reports_imported: int
    timeline_items: int
    raid_items: int
    resources: int

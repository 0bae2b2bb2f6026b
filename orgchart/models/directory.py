"""Directory (Microsoft Graph) user models and cache statistics."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from orgchart.models.orgchart import CamelModel


class ManagerInfo(CamelModel):
    display_name: str | None = None
    email: str | None = None
    job_title: str | None = None


class DirectoryUser(CamelModel):
    """Profile data for one user as returned by the directory."""

    display_name: str = ""
    email: str = ""
    mobile_phone: str | None = None
    business_phone: str | None = None
    job_title: str | None = None
    department: str | None = None
    office_location: str | None = None
    given_name: str | None = None
    surname: str | None = None
    company_name: str | None = None
    employee_id: str | None = None
    city: str | None = None
    country: str | None = None
    preferred_language: str | None = None
    usage_location: str | None = None
    hire_date: str | None = None
    birthday: str | None = None
    about_me: str | None = None
    interests: list[str] | None = None
    skills: list[str] | None = None
    responsibilities: list[str] | None = None
    manager: ManagerInfo | None = None


class UserPhoto(CamelModel):
    photo_data: str
    content_type: str
    data_url: str


class KindStats(CamelModel):
    hits: int = 0
    misses: int = 0
    hit_ratio: float = 0.0


class CacheStats(CamelModel):
    profile_stats: KindStats
    photo_stats: KindStats
    last_updated: datetime


class PreloadSummary(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0

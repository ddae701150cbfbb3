"""Pydantic schemas for accounting periods."""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from bookkeeper.core.pagination import PaginationMeta

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
DEFAULT_MAX_YEARS = 2

# Markup/statement characters and ASCII control characters.
_DISALLOWED_CHARS = re.compile(r"[<>'\";&\x00-\x1f\x7f]")

SortColumn = Literal["name", "start_date", "end_date", "created_at", "updated_at"]


def _check_text(value: str, label: str) -> str:
    if _DISALLOWED_CHARS.search(value):
        raise ValueError(f"{label} contains characters that are not allowed")
    return value


def _clean_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Period name is required")
    if len(value) > NAME_MAX_LENGTH:
        raise ValueError(f"Period name must be at most {NAME_MAX_LENGTH} characters")
    return _check_text(value, "Period name")


def _clean_description(value: str | None) -> str | None:
    if value is None:
        return None
    if len(value) > DESCRIPTION_MAX_LENGTH:
        raise ValueError(f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters")
    return _check_text(value, "Description")


def add_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year + years, day=28)


def check_date_range(start_date: date, end_date: date, max_years: int) -> None:
    """Raise ValueError unless start <= end and the span is within max_years."""
    if start_date > end_date:
        raise ValueError("Start date must be on or before the end date")
    if end_date > add_years(start_date, max_years):
        raise ValueError(f"An accounting period can span at most {max_years} years")


def _max_years(info: ValidationInfo) -> int:
    return (info.context or {}).get("max_years", DEFAULT_MAX_YEARS)


# ---------------------------------------------------------------------------
# Input schemas
# ---------------------------------------------------------------------------


class PeriodCreate(BaseModel):
    name: str
    start_date: date
    end_date: date
    description: str | None = None

    @field_validator("name")
    @classmethod
    def clean_name(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator("description")
    @classmethod
    def clean_description(cls, v: str | None) -> str | None:
        return _clean_description(v)

    @model_validator(mode="after")
    def check_dates(self, info: ValidationInfo) -> PeriodCreate:
        check_date_range(self.start_date, self.end_date, _max_years(info))
        return self


class PeriodUpdate(BaseModel):
    """Partial update. Only fields present in the payload are applied."""

    name: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    description: str | None = None
    is_closed: bool | None = None

    @field_validator("name")
    @classmethod
    def clean_name(cls, v: str | None) -> str | None:
        return v if v is None else _clean_name(v)

    @field_validator("description")
    @classmethod
    def clean_description(cls, v: str | None) -> str | None:
        return _clean_description(v)

    @model_validator(mode="after")
    def reject_nulls(self) -> PeriodUpdate:
        for field in ("name", "start_date", "end_date", "is_closed"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    @property
    def changes(self) -> dict:
        return self.model_dump(include=self.model_fields_set)

    @property
    def changes_dates(self) -> bool:
        return bool({"start_date", "end_date"} & self.model_fields_set)


class PeriodListParams(BaseModel):
    page: int = Field(1, ge=1)
    page_size: int | None = Field(None, ge=1)
    search: str | None = Field(None, max_length=100)
    order_by: SortColumn = "start_date"
    order_direction: Literal["asc", "desc"] = "desc"

    @field_validator("search")
    @classmethod
    def blank_search_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("order_direction", mode="before")
    @classmethod
    def descending_unless_asc(cls, v: object) -> str:
        return "asc" if isinstance(v, str) and v.lower() == "asc" else "desc"

    @field_validator("page_size")
    @classmethod
    def within_max_page_size(cls, v: int | None, info: ValidationInfo) -> int | None:
        max_page_size = (info.context or {}).get("max_page_size")
        if v is not None and max_page_size is not None and v > max_page_size:
            raise ValueError(f"page_size must be at most {max_page_size}")
        return v


# ---------------------------------------------------------------------------
# Output schemas
# ---------------------------------------------------------------------------


class PeriodResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    description: str | None
    start_date: date
    end_date: date
    is_closed: bool
    closed_at: datetime | None
    closed_by: uuid.UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PeriodPage(BaseModel):
    items: list[PeriodResponse]
    pagination: PaginationMeta


class PeriodDeleted(BaseModel):
    id: uuid.UUID

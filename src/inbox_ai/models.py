from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class Category(str, Enum):
    TASKS = "tasks"
    WORK = "work"
    PEOPLE = "people"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str) -> Optional["Category"]:
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


CATEGORY_NAMES = ", ".join(c.value for c in Category)


@dataclass(frozen=True)
class CategoryLayout:
    """How a category's records are shaped in the record store."""

    title_property: str
    select_property: Optional[str] = None
    select_default: Optional[str] = None
    select_field: Optional[str] = None


CATEGORY_LAYOUTS: Dict[Category, CategoryLayout] = {
    Category.TASKS: CategoryLayout(title_property="Title"),
    Category.WORK: CategoryLayout(
        title_property="Title",
        select_property="Project",
        select_default="Other",
        select_field="project",
    ),
    Category.PEOPLE: CategoryLayout(title_property="Name"),
    Category.ADMIN: CategoryLayout(
        title_property="Title",
        select_property="Category",
        select_default="Appointments",
        select_field="category",
    ),
}


class LogStatus(str, Enum):
    FILED = "Filed"
    NEEDS_REVIEW = "Needs Review"
    FIXED = "Fixed"
    PENDING_UPDATE = "Pending Update"
    UPDATED = "Updated"
    CANCELLED = "Cancelled"
    PENDING_BACKFILL = "Pending Backfill"
    PENDING_BACKFILL_REVISED = "Pending Backfill Revised"
    BACKFILL_APPLIED = "Backfill Applied"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_pending_backfill(self) -> bool:
        return self in (LogStatus.PENDING_BACKFILL, LogStatus.PENDING_BACKFILL_REVISED)


TERMINAL_STATUSES = frozenset(
    {
        LogStatus.FILED,
        LogStatus.FIXED,
        LogStatus.UPDATED,
        LogStatus.CANCELLED,
        LogStatus.BACKFILL_APPLIED,
    }
)

UpdateField = Literal["status", "due_date", "priority"]


class Item(BaseModel):
    id: str
    database: Category
    title: str = "Untitled"
    status: str = "To Do"
    due_date: Optional[date] = None
    priority: Optional[int] = None
    tags: List[str] = Field(default_factory=list)

    # category specific
    project: Optional[str] = None
    category: Optional[str] = None
    follow_up: Optional[str] = None

    @property
    def display_title(self) -> str:
        """People records read better as "<follow up> <name>"."""
        if self.database == Category.PEOPLE and self.follow_up:
            follow_up = self.follow_up.strip()
            name = self.title
            if name.lower().startswith(follow_up.lower() + " "):
                name = name[len(follow_up) + 1:].strip()
            return f"{follow_up} {name}"
        return self.title

    def to_candidate(self) -> "Candidate":
        return Candidate(
            id=self.id,
            title=self.title,
            database=self.database,
            priority=self.priority,
            due_date=self.due_date,
        )


class Candidate(BaseModel):
    """Snapshot of a search hit, taken when the update prompt is sent."""

    id: str
    title: str
    database: Category
    priority: Optional[int] = None
    due_date: Optional[date] = None


class BackfillCandidate(BaseModel):
    id: str
    title: str
    tags: List[str] = Field(..., min_length=1)


class NoPayload(BaseModel):
    kind: Literal["none"] = "none"


class FiledPayload(BaseModel):
    kind: Literal["filed"] = "filed"
    record_id: str = Field(..., min_length=1)


class PendingUpdatePayload(BaseModel):
    kind: Literal["pending_update"] = "pending_update"
    candidates: List[Candidate] = Field(..., min_length=1)
    field: UpdateField
    value: str


class PendingBackfillPayload(BaseModel):
    kind: Literal["pending_backfill"] = "pending_backfill"
    items: List[BackfillCandidate] = Field(default_factory=list)


LogPayload = Union[NoPayload, FiledPayload, PendingUpdatePayload, PendingBackfillPayload]

STATUS_PAYLOADS: Dict[LogStatus, Type[BaseModel]] = {
    LogStatus.FILED: FiledPayload,
    LogStatus.FIXED: FiledPayload,
    LogStatus.UPDATED: FiledPayload,
    LogStatus.PENDING_UPDATE: PendingUpdatePayload,
    LogStatus.PENDING_BACKFILL: PendingBackfillPayload,
    LogStatus.PENDING_BACKFILL_REVISED: PendingBackfillPayload,
}


def payload_type_for(status: LogStatus) -> Type[BaseModel]:
    return STATUS_PAYLOADS.get(status, NoPayload)


def encode_payload(payload: LogPayload) -> str:
    """Serialize a payload into the log's single text slot.

    Filed payloads keep the historical shape (the bare record id), pending
    payloads are stored as JSON and the empty payload as an empty string.
    """
    if isinstance(payload, FiledPayload):
        return payload.record_id
    if isinstance(payload, NoPayload):
        return ""
    return json.dumps(payload.model_dump(mode="json", exclude={"kind"}), ensure_ascii=False)


def decode_payload(status: LogStatus, raw: Optional[str]) -> LogPayload:
    """Interpret the text slot strictly according to ``status``."""
    payload_type = payload_type_for(status)
    raw = (raw or "").strip()

    if payload_type is NoPayload:
        return NoPayload()
    if payload_type is FiledPayload:
        return FiledPayload(record_id=raw)
    return payload_type.model_validate(json.loads(raw))


class ConversationLogEntry(BaseModel):
    log_id: Optional[str] = None
    original_text: str
    category: Category
    confidence: float = Field(..., ge=0.0, le=1.0)
    thread_key: str = Field(..., min_length=1)
    status: LogStatus
    payload: LogPayload = Field(default_factory=NoPayload, discriminator="kind")

    @model_validator(mode="after")
    def payload_matches_status(self) -> "ConversationLogEntry":
        expected = payload_type_for(self.status)
        if not isinstance(self.payload, expected):
            raise ValueError(
                f"status {self.status.value!r} requires {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )
        return self


class BackfillResult(BaseModel):
    updated: int = 0
    skipped: int = 0
    errors: int = 0


class CaptureFields(BaseModel):
    title: str = "Untitled"
    project: Optional[str] = None
    category: Optional[str] = None
    person_name: Optional[str] = None
    follow_up: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[int] = Field(None, ge=1, le=3)
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    needs_clarification: bool = False
    clarification_question: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v2 = (v or "").strip()
        return v2 or "Untitled"

    @field_validator("due_date", mode="before")
    @classmethod
    def blank_date_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from inbox_ai.models import CaptureFields, Category

QueryDatabase = Literal["tasks", "work", "people", "admin", "all"]
QueryFilter = Literal["due_today", "overdue", "high_priority", "all_active"]


class UpdateSpec(BaseModel):
    search_query: str = Field(..., min_length=1)
    field: Literal["status", "due_date", "priority"]
    value: str

    @model_validator(mode="after")
    def value_fits_field(self) -> "UpdateSpec":
        value = self.value.strip()
        if self.field == "priority":
            if not value.isdigit() or not 1 <= int(value) <= 3:
                raise ValueError("priority must be 1, 2 or 3")
        elif self.field == "due_date" and value and value != "remove":
            date.fromisoformat(value)
        self.value = value
        return self


class QuerySpec(BaseModel):
    database: QueryDatabase = "all"
    filter: QueryFilter = "all_active"
    tag: Optional[str] = None


class Intent(BaseModel):
    """Structured reading of a capture, as returned by the classifier."""

    model_config = ConfigDict(populate_by_name=True)

    action: Literal["create", "update", "query"] = "create"
    category: Category = Field(Category.TASKS, alias="destination")
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    fields: CaptureFields = Field(default_factory=CaptureFields, alias="data")
    update: Optional[UpdateSpec] = None
    query: Optional[QuerySpec] = None

    @model_validator(mode="after")
    def specs_match_action(self) -> "Intent":
        if self.action == "update" and self.update is None:
            raise ValueError("update intent without update spec")
        if self.action == "query" and self.query is None:
            self.query = QuerySpec()
        return self

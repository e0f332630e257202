from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from inbox_ai.errors import ExternalCallFailure, ValidationError
from inbox_ai.models import CATEGORY_LAYOUTS, CaptureFields, Category, Item, UpdateField
from storage.notion import NotionClient, plain_text, rich_text

logger = logging.getLogger(__name__)

DONE_STATUS = "Done"
DEFAULT_STATUS = "To Do"

ActiveItems = Dict[Category, List[Item]]


class RecordStore(ABC):
    """The four category databases the assistant files into."""

    @abstractmethod
    async def create_record(self, category: Category, fields: CaptureFields) -> str: ...

    @abstractmethod
    async def query_active(self, category: Category) -> List[Item]: ...

    @abstractmethod
    async def query_by_keyword(self, term: str) -> List[Item]: ...

    @abstractmethod
    async def update_field(self, record_id: str, field: UpdateField, value: str) -> None: ...

    @abstractmethod
    async def update_tags(self, record_id: str, tags: List[str]) -> None: ...

    @abstractmethod
    async def get_tag_vocabulary(self, category: Category) -> List[str]: ...

    @abstractmethod
    async def get_completed_since(self, since: date) -> List[Item]: ...


async def fetch_active_items(store: RecordStore) -> ActiveItems:
    """Active items of every category, queried concurrently."""
    categories = list(Category)
    results = await asyncio.gather(*(store.query_active(c) for c in categories))
    return dict(zip(categories, results))


def flatten(items: ActiveItems) -> List[Item]:
    return [item for category in Category for item in items.get(category, [])]


def build_properties(category: Category, fields: CaptureFields) -> Dict[str, Any]:
    """Translate captured fields into Notion page properties for ``category``."""
    layout = CATEGORY_LAYOUTS[category]

    title = fields.title
    if category == Category.PEOPLE:
        title = fields.person_name or fields.title

    properties: Dict[str, Any] = {
        layout.title_property: {"title": rich_text(title)},
        "Status": {"select": {"name": DEFAULT_STATUS}},
    }

    if layout.select_property:
        value = getattr(fields, layout.select_field) or layout.select_default
        properties[layout.select_property] = {"select": {"name": value}}
    if category == Category.PEOPLE:
        properties["Follow-up"] = {"rich_text": rich_text(fields.follow_up or "")}

    if fields.due_date:
        properties["Due Date"] = {"date": {"start": fields.due_date.isoformat()}}
    if fields.notes:
        properties["Notes"] = {"rich_text": rich_text(fields.notes)}
    if fields.priority:
        properties["Priority"] = {"number": fields.priority}
    if fields.tags:
        properties["Tags"] = {"multi_select": [{"name": t} for t in fields.tags]}

    return properties


def field_update_properties(field: UpdateField, value: str) -> Dict[str, Any]:
    if field == "status":
        return {"Status": {"select": {"name": value}}}
    if field == "due_date":
        if value == "remove":
            return {"Due Date": {"date": None}}
        return {"Due Date": {"date": {"start": value}}}
    if field == "priority":
        try:
            return {"Priority": {"number": int(value)}}
        except ValueError:
            raise ValidationError(f"priority must be a number, got {value!r}")
    raise ValidationError(f"unsupported field {field!r}")


def page_to_item(page: Dict[str, Any], category: Category) -> Item:
    props = page.get("properties") or {}
    layout = CATEGORY_LAYOUTS[category]

    due = (props.get("Due Date") or {}).get("date") or {}
    due_start = due.get("start")

    def select(name: str) -> Optional[str]:
        return ((props.get(name) or {}).get("select") or {}).get("name")

    return Item(
        id=page["id"],
        database=category,
        title=plain_text((props.get(layout.title_property) or {}).get("title")) or "Untitled",
        status=select("Status") or DEFAULT_STATUS,
        due_date=date.fromisoformat(due_start[:10]) if due_start else None,
        priority=(props.get("Priority") or {}).get("number"),
        tags=[t["name"] for t in (props.get("Tags") or {}).get("multi_select") or []],
        project=select("Project"),
        category=select("Category"),
        follow_up=plain_text((props.get("Follow-up") or {}).get("rich_text")) or None,
    )


class NotionRecordStore(RecordStore):
    def __init__(self, client: NotionClient, database_ids: Dict[Category, str]):
        self.client = client
        self.database_ids = database_ids

    def _db(self, category: Category) -> str:
        db_id = self.database_ids.get(category)
        if not db_id:
            raise ExternalCallFailure("notion", f"no database configured for {category.value}")
        return db_id

    async def _query(self, category: Category, filter: Optional[dict] = None) -> List[Item]:
        pages = await self.client.query_database(self._db(category), filter=filter)
        return [page_to_item(p, category) for p in pages]

    async def create_record(self, category: Category, fields: CaptureFields) -> str:
        record_id = await self.client.create_page(self._db(category), build_properties(category, fields))
        logger.info(f"Created {category.value} record {record_id}")
        return record_id

    async def query_active(self, category: Category) -> List[Item]:
        return await self._query(
            category,
            {"property": "Status", "select": {"does_not_equal": DONE_STATUS}},
        )

    async def query_by_keyword(self, term: str) -> List[Item]:
        async def _search(category: Category) -> List[Item]:
            title_prop = CATEGORY_LAYOUTS[category].title_property
            return await self._query(category, {"property": title_prop, "title": {"contains": term}})

        results = await asyncio.gather(*(_search(c) for c in Category))
        return [item for items in results for item in items]

    async def update_field(self, record_id: str, field: UpdateField, value: str) -> None:
        await self.client.update_page(record_id, field_update_properties(field, value))

    async def update_tags(self, record_id: str, tags: List[str]) -> None:
        await self.client.update_page(
            record_id, {"Tags": {"multi_select": [{"name": t} for t in tags]}}
        )

    async def get_tag_vocabulary(self, category: Category) -> List[str]:
        database = await self.client.retrieve_database(self._db(category))
        tags = (database.get("properties") or {}).get("Tags") or {}
        options = (tags.get("multi_select") or {}).get("options") or []
        return [o["name"] for o in options]

    async def get_completed_since(self, since: date) -> List[Item]:
        completed_filter = {
            "and": [
                {"property": "Status", "select": {"equals": DONE_STATUS}},
                {"timestamp": "last_edited_time", "last_edited_time": {"on_or_after": since.isoformat()}},
            ]
        }

        async def _completed(category: Category) -> List[Item]:
            try:
                return await self._query(category, completed_filter)
            except ExternalCallFailure as e:
                # best effort: a failing database contributes no completed items
                logger.warning(f"Completed-items query failed for {category.value}: {e}")
                return []

        results = await asyncio.gather(*(_completed(c) for c in Category))
        return [item for items in results for item in items]


def unique_by_id(items: Iterable[Item]) -> List[Item]:
    seen = set()
    out = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out

import itertools
from datetime import date
from typing import Dict, List, Optional

import pytest

from inbox_ai.errors import ExternalCallFailure
from inbox_ai.models import (
    CaptureFields,
    Category,
    ConversationLogEntry,
    Item,
    LogStatus,
    decode_payload,
    encode_payload,
)
from llm.schemas import Intent
from storage.conversation_log import ConversationLog
from storage.record_store import RecordStore


class FakeProvider:
    def __init__(self, response_text: str, transcript: str = ""):
        self._response_text = response_text
        self._transcript = transcript
        self.calls = []

    def generate(self, *, system: str, user: str) -> str:
        self.calls.append((system, user))
        return self._response_text

    def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        return self._transcript


class FakeRecordStore(RecordStore):
    """Records kept in a dict; keyword search is a case-insensitive substring match."""

    def __init__(self, items: Optional[List[Item]] = None):
        self.items: Dict[str, Item] = {i.id: i for i in items or []}
        self.created: List[tuple] = []
        self.failing_ids = set()
        self._ids = itertools.count(1)

    async def create_record(self, category: Category, fields: CaptureFields) -> str:
        record_id = f"rec-{next(self._ids)}"
        self.created.append((category, fields))
        self.items[record_id] = Item(
            id=record_id,
            database=category,
            title=fields.person_name if category == Category.PEOPLE and fields.person_name else fields.title,
            due_date=fields.due_date,
            priority=fields.priority,
            tags=list(fields.tags),
            follow_up=fields.follow_up,
        )
        return record_id

    async def query_active(self, category: Category) -> List[Item]:
        return [i for i in self.items.values() if i.database == category and i.status != "Done"]

    async def query_by_keyword(self, term: str) -> List[Item]:
        return [i for i in self.items.values() if term.lower() in i.title.lower()]

    async def update_field(self, record_id: str, field: str, value: str) -> None:
        item = self.items[record_id]
        if field == "due_date":
            item.due_date = None if value == "remove" else date.fromisoformat(value)
        elif field == "priority":
            item.priority = int(value)
        else:
            item.status = value

    async def update_tags(self, record_id: str, tags: List[str]) -> None:
        if record_id in self.failing_ids:
            raise ExternalCallFailure("notion", "simulated failure")
        self.items[record_id].tags = list(tags)

    async def get_tag_vocabulary(self, category: Category) -> List[str]:
        return sorted({t for i in self.items.values() if i.database == category for t in i.tags})

    async def get_completed_since(self, since: date) -> List[Item]:
        return [i for i in self.items.values() if i.status == "Done"]


class FakeConversationLog(ConversationLog):
    """Stores entries the way the Notion log does: payload as encoded text."""

    def __init__(self):
        self.rows: Dict[str, dict] = {}
        self._ids = itertools.count(1)

    async def append(self, entry: ConversationLogEntry) -> str:
        log_id = f"log-{next(self._ids)}"
        self.rows[log_id] = {
            "original_text": entry.original_text,
            "category": entry.category,
            "confidence": entry.confidence,
            "thread_key": entry.thread_key,
            "status": entry.status,
            "raw": encode_payload(entry.payload),
        }
        return log_id

    def _entry(self, log_id: str) -> ConversationLogEntry:
        row = self.rows[log_id]
        return ConversationLogEntry(
            log_id=log_id,
            original_text=row["original_text"],
            category=row["category"],
            confidence=row["confidence"],
            thread_key=row["thread_key"],
            status=row["status"],
            payload=decode_payload(row["status"], row["raw"]),
        )

    async def find_by_thread_key(self, thread_key: str) -> Optional[ConversationLogEntry]:
        for log_id in reversed(list(self.rows)):
            if self.rows[log_id]["thread_key"] == thread_key:
                return self._entry(log_id)
        return None

    async def update(self, log_id, *, status=None, category=None, payload=None) -> None:
        row = self.rows[log_id]
        if status is not None:
            row["status"] = status
        if category is not None:
            row["category"] = category
        if payload is not None:
            row["raw"] = encode_payload(payload)

    def entries(self) -> List[ConversationLogEntry]:
        return [self._entry(log_id) for log_id in self.rows]

    def statuses(self) -> List[LogStatus]:
        return [row["status"] for row in self.rows.values()]


class FakeSlackClient:
    def __init__(self, signature_ok: bool = True):
        self.signature_ok = signature_ok
        self.messages: List[tuple] = []
        self.direct_messages: List[str] = []
        self.thread_roots: Dict[str, str] = {}
        self._ts = itertools.count(1)

    def verify_signature(self, headers, raw_body: bytes) -> bool:
        return self.signature_ok

    async def post_message(self, channel: str, text: str, thread_ts: Optional[str] = None) -> str:
        self.messages.append((channel, text, thread_ts))
        return f"900.{next(self._ts):04d}"

    async def post_reply(self, channel: str, thread_key: str, text: str) -> None:
        await self.post_message(channel, text, thread_ts=thread_key)

    async def post_direct_message(self, text: str) -> None:
        self.direct_messages.append(text)

    async def get_thread_ts(self, channel: str, ts: str) -> Optional[str]:
        return self.thread_roots.get(ts, ts)

    @property
    def last_text(self) -> str:
        return self.messages[-1][1]

    async def aclose(self) -> None:
        pass


class FakeClassifier:
    def __init__(self, intent: Intent):
        self.intent = intent
        self.texts: List[str] = []

    async def classify(self, text: str) -> Intent:
        self.texts.append(text)
        return self.intent


def make_item(id: str, title: str, database: Category = Category.TASKS, **kwargs) -> Item:
    return Item(id=id, title=title, database=database, **kwargs)


@pytest.fixture
def fake_provider_factory():
    def _make(response_text: str, transcript: str = ""):
        return FakeProvider(response_text, transcript)
    return _make


@pytest.fixture
def store():
    return FakeRecordStore()


@pytest.fixture
def log():
    return FakeConversationLog()


@pytest.fixture
def slack():
    return FakeSlackClient()

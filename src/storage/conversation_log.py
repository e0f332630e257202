from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from inbox_ai.models import (
    Category,
    ConversationLogEntry,
    LogPayload,
    LogStatus,
    decode_payload,
    encode_payload,
)
from storage.notion import NotionClient, plain_text, rich_text

logger = logging.getLogger(__name__)


class ConversationLog(ABC):
    """Append-only record of captures and the replies that resolve them.

    Entries are keyed by the platform timestamp of the message that anchors
    the conversation thread; they are updated in place but never removed.
    """

    @abstractmethod
    async def append(self, entry: ConversationLogEntry) -> str: ...

    @abstractmethod
    async def find_by_thread_key(self, thread_key: str) -> Optional[ConversationLogEntry]: ...

    @abstractmethod
    async def update(
        self,
        log_id: str,
        *,
        status: Optional[LogStatus] = None,
        category: Optional[Category] = None,
        payload: Optional[LogPayload] = None,
    ) -> None: ...


class NotionConversationLog(ConversationLog):
    def __init__(self, client: NotionClient, database_id: str):
        self.client = client
        self.database_id = database_id

    async def append(self, entry: ConversationLogEntry) -> str:
        page_id = await self.client.create_page(
            self.database_id,
            {
                "Original Text": {"title": rich_text(entry.original_text)},
                "Destination": {"select": {"name": entry.category.value}},
                "Confidence": {"number": entry.confidence},
                "Slack TS": {"rich_text": rich_text(entry.thread_key)},
                "Status": {"select": {"name": entry.status.value}},
                "Filed To ID": {"rich_text": rich_text(encode_payload(entry.payload))},
            },
        )
        logger.info(f"Logged {entry.status.value} entry {page_id} for thread {entry.thread_key}")
        return page_id

    async def find_by_thread_key(self, thread_key: str) -> Optional[ConversationLogEntry]:
        pages = await self.client.query_database(
            self.database_id,
            filter={"property": "Slack TS", "rich_text": {"equals": thread_key}},
            sorts=[{"timestamp": "created_time", "direction": "descending"}],
        )
        if not pages:
            return None
        return self._to_entry(pages[0])

    async def update(
        self,
        log_id: str,
        *,
        status: Optional[LogStatus] = None,
        category: Optional[Category] = None,
        payload: Optional[LogPayload] = None,
    ) -> None:
        properties: Dict[str, Any] = {}
        if status is not None:
            properties["Status"] = {"select": {"name": status.value}}
        if category is not None:
            properties["Destination"] = {"select": {"name": category.value}}
        if payload is not None:
            properties["Filed To ID"] = {"rich_text": rich_text(encode_payload(payload))}
        if not properties:
            return

        await self.client.update_page(log_id, properties)
        logger.info(f"Updated log entry {log_id}: {sorted(properties)}")

    @staticmethod
    def _to_entry(page: Dict[str, Any]) -> ConversationLogEntry:
        props = page.get("properties") or {}
        status = LogStatus(((props.get("Status") or {}).get("select") or {}).get("name"))
        destination = ((props.get("Destination") or {}).get("select") or {}).get("name")

        return ConversationLogEntry(
            log_id=page["id"],
            original_text=plain_text((props.get("Original Text") or {}).get("title")),
            category=Category.parse(destination or "") or Category.TASKS,
            confidence=(props.get("Confidence") or {}).get("number") or 0.0,
            thread_key=plain_text((props.get("Slack TS") or {}).get("rich_text")),
            status=status,
            payload=decode_payload(
                status, plain_text((props.get("Filed To ID") or {}).get("rich_text"))
            ),
        )

"""
Minimal async client for the Notion REST API.

Only the calls the record store and the conversation log need: create a page,
update a page, query a database (with pagination) and read a database schema.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from inbox_ai.errors import ExternalCallFailure, NotFound

logger = logging.getLogger(__name__)

NOTION_BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
RICH_TEXT_CHUNK = 2000


def rich_text(content: str) -> List[Dict[str, Any]]:
    """Split text into rich-text objects; Notion caps each at 2000 characters."""
    if not content:
        return [{"text": {"content": ""}}]
    return [
        {"text": {"content": content[i:i + RICH_TEXT_CHUNK]}}
        for i in range(0, len(content), RICH_TEXT_CHUNK)
    ]


def plain_text(fragments: Optional[List[Dict[str, Any]]]) -> str:
    """Join a title/rich_text property back into a string."""
    parts = []
    for fragment in fragments or []:
        text = fragment.get("plain_text")
        if text is None:
            text = (fragment.get("text") or {}).get("content", "")
        parts.append(text)
    return "".join(parts)


class NotionClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = NOTION_BASE_URL,
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_s,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Notion-Version": NOTION_VERSION,
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        try:
            r = await self._client.request(method, path, json=json)
            r.raise_for_status()
            return r.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise NotFound(f"notion: {path} does not exist") from e
            logger.warning(f"Notion {method} {path} -> {e.response.status_code}: {e.response.text[:200]}")
            raise ExternalCallFailure("notion", f"{method} {path} returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ExternalCallFailure("notion", f"{method} {path}: {e}") from e

    async def create_page(self, database_id: str, properties: Dict[str, Any]) -> str:
        page = await self._request(
            "POST",
            "/pages",
            json={"parent": {"database_id": database_id}, "properties": properties},
        )
        return page["id"]

    async def update_page(self, page_id: str, properties: Dict[str, Any]) -> None:
        await self._request("PATCH", f"/pages/{page_id}", json={"properties": properties})

    async def query_database(
        self,
        database_id: str,
        filter: Optional[Dict[str, Any]] = None,
        sorts: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        body: Dict[str, Any] = {"page_size": 100}
        if filter:
            body["filter"] = filter
        if sorts:
            body["sorts"] = sorts

        results: List[Dict[str, Any]] = []
        while True:
            data = await self._request("POST", f"/databases/{database_id}/query", json=body)
            results.extend(data.get("results", []))
            if not data.get("has_more") or not data.get("next_cursor"):
                return results
            body["start_cursor"] = data["next_cursor"]

    async def retrieve_database(self, database_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/databases/{database_id}")

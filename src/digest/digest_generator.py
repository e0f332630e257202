import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, List, Literal, Optional, Sequence

import httpx

from conversation.formatting import item_line
from inbox_ai.models import Item
from integration.slack_client import SlackClient
from llm.llm_client import LLMClient
from storage.record_store import DONE_STATUS, ActiveItems, RecordStore, fetch_active_items, flatten

logger = logging.getLogger(__name__)

DigestKind = Literal["morning", "evening", "weekly"]

UPCOMING_DAYS = 7
MAX_LINES_PER_SECTION = 10

HEADERS = {
    "morning": "☀️ *Morning Briefing*",
    "evening": "🌙 *Evening Review*",
    "weekly": "📅 *Weekly Review*",
}

GREETINGS = {
    "morning": "Good morning! Here's what's on your plate.",
    "evening": "Evening check-in. Here's where things stand.",
    "weekly": "Here's your week in review.",
}

DIGEST_PROMPTS = {
    "morning": (
        "You are a personal assistant. Rewrite the following briefing into a brief "
        "morning briefing (under 150 words). Focus on the top 3 priorities for today, "
        "anything due today or overdue, and one thing that might be blocked. "
        "Be concise and actionable. Do not invent items."
    ),
    "evening": (
        "You are a personal assistant. Rewrite the following review into a brief "
        "evening review (under 150 words). Acknowledge what was completed, point out "
        "what needs attention tomorrow, and keep an encouraging tone. Do not invent items."
    ),
    "weekly": (
        "You are a personal assistant. Rewrite the following review into a weekly "
        "review (under 300 words). Cover what was completed, items that have been "
        "sitting too long, people to follow up with and suggested priorities for "
        "the coming week. Be thorough but actionable. Do not invent items."
    ),
}


def completion_tone(completed_count: int) -> str:
    if completed_count == 0:
        return "Nothing was marked done yet. A fresh start is waiting."
    if completed_count <= 2:
        return f"You closed {completed_count} item(s). Every step counts."
    return f"Great momentum: {completed_count} items closed!"


def _priority_key(item: Item):
    # missing priority sorts last
    return (item.priority is None, item.priority or 0)


@dataclass
class DigestSections:
    overdue: List[Item] = field(default_factory=list)
    today: List[Item] = field(default_factory=list)
    upcoming: List[Item] = field(default_factory=list)
    priorities: List[Item] = field(default_factory=list)
    no_date_count: int = 0
    completed: List[Item] = field(default_factory=list)


def build_sections(
    active: Sequence[Item],
    today: date,
    completed: Sequence[Item] = (),
) -> DigestSections:
    """Partition a snapshot of active items into the digest sections."""
    active = [i for i in active if i.status != DONE_STATUS]
    horizon = today + timedelta(days=UPCOMING_DAYS)

    overdue = sorted((i for i in active if i.due_date and i.due_date < today), key=lambda i: i.due_date)
    due_today = sorted((i for i in active if i.due_date == today), key=_priority_key)
    upcoming = sorted(
        (i for i in active if i.due_date and today < i.due_date <= horizon), key=lambda i: i.due_date
    )

    today_ids = {i.id for i in due_today}
    priorities = sorted(
        (i for i in active if i.priority is not None and i.id not in today_ids), key=_priority_key
    )

    return DigestSections(
        overdue=overdue,
        today=due_today,
        upcoming=upcoming,
        priorities=priorities,
        no_date_count=sum(1 for i in active if i.due_date is None),
        completed=list(completed),
    )


def _section(heading: str, items: Sequence[Item]) -> Optional[str]:
    if not items:
        return None
    lines = [f"*{heading}* ({len(items)})"]
    lines.extend(item_line(i) for i in items[:MAX_LINES_PER_SECTION])
    if len(items) > MAX_LINES_PER_SECTION:
        lines.append(f"…and {len(items) - MAX_LINES_PER_SECTION} more")
    return "\n".join(lines)


def build_skeleton(
    kind: DigestKind,
    active: Sequence[Item],
    today: date,
    completed: Sequence[Item] = (),
) -> str:
    """Deterministic digest text; the same snapshot always gives the same message."""
    sections = build_sections(active, today, completed)

    parts = [HEADERS[kind], GREETINGS[kind]]
    if kind != "morning":
        parts.append(completion_tone(len(sections.completed)))
        parts.append(_section("Completed", sections.completed))

    parts.append(_section("Overdue", sections.overdue))
    parts.append(_section("Due today", sections.today))
    parts.append(_section(f"Coming up (next {UPCOMING_DAYS} days)", sections.upcoming))
    parts.append(_section("Priorities", sections.priorities))
    if sections.no_date_count:
        parts.append(f"Plus {sections.no_date_count} item(s) with no due date.")

    if not any([sections.overdue, sections.today, sections.upcoming, sections.priorities]):
        parts.append("Nothing urgent on the list. 🎉")

    return "\n\n".join(p for p in parts if p)


class DigestService:
    """Builds a digest from live data and delivers it over Slack."""

    def __init__(
        self,
        store: RecordStore,
        slack: SlackClient,
        llm_client: Optional[LLMClient] = None,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.slack = slack
        self.llm = llm_client or LLMClient()
        self._today = today

    def completed_window_start(self, kind: DigestKind, today: date) -> Optional[date]:
        if kind == "evening":
            return today
        if kind == "weekly":
            return today - timedelta(days=7)
        return None

    async def compose(self, kind: DigestKind) -> str:
        today = self._today()
        active: ActiveItems = await fetch_active_items(self.store)

        completed: List[Item] = []
        since = self.completed_window_start(kind, today)
        if since is not None:
            completed = await self.store.get_completed_since(since)

        skeleton = build_skeleton(kind, flatten(active), today, completed)
        return await self._elaborate(kind, skeleton)

    async def _elaborate(self, kind: DigestKind, skeleton: str) -> str:
        try:
            text = await asyncio.to_thread(
                self.llm.generate_text, system=DIGEST_PROMPTS[kind], user=skeleton
            )
        except (httpx.HTTPError, KeyError, TypeError, ValueError, RuntimeError) as e:
            logger.warning(f"Digest elaboration failed, sending the plain digest: {e}")
            return skeleton

        if not text:
            return skeleton
        return f"{HEADERS[kind]}\n\n{text}"

    async def send(self, kind: DigestKind) -> str:
        message = await self.compose(kind)
        await self.slack.post_direct_message(message)
        logger.info(f"Sent {kind} digest")
        return message

    async def post_review(self, channel: str) -> str:
        """On-demand weekly-style review posted to ``channel``."""
        message = await self.compose("weekly")
        await self.slack.post_message(channel, message)
        return "review_posted"

import logging
from typing import Dict, Iterable, List, Literal, Optional

from conversation.formatting import backfill_preview
from conversation.replies import NO, YES, parse_confirmation, parse_exclusion
from inbox_ai.errors import ExternalCallFailure, NotFound
from inbox_ai.models import (
    BackfillCandidate,
    BackfillResult,
    Category,
    ConversationLogEntry,
    Item,
    LogStatus,
    NoPayload,
    PendingBackfillPayload,
)
from integration.slack_client import SlackClient
from storage.conversation_log import ConversationLog
from storage.record_store import RecordStore, fetch_active_items, flatten

logger = logging.getLogger(__name__)

TAG_KEYWORDS: Dict[str, List[str]] = {
    "phone": ["call", "phone", "ring", "callback"],
    "laptop": ["email", "message", "dm", "online", "computer", "laptop"],
    "groceries": ["groceries", "grocery", "food", "milk", "supermarket"],
    "home": ["home", "diy", "clean", "household", "house"],
    "office": ["office"],
    "errands": ["errands", "pick up", "collect", "bank"],
}

PREVIEW_LOG_TEXT = "Tag backfill preview"

BackfillOutcome = Literal["empty", "previewed", "applied", "cancelled", "revised", "reprompted", "ignored"]


def infer_tags(text: str) -> List[str]:
    """Tags whose keywords occur in ``text`` (substring match, case-insensitive)."""
    lower = (text or "").lower()
    return [tag for tag, keywords in TAG_KEYWORDS.items() if any(kw in lower for kw in keywords)]


def preview_candidates(items: Iterable[Item]) -> List[BackfillCandidate]:
    candidates = []
    for item in items:
        if item.tags:
            continue
        title = item.display_title
        if not title:
            continue
        tags = infer_tags(title)
        if not tags:
            continue
        candidates.append(BackfillCandidate(id=item.id, title=title, tags=tags))
    return candidates


class BackfillHandler:
    """Previews inferred tags for untagged items and applies them once confirmed."""

    def __init__(self, store: RecordStore, log: ConversationLog, slack: SlackClient):
        self.store = store
        self.log = log
        self.slack = slack

    async def start_preview(self, channel: str) -> BackfillOutcome:
        items = flatten(await fetch_active_items(self.store))
        candidates = preview_candidates(items)

        if not candidates:
            await self.slack.post_message(
                channel, "🏷️ Nothing to backfill: every active item is tagged or matches no tag."
            )
            return "empty"

        await self._post_preview(channel, candidates, LogStatus.PENDING_BACKFILL)
        return "previewed"

    async def _post_preview(self, channel: str, candidates: List[BackfillCandidate], status: LogStatus) -> str:
        ts = await self.slack.post_message(
            channel, backfill_preview(candidates, revised=status == LogStatus.PENDING_BACKFILL_REVISED)
        )
        await self.log.append(
            ConversationLogEntry(
                original_text=PREVIEW_LOG_TEXT,
                category=Category.TASKS,
                confidence=1.0,
                thread_key=ts,
                status=status,
                payload=PendingBackfillPayload(items=candidates),
            )
        )
        logger.info(f"Posted {status.value} with {len(candidates)} candidates as {ts}")
        return ts

    async def handle_reply(
        self,
        entry: Optional[ConversationLogEntry],
        reply_text: str,
        channel: str,
        thread_key: str,
    ) -> BackfillOutcome:
        if entry is None or not entry.status.is_pending_backfill:
            return "ignored"

        items = entry.payload.items

        excluded = parse_exclusion(reply_text)
        if excluded:
            return await self._revise(entry, items, excluded, channel, thread_key)

        reply = parse_confirmation(reply_text)
        if reply == YES:
            result = await self.apply(items)
            await self.log.update(entry.log_id, status=LogStatus.BACKFILL_APPLIED, payload=NoPayload())
            await self.slack.post_reply(
                channel,
                thread_key,
                f"✅ Tags applied. Updated: {result.updated}, skipped: {result.skipped}, errors: {result.errors}",
            )
            return "applied"

        if reply == NO:
            await self.log.update(entry.log_id, status=LogStatus.CANCELLED)
            await self.slack.post_reply(channel, thread_key, "Tag backfill cancelled. Nothing was changed.")
            return "cancelled"

        await self.slack.post_reply(
            channel,
            thread_key,
            "Reply `yes` to apply these tags, `no` to cancel, "
            "or `yes except don't tag 'title'` to leave an item out.",
        )
        return "reprompted"

    async def _revise(
        self,
        entry: ConversationLogEntry,
        items: List[BackfillCandidate],
        excluded: str,
        channel: str,
        thread_key: str,
    ) -> BackfillOutcome:
        needle = excluded.lower()
        remaining = [c for c in items if needle not in c.title.lower()]

        if len(remaining) == len(items):
            await self.slack.post_reply(
                channel, thread_key, f"I couldn't find \"{excluded}\" in this preview. Nothing changed."
            )
            return "reprompted"

        if not remaining:
            await self.log.update(entry.log_id, status=LogStatus.CANCELLED)
            await self.slack.post_reply(channel, thread_key, "That leaves nothing to tag, so the backfill is cancelled.")
            return "cancelled"

        new_ts = await self._post_preview(channel, remaining, LogStatus.PENDING_BACKFILL_REVISED)
        # the superseded preview can no longer be confirmed
        await self.log.update(entry.log_id, status=LogStatus.CANCELLED)
        await self.slack.post_reply(
            channel,
            thread_key,
            f"Left out {len(items) - len(remaining)} item(s). Reply to the revised preview (ts {new_ts}) instead.",
        )
        return "revised"

    async def apply(self, items: Iterable[BackfillCandidate]) -> BackfillResult:
        result = BackfillResult()
        for candidate in items:
            try:
                await self.store.update_tags(candidate.id, candidate.tags)
                result.updated += 1
            except (ExternalCallFailure, NotFound) as e:
                logger.warning(f"Could not tag {candidate.id}: {e}")
                result.errors += 1
        logger.info(f"Backfill applied: {result.model_dump()}")
        return result

    async def backfill_active_items(self) -> BackfillResult:
        """Tag every untagged active item straight away, without a preview."""
        items = flatten(await fetch_active_items(self.store))
        candidates = preview_candidates(items)

        result = await self.apply(candidates)
        result.skipped = len(items) - len(candidates)
        return result

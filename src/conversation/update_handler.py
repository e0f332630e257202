import logging
from typing import List, Literal, Optional, Sequence

from conversation.formatting import candidate_line
from conversation.replies import NO, YES, parse_confirmation
from inbox_ai.errors import NotFound
from inbox_ai.models import (
    Candidate,
    ConversationLogEntry,
    FiledPayload,
    LogStatus,
    PendingUpdatePayload,
    UpdateField,
)
from integration.slack_client import SlackClient
from storage.conversation_log import ConversationLog
from storage.record_store import RecordStore

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 5

FIELD_LABELS = {"status": "status", "due_date": "due date", "priority": "priority"}

UpdateOutcome = Literal["ignored", "cancelled", "updated", "reprompted", "not_found"]


def value_label(field: UpdateField, value: str) -> str:
    if field == "due_date" and value == "remove":
        return "no due date"
    if field == "priority":
        return f"P{value}"
    return value


def update_prompt(
    candidates: Sequence[Candidate],
    field: UpdateField,
    value: str,
    total_matches: Optional[int] = None,
) -> str:
    change = f"{FIELD_LABELS[field]} → *{value_label(field, value)}*"

    if len(candidates) == 1:
        return (
            f"Found {candidate_line(candidates[0])}.\n"
            f"Update {change}? Reply `yes` or `no` (or react ✅ / ❌)."
        )

    lines = [f"Found {total_matches or len(candidates)} matches. Which one should get {change}?"]
    lines.extend(candidate_line(c, number=n) for n, c in enumerate(candidates, start=1))
    if total_matches and total_matches > len(candidates):
        lines.append(f"(showing the first {len(candidates)})")
    lines.append(f"Reply with a number (1-{len(candidates)}) or `no` to cancel.")
    return "\n".join(lines)


def reprompt_text(candidates: List[Candidate]) -> str:
    if len(candidates) == 1:
        return f"Reply `yes` to update *{candidates[0].title}*, or `no` to cancel."
    return f"Please reply with a number between 1 and {len(candidates)}, or `no` to cancel."


class UpdateConfirmationHandler:
    """Resolves a pending update from a yes/no/number reply or a reaction.

    Only entries still in Pending Update are acted on, so a redelivered or
    repeated reply after the update was applied or cancelled is a no-op.
    """

    def __init__(self, store: RecordStore, log: ConversationLog, slack: SlackClient):
        self.store = store
        self.log = log
        self.slack = slack

    async def handle_reply(
        self,
        entry: Optional[ConversationLogEntry],
        reply_text: str,
        channel: str,
        thread_key: str,
    ) -> UpdateOutcome:
        if entry is None or entry.status != LogStatus.PENDING_UPDATE:
            logger.debug(f"No pending update in thread {thread_key}; reply ignored")
            return "ignored"

        payload: PendingUpdatePayload = entry.payload
        candidates = payload.candidates
        reply = parse_confirmation(reply_text)

        if reply == NO:
            await self.log.update(entry.log_id, status=LogStatus.CANCELLED)
            await self.slack.post_reply(channel, thread_key, "Update cancelled.")
            return "cancelled"

        if reply == YES and len(candidates) == 1:
            chosen = candidates[0]
        elif isinstance(reply, int) and 1 <= reply <= len(candidates):
            chosen = candidates[reply - 1]
        else:
            await self.slack.post_reply(channel, thread_key, reprompt_text(candidates))
            return "reprompted"

        try:
            await self.store.update_field(chosen.id, payload.field, payload.value)
        except NotFound:
            logger.warning(f"Record {chosen.id} vanished before the update in {thread_key}")
            await self.slack.post_reply(
                channel, thread_key, f"*{chosen.title}* no longer exists, so nothing was changed."
            )
            return "not_found"

        await self.log.update(
            entry.log_id,
            status=LogStatus.UPDATED,
            payload=FiledPayload(record_id=chosen.id),
        )
        logger.info(f"Applied {payload.field}={payload.value!r} to {chosen.id} from thread {thread_key}")

        await self.slack.post_reply(
            channel,
            thread_key,
            f"✓ Updated *{chosen.title}*: {FIELD_LABELS[payload.field]} → "
            f"{value_label(payload.field, payload.value)}",
        )
        return "updated"

import logging
import re
from datetime import date
from typing import Callable, List, Literal

from classification.intent_classifier import IntentClassifier
from conversation.formatting import filed_title, grouped_items, priority_tag
from conversation.update_handler import MAX_CANDIDATES, update_prompt
from inbox_ai.models import (
    CATEGORY_NAMES,
    Category,
    ConversationLogEntry,
    FiledPayload,
    Item,
    LogStatus,
    NoPayload,
    PendingUpdatePayload,
)
from integration.slack_client import SlackClient
from llm.schemas import Intent, QuerySpec
from storage.conversation_log import ConversationLog
from storage.record_store import DONE_STATUS, RecordStore, fetch_active_items, flatten, unique_by_id

logger = logging.getLogger(__name__)

CaptureOutcome = Literal["empty", "query", "no_match", "update_prompt", "needs_review", "filed"]

STOP_WORDS = {
    "the", "and", "for", "with", "from", "about", "that", "this", "into", "onto",
    "task", "item", "todo", "my", "our", "your",
}


def search_terms(query: str) -> List[str]:
    """The full query, then each significant word when the query has several."""
    query = query.strip()
    terms = [query]
    words = re.findall(r"[\w']+", query.lower())
    if len(words) > 1:
        for word in words:
            if len(word) >= 3 and word not in STOP_WORDS and word not in terms:
                terms.append(word)
    return terms


async def search_items(store: RecordStore, query: str) -> List[Item]:
    found: List[Item] = []
    for term in search_terms(query):
        found.extend(await store.query_by_keyword(term))
    return unique_by_id(found)


def apply_query_filter(items: List[Item], query: QuerySpec, today: date) -> List[Item]:
    items = [i for i in items if i.status != DONE_STATUS]

    if query.filter == "due_today":
        return [i for i in items if i.due_date == today]
    if query.filter == "overdue":
        overdue = [i for i in items if i.due_date and i.due_date < today]
        return sorted(overdue, key=lambda i: i.due_date)
    if query.filter == "high_priority":
        return [i for i in items if i.priority == 1]
    return items


class CaptureHandler:
    """Turns a fresh message into a filed record, a question, or an answer."""

    def __init__(
        self,
        classifier: IntentClassifier,
        store: RecordStore,
        log: ConversationLog,
        slack: SlackClient,
        confidence_threshold: float = 0.7,
        today: Callable[[], date] = date.today,
    ):
        self.classifier = classifier
        self.store = store
        self.log = log
        self.slack = slack
        self.confidence_threshold = confidence_threshold
        self._today = today

    async def handle(self, text: str, thread_key: str, channel: str) -> CaptureOutcome:
        if not (text or "").strip():
            await self.slack.post_reply(channel, thread_key, "I didn't catch anything to capture.")
            return "empty"

        intent = await self.classifier.classify(text)

        if intent.action == "query":
            return await self._answer_query(intent.query or QuerySpec(), thread_key, channel)
        if intent.action == "update":
            return await self._prompt_update(text, intent, thread_key, channel)
        return await self._file(text, intent, thread_key, channel)

    async def _answer_query(self, query: QuerySpec, thread_key: str, channel: str) -> CaptureOutcome:
        if query.tag:
            tag = query.tag.strip().lower()
            active = flatten(await fetch_active_items(self.store))
            items = [i for i in active if tag in (t.lower() for t in i.tags)]
        elif query.database == "all":
            items = flatten(await fetch_active_items(self.store))
        else:
            items = await self.store.query_active(Category(query.database))

        items = apply_query_filter(items, query, self._today())
        await self.slack.post_reply(channel, thread_key, grouped_items(items) or "No items found.")
        return "query"

    async def _prompt_update(self, text: str, intent: Intent, thread_key: str, channel: str) -> CaptureOutcome:
        spec = intent.update
        if spec.field == "due_date" and not spec.value:
            await self.slack.post_reply(
                channel, thread_key, "Which date should I set? Try \"move X to Friday\"."
            )
            return "no_match"

        matches = await search_items(self.store, spec.search_query)

        if not matches:
            await self.slack.post_reply(
                channel,
                thread_key,
                f"I couldn't find anything matching \"{spec.search_query}\". Try rephrasing?",
            )
            return "no_match"

        candidates = [m.to_candidate() for m in matches[:MAX_CANDIDATES]]
        await self.log.append(
            ConversationLogEntry(
                original_text=text,
                category=candidates[0].database,
                confidence=intent.confidence,
                thread_key=thread_key,
                status=LogStatus.PENDING_UPDATE,
                payload=PendingUpdatePayload(candidates=candidates, field=spec.field, value=spec.value),
            )
        )
        logger.info(f"Awaiting update confirmation for {len(candidates)} candidate(s) in {thread_key}")

        prompt = update_prompt(candidates, spec.field, spec.value, total_matches=len(matches))
        await self.slack.post_reply(channel, thread_key, prompt)
        return "update_prompt"

    async def _file(self, text: str, intent: Intent, thread_key: str, channel: str) -> CaptureOutcome:
        category = intent.category
        fields = intent.fields

        if intent.confidence < self.confidence_threshold:
            await self.log.append(
                ConversationLogEntry(
                    original_text=text,
                    category=category,
                    confidence=intent.confidence,
                    thread_key=thread_key,
                    status=LogStatus.NEEDS_REVIEW,
                    payload=NoPayload(),
                )
            )
            await self.slack.post_reply(
                channel,
                thread_key,
                f"I'm not confident about this one ({round(intent.confidence * 100)}%). "
                f"I think it's: *{category.value}*. Reply with `fix: <category>` if wrong.\n"
                f"Categories: {CATEGORY_NAMES}",
            )
            return "needs_review"

        record_id = await self.store.create_record(category, fields)
        await self.log.append(
            ConversationLogEntry(
                original_text=text,
                category=category,
                confidence=intent.confidence,
                thread_key=thread_key,
                status=LogStatus.FILED,
                payload=FiledPayload(record_id=record_id),
            )
        )

        reply = f"✓ Filed to *{category.value}*: {filed_title(category, fields)}{priority_tag(fields.priority)}"
        if fields.due_date:
            reply += f" (due: {fields.due_date.isoformat()})"
        if fields.needs_clarification and fields.clarification_question:
            reply += f"\n❓ {fields.clarification_question}"
        reply += "\nReply `fix: <category>` if wrong."

        await self.slack.post_reply(channel, thread_key, reply)
        return "filed"

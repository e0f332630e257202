import logging
from typing import Literal, Optional

from classification.intent_classifier import IntentClassifier
from conversation.formatting import filed_title
from conversation.replies import parse_fix_category
from inbox_ai.models import CATEGORY_NAMES, Category, ConversationLogEntry, FiledPayload, LogStatus
from integration.slack_client import SlackClient
from storage.conversation_log import ConversationLog
from storage.record_store import RecordStore

logger = logging.getLogger(__name__)

FIXABLE_STATUSES = {LogStatus.FILED, LogStatus.NEEDS_REVIEW, LogStatus.FIXED}

FixOutcome = Literal["invalid_category", "not_found", "not_fixable", "fixed"]


class CorrectionHandler:
    """Re-files a logged capture under the category named in `fix:<category>`."""

    def __init__(
        self,
        classifier: IntentClassifier,
        store: RecordStore,
        log: ConversationLog,
        slack: SlackClient,
    ):
        self.classifier = classifier
        self.store = store
        self.log = log
        self.slack = slack

    async def handle(
        self,
        text: str,
        thread_key: str,
        channel: str,
        entry: Optional[ConversationLogEntry],
    ) -> FixOutcome:
        category = Category.parse(parse_fix_category(text) or "")
        if category is None:
            await self.slack.post_reply(
                channel, thread_key, f"Invalid category. Use one of: {CATEGORY_NAMES}"
            )
            return "invalid_category"

        if entry is None:
            await self.slack.post_reply(
                channel, thread_key, "Couldn't find the original message to fix."
            )
            return "not_found"

        if entry.status not in FIXABLE_STATUSES:
            await self.slack.post_reply(channel, thread_key, "There is nothing to fix in this thread.")
            return "not_fixable"

        # classify the original capture, not the fix message
        intent = await self.classifier.classify(entry.original_text)
        record_id = await self.store.create_record(category, intent.fields)

        await self.log.update(
            entry.log_id,
            status=LogStatus.FIXED,
            category=category,
            payload=FiledPayload(record_id=record_id),
        )
        logger.info(f"Re-filed thread {thread_key} from {entry.category.value} to {category.value}")

        title = filed_title(category, intent.fields)
        await self.slack.post_reply(
            channel, thread_key, f"✓ Fixed! Moved to *{category.value}*: {title}"
        )
        return "fixed"

import asyncio
import logging
from datetime import date
from typing import Callable, Optional

import httpx

from extraction.due_date import resolve_due_date
from inbox_ai.errors import ExternalCallFailure
from llm.llm_client import LLMClient, LLMOutputError
from llm.schemas import Intent

logger = logging.getLogger(__name__)


class IntentClassifier:
    """Maps free text to an Intent, with the date resolver as the final word on due dates."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        today: Callable[[], date] = date.today,
    ):
        self.llm = llm_client or LLMClient()
        self._today = today

    async def classify(self, text: str) -> Intent:
        today = self._today()
        try:
            intent = await asyncio.to_thread(self.llm.classify_intent, text, today)
        except (LLMOutputError, httpx.HTTPError) as e:
            raise ExternalCallFailure("classifier", str(e)) from e

        resolved = resolve_due_date(text, today)
        if resolved is not None:
            if intent.fields.due_date and intent.fields.due_date != resolved:
                logger.info(
                    f"Due date {intent.fields.due_date} from classifier replaced by {resolved}"
                )
            intent.fields.due_date = resolved
            # an update keeps the classifier's date; weekdays in the search text name the item
            if intent.update is not None and intent.update.field == "due_date" and not intent.update.value:
                intent.update.value = resolved.isoformat()

        logger.info(
            f"Classified capture as {intent.action}/{intent.category.value} "
            f"(confidence {intent.confidence:.2f})"
        )
        return intent

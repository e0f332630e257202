from typing import Optional

from classification.intent_classifier import IntentClassifier
from conversation.dedup import EventDeduplicator
from inbox_ai.config import Settings
from integration.slack_client import SlackClient
from llm.llm_client import LLMClient
from storage.conversation_log import ConversationLog
from storage.notion import NotionClient
from storage.record_store import RecordStore

# Global instances, created on first use or at startup
settings: Optional[Settings] = None
deduplicator: Optional[EventDeduplicator] = None
notion_client: Optional[NotionClient] = None
slack_client: Optional[SlackClient] = None
record_store: Optional[RecordStore] = None
conversation_log: Optional[ConversationLog] = None
llm_client: Optional[LLMClient] = None
classifier: Optional[IntentClassifier] = None

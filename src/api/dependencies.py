from typing import Optional

from fastapi import Depends, Header, HTTPException

from api import state
from classification.intent_classifier import IntentClassifier
from conversation.backfill_handler import BackfillHandler
from conversation.capture_handler import CaptureHandler
from conversation.correction_handler import CorrectionHandler
from conversation.dedup import EventDeduplicator, InMemoryEventDeduplicator
from conversation.router import EventRouter
from conversation.update_handler import UpdateConfirmationHandler
from digest.digest_generator import DigestService
from inbox_ai.config import Settings
from inbox_ai.errors import Unauthorized
from integration.slack_client import SlackClient
from integration.transcription import Transcriber
from llm.llm_client import LLMClient
from storage.conversation_log import ConversationLog, NotionConversationLog
from storage.notion import NotionClient
from storage.record_store import NotionRecordStore, RecordStore


def get_settings() -> Settings:
    if state.settings is None:
        state.settings = Settings.from_env()
    return state.settings


def get_deduplicator() -> EventDeduplicator:
    if state.deduplicator is None:
        state.deduplicator = InMemoryEventDeduplicator(ttl_seconds=get_settings().dedup_ttl_seconds)
    return state.deduplicator


def get_slack_client() -> SlackClient:
    if state.slack_client is None:
        settings = get_settings()
        state.slack_client = SlackClient(
            bot_token=settings.slack_bot_token,
            signing_secret=settings.slack_signing_secret,
            user_id=settings.slack_user_id,
            reply_broadcast=settings.slack_reply_broadcast,
            signature_max_age_s=settings.signature_max_age_seconds,
        )
    return state.slack_client


def get_notion_client() -> NotionClient:
    if state.notion_client is None:
        state.notion_client = NotionClient(api_key=get_settings().notion_api_key)
    return state.notion_client


def get_record_store() -> RecordStore:
    if state.record_store is None:
        state.record_store = NotionRecordStore(get_notion_client(), get_settings().notion_database_ids)
    return state.record_store


def get_conversation_log() -> ConversationLog:
    if state.conversation_log is None:
        state.conversation_log = NotionConversationLog(
            get_notion_client(), get_settings().notion_inbox_log_db_id
        )
    return state.conversation_log


def get_llm_client() -> LLMClient:
    if state.llm_client is None:
        state.llm_client = LLMClient()
    return state.llm_client


def get_classifier() -> IntentClassifier:
    if state.classifier is None:
        state.classifier = IntentClassifier(get_llm_client())
    return state.classifier


def get_backfill_handler() -> BackfillHandler:
    return BackfillHandler(get_record_store(), get_conversation_log(), get_slack_client())


def get_digest_service() -> DigestService:
    return DigestService(get_record_store(), get_slack_client(), get_llm_client())


def get_event_router() -> EventRouter:
    settings = get_settings()
    store = get_record_store()
    log = get_conversation_log()
    slack = get_slack_client()
    classifier = get_classifier()

    return EventRouter(
        dedup=get_deduplicator(),
        log=log,
        slack=slack,
        transcriber=Transcriber(settings.slack_bot_token, get_llm_client()),
        capture=CaptureHandler(
            classifier, store, log, slack, confidence_threshold=settings.confidence_threshold
        ),
        correction=CorrectionHandler(classifier, store, log, slack),
        update=UpdateConfirmationHandler(store, log, slack),
        backfill=BackfillHandler(store, log, slack),
        inbox_channel=settings.slack_inbox_channel_id,
        bot_user_id=settings.slack_bot_user_id,
    )


def require_cron_secret(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.cron_secret or authorization != f"Bearer {settings.cron_secret}":
        raise Unauthorized("bearer token mismatch")


def require_backfill_secret(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    secret = settings.backfill_token
    if not secret:
        raise HTTPException(status_code=501, detail="BACKFILL_SECRET or CRON_SECRET not configured")
    if authorization != f"Bearer {secret}":
        raise Unauthorized("bearer token mismatch")

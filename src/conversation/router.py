import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from conversation.backfill_handler import BackfillHandler
from conversation.capture_handler import CaptureHandler
from conversation.correction_handler import CorrectionHandler
from conversation.dedup import EventDeduplicator, event_identifier
from conversation.replies import is_fix_command, reaction_to_reply
from conversation.update_handler import UpdateConfirmationHandler
from inbox_ai.models import ConversationLogEntry
from integration.slack_client import SlackClient
from integration.transcription import Transcriber
from storage.conversation_log import ConversationLog

logger = logging.getLogger(__name__)


@dataclass
class DetachedJob:
    """Handler work that runs after the HTTP response has been sent.

    ``run`` resolves to the handler's outcome label. ``channel`` and
    ``thread_ts`` say where an apology goes if the job fails.
    """

    name: str
    channel: str
    thread_ts: Optional[str]
    run: Callable[[], Awaitable[str]]


class EventRouter:
    """Classifies an inbound Slack event callback and picks the handler for it."""

    def __init__(
        self,
        dedup: EventDeduplicator,
        log: ConversationLog,
        slack: SlackClient,
        transcriber: Transcriber,
        capture: CaptureHandler,
        correction: CorrectionHandler,
        update: UpdateConfirmationHandler,
        backfill: BackfillHandler,
        inbox_channel: str,
        bot_user_id: str = "",
    ):
        self.dedup = dedup
        self.log = log
        self.slack = slack
        self.transcriber = transcriber
        self.capture = capture
        self.correction = correction
        self.update = update
        self.backfill = backfill
        self.inbox_channel = inbox_channel
        self.bot_user_id = bot_user_id

    async def dispatch(self, payload: Mapping[str, Any]) -> Optional[DetachedJob]:
        """Return the job for ``payload``, or None when the event is dropped."""
        event = payload.get("event") or {}

        event_id = event_identifier(payload)
        if event_id and await self.dedup.check_and_mark(event_id):
            logger.info(f"Dropping duplicate event {event_id}")
            return None

        if event.get("type") == "reaction_added":
            return self._route_reaction(event)

        if event.get("bot_id"):
            return None
        subtype = event.get("subtype")
        if subtype and subtype != "file_share":
            return None

        channel = event.get("channel", "")
        ts = event.get("ts", "")
        thread_ts = event.get("thread_ts")
        text = event.get("text") or ""

        if thread_ts and thread_ts != ts:
            return DetachedJob(
                name="thread_reply",
                channel=channel,
                thread_ts=thread_ts,
                run=lambda: self._handle_thread_reply(text, channel, thread_ts),
            )

        files = event.get("files") or []
        if event.get("type") == "message" and files and (files[0].get("mimetype") or "").startswith("audio/"):
            audio_url = files[0].get("url_private_download") or files[0].get("url_private", "")
            filename = files[0].get("name") or "audio.webm"
            return DetachedJob(
                name="voice_capture",
                channel=channel,
                thread_ts=ts,
                run=lambda: self._handle_voice(audio_url, filename, ts, channel),
            )

        if event.get("type") == "message" and channel == self.inbox_channel:
            return DetachedJob(
                name="capture",
                channel=channel,
                thread_ts=ts,
                run=lambda: self.capture.handle(text, ts, channel),
            )

        return None

    def _route_reaction(self, event: Mapping[str, Any]) -> Optional[DetachedJob]:
        if self.bot_user_id and event.get("user") == self.bot_user_id:
            return None

        reply = reaction_to_reply(event.get("reaction", ""))
        if reply is None:
            return None

        item = event.get("item") or {}
        channel = item.get("channel", "")
        item_ts = item.get("ts", "")
        if not item_ts:
            return None

        return DetachedJob(
            name="reaction",
            channel=channel,
            thread_ts=None,
            run=lambda: self._handle_reaction(reply, channel, item_ts),
        )

    async def _find_reacted_entry(self, channel: str, item_ts: str) -> Optional[ConversationLogEntry]:
        entry = await self.log.find_by_thread_key(item_ts)
        if entry is not None:
            return entry

        # a reaction on a bot reply inside the thread refers to the thread root
        root_ts = await self.slack.get_thread_ts(channel, item_ts)
        if root_ts and root_ts != item_ts:
            return await self.log.find_by_thread_key(root_ts)
        return None

    async def _handle_reaction(self, reply: str, channel: str, item_ts: str) -> str:
        entry = await self._find_reacted_entry(channel, item_ts)
        if entry is None:
            logger.debug(f"No log entry for reaction on {item_ts}")
            return "ignored"

        if entry.status.is_pending_backfill:
            return await self.backfill.handle_reply(entry, reply, channel, entry.thread_key)
        return await self.update.handle_reply(entry, reply, channel, entry.thread_key)

    async def _handle_thread_reply(self, text: str, channel: str, thread_ts: str) -> str:
        entry = await self.log.find_by_thread_key(thread_ts)

        if entry is not None and entry.status.is_pending_backfill:
            return await self.backfill.handle_reply(entry, text, channel, thread_ts)
        if is_fix_command(text):
            return await self.correction.handle(text, thread_ts, channel, entry)
        return await self.update.handle_reply(entry, text, channel, thread_ts)

    async def _handle_voice(self, audio_url: str, filename: str, ts: str, channel: str) -> str:
        transcript = await self.transcriber.transcribe(audio_url, filename)
        return await self.capture.handle(transcript, ts, channel)

import hashlib
import hmac
import logging
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from inbox_ai.errors import ExternalCallFailure

logger = logging.getLogger(__name__)

SLACK_API_BASE = "https://slack.com/api"


def compute_signature(signing_secret: str, timestamp: str, raw_body: bytes) -> str:
    basestring = f"v0:{timestamp}:".encode("utf-8") + raw_body
    digest = hmac.new(signing_secret.encode("utf-8"), basestring, hashlib.sha256).hexdigest()
    return f"v0={digest}"


def verify_slack_signature(
    signing_secret: str,
    headers: Mapping[str, str],
    raw_body: bytes,
    max_age_s: int = 300,
    now: Optional[float] = None,
) -> bool:
    """Check X-Slack-Signature against the body and reject stale timestamps."""
    if not signing_secret:
        return False

    timestamp = headers.get("x-slack-request-timestamp")
    signature = headers.get("x-slack-signature")
    if not timestamp or not signature:
        return False

    try:
        ts = int(timestamp)
    except ValueError:
        return False

    now = time.time() if now is None else now
    if abs(now - ts) > max_age_s:
        return False

    expected = compute_signature(signing_secret, timestamp, raw_body)
    # header values are latin-1 decoded and may hold non-ASCII characters
    return hmac.compare_digest(expected.encode(), signature.encode("utf-8", "ignore"))


class SlackClient:
    """The few Web API calls the assistant needs, over httpx."""

    def __init__(
        self,
        bot_token: str,
        signing_secret: str,
        user_id: str = "",
        reply_broadcast: bool = True,
        signature_max_age_s: int = 300,
        base_url: str = SLACK_API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.signing_secret = signing_secret
        self.user_id = user_id
        self.reply_broadcast = reply_broadcast
        self.signature_max_age_s = signature_max_age_s
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=10.0,
            transport=transport,
            headers={"Authorization": f"Bearer {bot_token}"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def verify_signature(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        return verify_slack_signature(
            self.signing_secret, headers, raw_body, max_age_s=self.signature_max_age_s
        )

    async def _call(self, method: str, *, json: Optional[dict] = None, params: Optional[dict] = None) -> Dict[str, Any]:
        try:
            if json is not None:
                r = await self._client.post(f"/{method}", json=json)
            else:
                r = await self._client.get(f"/{method}", params=params)
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPError as e:
            raise ExternalCallFailure("slack", f"{method}: {e}") from e

        if not data.get("ok"):
            raise ExternalCallFailure("slack", f"{method}: {data.get('error', 'unknown_error')}")
        return data

    async def post_message(self, channel: str, text: str, thread_ts: Optional[str] = None) -> str:
        """Post a message and return its ts (the anchor of any thread it starts)."""
        body: Dict[str, Any] = {"channel": channel, "text": text}
        if thread_ts:
            body["thread_ts"] = thread_ts
            body["reply_broadcast"] = self.reply_broadcast
        data = await self._call("chat.postMessage", json=body)
        return data.get("ts", "")

    async def post_reply(self, channel: str, thread_key: str, text: str) -> None:
        await self.post_message(channel, text, thread_ts=thread_key)

    async def post_direct_message(self, text: str) -> None:
        if not self.user_id:
            raise ExternalCallFailure("slack", "SLACK_USER_ID is not configured")
        await self.post_message(self.user_id, text)

    async def get_thread_ts(self, channel: str, ts: str) -> Optional[str]:
        """Thread root of the message at ``ts`` (the message itself when it is a root)."""
        data = await self._call(
            "conversations.replies",
            params={"channel": channel, "ts": ts, "limit": 1, "inclusive": "true"},
        )
        messages = data.get("messages") or []
        if not messages:
            return None
        return messages[0].get("thread_ts") or messages[0].get("ts")

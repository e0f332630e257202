import asyncio
import logging
from typing import Optional

import httpx
import requests

from inbox_ai.errors import ExternalCallFailure
from llm.llm_client import LLMClient

logger = logging.getLogger(__name__)


def download_private_file(url: str, bot_token: str, timeout_s: float = 30.0) -> bytes:
    """Fetch a Slack-hosted file; private URLs need the bot token."""
    resp = requests.get(
        url,
        headers={"Authorization": f"Bearer {bot_token}"},
        timeout=timeout_s,
    )
    resp.raise_for_status()
    return resp.content


class Transcriber:
    def __init__(self, bot_token: str, llm_client: Optional[LLMClient] = None):
        self.bot_token = bot_token
        self.llm = llm_client or LLMClient()

    async def transcribe(self, audio_url: str, filename: str = "audio.webm") -> str:
        try:
            audio = await asyncio.to_thread(download_private_file, audio_url, self.bot_token)
        except requests.RequestException as e:
            raise ExternalCallFailure("slack", f"audio download failed: {e}") from e

        try:
            text = await asyncio.to_thread(self.llm.provider.transcribe, audio, filename)
        except (httpx.HTTPError, NotImplementedError) as e:
            raise ExternalCallFailure("transcription", str(e)) from e

        logger.info(f"Transcribed {len(audio)} bytes of audio into {len(text)} characters")
        return text.strip()

from __future__ import annotations
import os
import httpx
from .base import LLMProvider

class OpenAIProvider(LLMProvider):
    def __init__(self):
        self.api_key = os.getenv("OPENAI_API_KEY", "").strip()
        self.model = os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip()
        self.transcription_model = os.getenv("OPENAI_TRANSCRIPTION_MODEL", "whisper-1").strip()
        self.base_url = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").strip()
        self.temperature = float(os.getenv("OPENAI_TEMPERATURE", "0.1"))

        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY is missing")

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    def generate(self, *, system: str, user: str, model: str | None = None) -> str:
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": model or self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.temperature,
        }

        with httpx.Client(timeout=30.0) as client:
            r = client.post(url, headers=self._headers(), json=payload)
            r.raise_for_status()
            data = r.json()

        return data["choices"][0]["message"]["content"] or ""

    def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        url = f"{self.base_url}/audio/transcriptions"
        files = {"file": (filename, audio, "audio/webm")}

        with httpx.Client(timeout=120.0) as client:
            r = client.post(
                url,
                headers=self._headers(),
                data={"model": self.transcription_model},
                files=files,
            )
            r.raise_for_status()
            data = r.json()

        return data.get("text", "")

from __future__ import annotations
import os
import httpx
from .base import LLMProvider

class OllamaProvider(LLMProvider):
    """Local models through Ollama's chat API; no transcription support."""

    def __init__(self):
        self.model = os.getenv("OLLAMA_MODEL", "llama3.1").strip()
        self.base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434").strip()
        self.timeout_s = float(os.getenv("OLLAMA_TIMEOUT_S", "60"))

    def generate(self, *, system: str, user: str, model: str | None = None) -> str:
        payload = {
            "model": model or self.model,
            "stream": False,
            "format": "json" if "JSON" in system else "",
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "options": {"temperature": 0.1},
        }

        with httpx.Client(timeout=self.timeout_s) as client:
            r = client.post(f"{self.base_url}/api/chat", json=payload)
            r.raise_for_status()
            data = r.json()

        return data["message"]["content"]

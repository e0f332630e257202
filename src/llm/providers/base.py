from __future__ import annotations
from abc import ABC, abstractmethod

class LLMProvider(ABC):
    @abstractmethod
    def generate(self, *, system: str, user: str) -> str:
        """
        Must return the model output as TEXT (JSON is parsed/validated in LLMClient).
        """
        raise NotImplementedError

    def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        """Speech-to-text; only some providers offer it."""
        raise NotImplementedError(f"{type(self).__name__} cannot transcribe audio")

from __future__ import annotations

import json
import logging
import os
import re
from datetime import date
from typing import Any, Optional

from pydantic import ValidationError as SchemaError

from llm.providers.base import LLMProvider
from llm.schemas import Intent

logger = logging.getLogger(__name__)

CLASSIFICATION_PROMPT = """You are a classification system for a personal task manager.
Analyze the input and return JSON only, no markdown. Today is {today}.

Categories:
- "tasks": General to-do items, DIY tasks, things to order, online admin
- "work": Work-related thoughts, meeting proposals, project tasks
- "people": Follow-ups with specific people, meetings to arrange with someone
- "admin": Appointments, bills, scheduled events

Actions:
- "create": something new to track (default)
- "update": change an existing item; fill "update" with search_query, field
  ("status", "due_date" or "priority") and value ("Done", an ISO date or
  "remove", or 1-3)
- "query": the user asks what is on their list; fill "query" with database
  ("tasks", "work", "people", "admin" or "all"), filter ("due_today",
  "overdue", "high_priority", "all_active") and an optional tag

Extract into "data":
- title: Brief, actionable title
- project: (work only) project name
- category: (admin only) "Appointments", "Bills", or "Orders"
- person_name, follow_up: (people only)
- due_date: ISO date if mentioned or implied
- priority: 1 (urgent) to 3 (low) if implied
- notes: Any additional context
- needs_clarification / clarification_question: when something important is missing

Return JSON:
{{"action": "...", "destination": "...", "confidence": 0.0-1.0, "data": {{...}},
  "update": {{...}} | null, "query": {{...}} | null}}"""


class LLMOutputError(ValueError):
    """The provider answered with something that is not usable JSON."""


def provider_from_env() -> LLMProvider:
    name = os.getenv("LLM_PROVIDER", "openai").strip().lower()
    if name == "ollama":
        from llm.providers.ollama_provider import OllamaProvider

        return OllamaProvider()
    if name == "mock":
        from llm.providers.mock_provider import MockProvider

        return MockProvider()

    from llm.providers.openai_provider import OpenAIProvider

    return OpenAIProvider()


def extract_json(text: str) -> dict[str, Any]:
    """Pull the first JSON object out of a model answer, tolerating chatter around it."""
    text = (text or "").strip()
    text = re.sub(r"^```(?:json)?\s*|\s*```$", "", text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", text, re.DOTALL)
        if not match:
            raise LLMOutputError("no JSON object in model output")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise LLMOutputError(f"invalid JSON in model output: {e}") from e

    if not isinstance(data, dict):
        raise LLMOutputError("model output is not a JSON object")
    return data


class LLMClient:
    """Thin layer over a provider: prompts in, validated structures out."""

    def __init__(self, provider: Optional[LLMProvider] = None):
        self._provider = provider

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = provider_from_env()
        return self._provider

    def complete_json(self, *, system: str, user: str) -> dict[str, Any]:
        return extract_json(self.provider.generate(system=system, user=user))

    def generate_text(self, *, system: str, user: str) -> str:
        return self.provider.generate(system=system, user=user).strip()

    def classify_intent(self, text: str, today: Optional[date] = None) -> Intent:
        today = today or date.today()
        data = self.complete_json(
            system=CLASSIFICATION_PROMPT.format(today=today.isoformat()),
            user=text,
        )
        try:
            return Intent.model_validate(data)
        except SchemaError as e:
            logger.warning(f"Classifier returned an unusable intent: {e}")
            raise LLMOutputError(f"intent failed validation: {e}") from e

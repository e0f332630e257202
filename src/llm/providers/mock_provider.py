from __future__ import annotations
import json
from llm.providers.base import LLMProvider

_CATEGORY_HINTS = [
    ("admin", ("bill", "pay", "appointment", "dentist", "doctor", "renew")),
    ("people", ("call ", "text ", "follow up", "catch up", "meet with")),
    ("work", ("meeting", "deck", "client", "project", "report")),
]


class MockProvider(LLMProvider):
    """Offline provider for local runs: keyword rules instead of a model."""

    def generate(self, *, system: str, user: str, model: str | None = None) -> str:
        # Classification request
        if "classification system" in system:
            lower_user = user.lower()

            if lower_user.startswith(("what", "show", "list")):
                return json.dumps({
                    "action": "query",
                    "destination": "tasks",
                    "confidence": 0.9,
                    "data": {"title": user},
                    "query": {
                        "database": "all",
                        "filter": "due_today" if "today" in lower_user else "all_active",
                    },
                })

            if lower_user.startswith(("mark ", "done ")):
                return json.dumps({
                    "action": "update",
                    "destination": "tasks",
                    "confidence": 0.9,
                    "data": {"title": user},
                    "update": {
                        "search_query": lower_user.split(" ", 1)[1].replace(" as done", "").strip(),
                        "field": "status",
                        "value": "Done",
                    },
                })

            destination = "tasks"
            for category, hints in _CATEGORY_HINTS:
                if any(h in lower_user for h in hints):
                    destination = category
                    break

            data = {"title": user.strip().rstrip(".").capitalize()}
            if "urgent" in lower_user or "asap" in lower_user:
                data["priority"] = 1
            return json.dumps({
                "action": "create",
                "destination": destination,
                "confidence": 0.95 if destination != "tasks" else 0.75,
                "data": data,
            })

        # Digest / free text request
        return "Here is your summary. Focus on the overdue items first."

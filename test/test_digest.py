import asyncio
from datetime import date

import httpx

from conftest import FakeRecordStore, make_item
from digest.digest_generator import DigestService, build_sections, build_skeleton, completion_tone
from llm.llm_client import LLMClient

MONDAY = date(2024, 1, 1)

ITEMS = [
    make_item("late2", "Renew passport", due_date=date(2023, 12, 20)),
    make_item("late1", "File taxes", due_date=date(2023, 11, 1), priority=2),
    make_item("t3", "Water plants", due_date=MONDAY),
    make_item("t1", "Call bank", due_date=MONDAY, priority=1),
    make_item("soon", "Book flights", due_date=date(2024, 1, 6)),
    make_item("far", "Plan party", due_date=date(2024, 3, 1)),
    make_item("p", "Draft deck", priority=3),
]


def test_sections_are_ordered():
    sections = build_sections(ITEMS, MONDAY)
    assert [i.id for i in sections.overdue] == ["late1", "late2"]
    assert [i.id for i in sections.today] == ["t1", "t3"]
    assert [i.id for i in sections.upcoming] == ["soon"]
    assert [i.id for i in sections.priorities] == ["late1", "p"]
    assert sections.no_date_count == 1


def test_skeleton_is_reproducible():
    first = build_skeleton("morning", ITEMS, MONDAY)
    assert first == build_skeleton("morning", ITEMS, MONDAY)
    assert first.startswith("☀️ *Morning Briefing*")
    assert "*Overdue* (2)" in first
    assert "• Call bank [P1] (due: 2024-01-01)" in first


def test_evening_tone_follows_completed_count():
    done = [make_item(f"d{n}", f"Done {n}", status="Done") for n in range(3)]
    assert completion_tone(0) in build_skeleton("evening", ITEMS, MONDAY)
    assert completion_tone(1) in build_skeleton("evening", ITEMS, MONDAY, done[:1])
    assert "Great momentum: 3 items closed!" in build_skeleton("weekly", ITEMS, MONDAY, done)


def test_empty_snapshot():
    assert "Nothing urgent" in build_skeleton("morning", [], MONDAY)


def test_send_dms_elaborated_digest(fake_provider_factory, slack):
    provider = fake_provider_factory("Focus on the bank call first.")
    service = DigestService(FakeRecordStore(ITEMS), slack, LLMClient(provider=provider), today=lambda: MONDAY)
    asyncio.run(service.send("morning"))

    assert slack.direct_messages == ["☀️ *Morning Briefing*\n\nFocus on the bank call first."]
    assert "*Due today* (2)" in provider.calls[0][1]


class FailingProvider:
    def generate(self, *, system, user):
        raise httpx.ConnectError("offline")


def test_send_falls_back_to_skeleton(slack):
    store = FakeRecordStore(ITEMS + [make_item("d", "Paid rent", status="Done")])
    service = DigestService(store, slack, LLMClient(provider=FailingProvider()), today=lambda: MONDAY)
    asyncio.run(service.send("evening"))

    [message] = slack.direct_messages
    assert message.startswith("🌙 *Evening Review*")
    assert "• Paid rent" in message


class MalformedAnswerProvider:
    def generate(self, *, system, user):
        data = {"error": {"message": "overloaded"}}
        return data["choices"][0]["message"]["content"]


def test_malformed_llm_answer_falls_back_to_skeleton(slack):
    service = DigestService(
        FakeRecordStore(ITEMS), slack, LLMClient(provider=MalformedAnswerProvider()), today=lambda: MONDAY
    )
    asyncio.run(service.send("morning"))

    [message] = slack.direct_messages
    assert message == build_skeleton("morning", ITEMS, MONDAY)


def test_review_command_posts_to_channel(fake_provider_factory, slack):
    service = DigestService(FakeRecordStore(ITEMS), slack, LLMClient(provider=fake_provider_factory("Weekly words")), today=lambda: MONDAY)
    assert asyncio.run(service.post_review("C9")) == "review_posted"
    assert slack.messages[-1][0] == "C9"
    assert slack.messages[-1][1].startswith("📅 *Weekly Review*")

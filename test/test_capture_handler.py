import asyncio
from datetime import date

from classification.intent_classifier import IntentClassifier
from conftest import FakeClassifier, FakeRecordStore, make_item
from conversation.capture_handler import CaptureHandler, apply_query_filter, search_terms
from inbox_ai.models import Category, LogStatus
from llm.llm_client import LLMClient
from llm.schemas import Intent, QuerySpec

MONDAY = date(2024, 1, 1)


def _handler(classifier, store, log, slack):
    return CaptureHandler(classifier, store, log, slack, today=lambda: MONDAY)


def _create(category="tasks", confidence=0.9, **data):
    return Intent.model_validate(
        {"action": "create", "destination": category, "confidence": confidence, "data": data}
    )


def test_confident_capture_files_one_record(store, log, slack):
    handler = _handler(FakeClassifier(_create("work", title="Draft Q3 deck", priority=2)), store, log, slack)
    outcome = asyncio.run(handler.handle("draft the q3 deck", "1.1", "C1"))

    assert outcome == "filed"
    assert len(store.created) == 1
    [entry] = log.entries()
    assert entry.status == LogStatus.FILED
    assert entry.payload.record_id == "rec-1"
    assert slack.last_text.startswith("✓ Filed to *work*: Draft Q3 deck [P2]")
    assert slack.messages[-1][2] == "1.1"


def test_low_confidence_needs_review(store, log, slack):
    handler = _handler(FakeClassifier(_create("people", confidence=0.4, title="Sam?")), store, log, slack)
    outcome = asyncio.run(handler.handle("sam thing", "1.2", "C1"))

    assert outcome == "needs_review"
    assert store.created == []
    assert log.statuses() == [LogStatus.NEEDS_REVIEW]
    assert "fix: <category>" in slack.last_text


def test_confidence_at_threshold_is_filed(store, log, slack):
    handler = _handler(FakeClassifier(_create("tasks", confidence=0.7, title="Fix bike")), store, log, slack)
    outcome = asyncio.run(handler.handle("fix the bike", "1.5", "C1"))

    assert outcome == "filed"
    assert len(store.created) == 1
    assert log.statuses() == [LogStatus.FILED]


def test_confidence_just_below_threshold_needs_review(store, log, slack):
    handler = _handler(FakeClassifier(_create("tasks", confidence=0.69, title="Fix bike")), store, log, slack)
    outcome = asyncio.run(handler.handle("fix the bike", "1.6", "C1"))

    assert outcome == "needs_review"
    assert store.created == []
    assert log.statuses() == [LogStatus.NEEDS_REVIEW]


def test_clarification_question_is_appended(store, log, slack):
    intent = _create(
        "admin", title="Book appointment", needs_clarification=True, clarification_question="Which doctor?"
    )
    asyncio.run(_handler(FakeClassifier(intent), store, log, slack).handle("book appointment", "1.3", "C1"))
    assert "❓ Which doctor?" in slack.last_text


def test_gas_bill_end_to_end(fake_provider_factory, store, log, slack):
    provider = fake_provider_factory(
        '{"action":"create","destination":"admin","confidence":0.93,'
        '"data":{"title":"Pay gas bill","priority":1,"category":"Bills"}}'
    )
    classifier = IntentClassifier(LLMClient(provider=provider), today=lambda: MONDAY)
    outcome = asyncio.run(_handler(classifier, store, log, slack).handle("pay the gas bill tomorrow, urgent", "5.5", "C1"))

    assert outcome == "filed"
    [(category, fields)] = store.created
    assert category == Category.ADMIN
    assert fields.due_date == date(2024, 1, 2)
    assert log.statuses() == [LogStatus.FILED]
    assert "(due: 2024-01-02)" in slack.last_text


def test_empty_capture(store, log, slack):
    outcome = asyncio.run(_handler(FakeClassifier(_create()), store, log, slack).handle("   ", "1.4", "C1"))
    assert outcome == "empty"
    assert log.rows == {}


def test_update_with_several_matches_logs_candidates(log, slack):
    store = FakeRecordStore(
        [make_item(f"r{n}", f"Dentist visit {n}") for n in range(7)]
    )
    intent = Intent.model_validate(
        {"action": "update", "confidence": 0.9,
         "update": {"search_query": "dentist", "field": "priority", "value": "1"}}
    )
    outcome = asyncio.run(_handler(FakeClassifier(intent), store, log, slack).handle("dentist is urgent", "2.1", "C1"))

    assert outcome == "update_prompt"
    [entry] = log.entries()
    assert entry.status == LogStatus.PENDING_UPDATE
    assert len(entry.payload.candidates) == 5
    assert "Found 7 matches" in slack.last_text
    assert "Reply with a number (1-5)" in slack.last_text


def test_update_without_match_logs_nothing(store, log, slack):
    intent = Intent.model_validate(
        {"action": "update", "confidence": 0.9,
         "update": {"search_query": "unicorn", "field": "status", "value": "Done"}}
    )
    outcome = asyncio.run(_handler(FakeClassifier(intent), store, log, slack).handle("unicorn done", "2.2", "C1"))
    assert outcome == "no_match"
    assert log.rows == {}


def test_due_date_update_without_date_asks_for_one(log, slack):
    store = FakeRecordStore([make_item("r1", "Dentist visit")])
    intent = Intent.model_validate(
        {"action": "update", "confidence": 0.9,
         "update": {"search_query": "dentist", "field": "due_date", "value": ""}}
    )
    outcome = asyncio.run(_handler(FakeClassifier(intent), store, log, slack).handle("move the dentist", "2.3", "C1"))
    assert outcome == "no_match"
    assert log.rows == {}
    assert slack.last_text.startswith("Which date should I set?")


def test_query_by_tag(log, slack):
    store = FakeRecordStore([
        make_item("a", "Call plumber", tags=["phone"]),
        make_item("b", "Clean gutters", tags=["home"]),
        make_item("c", "Call bank", database=Category.ADMIN, tags=["Phone"], status="Done"),
    ])
    intent = Intent.model_validate({"action": "query", "confidence": 0.9, "query": {"tag": "phone"}})
    outcome = asyncio.run(_handler(FakeClassifier(intent), store, log, slack).handle("phone stuff?", "3.1", "C1"))

    assert outcome == "query"
    assert "Call plumber" in slack.last_text
    assert "Clean gutters" not in slack.last_text
    assert "Call bank" not in slack.last_text


def test_query_nothing_found(store, log, slack):
    intent = Intent.model_validate({"action": "query", "confidence": 0.9, "query": {"filter": "overdue"}})
    asyncio.run(_handler(FakeClassifier(intent), store, log, slack).handle("what's overdue?", "3.2", "C1"))
    assert slack.last_text == "No items found."


def test_query_filters():
    items = [
        make_item("a", "Old", due_date=date(2023, 12, 1)),
        make_item("b", "Older", due_date=date(2023, 11, 1)),
        make_item("c", "Today", due_date=MONDAY, priority=2),
        make_item("d", "Urgent", priority=1),
        make_item("e", "Finished", priority=1, status="Done"),
    ]
    assert [i.id for i in apply_query_filter(items, QuerySpec(filter="overdue"), MONDAY)] == ["b", "a"]
    assert [i.id for i in apply_query_filter(items, QuerySpec(filter="due_today"), MONDAY)] == ["c"]
    assert [i.id for i in apply_query_filter(items, QuerySpec(filter="high_priority"), MONDAY)] == ["d"]
    assert len(apply_query_filter(items, QuerySpec(), MONDAY)) == 4


def test_search_terms_skip_short_and_stop_words():
    assert search_terms("the gas bill") == ["the gas bill", "gas", "bill"]
    assert search_terms("dentist") == ["dentist"]

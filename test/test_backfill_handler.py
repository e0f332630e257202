import asyncio

import pytest

from conftest import FakeRecordStore, make_item
from conversation.backfill_handler import BackfillHandler, infer_tags, preview_candidates
from inbox_ai.models import Category, LogStatus


@pytest.fixture
def store():
    return FakeRecordStore([
        make_item("a", "Call the plumber"),
        make_item("b", "Email landlord about the house"),
        make_item("c", "Buy milk", tags=["groceries"]),
        make_item("d", "Think about life"),
        make_item("e", "Priya", database=Category.PEOPLE, follow_up="Ring"),
    ])


def _reply(handler, log, thread_key, text):
    entry = asyncio.run(log.find_by_thread_key(thread_key))
    return asyncio.run(handler.handle_reply(entry, text, "C1", thread_key))


def test_infer_tags():
    assert infer_tags("Email landlord about the house") == ["laptop", "home"]
    assert infer_tags("Pick up parcel") == ["errands"]
    assert infer_tags("Think about life") == []


def test_preview_skips_tagged_and_untaggable(store):
    candidates = preview_candidates(store.items.values())
    assert [c.id for c in candidates] == ["a", "b", "e"]
    assert candidates[2].title == "Ring Priya"
    assert candidates[2].tags == ["phone"]


def test_preview_is_posted_top_level_and_logged(store, log, slack):
    handler = BackfillHandler(store, log, slack)
    assert asyncio.run(handler.start_preview("C1")) == "previewed"

    channel, text, thread_ts = slack.messages[-1]
    assert thread_ts is None
    assert "1. Call the plumber → phone" in text
    [entry] = log.entries()
    assert entry.status == LogStatus.PENDING_BACKFILL
    assert entry.thread_key == "900.0001"


def test_yes_applies_and_second_preview_is_empty(store, log, slack):
    handler = BackfillHandler(store, log, slack)
    asyncio.run(handler.start_preview("C1"))

    assert _reply(handler, log, "900.0001", "yes") == "applied"
    assert store.items["a"].tags == ["phone"]
    assert store.items["b"].tags == ["laptop", "home"]
    assert log.statuses() == [LogStatus.BACKFILL_APPLIED]
    assert "Updated: 3, skipped: 0, errors: 0" in slack.last_text

    assert asyncio.run(handler.start_preview("C1")) == "empty"
    assert len(log.rows) == 1


def test_no_cancels_without_changes(store, log, slack):
    handler = BackfillHandler(store, log, slack)
    asyncio.run(handler.start_preview("C1"))
    assert _reply(handler, log, "900.0001", "no") == "cancelled"
    assert store.items["a"].tags == []
    assert log.statuses() == [LogStatus.CANCELLED]


def test_exclusion_posts_revised_preview(store, log, slack):
    handler = BackfillHandler(store, log, slack)
    asyncio.run(handler.start_preview("C1"))

    assert _reply(handler, log, "900.0001", "yes except don't tag 'plumber'") == "revised"
    assert log.statuses() == [LogStatus.CANCELLED, LogStatus.PENDING_BACKFILL_REVISED]

    revised = asyncio.run(log.find_by_thread_key("900.0002"))
    assert [c.id for c in revised.payload.items] == ["b", "e"]
    assert "Revised tag preview" in slack.messages[1][1]

    assert _reply(handler, log, "900.0002", "✅") == "applied"
    assert store.items["a"].tags == []
    assert store.items["e"].tags == ["phone"]


def test_exclusion_without_match_reprompts(store, log, slack):
    handler = BackfillHandler(store, log, slack)
    asyncio.run(handler.start_preview("C1"))
    assert _reply(handler, log, "900.0001", "yes except don't tag \"dentist\"") == "reprompted"
    assert log.statuses() == [LogStatus.PENDING_BACKFILL]


def test_exclusion_of_everything_cancels(log, slack):
    store = FakeRecordStore([make_item("a", "Call the plumber")])
    handler = BackfillHandler(store, log, slack)
    asyncio.run(handler.start_preview("C1"))
    assert _reply(handler, log, "900.0001", "yes except don't tag plumber") == "cancelled"
    assert log.statuses() == [LogStatus.CANCELLED]


def test_other_reply_reprompts(store, log, slack):
    handler = BackfillHandler(store, log, slack)
    asyncio.run(handler.start_preview("C1"))
    assert _reply(handler, log, "900.0001", "hmm, what?") == "reprompted"
    assert log.statuses() == [LogStatus.PENDING_BACKFILL]


def test_direct_backfill_counts_errors(store, log, slack):
    store.failing_ids.add("b")
    result = asyncio.run(BackfillHandler(store, log, slack).backfill_active_items())
    assert (result.updated, result.skipped, result.errors) == (2, 2, 1)
    assert log.rows == {}

import json

import httpx
import pytest

from headspace.errors import ErrorCode
from headspace.repositories.journal import SUMMARY_FAILED, SUMMARY_UNAVAILABLE
from headspace.schemas.journal import JournalEntryInput
from headspace.store import keys


def _summary_handler(summary="A calm, reflective day."):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content))
        return httpx.Response(200, json={"summary": summary})

    handler.calls = calls
    return handler


@pytest.mark.asyncio
async def test_save_requires_title_and_content(make_workspace):
    workspace = make_workspace()
    result = await workspace.journal.save_entry(JournalEntryInput(title=" ", content="body"))
    assert not result.ok
    assert result.error == ErrorCode.INVALID_INPUT
    assert workspace.journal.list_entries() == []


@pytest.mark.asyncio
async def test_entries_are_listed_most_recent_first(make_workspace):
    workspace = make_workspace()
    await workspace.journal.save_entry(JournalEntryInput(title="Monday", content="first"))
    await workspace.journal.save_entry(JournalEntryInput(title="Tuesday", content="second"))
    assert [entry.title for entry in workspace.journal.list_entries()] == ["Tuesday", "Monday"]


@pytest.mark.asyncio
async def test_no_mood_means_no_summary_call(make_workspace):
    handler = _summary_handler()
    workspace = make_workspace(handler=handler)
    result = await workspace.journal.save_entry(JournalEntryInput(title="Plain", content="no mood"))
    assert result.ok
    assert result.entry.summary is None
    assert handler.calls == []
    assert workspace.journal.latest_mood() is None


@pytest.mark.asyncio
async def test_mood_entry_gets_summary_and_mood_snapshot(make_workspace):
    handler = _summary_handler()
    workspace = make_workspace(handler=handler)
    result = await workspace.journal.save_entry(JournalEntryInput(title="Walk", content="Went outside", mood="calm"))

    assert result.ok and result.created
    assert result.entry.summary == "A calm, reflective day."
    assert result.entry.moodTimestamp is not None
    assert handler.calls == [{"journalText": "Went outside", "moodScale": "calm"}]
    snapshot = workspace.journal.latest_mood()
    assert snapshot.lastMood == "calm"


@pytest.mark.asyncio
async def test_summary_outage_falls_back_after_retries(make_workspace, sleep):
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(500, json={"error": "down"})

    workspace = make_workspace(handler=handler)
    result = await workspace.journal.save_entry(JournalEntryInput(title="Rough", content="Long day", mood="tired"))

    assert result.ok
    assert result.summary_failed
    assert result.entry.summary == SUMMARY_UNAVAILABLE
    assert len(attempts) == 3
    assert sleep.delays == [1.0, 2.0]
    assert len(workspace.journal.list_entries()) == 1


@pytest.mark.asyncio
async def test_summary_without_text_is_not_retried(make_workspace, sleep):
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(200, json={"nothing": True})

    workspace = make_workspace(handler=handler)
    result = await workspace.journal.save_entry(JournalEntryInput(title="Odd", content="reply", mood="sad"))

    assert result.entry.summary == SUMMARY_FAILED
    assert len(attempts) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_edit_keeps_id_and_mood_timestamp_when_mood_unchanged(make_workspace):
    workspace = make_workspace(handler=_summary_handler())
    created = (await workspace.journal.save_entry(JournalEntryInput(title="Draft", content="v1", mood="happy"))).entry

    edited = (await workspace.journal.save_entry(JournalEntryInput(id=created.id, title="Final", content="v2", mood="happy"))).entry

    assert edited.id == created.id
    assert edited.title == "Final"
    assert edited.moodTimestamp == created.moodTimestamp
    assert edited.date != created.date
    assert len(workspace.journal.list_entries()) == 1


@pytest.mark.asyncio
async def test_edit_with_new_mood_refreshes_timestamp(make_workspace):
    workspace = make_workspace(handler=_summary_handler())
    created = (await workspace.journal.save_entry(JournalEntryInput(title="Day", content="text", mood="happy"))).entry
    edited = (await workspace.journal.save_entry(JournalEntryInput(id=created.id, title="Day", content="text", mood="grateful"))).entry
    assert edited.mood == "grateful"
    assert edited.moodTimestamp != created.moodTimestamp


@pytest.mark.asyncio
async def test_save_publishes_journal_change(make_workspace):
    workspace = make_workspace()
    published = []
    workspace.bus.subscribe(keys.JOURNAL_ENTRIES, published.append)
    await workspace.journal.save_entry(JournalEntryInput(title="t", content="c"))
    assert len(published) == 1


def test_delete_missing_entry_is_not_found(make_workspace):
    workspace = make_workspace()
    result = workspace.journal.delete_entry("ghost")
    assert result.error == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_delete_entry(make_workspace):
    workspace = make_workspace()
    entry = (await workspace.journal.save_entry(JournalEntryInput(title="t", content="c"))).entry
    assert workspace.journal.delete_entry(entry.id).ok
    assert workspace.journal.get_entry(entry.id) is None


@pytest.mark.asyncio
async def test_unknown_mood_is_rejected_before_summarizing(make_workspace):
    handler = _summary_handler()
    workspace = make_workspace(handler=handler)

    result = await workspace.journal.save_entry(JournalEntryInput(title="Odd", content="text", mood="furious-banana"))

    assert not result.ok
    assert result.error == ErrorCode.INVALID_INPUT
    assert handler.calls == []
    assert workspace.journal.list_entries() == []


@pytest.mark.asyncio
async def test_failed_summary_on_edit_replaces_old_summary_with_placeholder(make_workspace):
    outcomes = [httpx.Response(200, json={"summary": "First summary"})]

    def handler(request):
        return outcomes.pop(0) if outcomes else httpx.Response(503)

    workspace = make_workspace(handler=handler)
    created = (await workspace.journal.save_entry(JournalEntryInput(title="Day", content="v1", mood="calm"))).entry
    edited = await workspace.journal.save_entry(JournalEntryInput(id=created.id, title="Day", content="v2", mood="calm"))

    assert created.summary == "First summary"
    assert edited.summary_failed
    assert edited.entry.summary == SUMMARY_UNAVAILABLE

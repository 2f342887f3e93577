import asyncio
import json

import httpx
import pytest

from headspace.companion.client import ApiReply
from headspace.companion.conversation import APOLOGY_RESPONSE, ConversationState
from headspace.companion.parsing import EMPTY_RESPONSE
from headspace.errors import ErrorCode, NotFound
from headspace.repositories.journal import SUMMARY_UNAVAILABLE
from headspace.store import keys
from headspace.store.adapter import MemoryStore


def _reply_handler(body, status=200, requests=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(json.loads(request.content))
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    return handler


@pytest.mark.asyncio
async def test_fenced_reply_appends_one_assistant_message(make_workspace):
    fenced = '```json\n{"response":"Hi","taskUpdates":{"newTasks":[],"removeTasks":[]}}\n```'
    workspace = make_workspace(handler=_reply_handler(fenced))
    workspace.tasks.add_task("Existing")
    before = workspace.store.read(keys.TODO_TASKS)
    manager = workspace.conversation("Aura")

    result = await manager.send_user_message("Hello there")

    assert result.ok
    history = manager.history()
    assert [(message.role, message.text) for message in history] == [("user", "Hello there"), ("assistant", "Hi")]
    assert history[1].taskUpdates is None
    assert workspace.store.read(keys.TODO_TASKS) == before
    assert manager.state is ConversationState.IDLE


@pytest.mark.asyncio
async def test_connection_failures_end_in_apology(make_workspace, sleep):
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    workspace = make_workspace(handler=handler)
    workspace.tasks.add_task("Keep me")
    before = workspace.store.read(keys.TODO_TASKS)
    manager = workspace.conversation("Aura")

    result = await manager.send_user_message("Anyone there?")

    assert result.ok
    assert result.degraded
    assert result.assistant_message.text == APOLOGY_RESPONSE
    assert sleep.delays == [1.0, 2.0]
    assert manager.state is ConversationState.IDLE
    assert workspace.store.read(keys.TODO_TASKS) == before
    assert [message.role for message in manager.history()] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_reply_task_updates_are_applied_and_summarized(make_workspace):
    body = {
        "response": "Let's get moving.",
        "taskUpdates": {"newTasks": [{"text": "Walk 10 minutes"}, {"text": "Drink water"}, {"text": "Nap"}], "removeTasks": []},
    }
    workspace = make_workspace(handler=_reply_handler(body))
    manager = workspace.conversation("Summit")

    result = await manager.send_user_message("I feel stuck")

    assert result.task_result.truncated == 1
    assert [task.text for task in workspace.tasks.list_tasks()] == ["Walk 10 minutes", "Drink water"]
    summary = manager.history()[-1].taskUpdates
    assert [task.text for task in summary.newTasks] == ["Walk 10 minutes", "Drink water"]
    assert summary.removeTasks == []


@pytest.mark.asyncio
async def test_reply_can_remove_task_by_text(make_workspace):
    body = {"response": "Done with that one.", "taskUpdates": {"removeTasks": [{"text": "call mom", "reason": "finished"}]}}
    workspace = make_workspace(handler=_reply_handler(body))
    workspace.tasks.add_task("Call mom")
    workspace.tasks.add_task("Stretch")
    manager = workspace.conversation("Luna")

    await manager.send_user_message("I called her")

    assert [task.text for task in workspace.tasks.list_tasks()] == ["Stretch"]
    assert manager.history()[-1].taskUpdates.removeTasks == ["Call mom"]


@pytest.mark.asyncio
async def test_request_carries_context(make_workspace):
    requests = []
    workspace = make_workspace(handler=_reply_handler({"response": "ok"}, requests=requests))
    workspace.store.write(
        keys.JOURNAL_ENTRIES,
        json.dumps(
            [
                {"id": "j1", "title": "a", "content": "raw text", "date": "2025-01-02T00:00:00+00:00", "summary": SUMMARY_UNAVAILABLE},
                {"id": "j2", "title": "b", "content": "other", "date": "2025-01-01T00:00:00+00:00", "summary": "Good day"},
            ]
        ),
    )
    workspace.persona.set_persona_text("Night owl who likes lists")
    workspace.tasks.add_task("Read")
    manager = workspace.conversation("Sage")
    await manager.send_user_message("first")
    await manager.send_user_message("second")

    latest = requests[-1]
    assert latest["summaries"] == ["raw text", "Good day"]
    assert latest["userPersonaText"] == "Night owl who likes lists"
    assert latest["chatbotPersonaId"] == "sage"
    assert latest["questions"] == ["second"]
    assert [turn["text"] for turn in latest["conversationHistory"]] == ["first", "ok"]
    assert [task["text"] for task in latest["currentTasks"]] == ["Read"]


@pytest.mark.asyncio
async def test_truncated_reply(make_workspace):
    body = {"candidates": [{"content": {"parts": [{"text": '{"response": "Well'}]}, "finishReason": "MAX_TOKENS"}]}
    workspace = make_workspace(handler=_reply_handler(body))
    manager = workspace.conversation("Zenith")
    result = await manager.send_user_message("Tell me everything")
    assert result.degraded
    assert workspace.tasks.list_tasks() == []


@pytest.mark.asyncio
async def test_empty_message_is_rejected(make_workspace):
    workspace = make_workspace(handler=_reply_handler({"response": "ok"}))
    manager = workspace.conversation("Aura")
    result = await manager.send_user_message("   ")
    assert result.error == ErrorCode.INVALID_INPUT
    assert manager.history() == []


@pytest.mark.asyncio
async def test_second_send_while_sending_is_rejected(make_workspace):
    gate = asyncio.Event()

    async def converse(request):
        await gate.wait()
        return ApiReply(text='{"response": "late"}')

    workspace = make_workspace()
    manager = workspace.conversation("Aura", converse=converse)
    first = asyncio.ensure_future(manager.send_user_message("one"))
    await asyncio.sleep(0)
    assert manager.state is ConversationState.SENDING

    second = await manager.send_user_message("two")
    assert second.error == ErrorCode.INVALID_INPUT

    gate.set()
    assert (await first).ok
    assert manager.state is ConversationState.IDLE


@pytest.mark.asyncio
async def test_abandon_drops_late_reply(make_workspace):
    gate = asyncio.Event()

    async def converse(request):
        await gate.wait()
        return ApiReply(text='{"response": "too late"}')

    workspace = make_workspace()
    manager = workspace.conversation("Aura", converse=converse)
    pending = asyncio.ensure_future(manager.send_user_message("hello?"))
    await asyncio.sleep(0)
    manager.abandon()
    assert manager.state is ConversationState.IDLE

    gate.set()
    result = await pending
    assert result.abandoned
    assert [message.text for message in manager.history()] == ["hello?"]


@pytest.mark.asyncio
async def test_histories_are_kept_per_companion(make_workspace):
    workspace = make_workspace(handler=_reply_handler({"response": "ok"}))
    await workspace.conversation("Aura").send_user_message("to aura")
    assert workspace.conversation("Luna").history() == []
    assert workspace.store.read(keys.conversation_history_key("Aura")) is not None


def test_clear_history_needs_confirmation(make_workspace):
    store = MemoryStore({keys.conversation_history_key("Aura"): "[]"})
    workspace = make_workspace(store=store)
    manager = workspace.conversation("Aura")
    assert manager.clear_history() is False
    assert store.read(manager.history_key) == "[]"
    assert manager.clear_history(confirmed=True) is True
    assert store.read(manager.history_key) is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"candidates": [{"content": "oops", "finishReason": "STOP"}]},
        {"candidates": [{"content": {"parts": {"text": "not a list"}}, "finishReason": "STOP"}]},
        {"candidates": ["just a string"]},
        {"candidates": [{"content": {"parts": [{"text": 42}]}, "finishReason": ["STOP"]}]},
    ],
)
async def test_oddly_shaped_candidate_still_gets_a_reply(make_workspace, body):
    workspace = make_workspace(handler=_reply_handler(body))
    manager = workspace.conversation("Aura")

    result = await manager.send_user_message("Hello?")

    assert result.ok
    assert result.degraded
    assert result.assistant_message.text
    assert [message.role for message in manager.history()] == ["user", "assistant"]
    assert manager.state is ConversationState.IDLE


@pytest.mark.asyncio
async def test_blank_response_is_not_stored_as_empty_message(make_workspace):
    workspace = make_workspace(handler=_reply_handler({"response": "   "}))
    manager = workspace.conversation("Aura")

    result = await manager.send_user_message("Say something")

    assert result.assistant_message.text == EMPTY_RESPONSE
    assert manager.history()[-1].text == EMPTY_RESPONSE


def test_unknown_companion_name_is_not_found(make_workspace):
    workspace = make_workspace()
    with pytest.raises(NotFound):
        workspace.conversation("Nobody")
    assert workspace.conversation("Luna") is workspace.conversation("Luna")

# File: tests/test_session.py
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agent_worker.session import (
    DEMO_TOOL_ARGS,
    SessionLauncher,
    SessionOutcome,
    SessionStatusStore,
    StartRequest,
)
from agent_worker.tools_client import ToolCallRequest

pytestmark = pytest.mark.asyncio


def _launcher(settings, tool_result=None):
    tools_client = MagicMock()
    tools_client.call_tool = AsyncMock(return_value=tool_result or {"ok": True, "tool": "create_lead"})
    store = SessionStatusStore()
    return SessionLauncher(settings, tools_client=tools_client, observer=store), tools_client, store


async def test_missing_livekit_config_aborts_without_token_or_tool_call(unconfigured_settings):
    launcher, tools_client, store = _launcher(unconfigured_settings)

    with patch("agent_worker.session.mint_agent_token") as mint:
        outcome = await launcher.start(StartRequest(room_name="room-1", agent_id="abc"))

    assert outcome.status == "aborted"
    assert outcome.error == "missing_livekit_config"
    assert outcome.token_minted is False
    mint.assert_not_called()
    tools_client.call_tool.assert_not_called()
    assert store.latest("room-1") == outcome


async def test_completed_session_mints_token_and_calls_demo_tool(settings):
    launcher, tools_client, store = _launcher(settings, tool_result={"ok": True, "result": {"lead_id": "L-1"}})

    with patch("agent_worker.session.mint_agent_token", return_value="jwt") as mint:
        outcome = await launcher.start(StartRequest(room_name="room-1", agent_id="abc", session_id="s1"))

    assert outcome.status == "completed"
    assert outcome.token_minted is True
    assert outcome.tool_result == {"ok": True, "result": {"lead_id": "L-1"}}
    mint.assert_called_once()
    args, kwargs = mint.call_args
    assert args == (settings.LIVEKIT_API_KEY, settings.LIVEKIT_API_SECRET, "room-1")
    assert kwargs["agent_id"] == "abc"
    assert kwargs["session_id"] == "s1"

    tools_client.call_tool.assert_awaited_once()
    (request,), _ = tools_client.call_tool.call_args
    assert isinstance(request, ToolCallRequest)
    assert request.tool == "create_lead"
    assert request.agent_id == "abc"
    assert request.session_id == "s1"
    assert request.args == DEMO_TOOL_ARGS
    assert store.outcomes() == [outcome]


async def test_outcome_never_contains_the_token(settings):
    launcher, _tools_client, _store = _launcher(settings)

    with patch("agent_worker.session.mint_agent_token", return_value="signed-token-value"):
        outcome = await launcher.start(StartRequest(room_name="room-1", agent_id="abc"))

    assert outcome.token_minted is True
    assert "signed-token-value" not in outcome.model_dump_json()


async def test_demo_tool_skipped_without_agent_id(settings):
    launcher, tools_client, _store = _launcher(settings)

    outcome = await launcher.start(StartRequest(room_name="room-1"))

    assert outcome.status == "completed"
    assert outcome.token_minted is True
    assert outcome.tool_result is None
    tools_client.call_tool.assert_not_called()


async def test_demo_tool_can_be_disabled(make_settings):
    launcher, tools_client, _store = _launcher(make_settings(DEMO_TOOL_CALL_ENABLED=False))

    outcome = await launcher.start(StartRequest(room_name="room-1", agent_id="abc"))

    assert outcome.status == "completed"
    tools_client.call_tool.assert_not_called()


async def test_failed_tool_result_still_completes(settings):
    failure = {"ok": False, "error": "agent_tools_request_failed", "details": "boom"}
    launcher, _tools_client, _store = _launcher(settings, tool_result=failure)

    outcome = await launcher.start(StartRequest(room_name="room-1", agent_id="abc"))

    assert outcome.status == "completed"
    assert outcome.tool_result == failure


async def test_raising_tool_client_is_logged_not_propagated(settings):
    launcher, tools_client, _store = _launcher(settings)
    tools_client.call_tool.side_effect = RuntimeError("gateway exploded")

    outcome = await launcher.start(StartRequest(room_name="room-1", agent_id="abc"))

    assert outcome.status == "completed"
    assert outcome.tool_result is None


async def test_unexpected_error_becomes_failed_outcome(settings):
    launcher, tools_client, store = _launcher(settings)

    with patch("agent_worker.session.mint_agent_token", side_effect=ValueError("bad secret")):
        outcome = await launcher.start(StartRequest(room_name="room-1", agent_id="abc"))

    assert outcome.status == "failed"
    assert outcome.error == "bad secret"
    tools_client.call_tool.assert_not_called()
    assert store.latest("room-1").status == "failed"


async def test_observer_failure_does_not_break_session(settings):
    observer = MagicMock()
    observer.on_outcome.side_effect = RuntimeError("sink down")
    launcher = SessionLauncher(settings, tools_client=MagicMock(call_tool=AsyncMock()), observer=observer)

    outcome = await launcher.start(StartRequest(room_name="room-1"))

    assert outcome.status == "completed"
    observer.on_outcome.assert_called_once_with(outcome)


async def test_start_returns_task_handle_and_tracks_it(settings):
    gate = asyncio.Event()

    async def slow_call(_request):
        await gate.wait()
        return {"ok": True}

    launcher, tools_client, _store = _launcher(settings)
    tools_client.call_tool.side_effect = slow_call

    task = launcher.start(StartRequest(room_name="room-1", agent_id="abc"))

    assert isinstance(task, asyncio.Task)
    await asyncio.sleep(0.01)
    assert not task.done()
    assert launcher.running == 1

    gate.set()
    outcome = await task
    await asyncio.sleep(0)
    assert outcome.tool_result == {"ok": True}
    assert launcher.running == 0


async def test_sessions_for_different_rooms_run_concurrently(settings):
    launcher, _tools_client, store = _launcher(settings)

    tasks = [launcher.start(StartRequest(room_name=f"room-{i}", agent_id=str(i))) for i in range(3)]
    outcomes = await asyncio.gather(*tasks)

    assert {o.room_name for o in outcomes} == {"room-0", "room-1", "room-2"}
    assert all(o.status == "completed" for o in outcomes)
    assert len(store.outcomes()) == 3


async def test_drain_waits_for_running_sessions(settings):
    launcher, _tools_client, store = _launcher(settings)
    launcher.start(StartRequest(room_name="room-1", agent_id="abc"))

    left = await launcher.drain(timeout=1.0)

    assert left == 0
    assert store.latest("room-1").status == "completed"


async def test_drain_reports_sessions_still_running(settings):
    gate = asyncio.Event()

    async def never_returns(_request):
        await gate.wait()
        return {"ok": True}

    launcher, tools_client, _store = _launcher(settings)
    tools_client.call_tool.side_effect = never_returns
    task = launcher.start(StartRequest(room_name="room-1", agent_id="abc"))

    left = await launcher.drain(timeout=0.05)

    assert left == 1
    gate.set()
    await task


async def test_status_store_keeps_most_recent_outcomes():
    store = SessionStatusStore(maxlen=2)
    outcomes = [SessionOutcome(room_name=f"room-{i}", status="completed") for i in range(3)]
    for outcome in outcomes:
        store.on_outcome(outcome)

    assert store.outcomes() == outcomes[1:]
    assert store.latest("room-0") is None
    assert store.latest("room-2") == outcomes[2]

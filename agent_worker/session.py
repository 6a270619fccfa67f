# agent_worker/session.py
"""
Session launcher: schedules the detached routine that prepares an agent for a room.

The routine checks LiveKit config, mints the agent's access token and, when
enabled, fires one demo tool call through the agent-tools gateway. Its outcome
is handed to an observer; the HTTP caller never sees it.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Protocol, Set

from opentelemetry import metrics, trace
from pydantic import BaseModel

from .config import Settings, get_settings
from .errors import MISSING_LIVEKIT_CONFIG
from .request_context import set_request_context
from .tokens import agent_identity, mint_agent_token
from .tools_client import ToolCallRequest, ToolCallResult, ToolsClient

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

try:
    _meter = metrics.get_meter(__name__)
    _m_sessions_started = _meter.create_counter("sessions_started_total")
    _m_sessions_aborted = _meter.create_counter("sessions_aborted_total")
except Exception:
    _meter = None
    _m_sessions_started = None
    _m_sessions_aborted = None

DEMO_TOOL_NAME = "create_lead"
DEMO_TOOL_ARGS: Dict[str, Any] = {
    "name": "Demo Lead from Worker",
    "email": "demo@example.com",
    "source": "livekit_worker_demo",
}

STATUS_ABORTED = "aborted"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class StartRequest(BaseModel):
    room_name: str
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    config: Optional[Any] = None


class SessionOutcome(BaseModel):
    room_name: str
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    status: str
    error: Optional[str] = None
    token_minted: bool = False
    tool_result: Optional[Any] = None


class SessionObserver(Protocol):
    def on_outcome(self, outcome: SessionOutcome) -> None: ...


class LoggingSessionObserver:
    """Default observer: writes each outcome to the log."""

    def on_outcome(self, outcome: SessionOutcome) -> None:
        if outcome.status == STATUS_COMPLETED:
            logger.info(f"Session outcome for room {outcome.room_name}: {outcome.status}")
        else:
            logger.error(
                f"Session outcome for room {outcome.room_name}: {outcome.status} error={outcome.error}"
            )


class SessionStatusStore:
    """Keeps the most recent outcomes in memory so they can be inspected."""

    def __init__(self, maxlen: int = 256) -> None:
        self._outcomes: Deque[SessionOutcome] = deque(maxlen=maxlen)

    def on_outcome(self, outcome: SessionOutcome) -> None:
        self._outcomes.append(outcome)

    def outcomes(self) -> List[SessionOutcome]:
        return list(self._outcomes)

    def latest(self, room_name: str) -> Optional[SessionOutcome]:
        for outcome in reversed(self._outcomes):
            if outcome.room_name == room_name:
                return outcome
        return None


class SessionLauncher:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        tools_client: Optional[ToolsClient] = None,
        observer: Optional[SessionObserver] = None,
    ):
        self.settings = settings or get_settings()
        self.tools_client = tools_client or ToolsClient(self.settings)
        self.observer = observer or LoggingSessionObserver()
        # Strong references so running sessions are not garbage collected
        self._tasks: Set[asyncio.Task] = set()

    @property
    def running(self) -> int:
        return len(self._tasks)

    def start(self, request: StartRequest) -> "asyncio.Task[SessionOutcome]":
        """Schedule the session routine and return its task without awaiting it."""
        task = asyncio.create_task(
            self._run_and_report(request), name=f"agent-session:{request.room_name}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        try:
            if _m_sessions_started:
                _m_sessions_started.add(1)
        except Exception:
            pass
        return task

    async def drain(self, timeout: float) -> int:
        """Wait up to ``timeout`` seconds for running sessions. Returns how many are left."""
        pending = set(self._tasks)
        if not pending:
            return 0
        logger.info(f"Waiting up to {timeout}s for {len(pending)} agent session(s)")
        _done, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(f"{len(still_running)} agent session(s) still running at shutdown")
        return len(still_running)

    async def _run_and_report(self, request: StartRequest) -> SessionOutcome:
        set_request_context(request.room_name, request.session_id, request.agent_id)
        try:
            outcome = await self._run_session(request)
        except Exception as e:
            logger.error(f"Unhandled agent error: {e}", exc_info=True)
            outcome = SessionOutcome(
                room_name=request.room_name,
                agent_id=request.agent_id,
                session_id=request.session_id,
                status=STATUS_FAILED,
                error=str(e) or e.__class__.__name__,
            )
        try:
            self.observer.on_outcome(outcome)
        except Exception:
            logger.error("Session observer failed", exc_info=True)
        return outcome

    async def _run_session(self, request: StartRequest) -> SessionOutcome:
        settings = self.settings
        room_name = request.room_name
        outcome = SessionOutcome(
            room_name=room_name,
            agent_id=request.agent_id,
            session_id=request.session_id,
            status=STATUS_COMPLETED,
        )

        if not settings.livekit_configured:
            logger.error("LiveKit env vars missing, cannot start agent")
            try:
                if _m_sessions_aborted:
                    _m_sessions_aborted.add(1)
            except Exception:
                pass
            outcome.status = STATUS_ABORTED
            outcome.error = MISSING_LIVEKIT_CONFIG
            return outcome

        with tracer.start_as_current_span("session.run", attributes={"room": room_name}):
            logger.info(f"Agent loop starting for room: {room_name}")

            with tracer.start_as_current_span("session.mint_token"):
                # TODO: join the room with this token once the realtime pipeline exists
                _agent_token = mint_agent_token(
                    settings.LIVEKIT_API_KEY,
                    settings.LIVEKIT_API_SECRET,
                    room_name,
                    agent_id=request.agent_id,
                    session_id=request.session_id,
                    ttl_sec=settings.AGENT_TOKEN_TTL_SEC,
                )
            outcome.token_minted = True
            logger.info(
                f"Generated LiveKit token for {agent_identity(request.agent_id)} (not printed for security)."
            )

            if settings.DEMO_TOOL_CALL_ENABLED and request.agent_id:
                outcome.tool_result = await self._call_demo_tool(request)

            logger.info(f"Agent session skeleton complete for room: {room_name}")
        return outcome

    async def _call_demo_tool(self, request: StartRequest) -> Optional[ToolCallResult]:
        try:
            logger.info(f"Calling demo tool: {DEMO_TOOL_NAME}")
            result = await self.tools_client.call_tool(
                ToolCallRequest(
                    tool=DEMO_TOOL_NAME,
                    agent_id=request.agent_id,
                    session_id=request.session_id,
                    args=dict(DEMO_TOOL_ARGS),
                )
            )
            logger.info(f"Tool call result: {result}")
            return result
        except Exception as e:
            logger.error(f"Demo tool call failed: {e}")
            return None

# agent_worker/server.py
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from .config import Settings, get_settings
from .errors import MISSING_ROOM_NAME, SERVER_ERROR
from .logging_setup import uvicorn_log_level
from .request_context import ensure_trace_id, set_request_context
from .session import SessionLauncher, StartRequest

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _is_json(request: Request) -> bool:
    media_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    return media_type == "application/json"


def _ack(body: Dict[str, Any]) -> Dict[str, Any]:
    ack: Dict[str, Any] = {"ok": True, "message": "Agent started", "roomName": body["roomName"]}
    # Optional ids are echoed exactly as received; absent keys stay absent
    for key in ("agentId", "sessionId"):
        if key in body:
            ack[key] = body[key]
    return ack


def create_app(settings: Optional[Settings] = None, launcher: Optional[SessionLauncher] = None) -> FastAPI:
    settings = settings or get_settings()
    launcher = launcher or SessionLauncher(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await launcher.drain(float(settings.SESSION_DRAIN_TIMEOUT_SEC))

    app = FastAPI(
        title="Voice Agent Worker",
        description="Starts LiveKit voice agents for rooms",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.launcher = launcher
    try:
        FastAPIInstrumentor.instrument_app(app)
    except Exception as e:
        logger.error(f"Failed to instrument FastAPI app: {e}")

    @app.middleware("http")
    async def add_trace_and_access_log(request: Request, call_next):
        ensure_trace_id(request.headers.get("X-Trace-Id") or str(uuid.uuid4()))
        logger.info(f"HTTP {request.method} {request.url.path} starting")
        response = await call_next(request)
        logger.info(f"HTTP {request.method} {request.url.path} completed status={response.status_code}")
        return response

    @app.get("/")
    def read_root():
        return {"service": "Voice Agent Worker", "status": "running"}

    @app.get("/health")
    def health():
        return {"ok": True, "status": "healthy"}

    @app.post("/start-agent")
    async def start_agent(request: Request):
        """Accept a start request and launch the agent session in the background.

        Body: {"roomName": str, "agentId"?: str, "sessionId"?: str, "config"?: any}.
        The 200 response means "accepted"; the session outcome is never reported here.
        """
        try:
            # Bodies of any other content type are ignored, as if empty
            raw = await request.body() if _is_json(request) else b""
            body = json.loads(raw.decode("utf-8")) if raw else {}
            if not isinstance(body, dict):
                body = {}

            room_name = body.get("roomName")
            if not room_name:
                return JSONResponse(status_code=400, content={"ok": False, "error": MISSING_ROOM_NAME})

            start_request = StartRequest(
                room_name=str(room_name),
                agent_id=_optional_str(body.get("agentId")),
                session_id=_optional_str(body.get("sessionId")),
                config=body.get("config"),
            )
            set_request_context(start_request.room_name, start_request.session_id, start_request.agent_id)
            logger.info(
                f"Starting agent for room: {start_request.room_name} "
                f"agentId: {start_request.agent_id} sessionId: {start_request.session_id}"
            )

            with tracer.start_as_current_span("api.start_agent", attributes={"room": start_request.room_name}):
                # Fire-and-forget; the handle is kept by the launcher
                launcher.start(start_request)

            return _ack(body)
        except Exception as e:
            logger.error(f"/start-agent failed: {e}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"ok": False, "error": SERVER_ERROR, "details": str(e) or repr(e)},
            )

    return app


def run_fastapi_server(settings: Optional[Settings] = None) -> None:
    import uvicorn

    settings = settings or get_settings()
    port = int(settings.PORT)
    logger.info(f"Agent worker listening on port {port}")
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=port,
        log_level=uvicorn_log_level(settings.LOG_LEVEL),
    )

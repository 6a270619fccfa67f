import contextvars
import uuid
from typing import Dict, Optional

_room_name_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("room_name", default=None)
_session_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("session_id", default=None)
_agent_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("agent_id", default=None)
_trace_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("trace_id", default=None)


def set_request_context(room_name: Optional[str], session_id: Optional[str], agent_id: Optional[str]) -> None:
    _room_name_var.set(room_name)
    _session_id_var.set(session_id)
    _agent_id_var.set(agent_id)


def get_request_context() -> Dict[str, Optional[str]]:
    return {
        "room_name": _room_name_var.get(),
        "session_id": _session_id_var.get(),
        "agent_id": _agent_id_var.get(),
    }


def get_trace_id() -> Optional[str]:
    return _trace_id_var.get()


def ensure_trace_id(existing: Optional[str] = None) -> str:
    tid = existing or get_trace_id() or str(uuid.uuid4())
    _trace_id_var.set(tid)
    return tid


def headers_with_trace() -> Dict[str, str]:
    tid = get_trace_id()
    return {"X-Trace-Id": tid} if tid else {}

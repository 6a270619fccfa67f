# agent_worker/tools_client.py
"""
Client for the agent-tools gateway.
Forwards a single tool invocation and normalizes the outcome into a result dict.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Union

import aiohttp
from opentelemetry import metrics, trace
from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .errors import AGENT_TOOLS_REQUEST_FAILED, MISSING_AGENT_TOOLS_CONFIG
from .request_context import headers_with_trace

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

try:
    _meter = metrics.get_meter(__name__)
    _m_tool_calls = _meter.create_counter("tool_calls_total")
except Exception:
    _meter = None
    _m_tool_calls = None


class ToolCallRequest(BaseModel):
    tool: str
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    args: Dict[str, Any] = Field(default_factory=dict)


# Gateway envelope: {"ok": bool, "tool"?, "result"?, "error"?, ...}, or raw text for non-JSON bodies
ToolCallResult = Union[Dict[str, Any], str]

TOOL_CALL_TIMEOUT_SEC = 15.0


class ToolsClient:
    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.url = settings.AGENT_TOOLS_URL
        self._service_key = settings.SUPABASE_SERVICE_ROLE_KEY
        self.timeout = aiohttp.ClientTimeout(total=TOOL_CALL_TIMEOUT_SEC)

        if not self.url:
            logger.warning("AGENT_TOOLS_URL is not set; tools will fail if called.")
        if not self._service_key:
            logger.warning("SUPABASE_SERVICE_ROLE_KEY is not set; tools will fail if called.")

    @property
    def configured(self) -> bool:
        return bool(self.url and self._service_key)

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._service_key}",
        }
        headers.update(headers_with_trace())
        return headers

    async def call_tool(self, request: ToolCallRequest) -> ToolCallResult:
        """POST one tool invocation to the gateway. Never raises.

        Returns the gateway's body unchanged on success: decoded JSON, or the raw
        text when it is not JSON. Missing config and any transport or HTTP failure come back as ``{"ok": False, "error": ...}``.
        Exactly one attempt is made per call.
        """
        if not self.configured:
            logger.error("Missing config, cannot call agent-tools")
            self._count(False, request.tool)
            return {"ok": False, "error": MISSING_AGENT_TOOLS_CONFIG}

        body = {
            "tool": request.tool,
            "agent_id": request.agent_id,
            "session_id": request.session_id,
            "args": request.args or {},
        }

        with tracer.start_as_current_span("tools.call", attributes={"tool": request.tool}):
            try:
                async with aiohttp.ClientSession(timeout=self.timeout) as session:
                    async with session.post(self.url, json=body, headers=self._headers()) as response:
                        response.raise_for_status()
                        # The gateway's own envelope is trusted as-is
                        try:
                            result = await response.json(content_type=None)
                        except ValueError:
                            # Non-JSON success bodies are passed through as text
                            result = await response.text()
                logger.info(f"agent-tools '{request.tool}' responded ok={_ok_flag(result)}")
                self._count(True, request.tool)
                return result
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                details = str(e) or e.__class__.__name__
                logger.error(f"Error calling agent-tools: {details}")
                self._count(False, request.tool)
                return {"ok": False, "error": AGENT_TOOLS_REQUEST_FAILED, "details": details}
            except Exception as e:
                logger.error(f"Unexpected error calling agent-tools: {e}", exc_info=True)
                self._count(False, request.tool)
                return {"ok": False, "error": AGENT_TOOLS_REQUEST_FAILED, "details": str(e) or repr(e)}

    @staticmethod
    def _count(ok: bool, tool: str) -> None:
        try:
            if _m_tool_calls:
                _m_tool_calls.add(1, attributes={"ok": ok, "tool": tool})
        except Exception:
            pass


def _ok_flag(result: Any) -> Any:
    return result.get("ok") if isinstance(result, dict) else None

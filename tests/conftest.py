# File: tests/conftest.py
import pytest

from agent_worker.config import Settings

TOOLS_URL = "http://fake-agent-tools:9000/functions/v1/agent-tools"


def build_settings(**overrides) -> Settings:
    """Settings with every relevant value pinned so the host environment cannot leak in."""
    values = {
        "LIVEKIT_URL": "wss://livekit.example.com",
        "LIVEKIT_API_KEY": "APItestkey",
        "LIVEKIT_API_SECRET": "test-secret-that-is-long-enough-for-hs256-signing",
        "AGENT_TOOLS_URL": TOOLS_URL,
        "SUPABASE_SERVICE_ROLE_KEY": "service-role-key",
        "DEMO_TOOL_CALL_ENABLED": True,
        "SESSION_DRAIN_TIMEOUT_SEC": 1.0,
        "LOG_LEVEL": "info",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest.fixture
def unconfigured_settings() -> Settings:
    return build_settings(
        LIVEKIT_URL=None,
        LIVEKIT_API_KEY=None,
        LIVEKIT_API_SECRET=None,
        AGENT_TOOLS_URL=None,
        SUPABASE_SERVICE_ROLE_KEY=None,
    )


@pytest.fixture
def make_settings():
    return build_settings


@pytest.fixture
def tools_url() -> str:
    return TOOLS_URL

from __future__ import annotations
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # =================================================================
    # 1. HTTP SERVER
    # =================================================================
    PORT: int = 8080

    # "silent" hides informational logs; errors are always logged
    LOG_LEVEL: str = "info"

    # =================================================================
    # 2. LIVEKIT (session.py)
    # All three are required to mint an agent access token
    # =================================================================
    LIVEKIT_URL: Optional[str] = None
    LIVEKIT_API_KEY: Optional[str] = None
    LIVEKIT_API_SECRET: Optional[str] = None

    # Lifetime of the minted agent token (LiveKit default is 6 hours)
    AGENT_TOKEN_TTL_SEC: int = 21600

    # =================================================================
    # 3. AGENT TOOLS GATEWAY (tools_client.py)
    # =================================================================
    AGENT_TOOLS_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # =================================================================
    # 4. SESSION LIFECYCLE
    # =================================================================
    # Fire a single create_lead call after the token is minted
    DEMO_TOOL_CALL_ENABLED: bool = True

    # How long shutdown waits for in-flight session routines
    SESSION_DRAIN_TIMEOUT_SEC: float = 5.0

    # =================================================================
    # 5. OBSERVABILITY (otel_setup.py)
    # =================================================================
    OTEL_ENABLED: bool = False
    OTEL_SERVICE_NAME: str = "agent-worker"
    OTEL_SERVICE_NAMESPACE: str = "voice"
    OTEL_RESOURCE_ATTRIBUTES: Optional[str] = None

    # Protocol: "grpc" or "http/protobuf"
    OTEL_EXPORTER_OTLP_PROTOCOL: Optional[str] = None
    OTEL_EXPORTER_OTLP_INSECURE: bool = False
    OTEL_EXPORTER_OTLP_ENDPOINT: Optional[str] = None
    OTEL_EXPORTER_OTLP_HEADERS: Optional[str] = None
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: Optional[str] = None
    OTEL_EXPORTER_OTLP_METRICS_ENDPOINT: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    @property
    def livekit_configured(self) -> bool:
        return bool(self.LIVEKIT_URL and self.LIVEKIT_API_KEY and self.LIVEKIT_API_SECRET)

    @property
    def agent_tools_configured(self) -> bool:
        return bool(self.AGENT_TOOLS_URL and self.SUPABASE_SERVICE_ROLE_KEY)


# Built once at process start and handed to the launcher and the tools client
_settings: Optional[Settings] = None

def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

"""Agent identity and LiveKit access token minting."""
from __future__ import annotations

import json
from datetime import timedelta
from typing import Any, Dict, Optional

from livekit.api import AccessToken, VideoGrants

AGENT_TOKEN_TYPE = "voice_agent"


def agent_identity(agent_id: Optional[str]) -> str:
    return f"agent-{agent_id or 'default'}"


def agent_grants(room_name: str) -> VideoGrants:
    return VideoGrants(
        room_join=True,
        room=room_name,
        can_publish=True,
        can_subscribe=True,
    )


def agent_metadata(agent_id: Optional[str], session_id: Optional[str]) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"agentId": agent_id, "sessionId": session_id, "type": AGENT_TOKEN_TYPE}
    # Absent ids are left out rather than serialized as null
    return {k: v for k, v in metadata.items() if v is not None}


def mint_agent_token(
    api_key: str,
    api_secret: str,
    room_name: str,
    agent_id: Optional[str] = None,
    session_id: Optional[str] = None,
    ttl_sec: int = 21600,
) -> str:
    """Return a signed JWT that lets the agent join ``room_name``.

    The identity is ``agent-<agent_id>`` and the metadata carries the agent and
    session ids so other participants can recognize the agent.
    """
    identity = agent_identity(agent_id)
    return (
        AccessToken(api_key, api_secret)
        .with_identity(identity)
        .with_name(identity)
        .with_metadata(json.dumps(agent_metadata(agent_id, session_id)))
        .with_grants(agent_grants(room_name))
        .with_ttl(timedelta(seconds=int(ttl_sec)))
        .to_jwt()
    )

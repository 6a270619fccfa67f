"""Error kinds returned in JSON bodies and tool-call results."""

MISSING_ROOM_NAME = "missing_roomName"
SERVER_ERROR = "server_error"
MISSING_LIVEKIT_CONFIG = "missing_livekit_config"
MISSING_AGENT_TOOLS_CONFIG = "missing_agent_tools_config"
AGENT_TOOLS_REQUEST_FAILED = "agent_tools_request_failed"

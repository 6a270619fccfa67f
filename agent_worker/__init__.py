"""HTTP worker that starts LiveKit voice agents and calls the agent-tools gateway."""

__version__ = "0.1.0"

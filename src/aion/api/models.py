"""
Pydantic models for Aion API requests and responses.
This module defines the request and response schemas used by the Aion API.
"""

from typing import List

from pydantic import (
    BaseModel,
    Field,
)

from aion.agent.prompts import DEFAULT_MODE
from aion.core.schema import (
    Event,
    Message,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class MessageRequest(BaseModel):
    """Incoming user task."""

    message: str = Field(..., description="User message for Aion")
    mode: str = Field(DEFAULT_MODE, description="Agent mode: Architect, Code, Ask or Debug")


class MessageAccepted(BaseModel):
    """Whether a turn loop was started for the message."""

    accepted: bool


class ApprovalRequest(BaseModel):
    """Human decision for the pending tool call."""

    granted: bool


class ApprovalResponse(BaseModel):
    """Whether a pending approval existed and was resolved."""

    resolved: bool


class EventsResponse(BaseModel):
    """Ordered batch of observer events."""

    events: List[Event]
    running: bool


class TranscriptResponse(BaseModel):
    """Snapshot of the session log."""

    messages: List[Message]
    running: bool

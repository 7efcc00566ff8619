"""
Core API backend for Aion.

This module exposes the orchestrator through a RESTful API used by the CLI client (or any other
frontend).  It exposes the following endpoints:
- **GET /health**                     - liveness check.
- **POST /sessions**                  - create a new session, returns a session ID.
- **GET /sessions**                   - list all active sessions.
- **POST /sessions/{id}/messages**    - start the turn loop for a user message.
- **GET /sessions/{id}/messages**     - transcript snapshot.
- **GET /sessions/{id}/events**       - long-poll the ordered observer events.
- **POST /sessions/{id}/approval**    - grant or deny the pending tool call.
- **POST /sessions/{id}/reset**       - clear the session.
"""

import asyncio
import logging
import uuid
from typing import (
    Dict,
    List,
    Set,
)

from fastapi import (
    FastAPI,
    HTTPException,
    Query,
)

from aion.agent.orchestrator import Orchestrator
from aion.api.models import (
    ApprovalRequest,
    ApprovalResponse,
    EventsResponse,
    MessageAccepted,
    MessageRequest,
    SessionResponse,
    TranscriptResponse,
)
from aion.common import (
    Color,
    echo,
)
from aion.config import settings

logger = logging.getLogger(__name__)

# Session storage (in-memory only; nothing survives a restart)
sessions: Dict[str, Orchestrator] = {}

# Strong references to running turn loops so they are not garbage collected
_background_tasks: Set[asyncio.Task] = set()

app = FastAPI(title="Aion API", version="0.1.0", description="Aion coding agent API")


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def build_orchestrator() -> Orchestrator:
    """Create the orchestrator backing a new session."""
    return Orchestrator()


def get_session(session_id: str) -> Orchestrator:
    """Return the orchestrator for *session_id* or fail with 404."""
    orchestrator = sessions.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail=f"Unknown session '{session_id}'")
    return orchestrator


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
async def create_session() -> SessionResponse:
    """Create a new conversation session."""
    session_id = str(uuid.uuid4())
    sessions[session_id] = build_orchestrator()
    logger.info("Created session %s", session_id)
    return SessionResponse(session_id=session_id)


@app.get("/sessions", response_model=List[str], summary="List active sessions")
async def list_sessions() -> List[str]:
    """List all active session IDs."""
    return list(sessions.keys())


@app.post(
    "/sessions/{session_id}/messages",
    response_model=MessageAccepted,
    summary="Start the turn loop for a message",
)
async def post_message(session_id: str, req: MessageRequest) -> MessageAccepted:
    """Kick off ``run_session`` in the background; rejected while a loop is running."""
    orchestrator = get_session(session_id)
    task = orchestrator.start_session(req.message, req.mode)
    if task is None:
        return MessageAccepted(accepted=False)

    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return MessageAccepted(accepted=True)


@app.get(
    "/sessions/{session_id}/messages",
    response_model=TranscriptResponse,
    summary="Session transcript",
)
async def get_messages(session_id: str) -> TranscriptResponse:
    """Return the current session log."""
    orchestrator = get_session(session_id)
    return TranscriptResponse(messages=list(orchestrator.messages), running=orchestrator.running)


@app.get(
    "/sessions/{session_id}/events",
    response_model=EventsResponse,
    summary="Long-poll observer events",
)
async def get_events(
    session_id: str, timeout: float = Query(10.0, ge=0.0, le=60.0)
) -> EventsResponse:
    """Wait up to *timeout* seconds for events and return every event available."""
    orchestrator = get_session(session_id)
    events = await orchestrator.events.wait(timeout)
    return EventsResponse(events=events, running=orchestrator.running)


@app.post(
    "/sessions/{session_id}/approval",
    response_model=ApprovalResponse,
    summary="Resolve the pending approval",
)
async def post_approval(session_id: str, req: ApprovalRequest) -> ApprovalResponse:
    """Grant or deny the tool call the session is waiting on."""
    orchestrator = get_session(session_id)
    return ApprovalResponse(resolved=orchestrator.resolve_approval(req.granted))


@app.post("/sessions/{session_id}/reset", summary="Reset the session")
async def reset_session(session_id: str) -> dict[str, str]:
    """Clear the log and abandon any pending approval."""
    get_session(session_id).reset()
    return {"status": "reset"}


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting Aion API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    echo(f"🔮 Aion API is running at http://localhost:{port}.", Color.GREEN)
    echo(f"Visit http://localhost:{port}/docs for API documentation.", Color.BLUE)
    uvicorn.run(
        "aion.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m aion.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)

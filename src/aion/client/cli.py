"""CLI client for the Aion API."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    Tuple,
    cast,
)

import httpx

from aion.agent.prompts import (
    DEFAULT_MODE,
    MODE_INSTRUCTIONS,
)
from aion.common import (
    Color,
    echo,
)
from aion.config import settings

logger = logging.getLogger(__name__)

POLL_TIMEOUT = 10.0


class ApiError(RuntimeError):
    """Raised when the API cannot be reached or answers with an error."""


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message(prompt: str = "") -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        user_input = input(prompt).strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


class ApiClient:
    """Thin synchronous wrapper over the session endpoints."""

    def __init__(self, base_url: str | None = None, client: httpx.Client | None = None) -> None:
        self.base_url = base_url or f"http://localhost:{settings.API_PORT}"
        self._client = client or httpx.Client(timeout=POLL_TIMEOUT + 20.0)

    def request(
        self, method: str, endpoint: str, max_retries: int = 1, **kwargs: Any
    ) -> Dict[str, Any]:
        """Send a request and return the decoded JSON, retrying refused connections."""
        for attempt in range(max_retries):
            try:
                response = self._client.request(method, f"{self.base_url}{endpoint}", **kwargs)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
            except httpx.ConnectError as e:
                # On connection refused, retry with exponential backoff
                if attempt < max_retries - 1:
                    retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                    logger.info(
                        "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                        retry_delay,
                        attempt + 1,
                        max_retries,
                    )
                    time.sleep(retry_delay)
                    continue
                raise ApiError(f"Error connecting to API: {e}") from e
            except httpx.HTTPStatusError as e:
                detail = e.response.text
                try:
                    detail = e.response.json().get("detail", detail)
                except ValueError:
                    logger.debug("Non-JSON error body from API")
                raise ApiError(f"API error: {detail}") from e
            except httpx.HTTPError as e:
                raise ApiError(f"API request error: {e}") from e
        raise ApiError(f"Failed to connect to API after {max_retries} attempts")

    def create_session(self) -> str:
        """Create a session, waiting for the API to come up."""
        return str(self.request("POST", "/sessions", max_retries=5)["session_id"])

    def send(self, session_id: str, message: str, mode: str) -> bool:
        """Start a turn loop; *False* when the session is still busy."""
        data = self.request(
            "POST", f"/sessions/{session_id}/messages", json={"message": message, "mode": mode}
        )
        return bool(data.get("accepted"))

    def events(self, session_id: str) -> Dict[str, Any]:
        """Long-poll the next batch of events."""
        return self.request(
            "GET", f"/sessions/{session_id}/events", params={"timeout": POLL_TIMEOUT}
        )

    def approve(self, session_id: str, granted: bool) -> None:
        """Answer the pending approval."""
        self.request("POST", f"/sessions/{session_id}/approval", json={"granted": granted})

    def reset(self, session_id: str) -> None:
        """Reset the session."""
        self.request("POST", f"/sessions/{session_id}/reset")


def render_message(message: Dict[str, Any]) -> None:
    """Print one transcript message."""
    role = message.get("role")
    content = message.get("content", "")
    if role == "thought":
        echo(f"💭 {content}", Color.GREY)
    elif role == "tool":
        echo(f"[tool] {content}", Color.GREEN)
    elif message.get("toolCall") and not message.get("requiresApproval"):
        echo(f"🔧 {content}", Color.MAGENTA)
    elif content.startswith(("Error:", "Execution Error:")):
        echo(content, Color.RED)
    elif role == "assistant":
        echo(f"🤖 {content}", Color.YELLOW)


def follow_session(api: ApiClient, session_id: str) -> str | None:
    """Render events until the turn loop finishes; return its outcome."""
    while True:
        batch = api.events(session_id)
        for event in batch.get("events", []):
            if event["type"] == "finished":
                return cast(str, event["outcome"])
            if event["type"] != "message":
                continue
            message = event["message"]
            if message.get("role") == "user":
                continue  # already on screen
            render_message(message)
            if message.get("requiresApproval"):
                tool_call = message.get("toolCall") or {}
                echo(f"    args: {tool_call.get('args')}", Color.GREY)
                answer, ok = get_user_message("Approve? [y/N] ")
                api.approve(session_id, ok and answer.lower() in {"y", "yes"})
        if not batch.get("events") and not batch.get("running"):
            return None


def run_cli() -> None:
    """Run the CLI client that communicates with the API."""
    api = ApiClient()
    try:
        session_id = api.create_session()
    except ApiError as exc:
        echo(f"⚠️ Failed to create a session: {exc}", Color.RED)
        return

    mode = DEFAULT_MODE
    echo(
        "\n🔮 Aion shell - type 'exit' or 'quit' (or Ctrl+C) to exit, "
        "'/reset' to start over, '/mode <name>' to switch mode",
        Color.GREEN,
    )
    while True:
        echo(f"\n🧑 You [{mode}]: ", Color.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if not user_msg:
            continue
        if user_msg.lower() in {"exit", "quit"}:
            break

        try:
            if user_msg == "/reset":
                api.reset(session_id)
                echo("Session cleared.", Color.GREY)
                continue
            if user_msg.startswith("/mode"):
                requested = user_msg[len("/mode") :].strip().capitalize()
                if requested not in MODE_INSTRUCTIONS:
                    echo(f"Modes: {', '.join(MODE_INSTRUCTIONS)}", Color.RED)
                else:
                    mode = requested
                continue

            if not api.send(session_id, user_msg, mode):
                echo("⚠️ Aion is still working on the previous task.", Color.RED)
                continue
            outcome = follow_session(api, session_id)
            if outcome == "exhausted":
                echo("⚠️ Stopped: iteration limit reached.", Color.RED)
        except ApiError as exc:
            echo(str(exc), Color.RED)


if __name__ == "__main__":
    run_cli()

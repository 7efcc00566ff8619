"""Single-slot rendezvous that pauses the turn loop until a human grants or denies a tool call."""

import asyncio
import logging

from aion.core.errors import ApprovalAbandoned
from aion.core.schema import ToolCall

logger = logging.getLogger(__name__)


class ApprovalGate:
    """
    Holds at most one outstanding approval request.

    The orchestrator awaits :meth:`request`; the outside world answers through :meth:`resolve`.
    :meth:`reset` throws the request away without answering it, and the awaiting loop gets
    :class:`ApprovalAbandoned` instead of a value, so it can never resume later.
    """

    def __init__(self) -> None:
        self._pending: asyncio.Future[bool] | None = None
        self._pending_call: ToolCall | None = None
        self._abandoned: asyncio.Future[bool] | None = None

    @property
    def pending(self) -> ToolCall | None:
        """The tool call waiting for a decision, if any."""
        return self._pending_call

    async def request(self, tool_call: ToolCall) -> bool:
        """Suspend until :meth:`resolve` is called; return whether the call was granted."""
        if self._pending is not None:
            raise RuntimeError("An approval request is already outstanding")

        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pending = future
        self._pending_call = tool_call
        logger.info("Waiting for approval of '%s' (%s)", tool_call.name, tool_call.call_id)
        try:
            return await future
        except asyncio.CancelledError:
            if future is self._abandoned:
                raise ApprovalAbandoned(f"Approval for '{tool_call.name}' was abandoned") from None
            raise
        finally:
            if self._pending is future:
                self._pending = None
                self._pending_call = None

    def resolve(self, granted: bool) -> bool:
        """
        Complete the outstanding request.

        Returns *False* (and does nothing) when no request is outstanding.
        """
        future = self._pending
        if future is None or future.done():
            return False
        self._pending = None
        self._pending_call = None
        future.set_result(bool(granted))
        logger.info("Approval %s", "granted" if granted else "denied")
        return True

    def reset(self) -> None:
        """Discard the outstanding request without completing it."""
        future = self._pending
        self._pending = None
        self._pending_call = None
        if future is not None and not future.done():
            self._abandoned = future
            future.cancel()
            logger.info("Pending approval abandoned")

"""Main orchestration loop for Aion."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Callable,
    List,
    Set,
    Tuple,
)

from aion.agent.approval import ApprovalGate
from aion.agent.events import EventChannel
from aion.agent.model_gateway import ModelGateway
from aion.agent.prompts import (
    DEFAULT_MODE,
    PromptComposer,
)
from aion.config import (
    Settings,
    load_settings,
)
from aion.core.errors import ApprovalAbandoned
from aion.core.schema import (
    Decision,
    Message,
    Role,
    SessionOutcome,
    ToolCall,
    ToolResult,
    new_call_id,
)
from aion.tools import (
    TOOL_REGISTRY,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 15
"""Hard cap on inference calls per ``run_session``."""

APPROVAL_REQUIRED = frozenset({"write_to_file", "apply_diff", "run_command"})
"""Tools that mutate the workspace or run processes; never executed without a grant."""

REJECTION_TEXT = "Tool execution rejected by user."
EMPTY_RESPONSE_TEXT = (
    "The AI returned an empty response. "
    "This might be due to a parsing error or context window limits."
)


@dataclass
class SessionState:
    """Everything one session owns.  Replaced wholesale on reset."""

    messages: List[Message] = field(default_factory=list)
    running: bool = False
    approval: ApprovalGate = field(default_factory=ApprovalGate)
    call_ids: Set[str] = field(default_factory=set)
    inferring: bool = False
    closed: bool = False


class Orchestrator:
    """
    Drives the bounded turn loop for a single session.

    The public entry points are :meth:`run_session` (or :meth:`start_session`),
    :meth:`resolve_approval` and :meth:`reset`.
    Everything the loop appends to the log is also published, in the same order, on
    :attr:`events`.

    Reset only drops bookkeeping: an inference call or tool already in flight keeps running to
    completion, after which the detached loop notices it lost the session and stops silently.
    """

    def __init__(
        self,
        gateway: ModelGateway | None = None,
        registry: ToolRegistry | None = None,
        composer: PromptComposer | None = None,
        events: EventChannel | None = None,
        settings_factory: Callable[[], Settings] = load_settings,
    ) -> None:
        self._settings_factory = settings_factory
        self.gateway = gateway or ModelGateway(settings_factory=settings_factory)
        self.registry = registry if registry is not None else TOOL_REGISTRY
        self.composer = composer or PromptComposer()
        self.events = events or EventChannel(maxsize=settings_factory().EVENT_QUEUE_SIZE)
        self._state: SessionState | None = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def running(self) -> bool:
        """Whether a turn loop currently owns the session."""
        return self._state is not None and self._state.running

    @property
    def messages(self) -> Tuple[Message, ...]:
        """Read-only snapshot of the session log."""
        return tuple(self._state.messages) if self._state is not None else ()

    @property
    def pending_approval(self) -> ToolCall | None:
        """Tool call waiting for :meth:`resolve_approval`, if any."""
        return self._state.approval.pending if self._state is not None else None

    async def run_session(self, text: str, mode: str = DEFAULT_MODE) -> SessionOutcome | None:
        """
        Run the turn loop for a new user message.

        Returns the terminal :class:`SessionOutcome`, or *None* when a loop is already running
        (the call is then a silent no-op).
        """
        state = self._claim()
        if state is None:
            return None
        return await self._drive(state, text, mode)

    def start_session(
        self, text: str, mode: str = DEFAULT_MODE
    ) -> asyncio.Task[SessionOutcome] | None:
        """
        Claim the session and run the turn loop as a background task.

        The claim happens before this returns, so a second call made before the task gets
        scheduled is already refused.  Returns *None* when a loop is running.
        """
        state = self._claim()
        if state is None:
            return None
        return asyncio.create_task(self._drive(state, text, mode))

    def resolve_approval(self, granted: bool) -> bool:
        """Answer the outstanding approval request; no-op (returns *False*) if there is none."""
        if self._state is None:
            return False
        return self._state.approval.resolve(granted)

    def reset(self) -> None:
        """
        Clear the log and running flag, and abandon any pending approval.

        Unread events of the dropped session are discarded.  If an inference call was in
        flight, an idle toggle closes its busy bracket for observers.
        """
        state, self._state = self._state, None
        if state is None:
            return
        state.closed = True
        state.running = False
        state.approval.reset()
        self.events.drain()
        if state.inferring:
            self.events.busy(False)
        logger.info("Session reset (%d messages dropped)", len(state.messages))

    # ------------------------------------------------------------------ #
    # Loop
    # ------------------------------------------------------------------ #
    def _claim(self) -> SessionState | None:
        if self._state is None:
            self._state = SessionState()
        state = self._state
        if state.running:
            logger.info("Session busy; ignoring new task")
            return None
        state.running = True
        return state

    async def _drive(self, state: SessionState, text: str, mode: str) -> SessionOutcome:
        outcome = SessionOutcome.FAILED
        try:
            self._append(state, Message(role=Role.USER, content=text))
            outcome = await self._run_loop(state, mode)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Turn loop failed")
            self._append(state, Message(role=Role.ASSISTANT, content=f"Error: {exc}"))
        finally:
            state.running = False

        logger.info("Turn loop finished: %s", outcome.value)
        if self._owns(state):
            self.events.finished(outcome)
        return outcome

    async def _run_loop(self, state: SessionState, mode: str) -> SessionOutcome:
        for iteration in range(1, MAX_ITERATIONS + 1):
            logger.debug("Iteration %d/%d", iteration, MAX_ITERATIONS)
            if not self._owns(state):
                return SessionOutcome.ABANDONED
            system_prompt = self.composer.compose(mode, self._settings_factory())

            decision: Decision | None = None
            error: Exception | None = None
            state.inferring = True
            self.events.busy(True)
            try:
                decision = await self.gateway.infer(
                    system_prompt, list(state.messages), self.registry.manifest()
                )
            except Exception as exc:  # pylint: disable=broad-except
                error = exc
            finally:
                state.inferring = False
                if self._owns(state):
                    self.events.busy(False)

            if not self._owns(state):
                return SessionOutcome.ABANDONED
            if error is not None or decision is None:
                logger.error("Inference failed: %s", error)
                self._append(
                    state, Message(role=Role.ASSISTANT, content=f"Execution Error: {error}")
                )
                return SessionOutcome.FAILED

            if decision.thought:
                differs = decision.thought.strip() != (decision.content or "").strip()
                if differs or decision.tool_calls:
                    self._append(state, Message(role=Role.THOUGHT, content=decision.thought))

            if decision.tool_calls:
                logger.info(
                    "Model returned %d tool calls: %s",
                    len(decision.tool_calls),
                    [call.name for call in decision.tool_calls],
                )
                for call in decision.tool_calls:
                    if not await self._handle_tool_call(state, self._unique(state, call)):
                        return SessionOutcome.ABANDONED
                continue  # results feed the next inference call

            if decision.content:
                self._append(state, Message(role=Role.ASSISTANT, content=decision.content))
                return SessionOutcome.COMPLETED

            logger.error("Empty decision from model: %s", decision)
            failure = f"Execution Error: {EMPTY_RESPONSE_TEXT}"
            self._append(state, Message(role=Role.ASSISTANT, content=failure))
            return SessionOutcome.FAILED

        logger.warning("Iteration budget of %d exhausted without a final answer", MAX_ITERATIONS)
        return SessionOutcome.EXHAUSTED

    async def _handle_tool_call(self, state: SessionState, call: ToolCall) -> bool:
        """Gate, execute and record one call.  Returns *False* if the session was lost."""
        if call.name in APPROVAL_REQUIRED:
            self._append(
                state,
                Message(
                    role=Role.ASSISTANT,
                    content=f"Aion wants to use **{call.name}**. Do you approve?",
                    tool_call=call,
                    requires_approval=True,
                ),
            )
            try:
                granted = await state.approval.request(call)
            except ApprovalAbandoned:
                logger.info("Loop detached while waiting for approval of '%s'", call.name)
                return False
            if not self._owns(state):
                return False
            if not granted:
                self._append(state, self._result_message(call, REJECTION_TEXT))
                return True

        intent = f"I will use tool: {call.name}({json.dumps(call.args, default=str)})"
        self._append(state, Message(role=Role.ASSISTANT, content=intent, tool_call=call))
        result = await self.registry.execute(call.name, call.args)
        if not self._owns(state):
            return False
        self._append(state, self._result_message(call, result))
        return True

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _owns(self, state: SessionState) -> bool:
        return state is self._state and not state.closed

    def _append(self, state: SessionState, message: Message) -> None:
        if not self._owns(state):
            return
        state.messages.append(message)
        self.events.message(message)

    @staticmethod
    def _unique(state: SessionState, call: ToolCall) -> ToolCall:
        if call.call_id in state.call_ids:
            call = call.model_copy(update={"call_id": new_call_id()})
        state.call_ids.add(call.call_id)
        return call

    @staticmethod
    def _result_message(call: ToolCall, result: str) -> Message:
        return Message(
            role=Role.TOOL,
            content=result,
            tool_result=ToolResult(call_id=call.call_id, result=result),
        )

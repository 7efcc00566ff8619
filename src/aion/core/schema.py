"""
Schema definitions for model <-> orchestrator <-> tool messages.

These data models serve as the contract between the model gateway, the orchestration loop, the
tools and whoever observes the conversation.  We keep them separate from runtime logic so they can
be imported anywhere without side-effects.
"""

import uuid
from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def new_call_id() -> str:
    """Return a fresh tool-call identifier."""
    return f"call_{uuid.uuid4().hex[:12]}"


class Role(str, Enum):
    """Author of a message in the session log."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    THOUGHT = "thought"


class ToolCall(BaseModel):
    """A call that the model wants the orchestrator to execute."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., description="Registered tool name")
    args: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("args", "arguments"),
        description="Keyword arguments for the tool",
    )
    call_id: str = Field(
        default_factory=new_call_id,
        validation_alias=AliasChoices("callId", "call_id", "id"),
        serialization_alias="callId",
    )

    @field_validator("args", mode="before")
    @classmethod
    def _null_args(cls, value: Any) -> Any:
        return {} if value is None else value


class ToolResult(BaseModel):
    """Output of one executed (or rejected) tool call."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    call_id: str = Field(
        ..., validation_alias=AliasChoices("callId", "call_id"), serialization_alias="callId"
    )
    result: str


class Message(BaseModel):
    """One entry of the append-only session log."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: Role
    content: str
    tool_call: Optional[ToolCall] = Field(
        None, validation_alias=AliasChoices("toolCall", "tool_call"), serialization_alias="toolCall"
    )
    tool_result: Optional[ToolResult] = Field(
        None,
        validation_alias=AliasChoices("toolResult", "tool_result"),
        serialization_alias="toolResult",
    )
    requires_approval: bool = Field(
        False,
        validation_alias=AliasChoices("requiresApproval", "requires_approval"),
        serialization_alias="requiresApproval",
    )


class Decision(BaseModel):
    """Structured output of one inference call."""

    model_config = ConfigDict(populate_by_name=True)

    thought: Optional[str] = None
    tool_calls: List[ToolCall] = Field(
        default_factory=list,
        validation_alias=AliasChoices("toolCalls", "tool_calls"),
        serialization_alias="toolCalls",
    )
    content: Optional[str] = None

    @field_validator("tool_calls", mode="before")
    @classmethod
    def _null_tool_calls(cls, value: Any) -> Any:
        # JSON-mode backends send "toolCalls": null for "no calls"
        return [] if value is None else value


class SessionOutcome(str, Enum):
    """How a single ``run_session`` call ended."""

    COMPLETED = "completed"  # final content produced
    FAILED = "failed"  # configuration, transport or protocol error
    EXHAUSTED = "exhausted"  # iteration budget used up
    ABANDONED = "abandoned"  # session was reset underneath the loop


# ---------------------------------------------------------------------------
# Observer events
# ---------------------------------------------------------------------------
class MessageEvent(BaseModel):
    """A message was appended to the session log."""

    type: Literal["message"] = "message"
    message: Message


class BusyEvent(BaseModel):
    """Toggled around every inference call."""

    type: Literal["busy"] = "busy"
    busy: bool


class FinishedEvent(BaseModel):
    """The turn loop ended."""

    type: Literal["finished"] = "finished"
    outcome: SessionOutcome


Event = Annotated[Union[MessageEvent, BusyEvent, FinishedEvent], Field(discriminator="type")]

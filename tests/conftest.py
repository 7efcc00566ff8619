"""
Pytest configuration and fixtures for the Aion tests.
"""

import asyncio
from typing import (
    Any,
    Callable,
    List,
    Sequence,
)

import pytest

from aion.agent.events import EventChannel
from aion.agent.orchestrator import Orchestrator
from aion.config import Settings
from aion.core.schema import (
    Decision,
    Event,
    Message,
    MessageEvent,
)
from aion.tools import (
    ToolRegistry,
    ToolSchema,
)


class ScriptedGateway:
    """Stands in for :class:`ModelGateway`, replaying decisions (or exceptions) in order."""

    def __init__(self, *script: Any, repeat_last: bool = False) -> None:
        self.script = list(script)
        self.repeat_last = repeat_last
        self.calls: List[List[Message]] = []
        self.system_prompts: List[str] = []

    async def infer(
        self, system_prompt: str, messages: Sequence[Message], tool_manifest: Sequence[ToolSchema]
    ) -> Decision:
        self.calls.append(list(messages))
        self.system_prompts.append(system_prompt)
        if self.repeat_last and len(self.script) == 1:
            step = self.script[0]
        else:
            step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


class RecordingTools:
    """A registry with a handful of fake tools that record their invocations."""

    def __init__(self) -> None:
        self.invocations: List[tuple] = []
        self.registry = ToolRegistry()
        self.registry.register("list_files_recursive", self._list_files, "List files.")
        self.registry.register("read_file", self._read_file, "Read a file.")
        self.registry.register("run_command", self._run_command, "Run a command.")
        self.registry.register("write_to_file", self._write_to_file, "Write a file.")

    def _list_files(self, dir_path: str = "") -> str:
        self.invocations.append(("list_files_recursive", dir_path))
        return "README.md\nsrc/app.py\nsrc/util.py"

    def _read_file(self, file_path: str) -> str:
        self.invocations.append(("read_file", file_path))
        return f"contents of {file_path}"

    def _run_command(self, command: str) -> str:
        self.invocations.append(("run_command", command))
        return "ran"

    def _write_to_file(self, file_path: str, content: str) -> str:
        self.invocations.append(("write_to_file", file_path))
        return f"Successfully wrote to {file_path}"


@pytest.fixture
def test_settings() -> Settings:
    """Settings that never touch a real backend."""
    return Settings(PROVIDER="openai", API_KEY="test-key", LANGUAGE="en")


@pytest.fixture
def tools() -> RecordingTools:
    """Fake tool set."""
    return RecordingTools()


@pytest.fixture
def make_orchestrator(
    tools: RecordingTools, test_settings: Settings
) -> Callable[..., Orchestrator]:
    """Factory building an orchestrator around a scripted gateway."""

    def factory(gateway: ScriptedGateway) -> Orchestrator:
        return Orchestrator(
            gateway=gateway,  # type: ignore[arg-type]
            registry=tools.registry,
            events=EventChannel(maxsize=test_settings.EVENT_QUEUE_SIZE),
            settings_factory=lambda: test_settings,
        )

    return factory


def messages_of(events: Sequence[Event]) -> List[Message]:
    """The messages carried by *events*, in order."""
    return [event.message for event in events if isinstance(event, MessageEvent)]


async def next_message(channel: EventChannel, predicate: Callable[[Message], bool]) -> Message:
    """Read events until a message satisfying *predicate* shows up."""

    async def _scan() -> Message:
        while True:
            event = await channel.get()
            if isinstance(event, MessageEvent) and predicate(event.message):
                return event.message

    return await asyncio.wait_for(_scan(), timeout=2.0)

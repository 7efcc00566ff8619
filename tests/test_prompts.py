"""Tests for system prompt composition."""

import pytest
from conftest import ScriptedGateway

from aion.agent.prompts import (
    DEFAULT_SKILLS,
    PromptComposer,
)
from aion.config import Settings
from aion.core.schema import Decision


def test_compose_includes_mode_language_and_skills() -> None:
    prompt = PromptComposer().compose("Debug", Settings(LANGUAGE="de"))

    assert prompt.startswith("You are Aion")
    assert "### CURRENT MODE: Debug\nFocus on finding root causes and fixing bugs." in prompt
    assert "in this language: de" in prompt
    assert prompt.rstrip().endswith(DEFAULT_SKILLS.rstrip())
    assert "### ADDITIONAL INSTRUCTIONS" not in prompt


def test_unknown_mode_falls_back_to_general_instructions() -> None:
    prompt = PromptComposer().compose("Poetry", Settings())
    assert "### CURRENT MODE: Poetry\nAct as a general-purpose coding assistant." in prompt


def test_custom_instructions_are_appended() -> None:
    settings = Settings(CUSTOM_INSTRUCTIONS="  Always answer in haiku.  ")
    prompt = PromptComposer(skills="").compose("Ask", settings)

    assert "### ADDITIONAL INSTRUCTIONS\nAlways answer in haiku.\n" in prompt
    assert "ENGINEERING STANDARDS" not in prompt


@pytest.mark.asyncio
async def test_orchestrator_sends_composed_prompt(make_orchestrator) -> None:
    gateway = ScriptedGateway(Decision(content="Hi!"))
    orchestrator = make_orchestrator(gateway)

    await orchestrator.run_session("hello", mode="Architect")

    assert "### CURRENT MODE: Architect" in gateway.system_prompts[0]

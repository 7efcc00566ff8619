"""System prompt composition: agent identity, mode instructions and static skill text."""

from typing import (
    ClassVar,
    Dict,
)

from aion.config import Settings

DEFAULT_MODE = "Code"

MODE_INSTRUCTIONS: Dict[str, str] = {
    "Architect": "Focus on high-level design and structural changes.",
    "Code": "Focus on implementation, refactoring, and clean code.",
    "Ask": "Focus on gathering information and explaining technical concepts.",
    "Debug": "Focus on finding root causes and fixing bugs.",
}

DEFAULT_SKILLS = """\
### ENGINEERING STANDARDS
1. Read before you write: inspect the files you are about to change.
2. Prefer small, targeted edits (apply_diff) over rewriting whole files.
3. Keep the existing style, naming and structure of the project.
4. Validate inputs at boundaries and never hard-code secrets.
5. After changing code, run the relevant tests or linters when a command exists for it.
"""


class PromptComposer:
    """Builds the system prompt for one inference call."""

    IDENTITY: ClassVar[
        str
    ] = """\
You are Aion, an advanced autonomous coding agent.
Follow the user's instructions carefully.

### CORE PRINCIPLES:
1. **Be Concise**: If the user just says "Hi", respond naturally without using tools.
2. **Context First**: Don't guess. Use tools like 'list_files_recursive' only if you need to know \
about the project to answer.
3. **Reasoning**: Use the 'thought' field for your logic. Don't repeat it in 'content'.
4. **Tool Use**: Only use tools when necessary. When the task is complete, give the final answer \
in 'content'.
"""

    def __init__(self, skills: str = DEFAULT_SKILLS) -> None:
        self.skills = skills

    @staticmethod
    def mode_instructions(mode: str) -> str:
        """Instructions for *mode*, falling back to a general-purpose assistant."""
        return MODE_INSTRUCTIONS.get(mode, "Act as a general-purpose coding assistant.")

    def compose(self, mode: str, settings: Settings) -> str:
        """Return the full system prompt for *mode* under the current *settings*."""
        sections = [
            self.IDENTITY,
            f"### CURRENT MODE: {mode}\n{self.mode_instructions(mode)}\n",
            f"### LANGUAGE\nWrite 'thought' and 'content' in this language: {settings.LANGUAGE}\n",
        ]
        if settings.CUSTOM_INSTRUCTIONS and settings.CUSTOM_INSTRUCTIONS.strip():
            extra = settings.CUSTOM_INSTRUCTIONS.strip()
            sections.append(f"### ADDITIONAL INSTRUCTIONS\n{extra}\n")
        if self.skills:
            sections.append(self.skills)
        return "\n".join(sections)

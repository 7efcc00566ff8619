"""
Built-in workspace tools.

Every path is resolved against ``settings.WORKSPACE_DIR`` (read fresh on each call) and must stay
inside it.  Tools raise on bad input; :meth:`ToolRegistry.execute` turns the exception into the
result text the model reads on its next turn.
"""

import fnmatch
import logging
import os
import platform
import subprocess
from pathlib import Path
from typing import (
    Iterator,
    List,
    Sequence,
)

from aion.config import load_settings
from aion.tools import register_tool

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDES = (".git", "node_modules", "__pycache__", ".venv", "venv", ".mypy_cache")
MAX_LISTED_FILES = 2000
MAX_SEARCH_MATCHES = 200


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def workspace_root() -> Path:
    """Absolute path of the configured workspace."""
    return Path(load_settings().WORKSPACE_DIR).expanduser().resolve()


def _resolve(relative: str | None) -> Path:
    root = workspace_root()
    target = (root / (relative or "")).resolve()
    if target != root and root not in target.parents:
        raise ValueError(f"Access denied: '{relative}' is outside the workspace")
    return target


def _matches(rel_path: str, patterns: Sequence[str]) -> bool:
    name = rel_path.rsplit("/", 1)[-1]
    for pattern in patterns:
        clean = pattern.strip("/")
        candidates = [clean]
        if clean.startswith("**/"):
            candidates.append(clean[3:])
        for candidate in candidates:
            if fnmatch.fnmatch(rel_path, candidate) or fnmatch.fnmatch(name, candidate):
                return True
            if rel_path.startswith(candidate.rstrip("*").rstrip("/") + "/"):
                return True
    return False


def _walk(
    base: Path, include: Sequence[str] = (), exclude: Sequence[str] = ()
) -> Iterator[str]:
    """Yield workspace-relative POSIX paths of the files below *base*."""
    root = workspace_root()
    excluded = list(DEFAULT_EXCLUDES) + list(exclude)
    for dirpath, dirnames, filenames in os.walk(base):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir
        # Prune in place so os.walk never descends into excluded directories
        dirnames[:] = sorted(
            d for d in dirnames if not _matches(f"{rel_dir}/{d}".lstrip("/"), excluded)
        )
        for filename in sorted(filenames):
            rel_path = f"{rel_dir}/{filename}".lstrip("/")
            if _matches(rel_path, excluded):
                continue
            if include and not _matches(rel_path, include):
                continue
            yield rel_path


# ---------------------------------------------------------------------------
# Read-only tools
# ---------------------------------------------------------------------------
@register_tool(
    "read_file",
    description="Read the contents of a file in the workspace.",
    parameters={
        "type": "object",
        "properties": {
            "filePath": {"type": "string", "description": "Relative path to the file."}
        },
        "required": ["filePath"],
    },
)
def read_file(file_path: str) -> str:
    """Return the UTF-8 text of *file_path*."""
    return _resolve(file_path).read_text(encoding="utf-8")


@register_tool(
    "list_dir",
    description="List files and directories in a given path.",
    parameters={
        "type": "object",
        "properties": {
            "dirPath": {
                "type": "string",
                "description": "Relative path to the directory (empty for root).",
            }
        },
    },
)
def list_dir(dir_path: str = "") -> str:
    """One ``name (dir|file)`` line per entry."""
    target = _resolve(dir_path)
    entries = sorted(target.iterdir(), key=lambda p: p.name)
    return "\n".join(f"{p.name} ({'dir' if p.is_dir() else 'file'})" for p in entries)


@register_tool(
    "list_files_recursive",
    description=(
        "Recursively list files under a directory as workspace-relative paths. "
        "Optional include/exclude glob lists narrow the result."
    ),
    parameters={
        "type": "object",
        "properties": {
            "dirPath": {
                "type": "string",
                "description": "Directory to start from (default root).",
            },
            "include": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Glob patterns a file must match, e.g. ['*.py', 'src/**'].",
            },
            "exclude": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Glob patterns to skip in addition to the defaults.",
            },
        },
    },
)
def list_files_recursive(
    dir_path: str = "", include: List[str] | None = None, exclude: List[str] | None = None
) -> str:
    """Newline-separated relative paths, sorted per directory."""
    paths: List[str] = []
    for rel_path in _walk(_resolve(dir_path), include or (), exclude or ()):
        if len(paths) == MAX_LISTED_FILES:
            paths.append(f"... (truncated after {MAX_LISTED_FILES} files)")
            break
        paths.append(rel_path)
    return "\n".join(paths) if paths else "No files found."


@register_tool(
    "search_files",
    description="Case-insensitive text search across workspace files.",
    parameters={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Text to look for."},
            "dirPath": {"type": "string", "description": "Directory to search (default root)."},
            "include": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Glob patterns restricting which files are searched.",
            },
        },
        "required": ["query"],
    },
)
def search_files(query: str, dir_path: str = "", include: List[str] | None = None) -> str:
    """Return ``path:line: text`` for every matching line."""
    if not query:
        raise ValueError("query must not be empty")
    root = workspace_root()
    needle = query.lower()
    matches: List[str] = []
    for rel_path in _walk(_resolve(dir_path), include or ()):
        try:
            lines = (root / rel_path).read_text(encoding="utf-8").splitlines()
        except (UnicodeDecodeError, OSError):
            continue  # binary or unreadable
        for lineno, line in enumerate(lines, start=1):
            if needle in line.lower():
                matches.append(f"{rel_path}:{lineno}: {line.strip()}")
                if len(matches) >= MAX_SEARCH_MATCHES:
                    matches.append(f"... (stopped after {MAX_SEARCH_MATCHES} matches)")
                    return "\n".join(matches)
    return "\n".join(matches) if matches else f"No matches found for '{query}'."


@register_tool(
    "get_context",
    description="Describe the workspace: root path, platform, Python version and git branch.",
    parameters={"type": "object", "properties": {}},
)
def get_context() -> str:
    """Describe the workspace environment for the model."""
    root = workspace_root()
    lines = [
        f"Workspace root: {root}",
        f"Platform: {platform.platform()}",
        f"Python: {platform.python_version()}",
    ]
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            cwd=root,
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        )
        if proc.returncode == 0:
            lines.append(f"Git branch: {proc.stdout.strip()}")
    except (OSError, subprocess.SubprocessError):
        logger.debug("git not available for workspace context")
    entries = sorted(p.name for p in root.iterdir())
    lines.append(f"Top-level entries ({len(entries)}): {', '.join(entries[:50])}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Mutating tools (the orchestrator asks for approval before running these)
# ---------------------------------------------------------------------------
@register_tool(
    "write_to_file",
    description="Write or overwrite a file in the workspace.",
    parameters={
        "type": "object",
        "properties": {
            "filePath": {"type": "string", "description": "Relative path to the file."},
            "content": {"type": "string", "description": "Content to write."},
        },
        "required": ["filePath", "content"],
    },
)
def write_to_file(file_path: str, content: str) -> str:
    """Create parent directories as needed."""
    target = _resolve(file_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    logger.info("Wrote %d characters to %s", len(content), target)
    return f"Successfully wrote to {file_path}"


@register_tool(
    "apply_diff",
    description=(
        "Replace an exact block of text in a file. 'search' must match exactly once "
        "unless 'replaceAll' is true."
    ),
    parameters={
        "type": "object",
        "properties": {
            "filePath": {"type": "string", "description": "Relative path to the file."},
            "search": {"type": "string", "description": "Exact text to replace."},
            "replace": {"type": "string", "description": "Replacement text."},
            "replaceAll": {"type": "boolean", "description": "Replace every occurrence."},
        },
        "required": ["filePath", "search", "replace"],
    },
)
def apply_diff(file_path: str, search: str, replace: str, replace_all: bool = False) -> str:
    """Search-and-replace patch."""
    if not search:
        raise ValueError("search must not be empty")
    target = _resolve(file_path)
    original = target.read_text(encoding="utf-8")
    occurrences = original.count(search)
    if occurrences == 0:
        raise ValueError(f"search block not found in {file_path}")
    if occurrences > 1 and not replace_all:
        raise ValueError(
            f"search block occurs {occurrences} times in {file_path}; "
            "add context or set replaceAll"
        )
    replaced = occurrences if replace_all else 1
    target.write_text(original.replace(search, replace, replaced), encoding="utf-8")
    return f"Applied {replaced} replacement(s) to {file_path}"


@register_tool(
    "run_command",
    description="Run a shell command in the workspace root.",
    parameters={
        "type": "object",
        "properties": {"command": {"type": "string", "description": "The command to run."}},
        "required": ["command"],
    },
)
def run_command(command: str) -> str:
    """Run *command* through the shell; stdout wins over stderr."""
    settings = load_settings()
    logger.info("Executing shell command: %s", command)
    proc = subprocess.run(
        command,
        cwd=workspace_root(),
        shell=True,
        capture_output=True,
        text=True,
        timeout=settings.COMMAND_TIMEOUT,
        check=False,
    )
    if proc.returncode != 0:
        return f"Error: Command failed with exit code {proc.returncode}\nStderr: {proc.stderr}"
    return proc.stdout or proc.stderr or "Command executed successfully (no output)."

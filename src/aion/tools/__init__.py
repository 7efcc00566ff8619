"""
Tool registry for Aion.

This module provides a decorator to register tools and a registry to look them up by name.
Tools are functions (sync or async) that take keyword arguments and return text.  The registry
is the only place that invokes them, and it never lets an exception escape: failures come back
as result strings that the next inference call can read.
"""

import asyncio
import inspect
import logging
import re
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    TypedDict,
)

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


class ToolSchema(TypedDict):
    """
    What the backend gets to see of a tool: never the handler.
    """

    name: str
    description: str
    parameters: Mapping[str, Any]


@dataclass(frozen=True)
class ToolDefinition:
    """A named, schema-described operation with a text-in/text-out contract."""

    name: str
    description: str
    parameters: Mapping[str, Any]
    handler: Callable[..., Any]

    def schema(self) -> ToolSchema:
        """Return the manifest entry for this tool."""
        return {"name": self.name, "description": self.description, "parameters": self.parameters}


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _handler_kwargs(handler: Callable[..., Any], args: Mapping[str, Any]) -> Dict[str, Any]:
    """Map camelCase argument names (as advertised to the model) onto the handler's parameters."""
    try:
        params = inspect.signature(handler).parameters
    except (TypeError, ValueError):
        return dict(args)
    kwargs: Dict[str, Any] = {}
    for key, value in args.items():
        if key not in params and _snake_case(key) in params:
            key = _snake_case(key)
        kwargs[key] = value
    return kwargs


class ToolRegistry:
    """Catalog of tools keyed by name."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolDefinition] = {}

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        description: str | None = None,
        parameters: Mapping[str, Any] | None = None,
    ) -> ToolDefinition:
        """
        Add *handler* under *name*.

        Raises
        ------
        ValueError
            If a tool with the same name is already registered.
        """
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")
        logger.debug("Registering tool '%s'", name)
        tool = ToolDefinition(
            name=name,
            description=description or inspect.getdoc(handler) or "",
            parameters=parameters or {"type": "object", "properties": {}},
            handler=handler,
        )
        self._tools[name] = tool
        return tool

    def lookup(self, name: str) -> ToolDefinition | None:
        """Return the tool registered as *name*, if any."""
        return self._tools.get(name)

    def names(self) -> List[str]:
        """Registered tool names in registration order."""
        return list(self._tools)

    def manifest(self) -> List[ToolSchema]:
        """Name, description and parameter schema of every tool."""
        return [tool.schema() for tool in self._tools.values()]

    async def execute(self, name: str, args: Mapping[str, Any] | None = None) -> str:
        """
        Look up *name* and invoke it with *args*.

        Parameters
        ----------
        name:
            The registered tool name.
        args:
            Keyword arguments for the tool function.  camelCase names (``filePath``) are mapped
            onto snake_case parameters (``file_path``).  If *None*, an empty dict is assumed.

        Returns
        -------
        str
            The tool output, or an error description.  This method never raises.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool '%s'", name)
            return f"Error: Tool {name} not found"

        try:
            kwargs = _handler_kwargs(tool.handler, args or {})
            logger.debug("Executing tool '%s' with args=%s", name, kwargs)
            if inspect.iscoroutinefunction(tool.handler):
                result = await tool.handler(**kwargs)
            else:
                # Keep blocking file and process I/O off the event loop
                result = await asyncio.to_thread(tool.handler, **kwargs)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled error in tool '%s'", name)
            return f"Error executing tool {name}: {exc}"

        return result if isinstance(result, str) else str(result)


TOOL_REGISTRY = ToolRegistry()
"""Default registry holding the built-in workspace tools."""


def register_tool(
    name: str,
    description: str | None = None,
    parameters: Mapping[str, Any] | None = None,
    registry: ToolRegistry | None = None,
) -> Callable:
    """
    Register a tool function with the given name.

    The function is registered as a decorator, so it can be used like this:
        @register_tool("my_tool", parameters={"type": "object", "properties": {...}})
        def my_tool_function(arg1, arg2):
            return "result text"

    When *description* is omitted the function docstring is used.  Tools go into
    :data:`TOOL_REGISTRY` unless another *registry* is given.
    """
    target = registry if registry is not None else TOOL_REGISTRY

    def wrapper(fn: Callable) -> Callable:
        target.register(name, fn, description=description, parameters=parameters)
        return fn

    return wrapper


# Built-in tools register themselves on import
# pylint: disable-next=wrong-import-position,cyclic-import
from aion.tools import workspace  # noqa: E402,F401

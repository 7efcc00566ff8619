"""
Model gateway for Aion.

This module is the only place that *directly* calls an LLM.  Everything else (orchestrator,
tools, API) stays model-agnostic and talks to :class:`ModelGateway`.

Three wire dialects are supported:

1. **Gemini** ``generateContent``: single-shot parts array, called with httpx.
2. **Anthropic** Messages API: separate ``system`` field, called with the Anthropic SDK.
3. **Chat completions**: system role injected first, JSON-object response mode, called with the
   OpenAI SDK.  Serves OpenAI, DeepSeek and any custom OpenAI-compatible endpoint.

Adapters are registered per :class:`Provider` via :func:`register_adapter`.  The provider set is
closed: an identifier outside it is a configuration error.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from enum import Enum
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Sequence,
    Type,
)

import httpx

from aion.agent.decision_parser import parse_decision
from aion.config import (
    Settings,
    load_settings,
)
from aion.core.errors import (
    ConfigurationError,
    MissingCredentialsError,
    ProviderError,
)
from aion.core.schema import (
    Decision,
    Message,
    Role,
)
from aion.tools import ToolSchema

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
ANTHROPIC_MAX_TOKENS = 4096


class Provider(str, Enum):
    """Backend identifiers accepted in ``settings.PROVIDER``."""

    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str | None) -> "Provider":
        """Case-insensitive lookup raising :class:`ConfigurationError` for unknown names."""
        try:
            return cls((value or "").strip().lower())
        except ValueError as exc:
            raise ConfigurationError(f"Provider {value!r} not implemented") from exc


PROVIDER_LABELS: Dict[Provider, str] = {
    Provider.GEMINI: "Gemini",
    Provider.ANTHROPIC: "Anthropic",
    Provider.OPENAI: "OpenAI",
    Provider.DEEPSEEK: "DeepSeek",
    Provider.CUSTOM: "Custom",
}

DEFAULT_MODELS: Dict[Provider, str] = {
    Provider.GEMINI: "gemini-2.0-flash",
    Provider.ANTHROPIC: "claude-3-5-sonnet-20240620",
    Provider.OPENAI: "gpt-4o",
    Provider.DEEPSEEK: "deepseek-chat",
    Provider.CUSTOM: "gpt-3.5-turbo",
}


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_ADAPTER_REGISTRY: dict[Provider, Type["BaseAdapter"]] = {}


def register_adapter(*providers: Provider) -> Callable:
    """Decorator to register an adapter class for one or more *providers*."""

    def wrapper(cls: Type["BaseAdapter"]) -> Type["BaseAdapter"]:
        for provider in providers:
            _ADAPTER_REGISTRY[provider] = cls
        return cls

    return wrapper


def load_adapter(
    settings: Settings, http_client: httpx.AsyncClient | None = None
) -> "BaseAdapter":
    """Instantiate the adapter selected by ``settings.PROVIDER``."""
    provider = Provider.parse(settings.PROVIDER)
    return _ADAPTER_REGISTRY[provider](provider, settings, http_client)


def to_wire_messages(messages: Sequence[Message]) -> List[Dict[str, str]]:
    """
    Flatten the session log into ``{"role": "user"|"assistant", "content": ...}`` entries.

    Approval prompts are UI-only and skipped.  Thoughts and tool results are folded into the
    assistant and user roles that every dialect understands.
    """
    wire: List[Dict[str, str]] = []
    for message in messages:
        if message.requires_approval:
            continue
        if message.role == Role.THOUGHT:
            wire.append({"role": "assistant", "content": f"[Thought] {message.content}"})
        elif message.role == Role.TOOL:
            wire.append({"role": "user", "content": f"Tool Result: {message.content}"})
        else:
            wire.append({"role": message.role.value, "content": message.content})
    return wire


def merge_consecutive(messages: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
    """Join adjacent messages that share a role, for dialects that require alternation."""
    merged: List[Dict[str, str]] = []
    for message in messages:
        if merged and merged[-1]["role"] == message["role"]:
            merged[-1] = {
                "role": message["role"],
                "content": f"{merged[-1]['content']}\n\n{message['content']}",
            }
        else:
            merged.append(dict(message))
    return merged


def _response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseAdapter(ABC):
    """Abstract adapter that turns (system prompt, log, tools) into a :class:`Decision`."""

    # Protocol appended to every system prompt
    RESPONSE_PROTOCOL: ClassVar[
        str
    ] = """\
### RESPONSE FORMAT
Reply with exactly one JSON object and no other text:
{"thought": "<your reasoning>", "toolCalls": [{"name": "<tool>", "args": { ... }}], "content": "<final answer>"}
- Put tool requests in "toolCalls" and leave "content" empty; the results come back next turn.
- When the task is done, leave "toolCalls" empty and put the answer for the user in "content".
"""

    def __init__(
        self,
        provider: Provider,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.provider = provider
        self.settings = settings
        self._http_client = http_client

    @property
    def label(self) -> str:
        """Provider tag used in error messages."""
        return PROVIDER_LABELS[self.provider]

    @property
    def model(self) -> str:
        """Configured model id, or the provider default."""
        configured = (self.settings.MODEL or "").strip()
        return configured or DEFAULT_MODELS[self.provider]

    def _api_key(self) -> str:
        key = (self.settings.API_KEY or "").strip()
        if not key:
            raise MissingCredentialsError(self.label)
        return key

    def _build_prompt(self, system_prompt: str, tool_manifest: Sequence[ToolSchema]) -> str:
        """Append the response protocol and the tool manifest to *system_prompt*."""
        prompt = f"{system_prompt.rstrip()}\n\n{self.RESPONSE_PROTOCOL}"
        if tool_manifest:
            prompt += "\n### AVAILABLE TOOLS\n" + json.dumps(list(tool_manifest), indent=2)
        return prompt

    async def infer(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        tool_manifest: Sequence[ToolSchema],
    ) -> Decision:
        """Call the backend and parse its reply."""
        prompt = self._build_prompt(system_prompt, tool_manifest)
        logger.debug(
            "Calling %s model '%s' with %d messages", self.label, self.model, len(messages)
        )
        text = await self._complete(prompt, to_wire_messages(messages))
        logger.debug("%s response: %s", self.label, text)
        return parse_decision(text)

    @abstractmethod
    async def _complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> str:
        """Perform the network call and return the raw assistant text."""


# ---------------------------------------------------------------------------
# Concrete adapters
# ---------------------------------------------------------------------------
@register_adapter(Provider.GEMINI)
class GeminiAdapter(BaseAdapter):
    """Gemini ``generateContent`` over httpx."""

    async def _complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> str:
        key = self._api_key()
        url = f"{GEMINI_BASE_URL}/models/{self.model}:generateContent"

        turns = [{"role": "user", "content": f"SYSTEM INSTRUCTIONS:\n{system_prompt}"}, *messages]
        payload = {
            "contents": [
                {
                    "role": "model" if turn["role"] == "assistant" else "user",
                    "parts": [{"text": turn["content"]}],
                }
                for turn in merge_consecutive(turns)
            ],
            "generationConfig": {"response_mime_type": "application/json"},
        }

        try:
            if self._http_client is not None:
                resp = await self._http_client.post(url, params={"key": key}, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.settings.REQUEST_TIMEOUT) as client:
                    resp = await client.post(url, params={"key": key}, json=payload)
        except httpx.HTTPError as exc:
            logger.error("Gemini request error: %s", exc)
            raise ProviderError(self.label, None, str(exc)) from exc

        if resp.is_error:
            raise ProviderError(self.label, resp.status_code, _response_body(resp))

        data = resp.json()
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"] or "{}"
        except (KeyError, IndexError, TypeError):
            logger.warning("Gemini response without text part: %s", data)
            return "{}"


@register_adapter(Provider.ANTHROPIC)
class AnthropicAdapter(BaseAdapter):
    """Anthropic Messages API via the official SDK."""

    async def _complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> str:
        import anthropic  # pylint: disable=import-outside-toplevel

        client = anthropic.AsyncAnthropic(
            api_key=self._api_key(),
            http_client=self._http_client,
            max_retries=0,
            timeout=self.settings.REQUEST_TIMEOUT,
        )
        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=ANTHROPIC_MAX_TOKENS,
                system=system_prompt,
                messages=merge_consecutive(messages),
            )
        except anthropic.APIStatusError as exc:
            raise ProviderError(self.label, exc.status_code, exc.body) from exc
        except anthropic.APIConnectionError as exc:
            logger.error("Anthropic request error: %s", exc)
            raise ProviderError(self.label, None, str(exc)) from exc
        finally:
            if self._http_client is None:
                await client.close()

        # Handle different content block types from Anthropic API
        for block in response.content:
            if block.type == "text":
                return block.text or "{}"
        return "{}"


@register_adapter(Provider.OPENAI, Provider.DEEPSEEK, Provider.CUSTOM)
class ChatCompletionsAdapter(BaseAdapter):
    """OpenAI-compatible chat completions via the OpenAI SDK."""

    BASE_URLS: ClassVar[Dict[Provider, str]] = {
        Provider.OPENAI: "https://api.openai.com/v1",
        Provider.DEEPSEEK: "https://api.deepseek.com",
    }

    def _base_url(self) -> str:
        if self.provider != Provider.CUSTOM:
            return self.BASE_URLS[self.provider]
        url = (self.settings.CUSTOM_URL or "").strip()
        if not url:
            raise ConfigurationError("Custom endpoint URL not configured")
        # Accept both a full ".../chat/completions" URL and a bare base URL
        if "/chat/completions" in url:
            url = url.split("/chat/completions", 1)[0]
        return url.rstrip("/")

    def _api_key(self) -> str:
        if self.provider == Provider.CUSTOM:
            # Self-hosted endpoints often run without authentication
            return (self.settings.API_KEY or "").strip() or "EMPTY"
        return super()._api_key()

    async def _complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> str:
        import openai  # pylint: disable=import-outside-toplevel

        client = openai.AsyncOpenAI(
            api_key=self._api_key(),
            base_url=self._base_url(),
            http_client=self._http_client,
            max_retries=0,
            timeout=self.settings.REQUEST_TIMEOUT,
        )
        try:
            resp = await client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                messages=[{"role": "system", "content": system_prompt}, *messages],
            )
        except openai.APIStatusError as exc:
            raise ProviderError(self.label, exc.status_code, exc.body) from exc
        except openai.APIConnectionError as exc:
            logger.error("%s request error: %s", self.label, exc)
            raise ProviderError(self.label, None, str(exc)) from exc
        finally:
            if self._http_client is None:
                await client.close()

        if not resp.choices:
            return "{}"
        return resp.choices[0].message.content or "{}"


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------
class ModelGateway:
    """
    Single ``infer`` entry point over every backend.

    Settings are re-read and a new adapter is built on every call, so configuration changes take
    effect on the next turn.
    """

    def __init__(
        self,
        settings_factory: Callable[[], Settings] = load_settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings_factory = settings_factory
        self._http_client = http_client

    async def infer(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        tool_manifest: Sequence[ToolSchema],
    ) -> Decision:
        """Return the backend's :class:`Decision` for the current conversation."""
        adapter = load_adapter(self._settings_factory(), self._http_client)
        return await adapter.infer(system_prompt, messages, tool_manifest)

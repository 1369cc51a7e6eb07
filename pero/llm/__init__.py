"""Chat-completions providers for the supported gateways."""

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from pero.exceptions import ConfigurationError, LLMAPIError, LLMError
from pero.interpolate import AudioFormat, decode_audio_marker
from pero.logging import get_logger
from pero.session import ContentPart, ToolCall, Turn

log = get_logger(__name__)


@dataclass(frozen=True)
class Gateway:
    """An OpenAI-compatible endpoint and how it wants audio encoded."""

    name: str
    base_url: str
    api_key_env: str | None = None
    audio_format: AudioFormat = "openai"
    default_api_key: str | None = None


GATEWAYS: dict[str, Gateway] = {
    "ollama": Gateway("ollama", "http://127.0.0.1:11434/v1", default_api_key="ollama"),
    "openrouter": Gateway("openrouter", "https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"),
    "gemini": Gateway(
        "gemini",
        "https://generativelanguage.googleapis.com/v1beta/openai",
        "GEMINI_API_KEY",
        audio_format="gemini",
    ),
    "anthropic": Gateway("anthropic", "https://api.anthropic.com/v1", "ANTHROPIC_API_KEY"),
    "openai": Gateway("openai", "https://api.openai.com/v1", "OPENAI_API_KEY"),
    "deepseek": Gateway("deepseek", "https://api.deepseek.com/beta", "DEEPSEEK_API_KEY"),
    "moonshot": Gateway("moonshot", "https://api.moonshot.ai/v1", "MOONSHOT_API_KEY"),
}


def get_gateway(name: str) -> Gateway:
    """Look up a gateway by name.

    Raises:
        ConfigurationError: unknown gateway
    """
    try:
        return GATEWAYS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown gateway '{name}'. Choose one of: {', '.join(GATEWAYS)}"
        ) from None


@dataclass
class LLMResponse:
    """One assistant message from the backend."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    reasoning: str | None = None
    annotations: list[dict[str, Any]] = field(default_factory=list)
    finish_reason: str | None = None
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)
    # Further choices when the backend returned more than one.
    extra_choices: list["LLMResponse"] = field(default_factory=list)

    def to_turn(self) -> Turn:
        if self.tool_calls:
            return Turn(role="assistant", tool_calls=list(self.tool_calls), reasoning=self.reasoning)
        return Turn(
            role="assistant",
            content=self.content,
            reasoning=self.reasoning,
            annotations=list(self.annotations),
        )


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    audio_format: AudioFormat = "openai"

    @abstractmethod
    async def complete(
        self,
        turns: list[Turn],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResponse:
        pass

    async def close(self) -> None:
        return None


def _expand_audio_part(part: ContentPart, audio_format: AudioFormat) -> ContentPart:
    """Turn an ``<AUDIO_FILE>`` marker part into the backend's audio part."""
    metadata = decode_audio_marker(str(part.get("text", "")))
    if metadata is None:
        return part
    if metadata.get("audioFormat", audio_format) == "gemini":
        return {
            "type": "inline_data",
            "inline_data": {"mime_type": metadata["mimeType"], "data": metadata["data"]},
        }
    return {
        "type": "input_audio",
        "input_audio": {
            "data": metadata["data"],
            "format": str(metadata.get("extension", ".wav")).lstrip(".") or "wav",
        },
    }


def convert_turns(turns: list[Turn], audio_format: AudioFormat = "openai") -> list[dict[str, Any]]:
    """Convert session turns to chat-completions messages."""
    result: list[dict[str, Any]] = []
    for turn in turns:
        if turn.role == "assistant" and turn.tool_calls:
            result.append({
                "role": "assistant",
                "content": turn.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments_json()},
                    }
                    for call in turn.tool_calls
                ],
            })
        elif turn.role == "tool":
            entry: dict[str, Any] = {
                "role": "tool",
                "tool_call_id": turn.tool_call_id,
                "content": turn.text,
            }
            if turn.name:
                entry["name"] = turn.name
            result.append(entry)
        elif isinstance(turn.content, list):
            result.append({
                "role": turn.role,
                "content": [_expand_audio_part(part, audio_format) for part in turn.content],
            })
        else:
            result.append({"role": turn.role, "content": turn.content or ""})
    return result


def convert_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert catalog entries to function-tool format."""
    result = []
    for tool in tools:
        name = tool.get("name")
        if name:
            result.append({
                "type": "function",
                "function": {
                    "name": name,
                    "description": tool.get("description", "") or "",
                    "parameters": tool.get("parameters", {}) or {},
                },
            })
    return result


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return {"_raw_arguments": str(raw)}
    return parsed if isinstance(parsed, dict) else {"_raw_arguments": str(raw)}


def parse_choice(choice: dict[str, Any], model: str = "", usage: dict[str, int] | None = None) -> LLMResponse:
    """Map one response choice to an LLMResponse."""
    message = choice.get("message") or {}
    tool_calls = [
        ToolCall(
            id=tc.get("id") or "",
            name=(tc.get("function") or {}).get("name", ""),
            arguments=_parse_arguments((tc.get("function") or {}).get("arguments")),
        )
        for tc in message.get("tool_calls") or []
    ]
    return LLMResponse(
        content=message.get("content") or "",
        tool_calls=tool_calls,
        reasoning=message.get("reasoning") or message.get("reasoning_content") or None,
        annotations=list(message.get("annotations") or []),
        finish_reason=choice.get("finish_reason"),
        model=model,
        usage=dict(usage or {}),
    )


class OpenAICompatibleProvider(LLMProvider):
    """Chat-completions provider speaking to an OpenAI-compatible gateway."""

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str | None = None,
        audio_format: AudioFormat = "openai",
        temperature: float | None = None,
        max_tokens: int | None = None,
        reasoning_effort: str | None = None,
        include_reasoning: bool = False,
        timeout: float = 600.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize provider.

        Args:
            model: Model name as the gateway knows it
            base_url: Gateway base URL (without ``/chat/completions``)
            api_key: Bearer token, if the gateway needs one
            audio_format: How audio parts are encoded for this gateway
            temperature: Sampling temperature (gateway default when None)
            max_tokens: Max tokens to generate
            reasoning_effort: ``low`` / ``medium`` / ``high``
            include_reasoning: Ask the gateway to return reasoning text
            timeout: HTTP timeout in seconds
            client: Optional preconfigured httpx client
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.audio_format = audio_format
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.reasoning_effort = reasoning_effort
        self.include_reasoning = include_reasoning

        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def build_body(self, turns: list[Turn], tools: list[dict[str, Any]] | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": convert_turns(turns, self.audio_format),
        }
        if tools:
            body["tools"] = convert_tools(tools)
            body["tool_choice"] = "auto"
        if self.include_reasoning:
            body["include_reasoning"] = True
        if self.max_tokens:
            body["max_tokens"] = self.max_tokens
        if self.reasoning_effort:
            body["reasoning_effort"] = self.reasoning_effort
        if self.temperature is not None:
            body["temperature"] = self.temperature
        return body

    async def complete(
        self,
        turns: list[Turn],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        url = f"{self.base_url}/chat/completions"
        body = self.build_body(turns, tools)

        try:
            log.debug("Calling gateway", model=self.model, url=url, msg_count=len(body["messages"]))

            response = await self.client.post(url, json=body, headers=self._headers())

            log.debug("Gateway response status", status=response.status_code)

            if not response.is_success:
                raise LLMAPIError(
                    f"Gateway API error {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )

            data = response.json()
        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Gateway HTTP error: {e}") from e
        except json.JSONDecodeError as e:
            raise LLMError(f"Gateway response decode error: {e}") from e

        if data.get("error"):
            raise LLMAPIError(f"Gateway returned an error: {data['error']}")

        choices = data.get("choices") or []
        if not choices:
            raise LLMError("Gateway response contained no choices")

        model = data.get("model", self.model)
        usage = data.get("usage") or {}
        first, *rest = [parse_choice(choice, model=model, usage=usage) for choice in choices]
        first.extra_choices = rest
        return first

    async def list_models(self) -> list[str]:
        """List model ids the gateway offers."""
        try:
            response = await self.client.get(f"{self.base_url}/models", headers=self._headers())
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Gateway HTTP error: {e}") from e
        if not response.is_success:
            raise LLMAPIError(
                f"Gateway API error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        data = response.json()
        return [str(item.get("id")) for item in data.get("data") or [] if item.get("id")]

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_provider(
    gateway: str = "openrouter",
    model: str = "anthropic/claude-sonnet-4.5",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    reasoning_effort: str | None = None,
    include_reasoning: bool = False,
    timeout: float = 600.0,
) -> OpenAICompatibleProvider:
    """Create a provider for a named gateway.

    The API key falls back to the gateway's environment variable.
    """
    spec = get_gateway(gateway)
    key = api_key or (os.environ.get(spec.api_key_env) if spec.api_key_env else None) or spec.default_api_key
    if not key:
        log.warning("No API key for gateway", gateway=gateway, env=spec.api_key_env)
    return OpenAICompatibleProvider(
        model=model,
        base_url=base_url or spec.base_url,
        api_key=key,
        audio_format=spec.audio_format,
        temperature=temperature,
        max_tokens=max_tokens,
        reasoning_effort=reasoning_effort,
        include_reasoning=include_reasoning,
        timeout=timeout,
    )

"""Model backends - direct HTTP calls to local inference servers."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from corex_agent.exceptions import (
    BackendError,
    BackendTimeoutError,
    BackendUnreachableError,
    NoActiveModelError,
)
from corex_agent.logging import get_logger

log = get_logger(__name__)


OPENAI_COMPATIBLE_BASE_URL = "http://127.0.0.1:1234/v1"
OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"


@dataclass
class Message:
    """A message sent to the model."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    name: str
    parameters: dict[str, Any] = field(default_factory=dict)
    id: str = ""


@dataclass
class LLMResponse:
    """Response from the model backend."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class ToolDefinition:
    """Definition of a tool for backends with native tool calling."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema


def _message_dicts(messages: list[Message]) -> list[dict[str, str]]:
    return [{"role": m.role, "content": m.content or ""} for m in messages]


def _tool_dicts(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description or "",
                "parameters": tool.parameters or {},
            },
        }
        for tool in tools
    ]


def _coerce_arguments(raw: Any, tool_name: str) -> dict[str, Any] | None:
    """Structured arguments may arrive as an object or as a JSON string."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            log.warning("Dropping tool call with invalid arguments", tool=tool_name)
            return None
        if isinstance(parsed, dict):
            return parsed
    log.warning("Dropping tool call with non-object arguments", tool=tool_name)
    return None


class LLMProvider(ABC):
    """Abstract base class for model backends."""

    model: str = ""
    base_url: str = ""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """Generate a completion for the given message history."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


class _HTTPProvider(LLMProvider):
    """Shared request plumbing and failure mapping for HTTP backends."""

    endpoint = ""
    label = "backend"

    def __init__(
        self,
        model: str,
        base_url: str,
        temperature: float = 0.7,
        max_tokens: int = 8192,
        api_key: str | None = None,
        timeout: float = 300.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    def _build_body(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None,
        max_tokens: int,
        model: str,
    ) -> dict[str, Any]:
        raise NotImplementedError

    def _parse_response(self, data: dict[str, Any], model: str) -> LLMResponse:
        raise NotImplementedError

    def _is_missing_model(self, status_code: int, body: str) -> bool:
        lowered = body.lower()
        return status_code in (400, 404) and "model" in lowered and (
            "not found" in lowered or "not loaded" in lowered or "no model" in lowered
        )

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        model_id = (model or self.model or "").strip()
        if not model_id:
            raise NoActiveModelError()

        url = f"{self.base_url}{self.endpoint}"
        body = self._build_body(messages, tools, max_tokens or self.max_tokens, model_id)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            log.debug("Calling model backend", backend=self.label, model=model_id, url=url, msg_count=len(messages))
            response = await self.client.post(url, json=body, headers=headers)
            log.debug("Model backend response status", backend=self.label, status=response.status_code)

            if not response.is_success:
                error_text = response.text
                if self._is_missing_model(response.status_code, error_text):
                    raise NoActiveModelError(f"Model '{model_id}' is not available: {error_text}")
                raise BackendError(
                    f"{self.label} API error {response.status_code}: {error_text}",
                    status_code=response.status_code,
                )

            return self._parse_response(response.json(), model_id)

        except BackendError:
            raise
        except httpx.TimeoutException:
            raise BackendTimeoutError(self.timeout)
        except (httpx.ConnectError, httpx.RemoteProtocolError) as e:
            raise BackendUnreachableError(self.base_url, str(e))
        except httpx.HTTPError as e:
            raise BackendError(f"{self.label} HTTP error: {e}")
        except json.JSONDecodeError as e:
            raise BackendError(f"{self.label} response decode error: {e}")
        except Exception as e:
            raise BackendError(f"{self.label} call failed: {e}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


class OpenAICompatibleProvider(_HTTPProvider):
    """OpenAI-style ``/chat/completions`` server (LM Studio, llama.cpp, vLLM)."""

    endpoint = "/chat/completions"
    label = "OpenAI-compatible"

    def _build_body(self, messages, tools, max_tokens, model):
        body: dict[str, Any] = {
            "model": model,
            "messages": _message_dicts(messages),
            "temperature": self.temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }
        if tools:
            body["tools"] = _tool_dicts(tools)
        return body

    def _parse_response(self, data, model):
        choices = data.get("choices") or []
        if not choices:
            raise BackendError(f"{self.label} response has no choices")
        message = choices[0].get("message") or {}

        tool_calls = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function") or {}
            name = function.get("name", "")
            arguments = _coerce_arguments(function.get("arguments"), name)
            if name and arguments is not None:
                tool_calls.append(ToolCall(name=name, parameters=arguments, id=tc.get("id", "")))

        usage = data.get("usage") or {}
        return LLMResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            model=data.get("model") or model,
            usage={
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
            },
        )


class OllamaProvider(_HTTPProvider):
    """Direct Ollama API provider."""

    endpoint = "/api/chat"
    label = "Ollama"

    def __init__(self, *args: Any, num_ctx: int = 32768, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.num_ctx = num_ctx

    def _build_body(self, messages, tools, max_tokens, model):
        body: dict[str, Any] = {
            "model": model,
            "messages": _message_dicts(messages),
            "stream": False,
            "options": {
                "num_ctx": self.num_ctx,
                "temperature": self.temperature,
                "num_predict": max_tokens,
            },
        }
        if tools:
            body["tools"] = _tool_dicts(tools)
        return body

    def _parse_response(self, data, model):
        message = data.get("message") or {}

        tool_calls = []
        for index, tc in enumerate(message.get("tool_calls") or []):
            function = tc.get("function") or {}
            name = function.get("name", "")
            arguments = _coerce_arguments(function.get("arguments", {}), name)
            if name and arguments is not None:
                tool_calls.append(ToolCall(name=name, parameters=arguments, id=f"ollama_call_{index}"))

        prompt_tokens = data.get("prompt_eval_count", 0)
        completion_tokens = data.get("eval_count", 0)
        return LLMResponse(
            content=message.get("content", ""),
            tool_calls=tool_calls,
            model=model,
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        )


def create_provider(
    provider: str = "openai_compatible",
    model: str = "",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 8192,
    timeout: float = 300.0,
) -> LLMProvider:
    """Create a model backend.

    Args:
        provider: Provider name (openai_compatible, lmstudio, ollama)
        model: Model identifier
        api_key: Optional API key
        base_url: Optional base URL
        temperature: Default temperature
        max_tokens: Default max output tokens
        timeout: HTTP timeout in seconds

    Returns:
        Configured LLMProvider instance
    """
    name = provider.strip().lower()
    if name in ("openai_compatible", "openai", "lmstudio", "llamacpp", "vllm"):
        return OpenAICompatibleProvider(
            model=model,
            base_url=base_url or OPENAI_COMPATIBLE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )
    if name == "ollama":
        return OllamaProvider(
            model=model,
            base_url=base_url or OLLAMA_NATIVE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )
    raise ValueError(f"Provider '{provider}' not supported. Use 'openai_compatible' or 'ollama'.")


# Global provider instance
_provider: LLMProvider | None = None


def get_provider() -> LLMProvider:
    """Get the global model backend instance."""
    global _provider
    if _provider is None:
        from corex_agent.config import get_config
        cfg = get_config()
        _provider = create_provider(
            provider=cfg.model.provider,
            model=cfg.model.model,
            temperature=cfg.model.temperature,
            max_tokens=cfg.context.max_output_tokens,
            api_key=cfg.model.api_key or None,
            base_url=cfg.model.base_url or None,
            timeout=cfg.model.request_timeout,
        )
    return _provider


def set_provider(provider: LLMProvider) -> None:
    """Set the global model backend instance."""
    global _provider
    _provider = provider

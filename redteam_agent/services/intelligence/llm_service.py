from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Literal, Optional, Protocol

import httpx

from ...config import PlannerSettings

Role = Literal["system", "user", "assistant"]


class ProviderError(RuntimeError):
    pass


@dataclass(frozen=True)
class LLMMessage:
    role: Role
    content: str


@dataclass(frozen=True)
class LLMProviderConfig:
    model: str
    max_tokens: int
    timeout_ms: int
    endpoint: Optional[str] = None
    api_key: Optional[str] = None

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @classmethod
    def from_settings(cls, settings: PlannerSettings) -> "LLMProviderConfig":
        return cls(
            model=settings.model,
            max_tokens=settings.max_tokens,
            timeout_ms=settings.timeout_ms,
            endpoint=settings.endpoint,
            api_key=settings.api_key,
        )


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int


@dataclass(frozen=True)
class CompletionResult:
    content: str
    usage: Optional[TokenUsage] = None


class LLMProvider(Protocol):
    name: str

    async def complete(
        self, messages: List[LLMMessage], config: LLMProviderConfig
    ) -> CompletionResult: ...


class StubProvider:
    """Returns a fixed response; used in tests and offline runs."""

    name = "stub"

    def __init__(self, response: str):
        self.response = response

    async def complete(
        self, messages: List[LLMMessage], config: LLMProviderConfig
    ) -> CompletionResult:
        return CompletionResult(
            content=self.response,
            usage=TokenUsage(prompt_tokens=0, completion_tokens=0),
        )


class OpenAICompatibleProvider:
    """Any API speaking the OpenAI chat completions protocol."""

    name = "openai-compatible"
    default_endpoint = "https://api.openai.com/v1"

    async def complete(
        self, messages: List[LLMMessage], config: LLMProviderConfig
    ) -> CompletionResult:
        if not config.api_key:
            raise ProviderError(
                "LLM API key is required. Set REDTEAM_PLANNER__API_KEY."
            )
        base_url = (config.endpoint or self.default_endpoint).rstrip("/")

        async with httpx.AsyncClient(timeout=config.timeout_seconds) as client:
            response = await client.post(
                f"{base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {config.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": config.model,
                    "messages": [
                        {"role": m.role, "content": m.content} for m in messages
                    ],
                    "max_tokens": config.max_tokens,
                    "temperature": 0.2,
                    "response_format": {"type": "json_object"},
                },
            )
            if response.status_code >= 400:
                raise ProviderError(
                    f"LLM API error {response.status_code}: {response.text[:200]}"
                )
            data = _decode_body(response)

        content = ""
        choices = data.get("choices") if isinstance(data, dict) else None
        if isinstance(choices, list) and choices:
            first = choices[0] if isinstance(choices[0], dict) else {}
            msg = first.get("message")
            if isinstance(msg, dict) and isinstance(msg.get("content"), str):
                content = msg["content"]

        usage = None
        raw_usage = data.get("usage") if isinstance(data, dict) else None
        if isinstance(raw_usage, dict):
            usage = _token_usage(
                raw_usage.get("prompt_tokens"), raw_usage.get("completion_tokens")
            )
        return CompletionResult(content=content, usage=usage)


class OllamaProvider:
    name = "ollama"
    default_endpoint = "http://localhost:11434"

    async def complete(
        self, messages: List[LLMMessage], config: LLMProviderConfig
    ) -> CompletionResult:
        host = (config.endpoint or self.default_endpoint).rstrip("/")
        async with httpx.AsyncClient(timeout=config.timeout_seconds) as client:
            response = await client.post(
                f"{host}/api/chat",
                json={
                    "model": config.model,
                    "messages": [
                        {"role": m.role, "content": m.content} for m in messages
                    ],
                    "format": "json",
                    "stream": False,
                    "options": {"num_predict": config.max_tokens},
                },
            )
            if response.status_code >= 400:
                raise ProviderError(
                    f"Ollama error {response.status_code}: {response.text[:200]}"
                )
            result = _decode_body(response)

        message = result.get("message") if isinstance(result, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if content is not None and not isinstance(content, str):
            raise ProviderError("Ollama returned a non-string message content")
        usage = None
        if isinstance(result, dict) and "prompt_eval_count" in result:
            usage = _token_usage(result.get("prompt_eval_count"), result.get("eval_count"))
        return CompletionResult(content=content or "", usage=usage)


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(
            f"LLM response is not valid JSON: {response.text[:200]}"
        ) from exc


def _token_usage(prompt: Any, completion: Any) -> TokenUsage:
    try:
        return TokenUsage(
            prompt_tokens=int(prompt or 0), completion_tokens=int(completion or 0)
        )
    except (TypeError, ValueError) as exc:
        raise ProviderError(f"LLM returned malformed token usage: {exc}") from exc


def get_llm_provider(settings: PlannerSettings) -> LLMProvider:
    provider = (settings.provider or "auto").strip().lower()

    if provider == "ollama":
        return OllamaProvider()

    if provider in {"openai", "openai-compatible"}:
        return OpenAICompatibleProvider()

    if provider == "stub":
        return StubProvider('{"hypotheses": []}')

    if settings.api_key:
        return OpenAICompatibleProvider()

    return OllamaProvider()

# core/providers.py
"""Wire-format adapters for the supported LLM provider protocols.

Each adapter turns provider-neutral ``ChatMessage`` lists into one HTTP
request and turns the provider's JSON reply back into a
``NormalizedResponse``. Adding a provider protocol means adding one adapter
class and one entry in ``ADAPTER_REGISTRY``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import structlog

from config import ApiFormat, ProviderConfig
from core.errors import EmptyResponseError, MalformedResponseError
from core.usage import TokenUsage
from models.story_models import ChatMessage, NormalizedResponse

logger = structlog.get_logger(__name__)


@dataclass
class PreparedRequest:
    url: str
    json: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)


def _as_int(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


class ProviderAdapter(ABC):
    """Capability interface shared by all wire formats."""

    api_format: ApiFormat

    def __init__(self, name: str, config: ProviderConfig) -> None:
        self.name = name
        self.config = config

    @abstractmethod
    def build_request(self, messages: list[ChatMessage]) -> PreparedRequest:
        """Translate chat messages into the provider's request."""

    @abstractmethod
    def parse_response(self, data: Any) -> NormalizedResponse:
        """Translate the provider's decoded JSON body into a normalized response."""

    @abstractmethod
    def parse_usage(self, data: Any) -> TokenUsage:
        """Read the provider-reported token usage; absent counts are zero."""

    def _malformed(self, detail: str) -> MalformedResponseError:
        return MalformedResponseError(
            f"Malformed response from '{self.name}': {detail}", provider=self.name
        )


class ChatCompletionsAdapter(ProviderAdapter):
    """OpenAI-style ``/chat/completions`` protocol (OpenAI, DeepSeek, ...)."""

    api_format: ApiFormat = "chat_completions"

    def build_request(self, messages: list[ChatMessage]) -> PreparedRequest:
        payload = {
            "model": self.config.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }
        return PreparedRequest(
            url=f"{self.config.base_url}/chat/completions",
            json=payload,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
        )

    def parse_response(self, data: Any) -> NormalizedResponse:
        if not isinstance(data, dict):
            raise self._malformed("body is not a JSON object")
        choices = data.get("choices")
        if not choices:
            raise EmptyResponseError(
                f"Provider '{self.name}' returned no choices.", provider=self.name
            )
        try:
            content = choices[0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise self._malformed("missing choices[0].message.content") from exc
        if not isinstance(content, str):
            raise self._malformed("choices[0].message.content is not text")

        return NormalizedResponse(
            content=content,
            usage=self.parse_usage(data),
            model=data.get("model") or self.config.model,
            provider=self.name,
        )

    def parse_usage(self, data: Any) -> TokenUsage:
        usage_block = data.get("usage") if isinstance(data, dict) else None
        if not isinstance(usage_block, dict):
            return TokenUsage()
        return TokenUsage(
            prompt_tokens=_as_int(usage_block.get("prompt_tokens")),
            completion_tokens=_as_int(usage_block.get("completion_tokens")),
            total_tokens=_as_int(usage_block.get("total_tokens")),
        )


class GenerateContentAdapter(ProviderAdapter):
    """Gemini-style ``models/{model}:generateContent`` protocol.

    The protocol has no system role, so system text is folded into the
    first user turn (or becomes the first turn when there is none).
    """

    api_format: ApiFormat = "generate_content"

    @staticmethod
    def fold_system_messages(messages: list[ChatMessage]) -> list[str]:
        system_text = "\n\n".join(m.content for m in messages if m.role == "system")
        conversation = [m for m in messages if m.role != "system"]
        turns = [m.content for m in conversation]
        if not system_text:
            return turns
        for index, message in enumerate(conversation):
            if message.role == "user":
                turns[index] = f"{system_text}\n\n{message.content}"
                return turns
        return [system_text, *turns]

    def build_request(self, messages: list[ChatMessage]) -> PreparedRequest:
        payload = {
            "contents": [
                {"parts": [{"text": text}]}
                for text in self.fold_system_messages(messages)
            ],
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": self.config.max_tokens,
            },
        }
        headers = {"Content-Type": "application/json"}
        params: dict[str, str] = {}
        if self.config.api_key_location == "query":
            params["key"] = self.config.api_key
        else:
            headers["X-goog-api-key"] = self.config.api_key
        return PreparedRequest(
            url=f"{self.config.base_url}/models/{self.config.model}:generateContent",
            json=payload,
            headers=headers,
            params=params,
        )

    def parse_response(self, data: Any) -> NormalizedResponse:
        if not isinstance(data, dict):
            raise self._malformed("body is not a JSON object")
        candidates = data.get("candidates")
        if not candidates:
            raise EmptyResponseError(
                f"Provider '{self.name}' returned no candidates.", provider=self.name
            )
        candidate = candidates[0]
        if not isinstance(candidate, dict):
            raise self._malformed("candidates[0] is not an object")

        # Truncated or blocked candidates (MAX_TOKENS, SAFETY) come back without parts
        content = candidate.get("content") or {}
        parts = content.get("parts") if isinstance(content, dict) else None
        first_part = parts[0] if isinstance(parts, list) and parts else {}
        if not isinstance(first_part, dict):
            raise self._malformed("candidates[0].content.parts[0] is not an object")
        text = first_part.get("text", "")
        if not isinstance(text, str):
            raise self._malformed("candidates[0].content.parts[0].text is not text")
        if not text:
            logger.warning(
                f"Provider '{self.name}' returned a candidate without text "
                f"(finishReason: {candidate.get('finishReason', 'unknown')})."
            )

        return NormalizedResponse(
            content=text,
            usage=self.parse_usage(data),
            model=data.get("modelVersion") or self.config.model,
            provider=self.name,
        )

    def parse_usage(self, data: Any) -> TokenUsage:
        usage_block = data.get("usageMetadata") if isinstance(data, dict) else None
        if not isinstance(usage_block, dict):
            return TokenUsage()
        return TokenUsage(
            prompt_tokens=_as_int(usage_block.get("promptTokenCount")),
            completion_tokens=_as_int(usage_block.get("candidatesTokenCount")),
            total_tokens=_as_int(usage_block.get("totalTokenCount")),
        )


ADAPTER_REGISTRY: dict[str, type[ProviderAdapter]] = {
    "chat_completions": ChatCompletionsAdapter,
    "generate_content": GenerateContentAdapter,
}


def resolve_api_format(name: str, config: ProviderConfig) -> ApiFormat:
    if config.api_format:
        return config.api_format
    return "generate_content" if name.lower() == "gemini" else "chat_completions"


def build_adapter(name: str, config: ProviderConfig) -> ProviderAdapter:
    adapter_cls = ADAPTER_REGISTRY[resolve_api_format(name, config)]
    return adapter_cls(name, config)

# core/llm_interface.py
"""
Provider gateway: dispatches chat requests to the configured LLM providers.

Every call goes through the same steps: resolve the provider, check the
daily token budget, send one HTTP request over the shared client, map any
failure onto the workbench error taxonomy and report token usage to the
tracker. There are no retries here; callers decide whether to try again.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from config import ProviderConfig, settings
from core.errors import (
    ConfigurationError,
    InvalidCredentialError,
    MalformedResponseError,
    PermissionDeniedError,
    ProviderError,
    QuotaExceededError,
    TransportError,
    WorkbenchError,
)
from core.providers import ProviderAdapter, build_adapter
from core.transport import build_async_client
from core.usage import UsageStats, UsageTracker
from models.story_models import ChatMessage, NormalizedResponse

logger = structlog.get_logger(__name__)

_CREDENTIAL_MARKERS = {"API_KEY_INVALID", "UNAUTHENTICATED", "invalid_api_key"}
_PERMISSION_MARKERS = {"PERMISSION_DENIED"}
_QUOTA_MARKERS = {"RESOURCE_EXHAUSTED", "insufficient_quota", "rate_limit_exceeded"}

CONNECTION_TEST_PROMPT = "测试连接"


def _error_details(body_text: str) -> tuple[str | None, set[str]]:
    """Return the upstream error message and any status/reason markers."""
    try:
        body = json.loads(body_text)
    except ValueError:
        return (body_text.strip()[:300] or None), set()

    if isinstance(body, list) and body and isinstance(body[0], dict):
        body = body[0]
    if not isinstance(body, dict):
        return None, set()

    error = body.get("error", body)
    if isinstance(error, str):
        return error, set()
    if not isinstance(error, dict):
        return None, set()

    markers: set[str] = set()
    for key in ("status", "code", "type"):
        value = error.get(key)
        if isinstance(value, str):
            markers.add(value)
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and isinstance(detail.get("reason"), str):
            markers.add(detail["reason"])
    message = error.get("message")
    return (message if isinstance(message, str) else None), markers


def classify_status_error(provider: str, response: httpx.Response) -> ProviderError:
    """Map a non-2xx provider response onto a ``ProviderError`` subtype."""
    status = response.status_code
    upstream_message, markers = _error_details(response.text)
    detail = upstream_message or response.reason_phrase or "no details"

    error_cls: type[ProviderError] = ProviderError
    if status == 401 or markers & _CREDENTIAL_MARKERS:
        error_cls = InvalidCredentialError
    elif status == 403 or markers & _PERMISSION_MARKERS:
        error_cls = PermissionDeniedError
    elif status == 429 or markers & _QUOTA_MARKERS:
        error_cls = QuotaExceededError

    return error_cls(
        f"Provider '{provider}' returned HTTP {status}: {detail}",
        provider=provider,
        status_code=status,
        upstream_message=upstream_message,
    )


def classify_transport_error(provider: str, exc: httpx.TransportError) -> TransportError:
    if isinstance(exc, httpx.ProxyError):
        kind = "proxy"
    elif isinstance(exc, httpx.TimeoutException):
        kind = "timeout"
    elif isinstance(exc, httpx.ConnectError):
        kind = "connect"
    else:
        kind = "network"
    return TransportError(
        f"Could not reach provider '{provider}' ({kind}): {exc}", kind=kind
    )


class LLMGateway:
    """Single entry point for chat calls to any configured provider."""

    def __init__(
        self,
        providers: dict[str, ProviderConfig],
        tracker: UsageTracker,
        client: httpx.AsyncClient | None = None,
        default_provider: str = settings.DEFAULT_PROVIDER,
        max_concurrent_calls: int = settings.MAX_CONCURRENT_LLM_CALLS,
    ) -> None:
        self._providers = dict(providers)
        self._tracker = tracker
        self._owns_client = client is None
        # One client for the gateway's lifetime so connections and proxy tunnels are reused
        self._client = client or build_async_client(
            proxy_url=settings.HTTP_PROXY_URL,
            timeout=settings.HTTPX_TIMEOUT,
            max_connections=settings.MAX_HTTP_CONNECTIONS,
        )
        self._semaphore = asyncio.Semaphore(max_concurrent_calls)
        self._adapters: dict[str, ProviderAdapter] = {}
        self.default_provider = default_provider
        self.request_count = 0
        logger.info(
            f"LLMGateway initialized with providers {sorted(self._providers)} and a concurrency limit of {max_concurrent_calls}."
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this gateway created it."""
        if self._owns_client:
            await self._client.aclose()

    def _adapter_for(self, provider_name: str) -> ProviderAdapter:
        config = self._providers.get(provider_name)
        if config is None:
            raise ConfigurationError(f"Unknown LLM provider: '{provider_name}'.")
        if not config.api_key.strip():
            raise ConfigurationError(
                f"No API key configured for LLM provider '{provider_name}'."
            )
        adapter = self._adapters.get(provider_name)
        if adapter is None:
            adapter = build_adapter(provider_name, config)
            self._adapters[provider_name] = adapter
        return adapter

    def _log_llm_usage(self, response: NormalizedResponse) -> None:
        usage = response.usage
        logger.info(
            f"LLM ('{response.provider}/{response.model}') Usage - Prompt: {usage.prompt_tokens} tk, "
            f"Comp: {usage.completion_tokens} tk, Total: {usage.total_tokens} tk"
        )

    async def send_chat(
        self, provider_name: str, messages: Sequence[ChatMessage]
    ) -> NormalizedResponse:
        """Send ``messages`` to ``provider_name`` and return the normalized reply."""
        adapter = self._adapter_for(provider_name)
        self._tracker.check_budget(adapter.config.daily_limit)
        request = adapter.build_request(list(messages))

        logger.debug(
            f"Calling LLM '{provider_name}' ({adapter.api_format}, model '{adapter.config.model}') with {len(messages)} messages."
        )
        async with self._semaphore:
            self.request_count += 1
            try:
                response = await self._client.post(
                    request.url,
                    json=request.json,
                    headers=request.headers,
                    params=request.params,
                )
            except httpx.TransportError as exc:
                error = classify_transport_error(provider_name, exc)
                logger.error(f"LLM '{provider_name}' transport failure: {error}")
                raise error from exc

        if response.is_error:
            error = classify_status_error(provider_name, response)
            logger.error(
                f"LLM '{provider_name}' rejected request ({type(error).__name__}): {error}"
            )
            raise error

        try:
            data: Any = response.json()
        except ValueError as exc:
            logger.error(
                f"LLM '{provider_name}' returned a non-JSON body: {response.text[:200]}"
            )
            raise MalformedResponseError(
                f"Provider '{provider_name}' returned a non-JSON body.",
                provider=provider_name,
                status_code=response.status_code,
            ) from exc

        try:
            normalized = adapter.parse_response(data)
        except MalformedResponseError:
            billed = adapter.parse_usage(data).total_tokens
            if billed:
                self._tracker.record_usage(billed)
            raise
        self._tracker.record_usage(normalized.usage.total_tokens)
        self._log_llm_usage(normalized)
        return normalized

    async def chat(
        self, messages: Sequence[ChatMessage], provider: str | None = None
    ) -> NormalizedResponse:
        return await self.send_chat(provider or self.default_provider, messages)

    async def test_connection(self, provider: str | None = None) -> bool:
        """Send a short probe; unknown providers still raise ``ConfigurationError``."""
        provider_name = provider or self.default_provider
        if provider_name not in self._providers:
            raise ConfigurationError(f"Unknown LLM provider: '{provider_name}'.")
        try:
            await self.send_chat(
                provider_name,
                [ChatMessage(role="user", content=CONNECTION_TEST_PROMPT)],
            )
        except WorkbenchError as exc:
            logger.warning(f"LLM connection test failed for '{provider_name}': {exc}")
            return False
        return True

    def get_models(self, provider: str | None = None) -> list[str]:
        if provider:
            config = self._providers.get(provider)
            return [config.model] if config else []
        return [config.model for config in self._providers.values()]

    def get_usage_stats(self) -> UsageStats:
        return self._tracker.snapshot()

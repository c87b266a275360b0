# core/transport.py
"""Builds the single shared HTTP client used for every provider call."""

from __future__ import annotations

import httpx
import structlog

logger = structlog.get_logger(__name__)


def build_async_client(
    proxy_url: str | None = None,
    timeout: float = 60.0,
    max_connections: int = 10,
) -> httpx.AsyncClient:
    """Create one connection-pooling client, optionally tunnelled through a proxy.

    The returned client is meant to live as long as the gateway that owns it.
    """
    limits = httpx.Limits(
        max_connections=max_connections,
        max_keepalive_connections=max_connections,
    )
    if proxy_url:
        logger.info(f"Routing provider traffic through proxy {proxy_url}.")
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        limits=limits,
        proxy=proxy_url or None,
    )

# tests/conftest.py
import json
import os
import sys
from datetime import datetime, timezone

import pytest

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Placeholder credentials so every built-in provider is usable in tests
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("DEEPSEEK_API_KEY", "test-deepseek-key")
os.environ.setdefault("LOG_FILE", "")

import httpx  # noqa: E402

from config import ProviderConfig  # noqa: E402
from core.llm_interface import LLMGateway  # noqa: E402
from core.usage import UsageTracker  # noqa: E402
from models.document_models import DocumentSnapshot  # noqa: E402

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeDocumentStore:
    """In-memory document store keyed by logical id."""

    def __init__(self, documents: dict[str, str] | None = None) -> None:
        self.snapshots: dict[str, DocumentSnapshot] = {}
        self.puts: list[tuple[str, str]] = []
        self.get_calls = 0
        for logical_id, content in (documents or {}).items():
            self.set(logical_id, content)

    def set(
        self, logical_id: str, content: str, last_modified: datetime = FIXED_NOW
    ) -> None:
        self.snapshots[logical_id] = DocumentSnapshot(
            document_id=logical_id, content=content, last_modified=last_modified
        )

    async def get(self, logical_id: str) -> DocumentSnapshot | None:
        self.get_calls += 1
        return self.snapshots.get(logical_id)

    async def put(self, logical_id: str, content: str) -> None:
        self.puts.append((logical_id, content))
        self.set(logical_id, content)


def chat_completion_body(content: str, total_tokens: int = 10) -> dict:
    return {
        "model": "gpt-4",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {
            "prompt_tokens": total_tokens - 2,
            "completion_tokens": 2,
            "total_tokens": total_tokens,
        },
    }


def gemini_body(text: str, total_tokens: int = 4) -> dict:
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {
            "promptTokenCount": total_tokens - 1,
            "candidatesTokenCount": 1,
            "totalTokenCount": total_tokens,
        },
    }


class RecordingTransport:
    """Serves queued JSON bodies (or callables) and records every request."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request to {request.url}")
        response = self.responses.pop(0)
        if callable(response):
            return response(request)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def json_bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


def make_providers(**overrides: ProviderConfig) -> dict[str, ProviderConfig]:
    providers = {
        "openai": ProviderConfig(
            api_key="sk-openai",
            model="gpt-4",
            max_tokens=4000,
            temperature=0.7,
            base_url="https://api.openai.test/v1",
        ),
        "gemini": ProviderConfig(
            api_key="gm-key",
            model="gemini-2.0-flash",
            max_tokens=2048,
            temperature=0.5,
            base_url="https://gemini.test/v1beta",
        ),
    }
    providers.update(overrides)
    return providers


def make_gateway(
    transport: RecordingTransport,
    tracker: UsageTracker | None = None,
    providers: dict[str, ProviderConfig] | None = None,
    default_provider: str = "openai",
) -> LLMGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return LLMGateway(
        providers or make_providers(),
        tracker or UsageTracker(1_000_000, clock=lambda: FIXED_NOW),
        client=client,
        default_provider=default_provider,
    )


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def fake_store():
    return FakeDocumentStore()

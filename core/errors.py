# core/errors.py
"""Exception hierarchy shared by the gateway, extractor and generator."""

from __future__ import annotations


class WorkbenchError(Exception):
    """Base class for all workbench errors."""


class ConfigurationError(WorkbenchError):
    """Provider missing from configuration or configured without a credential."""


class TransportError(WorkbenchError):
    """The request never reached the provider (DNS, connect, proxy, timeout)."""

    def __init__(self, message: str, kind: str = "network") -> None:
        super().__init__(message)
        self.kind = kind


class ProviderError(WorkbenchError):
    """The provider answered but rejected or mangled the request."""

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        upstream_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.upstream_message = upstream_message


class InvalidCredentialError(ProviderError):
    pass


class PermissionDeniedError(ProviderError):
    pass


class QuotaExceededError(ProviderError):
    pass


class MalformedResponseError(ProviderError):
    """2xx response whose body does not carry the expected content."""


class EmptyResponseError(MalformedResponseError):
    """2xx response with no candidates/choices at all."""


class DailyLimitExceededError(WorkbenchError):
    def __init__(self, used: int, limit: int) -> None:
        super().__init__(
            f"Daily token limit reached: {used} of {limit} tokens used today."
        )
        self.used = used
        self.limit = limit


class ExtractionParseError(WorkbenchError):
    """Model output for a structured extraction could not be parsed."""

    def __init__(self, kind: str, raw_excerpt: str) -> None:
        super().__init__(f"Failed to parse {kind} extraction output.")
        self.kind = kind
        self.raw_excerpt = raw_excerpt


class OutlineParseError(WorkbenchError):
    def __init__(self, chapter_number: int, raw_excerpt: str = "") -> None:
        super().__init__(f"Failed to parse outline for chapter {chapter_number}.")
        self.chapter_number = chapter_number
        self.raw_excerpt = raw_excerpt

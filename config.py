# config.py
"""Configuration settings for the novel workbench.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import json
import os
from typing import Literal

import structlog
from dotenv import load_dotenv
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger(__name__)

ApiFormat = Literal["chat_completions", "generate_content"]


class ProviderConfig(BaseModel):
    """Credentials, endpoint and sampling parameters for one named LLM backend.

    Accepts both the snake_case field names and the camelCase keys used by
    ``llm-config.json`` (``apiKey``, ``maxTokens``, ``baseURL`` ...).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    api_key: str = Field("", alias="apiKey")
    model: str
    max_tokens: int = Field(4000, alias="maxTokens")
    temperature: float = 0.7
    base_url: str = Field(alias="baseURL")
    daily_limit: int | None = Field(None, alias="dailyLimit")
    # None means "decide from the provider name" (see core.providers)
    api_format: ApiFormat | None = Field(None, alias="apiFormat")
    api_key_location: Literal["header", "query"] = Field(
        "header", alias="apiKeyLocation"
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class RateLimitSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    daily_limit: int | None = Field(None, alias="dailyLimit")


class PromptSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    system_prompt: str | None = Field(None, alias="systemPrompt")
    chapter_prompt: str | None = Field(None, alias="chapterPrompt")
    quality_check_prompt: str | None = Field(None, alias="qualityCheckPrompt")


class LLMConfigFile(BaseModel):
    """Shape of the optional ``llm-config.json`` file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    default_provider: str | None = Field(None, alias="defaultProvider")
    rate_limits: RateLimitSettings = Field(
        default_factory=RateLimitSettings, alias="rateLimits"
    )
    prompts: PromptSettings = Field(default_factory=PromptSettings)


def load_llm_config_file(file_path: str) -> LLMConfigFile | None:
    """Load ``llm-config.json``; returns None (and logs) when unusable."""
    if not os.path.exists(file_path):
        logger.warning(
            "LLM configuration file not found. Using environment defaults.",
            file_path=file_path,
        )
        return None
    try:
        with open(file_path, encoding="utf-8") as f:
            data = json.load(f)
        return LLMConfigFile.model_validate(data)
    except json.JSONDecodeError:
        logger.error(
            "Error decoding JSON from LLM configuration file. Using environment defaults.",
            file_path=file_path,
            exc_info=True,
        )
    except ValidationError as e:
        logger.error(
            "LLM configuration file failed validation. Using environment defaults.",
            file_path=file_path,
            errors=e.errors(),
        )
    return None


class WorkbenchSettings(BaseSettings):
    """Full configuration for the workbench."""

    # Provider credentials and endpoints
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4"
    OPENAI_API_BASE: str = "https://api.openai.com/v1"
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    DEEPSEEK_API_KEY: str = ""
    DEEPSEEK_MODEL: str = "deepseek-chat"
    DEEPSEEK_API_BASE: str = "https://api.deepseek.com/v1"
    LLM_MAX_TOKENS: int = 4000
    LLM_TEMPERATURE: float = 0.7
    LLM_CONFIG_FILE: str | None = None

    # Provider routing
    DEFAULT_PROVIDER: str = "openai"
    EXTRACTION_PROVIDER: str = "gemini"

    # Rate limiting and transport
    DAILY_TOKEN_LIMIT: int = 1_000_000
    HTTP_PROXY_URL: str | None = None
    HTTPX_TIMEOUT: float = 60.0
    MAX_CONCURRENT_LLM_CALLS: int = 4
    MAX_HTTP_CONNECTIONS: int = 10

    # Document storage
    DOCUMENTS_DIR: str = "documents"
    BACKUPS_DIR: str = "backups"
    CHAPTERS_SUBDIR: str = "chapters"

    # Structured extraction
    EXTRACTION_MAX_DOCUMENT_CHARS: int = 3000
    EXTRACTION_CACHE_MAX_DOCUMENTS: int = 32
    RAW_RESPONSE_LOG_CHARS: int = 500

    # Outline and chapter generation
    FALLBACK_OUTLINE_MAX_CHARACTERS: int = 3
    FALLBACK_OUTLINE_MAX_EVENTS: int = 4
    DEFAULT_WORD_COUNT_TARGET: int = 2500
    SYSTEM_PROMPT: str = "你是一个专业的小说写作助手。"
    CHAPTER_PROMPT: str = "请根据以下大纲写作章节："
    QUALITY_CHECK_PROMPT: str = "请检查以下章节的质量："

    # Logging
    LOG_LEVEL_STR: str = Field("INFO", alias="WORKBENCH_LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = "logs/workbench.log"
    ENABLE_RICH_LOGGING: bool = True

    _file_providers: dict[str, ProviderConfig] = PrivateAttr(default_factory=dict)

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )

    @model_validator(mode="after")
    def apply_llm_config_file(self) -> WorkbenchSettings:
        if not self.LLM_CONFIG_FILE:
            return self
        file_config = load_llm_config_file(self.LLM_CONFIG_FILE)
        if file_config is None:
            return self
        self._file_providers = dict(file_config.providers)
        if file_config.default_provider:
            self.DEFAULT_PROVIDER = file_config.default_provider
        if file_config.rate_limits.daily_limit is not None:
            self.DAILY_TOKEN_LIMIT = file_config.rate_limits.daily_limit
        if file_config.prompts.system_prompt:
            self.SYSTEM_PROMPT = file_config.prompts.system_prompt
        if file_config.prompts.chapter_prompt:
            self.CHAPTER_PROMPT = file_config.prompts.chapter_prompt
        if file_config.prompts.quality_check_prompt:
            self.QUALITY_CHECK_PROMPT = file_config.prompts.quality_check_prompt
        return self

    def provider_configs(self) -> dict[str, ProviderConfig]:
        """Return all configured providers; entries from the JSON file win."""
        providers = {
            "openai": ProviderConfig(
                api_key=self.OPENAI_API_KEY,
                model=self.OPENAI_MODEL,
                max_tokens=self.LLM_MAX_TOKENS,
                temperature=self.LLM_TEMPERATURE,
                base_url=self.OPENAI_API_BASE,
            ),
            "gemini": ProviderConfig(
                api_key=self.GEMINI_API_KEY,
                model=self.GEMINI_MODEL,
                max_tokens=self.LLM_MAX_TOKENS,
                temperature=self.LLM_TEMPERATURE,
                base_url=self.GEMINI_API_BASE,
            ),
            "deepseek": ProviderConfig(
                api_key=self.DEEPSEEK_API_KEY,
                model=self.DEEPSEEK_MODEL,
                max_tokens=self.LLM_MAX_TOKENS,
                temperature=self.LLM_TEMPERATURE,
                base_url=self.DEEPSEEK_API_BASE,
            ),
        }
        providers.update(self._file_providers)
        return providers


settings = WorkbenchSettings()

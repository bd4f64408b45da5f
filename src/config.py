"""Centralized configuration management for auto_ops_guardrail."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class LLMConfig:
    """Configuration for the intent extraction LLM."""

    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    timeout: int = 30
    max_retries: int = 0
    max_tokens: Optional[int] = 1024
    api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> LLMConfig:
        """Load LLM configuration from environment variables."""
        return cls(
            model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.0")),
            timeout=int(os.getenv("LLM_TIMEOUT", "30")),
            max_retries=int(os.getenv("LLM_MAX_RETRIES", "0")),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS")) if os.getenv("LLM_MAX_TOKENS") else 1024,
            api_key=os.getenv("OPENAI_API_KEY") or None,
        )


@dataclass
class SecurityConfig:
    """Configuration for gating and decision thresholds."""

    confidence_threshold: float = 0.7
    enable_prompt_injection_detection: bool = True
    blacklist_duration_seconds: float = 24 * 60 * 60
    # False: an entry expires only once age > duration. True: age >= duration.
    blacklist_expiry_inclusive: bool = False
    # None keeps warnings forever.
    warning_ttl_seconds: Optional[float] = None
    expose_error_details: bool = True

    @classmethod
    def from_env(cls) -> SecurityConfig:
        """Load security configuration from environment variables."""
        return cls(
            confidence_threshold=float(os.getenv("CONFIDENCE_THRESHOLD", "0.7")),
            enable_prompt_injection_detection=_env_flag("ENABLE_PROMPT_INJECTION", "true"),
            blacklist_duration_seconds=float(os.getenv("BLACKLIST_DURATION_SECONDS", str(24 * 60 * 60))),
            blacklist_expiry_inclusive=_env_flag("BLACKLIST_EXPIRY_INCLUSIVE", "false"),
            warning_ttl_seconds=_env_optional_float("WARNING_TTL_SECONDS"),
            expose_error_details=_env_flag("EXPOSE_ERROR_DETAILS", "true"),
        )


@dataclass
class SpendingConfig:
    """Configuration for the rolling hardware budget window."""

    window_days: float = 90

    @classmethod
    def from_env(cls) -> SpendingConfig:
        return cls(window_days=float(os.getenv("SPENDING_WINDOW_DAYS", "90")))


@dataclass
class SessionConfig:
    """Configuration for conversational sessions."""

    ttl_seconds: float = 15 * 60

    @classmethod
    def from_env(cls) -> SessionConfig:
        return cls(ttl_seconds=float(os.getenv("SESSION_TTL_SECONDS", str(15 * 60))))


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    log_level: str = "INFO"
    log_path: Optional[Path] = None
    json_format: bool = True

    @classmethod
    def from_env(cls) -> LoggingConfig:
        """Load logging configuration from environment variables."""
        log_path = os.getenv("LOG_PATH")
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_path=Path(log_path) if log_path else None,
            json_format=_env_flag("LOG_JSON_FORMAT", "true"),
        )


@dataclass
class AppConfig:
    """Main application configuration."""

    llm: LLMConfig
    security: SecurityConfig
    spending: SpendingConfig
    session: SessionConfig
    logging: LoggingConfig

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load complete configuration from environment variables."""
        return cls(
            llm=LLMConfig.from_env(),
            security=SecurityConfig.from_env(),
            spending=SpendingConfig.from_env(),
            session=SessionConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def defaults(cls) -> AppConfig:
        return cls(
            llm=LLMConfig(),
            security=SecurityConfig(),
            spending=SpendingConfig(),
            session=SessionConfig(),
            logging=LoggingConfig(),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if not 0 <= self.llm.temperature <= 2:
            raise ValueError(f"Invalid LLM temperature: {self.llm.temperature}")

        if self.llm.max_retries < 0:
            raise ValueError(f"Invalid LLM max_retries: {self.llm.max_retries}")

        if not 0 <= self.security.confidence_threshold <= 1:
            raise ValueError(f"Invalid confidence_threshold: {self.security.confidence_threshold}")

        if self.security.blacklist_duration_seconds <= 0:
            raise ValueError(f"Invalid blacklist_duration_seconds: {self.security.blacklist_duration_seconds}")

        if self.security.warning_ttl_seconds is not None and self.security.warning_ttl_seconds <= 0:
            raise ValueError(f"Invalid warning_ttl_seconds: {self.security.warning_ttl_seconds}")

        if self.spending.window_days <= 0:
            raise ValueError(f"Invalid spending window_days: {self.spending.window_days}")

        if self.session.ttl_seconds <= 0:
            raise ValueError(f"Invalid session ttl_seconds: {self.session.ttl_seconds}")

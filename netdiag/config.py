"""Configuration management for the diagnostics service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class AnthropicConfig:
    """Anthropic Messages API configuration."""

    api_key: Optional[str] = None
    model: str = "claude-haiku-4-5-20251001"
    base_url: str = "https://api.anthropic.com"
    max_tokens: int = 1024
    timeout: float = 60.0
    max_concurrent: int = 10

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class AgentRuntimeConfig:
    """Limits applied to every agent run."""

    max_turns: int = 10
    transport_retries: int = 1
    retry_delay: float = 1.0
    probe_timeout: float = 5.0


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    runtime: AgentRuntimeConfig = field(default_factory=AgentRuntimeConfig)
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        anthropic = AnthropicConfig(
            api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            model=os.getenv("ANTHROPIC_MODEL", "claude-haiku-4-5-20251001"),
            base_url=os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com"),
            max_tokens=int(os.getenv("ANTHROPIC_MAX_TOKENS", "1024")),
            timeout=float(os.getenv("ANTHROPIC_TIMEOUT", "60")),
            max_concurrent=int(os.getenv("ANTHROPIC_MAX_CONCURRENT", "10")),
        )
        runtime = AgentRuntimeConfig(
            max_turns=int(os.getenv("AGENT_MAX_TURNS", "10")),
            transport_retries=int(os.getenv("AGENT_TRANSPORT_RETRIES", "1")),
            retry_delay=float(os.getenv("AGENT_RETRY_DELAY", "1")),
            probe_timeout=float(os.getenv("PROBE_TIMEOUT", "5")),
        )

        return cls(
            anthropic=anthropic,
            runtime=runtime,
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


# Global config instance
config = Config.from_env()

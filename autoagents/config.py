"""Configuration management for the agent host."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_HOME_DIRNAME = "AutoAgents"


@dataclass(frozen=True)
class AzureOpenAIConfig:
    """Azure OpenAI service configuration."""

    api_key: str
    endpoint: str
    api_version: str = "2024-02-15-preview"
    deployment_name: str = "gpt-4"
    max_concurrent: int = 50


@dataclass(frozen=True)
class OpenAIConfig:
    """OpenAI (or compatible) endpoint configuration."""

    api_key: str
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"
    max_concurrent: int = 50


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    home: Path
    openai: Optional[OpenAIConfig] = None
    azure_openai: Optional[AzureOpenAIConfig] = None
    default_backend: str = "agent"
    collect_timeout: float = 120.0
    shutdown_grace: float = 10.0
    log_level: str = "INFO"
    prompts_dir: Optional[Path] = None
    environment: str = "development"

    @property
    def recipes_dir(self) -> Path:
        return self.home / "agents"

    @property
    def logs_dir(self) -> Path:
        return self.home / "logs"

    @property
    def prompt_dirs(self) -> tuple[Path, ...]:
        dirs = [self.prompts_dir] if self.prompts_dir else []
        dirs.append(self.home / "prompts")
        return tuple(dirs)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        openai_config = None
        openai_key = os.getenv("OPENAI_API_KEY")
        if openai_key:
            openai_config = OpenAIConfig(
                api_key=openai_key,
                base_url=os.getenv("OPENAI_BASE_URL") or None,
                model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
                max_concurrent=int(os.getenv("OPENAI_MAX_CONCURRENT", "50")),
            )

        azure_config = None
        azure_key = os.getenv("AZURE_OPENAI_KEY")
        azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
        if azure_key and azure_endpoint:
            azure_config = AzureOpenAIConfig(
                api_key=azure_key,
                endpoint=azure_endpoint,
                api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-15-preview"),
                deployment_name=os.getenv("AZURE_OPENAI_DEPLOYMENT", "gpt-4"),
                max_concurrent=int(os.getenv("AZURE_OPENAI_MAX_CONCURRENT", "50")),
            )

        prompts_dir = os.getenv("AUTOAGENTS_PROMPTS_DIR", "").strip()

        return cls(
            home=resolve_home(),
            openai=openai_config,
            azure_openai=azure_config,
            default_backend=os.getenv("AUTOAGENTS_DEFAULT_BACKEND", "agent"),
            collect_timeout=float(os.getenv("AUTOAGENTS_COLLECT_TIMEOUT", "120")),
            shutdown_grace=float(os.getenv("AUTOAGENTS_SHUTDOWN_GRACE", "10")),
            log_level=os.getenv("AUTOAGENTS_LOG_LEVEL", "INFO").upper(),
            prompts_dir=Path(prompts_dir).expanduser() if prompts_dir else None,
            environment=os.getenv("ENVIRONMENT", "development"),
        )


def resolve_home() -> Path:
    """Home directory from ``AUTOAGENTS_HOME``, falling back to ``~/AutoAgents``."""
    value = os.getenv("AUTOAGENTS_HOME", "").strip()
    if value:
        return Path(value).expanduser()
    return Path.home() / DEFAULT_HOME_DIRNAME

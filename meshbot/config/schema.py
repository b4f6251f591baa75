"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BotConfig(Base):
    """Identity of the assistant."""
    name: str = "MESH"
    company: str = "Wfinance"
    role: str = "Analista Sênior de BPO Financeiro"
    greeting: str = "Oi! Em que posso ajudar?"


class ProviderConfig(Base):
    """LLM provider configuration."""
    api_key: str = ""
    api_base: str | None = None  # Azure endpoint or custom OpenAI-compatible base
    api_version: str | None = None
    model: str = "gpt-4o-mini"  # Deployment name for Azure
    extra_headers: dict[str, str] | None = None


def _azure_default() -> ProviderConfig:
    return ProviderConfig(api_version="2024-06-01")


class ProvidersConfig(Base):
    """Completion providers, tried in `order`."""
    azure: ProviderConfig = Field(default_factory=_azure_default)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    order: list[str] = Field(default_factory=lambda: ["azure", "openai"])

    def is_configured(self, name: str) -> bool:
        """Check whether a named provider has enough settings to be called."""
        p = getattr(self, name, None)
        if not isinstance(p, ProviderConfig) or not p.api_key:
            return False
        if name == "azure":
            return bool(p.api_base)
        return True


class LLMConfig(Base):
    """Sampling parameters shared by all providers."""
    max_tokens: int = 800
    temperature: float = 0.7
    timeout_seconds: float = 20.0


class MemoryConfig(Base):
    """Conversation memory and learning configuration."""
    backend: Literal["memory", "sqlite"] = "memory"
    db_path: str = "~/.meshbot/memory.db"
    max_history: int = 50
    max_input_chars: int = 1000
    max_output_chars: int = 2000
    profile_window: int = 20
    min_turns_for_style: int = 3
    top_topics: int = 5
    common_task_threshold: int = 3
    learning_threshold: int = 5
    retention_days: int = 7
    cleanup_interval_seconds: int = 86400

    @property
    def db_file(self) -> Path:
        """Expanded database path."""
        return Path(self.db_path).expanduser()


class ServerConfig(Base):
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 3978
    request_timeout_seconds: float = 25.0


class LoggingConfig(Base):
    """Logging sinks: console at `level`, file at `file_level`."""
    level: str = "INFO"
    file: str | None = None  # Defaults to ~/.meshbot/meshbot.log
    file_level: str = "DEBUG"
    rotation: str = "10 MB"
    retention: str = "1 week"
    console_format: str = (
        "<green>{time:HH:mm:ss}</green> <level>{level: <7}</level> "
        "<cyan>{name}</cyan> - <level>{message}</level>"
    )
    file_format: str = "{time:YYYY-MM-DD HH:mm:ss.SSS} {level: <7} {name}:{line} {message}"

    @property
    def log_file(self) -> Path:
        """Expanded log file path."""
        return Path(self.file or "~/.meshbot/meshbot.log").expanduser()


class Config(BaseSettings):
    """Root configuration for meshbot."""
    bot: BotConfig = Field(default_factory=BotConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="MESH_",
        env_nested_delimiter="__",
        populate_by_name=True,
    )

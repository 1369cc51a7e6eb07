"""Configuration management for pero."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.pero/config.yaml").expanduser()
DEFAULT_TOOLS_PATH = Path("~/.pero/tools.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "pero.yaml"


class ModelConfig(BaseModel):
    """Completion backend configuration."""

    gateway: str = "openrouter"
    model: str = "anthropic/claude-sonnet-4.5"
    temperature: float | None = None
    max_tokens: int | None = None
    reasoning_effort: Literal["low", "medium", "high"] | None = None
    api_key: str = ""
    base_url: str = ""
    timeout: float = 600.0


class ChatConfig(BaseModel):
    """Defaults for turning a document into the next document."""

    output_only: bool = False
    include_reasoning: bool = False
    include_tool: Literal["none", "call", "result"] = "none"
    tools_placement: Literal["top", "bottom"] = "top"
    max_tool_depth: int = 20
    max_per_result_chars: int = 22000
    max_total_chars: int = 60000


class ToolsConfig(BaseModel):
    """Tool configuration discovery and runtime limits."""

    paths: list[str] = Field(default_factory=list)
    default_tools: bool = True
    default_path: str = str(DEFAULT_TOOLS_PATH)
    # Applied to bash tools without an explicit timeout; None means unbounded.
    default_timeout_ms: int | None = 120000
    mcp_init_timeout: float = 30.0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"
    file: str = ""


class Config(BaseSettings):
    """Main configuration for pero."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="PERO_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats YAML (passed in as init kwargs).
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration; environment variables override YAML values."""
        return cls.from_yaml(path)

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config

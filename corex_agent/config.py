"""Configuration management for Corex."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.corex/config.yaml").expanduser()
DEFAULT_AUTONOMY_PATH = Path("~/.corex/autonomy.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "corex.yaml"

OUTPUT_MODE_TOKENS: dict[str, int] = {
    "brief": 2048,
    "normal": 8192,
    "detailed": 16384,
}


class ModelConfig(BaseModel):
    """Model backend configuration."""

    provider: str = "openai_compatible"
    model: str = "local-model"
    base_url: str = ""
    api_key: str = ""
    temperature: float = 0.7
    request_timeout: float = 300.0
    # Send tool schemas through the backend's native tool-calling channel.
    native_tools: bool = False


class ContextConfig(BaseModel):
    """Context window configuration."""

    max_context_tokens: int = 32768
    output_mode: Literal["brief", "normal", "detailed"] = "normal"
    history_ratio: float = 0.4
    summary_interval: int = 10
    summary_window: int = 10

    @property
    def max_output_tokens(self) -> int:
        return OUTPUT_MODE_TOKENS[self.output_mode]


class OrchestrationConfig(BaseModel):
    """Turn loop configuration."""

    max_iterations: int = 5
    model_timeout: float = 300.0
    # 0 waits indefinitely for an approval answer.
    approval_timeout: float = 120.0
    bound_warning: str = "\n\n⚠️ (Maximum tool call limit reached)"


class AutonomyStoreConfig(BaseModel):
    """Where the autonomy record is persisted."""

    store_path: str = str(DEFAULT_AUTONOMY_PATH)


class RetrievalConfig(BaseModel):
    """Retrieval augmentation configuration."""

    enabled: bool = True
    top_k: int = 4
    max_snippet_chars: int = 1500
    max_file_bytes: int = 200_000


class WorkspaceConfig(BaseModel):
    """Project root the tools and retrieval index work in."""

    path: str = "."


class TerminalToolConfig(BaseModel):
    """Terminal tool configuration."""

    timeout: int = 60
    blocked: list[str] = [
        "rm -rf /",
        "mkfs",
        ":(){:|:&};:",
    ]


class ToolsConfig(BaseModel):
    """Tools configuration."""

    enabled: list[str] = [
        "read_file",
        "write_file",
        "list_files",
        "glob_search",
        "grep_search",
        "run_terminal",
        "plan_task",
    ]
    terminal: TerminalToolConfig = Field(default_factory=TerminalToolConfig)
    max_read_chars: int = 100_000
    max_grep_matches: int = 100


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for Corex."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    autonomy: AutonomyStoreConfig = Field(default_factory=AutonomyStoreConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="COREX_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; environment and .env win over them.
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

        with open(config_path) as f:
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

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def resolved_workspace_path(self) -> Path:
        """Resolve workspace path, anchoring relative paths to the cwd."""
        raw = Path(self.workspace.path).expanduser()
        if raw.is_absolute():
            return raw.resolve()
        return (Path.cwd() / raw).resolve()


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

"""Centralized configuration: Pydantic BaseSettings with a TOML source.

Settings cover how the host talks to the container (shell, timeout, runtime
CLI) and logging. The per-run flags (bin path, prefix, container) are not
settings; they live in ``btb.types.Invocation``.

Environment variables override the TOML file using the ``BTB_`` prefix and
``__`` as the nested delimiter (e.g. ``BTB_SESSION__TIMEOUT_MS=60000``).

Priority (highest wins): init args > env vars > config.toml

Usage::

    from btb.config import get_settings

    s = get_settings()
    print(s.session.shell)
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)


def config_path() -> Path:
    """Location of config.toml, honouring XDG_CONFIG_HOME."""
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "btb" / "config.toml"


class _StrictModel(BaseModel):
    """Base for all config sub-models. Unknown keys are rejected."""

    model_config = {"extra": "forbid"}


class SessionConfig(_StrictModel):
    shell: str = "/bin/bash"  # interpreter started inside the container
    timeout_ms: int = 30000
    exit_command: str = "exit"
    chunk_size: int = 4096
    stop_grace_ms: int = 5000  # terminate -> kill

    @field_validator("timeout_ms", "chunk_size", "stop_grace_ms")
    @classmethod
    def clamp_positive(cls, v: int) -> int:
        return max(1, v)

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000

    @property
    def stop_grace(self) -> float:
        return self.stop_grace_ms / 1000


class RuntimeConfig(_StrictModel):
    cli: str = "toolbox"


class LoggingConfig(_StrictModel):
    level: str | None = None  # None keeps LOG_LEVEL from the environment

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str | None) -> str | None:
        return v.upper() if v else None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BTB_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    session: SessionConfig = SessionConfig()
    runtime: RuntimeConfig = RuntimeConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > config.toml."""
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=config_path()),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Load settings once per process."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

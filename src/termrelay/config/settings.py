"""Configuration management for termrelay.

Loads settings from a YAML configuration file with environment variable
overrides. Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/termrelay.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8090, ge=1, le=65535)
    route_prefix: str = Field(default="/api/terminal")


class TerminalConfig(BaseModel):
    shell: str | None = Field(
        default=None, description="Explicit shell path; falls back to $SHELL"
    )
    cwd: str = Field(
        default_factory=lambda: os.path.expanduser("~"),
        description="Working directory for new sessions",
    )
    default_cols: int = Field(default=80, ge=2, le=500)
    default_rows: int = Field(default=24, ge=2, le=200)
    buffer_max_chars: int = Field(default=200_000, gt=0)
    term: str = Field(default="xterm-256color")
    colorterm: str = Field(default="truecolor")
    lang: str = Field(default="en_US.UTF-8")


class JanitorConfig(BaseModel):
    interval: float = Field(default=120.0, gt=0, description="Seconds between sweeps")
    idle_timeout: float = Field(default=3600.0, gt=0)
    max_age: float = Field(default=4 * 3600.0, gt=0)


class StreamConfig(BaseModel):
    heartbeat_interval: float = Field(default=15.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the termrelay server.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "TERMRELAY_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    janitor: JanitorConfig = Field(default_factory=JanitorConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # YAML arrives as init kwargs and must rank below the environment.
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    return Settings(**yaml_data)

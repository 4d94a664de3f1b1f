"""Configuration: Pydantic Settings + YAML loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "default.yaml"


class TimeoutSettings(BaseSettings):
    connect: float = 15.0
    read: float = 60.0
    linger: int = 15  # seconds, SO_LINGER grace period


class TlsSettings(BaseSettings):
    verify: bool = True
    # Checks address servers by IP, so the certificate name rarely matches
    check_hostname: bool = False
    cafile: str = ""


class SmtpSettings(BaseSettings):
    ehlo_hostname: str = ""  # empty = local FQDN


class DatabaseSettings(BaseSettings):
    application_name: str = "noc-monitor"
    default_query: str = "select 1"


class Settings(BaseSettings):
    """Root settings: merges defaults, YAML config, and env vars."""

    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    tls: TlsSettings = Field(default_factory=TlsSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    log_level: str = "INFO"

    @classmethod
    def load(cls, config_path: Path | str | None = None) -> Settings:
        """Load settings from YAML file, falling back to defaults."""
        data: dict[str, Any] = {}

        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        path = Path(config_path)
        if path.exists():
            with open(path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
                if isinstance(raw, dict):
                    data = raw

        return cls(**data)

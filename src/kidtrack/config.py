"""kidtrack configuration management."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

_SAVED_KEYS = (
    "log_level",
    "wal_mode",
    "store_max_retries",
    "store_retry_delay",
    "page_size_default",
    "page_size_max",
    "export_format",
    "token_exp_minutes",
)


@dataclass
class Config:
    """kidtrack configuration."""

    data_path: Path = field(default_factory=lambda: Path.home() / ".kidtrack")
    log_level: str = "INFO"
    wal_mode: bool = True

    # Grant/revoke retry policy for transient store failures
    store_max_retries: int = 3
    store_retry_delay: float = 0.1

    page_size_default: int = 20
    page_size_max: int = 100
    export_format: str = "csv"
    token_exp_minutes: int = 60

    @classmethod
    def load(cls, data_path: Path | None = None) -> Config:
        """Load config from defaults, then env vars, then config.yaml."""
        config = cls()

        env_path = os.environ.get("KIDTRACK_HOME")
        if data_path:
            config.data_path = data_path
        elif env_path:
            config.data_path = Path(env_path)

        env_log = os.environ.get("KIDTRACK_LOG_LEVEL")
        if env_log:
            config.log_level = env_log

        config_file = config.config_file
        if config_file.exists():
            with open(config_file) as f:
                data = yaml.safe_load(f) or {}
            for key, value in data.items():
                if hasattr(config, key):
                    expected_type = type(getattr(config, key))
                    if expected_type is bool and isinstance(value, str):
                        setattr(config, key, value.lower() in ("1", "true", "yes"))
                    elif isinstance(getattr(config, key), Path):
                        setattr(config, key, Path(value))
                    else:
                        setattr(config, key, expected_type(value))

        return config

    @property
    def config_file(self) -> Path:
        return self.data_path / "config.yaml"

    @property
    def db_path(self) -> Path:
        return self.data_path / "kidtrack.db"

    def save(self) -> None:
        """Save current config to YAML."""
        self.data_path.mkdir(parents=True, exist_ok=True)
        data = {key: getattr(self, key) for key in _SAVED_KEYS}
        with open(self.config_file, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

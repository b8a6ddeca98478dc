"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from kidtrack.config import Config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KIDTRACK_HOME", raising=False)
    monkeypatch.delenv("KIDTRACK_LOG_LEVEL", raising=False)


class TestConfig:
    def test_defaults(self, tmp_path: Path) -> None:
        config = Config.load(tmp_path)
        assert config.data_path == tmp_path
        assert config.db_path == tmp_path / "kidtrack.db"
        assert config.log_level == "INFO"
        assert config.store_max_retries == 3
        assert config.page_size_max == 100

    def test_env_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KIDTRACK_HOME", str(tmp_path))
        monkeypatch.setenv("KIDTRACK_LOG_LEVEL", "DEBUG")

        config = Config.load()
        assert config.data_path == tmp_path
        assert config.log_level == "DEBUG"

    def test_explicit_path_beats_env(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("KIDTRACK_HOME", str(tmp_path / "env"))
        assert Config.load(tmp_path).data_path == tmp_path

    def test_yaml_file(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text(
            yaml.dump(
                {
                    "wal_mode": "false",
                    "store_max_retries": "5",
                    "store_retry_delay": 0.5,
                    "export_format": "json",
                    "unknown_key": 1,
                }
            )
        )
        config = Config.load(tmp_path)
        assert config.wal_mode is False
        assert config.store_max_retries == 5
        assert config.store_retry_delay == 0.5
        assert config.export_format == "json"

    def test_save_and_reload(self, tmp_path: Path) -> None:
        config = Config(data_path=tmp_path / "home", page_size_default=7, log_level="WARNING")
        config.save()

        assert config.config_file.exists()
        reloaded = Config.load(tmp_path / "home")
        assert reloaded.page_size_default == 7
        assert reloaded.log_level == "WARNING"

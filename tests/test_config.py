# tests/test_config.py
from pathlib import Path

import pytest
import structlog

from sequencer.config import Settings
from sequencer.core.errors import ConfigError, ErrorKind
from sequencer.flows import Deps


def test_relative_env_db_path_resolves_against_cwd(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = Settings.from_env(env={"SEQUENCER_DB_PATH": "data/index.db"})
    assert settings.db_path == (tmp_path / "data" / "index.db").resolve()


def test_deps_open_store_at_relative_env_path(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = Settings.from_env(env={"SEQUENCER_DB_PATH": "data/index.db"})
    deps = Deps.from_settings(settings, logger=structlog.get_logger())
    try:
        assert deps.store.db_path == (tmp_path / "data" / "index.db").resolve()
    finally:
        deps.store.close()
    assert (tmp_path / "data" / "index.db").exists()


def test_db_flag_wins_over_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = Settings.from_env(env={"SEQUENCER_DB_PATH": "env.db"}, db_path=Path("flag.db"))
    assert settings.db_path == (tmp_path / "flag.db").resolve()


def test_default_db_path_under_home(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    settings = Settings.from_env(env={})
    assert settings.db_path == (tmp_path / ".sequencer" / "sequencer.db").resolve()
    assert settings.wallet_path is None


@pytest.mark.parametrize("env", [
    {"SEQUENCER_TIMEOUT": "soon"},
    {"SEQUENCER_TIMEOUT": "0"},
    {"SEQUENCER_UPLOAD_ATTEMPTS": "-2"},
    {"SEQUENCER_LOG_LEVEL": "LOUD"},
    {"SEQUENCER_LOG_FORMAT": "xml"},
])
def test_invalid_settings(env):
    with pytest.raises(ConfigError) as exc:
        Settings.from_env(env=env, db_path=Path("x.db"))
    assert exc.value.kind is ErrorKind.INPUT


def test_step_timeouts_cover_retries_and_backoff(tmp_path: Path):
    settings = Settings.from_env(
        env={"SEQUENCER_TIMEOUT": "2", "SEQUENCER_UPLOAD_ATTEMPTS": "4"},
        db_path=tmp_path / "index.db",
    )
    deps = Deps.from_settings(settings, logger=structlog.get_logger())
    try:
        assert deps.upload_timeout == deps.uploader.budget()
        assert deps.upload_timeout > settings.timeout * settings.upload_attempts
        assert deps.timeout == deps.gateway.budget()
        assert deps.timeout > settings.timeout
    finally:
        deps.store.close()

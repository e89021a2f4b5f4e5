import pytest
from pydantic import ValidationError

from focusduel.config import get_config, get_db_config, reset_config, setup_directories


def test_defaults():
    config = get_config()

    assert config.poll_interval == 5.0
    assert config.activity_grace_ms == 100
    assert config.min_participants == 2
    assert get_db_config().challenges_collection == "challenges"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL", "0.5")
    monkeypatch.setenv("DB_CHALLENGES_COLLECTION", "duels")

    assert get_config().poll_interval == 0.5
    assert get_db_config().challenges_collection == "duels"


def test_accessors_cache_until_reset(monkeypatch):
    first = get_config()
    assert get_config() is first

    monkeypatch.setenv("ACTIVITY_GRACE_MS", "250")
    reset_config()

    assert get_config() is not first
    assert get_config().activity_grace_ms == 250


def test_env_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("MIN_PARTICIPANTS=3\n", encoding="utf-8")

    assert get_config().min_participants == 3


def test_invalid_values_rejected(monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL", "0")

    with pytest.raises(ValidationError):
        get_config()


def test_setup_directories(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_TO_FILE", "true")

    setup_directories()

    assert (tmp_path / ".focusduel").is_dir()
    assert (tmp_path / "logs").is_dir()

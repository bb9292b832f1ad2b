"""Tests for directory configuration."""

from pathlib import Path

from blips.config import load_config


def test_defaults_under_home():
    config = load_config(env={})
    assert config.assistant_dir == Path.home() / ".assistant"
    assert config.blips_dir == Path.home() / ".assistant" / "blips"
    assert config.captures_dir == Path.home() / ".assistant" / "captures"


def test_assistant_dir_from_env():
    config = load_config(env={"ASSISTANT_DIR": "/srv/assistant"})
    assert config.blips_dir == Path("/srv/assistant/blips")
    assert config.captures_dir == Path("/srv/assistant/captures")


def test_specific_env_overrides_base():
    config = load_config(env={"ASSISTANT_DIR": "/srv/assistant", "BLIPS_DIR": "/data/blips"})
    assert config.blips_dir == Path("/data/blips")
    assert config.captures_dir == Path("/srv/assistant/captures")


def test_arguments_win(tmp_path):
    config = load_config(
        blips_dir=tmp_path / "b",
        captures_dir=str(tmp_path / "c"),
        env={"BLIPS_DIR": "/ignored", "CAPTURES_DIR": "/ignored"},
    )
    assert config.blips_dir == tmp_path / "b"
    assert config.captures_dir == tmp_path / "c"


def test_blank_env_values_are_ignored():
    config = load_config(env={"BLIPS_DIR": "   "})
    assert config.blips_dir == Path.home() / ".assistant" / "blips"

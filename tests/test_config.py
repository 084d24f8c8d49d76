"""
Tests for configuration loading and saving
==========================================
"""

import logging
from pathlib import Path

import pytest

from flux.config import (
    FluxConfig,
    init_config,
    load_config,
    merge_environment,
    parse_config_text,
    save_config,
)
from flux.errors import ConfigError


def test_parse_handles_comments_quotes_and_export():
    text = """
# Flux Framework Configuration
LOG_LEVEL=0  # 0=debug
LOGFILE="/tmp/with # hash.log"
export USE_COLORS=false
DEFAULT_DNS_PRIMARY='9.9.9.9'
EMPTY=
"""
    values = parse_config_text(text)
    assert values == {
        "LOG_LEVEL": "0",
        "LOGFILE": "/tmp/with # hash.log",
        "USE_COLORS": "false",
        "DEFAULT_DNS_PRIMARY": "9.9.9.9",
        "EMPTY": "",
    }


@pytest.mark.parametrize(
    "line", ["not a setting", "lower_case=1", 'KEY="unterminated', "=value"]
)
def test_parse_rejects_malformed_lines(line):
    with pytest.raises(ConfigError):
        parse_config_text(f"LOG_LEVEL=1\n{line}\n")


def test_directories_come_from_environment(flux_home, tmp_path):
    config = FluxConfig()
    assert config.HOME_DIR == flux_home
    assert config.MODULES_DIR == flux_home / "modules"
    assert config.LEGACY_DIR == flux_home / "legacy"
    assert config.CONFIG_FILE == tmp_path / "config" / "flux.conf"


def test_load_creates_default_file(flux_home, tmp_path):
    config = load_config()
    path = tmp_path / "config" / "flux.conf"
    assert path.is_file()
    assert "MODULE_TIMEOUT=300" in path.read_text()
    assert config.MODULE_TIMEOUT == 300
    assert config.LOG_LEVEL == 1
    assert config.USE_COLORS is True


def test_default_file_round_trips_to_defaults(tmp_path):
    path = tmp_path / "flux.conf"
    assert init_config(path) is True
    assert init_config(path) is False
    loaded = load_config(path)
    defaults = FluxConfig()
    for key in ("LOG_LEVEL", "LOGFILE", "MODULE_TIMEOUT", "DEFAULT_SSH_PORT"):
        assert getattr(loaded, key) == getattr(defaults, key)


def test_load_applies_typed_values(config_file):
    config = load_config(config_file)
    assert config.LOG_LEVEL == 1
    assert config.USE_COLORS is False
    assert config.MODULE_TIMEOUT == 30
    assert config.log_level == logging.INFO


def test_invalid_value_keeps_default(tmp_path, caplog):
    path = tmp_path / "flux.conf"
    path.write_text("LOG_LEVEL=9\nDEFAULT_SSH_PORT=70000\nMODULE_TIMEOUT=12\n")
    with caplog.at_level(logging.WARNING, logger="flux"):
        config = load_config(path)
    assert config.LOG_LEVEL == 1
    assert config.DEFAULT_SSH_PORT == 22
    assert config.MODULE_TIMEOUT == 12
    assert "Invalid value for LOG_LEVEL" in caplog.text


def test_syntax_error_falls_back_to_defaults(tmp_path, caplog):
    path = tmp_path / "flux.conf"
    path.write_text("MODULE_TIMEOUT=5\nthis line is broken\n")
    with caplog.at_level(logging.WARNING, logger="flux"):
        config = load_config(path)
    assert config.MODULE_TIMEOUT == 300
    assert "syntax errors" in caplog.text


def test_unknown_keys_are_kept_for_modules(tmp_path):
    path = tmp_path / "flux.conf"
    path.write_text("CUSTOM_SETTING=hello\n")
    config = load_config(path)
    assert config.EXTRA == {"CUSTOM_SETTING": "hello"}
    assert config.to_environment()["CUSTOM_SETTING"] == "hello"


def test_save_replaces_existing_key(tmp_path):
    path = tmp_path / "flux.conf"
    path.write_text("# header\nMODULE_TIMEOUT=300\nLOG_LEVEL=1\n")
    save_config(path, "MODULE_TIMEOUT", "60")
    lines = path.read_text().splitlines()
    assert lines == ["# header", 'MODULE_TIMEOUT="60"', "LOG_LEVEL=1"]
    assert load_config(path).MODULE_TIMEOUT == 60


def test_save_appends_new_key_and_creates_file(tmp_path):
    path = tmp_path / "nested" / "flux.conf"
    save_config(path, "DEFAULT_SSH_PORT", "2222")
    assert path.read_text() == 'DEFAULT_SSH_PORT="2222"\n'


@pytest.mark.parametrize(
    "key, value",
    [
        ("bad-key", "1"),
        ("DEFAULT_SSH_PORT", "0"),
        ("USE_COLORS", "maybe"),
        ("MOTD_BANNER", 'say "hi"'),
        ("MOTD_BANNER", "line one\nline two"),
    ],
)
def test_save_rejects_invalid_input(tmp_path, key, value):
    path = tmp_path / "flux.conf"
    with pytest.raises(ConfigError):
        save_config(path, key, value)
    assert not path.exists()


def test_environment_for_modules(config):
    env = merge_environment(config, base={"PATH": "/usr/bin"})
    assert env["PATH"] == "/usr/bin"
    assert env["MODULE_TIMEOUT"] == "300"
    assert env["USE_COLORS"] == "true"
    assert env["DEFAULT_DNS_PRIMARY"] == "1.1.1.1"
    assert Path(env["FLUX_MODULES_DIR"]) == config.MODULES_DIR

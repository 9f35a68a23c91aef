# tests/test_config_manager.py
import argparse
import logging

import pytest
import pytomlpp
from dotenv import dotenv_values

from onepace_app import config_manager
from onepace_app.config_manager import ConfigManager, ConfigHelper, RootConfigModel
from onepace_app.cli import parse_arguments
from onepace_app.exceptions import ConfigError
from onepace_app.models import UpdateOptions

VALID_TOML = """
[default]
server_type = "plex"
server_url = "http://192.168.1.100:32400/"
show_id = "1234"
update_delay = 0.25
video_extensions = ["MKV", "mp4"]

[jellyfin]
server_type = "jellyfin"
server_url = "http://localhost:8096"
update_posters = true
"""


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PLEX_TOKEN", raising=False)
    monkeypatch.delenv("JELLYFIN_API_KEY", raising=False)
    monkeypatch.setattr(config_manager, "find_dotenv", lambda usecwd=True: "")

@pytest.fixture
def write_config(tmp_path):
    def _write(content: str):
        path = tmp_path / "config.toml"
        path.write_text(content, encoding="utf-8")
        return path
    return _write

def make_manager(path):
    return ConfigManager(config_path_override=path, interactive_fallback=False, quiet_mode=True)


def test_load_valid_config(write_config):
    manager = make_manager(write_config(VALID_TOML))
    assert manager.get_value('server_url') == "http://192.168.1.100:32400"
    assert manager.get_value('update_delay') == 0.25
    assert manager.get_value('video_extensions') == [".mkv", ".mp4"]
    # Unset keys fall back to the model defaults
    assert manager.get_value('season_delay') == 1.0
    assert manager.get_value('update_posters') is False

def test_profile_overrides_default(write_config):
    manager = make_manager(write_config(VALID_TOML))
    assert manager.get_value('server_type', profile='jellyfin') == "jellyfin"
    assert manager.get_value('update_posters', profile='jellyfin') is True
    # Keys missing from the profile come from [default]
    assert manager.get_value('show_id', profile='jellyfin') == "1234"
    settings = manager.get_profile_settings('jellyfin')
    assert settings['server_url'] == "http://localhost:8096"
    assert settings['update_delay'] == 0.25

def test_command_line_value_wins(write_config):
    manager = make_manager(write_config(VALID_TOML))
    assert manager.get_value('show_id', command_line_value="999") == "999"

@pytest.mark.parametrize("content, fragment", [
    ('[default]\nserver_type = "emby"\n', "server_type"),
    ('[default]\nserver_url = "plex.local"\n', "server_url"),
    ('[default]\nupdate_title = "yes"\n', "update_title"),
    ('[default]\nupdate_delay = -1\n', "update_delay"),
    ('[default]\nepisode_filename_format = "{season} {arc}"\n', "episode_filename_format"),
    ('[other]\nlog_level = "LOUD"\n', "log_level"),
])
def test_invalid_values_raise_config_error(write_config, content, fragment):
    with pytest.raises(ConfigError) as exc_info:
        make_manager(write_config(content))
    assert fragment in str(exc_info.value)

def test_malformed_toml_raises_config_error(write_config):
    with pytest.raises(ConfigError, match="Failed to parse TOML"):
        make_manager(write_config("[default\nserver_type = "))

def test_missing_file_uses_defaults(tmp_path, caplog):
    manager = make_manager(tmp_path / "absent.toml")
    assert manager.get_value('server_type') == "plex"
    assert manager.get_value('dry_run') is True
    assert "Using internal defaults" in caplog.text

def test_api_keys_from_environment(write_config, monkeypatch):
    monkeypatch.setenv("PLEX_TOKEN", "plex-secret")
    manager = make_manager(write_config(VALID_TOML))
    assert manager.get_api_key('plex') == "plex-secret"
    assert manager.get_api_key('jellyfin') is None


def test_config_helper_reads_args_first(write_config):
    manager = make_manager(write_config(VALID_TOML))
    args = argparse.Namespace(profile='jellyfin', show_id="777", video_extensions=".avi, .mkv", update_title=None)
    cfg = ConfigHelper(manager, args)
    assert cfg('show_id') == "777"
    assert cfg('server_type') == "jellyfin"
    assert cfg('update_title') is True
    assert cfg.get_list('video_extensions') == [".avi", ".mkv"]


def test_generated_default_config_is_valid():
    content = config_manager.generate_default_toml_content()
    parsed = pytomlpp.loads(content)
    model = RootConfigModel.model_validate(parsed)
    assert model.default.update_delay == 0.5
    assert model.default.season_mapping_gid == "2010244982"
    assert "# server_url = (not set)" in content


def test_interactive_api_setup_writes_dotenv(tmp_path, mocker):
    dotenv_path = tmp_path / ".env"
    mocker.patch("rich.console.Console.input", side_effect=["plex-token-value", ""])
    assert config_manager.interactive_api_setup(dotenv_path_override=dotenv_path) is True
    values = dotenv_values(dotenv_path)
    assert values["PLEX_TOKEN"] == "plex-token-value"
    assert "JELLYFIN_API_KEY" not in values

def test_interactive_api_setup_refuses_quiet_mode(tmp_path):
    assert config_manager.interactive_api_setup(dotenv_path_override=tmp_path / ".env", quiet_mode=True) is False

@pytest.mark.parametrize("argv, expected", [
    (['apply'], False),
    (['apply', '--dry-run'], True),
    (['apply', '--live'], False),
])
def test_dry_run_from_config_unless_flag_given(write_config, argv, expected):
    manager = make_manager(write_config('[default]\ndry_run = false\n'))
    cfg = ConfigHelper(manager, parse_arguments(argv))
    assert UpdateOptions.from_config(cfg).dry_run is expected

def test_dry_run_defaults_on_without_config(tmp_path):
    manager = make_manager(tmp_path / "missing.toml")
    cfg = ConfigHelper(manager, parse_arguments(['apply']))
    assert UpdateOptions.from_config(cfg).dry_run is True

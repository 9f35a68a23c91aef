# onepace_app/config_manager.py

import os
import sys
import logging
import argparse
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

import platformdirs
import pytomlpp
from dotenv import load_dotenv, find_dotenv, dotenv_values, set_key
from pydantic import BaseModel, Field, ValidationError, field_validator
from rich.console import Console
from rich.prompt import Confirm

from .exceptions import ConfigError

log = logging.getLogger(__name__)
APP_NAME = "onepace_app"
APP_AUTHOR = "onepace"
DEFAULT_CONFIG_FILENAME = "config.toml"
DEFAULT_DOTENV_FILENAME = ".env"

# Environment variable -> internal key name
ENV_SECRET_KEYS = {
    "PLEX_TOKEN": "plex_api_key",
    "JELLYFIN_API_KEY": "jellyfin_api_key",
}

DEFAULT_SHEET_BASE_URL = "https://docs.google.com/spreadsheets/d"
DEFAULT_ASSETS_URL = "https://github.com/SpykerNZ/one-pace-for-plex/archive/refs/heads/main.zip"


class BaseProfileSettings(BaseModel):
    # Server
    server_type: Optional[str] = Field(default='plex', description="Media server type: 'plex' or 'jellyfin'.")
    server_url: Optional[str] = Field(default=None, description="Base URL of the media server (e.g. http://192.168.1.100:32400).")
    show_id: Optional[str] = Field(default=None, description="Catalog id of the show to update (Plex ratingKey or Jellyfin item id).")
    jellyfin_user_id: Optional[str] = Field(default=None, description="Jellyfin user id (default: first user on the server).")

    # Update Options
    update_title: Optional[bool] = Field(default=True, description="Update episode titles.")
    update_season_title: Optional[bool] = Field(default=True, description="Update season titles.")
    update_description: Optional[bool] = Field(default=True, description="Update season and episode descriptions.")
    update_date: Optional[bool] = Field(default=True, description="Update episode air dates from release data.")
    update_posters: Optional[bool] = Field(default=False, description="Upload show and season posters from poster_directory.")
    dry_run: Optional[bool] = Field(default=True, description="Only log the changes that would be made.")

    # Pacing
    update_delay: Optional[float] = Field(default=0.5, ge=0.0, description="Delay (seconds) after each successful live update.")
    season_delay: Optional[float] = Field(default=1.0, ge=0.0, description="Delay (seconds) after each completed season.")

    # Transport
    http_timeout: Optional[float] = Field(default=30.0, gt=0.0, description="Timeout (seconds) for media server requests.")
    sheet_timeout: Optional[float] = Field(default=15.0, gt=0.0, description="Timeout (seconds) for dataset downloads.")
    api_retry_attempts: Optional[int] = Field(default=3, ge=0, description="Number of retry attempts for transient HTTP failures.")
    api_retry_wait_seconds: Optional[float] = Field(default=1.0, ge=0.0, description="Wait time (seconds) between retry attempts.")

    # Datasets
    sheet_base_url: Optional[str] = Field(default=DEFAULT_SHEET_BASE_URL, description="Base URL of the spreadsheet CSV export.")
    season_mapping_sheet_id: Optional[str] = Field(default="1M0Aa2p5x7NioaH9-u8FyHq6rH3t5s6Sccs8GoC6pHAM", description="Spreadsheet id of the season mapping.")
    season_mapping_gid: Optional[str] = Field(default="2010244982", description="Sheet gid of the season mapping.")
    episode_data_sheet_id: Optional[str] = Field(default="1M0Aa2p5x7NioaH9-u8FyHq6rH3t5s6Sccs8GoC6pHAM", description="Spreadsheet id of the episode data.")
    episode_data_gid: Optional[str] = Field(default="0", description="Sheet gid of the episode data.")
    release_data_sheet_id: Optional[str] = Field(default="1HQRMJgu_zArp-sLnvFMDzOyjdsht87eFLECxMK858lA", description="Spreadsheet id of the release data.")
    release_data_gid: Optional[str] = Field(default="0", description="Sheet gid of the release data.")

    # Artwork
    poster_directory: Optional[str] = Field(default=None, description="Directory holding poster.png and seasonNN-poster.png files.")
    assets_url: Optional[str] = Field(default=DEFAULT_ASSETS_URL, description="Download URL of the poster asset archive.")

    # Local Files
    video_extensions: Optional[List[str]] = Field(default_factory=lambda: [".mkv", ".mp4", ".avi", ".m4v", ".mov", ".wmv", ".flv", ".webm"], description="List of video file extensions.")
    episode_filename_format: Optional[str] = Field(default="One Pace - S{season:02d}E{episode:02d} - {title}", description="Filename format (without extension) for renamed episodes.")
    recursive: Optional[bool] = Field(default=True, description="Scan subdirectories when proposing renames.")

    # Logging Options
    log_file: Optional[str] = Field(default=None, description="Path to log file (e.g., onepace.log).")
    log_level: Optional[str] = Field(default='INFO', description="Logging level: DEBUG, INFO, WARNING, ERROR.")

    @field_validator('server_type', mode='before')
    @classmethod
    def check_server_type(cls, v: Any) -> Optional[str]:
        if v is not None and isinstance(v, str) and v.lower() not in ['plex', 'jellyfin']:
            raise ValueError("server_type must be 'plex' or 'jellyfin'")
        return v.lower() if isinstance(v, str) else 'plex'

    @field_validator('server_url', mode='before')
    @classmethod
    def check_server_url(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        if not isinstance(v, str) or not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("server_url must start with http:// or https://")
        return v.rstrip('/')

    @field_validator('log_level', mode='before')
    @classmethod
    def check_log_level(cls, v: Any) -> Optional[str]:
        if v is not None and isinstance(v, str) and v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
            raise ValueError("log_level must be one of DEBUG, INFO, WARNING, ERROR")
        return v.upper() if isinstance(v, str) else None

    @field_validator('update_title', 'update_season_title', 'update_description', 'update_date', 'update_posters', 'dry_run', mode='before')
    @classmethod
    def check_update_flags(cls, v: Any) -> Optional[bool]:
        if v is not None and not isinstance(v, bool):
            raise ValueError("update options must be booleans (true/false)")
        return v

    @field_validator('video_extensions', mode='before')
    @classmethod
    def check_video_extensions(cls, v: Any) -> Optional[List[str]]:
        if v is None:
            return v
        items = v.split(',') if isinstance(v, str) else v
        if not isinstance(items, list):
            raise ValueError("video_extensions must be a list or comma-separated string")
        cleaned = [str(i).strip().lower() for i in items if str(i).strip()]
        return [e if e.startswith('.') else f".{e}" for e in cleaned]

    @field_validator('episode_filename_format', mode='before')
    @classmethod
    def check_episode_filename_format(cls, v: Any) -> Optional[str]:
        if v is None:
            return v
        if not isinstance(v, str) or not v.strip():
            raise ValueError("episode_filename_format cannot be empty")
        try:
            v.format(season=1, episode=1, title="t")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"episode_filename_format may only use {{season}}, {{episode}} and {{title}}: {e}")
        return v


class DefaultSettings(BaseProfileSettings):
    pass

class RootConfigModel(BaseModel):
    default: DefaultSettings = Field(default_factory=DefaultSettings)
    model_config = {'extra': 'allow'}


def generate_default_toml_content() -> str:
    default_settings = DefaultSettings()
    content_lines = ["# One Pace Metadata Manager Default Configuration File"]
    content_lines.append("# Secrets (PLEX_TOKEN, JELLYFIN_API_KEY) belong in .env, see the 'setup' command.\n")

    sections: Dict[str, List[str]] = {
        "Server": ['server_type', 'server_url', 'show_id', 'jellyfin_user_id'],
        "Update Options": ['update_title', 'update_season_title', 'update_description', 'update_date', 'update_posters', 'dry_run'],
        "Pacing": ['update_delay', 'season_delay'],
        "Transport": ['http_timeout', 'sheet_timeout', 'api_retry_attempts', 'api_retry_wait_seconds'],
        "Datasets": ['sheet_base_url', 'season_mapping_sheet_id', 'season_mapping_gid', 'episode_data_sheet_id', 'episode_data_gid', 'release_data_sheet_id', 'release_data_gid'],
        "Artwork": ['poster_directory', 'assets_url'],
        "Local Files": ['video_extensions', 'episode_filename_format', 'recursive'],
        "Logging Options": ['log_file', 'log_level'],
    }

    content_lines.append("[default]")
    for section_name, keys in sections.items():
        content_lines.append(f"\n  # --- {section_name} ---")
        for key in keys:
            field_info = BaseProfileSettings.model_fields.get(key)
            if not field_info:
                continue
            default_value = getattr(default_settings, key)
            if field_info.description:
                content_lines.append(f"  # {field_info.description}")

            if isinstance(default_value, str):
                escaped = default_value.replace('\\', '\\\\').replace('"', '\\"')
                toml_value_str = f'"{escaped}"'
            elif isinstance(default_value, bool):
                toml_value_str = str(default_value).lower()
            elif isinstance(default_value, list):
                toml_value_str = "[" + ", ".join(f'"{item}"' for item in default_value) + "]"
            elif default_value is None:
                content_lines.append(f"  # {key} = (not set)")
                continue
            else:
                toml_value_str = str(default_value)
            content_lines.append(f"  {key} = {toml_value_str}")

    content_lines.append("\n# You can create other profiles, e.g.:")
    content_lines.append("# [jellyfin]")
    content_lines.append("# server_type = \"jellyfin\"")
    content_lines.append("# server_url = \"http://localhost:8096\"")

    return "\n".join(content_lines) + "\n"


def user_config_path() -> Path:
    return Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR, ensure_exists=False)) / DEFAULT_CONFIG_FILENAME


class ConfigManager:
    def __init__(self, config_path_override: Optional[Path] = None, interactive_fallback: bool = True, quiet_mode: bool = False):
        self.console = Console(quiet=quiet_mode)
        self.quiet_mode = quiet_mode

        self.config_path = self._resolve_config_path(config_path_override)
        self._raw_toml_content_str: Optional[str] = None
        self._config = self._load_config(interactive_fallback=interactive_fallback)
        self._api_keys = self._load_env_keys()
        log.debug(f"Config path used: {self.config_path}")

    def _resolve_config_path(self, config_path_override: Optional[Path]) -> Path:
        if config_path_override:
            p = Path(config_path_override)
            log.debug(f"Using explicit config path target: {p.resolve()}")
            return p.resolve()

        cwd_path = Path.cwd() / DEFAULT_CONFIG_FILENAME
        if cwd_path.is_file():
            log.debug(f"Found config file in current directory: {cwd_path}")
            return cwd_path.resolve()

        user_path: Optional[Path] = None
        try:
            user_path = user_config_path()
            if user_path.is_file():
                log.debug(f"Found config file in user config directory: {user_path}")
                return user_path.resolve()
        except OSError as e:
            log.warning(f"Could not access or check user config directory: {e}")

        proj_path = Path(__file__).parent.parent.resolve() / DEFAULT_CONFIG_FILENAME
        if proj_path.is_file():
            log.debug(f"Found config file in project directory: {proj_path}")
            return proj_path

        if user_path:
            log.debug(f"No config file found. Preferred default creation location: {user_path.resolve()}")
            return user_path.resolve()
        return cwd_path.resolve()

    def _create_default_config_interactively(self, target_path: Path) -> bool:
        if self.quiet_mode:
            log.info("Quiet mode: Skipping interactive creation of default config file.")
            return False

        self.console.print("[yellow]Configuration file not found at an expected location.[/yellow]")
        self.console.print(f"A default configuration file can be created at:\n  [cyan]{target_path}[/cyan]")
        try:
            if not Confirm.ask("Would you like to create a default configuration file now?", default=True):
                self.console.print("[yellow]Skipping default configuration file creation. Using internal defaults.[/yellow]")
                log.info("User opted out of creating a default configuration file.")
                return False
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Config creation cancelled by user.[/yellow]")
            log.warning("User cancelled config creation during interactive prompt.")
            return False

        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            target_path.write_text(generate_default_toml_content(), encoding="utf-8")
        except OSError as e_io:
            self.console.print(f"[bold red]Error creating configuration file: {e_io}[/bold red]")
            log.error(f"Failed to write default config to {target_path}: {e_io}")
            return False
        self.console.print(f"[green]✓ Default configuration file created at: {target_path}[/green]")
        log.info(f"Default configuration file created at {target_path}")
        return True

    def _defaults(self) -> Dict[str, Any]:
        return RootConfigModel().model_dump(exclude_unset=False, by_alias=False)

    def _load_config(self, interactive_fallback: bool = True) -> Dict[str, Any]:
        config_file_existed_initially = self.config_path.is_file()

        if not config_file_existed_initially and interactive_fallback:
            if not self._create_default_config_interactively(self.config_path):
                log.warning("Proceeding without a config file. Using internal defaults.")
                self._raw_toml_content_str = "# No configuration file present or created.\n"
                return self._defaults()

        if not self.config_path.is_file():
            log.warning(f"Config file not found at '{self.config_path}'. Using internal defaults.")
            self._raw_toml_content_str = "# Config file not found or empty.\n"
            return self._defaults()

        try:
            self._raw_toml_content_str = self.config_path.read_text(encoding='utf-8')
        except OSError as e_os:
            self._raw_toml_content_str = f"# Error reading config file: {e_os}\n"
            raise ConfigError(f"Failed to read config file '{self.config_path}': {e_os}")
        if not self._raw_toml_content_str.strip():
            log.warning(f"Config file '{self.config_path}' is empty. Using internal defaults.")
            return self._defaults()
        try:
            cfg_dict = pytomlpp.loads(self._raw_toml_content_str)
        except pytomlpp.DecodeError as e_toml:
            raise ConfigError(f"Failed to parse TOML config '{self.config_path}': {e_toml}")
        log.info(f"Loaded configuration from '{self.config_path}'")

        try:
            validated_config = RootConfigModel.model_validate(cfg_dict)
        except ValidationError as e_val:
            error_msgs = [f"  - Field `{' -> '.join(map(str, err['loc']))}`: {err['msg']}" for err in e_val.errors()]
            error_summary = f"Config file '{self.config_path}' validation failed:\n" + "\n".join(error_msgs)
            log.error(error_summary)
            raise ConfigError(error_summary) from e_val

        config = validated_config.model_dump(exclude_unset=False, by_alias=False)
        # Extra profile tables are kept raw by the root model; validate each one against the profile schema.
        for profile_name, profile_data in list(config.items()):
            if profile_name == 'default':
                continue
            if not isinstance(profile_data, dict):
                log.warning(f"Profile '{profile_name}' in config is not a table. Ignoring it.")
                config.pop(profile_name)
                continue
            try:
                config[profile_name] = BaseProfileSettings.model_validate(profile_data).model_dump(exclude_unset=True)
            except ValidationError as e_val:
                error_msgs = [f"  - Field `{profile_name} -> {' -> '.join(map(str, err['loc']))}`: {err['msg']}" for err in e_val.errors()]
                raise ConfigError(f"Config file '{self.config_path}' validation failed:\n" + "\n".join(error_msgs)) from e_val
        log.debug("Config validation successful.")
        return config

    def get_raw_toml_content(self) -> Optional[str]:
        return self._raw_toml_content_str

    def _load_env_keys(self) -> Dict[str, Optional[str]]:
        keys: Dict[str, Optional[str]] = {}
        env_path: Union[str, Path, None] = None
        try:
            env_path = find_dotenv(usecwd=True)
            if env_path:
                log.debug(f"Loading environment variables from: {env_path}")
                load_dotenv(dotenv_path=env_path)
        except OSError as e:
            log.warning(f"Error accessing or processing .env file: {e}")

        for env_name, key_name in ENV_SECRET_KEYS.items():
            keys[key_name] = os.getenv(env_name)

        if any(keys.values()):
            log_msg_source = ".env file" if env_path and Path(env_path).exists() else "environment variables"
            log.info(f"Loaded server credentials from {log_msg_source}.")
        else:
            log.debug("No server credentials (PLEX_TOKEN, JELLYFIN_API_KEY) found in .env or environment.")
        return keys

    def get_value(self, key: str, profile: str = 'default', command_line_value: Any = None, default_value: Any = None) -> Any:
        if command_line_value is not None:
            return command_line_value

        profile_settings_dict = self._config.get(profile, {})
        if profile != 'default' and isinstance(profile_settings_dict, dict) and profile_settings_dict.get(key) is not None:
            return profile_settings_dict[key]

        default_settings_dict = self._config.get('default', {})
        if isinstance(default_settings_dict, dict) and default_settings_dict.get(key) is not None:
            return default_settings_dict[key]

        if default_value is None and key in BaseProfileSettings.model_fields:
            field_info = BaseProfileSettings.model_fields[key]
            if field_info.default_factory is not None:
                return field_info.default_factory()
            return field_info.default
        return default_value

    def get_api_key(self, service_name: str) -> Optional[str]:
        return self._api_keys.get(f"{service_name.lower()}_api_key")

    def get_profile_settings(self, profile: str = 'default') -> Dict[str, Any]:
        final_settings = DefaultSettings().model_dump(exclude_unset=False, by_alias=False)
        for k, v in self._config.get('default', {}).items():
            if v is not None:
                final_settings[k] = v
        if profile != 'default':
            if profile in self._config:
                for k, v in self._config[profile].items():
                    if v is not None:
                        final_settings[k] = v
            else:
                log.debug(f"Profile '{profile}' not found in config. Using default settings.")
        return final_settings


class ConfigHelper:
    def __init__(self, config_manager: ConfigManager, args_ns: argparse.Namespace):
        self.manager = config_manager
        self.args = args_ns
        self.profile = getattr(args_ns, 'profile', 'default') or 'default'

    def __call__(self, key: str, default_value: Any = None, arg_value: Any = None) -> Any:
        cmd_line_val = arg_value if arg_value is not None else getattr(self.args, key, None)
        return self.manager.get_value(key, self.profile, cmd_line_val, default_value)

    def get_api_key(self, service_name: str) -> Optional[str]:
        return self.manager.get_api_key(service_name)

    def get_list(self, key: str, default_value: Optional[List[Any]] = None) -> List[Any]:
        cmd_line_val = getattr(self.args, key, None)
        cmd_line_list: Optional[List[str]] = None
        if isinstance(cmd_line_val, str):
            cmd_line_list = [item.strip() for item in cmd_line_val.split(',') if item.strip()]
        val = self.manager.get_value(key, self.profile, cmd_line_list, default_value)
        if isinstance(val, list):
            return val
        if isinstance(val, str):
            return [item.strip() for item in val.split(',') if item.strip()]
        return default_value if isinstance(default_value, list) else []


def interactive_api_setup(dotenv_path_override: Optional[Path] = None, quiet_mode: bool = False) -> bool:
    """Prompts for server credentials and stores them in a .env file."""
    console = Console(quiet=quiet_mode)
    if quiet_mode:
        print("ERROR: Interactive setup cannot run in quiet mode.", file=sys.stderr)
        return False

    resolved_dotenv_path = dotenv_path_override.resolve() if dotenv_path_override else Path.cwd() / DEFAULT_DOTENV_FILENAME
    log.info(f"Starting interactive credential setup. Target .env file: {resolved_dotenv_path}")

    console.print("--- Server Credential Setup ---")
    console.print(f"This will store media server credentials in '{resolved_dotenv_path}'.")
    console.print("Press Enter to keep the current value (if any) or skip if not set.")

    current_values: Dict[str, Optional[str]] = {}
    if resolved_dotenv_path.is_file():
        current_values = dotenv_values(resolved_dotenv_path)

    prompts = {
        "PLEX_TOKEN": "Enter your Plex token (X-Plex-Token)",
        "JELLYFIN_API_KEY": "Enter your Jellyfin API key",
    }
    updated_any = False
    try:
        for key, prompt in prompts.items():
            current = current_values.get(key) or ""
            prompt_text = f"{prompt}{' [current: set]' if current else ''}: "
            user_input = console.input(prompt_text).strip()
            if user_input:
                resolved_dotenv_path.parent.mkdir(parents=True, exist_ok=True)
                resolved_dotenv_path.touch(exist_ok=True)
                set_key(str(resolved_dotenv_path), key, user_input, quote_mode="never")
                log.info(f"Set {key} in {resolved_dotenv_path}")
                console.print(f"  ✓ {key} saved.")
                updated_any = True
            elif current:
                console.print(f"  - {key} kept.")
            else:
                console.print(f"  - {key} skipped (no value provided).")
    except KeyboardInterrupt:
        console.print("\nSetup cancelled by user.")
        log.warning("Credential setup cancelled by user during input.")
        return False
    except OSError as e_io:
        log.error(f"Could not write to .env file at '{resolved_dotenv_path}': {e_io}")
        console.print(f"\nError: Could not write to .env file at '{resolved_dotenv_path}'. Check permissions.")
        return False

    console.print(f"\nConfiguration saved to: {resolved_dotenv_path}" if updated_any else "\nNo changes made to .env file.")
    console.print("--- Setup Complete ---")
    return True

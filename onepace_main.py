#!/usr/bin/env python3
import sys
import json
import logging
import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

import pytomlpp
from pydantic import ValidationError
from rich.console import Console
from rich.prompt import Confirm
from rich.text import Text

from onepace_app.cli import parse_arguments
from onepace_app.config_manager import (
    ConfigManager, ConfigHelper, interactive_api_setup,
    RootConfigModel, BaseProfileSettings, generate_default_toml_content,
    DEFAULT_CONFIG_FILENAME,
)
from onepace_app.enums import RunState
from onepace_app.log_setup import setup_logging
from onepace_app.processor import OnePaceSession
from onepace_app.exceptions import OnePaceError, UserAbortError, ConfigError

log = logging.getLogger("onepace_app")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def print_stderr_message(message: str, is_quiet: bool) -> None:
    """Errors always reach stderr, styled unless quiet mode is on."""
    if is_quiet:
        print(Text.from_markup(message).plain, file=sys.stderr)
    else:
        Console(stderr=True).print(message)


def generate_config(args, console: Console, is_quiet: bool) -> int:
    if not log.handlers:
        setup_logging(log_level_console=logging.INFO)
    log.info("Executing 'config generate' command.")
    target_path = args.output.resolve() if args.output else (Path.cwd() / DEFAULT_CONFIG_FILENAME).resolve()

    if target_path.exists() and not args.force:
        if is_quiet:
            print(f"Config file {target_path} exists. Use --force to overwrite (quiet mode).", file=sys.stderr)
            return EXIT_ERROR
        console.print(f"[bold yellow]Warning:[/bold yellow] Config file already exists at [cyan]{target_path}[/cyan].")
        if not Confirm.ask("Overwrite existing file?", default=False):
            console.print("Config file generation cancelled.")
            return EXIT_OK
        log.info(f"User confirmed overwrite for existing config file at {target_path}")

    try:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        target_path.write_text(generate_default_toml_content(), encoding="utf-8")
    except OSError as e:
        print(f"Error: Could not write configuration file to {target_path}: {e}", file=sys.stderr)
        log.error(f"Failed to write generated config to {target_path}: {e}")
        return EXIT_ERROR
    console.print(f"[green]✓ Default configuration file generated successfully at: {target_path}[/green]")
    log.info(f"Default config.toml generated at {target_path}")
    return EXIT_OK


def show_config(args, config_manager: ConfigManager, cfg: ConfigHelper, console: Console) -> int:
    console.print(f"--- Configuration Effective for Profile: '{args.profile}' ---")
    config_file_loc = config_manager.config_path
    if config_file_loc.is_file():
        console.print(f"Config file loaded: [cyan]{config_file_loc}[/cyan]")
    else:
        console.print(f"Config file [yellow]{config_file_loc}[/yellow] not found. Using internal defaults and environment variables.")
    if getattr(args, 'raw', False):
        console.print("\n--- Raw TOML Content ---")
        console.print(config_manager.get_raw_toml_content() or "# No config file loaded or content was empty.", markup=False)
        return EXIT_OK
    effective_settings: Dict[str, Any] = {key: cfg(key) for key in BaseProfileSettings.model_fields}
    effective_settings["_credentials_"] = {
        "plex_token_loaded": bool(cfg.get_api_key('plex')),
        "jellyfin_api_key_loaded": bool(cfg.get_api_key('jellyfin')),
    }
    console.print(json.dumps(effective_settings, indent=2, default=str), markup=False)
    return EXIT_OK


def validate_config(config_manager: ConfigManager, console: Console, is_quiet: bool) -> int:
    console.print(f"--- Validating Configuration File: {config_manager.config_path} ---")
    if not config_manager.config_path.is_file():
        console.print(f"Config file '[yellow]{config_manager.config_path}[/yellow]' not found. Nothing to validate.")
        return EXIT_OK
    try:
        cfg_dict = pytomlpp.loads(config_manager.config_path.read_text(encoding='utf-8'))
        RootConfigModel.model_validate(cfg_dict)
    except pytomlpp.DecodeError as e_toml:
        print_stderr_message(f"[bold red]Error:[/bold red] Config file '{config_manager.config_path}' is not valid TOML: {e_toml}", is_quiet)
        log.error(f"Config file TOML validation failed during 'config validate': {e_toml}")
        return EXIT_CONFIG_ERROR
    except ValidationError as e_val:
        print_stderr_message(f"[bold red]Error:[/bold red] Config file '{config_manager.config_path}' validation failed:", is_quiet)
        for error_item in e_val.errors():
            loc = " -> ".join(map(str, error_item['loc']))
            print_stderr_message(f"  - Field `[yellow]{loc}[/yellow]`: {error_item['msg']} ([i]type: {error_item['type']}[/i])", is_quiet)
        log.error(f"Config file Pydantic validation failed during 'config validate': {e_val.errors()}")
        return EXIT_CONFIG_ERROR
    console.print("[green]Configuration file syntax is valid and conforms to the schema.[/green]")
    log.info(f"Config file '{config_manager.config_path}' validated successfully by 'config validate' command.")
    return EXIT_OK


async def main_async(argv=None) -> int:
    args = parse_arguments(argv)
    is_quiet = getattr(args, 'quiet', False)
    console = Console(quiet=is_quiet)
    session: Optional[OnePaceSession] = None

    try:
        if args.command == 'setup':
            if is_quiet:
                print("ERROR: Interactive setup cannot be run in quiet mode.", file=sys.stderr)
                return EXIT_ERROR
            setup_logging(log_level_console=getattr(logging, (args.log_level or 'INFO').upper(), logging.INFO))
            log.debug(f"Executing setup command with .env path: {args.dotenv_path}")
            return EXIT_OK if interactive_api_setup(dotenv_path_override=args.dotenv_path, quiet_mode=is_quiet) else EXIT_ERROR

        if args.command == 'config' and args.config_command == 'generate':
            return generate_config(args, console, is_quiet)

        config_manager = ConfigManager(
            config_path_override=getattr(args, 'config', None),
            interactive_fallback=not is_quiet,
            quiet_mode=is_quiet
        )
        cfg = ConfigHelper(config_manager, args)

        log_level_str = cfg('log_level', 'INFO', arg_value=getattr(args, 'log_level', None))
        setup_logging(
            log_level_console=getattr(logging, log_level_str.upper(), logging.INFO),
            log_file=cfg('log_file', None, arg_value=getattr(args, 'log_file', None)),
        )
        log.debug(f"Full logging configured. Parsed args: {args}")
        log.debug(f"Using profile: {args.profile}")

        if args.command == 'config':
            if args.config_command == 'show':
                return show_config(args, config_manager, cfg, console)
            return validate_config(config_manager, console, is_quiet)

        session = OnePaceSession(cfg, console=console, quiet=is_quiet)
        if args.command == 'apply':
            summary = await session.apply_edits()
            return EXIT_ERROR if summary.state == RunState.FAILED else EXIT_OK
        if args.command == 'search':
            await session.search(args.query)
        elif args.command == 'rename':
            await session.propose_renames(args.directory)
        elif args.command == 'assets':
            await session.download_assets(args.output, overwrite=args.force)
        return EXIT_OK

    except ConfigError as e_cfg:
        print(f"FATAL CONFIGURATION ERROR: {e_cfg}", file=sys.stderr)
        if log.handlers: log.critical(f"Config Error: {e_cfg}")
        return EXIT_CONFIG_ERROR
    except UserAbortError as e_abort:
        if log.handlers: log.warning(str(e_abort))
        print(f"\n{e_abort}", file=sys.stderr)
        return EXIT_INTERRUPTED
    except OnePaceError as e_app:
        if log.handlers: log.error(f"Application Error: {e_app}", exc_info=log.isEnabledFor(logging.DEBUG))
        print_stderr_message(f"[bold red]ERROR:[/bold red] {e_app}", is_quiet)
        return EXIT_ERROR
    except KeyboardInterrupt:
        if log.handlers: log.warning("Operation interrupted by user.")
        print("\nCancelled by user.", file=sys.stderr)
        return EXIT_INTERRUPTED
    finally:
        if session is not None:
            session.close()


def main() -> None:
    try:
        sys.exit(asyncio.run(main_async()))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user (main entry).", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)


if __name__ == "__main__":
    main()

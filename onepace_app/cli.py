import argparse
from pathlib import Path
from . import __version__


def _add_server_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--server-type", dest="server_type", choices=['plex', 'jellyfin'], default=None, help="Media server type (overrides config).")
    p.add_argument("--server-url", dest="server_url", type=str, default=None, help="Media server base URL (overrides config).")
    p.add_argument("--jellyfin-user-id", dest="jellyfin_user_id", type=str, default=None, help="Jellyfin user id (overrides config).")


def create_parser():
    parser = argparse.ArgumentParser(
        description=f"One Pace metadata manager for Plex and Jellyfin (v{__version__}).",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', type=Path, help='Path to TOML config file (overrides default search).')
    parser.add_argument('--profile', type=str, default='default', help='Configuration profile to use.')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default=None, help='Console logging level (overrides config).')
    parser.add_argument('--quiet', '-q', action='store_true', default=False, help='Suppress all non-essential console output (progress bars, summaries, info). Errors still shown.')

    subparsers = parser.add_subparsers(dest='command', required=True, help='Action to perform')

    # --- Apply Subparser ---
    parser_apply = subparsers.add_parser('apply', help='Apply curated titles, descriptions and air dates to a show.', formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser_apply.add_argument("--show-id", dest="show_id", type=str, default=None, help="Catalog id of the show (overrides config).")
    _add_server_args(parser_apply)
    run_mode = parser_apply.add_mutually_exclusive_group()
    run_mode.add_argument("--live", action="store_true", default=False, help="Apply changes to the server (overrides config dry_run).")
    run_mode.add_argument("--dry-run", dest="force_dry_run", action="store_true", default=False, help="Only log proposed changes (overrides config dry_run).")
    parser_apply.add_argument("--update-title", action=argparse.BooleanOptionalAction, default=None, help="Update episode titles (overrides config).")
    parser_apply.add_argument("--update-season-title", action=argparse.BooleanOptionalAction, default=None, help="Update season titles (overrides config).")
    parser_apply.add_argument("--update-description", action=argparse.BooleanOptionalAction, default=None, help="Update descriptions (overrides config).")
    parser_apply.add_argument("--update-date", action=argparse.BooleanOptionalAction, default=None, help="Update air dates (overrides config).")
    parser_apply.add_argument("--update-posters", action=argparse.BooleanOptionalAction, default=None, help="Upload show/season posters (overrides config).")
    parser_apply.add_argument("--update-delay", type=float, default=None, help="Delay (sec) after each live update (overrides config).")
    parser_apply.add_argument("--season-delay", type=float, default=None, help="Delay (sec) after each season (overrides config).")
    parser_apply.add_argument("--poster-dir", dest="poster_directory", type=str, default=None, help="Directory with poster images (overrides config).")
    parser_apply.add_argument("--log-file", type=str, default=None, help="Log file path (overrides config).")

    # --- Search Subparser ---
    parser_search = subparsers.add_parser('search', help='Search the media server for a show and print its id.')
    parser_search.add_argument("query", type=str, help="Show title to search for.")
    _add_server_args(parser_search)

    # --- Rename Subparser ---
    parser_rename = subparsers.add_parser('rename', help='Report canonical names for local One Pace files (no files are changed).', formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser_rename.add_argument("directory", type=Path, help="Directory to scan.")
    parser_rename.add_argument("-r", "--recursive", action=argparse.BooleanOptionalAction, default=None, help="Scan recursively (overrides config).")
    parser_rename.add_argument("--format", dest="episode_filename_format", type=str, default=None, help="Filename format without extension (overrides config).")
    parser_rename.add_argument("--extensions", dest="video_extensions", type=str, default=None, help="Comma-separated video extensions (overrides config).")
    parser_rename.add_argument("--log-file", type=str, default=None, help="Log file path (overrides config).")

    # --- Assets Subparser ---
    parser_assets = subparsers.add_parser('assets', help='Download the community poster archive.')
    parser_assets.add_argument("--output", type=Path, default=None, help="Target directory (default: poster_directory from config, else ./posters).")
    parser_assets.add_argument("--force", "-f", action="store_true", help="Overwrite existing image files.")

    # --- Config Subparser ---
    parser_config = subparsers.add_parser('config', help='Manage application configuration.')
    config_subparsers = parser_config.add_subparsers(dest='config_command', required=True, help='Configuration action to perform')

    parser_config_show = config_subparsers.add_parser('show', help='Show the currently loaded configuration.')
    parser_config_show.add_argument('--raw', action="store_true", help="Show the raw TOML content of the loaded config file without merging or validation.")

    config_subparsers.add_parser('validate', help='Validate the configuration file against the schema.')

    parser_config_generate = config_subparsers.add_parser('generate', help='Generate a default config.toml file.')
    parser_config_generate.add_argument('--output', type=Path, default=None, help='Optional path to save the generated config.toml (default: config.toml in CWD).')
    parser_config_generate.add_argument('--force', '-f', action='store_true', help='Overwrite the config file if it already exists at the target location.')

    # --- Setup Subparser ---
    parser_setup = subparsers.add_parser('setup', help='Interactively store the Plex token / Jellyfin API key.')
    parser_setup.add_argument("--dotenv-path", type=Path, default=None, help="Specify a custom path for the .env file (default: .env in CWD).")

    return parser

def parse_arguments(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, 'profile') or args.profile is None:
        args.profile = 'default'

    # Neither flag given: the config decides (dry run by default)
    if getattr(args, 'command', None) == 'apply':
        args.dry_run = False if args.live else (True if args.force_dry_run else None)
    return args

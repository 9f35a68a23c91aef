# onepace_app/processor.py
import asyncio
import logging
import signal
from pathlib import Path
from typing import List, Optional, Union

from rich.console import Console
from rich.progress import Progress, TextColumn, BarColumn, MofNCompleteColumn, TimeElapsedColumn
from rich.prompt import Confirm
from rich.table import Table

from .assets import download_assets
from .catalog import CatalogAdapter
from .config_manager import ConfigHelper
from .enums import ProcessingStatus, RunState
from .exceptions import ConfigError, UserAbortError
from .filename_matcher import FilenameMatcher, DEFAULT_FILENAME_FORMAT
from .jellyfin_client import JellyfinAdapter
from .log_setup import LOGGER_NAME, RunLogHandler
from .lookups import LookupTables
from .models import RenameProposal, RunSummary, ShowSearchResult, UpdateOptions
from .plex_client import PlexAdapter
from .reconciler import ReconciliationEngine
from .sheets_client import SheetsClient

log = logging.getLogger(__name__)

DEFAULT_PROGRESS_COLUMNS = (
    TextColumn("[progress.description]{task.description}"),
    BarColumn(),
    MofNCompleteColumn(),
    TimeElapsedColumn(),
    TextColumn("[cyan]{task.fields[item_name]}"),
)

RENAME_STATUS_STYLES = {
    ProcessingStatus.RENAME_PROPOSED: "green",
    ProcessingStatus.PATH_ALREADY_CORRECT: "dim",
    ProcessingStatus.NO_PATTERN_MATCH: "yellow",
    ProcessingStatus.UNRESOLVABLE_ARC: "yellow",
    ProcessingStatus.MISSING_LOOKUP_ENTRY: "yellow",
}


def create_adapter(cfg_helper: ConfigHelper) -> CatalogAdapter:
    server_type = (cfg_helper('server_type', 'plex') or 'plex').lower()
    common = dict(
        timeout=float(cfg_helper('http_timeout', 30.0)),
        retry_attempts=int(cfg_helper('api_retry_attempts', 3)),
        retry_wait_seconds=float(cfg_helper('api_retry_wait_seconds', 1.0)),
    )
    if server_type == 'plex':
        return PlexAdapter(cfg_helper('server_url'), cfg_helper.get_api_key('plex'), **common)
    if server_type == 'jellyfin':
        return JellyfinAdapter(cfg_helper('server_url'), cfg_helper.get_api_key('jellyfin'),
                               user_id=cfg_helper('jellyfin_user_id'), **common)
    raise ConfigError(f"Unsupported server_type '{server_type}'. Use 'plex' or 'jellyfin'.")


class OnePaceSession:
    """
    Application context for one CLI session.

    Owns the dataset client, the catalog adapter, the lookup tables (loaded at most once),
    the reconciliation engine and the filename matcher. Every user-facing action is a
    method call on this object.
    """

    def __init__(self, cfg_helper: ConfigHelper, console: Optional[Console] = None, quiet: bool = False,
                 adapter: Optional[CatalogAdapter] = None, sheets_client: Optional[SheetsClient] = None):
        self.cfg = cfg_helper
        self.quiet = quiet
        self.console = console or Console(quiet=quiet)
        self.sheets_client = sheets_client or SheetsClient.from_config(cfg_helper)
        self._adapter = adapter
        self._engine: Optional[ReconciliationEngine] = None
        self.lookups: Optional[LookupTables] = None
        # Lines of the most recent apply run, for a display layer to read
        self.run_log = RunLogHandler()

    @property
    def adapter(self) -> CatalogAdapter:
        if self._adapter is None:
            self._adapter = create_adapter(self.cfg)
        return self._adapter

    @property
    def engine(self) -> ReconciliationEngine:
        if self._engine is None:
            self._engine = ReconciliationEngine(
                self.adapter,
                self,
                update_delay=float(self.cfg('update_delay', 0.5)),
                season_delay=float(self.cfg('season_delay', 1.0)),
                poster_directory=self.cfg('poster_directory'),
            )
        return self._engine

    async def load_lookups(self) -> LookupTables:
        if self.lookups is None:
            self.lookups = await self.sheets_client.load_lookups()
        return self.lookups

    def cancel(self) -> None:
        if self._engine is not None:
            self._engine.cancel()

    def _confirm_live_run(self, show_id: str) -> bool:
        if self.quiet:
            log.info("Quiet mode: Live run confirmation automatically affirmative.")
            return True
        self.console.print("-" * 30)
        self.console.print(f"[bold red]THIS IS A LIVE RUN.[/bold red] Metadata of show '{show_id}' on {self.adapter.server_name} will be changed.")
        self.console.print("There is no undo. Run without --live first to review the proposed changes.")
        self.console.print("-" * 30)
        try:
            if Confirm.ask("Proceed with updates?", default=False):
                log.info("User confirmed live run.")
                return True
        except (EOFError, KeyboardInterrupt) as e:
            log.warning(f"Live run confirmation aborted by user ({type(e).__name__}).")
            return False
        log.info("User aborted live run.")
        return False

    def _install_cancel_handler(self) -> bool:
        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGINT, self.cancel)
            return True
        except (NotImplementedError, RuntimeError):
            log.debug("SIGINT handler not supported here; Ctrl+C will interrupt instead of cancelling cleanly.")
            return False

    def _remove_cancel_handler(self) -> None:
        try:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    async def apply_edits(self, show_id: Optional[str] = None, options: Optional[UpdateOptions] = None) -> RunSummary:
        show_id = show_id or self.cfg('show_id')
        if not show_id:
            raise ConfigError("No show id given. Use --show-id or set show_id in the config (see the 'search' command).")
        options = options or UpdateOptions.from_config(self.cfg)
        if not options.dry_run and not self._confirm_live_run(str(show_id)):
            raise UserAbortError("Live run cancelled by user.")

        engine = self.engine
        app_log = logging.getLogger(LOGGER_NAME)
        self.run_log.clear()
        app_log.addHandler(self.run_log)
        handler_installed = self._install_cancel_handler()
        try:
            with Progress(*DEFAULT_PROGRESS_COLUMNS, console=self.console, disable=self.quiet) as progress:
                task = progress.add_task("Dry run" if options.dry_run else "Updating", total=None, item_name="")
                engine.on_progress = lambda done, total, label: progress.update(task, completed=done, total=total, item_name=label)
                summary = await engine.run(str(show_id), options)
        finally:
            engine.on_progress = None
            app_log.removeHandler(self.run_log)
            if handler_installed:
                self._remove_cancel_handler()
        self.display_summary(summary)
        return summary

    def display_summary(self, summary: RunSummary) -> None:
        if self.quiet:
            return
        state_style = {RunState.COMPLETED: "green", RunState.CANCELLED: "yellow", RunState.FAILED: "bold red"}.get(summary.state, "white")
        table = Table(title=f"Run Summary ({'DRY RUN' if summary.dry_run else 'LIVE'})", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("State", f"[{state_style}]{summary.state.value}[/{state_style}]")
        table.add_row("Seasons processed", str(summary.seasons_processed))
        table.add_row("Episodes processed", str(summary.episodes_processed))
        if summary.dry_run:
            table.add_row("Updates proposed", str(summary.proposed))
        else:
            table.add_row("Updates applied", str(summary.updated))
        table.add_row("Unchanged", str(summary.unchanged))
        table.add_row("Skipped", str(summary.skipped))
        table.add_row("Failed", str(summary.failed))
        table.add_row("Posters uploaded", str(summary.posters_uploaded))
        self.console.print(table)
        if summary.error:
            self.console.print(f"[bold red]Error:[/bold red] {summary.error}")

    async def search(self, query: str) -> List[ShowSearchResult]:
        server = await self.adapter.test_connection()
        log.info(f"Connected to {server}.")
        results = await self.adapter.search_shows(query)
        if not results:
            self.console.print(f"No shows found for '{query}'.")
            return results
        table = Table(title=f"Shows matching '{query}'", show_header=True, header_style="bold magenta")
        table.add_column("Show ID", style="cyan")
        table.add_column("Title")
        table.add_column("Year", justify="right")
        for result in results:
            table.add_row(result.id, result.title, str(result.year or ""))
        self.console.print(table)
        return results

    async def propose_renames(self, directory: Union[str, Path]) -> List[RenameProposal]:
        lookups = await self.load_lookups()
        matcher = FilenameMatcher(lookups, self.cfg('episode_filename_format', DEFAULT_FILENAME_FORMAT))
        proposals = matcher.scan_directory(
            Path(directory),
            self.cfg.get_list('video_extensions'),
            recursive=bool(self.cfg('recursive', True)),
        )
        if proposals and not self.quiet:
            table = Table(title="Proposed Renames (no files changed)", show_header=True, header_style="bold magenta")
            table.add_column("Status")
            table.add_column("Original")
            table.add_column("Proposed")
            for p in proposals:
                style = RENAME_STATUS_STYLES.get(p.status, "white")
                table.add_row(f"[{style}]{p.status}[/{style}]", p.original_path.name, p.new_name or (p.message or ""))
            self.console.print(table)
        elif not proposals:
            self.console.print("No video files found.")
        return proposals

    async def download_assets(self, output_dir: Optional[Path] = None, overwrite: bool = False) -> List[Path]:
        target = Path(output_dir or self.cfg('poster_directory') or "posters")
        loop = asyncio.get_running_loop()
        written = await loop.run_in_executor(None, lambda: download_assets(target, self.cfg('assets_url'), overwrite=overwrite))
        self.console.print(f"[green]✓ {len(written)} poster images saved to {target.resolve()}[/green]")
        return written

    def close(self) -> None:
        if self._adapter is not None:
            self._adapter.close()
        self.sheets_client.close()

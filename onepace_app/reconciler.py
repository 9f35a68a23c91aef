# onepace_app/reconciler.py
import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from .catalog import CatalogAdapter, FIELD_TITLE, FIELD_SUMMARY, FIELD_AIR_DATE
from .enums import ProcessingStatus, RunState
from .exceptions import CatalogFetchFailed, DatasetFetchError, UpdateFailed, ArtworkUploadFailed
from .log_setup import SUCCESS
from .lookups import LookupTables, compose_description, normalize_date
from .models import CatalogSeason, CatalogEpisode, CatalogShow, ItemUpdate, RunSummary, UpdateOptions

log = logging.getLogger(__name__)

SHOW_POSTER_FILENAME = "poster.png"

# (episodes done, episodes total, current item label)
ProgressCallback = Callable[[int, int, str], None]


def season_poster_filename(season_number: int) -> str:
    return f"season{season_number:02d}-poster.png"

def episode_label(season_number: Optional[int], episode_number: Optional[int]) -> str:
    s = f"{season_number:02d}" if season_number is not None else "??"
    e = f"{episode_number:02d}" if episode_number is not None else "??"
    return f"S{s}E{e}"


class ReconciliationEngine:
    """
    Walks a show's season/episode tree, diffs each item against the curated lookups
    and applies (or, in a dry run, only logs) the changes one item at a time.

    Lookups are loaded on the first run and reused by later runs of the same engine.
    The catalog tree is fetched fresh on every run. Cancellation is cooperative:
    the flag is checked before each season and before each episode, never mid-update.
    """

    def __init__(self, adapter: CatalogAdapter, lookup_source, update_delay: float = 0.5, season_delay: float = 1.0,
                 poster_directory: Optional[Union[str, Path]] = None, on_progress: Optional[ProgressCallback] = None):
        self.adapter = adapter
        self.lookup_source = lookup_source # anything with an async load_lookups() -> LookupTables
        self.update_delay = max(0.0, float(update_delay))
        self.season_delay = max(0.0, float(season_delay))
        self.poster_directory = Path(poster_directory) if poster_directory else None
        self.on_progress = on_progress
        self.lookups: Optional[LookupTables] = None
        self.state = RunState.IDLE
        self._cancel_requested = False
        self._episodes_total = 0
        self._episodes_done = 0

    def cancel(self) -> None:
        if not self._cancel_requested:
            log.warning("Cancellation requested. The run will stop at the next season/episode boundary.")
        self._cancel_requested = True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    async def ensure_lookups(self) -> LookupTables:
        if self.lookups is None:
            log.info("Loading lookup datasets...")
            self.lookups = await self.lookup_source.load_lookups()
        else:
            log.debug("Reusing lookups loaded earlier in this session.")
        return self.lookups

    async def run(self, show_id: str, options: UpdateOptions) -> RunSummary:
        """Runs one reconciliation. Always returns a summary, including on failure or cancellation."""
        summary = RunSummary(show_id=str(show_id), dry_run=options.dry_run)
        self._cancel_requested = False
        self._episodes_done = 0
        self._episodes_total = 0
        mode = "DRY RUN" if options.dry_run else "LIVE"
        log.info(f"Starting {mode} reconciliation for show '{show_id}'.")

        try:
            if self.lookups is None:
                self._set_state(RunState.LOADING_LOOKUPS, summary)
            await self.ensure_lookups()

            self._set_state(RunState.FETCHING_CATALOG, summary)
            show = await self.adapter.fetch_show_tree(show_id)
        except DatasetFetchError as e:
            return self._fail(summary, f"Lookup datasets unavailable: {e}")
        except CatalogFetchFailed as e:
            log.error(f"[{ProcessingStatus.CATALOG_FETCH_FAILED}] {e}")
            return self._fail(summary, str(e))

        self._episodes_total = show.episode_count
        log.info(f"Processing '{show.title or show_id}': {len(show.seasons)} seasons, {show.episode_count} episodes.")
        self._set_state(RunState.PROCESSING, summary)

        try:
            await self._process_show(show, options, summary)
        except Exception as e:
            log.error(f"[{ProcessingStatus.INTERNAL_ERROR}] Unexpected error while processing show '{show_id}': {type(e).__name__}: {e}", exc_info=True)
            return self._fail(summary, f"{type(e).__name__}: {e}")

        if summary.state != RunState.CANCELLED:
            self._set_state(RunState.COMPLETED, summary)
        self._log_summary(summary)
        return summary

    def _set_state(self, state: RunState, summary: RunSummary) -> None:
        log.debug(f"Run state: {self.state.value} -> {state.value}")
        self.state = state
        summary.state = state

    def _fail(self, summary: RunSummary, message: str) -> RunSummary:
        summary.error = message
        self._set_state(RunState.FAILED, summary)
        log.error(f"Run failed: {message}")
        self._log_summary(summary)
        return summary

    def _stop_if_cancelled(self, summary: RunSummary) -> bool:
        if not self._cancel_requested:
            return False
        log.warning(f"[{ProcessingStatus.CANCELLED}] Run cancelled by user. Updates already applied are kept.")
        self._set_state(RunState.CANCELLED, summary)
        return True

    async def _process_show(self, show: CatalogShow, options: UpdateOptions, summary: RunSummary) -> None:
        if options.update_posters:
            await self._upload_poster(show.id, SHOW_POSTER_FILENAME, "Show", options, summary)

        # Server-reported order, not sorted
        for season in show.seasons:
            if self._stop_if_cancelled(summary):
                return
            finished = await self._process_season(season, options, summary)
            if not finished:
                return
            summary.seasons_processed += 1
            if self.season_delay > 0:
                await asyncio.sleep(self.season_delay)

    async def _process_season(self, season: CatalogSeason, options: UpdateOptions, summary: RunSummary) -> bool:
        label = f"Season {season.number}" if season.number is not None else f"Season '{season.title}'"
        log.info(f"--- {label}: {season.title} ({len(season.episodes)} episodes) ---")

        entry = self.lookups.get_season(season.number) if season.number is not None else None
        if entry is None:
            log.warning(f"[{ProcessingStatus.MISSING_LOOKUP_ENTRY}] {label} ({season.id}) has no season map entry; season fields left as is.")
        elif options.update_season_title or options.update_description:
            update = ItemUpdate(item_id=season.id, label=label)
            if options.update_season_title and entry.title and season.title != entry.title:
                update.fields[FIELD_TITLE] = entry.title
            if options.update_description and entry.description and season.summary != entry.description:
                update.fields[FIELD_SUMMARY] = entry.description
            await self._apply(update, options, summary)

        if options.update_posters and season.number is not None:
            await self._upload_poster(season.id, season_poster_filename(season.number), label, options, summary)

        for episode in season.episodes:
            if self._stop_if_cancelled(summary):
                return False
            await self._process_episode(season, episode, options, summary)
        return True

    def diff_episode(self, season: CatalogSeason, episode: CatalogEpisode, options: UpdateOptions) -> Optional[ItemUpdate]:
        """Field-level diff of one catalog episode. None when the episode has no lookup entry."""
        label = episode_label(season.number, episode.number)
        if season.number is None or episode.number is None:
            return None
        entry = self.lookups.get_episode(season.number, episode.number)
        if entry is None:
            return None

        update = ItemUpdate(item_id=episode.id, label=label)
        if options.update_title and entry.title and episode.title != entry.title:
            update.fields[FIELD_TITLE] = entry.title

        release = None
        if options.update_description or options.update_date:
            release = self.lookups.find_release(season.number, episode.number)

        if options.update_description and entry.description:
            description = compose_description(entry.description, release)
            if description != episode.summary:
                update.fields[FIELD_SUMMARY] = description

        if options.update_date and release is not None and release.is_released:
            air_date = normalize_date(release.release_date)
            if air_date and air_date != episode.air_date:
                update.fields[FIELD_AIR_DATE] = air_date
        return update

    async def _process_episode(self, season: CatalogSeason, episode: CatalogEpisode, options: UpdateOptions, summary: RunSummary) -> None:
        label = episode_label(season.number, episode.number)
        summary.episodes_processed += 1
        update = self.diff_episode(season, episode, options)
        if update is None:
            log.warning(f"[{ProcessingStatus.MISSING_LOOKUP_ENTRY}] {label} '{episode.title}' ({episode.id}) not found in episode lookup; skipping.")
            summary.skipped += 1
        else:
            await self._apply(update, options, summary)
        self._episodes_done += 1
        if self.on_progress:
            self.on_progress(self._episodes_done, self._episodes_total, label)

    async def _apply(self, update: ItemUpdate, options: UpdateOptions, summary: RunSummary) -> None:
        if not update:
            log.info(f"[{ProcessingStatus.NO_UPDATES_NEEDED}] {update.label}: no updates needed.")
            summary.unchanged += 1
            return

        changed = ", ".join(update.changed_fields)
        if options.dry_run:
            log.info(f"[{ProcessingStatus.DRY_RUN}] {update.label} ({update.item_id}) would update: {changed}")
            summary.proposed += 1
            summary.proposed_updates.append(update)
            return

        try:
            await self.adapter.update_item(update.item_id, update.fields)
        except UpdateFailed as e:
            log.error(f"[{ProcessingStatus.UPDATE_FAILED}] {update.label} ({update.item_id}) fields [{changed}]: {e.cause}")
            summary.failed += 1
            return
        summary.updated += 1
        log.log(SUCCESS, f"[{ProcessingStatus.SUCCESS}] Updated {update.label} ({update.item_id}): {changed}")
        if self.update_delay > 0:
            await asyncio.sleep(self.update_delay)

    async def _upload_poster(self, item_id: str, filename: str, label: str, options: UpdateOptions, summary: RunSummary) -> None:
        if self.poster_directory is None:
            log.debug(f"No poster directory configured; skipping poster for {label}.")
            return
        poster_path = self.poster_directory / filename
        if not poster_path.is_file():
            log.warning(f"[{ProcessingStatus.ARTWORK_MISSING}] {label}: '{poster_path}' not found.")
            return
        if options.dry_run:
            log.info(f"[{ProcessingStatus.DRY_RUN}] {label} ({item_id}) would upload poster '{filename}'.")
            return
        try:
            await self.adapter.upload_artwork(item_id, poster_path)
        except ArtworkUploadFailed as e:
            log.error(f"[{ProcessingStatus.ARTWORK_FAILED}] {label} ({item_id}) poster '{filename}': {e.cause}")
            summary.failed += 1
            return
        summary.posters_uploaded += 1
        log.log(SUCCESS, f"[{ProcessingStatus.SUCCESS}] Uploaded poster for {label} ({item_id}).")
        if self.update_delay > 0:
            await asyncio.sleep(self.update_delay)

    def _log_summary(self, summary: RunSummary) -> None:
        if summary.dry_run:
            counts = f"{summary.proposed} updates proposed"
        else:
            counts = f"{summary.updated} updates applied"
        line = (f"Run {summary.state.value}: {counts}, {summary.unchanged} unchanged, {summary.skipped} skipped, "
                f"{summary.failed} failed ({summary.seasons_processed} seasons, {summary.episodes_processed} episodes processed).")
        if summary.state == RunState.COMPLETED:
            log.log(SUCCESS, line)
        elif summary.state == RunState.FAILED:
            log.error(line)
        else:
            log.warning(line)

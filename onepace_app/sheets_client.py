# onepace_app/sheets_client.py
import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from . import tabular
from .config_manager import DEFAULT_SHEET_BASE_URL
from .enums import ProcessingStatus
from .exceptions import DatasetFetchError
from .http_utils import HttpTransport
from .lookups import LookupTables
from .models import SeasonMapRow, EpisodeRow, ReleaseRow

log = logging.getLogger(__name__)


@dataclass
class DatasetSource:
    name: str
    sheet_id: str
    gid: str


class SheetsClient:
    """Downloads the three curated datasets as CSV exports and maps them into typed rows."""

    def __init__(self, season_source: DatasetSource, episode_source: DatasetSource, release_source: DatasetSource,
                 base_url: str = DEFAULT_SHEET_BASE_URL, timeout: float = 15.0, retry_attempts: int = 3,
                 retry_wait_seconds: float = 1.0, transport: Optional[HttpTransport] = None):
        self.season_source = season_source
        self.episode_source = episode_source
        self.release_source = release_source
        self.base_url = base_url.rstrip('/')
        self.transport = transport or HttpTransport(timeout=timeout, retry_attempts=retry_attempts, retry_wait_seconds=retry_wait_seconds)

    @classmethod
    def from_config(cls, cfg_helper) -> "SheetsClient":
        return cls(
            season_source=DatasetSource("season mapping", cfg_helper('season_mapping_sheet_id'), str(cfg_helper('season_mapping_gid'))),
            episode_source=DatasetSource("episode data", cfg_helper('episode_data_sheet_id'), str(cfg_helper('episode_data_gid'))),
            release_source=DatasetSource("release data", cfg_helper('release_data_sheet_id'), str(cfg_helper('release_data_gid'))),
            base_url=cfg_helper('sheet_base_url', DEFAULT_SHEET_BASE_URL),
            timeout=float(cfg_helper('sheet_timeout', 15.0)),
            retry_attempts=int(cfg_helper('api_retry_attempts', 3)),
            retry_wait_seconds=float(cfg_helper('api_retry_wait_seconds', 1.0)),
        )

    def csv_url(self, source: DatasetSource) -> str:
        return f"{self.base_url}/{source.sheet_id}/export?format=csv&gid={source.gid}"

    def _sync_fetch_text(self, url: str) -> str:
        response = self.transport.request("GET", url)
        # Sheets exports are UTF-8 but often arrive without a charset
        response.encoding = response.encoding if response.encoding and response.encoding.lower() != 'iso-8859-1' else 'utf-8'
        return response.text

    async def fetch_dataset(self, source: DatasetSource) -> List[tabular.Row]:
        url = self.csv_url(source)
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, functools.partial(self._sync_fetch_text, url))
        except Exception as e:
            log.error(f"[{ProcessingStatus.DATASET_FETCH_FAILED}] Could not download {source.name} ({url}): {type(e).__name__}: {e}")
            raise DatasetFetchError(f"Failed to fetch {source.name} dataset: {e}") from e
        rows = tabular.parse(text)
        log.debug(f"Fetched {source.name}: {len(rows)} rows.")
        return rows

    async def fetch_all(self) -> Tuple[List[SeasonMapRow], List[EpisodeRow], List[ReleaseRow]]:
        """The three fetches are independent, so they are issued together and awaited jointly."""
        tasks = [asyncio.ensure_future(self.fetch_dataset(source))
                 for source in (self.season_source, self.episode_source, self.release_source)]
        try:
            season_raw, episode_raw, release_raw = await asyncio.gather(*tasks)
        except Exception:
            # One fetch failed; the others are no longer wanted
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return (
            [SeasonMapRow.from_row(r) for r in season_raw],
            [EpisodeRow.from_row(r) for r in episode_raw],
            [ReleaseRow.from_row(r) for r in release_raw],
        )

    async def load_lookups(self) -> LookupTables:
        season_rows, episode_rows, release_rows = await self.fetch_all()
        return LookupTables.build(season_rows, episode_rows, release_rows)

    def close(self) -> None:
        self.transport.close()

# onepace_app/catalog.py
import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import CatalogFetchFailed, UpdateFailed, ArtworkUploadFailed, OnePaceError
from .models import CatalogShow, ShowSearchResult

log = logging.getLogger(__name__)

# Field names accepted by update_item
FIELD_TITLE = "title"
FIELD_SUMMARY = "summary"
FIELD_AIR_DATE = "air_date"
UPDATABLE_FIELDS = (FIELD_TITLE, FIELD_SUMMARY, FIELD_AIR_DATE)


class CatalogAdapter(ABC):
    """
    Capability interface of a media server catalog.

    Concrete adapters implement the blocking ``_*_sync`` hooks. The public coroutines
    run them in the default executor and convert any failure into the single error
    kind the reconciliation engine understands for that operation.
    Season and episode numbers must be plain ints; season 0 is the specials bucket.
    """

    server_name = "catalog"

    async def _run_sync(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    @abstractmethod
    def _fetch_show_tree_sync(self, show_id: str) -> CatalogShow: ...

    @abstractmethod
    def _update_item_sync(self, item_id: str, fields: Dict[str, str]) -> None: ...

    def _upload_artwork_sync(self, item_id: str, image_bytes: bytes) -> None:
        raise NotImplementedError(f"{self.server_name} does not support artwork upload")

    def _search_shows_sync(self, query: str) -> List[ShowSearchResult]:
        raise NotImplementedError(f"{self.server_name} does not support show search")

    def _test_connection_sync(self) -> str:
        return self.server_name

    async def fetch_show_tree(self, show_id: str) -> CatalogShow:
        try:
            show = await self._run_sync(self._fetch_show_tree_sync, str(show_id))
        except CatalogFetchFailed:
            raise
        except Exception as e:
            log.debug(f"{self.server_name} fetch for show '{show_id}' failed: {type(e).__name__}: {e}", exc_info=True)
            raise CatalogFetchFailed(show_id, e) from e
        log.debug(f"Fetched show '{show.title}' ({show_id}): {len(show.seasons)} seasons, {show.episode_count} episodes.")
        return show

    async def update_item(self, item_id: str, fields: Dict[str, str]) -> None:
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise UpdateFailed(item_id, ValueError(f"Unsupported field(s): {', '.join(sorted(unknown))}"))
        try:
            await self._run_sync(self._update_item_sync, str(item_id), dict(fields))
        except UpdateFailed:
            raise
        except Exception as e:
            raise UpdateFailed(item_id, e) from e

    async def upload_artwork(self, item_id: str, image_path: Path) -> None:
        try:
            image_bytes = await self._run_sync(Path(image_path).read_bytes)
            await self._run_sync(self._upload_artwork_sync, str(item_id), image_bytes)
        except ArtworkUploadFailed:
            raise
        except Exception as e:
            raise ArtworkUploadFailed(item_id, e) from e

    async def search_shows(self, query: str) -> List[ShowSearchResult]:
        try:
            return await self._run_sync(self._search_shows_sync, query)
        except Exception as e:
            raise OnePaceError(f"{self.server_name} show search for '{query}' failed: {e}") from e

    async def test_connection(self) -> str:
        try:
            return await self._run_sync(self._test_connection_sync)
        except Exception as e:
            raise OnePaceError(f"Could not connect to {self.server_name}: {e}") from e

    def close(self) -> None:
        pass


def parse_index(value: Any) -> Optional[int]:
    """Server-supplied season/episode index as a plain int, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def date_part(value: Any) -> Optional[str]:
    """'2023-05-12T00:00:00.0000000Z' -> '2023-05-12'."""
    if not value or not isinstance(value, str):
        return None
    return value.split("T", 1)[0].strip() or None

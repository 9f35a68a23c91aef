# onepace_app/plex_client.py
import logging
from typing import Any, Dict, List, Optional

from .catalog import CatalogAdapter, FIELD_TITLE, FIELD_SUMMARY, FIELD_AIR_DATE, parse_index, date_part
from .exceptions import ConfigError
from .http_utils import HttpTransport
from .models import CatalogShow, CatalogSeason, CatalogEpisode, ShowSearchResult

log = logging.getLogger(__name__)

ALL_EPISODES_TITLE = "All episodes"

# update_item field -> Plex edit parameter
PLEX_FIELD_PARAMS = {
    FIELD_TITLE: "title",
    FIELD_SUMMARY: "summary",
    FIELD_AIR_DATE: "originallyAvailableAt",
}


def _metadata(payload: Any) -> List[Dict[str, Any]]:
    container = payload.get("MediaContainer", {}) if isinstance(payload, dict) else {}
    items = container.get("Metadata") or []
    return [i for i in items if isinstance(i, dict)]


class PlexAdapter(CatalogAdapter):
    server_name = "Plex"

    def __init__(self, server_url: str, token: Optional[str], timeout: float = 30.0,
                 retry_attempts: int = 3, retry_wait_seconds: float = 1.0, transport: Optional[HttpTransport] = None):
        if not server_url:
            raise ConfigError("Plex server_url is not configured.")
        if not token:
            raise ConfigError("Plex token not found. Set PLEX_TOKEN in the environment or .env (see 'setup').")
        self.transport = transport or HttpTransport(
            server_url,
            headers={"X-Plex-Token": token, "Accept": "application/json"},
            timeout=timeout, retry_attempts=retry_attempts, retry_wait_seconds=retry_wait_seconds,
        )

    def _test_connection_sync(self) -> str:
        container = self.transport.get_json("/").get("MediaContainer", {})
        name = container.get("friendlyName") or "Plex"
        version = container.get("version")
        return f"{name} (Plex {version})" if version else name

    def _fetch_show_tree_sync(self, show_id: str) -> CatalogShow:
        show_items = _metadata(self.transport.get_json(f"/library/metadata/{show_id}"))
        show_title = show_items[0].get("title", "") if show_items else ""
        show = CatalogShow(id=show_id, title=show_title)

        for season_data in _metadata(self.transport.get_json(f"/library/metadata/{show_id}/children")):
            # Plex may list an "All episodes" pseudo season without an index
            if season_data.get("title") == ALL_EPISODES_TITLE or season_data.get("index") is None:
                log.debug(f"Skipping Plex pseudo season '{season_data.get('title')}'.")
                continue
            season = CatalogSeason(
                id=str(season_data.get("ratingKey")),
                number=parse_index(season_data.get("index")),
                title=season_data.get("title") or "",
                summary=season_data.get("summary") or "",
            )
            for ep_data in _metadata(self.transport.get_json(f"/library/metadata/{season.id}/children")):
                season.episodes.append(CatalogEpisode(
                    id=str(ep_data.get("ratingKey")),
                    number=parse_index(ep_data.get("index")),
                    title=ep_data.get("title") or "",
                    summary=ep_data.get("summary") or "",
                    air_date=date_part(ep_data.get("originallyAvailableAt")),
                ))
            show.seasons.append(season)
        return show

    def _update_item_sync(self, item_id: str, fields: Dict[str, str]) -> None:
        params: Dict[str, str] = {}
        for field_name, value in fields.items():
            plex_name = PLEX_FIELD_PARAMS[field_name]
            params[f"{plex_name}.value"] = value
            params[f"{plex_name}.locked"] = "1"
        self.transport.request("PUT", f"/library/metadata/{item_id}", params=params)
        log.debug(f"Plex item {item_id} updated: {', '.join(fields)}")

    def _upload_artwork_sync(self, item_id: str, image_bytes: bytes) -> None:
        self.transport.request("POST", f"/library/metadata/{item_id}/posters", data=image_bytes,
                               headers={"Content-Type": "image/png"})

    def _search_shows_sync(self, query: str) -> List[ShowSearchResult]:
        results: List[ShowSearchResult] = []
        for item in _metadata(self.transport.get_json("/search", params={"query": query})):
            if item.get("type") != "show":
                continue
            results.append(ShowSearchResult(
                id=str(item.get("ratingKey")),
                title=item.get("title") or "",
                year=parse_index(item.get("year")),
                summary=item.get("summary") or "",
            ))
        return results

    def close(self) -> None:
        self.transport.close()

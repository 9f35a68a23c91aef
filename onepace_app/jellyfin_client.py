# onepace_app/jellyfin_client.py
import base64
import logging
from typing import Any, Dict, List, Optional

from .catalog import CatalogAdapter, FIELD_TITLE, FIELD_SUMMARY, FIELD_AIR_DATE, parse_index, date_part
from .exceptions import ConfigError, OnePaceError
from .http_utils import HttpTransport
from .models import CatalogShow, CatalogSeason, CatalogEpisode, ShowSearchResult

log = logging.getLogger(__name__)

# update_item field -> Jellyfin item property
JELLYFIN_FIELD_PROPS = {
    FIELD_TITLE: "Name",
    FIELD_SUMMARY: "Overview",
    FIELD_AIR_DATE: "PremiereDate",
}

# Only these of the mapped properties are valid LockedFields values
JELLYFIN_LOCKABLE_PROPS = {"Name", "Overview"}


def _items(payload: Any) -> List[Dict[str, Any]]:
    items = payload.get("Items") if isinstance(payload, dict) else payload
    return [i for i in (items or []) if isinstance(i, dict)]


class JellyfinAdapter(CatalogAdapter):
    server_name = "Jellyfin"

    def __init__(self, server_url: str, api_key: Optional[str], user_id: Optional[str] = None, timeout: float = 30.0,
                 retry_attempts: int = 3, retry_wait_seconds: float = 1.0, transport: Optional[HttpTransport] = None):
        if not server_url:
            raise ConfigError("Jellyfin server_url is not configured.")
        if not api_key:
            raise ConfigError("Jellyfin API key not found. Set JELLYFIN_API_KEY in the environment or .env (see 'setup').")
        self.user_id = user_id
        self.transport = transport or HttpTransport(
            server_url,
            headers={"X-Emby-Token": api_key, "Accept": "application/json"},
            timeout=timeout, retry_attempts=retry_attempts, retry_wait_seconds=retry_wait_seconds,
        )

    def _test_connection_sync(self) -> str:
        info = self.transport.get_json("/System/Info/Public")
        name = info.get("ServerName") or "Jellyfin"
        version = info.get("Version")
        return f"{name} (Jellyfin {version})" if version else name

    def resolve_user_id(self) -> str:
        """Returns the configured user id, or the first user on the server. Cached after the first call."""
        if self.user_id:
            return self.user_id
        users = self.transport.get_json("/Users")
        if not isinstance(users, list) or not users:
            raise OnePaceError("Jellyfin returned no users; set jellyfin_user_id in the config.")
        self.user_id = str(users[0].get("Id"))
        log.debug(f"Using Jellyfin user '{users[0].get('Name')}' ({self.user_id}).")
        return self.user_id

    def _fetch_show_tree_sync(self, show_id: str) -> CatalogShow:
        user_id = self.resolve_user_id()
        show_data = self.transport.get_json(f"/Users/{user_id}/Items/{show_id}")
        show = CatalogShow(id=show_id, title=show_data.get("Name") or "")

        seasons_payload = self.transport.get_json(f"/Shows/{show_id}/Seasons", params={"userId": user_id, "Fields": "Overview"})
        for season_data in _items(seasons_payload):
            season = CatalogSeason(
                id=str(season_data.get("Id")),
                number=parse_index(season_data.get("IndexNumber")),
                title=season_data.get("Name") or "",
                summary=season_data.get("Overview") or "",
            )
            episodes_payload = self.transport.get_json(
                f"/Shows/{show_id}/Episodes",
                params={"SeasonId": season.id, "userId": user_id, "Fields": "Overview,PremiereDate"},
            )
            for ep_data in _items(episodes_payload):
                season.episodes.append(CatalogEpisode(
                    id=str(ep_data.get("Id")),
                    number=parse_index(ep_data.get("IndexNumber")),
                    title=ep_data.get("Name") or "",
                    summary=ep_data.get("Overview") or "",
                    air_date=date_part(ep_data.get("PremiereDate")),
                ))
            show.seasons.append(season)
        return show

    def _update_item_sync(self, item_id: str, fields: Dict[str, str]) -> None:
        # Jellyfin replaces the whole item on update, so start from its current state
        user_id = self.resolve_user_id()
        item = self.transport.get_json(f"/Users/{user_id}/Items/{item_id}")
        for field_name, value in fields.items():
            prop = JELLYFIN_FIELD_PROPS[field_name]
            item[prop] = f"{value}T00:00:00.000Z" if field_name == FIELD_AIR_DATE else value
        locked = set(item.get("LockedFields") or [])
        locked.update(p for p in (JELLYFIN_FIELD_PROPS[f] for f in fields) if p in JELLYFIN_LOCKABLE_PROPS)
        item["LockedFields"] = sorted(locked)
        self.transport.request("POST", f"/Items/{item_id}", json=item)
        log.debug(f"Jellyfin item {item_id} updated: {', '.join(fields)}")

    def _upload_artwork_sync(self, item_id: str, image_bytes: bytes) -> None:
        self.transport.request("POST", f"/Items/{item_id}/Images/Primary", data=base64.b64encode(image_bytes),
                               headers={"Content-Type": "image/png"})

    def _search_shows_sync(self, query: str) -> List[ShowSearchResult]:
        user_id = self.resolve_user_id()
        payload = self.transport.get_json(f"/Users/{user_id}/Items", params={
            "SearchTerm": query, "IncludeItemTypes": "Series", "Recursive": "true", "Fields": "Overview",
        })
        return [
            ShowSearchResult(id=str(i.get("Id")), title=i.get("Name") or "", year=parse_index(i.get("ProductionYear")), summary=i.get("Overview") or "")
            for i in _items(payload)
        ]

    def close(self) -> None:
        self.transport.close()

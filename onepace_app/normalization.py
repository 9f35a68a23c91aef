# onepace_app/normalization.py
from typing import Mapping, Optional

# Two independent specials buckets, both mapped to season 0.
SPECIALS_SENTINELS = ("Specials", "One Piece Fan Letter")
SPECIALS_SEASON = 0


def normalize_title(title: Optional[str]) -> str:
    """Join key for every title-based lookup: trimmed and lower-cased."""
    if not title:
        return ""
    return title.strip().lower()


def resolve_season_number(arc_title: Optional[str], season_map: Mapping[str, int]) -> Optional[int]:
    """
    Returns the season number for an arc title, or None when the arc is unknown.
    Callers skip the record and log a warning on None.
    """
    if arc_title in SPECIALS_SENTINELS:
        return SPECIALS_SEASON
    key = normalize_title(arc_title)
    if not key:
        return None
    return season_map.get(key)


def episode_key(season_number: int, episode_number: int) -> str:
    """Composite '{season}-{episode}' join key. Both parts must be plain ints (no zero padding)."""
    return f"{int(season_number)}-{int(episode_number)}"

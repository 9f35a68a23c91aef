# onepace_app/lookups.py
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import dateutil.parser

from .enums import ProcessingStatus
from .models import (
    SeasonMapRow, EpisodeRow, ReleaseRow, SeasonEntry, EpisodeEntry, SPECIALS_TITLE,
)
from .normalization import normalize_title, resolve_season_number, episode_key, SPECIALS_SEASON

log = logging.getLogger(__name__)


def build_season_map(season_rows: Iterable[SeasonMapRow]) -> Dict[str, int]:
    """Normalized arc title -> season number. 'Specials' always maps to season 0."""
    season_map: Dict[str, int] = {}
    for row in season_rows:
        if row.part_number is None or not row.title_key:
            continue
        number = SPECIALS_SEASON if row.title_key == SPECIALS_TITLE else row.part_number
        key = normalize_title(row.title_key)
        if key in season_map and season_map[key] != number:
            log.warning(f"Duplicate arc title '{row.title_key}' in season map (seasons {season_map[key]} and {number}). Keeping first.")
            continue
        season_map.setdefault(key, number)
    log.debug(f"Built season map with {len(season_map)} arcs.")
    return season_map


def build_season_index(season_rows: Iterable[SeasonMapRow]) -> Dict[int, SeasonEntry]:
    """Season number -> canonical season title/description, used for season-level diffs."""
    index: Dict[int, SeasonEntry] = {}
    for row in season_rows:
        if row.part_number is None or not row.title_key:
            continue
        number = SPECIALS_SEASON if row.title_key == SPECIALS_TITLE else row.part_number
        if number not in index:
            index[number] = SeasonEntry(season_number=number, title=row.title_key, description=row.description)
    return index


def build_episode_lookup(episode_rows: Iterable[EpisodeRow], season_map: Dict[str, int]) -> Dict[str, EpisodeEntry]:
    """'{season}-{episode}' -> canonical title/description. Rows with unknown arcs are dropped."""
    lookup: Dict[str, EpisodeEntry] = {}
    for row in episode_rows:
        season_number = resolve_season_number(row.arc_title, season_map)
        if season_number is None:
            log.warning(f"[{ProcessingStatus.UNRESOLVABLE_ARC}] Arc '{row.arc_title}' not found in season map; skipping episode '{row.canonical_title}'.")
            continue
        if row.arc_part is None:
            log.warning(f"[{ProcessingStatus.INVALID_ROW}] Episode '{row.canonical_title}' of arc '{row.arc_title}' has no usable arc_part; skipping.")
            continue
        key = episode_key(season_number, row.arc_part)
        if key in lookup:
            log.debug(f"Duplicate episode key {key} ('{row.canonical_title}'); later row wins.")
        lookup[key] = EpisodeEntry(title=row.canonical_title, description=row.canonical_description)
    log.debug(f"Built episode lookup with {len(lookup)} entries.")
    return lookup


def _episode_token_pattern(episode_number: int) -> "re.Pattern[str]":
    # Zero-padded token that is not part of a longer digit run ("05" matches "Episode 05", not "Episode 105")
    return re.compile(rf"(?<!\d){episode_number:02d}(?!\d)")


def find_release(releases: Iterable[ReleaseRow], episode_number: int, arc_title: Optional[str] = None) -> Optional[ReleaseRow]:
    """
    Linear scan of the release rows by containment of the zero-padded episode number in the label.

    When an arc title is given, rows whose label also contains that title are preferred;
    otherwise the first number match wins.
    """
    pattern = _episode_token_pattern(episode_number)
    candidates: List[ReleaseRow] = [r for r in releases if r.episode_label and pattern.search(r.episode_label)]
    if not candidates:
        return None
    arc_key = normalize_title(arc_title)
    if arc_key:
        for release in candidates:
            if arc_key in release.episode_label.lower():
                return release
    return candidates[0]


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Returns an ISO 'YYYY-MM-DD' date; unparseable values come back verbatim."""
    if not value:
        return None
    text = value.strip()
    if not text:
        return None
    candidate = text.replace('.', '-') if re.fullmatch(r"\d{4}\.\d{1,2}\.\d{1,2}", text) else text
    try:
        return dateutil.parser.isoparse(candidate).date().isoformat()
    except (ValueError, OverflowError):
        pass
    try:
        return dateutil.parser.parse(candidate).date().isoformat()
    except (ValueError, OverflowError):
        log.debug(f"Could not parse release date '{value}', using it verbatim.")
        return text


def compose_description(description: str, release: Optional[ReleaseRow]) -> str:
    text = (description or "").strip()
    if release is None or not (release.chapters or release.source_episodes):
        return text
    text += "\n\n"
    if release.chapters:
        text += f"Manga Chapter(s): {release.chapters}\n\n"
    if release.source_episodes:
        text += f"Anime Episode(s): {release.source_episodes}"
    return text.rstrip()


@dataclass
class LookupTables:
    """Everything built from the three curated datasets. Built once per session and reused."""
    season_map: Dict[str, int] = field(default_factory=dict)
    seasons: Dict[int, SeasonEntry] = field(default_factory=dict)
    episodes: Dict[str, EpisodeEntry] = field(default_factory=dict)
    releases: List[ReleaseRow] = field(default_factory=list)

    @classmethod
    def build(cls, season_rows: List[SeasonMapRow], episode_rows: List[EpisodeRow], release_rows: List[ReleaseRow]) -> "LookupTables":
        season_map = build_season_map(season_rows)
        tables = cls(
            season_map=season_map,
            seasons=build_season_index(season_rows),
            episodes=build_episode_lookup(episode_rows, season_map),
            releases=[r for r in release_rows if r.episode_label],
        )
        log.info(f"Lookups ready: {len(tables.season_map)} arcs, {len(tables.episodes)} episodes, {len(tables.releases)} release rows.")
        return tables

    def get_episode(self, season_number: int, episode_number: int) -> Optional[EpisodeEntry]:
        return self.episodes.get(episode_key(season_number, episode_number))

    def get_season(self, season_number: int) -> Optional[SeasonEntry]:
        return self.seasons.get(season_number)

    def find_release(self, season_number: int, episode_number: int) -> Optional[ReleaseRow]:
        season = self.seasons.get(season_number)
        return find_release(self.releases, episode_number, season.title if season else None)

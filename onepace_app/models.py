# models.py
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Any, Mapping

from .enums import ProcessingStatus, RunState

SPECIALS_TITLE = "Specials"
TO_BE_RELEASED = "To Be Released"

# Column names in the curated spreadsheets
SEASON_PART_COLUMN = "part"
SEASON_TITLE_COLUMN = "title_en"
SEASON_DESCRIPTION_COLUMN = "description_en"
EPISODE_ARC_TITLE_COLUMN = "arc_title"
EPISODE_ARC_PART_COLUMN = "arc_part"
EPISODE_TITLE_COLUMN = "title_en"
EPISODE_DESCRIPTION_COLUMN = "description_en"
RELEASE_LABEL_COLUMN = "One Pace Episode"
RELEASE_DATE_COLUMN = "Release Date"
RELEASE_CHAPTERS_COLUMN = "Chapters"
RELEASE_EPISODES_COLUMN = "Episodes"


def _cell(row: Mapping[str, str], key: str) -> str:
    value = row.get(key)
    return value.strip() if isinstance(value, str) else ""

def _optional_cell(row: Mapping[str, str], key: str) -> Optional[str]:
    value = _cell(row, key)
    return value or None

def parse_int(value: Any) -> Optional[int]:
    """Parses a plain decimal integer ('03' -> 3). Returns None for blank or non-numeric input."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text, 10)
    except ValueError:
        try:
            as_float = float(text)
        except ValueError:
            return None
        return int(as_float) if as_float.is_integer() else None


@dataclass
class SeasonMapRow:
    """One arc/season from the season-mapping sheet."""
    part_number: Optional[int]
    title_key: str
    description: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> "SeasonMapRow":
        return cls(
            part_number=parse_int(row.get(SEASON_PART_COLUMN)),
            title_key=_cell(row, SEASON_TITLE_COLUMN),
            description=_optional_cell(row, SEASON_DESCRIPTION_COLUMN),
        )

@dataclass
class EpisodeRow:
    """One canonical episode from the episode-data sheet."""
    arc_title: str
    arc_part: Optional[int]
    canonical_title: str
    canonical_description: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> "EpisodeRow":
        return cls(
            arc_title=_cell(row, EPISODE_ARC_TITLE_COLUMN),
            arc_part=parse_int(row.get(EPISODE_ARC_PART_COLUMN)),
            canonical_title=_cell(row, EPISODE_TITLE_COLUMN),
            canonical_description=_cell(row, EPISODE_DESCRIPTION_COLUMN),
        )

@dataclass
class ReleaseRow:
    """Real-world release metadata for one episode. Joined by label containment."""
    episode_label: str
    release_date: Optional[str] = None
    chapters: Optional[str] = None
    source_episodes: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> "ReleaseRow":
        return cls(
            episode_label=_cell(row, RELEASE_LABEL_COLUMN),
            release_date=_optional_cell(row, RELEASE_DATE_COLUMN),
            chapters=_optional_cell(row, RELEASE_CHAPTERS_COLUMN),
            source_episodes=_optional_cell(row, RELEASE_EPISODES_COLUMN),
        )

    @property
    def is_released(self) -> bool:
        return bool(self.release_date) and self.release_date != TO_BE_RELEASED


@dataclass
class SeasonEntry:
    """Canonical season title/description keyed by season number."""
    season_number: int
    title: str
    description: Optional[str] = None

@dataclass
class EpisodeEntry:
    title: str
    description: str = ""


@dataclass
class CatalogEpisode:
    id: str
    number: Optional[int]
    title: str = ""
    summary: str = ""
    air_date: Optional[str] = None

@dataclass
class CatalogSeason:
    id: str
    number: Optional[int]
    title: str = ""
    summary: str = ""
    episodes: List[CatalogEpisode] = field(default_factory=list)

@dataclass
class CatalogShow:
    id: str
    title: str = ""
    seasons: List[CatalogSeason] = field(default_factory=list)

    @property
    def episode_count(self) -> int:
        return sum(len(s.episodes) for s in self.seasons)

@dataclass
class ShowSearchResult:
    id: str
    title: str
    year: Optional[int] = None
    summary: str = ""


@dataclass
class UpdateOptions:
    """Each flag gates one field category of the diff. dry_run gates whether a diff is applied."""
    update_title: bool = True
    update_season_title: bool = True
    update_description: bool = True
    update_date: bool = True
    update_posters: bool = False
    dry_run: bool = True

    @classmethod
    def from_config(cls, cfg_helper) -> "UpdateOptions":
        return cls(
            update_title=bool(cfg_helper('update_title', True)),
            update_season_title=bool(cfg_helper('update_season_title', True)),
            update_description=bool(cfg_helper('update_description', True)),
            update_date=bool(cfg_helper('update_date', True)),
            update_posters=bool(cfg_helper('update_posters', False)),
            dry_run=bool(cfg_helper('dry_run', True)),
        )

@dataclass
class ItemUpdate:
    """All changed fields for one catalog item. Applied in a single update call."""
    item_id: str
    label: str # e.g. "S01E03" or "Season 1"
    fields: Dict[str, str] = field(default_factory=dict)

    @property
    def changed_fields(self) -> List[str]:
        return list(self.fields.keys())

    def __bool__(self) -> bool:
        return bool(self.fields)


@dataclass
class RunSummary:
    """Final, always-reported outcome of a reconciliation run."""
    show_id: str
    dry_run: bool
    state: RunState = RunState.IDLE
    seasons_processed: int = 0
    episodes_processed: int = 0
    updated: int = 0
    proposed: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    posters_uploaded: int = 0
    proposed_updates: List[ItemUpdate] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class RenameProposal:
    """Report-only outcome of matching one local filename."""
    original_path: Path
    status: ProcessingStatus
    new_name: Optional[str] = None
    season: Optional[int] = None
    episode: Optional[int] = None
    message: Optional[str] = None

    @property
    def new_path(self) -> Optional[Path]:
        return self.original_path.with_name(self.new_name) if self.new_name else None

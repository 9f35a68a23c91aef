# onepace_app/filename_matcher.py
import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .enums import ProcessingStatus
from .lookups import LookupTables
from .models import RenameProposal
from .normalization import resolve_season_number
from .utils import sanitize_filename, scan_video_files

log = logging.getLogger(__name__)

# "[12-13] Romance Dawn 03 Some Title.mkv" -> source episodes, arc, arc episode, optional title
ONE_PACE_FILENAME_PATTERN = re.compile(
    r"\[(?P<episodes>\d+(?:-\d+)?)\]\s+(?P<arc>.+?)\s+(?P<episode>\d{1,2})(?:\s+(?P<title>.+?))?\.",
    re.IGNORECASE,
)
DEFAULT_FILENAME_FORMAT = "One Pace - S{season:02d}E{episode:02d} - {title}"


class FilenameMatcher:
    """
    Matches local One Pace release filenames to canonical episode titles.
    Report only: proposals are returned, the filesystem is never touched.
    """

    def __init__(self, lookups: LookupTables, filename_format: str = DEFAULT_FILENAME_FORMAT):
        self.lookups = lookups
        self.filename_format = filename_format

    def canonical_name(self, season: int, episode: int, title: str, ext: str) -> str:
        stem = self.filename_format.format(season=season, episode=episode, title=title)
        return sanitize_filename(f"{stem}{ext}")

    def match(self, path: Union[str, Path]) -> RenameProposal:
        file_path = Path(path)
        m = ONE_PACE_FILENAME_PATTERN.search(file_path.name)
        if not m:
            log.debug(f"[{ProcessingStatus.NO_PATTERN_MATCH}] '{file_path.name}'")
            return RenameProposal(file_path, ProcessingStatus.NO_PATTERN_MATCH, message="Filename does not match the One Pace release pattern.")

        arc = m.group('arc').strip()
        episode = int(m.group('episode'))
        season = resolve_season_number(arc, self.lookups.season_map)
        if season is None:
            log.warning(f"[{ProcessingStatus.UNRESOLVABLE_ARC}] Arc '{arc}' from '{file_path.name}' not found in season map.")
            return RenameProposal(file_path, ProcessingStatus.UNRESOLVABLE_ARC, episode=episode, message=f"Unknown arc '{arc}'.")

        entry = self.lookups.get_episode(season, episode)
        if entry is None or not entry.title:
            log.warning(f"[{ProcessingStatus.MISSING_LOOKUP_ENTRY}] No episode entry for S{season:02d}E{episode:02d} ('{file_path.name}').")
            return RenameProposal(file_path, ProcessingStatus.MISSING_LOOKUP_ENTRY, season=season, episode=episode,
                                  message=f"No episode data for {arc} {episode:02d}.")

        new_name = self.canonical_name(season, episode, entry.title, file_path.suffix)
        if new_name == file_path.name:
            return RenameProposal(file_path, ProcessingStatus.PATH_ALREADY_CORRECT, new_name=new_name, season=season, episode=episode)
        log.info(f"[{ProcessingStatus.RENAME_PROPOSED}] '{file_path.name}' -> '{new_name}'")
        return RenameProposal(file_path, ProcessingStatus.RENAME_PROPOSED, new_name=new_name, season=season, episode=episode)

    def scan_directory(self, target_dir: Union[str, Path], extensions: Iterable[str], recursive: bool = False) -> List[RenameProposal]:
        proposals = [self.match(p) for p in scan_video_files(Path(target_dir), extensions, recursive)]
        log.info(f"Checked {len(proposals)} files: {sum(p.status == ProcessingStatus.RENAME_PROPOSED for p in proposals)} renames proposed.")
        return proposals

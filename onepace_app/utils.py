# onepace_app/utils.py
import logging
import os
import re
from pathlib import Path
from typing import Iterable, Iterator

log = logging.getLogger(__name__)

ILLEGAL_PATH_CHARS = re.compile(r'[<>:"/\\|?*]')


def sanitize_os_chars(name: str) -> str:
    sanitized = ILLEGAL_PATH_CHARS.sub('', name)
    # Collapse the double spaces left behind by removed characters
    sanitized = re.sub(r'\s{2,}', ' ', sanitized)
    # Names ending in '.' or ' ' are problematic on Windows
    return sanitized.strip().rstrip('. ')

def sanitize_filename(filename: str) -> str:
    if not filename or filename.isspace(): return "_invalid_name_"
    stem, ext = os.path.splitext(filename)
    sanitized_stem = sanitize_os_chars(stem)
    if not sanitized_stem or sanitized_stem in ['.', '..'] or all(c in '._ ' for c in sanitized_stem):
        sanitized_stem = "_invalid_name_"
    return f"{sanitized_stem}{ext}"


def _is_hidden(name: str) -> bool:
    return name.startswith('.')

def scan_video_files(target_dir: Path, extensions: Iterable[str], recursive: bool = False) -> Iterator[Path]:
    """Yields video files under target_dir in sorted order. Hidden files and directories are ignored."""
    allowed_ext = {e.lower() if e.startswith('.') else f".{e.lower()}" for e in extensions if e}
    if not allowed_ext:
        log.warning("No video extensions configured. Scan will find nothing.")
        return

    base_path = Path(target_dir).resolve()
    if not base_path.is_dir():
        log.error(f"Target path is not a valid directory: {base_path}")
        return
    log.info(f"Scanning directory: {base_path} (recursive: {recursive})")

    if recursive:
        walker = os.walk(base_path, topdown=True, onerror=lambda e: log.warning(f"os.walk error: {e}"))
        for root, dirs, files in walker:
            dirs[:] = sorted(d for d in dirs if not _is_hidden(d))
            for filename in sorted(files):
                item_path = Path(root) / filename
                if not _is_hidden(filename) and item_path.suffix.lower() in allowed_ext:
                    yield item_path
    else:
        for item_path in sorted(base_path.iterdir()):
            if item_path.is_file() and not _is_hidden(item_path.name) and item_path.suffix.lower() in allowed_ext:
                yield item_path

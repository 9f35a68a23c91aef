# onepace_app/assets.py
import io
import logging
import zipfile
from pathlib import Path, PurePosixPath
from typing import List, Optional

from .config_manager import DEFAULT_ASSETS_URL
from .exceptions import OnePaceError
from .http_utils import HttpTransport

log = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg"}


def extract_images(archive_bytes: bytes, output_dir: Path, overwrite: bool = False) -> List[Path]:
    """Extracts image files from a zip archive into output_dir, flattening the archive's folders."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    try:
        archive = zipfile.ZipFile(io.BytesIO(archive_bytes))
    except zipfile.BadZipFile as e:
        raise OnePaceError(f"Downloaded asset archive is not a valid zip file: {e}") from e

    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            name = PurePosixPath(info.filename).name
            if not name or name.startswith('.') or PurePosixPath(name).suffix.lower() not in IMAGE_EXTENSIONS:
                continue
            target = output_dir / name
            if target.exists() and not overwrite:
                log.debug(f"Skipping existing asset '{target}'.")
                continue
            target.write_bytes(archive.read(info))
            written.append(target)
    log.info(f"Extracted {len(written)} image files into '{output_dir}'.")
    return written


def download_assets(output_dir: Path, url: str = DEFAULT_ASSETS_URL, transport: Optional[HttpTransport] = None,
                    overwrite: bool = False) -> List[Path]:
    transport = transport or HttpTransport(timeout=120.0)
    log.info(f"Downloading poster assets from {url}")
    try:
        response = transport.request("GET", url)
    except Exception as e:
        raise OnePaceError(f"Failed to download assets from '{url}': {e}") from e
    return extract_images(response.content, output_dir, overwrite=overwrite)

# onepace_app/tabular.py
import csv
import io
import logging
from typing import Dict, List

from .enums import ProcessingStatus

log = logging.getLogger(__name__)

Row = Dict[str, str]


def parse(text: str, delimiter: str = ',') -> List[Row]:
    """
    Turns delimited text into an ordered list of row mappings keyed by the header names.

    The first non-blank record is the header. Whitespace-only records are dropped; blank lines
    inside quoted cells are kept as part of the cell. Missing trailing cells default to an empty
    string; surplus cells are ignored. Fewer than two non-blank records yields an empty list
    rather than an error.
    """
    if not text:
        log.debug(f"[{ProcessingStatus.PARSE_FAILURE}] Empty dataset text.")
        return []

    try:
        records = [cells for cells in csv.reader(io.StringIO(text, newline=''), delimiter=delimiter)
                   if any(c.strip() for c in cells)]
    except csv.Error as e:
        log.warning(f"[{ProcessingStatus.PARSE_FAILURE}] Malformed tabular text, treating as empty dataset: {e}")
        return []

    if len(records) < 2:
        log.debug(f"[{ProcessingStatus.PARSE_FAILURE}] Dataset has {len(records)} non-blank record(s); need a header and at least one row.")
        return []

    header = [h.strip() for h in records[0]]
    return [{name: (cells[i] if i < len(cells) else "") for i, name in enumerate(header)} for cells in records[1:]]

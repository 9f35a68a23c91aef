# onepace_app/enums.py
from enum import Enum, auto

class ProcessingStatus(Enum):
    """
    Represents the status or reason for a particular outcome during a run.
    Used for standardized log messages so every skip, failure and success can be audited.
    """
    # General operational status
    SUCCESS = auto()
    SKIPPED = auto()
    FAILED = auto()

    # --- Dataset / Lookup Phase ---
    PARSE_FAILURE = auto()              # Tabular text was structurally empty or malformed
    UNRESOLVABLE_ARC = auto()           # Arc title has no season number in the season map
    INVALID_ROW = auto()                # Row is missing a required cell or has a non-numeric part
    DATASET_FETCH_FAILED = auto()

    # --- Catalog Phase ---
    CATALOG_FETCH_FAILED = auto()
    MISSING_LOOKUP_ENTRY = auto()       # No curated entry for a catalog episode
    NO_UPDATES_NEEDED = auto()
    DRY_RUN = auto()
    UPDATE_FAILED = auto()
    ARTWORK_MISSING = auto()
    ARTWORK_FAILED = auto()
    CANCELLED = auto()

    # --- Filename Matching ---
    NO_PATTERN_MATCH = auto()
    PATH_ALREADY_CORRECT = auto()
    RENAME_PROPOSED = auto()

    INTERNAL_ERROR = auto()

    def __str__(self):
        return self.name.replace("_", " ").title()


class RunState(Enum):
    """Lifecycle of a single reconciliation run."""
    IDLE = "idle"
    LOADING_LOOKUPS = "loading_lookups"
    FETCHING_CATALOG = "fetching_catalog"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

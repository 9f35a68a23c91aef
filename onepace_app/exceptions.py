from typing import Any, Optional


class OnePaceError(Exception):
    """Base class for application-specific errors."""
    pass

class ConfigError(OnePaceError):
    """Errors related to configuration loading or validation."""
    pass

class DatasetFetchError(OnePaceError):
    """A lookup dataset (season map, episode data, release data) could not be fetched."""
    pass

class CatalogFetchFailed(OnePaceError):
    """The media server's show tree could not be fetched. Fatal for a run."""
    def __init__(self, show_id: Any, cause: Optional[BaseException] = None):
        self.show_id = show_id
        self.cause = cause
        super().__init__(f"Failed to fetch catalog for show '{show_id}': {cause}")

class UpdateFailed(OnePaceError):
    """A single catalog item could not be updated. The run continues."""
    def __init__(self, item_id: Any, cause: Optional[BaseException] = None):
        self.item_id = item_id
        self.cause = cause
        super().__init__(f"Update failed for item '{item_id}': {cause}")

class ArtworkUploadFailed(OnePaceError):
    """Artwork upload for a single catalog item failed."""
    def __init__(self, item_id: Any, cause: Optional[BaseException] = None):
        self.item_id = item_id
        self.cause = cause
        super().__init__(f"Artwork upload failed for item '{item_id}': {cause}")

class UserAbortError(OnePaceError):
    """Error raised when user cancels an operation."""
    pass

# tests/conftest.py
import copy
import sys
import argparse
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from unittest.mock import MagicMock

# Ensure the app package is findable by pytest by adding the project root to the path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from onepace_app.catalog import CatalogAdapter
from onepace_app.lookups import LookupTables
from onepace_app.models import (
    SeasonMapRow, EpisodeRow, ReleaseRow, CatalogShow, CatalogSeason, CatalogEpisode, ShowSearchResult,
)


# --- Mock Config Fixture ---
@pytest.fixture
def mock_cfg_helper():
    mock_args = argparse.Namespace(profile='default')
    mock_config_manager = MagicMock()
    class MockConfigHelper:
        def __init__(self, manager, args): self.manager = manager; self.args = args; self.profile = 'default'
        def __call__(self, key, default_value=None, arg_value=None):
            if arg_value is not None: return arg_value
            if key in self.manager._mock_values: return self.manager._mock_values[key]
            return default_value
        def get_api_key(self, service_name): return self.manager._mock_apikeys.get(service_name)
        def get_list(self, key, default_value=None):
            val = self(key, default_value)
            if isinstance(val, str): return [i.strip() for i in val.split(',') if i.strip()]
            if isinstance(val, list): return val
            return default_value if isinstance(default_value, list) else []
    mock_config_manager._mock_values = {}
    mock_config_manager._mock_apikeys = {}
    return MockConfigHelper(mock_config_manager, mock_args)


# --- Catalog / dataset fakes ---
class FakeCatalog(CatalogAdapter):
    """In-memory catalog. Records every update instead of talking to a server."""
    server_name = "Fake"

    def __init__(self, show: CatalogShow, fail_items=(), on_update=None):
        self.show = show
        self.fail_items = set(fail_items)
        self.on_update = on_update
        self.fetch_error: Optional[Exception] = None
        self.fetch_calls = 0
        self.updates: List[tuple] = []
        self.artwork: List[tuple] = []

    def _fetch_show_tree_sync(self, show_id: str) -> CatalogShow:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return copy.deepcopy(self.show)

    def _update_item_sync(self, item_id: str, fields: Dict[str, str]) -> None:
        if item_id in self.fail_items:
            raise RuntimeError(f"server rejected {item_id}")
        self.updates.append((item_id, dict(fields)))
        if self.on_update:
            self.on_update(item_id, fields)

    def _upload_artwork_sync(self, item_id: str, image_bytes: bytes) -> None:
        self.artwork.append((item_id, image_bytes))

    def _search_shows_sync(self, query: str) -> List[ShowSearchResult]:
        return [ShowSearchResult(id=self.show.id, title=self.show.title)]

    @property
    def updated_ids(self) -> List[str]:
        return [item_id for item_id, _ in self.updates]


class FakeLookupSource:
    def __init__(self, tables: Optional[LookupTables] = None, error: Optional[Exception] = None):
        self.tables = tables
        self.error = error
        self.calls = 0

    async def load_lookups(self) -> LookupTables:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.tables


@pytest.fixture
def season_rows():
    return [
        SeasonMapRow(part_number=1, title_key="Romance Dawn", description="Luffy sets out to sea."),
        SeasonMapRow(part_number=2, title_key="Orange Town", description="Buggy the Clown attacks."),
        SeasonMapRow(part_number=99, title_key="Specials", description="Extras."),
    ]

@pytest.fixture
def episode_rows():
    return [
        EpisodeRow("Romance Dawn", 1, "Romance Dawn, the Dawn of an Adventure", "Luffy meets Coby."),
        EpisodeRow("Romance Dawn", 2, "Enter Zoro", "Luffy frees Zoro."),
        EpisodeRow("Orange Town", 1, "The Great Swordsman Appears", "Buggy's crew."),
        EpisodeRow("Orange Town", 2, "Versus Buggy", "The fight with Buggy."),
        EpisodeRow("One Piece Fan Letter", 1, "Fan Letter", "A special."),
    ]

@pytest.fixture
def release_rows():
    return [
        ReleaseRow("Romance Dawn 01", "2021.01.01", "1-3", "1"),
        ReleaseRow("Romance Dawn 02", "To Be Released", "4-7", None),
        ReleaseRow("Orange Town 01", "2021-03-04", None, None),
        ReleaseRow("Orange Town 02", None, "8-21", "5-8"),
    ]

@pytest.fixture
def lookup_tables(season_rows, episode_rows, release_rows):
    return LookupTables.build(season_rows, episode_rows, release_rows)


def make_show() -> CatalogShow:
    """Two seasons whose items differ from the curated data in known ways."""
    return CatalogShow(id="show1", title="One Pace", seasons=[
        CatalogSeason(id="s1", number=1, title="Romance Dawn", summary="Luffy sets out to sea.", episodes=[
            CatalogEpisode(id="e101", number=1, title="Episode 1", summary="", air_date=None),
            CatalogEpisode(id="e102", number=2, title="Enter Zoro", summary="Luffy frees Zoro.", air_date=None),
        ]),
        CatalogSeason(id="s2", number=2, title="Season 2", summary="", episodes=[
            CatalogEpisode(id="e201", number=1, title="The Great Swordsman Appears", summary="Buggy's crew.", air_date="2021-03-04"),
            CatalogEpisode(id="e202", number=2, title="Episode 2", summary="", air_date=None),
            CatalogEpisode(id="e203", number=3, title="Unknown", summary="", air_date=None),
        ]),
    ])

@pytest.fixture
def catalog_show():
    return make_show()

@pytest.fixture
def fake_catalog(catalog_show):
    return FakeCatalog(catalog_show)

@pytest.fixture
def lookup_source(lookup_tables):
    return FakeLookupSource(lookup_tables)

# tests/test_lookups.py
import logging

import pytest

from onepace_app.lookups import (
    build_season_map, build_season_index, build_episode_lookup, find_release,
    normalize_date, compose_description, LookupTables,
)
from onepace_app.models import SeasonMapRow, EpisodeRow, ReleaseRow, SeasonEntry, EpisodeEntry


def test_build_season_map(season_rows):
    season_map = build_season_map(season_rows + [
        SeasonMapRow(part_number=None, title_key="No Part"),
        SeasonMapRow(part_number=5, title_key=""),
    ])
    assert season_map == {"romance dawn": 1, "orange town": 2, "specials": 0}

def test_build_season_map_keeps_first_duplicate(caplog):
    rows = [SeasonMapRow(1, "Romance Dawn"), SeasonMapRow(4, " romance dawn ")]
    assert build_season_map(rows) == {"romance dawn": 1}
    assert "Duplicate arc title" in caplog.text

def test_build_season_index(season_rows):
    index = build_season_index(season_rows)
    assert index[1] == SeasonEntry(1, "Romance Dawn", "Luffy sets out to sea.")
    assert index[0].title == "Specials"
    assert 99 not in index

def test_build_episode_lookup_skips_unresolvable_rows(season_rows, episode_rows, caplog):
    season_map = build_season_map(season_rows)
    rows = episode_rows + [
        EpisodeRow("Unknown Arc X", 1, "Lost", ""),
        EpisodeRow("Romance Dawn", None, "No Part", ""),
    ]
    lookup = build_episode_lookup(rows, season_map)
    assert lookup["1-1"] == EpisodeEntry("Romance Dawn, the Dawn of an Adventure", "Luffy meets Coby.")
    assert lookup["2-2"].title == "Versus Buggy"
    assert lookup["0-1"].title == "Fan Letter"
    assert len(lookup) == 5
    assert "Arc 'Unknown Arc X' not found in season map" in caplog.text
    assert "has no usable arc_part" in caplog.text


RELEASES = [
    ReleaseRow("Episode 105", "2023-01-01"),
    ReleaseRow("Episode 05", "2021-05-05"),
    ReleaseRow("Episode 15", "2021-06-06"),
]

def test_find_release_matches_zero_padded_token():
    assert find_release(RELEASES, 5).episode_label == "Episode 05"

def test_find_release_does_not_match_inside_longer_numbers():
    assert find_release([ReleaseRow("Episode 105", "2023-01-01")], 5) is None
    assert find_release([ReleaseRow("Episode 050", "2023-01-01")], 5) is None

def test_find_release_prefers_label_with_arc_title(release_rows):
    assert find_release(release_rows, 1, "Orange Town").episode_label == "Orange Town 01"
    assert find_release(release_rows, 1, "Romance Dawn").episode_label == "Romance Dawn 01"
    # Without an arc title the first number match wins
    assert find_release(release_rows, 1).episode_label == "Romance Dawn 01"
    assert find_release(release_rows, 1, "Loguetown").episode_label == "Romance Dawn 01"

def test_find_release_none_when_absent(release_rows):
    assert find_release(release_rows, 9) is None
    assert find_release([], 1) is None


@pytest.mark.parametrize("value, expected", [
    ("2021.01.01", "2021-01-01"),
    ("2021.1.5", "2021-01-05"),
    ("2021-03-04", "2021-03-04"),
    ("2021-03-04T10:00:00Z", "2021-03-04"),
    ("March 4, 2021", "2021-03-04"),
    ("sometime soon", "sometime soon"),
    ("", None),
    (None, None),
])
def test_normalize_date(value, expected):
    assert normalize_date(value) == expected


@pytest.mark.parametrize("release, expected", [
    (None, "Desc."),
    (ReleaseRow("x 01"), "Desc."),
    (ReleaseRow("x 01", chapters="1-3"), "Desc.\n\nManga Chapter(s): 1-3"),
    (ReleaseRow("x 01", source_episodes="1"), "Desc.\n\nAnime Episode(s): 1"),
    (ReleaseRow("x 01", chapters="1-3", source_episodes="1"), "Desc.\n\nManga Chapter(s): 1-3\n\nAnime Episode(s): 1"),
])
def test_compose_description(release, expected):
    assert compose_description("  Desc. ", release) == expected


def test_lookup_tables_accessors(lookup_tables, caplog):
    assert lookup_tables.get_episode(1, 2).title == "Enter Zoro"
    assert lookup_tables.get_episode(1, 9) is None
    assert lookup_tables.get_season(2).title == "Orange Town"
    assert lookup_tables.get_season(5) is None
    assert lookup_tables.find_release(2, 2).episode_label == "Orange Town 02"

def test_lookup_tables_drop_unlabelled_releases(season_rows, episode_rows, caplog):
    caplog.set_level(logging.INFO, logger="onepace_app")
    tables = LookupTables.build(season_rows, episode_rows, [ReleaseRow(""), ReleaseRow("Romance Dawn 01")])
    assert [r.episode_label for r in tables.releases] == ["Romance Dawn 01"]
    assert "Lookups ready: 3 arcs, 5 episodes, 1 release rows." in caplog.text

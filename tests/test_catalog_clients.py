# tests/test_catalog_clients.py
import asyncio
import base64
import json

import pytest
import requests

from onepace_app.exceptions import ConfigError, CatalogFetchFailed, UpdateFailed, ArtworkUploadFailed
from onepace_app.jellyfin_client import JellyfinAdapter
from onepace_app.plex_client import PlexAdapter

PLEX_URL = "http://plex.local:32400"
JELLYFIN_URL = "http://jellyfin.local:8096"


def make_response(status=200, payload=None, content=b"", url=""):
    response = requests.Response()
    response.status_code = status
    response.url = url
    response.encoding = 'utf-8'
    if payload is not None:
        response._content = json.dumps(payload).encode('utf-8')
        response.headers['Content-Type'] = 'application/json'
    else:
        response._content = content
    return response

def route(routes):
    """Session.request side effect answering from a {(method, url): payload} table."""
    def _request(method, url, **kwargs):
        key = (method, url)
        if key not in routes:
            return make_response(404, url=url)
        value = routes[key]
        if isinstance(value, Exception):
            raise value
        return make_response(payload=value, url=url)
    return _request


@pytest.fixture
def plex():
    return PlexAdapter(PLEX_URL, "tok", retry_attempts=3, retry_wait_seconds=0)

@pytest.fixture
def jellyfin():
    return JellyfinAdapter(JELLYFIN_URL, "key", retry_attempts=3, retry_wait_seconds=0)


# --- Plex ---
PLEX_ROUTES = {
    ("GET", f"{PLEX_URL}/library/metadata/10"): {"MediaContainer": {"Metadata": [{"ratingKey": "10", "title": "One Pace"}]}},
    ("GET", f"{PLEX_URL}/library/metadata/10/children"): {"MediaContainer": {"Metadata": [
        {"ratingKey": "99", "title": "All episodes"},
        {"ratingKey": "11", "index": 1, "title": "Season 1", "summary": "Old summary"},
        {"ratingKey": "12", "index": "2", "title": "Season 2"},
    ]}},
    ("GET", f"{PLEX_URL}/library/metadata/11/children"): {"MediaContainer": {"Metadata": [
        {"ratingKey": "111", "index": 1, "title": "Episode 1", "summary": "S", "originallyAvailableAt": "2021-01-01"},
        {"ratingKey": "112", "index": 2, "title": "Episode 2"},
    ]}},
    ("GET", f"{PLEX_URL}/library/metadata/12/children"): {"MediaContainer": {"size": 0}},
}

def test_plex_requires_token():
    with pytest.raises(ConfigError):
        PlexAdapter(PLEX_URL, None)

def test_plex_sends_token_header(plex):
    assert plex.transport.session.headers["X-Plex-Token"] == "tok"
    assert plex.transport.session.headers["Accept"] == "application/json"

def test_plex_fetch_show_tree(plex, mocker):
    mocker.patch("requests.Session.request", side_effect=route(PLEX_ROUTES))
    show = asyncio.run(plex.fetch_show_tree("10"))
    assert show.title == "One Pace"
    assert [s.number for s in show.seasons] == [1, 2]
    season = show.seasons[0]
    assert (season.id, season.title, season.summary) == ("11", "Season 1", "Old summary")
    assert [(e.id, e.number, e.title, e.air_date) for e in season.episodes] == [
        ("111", 1, "Episode 1", "2021-01-01"),
        ("112", 2, "Episode 2", None),
    ]
    assert show.seasons[1].episodes == []

def test_plex_fetch_failure_is_catalog_fetch_failed(plex, mocker):
    mocker.patch("requests.Session.request", side_effect=route({}))
    with pytest.raises(CatalogFetchFailed) as exc_info:
        asyncio.run(plex.fetch_show_tree("10"))
    assert exc_info.value.show_id == "10"

def test_plex_update_item_sends_locked_fields(plex, mocker):
    request = mocker.patch("requests.Session.request", return_value=make_response(200))
    asyncio.run(plex.update_item("111", {"title": "Romance Dawn", "air_date": "2021-01-01"}))
    method, url = request.call_args.args
    assert (method, url) == ("PUT", f"{PLEX_URL}/library/metadata/111")
    assert request.call_args.kwargs["params"] == {
        "title.value": "Romance Dawn", "title.locked": "1",
        "originallyAvailableAt.value": "2021-01-01", "originallyAvailableAt.locked": "1",
    }

def test_plex_update_retries_transient_errors(plex, mocker):
    request = mocker.patch("requests.Session.request", side_effect=[
        requests.exceptions.ConnectionError("reset"),
        make_response(503),
        make_response(200),
    ])
    asyncio.run(plex.update_item("111", {"summary": "New"}))
    assert request.call_count == 3

def test_plex_update_gives_up_after_retry_attempts(plex, mocker):
    request = mocker.patch("requests.Session.request", side_effect=requests.exceptions.Timeout("slow"))
    with pytest.raises(UpdateFailed) as exc_info:
        asyncio.run(plex.update_item("111", {"summary": "New"}))
    assert request.call_count == 3
    assert isinstance(exc_info.value.cause, requests.exceptions.Timeout)

def test_plex_update_does_not_retry_client_errors(plex, mocker):
    request = mocker.patch("requests.Session.request", return_value=make_response(401))
    with pytest.raises(UpdateFailed) as exc_info:
        asyncio.run(plex.update_item("111", {"title": "x"}))
    assert request.call_count == 1
    assert exc_info.value.item_id == "111"

def test_update_rejects_unknown_fields(plex, mocker):
    request = mocker.patch("requests.Session.request")
    with pytest.raises(UpdateFailed):
        asyncio.run(plex.update_item("111", {"rating": "10"}))
    request.assert_not_called()

def test_plex_upload_artwork(plex, mocker, tmp_path):
    poster = tmp_path / "poster.png"
    poster.write_bytes(b"\x89PNG")
    request = mocker.patch("requests.Session.request", return_value=make_response(200))
    asyncio.run(plex.upload_artwork("10", poster))
    assert request.call_args.args == ("POST", f"{PLEX_URL}/library/metadata/10/posters")
    assert request.call_args.kwargs["data"] == b"\x89PNG"

def test_upload_artwork_missing_file(plex, tmp_path):
    with pytest.raises(ArtworkUploadFailed):
        asyncio.run(plex.upload_artwork("10", tmp_path / "nope.png"))

def test_plex_search_returns_only_shows(plex, mocker):
    mocker.patch("requests.Session.request", side_effect=route({
        ("GET", f"{PLEX_URL}/search"): {"MediaContainer": {"Metadata": [
            {"ratingKey": "10", "type": "show", "title": "One Pace", "year": 2019},
            {"ratingKey": "55", "type": "movie", "title": "One Piece Film"},
        ]}},
    }))
    results = asyncio.run(plex.search_shows("one pace"))
    assert [(r.id, r.title, r.year) for r in results] == [("10", "One Pace", 2019)]


# --- Jellyfin ---
JELLYFIN_ROUTES = {
    ("GET", f"{JELLYFIN_URL}/Users"): [{"Id": "u1", "Name": "admin"}, {"Id": "u2", "Name": "guest"}],
    ("GET", f"{JELLYFIN_URL}/Users/u1/Items/show1"): {"Id": "show1", "Name": "One Pace"},
    ("GET", f"{JELLYFIN_URL}/Shows/show1/Seasons"): {"Items": [
        {"Id": "sea1", "IndexNumber": 1, "Name": "Season 1", "Overview": "Old"},
    ]},
    ("GET", f"{JELLYFIN_URL}/Shows/show1/Episodes"): {"Items": [
        {"Id": "ep1", "IndexNumber": 1, "Name": "Episode 1", "PremiereDate": "2021-01-01T00:00:00.0000000Z"},
    ]},
    ("GET", f"{JELLYFIN_URL}/System/Info/Public"): {"ServerName": "home", "Version": "10.9.0"},
}

def test_jellyfin_requires_api_key():
    with pytest.raises(ConfigError):
        JellyfinAdapter(JELLYFIN_URL, "")

def test_jellyfin_fetch_show_tree(jellyfin, mocker):
    request = mocker.patch("requests.Session.request", side_effect=route(JELLYFIN_ROUTES))
    show = asyncio.run(jellyfin.fetch_show_tree("show1"))
    assert jellyfin.user_id == "u1"
    assert show.title == "One Pace"
    episode = show.seasons[0].episodes[0]
    assert (episode.id, episode.number, episode.air_date) == ("ep1", 1, "2021-01-01")
    episode_call = [c for c in request.call_args_list if c.args[1].endswith("/Episodes")][0]
    assert episode_call.kwargs["params"]["SeasonId"] == "sea1"
    assert jellyfin.transport.session.headers["X-Emby-Token"] == "key"

def test_jellyfin_configured_user_skips_lookup(mocker):
    adapter = JellyfinAdapter(JELLYFIN_URL, "key", user_id="u9")
    request = mocker.patch("requests.Session.request")
    assert adapter.resolve_user_id() == "u9"
    request.assert_not_called()

def test_jellyfin_update_merges_into_current_item(jellyfin, mocker):
    jellyfin.user_id = "u1"
    current = {"Id": "ep1", "Name": "Old", "Overview": "", "Genres": ["Anime"], "LockedFields": ["Genres"]}
    request = mocker.patch("requests.Session.request", side_effect=[make_response(payload=current), make_response(204)])
    asyncio.run(jellyfin.update_item("ep1", {"title": "Romance Dawn", "air_date": "2021-01-01"}))

    post = request.call_args_list[1]
    assert post.args == ("POST", f"{JELLYFIN_URL}/Items/ep1")
    body = post.kwargs["json"]
    assert body["Name"] == "Romance Dawn"
    assert body["PremiereDate"] == "2021-01-01T00:00:00.000Z"
    assert body["Genres"] == ["Anime"]
    assert body["LockedFields"] == ["Genres", "Name"]

def test_jellyfin_date_only_update_locks_nothing_new(jellyfin, mocker):
    jellyfin.user_id = "u1"
    current = {"Id": "ep2", "Name": "Enter Zoro", "PremiereDate": None}
    request = mocker.patch("requests.Session.request", side_effect=[make_response(payload=current), make_response(204)])
    asyncio.run(jellyfin.update_item("ep2", {"air_date": "2021-01-01"}))

    body = request.call_args_list[1].kwargs["json"]
    assert body["PremiereDate"] == "2021-01-01T00:00:00.000Z"
    assert body["LockedFields"] == []

def test_jellyfin_upload_artwork_is_base64(jellyfin, mocker, tmp_path):
    poster = tmp_path / "season01-poster.png"
    poster.write_bytes(b"image-bytes")
    request = mocker.patch("requests.Session.request", return_value=make_response(204))
    asyncio.run(jellyfin.upload_artwork("sea1", poster))
    assert request.call_args.args == ("POST", f"{JELLYFIN_URL}/Items/sea1/Images/Primary")
    assert base64.b64decode(request.call_args.kwargs["data"]) == b"image-bytes"

def test_jellyfin_test_connection(jellyfin, mocker):
    mocker.patch("requests.Session.request", side_effect=route(JELLYFIN_ROUTES))
    assert asyncio.run(jellyfin.test_connection()) == "home (Jellyfin 10.9.0)"

def test_jellyfin_search(jellyfin, mocker):
    jellyfin.user_id = "u1"
    request = mocker.patch("requests.Session.request", return_value=make_response(payload={"Items": [
        {"Id": "show1", "Name": "One Pace", "ProductionYear": 2019},
    ]}))
    results = asyncio.run(jellyfin.search_shows("pace"))
    assert [(r.id, r.title, r.year) for r in results] == [("show1", "One Pace", 2019)]
    params = request.call_args.kwargs["params"]
    assert params["SearchTerm"] == "pace"
    assert params["IncludeItemTypes"] == "Series"

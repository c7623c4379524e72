"""Unit tests for the MyAnimeList API client."""

import json
from unittest.mock import patch

import pytest
import requests

from mal_bulk_updater.exceptions import AuthRejected, NotFound, RemoteFailure
from mal_bulk_updater.mal_client import MALClient
from mal_bulk_updater.models import WatchStatus


def make_response(status_code: int = 200, body=None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body).encode() if body is not None else b""
    return response


@pytest.fixture
def mal():
    return MALClient()


def test_search_returns_first_hit(mal):
    """Test the first search result becomes the catalog match."""
    body = {"data": [
        {"node": {"id": 1, "title": "Cowboy Bebop", "num_episodes": 26}},
        {"node": {"id": 5, "title": "Cowboy Bebop: The Movie", "num_episodes": 1}},
    ]}
    with patch.object(mal.session, "request", return_value=make_response(200, body)) as request:
        match = mal.search("bebop", "tok")

    assert match.anime_id == 1
    assert match.matched_title == "Cowboy Bebop"
    assert match.total_episodes == 26

    method, url = request.call_args.args
    assert method == "GET"
    assert url == "https://api.myanimelist.net/v2/anime"
    assert request.call_args.kwargs["params"] == {"q": "bebop", "limit": 1, "fields": "id,title,num_episodes"}
    assert request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"


def test_search_unknown_episode_count_is_zero(mal):
    """Test airing shows without num_episodes plan against zero."""
    body = {"data": [{"node": {"id": 9, "title": "One Piece"}}]}
    with patch.object(mal.session, "request", return_value=make_response(200, body)):
        assert mal.search("one piece", "tok").total_episodes == 0


def test_search_without_results_raises_not_found(mal):
    """Test an empty result set is a NotFound."""
    with patch.object(mal.session, "request", return_value=make_response(200, {"data": []})):
        with pytest.raises(NotFound) as exc_info:
            mal.search("zzz", "tok")

    assert exc_info.value.message == 'No match found for "zzz"'


def test_unauthorized_raises_auth_rejected(mal):
    """Test a 401 is classified as an auth rejection."""
    response = make_response(401, {"error": "invalid_token", "message": "token is invalid"})
    with patch.object(mal.session, "request", return_value=response):
        with pytest.raises(AuthRejected):
            mal.search("bebop", "expired")


def test_other_errors_raise_remote_failure_with_message(mal):
    """Test non-auth errors keep the remote message and status."""
    response = make_response(400, {"error": "bad_request", "message": "invalid q"})
    with patch.object(mal.session, "request", return_value=response):
        with pytest.raises(RemoteFailure) as exc_info:
            mal.search("x", "tok")

    assert exc_info.value.message == "invalid q"
    assert exc_info.value.status_code == 400


def test_transport_error_raises_remote_failure(mal):
    """Test connection failures are reported as RemoteFailure."""
    with patch.object(mal.session, "request", side_effect=requests.ConnectionError("down")):
        with pytest.raises(RemoteFailure, match="down"):
            mal.search("x", "tok")


def test_update_list_status_sends_form_body(mal):
    """Test the PATCH body carries status, episodes and score."""
    with patch.object(mal.session, "request", return_value=make_response(200, {"status": "watching"})) as request:
        mal.update_list_status(21, WatchStatus.WATCHING, 5, "tok", score=8)

    method, url = request.call_args.args
    assert method == "PATCH"
    assert url == "https://api.myanimelist.net/v2/anime/21/my_list_status"
    assert request.call_args.kwargs["data"] == {"status": "watching", "num_watched_episodes": "5", "score": "8"}


def test_update_list_status_omits_missing_score(mal):
    """Test no score field is sent when none was planned."""
    with patch.object(mal.session, "request", return_value=make_response(200, {})) as request:
        mal.update_list_status(21, WatchStatus.COMPLETED, 26, "tok")

    assert "score" not in request.call_args.kwargs["data"]


def test_list_page_first_and_next(mal):
    """Test only the first page sends page size and fields."""
    with patch.object(mal.session, "request", return_value=make_response(200, {"data": []})) as request:
        mal.get_list_page("tok")
        mal.get_list_page("tok", next_url="https://api.myanimelist.net/v2/users/@me/animelist?offset=100")

    first, second = request.call_args_list
    assert first.args[1] == "https://api.myanimelist.net/v2/users/@me/animelist"
    assert first.kwargs["params"]["limit"] == 100
    assert "my_list_status" in first.kwargs["params"]["fields"]
    assert second.args[1].endswith("offset=100")
    assert "params" not in second.kwargs

"""Tests for the web endpoints."""

from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from mal_bulk_updater.exceptions import AuthRejected, NotFound, RemoteFailure
from mal_bulk_updater.models import CatalogMatch
from mal_bulk_updater.oauth import MALOAuth
from mal_bulk_updater.web import create_app


@pytest.fixture
def web_oauth(oauth, settings):
    real = MALOAuth(settings)
    oauth.create_authorization.side_effect = real.create_authorization
    oauth.exchange_code_for_token.return_value = {"access_token": "session-a", "refresh_token": "session-r"}
    return oauth


@pytest.fixture
def api(settings, client, web_oauth, no_sleep):
    client.get_current_user.return_value = {"name": "Spike"}
    return TestClient(create_app(settings, client=client, oauth=web_oauth, sleep=no_sleep))


@pytest.fixture
def anonymous_api(anonymous_settings, client, web_oauth, no_sleep):
    return TestClient(create_app(anonymous_settings, client=client, oauth=web_oauth, sleep=no_sleep))


def login(test_client: TestClient) -> None:
    response = test_client.get("/login", follow_redirects=False)
    state = parse_qs(urlparse(response.headers["location"]).query)["state"][0]
    assert test_client.get("/callback", params={"code": "abc", "state": state}).status_code == 200


def test_dashboard(api):
    response = api.get("/")

    assert response.status_code == 200
    assert "MAL Bulk Updater" in response.text


def test_login_redirects_to_mal(api):
    response = api.get("/login", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"].startswith("https://myanimelist.net/v1/oauth2/authorize?")


def test_callback_stores_session_tokens(api, client, web_oauth):
    login(api)

    verifier = web_oauth.exchange_code_for_token.call_args.args[1]
    assert len(verifier) == 96
    client.get_current_user.assert_called_with("session-a")

    api.post("/preview-shows", json={"shows": ["Bebop"]})
    assert client.search.call_args.args == ("Bebop", "session-a")


def test_callback_page_notifies_opener(api):
    response = api.get("/login", follow_redirects=False)
    state = parse_qs(urlparse(response.headers["location"]).query)["state"][0]

    page = api.get("/callback", params={"code": "abc", "state": state})

    assert "oauth-success" in page.text
    assert '"name": "Spike"' in page.text


def test_callback_requires_state(api):
    response = api.get("/callback", params={"code": "abc"})

    assert response.status_code == 400
    assert response.text == "Missing state"


def test_callback_unknown_state(api):
    response = api.get("/callback", params={"code": "abc", "state": "never-issued"})

    assert response.status_code == 400
    assert response.text == "Missing or mismatched PKCE verifier"


def test_callback_exchange_failure(api, web_oauth):
    web_oauth.exchange_code_for_token.side_effect = RemoteFailure("invalid_grant", status_code=400)
    response = api.get("/login", follow_redirects=False)
    state = parse_qs(urlparse(response.headers["location"]).query)["state"][0]

    page = api.get("/callback", params={"code": "abc", "state": state})

    assert page.status_code == 500
    assert page.text == "Token exchange failed."


def test_me_logged_out(anonymous_api):
    response = anonymous_api.get("/me")

    assert response.json() == {"loggedIn": False}
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"


def test_me_with_fallback_tokens(api):
    assert api.get("/me").json() == {"loggedIn": True, "name": "Spike"}


def test_me_refreshes_rejected_token(api, client, web_oauth):
    client.get_current_user.side_effect = [AuthRejected(), {"username": "faye"}]

    assert api.get("/me").json() == {"loggedIn": True, "name": "faye"}
    web_oauth.refresh_access_token.assert_called_once()


def test_me_failure_reports_logged_out(api, client):
    client.get_current_user.side_effect = RemoteFailure("down", status_code=503)

    assert api.get("/me").json() == {"loggedIn": False}


def test_logout_clears_session_tokens(anonymous_api, client):
    client.get_current_user.return_value = {"name": "Spike"}
    login(anonymous_api)
    assert anonymous_api.get("/me").json()["loggedIn"] is True

    assert anonymous_api.post("/logout").json() == {"success": True}
    assert anonymous_api.get("/me").json() == {"loggedIn": False}


def test_preview_shows(api, client):
    def search(title, token):
        if title == "Nope":
            raise NotFound(title)
        return CatalogMatch(anime_id=7, matched_title="Cowboy Bebop", total_episodes=26)

    client.search.side_effect = search

    response = api.post("/preview-shows", json={"shows": ["Bebop (5) [9]", "Nope", "X [11]"]})

    assert response.status_code == 200
    first, second, third = response.json()["results"]
    assert first == {
        "rawInput": "Bebop (5) [9]",
        "inputTitle": "Bebop",
        "episodeCount": 5,
        "matchedTitle": "Cowboy Bebop",
        "animeId": 7,
        "totalEpisodes": 26,
        "plannedEpisodes": 5,
        "plannedScore": 9,
        "plannedStatus": "watching",
    }
    assert second["error"] == 'No match found for "Nope"'
    assert third["error"] == "Score must be between 1 and 10"


def test_preview_requires_auth(anonymous_api):
    response = anonymous_api.post("/preview-shows", json={"shows": ["Bebop"]})

    assert response.status_code == 401
    assert response.json()["error"].startswith("Authentication required")


def test_preview_unexpected_error(api, client, monkeypatch):
    from mal_bulk_updater import pipeline

    monkeypatch.setattr(pipeline, "parse_show_input", Mock(side_effect=RuntimeError("boom")))

    response = api.post("/preview-shows", json={"shows": ["Bebop"]})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to preview shows."}


def test_add_shows_echoed_matches(api, client):
    preview = api.post("/preview-shows", json={"shows": ["Bebop", "X [11]"]}).json()["results"]
    client.search.reset_mock()

    response = api.post("/add-shows", json={"matches": preview})

    assert response.status_code == 200
    first, second = response.json()["results"]
    assert first == {"title": "BEBOP", "status": "completed", "episodes": 12, "score": None, "total": 12}
    assert second == {"title": "X", "status": "error", "episodes": None, "score": None, "total": None,
                      "error": "Score must be between 1 and 10"}
    client.search.assert_not_called()
    assert client.update_list_status.call_count == 1


def test_add_shows_rejects_out_of_range_score(api, client):
    match = {"inputTitle": "Bebop", "animeId": 1, "plannedEpisodes": 26, "plannedStatus": "completed", "plannedScore": 42}

    response = api.post("/add-shows", json={"matches": [match]})

    assert response.status_code == 422
    client.update_list_status.assert_not_called()


def test_add_shows_raw_lines(api, client):
    response = api.post("/add-shows", json={"shows": ["Bebop (3)"]})

    [result] = response.json()["results"]
    assert result["status"] == "watching"
    assert result["episodes"] == 3
    client.search.assert_called_once()


def test_add_shows_empty(api):
    assert api.post("/add-shows", json={}).json() == {"results": []}


def test_add_shows_requires_auth(anonymous_api):
    response = anonymous_api.post("/add-shows", json={"shows": ["Bebop"]})

    assert response.status_code == 401


def _list_page():
    return {
        "data": [
            {"node": {"id": 1, "title": "Cowboy Bebop", "num_episodes": 26,
                      "my_list_status": {"status": "completed", "num_episodes_watched": 26, "score": 0,
                                         "updated_at": "2024-05-01T10:00:00+00:00"}}},
        ],
        "paging": {},
    }


def test_my_list(api, client):
    client.get_list_page.return_value = _list_page()

    response = api.get("/my-list")

    assert response.json() == {"results": [{
        "id": 1,
        "title": "Cowboy Bebop",
        "status": "completed",
        "watchedEpisodes": 26,
        "totalEpisodes": 26,
        "score": None,
        "updatedAt": "2024-05-01T10:00:00+00:00",
    }]}


def test_my_list_csv_export(api, client):
    client.get_list_page.return_value = _list_page()

    response = api.get("/my-list", params={"format": "csv"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="mal-list.csv"' in response.headers["content-disposition"]
    assert response.text.splitlines()[0] == "id,title,status,watchedEpisodes,totalEpisodes,score,updatedAt"


def test_my_list_requires_auth(anonymous_api):
    assert anonymous_api.get("/my-list").status_code == 401


def test_my_list_remote_failure(api, client):
    client.get_list_page.side_effect = RemoteFailure("down", status_code=503)

    response = api.get("/my-list")

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to load MAL list."}

"""Unit tests for data models."""

import pytest
from mal_bulk_updater.models import (
    ListEntry,
    PlannedUpdate,
    ResultStatus,
    TokenSet,
    UpdateResult,
    WatchStatus,
)


def test_planned_update_accepts_camel_case_payload():
    """Test echoing a preview row back from the browser."""
    item = PlannedUpdate.model_validate({
        "rawInput": "Frieren (12) [9]",
        "inputTitle": "Frieren",
        "episodeCount": 12,
        "matchedTitle": "Sousou no Frieren",
        "animeId": 52991,
        "totalEpisodes": 28,
        "plannedEpisodes": 12,
        "plannedScore": 9,
        "plannedStatus": "watching",
    })

    assert item.anime_id == 52991
    assert item.planned_status == WatchStatus.WATCHING
    assert item.error is None
    assert item.label == "Sousou no Frieren"


def test_planned_update_payload_omits_unset_error():
    """Test serialized preview rows use camelCase and drop an empty error."""
    payload = PlannedUpdate(
        raw_input="Bebop",
        input_title="Bebop",
        matched_title="Cowboy Bebop",
        anime_id=1,
        total_episodes=26,
        planned_episodes=26,
        planned_status=WatchStatus.COMPLETED,
    ).to_payload()

    assert payload["plannedStatus"] == "completed"
    assert payload["plannedScore"] is None
    assert "error" not in payload


def test_error_result_payload_keeps_error():
    """Test error results carry their message."""
    payload = UpdateResult(title="X", status=ResultStatus.ERROR, error="boom").to_payload()

    assert payload == {"title": "X", "status": "error", "episodes": None, "score": None, "total": None, "error": "boom"}


def test_list_entry_defaults():
    """Test list entry defaults for missing upstream fields."""
    entry = ListEntry(id=5)

    assert entry.title == "Untitled"
    assert entry.status == "unknown"
    assert entry.to_payload()["watchedEpisodes"] is None


def test_invalid_planned_status_rejected():
    """Test only watching/completed are valid planned statuses."""
    with pytest.raises(Exception):
        PlannedUpdate(planned_status="dropped")


@pytest.mark.parametrize("score", [0, 11])
def test_planned_score_out_of_range_rejected(score):
    """Test an echoed planned score must be a valid MAL score."""
    with pytest.raises(Exception):
        PlannedUpdate.model_validate({"animeId": 1, "plannedStatus": "completed", "plannedScore": score})


def test_token_set_from_response():
    """Test building token sets from token-endpoint responses."""
    tokens = TokenSet.from_response({"access_token": "a", "refresh_token": "r", "expires_in": 10})
    assert tokens == TokenSet(access_token="a", refresh_token="r")

    assert TokenSet.from_response(None) is None
    assert TokenSet.from_response({"refresh_token": "r"}) is None
    assert TokenSet.from_response({"access_token": "a"}).refresh_token is None

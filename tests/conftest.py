"""Shared fixtures."""

from unittest.mock import Mock

import pytest

from mal_bulk_updater.config import Settings
from mal_bulk_updater.mal_client import MALClient
from mal_bulk_updater.models import CatalogMatch
from mal_bulk_updater.oauth import MALOAuth


@pytest.fixture
def settings(tmp_path):
    """Settings with a fallback token pair and no config file."""
    return Settings(
        config_path=tmp_path / "config.yaml",
        environ={
            "MAL_CLIENT_ID": "client-id",
            "MAL_ACCESS_TOKEN": "access-1",
            "MAL_REFRESH_TOKEN": "refresh-1",
        },
    )


@pytest.fixture
def anonymous_settings(tmp_path):
    """Settings without any token."""
    return Settings(config_path=tmp_path / "config.yaml", environ={"MAL_CLIENT_ID": "client-id"})


@pytest.fixture
def oauth():
    """OAuth helper whose refresh grant hands out access-2 / refresh-2."""
    mock = Mock(spec=MALOAuth)
    mock.refresh_access_token.return_value = {
        "access_token": "access-2",
        "refresh_token": "refresh-2",
        "token_type": "Bearer",
        "expires_in": 2678400,
    }
    return mock


@pytest.fixture
def client():
    """MAL client double; search resolves any title to a 12-episode show."""
    mock = Mock(spec=MALClient)
    mock.search.side_effect = lambda title, token: CatalogMatch(
        anime_id=len(title), matched_title=title.upper(), total_episodes=12
    )
    mock.update_list_status.return_value = {}
    return mock


@pytest.fixture
def no_sleep():
    """Pacing sleep that records its calls instead of waiting."""
    return Mock()

"""MyAnimeList API client."""

import logging
from typing import Optional

from .base_client import BaseAPIClient
from .constants import MAL_API_BASE, SEARCH_FIELDS, SNAPSHOT_FIELDS, SNAPSHOT_PAGE_SIZE
from .exceptions import NotFound
from .models import CatalogMatch, WatchStatus

logger = logging.getLogger(__name__)


class MALClient(BaseAPIClient):
    """Client for MyAnimeList API v2."""

    BASE_URL = MAL_API_BASE

    def __init__(self, base_url: Optional[str] = None):
        """Initialize MAL client."""
        super().__init__(base_url=base_url or self.BASE_URL)

    def search(self, title: str, access_token: str) -> CatalogMatch:
        """Search the catalog and trust the first hit as the match."""
        url = f"{self.base_url}/anime"
        params = {"q": title, "limit": 1, "fields": SEARCH_FIELDS}

        response = self._request("GET", url, access_token, params=params)
        data = response.json().get("data") or []
        node = data[0].get("node") if data else None
        if not node:
            logger.info(f"No MAL match for '{title}'")
            raise NotFound(title)

        return CatalogMatch(
            anime_id=node["id"],
            matched_title=node.get("title") or title,
            total_episodes=node.get("num_episodes") or 0,
        )

    def update_list_status(
        self,
        anime_id: int,
        status: WatchStatus,
        num_watched_episodes: int,
        access_token: str,
        score: Optional[int] = None,
    ) -> dict:
        """Set the list status of one anime on the user's list."""
        url = f"{self.base_url}/anime/{anime_id}/my_list_status"
        data = {
            "status": WatchStatus(status).value,
            "num_watched_episodes": str(num_watched_episodes),
        }
        if score is not None:
            data["score"] = str(score)

        response = self._request("PATCH", url, access_token, data=data)
        logger.info(f"Updated MAL entry {anime_id}: {data['status']} ({num_watched_episodes} eps)")
        return response.json() if response.content else {}

    def get_list_page(self, access_token: str, next_url: Optional[str] = None) -> dict:
        """Fetch one page of the user's anime list.

        The first page carries the page size and field projection; later pages
        follow the opaque ``paging.next`` URL as-is.
        """
        if next_url:
            response = self._request("GET", next_url, access_token)
        else:
            url = f"{self.base_url}/users/@me/animelist"
            params = {"limit": SNAPSHOT_PAGE_SIZE, "fields": SNAPSHOT_FIELDS}
            response = self._request("GET", url, access_token, params=params)
        return response.json()

    def get_current_user(self, access_token: str) -> dict:
        """Fetch the authenticated user's profile."""
        url = f"{self.base_url}/users/@me"
        response = self._request("GET", url, access_token, params={"fields": "name,username"})
        return response.json()

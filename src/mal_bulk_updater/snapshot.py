"""Paginated snapshot of the user's MyAnimeList list, and its file export."""

import csv
import io
import json
import logging
import time
from typing import Callable, Iterable, Optional

from .constants import (
    DEFAULT_SNAPSHOT_MAX_ITEMS,
    DEFAULT_SNAPSHOT_MAX_PAGES,
    PACING_INTERVAL_SECONDS,
    ExportFormat,
)
from .mal_client import MALClient
from .models import ListEntry
from .session import TokenSession

logger = logging.getLogger(__name__)

EXPORT_FIELDS = ["id", "title", "status", "watchedEpisodes", "totalEpisodes", "score", "updatedAt"]


def _int_or_none(value) -> Optional[int]:
    # bool is an int subclass; MAL never sends one here
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def normalize_entry(item: dict) -> ListEntry:
    """Normalize one ``data[]`` element of the animelist response."""
    node = (item or {}).get("node") or {}
    list_status = node.get("my_list_status") or (item or {}).get("list_status") or {}

    score = _int_or_none(list_status.get("score"))
    return ListEntry(
        id=node.get("id"),
        title=node.get("title") or "Untitled",
        status=list_status.get("status") or "unknown",
        watched_episodes=_int_or_none(list_status.get("num_episodes_watched")),
        total_episodes=_int_or_none(node.get("num_episodes")),
        # 0 means unscored upstream
        score=score if score and score > 0 else None,
        updated_at=list_status.get("updated_at") or None,
    )


class ListSnapshotFetcher:
    """Collects the user's list page by page, bounded by page and item caps."""

    def __init__(
        self,
        client: MALClient,
        token_session: TokenSession,
        max_pages: int = DEFAULT_SNAPSHOT_MAX_PAGES,
        max_items: int = DEFAULT_SNAPSHOT_MAX_ITEMS,
        pacing_interval: float = PACING_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.tokens = token_session
        self.max_pages = max_pages
        self.max_items = max_items
        self.pacing_interval = pacing_interval
        self.sleep = sleep

    def snapshot(self) -> list[ListEntry]:
        """Fetch the list; any page failure aborts the snapshot."""
        self.tokens.ensure_access_token()

        collected: list[ListEntry] = []
        next_url = None
        pages_fetched = 0

        while pages_fetched < self.max_pages and len(collected) < self.max_items:
            page_url = next_url
            data = self.tokens.with_auth_retry(lambda token: self.client.get_list_page(token, next_url=page_url))
            pages_fetched += 1

            for item in data.get("data") or []:
                collected.append(normalize_entry(item))
                if len(collected) >= self.max_items:
                    break

            next_url = (data.get("paging") or {}).get("next")
            logger.debug(f"Fetched list page {pages_fetched} ({len(collected)} entries so far)")
            if not next_url or len(collected) >= self.max_items or pages_fetched >= self.max_pages:
                break
            self.sleep(self.pacing_interval)

        logger.info(f"Fetched {len(collected)} anime entries from MyAnimeList ({pages_fetched} pages)")
        return collected


def export_entries(entries: Iterable[ListEntry], fmt: str) -> str:
    """Serialize a snapshot as JSON or CSV text."""
    fmt = ExportFormat(fmt)
    rows = [entry.to_payload() for entry in entries]

    if fmt == ExportFormat.JSON:
        return json.dumps(rows, indent=2, ensure_ascii=False)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({key: "" if row.get(key) is None else row[key] for key in EXPORT_FIELDS})
    return buffer.getvalue()

"""Preview and confirm pipelines for bulk list updates."""

import logging
import time
from typing import Callable, Iterable, Optional, Sequence

from .constants import PACING_INTERVAL_SECONDS
from .exceptions import AuthRequired, MALError, ValidationError
from .mal_client import MALClient
from .models import PlannedUpdate, ResultStatus, UpdateResult
from .parser import parse_show_input, validate_intent
from .planner import compute_plan
from .session import TokenSession

logger = logging.getLogger(__name__)


def error_message(error: Exception) -> str:
    """Message to report for a failed item."""
    if isinstance(error, MALError):
        return error.message
    return str(error) or error.__class__.__name__


class PreviewPipeline:
    """Resolves pasted show lines against the MAL catalog without changing anything."""

    def __init__(
        self,
        client: MALClient,
        token_session: TokenSession,
        pacing_interval: float = PACING_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.tokens = token_session
        self.pacing_interval = pacing_interval
        self.sleep = sleep

    def preview(self, raw_lines: Iterable[str]) -> list[PlannedUpdate]:
        """Build one PlannedUpdate (or error item) per input line, in input order."""
        self.tokens.ensure_access_token()

        preview = []
        for raw in raw_lines:
            parsed = parse_show_input(raw)

            try:
                validate_intent(parsed)
            except ValidationError as e:
                preview.append(PlannedUpdate(
                    raw_input=raw,
                    input_title=parsed.title or raw,
                    episode_count=parsed.episode_count,
                    error=e.message,
                ))
                continue

            try:
                match = self.tokens.with_auth_retry(lambda token: self.client.search(parsed.title, token))
                plan = compute_plan(parsed.episode_count, match.total_episodes)
                preview.append(PlannedUpdate(
                    raw_input=raw,
                    input_title=parsed.title,
                    episode_count=parsed.episode_count,
                    matched_title=match.matched_title,
                    anime_id=match.anime_id,
                    total_episodes=match.total_episodes,
                    planned_episodes=plan.watched_episodes,
                    planned_score=parsed.score,
                    planned_status=plan.status,
                ))
            except AuthRequired:
                raise
            except Exception as e:
                logger.warning(f"Preview failed for '{parsed.title}': {error_message(e)}")
                preview.append(PlannedUpdate(
                    raw_input=raw,
                    input_title=parsed.title,
                    episode_count=parsed.episode_count,
                    error=error_message(e),
                ))

            self.sleep(self.pacing_interval)

        matched = sum(1 for item in preview if not item.error)
        logger.info(f"Preview: {matched}/{len(preview)} lines matched")
        return preview


class UpdatePipeline:
    """Applies planned updates to the user's MAL list, one item at a time."""

    def __init__(
        self,
        client: MALClient,
        token_session: TokenSession,
        preview_pipeline: Optional[PreviewPipeline] = None,
        pacing_interval: float = PACING_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.tokens = token_session
        self.preview_pipeline = preview_pipeline or PreviewPipeline(
            client, token_session, pacing_interval=pacing_interval, sleep=sleep
        )
        self.pacing_interval = pacing_interval
        self.sleep = sleep

    def confirm(
        self,
        planned_updates: Optional[Sequence[PlannedUpdate]] = None,
        raw_lines: Optional[Sequence[str]] = None,
    ) -> list[UpdateResult]:
        """Apply each planned update; recompute the plan from raw lines if none is given."""
        self.tokens.ensure_access_token()

        items = list(planned_updates or [])
        if not items:
            if not raw_lines:
                return []
            items = self.preview_pipeline.preview(raw_lines)

        results = []
        summary = {"updated": 0, "skipped": 0, "failed": 0}

        for item in items:
            if item.error:
                summary["skipped"] += 1
                results.append(UpdateResult(
                    title=item.input_title or item.raw_input or "",
                    status=ResultStatus.ERROR,
                    error=item.error,
                ))
                continue

            try:
                results.append(self.tokens.with_auth_retry(lambda token: self._apply_update(item, token)))
                summary["updated"] += 1
            except AuthRequired:
                raise
            except Exception as e:
                logger.error(f"Failed to update MAL entry {item.label}: {error_message(e)}")
                summary["failed"] += 1
                results.append(UpdateResult(
                    title=item.label,
                    status=ResultStatus.ERROR,
                    error=error_message(e),
                ))

            self.sleep(self.pacing_interval)

        logger.info(
            f"Summary: attempted={len(items)}, updated={summary['updated']}, "
            f"skipped={summary['skipped']}, failed={summary['failed']}"
        )
        return results

    def _apply_update(self, item: PlannedUpdate, access_token: str) -> UpdateResult:
        """Send one list-status update and describe what was applied."""
        if item.anime_id is None or item.planned_status is None:
            raise MALError("Planned update has no matched anime")

        episodes = item.planned_episodes if item.planned_episodes is not None else 0
        self.client.update_list_status(
            item.anime_id,
            item.planned_status,
            episodes,
            access_token,
            score=item.planned_score,
        )
        return UpdateResult(
            title=item.label,
            status=ResultStatus(item.planned_status.value),
            episodes=item.planned_episodes,
            score=item.planned_score,
            total=item.total_episodes or None,
        )

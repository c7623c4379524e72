"""Parsing of free-text show lines into structured intents.

A line looks like ``Title (episodes) [score]`` where both annotations are
optional, e.g. ``Frieren (12) [9]`` or ``Cowboy Bebop``.
"""

import logging
import re

from .constants import EMPTY_TITLE_ERROR, SCORE_MAX, SCORE_MIN, SCORE_RANGE_ERROR
from .exceptions import ValidationError
from .models import ParsedShowIntent

logger = logging.getLogger(__name__)

SCORE_PATTERN = re.compile(r"\[(\d{1,2})\]\s*$")
EPISODE_PATTERN = re.compile(r"^(.+?)\s*\((\d+)\)\s*$")


def parse_show_input(raw: str) -> ParsedShowIntent:
    """Parse one raw line into title, episode count and score."""
    working = raw.strip()
    score = None
    score_error = None

    score_match = SCORE_PATTERN.search(working)
    if score_match:
        candidate = int(score_match.group(1))
        if SCORE_MIN <= candidate <= SCORE_MAX:
            score = candidate
        else:
            score_error = SCORE_RANGE_ERROR
        # Strip the annotation either way so the title still parses
        working = working[: score_match.start()].strip()

    episode_match = EPISODE_PATTERN.match(working)
    if episode_match:
        title = episode_match.group(1).strip()
        episode_count = int(episode_match.group(2))
    else:
        title = working.strip()
        episode_count = None

    logger.debug(f"Parsed {raw!r}: title={title!r} episodes={episode_count} score={score}")
    return ParsedShowIntent(
        raw_input=raw,
        title=title,
        episode_count=episode_count,
        score=score,
        score_error=score_error,
    )


def validate_intent(parsed: ParsedShowIntent) -> None:
    """Raise ValidationError when an intent must not reach the catalog."""
    if parsed.score_error:
        raise ValidationError(parsed.score_error)
    if not parsed.title:
        raise ValidationError(EMPTY_TITLE_ERROR)


def split_show_lines(text: str) -> list[str]:
    """Split pasted text into trimmed, non-empty lines."""
    return [line.strip() for line in text.splitlines() if line.strip()]

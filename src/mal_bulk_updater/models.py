"""Data models exchanged between the parser, the pipelines and the web layer."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WatchStatus(str, Enum):
    """List status written to MyAnimeList."""

    WATCHING = "watching"
    COMPLETED = "completed"


class ResultStatus(str, Enum):
    """Outcome of applying one planned update."""

    WATCHING = "watching"
    COMPLETED = "completed"
    ERROR = "error"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for the browser."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """Dump to a JSON-ready dict, leaving out an unset error."""
        payload = self.model_dump(mode="json", by_alias=True)
        if payload.get("error") is None:
            payload.pop("error", None)
        return payload


class ParsedShowIntent(CamelModel):
    """Structured form of one pasted show line."""

    raw_input: str
    title: str
    episode_count: Optional[int] = None
    score: Optional[int] = Field(None, ge=1, le=10)
    score_error: Optional[str] = None


class CatalogMatch(CamelModel):
    """First search hit for a title."""

    anime_id: int
    matched_title: str
    total_episodes: int = Field(default=0, ge=0)


class PlanResult(BaseModel):
    """Target episode count and status for one show."""

    watched_episodes: int = Field(ge=0)
    status: WatchStatus


class PlannedUpdate(CamelModel):
    """One preview row; echoed back by the browser on confirm."""

    raw_input: Optional[str] = None
    input_title: Optional[str] = None
    episode_count: Optional[int] = None
    matched_title: Optional[str] = None
    anime_id: Optional[int] = None
    total_episodes: Optional[int] = None
    planned_episodes: Optional[int] = None
    planned_score: Optional[int] = Field(None, ge=1, le=10)
    planned_status: Optional[WatchStatus] = None
    error: Optional[str] = None

    @property
    def label(self) -> str:
        """Best available title for reporting."""
        return self.matched_title or self.input_title or self.raw_input or ""


class UpdateResult(CamelModel):
    """Outcome of one confirm item."""

    title: str
    status: ResultStatus
    episodes: Optional[int] = None
    score: Optional[int] = None
    total: Optional[int] = None
    error: Optional[str] = None


class ListEntry(CamelModel):
    """Normalized entry of the user's MyAnimeList list."""

    id: Optional[int] = None
    title: str = "Untitled"
    status: str = "unknown"
    watched_episodes: Optional[int] = None
    total_episodes: Optional[int] = None
    score: Optional[int] = None
    updated_at: Optional[str] = None


class TokenSet(BaseModel):
    """OAuth token pair owned by one session (or the fallback config)."""

    access_token: str
    refresh_token: Optional[str] = None

    @classmethod
    def from_response(cls, data: Optional[dict]) -> Optional["TokenSet"]:
        """Build a token set from a token-endpoint response or stored session value."""
        if not data or not data.get("access_token"):
            return None
        return cls(access_token=data["access_token"], refresh_token=data.get("refresh_token") or None)

"""Constants used throughout the application."""

from enum import Enum


class ExportFormat(str, Enum):
    """Supported list export formats."""

    JSON = "json"
    CSV = "csv"


# HTTP Status Codes
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429
HTTP_INTERNAL_ERROR = 500

# MyAnimeList endpoints
MAL_AUTH_URL = "https://myanimelist.net/v1/oauth2/authorize"
MAL_TOKEN_URL = "https://myanimelist.net/v1/oauth2/token"
MAL_API_BASE = "https://api.myanimelist.net/v2"

# Pipeline defaults
PACING_INTERVAL_SECONDS = 0.35
SNAPSHOT_PAGE_SIZE = 100
DEFAULT_SNAPSHOT_MAX_PAGES = 5
DEFAULT_SNAPSHOT_MAX_ITEMS = 400
SNAPSHOT_FIELDS = "id,title,num_episodes,my_list_status{status,num_episodes_watched,score,updated_at}"
SEARCH_FIELDS = "id,title,num_episodes"

# Parsing
SCORE_MIN = 1
SCORE_MAX = 10
SCORE_RANGE_ERROR = "Score must be between 1 and 10"
EMPTY_TITLE_ERROR = "Title is empty"

# Session / OAuth
SESSION_COOKIE_NAME = "session"
SESSION_MAX_AGE_SECONDS = 24 * 60 * 60  # 24 hours
VERIFIER_TTL_SECONDS = 10 * 60
REFRESH_CACHE_TTL_SECONDS = 60
CODE_VERIFIER_LENGTH = 96
PKCE_ALLOWED_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
DEFAULT_WEB_UI_PORT = 3000

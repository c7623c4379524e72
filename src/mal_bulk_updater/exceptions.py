"""Error taxonomy shared by the client, the token session and the pipelines."""

from typing import Optional

from .constants import HTTP_NOT_FOUND, HTTP_UNAUTHORIZED


class MALError(Exception):
    """Base class for every failure the update pipeline knows how to report."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthRequired(MALError):
    """No access token is available from the session or the fallback pair."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=HTTP_UNAUTHORIZED)


class AuthRejected(MALError):
    """MyAnimeList rejected the bearer token (HTTP 401)."""

    def __init__(self, message: str = "Access token was rejected", status_code: int = HTTP_UNAUTHORIZED):
        super().__init__(message, status_code=status_code)


class NoRefreshToken(MALError):
    """A refresh was requested but no refresh token is held."""

    def __init__(self, message: str = "No refresh token"):
        super().__init__(message)


class NotFound(MALError):
    """The catalog search returned no results for a title."""

    def __init__(self, title: str):
        super().__init__(f'No match found for "{title}"', status_code=HTTP_NOT_FOUND)
        self.title = title


class ValidationError(MALError):
    """A show line could not be turned into a usable intent."""


class RemoteFailure(MALError):
    """Any other non-2xx response or transport error from MyAnimeList."""


def is_auth_rejection(error: BaseException) -> bool:
    """Return True when an error means the remote refused our token."""
    return isinstance(error, AuthRejected)

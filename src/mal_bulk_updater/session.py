"""Token ownership and the refresh-once-and-retry wrapper used by every remote call."""

import logging
import threading
import time
from typing import Callable, MutableMapping, Optional, TypeVar

from .config import Settings
from .constants import REFRESH_CACHE_TTL_SECONDS
from .exceptions import AuthRequired, NoRefreshToken, is_auth_rejection
from .models import TokenSet
from .oauth import MALOAuth

logger = logging.getLogger(__name__)

T = TypeVar("T")

SESSION_TOKENS_KEY = "tokens"

# Serializes refreshes of the process-wide fallback pair
_FALLBACK_LOCK = threading.Lock()


class RefreshRegistry:
    """Serializes refresh grants per refresh token across requests.

    Concurrent requests from one browser session each see their own copy of
    the cookie, so they are correlated by the refresh token they are about to
    spend. The first caller performs the grant; callers waiting on the same
    token adopt its result for ``ttl_seconds`` instead of spending a refresh
    token MAL has already rotated.
    """

    def __init__(self, ttl_seconds: float = REFRESH_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._refreshed: dict[str, tuple[TokenSet, float]] = {}

    def refresh(self, refresh_token: str, grant: Callable[[], TokenSet]) -> TokenSet:
        """Return the pair that replaces ``refresh_token``, calling ``grant`` at most once."""
        with self._guard:
            self._purge()
            lock = self._locks.setdefault(refresh_token, threading.Lock())

        with lock:
            with self._guard:
                cached = self._refreshed.get(refresh_token)
            if cached:
                logger.debug("Refresh token already spent by a concurrent request, adopting its result")
                return cached[0]

            new_tokens = grant()
            with self._guard:
                self._refreshed[refresh_token] = (new_tokens, self._clock() + self.ttl_seconds)
            return new_tokens

    def _purge(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._refreshed.items() if expires_at <= now]
        for key in expired:
            del self._refreshed[key]
            self._locks.pop(key, None)


# Used by sessions built without an explicit registry
_DEFAULT_REGISTRY = RefreshRegistry()


class TokenSession:
    """Owns the current token pair for one request.

    Tokens come from the cookie session when one is attached and holds them,
    otherwise from the configured fallback pair. A refresh writes the new pair
    back to whichever of the two it was read from.
    """

    def __init__(
        self,
        settings: Settings,
        oauth: Optional[MALOAuth] = None,
        store: Optional[MutableMapping] = None,
        registry: Optional[RefreshRegistry] = None,
    ):
        self.settings = settings
        self.oauth = oauth or MALOAuth(settings)
        self.store = store
        self.registry = registry or _DEFAULT_REGISTRY

    def _session_tokens(self) -> Optional[TokenSet]:
        if self.store is None:
            return None
        return TokenSet.from_response(self.store.get(SESSION_TOKENS_KEY))

    @property
    def tokens(self) -> Optional[TokenSet]:
        """Currently held token pair, if any."""
        return self._session_tokens() or self.settings.fallback_tokens

    def ensure_access_token(self) -> str:
        """Return the current access token or raise AuthRequired."""
        tokens = self.tokens
        if not tokens or not tokens.access_token:
            raise AuthRequired()
        return tokens.access_token

    def _grant(self, tokens: TokenSet) -> TokenSet:
        token_data = self.oauth.refresh_access_token(tokens.refresh_token)
        return TokenSet(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token") or tokens.refresh_token,
        )

    def refresh(self, rejected_token: Optional[str] = None) -> str:
        """Exchange the refresh token for a new pair and return the new access token.

        When ``rejected_token`` is given and the held token already differs
        from it, another caller refreshed in the meantime and its token is
        reused.
        """
        session_tokens = self._session_tokens()

        if session_tokens is None:
            with _FALLBACK_LOCK:
                tokens = self.settings.fallback_tokens
                if not tokens or not tokens.refresh_token:
                    raise NoRefreshToken()
                if rejected_token and tokens.access_token != rejected_token:
                    logger.debug("Token already refreshed by another call, reusing it")
                    return tokens.access_token
                self.settings.fallback_tokens = self._grant(tokens)
                return self.settings.fallback_tokens.access_token

        if not session_tokens.refresh_token:
            raise NoRefreshToken()
        if rejected_token and session_tokens.access_token != rejected_token:
            logger.debug("Token already refreshed by another call, reusing it")
            return session_tokens.access_token

        new_tokens = self.registry.refresh(session_tokens.refresh_token, lambda: self._grant(session_tokens))
        self.store[SESSION_TOKENS_KEY] = new_tokens.model_dump()
        return new_tokens.access_token

    def with_auth_retry(
        self,
        action: Callable[[str], T],
        is_auth_failure: Callable[[BaseException], bool] = is_auth_rejection,
    ) -> T:
        """Run ``action(token)``, refreshing once and retrying on an auth rejection.

        Any other failure, a failed refresh, or a failure of the retried call
        propagates unchanged.
        """
        token = self.ensure_access_token()
        try:
            return action(token)
        except Exception as e:
            if not is_auth_failure(e):
                raise
            logger.info("Access token rejected, refreshing and retrying once")

        new_token = self.refresh(rejected_token=token)
        return action(new_token)

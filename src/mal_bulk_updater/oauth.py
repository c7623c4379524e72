"""OAuth authentication helpers for MyAnimeList (authorization code + PKCE)."""

import base64
import hashlib
import logging
import secrets
import threading
import time
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Callable, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import requests

from .base_client import remote_error_message
from .config import Settings
from .constants import CODE_VERIFIER_LENGTH, PKCE_ALLOWED_CHARS, VERIFIER_TTL_SECONDS
from .exceptions import RemoteFailure

logger = logging.getLogger(__name__)


def base64url(data: bytes) -> str:
    """Unpadded URL-safe base64."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_code_verifier(length: int = CODE_VERIFIER_LENGTH) -> str:
    """Random verifier drawn from the RFC 7636 unreserved alphabet."""
    return "".join(secrets.choice(PKCE_ALLOWED_CHARS) for _ in range(length))


def code_challenge_for(verifier: str, method: str) -> str:
    """Derive the PKCE challenge for a verifier."""
    if method == "plain":
        return verifier
    return base64url(hashlib.sha256(verifier.encode("ascii")).digest())


class VerifierStore:
    """Short-lived state -> code verifier mapping.

    Correlates the authorization redirect with its callback independently of
    whether the session cookie survived the round trip.
    """

    def __init__(self, ttl_seconds: float = VERIFIER_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def put(self, state: str, verifier: str) -> None:
        with self._lock:
            self._purge()
            self._entries[state] = (verifier, self._clock() + self.ttl_seconds)

    def get(self, state: str) -> Optional[str]:
        with self._lock:
            self._purge()
            entry = self._entries.get(state)
            return entry[0] if entry else None

    def pop(self, state: str) -> Optional[str]:
        with self._lock:
            self._purge()
            entry = self._entries.pop(state, None)
            return entry[0] if entry else None

    def __len__(self) -> int:
        with self._lock:
            self._purge()
            return len(self._entries)

    def _purge(self) -> None:
        now = self._clock()
        expired = [state for state, (_, expires_at) in self._entries.items() if expires_at <= now]
        for state in expired:
            del self._entries[state]


class MALOAuth:
    """OAuth flow for MAL with PKCE."""

    def __init__(self, settings: Settings):
        """Initialize MAL OAuth."""
        self.settings = settings

    def create_authorization(self) -> tuple[str, str, str]:
        """Get authorization URL, state, and code verifier."""
        state = base64url(secrets.token_bytes(16))
        code_verifier = generate_code_verifier()
        method = self.settings.pkce_method

        params = {
            "response_type": "code",
            "client_id": self.settings.mal_client_id,
            "redirect_uri": self.settings.redirect_uri,
            "code_challenge": code_challenge_for(code_verifier, method),
            "code_challenge_method": method,
            "state": state,
        }

        url = f"{self.settings.mal_auth_url}?{urlencode(params)}"
        logger.info(f"Issued OAuth state={state} (verifier length {len(code_verifier)}, method {method})")
        return url, state, code_verifier

    def _client_params(self) -> dict:
        """Client credentials; the secret is only sent for confidential clients."""
        params = {"client_id": self.settings.mal_client_id}
        if self.settings.has_client_secret:
            params["client_secret"] = self.settings.mal_client_secret
        return params

    def _token_request(self, data: dict) -> dict:
        """POST to the token endpoint and return the token response."""
        try:
            response = requests.post(
                self.settings.mal_token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=30,
            )
        except requests.RequestException as e:
            raise RemoteFailure(str(e)) from e

        if response.status_code != 200:
            logger.error(f"Token request failed: {response.status_code}")
            logger.debug(f"Response: {response.text}")
            raise RemoteFailure(
                remote_error_message(response, f"Token request failed (HTTP {response.status_code})"),
                status_code=response.status_code,
            )

        return response.json()

    def exchange_code_for_token(self, code: str, code_verifier: str) -> dict:
        """Exchange authorization code for access token."""
        data = {
            **self._client_params(),
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.redirect_uri,
            "code_verifier": code_verifier,
        }

        logger.debug(f"Sending token request to {self.settings.mal_token_url}")
        return self._token_request(data)

    def refresh_access_token(self, refresh_token: str) -> dict:
        """Refresh access token using refresh token."""
        data = {
            **self._client_params(),
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }

        logger.info("Refreshing MAL access token...")
        token_data = self._token_request(data)
        logger.info("MAL access token refreshed successfully")
        return token_data


CALLBACK_PAGE = (
    "<!doctype html><html><head><title>MAL Bulk Updater</title></head>"
    "<body><p>{message}</p><script>setTimeout(function() {{ window.close(); }}, 1000);</script>"
    "</body></html>"
)


class OAuthCallbackHandler(BaseHTTPRequestHandler):
    """Captures ``code`` and ``state`` from the redirect into ``server.callback_params``."""

    def do_GET(self):
        request = urlparse(self.path)
        if request.path != self.server.callback_path:
            self.send_error(404)
            return

        query = parse_qs(request.query)
        self.server.callback_params = {key: values[0] for key, values in query.items() if values}

        message = "Authorized. You can return to the terminal." if "code" in query else "Authorization failed."
        body = CALLBACK_PAGE.format(message=message).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug(f"OAuth callback server: {format % args}")


def run_oauth_flow(settings: Settings) -> Optional[dict]:
    """Run the PKCE flow against a one-shot local callback server.

    Returns the token response, or None if the flow failed.
    """
    oauth = MALOAuth(settings)
    auth_url, expected_state, code_verifier = oauth.create_authorization()

    redirect = urlparse(settings.redirect_uri)
    server = HTTPServer((redirect.hostname or "localhost", redirect.port or 80), OAuthCallbackHandler)
    server.callback_path = redirect.path or "/"
    server.callback_params = {}

    print(f"Authorize this app in your browser. If nothing opens, visit:\n{auth_url}\n")
    webbrowser.open(auth_url)
    print(f"Listening for the MAL redirect on {settings.redirect_uri} ...")

    try:
        # Ignore stray requests (favicon and the like) until the redirect arrives
        while not server.callback_params:
            server.handle_request()
    finally:
        server.server_close()

    params = server.callback_params
    if params.get("state") != expected_state:
        logger.error("OAuth state did not match the authorization request")
        return None
    if "code" not in params:
        logger.error(f"MAL denied authorization: {params.get('error', 'no code returned')}")
        return None

    try:
        return oauth.exchange_code_for_token(params["code"], code_verifier)
    except RemoteFailure as e:
        logger.error(f"Token exchange failed: {e.message}")
        return None

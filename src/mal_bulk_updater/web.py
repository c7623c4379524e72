"""
Web UI for MAL Bulk Updater
Serves the OAuth front door and the preview / confirm / list-snapshot endpoints.
"""

import json
import logging
import time
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, Field
from starlette.middleware.sessions import SessionMiddleware

from .config import Settings, get_settings
from .constants import (
    HTTP_BAD_REQUEST,
    HTTP_INTERNAL_ERROR,
    HTTP_UNAUTHORIZED,
    SESSION_COOKIE_NAME,
    ExportFormat,
)
from .exceptions import AuthRequired
from .mal_client import MALClient
from .models import PlannedUpdate
from .oauth import MALOAuth, VerifierStore
from .pipeline import PreviewPipeline, UpdatePipeline
from .session import SESSION_TOKENS_KEY, RefreshRegistry, TokenSession
from .snapshot import ListSnapshotFetcher, export_entries

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

EXPORT_MEDIA_TYPES = {
    ExportFormat.JSON: "application/json",
    ExportFormat.CSV: "text/csv",
}


class ShowsRequest(BaseModel):
    """Preview request body"""
    shows: list[str] = Field(default_factory=list)


class AddShowsRequest(BaseModel):
    """Confirm request body: echoed preview rows, or raw lines to preview first"""
    shows: list[str] = Field(default_factory=list)
    matches: list[PlannedUpdate] = Field(default_factory=list)


DASHBOARD_HTML = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>MAL Bulk Updater</title>
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
            background: #0b0f14;
            color: #e6edf3;
            min-height: 100vh;
            padding: 20px;
        }
        .container { max-width: 960px; margin: 0 auto; }
        .card { background: #111821; border-radius: 12px; padding: 25px; margin-bottom: 20px; }
        textarea { width: 100%; height: 220px; font-family: monospace; padding: 12px; }
        .btn {
            padding: 10px 20px;
            background: #2e51a2;
            color: white;
            border: none;
            border-radius: 6px;
            cursor: pointer;
            margin: 10px 10px 0 0;
        }
        pre { white-space: pre-wrap; font-size: 13px; }
        a { color: #9fb0c0; }
    </style>
</head>
<body>
    <div class="container">
        <div class="card">
            <h1>MAL Bulk Updater</h1>
            <p id="me">Checking login...</p>
            <button class="btn" onclick="login()">Log in with MAL</button>
            <button class="btn" onclick="logout()">Log out</button>
        </div>
        <div class="card">
            <p>One show per line: <code>Title (episodes) [score]</code></p>
            <textarea id="shows" placeholder="Frieren (12) [9]"></textarea>
            <button class="btn" onclick="preview()">Preview</button>
            <button class="btn" onclick="apply()">Apply</button>
            <pre id="output"></pre>
        </div>
        <div class="card">
            <h2>My list</h2>
            <a href="/my-list?format=json">Export JSON</a> | <a href="/my-list?format=csv">Export CSV</a>
        </div>
    </div>
    <script>
        let matches = [];
        const lines = () => document.getElementById('shows').value.split('\\n').map(s => s.trim()).filter(Boolean);
        const show = (data) => { document.getElementById('output').textContent = JSON.stringify(data, null, 2); };

        async function post(path, body) {
            const r = await fetch(path, {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify(body),
                credentials: 'include'
            });
            return r.json();
        }
        async function preview() {
            const data = await post('/preview-shows', { shows: lines() });
            matches = data.results || [];
            show(data);
        }
        async function apply() {
            show(await post('/add-shows', { shows: lines(), matches }));
            matches = [];
        }
        async function loadMe() {
            const r = await fetch('/me', { credentials: 'include' });
            const data = await r.json();
            document.getElementById('me').textContent = data.loggedIn ? `Logged in as ${data.name}` : 'Not logged in';
        }
        function login() { window.open('/login', 'mal_oauth', 'width=520,height=640'); }
        async function logout() { await post('/logout', {}); loadMe(); }
        window.addEventListener('message', (e) => { if (e.data && e.data.type === 'oauth-success') loadMe(); });
        window.addEventListener('DOMContentLoaded', loadMe);
    </script>
</body>
</html>
"""

CALLBACK_HTML = """<!doctype html><html><head><title>Auth Complete</title></head>
<body style="background:#0b0f14;color:#e6edf3;font-family:ui-sans-serif,system-ui;display:flex;align-items:center;justify-content:center;height:100vh;margin:0;">
<div style="text-align:center;">
  <div style="margin-bottom:20px;">Authentication complete!</div>
  <div style="font-size:14px;color:#9fb0c0;">This window will close automatically...</div>
</div>
<script>
  (function() {
    try {
      if (window.opener && !window.opener.closed) {
        window.opener.postMessage({ type: 'oauth-success', userData: __USER_DATA__ }, '*');
        setTimeout(function() { window.close(); }, 1000);
      } else {
        setTimeout(function() { location.replace('/'); }, 1000);
      }
    } catch (e) {
      setTimeout(function() { location.replace('/'); }, 1000);
    }
  })();
</script>
</body></html>"""


def _auth_required(action: str) -> JSONResponse:
    return JSONResponse(
        status_code=HTTP_UNAUTHORIZED,
        content={"error": f"Authentication required. Log in with MAL {action}."},
    )


def _server_error(message: str) -> JSONResponse:
    return JSONResponse(status_code=HTTP_INTERNAL_ERROR, content={"error": message})


def _display_name(user: dict) -> str:
    return user.get("name") or user.get("username") or "User"


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[MALClient] = None,
    oauth: Optional[MALOAuth] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> FastAPI:
    """Build the FastAPI application."""
    settings = settings or get_settings()
    client = client or MALClient(base_url=settings.mal_api_base)
    oauth = oauth or MALOAuth(settings)
    verifier_store = VerifierStore()
    refresh_registry = RefreshRegistry()

    app = FastAPI(title="MAL Bulk Updater", version="0.1.0")
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE_NAME,
        max_age=settings.session_max_age,
        same_site="none" if settings.cookie_secure else "lax",
        https_only=settings.cookie_secure,
    )
    app.state.verifier_store = verifier_store
    app.state.refresh_registry = refresh_registry

    def token_session(request: Request) -> TokenSession:
        return TokenSession(settings, oauth=oauth, store=request.session, registry=refresh_registry)

    def preview_pipeline(tokens: TokenSession) -> PreviewPipeline:
        return PreviewPipeline(client, tokens, pacing_interval=settings.pacing_interval, sleep=sleep)

    @app.get("/", response_class=HTMLResponse)
    def dashboard():
        """Main page"""
        return HTMLResponse(content=DASHBOARD_HTML)

    @app.get("/me")
    def me(request: Request):
        """Report whether the caller has a working MAL token"""
        tokens = token_session(request)
        if tokens.tokens is None:
            return JSONResponse({"loggedIn": False}, headers=NO_CACHE_HEADERS)
        try:
            user = tokens.with_auth_retry(client.get_current_user)
        except Exception as e:
            logger.info(f"/me: could not fetch user: {e}")
            return JSONResponse({"loggedIn": False}, headers=NO_CACHE_HEADERS)
        return JSONResponse({"loggedIn": True, "name": _display_name(user)}, headers=NO_CACHE_HEADERS)

    @app.post("/logout")
    def logout(request: Request):
        """Forget the session's tokens"""
        request.session.pop(SESSION_TOKENS_KEY, None)
        return {"success": True}

    @app.get("/login")
    def login(request: Request):
        """Start the authorization-code + PKCE flow"""
        url, state, code_verifier = oauth.create_authorization()
        request.session["code_verifier"] = code_verifier
        request.session["oauth_state"] = state
        verifier_store.put(state, code_verifier)
        return RedirectResponse(url, status_code=302)

    @app.get("/callback")
    def callback(request: Request, code: Optional[str] = None, state: Optional[str] = None):
        """Finish the OAuth flow and store the tokens in the session"""
        if not state:
            return Response("Missing state", status_code=HTTP_BAD_REQUEST)

        # Prefer the verifier mapped to this exact state over session values
        code_verifier = verifier_store.get(state)
        if not code_verifier and request.session.get("oauth_state") == state:
            code_verifier = request.session.get("code_verifier")

        logger.info(f"/callback: hasVerifier={bool(code_verifier)} state={state}")
        if not code_verifier:
            return Response("Missing or mismatched PKCE verifier", status_code=HTTP_BAD_REQUEST)

        try:
            token_data = oauth.exchange_code_for_token(code, code_verifier)
        except Exception as e:
            logger.error(f"Token exchange failed: {e}")
            return Response("Token exchange failed.", status_code=HTTP_INTERNAL_ERROR)

        request.session[SESSION_TOKENS_KEY] = token_data

        user_data = {"loggedIn": False}
        try:
            user = client.get_current_user(token_data["access_token"])
            user_data = {"loggedIn": True, "name": _display_name(user)}
        except Exception as e:
            logger.warning(f"/callback: error fetching user: {e}")

        request.session.pop("code_verifier", None)
        request.session.pop("oauth_state", None)
        verifier_store.pop(state)

        html = CALLBACK_HTML.replace("__USER_DATA__", json.dumps(user_data).replace("</", "<\\/"))
        return HTMLResponse(content=html)

    @app.post("/preview-shows")
    def preview_shows(request: Request, body: ShowsRequest):
        """Resolve show lines against the catalog without changing anything"""
        tokens = token_session(request)
        try:
            preview = preview_pipeline(tokens).preview(body.shows)
        except AuthRequired:
            return _auth_required("before previewing shows")
        except Exception as e:
            logger.error(f"/preview-shows error: {e}")
            return _server_error("Failed to preview shows.")
        return {"results": [item.to_payload() for item in preview]}

    @app.post("/add-shows")
    def add_shows(request: Request, body: AddShowsRequest):
        """Apply confirmed preview rows (or preview raw lines and apply them)"""
        tokens = token_session(request)
        pipeline = UpdatePipeline(
            client,
            tokens,
            preview_pipeline=preview_pipeline(tokens),
            pacing_interval=settings.pacing_interval,
            sleep=sleep,
        )
        try:
            results = pipeline.confirm(planned_updates=body.matches, raw_lines=body.shows)
        except AuthRequired:
            return _auth_required("before adding shows")
        except Exception as e:
            logger.error(f"/add-shows error: {e}")
            return _server_error("Failed to add shows.")
        return {"results": [result.to_payload() for result in results]}

    @app.get("/my-list")
    def my_list(request: Request, format: Optional[ExportFormat] = None):
        """Snapshot of the user's list, optionally as a downloadable file"""
        fetcher = ListSnapshotFetcher(
            client,
            token_session(request),
            max_pages=settings.snapshot_max_pages,
            max_items=settings.snapshot_max_items,
            pacing_interval=settings.pacing_interval,
            sleep=sleep,
        )
        try:
            entries = fetcher.snapshot()
        except AuthRequired:
            return _auth_required("to view your list")
        except Exception as e:
            logger.error(f"/my-list error: {e}")
            return _server_error("Failed to load MAL list.")

        if format is None:
            return {"results": [entry.to_payload() for entry in entries]}

        return Response(
            content=export_entries(entries, format.value),
            media_type=EXPORT_MEDIA_TYPES[format],
            headers={"Content-Disposition": f'attachment; filename="mal-list.{format.value}"'},
        )

    return app

"""Command-line interface for MAL Bulk Updater."""

import logging
import sys
from typing import Optional

import click

from .config import Settings, get_settings, has_weak_session_secret, validate_credentials
from .constants import DEFAULT_WEB_UI_PORT, ExportFormat
from .exceptions import AuthRequired, MALError
from .mal_client import MALClient
from .models import PlannedUpdate, ResultStatus, TokenSet, UpdateResult
from .parser import split_show_lines
from .pipeline import PreviewPipeline, UpdatePipeline
from .session import TokenSession
from .snapshot import ListSnapshotFetcher, export_entries

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def setup_logging(level: str):
    """Configure logging for the application."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def _require_valid_config(settings: Settings):
    """Validate config credentials and exit if invalid."""
    is_valid, invalid_vars = validate_credentials(settings)
    if not is_valid:
        logger.error("="*60)
        logger.error("CONFIGURATION ERROR: Missing or invalid credentials")
        logger.error("="*60)
        for var in invalid_vars:
            logger.error(f"  - {var}")
        logger.error("Get MAL credentials at https://myanimelist.net/apiconfig and set them in .env")
        sys.exit(1)


def _check_session_secret(settings: Settings):
    """Warn about a default cookie secret; refuse to serve secure cookies signed with one."""
    if not has_weak_session_secret(settings):
        return
    if settings.cookie_secure:
        logger.error("SESSION_SECRET is unset or a well-known default; set a random value before serving over HTTPS")
        sys.exit(1)
    logger.warning("SESSION_SECRET is unset or a well-known default; session cookies can be forged")


def _build_session(settings: Settings) -> tuple[MALClient, TokenSession]:
    """API client plus a token session backed by the configured token pair."""
    return MALClient(base_url=settings.mal_api_base), TokenSession(settings)


def _print_token_lines(tokens: TokenSet):
    click.echo(f"MAL_ACCESS_TOKEN={tokens.access_token}")
    if tokens.refresh_token:
        click.echo(f"MAL_REFRESH_TOKEN={tokens.refresh_token}")


def _report_refreshed_tokens(settings: Settings, initial: Optional[TokenSet]):
    """Tell the user to persist a token pair that was refreshed during this run."""
    current = settings.fallback_tokens
    if current is not None and current != initial:
        click.echo("\nThe access token was refreshed. Update your .env with:", err=True)
        _print_token_lines(current)


def _auth_exit():
    click.echo("No MAL token configured. Run `mal-bulk-updater auth` and set MAL_ACCESS_TOKEN.", err=True)
    sys.exit(1)


def _read_lines(source) -> list[str]:
    return split_show_lines(source.read())


def print_preview(preview: list[PlannedUpdate]):
    """Print preview rows to console."""
    click.echo("\n=== Preview ===")
    for item in preview:
        if item.error:
            click.echo(f"  ! {item.input_title or item.raw_input}: {item.error}")
            continue
        score = f", score {item.planned_score}" if item.planned_score is not None else ""
        click.echo(
            f"  - {item.input_title} -> {item.matched_title} (#{item.anime_id}): "
            f"{item.planned_status.value} {item.planned_episodes}/{item.total_episodes or '?'}{score}"
        )


def print_results(results: list[UpdateResult]):
    """Print update results to console."""
    failed = [r for r in results if r.status == ResultStatus.ERROR]
    click.echo("\n=== Update Results ===")
    click.echo(f"Entries updated: {len(results) - len(failed)}")
    click.echo(f"Entries failed: {len(failed)}")
    for result in results:
        if result.status == ResultStatus.ERROR:
            click.echo(f"  ! {result.title}: {result.error}")
        else:
            click.echo(f"  - {result.title}: {result.status.value} {result.episodes}/{result.total or '?'}")


@click.group()
@click.version_option(version="0.1.0")
def main():
    """Bulk-update your MyAnimeList list from a pasted list of titles."""
    pass


@main.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--log-level", type=click.Choice(LOG_LEVELS), default="WARNING", help="Logging level")
def preview(source, log_level: str):
    """Preview how each line of SOURCE matches the MAL catalog ('-' for stdin)."""
    setup_logging(log_level)
    settings = get_settings()
    initial = settings.fallback_tokens
    client, tokens = _build_session(settings)

    pipeline = PreviewPipeline(client, tokens, pacing_interval=settings.pacing_interval)
    try:
        result = pipeline.preview(_read_lines(source))
    except AuthRequired:
        _auth_exit()

    print_preview(result)
    _report_refreshed_tokens(settings, initial)


@main.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--yes", "-y", is_flag=True, help="Apply without asking for confirmation")
@click.option("--log-level", type=click.Choice(LOG_LEVELS), default="WARNING", help="Logging level")
def apply(source, yes: bool, log_level: str):
    """Preview SOURCE, then apply the planned updates to your MAL list."""
    setup_logging(log_level)
    settings = get_settings()
    initial = settings.fallback_tokens
    client, tokens = _build_session(settings)

    preview_pipeline = PreviewPipeline(client, tokens, pacing_interval=settings.pacing_interval)
    update_pipeline = UpdatePipeline(
        client, tokens, preview_pipeline=preview_pipeline, pacing_interval=settings.pacing_interval
    )
    try:
        planned = preview_pipeline.preview(_read_lines(source))
        print_preview(planned)
        if not any(not item.error for item in planned):
            click.echo("\nNothing to apply.")
            sys.exit(1)
        if not yes and not click.confirm("\nApply these updates?", default=False):
            click.echo("Aborted.")
            sys.exit(1)
        results = update_pipeline.confirm(planned_updates=planned)
    except AuthRequired:
        _auth_exit()

    print_results(results)
    _report_refreshed_tokens(settings, initial)
    sys.exit(0 if all(r.status != ResultStatus.ERROR for r in results) else 1)


@main.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice([f.value for f in ExportFormat]),
    default=ExportFormat.JSON.value,
    help="Export file format",
)
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None,
              help="File to write (default: stdout)")
@click.option("--log-level", type=click.Choice(LOG_LEVELS), default="WARNING", help="Logging level")
def export(fmt: str, output: Optional[str], log_level: str):
    """Export a snapshot of your MAL list."""
    setup_logging(log_level)
    settings = get_settings()
    initial = settings.fallback_tokens
    client, tokens = _build_session(settings)

    fetcher = ListSnapshotFetcher(
        client,
        tokens,
        max_pages=settings.snapshot_max_pages,
        max_items=settings.snapshot_max_items,
        pacing_interval=settings.pacing_interval,
    )
    try:
        entries = fetcher.snapshot()
    except AuthRequired:
        _auth_exit()
    except MALError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    content = export_entries(entries, fmt)
    if output:
        with open(output, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        click.echo(f"Exported {len(entries)} entries to {output}")
    else:
        click.echo(content)
    _report_refreshed_tokens(settings, initial)


@main.command()
def auth():
    """Run the MAL OAuth flow locally and print the resulting tokens."""
    from .oauth import run_oauth_flow

    setup_logging("INFO")
    settings = get_settings()
    _require_valid_config(settings)

    click.echo("=== MyAnimeList OAuth ===\n")
    token_data = run_oauth_flow(settings)
    tokens = TokenSet.from_response(token_data)
    if tokens is None:
        click.echo("MyAnimeList authentication failed", err=True)
        sys.exit(1)

    click.echo("\nAuthentication complete! Add these lines to your .env:\n")
    _print_token_lines(tokens)


@main.command()
@click.option("--log-level", type=click.Choice(LOG_LEVELS), default="INFO", help="Logging level")
@click.option("--port", type=int, default=DEFAULT_WEB_UI_PORT, help="Web UI port")
@click.option("--host", type=str, default="0.0.0.0", help="Web UI host")
def web(log_level: str, port: int, host: str):
    """Run the web UI."""
    import uvicorn
    from .web import create_app

    settings = get_settings()
    setup_logging(log_level or settings.log_level)
    _require_valid_config(settings)
    _check_session_secret(settings)

    logger.info("="*60)
    logger.info("MAL Bulk Updater - Web UI Mode")
    logger.info(f"Web UI: http://localhost:{port}")
    logger.info("="*60)

    try:
        uvicorn.run(create_app(settings), host=host, port=port, log_level="warning")
    except KeyboardInterrupt:
        logger.info("Web UI stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    main()

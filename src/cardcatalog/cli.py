"""Command-line entry point (`cardcatalog`)."""

import asyncio
import contextlib
import logging
import os
import signal
from pathlib import Path

import typer
import uvicorn

from cardcatalog.api.app import create_app
from cardcatalog.application.services.fingerprint_service import FingerprintService
from cardcatalog.application.services.metadata_extractor import MetadataExtractor
from cardcatalog.bootstrap import CatalogContainer
from cardcatalog.config import Settings, get_settings
from cardcatalog.config.settings import CONFIG_FILE_ENV
from cardcatalog.domain.entities import ScanStatus
from cardcatalog.domain.exceptions import (
    ConfigurationError,
    DomainException,
    ExtractionFailed,
    FingerprintFailed,
    UnsafePruneError,
)
from cardcatalog.infrastructure.observability import configure_logging, log_summary
from cardcatalog.infrastructure.persistence.migrations import upgrade_database

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130

app = typer.Typer(
    name="cardcatalog",
    help="Catalog a music library: scan, fingerprint, identify, prune and audit.",
    no_args_is_help=True,
    add_completion=False,
)


def _settings(ctx: typer.Context) -> Settings:
    settings: Settings = ctx.obj
    return settings


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", "-c", help="YAML config file (default: ./config.yaml)."
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", help="DEBUG, INFO, WARNING, ERROR (overrides log.level)."
    ),
    json_logs: bool | None = typer.Option(
        None, "--json-logs/--text-logs", help="Structured JSON log output."
    ),
) -> None:
    """Load settings and set up logging for every command."""
    if config is not None:
        os.environ[CONFIG_FILE_ENV] = str(config)
        get_settings.cache_clear()

    try:
        settings = get_settings()
    except ConfigurationError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(EXIT_ERROR) from e

    configure_logging(
        log_level=(log_level or settings.log.level).upper(),
        json_format=settings.log.json_format if json_logs is None else json_logs,
        app_name=settings.app_name,
    )
    ctx.obj = settings


# =============================================================================
# SCAN
# =============================================================================


async def _run_scan(settings: Settings, paths: list[Path], fingerprint: bool) -> int:
    async with CatalogContainer(settings) as container:
        roots = container.roots(paths)
        if not roots:
            typer.echo("Error: no library paths configured (scan.paths or --path)", err=True)
            return EXIT_ERROR

        try:
            pipeline = container.build_scan_pipeline(fingerprint=fingerprint)
        except ConfigurationError as e:
            typer.echo(f"Error: {e.message}", err=True)
            return EXIT_ERROR

        # Ctrl-C / SIGTERM = graceful stop, in-flight items still get reconciled
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, pipeline.request_stop)

        try:
            report = await pipeline.run(roots)
        except DomainException as e:
            typer.echo(f"Scan aborted: {e.message}", err=True)
            return EXIT_ERROR
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError):
                    loop.remove_signal_handler(sig)

        _print_counts(report.to_dict())
        return EXIT_CANCELLED if report.status == ScanStatus.CANCELLED else EXIT_OK


def _print_counts(stats: dict[str, object]) -> None:
    for key, value in stats.items():
        if value in (None, {}):
            continue
        if isinstance(value, dict):
            value = ", ".join(f"{k}={v}" for k, v in value.items())
        typer.echo(f"{key}: {value}")


@app.command()
def scan(
    ctx: typer.Context,
    path: list[Path] | None = typer.Option(
        None, "--path", "-p", help="Root directory to scan (repeatable, overrides scan.paths)."
    ),
    no_fingerprint: bool = typer.Option(
        False, "--no-fingerprint", help="Only read tags, skip fpcalc and AcoustID lookups."
    ),
) -> None:
    """Scan the library roots and update the catalog."""
    settings = _settings(ctx)
    exit_code = asyncio.run(_run_scan(settings, path or [], fingerprint=not no_fingerprint))
    raise typer.Exit(exit_code)


# =============================================================================
# PRUNE
# =============================================================================


async def _run_prune(
    settings: Settings, force: bool, clear_fulfilled: bool | None, dry_run: bool
) -> int:
    async with CatalogContainer(settings) as container:
        service = container.build_prune_service()
        try:
            report = await service.prune(
                container.roots(),
                force=force,
                clear_fulfilled=clear_fulfilled,
                dry_run=dry_run,
            )
        except UnsafePruneError as e:
            typer.echo(f"Prune refused: {e.message}", err=True)
            return EXIT_ERROR
        except DomainException as e:
            typer.echo(f"Prune failed: {e.message}", err=True)
            return EXIT_ERROR

        log_summary(logger, "Prune finished", vars(report))
        _print_counts(vars(report))
        return EXIT_OK


@app.command()
def prune(
    ctx: typer.Context,
    force: bool = typer.Option(
        False, "--force", help="Delete even if more than prune.max_delete_fraction is missing."
    ),
    clear_fulfilled: bool | None = typer.Option(
        None,
        "--clear-fulfilled/--keep-fulfilled",
        help="Also drop lookup checkpoints of already identified entries.",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only count, delete nothing."),
) -> None:
    """Remove catalog entries whose files no longer exist."""
    settings = _settings(ctx)
    raise typer.Exit(asyncio.run(_run_prune(settings, force, clear_fulfilled, dry_run)))


# =============================================================================
# AUDIT
# =============================================================================


async def _run_audit(settings: Settings, limit: int | None) -> int:
    async with CatalogContainer(settings) as container:
        try:
            findings = await container.build_audit_service().audit(limit)
        except DomainException as e:
            typer.echo(f"Audit failed: {e.message}", err=True)
            return EXIT_ERROR

    if not findings:
        typer.echo("No mismatches found.")
        return EXIT_OK
    for finding in findings:
        typer.echo(
            f"{finding.entry_id}\t{finding.external_id}\t"
            f"{finding.track!r} != {finding.reference_title!r}\t{finding.path}"
        )
    typer.echo(f"{len(findings)} mismatch(es)")
    return EXIT_OK


@app.command()
def audit(
    ctx: typer.Context,
    limit: int | None = typer.Option(
        None, "--limit", "-n", min=1, help="Maximum findings (default: audit.page_size)."
    ),
) -> None:
    """List identified entries whose title disagrees with the reference database."""
    raise typer.Exit(asyncio.run(_run_audit(_settings(ctx), limit)))


# =============================================================================
# DIAGNOSTICS
# =============================================================================


@app.command()
def info(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Audio file."),
) -> None:
    """Print the metadata record extracted from one file."""
    try:
        metadata = MetadataExtractor().extract(path)
    except ExtractionFailed as e:
        typer.echo(e.message, err=True)
        raise typer.Exit(EXIT_ERROR) from e

    for name, value in vars(metadata).items():
        typer.echo(f"{name}: {value if value is not None else ''}")


@app.command()
def fingerprint(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Audio file."),
) -> None:
    """Print duration and fingerprint of one file."""
    service = FingerprintService(_settings(ctx).fingerprint)
    try:
        service.check_available()
        result = service.compute(path)
    except (ConfigurationError, FingerprintFailed) as e:
        typer.echo(e.message, err=True)
        raise typer.Exit(EXIT_ERROR) from e

    typer.echo(f"DURATION={result.duration_seconds}")
    typer.echo(f"FINGERPRINT={result.fingerprint}")


@app.command("init-db")
def init_db(ctx: typer.Context) -> None:
    """Create or upgrade the catalog schema (Alembic upgrade head)."""
    upgrade_database(_settings(ctx).database.url)
    typer.echo("Catalog schema is up to date.")


@app.command()
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address."),
    port: int = typer.Option(8000, "--port", help="Bind port."),
) -> None:
    """Run the HTTP API (health, scan, prune, audit)."""
    # log_config=None: keep the logging configure_logging() already installed
    uvicorn.run(create_app(_settings(ctx)), host=host, port=port, log_config=None)


def main() -> None:
    app()


if __name__ == "__main__":
    main()

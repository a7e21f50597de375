"""
repofinder — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, catalog import, recommendation, etc.).
  5. Report result to stdout.

Install and run::

    pip install -e .
    repofinder --help
    repofinder init-db
    repofinder validate-config
    repofinder import-catalog data/catalog.json
    repofinder refresh-clusters
    repofinder clusters
    repofinder recommend alice --count 10 --stack python --stack fastapi
    repofinder health tiangolo/fastapi
    repofinder compare tiangolo/fastapi pallets/flask
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="repofinder",
    help="repofinder — repository discovery and health scoring CLI.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None, db_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from repofinder.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        config = load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)

    if db_path:
        config = config.model_copy(
            update={"database": config.database.model_copy(update={"db_path": db_path})}
        )
    return config


def _configure_logging(config):
    """Set up logging from config."""
    from repofinder.utils.logging import configure_logging
    configure_logging(config.logging)


def _ensure_schema(config) -> None:
    from repofinder.db.connection import get_connection
    from repofinder.db.schema import apply_schema

    with get_connection(
        config.database.db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)


async def _resolve_refs(service, refs: list[str]) -> list[int]:
    """Turn ``owner/name`` or numeric references into repository ids.

    Names are looked up in the catalog first, then on GitHub (and cached).
    Unresolvable references are reported and skipped.
    """
    ids: list[int] = []
    for ref in refs:
        if ref.isdigit():
            ids.append(int(ref))
            continue
        repo = await service.catalog.get_repository_by_name(ref)
        if repo is None and service.lookup.remote is not None:
            repo = await service.lookup.remote.get_repository_by_name(ref)
            if repo is not None:
                await service.catalog.upsert_many([repo])
        if repo is None:
            typer.echo(f"  [WARN] Repository not found: {ref}", err=True)
            continue
        ids.append(repo.repo_id)
    return ids


def _print_health(name: str, report) -> None:
    typer.echo(f"{name}: {report.overall}/100 ({report.grade})")
    for category, value in report.breakdown.items():
        typer.echo(f"  {category:<14}{value:>4}")
    if report.summary:
        typer.echo(f"  {report.summary}")


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    """
    from repofinder.db.schema import ALL_TABLE_NAMES

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    typer.echo(f"Initializing database at: {config.database.db_path}")
    _ensure_schema(config)
    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:     {config.database.db_path}")
    typer.echo(f"  GitHub API:        {config.github.api_url}")
    typer.echo(f"  GitHub token:      {'set' if config.github.token else 'not set'}")
    typer.echo(f"  Pool size / TTL:   {config.pool.pool_size} / {config.pool.ttl_hours}h")
    typer.echo(f"  Popularity cap:    {config.orchestrator.popularity_cap_stars} stars")
    typer.echo(f"  Pool tier floor:   {config.orchestrator.pool_tier_floor}")
    typer.echo(f"  Log level:         {config.logging.level}")
    typer.echo(f"  Debug mode:        {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(
            config.model_dump(mode="json", exclude={"github": {"token"}}), indent=2
        ))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("import-catalog")
def import_catalog(
    source: str = typer.Argument(..., help="JSON file of repository objects."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Load repositories (and optional health signals) into the catalog.

    \b
    Accepted formats:
      [ {...}, {...} ]          — GitHub API objects or exported snapshots
      { "items": [ ... ] }      — a saved GitHub search response
    """
    from repofinder.pipeline.import_catalog import ImportCatalogStage

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    if not Path(source).exists():
        typer.echo(f"[ERROR] Catalog file not found: {source}", err=True)
        raise typer.Exit(code=1)

    _ensure_schema(config)
    try:
        run = ImportCatalogStage(config=config).run(source_path=source)
    except (ValueError, json.JSONDecodeError) as exc:
        typer.echo(f"[ERROR] Import failed: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Imported {run.rows_processed} repositories.")
    typer.echo("[OK] Catalog updated.")


@app.command("refresh-clusters")
def refresh_clusters(
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Rebuild the curated cluster shortlists from the catalog."""
    from repofinder.pipeline.refresh_clusters import RefreshClustersStage

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)
    _ensure_schema(config)

    run = RefreshClustersStage(config=config).run()
    typer.echo(f"  Assignments written: {run.rows_processed}")
    typer.echo(f"  Shortlist cap:       {config.clusters.shortlist_size} per cluster")
    typer.echo("[OK] Clusters refreshed.")


@app.command("clusters")
def clusters(
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """List the active clusters and their shortlist sizes."""
    from repofinder.service import DiscoveryService

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)
    _ensure_schema(config)

    async def _run():
        async with DiscoveryService.from_config(config) as service:
            return await service.list_clusters()

    infos = asyncio.run(_run())
    if not infos:
        typer.echo("No clusters yet. Run 'refresh-clusters' first.")
        return
    for info in infos:
        typer.echo(f"  {info.name:<14} {info.display_name:<24} {info.repo_count:>4} repos")


@app.command("recommend")
def recommend(
    user_id: str = typer.Argument(..., help="User to recommend for."),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Batch size (default from config)."),
    stack: Optional[list[str]] = typer.Option(
        None, "--stack", help="Tech stack entry (repeatable); saved as the user's preferences."
    ),
    popular: bool = typer.Option(False, "--popular", help="Prefer popular repositories (no star cap)."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Print the next batch of recommendations for a user.

    Every printed repository is recorded as a ``view`` so the next call
    returns fresh results.
    """
    from repofinder.models.interaction import InteractionRecord
    from repofinder.models.preferences import UserPreferences
    from repofinder.service import DiscoveryService
    from repofinder.taxonomy.preference_taxonomy import InteractionAction, PopularityWeight
    from repofinder.utils.time_utils import utcnow

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)
    _ensure_schema(config)

    async def _run():
        async with DiscoveryService.from_config(config) as service:
            if stack or popular:
                current = await service.get_preferences(user_id)
                updates = {}
                if stack:
                    updates["tech_stack"] = tuple(stack)
                if popular:
                    updates["popularity_weight"] = PopularityWeight.HIGH
                await service.set_preferences(user_id, current.model_copy(update=updates))

            batch = await service.get_recommendations(user_id, count)
            for position, item in enumerate(batch.items):
                await service.record_interaction(
                    InteractionRecord(
                        user_id=user_id,
                        repo_id=item.repo.repo_id,
                        action=InteractionAction.VIEW,
                        occurred_at=utcnow(),
                        source="cli",
                        position=position,
                    ),
                    repo=item.repo,
                )
            return batch

    batch = asyncio.run(_run())

    if batch.is_empty:
        typer.echo("No more recommendations right now.")
        return
    for item in batch.items:
        typer.echo(f"  [{item.tier:<8}] {item.repo.full_name:<45} ★{item.repo.stars:>7}")
    typer.echo("")
    counts = ", ".join(f"{tier}={n}" for tier, n in batch.tier_counts().items())
    typer.echo(f"  {len(batch.items)}/{batch.requested} from {counts}")
    if batch.degraded:
        typer.echo("  [WARN] Some results came from the generic trending fallback.")


@app.command("health")
def health(
    repo: str = typer.Argument(..., help="Repository as owner/name or numeric id."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Print a repository's health score and breakdown."""
    from repofinder.interfaces import RemoteUnavailable, RepositoryNotFound
    from repofinder.service import DiscoveryService

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)
    _ensure_schema(config)

    async def _run():
        async with DiscoveryService.from_config(config) as service:
            ids = await _resolve_refs(service, [repo])
            if not ids:
                return None
            return await service.get_health_report(ids[0])

    try:
        report = asyncio.run(_run())
    except (RepositoryNotFound, RemoteUnavailable) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    if report is None:
        raise typer.Exit(code=1)
    _print_health(repo, report)


@app.command("compare")
def compare(
    repos: list[str] = typer.Argument(..., help="Two or more repositories (owner/name or id)."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Compare repositories side by side and print the verdict."""
    from repofinder.recommendations.comparison import InsufficientInputError
    from repofinder.service import DiscoveryService

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)
    _ensure_schema(config)

    async def _run():
        async with DiscoveryService.from_config(config) as service:
            ids = await _resolve_refs(service, repos)
            return await service.compare(ids)

    try:
        result = asyncio.run(_run())
    except InsufficientInputError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    for r in result.repos:
        score = result.scores[r.repo_id]
        wins = ", ".join(result.wins_for(r.repo_id)) or "-"
        typer.echo(
            f"  {r.full_name:<40} {score.overall:>3}/100 ({score.grade:<2}) "
            f"★{r.stars:>7}  {result.star_velocity.get(r.repo_id, 0.0):>8.1f}/30d  wins: {wins}"
        )
    typer.echo("")
    typer.echo(result.verdict)


if __name__ == "__main__":
    app()

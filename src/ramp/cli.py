"""Command-line interface for Ramp."""

import asyncio
from pathlib import Path

import click

from ramp import __version__
from ramp.config import Config
from ramp.logging import get_logger, setup_logging

log = get_logger("cli")


@click.group()
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (overrides config).",
)
@click.option(
    "--log-json/--no-log-json",
    default=None,
    help="Output logs as JSON or human-readable format (overrides config).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    log_level: str | None,
    log_json: bool | None,
) -> None:
    """Ramp - per-topic conversational intent tracker.

    Tracks how interested a user is in each topic they talk about.
    """
    ctx.ensure_object(dict)

    config = Config.load_or_default(config_file)
    ctx.obj["config"] = config
    ctx.obj["config_file"] = config_file

    # CLI overrides config
    effective_log_level = log_level or config.log_level
    effective_log_json = log_json if log_json is not None else config.log_json

    setup_logging(json_output=effective_log_json, level=effective_log_level)


def _open_service(cfg: Config):
    """Engine with migrations applied, plus a service bound to it."""
    from ramp.database import get_engine
    from ramp.migrations import migrate
    from ramp.service import TopicIntentService
    from ramp.social import SquadSocialProvider

    engine = get_engine(cfg)
    migrate(engine)
    return TopicIntentService(engine, cfg, social=SquadSocialProvider(engine))


@cli.command()
def version() -> None:
    """Print version information."""
    click.echo(f"ramp {__version__}")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind.")
@click.option("--port", default=8000, type=int, help="Port to bind.")
@click.pass_context
def api(ctx: click.Context, host: str, port: int) -> None:
    """Start the HTTP API.

    Accepts classified messages and serves each user's active topics and
    strategy directive. Documentation is served at /docs.
    """
    import uvicorn

    from ramp.api import create_app

    cfg = ctx.obj["config"]

    async def run():
        service = _open_service(cfg)

        app = create_app(cfg)
        app.state.config = cfg
        app.state.db = service.engine
        app.state.service = service

        server_config = uvicorn.Config(app, host=host, port=port, log_level="info")
        server = uvicorn.Server(server_config)
        await server.serve()

    log.info("api_command_invoked", host=host, port=port)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        log.info("api_shutdown_requested")
    except Exception as e:
        log.error("api_failed", error=str(e))
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


# =============================================================================
# Database Commands
# =============================================================================


@cli.group()
def db() -> None:
    """Database management commands."""
    pass


@db.command(name="status")
@click.pass_context
def db_status(ctx: click.Context) -> None:
    """Show database migration status."""
    from ramp.database import get_engine
    from ramp.migrations import get_current_version, get_migrations, get_pending_migrations

    cfg = ctx.obj["config"]
    engine = get_engine(cfg)

    click.echo(f"Database: {cfg.database_url}")
    click.echo(f"Current version: {get_current_version(engine)}")
    click.echo(f"Available migrations: {len(get_migrations())}")

    pending = get_pending_migrations(engine)
    if pending:
        click.echo(f"Pending migrations: {len(pending)}")
        for version, module in pending:
            desc = getattr(module, "DESCRIPTION", "No description")
            click.echo(f"  {version}: {desc}")
    else:
        click.echo("No pending migrations")


@db.command(name="migrate")
@click.option(
    "--target",
    type=int,
    default=None,
    help="Target version (default: latest).",
)
@click.pass_context
def db_migrate(ctx: click.Context, target: int | None) -> None:
    """Apply pending database migrations."""
    from ramp.database import get_engine
    from ramp.migrations import get_current_version, migrate

    cfg = ctx.obj["config"]
    engine = get_engine(cfg)

    before = get_current_version(engine)
    after = migrate(engine, target_version=target)

    if before == after:
        click.echo(f"Database already at version {after}")
    else:
        click.echo(f"Migrated from version {before} to {after}")


# =============================================================================
# Config Commands
# =============================================================================


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command(name="check")
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    default="config.yaml",
    help="Path to configuration file.",
)
def config_check(config_file: Path) -> None:
    """Validate configuration file."""
    try:
        cfg = Config.load(config_file)
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    except Exception as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)

    ti = cfg.topic_intent
    click.echo(f"Configuration valid: {config_file}")
    click.echo(f"  Data directory: {cfg.data_dir}")
    click.echo(f"  Database: {cfg.database_url}")
    click.echo(f"  Log level: {cfg.log_level}")
    click.echo(f"  Abandon after: {ti.abandon_hours:g}h")
    click.echo(f"  Cache TTL: {ti.cache_ttl_seconds:g}s")
    click.echo(f"  Social enrichment: {'on' if ti.social_enabled else 'off'}")


# =============================================================================
# Topic Commands
# =============================================================================


@cli.group()
def topics() -> None:
    """Topic inspection and maintenance commands."""
    pass


@topics.command(name="list")
@click.argument("user_id")
@click.option("--limit", type=int, default=None, help="Maximum topics to show.")
@click.pass_context
def topics_list(ctx: click.Context, user_id: str, limit: int | None) -> None:
    """List a user's active topics, warmest first."""
    service = _open_service(ctx.obj["config"])
    active = asyncio.run(service.get_active_topics(user_id, limit))

    if not active:
        click.echo(f"No active topics for {user_id}")
        return

    for topic in active:
        category = topic.category.value if topic.category else "-"
        click.echo(
            f"{topic.id}  {topic.confidence:>3}  {topic.phase.value:<9}  "
            f"{category:<9}  {topic.topic}"
        )


@topics.command(name="strategy")
@click.argument("user_id")
@click.pass_context
def topics_strategy(ctx: click.Context, user_id: str) -> None:
    """Print the strategy directive for a user's warmest topic."""
    service = _open_service(ctx.obj["config"])
    strategy = asyncio.run(service.get_strategy(user_id))
    click.echo(strategy if strategy else f"No active strategy for {user_id}")


@topics.command(name="sweep")
@click.pass_context
def topics_sweep(ctx: click.Context) -> None:
    """Abandon topics with no signal for the configured number of hours.

    Per-user sweeps already run on every message; this catches users who
    stopped messaging entirely. Suitable for cron.
    """
    cfg = ctx.obj["config"]
    service = _open_service(cfg)
    count = asyncio.run(service.sweep_stale())

    click.echo(f"Abandoned {count} stale topics")
    click.echo(f"  Threshold: {cfg.topic_intent.abandon_hours:g} hours")


@topics.command(name="complete")
@click.argument("user_id")
@click.argument("topic_id")
@click.pass_context
def topics_complete(ctx: click.Context, user_id: str, topic_id: str) -> None:
    """Mark a topic as completed."""
    service = _open_service(ctx.obj["config"])
    if asyncio.run(service.complete_topic(user_id, topic_id)):
        click.echo(f"Completed {topic_id}")
    else:
        click.echo(f"No active topic {topic_id} for {user_id}", err=True)
        raise SystemExit(1)


@topics.command(name="abandon")
@click.argument("user_id")
@click.argument("topic_id")
@click.pass_context
def topics_abandon(ctx: click.Context, user_id: str, topic_id: str) -> None:
    """Mark a topic as abandoned."""
    service = _open_service(ctx.obj["config"])
    if asyncio.run(service.abandon_topic(user_id, topic_id)):
        click.echo(f"Abandoned {topic_id}")
    else:
        click.echo(f"No active topic {topic_id} for {user_id}", err=True)
        raise SystemExit(1)

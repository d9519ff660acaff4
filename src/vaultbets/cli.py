"""Command line entry point."""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable

import click

from vaultbets.automation.admin import AdminResult
from vaultbets.automation.service import Service, install_signal_handlers, open_service
from vaultbets.common.config import AppConfig, load_config
from vaultbets.common.logging import get_logger, setup_logging

logger = get_logger(__name__)

JOB_TRIGGERS = ("daily_generation", "odds_update", "health_check")


def _load(config_path: str) -> AppConfig:
    try:
        config = load_config(config_path)
    except Exception as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)
    setup_logging(config.logging)
    logger.info("config_loaded", config_path=config_path, environment=config.environment)
    return config


def _run_admin(config: AppConfig, action: Callable[[Service], Awaitable[AdminResult]]) -> None:
    """Open a service, run one admin action, print the result and exit."""

    async def run() -> AdminResult:
        async with open_service(config) as service:
            return await action(service)

    result = asyncio.run(run())
    click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    sys.exit(0 if result.success else 1)


@click.group()
@click.option(
    "--config",
    "-c",
    required=True,
    type=click.Path(exists=True),
    help="Path to configuration file",
)
@click.pass_context
def main(ctx: click.Context, config: str) -> None:
    """Betting tip automation."""
    ctx.obj = _load(config)


@main.command()
@click.pass_obj
def serve(config: AppConfig) -> None:
    """Run the scheduler until SIGINT or SIGTERM."""

    async def run() -> None:
        shutdown = asyncio.Event()
        install_signal_handlers(shutdown)
        async with open_service(config) as service:
            await service.serve(shutdown)

    try:
        asyncio.run(run())
    except Exception as e:
        logger.exception("service_failed", error=str(e))
        sys.exit(1)


@main.command()
@click.argument("job", type=click.Choice(JOB_TRIGGERS))
@click.pass_obj
def trigger(config: AppConfig, job: str) -> None:
    """Run a job once, now."""
    if job == "daily_generation":
        _run_admin(config, lambda service: service.admin.trigger_daily_generation())
    elif job == "odds_update":
        _run_admin(config, lambda service: service.admin.trigger_odds_update())
    else:
        _run_admin(config, lambda service: service.admin.trigger_health_check())


@main.command("test-pipeline")
@click.pass_obj
def test_pipeline(config: AppConfig) -> None:
    """Smoke-test generation on sandbox fixtures without keeping anything."""
    _run_admin(config, lambda service: service.admin.test_pipeline())


@main.command()
@click.pass_obj
def status(config: AppConfig) -> None:
    """Show jobs, recent runs, tip counts and API usage."""

    async def action(service: Service) -> AdminResult:
        return service.admin.status()

    _run_admin(config, action)


@main.command("config-set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def config_set(config: AppConfig, key: str, value: str) -> None:
    """Update an automation setting."""
    _run_admin(config, lambda service: service.admin.update_config(key, value))


@main.command()
@click.argument("tip_id", type=int)
@click.pass_obj
def publish(config: AppConfig, tip_id: int) -> None:
    """Publish a draft tip."""
    _run_admin(config, lambda service: service.admin.publish_tip(tip_id))


@main.command()
@click.argument("tip_id", type=int)
@click.pass_obj
def unpublish(config: AppConfig, tip_id: int) -> None:
    """Return a published tip to draft."""
    _run_admin(config, lambda service: service.admin.unpublish_tip(tip_id))


if __name__ == "__main__":
    main()

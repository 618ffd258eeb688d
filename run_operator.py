#!/usr/bin/env python3
"""
run_operator.py - CLI entrypoint for the Salad operator.

Usage:
    python run_operator.py
    python run_operator.py --config config/operator.yaml --log-level DEBUG
    python run_operator.py --store-path data/operator --no-json-logs
"""

import asyncio
import signal
import sys
from pathlib import Path

import click

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config.settings import load_operator_config
from core.exceptions import SaladError
from core.logging import get_logger, setup_logging, set_global_context
from deals.operator_api import OperatorApi, build_operator
from monitoring.health import build_health_report

logger = get_logger("salad.operator")


def install_signal_handlers(api: OperatorApi) -> None:
    """Deactivate the scheduler on SIGINT/SIGTERM."""

    def handle_shutdown(signum: int, frame: object) -> None:
        logger.info("Shutdown requested", extra={"context": {"signal": signum}})
        api.deactivate()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)


async def run_operator(api: OperatorApi) -> None:
    """Initialize, wait for the encryption key, then poll until deactivated."""
    await api.init()
    try:
        await api.activate()
        api.get_threshold()
        await api.scheduler.run()
    finally:
        await api.shutdown()


@click.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to operator.yaml (default: bundled config)",
)
@click.option(
    "--log-level",
    "-l",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON log format",
)
@click.option(
    "--log-file",
    default=None,
    help="Also write logs to this file",
)
@click.option(
    "--store-path",
    "-s",
    default=None,
    help="Directory for the JSON store (default: from config, else in-memory)",
)
def main(
    config_path: Path | None,
    log_level: str,
    json_logs: bool,
    log_file: str | None,
    store_path: str | None,
) -> None:
    """
    Salad Operator.

    Registers deposits, waits for the block countdown and mixes
    equal-amount deposits once quorum is reached.
    """
    setup_logging(level=log_level, json_output=json_logs, log_file=log_file)
    set_global_context(
        service="salad-operator",
        version="0.1.0",
    )

    try:
        config = load_operator_config(config_path)
    except SaladError as e:
        logger.error(f"Invalid configuration: {e}", extra={"context": e.to_dict()})
        sys.exit(2)

    if store_path:
        config.store_path = store_path

    api = build_operator(config)
    install_signal_handlers(api)

    logger.info(
        "Starting Salad operator",
        extra={"context": config.to_dict()},
    )

    try:
        asyncio.run(run_operator(api))
    except KeyboardInterrupt:
        logger.info("Operator interrupted")
    except Exception as e:
        logger.error(
            f"Operator error: {e}",
            extra={"context": {"error": str(e)}},
            exc_info=True,
        )
        sys.exit(1)

    report = build_health_report(api)
    logger.info("Operator stopped", extra={"context": {
        "status": report["status"],
        "lifecycle_runs": report["lifecycle_runs"],
    }})

    click.echo("\n" + "=" * 60)
    click.echo("SALAD OPERATOR SUMMARY")
    click.echo("=" * 60)
    click.echo(f"Key state: {report['key_state']}")
    click.echo(f"Lifecycle runs: {report['lifecycle_runs']}")
    click.echo(f"Last countdown: {report['last_countdown']}")
    click.echo(f"Last error: {report['last_error']}")
    click.echo("=" * 60)


if __name__ == "__main__":
    main()

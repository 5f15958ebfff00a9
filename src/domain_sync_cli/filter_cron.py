"""
Content Filter Cron Entry Point

Runs the in-process content-filter refresh and prints a single
CONTENT_FILTER_RESULT={"checked": N, "updated": M} line on stdout.
Logs go to stderr. Exits 1 on failure.

Usage:
    python -m domain_sync_cli.filter_cron --config ~/.domain-sync/config.yaml
"""

import asyncio
import json
import logging
import sys

import click
import yaml

from domain_sync.exceptions import DomainSyncError
from domain_sync.script_runner import RESULT_PREFIX
from domain_sync_cli.config import load_config
from domain_sync_cli.output import print_error
from domain_sync_cli.runtime import open_reconciler, setup_logging

logger = logging.getLogger("domain_sync.filter_cron")


def format_result_line(checked: int, updated: int) -> str:
    return RESULT_PREFIX + json.dumps({"checked": checked, "updated": updated})


async def run_check(config) -> str:
    # Always in-process here, or the script would spawn itself
    async with open_reconciler(config, use_script=False) as reconciler:
        result = await reconciler.refresh_content_filter_status()
    return format_result_line(result.checked, result.updated)


@click.command()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False), help="Config file path")
@click.option("--profile", "-p", default="default", help="Config profile to use")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(config_path, profile, debug):
    """Check used domains against the content filter and store the result."""
    try:
        config = load_config(config_path, profile)
    except (OSError, yaml.YAMLError, ValueError) as e:
        print_error(f"Could not load configuration: {e}")
        sys.exit(1)

    setup_logging(config, debug=debug, level=logging.INFO)

    try:
        line = asyncio.run(run_check(config))
    except DomainSyncError as e:
        logger.error(f"Content filter check failed: {e}")
        print_error(str(e))
        sys.exit(1)

    click.echo(line)


if __name__ == "__main__":
    main()

"""
Domain Sync CLI Main Entry Point

Command-line interface for syncing and inspecting the domain portfolio.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import yaml

from domain_sync import __version__
from domain_sync.exceptions import DomainSyncError
from domain_sync.scheduler import IntervalScheduler
from domain_sync_cli.config import AppConfig, create_sample_config, load_config
from domain_sync_cli.output import OutputFormatter, print_error, print_info, print_success, print_warning
from domain_sync_cli.runtime import build_content_filter, open_reconciler, setup_logging

DOMAIN_COLUMNS = [
    "id", "name", "expiry_date", "is_expired", "auto_renew",
    "name_server1", "name_server2", "is_used", "blocked", "category",
]


# Global state for the CLI session
class CLIState:
    config: Optional[AppConfig] = None
    formatter: Optional[OutputFormatter] = None


state = CLIState()


def get_config(ctx, log_level: int = logging.WARNING) -> AppConfig:
    """Load configuration once and set up logging."""
    if state.config is None:
        try:
            state.config = load_config(ctx.obj.get("config_path"), ctx.obj.get("profile", "default"))
        except (OSError, yaml.YAMLError, ValueError) as e:
            print_error(f"Could not load configuration: {e}")
            sys.exit(1)
        setup_logging(state.config, debug=ctx.obj.get("debug", False), level=log_level)
    return state.config


def run_async(coro):
    """Run a coroutine, reporting domain-sync errors and exiting 1."""
    try:
        return asyncio.run(coro)
    except DomainSyncError as e:
        print_error(str(e))
        sys.exit(1)


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Config file path")
@click.option("--profile", "-p", default="default", help="Config profile to use")
@click.option("--format", "-f", type=click.Choice(["table", "json"]), default="table", help="Output format")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, config, profile, format, quiet, debug):
    """
    Domain Sync CLI - Domain Portfolio Reconciliation

    Keeps stored domains in step with the registrar, live DNS
    and the content-filter block list.

    \b
    Configuration:
      Use a config file at ~/.domain-sync/config.yaml or pass --config.
      Run 'domain-sync config init' to create a sample config file.

    \b
    Examples:
      domain-sync sync run
      domain-sync -f json sync status
      domain-sync domains list --used
      domain-sync filter check example.com example.org
    """
    state.config = None
    state.formatter = OutputFormatter(format=format, quiet=quiet)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["profile"] = profile
    ctx.obj["debug"] = debug


# =============================================================================
# Config Commands
# =============================================================================

@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option("--path", "-p", type=click.Path(), default="~/.domain-sync/config.yaml", help="Config file path")
def config_init(path):
    """Create sample configuration file."""
    path = Path(path).expanduser()

    # Create parent directory
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists():
        if not click.confirm(f"{path} already exists. Overwrite?"):
            return

    path.write_text(create_sample_config())

    print_success(f"Created config file: {path}")
    print_info("Edit the file to configure registrar credentials and storage.")


@config.command("show")
@click.pass_context
def config_show(ctx):
    """Show current configuration."""
    cfg = get_config(ctx)
    info = {
        "Config File": cfg.source_path or "(none, environment only)",
        "Profile": cfg.profile,
        "Registrar User": cfg.registrar.api_user or "(not set)",
        "Registrar API Key": "(set)" if cfg.registrar.api_key else "(not set)",
        "Registrar Endpoint": cfg.registrar.base_url,
        "Content Filter": cfg.content_filter.base_url,
        "Transport": cfg.content_filter.transport,
        "External Script": cfg.content_filter.script.enabled,
        "Database": cfg.database.path,
    }
    state.formatter.output(info)


# =============================================================================
# Sync Commands
# =============================================================================

@cli.group()
def sync():
    """Run syncs and show when they last ran."""
    pass


@sync.command("run")
@click.pass_context
def sync_run(ctx):
    """Registrar sync followed by nameserver refresh."""
    cfg = get_config(ctx, logging.INFO)

    async def _run():
        async with open_reconciler(cfg, with_registrar=True) as reconciler:
            return await reconciler.sync()

    state.formatter.output(run_async(_run()))


@sync.command("nameservers")
@click.pass_context
def sync_nameservers(ctx):
    """Refresh nameservers of every stored domain."""
    cfg = get_config(ctx, logging.INFO)

    async def _run():
        async with open_reconciler(cfg) as reconciler:
            return await reconciler.refresh_nameservers()

    state.formatter.output(run_async(_run()))


@sync.command("content-filter")
@click.option("--in-process", is_flag=True, help="Ignore content_filter.script and check here")
@click.pass_context
def sync_content_filter(ctx, in_process):
    """Refresh the blocked flag of used domains."""
    cfg = get_config(ctx, logging.INFO)

    async def _run():
        async with open_reconciler(cfg, use_script=not in_process) as reconciler:
            return await reconciler.refresh_content_filter_status()

    result = run_async(_run())
    if result.unknown_statuses:
        print_warning(f"Unknown statuses treated as not blocked: {', '.join(result.unknown_statuses)}")
    state.formatter.output(result)


@sync.command("status")
@click.pass_context
def sync_status(ctx):
    """Show the last run of each sync kind."""
    cfg = get_config(ctx)

    async def _run():
        async with open_reconciler(cfg) as reconciler:
            return await reconciler.sync_metadata()

    state.formatter.output(run_async(_run()))


# =============================================================================
# Domain Commands
# =============================================================================

@cli.group()
def domains():
    """Stored domain commands."""
    pass


@domains.command("list")
@click.option("--used/--all", "used_only", default=False, help="Only domains marked as used")
@click.pass_context
def domains_list(ctx, used_only):
    """List stored domains."""
    cfg = get_config(ctx)

    async def _run():
        async with open_reconciler(cfg) as reconciler:
            if used_only:
                return await reconciler.store.find_all_used()
            return await reconciler.store.find_all()

    state.formatter.output(run_async(_run()), columns=DOMAIN_COLUMNS)


@domains.command("mark-used")
@click.argument("file", type=click.File("r", encoding="utf-8"))
@click.pass_context
def domains_mark_used(ctx, file):
    """
    Mark domains as used from a text file.

    FILE: One domain name per line ('-' for stdin).
    """
    cfg = get_config(ctx)
    lines = file.read().splitlines()

    async def _run():
        async with open_reconciler(cfg) as reconciler:
            return await reconciler.mark_used_from_lines(lines)

    matched, updated = run_async(_run())
    state.formatter.output({"matched": matched, "updated": updated})


@domains.command("reactivate")
@click.argument("domain_id", type=int)
@click.pass_context
def domains_reactivate(ctx, domain_id):
    """
    Reactivate an expired domain at the registrar.

    DOMAIN_ID: Stored domain id.
    """
    cfg = get_config(ctx, logging.INFO)

    async def _run():
        async with open_reconciler(cfg, with_registrar=True) as reconciler:
            return await reconciler.reactivate_domain(domain_id)

    domain, result = run_async(_run())
    if not result.success:
        print_error(f"Registrar did not reactivate {domain.name}")
        sys.exit(1)
    state.formatter.success(f"Reactivated {domain.name}")
    state.formatter.output(domain, columns=DOMAIN_COLUMNS)


@domains.command("renew")
@click.argument("domain_id", type=int)
@click.option("--years", "-y", type=click.IntRange(1, 10), default=1, help="Years to renew")
@click.pass_context
def domains_renew(ctx, domain_id, years):
    """
    Renew a domain at the registrar.

    DOMAIN_ID: Stored domain id.
    """
    cfg = get_config(ctx, logging.INFO)

    async def _run():
        async with open_reconciler(cfg, with_registrar=True) as reconciler:
            return await reconciler.renew_domain(domain_id, years)

    domain, result = run_async(_run())
    state.formatter.success(f"Renewed {domain.name} for {years} year(s), order {result.order_id}")
    state.formatter.output(domain)


@domains.command("info")
@click.argument("domain_id", type=int)
@click.pass_context
def domains_info(ctx, domain_id):
    """
    Show registrar details of a stored domain.

    DOMAIN_ID: Stored domain id.
    """
    cfg = get_config(ctx)

    async def _run():
        async with open_reconciler(cfg, with_registrar=True) as reconciler:
            return await reconciler.domain_registrar_info(domain_id)

    _, info = run_async(_run())
    state.formatter.output(info)


# =============================================================================
# Content Filter Commands
# =============================================================================

@cli.group("filter")
def filter_group():
    """Ad-hoc content-filter commands."""
    pass


@filter_group.command("check")
@click.argument("names", nargs=-1, required=True)
@click.pass_context
def filter_check(ctx, names):
    """
    Check names against the content filter without storing anything.

    NAMES: One or more domain names.
    """
    cfg = get_config(ctx)

    async def _run():
        client = build_content_filter(cfg)
        try:
            return await client.check_many(list(names))
        finally:
            await client.close()

    result = run_async(_run())
    if result.unknown_statuses:
        print_warning(f"Unknown statuses treated as not blocked: {', '.join(result.unknown_statuses)}")
    state.formatter.output(result.results)


# =============================================================================
# Scheduler
# =============================================================================

@cli.command()
@click.pass_context
def schedule(ctx):
    """Run the periodic syncs until interrupted."""
    cfg = get_config(ctx, logging.INFO)
    intervals = cfg.schedule

    async def _run():
        with_registrar = bool(intervals.registrar_sync_minutes and intervals.registrar_sync_minutes > 0)
        async with open_reconciler(cfg, with_registrar=with_registrar) as reconciler:
            scheduler = IntervalScheduler()
            scheduler.add_job("nameserver-refresh", intervals.nameserver_refresh_minutes, reconciler.refresh_nameservers)
            scheduler.add_job("content-filter", intervals.content_filter_minutes, reconciler.refresh_content_filter_status)
            scheduler.add_job("registrar-sync", intervals.registrar_sync_minutes, reconciler.sync)
            scheduler.install_signal_handlers()
            await scheduler.run()

    run_async(_run())


def main():
    """Main entry point."""
    try:
        cli()
    except DomainSyncError as e:
        print_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nAborted.")
        sys.exit(130)
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

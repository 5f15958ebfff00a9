"""
CLI Runtime

Builds clients and the reconciler from an AppConfig and configures
logging.
"""

import logging
import logging.config
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from domain_sync.content_filter import ContentFilterClient
from domain_sync.database import SQLiteDatabase, SQLiteDomainStore, SQLiteSyncAuditLog
from domain_sync.nameservers import NameserverResolver
from domain_sync.reconciler import DomainReconciler
from domain_sync.registrar import RegistrarClient
from domain_sync.script_runner import ExternalScriptRunner, default_command
from domain_sync.transports import create_transport
from domain_sync_cli.config import AppConfig

logger = logging.getLogger("domain_sync.cli")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: Optional[AppConfig], debug: bool = False, level: int = logging.WARNING) -> None:
    """
    Configure logging.

    A ``logging`` mapping in the config wins; otherwise basicConfig at
    DEBUG with --debug, else at the given level.
    """
    if config is not None and config.logging and not debug:
        logging.config.dictConfig(config.logging)
        return
    logging.basicConfig(
        level=logging.DEBUG if debug else level,
        format=LOG_FORMAT,
        force=True,
    )


def build_registrar(config: AppConfig) -> RegistrarClient:
    """
    Raises:
        ConfigMissing: If a credential is not set
    """
    reg = config.registrar
    return RegistrarClient(
        api_user=reg.api_user,
        api_key=reg.api_key,
        username=reg.username,
        client_ip=reg.client_ip,
        base_url=reg.base_url,
        timeout=reg.timeout,
    )


def build_content_filter(config: AppConfig) -> ContentFilterClient:
    cf = config.content_filter
    transport = create_transport(
        cf.transport,
        base_url=cf.base_url,
        pinned_ip=cf.pinned_ip,
        source_address=cf.source_address,
        timeout=cf.timeout,
        verify=cf.verify,
        curl_path=cf.curl_path,
    )
    return ContentFilterClient(transport, batch_size=cf.batch_size)


def build_script_runner(config: AppConfig) -> ExternalScriptRunner:
    script = config.content_filter.script
    command = script.command or default_command(config.source_path, config.profile)
    return ExternalScriptRunner(command, timeout=script.timeout)


def build_resolver(config: AppConfig) -> NameserverResolver:
    return NameserverResolver(
        nameservers=config.dns.nameservers or None,
        timeout=config.dns.timeout,
        lifetime=config.dns.lifetime,
    )


async def open_database(config: AppConfig) -> SQLiteDatabase:
    path = config.database.path
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    db = SQLiteDatabase(path)
    await db.initialize()
    return db


@asynccontextmanager
async def open_reconciler(
    config: AppConfig,
    with_registrar: bool = False,
    use_script: bool = True,
) -> AsyncIterator[DomainReconciler]:
    """
    Reconciler over the configured SQLite database.

    Args:
        config: Loaded configuration
        with_registrar: Build the registrar client (fails fast on missing credentials)
        use_script: Honour content_filter.script.enabled
    """
    registrar = build_registrar(config) if with_registrar else None
    script_runner = None
    if use_script and config.content_filter.script.enabled:
        script_runner = build_script_runner(config)

    content_filter = None
    db = None
    try:
        content_filter = build_content_filter(config)
        db = await open_database(config)
        yield DomainReconciler(
            SQLiteDomainStore(db),
            SQLiteSyncAuditLog(db),
            registrar=registrar,
            resolver=build_resolver(config),
            content_filter=content_filter,
            script_runner=script_runner,
            page_size=config.registrar.page_size,
            ns_batch_size=config.dns.batch_size,
        )
    finally:
        if registrar is not None:
            await registrar.close()
        if content_filter is not None:
            await content_filter.close()
        if db is not None:
            await db.close()

"""
CLI Configuration

Handles configuration loading and management.
"""

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from domain_sync.content_filter import BATCH_SIZE
from domain_sync.registrar import DEFAULT_BASE_URL as REGISTRAR_BASE_URL, MAX_PAGE_SIZE
from domain_sync.script_runner import DEFAULT_TIMEOUT as SCRIPT_TIMEOUT
from domain_sync.transports import DEFAULT_BASE_URL as CONTENT_FILTER_BASE_URL


# Default config locations
DEFAULT_CONFIG_PATHS = [
    Path.home() / ".domain-sync" / "config.yaml",
    Path.home() / ".domain-sync" / "config.yml",
    Path("/etc/domain-sync/config.yaml"),
    Path("domain_sync.yaml"),
]

DEFAULT_DATABASE_PATH = "~/.domain-sync/domains.db"

TRANSPORTS = ("direct", "curl")


@dataclass
class RegistrarConfig:
    """Registrar API credentials and endpoint."""
    api_user: str = ""
    api_key: str = ""
    username: str = ""
    client_ip: str = ""
    base_url: str = REGISTRAR_BASE_URL
    timeout: float = 30.0
    page_size: int = MAX_PAGE_SIZE


@dataclass
class ScriptConfig:
    """External content-filter script."""
    enabled: bool = False
    command: List[str] = field(default_factory=list)  # Empty means bundled filter_cron
    timeout: float = SCRIPT_TIMEOUT


@dataclass
class ContentFilterConfig:
    """Content-filter service access."""
    base_url: str = CONTENT_FILTER_BASE_URL
    transport: str = "direct"  # direct or curl
    pinned_ip: Optional[str] = None
    source_address: Optional[str] = None
    timeout: float = 30.0
    verify: bool = True
    curl_path: str = "curl"
    batch_size: int = BATCH_SIZE
    script: ScriptConfig = field(default_factory=ScriptConfig)


@dataclass
class DnsConfig:
    """Nameserver lookups."""
    nameservers: List[str] = field(default_factory=list)  # Empty means system resolvers
    timeout: float = 5.0
    lifetime: float = 10.0
    batch_size: int = 50


@dataclass
class DatabaseConfig:
    """SQLite storage."""
    path: str = DEFAULT_DATABASE_PATH


@dataclass
class ScheduleConfig:
    """Scheduler intervals in minutes (0 disables a job)."""
    nameserver_refresh_minutes: float = 60
    content_filter_minutes: float = 15
    registrar_sync_minutes: float = 0


@dataclass
class AppConfig:
    """Complete configuration."""
    registrar: RegistrarConfig = field(default_factory=RegistrarConfig)
    content_filter: ContentFilterConfig = field(default_factory=ContentFilterConfig)
    dns: DnsConfig = field(default_factory=DnsConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    logging: Optional[Dict[str, Any]] = None  # logging.config.dictConfig mapping
    profile: str = "default"
    source_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict, profile: str = "default") -> "AppConfig":
        """
        Create config from dictionary.

        Registrar credentials missing from the file fall back to the
        REGISTRAR_* environment variables.

        Args:
            data: Configuration dictionary
            profile: Profile name to use

        Returns:
            AppConfig instance

        Raises:
            ValueError: On an unknown transport
        """
        # Get profile-specific config or use root
        if "profiles" in data and profile in (data["profiles"] or {}):
            profile_data = data["profiles"][profile] or {}
        else:
            profile_data = data

        reg_data = profile_data.get("registrar") or {}
        registrar = RegistrarConfig(
            api_user=reg_data.get("api_user") or os.environ.get("REGISTRAR_API_USER", ""),
            api_key=reg_data.get("api_key") or os.environ.get("REGISTRAR_API_KEY", ""),
            username=reg_data.get("username") or os.environ.get("REGISTRAR_USERNAME", ""),
            client_ip=reg_data.get("client_ip") or os.environ.get("REGISTRAR_CLIENT_IP", ""),
            base_url=(
                reg_data.get("base_url")
                or os.environ.get("REGISTRAR_BASE_URL")
                or REGISTRAR_BASE_URL
            ),
            timeout=float(reg_data.get("timeout", 30.0)),
            page_size=int(reg_data.get("page_size", MAX_PAGE_SIZE)),
        )
        if not 1 <= registrar.page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"registrar.page_size must be between 1 and {MAX_PAGE_SIZE}")

        cf_data = profile_data.get("content_filter") or {}
        transport = cf_data.get("transport", "direct")
        if transport not in TRANSPORTS:
            raise ValueError(f"content_filter.transport must be one of {', '.join(TRANSPORTS)}")

        script_data = cf_data.get("script") or {}
        command = script_data.get("command") or []
        if isinstance(command, str):
            command = shlex.split(command)

        content_filter = ContentFilterConfig(
            base_url=cf_data.get("base_url", CONTENT_FILTER_BASE_URL),
            transport=transport,
            pinned_ip=cf_data.get("pinned_ip"),
            source_address=cf_data.get("source_address"),
            timeout=float(cf_data.get("timeout", 30.0)),
            verify=cf_data.get("verify", True),
            curl_path=cf_data.get("curl_path", "curl"),
            batch_size=int(cf_data.get("batch_size", BATCH_SIZE)),
            script=ScriptConfig(
                enabled=bool(script_data.get("enabled", False)),
                command=[_expand_path(str(part)) for part in command],
                timeout=float(script_data.get("timeout", SCRIPT_TIMEOUT)),
            ),
        )

        dns_data = profile_data.get("dns") or {}
        dns = DnsConfig(
            nameservers=list(dns_data.get("nameservers") or []),
            timeout=float(dns_data.get("timeout", 5.0)),
            lifetime=float(dns_data.get("lifetime", 10.0)),
            batch_size=int(dns_data.get("batch_size", 50)),
        )

        db_data = profile_data.get("database") or {}
        database = DatabaseConfig(
            path=_expand_path(db_data.get("path", DEFAULT_DATABASE_PATH)),
        )

        sched_data = profile_data.get("schedule") or {}
        schedule = ScheduleConfig(
            nameserver_refresh_minutes=sched_data.get("nameserver_refresh_minutes", 60),
            content_filter_minutes=sched_data.get("content_filter_minutes", 15),
            registrar_sync_minutes=sched_data.get("registrar_sync_minutes", 0),
        )

        return cls(
            registrar=registrar,
            content_filter=content_filter,
            dns=dns,
            database=database,
            schedule=schedule,
            logging=profile_data.get("logging") or data.get("logging"),
            profile=profile,
        )

    @classmethod
    def from_file(cls, path: Path, profile: str = "default") -> "AppConfig":
        """
        Load config from YAML file.

        Args:
            path: Path to config file
            profile: Profile name to use

        Returns:
            AppConfig instance
        """
        with open(path) as f:
            data = yaml.safe_load(f)

        config = cls.from_dict(data or {}, profile)
        config.source_path = str(Path(path).resolve())
        return config

    @classmethod
    def find_and_load(cls, profile: str = "default") -> Optional["AppConfig"]:
        """
        Find and load config from default locations.

        Args:
            profile: Profile name to use

        Returns:
            AppConfig instance or None if not found
        """
        for path in DEFAULT_CONFIG_PATHS:
            if path.exists():
                return cls.from_file(path, profile)
        return None


def load_config(path: Optional[str] = None, profile: str = "default") -> AppConfig:
    """Explicit file, else default locations, else environment only."""
    if path:
        return AppConfig.from_file(Path(path), profile)
    return AppConfig.find_and_load(profile) or AppConfig.from_dict({}, profile)


def _expand_path(path: Optional[str]) -> Optional[str]:
    """Expand environment variables and ~ in path."""
    if path is None:
        return None
    return os.path.expandvars(os.path.expanduser(path))


def create_sample_config() -> str:
    """
    Generate sample configuration YAML.

    Returns:
        Sample config as YAML string
    """
    return """# Domain Sync Configuration
# Copy to ~/.domain-sync/config.yaml

registrar:
  api_user: your_api_user
  # api_key: set here or via REGISTRAR_API_KEY
  username: your_account
  client_ip: 203.0.113.10
  # base_url: https://api.sandbox.namecheap.com/xml.response
  timeout: 30

content_filter:
  base_url: https://trustpositif.komdigi.go.id
  transport: direct          # direct or curl
  # pinned_ip: 203.0.113.7   # connect to this IP, keep TLS name/Host
  # source_address: 10.8.0.2 # bind outgoing connections
  timeout: 30
  batch_size: 50
  script:
    enabled: false           # run the check in a separate process
    # command: ["/usr/local/bin/domain-sync-filter", "--config", "~/.domain-sync/config.yaml"]
    timeout: 300

dns:
  nameservers: []            # empty means system resolvers
  timeout: 5
  lifetime: 10

database:
  path: ~/.domain-sync/domains.db

schedule:
  nameserver_refresh_minutes: 60
  content_filter_minutes: 15
  registrar_sync_minutes: 0  # 0 disables

# Optional logging.config.dictConfig mapping
# logging:
#   version: 1
#   handlers:
#     console: {class: logging.StreamHandler, level: INFO}
#   root: {level: INFO, handlers: [console]}

# Multiple profiles example
profiles:
  sandbox:
    registrar:
      api_user: sandbox_user
      username: sandbox_user
      client_ip: 203.0.113.10
      base_url: https://api.sandbox.namecheap.com/xml.response
    database:
      path: ~/.domain-sync/sandbox.db
"""

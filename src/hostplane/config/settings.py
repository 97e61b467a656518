"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the application actually reads.

Access pattern::

    from hostplane.config import get_config

    dns = get_config().settings.dns
    print(dns.driver, dns.zones_dir)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# ---------------------------------------------------------------------------
# Panel
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PanelSettings:
    """Server-wide identity: address, name servers, account layout."""

    server_ip: str
    hostname: str
    admin_email: str | None
    nameservers: tuple[str, ...]
    home_base: str
    default_php_version: str | None


def _build_panel(data: dict | None) -> PanelSettings:
    d = data or {}
    return PanelSettings(
        server_ip=d["server_ip"],
        hostname=d.get("hostname", "localhost"),
        admin_email=d.get("admin_email"),
        nameservers=tuple(d.get("nameservers", [])),
        home_base=d.get("home_base", "/home"),
        default_php_version=d.get("default_php_version"),
    )


# ---------------------------------------------------------------------------
# Web server
# ---------------------------------------------------------------------------

_WEB_SERVER_DEFAULTS: dict[str, dict[str, str]] = {
    "apache": {
        "sites_available": "/etc/apache2/sites-available",
        "sites_enabled": "/etc/apache2/sites-enabled",
        "service_name": "apache2",
        "binary": "apache2ctl",
    },
    "nginx": {
        "sites_available": "/etc/nginx/sites-available",
        "sites_enabled": "/etc/nginx/sites-enabled",
        "service_name": "nginx",
        "binary": "nginx",
    },
}

_DEFAULT_CIPHERS = (
    "ECDHE-ECDSA-AES128-GCM-SHA256:ECDHE-RSA-AES128-GCM-SHA256:"
    "ECDHE-ECDSA-AES256-GCM-SHA384:ECDHE-RSA-AES256-GCM-SHA384:"
    "ECDHE-ECDSA-CHACHA20-POLY1305:ECDHE-RSA-CHACHA20-POLY1305"
)


@dataclass(frozen=True)
class WebServerSettings:
    """Web-server driver selection and its file layout."""

    driver: str
    sites_available: str
    sites_enabled: str
    service_name: str
    binary: str
    ssl_dir: str
    log_dir: str
    php_socket: str
    ssl_ciphers: str
    hsts_max_age: int
    templates_path: str | None
    command_timeout_seconds: int


def _build_web_server(data: dict | None, ssl_dir: str) -> WebServerSettings:
    d = data or {}
    driver = d.get("driver", "apache")
    defaults = _WEB_SERVER_DEFAULTS.get(driver, _WEB_SERVER_DEFAULTS["apache"])
    return WebServerSettings(
        driver=driver,
        sites_available=d.get("sites_available", defaults["sites_available"]),
        sites_enabled=d.get("sites_enabled", defaults["sites_enabled"]),
        service_name=d.get("service_name", defaults["service_name"]),
        binary=d.get("binary", defaults["binary"]),
        ssl_dir=d.get("ssl_dir", ssl_dir),
        log_dir=d.get("log_dir", "{home}/logs"),
        php_socket=d.get("php_socket", "/run/php/php{version}-fpm-{user}.sock"),
        ssl_ciphers=d.get("ssl_ciphers", _DEFAULT_CIPHERS),
        hsts_max_age=d.get("hsts_max_age", 31536000),
        templates_path=d.get("templates_path"),
        command_timeout_seconds=d.get("command_timeout_seconds", 60),
    )


# ---------------------------------------------------------------------------
# DNS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PowerDnsSettings:
    """PowerDNS generic-SQL backend (tables live in ``schema``)."""

    schema: str
    zone_kind: str
    notify: bool
    pdns_control: str | None
    pdnsutil: str | None
    refresh: int
    retry: int
    expire: int
    minimum: int

    @property
    def soa_timers(self) -> tuple[int, int, int, int]:
        return (self.refresh, self.retry, self.expire, self.minimum)


def _build_powerdns(data: dict | None) -> PowerDnsSettings:
    d = data or {}
    return PowerDnsSettings(
        schema=d.get("schema", "pdns"),
        zone_kind=d.get("zone_kind", "NATIVE"),
        notify=d.get("notify", False),
        pdns_control=d.get("pdns_control", "pdns_control"),
        pdnsutil=d.get("pdnsutil"),
        refresh=d.get("refresh", 86400),
        retry=d.get("retry", 7200),
        expire=d.get("expire", 3600000),
        minimum=d.get("minimum", 172800),
    )


@dataclass(frozen=True)
class DnsSettings:
    """DNS driver selection, BIND layout and zone defaults."""

    driver: str
    zones_dir: str
    named_conf: str
    service_name: str
    checkzone_binary: str
    checkconf_binary: str
    allow_transfer: tuple[str, ...]
    soa_admin: str | None
    default_ttl: int
    refresh: int
    retry: int
    expire: int
    minimum: int
    command_timeout_seconds: int
    powerdns: PowerDnsSettings

    @property
    def soa_timers(self) -> tuple[int, int, int, int]:
        return (self.refresh, self.retry, self.expire, self.minimum)


def _build_dns(data: dict | None) -> DnsSettings:
    d = data or {}
    return DnsSettings(
        driver=d.get("driver", "bind"),
        zones_dir=d.get("zones_dir", "/var/lib/bind"),
        named_conf=d.get("named_conf", "/etc/bind/named.conf.local"),
        service_name=d.get("service_name", "named"),
        checkzone_binary=d.get("checkzone_binary", "named-checkzone"),
        checkconf_binary=d.get("checkconf_binary", "named-checkconf"),
        allow_transfer=tuple(d.get("allow_transfer", [])),
        soa_admin=d.get("soa_admin"),
        default_ttl=d.get("default_ttl", 3600),
        refresh=d.get("refresh", 28800),
        retry=d.get("retry", 7200),
        expire=d.get("expire", 1209600),
        minimum=d.get("minimum", 86400),
        command_timeout_seconds=d.get("command_timeout_seconds", 60),
        powerdns=_build_powerdns(d.get("powerdns")),
    )


# ---------------------------------------------------------------------------
# SSL / ACME
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AcmeSettings:
    """Certificate transport selection and its parameters."""

    transport: str
    directory_url: str
    email: str | None
    storage_path: str
    challenge_type: str
    certbot_binary: str
    certbot_live_dir: str
    key_type: str
    timeout_seconds: int
    self_signed_days: int


def _build_acme(data: dict | None) -> AcmeSettings:
    d = data or {}
    return AcmeSettings(
        transport=d.get("transport", "acmeow"),
        directory_url=d.get("directory_url", "https://acme-v02.api.letsencrypt.org/directory"),
        email=d.get("email"),
        storage_path=d.get("storage_path", "/var/lib/hostplane/acme"),
        challenge_type=d.get("challenge_type", "http-01"),
        certbot_binary=d.get("certbot_binary", "certbot"),
        certbot_live_dir=d.get("certbot_live_dir", "/etc/letsencrypt/live"),
        key_type=d.get("key_type", "rsa2048"),
        timeout_seconds=d.get("timeout_seconds", 300),
        self_signed_days=d.get("self_signed_days", 365),
    )


@dataclass(frozen=True)
class SslSettings:
    """Certificate storage, key sealing and issuance policy."""

    base_dir: str
    sealing_key: str | None
    issue_on_provision: bool
    acme: AcmeSettings


def _build_ssl(data: dict | None) -> SslSettings:
    d = data or {}
    return SslSettings(
        base_dir=d.get("base_dir", "/etc/ssl/hostplane"),
        sealing_key=d.get("sealing_key"),
        issue_on_provision=d.get("issue_on_provision", True),
        acme=_build_acme(d.get("acme")),
    )


# ---------------------------------------------------------------------------
# Renewal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RenewalSettings:
    """Scheduled renewal sweep."""

    enabled: bool
    threshold_days: int
    interval_seconds: int
    max_workers: int
    candidate_timeout_seconds: int


def _build_renewal(data: dict | None) -> RenewalSettings:
    d = data or {}
    return RenewalSettings(
        enabled=d.get("enabled", True),
        threshold_days=d.get("threshold_days", 30),
        interval_seconds=d.get("interval_seconds", 86400),
        max_workers=d.get("max_workers", 4),
        candidate_timeout_seconds=d.get("candidate_timeout_seconds", 600),
    )


# ---------------------------------------------------------------------------
# Locks, store, artifacts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LockSettings:
    acquire_timeout_seconds: float | None


def _build_locks(data: dict | None) -> LockSettings:
    d = data or {}
    return LockSettings(acquire_timeout_seconds=d.get("acquire_timeout_seconds", 600.0))


@dataclass(frozen=True)
class StoreSettings:
    backend: str


def _build_store(data: dict | None) -> StoreSettings:
    d = data or {}
    return StoreSettings(backend=d.get("backend", "postgres"))


@dataclass(frozen=True)
class ArtifactSettings:
    """Where rendered artifacts go and how daemons are driven."""

    root: str
    systemctl: str
    service_timeout_seconds: int


def _build_artifacts(data: dict | None) -> ArtifactSettings:
    d = data or {}
    return ArtifactSettings(
        root=d.get("root", ""),
        systemctl=d.get("systemctl", "systemctl"),
        service_timeout_seconds=d.get("service_timeout_seconds", 90),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditLogSettings:
    """Audit log configuration (file, rotation)."""

    enabled: bool
    file: str | None
    max_file_size_bytes: int
    backup_count: int


@dataclass(frozen=True)
class LoggingSettings:
    """Application logging configuration (level, format, audit)."""

    level: str
    format: str
    audit: AuditLogSettings


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    a = d.get("audit") or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "json"),
        audit=AuditLogSettings(
            enabled=a.get("enabled", True),
            file=a.get("file"),
            max_file_size_bytes=a.get("max_file_size_bytes", 104857600),
            backup_count=a.get("backup_count", 10),
        ),
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """PostgreSQL connection and pool settings."""

    host: str
    port: int
    database: str
    user: str
    password: str
    sslmode: str
    min_connections: int
    max_connections: int
    connection_timeout: float
    auto_setup: bool


def _build_database(data: dict | None) -> DatabaseSettings | None:
    if not data:
        return None
    d = data
    return DatabaseSettings(
        host=d.get("host", "localhost"),
        port=d.get("port", 5432),
        database=d["database"],
        user=d["user"],
        password=d.get("password", ""),
        sslmode=d.get("sslmode", "prefer"),
        min_connections=d.get("min_connections", 2),
        max_connections=d.get("max_connections", 10),
        connection_timeout=d.get("connection_timeout", 30.0),
        auto_setup=d.get("auto_setup", False),
    )


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HookEntrySettings:
    """Single registered hook entry with events and config."""

    class_path: str
    enabled: bool
    events: tuple[str, ...]
    timeout_seconds: int | None
    config: dict[str, Any]


@dataclass(frozen=True)
class HookSettings:
    """Lifecycle hook system settings (workers, retries, registry)."""

    timeout_seconds: int
    max_workers: int
    max_retries: int
    retry_backoff_seconds: float
    dead_letter_log: str | None
    registered: tuple[HookEntrySettings, ...]


def _build_hooks(data: dict | None) -> HookSettings:
    from hostplane.hooks.events import KNOWN_EVENTS  # noqa: PLC0415

    d = data or {}
    registered = []
    for idx, entry in enumerate(d.get("registered", [])):
        events = tuple(entry.get("events", []))
        for evt in events:
            if evt not in KNOWN_EVENTS:
                msg = (
                    f"hooks.registered[{idx}].events: unknown event "
                    f"'{evt}'. Known events: {sorted(KNOWN_EVENTS)}"
                )
                raise ValueError(msg)
        registered.append(
            HookEntrySettings(
                class_path=entry["class"],
                enabled=entry.get("enabled", True),
                events=events,
                timeout_seconds=entry.get("timeout_seconds"),
                config=entry.get("config", {}),
            )
        )
    return HookSettings(
        timeout_seconds=d.get("timeout_seconds", 30),
        max_workers=d.get("max_workers", 4),
        max_retries=d.get("max_retries", 0),
        retry_backoff_seconds=d.get("retry_backoff_seconds", 1.0),
        dead_letter_log=d.get("dead_letter_log"),
        registered=tuple(registered),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HostplaneSettings:
    panel: PanelSettings
    web_server: WebServerSettings
    dns: DnsSettings
    ssl: SslSettings
    renewal: RenewalSettings
    locks: LockSettings
    store: StoreSettings
    artifacts: ArtifactSettings
    logging: LoggingSettings
    database: DatabaseSettings | None
    hooks: HookSettings


def build_settings(data: dict) -> HostplaneSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`HostplaneConfig` initialisation after
    schema validation and environment-variable resolution.
    """
    ssl = _build_ssl(data.get("ssl"))
    return HostplaneSettings(
        panel=_build_panel(data.get("panel")),
        web_server=_build_web_server(data.get("web_server"), ssl.base_dir),
        dns=_build_dns(data.get("dns")),
        ssl=ssl,
        renewal=_build_renewal(data.get("renewal")),
        locks=_build_locks(data.get("locks")),
        store=_build_store(data.get("store")),
        artifacts=_build_artifacts(data.get("artifacts")),
        logging=_build_logging(data.get("logging")),
        database=_build_database(data.get("database")),
        hooks=_build_hooks(data.get("hooks")),
    )

"""Configuration subsystem.

Public API::

    from hostplane.config import get_config, HostplaneConfig

    # At startup (CLI only):
    HostplaneConfig(config_file="config.yaml")

    # Everywhere else:
    cfg = get_config()
    driver = cfg.settings.web_server.driver   # typed access
    email = cfg.get("ssl.acme.email")          # dynamic dot-path
"""

from hostplane.config.hostplane_config import (
    ConfigValidationError,
    HostplaneConfig,
    get_config,
)
from hostplane.config.settings import (
    AcmeSettings,
    ArtifactSettings,
    AuditLogSettings,
    DatabaseSettings,
    DnsSettings,
    HookEntrySettings,
    HookSettings,
    HostplaneSettings,
    LockSettings,
    LoggingSettings,
    PanelSettings,
    PowerDnsSettings,
    RenewalSettings,
    SslSettings,
    StoreSettings,
    WebServerSettings,
    build_settings,
)

__all__ = [
    "AcmeSettings",
    "ArtifactSettings",
    "AuditLogSettings",
    "ConfigValidationError",
    "DatabaseSettings",
    "DnsSettings",
    "HookEntrySettings",
    "HookSettings",
    "HostplaneConfig",
    "HostplaneSettings",
    "LockSettings",
    "LoggingSettings",
    "PanelSettings",
    "PowerDnsSettings",
    "RenewalSettings",
    "SslSettings",
    "StoreSettings",
    "WebServerSettings",
    "build_settings",
    "get_config",
]

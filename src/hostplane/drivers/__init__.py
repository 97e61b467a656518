"""Web-server and DNS drivers plus the publishing pipeline they share."""

from hostplane.drivers.base import (
    CertificatePaths,
    DnsDriver,
    DriverContext,
    WebServerDriver,
)
from hostplane.drivers.publisher import Changeset, ConfigPublisher, PublishResult
from hostplane.drivers.registry import load_dns_driver, load_web_server_driver

__all__ = [
    "CertificatePaths",
    "Changeset",
    "ConfigPublisher",
    "DnsDriver",
    "DriverContext",
    "PublishResult",
    "WebServerDriver",
    "load_dns_driver",
    "load_web_server_driver",
]

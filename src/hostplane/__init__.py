"""Hostplane: DNS, virtual-host and TLS provisioning for hosted domains."""

__version__ = "0.4.0"

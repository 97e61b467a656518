"""Fixtures for the certificate transport tests."""

from __future__ import annotations

import pytest

from hostplane.config.settings import build_settings


@pytest.fixture()
def acme_settings(settings_data):
    """Build ``ssl.acme`` settings from keyword overrides."""

    def _make(**acme):
        settings_data["ssl"]["acme"] = {"key_type": "ec256", **acme}
        return build_settings(settings_data).ssl.acme

    return _make

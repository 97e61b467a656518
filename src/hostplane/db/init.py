"""Database initialisation from hostplane configuration.

Usage::

    from hostplane.config import get_config
    from hostplane.db.init import init_database

    init_database(get_config().settings.database)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pypgkit import Database, DatabaseConfig

if TYPE_CHECKING:
    from hostplane.config.settings import DatabaseSettings

_SCHEMA_PATH = Path(__file__).parent / "schema.sql"

log = logging.getLogger(__name__)


def _settings_to_config(settings: DatabaseSettings) -> DatabaseConfig:
    return DatabaseConfig(
        host=settings.host,
        port=settings.port,
        database=settings.database,
        user=settings.user,
        password=settings.password,
        sslmode=settings.sslmode,
        min_connections=settings.min_connections,
        max_connections=settings.max_connections,
        connection_timeout=settings.connection_timeout,
    )


def init_database(settings: DatabaseSettings) -> Database:
    """Initialise the :class:`Database` singleton from config settings.

    The bundled schema (panel tables plus the PowerDNS ``pdns`` schema)
    is applied when ``database.auto_setup`` is true.  Calling this again
    returns the existing instance.
    """
    if Database.is_initialized():
        log.debug("Database already initialised, returning existing instance")
        return Database.get_instance()

    log.info(
        "Connecting to %s@%s:%s/%s",
        settings.user,
        settings.host,
        settings.port,
        settings.database,
    )
    db = Database.init(
        config=_settings_to_config(settings),
        schema_path=_SCHEMA_PATH if settings.auto_setup else None,
        auto_setup=settings.auto_setup,
        interactive=False,
    )
    log.info("Database ready (auto_setup=%s)", settings.auto_setup)
    return db

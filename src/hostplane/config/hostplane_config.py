"""hostplane configuration loader.

Lifecycle::

    # 1. CLI creates the singleton (once, at startup)
    HostplaneConfig(config_file="/etc/hostplane/config.yaml")

    # 2. Any module retrieves it afterwards
    from hostplane.config import get_config
    cfg = get_config()
    cfg.settings.dns.driver  # typed access

    # 3. Dynamic access
    cfg.get("ssl.acme.email", default="hostmaster@example.com")
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from hostplane.config.settings import HostplaneSettings, build_settings

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_CLASS_PATH_RE = re.compile(
    r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)+$",
)

_BUILTIN_TRANSPORTS = frozenset({"acmeow", "certbot", "self_signed"})
_MIN_HSTS_ONE_DAY = 86400

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton reference
# ---------------------------------------------------------------------------
_instance: HostplaneConfig | None = None


def get_config() -> HostplaneConfig:
    """Return the initialised configuration singleton.

    Raises :class:`RuntimeError` if :class:`HostplaneConfig` has not been
    created yet (i.e. the CLI entry point has not run).
    """
    if _instance is None:
        msg = (
            "Configuration not initialised. "
            "HostplaneConfig must be created with config_file= before calling get_config()."
        )
        raise RuntimeError(msg)
    return _instance


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


def load_document(config_file: str | Path) -> dict:
    """Read a YAML (or JSON) config file and resolve env-var references."""
    path = Path(config_file)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file {path}: {exc}"
        raise ConfigValidationError([msg]) from exc
    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigValidationError([f"Cannot parse {path}: {exc}"]) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigValidationError([f"{path} must contain a mapping at the top level"])
    _resolve_env_vars(data)
    return data


def validate_schema(data: dict, schema: dict | None = None) -> None:
    """Validate *data* against the bundled JSON Schema, collecting every error."""
    if schema is None:
        schema = json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        raise ConfigValidationError(
            [f"{'.'.join(str(p) for p in e.absolute_path) or '<root>'}: {e.message}" for e in errors],
        )


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class HostplaneConfig:
    """Central configuration for the panel.

    Loading order: read the file, resolve ``${VAR}`` references, validate
    against ``schema.json``, run :meth:`additional_checks`, then build the
    typed :class:`HostplaneSettings` tree.
    """

    def __init__(self, *, config_file: str | Path) -> None:
        global _instance  # noqa: PLW0603

        self._source = str(config_file)
        self._data = load_document(config_file)
        validate_schema(self._data)
        self.additional_checks()
        try:
            self._settings: HostplaneSettings = build_settings(self._data)
        except (KeyError, ValueError) as exc:
            raise ConfigValidationError([str(exc)]) from exc
        _instance = self

    # -- access -------------------------------------------------------------

    @property
    def data(self) -> dict:
        """The resolved raw document."""
        return self._data

    @property
    def settings(self) -> HostplaneSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    def get(self, dotted: str, default: Any = None) -> Any:  # noqa: ANN401
        """Look up a raw value by dot-path (``"ssl.acme.email"``)."""
        node: Any = self._data
        for part in dotted.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # -- cross-field validation ---------------------------------------------

    def additional_checks(self) -> None:  # noqa: C901, PLR0912
        """Semantic & cross-field validation, run after the schema passed."""
        errors: list[str] = []
        warnings: list[str] = []

        web = self._data.get("web_server") or {}
        dns = self._data.get("dns") or {}
        ssl = self._data.get("ssl") or {}
        acme = ssl.get("acme") or {}
        renewal = self._data.get("renewal") or {}
        store = self._data.get("store") or {}
        database = self._data.get("database") or {}
        hooks = self._data.get("hooks") or {}

        backend = store.get("backend", "postgres")

        # -- store --
        if backend == "postgres" and not database:
            errors.append("database is required when store.backend is 'postgres'")
        if backend == "memory":
            warnings.append(
                "store.backend is 'memory': domains, zones and certificates "
                "are lost when the process exits",
            )

        # -- DNS --
        if dns.get("driver", "bind") == "powerdns" and backend != "postgres":
            errors.append("dns.driver 'powerdns' requires store.backend 'postgres'")
        for driver_key, kind in ((dns.get("driver"), "DNS"), (web.get("driver"), "web server")):
            if driver_key and driver_key.startswith("ext:") and not _CLASS_PATH_RE.match(driver_key[4:]):
                errors.append(f"{kind} driver '{driver_key}' is not a valid 'ext:package.module.Class' path")

        # -- ACME --
        transport = acme.get("transport", "acmeow")
        if transport not in _BUILTIN_TRANSPORTS and not transport.startswith("ext:"):
            errors.append(
                f"ssl.acme.transport '{transport}' is unknown. "
                f"Known transports: {sorted(_BUILTIN_TRANSPORTS)}. "
                "Use 'ext:fully.qualified.Class' for custom transports.",
            )
        if transport == "acmeow" and not acme.get("email"):
            errors.append("ssl.acme.email is required when ssl.acme.transport is 'acmeow'")
        if transport == "self_signed":
            warnings.append(
                "ssl.acme.transport is 'self_signed': browsers will not trust issued certificates",
            )
        if not ssl.get("sealing_key"):
            warnings.append("ssl.sealing_key is not set; private keys are stored unencrypted")

        # -- renewal --
        threshold = renewal.get("threshold_days", 30)
        if threshold <= 0:
            errors.append(f"renewal.threshold_days ({threshold}) must be positive")
        if renewal.get("interval_seconds", 86400) < 60:  # noqa: PLR2004
            errors.append("renewal.interval_seconds must be at least 60")
        self_signed_days = acme.get("self_signed_days", 365)
        if transport == "self_signed" and self_signed_days <= threshold:
            warnings.append(
                f"ssl.acme.self_signed_days ({self_signed_days}) is within "
                f"renewal.threshold_days ({threshold}); every sweep will renew",
            )

        # -- database --
        min_conn = database.get("min_connections", 2)
        max_conn = database.get("max_connections", 10)
        if min_conn > max_conn:
            errors.append(
                f"database.min_connections ({min_conn}) must be <= "
                f"database.max_connections ({max_conn})",
            )
        workers = renewal.get("max_workers", 4)
        if database and max_conn < workers + 1:
            warnings.append(
                f"database.max_connections ({max_conn}) is low relative to "
                f"renewal.max_workers ({workers})",
            )

        # -- web server --
        hsts = web.get("hsts_max_age", 31536000)
        if 0 < hsts < _MIN_HSTS_ONE_DAY:
            warnings.append(
                f"web_server.hsts_max_age ({hsts}) is less than 1 day; "
                "consider a longer duration for effective HSTS",
            )

        # -- hooks --
        from hostplane.hooks.events import KNOWN_EVENTS  # noqa: PLC0415

        for idx, entry in enumerate(hooks.get("registered", [])):
            class_path = entry.get("class", "")
            if class_path and not _CLASS_PATH_RE.match(class_path):
                errors.append(
                    f"hooks.registered[{idx}].class '{class_path}' is not a "
                    "valid fully qualified Python class path "
                    "(expected 'package.module.ClassName')",
                )
            for evt in entry.get("events", []):
                if evt not in KNOWN_EVENTS:
                    errors.append(
                        f"hooks.registered[{idx}].events contains unknown "
                        f"event '{evt}'. Known events: {sorted(KNOWN_EVENTS)}",
                    )

        for w in warnings:
            log.warning("Config warning: %s", w)

        if errors:
            raise ConfigValidationError(errors)

    # -- helpers ------------------------------------------------------------

    def reload_settings(self) -> HostplaneSettings:
        """Re-read the config file and rebuild settings.

        Does not reset the singleton.
        """
        data = load_document(self._source)
        validate_schema(data)
        return build_settings(data)

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton -- testing only."""
        global _instance  # noqa: PLW0603
        _instance = None

    def __repr__(self) -> str:
        return f"<HostplaneConfig config_file={self._source}>"

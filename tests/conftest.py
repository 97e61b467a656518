"""Root conftest for the hostplane test suite."""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from hostplane.config.settings import build_settings  # noqa: E402
from hostplane.core.clock import FixedClock  # noqa: E402
from hostplane.core.errors import ExternalProcessError  # noqa: E402
from hostplane.models import Account, Domain  # noqa: E402
from hostplane.system.artifacts import MemoryArtifactStore  # noqa: E402
from hostplane.system.runner import CommandResult  # noqa: E402

SERVER_IP = "203.0.113.10"
NOW = datetime(2025, 3, 14, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Fake command runner
# ---------------------------------------------------------------------------


class FakeRunner:
    """Records every command instead of running it.

    Programs registered with :meth:`fail` exit 1 with the given output;
    :meth:`respond` sets the stdout of a successful program.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self._failures: dict[tuple[str, ...], str] = {}
        self._outputs: dict[str, str] = {}

    def fail(self, *prefix: str, output: str = "error") -> None:
        self._failures[prefix] = output

    def clear_failures(self) -> None:
        self._failures.clear()

    def respond(self, program: str, stdout: str) -> None:
        self._outputs[program] = stdout

    def commands(self, program: str) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] == program]

    def run(self, argv, *, timeout=None, check=False, env=None, input_text=None):  # noqa: ARG002
        command = tuple(argv)
        self.calls.append(command)
        failure = next(
            (out for prefix, out in self._failures.items() if command[: len(prefix)] == prefix),
            None,
        )
        if failure is not None:
            result = CommandResult(command, 1, "", failure, 0.0)
        else:
            result = CommandResult(command, 0, self._outputs.get(command[0], ""), "", 0.0)
        if check and not result.ok:
            raise ExternalProcessError(
                f"'{' '.join(command)}' exited with status 1: {failure}",
                command=command,
                returncode=1,
                output=failure,
            )
        return result


# ---------------------------------------------------------------------------
# Config data
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data() -> dict:
    """Smallest document that passes schema and cross-field validation."""
    return {
        "panel": {"server_ip": SERVER_IP},
        "store": {"backend": "memory"},
        "ssl": {"acme": {"transport": "self_signed"}},
    }


@pytest.fixture()
def settings_data() -> dict:
    """Memory store, self-signed EC certificates, fixed name servers."""
    return {
        "panel": {
            "server_ip": SERVER_IP,
            "hostname": "panel.hostplane.test",
            "nameservers": ["ns1.hostplane.test", "ns2.hostplane.test"],
        },
        "store": {"backend": "memory"},
        "ssl": {"acme": {"transport": "self_signed", "key_type": "ec256"}},
        "renewal": {"max_workers": 2, "candidate_timeout_seconds": 30},
        "locks": {"acquire_timeout_seconds": 5},
        "logging": {"audit": {"enabled": False}},
    }


@pytest.fixture()
def settings(settings_data):
    return build_settings(settings_data)


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture()
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def artifacts() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture()
def make_domain():
    """Factory for unsaved domains owned by ``alice``."""

    def _make(name: str = "example.com", **kwargs) -> Domain:
        account = Account(username="alice", uid=1001, gid=1001, home_dir="/home/alice")
        kwargs.setdefault("document_root", f"/home/alice/{name}/public_html")
        return Domain(name=name, account=account, **kwargs)

    return _make


@pytest.fixture()
def container(settings, artifacts, runner, clock):
    """Fully wired container on the memory store and artifact store."""
    from hostplane.app.context import Container

    c = Container(settings, artifacts=artifacts, runner=runner, clock=clock)
    yield c
    c.shutdown(timeout=1.0)


# ---------------------------------------------------------------------------
# Config singleton cleanup, autouse so every test gets a fresh slate
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the HostplaneConfig singleton before and after every test."""
    from hostplane.config.hostplane_config import HostplaneConfig

    HostplaneConfig.reset()
    yield
    HostplaneConfig.reset()

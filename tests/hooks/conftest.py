"""Hook-specific fixtures for testing."""

from __future__ import annotations

import types
from unittest.mock import patch

import pytest

from hostplane.config.settings import HookEntrySettings, HookSettings
from hostplane.hooks.base import Hook

# ---------------------------------------------------------------------------
# Concrete Hook subclasses for testing
# ---------------------------------------------------------------------------


class DummyHook(Hook):
    """Records every call in ``self.calls``."""

    def __init__(self, config: dict | None = None) -> None:
        super().__init__(config)
        self.calls: list[tuple[str, dict]] = []

    def on_zone_created(self, ctx: dict) -> None:
        self.calls.append(("on_zone_created", ctx))

    def on_domain_provisioned(self, ctx: dict) -> None:
        self.calls.append(("on_domain_provisioned", ctx))

    def on_certificate_renewed(self, ctx: dict) -> None:
        self.calls.append(("on_certificate_renewed", ctx))


class FailingHook(Hook):
    """Raises RuntimeError until ``fail_times`` calls have failed."""

    def __init__(self, config: dict | None = None) -> None:
        super().__init__(config)
        self.attempts = 0

    def on_certificate_renewal_failed(self, ctx: dict) -> None:
        self.attempts += 1
        if self.attempts <= self.config.get("fail_times", 1_000):
            raise RuntimeError("smtp relay refused connection")


class MutatingHook(Hook):
    def on_zone_created(self, ctx: dict) -> None:
        ctx["serial"] = 0
        ctx["mutated"] = True


class ValidatingHook(Hook):
    """``validate_config`` requires ``webhook_url`` in config."""

    @classmethod
    def validate_config(cls, config: dict) -> None:
        if "webhook_url" not in config:
            raise ValueError("missing webhook_url")


class NotAHook:
    pass


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_module() -> types.ModuleType:
    mod = types.ModuleType("fake_hooks")
    mod.DummyHook = DummyHook
    mod.FailingHook = FailingHook
    mod.MutatingHook = MutatingHook
    mod.ValidatingHook = ValidatingHook
    mod.NotAHook = NotAHook
    return mod


@pytest.fixture()
def make_entry():
    def _make(
        class_path: str = "fake_hooks.DummyHook",
        *,
        enabled: bool = True,
        events: tuple[str, ...] = (),
        timeout_seconds: int | None = None,
        config: dict | None = None,
    ) -> HookEntrySettings:
        return HookEntrySettings(
            class_path=class_path,
            enabled=enabled,
            events=events,
            timeout_seconds=timeout_seconds,
            config=config or {},
        )

    return _make


@pytest.fixture()
def make_settings():
    def _make(*entries: HookEntrySettings, **kwargs) -> HookSettings:
        values = {
            "timeout_seconds": 30,
            "max_workers": 2,
            "max_retries": 0,
            "retry_backoff_seconds": 0.0,
            "dead_letter_log": None,
        }
        values.update(kwargs)
        return HookSettings(registered=tuple(entries), **values)

    return _make


@pytest.fixture()
def load_registry(fake_module, make_settings):
    """Build registries whose class paths resolve against *fake_module*."""
    from hostplane.hooks.registry import HookRegistry

    created: list[HookRegistry] = []

    def _load(*entries: HookEntrySettings, **kwargs) -> HookRegistry:
        with patch("hostplane.hooks.registry.importlib.import_module", return_value=fake_module):
            registry = HookRegistry(make_settings(*entries, **kwargs))
        created.append(registry)
        return registry

    yield _load
    for registry in created:
        registry.shutdown(wait=True)

"""Hook registry: load configured hooks and dispatch events to them.

Hooks are loaded at start-up from ``hooks.registered``; a hook that
cannot be imported, fails its own config validation or subscribes to
an unknown event stops the process from starting.

Dispatch is fire-and-forget on a thread pool.  Each hook gets its own
copy of the event context, is retried with exponential backoff, and
its final failure is written to the dead-letter log when one is
configured.  A hook that fails never affects the operation that
emitted the event.

Usage::

    registry = HookRegistry(settings.hooks)
    registry.dispatch("certificate.renewed", {"domain": "example.com"})
"""

from __future__ import annotations

import copy
import importlib
import json
import logging
import re
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from hostplane.hooks.base import Hook
from hostplane.hooks.events import EVENT_METHOD_MAP, KNOWN_EVENTS

if TYPE_CHECKING:
    from hostplane.config.settings import HookEntrySettings, HookSettings

log = logging.getLogger(__name__)

_CLASS_PATH_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)+$")


@dataclass
class _LoadedHook:
    instance: Hook
    entry: HookEntrySettings
    subscribed_events: frozenset = field(default_factory=frozenset)


class HookRegistry:
    """Loaded hooks plus the executor that runs them.

    Parameters
    ----------
    settings:
        The ``hooks`` configuration section.

    """

    def __init__(self, settings: HookSettings) -> None:
        self._settings = settings
        self._hooks: list[_LoadedHook] = []
        self._executor: ThreadPoolExecutor | None = None
        self._shutdown_event = threading.Event()
        self._load()

    @property
    def hooks(self) -> list[Hook]:
        return [h.instance for h in self._hooks]

    # -- loading -----------------------------------------------------------

    def _load(self) -> None:
        for entry in self._settings.registered:
            if not entry.enabled:
                log.debug("Hook '%s' is disabled, skipping", entry.class_path)
                continue
            try:
                self._load_hook(entry)
            except Exception:
                log.critical("Failed to load hook '%s'; refusing to start", entry.class_path)
                raise

        if self._hooks:
            self._executor = ThreadPoolExecutor(
                max_workers=self._settings.max_workers,
                thread_name_prefix="hostplane-hook",
            )
            log.info("Loaded %d hook(s), executor pool=%d", len(self._hooks), self._settings.max_workers)

    def _load_hook(self, entry: HookEntrySettings) -> None:
        if not _CLASS_PATH_RE.match(entry.class_path):
            msg = (
                f"Invalid hook class path '{entry.class_path}': must match "
                "'package.module.ClassName'"
            )
            raise ValueError(msg)

        module_path, _, cls_name = entry.class_path.rpartition(".")
        cls = getattr(importlib.import_module(module_path), cls_name)
        if not (isinstance(cls, type) and issubclass(cls, Hook)):
            msg = f"Hook '{entry.class_path}' must be a subclass of hostplane.hooks.Hook"
            raise TypeError(msg)

        cls.validate_config(entry.config)
        instance = cls(config=entry.config)

        if entry.events:
            unknown = frozenset(entry.events) - KNOWN_EVENTS
            if unknown:
                msg = (
                    f"Hook '{entry.class_path}' subscribes to unknown events: "
                    f"{sorted(unknown)}. Known events: {sorted(KNOWN_EVENTS)}"
                )
                raise ValueError(msg)
            subscribed = frozenset(entry.events)
        else:
            subscribed = KNOWN_EVENTS

        self._hooks.append(_LoadedHook(instance, entry, subscribed))
        log.info(
            "Loaded hook: %s (events=%s)",
            entry.class_path,
            "all" if subscribed == KNOWN_EVENTS else sorted(subscribed),
        )

    # -- dispatch ----------------------------------------------------------

    def dispatch(self, event: str, context: dict) -> None:
        """Hand *event* to every subscribed hook without waiting.

        Raises
        ------
        ValueError
            If *event* is not a known event name.

        """
        method_name = EVENT_METHOD_MAP.get(event)
        if method_name is None:
            msg = f"Unknown hook event '{event}'. Known events: {sorted(KNOWN_EVENTS)}"
            raise ValueError(msg)
        if self._shutdown_event.is_set() or self._executor is None:
            return

        base_context = copy.deepcopy(context)
        for loaded in self._hooks:
            if event not in loaded.subscribed_events:
                continue
            timeout = (
                loaded.entry.timeout_seconds
                if loaded.entry.timeout_seconds is not None
                else self._settings.timeout_seconds
            )
            try:
                future: Future = self._executor.submit(
                    self._execute_hook,
                    loaded,
                    method_name,
                    base_context.copy(),
                    event,
                )
            except RuntimeError:
                log.warning("Executor shut down, cannot dispatch '%s' to '%s'", event, loaded.entry.class_path)
                continue
            future.add_done_callback(lambda f, _t=timeout: self._on_hook_done(f, _t))

    def _execute_hook(
        self,
        loaded: _LoadedHook,
        method_name: str,
        context: dict,
        event: str,
    ) -> dict[str, Any]:
        max_retries = self._settings.max_retries
        start = time.monotonic()
        error = ""
        for attempt in range(max_retries + 1):
            try:
                getattr(loaded.instance, method_name)(context)
            except Exception as exc:  # noqa: BLE001
                error = str(exc) or type(exc).__name__
                if attempt < max_retries:
                    time.sleep(self._settings.retry_backoff_seconds * (2**attempt))
                continue
            return {
                "hook_name": loaded.entry.class_path,
                "event": event,
                "outcome": "success",
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            }
        return {
            "hook_name": loaded.entry.class_path,
            "event": event,
            "outcome": "error",
            "duration_ms": round((time.monotonic() - start) * 1000, 2),
            "error": error,
            "context": context,
        }

    def _on_hook_done(self, future: Future, timeout: float) -> None:
        result = future.result()
        extra = {k: result[k] for k in ("hook_name", "event", "outcome", "duration_ms")}
        if result["outcome"] == "error":
            log.error(
                "Hook '%s' failed for event '%s' (%.1fms): %s",
                result["hook_name"],
                result["event"],
                result["duration_ms"],
                result["error"],
                extra=extra,
            )
            if self._settings.dead_letter_log:
                self._write_dead_letter(result)
        elif result["duration_ms"] > timeout * 1000:
            log.warning(
                "Hook '%s' exceeded its %gs budget for event '%s' (%.1fms)",
                result["hook_name"],
                timeout,
                result["event"],
                result["duration_ms"],
                extra=extra,
            )
        else:
            log.debug(
                "Hook '%s' completed event '%s' in %.1fms",
                result["hook_name"],
                result["event"],
                result["duration_ms"],
                extra=extra,
            )

    def _write_dead_letter(self, result: dict) -> None:
        entry = json.dumps(
            {
                "timestamp": time.time(),
                "hook_name": result["hook_name"],
                "event": result["event"],
                "error": result["error"],
                "context": result["context"],
            },
            default=str,
        )
        try:
            with open(self._settings.dead_letter_log, "a", encoding="utf-8") as fh:
                fh.write(entry + "\n")
        except OSError:
            log.exception("Failed to write dead-letter log entry")

    # -- lifecycle ---------------------------------------------------------

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting events; safe to call more than once."""
        if self._shutdown_event.is_set():
            return
        self._shutdown_event.set()
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            log.info("Hook executor shut down")

"""Stage, validate, activate, reload.

Every configuration change made by a driver goes through
:meth:`ConfigPublisher.publish`:

1. the driver renders the complete artifact text (never a diff);
2. each write is staged beside its destination;
3. artifact-level checkers (``named-checkzone``) run against the staged
   files; a failure discards the staging and leaves the live files alone;
4. the staged files are renamed into place, removals and link changes are
   applied, and the previous state of every touched path is remembered;
5. the tree-level checker (``nginx -t``, ``apache2ctl -t``) runs; a
   failure restores every touched path to its remembered state;
6. the daemon is reloaded.

A changeset whose operations are all no-ops publishes nothing and does
not reload.

One publisher guards one daemon's configuration tree: publishes through
the same instance never interleave, so a tree-level checker never sees
another change half-activated.  Drivers that render shared files from
stored state (the BIND zone list) hold :attr:`ConfigPublisher.lock`
across the read, the publish and the save.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hostplane.core.errors import (
    ArtifactError,
    ConfigTestError,
    ExternalProcessError,
    HostplaneError,
    PublishError,
)
from hostplane.core.types import PublishStage

if TYPE_CHECKING:
    from collections.abc import Callable

    from hostplane.system.artifacts import ArtifactStore

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Changesets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ArtifactWrite:
    path: str
    content: str
    mode: int = 0o644
    check: Callable[[str], None] | None = None


@dataclass(frozen=True)
class ArtifactRemoval:
    path: str


@dataclass(frozen=True)
class LinkChange:
    target: str
    link_path: str
    enabled: bool


@dataclass
class Changeset:
    """Ordered set of artifact operations published as one unit."""

    operations: list[ArtifactWrite | ArtifactRemoval | LinkChange] = field(default_factory=list)

    def write(
        self,
        path: str,
        content: str,
        *,
        mode: int = 0o644,
        check: Callable[[str], None] | None = None,
    ) -> Changeset:
        """Add a write.

        *check*, when given, receives the real path of the staged file and
        raises :class:`ConfigTestError` if it is invalid.
        """
        self.operations.append(ArtifactWrite(path, content, mode, check))
        return self

    def remove(self, path: str) -> Changeset:
        self.operations.append(ArtifactRemoval(path))
        return self

    def link(self, target: str, link_path: str) -> Changeset:
        self.operations.append(LinkChange(target, link_path, enabled=True))
        return self

    def unlink(self, link_path: str) -> Changeset:
        self.operations.append(LinkChange("", link_path, enabled=False))
        return self

    def __bool__(self) -> bool:
        return bool(self.operations)


@dataclass(frozen=True)
class PublishResult:
    changed: bool
    paths: tuple[str, ...] = ()
    reload_action: str | None = None


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Snapshot:
    path: str
    content: str | None = None
    mode: int | None = None
    link_target: str | None = None


def _snapshot(store: ArtifactStore, path: str) -> _Snapshot:
    target = store.read_link(path)
    if target is not None:
        return _Snapshot(path, link_target=target)
    return _Snapshot(path, content=store.read(path), mode=store.mode(path))


def _restore(store: ArtifactStore, snap: _Snapshot) -> None:
    if snap.link_target is not None:
        store.link(snap.link_target, snap.path)
    elif snap.content is not None:
        store.write(snap.path, snap.content, mode=snap.mode or 0o644)
    else:
        store.delete(snap.path)


# ---------------------------------------------------------------------------
# Publisher
# ---------------------------------------------------------------------------


class ConfigPublisher:
    """Apply a :class:`Changeset` without ever leaving invalid config live.

    Parameters
    ----------
    artifacts:
        Store holding the daemon's configuration files.
    label:
        Name used in log messages (e.g. ``"nginx"``).

    """

    def __init__(self, artifacts: ArtifactStore, *, label: str) -> None:
        self._artifacts = artifacts
        self._label = label
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Re-entrant lock held for the whole of every :meth:`publish`."""
        return self._lock

    def publish(
        self,
        changeset: Changeset,
        *,
        validate: Callable[[], None] | None = None,
        reload: Callable[[], str | None] | None = None,
    ) -> PublishResult:
        """Publish *changeset*.

        Parameters
        ----------
        changeset:
            Fully rendered writes, removals and link changes.
        validate:
            Tree-level checker run after activation; raises
            :class:`ConfigTestError` when the daemon would reject the
            configuration.
        reload:
            Signals the daemon; may return a label for the action taken.

        Returns
        -------
        PublishResult

        Raises
        ------
        PublishError
            Tagged with the stage that failed.  For ``validate`` and
            ``activate`` failures the previous artifacts are active again.

        """
        with self._lock:
            return self._publish(changeset, validate, reload)

    def _publish(
        self,
        changeset: Changeset,
        validate: Callable[[], None] | None,
        reload: Callable[[], str | None] | None,
    ) -> PublishResult:
        pending = [op for op in changeset.operations if not self._is_noop(op)]
        if not pending:
            log.debug("%s: nothing to publish", self._label)
            return PublishResult(changed=False)

        staged = self._stage(pending)
        try:
            self._check_staged(pending, staged)
            applied = self._activate(pending, staged)
        finally:
            for path in staged.values():
                self._artifacts.discard(path)

        if validate is not None:
            try:
                validate()
            except HostplaneError as exc:
                self._rollback(applied)
                if isinstance(exc, ConfigTestError):
                    raise
                raise ConfigTestError(
                    f"{self._label} configuration test could not run: {exc.detail}",
                ) from exc

        paths = tuple(_op_path(op) for op in pending)
        action = None
        if reload is not None:
            try:
                action = reload()
            except ExternalProcessError as exc:
                msg = f"{self._label} reload failed: {exc.detail}"
                raise PublishError(msg, stage=PublishStage.RELOAD, retryable=True) from exc
        log.info(
            "%s: published %d artifact(s)%s",
            self._label,
            len(paths),
            f" ({action})" if action else "",
            extra={"paths": list(paths)},
        )
        return PublishResult(changed=True, paths=paths, reload_action=action or None)

    # -- steps ---------------------------------------------------------------

    def _is_noop(self, op: ArtifactWrite | ArtifactRemoval | LinkChange) -> bool:
        store = self._artifacts
        if isinstance(op, ArtifactWrite):
            return (
                not store.is_link(op.path)
                and store.read(op.path) == op.content
                and store.mode(op.path) in (None, op.mode)
            )
        if isinstance(op, ArtifactRemoval):
            return not store.exists(op.path)
        if op.enabled:
            return store.read_link(op.link_path) == op.target
        return not store.exists(op.link_path)

    def _stage(self, pending: list) -> dict[int, str]:
        staged: dict[int, str] = {}
        try:
            for idx, op in enumerate(pending):
                if isinstance(op, ArtifactWrite):
                    staged[idx] = self._artifacts.stage(op.path, op.content, mode=op.mode)
        except ArtifactError as exc:
            for path in staged.values():
                self._artifacts.discard(path)
            raise PublishError(exc.detail, stage=PublishStage.RENDER) from exc
        return staged

    def _check_staged(self, pending: list, staged: dict[int, str]) -> None:
        for idx, op in enumerate(pending):
            if not (isinstance(op, ArtifactWrite) and op.check is not None):
                continue
            try:
                op.check(self._artifacts.real_path(staged[idx]))
            except ConfigTestError:
                raise
            except HostplaneError as exc:
                msg = f"{op.path} could not be checked: {exc.detail}"
                raise ConfigTestError(msg) from exc

    def _activate(self, pending: list, staged: dict[int, str]) -> list[_Snapshot]:
        applied: list[_Snapshot] = []
        try:
            for idx, op in enumerate(pending):
                path = _op_path(op)
                snap = _snapshot(self._artifacts, path)
                if isinstance(op, ArtifactWrite):
                    self._artifacts.commit(staged.pop(idx), path)
                elif isinstance(op, ArtifactRemoval):
                    self._artifacts.delete(path)
                elif op.enabled:
                    self._artifacts.link(op.target, op.link_path)
                else:
                    self._artifacts.delete(op.link_path)
                applied.append(snap)
        except ArtifactError as exc:
            self._rollback(applied)
            raise PublishError(exc.detail, stage=PublishStage.ACTIVATE) from exc
        return applied

    def _rollback(self, applied: list[_Snapshot]) -> None:
        for snap in reversed(applied):
            try:
                _restore(self._artifacts, snap)
            except ArtifactError:
                log.exception("%s: could not restore %s", self._label, snap.path)
        if applied:
            log.warning("%s: rolled back %d artifact(s)", self._label, len(applied))


def _op_path(op: ArtifactWrite | ArtifactRemoval | LinkChange) -> str:
    if isinstance(op, LinkChange):
        return op.link_path
    return op.path

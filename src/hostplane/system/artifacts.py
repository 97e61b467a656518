"""Path-addressed storage for rendered configuration artifacts.

Zone files, vhost files, ``sites-enabled`` links and certificate
material all live behind an :class:`ArtifactStore`.  Writes are staged
next to their destination and moved into place with an atomic rename,
so a reader never sees a half-written file.

:class:`FileArtifactStore` optionally prefixes every path with a
``root`` directory, which lets a whole deployment be rendered into a
sandbox.  :class:`MemoryArtifactStore` keeps everything in dictionaries.
"""

from __future__ import annotations

import abc
import logging
import os
import shutil
import threading
import uuid
from pathlib import Path, PurePosixPath

from hostplane.core.errors import ArtifactError

log = logging.getLogger(__name__)


class ArtifactStore(abc.ABC):
    """Read/write/link operations on absolute, POSIX-style paths."""

    @abc.abstractmethod
    def read(self, path: str) -> str | None:
        """Return the text at *path*, or ``None`` if absent."""

    @abc.abstractmethod
    def exists(self, path: str) -> bool:
        """True for files, directories and links."""

    @abc.abstractmethod
    def mode(self, path: str) -> int | None:
        """Permission bits of the file at *path*, or ``None`` if absent."""

    @abc.abstractmethod
    def stage(self, path: str, content: str, *, mode: int = 0o644) -> str:
        """Write *content* to a temporary sibling of *path*.

        Returns
        -------
        str
            The staging path, to be passed to :meth:`commit` or
            :meth:`discard`.

        """

    @abc.abstractmethod
    def commit(self, staged: str, path: str) -> None:
        """Atomically move a staged file onto *path*."""

    @abc.abstractmethod
    def discard(self, staged: str) -> None:
        """Remove a staged file that will not be committed."""

    @abc.abstractmethod
    def delete(self, path: str) -> bool:
        """Remove a file or link.  Returns ``False`` if nothing was there."""

    @abc.abstractmethod
    def delete_tree(self, path: str) -> bool:
        """Remove a directory and its contents.  ``False`` if absent."""

    @abc.abstractmethod
    def is_link(self, path: str) -> bool: ...

    @abc.abstractmethod
    def read_link(self, path: str) -> str | None:
        """Target of the link at *path*, or ``None`` if it is not a link."""

    @abc.abstractmethod
    def link(self, target: str, link_path: str) -> bool:
        """Point *link_path* at *target*.

        Returns ``False`` when the link already pointed there.
        """

    @abc.abstractmethod
    def ensure_dir(self, path: str, *, mode: int = 0o755) -> None: ...

    @abc.abstractmethod
    def real_path(self, path: str) -> str:
        """The path an external program should be given for *path*."""

    def write(self, path: str, content: str, *, mode: int = 0o644) -> None:
        """Stage and commit in one step."""
        staged = self.stage(path, content, mode=mode)
        try:
            self.commit(staged, path)
        except ArtifactError:
            self.discard(staged)
            raise


def _staging_name(path: str) -> str:
    p = PurePosixPath(path)
    return str(p.with_name(f".{p.name}.{uuid.uuid4().hex[:12]}.staged"))


# ---------------------------------------------------------------------------
# File system
# ---------------------------------------------------------------------------


class FileArtifactStore(ArtifactStore):
    """Artifacts on the local file system.

    Parameters
    ----------
    root:
        Directory prepended to every path; empty for the real ``/``.

    """

    def __init__(self, root: str | os.PathLike[str] = "") -> None:
        self._root = Path(root) if root else None

    def _resolve(self, path: str) -> Path:
        if self._root is None:
            return Path(path)
        return self._root / path.lstrip("/")

    def real_path(self, path: str) -> str:
        return str(self._resolve(path))

    def read(self, path: str) -> str | None:
        target = self._resolve(path)
        try:
            return target.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            msg = f"Cannot read {path}: {exc}"
            raise ArtifactError(msg) from exc

    def exists(self, path: str) -> bool:
        target = self._resolve(path)
        return target.exists() or target.is_symlink()

    def mode(self, path: str) -> int | None:
        try:
            return self._resolve(path).stat().st_mode & 0o7777
        except FileNotFoundError:
            return None

    def is_link(self, path: str) -> bool:
        return self._resolve(path).is_symlink()

    def read_link(self, path: str) -> str | None:
        link = self._resolve(path)
        if not link.is_symlink():
            return None
        target = Path(os.readlink(link))
        if self._root is not None and target.is_relative_to(self._root):
            return "/" + str(target.relative_to(self._root))
        return str(target)

    def stage(self, path: str, content: str, *, mode: int = 0o644) -> str:
        staged = _staging_name(path)
        target = self._resolve(staged)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(target, mode)
        except OSError as exc:
            msg = f"Cannot stage {path}: {exc}"
            raise ArtifactError(msg) from exc
        return staged

    def commit(self, staged: str, path: str) -> None:
        try:
            os.replace(self._resolve(staged), self._resolve(path))
        except OSError as exc:
            msg = f"Cannot activate {path}: {exc}"
            raise ArtifactError(msg) from exc
        log.debug("Activated %s", path)

    def discard(self, staged: str) -> None:
        try:
            self._resolve(staged).unlink(missing_ok=True)
        except OSError:
            log.warning("Could not remove staged file %s", staged, exc_info=True)

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not (target.exists() or target.is_symlink()):
            return False
        try:
            target.unlink()
        except OSError as exc:
            msg = f"Cannot remove {path}: {exc}"
            raise ArtifactError(msg) from exc
        return True

    def delete_tree(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.exists():
            return False
        try:
            shutil.rmtree(target)
        except OSError as exc:
            msg = f"Cannot remove {path}: {exc}"
            raise ArtifactError(msg) from exc
        return True

    def link(self, target: str, link_path: str) -> bool:
        link = self._resolve(link_path)
        source = self._resolve(target)
        if link.is_symlink() and Path(os.readlink(link)) == source:
            return False
        try:
            link.parent.mkdir(parents=True, exist_ok=True)
            tmp = link.with_name(f".{link.name}.{uuid.uuid4().hex[:12]}.link")
            tmp.symlink_to(source)
            os.replace(tmp, link)
        except OSError as exc:
            msg = f"Cannot link {link_path} -> {target}: {exc}"
            raise ArtifactError(msg) from exc
        return True

    def ensure_dir(self, path: str, *, mode: int = 0o755) -> None:
        target = self._resolve(path)
        try:
            target.mkdir(parents=True, exist_ok=True, mode=mode)
            os.chmod(target, mode)
        except OSError as exc:
            msg = f"Cannot create directory {path}: {exc}"
            raise ArtifactError(msg) from exc


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------


class MemoryArtifactStore(ArtifactStore):
    """Artifacts held in process memory."""

    def __init__(self) -> None:
        self._files: dict[str, tuple[str, int]] = {}
        self._links: dict[str, str] = {}
        self._dirs: dict[str, int] = {}
        self._lock = threading.RLock()

    @property
    def files(self) -> dict[str, str]:
        """Snapshot of committed file contents by path."""
        with self._lock:
            return {p: c for p, (c, _) in self._files.items() if not _is_staged(p)}

    @property
    def links(self) -> dict[str, str]:
        with self._lock:
            return dict(self._links)

    def real_path(self, path: str) -> str:
        return path

    def read(self, path: str) -> str | None:
        with self._lock:
            target = self._links.get(path, path)
            entry = self._files.get(target)
            return entry[0] if entry else None

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self._files or path in self._links or path in self._dirs

    def mode(self, path: str) -> int | None:
        with self._lock:
            entry = self._files.get(path)
            return entry[1] if entry else None

    def is_link(self, path: str) -> bool:
        with self._lock:
            return path in self._links

    def read_link(self, path: str) -> str | None:
        with self._lock:
            return self._links.get(path)

    def stage(self, path: str, content: str, *, mode: int = 0o644) -> str:
        staged = _staging_name(path)
        with self._lock:
            self._files[staged] = (content, mode)
        return staged

    def commit(self, staged: str, path: str) -> None:
        with self._lock:
            try:
                self._files[path] = self._files.pop(staged)
            except KeyError as exc:
                msg = f"Cannot activate {path}: nothing staged at {staged}"
                raise ArtifactError(msg) from exc

    def discard(self, staged: str) -> None:
        with self._lock:
            self._files.pop(staged, None)

    def delete(self, path: str) -> bool:
        with self._lock:
            if path in self._links:
                del self._links[path]
                return True
            return self._files.pop(path, None) is not None

    def delete_tree(self, path: str) -> bool:
        prefix = path.rstrip("/") + "/"
        with self._lock:
            doomed = [p for p in self._files if p.startswith(prefix)]
            for p in doomed:
                del self._files[p]
            had_dir = self._dirs.pop(path.rstrip("/"), None) is not None
            return had_dir or bool(doomed)

    def link(self, target: str, link_path: str) -> bool:
        with self._lock:
            if self._links.get(link_path) == target:
                return False
            self._links[link_path] = target
            return True

    def ensure_dir(self, path: str, *, mode: int = 0o755) -> None:
        with self._lock:
            self._dirs[path.rstrip("/")] = mode


def _is_staged(path: str) -> bool:
    return PurePosixPath(path).name.endswith(".staged")

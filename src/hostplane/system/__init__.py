"""Process, service-manager and file-system capabilities.

Drivers never touch :mod:`subprocess` or the file system directly; they
call through these small objects so tests can substitute fakes and so
OS-level failures are wrapped into :mod:`hostplane.core.errors` types
in one place.
"""

from hostplane.system.artifacts import ArtifactStore, FileArtifactStore, MemoryArtifactStore
from hostplane.system.runner import CommandResult, CommandRunner
from hostplane.system.services import ServiceManager

__all__ = [
    "ArtifactStore",
    "CommandResult",
    "CommandRunner",
    "FileArtifactStore",
    "MemoryArtifactStore",
    "ServiceManager",
]

"""Operation-level error taxonomy.

Driver internals (file I/O, process exit codes, database errors) are
wrapped into these types before they reach the orchestration facade.
Every error that comes out of a publish carries the
:class:`~hostplane.core.types.PublishStage` it occurred at, because the
recovery action differs per stage: a ``validate`` failure means nothing
changed, an ``activate`` failure may have left a rolled-back artifact,
and a ``reload`` failure means the new configuration is on disk but not
yet served.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hostplane.core.types import PublishStage

if TYPE_CHECKING:
    from collections.abc import Sequence


class HostplaneError(Exception):
    """Base class for all provisioning failures.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    stage:
        Publish stage the failure occurred at, when applicable.
    retryable:
        Whether the failure is transient and the operation may be retried.

    """

    def __init__(
        self,
        detail: str,
        *,
        stage: PublishStage | None = None,
        retryable: bool = False,
    ) -> None:
        self.detail = detail
        self.stage = stage
        self.retryable = retryable
        super().__init__(detail)

    def to_dict(self) -> dict:
        """Serialisable summary used by workflow results and audit logs."""
        return {
            "error": type(self).__name__,
            "detail": self.detail,
            "stage": self.stage.value if self.stage is not None else None,
            "retryable": self.retryable,
        }


class ExternalProcessError(HostplaneError):
    """An external program exited non-zero, timed out, or was not found."""

    def __init__(
        self,
        detail: str,
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        output: str = "",
        stage: PublishStage | None = None,
        retryable: bool = False,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.output = output
        super().__init__(detail, stage=stage, retryable=retryable)


class PublishError(HostplaneError):
    """A configuration publish failed; ``stage`` says where."""


class ConfigTestError(PublishError):
    """The backend's native syntax checker rejected the rendered artifact.

    The previous configuration is still the active one.
    """

    def __init__(self, detail: str, *, output: str = "", stage: PublishStage | None = None) -> None:
        self.output = output
        super().__init__(detail, stage=stage or PublishStage.VALIDATE)


class DriverError(HostplaneError):
    """A driver could not be loaded or cannot perform an operation."""


class RecordValidationError(HostplaneError):
    """A DNS record is malformed for its type."""


class ProtectedRecordError(HostplaneError):
    """An attempt to remove or alter a system-managed DNS record."""


class CertificateError(HostplaneError):
    """Certificate material could not be parsed or is unusable."""


class CertificateMismatchError(CertificateError):
    """The private key does not belong to the certificate."""


class AcmeError(HostplaneError):
    """The certificate transport failed to obtain, renew or revoke material."""


class LockTimeoutError(HostplaneError):
    """A per-domain lock could not be acquired in time."""

    def __init__(self, key: str, timeout: float) -> None:
        self.key = key
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s waiting for the lock on '{key}'",
            retryable=True,
        )


class ArtifactError(HostplaneError):
    """A configuration artifact could not be read, written or removed."""


class UnknownDomainError(HostplaneError):
    """No domain with the given name is known to the panel."""

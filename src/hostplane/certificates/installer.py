"""Write certificate material where the web server reads it.

The four files of a domain are published as one changeset, so a failure
half-way leaves the previous material in place::

    <ssl_dir>/<domain>/cert.pem        0644
    <ssl_dir>/<domain>/key.pem         0600
    <ssl_dir>/<domain>/chain.pem       0644  (removed when there is no bundle)
    <ssl_dir>/<domain>/fullchain.pem   0644
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hostplane.certificates.material import build_fullchain
from hostplane.core.errors import ArtifactError, PublishError
from hostplane.core.types import PublishStage
from hostplane.drivers.publisher import Changeset, ConfigPublisher

if TYPE_CHECKING:
    from hostplane.drivers.base import CertificatePaths
    from hostplane.system.artifacts import ArtifactStore

log = logging.getLogger(__name__)

KEY_MODE = 0o600
CERT_MODE = 0o644
DIR_MODE = 0o700


class CertificateInstaller:
    def __init__(self, artifacts: ArtifactStore) -> None:
        self._artifacts = artifacts
        self._publisher = ConfigPublisher(artifacts, label="certificates")

    def write(
        self,
        paths: CertificatePaths,
        certificate: str,
        private_key: str,
        ca_bundle: str | None = None,
    ) -> None:
        """Publish the material for one domain.

        Raises
        ------
        PublishError
            At the ``activate`` stage if the files could not be written.

        """
        try:
            self._artifacts.ensure_dir(paths.directory, mode=DIR_MODE)
        except ArtifactError as exc:
            raise PublishError(exc.detail, stage=PublishStage.ACTIVATE) from exc

        changes = Changeset()
        changes.write(paths.certificate, _pem(certificate), mode=CERT_MODE)
        changes.write(paths.private_key, _pem(private_key), mode=KEY_MODE)
        if ca_bundle:
            changes.write(paths.chain, _pem(ca_bundle), mode=CERT_MODE)
        else:
            changes.remove(paths.chain)
        changes.write(paths.fullchain, build_fullchain(certificate, ca_bundle), mode=CERT_MODE)
        self._publisher.publish(changes)
        log.info("Wrote certificate material to %s", paths.directory)

    def remove(self, paths: CertificatePaths) -> bool:
        """Delete the domain's material; ``False`` if there was none."""
        try:
            removed = self._artifacts.delete_tree(paths.directory)
        except ArtifactError as exc:
            raise PublishError(exc.detail, stage=PublishStage.ACTIVATE) from exc
        if removed:
            log.info("Removed certificate material in %s", paths.directory)
        return removed

    def installed(self, paths: CertificatePaths) -> bool:
        return self._artifacts.exists(paths.certificate) and self._artifacts.exists(paths.private_key)


def _pem(text: str) -> str:
    return text.strip() + "\n"

"""Private keys at rest.

Keys are stored as Fernet tokens.  A sealer without a key passes PEM
through unchanged, which is only meant for development setups; a
warning is logged once when that happens.
"""

from __future__ import annotations

import logging

from cryptography.fernet import Fernet, InvalidToken

from hostplane.core.errors import CertificateError

log = logging.getLogger(__name__)

_PEM_PREFIX = "-----BEGIN"


class KeySealer:
    """Seal and unseal private-key PEM.

    Parameters
    ----------
    key:
        URL-safe base64 Fernet key (``ssl.sealing_key``), or empty.

    """

    def __init__(self, key: str | None) -> None:
        self._fernet = Fernet(key.encode()) if key else None
        if self._fernet is None:
            log.warning("ssl.sealing_key is not set; private keys are stored unencrypted")

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def seal(self, pem: str) -> str:
        if self._fernet is None:
            return pem
        return self._fernet.encrypt(pem.encode()).decode()

    def unseal(self, blob: str) -> str:
        """Return the PEM held in *blob*.

        Raises
        ------
        CertificateError
            If the blob was sealed with a different key or is corrupt.

        """
        if blob.startswith(_PEM_PREFIX):
            return blob
        if self._fernet is None:
            msg = "Private key is sealed but no ssl.sealing_key is configured"
            raise CertificateError(msg)
        try:
            return self._fernet.decrypt(blob.encode()).decode()
        except InvalidToken as exc:
            msg = "Private key could not be unsealed (wrong ssl.sealing_key?)"
            raise CertificateError(msg) from exc

"""
PKI Authority Interface

Contract the lifecycle core depends on. Concrete adapters talk to a real
authority (see ``private_ca.VaultPKIClient``); tests substitute in-memory
fakes.
"""

import logging
from abc import ABC, abstractmethod

from ...errors import RevocationFailedError
from ..models import CertificateMaterial, RecordKind

logger = logging.getLogger(__name__)


class PKIAuthorityClient(ABC):
    """Abstract base class for PKI authorities."""

    @abstractmethod
    def issue(self, common_name: str, ttl: str, kind: RecordKind = RecordKind.USER) -> CertificateMaterial:
        """
        Issue a new certificate and private key.

        Raises:
            IssuanceFailedError: the authority rejected the request
            AuthFailureError: credentials or session are invalid
        """
        pass

    @abstractmethod
    def revoke(self, serial_number: str) -> None:
        """
        Revoke a certificate by serial.

        Raises:
            RevocationFailedError: revocation did not succeed
        """
        pass

    @abstractmethod
    def get_info(self, serial_number: str) -> CertificateMaterial:
        """
        Fetch certificate metadata (never includes a private key).

        Raises:
            AuthorityNotFoundError: the authority has no such serial
        """
        pass

    @abstractmethod
    def get_ca_certificate(self) -> str:
        """PEM of the issuing CA."""
        pass

    def renew_atomic(
        self,
        old_serial: str,
        common_name: str,
        ttl: str,
        kind: RecordKind = RecordKind.USER,
    ) -> CertificateMaterial:
        """
        Revoke ``old_serial`` then issue a replacement.

        A failed revocation is logged and does not block the new issuance.
        """
        try:
            self.revoke(old_serial)
        except RevocationFailedError as e:
            logger.warning(f"Could not revoke previous certificate {old_serial}: {e}")
        return self.issue(common_name, ttl, kind)

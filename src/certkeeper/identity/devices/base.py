"""
Device Sync Interface

Pushes server certificates to the appliance that terminates VPN
connections with them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from ..models import ServerCertificate


@dataclass
class SyncResult:
    """Outcome of a successful device sync, with tolerated warnings."""
    cert_name: str
    artifact: Optional[str] = None
    service_updated: bool = False
    warnings: List[str] = field(default_factory=list)


class DeviceSyncClient(ABC):
    """Abstract base class for certificate-consuming devices."""

    @abstractmethod
    def push_server_certificate(self, record: ServerCertificate) -> SyncResult:
        """
        Install ``record`` on the device, replacing any same-named certificate.

        Raises:
            ImportFailedError: the certificate could not be transferred or imported
            DeviceConnectionError: the device could not be reached
        """
        pass

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args) -> None:
        self.close()

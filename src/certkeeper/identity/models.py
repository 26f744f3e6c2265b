"""
Identity Models

Certificate records as persisted in the store, and the certificate material
returned by the PKI authority.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

STORE_SCHEMA_VERSION = "1.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordKind(str, Enum):
    """Store collections."""
    USER = "users"
    SERVER = "servers"


class CertificateRecord(BaseModel):
    """Fields shared by user and server certificate records."""

    kind: ClassVar[RecordKind]

    name: str = Field(min_length=1)
    serial_number: str
    created_at: datetime
    last_renewed_at: datetime
    expires_at: datetime
    ttl: str

    @field_validator("created_at", "last_renewed_at", "expires_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        # Naive timestamps are interpreted as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_validity_window(self) -> "CertificateRecord":
        if self.expires_at <= self.created_at:
            raise ValueError(f"expires_at must be after created_at for {self.name}")
        return self

    @property
    def private_key(self) -> Optional[str]:
        return None

    @property
    def has_private_key(self) -> bool:
        return bool(self.private_key)

    def days_remaining(self, now: Optional[datetime] = None) -> float:
        """Fractional days until expiry: ``(expires_at - now) / 24h``."""
        now = now or utcnow()
        return (self.expires_at - now).total_seconds() / 86400.0


class UserCertificate(CertificateRecord):
    """Client (user) certificate. The private key is never persisted."""

    kind: ClassVar[RecordKind] = RecordKind.USER

    email: Optional[str] = None


class ServerCertificate(CertificateRecord):
    """Server certificate, kept with its key material for device sync."""

    kind: ClassVar[RecordKind] = RecordKind.SERVER

    certificate_pem: str = ""
    private_key_pem: Optional[str] = Field(default=None, repr=False)
    issuing_ca: str = ""
    device_address: Optional[str] = None

    @property
    def private_key(self) -> Optional[str]:
        return self.private_key_pem


RECORD_TYPES = {
    RecordKind.USER: UserCertificate,
    RecordKind.SERVER: ServerCertificate,
}


class StoreMetadata(BaseModel):
    version: str = STORE_SCHEMA_VERSION
    last_updated: Optional[datetime] = None


class StoreDocument(BaseModel):
    """On-disk layout of the certificate store."""

    users: Dict[str, UserCertificate] = Field(default_factory=dict)
    servers: Dict[str, ServerCertificate] = Field(default_factory=dict)
    metadata: StoreMetadata = Field(default_factory=StoreMetadata)

    @model_validator(mode="after")
    def _check_keys(self) -> "StoreDocument":
        for collection in (self.users, self.servers):
            for key, record in collection.items():
                if key != record.name:
                    raise ValueError(f"key '{key}' does not match record name '{record.name}'")
        return self


@dataclass
class CertificateMaterial:
    """Certificate material as returned by the PKI authority."""
    certificate_pem: str
    serial_number: str
    expires_at: datetime
    common_name: str
    ca_chain_pem: str = ""
    private_key_pem: Optional[str] = None

    @property
    def has_private_key(self) -> bool:
        return bool(self.private_key_pem)

    def __repr__(self) -> str:
        return (
            f"CertificateMaterial(common_name={self.common_name!r}, "
            f"serial_number={self.serial_number!r}, expires_at={self.expires_at.isoformat()})"
        )

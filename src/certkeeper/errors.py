"""
certkeeper Unified Error Taxonomy.

Centralized error hierarchy for the store, the PKI authority adapter, the
device sync adapter and notification delivery. All errors include:
- Machine-readable error codes
- Structured details (never sensitive data)

Error Code Naming Convention:
- CK_<COMPONENT>_<SPECIFIC>
- Components: STORE, AUTHORITY, DEVICE, NOTIFY, CONFIG

Security:
- NEVER include private keys, tokens or passwords in error messages
- Serial numbers and identity names are safe to log
"""

from typing import Any, Dict, Optional


class CertKeeperError(Exception):
    """Base exception for all certkeeper errors.

    All certkeeper errors include:
    - code: Machine-readable error code (e.g., CK_STORE_CORRUPT)
    - message: Human-readable description
    - details: Structured metadata (NEVER include sensitive data)
    """

    def __init__(
        self,
        message: str,
        code: str = "CK_INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Store Errors (CK_STORE_*)
# =============================================================================


class StoreError(CertKeeperError):
    """Base class for certificate store errors."""

    pass


class NotFoundError(StoreError):
    """Raised when an identity is absent from its collection."""

    def __init__(self, name: str, kind: Optional[str] = None):
        where = f" in {kind}" if kind else ""
        super().__init__(
            message=f"Identity '{name}' not found{where}",
            code="CK_STORE_NOT_FOUND",
            details={"name": name, "kind": kind} if kind else {"name": name},
        )
        self.name = name
        self.kind = kind


class CorruptStoreError(StoreError):
    """Raised when the backing file exists but cannot be parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Certificate store {path} is corrupt: {reason}",
            code="CK_STORE_CORRUPT",
            details={"path": path},
        )


class StoreWriteError(StoreError):
    """Raised when persisting the store to disk fails."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Failed to write certificate store {path}: {reason}",
            code="CK_STORE_WRITE_FAILED",
            details={"path": path},
        )


# =============================================================================
# PKI Authority Errors (CK_AUTHORITY_*)
# =============================================================================


class AuthorityError(CertKeeperError):
    """Base class for PKI authority errors."""

    transient = False


class IssuanceFailedError(AuthorityError):
    """Raised when the authority rejects or garbles an issuance."""

    def __init__(self, common_name: str, reason: str):
        super().__init__(
            message=f"Certificate issuance for {common_name} failed: {reason}",
            code="CK_AUTHORITY_ISSUANCE_FAILED",
            details={"common_name": common_name},
        )


class AuthFailureError(AuthorityError):
    """Raised on credential or session problems with the authority."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Authority authentication failed: {reason}",
            code="CK_AUTHORITY_AUTH_FAILED",
        )


class RevocationFailedError(AuthorityError):
    """Raised when revoking a serial fails. Callers may continue past it."""

    def __init__(self, serial_number: str, reason: str):
        super().__init__(
            message=f"Revocation of {serial_number} failed: {reason}",
            code="CK_AUTHORITY_REVOKE_FAILED",
            details={"serial_number": serial_number},
        )


class AuthorityNotFoundError(AuthorityError):
    """Raised when the authority has no certificate for a serial."""

    def __init__(self, serial_number: str):
        super().__init__(
            message=f"Authority has no certificate with serial {serial_number}",
            code="CK_AUTHORITY_NOT_FOUND",
            details={"serial_number": serial_number},
        )


class AuthorityUnavailableError(AuthorityError):
    """Raised when the authority is unreachable after retries."""

    transient = True

    def __init__(self, reason: str):
        super().__init__(
            message=f"Authority unavailable: {reason}",
            code="CK_AUTHORITY_UNAVAILABLE",
        )


# =============================================================================
# Device Sync Errors (CK_DEVICE_*)
# =============================================================================


class DeviceError(CertKeeperError):
    """Base class for device synchronization errors."""

    transient = False


class DeviceConnectionError(DeviceError):
    """Raised when the device cannot be reached after retries."""

    transient = True

    def __init__(self, address: str, reason: str):
        super().__init__(
            message=f"Cannot connect to device {address}: {reason}",
            code="CK_DEVICE_CONNECTION_FAILED",
            details={"address": address},
        )


class ImportFailedError(DeviceError):
    """Raised when the device refuses to import a certificate."""

    def __init__(self, cert_name: str, reason: str):
        super().__init__(
            message=f"Import of {cert_name} on device failed: {reason}",
            code="CK_DEVICE_IMPORT_FAILED",
            details={"cert_name": cert_name},
        )


# =============================================================================
# Notification Errors (CK_NOTIFY_*)
# =============================================================================


class NotificationError(CertKeeperError):
    """Raised when notification delivery fails."""

    def __init__(self, recipient: Optional[str], reason: str):
        super().__init__(
            message=f"Notification to {recipient or '<unset>'} failed: {reason}",
            code="CK_NOTIFY_FAILED",
        )


# =============================================================================
# Configuration Errors (CK_CONFIG_*)
# =============================================================================


class ConfigError(CertKeeperError):
    """Base class for configuration errors."""

    pass


class ConfigMissingError(ConfigError):
    """Raised when required configuration is missing."""

    def __init__(self, config_key: str, env_var: Optional[str] = None):
        msg = f"Missing required configuration: {config_key}"
        if env_var:
            msg += f" (set {env_var})"
        super().__init__(
            message=msg,
            code="CK_CONFIG_MISSING",
            details={"config_key": config_key, "env_var": env_var} if env_var else {"config_key": config_key},
        )


class ConfigUnavailableError(ConfigError):
    """Raised when a client profile cannot be built for lack of a private key."""

    def __init__(self, name: str):
        super().__init__(
            message=f"No private key available for {name}; client profile cannot be generated",
            code="CK_CONFIG_UNAVAILABLE",
            details={"name": name},
        )


# =============================================================================
# Error Code Registry (for documentation and validation)
# =============================================================================

ERROR_CODES = {
    # Store errors
    "CK_STORE_NOT_FOUND": "Identity not present in the store",
    "CK_STORE_CORRUPT": "Store file exists but cannot be parsed",
    "CK_STORE_WRITE_FAILED": "Store could not be persisted",
    # Authority errors
    "CK_AUTHORITY_ISSUANCE_FAILED": "Authority rejected certificate issuance",
    "CK_AUTHORITY_AUTH_FAILED": "Authority credentials or session invalid",
    "CK_AUTHORITY_REVOKE_FAILED": "Authority revocation failed",
    "CK_AUTHORITY_NOT_FOUND": "Authority has no such certificate",
    "CK_AUTHORITY_UNAVAILABLE": "Authority unreachable (transient)",
    # Device errors
    "CK_DEVICE_CONNECTION_FAILED": "Device unreachable (transient)",
    "CK_DEVICE_IMPORT_FAILED": "Device certificate import failed",
    # Notification errors
    "CK_NOTIFY_FAILED": "Notification delivery failed",
    # Config errors
    "CK_CONFIG_MISSING": "Required configuration missing",
    "CK_CONFIG_UNAVAILABLE": "Client profile unavailable without private key",
    # Internal
    "CK_INTERNAL_ERROR": "Internal error",
}


def validate_error_code(code: str) -> bool:
    """Validate that an error code is registered."""
    return code in ERROR_CODES


__all__ = [
    # Base
    "CertKeeperError",
    # Store
    "StoreError",
    "NotFoundError",
    "CorruptStoreError",
    "StoreWriteError",
    # Authority
    "AuthorityError",
    "IssuanceFailedError",
    "AuthFailureError",
    "RevocationFailedError",
    "AuthorityNotFoundError",
    "AuthorityUnavailableError",
    # Device
    "DeviceError",
    "DeviceConnectionError",
    "ImportFailedError",
    # Notification
    "NotificationError",
    # Config
    "ConfigError",
    "ConfigMissingError",
    "ConfigUnavailableError",
    # Registry
    "ERROR_CODES",
    "validate_error_code",
]

"""
certkeeper Configuration Module

Provides centralized configuration management with:
- Environment variable loading (CK_ prefix)
- Type validation via Pydantic
- Development overrides via .env file

Environment Variable Naming Convention:
- All variables use CK_ prefix (e.g., CK_VAULT_ADDR, CK_STORE_PATH)
- Secrets (AppRole secret id, RouterOS and SMTP passwords) are only read
  from the environment and never logged
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional, List


class CertKeeperSettings(BaseSettings):
    """
    certkeeper settings.

    Loads from environment variables with CK_ prefix and an optional .env
    file in the working directory.

    Usage:
        from certkeeper.utils.config import get_settings

        settings = get_settings()
        store = CertificateStore.load(settings.STORE_PATH)
    """
    model_config = SettingsConfigDict(
        env_prefix='CK_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    # ==========================================================================
    # GENERAL
    # ==========================================================================
    ENVIRONMENT: str = Field(default="development", description="Runtime environment: development, production")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    # ==========================================================================
    # STORE & POLICY
    # ==========================================================================
    STORE_PATH: str = Field(default="data/certificates.json", description="Certificate store file")
    RENEWAL_THRESHOLD_DAYS: int = Field(default=30, description="Renew when fewer days remain")
    CLIENT_TTL: str = Field(default="8760h", description="Default TTL for user certificates")
    SERVER_TTL: str = Field(default="8760h", description="Default TTL for server certificates")

    # ==========================================================================
    # VAULT PKI
    # ==========================================================================
    VAULT_ADDR: str = Field(default="http://127.0.0.1:8200", description="Vault server address")
    VAULT_PKI_MOUNT: str = Field(default="pki", description="PKI secrets engine mount path")
    VAULT_CLIENT_ROLE: str = Field(default="ovpn-client", description="PKI role for user certificates")
    VAULT_SERVER_ROLE: str = Field(default="ovpn-server", description="PKI role for server certificates")
    VAULT_ROLE_ID: Optional[str] = Field(default=None, description="AppRole role_id")
    VAULT_SECRET_ID: Optional[str] = Field(default=None, description="AppRole secret_id")
    VAULT_TOKEN: Optional[str] = Field(default=None, description="Static token (skips AppRole login)")
    VAULT_VERIFY_TLS: bool = Field(default=True, description="Verify Vault TLS certificate")
    VAULT_TIMEOUT: int = Field(default=15, description="Per-request timeout in seconds")

    # ==========================================================================
    # ROUTEROS DEVICE
    # ==========================================================================
    ROUTEROS_ADDRESS: Optional[str] = Field(default=None, description="RouterOS device host (server mode)")
    ROUTEROS_API_PORT: int = Field(default=8728, description="RouterOS API port")
    ROUTEROS_FTP_PORT: int = Field(default=21, description="RouterOS FTP port")
    ROUTEROS_USERNAME: Optional[str] = Field(default=None, description="RouterOS user")
    ROUTEROS_PASSWORD: Optional[str] = Field(default=None, description="RouterOS password")
    ROUTEROS_TIMEOUT: int = Field(default=10, description="Socket timeout in seconds")
    ROUTEROS_CONFIGURE_OVPN: bool = Field(default=True, description="Point the OpenVPN server at new certificates")

    # ==========================================================================
    # NOTIFICATION (SMTP)
    # ==========================================================================
    SMTP_HOST: Optional[str] = Field(default=None, description="SMTP relay host")
    SMTP_PORT: int = Field(default=587, description="SMTP port")
    SMTP_USERNAME: Optional[str] = Field(default=None, description="SMTP user")
    SMTP_PASSWORD: Optional[str] = Field(default=None, description="SMTP password")
    SMTP_FROM: Optional[str] = Field(default=None, description="Sender address")
    SMTP_TO: Optional[str] = Field(default=None, description="Fallback recipient")
    SMTP_STARTTLS: bool = Field(default=True, description="Upgrade the SMTP session with STARTTLS")
    SMTP_TIMEOUT: int = Field(default=30, description="SMTP timeout in seconds")

    # ==========================================================================
    # CLIENT PROFILES
    # ==========================================================================
    OVPN_REMOTE: str = Field(default="vpn.example.com", description="OpenVPN server host in client profiles")
    OVPN_PORT: int = Field(default=1194, description="OpenVPN server port in client profiles")
    OVPN_TEMPLATE_PATH: Optional[str] = Field(default=None, description="Custom client profile template")
    PROFILE_OUTPUT_DIR: str = Field(default="profiles", description="Directory for generated .ovpn files")

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    def notifications_enabled(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_FROM)

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration for production readiness.

        Returns:
            List of configuration warnings/errors
        """
        issues = []

        if not self.VAULT_TOKEN and not (self.VAULT_ROLE_ID and self.VAULT_SECRET_ID):
            issues.append("CRITICAL: neither CK_VAULT_TOKEN nor CK_VAULT_ROLE_ID/CK_VAULT_SECRET_ID set")

        if self.is_production():
            if not self.VAULT_VERIFY_TLS:
                issues.append("WARNING: CK_VAULT_VERIFY_TLS=false in production")
            if self.VAULT_ADDR.startswith("http://"):
                issues.append("WARNING: Vault reached over plain HTTP in production")
            if not self.notifications_enabled():
                issues.append("WARNING: SMTP not configured, client profiles will not be delivered")

        return issues


def get_settings() -> CertKeeperSettings:
    """Build settings from the current environment."""
    return CertKeeperSettings()

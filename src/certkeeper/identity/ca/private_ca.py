"""
Private CA Integration - HashiCorp Vault PKI

Issues, revokes and inspects certificates through the Vault PKI secrets
engine. Authentication uses AppRole (logged in once per process and reused
for every call) or a static token.
"""

import logging
from datetime import timezone
from typing import Any, Dict, Optional

import requests
from cryptography import x509
from cryptography.x509.oid import NameOID

from ...errors import (
    AuthFailureError,
    AuthorityNotFoundError,
    AuthorityUnavailableError,
    IssuanceFailedError,
    RevocationFailedError,
)
from ...utils.http import StandardClient
from ..models import CertificateMaterial, RecordKind
from .authority import PKIAuthorityClient

logger = logging.getLogger(__name__)


def _json_body(response: requests.Response) -> Optional[Dict[str, Any]]:
    """Decoded JSON object body, or None for HTML, truncated or non-object bodies."""
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _vault_errors(response: requests.Response) -> str:
    """Extract Vault's error list from a response body."""
    errors = (_json_body(response) or {}).get("errors") or []
    if errors:
        return "; ".join(str(e) for e in errors)
    return f"HTTP {response.status_code}"


def parse_certificate(certificate_pem: str):
    """Load a PEM certificate; raises ValueError on malformed input."""
    return x509.load_pem_x509_certificate(certificate_pem.encode())


def certificate_expiry(cert: x509.Certificate):
    return cert.not_valid_after_utc.astimezone(timezone.utc)


def certificate_common_name(cert: x509.Certificate) -> str:
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attrs[0].value) if attrs else ""


class VaultPKIClient(PKIAuthorityClient):
    """
    Client for the Vault PKI secrets engine.

    Used for:
    - OpenVPN client certificates (``client_role``)
    - OpenVPN server certificates (``server_role``)
    """

    def __init__(
        self,
        vault_addr: str,
        mount_path: str = "pki",
        client_role: str = "ovpn-client",
        server_role: str = "ovpn-server",
        role_id: Optional[str] = None,
        secret_id: Optional[str] = None,
        token: Optional[str] = None,
        verify_ssl: bool = True,
        timeout: int = 15,
        http: Optional[StandardClient] = None,
    ):
        self.vault_addr = vault_addr.rstrip("/")
        self.mount_path = mount_path.strip("/")
        self.client_role = client_role
        self.server_role = server_role
        self._role_id = role_id
        self._secret_id = secret_id
        self._token = token
        self.http = http or StandardClient(self.vault_addr, verify=verify_ssl, timeout=timeout)
        if token:
            self.http.set_header("X-Vault-Token", token)

    # === Session ===

    def login(self) -> None:
        """
        Authenticate with AppRole and keep the token for this process.

        Raises:
            AuthFailureError: missing credentials or rejected login
        """
        if self._token:
            return
        if not (self._role_id and self._secret_id):
            raise AuthFailureError("no Vault token or AppRole credentials configured")

        logger.info("Authenticating to Vault via AppRole")
        response = self.http.request(
            "POST",
            "/v1/auth/approle/login",
            json={"role_id": self._role_id, "secret_id": self._secret_id},
        )
        if response.status_code != 200:
            raise AuthFailureError(f"AppRole login rejected: {_vault_errors(response)}")

        body = _json_body(response)
        if body is None:
            raise AuthFailureError("AppRole login returned a non-JSON body")
        auth = body.get("auth")
        token = auth.get("client_token") if isinstance(auth, dict) else None
        if not token:
            raise AuthFailureError("Vault returned no client token")

        self._token = token
        self.http.set_header("X-Vault-Token", token)
        logger.info(f"Logged in to Vault (token lease: {auth.get('lease_duration', 0)}s)")

    def _call(self, method: str, path: str, **kwargs) -> requests.Response:
        self.login()
        response = self.http.request(method, f"/v1/{self.mount_path}/{path}", **kwargs)
        if response.status_code in (401, 403):
            raise AuthFailureError(_vault_errors(response))
        if response.status_code >= 500:
            raise AuthorityUnavailableError(_vault_errors(response))
        return response

    def _role_for(self, kind: RecordKind) -> str:
        return self.server_role if RecordKind(kind) is RecordKind.SERVER else self.client_role

    # === Operations ===

    def issue(self, common_name: str, ttl: str, kind: RecordKind = RecordKind.USER) -> CertificateMaterial:
        role = self._role_for(kind)
        logger.info(f"Issuing certificate for {common_name} (role={role}, ttl={ttl})")

        response = self._call("POST", f"issue/{role}", json={"common_name": common_name, "ttl": ttl})
        if response.status_code != 200:
            raise IssuanceFailedError(common_name, _vault_errors(response))

        body = _json_body(response)
        if body is None:
            raise IssuanceFailedError(common_name, "response body is not JSON")
        data = body.get("data")
        if not isinstance(data, dict):
            raise IssuanceFailedError(common_name, "response has no data")
        certificate = data.get("certificate")
        private_key = data.get("private_key")
        serial_number = data.get("serial_number")
        if not isinstance(certificate, str) or not certificate:
            raise IssuanceFailedError(common_name, "response has no certificate")
        if not isinstance(private_key, str) or not private_key:
            raise IssuanceFailedError(common_name, "response has no private key")
        if not isinstance(serial_number, str) or not serial_number:
            raise IssuanceFailedError(common_name, "response has no serial number")

        ca_chain = data.get("ca_chain")
        if isinstance(ca_chain, list) and ca_chain:
            ca_chain_pem = "\n".join(str(ca).strip() for ca in ca_chain) + "\n"
        else:
            ca_chain_pem = data.get("issuing_ca") or ""

        try:
            cert = parse_certificate(certificate)
        except ValueError as e:
            raise IssuanceFailedError(common_name, f"unparseable certificate: {e}") from e

        expires_at = certificate_expiry(cert)
        logger.info(f"Issued certificate: serial={serial_number}, expires={expires_at.date()}")

        return CertificateMaterial(
            certificate_pem=certificate,
            private_key_pem=private_key,
            ca_chain_pem=ca_chain_pem,
            serial_number=serial_number,
            expires_at=expires_at,
            common_name=common_name,
        )

    def revoke(self, serial_number: str) -> None:
        logger.info(f"Revoking certificate {serial_number}")
        try:
            response = self._call("POST", "revoke", json={"serial_number": serial_number})
        except AuthorityUnavailableError as e:
            raise RevocationFailedError(serial_number, e.message) from e

        if response.status_code not in (200, 204):
            raise RevocationFailedError(serial_number, _vault_errors(response))
        logger.info(f"Certificate {serial_number} revoked")

    def get_info(self, serial_number: str) -> CertificateMaterial:
        response = self._call("GET", f"cert/{serial_number}")
        if response.status_code == 404:
            raise AuthorityNotFoundError(serial_number)
        if response.status_code != 200:
            raise AuthorityUnavailableError(_vault_errors(response))

        body = _json_body(response)
        if body is None:
            raise AuthorityUnavailableError(f"cert/{serial_number} returned a non-JSON body")
        data = body.get("data")
        if not isinstance(data, dict):
            data = {}
        certificate = data.get("certificate")
        if not certificate:
            raise AuthorityNotFoundError(serial_number)

        try:
            cert = parse_certificate(certificate)
        except ValueError as e:
            raise AuthorityNotFoundError(serial_number) from e

        return CertificateMaterial(
            certificate_pem=certificate,
            serial_number=serial_number,
            expires_at=certificate_expiry(cert),
            common_name=certificate_common_name(cert),
            ca_chain_pem=data.get("issuing_ca") or "",
        )

    def get_ca_certificate(self) -> str:
        response = self._call("GET", "ca/pem")
        if response.status_code != 200:
            raise AuthorityUnavailableError(f"CA certificate unavailable: HTTP {response.status_code}")
        return response.text

    def close(self) -> None:
        self.http.close()

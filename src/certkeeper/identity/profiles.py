"""
Client Profiles - OpenVPN .ovpn Generation

Builds an OpenVPN client profile embedding the CA chain, the client
certificate and its private key, and keeps the last generated profile per
identity on disk. A profile is only ever built from freshly issued key
material; without a private key the stored profile is the only option.
"""

import logging
import os
from pathlib import Path
from string import Template
from typing import Optional, Union

from ..errors import ConfigUnavailableError
from ..utils.files import atomic_write, sanitize_filename
from .models import CertificateMaterial

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = """\
# OpenVPN client profile for $name
client
dev tun
proto udp
remote $remote $port
resolv-retry infinite
nobind
persist-key
persist-tun
remote-cert-tls server
cipher AES-256-GCM
auth SHA256
verb 3

<ca>
$ca
</ca>
<cert>
$cert
</cert>
<key>
$key
</key>
"""


class ClientConfigRenderer:
    """Renders and persists OpenVPN client profiles."""

    SUFFIX = ".ovpn"

    def __init__(
        self,
        output_dir: Union[str, Path],
        remote: str,
        port: int = 1194,
        template: Optional[str] = None,
    ):
        self.output_dir = Path(output_dir)
        self.remote = remote
        self.port = port
        self.template = Template(template or DEFAULT_TEMPLATE)

    @classmethod
    def from_template_file(cls, output_dir, remote: str, port: int, template_path: Optional[str]):
        template = Path(template_path).read_text(encoding="utf-8") if template_path else None
        return cls(output_dir, remote, port, template)

    def render(self, material: CertificateMaterial, ca_pem: Optional[str] = None) -> str:
        """
        Render a profile for freshly issued material.

        Raises:
            ConfigUnavailableError: the material carries no private key
        """
        if not material.has_private_key:
            raise ConfigUnavailableError(material.common_name)

        return self.template.substitute(
            name=material.common_name,
            remote=self.remote,
            port=self.port,
            ca=(ca_pem or material.ca_chain_pem).strip(),
            cert=material.certificate_pem.strip(),
            key=material.private_key_pem.strip(),
        )

    def path_for(self, name: str) -> Path:
        return self.output_dir / f"{sanitize_filename(name)}{self.SUFFIX}"

    def write(self, name: str, content: str) -> Path:
        """Persist a profile (owner-readable only) and return its path."""
        path = self.path_for(name)
        atomic_write(path, content, mode=0o600)
        logger.info(f"Client profile written to {path}")
        return path

    def load_existing(self, name: str) -> Optional[str]:
        """Return the previously written profile for ``name``, if any."""
        path = self.path_for(name)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def remove(self, name: str) -> bool:
        path = self.path_for(name)
        if path.exists():
            os.unlink(path)
            return True
        return False

from .authority import PKIAuthorityClient
from .private_ca import VaultPKIClient

__all__ = ["PKIAuthorityClient", "VaultPKIClient"]

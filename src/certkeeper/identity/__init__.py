"""
certkeeper Identity Module

Certificate lifecycle management for OpenVPN client and server identities:
- Durable certificate store with atomic persistence
- Threshold/force driven renewal policy
- Vault PKI integration
- RouterOS device sync for server certificates
- Client profile generation and delivery

Architecture:
- LifecycleOrchestrator drives one identity per run over the
  PKIAuthorityClient, DeviceSyncClient and Notifier interfaces, so every
  collaborator can be replaced by a test double.
"""

from .models import (
    CertificateMaterial,
    CertificateRecord,
    RecordKind,
    ServerCertificate,
    UserCertificate,
)
from .store import CertificateStore
from .policy_engine import Action, Decision, LifecyclePolicy

# Collaborators
from .ca.authority import PKIAuthorityClient
from .ca.private_ca import VaultPKIClient
from .devices.base import DeviceSyncClient, SyncResult
from .devices.routeros import RouterOSDeviceClient
from .notify import EmailNotifier, Notification, Notifier
from .profiles import ClientConfigRenderer

# Orchestration
from .orchestrator import (
    ClientRequest,
    IdentityState,
    LifecycleOrchestrator,
    RunResult,
    ServerRequest,
)

__all__ = [
    "CertificateMaterial",
    "CertificateRecord",
    "RecordKind",
    "ServerCertificate",
    "UserCertificate",
    "CertificateStore",
    "Action",
    "Decision",
    "LifecyclePolicy",
    "PKIAuthorityClient",
    "VaultPKIClient",
    "DeviceSyncClient",
    "SyncResult",
    "RouterOSDeviceClient",
    "EmailNotifier",
    "Notification",
    "Notifier",
    "ClientConfigRenderer",
    "ClientRequest",
    "IdentityState",
    "LifecycleOrchestrator",
    "RunResult",
    "ServerRequest",
]

"""
Lifecycle Orchestrator - Certificate Renewal Workflow

Drives one identity through a run:

    consult store -> apply policy -> call authority -> persist store
        -> sync device (servers) -> render profile (clients) -> notify

State transitions:
    NO_RECORD -> ISSUING -> ISSUED
    VALID -> RENEWING -> RENEWED
    VALID -> NOOP
    ISSUED/RENEWED -> SYNCED (servers, after a successful device push)
    ISSUING/RENEWING -> FAILED (authority error; nothing is stored)

Authority errors are fatal for the identity. Store write, device sync and
notification errors are tolerated and surfaced as warnings on the result.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from ..errors import (
    AuthorityError,
    ConfigUnavailableError,
    DeviceError,
    IssuanceFailedError,
    NotFoundError,
    NotificationError,
    StoreWriteError,
)
from .ca.authority import PKIAuthorityClient
from .devices.base import DeviceSyncClient
from .models import (
    CertificateMaterial,
    CertificateRecord,
    RecordKind,
    ServerCertificate,
    UserCertificate,
    utcnow,
)
from .notify import Notification, Notifier
from .policy_engine import Action, Decision, LifecyclePolicy
from .profiles import ClientConfigRenderer
from .store import CertificateStore

logger = logging.getLogger(__name__)


class IdentityState(str, Enum):
    """Per-identity run states."""
    NO_RECORD = "no_record"
    VALID = "valid"
    ISSUING = "issuing"
    ISSUED = "issued"
    RENEWING = "renewing"
    RENEWED = "renewed"
    SYNCED = "synced"
    NOOP = "noop"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (IdentityState.SYNCED, IdentityState.NOOP, IdentityState.FAILED)


@dataclass
class ClientRequest:
    """Inputs for a client (user) certificate run."""
    name: str
    email: Optional[str] = None
    ttl: Optional[str] = None
    force: bool = False
    resend: bool = False


@dataclass
class ServerRequest:
    """Inputs for a server certificate run."""
    name: str
    ttl: Optional[str] = None
    force: bool = False
    device_address: Optional[str] = None


@dataclass
class RunResult:
    """Outcome of one identity run."""
    name: str
    kind: RecordKind
    state: IdentityState
    action: Optional[Action] = None
    record: Optional[CertificateRecord] = None
    days_remaining: Optional[float] = None
    synced: bool = False
    notified: bool = False
    artifact_path: Optional[Path] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[AuthorityError] = None
    history: List[IdentityState] = field(default_factory=list)

    def __post_init__(self):
        if not self.history:
            self.history.append(self.state)

    @property
    def ok(self) -> bool:
        return self.state is not IdentityState.FAILED

    @property
    def changed(self) -> bool:
        return self.action in (Action.ISSUE, Action.RENEW) and self.ok

    def advance(self, state: IdentityState) -> None:
        self.state = state
        self.history.append(state)

    def warn(self, message: str) -> None:
        logger.warning(message, extra={"identity": self.name})
        self.warnings.append(message)


class LifecycleOrchestrator:
    """
    Certificate lifecycle orchestrator.

    Ordering per identity: the authority call completes and the store is
    saved before any device sync, and device sync happens before any
    notification.
    """

    def __init__(
        self,
        store: CertificateStore,
        authority: PKIAuthorityClient,
        policy: Optional[LifecyclePolicy] = None,
        device: Optional[DeviceSyncClient] = None,
        notifier: Optional[Notifier] = None,
        renderer: Optional[ClientConfigRenderer] = None,
        client_ttl: str = "8760h",
        server_ttl: str = "8760h",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.authority = authority
        self.policy = policy or LifecyclePolicy()
        self.device = device
        self.notifier = notifier
        self.renderer = renderer
        self.client_ttl = client_ttl
        self.server_ttl = server_ttl
        self._clock = clock

    # === Shared steps ===

    def _start(self, kind: RecordKind, name: str, force: bool):
        now = self._clock()
        record = self.store.get(kind, name)
        result = RunResult(
            name=name,
            kind=kind,
            state=IdentityState.VALID if record else IdentityState.NO_RECORD,
        )
        decision = self.policy.evaluate(record, force=force, now=now)
        result.action = decision.action
        result.days_remaining = decision.days_remaining
        logger.info(f"{kind.value[:-1]} {name}: {decision.action.value} ({decision.reason})", extra={"identity": name})
        return now, record, decision, result

    def _obtain(
        self,
        kind: RecordKind,
        name: str,
        ttl: str,
        record: Optional[CertificateRecord],
        decision: Decision,
        result: RunResult,
        now: datetime,
    ) -> Optional[CertificateMaterial]:
        """Call the authority; on failure or unusable material the result ends FAILED."""
        if decision.action is Action.ISSUE:
            result.advance(IdentityState.ISSUING)
        else:
            result.advance(IdentityState.RENEWING)

        try:
            if decision.action is Action.ISSUE:
                material = self.authority.issue(name, ttl, kind)
            else:
                material = self.authority.renew_atomic(record.serial_number, name, ttl, kind)
            if material.expires_at <= now:
                raise IssuanceFailedError(
                    name, f"certificate {material.serial_number} expires at {material.expires_at.isoformat()}, not after {now.isoformat()}"
                )
        except AuthorityError as e:
            logger.error(f"Authority call for {name} failed: {e}", extra={"identity": name})
            result.error = e
            result.advance(IdentityState.FAILED)
            return None
        return material

    def _commit(
        self,
        kind: RecordKind,
        name: str,
        material: CertificateMaterial,
        new_record: CertificateRecord,
        now: datetime,
        fields: dict,
        decision: Decision,
        result: RunResult,
    ) -> bool:
        """Record the new certificate and persist; returns False if the record vanished."""
        try:
            if decision.action is Action.ISSUE:
                self.store.put(new_record)
                stored = new_record
            else:
                stored = self.store.update_certificate(
                    kind, name, material.serial_number, material.expires_at, now=now, **fields
                )
        except NotFoundError as e:
            logger.error(f"Record {name} disappeared during renewal: {e}", extra={"identity": name})
            result.advance(IdentityState.FAILED)
            return False

        result.record = stored
        result.days_remaining = stored.days_remaining(now)
        result.advance(IdentityState.ISSUED if decision.action is Action.ISSUE else IdentityState.RENEWED)
        self._save(result)
        return True

    def _save(self, result: RunResult) -> None:
        try:
            self.store.save()
        except StoreWriteError as e:
            result.warn(f"Store not persisted, continuing with in-memory state: {e}")

    def _notify(self, notification: Notification, result: RunResult) -> None:
        if self.notifier is None:
            logger.info(f"No notifier configured, {result.name} not notified")
            return
        try:
            self.notifier.notify(notification)
            result.notified = True
        except NotificationError as e:
            result.warn(f"Notification failed: {e}")

    # === Client (user) certificates ===

    def run_client(self, request: ClientRequest) -> RunResult:
        kind = RecordKind.USER
        now, record, decision, result = self._start(kind, request.name, request.force)

        if decision.action is Action.NOOP:
            result.record = record
            result.advance(IdentityState.NOOP)
            self._resend_existing(request, record, decision, result)
            return result

        ttl = request.ttl or (record.ttl if record else self.client_ttl)
        material = self._obtain(kind, request.name, ttl, record, decision, result, now)
        if material is None:
            return result

        email = request.email if request.email is not None else (record.email if record else None)
        new_record = UserCertificate(
            name=request.name,
            serial_number=material.serial_number,
            email=email,
            created_at=now,
            last_renewed_at=now,
            expires_at=material.expires_at,
            ttl=ttl,
        )
        if not self._commit(kind, request.name, material, new_record, now, {"ttl": ttl, "email": email}, decision, result):
            return result

        profile = self._render_profile(material, result)
        if profile is not None:
            self._notify(
                Notification.for_profile(request.name, email, profile, result.days_remaining),
                result,
            )
        return result

    def _render_profile(self, material: CertificateMaterial, result: RunResult) -> Optional[str]:
        if self.renderer is None:
            return None

        ca_pem = material.ca_chain_pem
        if not ca_pem:
            try:
                ca_pem = self.authority.get_ca_certificate()
            except AuthorityError as e:
                result.warn(f"CA certificate unavailable for profile: {e}")

        try:
            profile = self.renderer.render(material, ca_pem)
        except ConfigUnavailableError as e:
            result.warn(str(e))
            return None

        try:
            result.artifact_path = self.renderer.write(result.name, profile)
        except OSError as e:
            result.warn(f"Client profile not written to disk: {e}")
        return profile

    def _resend_existing(
        self,
        request: ClientRequest,
        record: UserCertificate,
        decision: Decision,
        result: RunResult,
    ) -> None:
        """On a no-op, only a resend can produce a notification, from the stored profile."""
        if not request.resend:
            return

        profile = self.renderer.load_existing(request.name) if self.renderer else None
        if profile is None:
            reason = "private key not recoverable" if decision.config_unavailable else "no profile on disk"
            result.warn(f"Resend requested but no previous profile for {request.name} ({reason}); refusing to generate one")
            return

        result.artifact_path = self.renderer.path_for(request.name)
        recipient = request.email or record.email
        self._notify(
            Notification.for_profile(request.name, recipient, profile, result.days_remaining),
            result,
        )

    # === Server certificates ===

    def run_server(self, request: ServerRequest) -> RunResult:
        kind = RecordKind.SERVER
        now, record, decision, result = self._start(kind, request.name, request.force)

        if decision.action is Action.NOOP:
            result.record = record
            result.advance(IdentityState.NOOP)
            return result

        ttl = request.ttl or (record.ttl if record else self.server_ttl)
        material = self._obtain(kind, request.name, ttl, record, decision, result, now)
        if material is None:
            return result

        device_address = request.device_address or (record.device_address if record else None)
        fields = {
            "ttl": ttl,
            "certificate_pem": material.certificate_pem,
            "private_key_pem": material.private_key_pem,
            "issuing_ca": material.ca_chain_pem,
            "device_address": device_address,
        }
        new_record = ServerCertificate(
            name=request.name,
            serial_number=material.serial_number,
            created_at=now,
            last_renewed_at=now,
            expires_at=material.expires_at,
            **fields,
        )
        if not self._commit(kind, request.name, material, new_record, now, fields, decision, result):
            return result

        self._sync(result)

        verb = "issued" if decision.action is Action.ISSUE else "renewed"
        self._notify(
            Notification(
                recipient=None,
                subject=f"Server certificate {verb}: {request.name}",
                body=(
                    f"Server certificate {request.name} now has serial {material.serial_number}, "
                    f"valid until {material.expires_at.isoformat()}.\n"
                    f"Device sync: {'ok' if result.synced else 'not completed'}.\n"
                ),
                days_remaining=result.days_remaining,
            ),
            result,
        )
        return result

    def _sync(self, result: RunResult) -> None:
        if self.device is None:
            logger.info(f"No device configured, {result.name} not synced")
            return
        try:
            sync = self.device.push_server_certificate(result.record)
        except DeviceError as e:
            result.warn(f"Device sync failed, authority record stays committed: {e}")
            return

        for warning in sync.warnings:
            result.warn(warning)
        result.synced = True
        result.advance(IdentityState.SYNCED)

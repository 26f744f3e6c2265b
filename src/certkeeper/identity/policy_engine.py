"""
Lifecycle Policy - Certificate Renewal Decisions

Decides, without any I/O, whether an identity needs a fresh certificate:
- no record -> issue
- inside the renewal threshold, or forced -> renew
- otherwise -> no-op (optionally flagging that no client profile can be
  regenerated because the private key is gone)
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .models import CertificateRecord


class Action(str, Enum):
    """Lifecycle actions."""
    ISSUE = "issue"
    RENEW = "renew"
    NOOP = "noop"


@dataclass(frozen=True)
class Decision:
    """Result of a policy decision."""
    action: Action
    reason: str
    days_remaining: Optional[float] = None
    config_unavailable: bool = False

    @property
    def changes_certificate(self) -> bool:
        return self.action in (Action.ISSUE, Action.RENEW)


class LifecyclePolicy:
    """
    Renewal policy driven by an expiry threshold and a force override.

    Pure: the same inputs always yield the same Decision.
    """

    def __init__(self, threshold_days: int = 30):
        self.threshold_days = threshold_days

    @staticmethod
    def decide(
        record_exists: bool,
        days_remaining: Optional[float],
        threshold_days: int,
        force: bool = False,
        has_private_key: bool = True,
    ) -> Decision:
        """
        Decide the lifecycle action for one identity.

        Args:
            record_exists: whether the store holds a record
            days_remaining: fractional days to expiry (ignored without a record)
            threshold_days: renew when strictly fewer days remain
            force: renew regardless of remaining lifetime
            has_private_key: whether key material for a client profile exists
        """
        if not record_exists:
            return Decision(action=Action.ISSUE, reason="No certificate on record")

        if force:
            return Decision(action=Action.RENEW, reason="Forced renewal", days_remaining=days_remaining)

        if days_remaining is not None and days_remaining < threshold_days:
            return Decision(
                action=Action.RENEW,
                reason=f"Within renewal window ({days_remaining:.1f} < {threshold_days} days)",
                days_remaining=days_remaining,
            )

        return Decision(
            action=Action.NOOP,
            reason=f"Certificate valid for {days_remaining:.1f} more days" if days_remaining is not None else "Certificate valid",
            days_remaining=days_remaining,
            config_unavailable=not has_private_key,
        )

    def evaluate(
        self,
        record: Optional[CertificateRecord],
        force: bool = False,
        now: Optional[datetime] = None,
    ) -> Decision:
        """Decide for a stored record (or its absence) at ``now``."""
        if record is None:
            return self.decide(False, None, self.threshold_days, force)
        return self.decide(
            True,
            record.days_remaining(now),
            self.threshold_days,
            force,
            has_private_key=record.has_private_key,
        )

    @staticmethod
    def expiry_bucket(days_remaining: float) -> str:
        """Categorize a certificate by days to expiry."""
        if days_remaining <= 0:
            return "expired"
        elif days_remaining <= 7:
            return "critical"  # 0-7 days
        elif days_remaining <= 30:
            return "warning"   # 8-30 days
        elif days_remaining <= 60:
            return "attention" # 31-60 days
        elif days_remaining <= 90:
            return "upcoming"  # 61-90 days
        else:
            return "healthy"   # 90+ days

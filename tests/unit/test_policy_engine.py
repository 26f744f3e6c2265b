"""
Lifecycle Policy Tests - Issue / Renew / No-op Decisions
"""

from datetime import timedelta

import pytest

from conftest import NOW


class TestDecide:
    """Tests for LifecyclePolicy.decide."""

    def test_no_record_issues(self):
        from certkeeper.identity.policy_engine import Action, LifecyclePolicy

        decision = LifecyclePolicy.decide(False, None, 30)

        assert decision.action == Action.ISSUE
        assert decision.changes_certificate
        assert not decision.config_unavailable

    def test_no_record_issues_even_when_forced(self):
        from certkeeper.identity.policy_engine import Action, LifecyclePolicy

        assert LifecyclePolicy.decide(False, None, 30, force=True).action == Action.ISSUE

    def test_within_threshold_renews(self):
        """10 days left with a 30 day threshold."""
        from certkeeper.identity.policy_engine import Action, LifecyclePolicy

        decision = LifecyclePolicy.decide(True, 10.0, 30)

        assert decision.action == Action.RENEW
        assert decision.days_remaining == 10.0

    def test_outside_threshold_is_noop(self):
        """45 days left with a 30 day threshold, key not recoverable."""
        from certkeeper.identity.policy_engine import Action, LifecyclePolicy

        decision = LifecyclePolicy.decide(True, 45.0, 30, force=False, has_private_key=False)

        assert decision.action == Action.NOOP
        assert decision.config_unavailable
        assert not decision.changes_certificate

    def test_force_renews_valid_certificate(self):
        from certkeeper.identity.policy_engine import Action, LifecyclePolicy

        decision = LifecyclePolicy.decide(True, 300.0, 30, force=True)

        assert decision.action == Action.RENEW
        assert "Forced" in decision.reason

    def test_exact_threshold_is_noop(self):
        from certkeeper.identity.policy_engine import Action, LifecyclePolicy

        assert LifecyclePolicy.decide(True, 30.0, 30).action == Action.NOOP
        assert LifecyclePolicy.decide(True, 29.999, 30).action == Action.RENEW

    def test_expired_certificate_renews(self):
        from certkeeper.identity.policy_engine import Action, LifecyclePolicy

        assert LifecyclePolicy.decide(True, -5.0, 30).action == Action.RENEW

    def test_noop_with_key_is_not_flagged(self):
        from certkeeper.identity.policy_engine import LifecyclePolicy

        assert not LifecyclePolicy.decide(True, 100.0, 30, has_private_key=True).config_unavailable

    def test_decide_is_pure(self):
        from certkeeper.identity.policy_engine import LifecyclePolicy

        inputs = [
            (False, None, 30, False, True),
            (True, 10.0, 30, False, True),
            (True, 45.0, 30, False, False),
            (True, 45.0, 30, True, False),
        ]
        for args in inputs:
            assert LifecyclePolicy.decide(*args) == LifecyclePolicy.decide(*args)


class TestEvaluate:
    """Tests for LifecyclePolicy.evaluate against stored records."""

    def _user(self, days):
        from certkeeper.identity.models import UserCertificate

        return UserCertificate(
            name="alice",
            serial_number="01",
            created_at=NOW - timedelta(days=365 - days),
            last_renewed_at=NOW - timedelta(days=365 - days),
            expires_at=NOW + timedelta(days=days),
            ttl="8760h",
        )

    def test_missing_record(self):
        from certkeeper.identity.policy_engine import Action, LifecyclePolicy

        assert LifecyclePolicy(30).evaluate(None, now=NOW).action == Action.ISSUE

    def test_user_noop_flags_unavailable_config(self):
        from certkeeper.identity.policy_engine import Action, LifecyclePolicy

        decision = LifecyclePolicy(30).evaluate(self._user(45), now=NOW)

        assert decision.action == Action.NOOP
        assert decision.days_remaining == pytest.approx(45.0)
        assert decision.config_unavailable

    def test_custom_threshold(self):
        from certkeeper.identity.policy_engine import Action, LifecyclePolicy

        assert LifecyclePolicy(60).evaluate(self._user(45), now=NOW).action == Action.RENEW

    def test_server_with_key_not_flagged(self):
        from certkeeper.identity.models import ServerCertificate
        from certkeeper.identity.policy_engine import LifecyclePolicy

        record = ServerCertificate(
            name="vpn-gw",
            serial_number="10",
            created_at=NOW,
            last_renewed_at=NOW,
            expires_at=NOW + timedelta(days=200),
            ttl="8760h",
            private_key_pem="KEY",
        )

        assert not LifecyclePolicy(30).evaluate(record, now=NOW).config_unavailable


class TestExpiryBucket:

    @pytest.mark.parametrize(
        "days,bucket",
        [
            (-1, "expired"),
            (0, "expired"),
            (5, "critical"),
            (20, "warning"),
            (45, "attention"),
            (75, "upcoming"),
            (200, "healthy"),
        ],
    )
    def test_buckets(self, days, bucket):
        from certkeeper.identity.policy_engine import LifecyclePolicy

        assert LifecyclePolicy.expiry_bucket(days) == bucket

"""
Notification Tests - SMTP Delivery of Client Profiles
"""

import smtplib
from unittest.mock import MagicMock

import pytest


def _notifier(smtp, **kwargs):
    from certkeeper.identity.notify import EmailNotifier

    factory = MagicMock()
    factory.return_value.__enter__.return_value = smtp
    kwargs.setdefault("username", "mailer")
    kwargs.setdefault("password", "pw")
    return EmailNotifier(host="smtp.example.com", sender="vpn@example.com", smtp_factory=factory, **kwargs), factory


class TestEmailNotifier:

    def test_profile_is_attached(self):
        from certkeeper.identity.notify import Notification

        smtp = MagicMock()
        notifier, factory = _notifier(smtp)

        notifier.notify(Notification.for_profile("alice", "alice@example.com", "client\nremote x 1194\n", 364.6))

        factory.assert_called_once_with("smtp.example.com", 587, timeout=30)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("mailer", "pw")

        message = smtp.send_message.call_args[0][0]
        assert message["To"] == "alice@example.com"
        assert message["From"] == "vpn@example.com"
        assert message["Subject"] == "New OpenVPN configuration: alice"
        assert "valid for 365 more days" in message.get_body(("plain",)).get_content()

        attachments = list(message.iter_attachments())
        assert len(attachments) == 1
        assert attachments[0].get_filename() == "alice.ovpn"
        assert attachments[0].get_content_type() == "application/x-openvpn-profile"
        assert attachments[0].get_content() == b"client\nremote x 1194\n"

    def test_default_recipient(self):
        from certkeeper.identity.notify import Notification

        smtp = MagicMock()
        notifier, _ = _notifier(smtp, default_recipient="admin@example.com")

        notifier.notify(Notification(recipient=None, subject="Server certificate renewed: vpn-gw", body="done"))

        message = smtp.send_message.call_args[0][0]
        assert message["To"] == "admin@example.com"
        assert list(message.iter_attachments()) == []

    def test_no_recipient(self):
        from certkeeper.errors import NotificationError
        from certkeeper.identity.notify import Notification

        smtp = MagicMock()
        notifier, factory = _notifier(smtp)

        with pytest.raises(NotificationError):
            notifier.notify(Notification(recipient=None, subject="s", body="b"))

        factory.assert_not_called()

    def test_without_auth_or_tls(self):
        from certkeeper.identity.notify import Notification

        smtp = MagicMock()
        notifier, _ = _notifier(smtp, username=None, starttls=False)

        notifier.notify(Notification(recipient="bob@example.com", subject="s", body="b"))

        smtp.starttls.assert_not_called()
        smtp.login.assert_not_called()
        smtp.send_message.assert_called_once()

    def test_smtp_failure(self):
        from certkeeper.errors import NotificationError
        from certkeeper.identity.notify import Notification

        smtp = MagicMock()
        smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"authentication failed")
        notifier, _ = _notifier(smtp)

        with pytest.raises(NotificationError) as exc_info:
            notifier.notify(Notification(recipient="bob@example.com", subject="s", body="b"))

        assert "SMTPAuthenticationError" in exc_info.value.message

    def test_connection_refused(self):
        from certkeeper.errors import NotificationError
        from certkeeper.identity.notify import EmailNotifier, Notification

        factory = MagicMock(side_effect=ConnectionRefusedError(111, "Connection refused"))
        notifier = EmailNotifier(host="smtp.example.com", sender="vpn@example.com", smtp_factory=factory)

        with pytest.raises(NotificationError):
            notifier.notify(Notification(recipient="bob@example.com", subject="s", body="b"))

"""
Notifications - Delivering New Client Profiles

The orchestrator hands a Notification to a Notifier once a new profile was
produced (or a resend was requested). Delivery failures are reported as
NotificationError and never abort a run.
"""

import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Callable, Optional

from ..errors import NotificationError

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "New OpenVPN configuration"

DEFAULT_BODY = """\
Hello,

attached is your OpenVPN client configuration for {name}.
The certificate it contains is valid for {days:.0f} more days.

Import the attached file into your OpenVPN client to connect.
"""


@dataclass
class Notification:
    """A message about a (re)issued client profile."""
    recipient: Optional[str]
    subject: str
    body: str
    attachment_name: Optional[str] = None
    attachment: Optional[str] = None
    days_remaining: Optional[float] = None

    @classmethod
    def for_profile(cls, name: str, recipient: Optional[str], profile: str, days_remaining: float) -> "Notification":
        return cls(
            recipient=recipient,
            subject=f"{DEFAULT_SUBJECT}: {name}",
            body=DEFAULT_BODY.format(name=name, days=days_remaining),
            attachment_name=f"{name}.ovpn",
            attachment=profile,
            days_remaining=days_remaining,
        )


class Notifier(ABC):
    """Abstract base class for notification channels."""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        """
        Deliver a notification.

        Raises:
            NotificationError: delivery failed
        """
        pass


class EmailNotifier(Notifier):
    """SMTP delivery with the profile as an attachment."""

    def __init__(
        self,
        host: str,
        sender: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        default_recipient: Optional[str] = None,
        starttls: bool = True,
        timeout: int = 30,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self._password = password
        self.default_recipient = default_recipient
        self.starttls = starttls
        self.timeout = timeout
        self._smtp_factory = smtp_factory

    def build_message(self, notification: Notification) -> EmailMessage:
        recipient = notification.recipient or self.default_recipient
        if not recipient:
            raise NotificationError(None, "no recipient configured")

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = notification.subject
        message.set_content(notification.body)
        if notification.attachment is not None:
            message.add_attachment(
                notification.attachment.encode(),
                maintype="application",
                subtype="x-openvpn-profile",
                filename=notification.attachment_name or "client.ovpn",
            )
        return message

    def notify(self, notification: Notification) -> None:
        message = self.build_message(notification)
        recipient = message["To"]
        try:
            with self._smtp_factory(self.host, self.port, timeout=self.timeout) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self._password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(recipient, f"{type(e).__name__}: {e}") from e
        logger.info(f"Sent '{notification.subject}' to {recipient}")

"""Email transports used by the notification coordinator."""

import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

from .errors import EmailDeliveryError

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str


class EmailTransport(ABC):
    @abstractmethod
    def send(self, message: EmailMessage) -> None:
        """Deliver one message or raise EmailDeliveryError."""


class LoggingEmailTransport(EmailTransport):
    """Development transport: logs each message and keeps it in ``sent``."""

    def __init__(self):
        self.sent: List[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        logger.info("Email to %s: %s", message.to, message.subject)
        logger.debug("Email body:\n%s", message.text)
        self.sent.append(message)


class SmtpEmailTransport(EmailTransport):
    """Sends multipart/alternative messages through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        sender: str = "maintenance@localhost",
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build(self, message: EmailMessage) -> MIMEMultipart:
        mime = MIMEMultipart("alternative")
        mime["Subject"] = message.subject
        mime["From"] = self.sender
        mime["To"] = message.to
        # Plain text first so clients prefer the HTML part
        mime.attach(MIMEText(message.text, "plain"))
        mime.attach(MIMEText(message.html, "html"))
        return mime

    def send(self, message: EmailMessage) -> None:
        mime = self._build(message)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password or "")
                server.sendmail(self.sender, [message.to], mime.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"Failed to send email to {message.to}: {e}") from e
        logger.info("Sent email to %s: %s", message.to, message.subject)

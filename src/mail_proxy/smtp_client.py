"""
Wysyłka wiadomości przez SMTP.
"""
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Optional

import structlog

from .connection import ProtocolConfig, build_ssl_context

logger = structlog.get_logger(__name__)


@dataclass
class OutgoingMessage:
    """Wiadomość do wysłania."""

    sender: str
    to: str
    subject: str
    body: str = ""
    in_reply_to: Optional[str] = None


def build_message(outgoing: OutgoingMessage) -> EmailMessage:
    """Buduje wiadomość MIME z wygenerowanym Message-ID."""
    domain = outgoing.sender.rsplit("@", 1)[-1] if "@" in outgoing.sender else None

    msg = EmailMessage()
    msg["From"] = outgoing.sender
    msg["To"] = outgoing.to
    msg["Subject"] = outgoing.subject
    msg["Date"] = formatdate(localtime=False, usegmt=True)
    msg["Message-ID"] = make_msgid(domain=domain)

    if outgoing.in_reply_to:
        msg["In-Reply-To"] = outgoing.in_reply_to
        msg["References"] = outgoing.in_reply_to

    msg.set_content(outgoing.body or "")
    return msg


class SMTPSender:
    """Nadawca SMTP; nowe połączenie dla każdej wiadomości."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    def _open(self, config: ProtocolConfig) -> smtplib.SMTP:
        context = build_ssl_context(config.tls_verify)
        if config.secure:
            return smtplib.SMTP_SSL(config.host, config.port, timeout=self.timeout, context=context)

        smtp = smtplib.SMTP(config.host, config.port, timeout=self.timeout)
        try:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls(context=context)
                smtp.ehlo()
        except Exception:
            smtp.close()
            raise
        return smtp

    def send(self, config: ProtocolConfig, message: EmailMessage) -> str:
        """
        Wysyła wiadomość.

        Returns:
            Message-ID wysłanej wiadomości
        """
        logger.debug("Łączenie z serwerem SMTP", host=config.host, port=config.port, secure=config.secure)

        with self._open(config) as smtp:
            if config.user and config.password:
                smtp.login(config.user, config.password)
            smtp.send_message(message)

        message_id = message["Message-ID"]
        logger.info("Wiadomość wysłana", host=config.host, message_id=message_id)
        return message_id

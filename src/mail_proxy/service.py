"""
Operacje bramki: test połączenia, pobieranie, wysyłka, foldery, aktualizacja.

Każda operacja jest bezstanowa - buduje konfigurację z deskryptora,
otwiera własną sesję i zwraca gotowy słownik odpowiedzi.
"""
from typing import Any, Callable, Optional

import structlog

from .config import Settings
from .connection import ConnectionDescriptor, Protocol, ProtocolConfig, derive_config
from .errors import ConfigurationError, Operation, classify_error
from .flags import FlagUpdate, apply_updates, parse_uid
from .imap_client import IMAPMailbox
from .normalizer import normalize_folder, normalize_message
from .pagination import compute_range, validate_window
from .session import with_session
from .smtp_client import OutgoingMessage, SMTPSender, build_message

logger = structlog.get_logger(__name__)

DEFAULT_FOLDER = "INBOX"
DEFAULT_LIMIT = 30


class MailProxyService:
    """Operacje na skrzynkach wywoływane przez API."""

    def __init__(
        self,
        settings: Settings,
        mailbox_factory: Optional[Callable[[ProtocolConfig], IMAPMailbox]] = None,
        sender: Optional[SMTPSender] = None,
    ):
        self.settings = settings
        self.mailbox_factory = mailbox_factory or self._default_mailbox
        self.sender = sender or SMTPSender(timeout=settings.smtp_timeout)

    def _default_mailbox(self, config: ProtocolConfig) -> IMAPMailbox:
        return IMAPMailbox(config, timeout=self.settings.imap_timeout)

    def _imap_config(self, connection: Optional[ConnectionDescriptor]) -> ProtocolConfig:
        if connection is None or not connection.imap_host:
            raise ConfigurationError("Connection config required")
        return derive_config(connection, Protocol.IMAP, tls_verify=self.settings.tls_verify)

    def test_connection(self, connection: Optional[ConnectionDescriptor]) -> dict[str, Any]:
        """Sprawdza logowanie i zwraca liczbę folderów."""
        config = self._imap_config(connection)

        count = with_session(
            config,
            None,
            lambda mailbox: len(mailbox.list_folders()),
            operation=Operation.TEST,
            mailbox_factory=self.mailbox_factory,
        )

        logger.info("Test połączenia udany", host=config.host, mailboxes=count)
        return {"connected": True, "server": config.host, "mailboxes_count": count}

    def fetch_messages(
        self,
        connection: Optional[ConnectionDescriptor],
        folder: str = DEFAULT_FOLDER,
        limit: Any = DEFAULT_LIMIT,
        offset: Any = 0,
    ) -> dict[str, Any]:
        """Pobiera stronę wiadomości, od najnowszej."""
        config = self._imap_config(connection)
        limit, offset = validate_window(limit, offset)

        def body(mailbox: IMAPMailbox) -> dict[str, Any]:
            status = mailbox.status(folder)
            page = compute_range(status.total_messages, limit, offset)
            if page is None:
                return {"emails": [], "total": 0, "folder": folder, "unseen": status.unseen}

            records = [
                normalize_message(raw, self.settings.subject_placeholder)
                for raw in mailbox.fetch(page)
            ]
            records.reverse()

            return {
                "emails": [record.to_dict() for record in records],
                "total": status.total_messages,
                "folder": folder,
                "unseen": status.unseen,
            }

        result = with_session(
            config,
            folder,
            body,
            operation=Operation.FETCH,
            mailbox_factory=self.mailbox_factory,
        )

        logger.info(
            "Pobrano wiadomości",
            host=config.host,
            folder=folder,
            count=len(result["emails"]),
            total=result["total"],
        )
        return result

    def list_folders(self, connection: Optional[ConnectionDescriptor]) -> dict[str, Any]:
        """Zwraca listę folderów skrzynki."""
        config = self._imap_config(connection)

        folders = with_session(
            config,
            None,
            lambda mailbox: [normalize_folder(raw) for raw in mailbox.list_folders()],
            operation=Operation.LIST,
            mailbox_factory=self.mailbox_factory,
        )

        logger.info("Pobrano foldery", host=config.host, count=len(folders))
        return {"folders": [folder.to_dict() for folder in folders]}

    def update_message(
        self,
        connection: Optional[ConnectionDescriptor],
        email_id: Any,
        update: FlagUpdate,
        folder: str = DEFAULT_FOLDER,
    ) -> dict[str, Any]:
        """Zmienia flagi wiadomości i opcjonalnie ją przenosi."""
        config = self._imap_config(connection)
        uid = parse_uid(email_id)

        actions = with_session(
            config,
            folder,
            lambda mailbox: apply_updates(mailbox, uid, update),
            operation=Operation.UPDATE,
            mailbox_factory=self.mailbox_factory,
        )

        logger.info("Zaktualizowano wiadomość", host=config.host, folder=folder, uid=uid, actions=actions)
        return {"updated": True}

    def send_message(
        self,
        connection: Optional[ConnectionDescriptor],
        to: Optional[str],
        subject: Optional[str],
        body: Optional[str] = None,
        reply_to_message_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Wysyła wiadomość z adresu skrzynki."""
        if connection is None or not connection.smtp_host or not to or not subject:
            raise ConfigurationError("connection, to, subject required")

        config = derive_config(connection, Protocol.SMTP, tls_verify=self.settings.tls_verify)
        try:
            message = build_message(
                OutgoingMessage(
                    sender=connection.email or "",
                    to=to,
                    subject=subject,
                    body=body or "",
                    in_reply_to=reply_to_message_id,
                )
            )
        except ValueError as e:
            # Nagłówki z CR/LF odrzuca polityka email
            raise ConfigurationError(f"Invalid message headers: {e}") from e

        try:
            message_id = self.sender.send(config, message)
        except Exception as e:
            logger.error("Błąd wysyłki SMTP", host=config.host, error=str(e))
            raise classify_error(e, operation=Operation.SEND, host=config.host) from e

        return {"sent": True, "messageId": message_id}

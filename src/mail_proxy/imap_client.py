"""
Klient IMAP używany przez sesje bramki.

Opakowuje imapclient i zwraca proste struktury danych (bez typów imapclient),
z których korzysta normalizacja wiadomości.
"""
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from email.header import decode_header
from typing import Iterable, Iterator, Optional, Union

import structlog
from imapclient import IMAPClient

from .connection import ProtocolConfig, build_ssl_context
from .pagination import PageRange

logger = structlog.get_logger(__name__)

SEEN = "\\Seen"
FLAGGED = "\\Flagged"
IMPORTANT = "\\Important"

FETCH_ITEMS = ["UID", "ENVELOPE", "FLAGS", "BODYSTRUCTURE", "BODY.PEEK[1]"]


@dataclass(frozen=True)
class MailAddress:
    """Adres z koperty wiadomości."""

    address: str = ""
    name: Optional[str] = None


@dataclass
class RawEnvelope:
    """Koperta wiadomości (nagłówki zdekodowane do tekstu)."""

    from_: list[MailAddress] = field(default_factory=list)
    to: list[MailAddress] = field(default_factory=list)
    subject: Optional[str] = None
    date: Optional[datetime] = None
    message_id: Optional[str] = None


@dataclass
class RawMessage:
    """Wiadomość pobrana z serwera, przed normalizacją."""

    uid: int
    sequence: int = 0
    envelope: RawEnvelope = field(default_factory=RawEnvelope)
    flags: frozenset = frozenset()
    child_parts: int = 0
    body: str = ""


@dataclass(frozen=True)
class RawFolder:
    """Pozycja odpowiedzi LIST."""

    path: str
    delimiter: Optional[str]
    flags: tuple = ()


@dataclass(frozen=True)
class MailboxStatus:
    """Stan folderu w chwili zapytania."""

    total_messages: int
    unseen: int


def _text(value: Union[bytes, str, None]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def decode_header_value(value: Union[bytes, str, None]) -> Optional[str]:
    """Dekoduje nagłówek zakodowany wg RFC 2047."""
    text = _text(value)
    if text is None:
        return None

    result = []
    for part, encoding in decode_header(text):
        if isinstance(part, bytes):
            try:
                result.append(part.decode(encoding or "utf-8", errors="replace"))
            except LookupError:
                result.append(part.decode("utf-8", errors="replace"))
        else:
            result.append(part)
    return "".join(result)


def _addresses(items) -> list[MailAddress]:
    addresses = []
    for item in items or ():
        mailbox = _text(item.mailbox) or ""
        host = _text(item.host) or ""
        address = f"{mailbox}@{host}" if mailbox and host else mailbox
        addresses.append(MailAddress(address=address, name=decode_header_value(item.name) or None))
    return addresses


def _envelope(envelope) -> RawEnvelope:
    if envelope is None:
        return RawEnvelope()
    return RawEnvelope(
        from_=_addresses(envelope.from_),
        to=_addresses(envelope.to),
        subject=decode_header_value(envelope.subject) or None,
        date=envelope.date,
        message_id=_text(envelope.message_id) or None,
    )


def _child_parts(body_structure) -> int:
    """Liczba części pierwszego poziomu (0 dla wiadomości jednoczęściowej)."""
    if not body_structure or not getattr(body_structure, "is_multipart", False):
        return 0
    return len(body_structure[0])


def _flags(flags: Iterable) -> frozenset:
    return frozenset(_text(flag) for flag in flags or ())


class IMAPMailbox:
    """Połączenie IMAP na czas jednego żądania."""

    def __init__(self, config: ProtocolConfig, timeout: Optional[float] = None):
        self.config = config
        self.timeout = timeout
        self._client: Optional[IMAPClient] = None
        self._lock = threading.Lock()
        self._locked_folder: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    @property
    def locked_folder(self) -> Optional[str]:
        """Folder, na którym trzymana jest blokada (None = brak blokady)."""
        return self._locked_folder

    def _require_client(self) -> IMAPClient:
        if self._client is None:
            raise ConnectionError("Not connected to IMAP server")
        return self._client

    def connect(self) -> None:
        """Łączy się i loguje do serwera IMAP."""
        logger.debug(
            "Łączenie z serwerem IMAP",
            host=self.config.host,
            port=self.config.port,
            secure=self.config.secure,
        )

        ssl_context = build_ssl_context(self.config.tls_verify)
        client = IMAPClient(
            self.config.host,
            port=self.config.port,
            ssl=self.config.secure,
            ssl_context=ssl_context if self.config.secure else None,
            timeout=self.timeout,
        )

        # Przypisanie przed logowaniem, żeby teardown zamknął gniazdo
        self._client = client

        if not self.config.secure and client.has_capability("STARTTLS"):
            client.starttls(ssl_context)

        client.login(self.config.user, self.config.password)
        logger.debug("Połączono z serwerem IMAP", host=self.config.host)

    def logout(self) -> None:
        """Wylogowuje się i zamyka połączenie."""
        client = self._client
        if client is None:
            return
        self._client = None
        client.logout()

    def shutdown(self) -> None:
        """Zamyka gniazdo bez komendy LOGOUT."""
        client = self._client
        if client is None:
            return
        self._client = None
        client.shutdown()

    @contextmanager
    def mailbox_lock(self, folder: str) -> Iterator[str]:
        """Wyłączna blokada folderu w obrębie tej sesji (z SELECT folderu)."""
        with self._lock:
            try:
                self._require_client().select_folder(folder)
                self._locked_folder = folder
                yield folder
            finally:
                self._locked_folder = None

    def list_folders(self) -> list[RawFolder]:
        """Zwraca listę folderów serwera."""
        folders = []
        for flags, delimiter, name in self._require_client().list_folders():
            folders.append(
                RawFolder(
                    path=_text(name) or "",
                    delimiter=_text(delimiter),
                    flags=tuple(_text(flag) for flag in flags or ()),
                )
            )
        return folders

    def status(self, folder: str) -> MailboxStatus:
        """Zwraca liczbę wiadomości i nieprzeczytanych w folderze."""
        status = self._require_client().folder_status(folder, [b"MESSAGES", b"UNSEEN"])
        return MailboxStatus(
            total_messages=int(status.get(b"MESSAGES", 0) or 0),
            unseen=int(status.get(b"UNSEEN", 0) or 0),
        )

    def fetch(self, page: PageRange) -> Iterator[RawMessage]:
        """Pobiera zakres numerów sekwencyjnych, od najstarszej wiadomości."""
        client = self._require_client()

        # Zakres to numery sekwencyjne, nie UID
        client.use_uid = False
        try:
            response = client.fetch(page.sequence_set, FETCH_ITEMS)
        finally:
            client.use_uid = True

        for sequence in sorted(response):
            data = response[sequence]
            body = data.get(b"BODY[1]") or b""
            yield RawMessage(
                uid=int(data[b"UID"]),
                sequence=sequence,
                envelope=_envelope(data.get(b"ENVELOPE")),
                flags=_flags(data.get(b"FLAGS")),
                child_parts=_child_parts(data.get(b"BODYSTRUCTURE")),
                body=_text(body) or "",
            )

    def add_flags(self, uid: int, flags: list[str]) -> None:
        self._require_client().add_flags([uid], flags)

    def remove_flags(self, uid: int, flags: list[str]) -> None:
        self._require_client().remove_flags([uid], flags)

    def move(self, uid: int, folder: str) -> None:
        """Przenosi wiadomość do innego folderu."""
        self._require_client().move([uid], folder)

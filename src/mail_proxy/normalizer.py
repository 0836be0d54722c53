"""
Normalizacja wiadomości i folderów do formatu odpowiedzi bramki.
"""
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .imap_client import FLAGGED, IMPORTANT, SEEN, RawFolder, RawMessage

DEFAULT_SUBJECT = "(sans objet)"
SNIPPET_LENGTH = 200

SPECIAL_USE_FLAGS = (
    "\\All",
    "\\Archive",
    "\\Drafts",
    "\\Flagged",
    "\\Junk",
    "\\Sent",
    "\\Trash",
)

_NEWLINES = re.compile(r"\r\n|\r|\n")


class Priority:
    NORMAL = "normal"
    URGENT = "urgent"


@dataclass
class MessageRecord:
    """Wiadomość w formacie odpowiedzi /fetch."""

    message_id: str
    from_address: str
    from_name: str
    to_address: str
    subject: str
    snippet: str
    body_text: str
    date: str
    is_read: bool
    is_starred: bool
    priority: str
    has_attachments: bool
    uid: int
    external_message_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FolderRecord:
    """Folder w formacie odpowiedzi /folders."""

    name: str
    path: str
    delimiter: Optional[str]
    special_use: Optional[str] = None
    flags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "delimiter": self.delimiter,
            "specialUse": self.special_use,
            "flags": list(self.flags),
        }


def make_snippet(body: str, length: int = SNIPPET_LENGTH) -> str:
    """Pierwsze `length` znaków treści w jednej linii, bez białych znaków na brzegach."""
    return _NEWLINES.sub(" ", body).strip()[:length].rstrip()


def format_date(value: Optional[datetime]) -> str:
    """Data ISO-8601 w UTC z sufiksem Z; brak daty = teraz."""
    if value is None:
        value = datetime.now(timezone.utc)
    # Naiwna data z imapclient jest w czasie lokalnym
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_message(raw: RawMessage, subject_placeholder: str = DEFAULT_SUBJECT) -> MessageRecord:
    """Buduje rekord wiadomości z koperty, flag i pierwszej części treści."""
    envelope = raw.envelope
    sender = envelope.from_[0] if envelope.from_ else None
    recipient = envelope.to[0] if envelope.to else None

    from_address = sender.address if sender else ""
    from_name = sender.name if sender and sender.name else from_address.split("@")[0]

    return MessageRecord(
        message_id=envelope.message_id or str(raw.uid),
        external_message_id=envelope.message_id,
        from_address=from_address,
        from_name=from_name,
        to_address=recipient.address if recipient else "",
        subject=envelope.subject or subject_placeholder,
        snippet=make_snippet(raw.body),
        body_text=raw.body,
        date=format_date(envelope.date),
        is_read=SEEN in raw.flags,
        is_starred=FLAGGED in raw.flags,
        priority=Priority.URGENT if IMPORTANT in raw.flags else Priority.NORMAL,
        has_attachments=raw.child_parts > 1,
        uid=raw.uid,
    )


def _special_use(folder: RawFolder) -> Optional[str]:
    for flag in folder.flags:
        if flag in SPECIAL_USE_FLAGS:
            return flag
    if folder.path.upper() == "INBOX":
        return "\\Inbox"
    return None


def normalize_folder(folder: RawFolder) -> FolderRecord:
    """Buduje rekord folderu; nazwa to ostatni segment ścieżki."""
    name = folder.path
    if folder.delimiter and folder.delimiter in name:
        name = name.rsplit(folder.delimiter, 1)[-1]

    return FolderRecord(
        name=name,
        path=folder.path,
        delimiter=folder.delimiter,
        special_use=_special_use(folder),
        flags=list(folder.flags),
    )

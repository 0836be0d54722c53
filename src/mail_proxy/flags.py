"""
Synchronizacja flag i przenoszenie wiadomości.
"""
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from .errors import ConfigurationError
from .imap_client import FLAGGED, SEEN

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FlagUpdate:
    """Zmiany do zastosowania; None oznacza brak zmiany."""

    is_read: Optional[bool] = None
    is_starred: Optional[bool] = None
    move_to_folder: Optional[str] = None


def parse_uid(value: Any) -> int:
    """Parsuje identyfikator wiadomości jako UID (dodatnia liczba całkowita)."""
    if isinstance(value, bool) or value is None:
        raise ConfigurationError("Invalid email_id")
    if isinstance(value, int):
        uid = value
    else:
        text = str(value).strip()
        if not (text.isascii() and text.isdigit()):
            raise ConfigurationError(f"Invalid email_id: {value!r}")
        uid = int(text)
    if uid < 1:
        raise ConfigurationError(f"Invalid email_id: {value!r}")
    return uid


def _set_flag(mailbox, uid: int, flag: str, enabled: bool) -> str:
    if enabled:
        mailbox.add_flags(uid, [flag])
        return f"+{flag}"
    mailbox.remove_flags(uid, [flag])
    return f"-{flag}"


def apply_updates(mailbox, uid: Any, update: FlagUpdate) -> list[str]:
    """
    Stosuje zmiany flag, a na końcu przeniesienie.

    Kolejność jest stała: przeczytana, oznaczona gwiazdką, przeniesienie.
    Przeniesienie musi być ostatnie - po nim UID w bieżącym folderze
    przestaje istnieć. Wywołujący trzyma już blokadę folderu.
    """
    uid = parse_uid(uid)
    applied = []

    if update.is_read is not None:
        applied.append(_set_flag(mailbox, uid, SEEN, update.is_read))

    if update.is_starred is not None:
        applied.append(_set_flag(mailbox, uid, FLAGGED, update.is_starred))

    if update.move_to_folder:
        mailbox.move(uid, update.move_to_folder)
        applied.append(f"move:{update.move_to_folder}")

    logger.debug("Zastosowano zmiany wiadomości", uid=uid, actions=applied)
    return applied

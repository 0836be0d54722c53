"""
Cykl życia sesji IMAP dla pojedynczego żądania.

connect -> (blokada folderu) -> operacja -> (zwolnienie blokady) -> logout.
Blokada i połączenie są zwalniane na każdej ścieżce wyjścia, a każdy błąd
wychodzi na zewnątrz jako sklasyfikowany GatewayError.
"""
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

import structlog

from .connection import ProtocolConfig
from .errors import ConfigurationError, Operation, classify_error
from .imap_client import IMAPMailbox

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MailboxFactory = Callable[[ProtocolConfig], IMAPMailbox]


def _teardown(mailbox, log) -> None:
    """Zamyka połączenie po błędzie; błędy zamykania tylko logujemy."""
    try:
        mailbox.logout()
    except Exception as e:
        log.warning("Nieudane wylogowanie po błędzie, zamykanie gniazda", error=str(e))
        try:
            mailbox.shutdown()
        except Exception as shutdown_error:
            log.warning("Nieudane zamknięcie gniazda", error=str(shutdown_error))


@contextmanager
def open_session(
    config: ProtocolConfig,
    folder: Optional[str] = None,
    *,
    operation: Operation,
    mailbox_factory: MailboxFactory = IMAPMailbox,
) -> Iterator[IMAPMailbox]:
    """
    Otwiera sesję IMAP i opcjonalnie blokuje folder na czas jej trwania.

    Args:
        config: Konfiguracja połączenia IMAP
        folder: Folder do zablokowania (None = bez blokady)
        operation: Operacja, w ramach której otwierana jest sesja
        mailbox_factory: Fabryka klienta IMAP

    Yields:
        Połączony klient IMAP
    """
    if folder is not None and (not isinstance(folder, str) or not folder.strip()):
        raise ConfigurationError("Folder name must be a non-empty string")

    log = logger.bind(host=config.host, folder=folder, operation=Operation(operation).value)
    mailbox = mailbox_factory(config)

    try:
        mailbox.connect()
    except Exception as e:
        log.error("Błąd połączenia IMAP", error=str(e))
        _teardown(mailbox, log)
        raise classify_error(e, operation=operation, host=config.host) from e

    try:
        if folder is not None:
            with mailbox.mailbox_lock(folder):
                yield mailbox
        else:
            yield mailbox
    except Exception as e:
        log.error("Błąd operacji IMAP", error=str(e))
        _teardown(mailbox, log)
        error = classify_error(e, operation=operation, host=config.host)
        if error is e:
            raise
        raise error from e

    try:
        mailbox.logout()
    except Exception as e:
        log.error("Błąd wylogowania IMAP", error=str(e))
        _teardown(mailbox, log)
        raise classify_error(e, operation=operation, host=config.host) from e


def with_session(
    config: ProtocolConfig,
    folder: Optional[str],
    body: Callable[[IMAPMailbox], T],
    *,
    operation: Operation,
    mailbox_factory: MailboxFactory = IMAPMailbox,
) -> T:
    """Wykonuje `body` w ramach sesji i zwraca jego wynik."""
    with open_session(
        config,
        folder,
        operation=operation,
        mailbox_factory=mailbox_factory,
    ) as mailbox:
        return body(mailbox)

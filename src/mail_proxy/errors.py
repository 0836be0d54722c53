"""
Klasyfikacja błędów bramki.

Każdy błąd warstwy sesji lub serwera pocztowego trafia do jednej z czterech
kategorii, z których warstwa HTTP buduje odpowiedź.
"""
import smtplib
from enum import Enum
from typing import Any, Optional


class Operation(str, Enum):
    """Operacje bramki (używane w komunikatach błędów i logach)."""

    TEST = "test"
    FETCH = "fetch"
    LIST = "list"
    UPDATE = "update"
    SEND = "send"


_FAILURE_PREFIXES = {
    Operation.TEST: "IMAP connection failed",
    Operation.FETCH: "IMAP fetch failed",
    Operation.LIST: "IMAP list failed",
    Operation.UPDATE: "IMAP update failed",
    Operation.SEND: "SMTP send failed",
}


class GatewayError(Exception):
    """Bazowy błąd bramki."""

    status_code = 500

    def __init__(self, message: str, host: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.host = host

    def to_dict(self) -> dict[str, Any]:
        """Zwraca treść odpowiedzi błędu."""
        payload: dict[str, Any] = {"error": self.message}
        if self.host:
            payload["host"] = self.host
        return payload


class ConfigurationError(GatewayError):
    """Niepoprawne lub niekompletne dane wejściowe (przed połączeniem)."""

    status_code = 400


class AuthorizationError(GatewayError):
    """Odrzucenie przez bramkę wspólnego sekretu."""

    status_code = 401


class UpstreamProtocolError(GatewayError):
    """Błąd serwera pocztowego lub sieci podczas operacji IMAP."""

    status_code = 502


class SendError(GatewayError):
    """Błąd wysyłki wiadomości."""

    status_code = 502


def _describe(exc: BaseException) -> str:
    text = str(exc)
    if not text:
        return exc.__class__.__name__
    return text


def classify_error(
    exc: BaseException,
    *,
    operation: Operation,
    host: Optional[str] = None,
) -> GatewayError:
    """Mapuje dowolny wyjątek na sklasyfikowany błąd bramki."""
    if isinstance(exc, GatewayError):
        if exc.host is None and host is not None and not isinstance(exc, ConfigurationError):
            exc.host = host
        return exc

    operation = Operation(operation)
    message = f"{_FAILURE_PREFIXES[operation]}: {_describe(exc)}"

    if operation is Operation.SEND or isinstance(exc, smtplib.SMTPException):
        return SendError(message, host=host)

    return UpstreamProtocolError(message, host=host)

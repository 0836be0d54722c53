"""
Wyznaczanie konfiguracji połączenia IMAP/SMTP z deskryptora żądania.
"""
import base64
import binascii
import ssl
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

DEFAULT_IMAP_PORT = 993
DEFAULT_SMTP_PORT = 587
SMTP_SSL_PORT = 465


class Protocol(str, Enum):
    """Protokół, dla którego budowana jest konfiguracja."""

    IMAP = "imap"
    SMTP = "smtp"


class ConnectionDescriptor(BaseModel):
    """Dane połączenia przesyłane przez klienta w każdym żądaniu."""

    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    encrypted_password: Optional[str] = None
    imap_host: Optional[str] = None
    imap_port: Optional[int] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    use_ssl: Optional[bool] = None


@dataclass(frozen=True)
class ProtocolConfig:
    """Kompletna konfiguracja jednej sesji protokołu."""

    host: str
    port: int
    secure: bool
    user: str
    password: str = field(repr=False)
    tls_verify: bool = False


def build_ssl_context(verify: bool) -> ssl.SSLContext:
    """Kontekst TLS; bez weryfikacji certyfikatu, jeśli verify=False."""
    context = ssl.create_default_context()
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def decode_password(encoded: Optional[str]) -> str:
    """
    Dekoduje hasło zapisane w base64.

    To tylko odwracalne kodowanie tekstu, a nie szyfrowanie. Jeśli wartość
    nie jest poprawnym base64 (lub nie daje tekstu UTF-8), zwracana jest
    surowa wartość.
    """
    if not encoded:
        return ""
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return encoded


def derive_imap_config(descriptor: ConnectionDescriptor, tls_verify: bool = False) -> ProtocolConfig:
    """Buduje konfigurację IMAP (domyślnie port 993 i TLS)."""
    return ProtocolConfig(
        host=descriptor.imap_host or "",
        port=descriptor.imap_port or DEFAULT_IMAP_PORT,
        secure=descriptor.use_ssl is not False,
        user=descriptor.email or "",
        password=decode_password(descriptor.encrypted_password),
        tls_verify=tls_verify,
    )


def derive_smtp_config(descriptor: ConnectionDescriptor, tls_verify: bool = False) -> ProtocolConfig:
    """Buduje konfigurację SMTP (domyślnie port 587, TLS tylko na 465)."""
    port = descriptor.smtp_port or DEFAULT_SMTP_PORT
    return ProtocolConfig(
        host=descriptor.smtp_host or "",
        port=port,
        secure=port == SMTP_SSL_PORT,
        user=descriptor.email or "",
        password=decode_password(descriptor.encrypted_password),
        tls_verify=tls_verify,
    )


def derive_config(
    descriptor: ConnectionDescriptor,
    protocol: Protocol,
    tls_verify: bool = False,
) -> ProtocolConfig:
    """Buduje konfigurację dla wskazanego protokołu."""
    if Protocol(protocol) is Protocol.SMTP:
        return derive_smtp_config(descriptor, tls_verify=tls_verify)
    return derive_imap_config(descriptor, tls_verify=tls_verify)

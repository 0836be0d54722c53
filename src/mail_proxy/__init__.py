"""
Email IMAP/SMTP Proxy

Bezstanowa bramka HTTP/JSON do skrzynek pocztowych. Każde żądanie otwiera
własną sesję IMAP (lub połączenie SMTP) i zamyka ją przed odpowiedzią.
"""
__version__ = "0.1.0"

from .api import create_app
from .config import Settings, get_settings
from .connection import ConnectionDescriptor, ProtocolConfig, derive_imap_config, derive_smtp_config
from .errors import (
    AuthorizationError,
    ConfigurationError,
    GatewayError,
    SendError,
    UpstreamProtocolError,
    classify_error,
)
from .imap_client import IMAPMailbox
from .pagination import PageRange, compute_range
from .service import MailProxyService
from .session import open_session, with_session

__all__ = [
    "AuthorizationError",
    "ConfigurationError",
    "ConnectionDescriptor",
    "GatewayError",
    "IMAPMailbox",
    "MailProxyService",
    "PageRange",
    "ProtocolConfig",
    "SendError",
    "Settings",
    "UpstreamProtocolError",
    "classify_error",
    "compute_range",
    "create_app",
    "derive_imap_config",
    "derive_smtp_config",
    "get_settings",
    "open_session",
    "with_session",
]

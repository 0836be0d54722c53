"""
Punkt wejścia bramki Email IMAP/SMTP Proxy.
"""
import logging
import sys

import structlog
import uvicorn

from .api import create_app
from .config import Settings, get_settings

logger = structlog.get_logger(__name__)


def configure_logging(settings: Settings) -> None:
    """Konfiguruje logowanie."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def main() -> None:
    """Uruchamia serwer HTTP bramki."""
    settings = get_settings()
    configure_logging(settings)

    logger.info("Uruchamianie Email IMAP/SMTP Proxy", host=settings.host, port=settings.port)

    try:
        uvicorn.run(
            create_app(settings),
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Przerwano przez użytkownika")
        sys.exit(0)
    except Exception as e:
        logger.error("Błąd krytyczny", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()

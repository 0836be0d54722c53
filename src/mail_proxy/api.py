"""
API HTTP bramki IMAP/SMTP.
"""
import secrets
from datetime import datetime, timezone
from typing import Callable, Optional, Union

import structlog
from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from . import __version__
from .config import Settings, get_settings
from .connection import ConnectionDescriptor
from .errors import AuthorizationError, ConfigurationError, GatewayError
from .flags import FlagUpdate
from .normalizer import format_date
from .service import DEFAULT_FOLDER, DEFAULT_LIMIT, MailProxyService

logger = structlog.get_logger(__name__)

PROXY_SECRET_HEADER = "x-proxy-secret"
PAYLOAD_TOO_LARGE = "Payload too large"


# ═══════════════════════════════════════════════════════════════
# MODELE ŻĄDAŃ
# ═══════════════════════════════════════════════════════════════

class ConnectionRequest(BaseModel):
    connection: Optional[ConnectionDescriptor] = None


class FetchRequest(ConnectionRequest):
    folder: str = DEFAULT_FOLDER
    limit: int = DEFAULT_LIMIT
    offset: int = 0


class SendRequest(ConnectionRequest):
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    reply_to_message_id: Optional[str] = None


class UpdateRequest(ConnectionRequest):
    email_id: Optional[Union[int, str]] = None
    is_read: Optional[bool] = None
    is_starred: Optional[bool] = None
    move_to_folder: Optional[str] = None
    folder: str = DEFAULT_FOLDER


# ═══════════════════════════════════════════════════════════════
# MIDDLEWARE
# ═══════════════════════════════════════════════════════════════

class ProxySecretMiddleware(BaseHTTPMiddleware):
    """Odrzuca żądania bez poprawnego nagłówka X-Proxy-Secret."""

    def __init__(self, app, secret: Optional[str] = None):
        super().__init__(app)
        self.secret = secret

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self.secret:
            token = request.headers.get(PROXY_SECRET_HEADER, "")
            if not secrets.compare_digest(token.encode(), self.secret.encode()):
                logger.warning("Odrzucono żądanie bez sekretu", path=request.url.path)
                error = AuthorizationError("Unauthorized")
                return JSONResponse(status_code=error.status_code, content=error.to_dict())
        return await call_next(request)


class RequestSizeLimitMiddleware:
    """
    Odrzuca żądania większe niż max_request_size.

    Content-Length sprawdzany jest od razu; ciało przesyłane bez niego
    (chunked) liczone jest w trakcie odczytu.
    """

    def __init__(self, app: ASGIApp, max_request_size: int):
        self.app = app
        self.max_request_size = max_request_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_request_size:
            logger.warning("Zbyt duże żądanie", size=int(content_length), limit=self.max_request_size)
            response = JSONResponse(status_code=413, content={"error": PAYLOAD_TOO_LARGE})
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_request_size:
                    logger.warning("Zbyt duże żądanie", size=received, limit=self.max_request_size)
                    raise StarletteHTTPException(status_code=413, detail=PAYLOAD_TOO_LARGE)
            return message

        await self.app(scope, limited_receive, send)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Dodaje nagłówki bezpieczeństwa do odpowiedzi."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cross-Origin-Resource-Policy"] = "same-origin"
        response.headers["X-Permitted-Cross-Domain-Policies"] = "none"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=15552000; includeSubDomains"
        return response


# ═══════════════════════════════════════════════════════════════
# OBSŁUGA BŁĘDÓW
# ═══════════════════════════════════════════════════════════════

async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    logger.warning(
        "Żądanie zakończone błędem",
        path=request.url.path,
        status=exc.status_code,
        error=exc.message,
        host=exc.host,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Błędy HTTP (404, 405, 413) w tym samym formacie co błędy bramki."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Błędy walidacji ciała żądania to błędy konfiguracji (400), nie 422."""
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return await gateway_error_handler(request, ConfigurationError("Invalid request: " + "; ".join(details)))


# ═══════════════════════════════════════════════════════════════
# APLIKACJA
# ═══════════════════════════════════════════════════════════════

def get_service(request: Request) -> MailProxyService:
    return request.app.state.service


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[MailProxyService] = None,
) -> FastAPI:
    """Tworzy aplikację FastAPI bramki."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Email IMAP/SMTP Proxy",
        description="Bezstanowa bramka HTTP do operacji na skrzynkach IMAP/SMTP",
        version=__version__,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.service = service or MailProxyService(settings)

    secret = settings.proxy_secret.get_secret_value() if settings.proxy_secret else None

    # Ostatni dodany middleware jest najbardziej zewnętrzny
    app.add_middleware(ProxySecretMiddleware, secret=secret)
    app.add_middleware(RequestSizeLimitMiddleware, max_request_size=settings.max_request_bytes)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    @app.post("/test")
    async def test_connection(payload: ConnectionRequest, service: MailProxyService = Depends(get_service)):
        return await run_in_threadpool(service.test_connection, payload.connection)

    @app.post("/fetch")
    async def fetch_messages(payload: FetchRequest, service: MailProxyService = Depends(get_service)):
        return await run_in_threadpool(
            service.fetch_messages,
            payload.connection,
            payload.folder,
            payload.limit,
            payload.offset,
        )

    @app.post("/send")
    async def send_message(payload: SendRequest, service: MailProxyService = Depends(get_service)):
        return await run_in_threadpool(
            service.send_message,
            payload.connection,
            payload.to,
            payload.subject,
            payload.body,
            payload.reply_to_message_id,
        )

    @app.post("/folders")
    async def list_folders(payload: ConnectionRequest, service: MailProxyService = Depends(get_service)):
        return await run_in_threadpool(service.list_folders, payload.connection)

    @app.post("/update")
    async def update_message(payload: UpdateRequest, service: MailProxyService = Depends(get_service)):
        update = FlagUpdate(
            is_read=payload.is_read,
            is_starred=payload.is_starred,
            move_to_folder=payload.move_to_folder,
        )
        return await run_in_threadpool(
            service.update_message,
            payload.connection,
            payload.email_id,
            update,
            payload.folder,
        )

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": settings.service_name,
            "timestamp": format_date(datetime.now(timezone.utc)),
        }

    return app

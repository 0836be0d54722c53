"""
Konfiguracja bramki IMAP/SMTP.
"""
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Ustawienia bramki."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Serwer HTTP
    host: str = Field(default="0.0.0.0", description="Adres nasłuchu HTTP")
    port: int = Field(default=3001, description="Port HTTP")
    service_name: str = Field(default="email-imap-proxy", description="Nazwa usługi w /health")

    # Autoryzacja wywołującego
    proxy_secret: Optional[SecretStr] = Field(
        default=None,
        description="Wspólny sekret w nagłówku X-Proxy-Secret (brak = bramka otwarta)",
    )

    # Ograniczenia żądań
    cors_origins: list[str] = Field(default=["*"], description="Dozwolone originy CORS")
    max_request_bytes: int = Field(default=5 * 1024 * 1024, description="Maksymalny rozmiar ciała żądania")

    # Połączenia z serwerami pocztowymi
    tls_verify: bool = Field(default=False, description="Weryfikacja certyfikatów TLS serwerów pocztowych")
    imap_timeout: Optional[float] = Field(default=30.0, description="Timeout gniazda IMAP w sekundach")
    smtp_timeout: float = Field(default=30.0, description="Timeout gniazda SMTP w sekundach")

    # Normalizacja wiadomości
    subject_placeholder: str = Field(default="(sans objet)", description="Temat dla wiadomości bez tematu")

    # Logowanie
    log_level: str = Field(default="INFO", description="Poziom logowania")
    log_format: str = Field(default="json", description="Format logów (json/text)")

    # Debug
    debug: bool = Field(default=False, description="Tryb debug")


def get_settings() -> Settings:
    """Zwraca instancję ustawień."""
    return Settings()

"""
Stronicowanie skrzynki po numerach sekwencyjnych.

Najnowsza wiadomość ma najwyższy numer, więc strona 0 to końcówka skrzynki.
"""
from dataclasses import dataclass
from typing import Any, Optional

from .errors import ConfigurationError


@dataclass(frozen=True)
class PageRange:
    """Domknięty zakres numerów sekwencyjnych (od 1)."""

    start: int
    end: int

    @property
    def sequence_set(self) -> str:
        return f"{self.start}:{self.end}"

    def __len__(self) -> int:
        return self.end - self.start + 1


def _require_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    return value


def validate_window(limit: Any, offset: Any) -> tuple[int, int]:
    """Sprawdza limit i offset; nie przycina niepoprawnych wartości."""
    limit = _require_int("limit", limit)
    offset = _require_int("offset", offset)
    if limit < 1:
        raise ConfigurationError(f"limit must be positive, got {limit}")
    if offset < 0:
        raise ConfigurationError(f"offset must not be negative, got {offset}")
    return limit, offset


def compute_range(total: int, limit: Any, offset: Any) -> Optional[PageRange]:
    """
    Wyznacza zakres do pobrania dla strony (limit, offset).

    Zwraca None dla pustej skrzynki - wtedy nie wykonuje się FETCH.
    Offset większy niż liczba wiadomości zwija okno do wiadomości 1.
    """
    limit, offset = validate_window(limit, offset)
    if total <= 0:
        return None

    end = max(1, total - offset)
    start = max(1, total - offset - limit + 1)
    return PageRange(start=start, end=end)

from __future__ import annotations

from typing import Any


def _parse_int(value: Any, *, name: str, default: int, minimum: int, maximum: int) -> int:
    """Coerce an env string to int within ``[minimum, maximum]``; blanks take ``default``."""
    if value in (None, ""):
        return default
    try:
        parsed = int(str(value).strip())
    except ValueError as exc:
        msg = f"{name} must be a valid integer"
        raise ValueError(msg) from exc
    if parsed < minimum or parsed > maximum:
        msg = f"{name} must be between {minimum} and {maximum}"
        raise ValueError(msg)
    return parsed


def _parse_float(value: Any, *, name: str, default: float, minimum: float, maximum: float) -> float:
    if value in (None, ""):
        return default
    try:
        parsed = float(str(value).strip())
    except ValueError as exc:
        msg = f"{name} must be a valid number"
        raise ValueError(msg) from exc
    if parsed < minimum or parsed > maximum:
        msg = f"{name} must be between {minimum} and {maximum}"
        raise ValueError(msg)
    return parsed


def _parse_secret(value: Any, *, name: str) -> str:
    if value in (None, ""):
        return ""
    secret = str(value).strip()
    if len(secret) > 500:
        msg = f"{name} appears to be too long"
        raise ValueError(msg)
    if any(char in secret for char in (" ", "\n", "\t")):
        msg = f"{name} contains invalid characters"
        raise ValueError(msg)
    return secret


def _parse_csv(value: Any) -> tuple[str, ...]:
    if value in (None, ""):
        return ()
    pieces = value if isinstance(value, list | tuple) else str(value).split(",")
    return tuple(piece.strip() for piece in map(str, pieces) if piece.strip())

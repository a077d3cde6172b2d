"""Request-scoped accessors and the bearer-token guards."""

from __future__ import annotations

import hmac

from fastapi import Depends, Request

from bookmarks_sync.api.exceptions import AuthenticationError, ConfigurationError
from bookmarks_sync.bookmarks.service import BookmarksService
from bookmarks_sync.config import AppConfig
from bookmarks_sync.core.logging_utils import get_logger
from bookmarks_sync.di.container import BookmarksContainer
from bookmarks_sync.security.rate_limiter import RateLimiter

logger = get_logger(__name__)


def get_container(request: Request) -> BookmarksContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        msg = "Bookmarks service is not initialised"
        raise ConfigurationError(msg)
    return container


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_service(container: BookmarksContainer = Depends(get_container)) -> BookmarksService:
    return container.service


def get_rate_limiter(container: BookmarksContainer = Depends(get_container)) -> RateLimiter:
    return container.rate_limiter


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def tokens_match(provided: str | None, expected: str) -> bool:
    """Constant-time comparison; an empty expected value never matches."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def require_admin(request: Request, cfg: AppConfig = Depends(get_config)) -> None:
    expected = cfg.api.admin_api_key
    if not expected:
        logger.error("admin_api_key_not_configured", extra={"path": request.url.path})
        msg = "Admin API key is not configured"
        raise ConfigurationError(msg, config_key="ADMIN_API_KEY")
    if not tokens_match(bearer_token(request), expected):
        logger.warning(
            "admin_auth_failed",
            extra={"path": request.url.path, "client": client_ip(request)},
        )
        msg = "Invalid or missing admin token"
        raise AuthenticationError(msg)

"""Admin key guard for the rate-limit administration routes.

Keys are validated against a comma-separated list from the environment
(``APP_ADMIN_API_KEYS``). End-user authentication is owned by the upstream
web layer; it only hands the engine a ``request.state.user_id``.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header, HTTPException, status

from gatekeeper.core.config import settings
from gatekeeper.core.errors import AuthenticationAppError
from gatekeeper.core.logging import hash_identifier

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_admin_key(provided_key: str) -> None:
    """Validate an admin key against the configured keys.

    Args:
        provided_key: Value of the X-Admin-Key header.

    Raises:
        AuthenticationAppError: If the key is invalid, or admin auth is
            required but no keys are configured.
    """
    if not settings.app.admin_api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.admin_api_keys)

    if not valid_keys:
        logger.error(
            "admin_key_validation_failed",
            extra={"reason": "admin_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="admin_keys_not_configured",
            message="Admin authentication is enabled but no admin keys are configured",
            details={
                "hint": "Set APP_ADMIN_API_KEYS or disable with APP_ADMIN_API_KEY_REQUIRED=false"
            },
        )

    if provided_key not in valid_keys:
        logger.warning(
            "admin_key_validation_failed",
            extra={"reason": "invalid_admin_key", "admin_key_hash": hash_identifier(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_admin_key",
            message="Invalid or missing admin key",
        )


async def verify_admin_key(
    x_admin_key: Annotated[str | None, Header(alias="X-Admin-Key")] = None,
) -> None:
    """FastAPI dependency guarding admin routes.

    Raises:
        HTTPException: 403 Forbidden if the admin key is missing or invalid.
    """
    if not settings.app.admin_api_key_required:
        logger.debug("admin_auth.skipped", extra={"reason": "admin_key_required_false"})
        return

    if not x_admin_key:
        logger.warning("admin_auth.missing_key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing admin key. Provide X-Admin-Key header.",
        )

    try:
        validate_admin_key(x_admin_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.info("admin_auth.success", extra={"admin_key_hash": hash_identifier(x_admin_key)})

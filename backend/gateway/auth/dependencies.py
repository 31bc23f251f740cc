"""
FastAPI dependencies for caller identity.

Sessions are owned by the upstream auth service; by the time a request
reaches the gateway it carries the authenticated user id in a trusted
header. These dependencies only read it.
"""

from typing import Annotated

from fastapi import Depends, Request

from gateway.core import UnauthorizedError, user_id_ctx

USER_ID_HEADER = "X-User-ID"


def get_current_user_id(request: Request) -> str | None:
    """
    Extract the authenticated user id, if any.

    Args:
        request: FastAPI request object.

    Returns:
        User id if present, None otherwise.
    """
    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    return user_id or None


async def require_user(request: Request) -> str:
    """
    Require an authenticated caller - raises if absent.

    Args:
        request: FastAPI request object.

    Returns:
        The caller's user id.

    Raises:
        UnauthorizedError: If the identity header is missing.
    """
    user_id = get_current_user_id(request)
    if not user_id:
        raise UnauthorizedError("Authentication required")
    user_id_ctx.set(user_id)
    return user_id


# Type alias for cleaner dependency injection
RequireUser = Annotated[str, Depends(require_user)]

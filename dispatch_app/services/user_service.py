from typing import Any, Mapping, Optional

import aiohttp

from dispatch_app.core.config import settings
from dispatch_app.core.errors import BackendError
from dispatch_app.core.logger import get_logger

logger = get_logger("user_service")


def has_permission(user: Optional[Mapping[str, Any]], action: str) -> bool:
    """True when any of the user's roles grants the action."""
    if not user or not user.get("roles"):
        return False
    granted = set()
    for user_role in user["roles"]:
        role = (user_role or {}).get("role") or {}
        granted.update(role.get("permissions") or [])
    return action in granted


async def get_current_user(token: Optional[str]) -> Optional[dict]:
    """
    Fetch the operator profile (with roles and permissions) behind a token.
    Returns None for a missing or rejected token.
    """
    if not token:
        return None

    url = f"{settings.BACKEND_BASE_URL.rstrip('/')}/users/me"
    headers = {"Authorization": f"Bearer {token}"}

    try:
        async with aiohttp.ClientSession(headers=headers) as session:
            async with session.get(url) as resp:
                if resp.status in (401, 403):
                    logger.warning(f"Token rejected by backend ({resp.status})")
                    return None
                if resp.status >= 400:
                    text = await resp.text()
                    logger.error(f"User lookup failed: {resp.status} {text}")
                    raise BackendError("User lookup failed", upstream_status=resp.status, detail=text)
                return await resp.json()
    except aiohttp.ClientError as e:
        logger.error(f"User lookup unreachable: {e}")
        raise BackendError(f"Backend unreachable: {e}") from e

import os
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from voicesched.utils.config import AUTH_API_KEY, AUTH_API_URL, AUTH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# Optional allow-list on top of the auth provider
# Example: WHITELISTED_USERS=uuid-1,uuid-2
WHITELISTED_USERS = os.getenv("WHITELISTED_USERS", "").split(",")


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: Optional[str] = None


def is_authorized(user_id: str) -> bool:
    """Checks if a user id is allowed to use voice commands."""
    if not WHITELISTED_USERS or WHITELISTED_USERS == [""]:
        # If not set, every authenticated user is allowed
        return True
    return str(user_id) in WHITELISTED_USERS


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


async def resolve_user(authorization: Optional[str]) -> Optional[AuthenticatedUser]:
    """
    Resolve the caller from an ``Authorization: Bearer <token>`` header.

    The token is checked against the auth provider's user endpoint.
    Returns None when the header is missing, the provider rejects the
    token, or the provider cannot be reached.
    """
    token = parse_bearer(authorization)
    if not token:
        return None
    if not AUTH_API_URL:
        logger.error("AUTH_API_URL not configured")
        return None

    headers = {"Authorization": f"Bearer {token}"}
    if AUTH_API_KEY:
        headers["apikey"] = AUTH_API_KEY

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.get(
                f"{AUTH_API_URL.rstrip('/')}/user",
                headers=headers,
                timeout=AUTH_TIMEOUT_SECONDS,
            )
    except httpx.HTTPError as e:
        logger.warning(f"Auth provider unreachable: {e}")
        return None

    if resp.status_code != 200:
        logger.info(f"Auth provider rejected token: {resp.status_code}")
        return None

    try:
        data = resp.json()
    except ValueError:
        logger.warning("Auth provider returned a non-JSON body")
        return None
    if not isinstance(data, dict):
        return None

    user_id = data.get("id")
    if not user_id:
        return None
    return AuthenticatedUser(id=str(user_id), email=data.get("email"))

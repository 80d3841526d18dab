import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import AUTH_DISABLED, SUPABASE_SERVICE_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class StaffIdentity:
    """The staff member acting on the console"""

    id: str
    email: Optional[str]
    access_token: Optional[str] = None


DEV_STAFF = StaffIdentity(id="dev-staff", email="dev@localhost")


async def fetch_identity(token: str) -> dict:
    """Resolve a session token with the identity provider (Supabase Auth)"""
    if not SUPABASE_URL:
        logger.error("❌ SUPABASE_URL not configured")
        raise HTTPException(status_code=500, detail="Identity provider not configured")

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(
                f"{SUPABASE_URL.rstrip('/')}/auth/v1/user",
                headers={
                    "apikey": SUPABASE_SERVICE_KEY or "",
                    "Authorization": f"Bearer {token}",
                },
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Identity provider unreachable: {str(e)}")
        raise HTTPException(status_code=503, detail="Identity provider unavailable") from e

    if response.status_code != 200:
        logger.warning(f"⚠️ Token rejected by identity provider: HTTP {response.status_code}")
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return response.json()


async def get_current_staff(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> StaffIdentity:
    """Get the acting staff member from the session bearer token"""
    if AUTH_DISABLED:
        return DEV_STAFF

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials
    user = await fetch_identity(token)
    user_id = user.get("id")
    if not user_id:
        logger.error(f"❌ Identity response missing user id. Keys: {list(user.keys())}")
        raise HTTPException(status_code=401, detail="Invalid session")

    logger.debug(f"✅ Staff authenticated: {user.get('email')}")
    return StaffIdentity(id=user_id, email=user.get("email"), access_token=token)

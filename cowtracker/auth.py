from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel.ext.asyncio.session import AsyncSession
from typing_extensions import Annotated

from cowtracker.core.config import get_settings
from cowtracker.core.errors import Unauthorized, Upstream
from cowtracker.database import get_db
from cowtracker.models import Role, User
from cowtracker.services.user_service import UserService

import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


class IdentityClient:
    """Validates bearer tokens against the identity provider's user endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def get_user(self, token: str) -> Optional[dict]:
        """Return the identity record for ``token``, or None if it is rejected."""
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Identity provider unreachable: {e}")
            raise Upstream("Could not verify the caller's identity") from e

        if response.status_code in (401, 403):
            return None
        if response.status_code != 200:
            logger.error(f"Identity provider returned HTTP {response.status_code}")
            raise Upstream("Could not verify the caller's identity")

        identity = response.json()
        if not identity or not identity.get("id"):
            return None
        return identity


@lru_cache
def get_identity_client() -> IdentityClient:
    settings = get_settings()
    return IdentityClient(settings.auth_url, settings.auth_api_key)


@dataclass
class CurrentUser:
    uid: str
    email: Optional[str] = None
    role: str = "user"
    user: Optional[User] = None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity_client: IdentityClient = Depends(get_identity_client),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Authentication token required")

    identity = await identity_client.get_user(credentials.credentials)
    if identity is None:
        raise Unauthorized("Invalid or expired token")

    user = await UserService.get_by_auth_id(identity["id"], db)
    role = "user"
    if user is not None and user.id_rol is not None:
        rol = await db.get(Role, user.id_rol)
        if rol is not None:
            role = rol.descripcion

    return CurrentUser(uid=identity["id"], email=identity.get("email"), role=role, user=user)


CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]

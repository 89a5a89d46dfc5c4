"""
Binding codes: short-lived invitation codes that attach a worker or a
veterinarian to a farm.

Codes live only in process memory. A restart invalidates every outstanding
code, and the manager must run as a single instance. Expiry is checked
lazily on every access; a periodic sweep task drops codes nobody touches.

Lifecycle of a code::

    Active --redeem--> Reserved --link ok--> Redeemed
                          |
                          +--link/role failure--> Active
    Active --expiry--> Expired
    Active --revoke--> Revoked
    Reserved --revoke--> Conflict, stays Reserved
"""

import asyncio
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from cowtracker.cache.decorators import FARMS, USER, invalidates
from cowtracker.core.config import Settings
from cowtracker.core.errors import Conflict, Forbidden, InvalidArgument, NotFound
from cowtracker.services.farm_service import FarmService
from cowtracker.services.membership_service import MembershipService
from cowtracker.services.user_service import UserService

import logging

logger = logging.getLogger(__name__)

CODE_LENGTH = 6
DEFAULT_DURATION_MINUTES = 60

_ROLE_ALIASES = {
    "trabajador": "worker",
    "veterinario": "veterinarian",
}


class RoleType(str, Enum):
    WORKER = "worker"
    VETERINARIAN = "veterinarian"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            normalized = _ROLE_ALIASES.get(normalized, normalized)
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @classmethod
    def parse(cls, value) -> "RoleType":
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgument(
                "Invalid role type. Must be one of: worker (trabajador) "
                "or veterinarian (veterinario)"
            ) from None


def generate_code() -> str:
    """Three random bytes as six uppercase hex characters."""
    return secrets.token_bytes(3).hex().upper()[:CODE_LENGTH].rjust(CODE_LENGTH, "0")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BindingCode:
    code: str
    farm_id: int
    role_type: RoleType
    created_at: datetime
    expires_at: datetime
    reserved: bool = False

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class BindingCodeManager:
    """
    In-memory store of binding codes.

    Created once at startup (see ``cowtracker.main``) and handed to the
    ``/vincular`` routes as a dependency. ``clock`` and ``code_factory`` are
    injectable for deterministic tests.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = _utc_now,
        code_factory: Callable[[], str] = generate_code,
        max_attempts: int = 100,
        worker_role_id: int = 2,
        veterinarian_role_id: int = 3,
    ):
        self._codes: dict[str, BindingCode] = {}
        self._clock = clock
        self._code_factory = code_factory
        self.max_attempts = max_attempts
        self._role_ids = {
            RoleType.WORKER: worker_role_id,
            RoleType.VETERINARIAN: veterinarian_role_id,
        }
        self._sweeper: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "BindingCodeManager":
        return cls(
            max_attempts=settings.binding_code_max_attempts,
            worker_role_id=settings.worker_role_id,
            veterinarian_role_id=settings.veterinarian_role_id,
        )

    def __len__(self) -> int:
        return len(self._codes)

    def _live(self, code: str) -> Optional[BindingCode]:
        """Return the code if present and unexpired; drop it if expired."""
        entry = self._codes.get(code)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._codes[code]
            logger.info(f"Binding code {code} expired and removed")
            return None
        return entry

    def _new_code(self) -> str:
        for _ in range(self.max_attempts):
            code = self._code_factory()
            if self._live(code) is None:
                return code
        raise Conflict("Could not generate a unique binding code, try again")

    async def issue(
        self,
        farm_id: int,
        role_type,
        duration_minutes: int = DEFAULT_DURATION_MINUTES,
        *,
        db: AsyncSession,
    ) -> BindingCode:
        role = RoleType.parse(role_type)
        if (
            isinstance(duration_minutes, bool)
            or not isinstance(duration_minutes, int)
            or duration_minutes <= 0
        ):
            raise InvalidArgument("duracionMinutos must be a positive integer")

        farm = await FarmService.get_farm(farm_id, db)
        if farm is None:
            raise NotFound(f"Farm with id {farm_id} does not exist")

        # no await between generation and insertion: uniqueness holds
        code = self._new_code()
        now = self._clock()
        entry = BindingCode(
            code=code,
            farm_id=farm_id,
            role_type=role,
            created_at=now,
            expires_at=now + timedelta(minutes=duration_minutes),
        )
        self._codes[code] = entry
        logger.info(
            f"Binding code {code} issued for farm {farm_id} ({role.value}), "
            f"expires {entry.expires_at.isoformat()}"
        )
        return entry

    def _reserve(self, code: str) -> BindingCode:
        entry = self._live(code)
        if entry is None or entry.reserved:
            raise NotFound("Binding code is invalid or expired")
        entry.reserved = True
        return entry

    @invalidates(FARMS, USER)
    async def redeem(self, code: str, auth_user_id: str, *, db: AsyncSession) -> dict:
        """
        Link the caller to the code's farm if their role matches.

        The code is reserved before the first await so a concurrent
        redemption of the same code fails with NotFound. It is deleted
        only once the membership row exists; any failure releases it.
        """
        code = (code or "").strip().upper()
        entry = self._reserve(code)
        try:
            user = await UserService.get_by_auth_id(auth_user_id, db)
            if user is None:
                raise NotFound("User not found")

            if user.id_rol != self._role_ids[entry.role_type]:
                raise Forbidden(
                    f"User does not hold the {entry.role_type.value} role "
                    "required by this binding code"
                )

            membership = await MembershipService.link(user.id_usuario, entry.farm_id, db)
        except BaseException:
            entry.reserved = False
            logger.warning(f"Redemption of binding code {code} failed, code released")
            raise

        if self._codes.get(code) is entry:
            del self._codes[code]
        logger.info(f"Binding code {code} redeemed by user {user.id_usuario}")

        return {
            "user_id": user.id_usuario,
            "farm_id": entry.farm_id,
            "role_type": entry.role_type,
            "membership": membership,
        }

    def list_active(self, farm_id: int) -> list[BindingCode]:
        now = self._clock()
        active = [
            entry
            for entry in self._codes.values()
            if entry.farm_id == farm_id and not entry.is_expired(now)
        ]
        return sorted(active, key=lambda entry: entry.created_at)

    def revoke(self, code: str, farm_id: int) -> bool:
        """
        Delete an active code belonging to ``farm_id``.

        A code whose redemption is in flight cannot be revoked; that raises
        Conflict and the redemption decides its fate.
        """
        code = (code or "").strip().upper()
        entry = self._live(code)
        if entry is None or entry.farm_id != farm_id:
            return False
        if entry.reserved:
            raise Conflict("Binding code is being redeemed and cannot be revoked")
        del self._codes[code]
        logger.info(f"Binding code {code} revoked for farm {farm_id}")
        return True

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [code for code, entry in self._codes.items() if entry.is_expired(now)]
        for code in expired:
            del self._codes[code]
        if expired:
            logger.info(f"Purged {len(expired)} expired binding codes")
        return len(expired)

    async def _sweep(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            self.purge_expired()

    def start_sweeper(self, interval: float) -> asyncio.Task:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep(interval))
        return self._sweeper

    async def stop_sweeper(self):
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

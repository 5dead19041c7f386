"""
Ultra Roadmap Sync - Identity Provider
======================================

Admin-level user identity API: create identities, rotate credentials,
ban and unban. Calls are authorized by the service role key.

Creating an identity also runs the profile trigger: a shell profile bound to
the new identity is inserted in the same transaction, the way the hosted
auth schema does it.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import structlog
from passlib.hash import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roadmap_sync.core.database import session_scope
from roadmap_sync.core.exceptions import IdentityProviderError
from roadmap_sync.core.models import AuthUser, Profile, ProfileRole

logger = structlog.get_logger()

BAN_DURATION_PATTERN = re.compile(r"^(\d+)(h|m|s)$")
BAN_UNITS = {"h": "hours", "m": "minutes", "s": "seconds"}

# Block duration used for account blocking (~100 years)
PERMANENT_BAN = "876000h"
NO_BAN = "none"


def parse_ban_duration(value: str) -> Optional[timedelta]:
    """Parse ``"876000h"``-style durations; ``"none"`` lifts the ban."""
    if value == NO_BAN:
        return None
    match = BAN_DURATION_PATTERN.match(value)
    if not match:
        raise IdentityProviderError(f"Invalid ban duration: {value}", status=400)
    amount, unit = match.groups()
    return timedelta(**{BAN_UNITS[unit]: int(amount)})


class IdentityAdmin:
    """Admin identity API backed by the ``auth_users`` table."""

    # Admin keys are long; short or anon-shaped keys lack admin rights
    MIN_ADMIN_KEY_LENGTH = 100
    ANON_KEY_PREFIX = "eyJ"
    ANON_KEY_MAX_LENGTH = 200

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        service_key: Optional[str],
        password_rounds: int = 12,
        profile_trigger: bool = True,
    ):
        self._session_factory = session_factory
        self.service_key = (service_key or "").strip()
        self.profile_trigger = profile_trigger
        self._hasher = bcrypt.using(rounds=password_rounds)

    @property
    def configured(self) -> bool:
        return bool(self.service_key)

    def _authorize(self) -> None:
        key = self.service_key
        anon_shaped = key.startswith(self.ANON_KEY_PREFIX) and len(key) < self.ANON_KEY_MAX_LENGTH
        if len(key) < self.MIN_ADMIN_KEY_LENGTH or anon_shaped:
            raise IdentityProviderError("Invalid API key: admin rights required", status=401)

    # ======================================================================
    # Admin API
    # ======================================================================

    async def create_user(self, email: str, password: str, email_confirm: bool = True) -> AuthUser:
        """
        Create an identity for ``email``.

        Raises:
            IdentityProviderError: 401 without admin rights, 422 when the
                email is already registered
        """
        self._authorize()
        email = email.strip().lower()

        async with session_scope(self._session_factory) as session:
            existing = await session.execute(select(AuthUser.id).where(AuthUser.email == email))
            if existing.scalar_one_or_none() is not None:
                raise IdentityProviderError(
                    "A user with this email address has already been registered",
                    status=422,
                )

            user = AuthUser(
                email=email,
                password_hash=self._hasher.hash(password),
                email_confirmed_at=datetime.now(timezone.utc) if email_confirm else None,
            )
            session.add(user)
            await session.flush()

            if self.profile_trigger:
                await self._create_shell_profile(session, user)

        logger.info("identity_created", user_id=str(user.id))
        return user

    async def update_user(
        self,
        user_id: UUID,
        password: Optional[str] = None,
        ban_duration: Optional[str] = None,
    ) -> AuthUser:
        """Rotate the credential and/or change the ban of an identity."""
        self._authorize()

        async with session_scope(self._session_factory) as session:
            user = await session.get(AuthUser, user_id)
            if user is None:
                raise IdentityProviderError("User not found", status=404)

            if password is not None:
                user.password_hash = self._hasher.hash(password)
            if ban_duration is not None:
                duration = parse_ban_duration(ban_duration)
                user.banned_until = (
                    datetime.now(timezone.utc) + duration if duration is not None else None
                )

        logger.info(
            "identity_updated",
            user_id=str(user_id),
            password_rotated=password is not None,
            ban_duration=ban_duration,
        )
        return user

    async def get_user(self, user_id: UUID) -> Optional[AuthUser]:
        self._authorize()
        async with session_scope(self._session_factory) as session:
            return await session.get(AuthUser, user_id)

    async def verify_password(self, email: str, password: str) -> bool:
        """Check a sign-in attempt. Banned identities never verify."""
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(AuthUser).where(AuthUser.email == email.strip().lower())
            )
            user = result.scalar_one_or_none()

        if user is None:
            return False
        if user.banned_until is not None:
            banned_until = user.banned_until
            if banned_until.tzinfo is None:
                banned_until = banned_until.replace(tzinfo=timezone.utc)
            if banned_until > datetime.now(timezone.utc):
                return False
        return self._hasher.verify(password, user.password_hash)

    # ======================================================================
    # Trigger
    # ======================================================================

    @staticmethod
    async def _create_shell_profile(session: AsyncSession, user: AuthUser) -> None:
        result = await session.execute(select(Profile.id).where(Profile.email == user.email))
        if result.scalar_one_or_none() is not None:
            return
        session.add(Profile(user_id=user.id, email=user.email, role=ProfileRole.USER))
        await session.flush()

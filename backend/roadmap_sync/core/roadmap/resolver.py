"""
Identity Resolver
=================

Finds the coach and client profiles a roadmap refers to, by id first and
email second. Unknown clients are provisioned: an identity with a generated
password, then a profile bound to it.
"""

import asyncio
import secrets
import string
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from roadmap_sync.core.config import Settings, settings
from roadmap_sync.core.exceptions import (
    AuthProvisioningError,
    ConfigurationError,
    CredentialConfigurationError,
    IdentityProviderError,
    ProfileCreationError,
    StoreError,
)
from roadmap_sync.core.identity import IdentityAdmin
from roadmap_sync.core.models import Profile, ProfileRole
from roadmap_sync.core.roadmap.normalizer import ClientIdentity, CoachIdentity
from roadmap_sync.core.schemas import RoadmapHeader
from roadmap_sync.core.store import Store

logger = structlog.get_logger()

MIN_SERVICE_KEY_LENGTH = 20
PASSWORD_SYMBOLS = "!@#$%&*?"


# ==========================================================================
# Passwords
# ==========================================================================

@dataclass
class PasswordPolicy:
    """Shape of generated client passwords."""
    length: int = 16
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_symbol: bool = True

    @classmethod
    def from_settings(cls, config: Settings) -> "PasswordPolicy":
        return cls(
            length=config.GENERATED_PASSWORD_LENGTH,
            require_uppercase=config.PASSWORD_REQUIRE_UPPERCASE,
            require_lowercase=config.PASSWORD_REQUIRE_LOWERCASE,
            require_digit=config.PASSWORD_REQUIRE_DIGIT,
            require_symbol=config.PASSWORD_REQUIRE_SYMBOL,
        )


def generate_password(
    length: Optional[int] = None,
    require_uppercase: Optional[bool] = None,
    require_lowercase: Optional[bool] = None,
    require_digit: Optional[bool] = None,
    require_symbol: Optional[bool] = None,
    policy: Optional[PasswordPolicy] = None,
) -> str:
    """
    Random password drawn from ``secrets``.

    Contains at least one character of every required class; unset
    arguments follow ``policy``, or the configured policy when omitted.
    """
    policy = policy or PasswordPolicy.from_settings(settings)
    length = length or policy.length
    requirements = {
        string.ascii_uppercase: policy.require_uppercase if require_uppercase is None else require_uppercase,
        string.ascii_lowercase: policy.require_lowercase if require_lowercase is None else require_lowercase,
        string.digits: policy.require_digit if require_digit is None else require_digit,
        PASSWORD_SYMBOLS: policy.require_symbol if require_symbol is None else require_symbol,
    }
    required = [chars for chars, wanted in requirements.items() if wanted]
    alphabet = "".join(required) or string.ascii_letters + string.digits
    length = max(length, len(required))

    chars = [secrets.choice(group) for group in required]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def as_uuid(value: Any) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def profile_changes(client: ClientIdentity, header: RoadmapHeader) -> dict[str, Any]:
    """Sparse profile update: only fields the roadmap actually carries."""
    candidates = {
        "full_name": client.client_name,
        "phone": client.client_phone,
        "company": header.company_name,
        "location": header.address,
    }
    return {field: value for field, value in candidates.items() if value}


@dataclass
class ClientAccount:
    """A resolved client and the credential issued for this ingestion."""
    profile_id: UUID
    email: str
    password: str
    is_new: bool


# ==========================================================================
# Resolver
# ==========================================================================

class IdentityResolver:
    """Resolves and provisions coach/client profiles."""

    def __init__(
        self,
        store: Store,
        identity: IdentityAdmin,
        profile_settle_delay: Optional[float] = None,
        password_policy: Optional[PasswordPolicy] = None,
    ):
        self.store = store
        self.identity = identity
        self.profile_settle_delay = (
            settings.PROFILE_TRIGGER_DELAY_SECONDS
            if profile_settle_delay is None
            else profile_settle_delay
        )
        self.password_policy = password_policy or PasswordPolicy.from_settings(settings)

    # ======================================================================
    # Coach
    # ======================================================================

    async def resolve_coach(self, coach: CoachIdentity) -> Optional[Profile]:
        """
        Coach profile by email, then by id. Only profiles with the coach
        role qualify; ``None`` when nothing matches.
        """
        if coach.coach_email:
            profile = await self.store.first(Profile, email=coach.coach_email)
            if profile is not None and profile.role == ProfileRole.COACH:
                logger.info("coach_resolved", coach_id=str(profile.id), by="email")
                return profile
            if profile is not None:
                logger.warning("coach_role_mismatch", email=coach.coach_email, role=profile.role.value)
            else:
                logger.warning("coach_not_found", email=coach.coach_email)

        coach_id = as_uuid(coach.coach_id)
        if coach_id is not None:
            profile = await self.store.first(Profile, id=coach_id)
            if profile is not None and profile.role == ProfileRole.COACH:
                logger.info("coach_resolved", coach_id=str(profile.id), by="id")
                return profile
            logger.warning("coach_not_found", coach_id=str(coach_id))

        return None

    # ======================================================================
    # Client lookup
    # ======================================================================

    async def find_client(self, client_id: Any, email: Optional[str]) -> Optional[Profile]:
        """Client profile by id, then by email."""
        profile_id = as_uuid(client_id)
        if profile_id is not None:
            profile = await self.store.first(Profile, id=profile_id)
            if profile is not None:
                return profile
        return await self.find_client_by_email(email)

    async def find_client_by_email(self, email: Optional[str]) -> Optional[Profile]:
        if not email:
            return None
        return await self.store.first(Profile, email=email.strip().lower())

    # ======================================================================
    # Client provisioning
    # ======================================================================

    async def provision_client(self, client: ClientIdentity, header: RoadmapHeader) -> ClientAccount:
        """
        Create the identity and profile of a new client.

        Raises:
            ConfigurationError: the service key is missing or malformed
            CredentialConfigurationError: the identity provider refused the key
            AuthProvisioningError: the identity could not be created
            ProfileCreationError: the profile could not be written
        """
        if len(self.identity.service_key) < MIN_SERVICE_KEY_LENGTH:
            raise ConfigurationError(
                "Server configuration error: SERVICE_ROLE_KEY is invalid or missing",
                details="Use the service role key, not the anonymous key",
            )

        password = generate_password(policy=self.password_policy)
        logger.info("client_provisioning", email=client.client_email)

        try:
            user = await self.identity.create_user(client.client_email, password, email_confirm=True)
        except IdentityProviderError as e:
            logger.error("identity_creation_failed", email=client.client_email, **e.as_details())
            if e.status == 401:
                raise CredentialConfigurationError() from e
            raise AuthProvisioningError(details=e.as_details()) from e
        except SQLAlchemyError as e:
            logger.error("identity_creation_failed", email=client.client_email, error=str(e))
            raise AuthProvisioningError(details={"message": str(e)}) from e

        # Let the shell-profile trigger settle before writing the profile
        if self.profile_settle_delay > 0:
            await asyncio.sleep(self.profile_settle_delay)

        row = {
            "user_id": user.id,
            "email": client.client_email,
            "full_name": client.client_name,
            "phone": client.client_phone,
            "company": header.company_name,
            "location": header.address,
            "role": ProfileRole.USER,
            "category": 1,
        }
        try:
            await self.store.upsert(Profile, [row], conflict=("user_id",))
            profile = await self.store.first(Profile, user_id=user.id)
        except StoreError as e:
            logger.error("profile_creation_failed", email=client.client_email, error=str(e))
            raise ProfileCreationError(details=str(e)) from e
        if profile is None:
            raise ProfileCreationError(details="Profile missing after upsert")

        logger.info("client_provisioned", profile_id=str(profile.id), user_id=str(user.id))
        return ClientAccount(profile_id=profile.id, email=profile.email, password=password, is_new=True)

    async def refresh_client(
        self,
        profile: Profile,
        client: ClientIdentity,
        header: RoadmapHeader,
    ) -> ClientAccount:
        """
        Reuse an existing client: rotate its password and apply the sparse
        profile update. Failures of either step are logged only.
        """
        password = generate_password(policy=self.password_policy)

        async def rotate() -> None:
            if profile.user_id is None:
                return
            try:
                await self.identity.update_user(profile.user_id, password=password)
            except IdentityProviderError as e:
                logger.error("password_rotation_failed", profile_id=str(profile.id), **e.as_details())

        await asyncio.gather(rotate(), self.update_client_profile(profile.id, client, header))
        logger.info("client_reused", profile_id=str(profile.id))
        return ClientAccount(profile_id=profile.id, email=profile.email, password=password, is_new=False)

    async def update_client_profile(
        self,
        profile_id: UUID,
        client: ClientIdentity,
        header: RoadmapHeader,
    ) -> dict[str, Any]:
        changes = profile_changes(client, header)
        if not changes:
            return changes
        try:
            await self.store.update(Profile, changes, id=profile_id)
        except StoreError as e:
            logger.error("profile_update_failed", profile_id=str(profile_id), error=str(e))
            return {}
        logger.info("profile_updated", profile_id=str(profile_id), fields=sorted(changes))
        return changes

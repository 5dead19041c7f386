"""
Roadmap Service
===============

Entry points of the ingestion pipeline, one per API operation:

- ``add_roadmap``: create or reuse the client, then write the roadmap into
  the active cycle of the coach/client pair
- ``update_roadmap``: rewrite the roadmap of the client's active cycle
- ``new_cycle_roadmap``: open a new cycle for an existing pair
- ``block_user``: block or unblock an account

Identity and cycle errors abort the operation. Content writes are best
effort (see ``RoadmapSynchronizer``).
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roadmap_sync.core.config import Settings, settings
from roadmap_sync.core.exceptions import (
    AccountUpdateError,
    ClientNotFoundError,
    ConfigurationError,
    IdentityProviderError,
    InvalidFormatError,
    NotFoundError,
    StoreError,
)
from roadmap_sync.core.identity import NO_BAN, PERMANENT_BAN, IdentityAdmin
from roadmap_sync.core.models import Profile
from roadmap_sync.core.roadmap.cycles import CycleManager, resolve_start_date
from roadmap_sync.core.roadmap.normalizer import normalize_payload
from roadmap_sync.core.roadmap.notifications import CredentialMailer, CredentialNotice
from roadmap_sync.core.roadmap.resolver import IdentityResolver, PasswordPolicy
from roadmap_sync.core.roadmap.synchronizer import RoadmapSynchronizer, SyncReport, SyncTarget
from roadmap_sync.core.roadmap.titles import WeekTitleGenerator
from roadmap_sync.core.schemas import (
    AddRoadmapResponse,
    BlockUserRequest,
    BlockUserResponse,
    NewCycleResponse,
    UpdateRoadmapResponse,
)
from roadmap_sync.core.store import Store

logger = structlog.get_logger()


@dataclass
class AddRoadmapResult:
    response: AddRoadmapResponse
    notice: CredentialNotice
    sync: Optional[SyncReport] = None


class RoadmapService:
    """Roadmap ingestion and account operations."""

    def __init__(
        self,
        store: Store,
        identity: IdentityAdmin,
        resolver: IdentityResolver,
        cycles: CycleManager,
        synchronizer: RoadmapSynchronizer,
        mailer: CredentialMailer,
    ):
        self.store = store
        self.identity = identity
        self.resolver = resolver
        self.cycles = cycles
        self.synchronizer = synchronizer
        self.mailer = mailer

    def _ensure_configured(self) -> None:
        if not self.identity.configured:
            logger.error("service_role_key_missing")
            raise ConfigurationError()

    # ======================================================================
    # Ingestion
    # ======================================================================

    async def add_roadmap(self, body: Any) -> AddRoadmapResult:
        """
        Create-or-reuse ingestion.

        The client is provisioned when unknown, or gets a rotated password
        when known. Without a resolvable coach no cycle is opened and no
        content is written.
        """
        self._ensure_configured()
        roadmap = normalize_payload(body)
        client = roadmap.client
        header = roadmap.content.header

        if not client.client_name:
            raise InvalidFormatError("client_name or company_name is required")
        if not client.client_email:
            raise InvalidFormatError("client_email is required")

        coach, existing = await asyncio.gather(
            self.resolver.resolve_coach(roadmap.coach),
            self.resolver.find_client(client.client_id, client.client_email),
        )

        if existing is None:
            account = await self.resolver.provision_client(client, header)
        else:
            account = await self.resolver.refresh_client(existing, client, header)

        coach_client_id = None
        report = None
        if coach is not None:
            start_date = resolve_start_date(roadmap.metadata.start_date)
            engagement = await self.cycles.ensure_active(coach.id, account.profile_id, start_date)
            coach_client_id = engagement.id
            report = await self.synchronizer.sync(
                SyncTarget(coach_client_id=engagement.id, client_id=account.profile_id, coach_id=coach.id),
                roadmap.content,
                concurrent=True,
            )
        elif roadmap.coach.coach_email:
            logger.warning("engagement_skipped", reason="coach_not_found", coach_email=roadmap.coach.coach_email)
        else:
            logger.warning("engagement_skipped", reason="no_coach")

        logger.info(
            "roadmap_added",
            client_profile_id=str(account.profile_id),
            coach_client_id=str(coach_client_id) if coach_client_id else None,
            new_client=account.is_new,
        )
        response = AddRoadmapResponse(
            message="Roadmap data imported successfully",
            coach_client_id=coach_client_id,
            client_profile_id=account.profile_id,
            client_id=account.profile_id,
            coach_id=coach.id if coach is not None else None,
            client_email=account.email,
            client_name=client.client_name,
            client_password=account.password,
            coach_email=roadmap.coach.coach_email,
            coach_name=roadmap.coach.coach_name,
        )
        notice = CredentialNotice(
            client_name=client.client_name,
            client_email=account.email,
            password=account.password,
            is_new_client=account.is_new,
        )
        return AddRoadmapResult(response=response, notice=notice, sync=report)

    async def update_roadmap(self, body: Any) -> UpdateRoadmapResponse:
        """Rewrite the roadmap of an existing client's active cycle."""
        self._ensure_configured()
        roadmap = normalize_payload(body)
        client = roadmap.client

        profile = await self.resolver.find_client_by_email(client.client_email)
        if profile is None:
            raise ClientNotFoundError(
                details="No client matches the provided client_email. Use /add-roadmap to create a new client."
            )

        engagement = await self.cycles.find_active_for_client(profile.id)
        await self.resolver.update_client_profile(profile.id, client, roadmap.content.header)

        await self.synchronizer.sync(
            SyncTarget(coach_client_id=engagement.id, client_id=profile.id, coach_id=engagement.coach_id),
            roadmap.content,
        )

        logger.info("roadmap_updated", client_profile_id=str(profile.id), coach_client_id=str(engagement.id))
        return UpdateRoadmapResponse(
            message="Roadmap updated successfully",
            coach_client_id=engagement.id,
            client_profile_id=profile.id,
            client_id=profile.id,
            coach_id=engagement.coach_id,
        )

    async def new_cycle_roadmap(self, body: Any) -> NewCycleResponse:
        """Open a new cycle for an existing coach and client."""
        self._ensure_configured()
        roadmap = normalize_payload(body)
        client = roadmap.client

        if not client.client_email:
            raise InvalidFormatError("client_email is required")

        coach = await self.resolver.resolve_coach(roadmap.coach)
        if coach is None:
            raise InvalidFormatError("coach_email or coach_id is required to create a new cycle")

        profile = await self.resolver.find_client(client.client_id, client.client_email)
        if profile is None:
            raise ClientNotFoundError(details="Use /add-roadmap to create a new client first.")

        engagement = await self.cycles.open_cycle(
            coach.id,
            profile.id,
            resolve_start_date(roadmap.metadata.start_date),
            roadmap.metadata.cycle_number,
        )

        await self.synchronizer.sync(
            SyncTarget(coach_client_id=engagement.id, client_id=profile.id, coach_id=coach.id),
            roadmap.content,
        )

        logger.info(
            "cycle_roadmap_created",
            client_profile_id=str(profile.id),
            coach_client_id=str(engagement.id),
            cycle_number=engagement.cycle_number,
        )
        return NewCycleResponse(
            message=f"Cycle {engagement.cycle_number} roadmap created successfully",
            coach_client_id=engagement.id,
            client_profile_id=profile.id,
            client_id=profile.id,
            coach_id=coach.id,
            client_email=profile.email,
            client_name=client.client_name,
            cycle_number=engagement.cycle_number,
        )

    async def send_credentials(self, notice: CredentialNotice) -> bool:
        return await self.mailer.send_credentials(notice)

    # ======================================================================
    # Accounts
    # ======================================================================

    async def block_user(self, request: BlockUserRequest) -> BlockUserResponse:
        """
        Block (default) or unblock an account: flag the profile, then ban
        or unban its identity.
        """
        self._ensure_configured()
        email = (request.email or "").strip().lower()
        if not email:
            raise InvalidFormatError("email is required")
        should_block = request.blocked is not False

        profile = await self.store.first(Profile, email=email)
        if profile is None:
            raise NotFoundError("User not found")

        try:
            await self.store.update(
                Profile,
                {
                    "is_blocked": should_block,
                    "blocked_at": datetime.now(timezone.utc) if should_block else None,
                },
                id=profile.id,
            )
        except StoreError as e:
            # The identity ban below is what actually locks the account
            logger.error("profile_block_failed", profile_id=str(profile.id), error=str(e))

        if profile.user_id is not None:
            try:
                await self.identity.update_user(
                    profile.user_id,
                    ban_duration=PERMANENT_BAN if should_block else NO_BAN,
                )
            except IdentityProviderError as e:
                logger.error("identity_ban_failed", profile_id=str(profile.id), **e.as_details())
                raise AccountUpdateError(details=e.message) from e

        logger.info("user_block_changed", profile_id=str(profile.id), blocked=should_block)
        return BlockUserResponse(
            message="User blocked successfully" if should_block else "User unblocked successfully",
            user_id=profile.id,
            email=profile.email,
            blocked=should_block,
        )

    async def close(self) -> None:
        await self.synchronizer.titles.close()
        await self.mailer.close()


def create_roadmap_service(
    session_factory: async_sessionmaker[AsyncSession],
    config: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> RoadmapService:
    """
    Wire the pipeline once per process.

    ``http_client`` is shared by the completion and email clients; when
    omitted each builds its own.
    """
    config = config or settings
    store = Store(session_factory)
    identity = IdentityAdmin(
        session_factory,
        config.SERVICE_ROLE_KEY,
        password_rounds=config.PASSWORD_HASH_ROUNDS,
        profile_trigger=config.PROFILE_TRIGGER_ENABLED,
    )
    titles = WeekTitleGenerator(
        api_key=config.OPENAI_API_KEY,
        api_url=config.OPENAI_API_URL,
        model=config.OPENAI_MODEL,
        max_tokens=config.OPENAI_MAX_TOKENS,
        client=http_client,
        timeout=config.OUTBOUND_TIMEOUT_SECONDS,
    )
    mailer = CredentialMailer(
        api_key=config.RESEND_API_KEY,
        api_url=config.RESEND_API_URL,
        from_email=config.FROM_EMAIL,
        app_url=config.APP_URL,
        test_recipient=config.RESEND_TEST_EMAIL,
        client=http_client,
        timeout=config.OUTBOUND_TIMEOUT_SECONDS,
    )
    return RoadmapService(
        store=store,
        identity=identity,
        resolver=IdentityResolver(
            store,
            identity,
            profile_settle_delay=config.PROFILE_TRIGGER_DELAY_SECONDS if config.PROFILE_TRIGGER_ENABLED else 0,
            password_policy=PasswordPolicy.from_settings(config),
        ),
        cycles=CycleManager(store),
        synchronizer=RoadmapSynchronizer(store, titles),
        mailer=mailer,
    )

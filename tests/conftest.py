"""
Global pytest configuration and fixtures for entitlement tests.

Integration tests get a fresh file-based SQLite database under ``tmp_path``.
``NullPool`` gives every session its own connection so concurrent
reservations really contend on the counter row.
"""

import os
from collections.abc import AsyncIterator, Awaitable, Callable

import pytest
import pytest_asyncio

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("OBSERVABILITY__LOG_FORMAT", "console")
os.environ.setdefault("OBSERVABILITY__LOG_LEVEL", "WARNING")

from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from entitlements import repository  # noqa: E402
from entitlements.caching import SnapshotCache  # noqa: E402
from entitlements.db import create_all_tables_async  # noqa: E402
from entitlements.guard import Guard  # noqa: E402
from entitlements.models import SubscriptionState  # noqa: E402
from entitlements.permissions import PermissionEngine  # noqa: E402
from entitlements.quota import QuotaLedger  # noqa: E402
from entitlements.schema import (  # noqa: E402
    MembershipStatus,
    OrgRole,
    PlanTier,
    SubscriptionStatus,
)
from entitlements.settings import Settings  # noqa: E402
from tests.helpers import ORG_ID, USER_ID  # noqa: E402


@pytest.fixture
def engine_settings() -> Settings:
    """Settings with the permission cache disabled so every check hits the database."""
    return Settings(entitlements={"permission_cache_ttl": 0})  # type: ignore[arg-type]


@pytest_asyncio.fixture
async def async_db_engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """Async engine on a per-test SQLite file."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'entitlements.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    await create_all_tables_async(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=async_db_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
def permissions(session_factory, engine_settings) -> PermissionEngine:
    return PermissionEngine(session_factory, engine_settings)


@pytest.fixture
def ledger(session_factory, engine_settings) -> QuotaLedger:
    return QuotaLedger(session_factory, engine_settings)


@pytest.fixture
def guard(permissions, ledger) -> Guard:
    return Guard(permissions, ledger)


@pytest.fixture
def make_subscription(
    session_factory,
) -> Callable[..., Awaitable[SubscriptionState]]:
    """Factory storing a subscription as the billing collaborator would."""

    async def _make(
        organization_id: str = ORG_ID,
        tier: PlanTier | str = PlanTier.PRO,
        status: SubscriptionStatus | str = SubscriptionStatus.ACTIVE,
        **kwargs,
    ) -> SubscriptionState:
        async with session_factory() as session, session.begin():
            return await repository.upsert_subscription(
                session, organization_id, tier, status, **kwargs
            )

    return _make


@pytest.fixture
def make_membership(session_factory) -> Callable[..., Awaitable[None]]:
    """Factory storing a membership as the organization collaborator would."""

    async def _make(
        user_id: str = USER_ID,
        organization_id: str = ORG_ID,
        role: OrgRole | str = OrgRole.MEMBER,
        status: MembershipStatus | str = MembershipStatus.ACTIVE,
    ) -> None:
        async with session_factory() as session, session.begin():
            await repository.upsert_membership(session, user_id, organization_id, role, status)

    return _make


@pytest.fixture
def member_of(make_subscription, make_membership) -> Callable[..., Awaitable[None]]:
    """Store a subscription and an active membership in one call."""

    async def _make(
        tier: PlanTier | str = PlanTier.PRO,
        role: OrgRole | str = OrgRole.MEMBER,
        status: SubscriptionStatus | str = SubscriptionStatus.ACTIVE,
        user_id: str = USER_ID,
        organization_id: str = ORG_ID,
    ) -> None:
        await make_subscription(organization_id, tier, status)
        await make_membership(user_id, organization_id, role)

    return _make


@pytest.fixture
def fake_clock():
    """Manually advanced timer for cache expiry tests."""

    class _Clock:
        def __init__(self) -> None:
            self.now = 1000.0

        def __call__(self) -> float:
            return self.now

        def advance(self, seconds: float) -> None:
            self.now += seconds

    return _Clock()


@pytest.fixture
def cached_permissions(session_factory, engine_settings, fake_clock) -> PermissionEngine:
    """Permission engine with a 5 second cache driven by ``fake_clock``."""
    cache = SnapshotCache(maxsize=100, ttl=5.0, timer=fake_clock, settings=engine_settings)
    return PermissionEngine(session_factory, engine_settings, cache=cache)

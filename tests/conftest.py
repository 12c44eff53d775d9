"""Shared test fixtures for the Gig Escrow Engine test suite.

Provides:
    - An in-memory sqlite+aiosqlite database, fresh per test
    - A `market` factory that drives gigs and applications through the
      real services to the state a test needs
    - An httpx client bound to the app, with the database and settings overridden
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gig_escrow.api.deps import get_app_settings, get_session_maker
from gig_escrow.config import Settings
from gig_escrow.domain.enums import Provider, ProviderOutcome
from gig_escrow.domain.verifier_protocol import ProviderEvent
from gig_escrow.infrastructure.database.engine import unit_of_work
from gig_escrow.infrastructure.database.orm_models import Base, Gig
from gig_escrow.infrastructure.database.repositories import ApplicationRepository, GigRepository
from gig_escrow.services.application_service import ApplicationService
from gig_escrow.services.escrow_service import EscrowReconciliationService

# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory():
    """A session factory bound to a fresh in-memory database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """A session factory over a database file, one connection per session.

    Unlike the in-memory fixture, concurrent units of work here really hold
    separate connections and contend for SQLite's write lock.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    """A single session for tests that drive a service directly."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Marketplace Factory
# ---------------------------------------------------------------------------


@dataclass
class Deal:
    """Ids of one gig/application pair and the people on it."""

    gig_id: uuid.UUID
    application_id: uuid.UUID
    employer_id: str
    worker_id: str
    payment_id: str | None = None
    amount: Decimal | None = None


class Marketplace:
    """Drives applications to a given state, one committed unit per step."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def gig(
        self,
        employer_id: str = "employer-1",
        budget: Decimal = Decimal("1000.00"),
        deadline: datetime | None = None,
        created_at: datetime | None = None,
    ) -> uuid.UUID:
        async with unit_of_work(self.session_factory) as session:
            gig = Gig(employer_id=employer_id, title="Fix a leaking tap", budget=budget, deadline=deadline)
            if created_at is not None:
                gig.created_at = created_at
            gig = await GigRepository(session).create(gig)
            return gig.id

    async def application(self, application_id: uuid.UUID):
        async with unit_of_work(self.session_factory) as session:
            return await ApplicationRepository(session).get_by_id(application_id)

    async def pending(
        self,
        rate: Decimal = Decimal("1000.00"),
        worker_id: str = "worker-1",
        employer_id: str = "employer-1",
        gig_id: uuid.UUID | None = None,
    ) -> Deal:
        gig_id = gig_id or await self.gig(employer_id=employer_id)
        async with unit_of_work(self.session_factory) as session:
            application = await ApplicationService(session).create_application(
                gig_id, worker_id, rate
            )
            return Deal(gig_id, application.id, employer_id, worker_id)

    async def accepted(self, rate: Decimal = Decimal("1000.00"), **kwargs) -> Deal:
        deal = await self.pending(rate=rate, **kwargs)
        async with unit_of_work(self.session_factory) as session:
            await ApplicationService(session).accept(deal.application_id, deal.employer_id)
        return deal

    async def with_intent(
        self,
        rate: Decimal = Decimal("1000.00"),
        provider: Provider = Provider.PAYFAST,
        **kwargs,
    ) -> Deal:
        deal = await self.accepted(rate=rate, **kwargs)
        async with unit_of_work(self.session_factory) as session:
            intent = await EscrowReconciliationService(session).create_payment_intent(
                deal.application_id, deal.employer_id, provider
            )
            deal.payment_id = intent.payment_id
            deal.amount = intent.amount
        return deal

    async def funded(self, rate: Decimal = Decimal("1000.00"), **kwargs) -> Deal:
        deal = await self.with_intent(rate=rate, **kwargs)
        async with unit_of_work(self.session_factory) as session:
            await EscrowReconciliationService(session).reconcile(success_event(deal))
        return deal

    async def completion_requested(self, now: datetime | None = None, **kwargs) -> Deal:
        deal = await self.funded(**kwargs)
        async with unit_of_work(self.session_factory) as session:
            await ApplicationService(session).request_completion(
                deal.application_id, deal.worker_id, now=now or datetime.now(UTC)
            )
        return deal

    async def disputed(self, **kwargs) -> Deal:
        deal = await self.completion_requested(**kwargs)
        async with unit_of_work(self.session_factory) as session:
            await ApplicationService(session).dispute_completion(
                deal.application_id, deal.employer_id, "The tap is still leaking badly"
            )
        return deal


def success_event(
    deal: Deal,
    provider: Provider = Provider.PAYFAST,
    gross: Decimal | None = None,
    transaction_id: str = "pf-1001",
) -> ProviderEvent:
    return ProviderEvent(
        provider=provider,
        payment_id=deal.payment_id,
        transaction_id=transaction_id,
        application_id=str(deal.application_id),
        outcome=ProviderOutcome.SUCCEEDED,
        raw_status="COMPLETE",
        gross_amount=gross if gross is not None else deal.amount,
    )


@pytest.fixture
def market(session_factory) -> Marketplace:
    return Marketplace(session_factory)


@pytest.fixture
def file_market(file_session_factory) -> Marketplace:
    return Marketplace(file_session_factory)


@pytest.fixture
def make_success_event():
    return success_event


# ---------------------------------------------------------------------------
# API Fixtures
# ---------------------------------------------------------------------------

PAYFAST_PASSPHRASE = "jt7NOE43FZPn"
CRON_SECRET = "cron-s3cret"


@pytest.fixture
def api_settings() -> Settings:
    return Settings(
        _env_file=None,
        payfast_passphrase=PAYFAST_PASSPHRASE,
        payfast_sandbox=True,
        paystack_secret_key="sk_test_5f2b",
        tradesafe_client_secret="ts-client-secret",
        cron_secret=CRON_SECRET,
        admin_user_ids="admin-1, admin-2",
    )


@pytest_asyncio.fixture
async def client(session_factory, api_settings):
    """An httpx client wired to the app, the test database and test settings."""
    from gig_escrow.main import create_app

    app = create_app()
    app.dependency_overrides[get_session_maker] = lambda: session_factory
    app.dependency_overrides[get_app_settings] = lambda: api_settings
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

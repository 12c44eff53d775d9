#!/usr/bin/env python3
"""Gig Escrow Engine — End-to-End Simulation.

Simulates three scenarios with EmployerBot, WorkerBot and a PayFast stand-in
that signs ITNs the way the real gateway does:

    Scenario 1: Happy Path
        - Worker applies, employer counters, worker confirms, employer accepts
        - Employer checks out; a signed ITN funds the escrow
        - The same ITN is delivered twice -> DUPLICATE, no second escrow
        - Worker requests completion; the sweep auto-releases after the window

    Scenario 2: Disputed Completion
        - Employer disputes the completion request
        - Admin rules for the employer -> funds stay held, worker re-requests
        - Employer disputes again, admin rules for the worker -> released

    Scenario 3: Expiry Sweeper
        - An accepted application is never funded -> funding timeout
        - An open gig sits without applications -> unfunded expiry

Usage:
    # Option A: With Docker (PostgreSQL):
    docker compose up -d
    uv run python simulation.py

    # Option B: Without Docker (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from gig_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from gig_escrow.domain.enums import ActorRole, Provider  # noqa: E402
from gig_escrow.domain.fees import DEFAULT_PLATFORM_CONFIG  # noqa: E402
from gig_escrow.domain.verifier_protocol import SignatureRequest  # noqa: E402
from gig_escrow.infrastructure.database.engine import unit_of_work  # noqa: E402
from gig_escrow.infrastructure.database.orm_models import Gig  # noqa: E402
from gig_escrow.infrastructure.database.repositories import (  # noqa: E402
    GigRepository,
    LedgerRepository,
)
from gig_escrow.services.application_service import ApplicationService  # noqa: E402
from gig_escrow.services.dispute_service import DisputeMediationService  # noqa: E402
from gig_escrow.services.escrow_service import (  # noqa: E402
    EscrowReconciliationService,
    process_provider_event,
)
from gig_escrow.services.expiry_sweeper import ExpirySweeper  # noqa: E402
from gig_escrow.verifiers.payfast import PayFastVerifier, generate_signature  # noqa: E402

PASSPHRASE = "simulation-passphrase"
ADMIN_ID = "admin-1"

# Module-level state
_session_factory = None
_engine = None


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _engine, _session_factory

    from gig_escrow.infrastructure.database.orm_models import Base

    if use_sqlite:
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
        from sqlalchemy.pool import StaticPool

        _engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _session_factory = async_sessionmaker(
            bind=_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("simulation.db_initialized", backend="sqlite_memory")
    else:
        from gig_escrow.infrastructure.database.engine import get_session_factory, init_db

        await init_db()
        _session_factory = get_session_factory()
        logger.info("simulation.db_initialized", backend="postgresql")


async def shutdown_database() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
    else:
        from gig_escrow.infrastructure.database.engine import close_db

        await close_db()
    _session_factory = None


# ---------------------------------------------------------------------------
# Bots
# ---------------------------------------------------------------------------
class EmployerBot:
    """Posts gigs, negotiates, accepts, funds and reviews completions."""

    def __init__(self, name: str = "employer") -> None:
        self.user_id = f"{name}-{uuid.uuid4().hex[:6]}"

    async def post_gig(
        self,
        title: str,
        budget: Decimal,
        deadline: datetime | None = None,
    ) -> uuid.UUID:
        async with unit_of_work(_session_factory) as session:
            gig = await GigRepository(session).create(
                Gig(employer_id=self.user_id, title=title, budget=budget, deadline=deadline)
            )
            print(f"  📌 Gig posted: {title} (budget R{budget})")
            return gig.id

    async def counter(self, application_id: uuid.UUID, amount: Decimal) -> None:
        async with unit_of_work(_session_factory) as session:
            await ApplicationService(session).propose_or_counter_rate(
                application_id, self.user_id, ActorRole.EMPLOYER, amount
            )
        print(f"  💬 Employer counters at R{amount}")

    async def accept(self, application_id: uuid.UUID) -> None:
        async with unit_of_work(_session_factory) as session:
            await ApplicationService(session).accept(application_id, self.user_id)
        print("  🤝 Employer accepts the application")

    async def start_checkout(self, application_id: uuid.UUID) -> tuple[str, Decimal]:
        async with unit_of_work(_session_factory) as session:
            intent = await EscrowReconciliationService(session).create_payment_intent(
                application_id, self.user_id, Provider.PAYFAST
            )
            print(f"  💳 Checkout started: {intent.payment_id} for R{intent.amount}")
            return intent.payment_id, intent.amount

    async def dispute(self, application_id: uuid.UUID, reason: str) -> None:
        async with unit_of_work(_session_factory) as session:
            await ApplicationService(session).dispute_completion(
                application_id, self.user_id, reason
            )
        print(f"  ⚠️  Employer disputes: {reason}")


class WorkerBot:
    """Applies to gigs, confirms rates and requests completion."""

    def __init__(self, name: str = "worker") -> None:
        self.user_id = f"{name}-{uuid.uuid4().hex[:6]}"

    async def apply(self, gig_id: uuid.UUID, rate: Decimal) -> uuid.UUID:
        async with unit_of_work(_session_factory) as session:
            application = await ApplicationService(session).create_application(
                gig_id, self.user_id, rate, note="Available this week"
            )
            print(f"  📝 Worker applies at R{rate}")
            return application.id

    async def confirm_rate(self, application_id: uuid.UUID) -> None:
        async with unit_of_work(_session_factory) as session:
            await ApplicationService(session).confirm_rate(
                application_id, self.user_id, ActorRole.WORKER
            )
        print("  ✅ Worker confirms the counter-offer")

    async def request_completion(self, application_id: uuid.UUID, now: datetime | None = None) -> None:
        async with unit_of_work(_session_factory) as session:
            application = await ApplicationService(session).request_completion(
                application_id, self.user_id, now=now
            )
            print(
                "  🏁 Worker requests completion "
                f"(auto-release at {application.completion_auto_release_at:%Y-%m-%d %H:%M})"
            )


def signed_itn(payment_id: str, application_id: uuid.UUID, amount: Decimal) -> SignatureRequest:
    """Build an ITN form post signed the way PayFast signs it."""
    fields = {
        "m_payment_id": payment_id,
        "pf_payment_id": str(1_000_000 + uuid.uuid4().int % 1_000_000),
        "payment_status": "COMPLETE",
        "amount_gross": f"{amount:.2f}",
        "amount_fee": f"{(amount * Decimal('0.035')).quantize(Decimal('0.01'))}",
        "amount_net": f"{(amount * Decimal('0.965')).quantize(Decimal('0.01'))}",
        "custom_str1": str(application_id),
    }
    fields["signature"] = generate_signature(fields, PASSPHRASE)
    return SignatureRequest(
        provider=Provider.PAYFAST,
        form_fields=fields,
        signature=fields["signature"],
        source_ip="197.97.145.144",
    )


async def deliver_itn(request: SignatureRequest) -> str:
    result = PayFastVerifier(passphrase=PASSPHRASE, sandbox=True).verify(request)
    if not result.valid:
        print(f"  ❌ ITN rejected: {result.reason}")
        return "rejected"
    outcome = await process_provider_event(result.event, _session_factory)
    print(f"  📨 ITN {request.form_fields['m_payment_id']} -> {outcome.value}")
    return outcome.value


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    print("\n" + "=" * 70)
    print(f"  {text}")
    print("=" * 70)


def section(text: str) -> None:
    print(f"\n--- {text} ---")


async def print_status(application_id: uuid.UUID) -> None:
    async with unit_of_work(_session_factory) as session:
        status = await ApplicationService(session).get_status(application_id)
    print(
        f"  📊 status={status['status']} payment={status['payment_status']} "
        f"rate={status['rate_status']}"
    )


async def print_audit_trail(application_id: uuid.UUID) -> None:
    async with unit_of_work(_session_factory) as session:
        events = await ApplicationService(session).get_events(application_id)
        ledger = await LedgerRepository(session).list_for_application(application_id)
    print("\n  📜 Audit Trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "-"
        print(f"    {i}. [{evt.event_type}] {old} → {evt.new_status} (by {evt.actor})")
    print("\n  💰 Ledger:")
    for entry in ledger:
        print(f"    {entry.entry_type:<20} {entry.user_id:<20} R{entry.amount}")
    print()


async def negotiate_and_fund(employer: EmployerBot, worker: WorkerBot) -> uuid.UUID:
    gig_id = await employer.post_gig("Paint a garden wall", Decimal("1200.00"))
    application_id = await worker.apply(gig_id, Decimal("1100.00"))
    await employer.counter(application_id, Decimal("1000.00"))
    await worker.confirm_rate(application_id)
    await employer.accept(application_id)
    payment_id, amount = await employer.start_checkout(application_id)
    await deliver_itn(signed_itn(payment_id, application_id, amount))
    return application_id


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    """Negotiate, fund through a signed ITN, auto-release after the window."""
    banner("SCENARIO 1: Happy Path — Negotiate, Fund, Auto-Release")

    employer = EmployerBot()
    worker = WorkerBot()

    section("Step 1: Negotiate and fund")
    gig_id = await employer.post_gig("Paint a garden wall", Decimal("1200.00"))
    application_id = await worker.apply(gig_id, Decimal("1100.00"))
    await employer.counter(application_id, Decimal("1000.00"))
    await worker.confirm_rate(application_id)
    await employer.accept(application_id)
    payment_id, amount = await employer.start_checkout(application_id)
    itn = signed_itn(payment_id, application_id, amount)
    await deliver_itn(itn)

    section("Step 2: PayFast retries the same ITN")
    await deliver_itn(itn)
    await print_status(application_id)

    section("Step 3: Worker requests completion")
    await worker.request_completion(application_id)

    section("Step 4: Sweep after the auto-release window")
    later = datetime.now(UTC) + timedelta(days=DEFAULT_PLATFORM_CONFIG.escrow_auto_release_days + 1)
    report = await ExpirySweeper(_session_factory).run_auto_release(later)
    print(f"  🧹 Sweep released {report.count('released')} application(s)")
    await print_status(application_id)

    await print_audit_trail(application_id)


# ===========================================================================
# Scenario 2: Disputed Completion
# ===========================================================================
async def scenario_2_disputed_completion() -> None:
    """Employer disputes twice; admin rules each way once."""
    banner("SCENARIO 2: Disputed Completion — Admin Mediation")

    employer = EmployerBot()
    worker = WorkerBot()

    section("Step 1: Negotiate and fund")
    application_id = await negotiate_and_fund(employer, worker)

    section("Step 2: First dispute, ruled for the employer")
    await worker.request_completion(application_id)
    await employer.dispute(application_id, "Only one coat of paint was applied")
    async with unit_of_work(_session_factory) as session:
        await DisputeMediationService(session).resolve_in_favor_of_employer(
            application_id, ADMIN_ID, notes="Second coat required"
        )
    print("  ⚖️  Admin rules for the employer: funds stay in escrow")
    await print_status(application_id)

    section("Step 3: Second dispute, ruled for the worker")
    await worker.request_completion(application_id)
    await employer.dispute(application_id, "Colour does not match the sample")
    async with unit_of_work(_session_factory) as session:
        await DisputeMediationService(session).resolve_in_favor_of_worker(
            application_id, ADMIN_ID, notes="Colour matches the approved swatch"
        )
    print("  ⚖️  Admin rules for the worker: escrow released")
    await print_status(application_id)

    await print_audit_trail(application_id)


# ===========================================================================
# Scenario 3: Expiry Sweeper
# ===========================================================================
async def scenario_3_expiry_sweeper() -> None:
    """Unfunded acceptance times out; an idle gig expires."""
    banner("SCENARIO 3: Expiry Sweeper — Funding Timeout & Unfunded Expiry")

    employer = EmployerBot()
    worker = WorkerBot()

    section("Step 1: Accepted but never funded")
    gig_id = await employer.post_gig("Assemble flat-pack wardrobe", Decimal("600.00"))
    application_id = await worker.apply(gig_id, Decimal("600.00"))
    await employer.accept(application_id)

    section("Step 2: Idle gig with no applications")
    idle_gig_id = await employer.post_gig("Clean gutters", Decimal("450.00"))

    section("Step 3: Sweep eight days later")
    later = datetime.now(UTC) + timedelta(days=8)
    report = await ExpirySweeper(_session_factory).sweep_all(now=later)
    print(
        f"  🧹 processed={report.processed} succeeded={report.succeeded} failed={report.failed}"
    )
    for item in report.results:
        print(f"    {item.kind:<16} {item.item_id[:8]} -> {item.outcome}")

    async with unit_of_work(_session_factory) as session:
        repo = GigRepository(session)
        for gid in (gig_id, idle_gig_id):
            gig = await repo.get_by_id(gid)
            print(f"  📌 {gig.title}: {gig.status} ({gig.cancellation_reason or '-'})")

    await print_audit_trail(application_id)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_disputed_completion,
    3: scenario_3_expiry_sweeper,
}


async def run(scenario: int = 0, use_sqlite: bool = False) -> None:
    await init_database(use_sqlite=use_sqlite)
    try:
        print("\n" + "🚀" * 35)
        print("  GIG ESCROW ENGINE — SIMULATION")
        print(f"  Database: {'SQLite (in-memory)' if use_sqlite else 'PostgreSQL'}")
        print("🚀" * 35 + "\n")

        if scenario and scenario not in SCENARIOS:
            print(f"Unknown scenario {scenario}. Available: 1, 2, 3")
            return
        for num, fn in SCENARIOS.items():
            if scenario in (0, num):
                await fn()

        print("\n" + "=" * 70)
        print("  ✅ SIMULATION COMPLETE")
        print("=" * 70 + "\n")
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Gig Escrow Engine Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL (no Docker needed).",
    )
    args = parser.parse_args()
    asyncio.run(run(scenario=args.scenario, use_sqlite=args.sqlite))

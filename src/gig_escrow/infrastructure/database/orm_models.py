"""SQLAlchemy 2.0 ORM models for the Gig Escrow Engine.

Eight tables:
    1. gigs                 — Posted jobs. Status is mirrored from application transitions.
    2. applications         — A worker's bid on a gig; the long-lived root entity.
    3. rate_history         — Append-only rate negotiation trail.
    4. escrow_records       — One per funded application.
    5. ledger_entries       — Append-only money movements.
    6. payment_intents      — Checkouts started with a provider (correlation ids).
    7. application_events   — Append-only audit log of every state transition.
    8. platform_config      — Admin-editable business parameters.

Design decisions:
    - UUIDs as primary keys (no sequential leakage).
    - Decimal for rand amounts (no floating point rounding errors).
    - Portable column types (Uuid, JSON with a JSONB variant) so the same
      models run on PostgreSQL and on SQLite for tests and simulation.
    - CHECK constraints mirror the composite state table in
      domain/state_machine.py, so an illegal (status, payment_status) pair
      cannot reach the database even through a raw UPDATE.
    - applications.version is the optimistic concurrency counter.
    - UNIQUE escrow_records.idempotency_key and escrow_records.application_id
      back the conditional funding write: at most one record per application.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always comes back as UTC.

    SQLite drops tzinfo on storage; values read back are re-tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _utcnow()


# ---------------------------------------------------------------------------
# 1. gigs
# ---------------------------------------------------------------------------
class Gig(Base):
    """A posted job. Mutated only by application lifecycle transitions."""

    __tablename__ = "gigs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    employer_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="User id of the employer who posted the gig",
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    budget: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Posted budget in rand",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="open",
        comment="open | in-progress | completed | cancelled",
    )
    assigned_to: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        default=None,
        comment="Worker id of the accepted application (set on accept)",
    )
    deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'in-progress', 'completed', 'cancelled')",
            name="ck_gig_valid_status",
        ),
        CheckConstraint("budget > 0", name="ck_gig_positive_budget"),
        Index("idx_gig_status", "status"),
        Index("idx_gig_employer", "employer_id"),
        Index("idx_gig_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Gig id={self.id} status={self.status} budget={self.budget}>"


# ---------------------------------------------------------------------------
# 2. applications
# ---------------------------------------------------------------------------
class Application(Base):
    """A worker's application for a gig.

    status, payment_status, rate_status and the completion_* fields together
    form one composite state; see domain/state_machine.py.
    """

    __tablename__ = "applications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Participants ---
    gig_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("gigs.id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_id: Mapped[str] = mapped_column(String(128), nullable=False)
    employer_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Denormalized from gigs.employer_id",
    )

    # --- Composite status ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="Top-level lifecycle (guarded by ApplicationStateMachine)",
    )
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="unpaid")

    # --- Rate negotiation ---
    rate_status: Mapped[str] = mapped_column(String(20), nullable=False, default="proposed")
    proposed_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    agreed_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    last_rate_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    last_rate_by: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        comment="Role (worker | employer) that authored the open offer",
    )
    last_rate_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Lifecycle timestamps ---
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    funded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Completion / dispute sub-state ---
    completion_requested_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completion_requested_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    completion_auto_release_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Deadline after which the sweeper auto-releases (null = frozen)",
    )
    completion_disputed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completion_dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completion_resolved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    completion_resolution: Mapped[str | None] = mapped_column(String(20), nullable=True)
    completion_resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Payment reference ---
    payment_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Idempotency key of the funding payment",
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    gig: Mapped[Gig] = relationship("Gig", lazy="joined", innerjoin=True)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'funded', 'completed', 'withdrawn')",
            name="ck_application_valid_status",
        ),
        CheckConstraint(
            "rate_status IN ('proposed', 'countered', 'agreed')",
            name="ck_application_valid_rate_status",
        ),
        CheckConstraint(
            "(status IN ('pending', 'accepted', 'rejected', 'withdrawn') AND payment_status = 'unpaid')"
            " OR (status = 'funded' AND payment_status IN ('in_escrow', 'disputed'))"
            " OR (status = 'completed' AND payment_status IN ('released', 'paid'))",
            name="ck_application_legal_composite_state",
        ),
        CheckConstraint(
            "(rate_status = 'agreed' AND agreed_rate IS NOT NULL)"
            " OR (rate_status <> 'agreed' AND agreed_rate IS NULL)",
            name="ck_application_agreed_rate",
        ),
        Index("idx_application_gig", "gig_id"),
        Index("idx_application_worker", "worker_id"),
        Index("idx_application_status", "status"),
        Index("idx_application_auto_release", "status", "completion_auto_release_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Application id={self.id} status={self.status} "
            f"payment={self.payment_status} rate={self.rate_status}>"
        )


# ---------------------------------------------------------------------------
# 3. rate_history (Append-Only)
# ---------------------------------------------------------------------------
class RateHistoryEntry(Base):
    """One rate proposal or counter-offer. Ordered by insertion (id)."""

    __tablename__ = "rate_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    proposer: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="worker | employer",
    )
    proposer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (Index("idx_rate_history_application", "application_id"),)

    def __repr__(self) -> str:
        return f"<RateHistoryEntry application={self.application_id} {self.proposer}={self.amount}>"


# ---------------------------------------------------------------------------
# 4. escrow_records
# ---------------------------------------------------------------------------
class EscrowRecord(Base):
    """Funds held for one application. Created exactly once per funding."""

    __tablename__ = "escrow_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("applications.id", ondelete="RESTRICT"),
        nullable=False,
    )
    gig_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    employer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    worker_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # --- Financials ---
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    platform_commission: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    worker_earnings: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    provider_fee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # --- Provider ---
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    idempotency_key: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Provider payment id; duplicate deliveries collide here",
    )
    verified_via: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="webhook",
        comment="webhook | client_verify",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="in_escrow",
        comment="Mirrors applications.payment_status",
    )
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("application_id", name="uq_escrow_application"),
        UniqueConstraint("idempotency_key", name="uq_escrow_idempotency_key"),
        CheckConstraint(
            "status IN ('in_escrow', 'disputed', 'released')",
            name="ck_escrow_valid_status",
        ),
        CheckConstraint("gross_amount > 0", name="ck_escrow_positive_amount"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowRecord id={self.id} application={self.application_id} "
            f"status={self.status} gross={self.gross_amount}>"
        )


# ---------------------------------------------------------------------------
# 5. ledger_entries (Append-Only)
# ---------------------------------------------------------------------------
class LedgerEntry(Base):
    """A single money movement. Never updated or deleted."""

    __tablename__ = "ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Party credited or debited (employer, worker, or 'platform')",
    )
    entry_type: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    gig_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    application_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    escrow_record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("escrow_records.id", ondelete="RESTRICT"),
        nullable=False,
    )
    provider_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("escrow_record_id", "entry_type", name="uq_ledger_escrow_entry_type"),
        CheckConstraint(
            "entry_type IN ('escrow_funding', 'escrow_release', 'platform_commission')",
            name="ck_ledger_valid_entry_type",
        ),
        Index("idx_ledger_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.entry_type} user={self.user_id} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 6. payment_intents
# ---------------------------------------------------------------------------
class PaymentIntent(Base):
    """A checkout started with a provider, created before the redirect."""

    __tablename__ = "payment_intents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
        comment="Our reference (m_payment_id / Paystack reference)",
    )
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    gig_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    employer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'succeeded', 'failed', 'cancelled')",
            name="ck_payment_intent_valid_status",
        ),
        Index("idx_payment_intent_application", "application_id"),
        Index("idx_payment_intent_provider_tx", "provider_transaction_id"),
    )

    def __repr__(self) -> str:
        return f"<PaymentIntent {self.provider}:{self.payment_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 7. application_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class ApplicationEvent(Base):
    """Immutable audit record of every state transition of an application.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level. Every row represents a single atomic event.
    """

    __tablename__ = "application_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="EventType enum value (e.g., ESCROW_FUNDED, DISPUTE_RAISED)",
    )
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        default="system",
        comment="Who triggered this event (user id, admin id, provider, or SYSTEM)",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_event_application", "application_id"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<ApplicationEvent id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )


# ---------------------------------------------------------------------------
# 8. platform_config
# ---------------------------------------------------------------------------
class PlatformConfigRow(Base):
    """A saved set of platform parameters. The newest active row wins."""

    __tablename__ = "platform_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    values_json: Mapped[dict] = mapped_column("config_values", JSONType, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<PlatformConfigRow id={self.id} active={self.is_active}>"


# ---------------------------------------------------------------------------
# Register the auto-update listener for updated_at
# ---------------------------------------------------------------------------
for _model in (Gig, Application, EscrowRecord, PaymentIntent):
    event.listen(_model, "before_update", _set_updated_at)

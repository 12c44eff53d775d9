"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility, see
engine.unit_of_work).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import and_, exists, func, select, update

from gig_escrow.domain.enums import ApplicationStatus, GigStatus, PaymentIntentStatus
from gig_escrow.infrastructure.database.orm_models import (
    Application,
    ApplicationEvent,
    EscrowRecord,
    Gig,
    LedgerEntry,
    PaymentIntent,
    PlatformConfigRow,
    RateHistoryEntry,
)

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from gig_escrow.domain.enums import EventType


class GigRepository:
    """Data access for gigs."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, gig: Gig) -> Gig:
        self._session.add(gig)
        await self._session.flush()
        return gig

    async def get_by_id(self, gig_id: uuid.UUID) -> Gig | None:
        result = await self._session.execute(select(Gig).where(Gig.id == gig_id))
        return result.scalar_one_or_none()

    async def list_sweep_candidate_ids(self) -> list[uuid.UUID]:
        """Ids of every gig an expiry rule could still apply to."""
        result = await self._session.execute(
            select(Gig.id)
            .where(Gig.status.in_([GigStatus.OPEN.value, GigStatus.IN_PROGRESS.value]))
            .order_by(Gig.created_at.asc())
        )
        return list(result.scalars().all())

    async def update_status(self, gig: Gig, new_status: GigStatus) -> Gig:
        """Update the status of a gig (call AFTER application transition validation)."""
        gig.status = new_status.value
        await self._session.flush()
        return gig


class ApplicationRepository:
    """Data access for applications."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, application: Application) -> Application:
        self._session.add(application)
        await self._session.flush()
        return application

    async def get_by_id(
        self,
        application_id: uuid.UUID,
        *,
        refresh: bool = False,
    ) -> Application | None:
        """Fetch an application (with its gig) by UUID.

        refresh=True overwrites any copy already in the identity map, for
        re-reading after a conditional UPDATE.
        """
        stmt = select(Application).where(Application.id == application_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, application: Application) -> Application:
        """Flush pending changes. Raises StaleDataError if the version moved."""
        await self._session.flush()
        return application

    async def list_by_gig(
        self,
        gig_id: uuid.UUID,
        statuses: list[ApplicationStatus] | None = None,
    ) -> list[Application]:
        stmt = select(Application).where(Application.gig_id == gig_id)
        if statuses:
            stmt = stmt.where(Application.status.in_([s.value for s in statuses]))
        result = await self._session.execute(stmt.order_by(Application.created_at.asc()))
        return list(result.scalars().all())

    async def get_by_gig_and_worker(self, gig_id: uuid.UUID, worker_id: str) -> Application | None:
        result = await self._session.execute(
            select(Application).where(
                Application.gig_id == gig_id,
                Application.worker_id == worker_id,
            )
        )
        return result.scalars().first()

    async def has_funded_application(self, gig_id: uuid.UUID) -> bool:
        result = await self._session.execute(
            select(
                exists().where(
                    Application.gig_id == gig_id,
                    Application.status == ApplicationStatus.FUNDED.value,
                )
            )
        )
        return bool(result.scalar())

    async def compare_and_set_status(
        self,
        application_id: uuid.UUID,
        expected_status: ApplicationStatus,
        values: dict,
    ) -> bool:
        """Conditionally update an application in one statement.

        Executes UPDATE ... WHERE id = :id AND status = :expected. Returns
        True only for the single writer whose precondition still held; a
        concurrent second writer blocks on the row lock, re-evaluates the
        WHERE clause, and gets False.
        """
        result = await self._session.execute(
            update(Application)
            .where(
                Application.id == application_id,
                Application.status == expected_status.value,
            )
            .values(**values, version=Application.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_due_for_auto_release(self, now: datetime) -> list[uuid.UUID]:
        """Funded, completion requested, undisputed, deadline passed."""
        result = await self._session.execute(
            select(Application.id)
            .where(
                Application.status == ApplicationStatus.FUNDED.value,
                Application.completion_requested_at.is_not(None),
                Application.completion_disputed_at.is_(None),
                Application.completion_auto_release_at.is_not(None),
                Application.completion_auto_release_at <= now,
            )
            .order_by(Application.completion_auto_release_at.asc())
        )
        return list(result.scalars().all())

    async def list_funding_timed_out(self, cutoff: datetime) -> list[uuid.UUID]:
        """Accepted applications still unfunded since before cutoff."""
        result = await self._session.execute(
            select(Application.id)
            .where(
                Application.status == ApplicationStatus.ACCEPTED.value,
                Application.accepted_at.is_not(None),
                Application.accepted_at < cutoff,
            )
            .order_by(Application.accepted_at.asc())
        )
        return list(result.scalars().all())

    async def list_active_disputes(self) -> list[Application]:
        result = await self._session.execute(
            select(Application)
            .where(
                Application.status == ApplicationStatus.FUNDED.value,
                Application.completion_disputed_at.is_not(None),
                Application.completion_resolved_at.is_(None),
            )
            .order_by(Application.completion_disputed_at.asc())
        )
        return list(result.scalars().all())


class RateHistoryRepository:
    """Data access for the append-only rate negotiation trail."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: RateHistoryEntry) -> RateHistoryEntry:
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def list_for_application(self, application_id: uuid.UUID) -> list[RateHistoryEntry]:
        """All entries for an application in insertion order."""
        result = await self._session.execute(
            select(RateHistoryEntry)
            .where(RateHistoryEntry.application_id == application_id)
            .order_by(RateHistoryEntry.id.asc())
        )
        return list(result.scalars().all())


class EscrowRecordRepository:
    """Data access for escrow records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, record: EscrowRecord) -> EscrowRecord:
        """Insert a new escrow record. The unique constraints reject a second one."""
        self._session.add(record)
        await self._session.flush()
        return record

    async def get_by_application(self, application_id: uuid.UUID) -> EscrowRecord | None:
        result = await self._session.execute(
            select(EscrowRecord).where(EscrowRecord.application_id == application_id)
        )
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, key: str) -> EscrowRecord | None:
        result = await self._session.execute(
            select(EscrowRecord).where(EscrowRecord.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def count_for_application(self, application_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count(EscrowRecord.id)).where(
                EscrowRecord.application_id == application_id
            )
        )
        return int(result.scalar_one())


class LedgerRepository:
    """Data access for the append-only ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(self, entry: LedgerEntry) -> LedgerEntry:
        """Append a ledger entry. This is the ONLY write operation allowed."""
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def list_for_application(self, application_id: uuid.UUID) -> list[LedgerEntry]:
        result = await self._session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.application_id == application_id)
            .order_by(LedgerEntry.created_at.asc())
        )
        return list(result.scalars().all())


class PaymentIntentRepository:
    """Data access for payment intents."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        self._session.add(intent)
        await self._session.flush()
        return intent

    async def get_by_payment_id(self, payment_id: str) -> PaymentIntent | None:
        result = await self._session.execute(
            select(PaymentIntent).where(PaymentIntent.payment_id == payment_id)
        )
        return result.scalar_one_or_none()

    async def find_for_event(
        self,
        payment_id: str | None,
        transaction_id: str | None,
    ) -> PaymentIntent | None:
        """Match an intent by our reference, falling back to the provider's id."""
        if payment_id:
            intent = await self.get_by_payment_id(payment_id)
            if intent is not None:
                return intent
        if not transaction_id:
            return None
        return await self.get_by_transaction_id(transaction_id)

    async def get_by_transaction_id(self, transaction_id: str) -> PaymentIntent | None:
        result = await self._session.execute(
            select(PaymentIntent)
            .where(PaymentIntent.provider_transaction_id == transaction_id)
            .order_by(PaymentIntent.created_at.desc())
        )
        return result.scalars().first()

    async def get_pending_for_application(self, application_id: uuid.UUID) -> PaymentIntent | None:
        pending = await self.list_pending_for_application(application_id)
        return pending[0] if pending else None

    async def list_pending_for_application(self, application_id: uuid.UUID) -> list[PaymentIntent]:
        """Pending intents for an application, newest first."""
        result = await self._session.execute(
            select(PaymentIntent)
            .where(
                and_(
                    PaymentIntent.application_id == application_id,
                    PaymentIntent.status == PaymentIntentStatus.PENDING.value,
                )
            )
            .order_by(PaymentIntent.created_at.desc())
        )
        return list(result.scalars().all())

    async def update_status(
        self,
        intent: PaymentIntent,
        new_status: PaymentIntentStatus,
        failure_reason: str | None = None,
    ) -> PaymentIntent:
        intent.status = new_status.value
        if failure_reason is not None:
            intent.failure_reason = failure_reason
        await self._session.flush()
        return intent


class PlatformConfigRepository:
    """Data access for admin-editable platform configuration."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_active(self) -> PlatformConfigRow | None:
        """The newest active row, or None when nothing has been saved."""
        result = await self._session.execute(
            select(PlatformConfigRow)
            .where(PlatformConfigRow.is_active.is_(True))
            .order_by(PlatformConfigRow.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def save(self, values: dict, updated_by: str) -> PlatformConfigRow:
        """Insert a new active row and deactivate the older ones."""
        await self._session.execute(
            update(PlatformConfigRow)
            .where(PlatformConfigRow.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        row = PlatformConfigRow(values_json=values, is_active=True, updated_by=updated_by)
        self._session.add(row)
        await self._session.flush()
        return row


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        application_id: uuid.UUID,
        event_type: EventType,
        old_status: str | None,
        new_status: str,
        actor: str = "system",
        metadata: dict | None = None,
    ) -> ApplicationEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = ApplicationEvent(
            application_id=application_id,
            event_type=event_type.value,
            old_status=str(old_status) if old_status else None,
            new_status=str(new_status),
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_application(self, application_id: uuid.UUID) -> list[ApplicationEvent]:
        """Fetch all events for an application in chronological order."""
        result = await self._session.execute(
            select(ApplicationEvent)
            .where(ApplicationEvent.application_id == application_id)
            .order_by(ApplicationEvent.created_at.asc())
        )
        return list(result.scalars().all())

"""Escrow Reconciliation Service — turns verified provider events into funding.

This is the application layer that coordinates between:
    - Normalized ProviderEvents (from verifiers/)
    - ApplicationService.mark_funded (the conditional status write)
    - Escrow records, ledger entries and payment intents

Every event is reconciled inside one transaction (engine.unit_of_work):
the conditional status write, the escrow record, the ledger entry and the
payment intent update commit together or not at all. Duplicate deliveries
and webhook/client-verify races collapse into ReconciliationOutcome.DUPLICATE.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError, OperationalError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gig_escrow.domain.enums import (
    ApplicationStatus,
    EventType,
    LedgerEntryType,
    PaymentIntentStatus,
    PaymentStatus,
    Provider,
    ProviderOutcome,
    RateStatus,
    ReconciliationOutcome,
)
from gig_escrow.domain.exceptions import (
    ApplicationNotFoundError,
    EscrowInvariantViolation,
    PaymentError,
    PaymentNotFoundError,
    ProviderLookupError,
    UnauthorizedActorError,
)
from gig_escrow.domain.fees import (
    DEFAULT_PLATFORM_CONFIG,
    calculate_fee_breakdown,
    validate_gig_amount,
)
from gig_escrow.domain.verifier_protocol import PaymentStatusLookup, ProviderEvent
from gig_escrow.infrastructure.database.orm_models import (
    EscrowRecord,
    LedgerEntry,
    PaymentIntent,
)
from gig_escrow.infrastructure.database.repositories import (
    ApplicationRepository,
    EscrowRecordRepository,
    EventRepository,
    LedgerRepository,
    PaymentIntentRepository,
)
from gig_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from gig_escrow.domain.fees import PlatformConfig
    from gig_escrow.infrastructure.database.orm_models import Application

logger = get_logger(__name__)

PLATFORM_ACCOUNT = "platform"
AMOUNT_TOLERANCE = Decimal("0.01")

_FAILURE_STATUS = {
    ProviderOutcome.FAILED: PaymentIntentStatus.FAILED,
    ProviderOutcome.CANCELLED: PaymentIntentStatus.CANCELLED,
}


def _parse_uuid(value: str | uuid.UUID | None) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class EscrowReconciliationService:
    """Reconciles provider events against applications and holds escrow."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._app_repo = ApplicationRepository(session)
        self._escrow_repo = EscrowRecordRepository(session)
        self._ledger_repo = LedgerRepository(session)
        self._intent_repo = PaymentIntentRepository(session)
        self._event_repo = EventRepository(session)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile(
        self,
        event: ProviderEvent,
        config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
        verified_via: str = "webhook",
    ) -> ReconciliationOutcome:
        """Apply one verified provider event. Must run inside a transaction.

        The application is located through the payment intent created for
        the original funding request; the event's own correlation id is only
        used when no intent matches, never to override one.
        """
        log = logger.bind(
            provider=event.provider.value,
            payment_id=event.payment_id,
            outcome=event.outcome.value,
        )

        if event.outcome == ProviderOutcome.INFORMATIONAL:
            log.info("reconciliation.informational", raw_status=event.raw_status)
            return ReconciliationOutcome.IGNORED
        if event.outcome == ProviderOutcome.PENDING:
            log.info("reconciliation.pending", raw_status=event.raw_status)
            return ReconciliationOutcome.PENDING

        # --- Step 1: Correlate ---
        intent = await self._intent_repo.find_for_event(event.payment_id, event.transaction_id)
        claimed_id = _parse_uuid(event.application_id)
        if intent is not None and claimed_id is not None and claimed_id != intent.application_id:
            log.warning(
                "reconciliation.correlation_mismatch",
                intent_application_id=str(intent.application_id),
                event_application_id=event.application_id,
            )
            return ReconciliationOutcome.IGNORED

        application_id = intent.application_id if intent is not None else claimed_id
        application = (
            await self._app_repo.get_by_id(application_id) if application_id else None
        )
        if application is None:
            log.warning("reconciliation.not_found", application_id=event.application_id)
            return ReconciliationOutcome.NOT_FOUND

        idempotency_key = intent.payment_id if intent is not None else event.idempotency_key
        log = log.bind(application_id=str(application.id), idempotency_key=idempotency_key)

        # --- Step 2: Failure / cancellation ---
        if event.outcome in _FAILURE_STATUS:
            return await self._record_failure(application, intent, event, log)

        # --- Step 3: Success ---
        if await self._escrow_repo.get_by_idempotency_key(idempotency_key) is not None:
            log.info("reconciliation.duplicate", reason="idempotency_key_seen")
            return ReconciliationOutcome.DUPLICATE
        if application.status != ApplicationStatus.ACCEPTED:
            log.info("reconciliation.duplicate", reason="not_accepted", status=application.status)
            return ReconciliationOutcome.DUPLICATE

        if application.rate_status != RateStatus.AGREED or application.agreed_rate is None:
            log.error("reconciliation.no_agreed_amount", rate_status=application.rate_status)
            return ReconciliationOutcome.IGNORED
        expected = application.agreed_rate
        if intent is not None and abs(intent.amount - expected) > AMOUNT_TOLERANCE:
            # Checkout started before the rate was renegotiated
            log.error(
                "reconciliation.stale_intent",
                intent_amount=str(intent.amount),
                agreed_rate=str(expected),
            )
            return ReconciliationOutcome.IGNORED
        if event.gross_amount is not None and abs(event.gross_amount - expected) > AMOUNT_TOLERANCE:
            log.error(
                "reconciliation.amount_mismatch",
                expected=str(expected),
                received=str(event.gross_amount),
            )
            return ReconciliationOutcome.IGNORED

        await self._fund(
            application,
            intent=intent,
            event=event,
            idempotency_key=idempotency_key,
            gross=expected,
            config=config,
            verified_via=verified_via,
        )
        if application.status != ApplicationStatus.FUNDED:
            log.info("reconciliation.duplicate", reason="lost_race")
            return ReconciliationOutcome.DUPLICATE

        log.info("reconciliation.funded", gross=str(expected), verified_via=verified_via)
        return ReconciliationOutcome.FUNDED

    async def _fund(
        self,
        application: Application,
        *,
        intent: PaymentIntent | None,
        event: ProviderEvent,
        idempotency_key: str,
        gross: Decimal,
        config: PlatformConfig,
        verified_via: str,
    ) -> None:
        """Conditional status write, then escrow record, ledger and intent."""
        from gig_escrow.services.application_service import ApplicationService

        funded = await ApplicationService(self._session).mark_funded(
            application.id,
            payment_id=idempotency_key,
            actor=event.provider.value,
            metadata={"transaction_id": event.transaction_id, "verified_via": verified_via},
        )
        if funded is None:
            return

        # We hold the row now: nobody else could have created a record legitimately
        if await self._escrow_repo.count_for_application(application.id) > 0:
            logger.critical(
                "escrow.invariant_violation",
                application_id=str(application.id),
                detail="escrow record existed while application was accepted",
            )
            raise EscrowInvariantViolation(
                "Escrow record exists for an application that was not funded",
                application_id=str(application.id),
            )

        breakdown = calculate_fee_breakdown(gross, config)
        record = await self._escrow_repo.create(
            EscrowRecord(
                application_id=application.id,
                gig_id=application.gig_id,
                employer_id=application.employer_id,
                worker_id=application.worker_id,
                gross_amount=breakdown.gross_amount,
                platform_commission=breakdown.platform_commission,
                worker_earnings=breakdown.worker_earnings,
                provider_fee=event.fee_amount,
                provider=event.provider.value,
                provider_transaction_id=event.transaction_id,
                idempotency_key=idempotency_key,
                verified_via=verified_via,
                status=PaymentStatus.IN_ESCROW.value,
            )
        )
        await self._ledger_repo.record(
            LedgerEntry(
                user_id=application.employer_id,
                entry_type=LedgerEntryType.ESCROW_FUNDING.value,
                amount=breakdown.gross_amount,
                gig_id=application.gig_id,
                application_id=application.id,
                escrow_record_id=record.id,
                provider_reference=event.transaction_id or idempotency_key,
            )
        )
        if intent is not None:
            if intent.provider_transaction_id is None and event.transaction_id:
                intent.provider_transaction_id = event.transaction_id
            await self._intent_repo.update_status(intent, PaymentIntentStatus.SUCCEEDED)

    async def _record_failure(
        self,
        application: Application,
        intent: PaymentIntent | None,
        event: ProviderEvent,
        log,  # noqa: ANN001
    ) -> ReconciliationOutcome:
        """Mark the pending intent failed; the application stays accepted."""
        if application.status != ApplicationStatus.ACCEPTED:
            log.info("reconciliation.failure_ignored", status=application.status)
            return ReconciliationOutcome.IGNORED

        intent = intent or await self._intent_repo.get_pending_for_application(application.id)
        if intent is None or intent.status != PaymentIntentStatus.PENDING:
            log.info("reconciliation.duplicate", reason="no_pending_intent")
            return ReconciliationOutcome.DUPLICATE

        await self._intent_repo.update_status(
            intent,
            _FAILURE_STATUS[event.outcome],
            failure_reason=event.raw_status,
        )
        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.PAYMENT_FAILED,
            old_status=application.status,
            new_status=application.status,
            actor=event.provider.value,
            metadata=event.to_dict(),
        )
        log.info("reconciliation.failure_recorded", raw_status=event.raw_status)
        return ReconciliationOutcome.FAILED_RECORDED

    # ------------------------------------------------------------------
    # Payment intents & client verify
    # ------------------------------------------------------------------

    async def create_payment_intent(
        self,
        application_id: uuid.UUID,
        employer_id: str,
        provider: Provider,
        config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
        provider_transaction_id: str | None = None,
    ) -> PaymentIntent:
        """Record a checkout before redirecting the employer to the provider.

        Providers that assign their own transaction id at checkout creation
        (TradeSafe) only ever report that id back; pass it here, or attach it
        later with attach_provider_transaction, so their events correlate.
        """
        application = await self._app_repo.get_by_id(application_id)
        if application is None:
            raise ApplicationNotFoundError(str(application_id))
        if application.employer_id != employer_id:
            raise UnauthorizedActorError("Only the gig employer can fund this application")
        if application.status != ApplicationStatus.ACCEPTED:
            raise PaymentError(f"Cannot fund application with status: {application.status}")
        if application.rate_status != RateStatus.AGREED or application.agreed_rate is None:
            raise PaymentError("Rate must be agreed before funding")

        amount = validate_gig_amount(application.agreed_rate, config)
        if provider_transaction_id:
            await self._ensure_transaction_unclaimed(provider_transaction_id)
        intent = await self._intent_repo.create(
            PaymentIntent(
                payment_id=f"gig_{application.gig_id.hex[:8]}_{uuid.uuid4().hex[:16]}",
                provider=provider.value,
                provider_transaction_id=provider_transaction_id or None,
                application_id=application.id,
                gig_id=application.gig_id,
                employer_id=employer_id,
                amount=amount,
                status=PaymentIntentStatus.PENDING.value,
            )
        )
        logger.info(
            "payment.intent_created",
            application_id=str(application_id),
            provider=provider.value,
            payment_id=intent.payment_id,
            transaction_id=intent.provider_transaction_id,
            amount=str(amount),
        )
        return intent

    async def attach_provider_transaction(
        self,
        payment_id: str,
        employer_id: str,
        transaction_id: str,
    ) -> PaymentIntent:
        """Record the provider's own id for a pending checkout."""
        intent = await self._intent_repo.get_by_payment_id(payment_id)
        if intent is None:
            raise PaymentNotFoundError(payment_id)
        if intent.employer_id != employer_id:
            raise UnauthorizedActorError("Only the paying employer can update this payment")
        if intent.status != PaymentIntentStatus.PENDING:
            raise PaymentError(f"Cannot update a {intent.status} payment", payment_id=payment_id)
        if intent.provider_transaction_id == transaction_id:
            return intent
        if intent.provider_transaction_id is not None:
            raise PaymentError("Payment already has a provider transaction", payment_id=payment_id)

        await self._ensure_transaction_unclaimed(transaction_id)
        intent.provider_transaction_id = transaction_id
        await self._session.flush()
        logger.info(
            "payment.transaction_attached",
            payment_id=payment_id,
            provider=intent.provider,
            transaction_id=transaction_id,
        )
        return intent

    async def _ensure_transaction_unclaimed(self, transaction_id: str) -> None:
        if await self._intent_repo.get_by_transaction_id(transaction_id) is not None:
            raise PaymentError("Provider transaction is already linked to another payment")

    async def verify_payment(
        self,
        provider: Provider,
        payment_id: str,
        employer_id: str,
        reported_success: bool,
        config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
        sandbox: bool = True,
        status_lookup: PaymentStatusLookup | None = None,
    ) -> ReconciliationOutcome:
        """Synchronous client verify path, used after the provider redirect.

        With a status_lookup the provider itself is asked, and its answer is
        reconciled like a verified webhook; the client's claim is ignored.
        Without one, sandbox mode reconciles a reported success directly,
        while live mode never trusts the client: it only reports current
        state and the webhook does the funding.
        """
        intent = await self._intent_repo.find_for_event(payment_id, payment_id)
        if intent is None or intent.provider != provider.value:
            raise PaymentNotFoundError(payment_id)
        if intent.employer_id != employer_id:
            raise UnauthorizedActorError("Only the paying employer can verify this payment")

        application = await self._app_repo.get_by_id(intent.application_id)
        if application is None:
            raise ApplicationNotFoundError(str(intent.application_id))
        if application.status != ApplicationStatus.ACCEPTED:
            logger.info(
                "payment.verify_already_settled",
                payment_id=payment_id,
                status=application.status,
            )
            return ReconciliationOutcome.DUPLICATE
        if status_lookup is not None:
            return await self._verify_with_provider(intent, status_lookup, config)
        if not sandbox or not reported_success:
            logger.info(
                "payment.verify_awaiting_webhook",
                payment_id=payment_id,
                sandbox=sandbox,
                reported_success=reported_success,
            )
            return ReconciliationOutcome.PENDING

        event = ProviderEvent(
            provider=provider,
            payment_id=intent.payment_id,
            transaction_id=intent.provider_transaction_id,
            application_id=str(intent.application_id),
            outcome=ProviderOutcome.SUCCEEDED,
            raw_status="CLIENT_VERIFY",
        )
        return await self.reconcile(event, config, verified_via="client_verify")

    async def _verify_with_provider(
        self,
        intent: PaymentIntent,
        status_lookup: PaymentStatusLookup,
        config: PlatformConfig,
    ) -> ReconciliationOutcome:
        log = logger.bind(provider=intent.provider, payment_id=intent.payment_id)
        try:
            event = await status_lookup.lookup(intent.payment_id, intent.provider_transaction_id)
        except ProviderLookupError as exc:
            # The webhook remains authoritative; report state and let it fund
            log.warning("payment.verify_lookup_failed", error=exc.message)
            return ReconciliationOutcome.PENDING
        if event is None:
            log.info("payment.verify_unknown_to_provider")
            return ReconciliationOutcome.PENDING
        return await self.reconcile(event, config, verified_via="provider_lookup")

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    async def release_to_worker(self, application: Application, record: EscrowRecord) -> bool:
        """Release held funds to the worker. Idempotent.

        Writes an escrow_release credit for the worker's earnings and a
        platform_commission entry. Returns False if already released. The
        application's own status fields are left to the caller, which flips
        status and payment_status together.
        """
        if record.status == PaymentStatus.RELEASED:
            logger.info("escrow.release_noop", application_id=str(application.id))
            return False

        record.status = PaymentStatus.RELEASED.value
        record.released_at = datetime.now(UTC)

        await self._ledger_repo.record(
            LedgerEntry(
                user_id=application.worker_id,
                entry_type=LedgerEntryType.ESCROW_RELEASE.value,
                amount=record.worker_earnings,
                gig_id=application.gig_id,
                application_id=application.id,
                escrow_record_id=record.id,
                provider_reference=record.provider_transaction_id,
            )
        )
        await self._ledger_repo.record(
            LedgerEntry(
                user_id=PLATFORM_ACCOUNT,
                entry_type=LedgerEntryType.PLATFORM_COMMISSION.value,
                amount=record.platform_commission,
                gig_id=application.gig_id,
                application_id=application.id,
                escrow_record_id=record.id,
                provider_reference=record.provider_transaction_id,
            )
        )
        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.ESCROW_RELEASED,
            old_status=application.status,
            new_status=application.status,
            actor="system",
            metadata={
                "escrow_record_id": str(record.id),
                "worker_earnings": str(record.worker_earnings),
                "platform_commission": str(record.platform_commission),
            },
        )
        logger.info(
            "escrow.released",
            application_id=str(application.id),
            worker_id=application.worker_id,
            amount=str(record.worker_earnings),
        )
        return True


# ---------------------------------------------------------------------------
# Background processing entry point
# ---------------------------------------------------------------------------


@retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    reraise=True,
)
async def process_provider_event(
    event: ProviderEvent,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    verified_via: str = "webhook",
) -> ReconciliationOutcome:
    """Reconcile one verified event in its own unit of work.

    Runs after the webhook has already been acknowledged. Transient
    OperationalErrors are retried with exponential backoff; the Redis "seen"
    key only short-circuits deliveries already committed.
    """
    from gig_escrow.infrastructure.database.engine import unit_of_work
    from gig_escrow.infrastructure.redis_client import check_idempotency, set_idempotency
    from gig_escrow.services.config_service import load_platform_config

    provider = event.provider.value
    if await check_idempotency(provider, event.idempotency_key):
        logger.info("reconciliation.duplicate", reason="redis_seen", payment_id=event.payment_id)
        return ReconciliationOutcome.DUPLICATE

    config = await load_platform_config(session_factory)
    try:
        async with unit_of_work(session_factory) as session:
            outcome = await EscrowReconciliationService(session).reconcile(
                event, config, verified_via=verified_via
            )
    except IntegrityError as exc:
        # Unique constraint backstop: the whole unit rolled back
        logger.warning(
            "reconciliation.duplicate",
            reason="unique_constraint",
            payment_id=event.payment_id,
            error=str(exc.orig),
        )
        outcome = ReconciliationOutcome.DUPLICATE

    # Only a settled success is final; failures may still be followed by a payment
    if event.outcome == ProviderOutcome.SUCCEEDED and outcome in (
        ReconciliationOutcome.FUNDED,
        ReconciliationOutcome.DUPLICATE,
    ):
        await set_idempotency(provider, event.idempotency_key)
    return outcome


@retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    reraise=True,
)
async def run_client_verify(
    provider: Provider,
    payment_id: str,
    employer_id: str,
    reported_success: bool,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
    sandbox: bool = True,
    status_lookup: PaymentStatusLookup | None = None,
) -> ReconciliationOutcome:
    """Client verify in its own unit of work, racing the webhook safely.

    Domain errors (unknown payment, wrong employer) propagate to the caller.
    """
    from gig_escrow.infrastructure.database.engine import unit_of_work

    try:
        async with unit_of_work(session_factory) as session:
            return await EscrowReconciliationService(session).verify_payment(
                provider=provider,
                payment_id=payment_id,
                employer_id=employer_id,
                reported_success=reported_success,
                config=config,
                sandbox=sandbox,
                status_lookup=status_lookup,
            )
    except IntegrityError:
        logger.info("payment.verify_lost_race", payment_id=payment_id)
        return ReconciliationOutcome.DUPLICATE

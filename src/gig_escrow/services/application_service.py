"""Application Service — the application lifecycle state machine's operations.

This is the application layer that coordinates between:
    - Domain state machine (transition guard + composite state table)
    - Repositories (data access)
    - Event log (audit trail)

Worker and employer actions, the escrow reconciliation path, the dispute
mediation service and the expiry sweeper all call into this service, so
every status change goes through the same guard.

User-invoked operations are optimistic: read, validate, write. The
applications.version column makes a conflicting concurrent write fail with
StateChangedError instead of silently overwriting. Funding is not optimistic:
mark_funded uses a single conditional UPDATE keyed by the expected status.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.orm.exc import StaleDataError

from gig_escrow.domain.enums import (
    ActorRole,
    ApplicationStatus,
    CompletionResolution,
    EventType,
    GigStatus,
    PaymentIntentStatus,
    PaymentStatus,
    RateStatus,
)
from gig_escrow.domain.exceptions import (
    AnotherWorkerSelectedError,
    ApplicationNotFoundError,
    CompletionError,
    DomainValidationError,
    EscrowInvariantViolation,
    GigNotFoundError,
    InvalidAmountError,
    InvalidStateTransitionError,
    OwnOfferConfirmationError,
    RateAlreadyAgreedError,
    StateChangedError,
    UnauthorizedActorError,
)
from gig_escrow.domain.fees import DEFAULT_PLATFORM_CONFIG, to_money
from gig_escrow.domain.state_machine import (
    ApplicationState,
    ApplicationStateMachine,
    ensure_legal_state,
    validate_transition,
)
from gig_escrow.domain.validation import clean_note, sanitize_text, validate_dispute_reason
from gig_escrow.infrastructure.database.orm_models import Application, RateHistoryEntry
from gig_escrow.infrastructure.database.repositories import (
    ApplicationRepository,
    EscrowRecordRepository,
    EventRepository,
    GigRepository,
    PaymentIntentRepository,
    RateHistoryRepository,
)
from gig_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession

    from gig_escrow.domain.fees import PlatformConfig

logger = get_logger(__name__)

SYSTEM_ACTOR = ActorRole.SYSTEM.value

# Statuses in which the rate can no longer be negotiated
_RATE_LOCKED_STATUSES = frozenset(
    {
        ApplicationStatus.FUNDED,
        ApplicationStatus.COMPLETED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.WITHDRAWN,
    }
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ApplicationService:
    """Manages the application lifecycle."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._app_repo = ApplicationRepository(session)
        self._gig_repo = GigRepository(session)
        self._rate_repo = RateHistoryRepository(session)
        self._escrow_repo = EscrowRecordRepository(session)
        self._intent_repo = PaymentIntentRepository(session)
        self._event_repo = EventRepository(session)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_application(
        self,
        gig_id: uuid.UUID,
        worker_id: str,
        proposed_rate: Decimal | int | str,
        config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
        note: str | None = None,
    ) -> Application:
        """Create a pending application with the worker's opening rate."""
        gig = await self._gig_repo.get_by_id(gig_id)
        if gig is None:
            raise GigNotFoundError(str(gig_id))
        if gig.status != GigStatus.OPEN:
            raise DomainValidationError("This gig is no longer accepting applications")
        if gig.employer_id == worker_id:
            raise UnauthorizedActorError("You cannot apply to your own gig")
        if await self._app_repo.get_by_gig_and_worker(gig_id, worker_id) is not None:
            raise DomainValidationError("You have already applied for this gig")

        amount = self._validate_rate(proposed_rate, config)
        now = _utcnow()
        application = Application(
            gig_id=gig.id,
            worker_id=worker_id,
            employer_id=gig.employer_id,
            status=ApplicationStatus.PENDING.value,
            payment_status=PaymentStatus.UNPAID.value,
            rate_status=RateStatus.PROPOSED.value,
            proposed_rate=amount,
            last_rate_amount=amount,
            last_rate_by=ActorRole.WORKER.value,
            last_rate_at=now,
        )
        application = await self._app_repo.create(application)

        await self._rate_repo.append(
            RateHistoryEntry(
                application_id=application.id,
                amount=amount,
                proposer=ActorRole.WORKER.value,
                proposer_id=worker_id,
                note=clean_note(note),
            )
        )
        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.APPLICATION_CREATED,
            old_status=None,
            new_status=application.status,
            actor=worker_id,
            metadata={"proposed_rate": str(amount)},
        )

        logger.info(
            "application.created",
            application_id=str(application.id),
            gig_id=str(gig_id),
            rate=str(amount),
        )
        return application

    # ------------------------------------------------------------------
    # Rate Negotiation
    # ------------------------------------------------------------------

    async def propose_or_counter_rate(
        self,
        application_id: uuid.UUID,
        actor_id: str,
        actor_role: ActorRole,
        amount: Decimal | int | str,
        config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
        note: str | None = None,
    ) -> Application:
        """Append a rate offer and mark the negotiation as countered.

        Re-submitting the same amount as the author of the open offer is a
        no-op. A new offer re-opens a previously agreed rate.
        """
        application = await self._get_application_or_raise(application_id)
        self._authorize_rate_actor(application, actor_id, actor_role, "update rate")
        self._ensure_rate_negotiable(application)
        value = self._validate_rate(amount, config)

        if (
            application.last_rate_by == actor_role.value
            and application.last_rate_amount == value
            and application.rate_status != RateStatus.AGREED
        ):
            logger.info(
                "application.rate_resubmitted",
                application_id=str(application_id),
                by=actor_role.value,
            )
            return application

        now = _utcnow()
        application.rate_status = RateStatus.COUNTERED.value
        application.agreed_rate = None
        application.last_rate_amount = value
        application.last_rate_by = actor_role.value
        application.last_rate_at = now
        await self._save(application)
        await self._cancel_pending_intents(application)

        await self._rate_repo.append(
            RateHistoryEntry(
                application_id=application.id,
                amount=value,
                proposer=actor_role.value,
                proposer_id=actor_id,
                note=clean_note(note),
            )
        )
        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.RATE_PROPOSED,
            old_status=application.status,
            new_status=application.status,
            actor=actor_id,
            metadata={"amount": str(value), "by": actor_role.value},
        )

        logger.info(
            "application.rate_countered",
            application_id=str(application_id),
            by=actor_role.value,
            amount=str(value),
        )
        return application

    async def _cancel_pending_intents(self, application: Application) -> None:
        """A checkout opened for the old rate must not fund the new one."""
        for intent in await self._intent_repo.list_pending_for_application(application.id):
            await self._intent_repo.update_status(
                intent,
                PaymentIntentStatus.CANCELLED,
                failure_reason="rate_renegotiated",
            )
            logger.info(
                "payment.intent_cancelled",
                application_id=str(application.id),
                payment_id=intent.payment_id,
                reason="rate_renegotiated",
            )

    async def confirm_rate(
        self,
        application_id: uuid.UUID,
        actor_id: str,
        actor_role: ActorRole,
    ) -> Application:
        """Agree to the other party's open offer."""
        application = await self._get_application_or_raise(application_id)
        self._authorize_rate_actor(application, actor_id, actor_role, "confirm")
        self._ensure_rate_negotiable(application)

        if application.rate_status == RateStatus.AGREED:
            raise RateAlreadyAgreedError()
        if application.last_rate_by == actor_role.value:
            raise OwnOfferConfirmationError()

        self._agree_rate(application)
        await self._save(application)

        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.RATE_AGREED,
            old_status=application.status,
            new_status=application.status,
            actor=actor_id,
            metadata={"agreed_rate": str(application.agreed_rate)},
        )

        logger.info(
            "application.rate_agreed",
            application_id=str(application_id),
            agreed_rate=str(application.agreed_rate),
        )
        return application

    async def get_rate_history(self, application_id: uuid.UUID) -> list[RateHistoryEntry]:
        await self._get_application_or_raise(application_id)
        return await self._rate_repo.list_for_application(application_id)

    # ------------------------------------------------------------------
    # Acceptance / Rejection / Withdrawal
    # ------------------------------------------------------------------

    async def accept(self, application_id: uuid.UUID, employer_id: str) -> Application:
        """Employer accepts an application.

        The gig keeps its status (still open) until funds are escrowed; it
        only gains assigned_to. Other pending applications are rejected.
        """
        application = await self._get_application_or_raise(application_id)
        if application.employer_id != employer_id:
            raise UnauthorizedActorError("Only the gig employer can accept applications")

        competing = await self._app_repo.list_by_gig(
            application.gig_id,
            statuses=[ApplicationStatus.ACCEPTED, ApplicationStatus.FUNDED],
        )
        if any(other.id != application.id for other in competing):
            raise AnotherWorkerSelectedError(str(application.gig_id))

        old_status = application.status
        self._fire_transition(application, "accept")

        auto_confirmed = False
        if application.rate_status != RateStatus.AGREED:
            if application.last_rate_by == ActorRole.EMPLOYER:
                raise DomainValidationError(
                    "The worker has not confirmed your counter-offer yet"
                )
            # Accepting the worker's open proposal confirms it
            self._agree_rate(application)
            auto_confirmed = True

        now = _utcnow()
        application.status = ApplicationStatus.ACCEPTED.value
        application.accepted_at = now
        ApplicationState.of(application)
        application.gig.assigned_to = application.worker_id
        await self._save(application)

        if auto_confirmed:
            await self._event_repo.record(
                application_id=application.id,
                event_type=EventType.RATE_AGREED,
                old_status=old_status,
                new_status=old_status,
                actor=employer_id,
                metadata={"agreed_rate": str(application.agreed_rate), "via": "accept"},
            )
        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.APPLICATION_ACCEPTED,
            old_status=old_status,
            new_status=application.status,
            actor=employer_id,
            metadata={"agreed_rate": str(application.agreed_rate)},
        )

        rejected = await self._reject_other_pending(application, employer_id)

        logger.info(
            "application.accepted",
            application_id=str(application_id),
            gig_id=str(application.gig_id),
            others_rejected=rejected,
        )
        return application

    async def reject(
        self,
        application_id: uuid.UUID,
        employer_id: str,
        reason: str | None = None,
    ) -> Application:
        """Employer rejects a pending or accepted (still unfunded) application."""
        application = await self._get_application_or_raise(application_id)
        if application.employer_id != employer_id:
            raise UnauthorizedActorError("Only the gig employer can reject applications")

        old_status = application.status
        self._fire_transition(application, "reject")
        application.status = ApplicationStatus.REJECTED.value
        self._release_assignment(application)
        await self._save(application)

        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.APPLICATION_REJECTED,
            old_status=old_status,
            new_status=application.status,
            actor=employer_id,
            metadata={"reason": clean_note(reason)} if clean_note(reason) else None,
        )
        logger.info("application.rejected", application_id=str(application_id))
        return application

    async def withdraw(self, application_id: uuid.UUID, worker_id: str) -> Application:
        """Worker withdraws a pending or accepted (still unfunded) application."""
        application = await self._get_application_or_raise(application_id)
        if application.worker_id != worker_id:
            raise UnauthorizedActorError("Only the applicant can withdraw this application")

        old_status = application.status
        self._fire_transition(application, "withdraw")
        application.status = ApplicationStatus.WITHDRAWN.value
        self._release_assignment(application)
        await self._save(application)

        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.APPLICATION_WITHDRAWN,
            old_status=old_status,
            new_status=application.status,
            actor=worker_id,
        )
        logger.info("application.withdrawn", application_id=str(application_id))
        return application

    # ------------------------------------------------------------------
    # Funding (escrow reconciliation path only)
    # ------------------------------------------------------------------

    async def mark_funded(
        self,
        application_id: uuid.UUID,
        payment_id: str,
        actor: str = SYSTEM_ACTOR,
        metadata: dict | None = None,
    ) -> Application | None:
        """Move an accepted application to funded, exactly once.

        Returns the refreshed application for the single caller whose
        conditional write succeeded, or None when the application was no
        longer `accepted` (duplicate delivery, lost race): a no-op, not an
        error.
        """
        # Guard: the transition and resulting pair must be legal
        validate_transition(ApplicationStatus.ACCEPTED.value, "escrow_funded")
        ensure_legal_state(ApplicationStatus.FUNDED, PaymentStatus.IN_ESCROW)

        now = _utcnow()
        won = await self._app_repo.compare_and_set_status(
            application_id,
            expected_status=ApplicationStatus.ACCEPTED,
            values={
                "status": ApplicationStatus.FUNDED.value,
                "payment_status": PaymentStatus.IN_ESCROW.value,
                "funded_at": now,
                "payment_id": payment_id,
                "updated_at": now,
            },
        )
        if not won:
            logger.info("application.mark_funded_noop", application_id=str(application_id))
            return None

        application = await self._app_repo.get_by_id(application_id, refresh=True)
        if application is None:
            raise EscrowInvariantViolation(
                "Application vanished after conditional funding write",
                application_id=str(application_id),
            )
        # The only transition that moves a gig to in-progress
        await self._gig_repo.update_status(application.gig, GigStatus.IN_PROGRESS)

        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.ESCROW_FUNDED,
            old_status=ApplicationStatus.ACCEPTED.value,
            new_status=application.status,
            actor=actor,
            metadata={"payment_id": payment_id, **(metadata or {})},
        )
        logger.info(
            "application.funded",
            application_id=str(application_id),
            gig_id=str(application.gig_id),
            payment_id=payment_id,
        )
        return application

    # ------------------------------------------------------------------
    # Completion Workflow
    # ------------------------------------------------------------------

    async def request_completion(
        self,
        application_id: uuid.UUID,
        requested_by: str,
        config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
        now: datetime | None = None,
    ) -> Application:
        """Ask for completion and start the auto-release clock."""
        application = await self._get_application_or_raise(application_id)
        if requested_by not in (application.worker_id, application.employer_id):
            raise UnauthorizedActorError(
                "Only the assigned worker or the gig employer can request completion"
            )
        if application.status != ApplicationStatus.FUNDED:
            raise CompletionError("Only funded applications can request completion")
        if application.completion_requested_at is not None:
            raise CompletionError("Completion has already been requested for this application")

        now = now or _utcnow()
        application.completion_requested_at = now
        application.completion_requested_by = requested_by
        application.completion_auto_release_at = now + timedelta(
            days=config.escrow_auto_release_days
        )
        application.completion_resolution = None
        application.completion_resolved_at = None
        application.completion_resolved_by = None
        application.completion_resolution_notes = None
        await self._save(application)

        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.COMPLETION_REQUESTED,
            old_status=application.status,
            new_status=application.status,
            actor=requested_by,
            metadata={"auto_release_at": application.completion_auto_release_at.isoformat()},
        )
        logger.info(
            "application.completion_requested",
            application_id=str(application_id),
            auto_release_at=application.completion_auto_release_at.isoformat(),
        )
        return application

    async def dispute_completion(
        self,
        application_id: uuid.UUID,
        employer_id: str,
        reason: str,
    ) -> Application:
        """Employer contests a completion request; freezes auto-release."""
        application = await self._get_application_or_raise(application_id)
        if application.employer_id != employer_id:
            raise UnauthorizedActorError("Only the gig employer can dispute completion")
        if application.status != ApplicationStatus.FUNDED or application.completion_requested_at is None:
            raise CompletionError("No completion request found for this application")
        if application.completion_disputed_at is not None:
            raise CompletionError("Completion has already been disputed")

        cleaned = sanitize_text(reason)
        error = validate_dispute_reason(cleaned)
        if error:
            raise DomainValidationError(error)

        application.completion_disputed_at = _utcnow()
        application.completion_dispute_reason = cleaned
        application.completion_auto_release_at = None
        application.payment_status = PaymentStatus.DISPUTED.value
        ApplicationState.of(application)
        await self._save(application)

        escrow = await self._escrow_repo.get_by_application(application.id)
        if escrow is not None:
            escrow.status = PaymentStatus.DISPUTED.value
            await self._session.flush()

        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.DISPUTE_RAISED,
            old_status=application.status,
            new_status=application.status,
            actor=employer_id,
            metadata={"reason": cleaned},
        )
        logger.info("application.completion_disputed", application_id=str(application_id))
        return application

    async def approve_completion(
        self,
        application_id: uuid.UUID,
        employer_id: str,
    ) -> Application:
        """Employer approves the pending completion request and escrow is released."""
        application = await self._get_application_or_raise(application_id)
        if application.employer_id != employer_id:
            raise UnauthorizedActorError("Only the gig employer can approve completion")
        if application.status != ApplicationStatus.FUNDED or application.completion_requested_at is None:
            raise CompletionError("No completion request found for this application")
        if application.completion_disputed_at is not None:
            raise CompletionError("This completion is disputed and must be resolved by an admin")

        await self.finalize_completion(
            application,
            actor=employer_id,
            resolution=CompletionResolution.APPROVED,
            event_type=EventType.COMPLETION_APPROVED,
        )
        return application

    async def auto_release(
        self,
        application_id: uuid.UUID,
        now: datetime | None = None,
    ) -> bool:
        """Finalize an undisputed completion whose deadline has passed.

        Eligibility is re-read inside the caller's transaction. Returns False
        (without raising) when the application is missing or not eligible.
        """
        now = now or _utcnow()
        application = await self._app_repo.get_by_id(application_id)
        if application is None:
            return False
        if (
            application.status != ApplicationStatus.FUNDED
            or application.completion_requested_at is None
            or application.completion_disputed_at is not None
            or application.completion_auto_release_at is None
            or now < application.completion_auto_release_at
        ):
            return False

        await self.finalize_completion(
            application,
            actor=SYSTEM_ACTOR,
            resolution=CompletionResolution.AUTO_RELEASED,
            event_type=EventType.COMPLETION_AUTO_RELEASED,
        )
        return True

    async def finalize_completion(
        self,
        application: Application,
        actor: str,
        resolution: CompletionResolution,
        event_type: EventType,
        notes: str | None = None,
    ) -> Application:
        """funded -> completed, gig -> completed, and release escrow if held.

        Shared by employer approval, auto-release, and admin resolution in
        the worker's favour. Without an escrow record the application is
        finalized as `paid`; an in-platform payment id with no record is an
        invariant violation.
        """
        from gig_escrow.services.escrow_service import EscrowReconciliationService

        old_status = application.status
        self._fire_transition(application, "complete")

        record = await self._escrow_repo.get_by_application(application.id)
        released = False
        if record is not None:
            released = await EscrowReconciliationService(self._session).release_to_worker(
                application, record
            )
            application.payment_status = PaymentStatus.RELEASED.value
        elif application.payment_id:
            logger.critical(
                "escrow.invariant_violation",
                application_id=str(application.id),
                payment_id=application.payment_id,
                detail="funded with in-platform payment but no escrow record",
            )
            raise EscrowInvariantViolation(
                "Funded application has no escrow record",
                application_id=str(application.id),
            )
        else:
            application.payment_status = PaymentStatus.PAID.value

        now = _utcnow()
        application.status = ApplicationStatus.COMPLETED.value
        application.completed_at = now
        application.completion_auto_release_at = None
        application.completion_resolution = resolution.value
        application.completion_resolved_at = now
        application.completion_resolved_by = actor
        application.completion_resolution_notes = notes
        ApplicationState.of(application)
        application.gig.status = GigStatus.COMPLETED.value
        await self._save(application)

        await self._event_repo.record(
            application_id=application.id,
            event_type=event_type,
            old_status=old_status,
            new_status=application.status,
            actor=actor,
            metadata={
                "resolution": resolution.value,
                "escrow_released": released,
                "payment_status": application.payment_status,
            },
        )
        logger.info(
            "application.completed",
            application_id=str(application.id),
            resolution=resolution.value,
            escrow_released=released,
        )
        return application

    # ------------------------------------------------------------------
    # Funding timeout (sweeper path)
    # ------------------------------------------------------------------

    async def time_out_funding(
        self,
        application_id: uuid.UUID,
        config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
        now: datetime | None = None,
    ) -> bool:
        """Reject an accepted application that was never funded in time."""
        now = now or _utcnow()
        application = await self._app_repo.get_by_id(application_id)
        if application is None or application.status != ApplicationStatus.ACCEPTED:
            return False
        cutoff = now - timedelta(hours=config.funding_timeout_hours)
        if application.accepted_at is None or application.accepted_at >= cutoff:
            return False

        self._fire_transition(application, "funding_timed_out")
        application.status = ApplicationStatus.REJECTED.value
        self._release_assignment(application)
        await self._save(application)

        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.FUNDING_TIMED_OUT,
            old_status=ApplicationStatus.ACCEPTED.value,
            new_status=application.status,
            actor=SYSTEM_ACTOR,
            metadata={"funding_timeout_hours": config.funding_timeout_hours},
        )
        logger.info("application.funding_timed_out", application_id=str(application_id))
        return True

    async def close_for_cancelled_gig(self, gig_id: uuid.UUID, reason: str) -> int:
        """Reject every still-unfunded application of a cancelled gig."""
        open_applications = await self._app_repo.list_by_gig(
            gig_id,
            statuses=[ApplicationStatus.PENDING, ApplicationStatus.ACCEPTED],
        )
        for application in open_applications:
            old_status = application.status
            self._fire_transition(application, "reject")
            application.status = ApplicationStatus.REJECTED.value
            self._release_assignment(application)
            await self._save(application)
            await self._event_repo.record(
                application_id=application.id,
                event_type=EventType.APPLICATION_REJECTED,
                old_status=old_status,
                new_status=application.status,
                actor=SYSTEM_ACTOR,
                metadata={"reason": reason},
            )
        return len(open_applications)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_application(self, application_id: uuid.UUID) -> Application:
        return await self._get_application_or_raise(application_id)

    async def get_status(self, application_id: uuid.UUID) -> dict:
        """Get application status with allowed events."""
        application = await self._get_application_or_raise(application_id)
        sm = ApplicationStateMachine(current_status=application.status)
        return {
            "application_id": str(application.id),
            "status": application.status,
            "payment_status": application.payment_status,
            "rate_status": application.rate_status,
            "allowed_events": sm.get_allowed_events(),
        }

    async def get_events(self, application_id: uuid.UUID) -> list:
        """Get audit trail."""
        return await self._event_repo.get_by_application(application_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_application_or_raise(self, application_id: uuid.UUID) -> Application:
        application = await self._app_repo.get_by_id(application_id)
        if application is None:
            raise ApplicationNotFoundError(str(application_id))
        return application

    async def _save(self, application: Application) -> None:
        try:
            await self._app_repo.save(application)
        except StaleDataError as err:
            logger.warning("application.state_changed", application_id=str(application.id))
            raise StateChangedError(str(application.id)) from err

    def _fire_transition(self, application: Application, event_name: str) -> None:
        """Validate and fire a state machine transition.

        Raises InvalidStateTransitionError if the transition is illegal.
        """
        from statemachine.exceptions import TransitionNotAllowed

        try:
            validate_transition(application.status, event_name)
        except (TransitionNotAllowed, ValueError) as err:
            raise InvalidStateTransitionError(application.status, event_name) from err

    @staticmethod
    def _validate_rate(amount: Decimal | int | str, config: PlatformConfig) -> Decimal:
        value = to_money(amount)
        if value <= 0:
            raise InvalidAmountError("Rate must be greater than 0")
        if value > config.max_gig_amount:
            raise InvalidAmountError(f"Rate cannot exceed R{config.max_gig_amount:,.0f}")
        return value

    @staticmethod
    def _authorize_rate_actor(
        application: Application,
        actor_id: str,
        actor_role: ActorRole,
        action: str,
    ) -> None:
        if actor_role == ActorRole.WORKER:
            if application.worker_id != actor_id:
                raise UnauthorizedActorError(
                    f"Unauthorized: Only the applicant can {action} as worker"
                )
        elif actor_role == ActorRole.EMPLOYER:
            if application.employer_id != actor_id:
                raise UnauthorizedActorError(
                    f"Unauthorized: Only the employer can {action} as employer"
                )
        else:
            raise UnauthorizedActorError(f"Unauthorized: {actor_role} cannot {action}")

    @staticmethod
    def _ensure_rate_negotiable(application: Application) -> None:
        if application.status in _RATE_LOCKED_STATUSES:
            raise DomainValidationError(
                f"Cannot update rate on application with status: {application.status}"
            )

    @staticmethod
    def _agree_rate(application: Application) -> None:
        application.rate_status = RateStatus.AGREED.value
        application.agreed_rate = (
            application.last_rate_amount
            if application.last_rate_amount is not None
            else application.proposed_rate
        )

    @staticmethod
    def _release_assignment(application: Application) -> None:
        if application.gig.assigned_to == application.worker_id:
            application.gig.assigned_to = None

    async def _reject_other_pending(self, accepted: Application, actor: str) -> int:
        others = await self._app_repo.list_by_gig(
            accepted.gig_id, statuses=[ApplicationStatus.PENDING]
        )
        count = 0
        for other in others:
            if other.id == accepted.id:
                continue
            self._fire_transition(other, "reject")
            other.status = ApplicationStatus.REJECTED.value
            await self._save(other)
            await self._event_repo.record(
                application_id=other.id,
                event_type=EventType.APPLICATION_REJECTED,
                old_status=ApplicationStatus.PENDING.value,
                new_status=other.status,
                actor=actor,
                metadata={"reason": "another_worker_selected"},
            )
            count += 1
        return count

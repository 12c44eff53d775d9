"""Dispute Mediation Service — admin resolution of contested completions.

A dispute is a sub-state of a funded application, not an entity of its own.
Two outcomes:
    - In favour of the worker: the application completes and escrow is
      released (only if an escrow record exists).
    - In favour of the employer: the completion fields are cleared so the
      worker can request completion again. Top-level status, gig status and
      escrow are untouched; funds stay held.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm.exc import StaleDataError

from gig_escrow.domain.enums import (
    ApplicationStatus,
    CompletionResolution,
    EventType,
    PaymentStatus,
)
from gig_escrow.domain.exceptions import (
    ApplicationNotFoundError,
    DisputeAlreadyResolvedError,
    NoActiveDisputeError,
    StateChangedError,
)
from gig_escrow.domain.state_machine import ApplicationState
from gig_escrow.domain.validation import sanitize_text
from gig_escrow.infrastructure.database.repositories import (
    ApplicationRepository,
    EscrowRecordRepository,
    EventRepository,
)
from gig_escrow.logging_config import get_logger
from gig_escrow.services.application_service import ApplicationService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from gig_escrow.infrastructure.database.orm_models import Application

logger = get_logger(__name__)


class DisputeMediationService:
    """Admin-invoked resolution of disputed completions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._app_repo = ApplicationRepository(session)
        self._escrow_repo = EscrowRecordRepository(session)
        self._event_repo = EventRepository(session)
        self._applications = ApplicationService(session)

    async def list_active_disputes(self) -> list[Application]:
        return await self._app_repo.list_active_disputes()

    async def resolve_in_favor_of_worker(
        self,
        application_id: uuid.UUID,
        admin_id: str,
        notes: str | None = None,
    ) -> Application:
        """Complete the application and release escrow if a record exists."""
        application = await self._get_active_dispute(application_id)

        await self._applications.finalize_completion(
            application,
            actor=admin_id,
            resolution=CompletionResolution.APPROVED,
            event_type=EventType.DISPUTE_RESOLVED_WORKER,
            notes=self._clean_notes(notes),
        )
        logger.info(
            "dispute.resolved_worker",
            application_id=str(application_id),
            admin_id=admin_id,
            payment_status=application.payment_status,
        )
        return application

    async def resolve_in_favor_of_employer(
        self,
        application_id: uuid.UUID,
        admin_id: str,
        notes: str | None = None,
    ) -> Application:
        """Clear the completion request; funds stay in escrow."""
        application = await self._get_active_dispute(application_id)

        application.completion_requested_at = None
        application.completion_requested_by = None
        application.completion_auto_release_at = None
        application.completion_disputed_at = None
        application.completion_dispute_reason = None
        application.completion_resolution = CompletionResolution.REJECTED.value
        application.completion_resolved_at = datetime.now(UTC)
        application.completion_resolved_by = admin_id
        application.completion_resolution_notes = self._clean_notes(notes)
        application.payment_status = PaymentStatus.IN_ESCROW.value
        ApplicationState.of(application)

        record = await self._escrow_repo.get_by_application(application.id)
        if record is not None and record.status == PaymentStatus.DISPUTED:
            record.status = PaymentStatus.IN_ESCROW.value

        try:
            await self._app_repo.save(application)
        except StaleDataError as err:
            raise StateChangedError(str(application_id)) from err

        await self._event_repo.record(
            application_id=application.id,
            event_type=EventType.DISPUTE_RESOLVED_EMPLOYER,
            old_status=application.status,
            new_status=application.status,
            actor=admin_id,
            metadata={"notes": application.completion_resolution_notes},
        )
        logger.info(
            "dispute.resolved_employer",
            application_id=str(application_id),
            admin_id=admin_id,
        )
        return application

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_active_dispute(self, application_id: uuid.UUID) -> Application:
        application = await self._app_repo.get_by_id(application_id)
        if application is None:
            raise ApplicationNotFoundError(str(application_id))
        if application.completion_disputed_at is None:
            raise NoActiveDisputeError()
        if (
            application.completion_resolved_at is not None
            or application.status != ApplicationStatus.FUNDED
        ):
            raise DisputeAlreadyResolvedError()
        return application

    @staticmethod
    def _clean_notes(notes: str | None) -> str | None:
        cleaned = sanitize_text(notes)
        return cleaned or None

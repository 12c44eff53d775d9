"""Concurrent funding against a file-backed database.

Each unit of work gets its own connection, so the webhook handler and the
client verify path genuinely race for the conditional status write.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from gig_escrow.domain.enums import (
    ApplicationStatus,
    EventType,
    LedgerEntryType,
    Provider,
    ReconciliationOutcome,
)
from gig_escrow.infrastructure.database.engine import unit_of_work
from gig_escrow.infrastructure.database.repositories import (
    EscrowRecordRepository,
    EventRepository,
    LedgerRepository,
)
from gig_escrow.services.escrow_service import process_provider_event, run_client_verify


@pytest.fixture
def no_redis():
    with (
        patch(
            "gig_escrow.infrastructure.redis_client.check_idempotency",
            new=AsyncMock(return_value=False),
        ),
        patch("gig_escrow.infrastructure.redis_client.set_idempotency", new=AsyncMock()),
    ):
        yield


async def _funding_footprint(session_factory, application_id) -> tuple[int, int, int]:
    async with unit_of_work(session_factory) as session:
        records = await EscrowRecordRepository(session).count_for_application(application_id)
        ledger = await LedgerRepository(session).list_for_application(application_id)
        events = await EventRepository(session).get_by_application(application_id)
    funding_entries = [e for e in ledger if e.entry_type == LedgerEntryType.ESCROW_FUNDING]
    funded_events = [e for e in events if e.event_type == EventType.ESCROW_FUNDED]
    return records, len(funding_entries), len(funded_events)


class TestConcurrentFunding:
    @pytest.mark.asyncio
    async def test_simultaneous_webhook_deliveries(
        self, file_market, file_session_factory, make_success_event, no_redis
    ) -> None:
        deal = await file_market.with_intent()
        event = make_success_event(deal)

        outcomes = await asyncio.gather(
            process_provider_event(event, file_session_factory),
            process_provider_event(event, file_session_factory),
        )

        assert sorted(outcomes) == sorted(
            [ReconciliationOutcome.FUNDED, ReconciliationOutcome.DUPLICATE]
        )
        assert await _funding_footprint(file_session_factory, deal.application_id) == (1, 1, 1)
        application = await file_market.application(deal.application_id)
        assert application.status == ApplicationStatus.FUNDED

    @pytest.mark.asyncio
    async def test_webhook_races_client_verify(
        self, file_market, file_session_factory, make_success_event, no_redis
    ) -> None:
        deal = await file_market.with_intent()

        outcomes = await asyncio.gather(
            process_provider_event(make_success_event(deal), file_session_factory),
            run_client_verify(
                Provider.PAYFAST,
                deal.payment_id,
                deal.employer_id,
                reported_success=True,
                session_factory=file_session_factory,
            ),
        )

        assert sorted(outcomes) == sorted(
            [ReconciliationOutcome.FUNDED, ReconciliationOutcome.DUPLICATE]
        )
        assert await _funding_footprint(file_session_factory, deal.application_id) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_burst_of_redeliveries(
        self, file_market, file_session_factory, make_success_event, no_redis
    ) -> None:
        deal = await file_market.with_intent()
        event = make_success_event(deal)

        outcomes = await asyncio.gather(
            *(process_provider_event(event, file_session_factory) for _ in range(4))
        )

        assert outcomes.count(ReconciliationOutcome.FUNDED) == 1
        assert outcomes.count(ReconciliationOutcome.DUPLICATE) == 3
        assert await _funding_footprint(file_session_factory, deal.application_id) == (1, 1, 1)

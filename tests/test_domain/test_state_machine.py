"""Tests for the ApplicationStateMachine domain guard and composite state table.

These tests verify that:
    1. All valid transitions are allowed.
    2. All invalid transitions are blocked.
    3. The convenience function validate_transition works.
    4. Illegal (status, payment_status) pairs are rejected centrally.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest
from statemachine.exceptions import TransitionNotAllowed

from gig_escrow.domain.enums import ApplicationStatus, PaymentStatus, RateStatus
from gig_escrow.domain.exceptions import InvalidCompositeStateError
from gig_escrow.domain.state_machine import (
    LEGAL_PAYMENT_STATUSES,
    ApplicationState,
    ApplicationStateMachine,
    ensure_legal_state,
    validate_transition,
)


class TestHappyPath:
    """pending -> accepted -> funded -> completed."""

    def test_full_lifecycle(self) -> None:
        sm = ApplicationStateMachine("pending")
        assert sm.status == "pending"

        sm.accept()
        assert sm.status == "accepted"

        sm.escrow_funded()
        assert sm.status == "funded"

        sm.complete()
        assert sm.status == "completed"


class TestExitPaths:
    def test_reject_from_pending(self) -> None:
        sm = ApplicationStateMachine("pending")
        sm.reject()
        assert sm.status == "rejected"

    def test_reject_from_accepted(self) -> None:
        sm = ApplicationStateMachine("accepted")
        sm.reject()
        assert sm.status == "rejected"

    def test_withdraw_from_accepted(self) -> None:
        sm = ApplicationStateMachine("accepted")
        sm.withdraw()
        assert sm.status == "withdrawn"

    def test_funding_timeout(self) -> None:
        sm = ApplicationStateMachine("accepted")
        sm.funding_timed_out()
        assert sm.status == "rejected"


class TestIllegalTransitions:
    """Verify that illegal transitions raise TransitionNotAllowed."""

    def test_pending_to_funded(self) -> None:
        sm = ApplicationStateMachine("pending")
        with pytest.raises(TransitionNotAllowed):
            sm.escrow_funded()

    def test_funded_cannot_be_withdrawn(self) -> None:
        sm = ApplicationStateMachine("funded")
        with pytest.raises(TransitionNotAllowed):
            sm.withdraw()

    def test_funded_cannot_be_rejected(self) -> None:
        sm = ApplicationStateMachine("funded")
        with pytest.raises(TransitionNotAllowed):
            sm.reject()

    def test_accepted_cannot_complete(self) -> None:
        sm = ApplicationStateMachine("accepted")
        with pytest.raises(TransitionNotAllowed):
            sm.complete()

    @pytest.mark.parametrize("status", ["completed", "rejected", "withdrawn"])
    def test_terminal_states_are_final(self, status: str) -> None:
        assert ApplicationStateMachine(status).get_allowed_events() == []


class TestAllowedEvents:
    def test_pending_allowed(self) -> None:
        allowed = ApplicationStateMachine("pending").get_allowed_events()
        assert set(allowed) == {"accept", "reject", "withdraw"}

    def test_accepted_allowed(self) -> None:
        allowed = ApplicationStateMachine("accepted").get_allowed_events()
        assert set(allowed) == {"reject", "withdraw", "funding_timed_out", "escrow_funded"}

    def test_funded_allowed(self) -> None:
        assert ApplicationStateMachine("funded").get_allowed_events() == ["complete"]


class TestValidateTransitionFunction:
    def test_valid_transition(self) -> None:
        assert validate_transition("accepted", "escrow_funded") == "funded"

    def test_invalid_event_name(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            validate_transition("accepted", "nonexistent_event")

    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            ApplicationStateMachine("INVALID_STATUS")

    def test_illegal_transition(self) -> None:
        with pytest.raises(TransitionNotAllowed):
            validate_transition("completed", "reject")


class TestCompositeState:
    """status and payment_status are one state; illegal pairs cannot exist."""

    def test_every_status_has_an_entry(self) -> None:
        assert set(LEGAL_PAYMENT_STATUSES) == set(ApplicationStatus)

    @pytest.mark.parametrize(
        ("status", "payment_status"),
        [
            ("pending", "unpaid"),
            ("accepted", "unpaid"),
            ("funded", "in_escrow"),
            ("funded", "disputed"),
            ("completed", "released"),
            ("completed", "paid"),
            ("rejected", "unpaid"),
        ],
    )
    def test_legal_pairs(self, status: str, payment_status: str) -> None:
        ensure_legal_state(status, payment_status)

    @pytest.mark.parametrize(
        ("status", "payment_status"),
        [
            ("completed", "unpaid"),
            ("completed", "in_escrow"),
            ("accepted", "in_escrow"),
            ("funded", "unpaid"),
            ("funded", "released"),
            ("withdrawn", "paid"),
        ],
    )
    def test_illegal_pairs(self, status: str, payment_status: str) -> None:
        with pytest.raises(InvalidCompositeStateError):
            ensure_legal_state(status, payment_status)

    def test_application_state_rejects_illegal_pair(self) -> None:
        with pytest.raises(InvalidCompositeStateError):
            ApplicationState(
                ApplicationStatus.COMPLETED, PaymentStatus.UNPAID, RateStatus.AGREED, Decimal("500")
            )

    def test_agreed_rate_iff_agreed(self) -> None:
        with pytest.raises(ValueError, match="agreed_rate"):
            ApplicationState(ApplicationStatus.PENDING, PaymentStatus.UNPAID, RateStatus.AGREED)
        with pytest.raises(ValueError, match="agreed_rate"):
            ApplicationState(
                ApplicationStatus.PENDING, PaymentStatus.UNPAID, RateStatus.COUNTERED, Decimal("500")
            )

    def test_of_reads_row(self) -> None:
        row = SimpleNamespace(
            status="funded",
            payment_status="disputed",
            rate_status="agreed",
            agreed_rate=Decimal("750.00"),
        )
        state = ApplicationState.of(row)
        assert state.status == ApplicationStatus.FUNDED
        assert state.payment_status == PaymentStatus.DISPUTED

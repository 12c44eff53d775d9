"""Tests for domain enumerations."""

from __future__ import annotations

from gig_escrow.domain.enums import (
    ApplicationStatus,
    EventType,
    GigStatus,
    PaymentStatus,
    Provider,
    ReconciliationOutcome,
)


class TestApplicationStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {"pending", "accepted", "rejected", "funded", "completed", "withdrawn"}
        assert {s.value for s in ApplicationStatus} == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(ApplicationStatus.FUNDED, str)
        assert ApplicationStatus.FUNDED == "funded"


class TestPaymentStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {"unpaid", "paid", "in_escrow", "released", "disputed"}
        assert {s.value for s in PaymentStatus} == expected


class TestGigStatus:
    def test_in_progress_uses_hyphen(self) -> None:
        assert GigStatus.IN_PROGRESS == "in-progress"


class TestEventType:
    def test_all_event_types_exist(self) -> None:
        # 6 lifecycle + 3 settlement + 3 completion + 3 dispute + 1 expiry
        assert len(EventType) == 16

    def test_event_type_is_str_enum(self) -> None:
        assert isinstance(EventType.ESCROW_FUNDED, str)


class TestProviders:
    def test_providers(self) -> None:
        assert {p.value for p in Provider} == {"payfast", "paystack", "tradesafe"}

    def test_outcomes(self) -> None:
        assert ReconciliationOutcome.DUPLICATE == "duplicate"
        assert len(ReconciliationOutcome) == 6

"""Application State Machine Guard.

Uses python-statemachine to enforce legal top-level status transitions at the
domain level. No matter what the API, a webhook, or the sweeper asks for, an
illegal transition (e.g., pending -> funded) raises TransitionNotAllowed.

The state machine is instantiated per-application and validates transitions
before the ORM model's status field is updated.

Transition table:
    pending    -> accepted    (accept)
    pending    -> rejected    (reject)
    pending    -> withdrawn   (withdraw)
    accepted   -> funded      (escrow_funded)
    accepted   -> rejected    (reject | funding_timed_out)
    accepted   -> withdrawn   (withdraw)
    funded     -> completed   (complete)

Dispute handling is a sub-state of `funded` (see completion fields on the
Application row), so it does not appear here. The payment side is checked
separately against LEGAL_PAYMENT_STATUSES: status and payment_status are one
composite state, and illegal pairs are rejected centrally.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from statemachine import State, StateMachine

from gig_escrow.domain.enums import ApplicationStatus, PaymentStatus, RateStatus
from gig_escrow.domain.exceptions import InvalidCompositeStateError


class ApplicationStateMachine(StateMachine):
    """State machine that guards application lifecycle transitions.

    Usage:
        sm = ApplicationStateMachine(current_status="accepted")
        sm.escrow_funded()  # transitions to funded
        sm.status           # "funded"
    """

    # --- States ---
    pending = State("pending", value="pending", initial=True)
    accepted = State("accepted", value="accepted")
    funded = State("funded", value="funded")
    completed = State("completed", value="completed", final=True)
    rejected = State("rejected", value="rejected", final=True)
    withdrawn = State("withdrawn", value="withdrawn", final=True)

    # --- Events / Transitions ---
    accept = pending.to(accepted)
    reject = pending.to(rejected) | accepted.to(rejected)
    withdraw = pending.to(withdrawn) | accepted.to(withdrawn)
    funding_timed_out = accepted.to(rejected)

    # Only the escrow reconciliation path fires this
    escrow_funded = accepted.to(funded)

    # Approval, auto-release, or admin resolution in the worker's favour
    complete = funded.to(completed)

    def __init__(self, current_status: str = "pending") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current ApplicationStatus value (e.g., "accepted").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches ApplicationStatus)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = ApplicationStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status


# ---------------------------------------------------------------------------
# Composite state table
# ---------------------------------------------------------------------------

LEGAL_PAYMENT_STATUSES: dict[ApplicationStatus, frozenset[PaymentStatus]] = {
    ApplicationStatus.PENDING: frozenset({PaymentStatus.UNPAID}),
    ApplicationStatus.ACCEPTED: frozenset({PaymentStatus.UNPAID}),
    ApplicationStatus.REJECTED: frozenset({PaymentStatus.UNPAID}),
    ApplicationStatus.WITHDRAWN: frozenset({PaymentStatus.UNPAID}),
    ApplicationStatus.FUNDED: frozenset({PaymentStatus.IN_ESCROW, PaymentStatus.DISPUTED}),
    # PAID: finalized without an in-platform escrow record to release
    ApplicationStatus.COMPLETED: frozenset({PaymentStatus.RELEASED, PaymentStatus.PAID}),
}


@dataclass(frozen=True)
class ApplicationState:
    """The composite (status, payment_status, rate_status) of one application.

    Construction validates the combination, so an illegal pair such as
    completed/unpaid cannot exist as an ApplicationState value.
    """

    status: ApplicationStatus
    payment_status: PaymentStatus
    rate_status: RateStatus
    agreed_rate: Decimal | None = None

    def __post_init__(self) -> None:
        ensure_legal_state(self.status, self.payment_status)
        if (self.rate_status == RateStatus.AGREED) != (self.agreed_rate is not None):
            raise ValueError(
                "agreed_rate must be set if and only if rate_status is agreed"
            )

    @classmethod
    def of(cls, application) -> ApplicationState:  # noqa: ANN001
        """Read the composite state off an Application row."""
        return cls(
            status=ApplicationStatus(application.status),
            payment_status=PaymentStatus(application.payment_status),
            rate_status=RateStatus(application.rate_status),
            agreed_rate=application.agreed_rate,
        )


def ensure_legal_state(status: str, payment_status: str) -> None:
    """Raise InvalidCompositeStateError unless the pair is in the table."""
    allowed = LEGAL_PAYMENT_STATUSES.get(ApplicationStatus(status), frozenset())
    if PaymentStatus(payment_status) not in allowed:
        raise InvalidCompositeStateError(str(status), str(payment_status))

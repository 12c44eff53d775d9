"""Domain enumerations for the Gig Escrow Engine.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class ApplicationStatus(enum.StrEnum):
    """Top-level lifecycle of a worker's application.

    Transitions are enforced by ApplicationStateMachine.
    See domain/state_machine.py for the transition table.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FUNDED = "funded"
    COMPLETED = "completed"
    WITHDRAWN = "withdrawn"


class PaymentStatus(enum.StrEnum):
    """Money-side state of an application; paired with ApplicationStatus."""

    UNPAID = "unpaid"
    PAID = "paid"
    IN_ESCROW = "in_escrow"
    RELEASED = "released"
    DISPUTED = "disputed"


class RateStatus(enum.StrEnum):
    """Rate negotiation sub-state."""

    PROPOSED = "proposed"
    COUNTERED = "countered"
    AGREED = "agreed"


class GigStatus(enum.StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ActorRole(enum.StrEnum):
    """The side of the marketplace performing an action."""

    WORKER = "worker"
    EMPLOYER = "employer"
    ADMIN = "admin"
    SYSTEM = "system"


class CompletionResolution(enum.StrEnum):
    """Outcome recorded on a completion request."""

    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_RELEASED = "auto_released"


class Provider(enum.StrEnum):
    """Payment providers that can fund escrow."""

    PAYFAST = "payfast"
    PAYSTACK = "paystack"
    TRADESAFE = "tradesafe"


class ProviderOutcome(enum.StrEnum):
    """Normalized outcome of a provider event, independent of wire codes."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PENDING = "pending"
    INFORMATIONAL = "informational"


class PaymentIntentStatus(enum.StrEnum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LedgerEntryType(enum.StrEnum):
    """Kinds of append-only money movements."""

    ESCROW_FUNDING = "escrow_funding"
    ESCROW_RELEASE = "escrow_release"
    PLATFORM_COMMISSION = "platform_commission"


class ReconciliationOutcome(enum.StrEnum):
    """Result of feeding one verified provider event into the engine."""

    FUNDED = "funded"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    FAILED_RECORDED = "failed_recorded"
    IGNORED = "ignored"
    PENDING = "pending"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the application_events table.

    Every state-changing operation MUST produce exactly one event.
    This is the append-only forensic trail for disputes.
    """

    # Lifecycle events
    APPLICATION_CREATED = "APPLICATION_CREATED"
    RATE_PROPOSED = "RATE_PROPOSED"
    RATE_AGREED = "RATE_AGREED"
    APPLICATION_ACCEPTED = "APPLICATION_ACCEPTED"
    APPLICATION_REJECTED = "APPLICATION_REJECTED"
    APPLICATION_WITHDRAWN = "APPLICATION_WITHDRAWN"

    # Settlement events
    ESCROW_FUNDED = "ESCROW_FUNDED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    ESCROW_RELEASED = "ESCROW_RELEASED"

    # Completion events
    COMPLETION_REQUESTED = "COMPLETION_REQUESTED"
    COMPLETION_APPROVED = "COMPLETION_APPROVED"
    COMPLETION_AUTO_RELEASED = "COMPLETION_AUTO_RELEASED"

    # Dispute events
    DISPUTE_RAISED = "DISPUTE_RAISED"
    DISPUTE_RESOLVED_WORKER = "DISPUTE_RESOLVED_WORKER"
    DISPUTE_RESOLVED_EMPLOYER = "DISPUTE_RESOLVED_EMPLOYER"

    # Expiry events
    FUNDING_TIMED_OUT = "FUNDING_TIMED_OUT"

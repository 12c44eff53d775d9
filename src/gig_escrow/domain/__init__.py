"""Domain layer — pure business logic with zero framework dependencies."""

from gig_escrow.domain.enums import (
    ApplicationStatus,
    EventType,
    PaymentStatus,
    Provider,
    ProviderOutcome,
    RateStatus,
    ReconciliationOutcome,
)
from gig_escrow.domain.exceptions import (
    ApplicationNotFoundError,
    DomainValidationError,
    EscrowInvariantViolation,
    GigEscrowError,
    InvalidStateTransitionError,
    StateChangedError,
)
from gig_escrow.domain.fees import (
    DEFAULT_PLATFORM_CONFIG,
    FeeBreakdown,
    PlatformConfig,
    calculate_fee_breakdown,
)
from gig_escrow.domain.state_machine import (
    ApplicationState,
    ApplicationStateMachine,
    validate_transition,
)
from gig_escrow.domain.verifier_protocol import (
    ProviderEvent,
    SignatureRequest,
    SignatureResult,
    SignatureVerifier,
)

__all__ = [
    "ApplicationStatus",
    "EventType",
    "PaymentStatus",
    "Provider",
    "ProviderOutcome",
    "RateStatus",
    "ReconciliationOutcome",
    "ApplicationNotFoundError",
    "DomainValidationError",
    "EscrowInvariantViolation",
    "GigEscrowError",
    "InvalidStateTransitionError",
    "StateChangedError",
    "DEFAULT_PLATFORM_CONFIG",
    "FeeBreakdown",
    "PlatformConfig",
    "calculate_fee_breakdown",
    "ApplicationState",
    "ApplicationStateMachine",
    "validate_transition",
    "ProviderEvent",
    "SignatureRequest",
    "SignatureResult",
    "SignatureVerifier",
]

"""Domain exceptions for the Gig Escrow Engine.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
"""


class GigEscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "GIG_ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class DomainValidationError(GigEscrowError):
    """A request was rejected synchronously; the message is user-facing."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message=message, code=code)


# --- Lookup Errors ---


class ApplicationNotFoundError(DomainValidationError):
    def __init__(self, application_id: str) -> None:
        super().__init__("Application not found", code="APPLICATION_NOT_FOUND")
        self.application_id = application_id


class GigNotFoundError(DomainValidationError):
    def __init__(self, gig_id: str) -> None:
        super().__init__("Gig not found", code="GIG_NOT_FOUND")
        self.gig_id = gig_id


# --- State Machine Errors ---


class InvalidStateTransitionError(DomainValidationError):
    """Raised when an attempted transition is not allowed from the current status.

    Example: pending -> funded (must be accepted first)
    """

    def __init__(self, current_state: str, attempted: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {current_state} -> {attempted}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_state = attempted


class InvalidCompositeStateError(DomainValidationError):
    """Raised when status and payment_status would form an illegal pair."""

    def __init__(self, status: str, payment_status: str) -> None:
        super().__init__(
            message=f"Illegal state combination: status={status}, paymentStatus={payment_status}",
            code="INVALID_COMPOSITE_STATE",
        )
        self.status = status
        self.payment_status = payment_status


class StateChangedError(GigEscrowError):
    """A concurrent write changed the document between read and write.

    Retryable: the caller should re-read and try again.
    """

    def __init__(self, application_id: str) -> None:
        super().__init__(
            message="Application state changed, please retry",
            code="STATE_CHANGED",
        )
        self.application_id = application_id


# --- Authorization Errors ---


class UnauthorizedActorError(DomainValidationError):
    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="UNAUTHORIZED_ACTOR")


# --- Rate Negotiation Errors ---


class InvalidAmountError(DomainValidationError):
    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_AMOUNT")


class RateAlreadyAgreedError(DomainValidationError):
    def __init__(self) -> None:
        super().__init__("Rate is already agreed", code="RATE_ALREADY_AGREED")


class OwnOfferConfirmationError(DomainValidationError):
    def __init__(self) -> None:
        super().__init__(
            "You cannot confirm your own rate proposal",
            code="OWN_OFFER_CONFIRMATION",
        )


class AnotherWorkerSelectedError(DomainValidationError):
    def __init__(self, gig_id: str) -> None:
        super().__init__(
            "Another worker has already been selected for this gig",
            code="ANOTHER_WORKER_SELECTED",
        )
        self.gig_id = gig_id


# --- Completion & Dispute Errors ---


class CompletionError(DomainValidationError):
    """Completion workflow precondition failed (not requested, already requested...)."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="COMPLETION_ERROR")


class NoActiveDisputeError(DomainValidationError):
    def __init__(self) -> None:
        super().__init__(
            "This application does not have an active dispute",
            code="NO_ACTIVE_DISPUTE",
        )


class DisputeAlreadyResolvedError(DomainValidationError):
    def __init__(self) -> None:
        super().__init__(
            "This dispute has already been resolved",
            code="DISPUTE_ALREADY_RESOLVED",
        )


# --- Payment Errors ---


class PaymentError(DomainValidationError):
    """Raised when a payment intent or verify request cannot be honoured."""

    def __init__(self, message: str, payment_id: str | None = None) -> None:
        super().__init__(message=message, code="PAYMENT_ERROR")
        self.payment_id = payment_id


class PaymentNotFoundError(PaymentError):
    def __init__(self, payment_id: str) -> None:
        super().__init__(message="Payment not found", payment_id=payment_id)
        self.code = "PAYMENT_NOT_FOUND"


class ProviderLookupError(GigEscrowError):
    """A provider status query failed (network, auth, or unexpected response)."""

    def __init__(self, provider: str, detail: str) -> None:
        super().__init__(
            message=f"Could not query {provider}: {detail}",
            code="PROVIDER_UNAVAILABLE",
        )
        self.provider = provider


class InvalidConfigError(DomainValidationError):
    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors), code="INVALID_PLATFORM_CONFIG")
        self.errors = errors


# --- Fatal ---


class EscrowInvariantViolation(GigEscrowError):
    """An escrow record and its application disagree.

    Must never be auto-corrected: requires manual reconciliation.
    """

    def __init__(self, message: str, application_id: str | None = None) -> None:
        super().__init__(message=message, code="ESCROW_INVARIANT_VIOLATION")
        self.application_id = application_id

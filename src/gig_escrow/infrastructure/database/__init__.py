"""Database infrastructure — engine, ORM models, and repositories."""

from gig_escrow.infrastructure.database.engine import (
    close_db,
    get_session_factory,
    init_db,
    unit_of_work,
)
from gig_escrow.infrastructure.database.orm_models import (
    Application,
    ApplicationEvent,
    Base,
    EscrowRecord,
    Gig,
    LedgerEntry,
    PaymentIntent,
    PlatformConfigRow,
    RateHistoryEntry,
)
from gig_escrow.infrastructure.database.repositories import (
    ApplicationRepository,
    EscrowRecordRepository,
    EventRepository,
    GigRepository,
    LedgerRepository,
    PaymentIntentRepository,
    PlatformConfigRepository,
    RateHistoryRepository,
)

__all__ = [
    "Base",
    "Application",
    "ApplicationEvent",
    "EscrowRecord",
    "Gig",
    "LedgerEntry",
    "PaymentIntent",
    "PlatformConfigRow",
    "RateHistoryEntry",
    "ApplicationRepository",
    "EscrowRecordRepository",
    "EventRepository",
    "GigRepository",
    "LedgerRepository",
    "PaymentIntentRepository",
    "PlatformConfigRepository",
    "RateHistoryRepository",
    "get_session_factory",
    "unit_of_work",
    "init_db",
    "close_db",
]

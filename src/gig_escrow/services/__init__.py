"""Application services — use case orchestration."""

from gig_escrow.services.application_service import ApplicationService
from gig_escrow.services.config_service import PlatformConfigService, load_platform_config
from gig_escrow.services.dispute_service import DisputeMediationService
from gig_escrow.services.escrow_service import EscrowReconciliationService, process_provider_event
from gig_escrow.services.expiry_sweeper import ExpirySweeper, SweepReport

__all__ = [
    "ApplicationService",
    "DisputeMediationService",
    "EscrowReconciliationService",
    "ExpirySweeper",
    "PlatformConfigService",
    "SweepReport",
    "load_platform_config",
    "process_provider_event",
]

"""Expiry Sweeper — time-based transitions evaluated lazily.

Nothing here runs on a live timer. A sweep (cron tick or on-demand call)
evaluates every rule against `now`, so a deadline fires on the first sweep
after it passes, never before.

Rules:
    - Unfunded expiry:  open gig older than gig_expiry_timeout_days with no
                        funded application -> gig cancelled.
    - Overdue expiry:   gig past its deadline, open or in-progress -> gig
                        cancelled. A gig with a funded application is never
                        cancelled, whatever its age or deadline.
    - Auto-release:     funded, completion requested, undisputed, deadline
                        passed -> completed with escrow released (actor: system).
    - Funding timeout:  accepted but unfunded for funding_timeout_hours ->
                        application rejected, gig assignment cleared.

Each item runs in its own unit of work. A failure on one item is logged and
counted; it never aborts the rest of the batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from gig_escrow.domain.enums import GigStatus
from gig_escrow.domain.fees import DEFAULT_PLATFORM_CONFIG
from gig_escrow.infrastructure.database.engine import unit_of_work
from gig_escrow.infrastructure.database.repositories import ApplicationRepository, GigRepository
from gig_escrow.logging_config import get_logger
from gig_escrow.services.application_service import ApplicationService
from gig_escrow.services.config_service import load_platform_config

if TYPE_CHECKING:
    import uuid
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from gig_escrow.domain.fees import PlatformConfig

logger = get_logger(__name__)


@dataclass
class SweepItemResult:
    kind: str
    item_id: str
    outcome: str
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "item_id": self.item_id,
            "outcome": self.outcome,
            "error": self.error,
        }


@dataclass
class SweepReport:
    """Counts and per-item outcomes for one sweep."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[SweepItemResult] = field(default_factory=list)

    def add(self, result: SweepItemResult) -> None:
        self.processed += 1
        if result.error is None:
            self.succeeded += 1
        else:
            self.failed += 1
        self.results.append(result)

    def merge(self, other: SweepReport) -> SweepReport:
        for result in other.results:
            self.add(result)
        return self

    @property
    def error_ratio(self) -> float:
        return self.failed / self.processed if self.processed else 0.0

    def count(self, outcome: str) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


class ExpirySweeper:
    """Runs the expiry, auto-release and funding-timeout rules."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        alert_error_ratio: float = 0.25,
    ) -> None:
        self._session_factory = session_factory
        self._alert_error_ratio = alert_error_ratio

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def sweep_all(
        self,
        now: datetime | None = None,
        config: PlatformConfig | None = None,
    ) -> SweepReport:
        """Run every rule once. Config is loaded once for the whole tick."""
        now = now or datetime.now(UTC)
        config = config or await load_platform_config(self._session_factory)

        report = SweepReport()
        report.merge(await self.run_auto_release(now))
        report.merge(await self.run_funding_timeouts(now, config))
        report.merge(await self.run_gig_expiry(now, config))

        logger.info(
            "sweep.completed",
            processed=report.processed,
            succeeded=report.succeeded,
            failed=report.failed,
        )
        self._alert_if_unhealthy(report)
        return report

    async def check_and_expire_gig(
        self,
        gig_id: uuid.UUID,
        now: datetime | None = None,
        config: PlatformConfig | None = None,
    ) -> bool:
        """On-demand check of a single gig. Returns True if it was cancelled."""
        now = now or datetime.now(UTC)
        config = config or await load_platform_config(self._session_factory)
        async with unit_of_work(self._session_factory) as session:
            reason = await self._expire_gig(session, gig_id, now, config)
        return reason is not None

    async def run_gig_expiry(
        self,
        now: datetime,
        config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
    ) -> SweepReport:
        async with unit_of_work(self._session_factory) as session:
            gig_ids = await GigRepository(session).list_sweep_candidate_ids()

        async def _one(session: AsyncSession, gig_id: uuid.UUID) -> str:
            reason = await self._expire_gig(session, gig_id, now, config)
            return f"cancelled:{reason}" if reason else "skipped"

        return await self._run_items("gig_expiry", gig_ids, _one)

    async def run_auto_release(self, now: datetime) -> SweepReport:
        async with unit_of_work(self._session_factory) as session:
            app_ids = await ApplicationRepository(session).list_due_for_auto_release(now)

        async def _one(session: AsyncSession, application_id: uuid.UUID) -> str:
            released = await ApplicationService(session).auto_release(application_id, now=now)
            return "released" if released else "skipped"

        return await self._run_items("auto_release", app_ids, _one)

    async def run_funding_timeouts(
        self,
        now: datetime,
        config: PlatformConfig = DEFAULT_PLATFORM_CONFIG,
    ) -> SweepReport:
        cutoff = now - timedelta(hours=config.funding_timeout_hours)
        async with unit_of_work(self._session_factory) as session:
            app_ids = await ApplicationRepository(session).list_funding_timed_out(cutoff)

        async def _one(session: AsyncSession, application_id: uuid.UUID) -> str:
            timed_out = await ApplicationService(session).time_out_funding(
                application_id, config=config, now=now
            )
            return "timed_out" if timed_out else "skipped"

        return await self._run_items("funding_timeout", app_ids, _one)

    async def count_due_for_auto_release(self, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        async with unit_of_work(self._session_factory) as session:
            return len(await ApplicationRepository(session).list_due_for_auto_release(now))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _run_items(
        self,
        kind: str,
        item_ids: list[uuid.UUID],
        handler: Callable[[AsyncSession, uuid.UUID], Awaitable[str]],
    ) -> SweepReport:
        report = SweepReport()
        for item_id in item_ids:
            try:
                async with unit_of_work(self._session_factory) as session:
                    outcome = await handler(session, item_id)
            except Exception as exc:
                logger.exception("sweep.item_failed", kind=kind, item_id=str(item_id))
                report.add(SweepItemResult(kind, str(item_id), "error", error=str(exc)))
            else:
                report.add(SweepItemResult(kind, str(item_id), outcome))
        return report

    async def _expire_gig(
        self,
        session: AsyncSession,
        gig_id: uuid.UUID,
        now: datetime,
        config: PlatformConfig,
    ) -> str | None:
        """Cancel the gig if an expiry rule applies; return the reason."""
        gig = await GigRepository(session).get_by_id(gig_id)
        if gig is None or gig.status not in (GigStatus.OPEN, GigStatus.IN_PROGRESS):
            return None
        if await ApplicationRepository(session).has_funded_application(gig.id):
            if gig.deadline is not None and gig.deadline < now:
                logger.warning("sweep.overdue_funded_gig", gig_id=str(gig_id))
            return None

        reason = None
        if gig.deadline is not None and gig.deadline < now:
            reason = "overdue"
        elif gig.status == GigStatus.OPEN and gig.created_at < now - timedelta(
            days=config.gig_expiry_timeout_days
        ):
            reason = "unfunded_expired"
        if reason is None:
            return None

        await ApplicationService(session).close_for_cancelled_gig(gig.id, reason=f"gig_{reason}")
        gig.status = GigStatus.CANCELLED.value
        gig.cancelled_at = now
        gig.cancellation_reason = reason
        await session.flush()
        logger.info("sweep.gig_cancelled", gig_id=str(gig_id), reason=reason)
        return reason

    def _alert_if_unhealthy(self, report: SweepReport) -> None:
        if report.failed and report.error_ratio >= self._alert_error_ratio:
            logger.error(
                "sweep.error_rate_high",
                failed=report.failed,
                processed=report.processed,
                error_ratio=round(report.error_ratio, 3),
                threshold=self._alert_error_ratio,
            )

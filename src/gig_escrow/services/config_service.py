"""Platform Config Service — admin-editable business parameters.

Config is read once per request or sweep tick and passed explicitly into
every operation as a PlatformConfig value. Reads fail closed: if the table
cannot be read, or holds values outside the admin limits, the hardcoded
defaults are used and the failure is logged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from gig_escrow.domain.exceptions import InvalidConfigError
from gig_escrow.domain.fees import (
    DEFAULT_PLATFORM_CONFIG,
    PlatformConfig,
    build_platform_config,
    validate_platform_config,
)
from gig_escrow.infrastructure.database.repositories import PlatformConfigRepository
from gig_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)


class PlatformConfigService:
    """Loads and saves the active platform configuration."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repo = PlatformConfigRepository(session)

    async def load(self) -> PlatformConfig:
        """Return the active config, or the defaults if it cannot be used."""
        try:
            row = await self._repo.get_active()
        except SQLAlchemyError as exc:
            logger.error("platform_config.load_failed", error=str(exc), fallback="defaults")
            return DEFAULT_PLATFORM_CONFIG

        if row is None:
            return DEFAULT_PLATFORM_CONFIG

        values = dict(row.values_json or {})
        errors = validate_platform_config(values)
        if errors:
            logger.error(
                "platform_config.invalid_stored_values",
                config_id=row.id,
                errors=errors,
                fallback="defaults",
            )
            return DEFAULT_PLATFORM_CONFIG
        try:
            return build_platform_config(values)
        except (ArithmeticError, TypeError, ValueError) as exc:
            logger.error("platform_config.load_failed", error=str(exc), fallback="defaults")
            return DEFAULT_PLATFORM_CONFIG

    async def save(self, values: dict, updated_by: str) -> PlatformConfig:
        """Validate a partial update against the admin limits and persist it.

        Raises:
            InvalidConfigError: If any value is outside its allowed range.
        """
        current = await self.load()
        merged = current.to_dict()
        merged.update({k: v for k, v in values.items() if k in merged and v is not None})

        errors = validate_platform_config(merged)
        if errors:
            raise InvalidConfigError(errors)

        config = build_platform_config(merged)
        await self._repo.save(config.to_dict(), updated_by=updated_by)
        logger.info("platform_config.updated", updated_by=updated_by, values=config.to_dict())
        return config


async def load_platform_config(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> PlatformConfig:
    """Load config in a short-lived session of its own.

    A failed read must not poison the caller's transaction, so config is
    never read on the session that performs the writes.
    """
    from gig_escrow.infrastructure.database.engine import get_session_factory

    factory = session_factory or get_session_factory()
    try:
        async with factory() as session:
            return await PlatformConfigService(session).load()
    except SQLAlchemyError as exc:
        logger.error("platform_config.load_failed", error=str(exc), fallback="defaults")
        return DEFAULT_PLATFORM_CONFIG

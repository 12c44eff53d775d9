"""Tests for PlatformConfigService and load_platform_config."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from gig_escrow.domain.exceptions import InvalidConfigError
from gig_escrow.domain.fees import DEFAULT_PLATFORM_CONFIG
from gig_escrow.infrastructure.database.engine import unit_of_work
from gig_escrow.infrastructure.database.repositories import PlatformConfigRepository
from gig_escrow.services.config_service import PlatformConfigService, load_platform_config


class TestLoad:
    @pytest.mark.asyncio
    async def test_defaults_when_nothing_saved(self, session_factory) -> None:
        assert await load_platform_config(session_factory) == DEFAULT_PLATFORM_CONFIG

    @pytest.mark.asyncio
    async def test_reads_saved_values(self, session_factory) -> None:
        async with unit_of_work(session_factory) as session:
            await PlatformConfigService(session).save(
                {"platform_commission_percent": "15", "funding_timeout_hours": 24},
                updated_by="admin-1",
            )

        config = await load_platform_config(session_factory)
        assert config.platform_commission_percent == Decimal("15")
        assert config.funding_timeout_hours == 24
        assert config.escrow_auto_release_days == 7

    @pytest.mark.asyncio
    async def test_out_of_range_stored_values_fall_back(self, session_factory) -> None:
        async with unit_of_work(session_factory) as session:
            await PlatformConfigRepository(session).save(
                {"platform_commission_percent": "90"}, updated_by="migration"
            )

        assert await load_platform_config(session_factory) == DEFAULT_PLATFORM_CONFIG

    @pytest.mark.asyncio
    async def test_read_failure_falls_back(self, session_factory) -> None:
        failing = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
        with patch.object(PlatformConfigRepository, "get_active", new=failing):
            config = await load_platform_config(session_factory)

        assert config == DEFAULT_PLATFORM_CONFIG


class TestSave:
    @pytest.mark.asyncio
    async def test_partial_update_merges(self, session_factory) -> None:
        async with unit_of_work(session_factory) as session:
            await PlatformConfigService(session).save({"min_gig_amount": "200"}, "admin-1")
        async with unit_of_work(session_factory) as session:
            config = await PlatformConfigService(session).save(
                {"escrow_auto_release_days": 3}, "admin-2"
            )

        assert config.min_gig_amount == Decimal("200")
        assert config.escrow_auto_release_days == 3

        async with unit_of_work(session_factory) as session:
            row = await PlatformConfigRepository(session).get_active()
        assert row.updated_by == "admin-2"

    @pytest.mark.asyncio
    async def test_rejects_values_outside_limits(self, session_factory) -> None:
        with pytest.raises(InvalidConfigError) as exc_info:
            async with unit_of_work(session_factory) as session:
                await PlatformConfigService(session).save(
                    {"platform_commission_percent": "60", "funding_timeout_hours": 0},
                    "admin-1",
                )

        assert len(exc_info.value.errors) == 2
        assert await load_platform_config(session_factory) == DEFAULT_PLATFORM_CONFIG

    @pytest.mark.asyncio
    async def test_min_must_stay_below_max(self, session_factory) -> None:
        with pytest.raises(InvalidConfigError, match="less than maximum"):
            async with unit_of_work(session_factory) as session:
                await PlatformConfigService(session).save(
                    {"min_gig_amount": "5000", "max_gig_amount": "4000"}, "admin-1"
                )

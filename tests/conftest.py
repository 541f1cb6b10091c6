"""Shared pytest fixtures: a seeded storefront on a per-test SQLite file."""

from __future__ import annotations

import sys
from collections.abc import AsyncIterator
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
import structlog

from storefront._types import OwnerKey
from storefront.catalog import seed_catalog
from storefront.config import Settings
from storefront.payments import MemoryProcessor
from storefront.pipeline import Storefront, build_storefront
from tests._support import CATALOG, FrozenClock, RecordingSender


@pytest.fixture(autouse=True)
def configure_structlog_for_tests() -> None:
    """Plain console output so capsys can see log lines."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        discount_codes={"WELCOME10": Decimal("10")},
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 3, 9, 12, 0))


@pytest.fixture
def processor() -> MemoryProcessor:
    return MemoryProcessor(webhook_secret="whsec_test")


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
async def storefront(
    settings: Settings,
    clock: FrozenClock,
    processor: MemoryProcessor,
    sender: RecordingSender,
) -> AsyncIterator[Storefront]:
    sf = await build_storefront(
        settings,
        processor=processor,
        sender=sender,
        clock=clock,
        configure_logs=False,
    )
    await seed_catalog(sf.session_factory, CATALOG, settings.currency)
    try:
        yield sf
    finally:
        await sf.close()


@pytest.fixture
def alice() -> OwnerKey:
    return OwnerKey.user("alice")


@pytest.fixture
def bob() -> OwnerKey:
    return OwnerKey.user("bob")


@pytest.fixture
def guest() -> OwnerKey:
    return OwnerKey.guest("guest-7f3a")

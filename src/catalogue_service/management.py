"""Utility helpers for administrative tasks."""
from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from . import models  # noqa: F401  (registers tables on Base.metadata)
from .bulk_import import BulkImporter
from .config import get_settings
from .database import Base, SessionFactory, engine
from .logging_config import configure_logging
from .schemas import BulkImportRequest, BulkImportResult


async def init_database(db_engine: AsyncEngine | None = None) -> None:
    """Create database tables for the application."""

    engine_to_use = db_engine or engine
    async with engine_to_use.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def import_file(
    path: Path,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> BulkImportResult:
    """Run a bulk import from a JSON file on disk against existing tables."""

    settings = get_settings()
    request = BulkImportRequest.model_validate_json(path.read_bytes())
    return await BulkImporter(session_factory or SessionFactory).import_data(
        request, settings.category_batch_size, settings.product_batch_size
    )


async def _init_and_import(path: Path) -> BulkImportResult:
    await init_database()
    return await import_file(path)


def cli_init_database() -> None:
    """CLI wrapper executed from :mod:`python -m`."""

    configure_logging(get_settings())
    asyncio.run(init_database())


def cli_import_file() -> None:
    """CLI wrapper: ``catalogue-import payload.json``."""

    if len(sys.argv) != 2:
        sys.exit("usage: catalogue-import <payload.json>")
    configure_logging(get_settings())
    result = asyncio.run(_init_and_import(Path(sys.argv[1])))
    print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))


if __name__ == "__main__":
    cli_init_database()

from __future__ import annotations

import json

from sqlalchemy import inspect

from catalogue_service.database import create_engine
from catalogue_service.management import import_file, init_database


async def test_init_database_creates_tables(tmp_path) -> None:
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'fresh.db'}")

    await init_database(engine)
    async with engine.connect() as conn:
        tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    await engine.dispose()

    assert {"categories", "products", "product_inventory", "product_prices"} <= set(tables)


async def test_import_file_from_disk(tmp_path, session_factory) -> None:
    payload = tmp_path / "payload.json"
    payload.write_text(
        json.dumps(
            {
                "categories": [{"title": "Garden"}],
                "products": [{"name": "Rake", "categoryTitle": "Garden", "stockQuantity": 2}],
            }
        )
    )

    result = await import_file(payload, session_factory)

    assert (result.categories_imported, result.products_imported) == (1, 1)
    assert result.errors == []

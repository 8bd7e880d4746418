from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalogue_service import bulk_import, crud
from catalogue_service.bulk_import import BulkImporter
from catalogue_service.exceptions import InvalidInventoryOperationError
from catalogue_service.pagination import PageRequest
from catalogue_service.schemas import BulkImportRequest


def _request(categories=(), products=()) -> BulkImportRequest:
    return BulkImportRequest.model_validate(
        {"categories": list(categories), "products": list(products)}
    )


class _UnavailableSession:
    async def __aenter__(self):
        raise RuntimeError("database is unavailable")

    async def __aexit__(self, *exc_info) -> bool:
        return False


class FailingFactory:
    """Session factory whose n-th unit of work cannot be opened."""

    def __init__(self, factory: async_sessionmaker[AsyncSession], fail_on: int) -> None:
        self._factory = factory
        self._fail_on = fail_on
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls == self._fail_on:
            return _UnavailableSession()
        return self._factory()


async def test_import_creates_category_product_inventory_and_price(session_factory) -> None:
    request = _request(
        categories=[{"title": "Electronics"}],
        products=[
            {
                "name": "Phone",
                "categoryTitle": "Electronics",
                "stockQuantity": 5,
                "price": 99.99,
                "currency": "USD",
            }
        ],
    )

    result = await BulkImporter(session_factory).import_data(request, 10, 100)

    assert result.categories_imported == 1
    assert result.products_imported == 1
    assert result.errors == []

    async with session_factory() as session:
        category = await crud.get_category_by_title(session, "Electronics")
        product = await crud.get_product_by_name_and_category(session, "Phone", category.id)
        inventory = await crud.get_inventory(session, product.id)
        prices = await crud.list_prices(session, product.id)

    assert (inventory.available_quantity, inventory.reserved_quantity) == (5, 0)
    assert len(prices) == 1
    assert prices[0].currency == "USD"
    assert prices[0].amount == Decimal("99.99")
    assert prices[0].is_active


async def test_reimport_is_idempotent(session_factory) -> None:
    request = _request(
        categories=[{"title": "Electronics"}, {"title": "Books"}],
        products=[
            {"name": "Phone", "categoryTitle": "Electronics", "stockQuantity": 1},
            {"name": "Novel", "categoryTitle": "Books"},
        ],
    )
    importer = BulkImporter(session_factory)

    first = await importer.import_data(request)
    second = await importer.import_data(request)

    assert (first.categories_imported, first.products_imported) == (2, 2)
    assert (second.categories_imported, second.products_imported) == (0, 0)
    assert second.errors == [
        "Category 'Electronics' already exists, skipped.",
        "Category 'Books' already exists, skipped.",
        "Product 'Phone' in category 'Electronics' already exists, skipped.",
        "Product 'Novel' in category 'Books' already exists, skipped.",
    ]


async def test_invalid_category_does_not_block_later_batches(session_factory) -> None:
    request = _request(
        categories=[
            {"title": "  "},
            {"title": "Books"},
            {"title": "Games"},
            {"title": "Music"},
        ]
    )

    result = await BulkImporter(session_factory).import_data(request, category_batch_size=2)

    assert result.categories_imported == 3
    assert result.errors == ["Category '  ': Category title cannot be blank"]
    async with session_factory() as session:
        for title in ("Books", "Games", "Music"):
            assert await crud.get_category_by_title(session, title) is not None


async def test_products_resolve_categories_listed_after_them(session_factory) -> None:
    request = BulkImportRequest.model_validate(
        {
            "products": [{"name": "Lamp", "categoryTitle": "Lighting"}],
            "categories": [{"title": "Lighting"}],
        }
    )

    result = await BulkImporter(session_factory).import_data(request, 1, 1)

    assert (result.categories_imported, result.products_imported) == (1, 1)
    assert result.errors == []


async def test_product_with_unknown_category_is_a_validation_error(session_factory) -> None:
    request = _request(products=[{"name": "Ghost", "categoryTitle": "Nonexistent"}])

    result = await BulkImporter(session_factory).import_data(request)

    assert result.products_imported == 0
    assert result.errors == ["Product 'Ghost': Category not found: Nonexistent"]


async def test_non_positive_batch_sizes_fall_back_to_defaults(session_factory, monkeypatch) -> None:
    seen_sizes: list[int] = []
    real_partition = bulk_import.partition

    def recording_partition(items, batch_size):
        seen_sizes.append(batch_size)
        return real_partition(items, batch_size)

    monkeypatch.setattr(bulk_import, "partition", recording_partition)
    request = _request(categories=[{"title": "Books"}], products=[{"name": "Novel", "categoryTitle": "Books"}])

    result = await BulkImporter(session_factory).import_data(request, 0, -3)

    assert seen_sizes == [
        bulk_import.DEFAULT_CATEGORY_BATCH_SIZE,
        bulk_import.DEFAULT_PRODUCT_BATCH_SIZE,
    ]
    assert (result.categories_imported, result.products_imported) == (1, 1)


async def test_missing_request_is_rejected(session_factory) -> None:
    with pytest.raises(ValueError, match="must not be null"):
        await BulkImporter(session_factory).import_data(None)


async def test_errors_are_grouped_validation_then_database_then_duplicates(
    session_factory, monkeypatch
) -> None:
    importer = BulkImporter(session_factory)
    await importer.import_data(_request(categories=[{"title": "Electronics"}]))

    async def broken_create_price(session, product_id, currency, amount):
        raise RuntimeError("disk full")

    monkeypatch.setattr(crud, "create_price", broken_create_price)
    request = _request(
        categories=[{"title": "Electronics"}, {"title": ""}],
        products=[
            {"name": "Radio", "categoryTitle": "Electronics", "price": 10, "currency": "EUR"},
            {"name": "Ghost", "categoryTitle": "Nonexistent"},
            {"name": "Cable", "categoryTitle": "Electronics", "stockQuantity": 0},
        ],
    )

    result = await importer.import_data(request)

    assert result.errors == [
        "Category '': Category title cannot be blank",
        "Product 'Ghost': Category not found: Nonexistent",
        "Product 'Cable': Stock quantity must be positive",
        "Product 'Radio': unexpected error: disk full",
        "Category 'Electronics' already exists, skipped.",
    ]


async def test_every_category_is_accounted_for(session_factory) -> None:
    importer = BulkImporter(session_factory)
    await importer.import_data(_request(categories=[{"title": "Books"}]))
    categories = [
        {"title": "Books"},
        {"title": "x" * 101},
        {"title": "Games"},
        {"title": "Games"},
        {"title": "Art", "description": "d" * 501},
        {"title": "Music"},
    ]

    result = await importer.import_data(_request(categories=categories), category_batch_size=4)

    assert result.categories_imported == 2
    assert len(result.errors) == len(categories) - result.categories_imported
    assert "Category 'Games' already exists, skipped." in result.errors


async def test_racing_duplicate_category_is_an_unexpected_error(session_factory, monkeypatch) -> None:
    async def never_found(session, title):
        return None

    monkeypatch.setattr(crud, "get_category_by_title", never_found)
    request = _request(categories=[{"title": "Books"}, {"title": "Books"}, {"title": "Maps"}])

    result = await BulkImporter(session_factory).import_data(request)

    assert result.categories_imported == 2
    assert result.errors == ["Category 'Books': unexpected error: Category 'Books' already exists"]


async def test_failed_batch_is_reported_and_later_batches_still_run(session_factory) -> None:
    factory = FailingFactory(session_factory, fail_on=2)
    request = _request(categories=[{"title": "Books"}, {"title": "Games"}, {"title": "Music"}])

    result = await BulkImporter(factory).import_data(request, category_batch_size=1)

    assert result.categories_imported == 2
    assert result.errors == ["Category batch failed (batch=2): database is unavailable"]
    async with session_factory() as session:
        assert await crud.get_category_by_title(session, "Books") is not None
        assert await crud.get_category_by_title(session, "Games") is None
        assert await crud.get_category_by_title(session, "Music") is not None


async def test_inventory_failure_keeps_product_but_does_not_count_it(
    session_factory, monkeypatch
) -> None:
    async def rejecting_inventory(session, product_id, initial_quantity):
        raise InvalidInventoryOperationError("warehouse closed")

    monkeypatch.setattr(crud, "create_inventory", rejecting_inventory)
    request = _request(
        categories=[{"title": "Electronics"}],
        products=[
            {
                "name": "Phone",
                "categoryTitle": "Electronics",
                "stockQuantity": 3,
                "price": 5,
                "currency": "USD",
            },
            {"name": "Tablet", "categoryTitle": "Electronics"},
        ],
    )

    result = await BulkImporter(session_factory).import_data(request)

    assert result.products_imported == 1
    assert result.errors == ["Product 'Phone': warehouse closed"]
    async with session_factory() as session:
        category = await crud.get_category_by_title(session, "Electronics")
        phone = await crud.get_product_by_name_and_category(session, "Phone", category.id)
        assert phone is not None
        assert await crud.list_prices(session, phone.id) == []


@pytest.mark.parametrize(
    ("currency", "message"),
    [("XYZ", "Invalid currency code: XYZ"), ("   ", "Currency code cannot be blank")],
)
async def test_unsupported_currency_rejects_product_before_creation(
    session_factory, currency: str, message: str
) -> None:
    importer = BulkImporter(session_factory)
    await importer.import_data(_request(categories=[{"title": "Electronics"}]))
    phone = {
        "name": "Phone",
        "categoryTitle": "Electronics",
        "stockQuantity": 5,
        "price": 9,
        "currency": currency,
    }

    result = await importer.import_data(_request(products=[phone]))

    assert result.products_imported == 0
    assert result.errors == [f"Product 'Phone': {message}"]
    async with session_factory() as session:
        category = await crud.get_category_by_title(session, "Electronics")
        assert await crud.get_product_by_name_and_category(session, "Phone", category.id) is None

    retry = await importer.import_data(_request(products=[{**phone, "currency": "USD"}]))

    assert (retry.products_imported, retry.errors) == (1, [])


@pytest.mark.parametrize(
    "pricing",
    [{"price": 12.5}, {"currency": "EUR"}],
    ids=["price-without-currency", "currency-without-price"],
)
async def test_incomplete_pricing_imports_product_without_price(session_factory, pricing: dict) -> None:
    request = _request(
        categories=[{"title": "Lighting"}],
        products=[{"name": "Lamp", "categoryTitle": "Lighting", "stockQuantity": 2, **pricing}],
    )

    result = await BulkImporter(session_factory).import_data(request)

    assert (result.categories_imported, result.products_imported) == (1, 1)
    assert result.errors == []
    async with session_factory() as session:
        category = await crud.get_category_by_title(session, "Lighting")
        lamp = await crud.get_product_by_name_and_category(session, "Lamp", category.id)
        assert (await crud.get_inventory(session, lamp.id)).available_quantity == 2
        assert await crud.list_prices(session, lamp.id) == []


@pytest.mark.parametrize(
    ("product", "error"),
    [
        ({"name": "  "}, "Product '  ': Product name cannot be blank"),
        (
            {"name": "L" * 151},
            f"Product '{'L' * 151}': Product name must not exceed 150 characters",
        ),
        (
            {"name": "Lamp", "description": "d" * 501},
            "Product 'Lamp': Product description must not exceed 500 characters",
        ),
        ({"name": "Lamp", "price": 0, "currency": "USD"}, "Product 'Lamp': Price must be positive"),
        ({"name": "Lamp", "price": -4, "currency": "USD"}, "Product 'Lamp': Price must be positive"),
    ],
    ids=["blank-name", "long-name", "long-description", "zero-price", "negative-price"],
)
async def test_invalid_product_fields_are_validation_errors(
    session_factory, product: dict, error: str
) -> None:
    request = _request(
        categories=[{"title": "Lighting"}],
        products=[{**product, "categoryTitle": "Lighting", "stockQuantity": 1}],
    )

    result = await BulkImporter(session_factory).import_data(request)

    assert (result.categories_imported, result.products_imported) == (1, 0)
    assert result.errors == [error]
    async with session_factory() as session:
        category = await crud.get_category_by_title(session, "Lighting")
        listing = await crud.list_products_by_category(session, category.id, PageRequest())
        assert listing.total_elements == 0


async def test_repeated_product_in_one_batch_is_imported_once(session_factory) -> None:
    lamp = {"name": "Lamp", "categoryTitle": "Lighting", "stockQuantity": 3}
    request = _request(categories=[{"title": "Lighting"}], products=[lamp, lamp])

    result = await BulkImporter(session_factory).import_data(request, product_batch_size=2)

    assert (result.categories_imported, result.products_imported) == (1, 1)
    assert result.errors == ["Product 'Lamp' in category 'Lighting' already exists, skipped."]

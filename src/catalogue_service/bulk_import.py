"""Bulk import of categories and products.

Categories are imported first, then products, each list split into batches.
Every batch runs in its own session and transaction, so a batch that fails
never undoes the batches committed before it. Inside a batch each item is
created under a savepoint: a bad item is reported and rolled back on its
own while its siblings carry on.

Per-item outcomes are folded into an :class:`ImportTally` per batch and the
tallies are merged by the caller once the batch has committed. The final
error list holds validation errors, then unexpected/database errors, then
duplicate warnings.
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import crud
from .batching import partition
from .exceptions import (
    CatalogueError,
    CategoryNotFoundError,
    ErrorKind,
    InvalidProductError,
    error_kind,
)
from .models import Currency
from .schemas import BulkImportRequest, BulkImportResult, CategoryImport, ProductImport

logger = structlog.get_logger(__name__)

DEFAULT_CATEGORY_BATCH_SIZE = 10
DEFAULT_PRODUCT_BATCH_SIZE = 100
CURRENCY_CODE_MAX = 3

T = TypeVar("T")


class Outcome(str, Enum):
    IMPORTED = "imported"
    DUPLICATE = "duplicate"
    VALIDATION = "validation"
    DATABASE = "database"


@dataclass(frozen=True)
class ItemResult:
    outcome: Outcome
    message: str | None = None


IMPORTED = ItemResult(Outcome.IMPORTED)


@dataclass
class ImportTally:
    """Counts and messages gathered while importing one list."""

    imported: int = 0
    validation_errors: list[str] = field(default_factory=list)
    database_errors: list[str] = field(default_factory=list)
    duplicate_warnings: list[str] = field(default_factory=list)

    def record(self, result: ItemResult) -> None:
        if result.outcome is Outcome.IMPORTED:
            self.imported += 1
        elif result.outcome is Outcome.DUPLICATE:
            self.duplicate_warnings.append(result.message)
        elif result.outcome is Outcome.VALIDATION:
            self.validation_errors.append(result.message)
        else:
            self.database_errors.append(result.message)

    def merge(self, other: "ImportTally") -> None:
        self.imported += other.imported
        self.validation_errors.extend(other.validation_errors)
        self.database_errors.extend(other.database_errors)
        self.duplicate_warnings.extend(other.duplicate_warnings)


def _failure(entity: str, key: str | None, exc: Exception) -> ItemResult:
    message = exc.message if isinstance(exc, CatalogueError) else str(exc)
    if error_kind(exc) in (ErrorKind.VALIDATION, ErrorKind.NOT_FOUND):
        logger.warning("import_item_rejected", entity=entity.lower(), key=key, reason=message)
        return ItemResult(Outcome.VALIDATION, f"{entity} '{key}': {message}")
    logger.error("import_item_failed", entity=entity.lower(), key=key, exc_info=exc)
    return ItemResult(Outcome.DATABASE, f"{entity} '{key}': unexpected error: {message}")


def _check_product_import(item: ProductImport) -> None:
    if item.stock_quantity is not None and item.stock_quantity <= 0:
        raise InvalidProductError("Stock quantity must be positive")
    if item.price is not None and item.price <= 0:
        raise InvalidProductError("Price must be positive")
    if item.currency is not None and len(item.currency.strip()) > CURRENCY_CODE_MAX:
        raise InvalidProductError(
            f"Currency code must not exceed {CURRENCY_CODE_MAX} characters"
        )
    if item.price is not None and item.currency is not None:
        try:
            Currency.from_code(item.currency)
        except ValueError as exc:
            raise InvalidProductError(str(exc)) from exc


class BulkImporter:
    """Imports a :class:`BulkImportRequest` in batched units of work.

    Example usage:
        importer = BulkImporter(SessionFactory)
        result = await importer.import_data(request, category_batch_size=10)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def import_data(
        self,
        request: BulkImportRequest | None,
        category_batch_size: int = DEFAULT_CATEGORY_BATCH_SIZE,
        product_batch_size: int = DEFAULT_PRODUCT_BATCH_SIZE,
    ) -> BulkImportResult:
        """Import all categories, then all products.

        Non-positive batch sizes fall back to the defaults. Data problems never
        raise; they end up in the returned ``errors``.

        Raises:
            ValueError: If ``request`` is ``None``.
        """
        if request is None:
            raise ValueError("Bulk import request must not be null")
        if category_batch_size <= 0:
            category_batch_size = DEFAULT_CATEGORY_BATCH_SIZE
        if product_batch_size <= 0:
            product_batch_size = DEFAULT_PRODUCT_BATCH_SIZE

        logger.info(
            "bulk_import_started",
            categories=len(request.categories),
            products=len(request.products),
            category_batch_size=category_batch_size,
            product_batch_size=product_batch_size,
        )
        # Products resolve categories by title, so every category batch must
        # be committed before the first product batch starts.
        categories = await self._run_phase(
            "Category", request.categories, category_batch_size, self._import_category
        )
        products = await self._run_phase(
            "Product", request.products, product_batch_size, self._import_product
        )

        result = BulkImportResult(
            categories_imported=categories.imported,
            products_imported=products.imported,
            errors=[
                *categories.validation_errors,
                *products.validation_errors,
                *categories.database_errors,
                *products.database_errors,
                *categories.duplicate_warnings,
                *products.duplicate_warnings,
            ],
        )
        logger.info(
            "bulk_import_finished",
            categories_imported=result.categories_imported,
            products_imported=result.products_imported,
            errors=len(result.errors),
        )
        return result

    async def _run_phase(
        self,
        entity: str,
        items: Sequence[T],
        batch_size: int,
        import_item: Callable[[AsyncSession, T], Awaitable[ItemResult]],
    ) -> ImportTally:
        tally = ImportTally()
        for number, batch in enumerate(partition(items, batch_size), start=1):
            try:
                batch_tally = await self._run_batch(batch, import_item)
            except Exception as exc:
                # Nothing from this batch was committed, so its tally is dropped.
                logger.error("import_batch_failed", entity=entity.lower(), batch=number, exc_info=exc)
                tally.database_errors.append(f"{entity} batch failed (batch={number}): {exc}")
                continue
            tally.merge(batch_tally)
        return tally

    async def _run_batch(
        self,
        batch: Sequence[T],
        import_item: Callable[[AsyncSession, T], Awaitable[ItemResult]],
    ) -> ImportTally:
        tally = ImportTally()
        async with self._session_factory() as session:
            async with session.begin():
                for item in batch:
                    tally.record(await import_item(session, item))
        return tally

    async def _import_category(self, session: AsyncSession, item: CategoryImport) -> ItemResult:
        title = item.title
        try:
            if await crud.get_category_by_title(session, title) is not None:
                logger.info("import_duplicate_skipped", entity="category", key=title)
                return ItemResult(Outcome.DUPLICATE, f"Category '{title}' already exists, skipped.")
            async with session.begin_nested():
                await crud.create_category(session, title, item.description)
        except Exception as exc:
            return _failure("Category", title, exc)
        return IMPORTED

    async def _import_product(self, session: AsyncSession, item: ProductImport) -> ItemResult:
        name = item.name
        try:
            _check_product_import(item)
            category = await crud.get_category_by_title(session, item.category_title)
            if category is None:
                raise CategoryNotFoundError(f"Category not found: {item.category_title}")

            if await crud.get_product_by_name_and_category(session, name, category.id) is not None:
                logger.info("import_duplicate_skipped", entity="product", key=name)
                return ItemResult(
                    Outcome.DUPLICATE,
                    f"Product '{name}' in category '{category.title}' already exists, skipped.",
                )

            # Each step commits to its own savepoint: a failing inventory or
            # price leaves the product in place.
            async with session.begin_nested():
                product = await crud.create_product(session, name, item.description, category.id)

            if item.stock_quantity is not None:
                async with session.begin_nested():
                    await crud.create_inventory(session, product.id, item.stock_quantity)
            else:
                logger.warning("import_stock_missing", product_id=product.id)

            if item.price is not None and item.currency is not None:
                async with session.begin_nested():
                    await crud.create_price(session, product.id, item.currency, item.price)
            else:
                logger.warning("import_price_missing", product_id=product.id)
        except Exception as exc:
            return _failure("Product", name, exc)
        return IMPORTED


__all__ = [
    "BulkImporter",
    "DEFAULT_CATEGORY_BATCH_SIZE",
    "DEFAULT_PRODUCT_BATCH_SIZE",
    "ImportTally",
    "ItemResult",
    "Outcome",
]

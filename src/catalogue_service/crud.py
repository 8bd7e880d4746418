"""Business logic for interacting with the database.

Functions flush but never commit: the caller owns the transaction. Domain
rule violations and storage failures surface as
:mod:`catalogue_service.exceptions` errors.
"""
from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import (
    CategoryAlreadyExistsError,
    CategoryNotFoundError,
    DatabaseOperationError,
    InvalidCategoryError,
    InvalidInventoryOperationError,
    InvalidPriceError,
    InvalidProductError,
    InventoryAlreadyExistsError,
    InventoryNotFoundError,
    PriceNotFoundError,
    ProductNotFoundError,
)
from .models import Category, Currency, Product, ProductInventory, ProductPrice, utcnow
from .pagination import Page, PageRequest, paginate

logger = structlog.get_logger(__name__)

CATEGORY_SORT_COLUMNS = {
    "id": Category.id,
    "title": Category.title,
    "created_at": Category.created_at,
    "updated_at": Category.updated_at,
}
PRODUCT_SORT_COLUMNS = {
    "id": Product.id,
    "name": Product.name,
    "sku": Product.sku,
    "created_at": Product.created_at,
    "updated_at": Product.updated_at,
}
PRICE_SORT_COLUMNS = {
    "id": ProductPrice.id,
    "amount": ProductPrice.amount,
    "currency": ProductPrice.currency,
    "valid_from": ProductPrice.valid_from,
}


# Categories


async def _save_category(session: AsyncSession, category: Category, operation: str) -> Category:
    session.add(category)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise CategoryAlreadyExistsError(category.title) from exc
    except SQLAlchemyError as exc:
        raise DatabaseOperationError(
            f"Error while {operation} category: {category.title}"
        ) from exc
    return category


async def create_category(
    session: AsyncSession, title: str | None, description: str | None
) -> Category:
    try:
        category = Category.create(title, description, now=utcnow())
    except ValueError as exc:
        raise InvalidCategoryError(str(exc)) from exc
    category = await _save_category(session, category, "creating")
    logger.info("category_created", category_id=category.id, title=category.title)
    return category


async def get_category(session: AsyncSession, category_id: int) -> Category:
    category = await session.get(Category, category_id)
    if category is None:
        raise CategoryNotFoundError(f"Category with ID {category_id} not found")
    return category


async def get_category_by_title(session: AsyncSession, title: str | None) -> Category | None:
    if title is None:
        return None
    stmt = select(Category).where(Category.title == title)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def update_category(
    session: AsyncSession, category_id: int, title: str | None, description: str | None
) -> Category:
    category = await get_category(session, category_id)
    now = utcnow()
    try:
        category.rename(title, now=now)
        category.change_description(description, now=now)
    except ValueError as exc:
        raise InvalidCategoryError(str(exc)) from exc
    return await _save_category(session, category, "updating")


async def activate_category(session: AsyncSession, category_id: int) -> Category:
    category = await get_category(session, category_id)
    category.activate(now=utcnow())
    return await _save_category(session, category, "activating")


async def deactivate_category(session: AsyncSession, category_id: int) -> Category:
    category = await get_category(session, category_id)
    category.deactivate(now=utcnow())
    return await _save_category(session, category, "deactivating")


async def list_active_categories(session: AsyncSession, request: PageRequest) -> Page[Category]:
    stmt = select(Category).where(Category.active.is_(True))
    return await paginate(session, stmt, request, CATEGORY_SORT_COLUMNS)


# Products


async def _save_product(session: AsyncSession, product: Product, operation: str) -> Product:
    session.add(product)
    try:
        await session.flush()
    except SQLAlchemyError as exc:
        raise DatabaseOperationError(f"Error while {operation} product: {product.name}") from exc
    return product


async def _require_category(session: AsyncSession, category_id: int | None) -> None:
    if category_id is not None and await session.get(Category, category_id) is None:
        raise InvalidProductError(f"Category with ID {category_id} not found")


async def create_product(
    session: AsyncSession, name: str | None, description: str | None, category_id: int | None
) -> Product:
    try:
        product = Product.create(name, description, category_id, now=utcnow())
    except ValueError as exc:
        raise InvalidProductError(str(exc)) from exc
    await _require_category(session, category_id)
    product = await _save_product(session, product, "saving")
    logger.info("product_created", product_id=product.id, name=product.name, sku=product.sku)
    return product


async def get_product(session: AsyncSession, product_id: int) -> Product:
    product = await session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(f"Product with ID {product_id} not found")
    return product


async def get_product_by_name_and_category(
    session: AsyncSession, name: str | None, category_id: int
) -> Product | None:
    stmt = (
        select(Product)
        .where(Product.name == name, Product.category_id == category_id)
        .order_by(Product.id)
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def update_product(
    session: AsyncSession,
    product_id: int,
    name: str | None,
    description: str | None,
    category_id: int | None,
) -> Product:
    product = await get_product(session, product_id)
    now = utcnow()
    try:
        product.rename(name, now=now)
        product.change_description(description, now=now)
        product.move_to_category(category_id, now=now)
    except ValueError as exc:
        raise InvalidProductError(str(exc)) from exc
    await _require_category(session, category_id)
    return await _save_product(session, product, "updating")


async def activate_product(session: AsyncSession, product_id: int) -> Product:
    product = await get_product(session, product_id)
    product.activate(now=utcnow())
    return await _save_product(session, product, "activating")


async def deactivate_product(session: AsyncSession, product_id: int) -> Product:
    product = await get_product(session, product_id)
    product.deactivate(now=utcnow())
    return await _save_product(session, product, "deactivating")


async def list_active_products(session: AsyncSession, request: PageRequest) -> Page[Product]:
    stmt = select(Product).where(Product.active.is_(True))
    return await paginate(session, stmt, request, PRODUCT_SORT_COLUMNS)


async def list_products_by_category(
    session: AsyncSession, category_id: int, request: PageRequest
) -> Page[Product]:
    stmt = select(Product).where(Product.category_id == category_id)
    return await paginate(session, stmt, request, PRODUCT_SORT_COLUMNS)


# Inventory


async def _save_inventory(
    session: AsyncSession, inventory: ProductInventory, operation: str
) -> ProductInventory:
    session.add(inventory)
    try:
        await session.flush()
    except SQLAlchemyError as exc:
        raise DatabaseOperationError(
            f"Error while {operation} for product ID {inventory.product_id}"
        ) from exc
    return inventory


async def create_inventory(
    session: AsyncSession, product_id: int | None, initial_quantity: int
) -> ProductInventory:
    try:
        inventory = ProductInventory.create(product_id, initial_quantity, now=utcnow())
    except ValueError as exc:
        raise InvalidInventoryOperationError(str(exc)) from exc
    await get_product(session, product_id)
    if await session.get(ProductInventory, product_id) is not None:
        raise InventoryAlreadyExistsError(product_id)
    inventory = await _save_inventory(session, inventory, "creating inventory")
    logger.info(
        "inventory_created", product_id=product_id, available_quantity=initial_quantity
    )
    return inventory


async def get_inventory(session: AsyncSession, product_id: int) -> ProductInventory | None:
    return await session.get(ProductInventory, product_id)


async def _require_inventory(session: AsyncSession, product_id: int) -> ProductInventory:
    inventory = await get_inventory(session, product_id)
    if inventory is None:
        raise InventoryNotFoundError(f"Inventory for product ID {product_id} not found")
    return inventory


async def reserve_stock(session: AsyncSession, product_id: int, quantity: int) -> ProductInventory:
    inventory = await _require_inventory(session, product_id)
    try:
        inventory.reserve(quantity, now=utcnow())
    except ValueError as exc:
        raise InvalidInventoryOperationError(str(exc)) from exc
    return await _save_inventory(session, inventory, "reserving stock")


async def release_stock(session: AsyncSession, product_id: int, quantity: int) -> ProductInventory:
    inventory = await _require_inventory(session, product_id)
    try:
        inventory.release(quantity, now=utcnow())
    except ValueError as exc:
        raise InvalidInventoryOperationError(str(exc)) from exc
    return await _save_inventory(session, inventory, "releasing stock")


async def clear_reservations(session: AsyncSession, product_id: int) -> ProductInventory:
    inventory = await _require_inventory(session, product_id)
    inventory.clear_reservations(now=utcnow())
    return await _save_inventory(session, inventory, "clearing reservations")


# Prices


async def _save_price(session: AsyncSession, price: ProductPrice, operation: str) -> ProductPrice:
    session.add(price)
    try:
        await session.flush()
    except SQLAlchemyError as exc:
        raise DatabaseOperationError(
            f"Error while {operation} for product ID {price.product_id}"
        ) from exc
    return price


async def create_price(
    session: AsyncSession, product_id: int | None, currency: str | None, amount: Decimal | None
) -> ProductPrice:
    try:
        price = ProductPrice.create(
            product_id, Currency.from_code(currency), amount, now=utcnow()
        )
    except ValueError as exc:
        raise InvalidPriceError(str(exc)) from exc
    await get_product(session, product_id)
    price = await _save_price(session, price, "creating price")
    logger.info(
        "price_created",
        price_id=price.id,
        product_id=product_id,
        currency=price.currency,
        amount=str(price.amount),
    )
    return price


async def get_price(session: AsyncSession, price_id: int) -> ProductPrice | None:
    return await session.get(ProductPrice, price_id)


async def _require_price(session: AsyncSession, price_id: int) -> ProductPrice:
    price = await get_price(session, price_id)
    if price is None:
        raise PriceNotFoundError(f"Price with ID {price_id} not found")
    return price


async def change_price(session: AsyncSession, price_id: int, amount: Decimal | None) -> ProductPrice:
    price = await _require_price(session, price_id)
    try:
        price.change_amount(amount)
    except ValueError as exc:
        raise InvalidPriceError(str(exc)) from exc
    return await _save_price(session, price, "changing amount")


async def expire_price(session: AsyncSession, price_id: int) -> ProductPrice:
    price = await _require_price(session, price_id)
    price.expire(now=utcnow())
    return await _save_price(session, price, "expiring price")


async def list_active_prices(
    session: AsyncSession, product_id: int, request: PageRequest
) -> Page[ProductPrice]:
    stmt = select(ProductPrice).where(
        ProductPrice.product_id == product_id, ProductPrice.valid_to.is_(None)
    )
    return await paginate(session, stmt, request, PRICE_SORT_COLUMNS)


async def get_active_price(
    session: AsyncSession, product_id: int, currency: Currency
) -> ProductPrice:
    stmt = (
        select(ProductPrice)
        .where(
            ProductPrice.product_id == product_id,
            ProductPrice.currency == Currency(currency).value,
            ProductPrice.valid_to.is_(None),
        )
        .order_by(ProductPrice.valid_from.desc(), ProductPrice.id.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    price = result.scalar_one_or_none()
    if price is None:
        raise PriceNotFoundError(
            f"No active price found for productId={product_id}, currency={Currency(currency).value}"
        )
    return price


async def list_prices(session: AsyncSession, product_id: int) -> Sequence[ProductPrice]:
    stmt = select(ProductPrice).where(ProductPrice.product_id == product_id).order_by(ProductPrice.id)
    result = await session.execute(stmt)
    return result.scalars().all()


__all__ = [name for name in globals() if not name.startswith("_")]

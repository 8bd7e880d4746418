"""Catalogue domain errors.

Every error carries an :class:`ErrorKind` tag. Callers route on the tag
rather than on the concrete class: the HTTP layer maps it to a status code
and the bulk importer uses it to pick the message bucket for a failed item.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DATABASE = "database"


class CatalogueError(Exception):
    """Base class for all catalogue errors."""

    kind: ErrorKind = ErrorKind.DATABASE
    code: str = "INTERNAL_ERROR"
    source: str = "CatalogueService"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidCategoryError(CatalogueError):
    kind = ErrorKind.VALIDATION
    code = "INVALID_CATEGORY_DATA"
    source = "CategoryValidation"


class CategoryNotFoundError(CatalogueError):
    kind = ErrorKind.NOT_FOUND
    code = "CATEGORY_NOT_FOUND"
    source = "CategoryService"


class CategoryAlreadyExistsError(CatalogueError):
    kind = ErrorKind.CONFLICT
    code = "CATEGORY_ALREADY_EXISTS"
    source = "CategoryService"

    def __init__(self, title: str) -> None:
        super().__init__(f"Category '{title}' already exists")
        self.title = title


class InvalidProductError(CatalogueError):
    kind = ErrorKind.VALIDATION
    code = "INVALID_PRODUCT_DATA"
    source = "ProductValidation"


class ProductNotFoundError(CatalogueError):
    kind = ErrorKind.NOT_FOUND
    code = "PRODUCT_NOT_FOUND"
    source = "ProductService"


class InvalidInventoryOperationError(CatalogueError):
    kind = ErrorKind.VALIDATION
    code = "INVALID_INVENTORY_OPERATION"
    source = "InventoryService"


class InventoryNotFoundError(CatalogueError):
    kind = ErrorKind.NOT_FOUND
    code = "INVENTORY_NOT_FOUND"
    source = "InventoryService"


class InventoryAlreadyExistsError(CatalogueError):
    kind = ErrorKind.CONFLICT
    code = "INVENTORY_ALREADY_EXISTS"
    source = "InventoryService"

    def __init__(self, product_id: int) -> None:
        super().__init__(f"Inventory for product ID {product_id} already exists")
        self.product_id = product_id


class InvalidPriceError(CatalogueError):
    kind = ErrorKind.VALIDATION
    code = "INVALID_PRICE_DATA"
    source = "PriceService"


class PriceNotFoundError(CatalogueError):
    kind = ErrorKind.NOT_FOUND
    code = "PRICE_NOT_FOUND"
    source = "PriceService"


class DatabaseOperationError(CatalogueError):
    kind = ErrorKind.DATABASE
    code = "DATABASE_ERROR"
    source = "DatabaseLayer"


def error_kind(exc: BaseException) -> ErrorKind:
    """Return the kind of ``exc``; anything unclassified is a database error."""

    if isinstance(exc, CatalogueError):
        return exc.kind
    return ErrorKind.DATABASE


__all__ = [
    "ErrorKind",
    "CatalogueError",
    "InvalidCategoryError",
    "CategoryNotFoundError",
    "CategoryAlreadyExistsError",
    "InvalidProductError",
    "ProductNotFoundError",
    "InvalidInventoryOperationError",
    "InventoryNotFoundError",
    "InventoryAlreadyExistsError",
    "InvalidPriceError",
    "PriceNotFoundError",
    "DatabaseOperationError",
    "error_kind",
]

"""Pydantic schemas used by the API."""
from __future__ import annotations

from decimal import Decimal
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input and renders camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CategoryCreate(CamelModel):
    title: str = Field(..., max_length=100)
    description: str | None = Field(None, max_length=500)


class CategoryUpdate(CategoryCreate):
    pass


class CategoryOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None = None
    active: bool


class ProductCreate(CamelModel):
    name: str = Field(..., max_length=150)
    description: str | None = Field(None, max_length=500)
    category_id: int


class ProductUpdate(ProductCreate):
    pass


class ProductOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    active: bool
    category_id: int
    sku: str


class InventoryCreate(CamelModel):
    product_id: int
    quantity: int = Field(..., ge=0, description="Initial available quantity.")


class InventoryOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    available_quantity: int
    reserved_quantity: int


class PriceCreate(CamelModel):
    product_id: int
    currency: str = Field(..., min_length=1, description="ISO 4217 code, e.g. USD.")
    amount: Decimal = Field(..., gt=0)


class PriceOut(CamelModel):
    id: int
    product_id: int
    currency: str
    amount: Decimal
    active: bool


class PageOut(CamelModel, Generic[T]):
    content: list[T]
    page: int
    size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool


class CategoryImport(CamelModel):
    """One category descriptor in a bulk import.

    Field rules are enforced per item by the importer, so an invalid entry
    is reported instead of rejecting the whole payload.
    """

    title: str | None = None
    description: str | None = None


class ProductImport(CamelModel):
    """One product descriptor in a bulk import, referencing its category by title."""

    name: str | None = None
    description: str | None = None
    category_title: str | None = None
    stock_quantity: int | None = None
    price: Decimal | None = None
    currency: str | None = None


class BulkImportRequest(CamelModel):
    categories: list[CategoryImport] = Field(default_factory=list)
    products: list[ProductImport] = Field(default_factory=list)


class BulkImportResult(CamelModel):
    categories_imported: int = 0
    products_imported: int = 0
    errors: list[str] = Field(default_factory=list)


class ErrorDetail(CamelModel):
    error_code: str
    error_message: str
    error_source: str


class ErrorResponse(CamelModel):
    status: Literal["error"] = "error"
    data: None = None
    error: ErrorDetail


class HealthStatus(BaseModel):
    status: Literal["ok"] = "ok"
    environment: str


__all__ = [
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryOut",
    "ProductCreate",
    "ProductUpdate",
    "ProductOut",
    "InventoryCreate",
    "InventoryOut",
    "PriceCreate",
    "PriceOut",
    "PageOut",
    "CategoryImport",
    "ProductImport",
    "BulkImportRequest",
    "BulkImportResult",
    "ErrorDetail",
    "ErrorResponse",
    "HealthStatus",
]

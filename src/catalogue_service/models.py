"""Database models for the product catalogue.

Domain rules live on the models themselves. Factories and mutators raise
:class:`ValueError` on invalid input and take the current time explicitly;
services translate the errors and supply ``now``.
"""
from __future__ import annotations

import re
import secrets
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base

CATEGORY_TITLE_MAX = 100
PRODUCT_NAME_MAX = 150
DESCRIPTION_MAX = 500


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the database hands back."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class Currency(str, Enum):
    INR = "INR"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"

    @classmethod
    def from_code(cls, code: str | None) -> "Currency":
        """Case-insensitive lookup of an ISO 4217 code."""

        if code is None or not code.strip():
            raise ValueError("Currency code cannot be blank")
        try:
            return cls(code.strip().upper())
        except ValueError:
            raise ValueError(f"Invalid currency code: {code}") from None


def generate_sku(name: str) -> str:
    prefix = re.sub(r"[^A-Za-z0-9]", "", name)[:8].upper() or "PRD"
    return f"{prefix}-{secrets.token_hex(3).upper()}"


def _check_description(description: str | None, entity: str) -> None:
    if description is not None and len(description) > DESCRIPTION_MAX:
        raise ValueError(f"{entity} description must not exceed {DESCRIPTION_MAX} characters")


class TimestampMixin:
    """Mixin providing created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def touch(self, now: datetime) -> None:
        self.updated_at = now


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(CATEGORY_TITLE_MAX), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(String(DESCRIPTION_MAX))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @staticmethod
    def _check_title(title: str | None) -> str:
        if title is None or not title.strip():
            raise ValueError("Category title cannot be blank")
        if len(title) > CATEGORY_TITLE_MAX:
            raise ValueError(f"Category title must not exceed {CATEGORY_TITLE_MAX} characters")
        return title

    @classmethod
    def create(cls, title: str | None, description: str | None, *, now: datetime) -> "Category":
        title = cls._check_title(title)
        _check_description(description, "Category")
        return cls(
            title=title,
            description=description,
            active=True,
            created_at=now,
            updated_at=now,
        )

    def rename(self, title: str | None, *, now: datetime) -> None:
        self.title = self._check_title(title)
        self.touch(now)

    def change_description(self, description: str | None, *, now: datetime) -> None:
        _check_description(description, "Category")
        self.description = description
        self.touch(now)

    def activate(self, *, now: datetime) -> None:
        if not self.active:
            self.active = True
            self.touch(now)

    def deactivate(self, *, now: datetime) -> None:
        if self.active:
            self.active = False
            self.touch(now)


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(PRODUCT_NAME_MAX), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(DESCRIPTION_MAX))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    @staticmethod
    def _check_name(name: str | None) -> str:
        if name is None or not name.strip():
            raise ValueError("Product name cannot be blank")
        if len(name) > PRODUCT_NAME_MAX:
            raise ValueError(f"Product name must not exceed {PRODUCT_NAME_MAX} characters")
        return name

    @staticmethod
    def _check_category_id(category_id: int | None) -> int:
        if category_id is None:
            raise ValueError("Category id must be provided")
        return category_id

    @classmethod
    def create(
        cls,
        name: str | None,
        description: str | None,
        category_id: int | None,
        *,
        now: datetime,
    ) -> "Product":
        name = cls._check_name(name)
        _check_description(description, "Product")
        return cls(
            name=name,
            description=description,
            category_id=cls._check_category_id(category_id),
            sku=generate_sku(name),
            active=True,
            created_at=now,
            updated_at=now,
        )

    def rename(self, name: str | None, *, now: datetime) -> None:
        self.name = self._check_name(name)
        self.touch(now)

    def change_description(self, description: str | None, *, now: datetime) -> None:
        _check_description(description, "Product")
        self.description = description
        self.touch(now)

    def move_to_category(self, category_id: int | None, *, now: datetime) -> None:
        self.category_id = self._check_category_id(category_id)
        self.touch(now)

    def activate(self, *, now: datetime) -> None:
        if not self.active:
            self.active = True
            self.touch(now)

    def deactivate(self, *, now: datetime) -> None:
        if self.active:
            self.active = False
            self.touch(now)


class ProductInventory(Base):
    __tablename__ = "product_inventory"
    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_inventory_available_positive"),
        CheckConstraint("reserved_quantity >= 0", name="ck_inventory_reserved_positive"),
    )

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), primary_key=True
    )
    available_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reserved_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @classmethod
    def create(cls, product_id: int | None, initial_quantity: int, *, now: datetime) -> "ProductInventory":
        if product_id is None:
            raise ValueError("ProductId must not be null")
        if initial_quantity < 0:
            raise ValueError("Initial quantity cannot be negative")
        return cls(
            product_id=product_id,
            available_quantity=initial_quantity,
            reserved_quantity=0,
            last_updated=now,
        )

    def reserve(self, quantity: int, *, now: datetime) -> None:
        if quantity <= 0:
            raise ValueError("Reserve quantity must be positive")
        if self.available_quantity < quantity:
            raise ValueError("Insufficient available stock")
        self.available_quantity -= quantity
        self.reserved_quantity += quantity
        self.last_updated = now

    def release(self, quantity: int, *, now: datetime) -> None:
        if quantity <= 0:
            raise ValueError("Release quantity must be positive")
        if self.reserved_quantity < quantity:
            raise ValueError("Cannot release more than reserved")
        self.reserved_quantity -= quantity
        self.available_quantity += quantity
        self.last_updated = now

    def clear_reservations(self, *, now: datetime) -> None:
        if self.reserved_quantity == 0:
            return
        self.available_quantity += self.reserved_quantity
        self.reserved_quantity = 0
        self.last_updated = now


class ProductPrice(Base):
    __tablename__ = "product_prices"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_product_prices_amount_positive"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime)

    @staticmethod
    def _check_amount(amount: Decimal | None) -> Decimal:
        if amount is None or Decimal(amount) <= 0:
            raise ValueError("Price amount must be positive")
        return Decimal(amount)

    @classmethod
    def create(
        cls,
        product_id: int | None,
        currency: Currency,
        amount: Decimal | None,
        *,
        now: datetime,
    ) -> "ProductPrice":
        if product_id is None:
            raise ValueError("ProductId must be provided")
        return cls(
            product_id=product_id,
            currency=Currency(currency).value,
            amount=cls._check_amount(amount),
            valid_from=now,
            valid_to=None,
        )

    def change_amount(self, amount: Decimal | None) -> None:
        self.amount = self._check_amount(amount)

    def expire(self, *, now: datetime) -> None:
        if self.valid_to is None:
            self.valid_to = now

    def is_active_at(self, moment: datetime) -> bool:
        return self.valid_from <= moment and (self.valid_to is None or moment < self.valid_to)

    @property
    def is_active(self) -> bool:
        return self.is_active_at(utcnow())


__all__ = [
    "Currency",
    "Category",
    "Product",
    "ProductInventory",
    "ProductPrice",
    "generate_sku",
    "utcnow",
]

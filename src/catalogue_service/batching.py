"""Splitting import payloads into bounded batches."""
from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def partition(items: Sequence[T], batch_size: int) -> list[tuple[T, ...]]:
    """Split ``items`` into contiguous batches of at most ``batch_size``.

    Each batch is an independent tuple, so later changes to ``items`` do not
    leak into batches that were already produced. Order is preserved and
    every item lands in exactly one batch.
    """

    if batch_size <= 0:
        raise ValueError(f"Batch size must be positive, got {batch_size}")
    return [tuple(items[start : start + batch_size]) for start in range(0, len(items), batch_size)]


__all__ = ["partition"]

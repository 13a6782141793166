"""
Admin manual order builder.

Lines keep the catalog price at add time as ``original_price`` while staff
may override ``price``. ``stock`` is a snapshot used only for the low-stock
warning and is never checked again before the order is created.
"""
from __future__ import annotations
import logging
import math
import re
from typing import Any, Mapping, Optional

from exceptions import PersistenceError, ValidationError
from orders import create_manual_order, subtotal_of
from schemas import Customer, Order, OrderBuilderLine

logger = logging.getLogger(__name__)


_LEADING_NUMBER = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_amount(raw: Any) -> float:
    """
    Float from user input. A string counts up to its first non-numeric
    character, so "12abc" is 12 and "1,200" is 1. Anything unparseable,
    negative or non-finite is 0.
    """
    if isinstance(raw, str):
        match = _LEADING_NUMBER.match(raw)
        if match is None:
            return 0.0
        raw = match.group(1)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def _field(product: Any, *names: str, default=None):
    for name in names:
        if isinstance(product, Mapping):
            if name in product:
                return product[name]
        elif hasattr(product, name):
            return getattr(product, name)
    return default


def search(products: list, term: str, limit: int = 5) -> list:
    """Catalog matches on name or category name, case-insensitive."""
    if not term:
        return []
    needle = term.lower()
    matches = [
        p for p in products
        if needle in (_field(p, "name") or "").lower()
        or needle in (_field(p, "categoryName", "category_name") or "").lower()
    ]
    return matches[:limit]


class OrderBuilder:
    def __init__(self, store=None):
        self.store = store
        self._lines: dict[str, OrderBuilderLine] = {}
        self._discount = 0.0
        self.customer = Customer()

    @property
    def items(self) -> list[OrderBuilderLine]:
        return list(self._lines.values())

    def get(self, product_id: str) -> Optional[OrderBuilderLine]:
        return self._lines.get(product_id)

    def add_product(self, product) -> OrderBuilderLine:
        product_id = str(_field(product, "id"))
        line = self._lines.get(product_id)
        if line is not None:
            line.quantity += 1
            return line
        price = _field(product, "price", default=0) or 0
        line = OrderBuilderLine(
            id=product_id,
            name=_field(product, "name", default=""),
            price=price,
            original_price=price,
            image_url=_field(product, "imageUrl", "image_url"),
            quantity=1,
            stock=_field(product, "count", default=0) or 0,
        )
        self._lines[product_id] = line
        return line

    def update_quantity(self, product_id: str, delta: int) -> None:
        line = self._lines.get(product_id)
        if line is not None:
            line.quantity = max(1, line.quantity + delta)

    def update_price(self, product_id: str, raw_value: Any) -> None:
        line = self._lines.get(product_id)
        if line is not None:
            line.price = parse_amount(raw_value)

    def remove_item(self, product_id: str) -> None:
        self._lines.pop(product_id, None)

    @property
    def discount(self) -> float:
        return self._discount

    @discount.setter
    def discount(self, raw_value: Any) -> None:
        self._discount = parse_amount(raw_value)

    @property
    def subtotal(self) -> float:
        return subtotal_of(self._lines.values())

    @property
    def total(self) -> float:
        return max(0.0, self.subtotal - self._discount)

    @staticmethod
    def is_low_stock(line: OrderBuilderLine) -> bool:
        return line.stock <= line.quantity

    @staticmethod
    def has_price_override(line: OrderBuilderLine) -> bool:
        return line.price != line.original_price

    def reset(self) -> None:
        self._lines.clear()
        self._discount = 0.0
        self.customer = Customer()

    async def submit(self, customer: Optional[Customer] = None) -> Order:
        """
        Create the order. State is kept on failure so staff can retry and is
        reset only once the order has been saved.
        """
        if customer is not None:
            self.customer = customer
        if not self._lines:
            raise ValidationError("Add at least one product")
        if self.store is None:
            raise PersistenceError("Database not configured")
        order = await create_manual_order(self.store, self.items, self.customer, self._discount)
        self.reset()
        return order

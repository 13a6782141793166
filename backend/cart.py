"""
Customer cart.

`CartStore` owns a mapping of product id to `CartLine`. Every mutation writes
the whole collection through to a `LocalStorage` under one key, and a corrupt
saved cart loads as an empty one.
"""

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from pydantic import ValidationError as SchemaError

from exceptions import ValidationError
from schemas import CartLine

logger = logging.getLogger(__name__)

DEFAULT_CART_KEY = "saaj-cart"


class LocalStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: Optional[dict] = None):
        self.items: dict[str, str] = dict(initial or {})

    def get_item(self, key):
        return self.items.get(key)

    def set_item(self, key, value):
        self.items[key] = value


class FileStorage:
    """One file per key inside `directory`."""

    def __init__(self, directory):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get_item(self, key):
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key, value):
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")


def _field(product: Any, name: str, default=None):
    if isinstance(product, Mapping):
        return product.get(name, default)
    return getattr(product, name, default)


class CartStore:
    def __init__(self, storage: LocalStorage, key: str = DEFAULT_CART_KEY):
        self.storage = storage
        self.key = key
        self.is_open = False
        self._lines: dict[str, CartLine] = self._load()

    # -- persistence --

    def _load(self) -> dict[str, CartLine]:
        raw = self.storage.get_item(self.key)
        if not raw:
            return {}
        try:
            lines = [CartLine.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError, SchemaError):
            logger.warning("Failed to parse saved cart, starting empty", exc_info=True)
            return {}
        return {line.id: line for line in lines}

    def _save(self) -> None:
        self.storage.set_item(self.key, json.dumps(self.to_list()))

    def to_list(self) -> list[dict]:
        return [line.model_dump(by_alias=True) for line in self._lines.values()]

    # -- reads --

    @property
    def items(self) -> list[CartLine]:
        return list(self._lines.values())

    def get(self, product_id: str) -> Optional[CartLine]:
        return self._lines.get(product_id)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    @property
    def subtotal(self) -> float:
        return sum(line.price * line.quantity for line in self._lines.values())

    def __len__(self):
        return len(self._lines)

    # -- mutations --

    def add_item(self, product, quantity: int = 1) -> Optional[CartLine]:
        """Add `quantity` of a product, merging into an existing line.

        A merge that leaves the line at zero or less removes it.
        """
        product_id = str(_field(product, "id"))
        line = self._lines.get(product_id)
        if line is not None:
            if line.quantity + quantity <= 0:
                self.remove_item(product_id)
                return None
            line.quantity += quantity
        else:
            if quantity < 1:
                raise ValidationError("Quantity must be at least 1")
            line = CartLine(
                id=product_id,
                name=_field(product, "name", ""),
                price=_field(product, "price") or 0,
                image_url=_field(product, "imageUrl", _field(product, "image_url")),
                category_name=_field(product, "categoryName", _field(product, "category_name")),
                quantity=quantity,
            )
            self._lines[product_id] = line
        self._save()
        return line

    def remove_item(self, product_id: str) -> None:
        if self._lines.pop(product_id, None) is not None:
            self._save()

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Absolute set. Zero or less removes the line."""
        if quantity <= 0:
            self.remove_item(product_id)
            return
        line = self._lines.get(product_id)
        if line is not None:
            line.quantity = quantity
            self._save()

    def clear_cart(self) -> None:
        self._lines.clear()
        self._save()

    # -- drawer --

    def open(self):
        self.is_open = True

    def close(self):
        self.is_open = False

    def toggle(self):
        self.is_open = not self.is_open

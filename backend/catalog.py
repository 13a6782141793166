"""Inventory, category, brand and contact management for the admin dashboard."""
from __future__ import annotations
import logging
import re
from typing import Any, Optional

from database import BRANDS, CATEGORIES, CONTACTS, INVENTORY
from exceptions import NotFoundError, PersistenceError, ValidationError
from schemas import Brand, Category, Contact, Product
from storage import ObjectStorage

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def parse_stock(raw: Any) -> int:
    """Non-negative integer count; anything unparseable is 0."""
    try:
        value = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        value = 0
    return max(0, value)


async def _write(action: str, coro):
    try:
        return await coro
    except Exception as e:
        logger.exception("Failed to %s", action)
        raise PersistenceError(f"Failed to {action}") from e


def _must_exist(found: bool, what: str) -> None:
    if not found:
        raise NotFoundError(f"{what} not found")


# Inventory

NO_BRAND = "no-brand"
LOW_STOCK_THRESHOLD = 5

SORT_KEYS = {
    "price-low": (lambda p: p.get("price") or 0, False),
    "price-high": (lambda p: p.get("price") or 0, True),
    "name": (lambda p: (p.get("name") or "").casefold(), False),
    "stock-low": (lambda p: p.get("count") or 0, False),
    "stock-high": (lambda p: p.get("count") or 0, True),
}
SORT_MODES = ("newest", *SORT_KEYS)


def filter_products(products: list[dict], search: str = "", category_id: Optional[str] = None,
                    brand_id: Optional[str] = None) -> list[dict]:
    """
    Name search plus category and brand filters. ``None``, ``""`` and ``"all"``
    leave a filter off; ``brand_id="no-brand"`` keeps products without a brand.
    """
    term = (search or "").strip().lower()
    category_id = None if category_id in (None, "", "all") else category_id
    brand_id = None if brand_id in (None, "", "all") else brand_id

    def keep(product: dict) -> bool:
        if term and term not in (product.get("name") or "").lower():
            return False
        if category_id and product.get("categoryId") != category_id:
            return False
        if brand_id == NO_BRAND:
            return not product.get("brandId")
        return not brand_id or product.get("brandId") == brand_id

    return [p for p in products if keep(p)]


def sort_products(products: list[dict], sort_by: Optional[str] = "newest") -> list[dict]:
    """``newest`` keeps the store order, which is newest first."""
    if not sort_by or sort_by == "newest":
        return list(products)
    if sort_by not in SORT_KEYS:
        raise ValidationError(f"Unknown sort: {sort_by}")
    key, reverse = SORT_KEYS[sort_by]
    return sorted(products, key=key, reverse=reverse)


async def list_products(store, featured: Optional[bool] = None, *, search: str = "",
                        category_id: Optional[str] = None, brand_id: Optional[str] = None,
                        sort_by: Optional[str] = "newest") -> list[dict]:
    filter_dict = {"featured": featured} if featured is not None else None
    docs = await store.get_documents(INVENTORY, filter_dict, sort=[("createdAt", -1)], limit=1000)
    return sort_products(filter_products(docs, search, category_id, brand_id), sort_by)


async def dashboard_stats(store) -> dict:
    items = await store.get_documents(INVENTORY, limit=1000)
    categories = await store.get_documents(CATEGORIES, limit=1000)
    brands = await store.get_documents(BRANDS, limit=1000)
    return {
        "totalProducts": len(items),
        "totalStock": sum(item.get("count") or 0 for item in items),
        "lowStock": sum(1 for item in items
                        if item.get("count") is not None and item["count"] <= LOW_STOCK_THRESHOLD),
        "categories": len(categories),
        "brands": len(brands),
    }


async def add_product(store, product: Product) -> dict:
    return await _write("add item", store.create_document(INVENTORY, product.to_document()))


async def update_product(store, product_id: str, data: dict) -> None:
    data = {k: v for k, v in data.items() if k != "id"}
    _must_exist(await _write("update item", store.update_document(INVENTORY, product_id, data)), "Item")


async def delete_product(store, storage: ObjectStorage, product_id: str) -> None:
    """Delete a product, dropping its image from storage first (best effort)."""
    doc = await store.get_document(INVENTORY, product_id)
    if doc is None:
        raise NotFoundError("Item not found")
    if doc.get("imageUrl"):
        await storage.delete(doc["imageUrl"])
    await _write("delete item", store.delete_document(INVENTORY, product_id))


async def update_count(store, product_id: str, change: int) -> None:
    """Atomic relative change; the count is not clamped."""
    found = await _write("update count", store.increment_field(INVENTORY, product_id, "count", change))
    _must_exist(found, "Item")


async def set_stock(store, product_id: str, raw_count: Any) -> int:
    count = parse_stock(raw_count)
    found = await _write("update stock", store.update_document(INVENTORY, product_id, {"count": count}))
    _must_exist(found, "Item")
    return count


# Categories

async def list_categories(store) -> list[dict]:
    return await store.get_documents(CATEGORIES, sort=[("sortOrder", 1)], limit=500)


async def add_category(store, category: Category) -> dict:
    existing = await store.get_documents(CATEGORIES, limit=10000)
    data = category.to_document()
    data["slug"] = slugify(category.name)
    data["sortOrder"] = len(existing) + 1
    return await _write("add category", store.create_document(CATEGORIES, data))


async def update_category(store, category_id: str, category: Category) -> None:
    data = category.model_dump(by_alias=True, exclude_none=True, exclude={"id", "sort_order"})
    data["slug"] = slugify(category.name)
    found = await _write("update category", store.update_document(CATEGORIES, category_id, data))
    _must_exist(found, "Category")


async def delete_category(store, category_id: str) -> None:
    _must_exist(await _write("delete category", store.delete_document(CATEGORIES, category_id)), "Category")


# Brands

async def list_brands(store) -> list[dict]:
    return await store.get_documents(BRANDS, sort=[("name", 1)], limit=500)


async def add_brand(store, brand: Brand) -> dict:
    return await _write("add brand", store.create_document(BRANDS, brand.to_document()))


async def update_brand(store, brand_id: str, brand: Brand) -> None:
    data = brand.model_dump(by_alias=True, exclude_none=True, exclude={"id"})
    _must_exist(await _write("update brand", store.update_document(BRANDS, brand_id, data)), "Brand")


async def delete_brand(store, storage: ObjectStorage, brand_id: str) -> None:
    doc = await store.get_document(BRANDS, brand_id)
    if doc is None:
        raise NotFoundError("Brand not found")
    if doc.get("logoUrl"):
        await storage.delete(doc["logoUrl"])
    await _write("delete brand", store.delete_document(BRANDS, brand_id))


# Contacts

async def list_contacts(store, unread_only: bool = False) -> list[dict]:
    filter_dict = {"read": False} if unread_only else None
    return await store.get_documents(CONTACTS, filter_dict, sort=[("createdAt", -1)], limit=500)


async def save_contact(store, contact: Contact) -> dict:
    data = contact.to_document()
    data["read"] = False
    return await _write("save message", store.create_document(CONTACTS, data))


async def mark_contact_read(store, contact_id: str, read: bool = True) -> None:
    found = await _write("update message", store.update_document(CONTACTS, contact_id, {"read": read}))
    _must_exist(found, "Message")

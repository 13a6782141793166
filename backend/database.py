from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol, Union
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from config import settings

logger = logging.getLogger(__name__)

# Collections
INVENTORY = "inventory"
CATEGORIES = "categories"
BRANDS = "brands"
ORDERS = "orders"
CONTACTS = "contacts"

SortSpec = list[tuple[str, int]]
SnapshotCallback = Callable[[list[dict[str, Any]]], Union[None, Awaitable[None]]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _object_id(doc_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(doc_id)
    except (InvalidId, TypeError):
        return None


def _to_client(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if doc is not None and "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


class CatalogReader(Protocol):
    """Read-only query surface the cart and order logic depends on."""

    async def get_documents(self, collection_name: str, filter_dict: dict[str, Any] | None = None,
                            sort: SortSpec | None = None, limit: int = 100) -> list[dict[str, Any]]:
        ...


class Subscription:
    """Handle for a live query started with `DocumentStore.subscribe`."""

    def __init__(self, task: asyncio.Task):
        self._task = task

    @property
    def cancelled(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()


class DocumentStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def create_document(self, collection_name: str, data: dict[str, Any]) -> dict[str, Any]:
        now = _now()
        data_with_meta = {**data, "createdAt": now, "updatedAt": now}
        result = await self.db[collection_name].insert_one(data_with_meta)
        inserted = await self.db[collection_name].find_one({"_id": result.inserted_id})
        return _to_client(inserted) or {}

    async def get_document(self, collection_name: str, doc_id: str) -> Optional[dict[str, Any]]:
        oid = _object_id(doc_id)
        if oid is None:
            return None
        return _to_client(await self.db[collection_name].find_one({"_id": oid}))

    async def find_one(self, collection_name: str, filter_dict: dict[str, Any]) -> Optional[dict[str, Any]]:
        return _to_client(await self.db[collection_name].find_one(filter_dict))

    async def get_documents(self, collection_name: str, filter_dict: dict[str, Any] | None = None,
                            sort: SortSpec | None = None, limit: int = 100) -> list[dict[str, Any]]:
        cursor = self.db[collection_name].find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        cursor = cursor.limit(limit)
        docs = []
        async for d in cursor:
            docs.append(_to_client(d))
        return docs

    async def update_document(self, collection_name: str, doc_id: str, data: dict[str, Any]) -> bool:
        oid = _object_id(doc_id)
        if oid is None:
            return False
        result = await self.db[collection_name].update_one(
            {"_id": oid}, {"$set": {**data, "updatedAt": _now()}}
        )
        return result.matched_count > 0

    async def add_to_set(self, collection_name: str, doc_id: str, field: str, value: Any) -> bool:
        oid = _object_id(doc_id)
        if oid is None:
            return False
        result = await self.db[collection_name].update_one(
            {"_id": oid}, {"$addToSet": {field: value}, "$set": {"updatedAt": _now()}}
        )
        return result.matched_count > 0

    async def delete_document(self, collection_name: str, doc_id: str) -> bool:
        oid = _object_id(doc_id)
        if oid is None:
            return False
        result = await self.db[collection_name].delete_one({"_id": oid})
        return result.deleted_count > 0

    async def increment_field(self, collection_name: str, doc_id: str, field: str, delta: Union[int, float]) -> bool:
        """Atomic server-side increment. The counter may go negative."""
        oid = _object_id(doc_id)
        if oid is None:
            return False
        result = await self.db[collection_name].update_one(
            {"_id": oid}, {"$inc": {field: delta}, "$set": {"updatedAt": _now()}}
        )
        return result.matched_count > 0

    def subscribe(self, collection_name: str, callback: SnapshotCallback, *,
                  filter_dict: dict[str, Any] | None = None, sort: SortSpec | None = None,
                  limit: int = 500, interval: float = 2.0) -> Subscription:
        return subscribe(self, collection_name, callback, filter_dict=filter_dict,
                         sort=sort, limit=limit, interval=interval)


def subscribe(reader: CatalogReader, collection_name: str, callback: SnapshotCallback, *,
              filter_dict: dict[str, Any] | None = None, sort: SortSpec | None = None,
              limit: int = 500, interval: float = 2.0) -> Subscription:
    """
    Poll `collection_name` and hand every changed snapshot to `callback`.

    The first snapshot is always delivered. Fetch and callback errors are
    logged and polling continues until the returned handle is cancelled.
    """

    async def _run():
        last = None
        while True:
            try:
                docs = await reader.get_documents(collection_name, filter_dict, sort=sort, limit=limit)
                if docs != last:
                    last = docs
                    result = callback(docs)
                    if asyncio.iscoroutine(result):
                        await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Live query on %s failed", collection_name)
            await asyncio.sleep(interval)

    return Subscription(asyncio.get_running_loop().create_task(_run()))


_client: Optional[AsyncIOMotorClient] = None
_store: Optional[DocumentStore] = None


async def get_store() -> DocumentStore:
    global _client, _store
    if _store is None:
        _client = AsyncIOMotorClient(settings.DATABASE_URL)
        _store = DocumentStore(_client[settings.DATABASE_NAME])
    return _store

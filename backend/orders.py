"""
Order creation and admin order management.

Web checkout writes the order first and then runs two follow-ups, the stock
decrement per line and the confirmation emails. Each follow-up records its
completion on the order document under ``followups`` so that a retry with the
same ``orderId`` resumes instead of repeating work.
"""
from __future__ import annotations
import logging
import re
import secrets
import time
from typing import Iterable, Optional

from database import INVENTORY, ORDERS
from emails import Mailer
from exceptions import NotFoundError, PersistenceError, ValidationError
from schemas import (
    CartLine, Customer, Order, OrderBuilderLine, OrderItem, OrderStatus, OrderType,
)

logger = logging.getLogger(__name__)

ORDER_PREFIX = "SAAJ"
MANUAL_ORDER_PREFIX = "M-SAAJ"
EMAIL_RE = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)
_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _timestamp36() -> str:
    return to_base36(int(time.time() * 1000))


def generate_order_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{ORDER_PREFIX}-{_timestamp36()}-{suffix}"


def generate_manual_order_id() -> str:
    return f"{MANUAL_ORDER_PREFIX}-{_timestamp36()}"


def subtotal_of(lines: Iterable) -> float:
    return sum(line.price * line.quantity for line in lines)


def _require(customer: Customer, fields: tuple[str, ...]) -> None:
    missing = [f for f in fields if not (getattr(customer, f) or "").strip()]
    if missing:
        raise ValidationError(f"Missing customer fields: {', '.join(missing)}")


def validate_web_customer(customer: Customer) -> None:
    _require(customer, ("name", "email", "phone", "address"))
    if not EMAIL_RE.match(customer.email.strip()):
        raise ValidationError("Invalid email address")


def validate_manual_customer(customer: Customer) -> None:
    _require(customer, ("name", "phone", "address"))


def build_web_order(lines: list[CartLine], customer: Customer, order_id: str) -> Order:
    subtotal = subtotal_of(lines)
    return Order(
        order_id=order_id,
        customer=customer,
        items=[
            OrderItem(id=l.id, name=l.name, price=l.price, quantity=l.quantity, image_url=l.image_url)
            for l in lines
        ],
        subtotal=subtotal,
        total=subtotal,
        status=OrderStatus.PENDING,
        type=OrderType.WEB,
    )


async def _persist_order(store, order: Order, extra: Optional[dict] = None) -> dict:
    try:
        return await store.create_document(ORDERS, {**order.to_document(), **(extra or {})})
    except Exception as e:
        logger.exception("Failed to save order", extra={"order_id": order.order_id})
        raise PersistenceError("Failed to place order. Please try again.") from e


async def _decrement_stock(store, doc_id: str, order_id: str, items: list[OrderItem], done: set) -> None:
    for item in items:
        if item.id in done:
            continue
        try:
            matched = await store.increment_field(INVENTORY, item.id, "count", -item.quantity)
            if not matched:
                logger.warning("Product %s not in inventory, nothing to decrement", item.id,
                               extra={"order_id": order_id})
            await store.add_to_set(ORDERS, doc_id, "followups.stock", item.id)
        except Exception:
            logger.exception("Failed to update inventory for %s", item.name, extra={"order_id": order_id})


async def _send_confirmation(store, mailer: Optional[Mailer], doc_id: str, order: Order, sent: set) -> None:
    if mailer is None or not mailer.configured:
        logger.info("Email not configured, skipping order emails", extra={"order_id": order.order_id})
        return
    sends = (
        ("customer", mailer.send_customer_confirmation),
        ("admin", mailer.send_admin_notification),
    )
    for recipient, send in sends:
        if recipient in sent:
            continue
        try:
            await send(order)
            await store.add_to_set(ORDERS, doc_id, "followups.emails", recipient)
        except Exception:
            logger.exception("Email sending failed", extra={"order_id": order.order_id})
            return


async def place_order(store, mailer: Optional[Mailer], lines: list[CartLine], customer: Customer,
                      order_id: Optional[str] = None) -> Order:
    """
    Persist a web order and run its follow-ups.

    Only the order write can fail the call. Passing the ``order_id`` of an
    earlier attempt reuses the stored order, ignoring ``lines``, and skips
    follow-ups already done.
    """
    if not lines:
        raise ValidationError("Your cart is empty!")
    validate_web_customer(customer)

    order_id = order_id or generate_order_id()
    order = build_web_order(lines, customer, order_id)

    try:
        doc = await store.find_one(ORDERS, {"orderId": order_id})
    except Exception:
        logger.exception("Lookup of existing order failed", extra={"order_id": order_id})
        doc = None
    if doc is None:
        doc = await _persist_order(store, order, {"followups": {"stock": [], "emails": []}})
    else:
        logger.info("Resuming existing order", extra={"order_id": order_id})
        order = Order.model_validate(doc)

    followups = doc.get("followups") or {}
    await _decrement_stock(store, doc["id"], order_id, order.items, set(followups.get("stock") or []))
    await _send_confirmation(store, mailer, doc["id"], order, set(followups.get("emails") or []))

    order.id = doc["id"]
    order.created_at = doc.get("createdAt")
    return order


def build_manual_order(lines: list[OrderBuilderLine], customer: Customer, discount: float,
                       order_id: Optional[str] = None) -> Order:
    subtotal = subtotal_of(lines)
    return Order(
        order_id=order_id or generate_manual_order_id(),
        customer=customer,
        items=[
            OrderItem(id=l.id, name=l.name, price=l.price, quantity=l.quantity,
                      image_url=l.image_url, original_price=l.original_price)
            for l in lines
        ],
        subtotal=subtotal,
        discount=discount,
        total=max(0.0, subtotal - discount),
        status=OrderStatus.CONFIRMED,
        type=OrderType.MANUAL,
    )


async def create_manual_order(store, lines: list[OrderBuilderLine], customer: Customer,
                              discount: float = 0) -> Order:
    """Staff-entered order. Stock is not re-checked or decremented."""
    if not lines:
        raise ValidationError("Add at least one product")
    validate_manual_customer(customer)
    order = build_manual_order(lines, customer, discount)
    doc = await _persist_order(store, order)
    logger.info("Manual order created", extra={"order_id": order.order_id})
    order.id = doc.get("id")
    order.created_at = doc.get("createdAt")
    return order


# Admin

def search_orders(docs: list[dict], term: Optional[str]) -> list[dict]:
    """Case-insensitive match on order id, customer name or customer email."""
    term = (term or "").strip().lower()
    if not term:
        return list(docs)

    def matches(doc: dict) -> bool:
        customer = doc.get("customer") or {}
        fields = (doc.get("orderId"), customer.get("name"), customer.get("email"))
        return any(term in (value or "").lower() for value in fields)

    return [doc for doc in docs if matches(doc)]


async def list_orders(store, status: Optional[str] = None, limit: int = 500,
                      search: Optional[str] = None) -> list[dict]:
    filter_dict = {"status": OrderStatus(status).value} if status and status != "all" else None
    docs = await store.get_documents(ORDERS, filter_dict, sort=[("createdAt", -1)], limit=limit)
    return search_orders(docs, search)


async def update_order_status(store, doc_id: str, status: OrderStatus | str) -> None:
    try:
        status = OrderStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown order status: {status}")
    if not await store.update_document(ORDERS, doc_id, {"status": status.value}):
        raise NotFoundError("Order not found")
    logger.info("Order %s status updated to %s", doc_id, status.value)


async def delete_order(store, doc_id: str) -> None:
    if not await store.delete_document(ORDERS, doc_id):
        raise NotFoundError("Order not found")


class Checkout:
    """
    Customer checkout over a `CartStore`.

    The order id of a failed attempt is kept so a retry lands on the same
    order. Cart and pending id are cleared only after success.
    """

    def __init__(self, cart, store, mailer: Optional[Mailer] = None):
        self.cart = cart
        self.store = store
        self.mailer = mailer
        self.pending_order_id: Optional[str] = None
        self.completed_order: Optional[Order] = None

    async def submit(self, customer: Customer) -> Order:
        if not self.cart.items:
            raise ValidationError("Your cart is empty!")
        if self.pending_order_id is None:
            self.pending_order_id = generate_order_id()
        order = await place_order(self.store, self.mailer, self.cart.items, customer,
                                  order_id=self.pending_order_id)
        self.completed_order = order
        self.pending_order_id = None
        self.cart.clear_cart()
        return order

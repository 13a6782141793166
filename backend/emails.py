"""
Transactional email through the Resend HTTP API.

Templates are `string.Template` HTML with `${var}` placeholders. Every
user-supplied value is escaped before substitution.
"""

import html
import math
import logging
from string import Template
from typing import Any, Optional, Union

import httpx

from config import Settings
from exceptions import CollaboratorError
from schemas import ContactMessage, Order

logger = logging.getLogger(__name__)

BRAND_FOOTER = "Saaj Trading Company - Wholesale Toy Distributor"


def format_inr(amount: Union[int, float, None]) -> str:
    """Rupee amount with Indian digit grouping: 1234567.5 -> ₹12,34,567.5"""
    amount = float(amount or 0)
    sign = "-" if amount < 0 else ""
    whole, _, frac = f"{abs(amount):.2f}".partition(".")
    frac = frac.rstrip("0")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    return f"{sign}₹{whole}" + (f".{frac}" if frac else "")


def _e(value: Any) -> str:
    return html.escape(str(value)) if value is not None else ""


CONTACT_TEMPLATE = Template("""\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="margin: 0; padding: 0; font-family: 'Segoe UI', Tahoma, sans-serif; background-color: #f5f5f5;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: linear-gradient(135deg, #6366F1 0%, #EC4899 100%); padding: 30px; border-radius: 16px 16px 0 0; text-align: center;">
      <h1 style="color: white; margin: 0; font-size: 24px;">New Contact Form Submission</h1>
    </div>
    <div style="background: white; padding: 30px; border-radius: 0 0 16px 16px;">
      <h2 style="color: #6366F1; margin: 0 0 16px 0; font-size: 18px;">Contact Details</h2>
      <table style="width: 100%; border-collapse: collapse;">
        <tr><td style="padding: 8px 0; color: #666; width: 120px;"><strong>Name:</strong></td><td>${name}</td></tr>
        <tr><td style="padding: 8px 0; color: #666;"><strong>Email:</strong></td><td><a href="mailto:${email}">${email}</a></td></tr>
        <tr><td style="padding: 8px 0; color: #666;"><strong>Phone:</strong></td><td>${phone}</td></tr>
        <tr><td style="padding: 8px 0; color: #666;"><strong>Subject:</strong></td><td>${subject}</td></tr>
      </table>
      <h2 style="color: #6366F1; margin: 24px 0 16px 0; font-size: 18px;">Message</h2>
      <div style="background: #f8fafc; padding: 16px; border-radius: 8px; white-space: pre-wrap;">${message}</div>
    </div>
    <p style="text-align: center; color: #94a3b8; font-size: 12px;">${footer}</p>
  </div>
</body>
</html>
""")

CUSTOMER_ORDER_TEMPLATE = Template("""\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: linear-gradient(135deg, #6366F1, #EC4899); padding: 30px; text-align: center; border-radius: 12px 12px 0 0;">
    <h1 style="color: white; margin: 0;">Thank You for Your Order!</h1>
  </div>
  <div style="padding: 30px; background: #f8fafc;">
    <p>Hi <strong>${name}</strong>,</p>
    <p>Your order has been received and is being processed.</p>
    <div style="background: white; padding: 20px; border-radius: 8px; margin: 20px 0; border: 1px solid #e2e8f0;">
      <h3 style="margin-top: 0; color: #6366F1;">Order #${order_id}</h3>
      <pre style="font-family: inherit; white-space: pre-wrap; margin: 0;">${items}</pre>
      <hr style="border: none; border-top: 1px solid #e2e8f0; margin: 15px 0;">
      <p style="font-size: 18px; font-weight: bold; text-align: right; margin: 0;">Total: ${total}</p>
    </div>
    <div style="background: white; padding: 20px; border-radius: 8px; border: 1px solid #e2e8f0;">
      <h4 style="margin-top: 0;">Delivery Address:</h4>
      <p style="margin: 0; color: #64748b;">${address}</p>
      <p style="margin: 10px 0 0; color: #64748b;">Phone: ${phone}</p>
    </div>
    <p style="margin-top: 20px; color: #64748b; font-size: 14px;">
      We'll contact you shortly to confirm delivery details and payment.
    </p>
  </div>
  <div style="padding: 20px; text-align: center; color: #94a3b8; font-size: 12px; background: #1e293b; border-radius: 0 0 12px 12px;">
    <p style="margin: 0;">${footer}</p>
  </div>
</div>
""")

ADMIN_ORDER_TEMPLATE = Template("""\
<div style="font-family: Arial, sans-serif; max-width: 600px;">
  <h2 style="color: #6366F1;">New Order Received!</h2>
  <div style="background: #f8fafc; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3 style="margin-top: 0;">Order #${order_id}</h3>
    <h4>Customer Details:</h4>
    <ul style="list-style: none; padding: 0; margin: 0;">
      <li><strong>Name:</strong> ${name}</li>
      <li><strong>Email:</strong> ${email}</li>
      <li><strong>Phone:</strong> ${phone}</li>
      <li><strong>Address:</strong> ${address}</li>
    </ul>
    <h4>Order Items:</h4>
    <pre style="font-family: inherit; white-space: pre-wrap; background: white; padding: 10px; border-radius: 4px;">${items}</pre>
    <p style="font-size: 20px; font-weight: bold; color: #6366F1; margin-bottom: 0;">Total: ${total}</p>
  </div>
</div>
""")


def render_contact_email(contact: ContactMessage) -> str:
    return CONTACT_TEMPLATE.safe_substitute(
        name=_e(f"{contact.first_name} {contact.last_name or ''}".strip()),
        email=_e(contact.email),
        phone=_e(contact.phone or "Not provided"),
        subject=_e(contact.subject or "Website Inquiry"),
        message=_e(contact.message),
        footer=BRAND_FOOTER,
    )


def format_items(order: Order) -> str:
    return "\n".join(
        f"• {item.name} × {item.quantity} - {format_inr((item.price or 0) * item.quantity)}"
        for item in order.items
    )


def _order_context(order: Order) -> dict:
    return {
        "order_id": _e(order.order_id),
        "name": _e(order.customer.name),
        "email": _e(order.customer.email),
        "phone": _e(order.customer.phone),
        "address": _e(order.customer.address),
        "items": _e(format_items(order)),
        "total": format_inr(order.total),
        "footer": BRAND_FOOTER,
    }


def render_customer_email(order: Order) -> str:
    return CUSTOMER_ORDER_TEMPLATE.safe_substitute(**_order_context(order))


def render_admin_email(order: Order) -> str:
    return ADMIN_ORDER_TEMPLATE.safe_substitute(**_order_context(order))


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return number if math.isfinite(number) else 0


def order_from_payload(body: dict) -> Order:
    """
    Order for rendering the confirmation emails from a caller-supplied payload.

    Only ``customer.email`` has to be present. Missing or malformed fields
    render as empty text or zero instead of rejecting the request.
    """
    customer = body.get("customer") or {}
    raw_items = body.get("items") if isinstance(body.get("items"), list) else []
    items = [
        {
            "id": _text(item.get("id")),
            "name": _text(item.get("name")),
            "price": _number(item.get("price")),
            "quantity": max(1, int(_number(item.get("quantity", 1)))),
        }
        for item in raw_items if isinstance(item, dict)
    ]
    return Order.model_validate({
        "orderId": _text(body.get("orderId")),
        "customer": {
            "name": _text(customer.get("name")),
            "email": _text(customer.get("email")),
            "phone": _text(customer.get("phone")),
            "address": _text(customer.get("address")),
        },
        "items": items,
        "subtotal": _number(body.get("subtotal")),
        "total": _number(body.get("total")),
    })


class Mailer:
    def __init__(self, api_key: Optional[str], from_email: str, admin_email: str,
                 contact_email: Optional[str] = None, api_url: str = "https://api.resend.com",
                 client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.from_email = from_email
        self.admin_email = admin_email
        self.contact_email = contact_email or admin_email
        self.api_url = api_url.rstrip("/")
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "Mailer":
        return cls(
            settings.RESEND_API_KEY,
            settings.FROM_EMAIL,
            settings.ADMIN_EMAIL,
            contact_email=settings.contact_recipient,
            api_url=settings.RESEND_API_URL,
            client=client,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            return await self._client.post(f"{self.api_url}/emails", json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=30.0) as client:
            return await client.post(f"{self.api_url}/emails", json=payload, headers=headers)

    async def send(self, to: str, subject: str, html_body: str, *,
                   from_email: Optional[str] = None, reply_to: Optional[str] = None) -> Optional[str]:
        """Send one email and return the provider's message id."""
        if not self.configured:
            raise CollaboratorError("Email provider not configured")
        payload = {
            "from": from_email or self.from_email,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        if reply_to:
            payload["reply_to"] = reply_to
        try:
            resp = await self._post(payload)
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Email provider unreachable: {e}") from e
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("message") or resp.text
            except ValueError:
                detail = resp.text
            raise CollaboratorError(detail or f"Email provider returned {resp.status_code}")
        return resp.json().get("id")

    async def send_contact_email(self, contact: ContactMessage) -> Optional[str]:
        return await self.send(
            self.contact_email,
            f"New Contact: {contact.subject or 'Website Inquiry'}",
            render_contact_email(contact),
            from_email=f"Saaj Trading Contact <{self.from_email}>",
            reply_to=contact.email,
        )

    async def send_customer_confirmation(self, order: Order) -> Optional[str]:
        return await self.send(
            order.customer.email,
            f"Order Confirmation - {order.order_id}",
            render_customer_email(order),
        )

    async def send_admin_notification(self, order: Order) -> Optional[str]:
        return await self.send(
            self.admin_email,
            f"New Order - {order.order_id}",
            render_admin_email(order),
        )

    async def send_order_emails(self, order: Order) -> tuple[Optional[str], Optional[str]]:
        """Customer confirmation first, then the admin notification."""
        customer_id = await self.send_customer_confirmation(order)
        admin_id = await self.send_admin_notification(order)
        logger.info("Order emails sent", extra={"order_id": order.order_id})
        return customer_id, admin_id

from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError as SchemaError

import catalog
import orders
from config import Settings, get_settings, settings
from database import DocumentStore, get_store
from emails import Mailer, order_from_payload
from exceptions import StorefrontError, register_exception_handlers
from logging_setup import configure_logging
from order_builder import parse_amount
from schemas import (
    Brand, Category, CheckoutRequest, Contact, ContactMessage, CountChange,
    ManualOrderRequest, Order, Product, StatusUpdate, StockSet,
)
from storage import FOLDERS, ObjectStorage

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    yield


app = FastAPI(title="Saaj Trading API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)


def get_mailer(cfg: Settings = Depends(get_settings)) -> Mailer:
    return Mailer.from_settings(cfg)


def get_storage(cfg: Settings = Depends(get_settings)) -> ObjectStorage:
    return ObjectStorage.from_settings(cfg)


@app.get("/")
async def root():
    return {"message": "Saaj Trading Backend Running"}


@app.get("/test")
async def test(cfg: Settings = Depends(get_settings)):
    return {
        "ok": True,
        "email": "configured" if cfg.email_configured else "not configured",
        "storage": "configured" if cfg.storage_configured else "not configured",
    }


# Email endpoints. These answer their own CORS preflight and reject other
# methods with 405, independent of the middleware.

EMAIL_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
EMAIL_METHODS = ["POST", "OPTIONS", "GET", "PUT", "PATCH", "DELETE"]


def _email_json(status_code: int, content: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=EMAIL_CORS_HEADERS)


async def _email_preamble(request: Request):
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=EMAIL_CORS_HEADERS)
    if request.method != "POST":
        return _email_json(405, {"error": "Method not allowed"})
    return None


async def _json_body(request: Request) -> Optional[dict]:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


@app.api_route("/api/send-contact-email", methods=EMAIL_METHODS)
async def send_contact_email(request: Request, mailer: Mailer = Depends(get_mailer)):
    early = await _email_preamble(request)
    if early is not None:
        return early

    body = await _json_body(request) or {}
    if not body.get("firstName") or not body.get("email") or not body.get("message"):
        return _email_json(400, {"error": "Missing required fields"})

    try:
        contact = ContactMessage.model_validate(body)
        email_id = await mailer.send_contact_email(contact)
    except SchemaError as e:
        return _email_json(400, {"error": "Missing required fields", "details": str(e)})
    except StorefrontError as e:
        logger.error("Resend error: %s", e.message)
        return _email_json(500, {"error": "Failed to send email", "details": e.message})
    except Exception as e:
        logger.exception("Server error sending contact email")
        return _email_json(500, {"error": "Internal server error", "details": str(e)})

    return _email_json(200, {"success": True, "emailId": email_id, "message": "Email sent successfully"})


@app.api_route("/api/send-order-emails", methods=EMAIL_METHODS)
async def send_order_emails(request: Request, mailer: Mailer = Depends(get_mailer)):
    early = await _email_preamble(request)
    if early is not None:
        return early

    body = await _json_body(request)
    if not body or not isinstance(body.get("customer"), dict) or not body["customer"].get("email"):
        return _email_json(400, {"error": "Invalid order data"})

    try:
        order = order_from_payload(body)
        customer_id, admin_id = await mailer.send_order_emails(order)
    except StorefrontError as e:
        logger.error("Email error: %s", e.message, extra={"order_id": body.get("orderId")})
        return _email_json(500, {"error": e.message})
    except Exception as e:
        logger.exception("Email error", extra={"order_id": body.get("orderId")})
        return _email_json(500, {"error": str(e)})

    return _email_json(200, {"success": True, "customerEmailId": customer_id, "adminEmailId": admin_id})


# Orders

def _order_out(order: Order) -> dict:
    return order.model_dump(by_alias=True, mode="json", exclude_none=True)


@app.post("/checkout", status_code=201)
async def checkout(payload: CheckoutRequest, store: DocumentStore = Depends(get_store),
                   mailer: Mailer = Depends(get_mailer)):
    order = await orders.place_order(store, mailer, payload.items, payload.customer, order_id=payload.order_id)
    return _order_out(order)


@app.post("/orders/manual", status_code=201)
async def create_manual_order(payload: ManualOrderRequest, store: DocumentStore = Depends(get_store)):
    order = await orders.create_manual_order(
        store, payload.items, payload.customer, parse_amount(payload.discount)
    )
    return _order_out(order)


@app.get("/orders")
async def list_orders(status: Optional[str] = Query(None), search: str = Query(""),
                      store: DocumentStore = Depends(get_store)):
    try:
        return await orders.list_orders(store, status, search=search)
    except ValueError:
        return JSONResponse(status_code=400, content={"error": f"Unknown order status: {status}",
                                                      "code": "validation_error"})


@app.post("/orders/{order_id}/status")
async def update_order_status(order_id: str, payload: StatusUpdate, store: DocumentStore = Depends(get_store)):
    await orders.update_order_status(store, order_id, payload.status)
    return {"id": order_id, "status": payload.status.value}


@app.delete("/orders/{order_id}", status_code=204)
async def delete_order(order_id: str, store: DocumentStore = Depends(get_store)):
    await orders.delete_order(store, order_id)


# Inventory

@app.get("/inventory")
async def list_inventory(featured: Optional[bool] = Query(None), search: str = Query(""),
                         category_id: Optional[str] = Query(None, alias="categoryId"),
                         brand_id: Optional[str] = Query(None, alias="brandId"),
                         sort: str = Query("newest"), store: DocumentStore = Depends(get_store)):
    return await catalog.list_products(store, featured, search=search, category_id=category_id,
                                       brand_id=brand_id, sort_by=sort)


@app.get("/stats")
async def dashboard_stats(store: DocumentStore = Depends(get_store)):
    return await catalog.dashboard_stats(store)


@app.post("/inventory", status_code=201)
async def add_inventory_item(product: Product, store: DocumentStore = Depends(get_store)):
    return await catalog.add_product(store, product)


@app.put("/inventory/{product_id}")
async def update_inventory_item(product_id: str, product: Product, store: DocumentStore = Depends(get_store)):
    await catalog.update_product(store, product_id, product.model_dump(by_alias=True, exclude_unset=True))
    return {"id": product_id}


@app.delete("/inventory/{product_id}", status_code=204)
async def delete_inventory_item(product_id: str, store: DocumentStore = Depends(get_store),
                                storage: ObjectStorage = Depends(get_storage)):
    await catalog.delete_product(store, storage, product_id)


@app.post("/inventory/{product_id}/count")
async def change_count(product_id: str, payload: CountChange, store: DocumentStore = Depends(get_store)):
    await catalog.update_count(store, product_id, payload.change)
    return {"id": product_id, "change": payload.change}


@app.post("/inventory/{product_id}/stock")
async def set_stock(product_id: str, payload: StockSet, store: DocumentStore = Depends(get_store)):
    count = await catalog.set_stock(store, product_id, payload.count)
    return {"id": product_id, "count": count}


# Categories

@app.get("/categories")
async def list_categories(store: DocumentStore = Depends(get_store)):
    return await catalog.list_categories(store)


@app.post("/categories", status_code=201)
async def add_category(category: Category, store: DocumentStore = Depends(get_store)):
    return await catalog.add_category(store, category)


@app.put("/categories/{category_id}")
async def update_category(category_id: str, category: Category, store: DocumentStore = Depends(get_store)):
    await catalog.update_category(store, category_id, category)
    return {"id": category_id}


@app.delete("/categories/{category_id}", status_code=204)
async def delete_category(category_id: str, store: DocumentStore = Depends(get_store)):
    await catalog.delete_category(store, category_id)


# Brands

@app.get("/brands")
async def list_brands(store: DocumentStore = Depends(get_store)):
    return await catalog.list_brands(store)


@app.post("/brands", status_code=201)
async def add_brand(brand: Brand, store: DocumentStore = Depends(get_store)):
    return await catalog.add_brand(store, brand)


@app.put("/brands/{brand_id}")
async def update_brand(brand_id: str, brand: Brand, store: DocumentStore = Depends(get_store)):
    await catalog.update_brand(store, brand_id, brand)
    return {"id": brand_id}


@app.delete("/brands/{brand_id}", status_code=204)
async def delete_brand(brand_id: str, store: DocumentStore = Depends(get_store),
                       storage: ObjectStorage = Depends(get_storage)):
    await catalog.delete_brand(store, storage, brand_id)


# Contacts

@app.get("/contacts")
async def list_contacts(unread: bool = Query(False), store: DocumentStore = Depends(get_store)):
    return await catalog.list_contacts(store, unread_only=unread)


@app.post("/contacts", status_code=201)
async def save_contact(contact: Contact, store: DocumentStore = Depends(get_store)):
    return await catalog.save_contact(store, contact)


@app.post("/contacts/{contact_id}/read")
async def mark_contact_read(contact_id: str, store: DocumentStore = Depends(get_store)):
    await catalog.mark_contact_read(store, contact_id)
    return {"id": contact_id, "read": True}


# Image uploads

@app.post("/uploads/{folder}", status_code=201)
async def upload_image(folder: str, file: UploadFile = File(...),
                       storage: ObjectStorage = Depends(get_storage)):
    if folder not in FOLDERS:
        return JSONResponse(status_code=400, content={"error": f"Unknown storage folder: {folder}",
                                                      "code": "validation_error"})
    content = await file.read()
    url = await storage.upload(content, file.filename or "upload.bin", folder, file.content_type)
    return {"url": url}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)

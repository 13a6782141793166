from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Documents are stored camelCase; Python code uses snake_case attributes.


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# Catalog collections: inventory, categories, brands, contacts

class Product(CamelModel):
    id: Optional[str] = None
    name: str
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    count: int = 0
    price: float = Field(ge=0, default=0)
    description: Optional[str] = None
    featured: bool = False
    brand_id: Optional[str] = None
    brand_name: Optional[str] = None
    brand_logo_url: Optional[str] = None
    image_url: Optional[str] = None


class Category(CamelModel):
    id: Optional[str] = None
    name: str
    slug: Optional[str] = None
    color: Optional[str] = None
    image_url: Optional[str] = None
    sort_order: Optional[int] = None


class Brand(CamelModel):
    id: Optional[str] = None
    name: str
    logo_url: Optional[str] = None


class ContactMessage(CamelModel):
    first_name: str
    last_name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: str


class Contact(ContactMessage):
    id: Optional[str] = None
    read: bool = False


# Cart and order builder lines

class CartLine(CamelModel):
    id: str
    name: str
    price: float = Field(ge=0, default=0)
    image_url: Optional[str] = None
    category_name: Optional[str] = None
    quantity: int = Field(ge=1, default=1)


class OrderBuilderLine(CamelModel):
    id: str
    name: str
    price: float = Field(ge=0, default=0)
    original_price: float = Field(ge=0, default=0)
    image_url: Optional[str] = None
    quantity: int = Field(ge=1, default=1)
    stock: int = 0


# Orders

class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderType(str, Enum):
    MANUAL = "manual"
    WEB = "web"


class Customer(CamelModel):
    name: str = ""
    email: Optional[str] = None
    phone: str = ""
    address: str = ""


class OrderItem(CamelModel):
    id: str
    name: str
    price: float = 0
    quantity: int = Field(ge=1, default=1)
    image_url: Optional[str] = None
    original_price: Optional[float] = None


class Order(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, use_enum_values=True
    )

    id: Optional[str] = None
    order_id: str
    customer: Customer
    items: list[OrderItem]
    subtotal: float
    discount: Optional[float] = None
    total: float
    status: OrderStatus = OrderStatus.PENDING
    type: Optional[OrderType] = None
    created_at: Optional[datetime] = None


# Request bodies

class CheckoutRequest(CamelModel):
    order_id: Optional[str] = None
    customer: Customer
    items: list[CartLine]


class ManualOrderRequest(CamelModel):
    customer: Customer
    items: list[OrderBuilderLine]
    discount: Optional[float | str] = 0


class StatusUpdate(BaseModel):
    status: OrderStatus


class CountChange(BaseModel):
    change: int


class StockSet(BaseModel):
    count: Optional[int | float | str] = None

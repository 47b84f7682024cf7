"""
Database Schemas for the Storefront API

Each Pydantic model maps to a MongoDB collection (lowercased class name)
- User -> user
- Product -> product
- Order -> order
- ShopConfig -> shopconfig (single document)

Field names are stored and served exactly as declared here.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Tombstone(BaseModel):
    """Soft-delete marker kept on the record instead of removing it"""
    status: bool = False
    deletedAt: Optional[datetime] = None


class User(BaseModel):
    """Customer or admin account
    password is stored as a bcrypt hash only; phone as digits only
    """
    username: str = Field(..., description="Unique, case-sensitive login name")
    email: Optional[str] = Field(None, description="Lowercased email")
    phone: Optional[str] = Field(None, description="Digits only")
    passwordHash: str
    role: Literal['user', 'admin'] = Field('user')


class Principal(BaseModel):
    id: str
    username: str
    role: Literal['user', 'admin'] = 'user'

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    unit: str = ""
    price: float = Field(..., ge=0)
    description: str = ""
    imageUrl: str = ""
    isActive: bool = True
    isDeleted: Tombstone = Field(default_factory=Tombstone)


class Customer(BaseModel):
    """Customer details captured when the order is placed
    optional fields are None when not provided, never empty strings
    """
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=6)
    type: Literal['Delivery', 'Pickup'] = 'Delivery'
    address: Optional[str] = None
    preferredTime: Optional[str] = None
    payment: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('address', 'preferredTime', 'payment', 'notes', mode='before')
    @classmethod
    def blank_is_absent(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class OrderItem(BaseModel):
    """Frozen copy of a product line at order time"""
    productId: Optional[str] = None
    name: str = Field(..., min_length=1)
    unit: str = ""
    qty: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    lineTotal: float = Field(..., ge=0)


class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    orderRef: str = Field(..., min_length=1)
    userId: Optional[str] = Field(None, description="Owning user id, None for guest orders")
    customer: Customer
    items: List[OrderItem] = Field(..., min_length=1)
    subtotal: float = Field(..., ge=0)
    message: str = ""
    source: str = "web"
    status: OrderStatus = OrderStatus.PENDING
    isDeleted: Tombstone = Field(default_factory=Tombstone)


class ShopConfig(BaseModel):
    name: str = "Home Kitchen"
    phone: str = ""
    email: str = ""
    address: str = ""
    whatsappNumber: str = ""
    instagram: str = ""
    orderPrefix: str = "ORD-"
    primaryColor: str = Field("#ff6933", pattern=HEX_COLOR)
    backgroundLight: str = Field("#f8f6f5", pattern=HEX_COLOR)
    backgroundDark: str = Field("#23140f", pattern=HEX_COLOR)
    textColor: str = Field("#181210", pattern=HEX_COLOR)
    currency: str = "INR"
    timezone: str = "Asia/Kolkata"
    dateFormat: str = "%d %B %Y, %I:%M %p"
    deliveryEnabled: bool = True
    pickupEnabled: bool = True

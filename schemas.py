"""
Database Schemas for HiveHelp

Each Pydantic model represents a MongoDB collection. Collection name is the lowercase of the class name.
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, EmailStr, Field

Role = Literal["customer", "beekeeper", "admin"]
AppointmentStatus = Literal["pending", "accepted", "completed", "cancelled"]
OrderStatus = Literal["processing", "shipped", "completed", "delivered", "cancelled"]

ROLES = get_args(Role)
APPOINTMENT_STATUSES = get_args(AppointmentStatus)
ORDER_STATUSES = get_args(OrderStatus)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatusEntry(BaseModel):
    status: str
    updated_at: datetime = Field(default_factory=utcnow)


# Users collection
class User(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = None
    password_hash: str = Field(..., min_length=10)
    role: Role = "customer"
    is_blocked: bool = False
    is_approved: bool = True
    locality: Optional[str] = None


# Products collection (honey listings)
class Product(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: float = Field(..., ge=0)
    stock_quantity: int = Field(0, ge=0)
    owner_beekeeper_id: str
    image_path: Optional[str] = None


# Appointments collection (pest-removal jobs)
class ContactInfo(BaseModel):
    full_name: str
    email: EmailStr
    phone: str


class Schedule(BaseModel):
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    time: str


class Location(BaseModel):
    hivespot: Optional[str] = None
    address: str
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class Appointment(BaseModel):
    customer_id: str
    beekeeper_id: Optional[str] = None
    contact: ContactInfo
    schedule: Schedule
    location: Location
    severity: Optional[str] = None
    photo_path: Optional[str] = None
    service_charge: float
    status: AppointmentStatus = "pending"
    status_history: List[StatusEntry]
    rating: Optional[int] = Field(None, ge=1, le=5)
    review: Optional[str] = None


# Orders collection
class Order(BaseModel):
    customer_id: str
    beekeeper_id: str
    product_id: str
    quantity: int = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)
    status: OrderStatus = "processing"
    created_at: datetime = Field(default_factory=utcnow)
    status_history: List[StatusEntry]

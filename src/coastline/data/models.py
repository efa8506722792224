"""
Typed marketplace entities returned by the data service.

Rows arrive as plain dicts from either backend: the relational driver
hands back ``UUID``/``Decimal``/``datetime`` objects, the platform hands
back JSON strings and numbers.  These pydantic models accept both shapes
and normalize them (identifiers to ``str``, amounts to ``float``,
timestamps to ``datetime``).  Columns the models do not name are kept
(``extra="allow"``) so schema additions never break reads.

Only ``id`` is required.  Every other column may be missing or NULL (a
row written by an older client, a column without a default), and a NULL
in a column the model names reads as that field's default.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator


def _to_str(value: Any) -> Any:
    return None if value is None else str(value)


Id = Annotated[str, BeforeValidator(_to_str)]
# asyncpg returns TIME columns as datetime.time
TimeText = Annotated[str, BeforeValidator(_to_str)]


class Entity(BaseModel):
    """Base for row models."""

    model_config = ConfigDict(extra="allow")

    id: Id
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _null_columns_take_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {k: v for k, v in data.items() if v is not None or k not in cls.model_fields}


# ── Static data ──────────────────────────────────────────────────────────


class ServiceCategory(Entity):
    name: str | None = None
    slug: str | None = None
    icon: str | None = None
    color: str | None = None
    description: str | None = None
    display_order: int = 0
    is_active: bool = True
    parent_id: Id | None = None


class Location(Entity):
    name: str | None = None
    type: str = "city"  # city | area | landmark
    parent_id: Id | None = None
    state: str | None = None
    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    pincode: str | None = None
    is_popular: bool = False
    display_order: int = 0
    is_active: bool = True


class DropdownOption(Entity):
    category: str | None = None
    label: str | None = None
    value: str | None = None
    display_order: int = 0
    metadata: Any = None
    is_active: bool = True


class SiteConfig(Entity):
    key: str | None = None
    value: str | None = None
    value_type: str = "string"  # string | number | boolean | json
    description: str | None = None
    is_public: bool = False
    updated_by: Id | None = None


# ── Users ────────────────────────────────────────────────────────────────


class User(Entity):
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    role: str = "customer"  # admin | vendor | customer | event_organizer
    avatar_url: str | None = None
    is_verified: bool = False
    is_active: bool = True
    vendor_status: str | None = None  # pending | approved | rejected
    business_name: str | None = None
    business_type: str | None = None
    business_description: str | None = None
    business_address: str | None = None
    organization_name: str | None = None
    organization_type: str | None = None
    last_login_at: datetime | None = None


# ── Services ─────────────────────────────────────────────────────────────


class Service(Entity):
    vendor_id: Id | None = None
    category_id: Id | None = None
    service_type: str | None = None  # homestay | restaurant | driver | event_services
    name: str | None = None
    description: str | None = None
    short_description: str | None = None
    address: str | None = None
    location_id: Id | None = None
    latitude: float | None = None
    longitude: float | None = None
    base_price: float = 0.0
    price_per_unit: float | None = None
    currency: str = "INR"
    service_details: Any = None
    primary_image_id: Id | None = None
    gallery_images: list[Id] | None = None
    status: str = "pending"  # pending | approved | rejected | suspended
    is_active: bool = True
    is_featured: bool = False
    average_rating: float = 0.0
    total_reviews: int = 0
    slug: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    approved_at: datetime | None = None
    approved_by: Id | None = None


# ── Bookings ─────────────────────────────────────────────────────────────


class Booking(Entity):
    booking_reference: str | None = None
    customer_id: Id | None = None
    vendor_id: Id | None = None
    service_id: Id | None = None
    service_type: str | None = None
    check_in_date: date | None = None
    check_out_date: date | None = None
    guests: int = 1
    units: int = 1
    booking_details: Any = None
    guest_name: str | None = None
    guest_email: str | None = None
    guest_phone: str | None = None
    special_requests: str | None = None
    base_amount: float = 0.0
    tax_amount: float = 0.0
    convenience_fee: float = 0.0
    discount_amount: float = 0.0
    total_amount: float = 0.0
    currency: str = "INR"
    payment_status: str = "pending"  # pending | paid | failed | refunded
    payment_id: str | None = None
    payment_gateway: str | None = None
    payment_details: Any = None
    status: str = "pending"  # pending | confirmed | cancelled | completed | no_show
    cancellation_reason: str | None = None
    cancelled_by: Id | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None


# ── Events ───────────────────────────────────────────────────────────────


class Event(Entity):
    organizer_id: Id | None = None
    category_id: Id | None = None
    title: str | None = None
    description: str | None = None
    short_description: str | None = None
    category: str | None = None
    event_date: date | None = None
    start_time: TimeText | None = None
    end_time: TimeText | None = None
    duration_hours: float | None = None
    venue_name: str | None = None
    venue_address: str | None = None
    location_id: Id | None = None
    max_capacity: int = 0
    current_registrations: int = 0
    ticket_price: float = 0.0
    currency: str = "INR"
    featured_image_id: Id | None = None
    gallery_images: list[Id] | None = None
    # draft | pending_approval | approved | rejected | published | cancelled | completed
    status: str = "draft"
    is_featured: bool = False
    requires_approval: bool = True
    slug: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    published_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: Id | None = None


# ── Analytics ────────────────────────────────────────────────────────────


class EventTypeSummary(BaseModel):
    """One row of the analytics summary."""

    model_config = ConfigDict(extra="allow")

    event_type: str
    event_count: int = 0
    unique_users: int = 0
    unique_sessions: int = 0


class DashboardStats(BaseModel):
    total_users: int = 0
    total_services: int = 0
    total_bookings: int = 0
    total_events: int = 0
    recent_bookings: list[Booking] = Field(default_factory=list)
    pending_approvals: int = 0


__all__ = [
    "Entity",
    "ServiceCategory",
    "Location",
    "DropdownOption",
    "SiteConfig",
    "User",
    "Service",
    "Booking",
    "Event",
    "EventTypeSummary",
    "DashboardStats",
]

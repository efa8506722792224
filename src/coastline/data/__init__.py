"""Domain data service and entity models for the marketplace."""

from .models import (
    Booking,
    DashboardStats,
    DropdownOption,
    Event,
    EventTypeSummary,
    Location,
    Service,
    ServiceCategory,
    SiteConfig,
    User,
)
from .service import DataService

__all__ = [
    "DataService",
    "Booking",
    "DashboardStats",
    "DropdownOption",
    "Event",
    "EventTypeSummary",
    "Location",
    "Service",
    "ServiceCategory",
    "SiteConfig",
    "User",
]

"""
Domain data service for the tourism marketplace.

Manifesto:
    Application code asks for bookings, services and events, not for
    tables and filters.  ``DataService`` is the only place that knows table
    names, column conventions and timestamp stamping; everything below it
    is backend-neutral, so the same method behaves identically on the
    managed platform and on the relational server.

Conventions:
    - Every insert stamps ``created_at`` and ``updated_at``; every update
      stamps ``updated_at``.
    - Single-entity lookups that match nothing return ``data=None`` with
      ``error=None``.
    - Backend failures come back as result values, never exceptions.
      Caller bugs in guarded transitions (``cancel_booking`` without a
      reason) raise ``ValueError``.

Examples:
    >>> data = DataService(backend)
    >>> created = await data.create_service({"vendor_id": vid, "service_type": "homestay",
    ...                                      "name": "Sea View", "base_price": 2500})
    >>> approved = await data.approve_service(created.data.id, approved_by=admin_id)
    >>> approved.data.status
    'approved'

Tags:
    coastline, domain-service, bookings, marketplace

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from datetime import timedelta
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from coastline.core.adapters.base import BackendAdapter
from coastline.core.errors import BackendError
from coastline.core.filters import SelectOptions
from coastline.core.logging import get_logger
from coastline.core.result import FileDeleteResult, FileResult, OperationResult, Row
from coastline.core.service import BackendService
from coastline.core.timestamps import utc_now, utc_today

from .models import (
    Booking,
    DashboardStats,
    DropdownOption,
    Event,
    EventTypeSummary,
    Location,
    ServiceCategory,
    SiteConfig,
    User,
)
from .models import Service as MarketplaceService

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")

ANALYTICS_SUMMARY_SQL = """
    SELECT
        event_type,
        COUNT(*) AS event_count,
        COUNT(DISTINCT user_id) AS unique_users,
        COUNT(DISTINCT session_id) AS unique_sessions
    FROM analytics_events
    WHERE created_at >= $1
    GROUP BY event_type
    ORDER BY event_count DESC
"""


def _payload(data: Mapping[str, Any] | BaseModel) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=True)
    return dict(data)


def _where(**filters: Any) -> dict[str, Any]:
    """Keep only the filters the caller actually supplied."""
    return {column: value for column, value in filters.items() if value is not None}


class DataService:
    """Typed marketplace operations on top of a ``BackendService``."""

    def __init__(self, backend: BackendService):
        self._backend = backend

    @property
    def backend(self) -> BackendService:
        return self._backend

    # ── Row → model helpers ──────────────────────────────────────────────

    @staticmethod
    def _validate(model: type[M], row: Row) -> M:
        return model.model_validate(row)

    def _many(self, model: type[M], result: OperationResult[list[Row]]) -> OperationResult[list[M]]:
        if result.error is not None:
            return OperationResult.failure(result.error)
        try:
            items = [self._validate(model, row) for row in result.data or []]
        except ValidationError as e:
            return OperationResult.failure(self._shape_error(model, e))
        return OperationResult.success(items, count=result.count)

    def _one(self, model: type[M], result: OperationResult[Any]) -> OperationResult[M]:
        """First row of a list result, or the single row of an insert."""
        if result.error is not None:
            return OperationResult.failure(result.error)
        data = result.data
        row = (data[0] if data else None) if isinstance(data, list) else data
        if row is None:
            return OperationResult.success(None)
        try:
            return OperationResult.success(self._validate(model, row))
        except ValidationError as e:
            return OperationResult.failure(self._shape_error(model, e))

    @staticmethod
    def _shape_error(model: type[BaseModel], e: ValidationError) -> BackendError:
        logger.error("unexpected_row_shape", model=model.__name__, errors=e.error_count())
        return BackendError(f"Row does not match {model.__name__}: {e}", cause=e)

    async def _get(self, model: type[M], table: str, where: Mapping[str, Any]) -> OperationResult[M]:
        return self._one(model, await self._backend.select(table, SelectOptions(where=where, limit=1)))

    async def _list(self, model: type[M], table: str, options: SelectOptions) -> OperationResult[list[M]]:
        return self._many(model, await self._backend.select(table, options))

    async def _create(self, model: type[M], table: str, data: Mapping[str, Any] | BaseModel) -> OperationResult[M]:
        now = utc_now()
        row = {**_payload(data), "created_at": now, "updated_at": now}
        return self._one(model, await self._backend.insert(table, row))

    async def _update(
        self, model: type[M], table: str, entity_id: str, data: Mapping[str, Any] | BaseModel
    ) -> OperationResult[M]:
        changes = {**_payload(data), "updated_at": utc_now()}
        return self._one(model, await self._backend.update(table, changes, {"id": entity_id}))

    async def _count(self, table: str, where: Mapping[str, Any] | None = None) -> OperationResult[int]:
        result = await self._backend.select(table, SelectOptions(select="id", where=where, limit=1, count=True))
        if result.error is not None:
            return OperationResult.failure(result.error)
        return OperationResult.success(result.count or 0)

    # ==============================================
    # CONFIGURATION & STATIC DATA
    # ==============================================

    async def get_service_categories(self, active_only: bool = True) -> OperationResult[list[ServiceCategory]]:
        where = {"is_active": True} if active_only else None
        return await self._list(
            ServiceCategory, "service_categories", SelectOptions(where=where, order_by="display_order asc")
        )

    async def get_locations(self, popular_only: bool = False) -> OperationResult[list[Location]]:
        where: dict[str, Any] = {"is_active": True}
        if popular_only:
            where["is_popular"] = True
        return await self._list(Location, "locations", SelectOptions(where=where, order_by="display_order asc"))

    async def get_dropdown_options(self, category: str) -> OperationResult[list[DropdownOption]]:
        return await self._list(
            DropdownOption,
            "dropdown_options",
            SelectOptions(where={"category": category, "is_active": True}, order_by="display_order asc"),
        )

    async def get_site_config(self, key: str, public_only: bool = False) -> OperationResult[SiteConfig]:
        where: dict[str, Any] = {"key": key}
        if public_only:
            where["is_public"] = True
        return await self._get(SiteConfig, "site_config", where)

    async def list_site_config(self, public_only: bool = False) -> OperationResult[list[SiteConfig]]:
        where = {"is_public": True} if public_only else None
        return await self._list(SiteConfig, "site_config", SelectOptions(where=where, order_by="key asc"))

    async def update_site_config(
        self, key: str, value: str, updated_by: str | None = None
    ) -> OperationResult[SiteConfig]:
        changes = {"value": value, "updated_at": utc_now(), "updated_by": updated_by}
        return self._one(SiteConfig, await self._backend.update("site_config", changes, {"key": key}))

    # ==============================================
    # USER MANAGEMENT
    # ==============================================

    async def get_user_by_id(self, user_id: str) -> OperationResult[User]:
        return await self._get(User, "users", {"id": user_id})

    async def get_user_by_email(self, email: str) -> OperationResult[User]:
        return await self._get(User, "users", {"email": email})

    async def create_user(self, data: Mapping[str, Any] | BaseModel) -> OperationResult[User]:
        return await self._create(User, "users", data)

    async def update_user(self, user_id: str, data: Mapping[str, Any] | BaseModel) -> OperationResult[User]:
        return await self._update(User, "users", user_id, data)

    async def get_users_by_role(self, role: str) -> OperationResult[list[User]]:
        return await self._list(
            User, "users", SelectOptions(where={"role": role, "is_active": True}, order_by="created_at desc")
        )

    async def get_pending_vendors(self) -> OperationResult[list[User]]:
        return await self._list(
            User,
            "users",
            SelectOptions(where={"role": "vendor", "vendor_status": "pending"}, order_by="created_at desc"),
        )

    # ==============================================
    # SERVICE MANAGEMENT
    # ==============================================

    async def get_services(
        self,
        *,
        service_type: str | None = None,
        status: str | None = None,
        vendor_id: str | None = None,
        location_id: str | None = None,
        featured: bool | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> OperationResult[list[MarketplaceService]]:
        where = _where(
            service_type=service_type,
            status=status,
            vendor_id=vendor_id,
            location_id=location_id,
            is_featured=featured,
        )
        options = SelectOptions(where=where, order_by="created_at desc", limit=limit, offset=offset)
        return await self._list(MarketplaceService, "services", options)

    async def get_service_by_id(self, service_id: str) -> OperationResult[MarketplaceService]:
        return await self._get(MarketplaceService, "services", {"id": service_id})

    async def create_service(self, data: Mapping[str, Any] | BaseModel) -> OperationResult[MarketplaceService]:
        return await self._create(MarketplaceService, "services", data)

    async def update_service(
        self, service_id: str, data: Mapping[str, Any] | BaseModel
    ) -> OperationResult[MarketplaceService]:
        return await self._update(MarketplaceService, "services", service_id, data)

    async def approve_service(self, service_id: str, approved_by: str) -> OperationResult[MarketplaceService]:
        now = utc_now()
        changes = {"status": "approved", "approved_at": now, "approved_by": approved_by}
        return await self._update(MarketplaceService, "services", service_id, changes)

    async def search_services(
        self,
        text: str,
        service_type: str | None = None,
        location_id: str | None = None,
    ) -> OperationResult[list[MarketplaceService]]:
        """Approved, active services whose name or description contains ``text``.

        The structured part runs on the backend; the case-insensitive text
        match runs here, so both backends return the same rows.
        """
        where = {
            "status": "approved",
            "is_active": True,
            **_where(service_type=service_type, location_id=location_id),
        }
        result = await self._list(
            MarketplaceService,
            "services",
            SelectOptions(where=where, order_by="is_featured desc, average_rating desc"),
        )
        if result.error is not None:
            return result

        needle = text.casefold()
        matches = [
            service
            for service in result.data or []
            if needle in (service.name or "").casefold() or needle in (service.description or "").casefold()
        ]
        return OperationResult.success(matches, count=len(matches))

    # ==============================================
    # BOOKING MANAGEMENT
    # ==============================================

    async def get_bookings(
        self,
        *,
        customer_id: str | None = None,
        vendor_id: str | None = None,
        service_id: str | None = None,
        status: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> OperationResult[list[Booking]]:
        where = _where(customer_id=customer_id, vendor_id=vendor_id, service_id=service_id, status=status)
        options = SelectOptions(where=where, order_by="created_at desc", limit=limit, offset=offset)
        return await self._list(Booking, "bookings", options)

    async def get_booking_by_id(self, booking_id: str) -> OperationResult[Booking]:
        return await self._get(Booking, "bookings", {"id": booking_id})

    async def get_booking_by_reference(self, reference: str) -> OperationResult[Booking]:
        return await self._get(Booking, "bookings", {"booking_reference": reference})

    async def create_booking(self, data: Mapping[str, Any] | BaseModel) -> OperationResult[Booking]:
        return await self._create(Booking, "bookings", data)

    async def update_booking(self, booking_id: str, data: Mapping[str, Any] | BaseModel) -> OperationResult[Booking]:
        return await self._update(Booking, "bookings", booking_id, data)

    async def confirm_booking(self, booking_id: str) -> OperationResult[Booking]:
        changes = {"status": "confirmed", "confirmed_at": utc_now()}
        return await self._update(Booking, "bookings", booking_id, changes)

    async def cancel_booking(self, booking_id: str, reason: str, cancelled_by: str) -> OperationResult[Booking]:
        if not reason or not reason.strip():
            raise ValueError("cancel_booking requires a cancellation reason")
        if not cancelled_by:
            raise ValueError("cancel_booking requires the cancelling actor")
        changes = {
            "status": "cancelled",
            "cancellation_reason": reason,
            "cancelled_by": cancelled_by,
            "cancelled_at": utc_now(),
        }
        return await self._update(Booking, "bookings", booking_id, changes)

    # ==============================================
    # EVENT MANAGEMENT
    # ==============================================

    async def get_events(
        self,
        *,
        organizer_id: str | None = None,
        status: str | None = None,
        featured: bool | None = None,
        upcoming: bool = False,
        limit: int | None = None,
        offset: int | None = None,
    ) -> OperationResult[list[Event]]:
        where: dict[str, Any] = _where(organizer_id=organizer_id, status=status, is_featured=featured)
        if upcoming:
            where["event_date"] = {"gte": utc_today()}
        options = SelectOptions(where=where, order_by="event_date asc", limit=limit, offset=offset)
        return await self._list(Event, "events", options)

    async def get_event_by_id(self, event_id: str) -> OperationResult[Event]:
        return await self._get(Event, "events", {"id": event_id})

    async def create_event(self, data: Mapping[str, Any] | BaseModel) -> OperationResult[Event]:
        return await self._create(Event, "events", data)

    async def update_event(self, event_id: str, data: Mapping[str, Any] | BaseModel) -> OperationResult[Event]:
        return await self._update(Event, "events", event_id, data)

    async def approve_event(self, event_id: str, approved_by: str) -> OperationResult[Event]:
        changes = {"status": "approved", "approved_at": utc_now(), "approved_by": approved_by}
        return await self._update(Event, "events", event_id, changes)

    async def publish_event(self, event_id: str) -> OperationResult[Event]:
        changes = {"status": "published", "published_at": utc_now()}
        return await self._update(Event, "events", event_id, changes)

    # ==============================================
    # ANALYTICS
    # ==============================================

    async def track_event(self, event_type: str, **fields: Any) -> OperationResult[Row]:
        """Append one analytics event (``analytics_events`` rows are never updated)."""
        row = {**fields, "event_type": event_type, "created_at": utc_now()}
        result = await self._backend.insert("analytics_events", row)
        if result.error is not None:
            return OperationResult.failure(result.error)
        return OperationResult.success(result.data)

    async def get_analytics_summary(self, days: int = 30) -> OperationResult[list[EventTypeSummary]]:
        """Per-event-type counts over the last ``days`` days."""
        if days < 0:
            raise ValueError("days must be non-negative")
        since = utc_now() - timedelta(days=days)
        return self._many(EventTypeSummary, await self._backend.query(ANALYTICS_SUMMARY_SQL, [since]))

    async def get_dashboard_stats(self) -> OperationResult[DashboardStats]:
        counts: dict[str, int] = {}
        for name, table, where in (
            ("total_users", "users", {"is_active": True}),
            ("total_services", "services", {"status": "approved"}),
            ("total_bookings", "bookings", None),
            ("total_events", "events", {"status": "published"}),
            ("pending_services", "services", {"status": "pending"}),
            ("pending_events", "events", {"status": "pending_approval"}),
        ):
            result = await self._count(table, where)
            if result.error is not None:
                return OperationResult.failure(result.error)
            counts[name] = result.data or 0

        recent = await self.get_bookings(limit=5)
        if recent.error is not None:
            return OperationResult.failure(recent.error)

        stats = DashboardStats(
            total_users=counts["total_users"],
            total_services=counts["total_services"],
            total_bookings=counts["total_bookings"],
            total_events=counts["total_events"],
            recent_bookings=recent.data or [],
            pending_approvals=counts["pending_services"] + counts["pending_events"],
        )
        return OperationResult.success(stats)

    # ==============================================
    # MEDIA
    # ==============================================

    async def upload_media(
        self,
        bucket: str,
        path: str,
        content: bytes,
        *,
        content_type: str | None = None,
        original_name: str | None = None,
        alt_text: str | None = None,
        caption: str | None = None,
        uploaded_by: str | None = None,
    ) -> FileResult:
        metadata = _where(
            content_type=content_type,
            original_name=original_name,
            alt_text=alt_text,
            caption=caption,
            uploaded_by=uploaded_by,
        )
        result = await self._backend.upload_file(bucket, path, content, metadata)
        if result.ok:
            logger.info("media_uploaded", bucket=bucket, path=path, size=len(content))
        return result

    async def delete_media(self, bucket: str, path: str) -> FileDeleteResult:
        return await self._backend.delete_file(bucket, path)

    # ==============================================
    # UTILITY
    # ==============================================

    async def execute_transaction(self, fn: Callable[[BackendAdapter], Awaitable[R]]) -> R:
        return await self._backend.transaction(fn)

    async def health_check(self) -> dict[str, Any]:
        return await self._backend.health()


__all__ = [
    "ANALYTICS_SUMMARY_SQL",
    "DataService",
]

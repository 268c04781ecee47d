"""Pydantic request/response schemas for the Dispatch API."""

from datetime import datetime

from pydantic import BaseModel

from delivery.geo import Coordinates
from dispatch.courier import AuthorizedCourier, Courier
from dispatch.service import TrackingView


class AuthorizeCourierRequest(BaseModel):
    email: str
    name: str


class AuthorizedCourierResponse(BaseModel):
    email: str
    name: str
    authorized_at: datetime

    @classmethod
    def from_entry(cls, entry: AuthorizedCourier) -> "AuthorizedCourierResponse":
        return cls(**entry.model_dump())


class CourierLoginRequest(BaseModel):
    email: str
    name: str
    phone: str | None = None


class CourierResponse(BaseModel):
    id: str
    email: str
    name: str
    phone: str | None = None
    location: Coordinates | None = None
    location_updated_at: datetime | None = None
    active: bool

    @classmethod
    def from_courier(cls, courier: Courier) -> "CourierResponse":
        return cls(**courier.model_dump(exclude={"created_at"}))


class LocationUpdateResponse(BaseModel):
    courier_id: str
    relayed_order_ids: list[str]


class TrackingResponse(BaseModel):
    order_id: str
    status: str
    courier_id: str | None = None
    courier_name: str | None = None
    courier_location: Coordinates | None = None
    courier_location_updated_at: datetime | None = None
    delivery_location: Coordinates | None = None
    remaining_km: float | None = None
    remaining_text: str | None = None
    updated_at: datetime

    @classmethod
    def from_view(cls, view: TrackingView) -> "TrackingResponse":
        return cls(
            order_id=view.order_id,
            status=view.status.value,
            courier_id=view.courier_id,
            courier_name=view.courier_name,
            courier_location=view.courier_location,
            courier_location_updated_at=view.courier_location_updated_at,
            delivery_location=view.delivery_location,
            remaining_km=view.remaining_km,
            remaining_text=view.remaining_text,
            updated_at=view.updated_at,
        )


class StatusResponse(BaseModel):
    status: str

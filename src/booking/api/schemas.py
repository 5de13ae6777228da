"""Pydantic request/response schemas for the Booking API."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from booking.booking import BookingStatus


class CreateBookingRequest(BaseModel):
    service_id: str
    scheduled_date: date
    scheduled_hour: int = Field(ge=0, le=23)
    add_on_ids: list[str] = Field(default_factory=list)
    vehicle_info: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=1000)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "service_id": "svc-001",
                    "scheduled_date": "2026-11-02",
                    "scheduled_hour": 9,
                    "vehicle_info": "Toyota, Corolla, 2019",
                }
            ]
        }
    }


class CancelBookingRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class UpdateBookingStatusRequest(BaseModel):
    status: BookingStatus
    reason: str | None = Field(default=None, max_length=500)


class BookingAddOnResponse(BaseModel):
    add_on_id: str
    name: str
    price: Decimal

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: str
    booking_number: str
    user_id: str
    service_id: str
    scheduled_date: date
    scheduled_hour: int
    duration_hours: int
    status: str
    base_price: Decimal
    add_ons_total: Decimal
    total_amount: Decimal
    currency: str
    vehicle_info: str | None
    vehicle_make: str | None
    vehicle_model: str | None
    vehicle_year: int | None
    notes: str | None
    cancellation_reason: str | None
    refund_amount: Decimal | None
    created_at: datetime
    confirmed_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    add_ons: list[BookingAddOnResponse]

    model_config = {"from_attributes": True}


class BookingRefundResponse(BaseModel):
    amount: Decimal
    percentage: int
    processing_time: str

    model_config = {"from_attributes": True}


class CancelBookingResponse(BaseModel):
    booking: BookingResponse
    refund: BookingRefundResponse


class DayAvailabilityResponse(BaseModel):
    day: date
    slots: list[int]
    booked_slots: list[int]
    blocked_slots: list[int]
    fully_booked: bool


class AvailabilityResponse(BaseModel):
    service_id: str
    days: list[DayAvailabilityResponse]

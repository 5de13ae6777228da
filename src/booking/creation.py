"""Booking creation — command and handler.

The availability check up front gives a friendly answer in the common case.
Two customers can still pass it at the same moment; the partial unique index
on the bookings table settles that race, and the loser gets
TIME_SLOT_UNAVAILABLE exactly as if the check had caught it.
"""

from datetime import date, datetime

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking.availability import (
    ScheduleRules,
    find_conflict,
    load_blocks,
    load_booked_slots,
    within_booking_window,
)
from booking.booking import Booking, BookingStatus
from catalogue.models import Service, ServiceAddOn
from catalogue.sql_adapter import SqlCatalogue
from notifications.triggers import Trigger, fire
from shared.config import get_settings
from shared.database import unit_of_work, utc_now
from shared.errors import ConflictError, ErrorCode, NotFoundError, ValidationFailed
from shared.numbering import next_number

logger = structlog.get_logger(__name__)


class CreateBooking(BaseModel):
    user_id: str
    service_id: str
    scheduled_date: date
    scheduled_hour: int = Field(ge=0, le=23)
    add_on_ids: list[str] = Field(default_factory=list)
    vehicle_info: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=1000)


def slot_conflict(
    session: Session,
    catalogue: SqlCatalogue,
    service: Service,
    scheduled_date: date,
    scheduled_hour: int,
    now: datetime,
):
    """Return the reason the slot is closed, or None if it looks open right now."""
    return find_conflict(
        ScheduleRules.from_service(service),
        scheduled_date,
        scheduled_hour,
        bookings=load_booked_slots(session, service.id, scheduled_date, scheduled_date),
        blocks=load_blocks(catalogue, service.id, scheduled_date, scheduled_date),
        now=now,
    )


def _slot_taken(session: Session, service_id: str, scheduled_date: date, scheduled_hour: int) -> bool:
    return (
        session.scalar(
            select(Booking.id).where(
                Booking.service_id == service_id,
                Booking.scheduled_date == scheduled_date,
                Booking.scheduled_hour == scheduled_hour,
                Booking.status != BookingStatus.CANCELLED.value,
            )
        )
        is not None
    )


def _slot_unavailable(command: CreateBooking, reason: str) -> ConflictError:
    return ConflictError(
        ErrorCode.TIME_SLOT_UNAVAILABLE,
        f"{command.scheduled_date.isoformat()} at {command.scheduled_hour:02d}:00 is not available",
        {
            "service_id": command.service_id,
            "scheduled_date": command.scheduled_date.isoformat(),
            "scheduled_hour": command.scheduled_hour,
            "reason": reason,
        },
    )


def _resolve_add_ons(catalogue: SqlCatalogue, service: Service, add_on_ids: list[str]) -> list[ServiceAddOn]:
    requested = list(dict.fromkeys(add_on_ids))
    add_ons = catalogue.get_add_ons(service.id, requested)
    unknown = sorted(set(requested) - {add_on.id for add_on in add_ons})
    if unknown:
        raise ValidationFailed(
            ErrorCode.INVALID_ADD_ON,
            f"Add-ons not offered with {service.name}",
            {"add_on_ids": unknown},
        )
    return add_ons


class CreateBookingHandler:
    def create_booking(self, command: CreateBooking) -> Booking:
        now = utc_now()

        with unit_of_work() as session:
            catalogue = SqlCatalogue(session)
            service = catalogue.get_service(command.service_id)
            if service is None:
                raise NotFoundError(ErrorCode.SERVICE_NOT_FOUND, f"Service {command.service_id} not found")
            if not service.is_active:
                raise ValidationFailed(
                    ErrorCode.SERVICE_NOT_AVAILABLE,
                    f"{service.name} is not currently offered",
                    {"service_id": service.id},
                )

            rules = ScheduleRules.from_service(service)
            if not within_booking_window(rules, command.scheduled_date, now):
                raise ValidationFailed(
                    ErrorCode.INVALID_BOOKING_DATE,
                    f"Bookings for {service.name} must be made between {rules.min_advance_days} "
                    f"and {rules.max_advance_days} days in advance",
                    {"scheduled_date": command.scheduled_date.isoformat()},
                )

            conflict = slot_conflict(session, catalogue, service, command.scheduled_date, command.scheduled_hour, now)
            if conflict is not None:
                raise _slot_unavailable(command, conflict.value)

            add_ons = _resolve_add_ons(catalogue, service, command.add_on_ids)
            booking = Booking.create(
                booking_number=next_number(session, "booking", get_settings().booking_number_prefix),
                user_id=command.user_id,
                service=service,
                scheduled_date=command.scheduled_date,
                scheduled_hour=command.scheduled_hour,
                add_ons=add_ons,
                vehicle_info=command.vehicle_info,
                notes=command.notes,
            )

            try:
                with session.begin_nested():
                    session.add(booking)
            except IntegrityError as exc:
                if _slot_taken(session, service.id, command.scheduled_date, command.scheduled_hour):
                    logger.info(
                        "Slot claimed by a concurrent booking",
                        service_id=service.id,
                        scheduled_date=command.scheduled_date.isoformat(),
                        scheduled_hour=command.scheduled_hour,
                    )
                    raise _slot_unavailable(command, "BOOKED") from exc
                raise ConflictError(
                    ErrorCode.NUMBER_COLLISION,
                    f"Booking number {booking.booking_number} is already taken",
                ) from exc

        logger.info(
            "Booking created",
            booking_id=booking.id,
            booking_number=booking.booking_number,
            service_id=booking.service_id,
            total=str(booking.total_amount),
        )
        fire(
            Trigger.BOOKING_CREATED,
            booking_id=booking.id,
            booking_number=booking.booking_number,
            user_id=booking.user_id,
            scheduled_date=booking.scheduled_date.isoformat(),
            scheduled_hour=booking.scheduled_hour,
        )
        return booking

"""Booking aggregate — a customer's claim on one service slot.

A slot is (service, date, start hour). At most one booking per slot may be
in any status other than CANCELLED; the partial unique index
``uq_bookings_active_slot`` enforces that in the database, so two
customers racing for the same slot cannot both win.

State Machine:
    PENDING → CONFIRMED → IN_PROGRESS → COMPLETED
    PENDING / CONFIRMED → CANCELLED
    CONFIRMED → NO_SHOW
"""

from datetime import UTC, date, datetime, time
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catalogue.models import Service, ServiceAddOn
from shared.database import Base, new_id, to_money, utc_now
from shared.errors import ErrorCode, StateError
from shared.status import StatusMachine


class BookingStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


BOOKING_STATUS_MACHINE = StatusMachine(
    "booking",
    {
        BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
        BookingStatus.CONFIRMED: {BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED, BookingStatus.NO_SHOW},
        BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED},
        BookingStatus.COMPLETED: set(),  # Terminal
        BookingStatus.CANCELLED: set(),  # Terminal
        BookingStatus.NO_SHOW: set(),  # Terminal
    },
    initial=BookingStatus.PENDING,
)

CANCELLABLE_STATES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

_ACTIVE_SLOT_PREDICATE = text("status <> 'CANCELLED'")


def parse_vehicle_info(vehicle_info: str | None) -> tuple[str | None, str | None, int | None]:
    """Split ``"make, model, year"`` into its parts; missing parts come back as None."""
    if not vehicle_info:
        return None, None, None

    parts = [part.strip() for part in vehicle_info.split(",")]
    make = parts[0] or None
    model = (parts[1] or None) if len(parts) > 1 else None
    year = int(parts[2]) if len(parts) > 2 and parts[2].isdigit() else None
    return make, model, year


class BookingAddOn(Base):
    __tablename__ = "booking_add_ons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    booking_id: Mapped[str] = mapped_column(ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    add_on_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    booking: Mapped["Booking"] = relationship(back_populates="add_ons")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index(
            "uq_bookings_active_slot",
            "service_id",
            "scheduled_date",
            "scheduled_hour",
            unique=True,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
        ),
        CheckConstraint("scheduled_hour BETWEEN 0 AND 23", name="hour_range"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    booking_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    service_id: Mapped[str] = mapped_column(ForeignKey("services.id"), nullable=False)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    add_ons_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    vehicle_info: Mapped[str | None] = mapped_column(String(255))
    vehicle_make: Mapped[str | None] = mapped_column(String(100))
    vehicle_model: Mapped[str | None] = mapped_column(String(100))
    vehicle_year: Mapped[int | None] = mapped_column(Integer)
    notes: Mapped[str | None] = mapped_column(Text)
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    service: Mapped[Service] = relationship(lazy="joined")
    add_ons: Mapped[list[BookingAddOn]] = relationship(
        back_populates="booking", cascade="all, delete-orphan", lazy="selectin"
    )

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        booking_number: str,
        user_id: str,
        service: Service,
        scheduled_date: date,
        scheduled_hour: int,
        add_ons: list[ServiceAddOn] | None = None,
        vehicle_info: str | None = None,
        notes: str | None = None,
    ) -> "Booking":
        add_ons = add_ons or []
        add_ons_total = to_money(sum((add_on.price for add_on in add_ons), Decimal("0")))
        make, model, year = parse_vehicle_info(vehicle_info)
        now = utc_now()

        booking = cls(
            id=new_id(),
            booking_number=booking_number,
            user_id=user_id,
            service=service,
            service_id=service.id,
            scheduled_date=scheduled_date,
            scheduled_hour=scheduled_hour,
            duration_hours=service.duration_hours,
            status=BookingStatus.PENDING.value,
            base_price=service.base_price,
            add_ons_total=add_ons_total,
            total_amount=to_money(service.base_price + add_ons_total),
            currency=service.currency,
            vehicle_info=vehicle_info,
            vehicle_make=make,
            vehicle_model=model,
            vehicle_year=year,
            notes=notes,
            created_at=now,
            updated_at=now,
            add_ons=[],
        )
        for add_on in add_ons:
            booking.add_ons.append(
                BookingAddOn(id=new_id(), add_on_id=add_on.id, name=add_on.name, price=add_on.price)
            )
        return booking

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> BookingStatus:
        return BookingStatus(self.status)

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.scheduled_date, time(self.scheduled_hour), tzinfo=UTC)

    def hours_until(self, now: datetime | None = None) -> float:
        return (self.starts_at - (now or utc_now())).total_seconds() / 3600

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def transition_to(self, target: BookingStatus) -> None:
        BOOKING_STATUS_MACHINE.assert_transition(self.current_status, target)
        now = utc_now()

        if target == BookingStatus.CONFIRMED:
            self.confirmed_at = now
        elif target == BookingStatus.COMPLETED:
            self.completed_at = now
        elif target == BookingStatus.CANCELLED:
            self.cancelled_at = now

        self.status = target.value
        self.updated_at = now

    def assert_cancellable(self) -> None:
        if self.current_status not in CANCELLABLE_STATES:
            raise StateError(
                ErrorCode.BOOKING_CANNOT_BE_CANCELLED,
                f"Cannot cancel a booking in {self.status} state",
                {"status": self.status},
            )

    def cancel(self, reason: str, refund_amount: Decimal) -> None:
        self.assert_cancellable()
        self.transition_to(BookingStatus.CANCELLED)
        self.cancellation_reason = reason
        self.refund_amount = to_money(refund_amount)

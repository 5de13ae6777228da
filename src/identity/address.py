"""Customer addresses, as far as checkout needs them.

Address maintenance belongs to the identity service. Orders only resolve an
address id into an immutable snapshot at the moment they are placed.
"""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, Session, mapped_column

from shared.database import Base, new_id, utc_now
from shared.errors import ErrorCode, ValidationFailed


class Address(Base):
    __tablename__ = "addresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    street_address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="US")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    @classmethod
    def create(cls, user_id: str, street_address: str, city: str, state: str, postal_code: str, country: str = "US"):
        return cls(
            id=new_id(),
            user_id=user_id,
            street_address=street_address,
            city=city,
            state=state.upper(),
            postal_code=postal_code,
            country=country.upper(),
            created_at=utc_now(),
        )

    def snapshot(self) -> dict:
        return {
            "street_address": self.street_address,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }


def resolve_address(session: Session, address_id: str, user_id: str) -> dict:
    """Return the snapshot of one of ``user_id``'s addresses."""
    address = session.get(Address, address_id)
    if address is None or address.user_id != user_id:
        raise ValidationFailed(
            ErrorCode.INVALID_ADDRESS,
            f"Address {address_id} not found for this user",
            {"address_id": address_id},
        )
    return address.snapshot()

"""Human readable document numbers: ``PREFIX + YYYYMMDD + "-" + NNNN``.

Each (scope, day) pair owns a counter row that is bumped with a single
``UPDATE ... SET value = value + 1``, so two concurrent checkouts can never
be handed the same number. The unique indexes on the numbered tables remain
as a backstop.
"""

from datetime import date

import structlog
from sqlalchemy import Integer, String, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from shared.database import Base, utc_now
from shared.errors import ConflictError, ErrorCode

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 3


class NumberSequence(Base):
    __tablename__ = "number_sequences"

    scope: Mapped[str] = mapped_column(String(30), primary_key=True)
    day: Mapped[str] = mapped_column(String(8), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


def format_number(prefix: str, day: date, sequence: int) -> str:
    return f"{prefix}{day.strftime('%Y%m%d')}-{sequence:04d}"


def next_sequence(session: Session, scope: str, day: date) -> int:
    key = day.strftime("%Y%m%d")
    for _ in range(MAX_ATTEMPTS):
        bumped = session.execute(
            update(NumberSequence)
            .where(NumberSequence.scope == scope, NumberSequence.day == key)
            .values(value=NumberSequence.value + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 1:
            return session.execute(
                select(NumberSequence.value).where(NumberSequence.scope == scope, NumberSequence.day == key)
            ).scalar_one()

        try:
            with session.begin_nested():
                session.add(NumberSequence(scope=scope, day=key, value=1))
            return 1
        except IntegrityError:
            # Another transaction created today's row first; bump it instead.
            logger.debug("Sequence row created concurrently", scope=scope, day=key)

    raise ConflictError(ErrorCode.NUMBER_COLLISION, f"Could not allocate a {scope} number")


def next_number(session: Session, scope: str, prefix: str, day: date | None = None) -> str:
    day = day or utc_now().date()
    return format_number(prefix, day, next_sequence(session, scope, day))

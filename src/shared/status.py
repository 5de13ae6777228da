"""Declarative status machines.

Every aggregate with a lifecycle declares a module-level ``StatusMachine``
built from its status ``Enum`` and a static ``{from: {to, ...}}`` map, and
runs every status change through :meth:`StatusMachine.assert_transition`.
Statuses without outgoing edges are terminal.
"""

from collections.abc import Iterable, Mapping
from enum import Enum

from sqlalchemy import update
from sqlalchemy.orm import Session

from shared.errors import ErrorCode, StateError


class StatusMachine:
    def __init__(self, name: str, transitions: Mapping[Enum, Iterable[Enum]], initial: Enum):
        self.name = name
        self.initial = initial
        self._transitions = {status: frozenset(targets) for status, targets in transitions.items()}

        status_type = type(initial)
        missing = [status for status in status_type if status not in self._transitions]
        if missing:
            raise ValueError(f"{name} machine does not declare transitions for {missing}")

    @property
    def statuses(self) -> frozenset:
        return frozenset(self._transitions)

    def allowed_from(self, current: Enum) -> frozenset:
        return self._transitions.get(current, frozenset())

    def can_transition(self, current: Enum, target: Enum) -> bool:
        return target in self.allowed_from(current)

    def is_terminal(self, status: Enum) -> bool:
        return not self.allowed_from(status)

    def assert_transition(self, current: Enum, target: Enum) -> None:
        if not self.can_transition(current, target):
            allowed = sorted(status.value for status in self.allowed_from(current))
            raise StateError(
                ErrorCode.INVALID_STATUS_TRANSITION,
                f"Cannot transition {self.name} from {current.value} to {target.value}",
                {"from": current.value, "to": target.value, "allowed": allowed},
            )


def compare_and_set_status(session: Session, model, row_id: str, expected: Iterable[Enum], target: Enum) -> bool:
    """Move a row to ``target`` only if it is still in one of the ``expected`` statuses.

    Returns False when another transaction changed the status first. Run it
    before touching the ORM instance (or under ``session.no_autoflush``) so
    the guard is not flushed away by the instance's own pending update.
    """
    result = session.execute(
        update(model)
        .where(model.id == row_id, model.status.in_([status.value for status in expected]))
        .values(status=target.value)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1

"""Tests for the declarative status machines of orders, bookings and payments."""

import pytest

from booking.booking import BOOKING_STATUS_MACHINE, BookingStatus
from ordering.order.order import ORDER_STATUS_MACHINE, OrderStatus
from payments.payment.payment import PAYMENT_STATUS_MACHINE, PaymentStatus
from shared.errors import ErrorCode, StateError
from shared.status import StatusMachine

MACHINES = [
    (ORDER_STATUS_MACHINE, OrderStatus),
    (BOOKING_STATUS_MACHINE, BookingStatus),
    (PAYMENT_STATUS_MACHINE, PaymentStatus),
]


class TestMachineClosure:
    @pytest.mark.parametrize("machine,status_type", MACHINES)
    def test_every_status_is_declared(self, machine, status_type):
        assert machine.statuses == frozenset(status_type)

    @pytest.mark.parametrize("machine,status_type", MACHINES)
    def test_every_target_is_a_known_status(self, machine, status_type):
        for status in status_type:
            assert machine.allowed_from(status) <= machine.statuses

    @pytest.mark.parametrize("machine,status_type", MACHINES)
    def test_undeclared_edges_are_rejected(self, machine, status_type):
        for current in status_type:
            for target in status_type:
                if target in machine.allowed_from(current):
                    machine.assert_transition(current, target)
                else:
                    with pytest.raises(StateError) as exc:
                        machine.assert_transition(current, target)
                    assert exc.value.code == ErrorCode.INVALID_STATUS_TRANSITION

    def test_incomplete_machine_is_refused(self):
        with pytest.raises(ValueError):
            StatusMachine("order", {OrderStatus.PENDING: {OrderStatus.CONFIRMED}}, initial=OrderStatus.PENDING)


class TestOrderMachine:
    def test_terminal_statuses(self):
        assert ORDER_STATUS_MACHINE.is_terminal(OrderStatus.CANCELLED)
        assert ORDER_STATUS_MACHINE.is_terminal(OrderStatus.REFUNDED)
        assert not ORDER_STATUS_MACHINE.is_terminal(OrderStatus.DELIVERED)

    def test_happy_path(self):
        path = [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.REFUNDED,
        ]
        for current, target in zip(path, path[1:]):
            assert ORDER_STATUS_MACHINE.can_transition(current, target)

    def test_shipped_cannot_be_cancelled(self):
        assert not ORDER_STATUS_MACHINE.can_transition(OrderStatus.SHIPPED, OrderStatus.CANCELLED)

    def test_error_lists_allowed_targets(self):
        with pytest.raises(StateError) as exc:
            ORDER_STATUS_MACHINE.assert_transition(OrderStatus.PENDING, OrderStatus.SHIPPED)
        assert exc.value.details["allowed"] == ["CANCELLED", "CONFIRMED"]


class TestBookingMachine:
    def test_no_show_only_from_confirmed(self):
        assert BOOKING_STATUS_MACHINE.can_transition(BookingStatus.CONFIRMED, BookingStatus.NO_SHOW)
        assert not BOOKING_STATUS_MACHINE.can_transition(BookingStatus.PENDING, BookingStatus.NO_SHOW)

    def test_in_progress_cannot_be_cancelled(self):
        assert not BOOKING_STATUS_MACHINE.can_transition(BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED)


class TestPaymentMachine:
    def test_failed_can_go_back_to_pending(self):
        assert PAYMENT_STATUS_MACHINE.can_transition(PaymentStatus.FAILED, PaymentStatus.PENDING)

    def test_refunded_is_terminal(self):
        assert PAYMENT_STATUS_MACHINE.is_terminal(PaymentStatus.REFUNDED)

    def test_pending_cannot_complete_directly(self):
        assert not PAYMENT_STATUS_MACHINE.can_transition(PaymentStatus.PENDING, PaymentStatus.COMPLETED)

"""Tests for notification trigger points."""

from structlog.testing import CapturedCall, CapturingLogger

import notifications.triggers
from notifications.triggers import Trigger, fire


class TestFire:
    def test_emits_a_structured_event(self, monkeypatch):
        capture = CapturingLogger()
        monkeypatch.setattr(notifications.triggers, "logger", capture)

        fire(Trigger.ORDER_PLACED, order_id="ord-1", order_number="PFM-1")

        assert capture.calls == [
            CapturedCall(
                "info",
                ("Notification triggered",),
                {"trigger": "order.placed", "order_id": "ord-1", "order_number": "PFM-1"},
            )
        ]

    def test_one_event_per_trigger(self, monkeypatch):
        capture = CapturingLogger()
        monkeypatch.setattr(notifications.triggers, "logger", capture)

        fire(Trigger.BOOKING_CREATED, booking_id="bkg-1")
        fire(Trigger.BOOKING_CANCELLED, booking_id="bkg-1")

        assert [call.kwargs["trigger"] for call in capture.calls] == ["booking.created", "booking.cancelled"]

    def test_trigger_names_are_unique(self):
        assert len({trigger.value for trigger in Trigger}) == len(Trigger)

    def test_collected_by_the_fired_fixture(self, fired):
        fire(Trigger.PAYMENT_COMPLETED, payment_id="pay-1")
        assert fired == [(Trigger.PAYMENT_COMPLETED, {"payment_id": "pay-1"})]

"""StatusTracker unit tests."""

from __future__ import annotations

from ttyenv.local.environment import StatusEvent, StatusTracker


class TestStatusTracker:

    def test_no_event_before_first_write(self):
        assert StatusTracker().last is None

    def test_subscribers_receive_events_in_order(self):
        tracker = StatusTracker()
        received = []
        tracker.subscribe(received.append)

        tracker.write_message(StatusEvent(running=True))
        tracker.write_message(StatusEvent(running=False))

        assert received == [StatusEvent(running=True), StatusEvent(running=False)]
        assert tracker.last == StatusEvent(running=False, installing=False)

    def test_failing_subscriber_does_not_block_others(self):
        tracker = StatusTracker()
        received = []

        def broken(event: StatusEvent) -> None:
            raise RuntimeError("bus unavailable")

        tracker.subscribe(broken)
        tracker.subscribe(received.append)
        tracker.write_message(StatusEvent(running=True, installing=True))

        assert received == [StatusEvent(running=True, installing=True)]

    def test_unsubscribe(self):
        tracker = StatusTracker()
        received = []
        tracker.subscribe(received.append)
        tracker.unsubscribe(received.append)
        tracker.unsubscribe(received.append)

        tracker.write_message(StatusEvent(running=True))
        assert received == []

    def test_event_dict(self):
        assert StatusEvent(running=True, installing=False).to_dict() == {"running": True, "installing": False}

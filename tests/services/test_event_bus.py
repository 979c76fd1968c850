"""
Tests for EventBus delivery semantics.

Events are delivered only after the publishing session commits; rolled
back work (whole transaction or savepoint) delivers nothing.
"""

import pytest

from pawn_kernel.exceptions import SlotOccupiedError
from pawn_kernel.services.event_bus import EventBus, LifecycleEvent, pending_events


def make_event(action: str) -> LifecycleEvent:
    return LifecycleEvent(
        action=action,
        module="test",
        entity_type="Pledge",
        entity_id=action,
    )


@pytest.fixture
def received(event_bus):
    events: list[LifecycleEvent] = []
    event_bus.subscribe(events.append)
    return events


class TestDelivery:

    def test_delivered_on_commit(self, session, make_pledge, received):
        pledge = make_pledge()
        assert received == []

        session.commit()

        assert [e.action for e in received] == ["pledge_created"]
        assert received[0].entity_id == str(pledge.id)
        assert pending_events(session) == []

    def test_discarded_on_rollback(self, session, make_pledge, received):
        make_pledge()

        session.rollback()
        session.commit()

        assert received == []
        assert pending_events(session) == []

    def test_publish_order_kept(self, session, branch, event_bus, received):
        for action in ("first", "second", "third"):
            event_bus.publish(session, make_event(action))

        session.commit()

        assert [e.action for e in received] == ["first", "second", "third"]


class TestSavepoints:

    def test_savepoint_rollback_drops_only_inner_events(self, session, branch, event_bus, received):
        event_bus.publish(session, make_event("outer"))

        savepoint = session.begin_nested()
        event_bus.publish(session, make_event("inner"))
        savepoint.rollback()

        assert [e.action for e in pending_events(session)] == ["outer"]
        session.commit()
        assert [e.action for e in received] == ["outer"]

    def test_savepoint_commit_keeps_events(self, session, branch, event_bus, received):
        savepoint = session.begin_nested()
        event_bus.publish(session, make_event("inner"))
        savepoint.commit()

        session.commit()

        assert [e.action for e in received] == ["inner"]

    def test_failed_move_publishes_nothing(
        self, session, storage_service, make_pledge, gold_item, slots, test_actor_id, received
    ):
        pledge = make_pledge(items=[gold_item(slot_id=slots[0].id), gold_item(slot_id=slots[1].id)])
        first = pledge.items[0].id

        with pytest.raises(SlotOccupiedError):
            storage_service.move(first, slots[0].id, slots[1].id, test_actor_id, "swap")
        session.commit()

        assert "slot_moved" not in [e.action for e in received]
        assert [e.action for e in received].count("slot_assigned") == 2


class TestListeners:

    def test_failing_listener_does_not_stop_others(self, session, branch, event_bus, captured_logs):
        seen = []

        def broken(evt):
            raise RuntimeError("mail server down")

        event_bus.subscribe(broken)
        event_bus.subscribe(seen.append)
        event_bus.publish(session, make_event("pledge_created"))

        session.commit()

        assert [e.action for e in seen] == ["pledge_created"]
        failures = [r for r in captured_logs() if r["message"] == "event_listener_failed"]
        assert failures[0]["level"] == "WARNING"
        assert "mail server down" in failures[0]["error"]

    def test_subscribe_is_idempotent(self, event_bus):
        def listener(evt):
            pass

        event_bus.subscribe(listener)
        event_bus.subscribe(listener)

        assert event_bus.listeners == (listener,)

        event_bus.unsubscribe(listener)
        assert event_bus.listeners == ()

    def test_each_bus_gets_its_own_events(self, session, branch, event_bus, received):
        other_bus = EventBus()
        other_received = []
        other_bus.subscribe(other_received.append)

        event_bus.publish(session, make_event("mine"))
        other_bus.publish(session, make_event("theirs"))
        session.commit()

        assert [e.action for e in received] == ["mine"]
        assert [e.action for e in other_received] == ["theirs"]

"""Application tests for the in-process order store: identity, versioning, subscriptions."""

import pytest
from builders import DESTINATION_7_2_KM, PICKUP, make_customer, make_delivery, make_items

from ordering.order.order import Order, OrderStatus
from ordering.store.memory import InMemoryOrderStore
from shared.exceptions import ConcurrentModification, InvalidTransition, NotFound


def _new_order(reference="ws_CO_store001"):
    return Order(
        customer=make_customer(phone="254712345678"),
        items=tuple(make_items(4500)),
        delivery=make_delivery(),
        subtotal=4500,
        delivery_fee=300,
        total=4800,
        account_reference="ORDTEST00001",
        payment_reference=reference,
    )


def _in_transit(store, courier_id="courier-001"):
    order = store.add(_new_order())
    order.assign_courier(courier_id)
    order = store.save(order)
    order.begin_trip()
    return store.save(order)


@pytest.fixture()
def memory_store():
    return InMemoryOrderStore()


class TestIdentityAndCopies:
    def test_add_mints_id_and_first_version(self, memory_store):
        order = memory_store.add(_new_order())
        assert order.id
        assert order.version == 1

    def test_ids_are_unique(self, memory_store):
        first = memory_store.add(_new_order("ws_CO_a"))
        second = memory_store.add(_new_order("ws_CO_b"))
        assert first.id != second.id

    def test_get_returns_isolated_copy(self, memory_store):
        order = memory_store.add(_new_order())
        loaded = memory_store.get(order.id)
        loaded.cancel("changed")
        assert memory_store.get(order.id).status == OrderStatus.PLACED

    def test_get_unknown(self, memory_store):
        with pytest.raises(NotFound):
            memory_store.get("missing")

    def test_find_by_payment_reference(self, memory_store):
        order = memory_store.add(_new_order("ws_CO_find"))
        assert memory_store.find_by_payment_reference("ws_CO_find").id == order.id
        assert memory_store.find_by_payment_reference("ws_CO_other") is None

    def test_list_is_newest_first(self, memory_store):
        first = memory_store.add(_new_order("ws_CO_1"))
        second = memory_store.add(_new_order("ws_CO_2"))
        ids = [o.id for o in memory_store.list_orders()]
        assert ids == [second.id, first.id]


class TestVersioning:
    def test_save_bumps_version(self, memory_store):
        order = memory_store.add(_new_order())
        order.cancel("Customer request")
        saved = memory_store.save(order)
        assert saved.version == 2
        assert memory_store.get(order.id).status == OrderStatus.CANCELLED

    def test_stale_save_is_rejected(self, memory_store):
        order = memory_store.add(_new_order())
        first = memory_store.get(order.id)
        second = memory_store.get(order.id)

        first.assign_courier("courier-001")
        memory_store.save(first)
        second.cancel("too late")

        with pytest.raises(ConcurrentModification):
            memory_store.save(second)
        assert memory_store.get(order.id).status == OrderStatus.DISPATCHED

    def test_save_unknown(self, memory_store):
        order = _new_order().model_copy(update={"id": "missing", "version": 1})
        with pytest.raises(NotFound):
            memory_store.save(order)

    def test_lock_is_reentrant(self, memory_store):
        order = memory_store.add(_new_order())
        with memory_store.lock(order.id):
            with memory_store.lock(order.id):
                assert memory_store.get(order.id).id == order.id


class TestCourierLocation:
    def test_location_written_while_in_transit(self, memory_store):
        order = _in_transit(memory_store)
        updated = memory_store.set_courier_location(order.id, "courier-001", PICKUP)
        assert updated.courier_location == PICKUP
        assert updated.courier_location_updated_at is not None
        assert updated.version == order.version

    def test_wrong_courier_rejected(self, memory_store):
        order = _in_transit(memory_store)
        with pytest.raises(InvalidTransition):
            memory_store.set_courier_location(order.id, "courier-999", PICKUP)
        assert memory_store.get(order.id).courier_location is None

    def test_rejected_before_trip_starts(self, memory_store):
        order = memory_store.add(_new_order())
        order.assign_courier("courier-001")
        order = memory_store.save(order)
        with pytest.raises(InvalidTransition):
            memory_store.set_courier_location(order.id, "courier-001", PICKUP)

    def test_unknown_order(self, memory_store):
        with pytest.raises(NotFound):
            memory_store.set_courier_location("missing", "courier-001", PICKUP)

    def test_save_never_overwrites_location(self, memory_store):
        order = _in_transit(memory_store)
        loaded = memory_store.get(order.id)
        memory_store.set_courier_location(order.id, "courier-001", DESTINATION_7_2_KM)

        loaded.complete_delivery()
        saved = memory_store.save(loaded)

        assert saved.status == OrderStatus.DELIVERED
        assert saved.courier_location == DESTINATION_7_2_KM

    def test_no_location_after_delivery(self, memory_store):
        order = _in_transit(memory_store)
        order.complete_delivery()
        memory_store.save(order)
        with pytest.raises(InvalidTransition):
            memory_store.set_courier_location(order.id, "courier-001", PICKUP)


class TestSubscriptions:
    def test_snapshot_after_every_write(self, memory_store):
        order = memory_store.add(_new_order())
        seen = []
        memory_store.subscribe(order.id, seen.append)

        loaded = memory_store.get(order.id)
        loaded.assign_courier("courier-001")
        memory_store.save(loaded)

        assert [o.status for o in seen] == [OrderStatus.DISPATCHED]

    def test_subscription_is_scoped_to_order(self, memory_store):
        watched = memory_store.add(_new_order("ws_CO_1"))
        other = memory_store.add(_new_order("ws_CO_2"))
        seen = []
        memory_store.subscribe(watched.id, seen.append)

        other.cancel("x")
        memory_store.save(other)

        assert seen == []

    def test_subscribe_all_sees_new_orders(self, memory_store):
        seen = []
        memory_store.subscribe(None, seen.append)
        order = memory_store.add(_new_order())
        assert [o.id for o in seen] == [order.id]

    def test_cancelled_subscription_stops(self, memory_store):
        order = memory_store.add(_new_order())
        seen = []
        subscription = memory_store.subscribe(order.id, seen.append)
        subscription.cancel()

        order.cancel("x")
        memory_store.save(order)

        assert seen == []
        assert subscription.active is False

    def test_failing_subscriber_does_not_break_writes(self, memory_store):
        order = memory_store.add(_new_order())
        seen = []

        def explode(_snapshot):
            raise RuntimeError("boom")

        memory_store.subscribe(order.id, explode)
        memory_store.subscribe(order.id, seen.append)

        order.cancel("x")
        saved = memory_store.save(order)

        assert saved.status == OrderStatus.CANCELLED
        assert len(seen) == 1

    def test_interrupt_reports_and_closes(self, memory_store):
        order = memory_store.add(_new_order())
        errors = []
        subscription = memory_store.subscribe(order.id, lambda _o: None, errors.append)

        memory_store.interrupt(ConnectionError("channel lost"))

        assert len(errors) == 1
        assert isinstance(errors[0], ConnectionError)
        assert subscription.active is False
        assert len(memory_store.subscriptions) == 0

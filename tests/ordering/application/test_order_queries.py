"""Read-side queries fed by the order listing projection."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.actors import Actor
from ordering.errors import Unauthorized
from ordering.order.order import OrderStatus
from ordering.projections.order_listing import OrderListing

MEERA = {
    "name": "Meera Shah",
    "email": "meera@example.com",
    "phone": "9800000002",
    "address": "4 Hill Road, Pune",
}


def _listing(order_id):
    return current_domain.repository_for(OrderListing).get(order_id)


def _ids(rows):
    return [row.order_id for row in rows]


class TestOrderListing:
    def test_row_follows_the_order(self, place, advance, world, clock):
        order = place(quantity=2)

        row = _listing(order.id)
        assert row.status == "pending"
        assert row.order_number == order.order_number
        assert row.customer_name == "Asha Verma"
        assert row.total_amount == 240.0
        assert row.placed_at == clock.now()

        clock.advance(hours=1)
        advance(order, "delivered")

        row = _listing(order.id)
        assert row.status == "delivered"
        assert row.assigned_agent_id == world.agent.id
        assert row.delivered_at == clock.now()
        assert row.updated_at == clock.now()

    def test_reassignment_moves_the_row(self, core, place, advance, world, seed):
        relief = seed.agent(world.agency, name="Sunil")
        order = advance(place(), "assigned")

        core.assign_agent(order.id, relief.id, world.owner)

        row = _listing(order.id)
        assert row.status == "assigned"
        assert row.assigned_agent_id == relief.id

    def test_reorder_resets_the_row(self, core, place, world):
        order = place()
        core.lifecycle.cancel(order.id, world.customer)
        assert _listing(order.id).cancelled_at is not None

        core.lifecycle.reorder(order.id, world.customer)

        row = _listing(order.id)
        assert row.status == "pending"
        assert row.cancelled_at is None
        assert row.assigned_agent_id is None


class TestOrdersByStatus:
    def test_scoped_to_the_caller(self, core, place, advance, world):
        mine = place()
        theirs = advance(place(customer_id="cust-002", customer=dict(MEERA)), "assigned")
        queries = core.queries

        assert _ids(queries.orders_by_status(world.customer, "pending")) == [mine.id]
        assert queries.orders_by_status(world.customer, "assigned") == []
        assert _ids(queries.orders_by_status(world.courier, "assigned")) == [theirs.id]
        assert _ids(queries.orders_by_status(world.owner, "pending")) == [mine.id]
        assert _ids(queries.orders_by_status(world.admin, OrderStatus.ASSIGNED)) == [theirs.id]

        elsewhere = Actor.agency("owner-002", "agency-elsewhere", "Hillside Owner")
        assert queries.orders_by_status(elsewhere, "pending") == []

    def test_newest_first(self, core, place, world, clock):
        first = place()
        clock.advance(minutes=5)
        second = place()

        assert _ids(core.queries.orders_by_status(world.admin, "pending")) == [second.id, first.id]

    def test_unknown_status(self, core, world):
        with pytest.raises(ValidationError) as exc:
            core.queries.orders_by_status(world.admin, "lost")
        assert "status" in exc.value.messages


class TestCustomerSummary:
    def test_totals_and_breakdown(self, core, place, world):
        first = place(quantity=2)
        place(quantity=1)
        place(customer_id="cust-002", customer=dict(MEERA))
        core.lifecycle.cancel(first.id, world.customer)

        summary = core.queries.customer_summary(world.customer)

        assert summary.customer_id == "cust-001"
        assert summary.total_orders == 2
        assert summary.total_amount == 375.0
        assert summary.by_status == {"cancelled": 1, "pending": 1}

    def test_empty_for_a_new_customer(self, core):
        summary = core.queries.customer_summary(Actor.customer("cust-009", "New Customer"))
        assert summary.total_orders == 0
        assert summary.total_amount == 0.0

    def test_only_customers(self, core, world):
        with pytest.raises(Unauthorized):
            core.queries.customer_summary(world.admin)


class TestAgentHistory:
    def test_lists_closed_orders_the_agent_carried(self, core, place, advance, world):
        delivered = advance(place(), "delivered")
        cancelled = advance(place(), "assigned")
        core.lifecycle.cancel(cancelled.id, world.admin, reason="Customer away")
        advance(place(), "assigned")

        history = core.queries.agent_delivery_history(world.courier)

        assert set(_ids(history)) == {delivered.id, cancelled.id}
        assert _ids(core.queries.agent_delivery_history(world.courier, status="delivered")) == [delivered.id]
        assert _ids(core.queries.agent_delivery_history(world.courier, status="cancelled")) == [cancelled.id]

    def test_filters_by_delivery_date_and_customer(self, core, place, advance, world, clock):
        early = advance(place(), "delivered")
        clock.advance(days=2)
        late = advance(place(customer_id="cust-002", customer=dict(MEERA)), "delivered")
        cutoff = clock.now() - timedelta(days=1)
        queries = core.queries

        assert _ids(queries.agent_delivery_history(world.courier)) == [late.id, early.id]
        assert _ids(queries.agent_delivery_history(world.courier, start=cutoff)) == [late.id]
        assert _ids(queries.agent_delivery_history(world.courier, end=cutoff)) == [early.id]
        assert _ids(queries.agent_delivery_history(world.courier, customer_name="meera")) == [late.id]

    def test_other_agents_see_nothing(self, core, place, advance, world, seed):
        advance(place(), "delivered")
        relief = seed.agent(world.agency, name="Sunil")

        assert core.queries.agent_delivery_history(Actor.agent(relief.id, world.agency.id, relief.name)) == []

    def test_only_agents(self, core, world):
        with pytest.raises(Unauthorized):
            core.queries.agent_delivery_history(world.owner)


class TestAgentStats:
    @pytest.fixture()
    def two_days(self, place, advance, clock):
        advance(place(), "delivered")
        clock.advance(days=1)
        advance(place(), "delivered")
        advance(place(), "assigned")

    def test_month(self, core, world, two_days):
        stats = core.queries.agent_delivery_stats(world.courier)

        assert stats.period == "month"
        assert stats.period_start == datetime(2024, 1, 1, tzinfo=UTC)
        assert stats.delivered == 2
        assert stats.cancelled == 0
        assert stats.total_this_period == 2
        assert stats.earnings == 480.0
        assert stats.assigned_now == 1
        assert stats.total_delivered == 2
        assert [day.date for day in stats.daily] == ["2024-01-02", "2024-01-01"]
        assert stats.daily[0].count == 1
        assert stats.daily[0].earnings == 240.0

    def test_day(self, core, world, two_days):
        stats = core.queries.agent_delivery_stats(world.courier, period="day")

        assert stats.delivered == 1
        assert stats.earnings == 240.0
        assert stats.total_delivered == 2

    def test_unknown_period_falls_back_to_month(self, core, world, two_days):
        assert core.queries.agent_delivery_stats(world.courier, period="fortnight").period == "month"

    def test_only_agents(self, core, world):
        with pytest.raises(Unauthorized):
            core.queries.agent_delivery_stats(world.customer)

# Overview: Pytest coverage for the order lifecycle and its stock effects.

"""
Order Lifecycle Tests

Verifies:
1. create() reserves stock atomically; a short line leaves nothing behind
2. cancel() restores exactly what create() reserved
3. total_profit_cents is fixed at creation
4. Only lifecycle transitions in the table are allowed
5. Order numbers come from a per-tenant counter
6. Idempotent create() under client retry
7. Packer visibility and the packing queue
8. Reporting queries
"""

import pytest

from packdesk.errors import (
    CrossTenantAccess, InsufficientPermission, InvalidTransition, NegativeStockError,
    NotFound, ValidationError,
)
from packdesk.extensions import db
from packdesk.models import Order, Product, StockMovement, User
from packdesk.services import order_service
from packdesk.services.ledger_service import Actor, adjust_stock
from packdesk.services.products_service import delete_product
from packdesk.services.order_service import can_transition, TRANSITIONS

from conftest import OWNER_A


def _stock(product_id):
    return db.session.get(Product, product_id).stock_quantity


def _movements(product_id, movement_type=None):
    q = db.session.query(StockMovement).filter_by(product_id=product_id)
    if movement_type:
        q = q.filter_by(type=movement_type)
    return q.order_by(StockMovement.id.asc()).all()


def _paid_order(owner, tenant, payload):
    view = order_service.create_order(owner, tenant.id, payload)
    return order_service.update_status(owner, tenant.id, view.id, Order.PAID)


class TestScenarios:

    def test_create_reserves_stock(self, db_session, tenant_a, owner_a, product_a, order_payload):
        """Stock 10, order of 3 -> stock 7 and one order_created movement of -3."""
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 3)))

        assert view.status == Order.PENDING
        assert _stock(product_a.id) == 7
        movements = _movements(product_a.id)
        assert len(movements) == 1
        assert movements[0].type == StockMovement.ORDER_CREATED
        assert movements[0].quantity_change == -3
        assert movements[0].order_id == view.id

    def test_cancel_restores_stock(self, db_session, tenant_a, owner_a, product_a, order_payload):
        """Cancelling that order -> stock 10 and one order_cancelled movement of +3."""
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 3)))
        cancelled = order_service.cancel_order(owner_a, tenant_a.id, view.id, "customer changed mind")

        assert cancelled.status == Order.CANCELLED
        assert cancelled.cancelled_at is not None
        assert cancelled.notes == "Cancelled: customer changed mind"
        assert _stock(product_a.id) == 10
        restored = _movements(product_a.id, StockMovement.ORDER_CANCELLED)
        assert len(restored) == 1
        assert restored[0].quantity_change == 3

    def test_short_stock_persists_nothing(self, db_session, tenant_a, owner_a, product_a2, order_payload):
        """Stock 2, order of 3 -> NegativeStockError, stock 2, no movement, no order."""
        product_a2_id = product_a2.id
        adjust_stock(tenant_id=tenant_a.id, product_id=product_a2_id, delta=-3, actor=Actor(OWNER_A))
        movements_before = len(_movements(product_a2_id))
        assert _stock(product_a2_id) == 2

        with pytest.raises(NegativeStockError):
            order_service.create_order(owner_a, tenant_a.id, order_payload((product_a2_id, 3)))

        assert _stock(product_a2_id) == 2
        assert len(_movements(product_a2_id)) == movements_before
        assert db_session.query(Order).count() == 0


class TestCreate:

    def test_multi_line_all_or_nothing(self, db_session, tenant_a, owner_a, product_a, product_a2, order_payload):
        with pytest.raises(NegativeStockError):
            order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 2), (product_a2.id, 6)))

        assert _stock(product_a.id) == 10
        assert _stock(product_a2.id) == 5
        assert db_session.query(Order).count() == 0
        assert db_session.query(StockMovement).count() == 0

    def test_snapshot_and_totals(self, db_session, tenant_a, owner_a, product_a, product_a2, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 2), (product_a2.id, 3)))

        # 2 x (1000 / 400) + 3 x (500 / 150)
        assert view.total_price_cents == 3500
        assert view.total_cost_cents == 1250
        assert view.total_profit_cents == 2250
        assert [(i.line_number, i.sku, i.quantity) for i in view.items] == [(1, "MUG-001", 2), (2, "BOX-002", 3)]
        assert view.items[0].unit_cost_cents == 400

    def test_snapshot_survives_product_edits(self, db_session, tenant_a, owner_a, product_a, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))

        product = db.session.get(Product, product_a.id)
        product.name = "Renamed Mug"
        product.price_cents = 5000
        db_session.commit()

        again = order_service.get_order(owner_a, tenant_a.id, view.id)
        assert again.items[0].product_name == "Ceramic Mug"
        assert again.items[0].unit_price_cents == 1000
        assert again.total_price_cents == 1000

    def test_duplicate_product_lines(self, db_session, tenant_a, owner_a, product_a, order_payload):
        order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 2), (product_a.id, 3)))
        assert _stock(product_a.id) == 5
        assert len(_movements(product_a.id)) == 2

    def test_other_tenants_product(self, db_session, tenant_a, owner_a, product_b, order_payload):
        with pytest.raises(NotFound):
            order_service.create_order(owner_a, tenant_a.id, order_payload((product_b.id, 1)))
        assert _stock(product_b.id) == 20
        assert db_session.query(Order).count() == 0

    def test_inactive_product(self, db_session, tenant_a, owner_a, product_a, order_payload):
        product_a.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))

    @pytest.mark.parametrize("overrides", [
        {"items": []},
        {"items": [{"product_id": 1, "quantity": 0}]},
        {"recipient_city": ""},
        {"customer_name": None},
        {"total_cost_cents": 1},
    ])
    def test_invalid_payload(self, db_session, tenant_a, owner_a, product_a, order_payload, overrides):
        with pytest.raises(ValidationError):
            order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1), **overrides))

    def test_admin_can_create(self, db_session, tenant_a, admin_a, product_a, order_payload):
        view = order_service.create_order(admin_a, tenant_a.id, order_payload((product_a.id, 1)))
        assert view.kind == "admin"
        assert not hasattr(view, "total_cost_cents")

    def test_packer_cannot_create(self, db_session, tenant_a, packer_a, product_a, order_payload):
        with pytest.raises(InsufficientPermission):
            order_service.create_order(packer_a, tenant_a.id, order_payload((product_a.id, 1)))
        assert _stock(product_a.id) == 10

    def test_cross_tenant_create(self, db_session, tenant_a, tenant_b, owner_b, product_a, order_payload):
        with pytest.raises(CrossTenantAccess):
            order_service.create_order(owner_b, tenant_a.id, order_payload((product_a.id, 1)))
        assert _stock(product_a.id) == 10

    def test_creator_recorded(self, db_session, tenant_a, owner_a, product_a, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        owner_user = db_session.query(User).filter_by(subject=OWNER_A).one()
        assert view.created_by_user_id == owner_user.id
        assert owner_user.tenant_id is None


class TestOrderNumbers:

    def test_sequential_per_tenant(self, db_session, tenant_a, tenant_b, owner_a, owner_b, product_a, product_b, order_payload):
        first = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        second = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        other = order_service.create_order(owner_b, tenant_b.id, order_payload((product_b.id, 1)))

        assert first.order_number == "ORD-00001"
        assert second.order_number == "ORD-00002"
        assert other.order_number == "ORD-00001"

    def test_not_derived_from_order_count(self, db_session, tenant_a, owner_a, product_a, order_payload):
        first = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        db_session.query(Order).filter_by(id=first.id).delete()
        db_session.commit()

        second = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        assert second.order_number == "ORD-00002"

    def test_failed_create_does_not_burn_a_number(self, db_session, tenant_a, owner_a, product_a, order_payload):
        with pytest.raises(NegativeStockError):
            order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 11)))
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        assert view.order_number == "ORD-00001"


class TestIdempotency:

    def test_retry_returns_existing_order(self, db_session, tenant_a, owner_a, product_a, order_payload):
        payload = order_payload((product_a.id, 3))
        first = order_service.create_order(owner_a, tenant_a.id, payload, idempotency_key="req-123")
        retry = order_service.create_order(owner_a, tenant_a.id, payload, idempotency_key="req-123")

        assert retry.id == first.id
        assert _stock(product_a.id) == 7
        assert db_session.query(Order).count() == 1
        assert len(_movements(product_a.id)) == 1

    def test_key_in_body(self, db_session, tenant_a, owner_a, product_a, order_payload):
        payload = order_payload((product_a.id, 1), idempotency_key="body-key")
        first = order_service.create_order(owner_a, tenant_a.id, payload)
        retry = order_service.create_order(owner_a, tenant_a.id, payload)
        assert retry.id == first.id

    def test_different_keys_create_two_orders(self, db_session, tenant_a, owner_a, product_a, order_payload):
        order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)), idempotency_key="a")
        order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)), idempotency_key="b")
        assert db_session.query(Order).count() == 2

    def test_keys_are_tenant_scoped(self, db_session, tenant_a, tenant_b, owner_a, owner_b, product_a, product_b, order_payload):
        a = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)), idempotency_key="same")
        b = order_service.create_order(owner_b, tenant_b.id, order_payload((product_b.id, 1)), idempotency_key="same")
        assert a.id != b.id

    def test_overlong_key(self, db_session, tenant_a, owner_a, product_a, order_payload):
        with pytest.raises(ValidationError):
            order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)), idempotency_key="k" * 129)


class TestCancel:

    def test_cancel_restores_exactly(self, db_session, tenant_a, owner_a, product_a, product_a2, order_payload):
        before = (_stock(product_a.id), _stock(product_a2.id))
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 4), (product_a2.id, 5)))
        assert (_stock(product_a.id), _stock(product_a2.id)) == (6, 0)

        order_service.cancel_order(owner_a, tenant_a.id, view.id)
        assert (_stock(product_a.id), _stock(product_a2.id)) == before

    @pytest.mark.parametrize("status", [Order.PENDING, Order.PAID, Order.PROCESSING])
    def test_cancellable_statuses(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload, status):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 2)))
        if status in (Order.PAID, Order.PROCESSING):
            order_service.update_status(owner_a, tenant_a.id, view.id, Order.PAID)
        if status == Order.PROCESSING:
            order_service.mark_packed(packer_a, tenant_a.id, view.id, 400)

        cancelled = order_service.cancel_order(owner_a, tenant_a.id, view.id)
        assert cancelled.status == Order.CANCELLED
        assert _stock(product_a.id) == 10

    def test_cannot_cancel_shipped(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload):
        view = _paid_order(owner_a, tenant_a, order_payload((product_a.id, 2)))
        order_service.mark_packed(packer_a, tenant_a.id, view.id, 400)
        order_service.update_shipping(packer_a, tenant_a.id, view.id, {"tracking_number": "TRK-1"})

        with pytest.raises(InvalidTransition):
            order_service.cancel_order(owner_a, tenant_a.id, view.id)
        assert _stock(product_a.id) == 8

    def test_cannot_cancel_twice(self, db_session, tenant_a, owner_a, product_a, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 2)))
        order_service.cancel_order(owner_a, tenant_a.id, view.id)

        with pytest.raises(InvalidTransition):
            order_service.cancel_order(owner_a, tenant_a.id, view.id)
        assert _stock(product_a.id) == 10
        assert len(_movements(product_a.id, StockMovement.ORDER_CANCELLED)) == 1

    def test_status_update_to_cancelled_restores(self, db_session, tenant_a, admin_a, product_a, order_payload):
        view = order_service.create_order(admin_a, tenant_a.id, order_payload((product_a.id, 2)))
        order_service.update_status(admin_a, tenant_a.id, view.id, Order.CANCELLED, reason="duplicate")
        assert _stock(product_a.id) == 10

    def test_packer_cannot_cancel(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload):
        view = _paid_order(owner_a, tenant_a, order_payload((product_a.id, 2)))
        with pytest.raises(InsufficientPermission):
            order_service.cancel_order(packer_a, tenant_a.id, view.id)

    def test_cancel_after_product_deleted(self, db_session, tenant_a, owner_a, product_a, product_a2, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1), (product_a2.id, 1)))
        delete_product(owner_a, tenant_a.id, product_a2.id)

        cancelled = order_service.cancel_order(owner_a, tenant_a.id, view.id)
        assert cancelled.status == Order.CANCELLED
        assert _stock(product_a.id) == 10


class TestTransitions:

    def test_transition_table(self):
        allowed = {(src, dst) for src, dsts in TRANSITIONS.items() for dst in dsts}
        assert allowed == {
            ("pending", "paid"), ("pending", "cancelled"),
            ("paid", "processing"), ("paid", "cancelled"),
            ("processing", "shipped"), ("processing", "cancelled"),
            ("shipped", "delivered"),
        }
        for status in Order.STATUSES:
            for target in Order.STATUSES:
                assert can_transition(status, target) == ((status, target) in allowed)

    def test_full_lifecycle(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 3)))
        view = order_service.update_status(owner_a, tenant_a.id, view.id, Order.PAID)
        assert view.paid_at is not None

        packed = order_service.mark_packed(packer_a, tenant_a.id, view.id, 750)
        assert packed.status == Order.PROCESSING
        assert packed.weight_grams == 750

        shipped = order_service.update_status(owner_a, tenant_a.id, view.id, Order.SHIPPED)
        assert shipped.shipped_at is not None

        delivered = order_service.update_status(owner_a, tenant_a.id, view.id, Order.DELIVERED)
        assert delivered.status == Order.DELIVERED
        assert delivered.delivered_at is not None

        # Shipping and delivery never move stock
        assert _stock(product_a.id) == 7
        assert len(_movements(product_a.id)) == 1

    @pytest.mark.parametrize("target", [Order.PROCESSING, Order.SHIPPED, Order.DELIVERED, Order.PENDING])
    def test_invalid_from_pending(self, db_session, tenant_a, owner_a, product_a, order_payload, target):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        with pytest.raises(InvalidTransition):
            order_service.update_status(owner_a, tenant_a.id, view.id, target)
        assert order_service.get_order(owner_a, tenant_a.id, view.id).status == Order.PENDING

    def test_unknown_status(self, db_session, tenant_a, owner_a, product_a, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        with pytest.raises(ValidationError):
            order_service.update_status(owner_a, tenant_a.id, view.id, "lost")

    def test_role_checked_before_status(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        for status in ("lost", Order.PAID, Order.CANCELLED):
            with pytest.raises(InsufficientPermission):
                order_service.update_status(packer_a, tenant_a.id, view.id, status)

    def test_profit_fixed_across_statuses(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 2)))
        expected = (view.total_price_cents, view.total_cost_cents, view.total_profit_cents)
        assert view.total_profit_cents == view.total_price_cents - view.total_cost_cents

        product = db.session.get(Product, product_a.id)
        product.cost_cents = 999
        db_session.commit()

        order_service.update_status(owner_a, tenant_a.id, view.id, Order.PAID)
        order_service.mark_packed(packer_a, tenant_a.id, view.id, 300)
        final = order_service.update_shipping(owner_a, tenant_a.id, view.id, {"tracking_number": "T1", "shipping_cost_cents": 700})

        assert (final.total_price_cents, final.total_cost_cents, final.total_profit_cents) == expected

    def test_other_tenants_order(self, db_session, tenant_a, tenant_b, owner_a, owner_b, product_b, order_payload):
        view = order_service.create_order(owner_b, tenant_b.id, order_payload((product_b.id, 1)))
        with pytest.raises(NotFound):
            order_service.update_status(owner_a, tenant_a.id, view.id, Order.PAID)


class TestPacking:

    def test_mark_packed_requires_paid(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        with pytest.raises(InvalidTransition):
            order_service.mark_packed(packer_a, tenant_a.id, view.id, 100)

    @pytest.mark.parametrize("weight", [0, -5, 1.5, None, "100"])
    def test_mark_packed_weight(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload, weight):
        view = _paid_order(owner_a, tenant_a, order_payload((product_a.id, 1)))
        with pytest.raises(ValidationError):
            order_service.mark_packed(packer_a, tenant_a.id, view.id, weight)

    def test_mark_packed_records_packer(self, db_session, tenant_a, owner_a, packer_a, packer_user_a, product_a, order_payload):
        view = _paid_order(owner_a, tenant_a, order_payload((product_a.id, 1)))
        order_service.mark_packed(packer_a, tenant_a.id, view.id, 200)

        owner_view = order_service.get_order(owner_a, tenant_a.id, view.id)
        assert owner_view.packed_by_user_id == packer_user_a.id

    def test_only_packers_pack(self, db_session, tenant_a, owner_a, product_a, order_payload):
        view = _paid_order(owner_a, tenant_a, order_payload((product_a.id, 1)))
        with pytest.raises(InsufficientPermission):
            order_service.mark_packed(owner_a, tenant_a.id, view.id, 200)

    def test_next_order_to_pack(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload):
        assert order_service.next_order_to_pack(packer_a, tenant_a.id) is None

        order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))  # stays pending
        oldest = _paid_order(owner_a, tenant_a, order_payload((product_a.id, 1)))
        _paid_order(owner_a, tenant_a, order_payload((product_a.id, 1)))

        nxt = order_service.next_order_to_pack(packer_a, tenant_a.id)
        assert nxt.id == oldest.id
        assert nxt.kind == "packer"

        order_service.mark_packed(packer_a, tenant_a.id, oldest.id, 100)
        assert order_service.next_order_to_pack(packer_a, tenant_a.id).id != oldest.id


class TestShipping:

    def test_tracking_ships_processing_order(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload):
        view = _paid_order(owner_a, tenant_a, order_payload((product_a.id, 1)))
        order_service.mark_packed(packer_a, tenant_a.id, view.id, 300)

        shipped = order_service.update_shipping(
            packer_a, tenant_a.id, view.id, {"tracking_number": "TRK-9", "courier_service": "Canada Post"}
        )
        assert shipped.status == Order.SHIPPED
        assert shipped.shipped_at is not None
        assert shipped.tracking_number == "TRK-9"
        assert _stock(product_a.id) == 9

    def test_tracking_on_paid_order_does_not_ship(self, db_session, tenant_a, owner_a, product_a, order_payload):
        view = _paid_order(owner_a, tenant_a, order_payload((product_a.id, 1)))
        updated = order_service.update_shipping(owner_a, tenant_a.id, view.id, {"tracking_number": "TRK-1"})
        assert updated.status == Order.PAID

    def test_closed_orders(self, db_session, tenant_a, owner_a, product_a, order_payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        order_service.cancel_order(owner_a, tenant_a.id, view.id)
        with pytest.raises(InvalidTransition):
            order_service.update_shipping(owner_a, tenant_a.id, view.id, {"tracking_number": "TRK-1"})

    @pytest.mark.parametrize("payload", [{}, {"status": "shipped"}, {"weight_grams": 0}, {"shipping_cost_cents": -1}])
    def test_invalid_patch(self, db_session, tenant_a, owner_a, product_a, order_payload, payload):
        view = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        with pytest.raises(ValidationError):
            order_service.update_shipping(owner_a, tenant_a.id, view.id, payload)


class TestReads:

    def test_packer_sees_only_packing_queue(self, db_session, tenant_a, owner_a, packer_a, product_a, order_payload):
        pending = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        paid = _paid_order(owner_a, tenant_a, order_payload((product_a.id, 1)))
        cancelled = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        order_service.cancel_order(owner_a, tenant_a.id, cancelled.id)

        assert {v.id for v in order_service.list_orders(owner_a, tenant_a.id)} == {pending.id, paid.id, cancelled.id}
        assert [v.id for v in order_service.list_orders(packer_a, tenant_a.id)] == [paid.id]
        assert order_service.list_orders(packer_a, tenant_a.id, status=Order.PENDING) == []

        with pytest.raises(NotFound):
            order_service.get_order(packer_a, tenant_a.id, pending.id)
        assert order_service.get_order(packer_a, tenant_a.id, paid.id).kind == "packer"

    def test_status_filter_and_order(self, db_session, tenant_a, owner_a, product_a, order_payload):
        first = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        second = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        order_service.update_status(owner_a, tenant_a.id, first.id, Order.PAID)

        assert [v.id for v in order_service.list_orders(owner_a, tenant_a.id)] == [second.id, first.id]
        assert [v.id for v in order_service.list_orders(owner_a, tenant_a.id, status=Order.PAID)] == [first.id]
        with pytest.raises(ValidationError):
            order_service.list_orders(owner_a, tenant_a.id, status="lost")

    def test_lists_are_tenant_scoped(self, db_session, tenant_a, tenant_b, owner_a, owner_b, product_a, product_b, order_payload):
        order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        order_service.create_order(owner_b, tenant_b.id, order_payload((product_b.id, 1)))
        assert len(order_service.list_orders(owner_a, tenant_a.id)) == 1
        assert len(order_service.list_orders(owner_b, tenant_b.id)) == 1

    def test_orders_by_product_after_delete(self, db_session, tenant_a, owner_a, product_a, product_a2, order_payload):
        with_mug = order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        order_service.create_order(owner_a, tenant_a.id, order_payload((product_a2.id, 1)))

        product_id = product_a.id
        delete_product(owner_a, tenant_a.id, product_id)

        found = order_service.orders_by_product(owner_a, tenant_a.id, product_id)
        assert [v.id for v in found] == [with_mug.id]
        assert found[0].items[0].sku == "MUG-001"

    def test_orders_by_packer_and_creator(self, db_session, tenant_a, owner_a, admin_a, admin_user_a, packer_a, packer_user_a, product_a, order_payload):
        by_admin = _paid_order(admin_a, tenant_a, order_payload((product_a.id, 1)))
        order_service.create_order(owner_a, tenant_a.id, order_payload((product_a.id, 1)))
        order_service.mark_packed(packer_a, tenant_a.id, by_admin.id, 100)

        created = order_service.orders_by_creator(owner_a, tenant_a.id, admin_user_a.id)
        assert [v.id for v in created] == [by_admin.id]

        packed = order_service.orders_by_packer(admin_a, tenant_a.id, packer_user_a.id)
        assert [v.id for v in packed] == [by_admin.id]
        assert packed[0].kind == "admin"

        with pytest.raises(NotFound):
            order_service.orders_by_packer(owner_a, tenant_a.id, 999999)

    def test_reports_not_for_packers(self, db_session, tenant_a, packer_a, packer_user_a, product_a):
        with pytest.raises(InsufficientPermission):
            order_service.orders_by_product(packer_a, tenant_a.id, product_a.id)
        with pytest.raises(InsufficientPermission):
            order_service.orders_by_packer(packer_a, tenant_a.id, packer_user_a.id)

"""Tests for applying payment outcomes."""

import pytest

from shop_service.errors import InvalidTransition, PaymentNotFound, ValidationError
from shop_service.models import Product
from shop_service.orders import CartLine, create_order
from shop_service.payments import create_payment_for_order
from shop_service.reconciliation import PaymentReconciler, restore_stock
from shop_service.refs import GatewayRef, OrderRef, ProductRef
from shop_service.schemas import AddressIn


@pytest.fixture
def address():
    return AddressIn(fullName="Olga S", email="olga@example.com", phone="2", city="Brest", address="Sovetskaya 3")


@pytest.fixture
def checkout(db, deps, products, address):
    """Places an order for 2 rings and 1 pair of earrings, paid by card."""

    def place(method="card", use_gateway=True):
        cart = [CartLine(ProductRef("ring"), 2), CartLine(ProductRef("earrings"), 1)]
        order = create_order(db, deps, cart, address, notify=False).order
        payment = create_payment_for_order(db, deps, OrderRef(order.id), method, use_gateway).payment
        return order, payment

    return place


@pytest.fixture
def reconciler(deps):
    return PaymentReconciler(deps)


class TestDecline:
    def test_scenario_d_restores_stock_and_cancels(self, db, checkout, reconciler, products):
        order, payment = checkout()
        db.expire_all()
        assert (products["ring"].stock, products["earrings"].stock) == (3, 2)

        reconciler.apply_by_gateway_ref(db, GatewayRef(payment.hash_id), "declined")

        db.expire_all()
        assert products["ring"].stock == 5
        assert products["earrings"].stock == 3
        assert order.order_status == "canceled"
        assert payment.payment_status == "declined"

    def test_repeated_decline_restores_once(self, db, checkout, reconciler, products, telegram):
        order, payment = checkout()
        reconciler.apply(db, payment, "declined")
        reconciler.apply(db, payment, "declined")
        db.expire_all()
        assert products["ring"].stock == 5
        assert len(telegram.messages) == 1

    def test_restore_from_floored_stock(self, db, deps, products, address, reconciler):
        # 10 ordered from a stock of 3: only the 3 taken come back.
        result = create_order(db, deps, [CartLine(ProductRef("earrings"), 10)], address, notify=False)
        order = result.order
        assert result.order_items[0].reserved_quantity == 3
        payment = create_payment_for_order(db, deps, OrderRef(order.id), "ERIP", False).payment
        db.expire_all()
        assert products["earrings"].stock == 0
        reconciler.apply(db, payment, "declined")
        db.expire_all()
        assert products["earrings"].stock == 3

    def test_restores_exactly_what_was_taken(self, db, deps, products, address, reconciler):
        cart = [CartLine(ProductRef("ring"), 2), CartLine(ProductRef("earrings"), 7), CartLine(ProductRef("chain"), 1)]
        order = create_order(db, deps, cart, address, notify=False).order
        payment = create_payment_for_order(db, deps, OrderRef(order.id), "ERIP", False).payment
        db.expire_all()
        assert [item.reserved_quantity for item in order.order_items] == [2, 3, None]

        reconciler.apply(db, payment, "declined")
        db.expire_all()
        assert (products["ring"].stock, products["earrings"].stock, products["chain"].stock) == (5, 3, None)

    def test_item_without_recorded_reservation_returns_its_quantity(self, db, checkout, reconciler, products):
        order, payment = checkout()
        for item in order.order_items:
            item.reserved_quantity = None
        db.commit()
        reconciler.apply(db, payment, "declined")
        db.expire_all()
        assert (products["ring"].stock, products["earrings"].stock) == (5, 3)

    def test_missing_product_and_untracked_stock_are_skipped(self, db, deps, products, address, reconciler):
        cart = [CartLine(ProductRef("chain"), 1), CartLine(ProductRef("ring"), 1)]
        order = create_order(db, deps, cart, address, notify=False).order
        order.order_items[1].product_id = None
        db.commit()
        db.expire_all()

        assert restore_stock(db, order) == 0
        assert products["ring"].stock == 4
        assert products["chain"].stock is None

    def test_notifies_failure(self, db, checkout, reconciler, telegram, events):
        order, payment = checkout()
        reconciler.apply(db, payment, "declined")
        assert "Платеж не выполнен" in telegram.messages[-1][0]
        assert events.keys()[-1] == "payment.declined"


class TestSuccess:
    def test_success_marks_paid_without_touching_stock(self, db, checkout, reconciler, products, clock):
        order, payment = checkout()
        reconciler.apply_by_gateway_ref(db, GatewayRef(payment.hash_id), "success")
        db.expire_all()
        assert payment.payment_status == "success"
        assert payment.payment_date == clock()
        assert order.order_status == "success"
        assert products["ring"].stock == 3

    def test_card_success_emails_customer(self, db, checkout, reconciler, email, events):
        order, payment = checkout()
        reconciler.apply(db, payment, "success")
        assert email.sent[0][0] == "olga@example.com"
        assert "успешно оплачен" in email.sent[0][1]
        assert events.keys()[-1] == "payment.succeeded"

    def test_offline_success_by_order(self, db, checkout, reconciler, email):
        order, payment = checkout(method="ERIP", use_gateway=False)
        reconciler.apply_by_order(db, OrderRef(order.id), "success")
        db.expire_all()
        assert order.order_status == "success"
        assert email.sent == []

    def test_legacy_processing_order_can_still_be_paid(self, db, checkout, reconciler):
        order, payment = checkout()
        order.order_status = "processing"
        db.commit()
        reconciler.apply(db, payment, "success")
        assert order.order_status == "success"

    def test_notification_failure_is_isolated(self, db, checkout, reconciler, telegram):
        order, payment = checkout()
        telegram.fail = True
        reconciler.apply(db, payment, "success")
        db.expire_all()
        assert order.order_status == "success"


class TestRefund:
    def test_refund_after_success(self, db, checkout, reconciler, products, clock):
        order, payment = checkout()
        reconciler.apply(db, payment, "success")
        clock.advance(days=3)
        reconciler.apply(db, payment, "refunded")
        db.expire_all()
        assert payment.payment_status == "refunded"
        assert payment.refund_date == clock()
        assert order.order_status == "refunded"
        assert products["ring"].stock == 3

    @pytest.mark.parametrize("first, then", [(None, "refunded"), ("declined", "success"), ("declined", "refunded")])
    def test_forbidden_transitions(self, db, checkout, reconciler, first, then):
        order, payment = checkout()
        if first:
            reconciler.apply(db, payment, first)
        with pytest.raises(InvalidTransition):
            reconciler.apply(db, payment, then)


class TestLookups:
    def test_unknown_gateway_reference(self, db, reconciler):
        with pytest.raises(PaymentNotFound):
            reconciler.apply_by_gateway_ref(db, GatewayRef("nope"), "success")

    def test_order_without_payment(self, db, deps, products, address, reconciler):
        order = create_order(db, deps, [CartLine(ProductRef("chain"), 1)], address, notify=False).order
        with pytest.raises(PaymentNotFound):
            reconciler.apply_by_order(db, OrderRef(order.id), "success")

    def test_unknown_outcome(self, db, checkout, reconciler):
        order, payment = checkout()
        with pytest.raises(ValidationError):
            reconciler.apply(db, payment, "pending")


def test_stock_round_trip(db, checkout, reconciler):
    before = {product.slug: product.stock for product in db.query(Product).all()}
    order, payment = checkout(method="ERIP", use_gateway=False)
    reconciler.apply(db, payment, "declined")
    db.expire_all()
    assert {product.slug: product.stock for product in db.query(Product).all()} == before

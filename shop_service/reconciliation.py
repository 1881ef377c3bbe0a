"""Applying payment outcomes to payments, orders and stock.

Gateway redirects, gateway polling, the operator's Telegram buttons and
manual corrections all end up in ``PaymentReconciler.apply``.

    payment  pending ──> success ──> refunded
                  └────> declined
    order    pending ──> success ──> refunded
                  └────> canceled

An order still marked ``processing`` (older records) is treated as pending.
"""

import logging

from sqlalchemy.orm import Session

from .errors import InvalidTransition, ValidationError
from .messages import (
    format_payment_failure_message,
    format_payment_success_message,
    format_refund_message,
    order_paid_email,
)
from .models import (
    METHOD_CARD,
    ORDER_CANCELED,
    ORDER_REFUNDED,
    ORDER_SUCCESS,
    PAYMENT_DECLINED,
    PAYMENT_PENDING,
    PAYMENT_REFUNDED,
    PAYMENT_SUCCESS,
    Order,
    Payment,
)
from .payments import payment_by_gateway_ref, payment_by_order
from .refs import GatewayRef, OrderRef

logger = logging.getLogger(__name__)

OUTCOMES = (PAYMENT_SUCCESS, PAYMENT_DECLINED, PAYMENT_REFUNDED)

# Payment status -> statuses it may move to.
TRANSITIONS = {
    PAYMENT_PENDING: (PAYMENT_SUCCESS, PAYMENT_DECLINED),
    PAYMENT_SUCCESS: (PAYMENT_REFUNDED,),
    PAYMENT_DECLINED: (),
    PAYMENT_REFUNDED: (),
}

ORDER_STATUS_FOR = {
    PAYMENT_SUCCESS: ORDER_SUCCESS,
    PAYMENT_DECLINED: ORDER_CANCELED,
    PAYMENT_REFUNDED: ORDER_REFUNDED,
}


def restore_stock(db: Session, order: Order) -> int:
    """
    Puts back what each item took from stock. Returns how many items were restored.

    Only the reserved units return, so an order that outran the stock doesn't
    leave more behind than there was. Items from before reservations were
    recorded give back their full quantity.
    """
    restored = 0
    for item in order.order_items:
        product = item.product
        if product is None:
            logger.warning("Order %s item %s has no product, stock not restored", order.order_number, item.id)
            continue
        if product.stock is None:
            logger.warning("Product %s doesn't track stock, nothing to restore", product.slug)
            continue
        amount = item.quantity if item.reserved_quantity is None else item.reserved_quantity
        before = product.stock
        product.stock = max(0, product.stock + amount)
        restored += 1
        logger.info("Restored %d of %s (stock %d -> %d)", amount, product.slug, before, product.stock)
    return restored


class PaymentReconciler:
    def __init__(self, deps):
        self.deps = deps

    def apply_by_gateway_ref(self, db: Session, ref: GatewayRef, outcome: str) -> Payment:
        return self.apply(db, payment_by_gateway_ref(db, ref), outcome)

    def apply_by_order(self, db: Session, ref: OrderRef, outcome: str) -> Payment:
        return self.apply(db, payment_by_order(db, ref), outcome)

    def apply(self, db: Session, payment: Payment, outcome: str) -> Payment:
        if outcome not in OUTCOMES:
            raise ValidationError(f"Unknown payment status: {outcome!r}")

        current = payment.payment_status
        if current == outcome:
            logger.info("Payment %s is already %s, nothing to do", payment.id, outcome)
            return payment
        if outcome not in TRANSITIONS.get(current, ()):
            raise InvalidTransition(current, outcome)

        order = payment.order
        now = self.deps.clock()

        payment.payment_status = outcome
        if outcome == PAYMENT_SUCCESS:
            payment.payment_date = now
        elif outcome == PAYMENT_REFUNDED:
            payment.refund_date = now

        if outcome == PAYMENT_DECLINED:
            # Stock was reserved when the order was created.
            restore_stock(db, order)

        previous_order_status = order.order_status
        order.order_status = ORDER_STATUS_FOR[outcome]
        db.commit()
        logger.info(
            "Payment %s: %s -> %s, order %s: %s -> %s",
            payment.id,
            current,
            outcome,
            order.order_number,
            previous_order_status,
            order.order_status,
        )

        self._notify(order, payment, outcome)
        return payment

    def _notify(self, order: Order, payment: Payment, outcome: str):
        notifier = self.deps.notifier
        try:
            if outcome == PAYMENT_SUCCESS:
                notifier.telegram(format_payment_success_message(order, payment))
                if payment.payment_method == METHOD_CARD:
                    subject, html = order_paid_email(order)
                    notifier.email(order.address.email, subject, html)
                notifier.event("payment.succeeded", self._event(order, payment))
            elif outcome == PAYMENT_DECLINED:
                notifier.telegram(format_payment_failure_message(order, payment))
                notifier.event("payment.declined", self._event(order, payment))
            elif outcome == PAYMENT_REFUNDED:
                notifier.telegram(format_refund_message(order, payment))
                notifier.event("payment.refunded", self._event(order, payment))
        except Exception:
            logger.exception("Failed to notify about payment %s", payment.id)

    @staticmethod
    def _event(order: Order, payment: Payment) -> dict:
        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "payment_id": payment.id,
            "status": payment.payment_status,
            "amount": payment.amount,
            "items": [{"product_id": item.product_id, "quantity": item.quantity} for item in order.order_items],
        }

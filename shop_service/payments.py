import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from .errors import PaymentNotFound
from .models import PAYMENT_PENDING, Payment
from .orders import get_order
from .refs import GatewayRef, OrderRef

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    payment: Payment
    payment_link: Optional[str] = None
    gateway_ref: Optional[GatewayRef] = None
    created: bool = True


def payment_for_order(db: Session, ref: OrderRef) -> Optional[Payment]:
    return db.query(Payment).filter(Payment.order_id == ref.id).first()


def payment_by_gateway_ref(db: Session, ref: GatewayRef) -> Payment:
    payment = db.query(Payment).filter(Payment.hash_id == ref.value).first()
    if payment is None:
        raise PaymentNotFound(f"hashId {ref.value}")
    return payment


def payment_by_order(db: Session, ref: OrderRef) -> Payment:
    payment = payment_for_order(db, ref)
    if payment is None:
        raise PaymentNotFound(f"order {ref.id}")
    return payment


def get_payment(db: Session, payment_id: int) -> Payment:
    payment = db.get(Payment, payment_id)
    if payment is None:
        raise PaymentNotFound(f"id {payment_id}")
    return payment


def _existing_result(payment: Payment) -> PaymentResult:
    gateway_ref = GatewayRef(payment.hash_id) if payment.hash_id else None
    link = payment.payment_link if payment.payment_status == PAYMENT_PENDING else None
    return PaymentResult(payment=payment, payment_link=link, gateway_ref=gateway_ref, created=False)


def create_payment_for_order(
    db: Session,
    deps,
    order_ref: OrderRef,
    payment_method: str,
    use_gateway: bool,
) -> PaymentResult:
    """
    Creates the order's single payment, registering it with the gateway for
    card payments.

    An order that already has a payment gets that payment back; a pending
    gateway payment comes with the link stored at registration, so the gateway
    is never asked twice for the same order.
    """
    order = get_order(db, order_ref)

    existing = payment_for_order(db, order_ref)
    if existing is not None:
        logger.info("Order %s already has payment %s (%s)", order.order_number, existing.id, existing.payment_status)
        return _existing_result(existing)

    if not use_gateway:
        payment = Payment(
            payment_method=payment_method,
            amount=order.total_amount,
            payment_status=PAYMENT_PENDING,
            order_id=order.id,
        )
        db.add(payment)
        db.commit()
        logger.info("Created offline %s payment %s for order %s", payment_method, payment.id, order.order_number)
        return PaymentResult(payment=payment)

    # Raises GatewayError; the order stays behind without a payment.
    registration = deps.gateway.register_payment(order.id, order.total_amount)

    payment = Payment(
        payment_method=payment_method,
        amount=order.total_amount,
        payment_status=PAYMENT_PENDING,
        hash_id=registration.gateway_order_id,
        payment_link=registration.form_url,
        order_id=order.id,
    )
    db.add(payment)
    order.hash_id = registration.gateway_order_id
    db.commit()
    logger.info(
        "Created gateway payment %s for order %s (hashId=%s)", payment.id, order.order_number, payment.hash_id
    )
    return PaymentResult(
        payment=payment,
        payment_link=registration.form_url,
        gateway_ref=GatewayRef(registration.gateway_order_id),
    )

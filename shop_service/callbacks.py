import logging
from typing import Tuple

from .errors import ShopError, ValidationError
from .models import PAYMENT_DECLINED, PAYMENT_SUCCESS
from .reconciliation import PaymentReconciler
from .refs import OrderRef

logger = logging.getLogger(__name__)

OPERATOR_ACTIONS = (PAYMENT_SUCCESS, PAYMENT_DECLINED)


def parse_callback_data(data: str) -> Tuple[str, OrderRef]:
    """Decodes the "<action>:<order id>" payload of an operator button."""
    action, _, order_id = (data or "").partition(":")
    if action not in OPERATOR_ACTIONS or not order_id.strip().isdigit():
        raise ValidationError(f"Unsupported callback data: {data!r}")
    return action, OrderRef(int(order_id))


def handle_operator_callback(deps, callback_query: dict):
    """Applies an operator's button press. Runs on the task worker."""
    callback_id = callback_query.get("id")
    db = deps.session_factory()
    try:
        action, order_ref = parse_callback_data(callback_query.get("data"))
        payment = PaymentReconciler(deps).apply_by_order(db, order_ref, action)
        answer = f"Заказ #{payment.order.order_number}: {payment.payment_status}"
    except ShopError as e:
        deps.notifier.answer_callback(callback_id, f"Ошибка: {e.message}")
        raise
    finally:
        db.close()

    logger.info("Operator callback %s applied: %s", callback_id, answer)
    deps.notifier.answer_callback(callback_id, answer)

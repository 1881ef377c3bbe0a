import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from .models import Order, Promocode
from .pricing import PromocodeSnapshot

logger = logging.getLogger(__name__)


def find_promocode(db: Session, name: Optional[str]) -> Optional[Promocode]:
    if not name or not name.strip():
        return None
    return db.query(Promocode).filter(Promocode.name == name.strip()).first()


def snapshot_for(db: Session, name: Optional[str]) -> Optional[PromocodeSnapshot]:
    """Loads a promocode for pricing; validity is judged by the pricing engine."""
    promocode = find_promocode(db, name)
    if promocode is None:
        if name and name.strip():
            logger.info("Promocode %r not found, pricing without it", name)
        return None
    return PromocodeSnapshot.from_model(promocode)


def validate_promocode(db: Session, name: str, now: datetime) -> dict:
    """Checks a promocode without applying or redeeming it."""
    promocode = find_promocode(db, name)
    if promocode is None:
        return {"valid": False, "message": "Promocode not found"}

    valid, reason = PromocodeSnapshot.from_model(promocode).check(now)
    if not valid:
        return {"valid": False, "message": reason}

    return {
        "valid": True,
        "data": {
            "name": promocode.name,
            "type": promocode.type,
            "percentDiscount": promocode.percent_discount,
            "availableUsages": promocode.available_usages,
            "currentUsages": len(promocode.usages),
            "remainingUsages": promocode.available_usages,
            "validUntil": promocode.valid_until.isoformat() if promocode.valid_until else None,
        },
    }


def redeem_promocode(db: Session, name: str, order: Order, now: datetime) -> bool:
    """
    Links the promocode to the order and uses up one redemption.

    The validity check is repeated here because time may have passed since the
    order was priced. Appending the usage and decrementing the counter are
    committed together. Returns False when the code can't be redeemed.
    """
    promocode = find_promocode(db, name)
    if promocode is None:
        logger.warning("Promocode %r vanished before order %s was linked", name, order.order_number)
        return False

    valid, reason = PromocodeSnapshot.from_model(promocode).check(now)
    if not valid:
        logger.warning("Promocode %s not redeemed for order %s: %s", promocode.name, order.order_number, reason)
        return False

    if any(usage.id == order.id for usage in promocode.usages):
        logger.info("Promocode %s already linked to order %s", promocode.name, order.order_number)
        return True

    promocode.usages.append(order)
    promocode.available_usages -= 1
    db.commit()
    logger.info(
        "Promocode %s redeemed by order %s, %d usages left",
        promocode.name,
        order.order_number,
        promocode.available_usages,
    )
    return True

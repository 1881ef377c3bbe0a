"""Order pricing.

Pure functions: no database, no clock unless one is passed in. Every amount
is a ``Decimal`` and nothing is rounded until ``PriceBreakdown.as_dict``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence, Tuple

from .errors import EmptyCart, InvalidQuantity, ValidationError
from .models import PROMO_ORDER, PROMO_SHIPPING, PROMO_WHOLE, SELF_SHIPPING, SHIPPING

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal(100)

# (lower bound inclusive, percent, description), highest first.
DISCOUNT_TIERS = (
    (Decimal(1500), Decimal(20), "20% (≥1500 BYN)"),
    (Decimal(700), Decimal(5), "5% (≥700 BYN)"),
)
NO_DISCOUNT_DESCRIPTION = "0% (<700 BYN)"

FREE_SHIPPING_FROM = Decimal(400)
SHIPPING_FEE = Decimal(20)
SELF_PICKUP_PERCENT = Decimal(3)

SHIPPING_TYPES = (SHIPPING, SELF_SHIPPING)


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Decimal) -> float:
    """Rounds to cents for output."""
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class PricedLine:
    """A cart line whose product has been resolved to a unit price."""

    slug: str
    title: str
    unit_price: Decimal
    quantity: int

    @property
    def total_price(self) -> Decimal:
        return to_decimal(self.unit_price) * self.quantity


@dataclass
class PromocodeSnapshot:
    name: str
    type: str
    percent_discount: Decimal
    available_usages: int
    is_actual: bool = True
    valid_until: Optional[datetime] = None

    @classmethod
    def from_model(cls, promocode) -> "PromocodeSnapshot":
        return cls(
            name=promocode.name,
            type=promocode.type,
            percent_discount=to_decimal(promocode.percent_discount),
            available_usages=promocode.available_usages,
            is_actual=promocode.is_actual,
            valid_until=promocode.valid_until,
        )

    def check(self, now: datetime) -> Tuple[bool, str]:
        """Returns whether the promocode may be applied at ``now``, and why not."""
        if not self.is_actual:
            return False, "Promocode is not active"
        if self.valid_until is not None and as_utc(now) >= as_utc(self.valid_until):
            return False, "Promocode has expired"
        if self.available_usages <= 0:
            return False, "Promocode has reached maximum usages"
        return True, "ok"

    def is_valid(self, now: datetime) -> bool:
        return self.check(now)[0]


@dataclass
class PriceBreakdown:
    shipping_type: str
    subtotal: Decimal
    shipping_cost: Decimal
    base_discount: Decimal
    self_pickup_discount: Decimal
    promocode_discount: Decimal
    total_amount: Decimal
    free_shipping_applied: bool
    discount_description: str
    promocode: Optional[PromocodeSnapshot] = None
    lines: List[PricedLine] = field(default_factory=list)

    @property
    def total_discount(self) -> Decimal:
        """Tier and self-pickup discounts together (promocode not included)."""
        return self.base_discount + self.self_pickup_discount

    def as_dict(self) -> dict:
        promocode = None
        if self.promocode is not None:
            promocode = {
                "name": self.promocode.name,
                "type": self.promocode.type,
                "percentDiscount": float(self.promocode.percent_discount),
                "discountAmount": money(self.promocode_discount),
            }
        return {
            "products": [
                {
                    "slug": line.slug,
                    "title": line.title,
                    "unitPrice": money(line.unit_price),
                    "quantity": line.quantity,
                    "totalPrice": money(line.total_price),
                }
                for line in self.lines
            ],
            "subtotal": money(self.subtotal),
            "shippingCost": money(self.shipping_cost),
            "freeShipping": self.free_shipping_applied,
            "discount": {
                "baseDiscount": money(self.base_discount),
                "selfShippingDiscount": money(self.self_pickup_discount),
                "totalDiscount": money(self.total_discount),
                "description": self.discount_description,
            },
            "promocodeDiscount": money(self.promocode_discount),
            "promocode": promocode,
            "totalAmount": money(self.total_amount),
            "shippingType": self.shipping_type,
        }


def base_discount_rate(subtotal: Decimal) -> Tuple[Decimal, str]:
    for threshold, percent, description in DISCOUNT_TIERS:
        if subtotal >= threshold:
            return percent / HUNDRED, description
    return Decimal(0), NO_DISCOUNT_DESCRIPTION


def compute_price(
    lines: Sequence[PricedLine],
    shipping_type: str = SHIPPING,
    promocode: Optional[PromocodeSnapshot] = None,
    now: Optional[datetime] = None,
) -> PriceBreakdown:
    if not lines:
        raise EmptyCart()
    for line in lines:
        if line.quantity is None or line.quantity <= 0:
            raise InvalidQuantity(line.quantity)
    if shipping_type not in SHIPPING_TYPES:
        raise ValidationError('Type must be either "shipping" or "selfShipping"')

    subtotal = sum((line.total_price for line in lines), Decimal(0))

    rate, description = base_discount_rate(subtotal)
    base_discount = subtotal * rate
    self_pickup_discount = Decimal(0)
    shipping_cost = Decimal(0)

    if shipping_type == SHIPPING:
        if subtotal < FREE_SHIPPING_FROM:
            shipping_cost = SHIPPING_FEE
        total = subtotal - base_discount + shipping_cost
    else:
        self_pickup_discount = subtotal * SELF_PICKUP_PERCENT / HUNDRED
        total = subtotal - (base_discount + self_pickup_discount)

    promocode_discount = Decimal(0)
    applied = None
    if promocode is not None:
        now = now or datetime.now(timezone.utc)
        valid, reason = promocode.check(now)
        if not valid:
            logger.info("Ignoring promocode %s: %s", promocode.name, reason)
        else:
            percent = to_decimal(promocode.percent_discount) / HUNDRED
            if promocode.type == PROMO_ORDER:
                promocode_discount = subtotal * percent
            elif promocode.type == PROMO_SHIPPING:
                promocode_discount = shipping_cost * percent
            elif promocode.type == PROMO_WHOLE:
                promocode_discount = total * percent
            else:
                logger.warning("Ignoring promocode %s of unknown type %r", promocode.name, promocode.type)
                promocode = None
            if promocode is not None:
                total -= promocode_discount
                applied = promocode

    return PriceBreakdown(
        shipping_type=shipping_type,
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        base_discount=base_discount,
        self_pickup_discount=self_pickup_discount,
        promocode_discount=promocode_discount,
        total_amount=total,
        free_shipping_applied=shipping_type == SHIPPING and subtotal >= FREE_SHIPPING_FROM,
        discount_description=description,
        promocode=applied,
        lines=list(lines),
    )

"""Order creation.

``create_order`` runs its steps strictly in sequence and commits after each
one. Validation and stock reservation happen before anything about the order
is written; from the address onwards nothing is rolled back on failure.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from .errors import EmptyCart, InvalidQuantity, MissingPrice, OrderNotFound, ProductNotFound, ProductNotOrderable
from .messages import format_order_message
from .models import ORDER_PENDING, SHIPPING, Address, Order, OrderItem, Product
from .notifications import operator_buttons
from .pricing import PriceBreakdown, PricedLine, compute_price, money, to_decimal
from .promocodes import redeem_promocode, snapshot_for
from .refs import OrderRef, ProductRef

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    product: ProductRef
    quantity: int


@dataclass
class OrderResult:
    order: Order
    order_items: List[OrderItem]
    address: Address
    price: PriceBreakdown


def get_order(db: Session, ref: OrderRef) -> Order:
    order = db.get(Order, ref.id)
    if order is None:
        raise OrderNotFound(ref.id)
    return order


def resolve_cart(db: Session, cart: Sequence[CartLine]) -> List[Tuple[Product, PricedLine]]:
    """Looks up every cart line's product and checks it can be ordered."""
    if not cart:
        raise EmptyCart()

    resolved = []
    for line in cart:
        if line.quantity is None or line.quantity <= 0:
            raise InvalidQuantity(line.quantity)

        product = db.query(Product).filter(Product.slug == line.product.slug).first()
        if product is None:
            raise ProductNotFound(line.product.slug)
        if product.is_hidden or product.is_active is False:
            raise ProductNotOrderable(line.product.slug)
        if product.price is None:
            raise MissingPrice(line.product.slug)

        priced = PricedLine(
            slug=product.slug,
            title=product.title,
            unit_price=to_decimal(product.price),
            quantity=line.quantity,
        )
        resolved.append((product, priced))
    return resolved


def quote(
    db: Session,
    cart: Sequence[CartLine],
    shipping_type: str = SHIPPING,
    promocode_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PriceBreakdown:
    """Prices a cart without persisting anything."""
    resolved = resolve_cart(db, cart)
    promocode = snapshot_for(db, promocode_name)
    return compute_price([priced for _, priced in resolved], shipping_type, promocode, now=now)


def reserve_stock(db: Session, resolved: Sequence[Tuple[Product, PricedLine]]) -> List[Optional[int]]:
    """
    Takes ordered quantities out of stock, never going below zero.

    Returns how many units were actually taken for each line, None where the
    product doesn't track stock.
    """
    reserved = []
    for product, priced in resolved:
        if product.stock is None:
            reserved.append(None)
            continue
        before = product.stock
        product.stock = max(0, product.stock - priced.quantity)
        reserved.append(before - product.stock)
        logger.info("Reserved %d of %s (stock %d -> %d)", before - product.stock, product.slug, before, product.stock)
    db.commit()
    return reserved


def apply_price(order: Order, price: PriceBreakdown):
    order.subtotal = money(price.subtotal)
    order.shipping_cost = money(price.shipping_cost)
    order.discount_amount = money(price.total_discount + price.promocode_discount)
    order.total_amount = money(price.total_amount)


def next_order_number(db: Session, now: datetime) -> str:
    """Millisecond timestamp, bumped until it doesn't collide with an existing order."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    candidate = int(now.timestamp() * 1000)
    while db.query(Order.id).filter(Order.order_number == str(candidate)).first() is not None:
        candidate += 1
    return str(candidate)


def create_order(
    db: Session,
    deps,
    cart: Sequence[CartLine],
    address_input,
    comment: Optional[str] = None,
    promocode_name: Optional[str] = None,
    payment_method: Optional[str] = None,
    notify: bool = True,
) -> OrderResult:
    now = deps.clock()
    shipping_type = getattr(address_input, "type", None) or SHIPPING

    # 1. Validate the cart and price it.
    resolved = resolve_cart(db, cart)
    promocode = snapshot_for(db, promocode_name)
    price = compute_price([priced for _, priced in resolved], shipping_type, promocode, now=now)

    # 2. Reserve stock now; it's released only when the payment is declined.
    reserved = reserve_stock(db, resolved)

    # 3. Address.
    address = Address(
        type=shipping_type,
        is_individual=address_input.is_individual,
        full_name=address_input.full_name,
        organization=address_input.organization,
        unp=address_input.unp,
        payment_account=address_input.payment_account,
        bank_address=address_input.bank_address,
        email=address_input.email,
        phone=address_input.phone,
        city=address_input.city,
        address=address_input.address,
        postal_code=address_input.postal_code,
    )
    db.add(address)
    db.commit()

    # 4 + 5. Order.
    order = Order(
        order_number=next_order_number(db, now),
        order_status=ORDER_PENDING,
        order_date=now,
        payment_method=payment_method,
        comment=comment,
        address_id=address.id,
    )
    apply_price(order, price)
    db.add(order)
    db.commit()
    logger.info("Order %s created (id=%s, total=%s)", order.order_number, order.id, order.total_amount)

    # 6. Promocode usage. If the code can't be redeemed any more the order
    # goes on without its discount.
    if price.promocode is not None:
        try:
            redeemed = redeem_promocode(db, price.promocode.name, order, deps.clock())
        except Exception:
            db.rollback()
            logger.exception("Could not redeem promocode %s for order %s", price.promocode.name, order.order_number)
            redeemed = False
        if not redeemed:
            price = compute_price([priced for _, priced in resolved], shipping_type, None, now=now)
            apply_price(order, price)
            db.commit()
            logger.info("Order %s repriced without promocode: total %s", order.order_number, order.total_amount)

    # 7. Order items, with the prices captured now.
    order_items = []
    for (product, priced), reserved_quantity in zip(resolved, reserved):
        item = OrderItem(
            quantity=priced.quantity,
            unit_price=money(priced.unit_price),
            total_price=money(priced.total_price),
            reserved_quantity=reserved_quantity,
            product_id=product.id,
            order_id=order.id,
        )
        db.add(item)
        order_items.append(item)
    db.commit()
    db.refresh(order)

    # 8. Tell the operator.
    if notify:
        notify_order_created(deps, order, with_buttons=True)

    return OrderResult(order=order, order_items=order_items, address=address, price=price)


def notify_order_created(deps, order: Order, with_buttons: bool = False):
    """Operator message and 'order.created' event. Never raises."""
    try:
        buttons = operator_buttons(order.id) if with_buttons else None
        deps.notifier.telegram(format_order_message(order), buttons=buttons)
        deps.notifier.event(
            "order.created",
            {
                "order_id": order.id,
                "order_number": order.order_number,
                "total_amount": order.total_amount,
                "items": [{"product_id": item.product_id, "quantity": item.quantity} for item in order.order_items],
            },
        )
    except Exception:
        logger.exception("Failed to notify about order %s", order.order_number)


def order_to_dict(order: Order) -> dict:
    payment = order.payment
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "orderStatus": order.order_status,
        "orderDate": order.order_date.isoformat() if order.order_date else None,
        "subtotal": order.subtotal,
        "shippingCost": order.shipping_cost,
        "discount": order.discount_amount,
        "totalAmount": order.total_amount,
        "paymentMethod": order.payment_method,
        "comment": order.comment,
        "hashId": order.hash_id,
        "items": [
            {
                "productId": item.product_id,
                "productSlug": item.product.slug if item.product else None,
                "quantity": item.quantity,
                "unitPrice": item.unit_price,
                "totalPrice": item.total_price,
            }
            for item in order.order_items
        ],
        "payment": None
        if payment is None
        else {
            "id": payment.id,
            "paymentMethod": payment.payment_method,
            "paymentStatus": payment.payment_status,
            "amount": payment.amount,
            "hashId": payment.hash_id,
        },
    }

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base

# Order statuses. Older records may still say "processing"; those settle like pending ones.
ORDER_PENDING = "pending"
ORDER_SUCCESS = "success"
ORDER_CANCELED = "canceled"
ORDER_REFUNDED = "refunded"

# Payment statuses.
PAYMENT_PENDING = "pending"
PAYMENT_DECLINED = "declined"
PAYMENT_SUCCESS = "success"
PAYMENT_REFUNDED = "refunded"

# Shipping types, stored on the address.
SHIPPING = "shipping"
SELF_SHIPPING = "selfShipping"

# Payment methods.
METHOD_ERIP = "ERIP"
METHOD_CARD = "card"
METHOD_PAYMENT_ACCOUNT = "paymentAccount"

# Promocode types.
PROMO_ORDER = "order"
PROMO_SHIPPING = "shipping"
PROMO_WHOLE = "whole"


# Join table linking a promocode to every order that redeemed it.
promocode_usages = Table(
    "promocode_usages",
    Base.metadata,
    Column("promocode_id", Integer, ForeignKey("promocodes.id"), primary_key=True),
    Column("order_id", Integer, ForeignKey("orders.id"), primary_key=True),
    UniqueConstraint("promocode_id", "order_id", name="uq_promocode_usage"),
)


# A catalog product. Only price, stock and the orderable flags matter here.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String, unique=True, index=True, nullable=False)
    title = Column(String, nullable=False)
    articul = Column(String)
    price = Column(Float)  # Unset price means the product can't be ordered.
    stock = Column(Integer)  # Unset stock means it isn't tracked.
    is_hidden = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean)  # Legacy flag, only an explicit False blocks ordering.


# Delivery and payer details, owned by exactly one order.
class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String, default=SHIPPING, nullable=False)
    is_individual = Column(Boolean, default=True, nullable=False)
    full_name = Column(String)
    organization = Column(String)
    unp = Column(String)
    payment_account = Column(String)
    bank_address = Column(String)
    email = Column(String)
    phone = Column(String)
    city = Column(String)
    address = Column(String)
    postal_code = Column(String)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, index=True, nullable=False)
    order_status = Column(String, default=ORDER_PENDING, nullable=False)
    order_date = Column(DateTime, nullable=False)
    subtotal = Column(Float, nullable=False)
    shipping_cost = Column(Float, default=0, nullable=False)
    discount_amount = Column(Float, default=0, nullable=False)
    total_amount = Column(Float, nullable=False)
    payment_method = Column(String)
    comment = Column(Text)
    hash_id = Column(String, unique=True, index=True)  # Gateway correlation key, set once.
    address_id = Column(Integer, ForeignKey("addresses.id"), unique=True, nullable=False)

    address = relationship("Address", single_parent=True, cascade="all, delete-orphan")
    order_items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    payment = relationship("Payment", back_populates="order", uselist=False)


# One cart line, with the price captured when the order was placed.
class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    # Units actually taken from stock; less than quantity when stock ran out,
    # None when the product doesn't track stock.
    reserved_quantity = Column(Integer, nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"))
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    product = relationship("Product")
    order = relationship("Order", back_populates="order_items")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    payment_method = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    payment_status = Column(String, default=PAYMENT_PENDING, nullable=False)
    hash_id = Column(String, unique=True, index=True)
    payment_link = Column(String)  # Gateway form URL, handed out again on retries.
    payment_date = Column(DateTime)
    refund_date = Column(DateTime)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)

    order = relationship("Order", back_populates="payment")


class Promocode(Base):
    __tablename__ = "promocodes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    type = Column(String, default=PROMO_ORDER, nullable=False)
    percent_discount = Column(Float, nullable=False)
    available_usages = Column(Integer, default=0, nullable=False)  # Remaining redemptions.
    is_actual = Column(Boolean, default=True, nullable=False)
    valid_until = Column(DateTime)

    usages = relationship("Order", secondary=promocode_usages)

"""Request models for the HTTP API."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import InvalidPayer
from .models import METHOD_CARD, METHOD_ERIP, METHOD_PAYMENT_ACCOUNT, SHIPPING
from .orders import CartLine
from .refs import ProductRef

INDIVIDUAL_METHODS = (METHOD_ERIP, METHOD_CARD)
ORGANIZATION_METHODS = (METHOD_ERIP, METHOD_PAYMENT_ACCOUNT)

INDIVIDUAL_REQUIRED = ("full_name", "email", "phone", "city", "address")
ORGANIZATION_REQUIRED = (
    "organization",
    "full_name",
    "unp",
    "payment_account",
    "bank_address",
    "email",
    "phone",
    "city",
    "address",
)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CartLineIn(CamelModel):
    product_slug: str = Field(alias="productSlug", min_length=1)
    quantity: int

    def to_cart_line(self) -> CartLine:
        return CartLine(product=ProductRef(self.product_slug), quantity=self.quantity)


class CalculatePriceRequest(CamelModel):
    products: List[CartLineIn] = []
    type: str = SHIPPING
    promocode: Optional[str] = None


class AddressIn(CamelModel):
    """Delivery and payer details; only ``type`` has a default."""

    type: str = SHIPPING
    is_individual: bool = Field(True, alias="isIndividual")
    full_name: Optional[str] = Field(None, alias="fullName")
    organization: Optional[str] = None
    unp: Optional[str] = Field(None, alias="UNP")
    payment_account: Optional[str] = Field(None, alias="paymentAccount")
    bank_address: Optional[str] = Field(None, alias="bankAddress")
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = Field(None, alias="postalCode")

    def missing(self, fields) -> List[str]:
        return [
            type(self).model_fields[name].alias or name
            for name in fields
            if not (getattr(self, name) or "").strip()
        ]


class InitiatePaymentRequest(CamelModel):
    products: List[CartLineIn] = []
    address: AddressIn
    payment_method: str = Field(alias="paymentMethod")
    comment: Optional[str] = None
    promocode: Optional[str] = None

    @property
    def cart(self) -> List[CartLine]:
        return [line.to_cart_line() for line in self.products]

    @property
    def uses_gateway(self) -> bool:
        return self.payment_method == METHOD_CARD and self.address.is_individual

    def check_payer(self):
        """Enforces the payer type / payment method matrix."""
        if self.address.is_individual:
            allowed, required, payer = INDIVIDUAL_METHODS, INDIVIDUAL_REQUIRED, "individual"
        else:
            allowed, required, payer = ORGANIZATION_METHODS, ORGANIZATION_REQUIRED, "organization"

        if self.payment_method not in allowed:
            raise InvalidPayer(
                f"Payment method {self.payment_method!r} is not available for {payer} payers "
                f"(allowed: {', '.join(allowed)})"
            )
        missing = self.address.missing(required)
        if missing:
            raise InvalidPayer(f"Missing required fields for {payer} payer: {', '.join(missing)}")


class PaymentStatusUpdate(BaseModel):
    status: str


class ValidatePromocodeRequest(BaseModel):
    name: str = Field(min_length=1)

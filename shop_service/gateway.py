"""Alfa-Bank (RBS) payment gateway client."""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import requests

from .errors import GatewayError
from .models import PAYMENT_DECLINED, PAYMENT_PENDING, PAYMENT_REFUNDED, PAYMENT_SUCCESS
from .pricing import to_decimal

logger = logging.getLogger(__name__)

# Gateway orderStatus codes -> payment status.
GATEWAY_STATUSES = {
    0: PAYMENT_PENDING,  # registered, not paid
    1: PAYMENT_PENDING,  # pre-authorised, waiting for completion
    2: PAYMENT_SUCCESS,  # fully authorised
    3: PAYMENT_DECLINED,  # authorisation cancelled
    4: PAYMENT_REFUNDED,
    5: PAYMENT_PENDING,  # 3-D Secure in progress
    6: PAYMENT_DECLINED,
}


@dataclass
class Registration:
    gateway_order_id: str
    form_url: str


def to_subunits(amount) -> int:
    """Amount in kopecks, as the gateway expects it."""
    return int((to_decimal(amount) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class AlfaBankGateway:
    def __init__(
        self,
        base_url: Optional[str],
        username: Optional[str],
        password: Optional[str],
        return_url: Optional[str] = None,
        failure_url: Optional[str] = None,
        order_offset: int = 100000,
        http=None,
        timeout: float = 15,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.username = username
        self.password = password
        self.return_url = return_url
        self.failure_url = failure_url
        self.order_offset = order_offset
        self.http = http or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "AlfaBankGateway":
        return cls(
            base_url=settings.payment_url,
            username=settings.gateway_username,
            password=settings.gateway_password,
            return_url=settings.return_url,
            failure_url=settings.failure_url,
            order_offset=settings.gateway_order_offset,
        )

    # Our order ids are shifted so they never clash with numbers the merchant
    # account has already used.
    def gateway_order_number(self, order_id: int) -> str:
        return str(order_id + self.order_offset)

    def order_id_from_gateway(self, order_number: str) -> int:
        return int(order_number) - self.order_offset

    def _request(self, method: str, params: dict) -> dict:
        if not self.base_url or not self.username or not self.password:
            raise GatewayError("Payment configuration is missing. Please check environment variables.")

        params = {"userName": self.username, "password": self.password, **params}
        try:
            response = self.http.get(f"{self.base_url}/{method}", params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise GatewayError(f"Payment gateway request failed: {e}") from e
        except ValueError as e:
            raise GatewayError("Payment gateway returned a malformed response") from e

        error_code = str(data.get("errorCode", "0") or "0")
        if error_code != "0":
            raise GatewayError(f"Payment gateway error: {data.get('errorMessage') or error_code}")
        return data

    def register_payment(self, order_id: int, amount) -> Registration:
        params = {
            "orderNumber": self.gateway_order_number(order_id),
            "amount": to_subunits(amount),
            "language": "ru",
        }
        if self.return_url:
            params["returnUrl"] = self.return_url
        if self.failure_url:
            params["failUrl"] = self.failure_url

        data = self._request("register.do", params)
        if not data.get("orderId") or not data.get("formUrl"):
            raise GatewayError("Invalid payment response: missing orderId or formUrl")

        logger.info("Registered payment for order %s at gateway as %s", order_id, data["orderId"])
        return Registration(gateway_order_id=data["orderId"], form_url=data["formUrl"])

    def get_order_status(self, gateway_order_id: str) -> str:
        """Asks the gateway how a registered payment went."""
        data = self._request("getOrderStatusExtended.do", {"orderId": gateway_order_id, "language": "ru"})
        code = data.get("orderStatus")
        try:
            return GATEWAY_STATUSES[int(code)]
        except (TypeError, ValueError, KeyError) as e:
            raise GatewayError(f"Unknown gateway order status: {code!r}") from e

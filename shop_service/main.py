# --- Imports ---
import logging
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from .callbacks import handle_operator_callback
from .config import Settings, configure_logging
from .database import init_db
from .dependencies import Dependencies, build_dependencies, get_db, get_deps
from .errors import ConfigurationError, ShopError, UpstreamError, ValidationError
from .messages import order_created_email_invoice, order_created_email_self_pickup
from .models import PAYMENT_DECLINED, PAYMENT_PENDING, PAYMENT_SUCCESS, SELF_SHIPPING, SHIPPING
from .notifications import NotificationError
from .orders import create_order, get_order, notify_order_created, order_to_dict, quote as quote_cart
from .payments import create_payment_for_order, get_payment, payment_by_gateway_ref
from .promocodes import validate_promocode
from .reconciliation import PaymentReconciler
from .refs import GatewayRef, OrderRef
from .schemas import CalculatePriceRequest, InitiatePaymentRequest, PaymentStatusUpdate, ValidatePromocodeRequest

logger = logging.getLogger(__name__)


def payment_to_dict(payment) -> dict:
    return {
        "id": payment.id,
        "orderId": payment.order_id,
        "paymentMethod": payment.payment_method,
        "paymentStatus": payment.payment_status,
        "amount": payment.amount,
        "hashId": payment.hash_id,
        "orderStatus": payment.order.order_status if payment.order else None,
    }


def setup_telegram_webhook(deps: Dependencies, url: Optional[str] = None) -> dict:
    client = deps.notifier.telegram_client
    if client is None:
        raise ConfigurationError("TELEGRAM_BOT_TOKEN is not set")
    url = url or deps.settings.telegram_webhook_url
    if not url:
        raise ValidationError("Webhook URL is required (url query parameter or TELEGRAM_WEBHOOK_URL)")

    try:
        result = client.set_webhook(url)
    except NotificationError as e:
        raise UpstreamError(f"Failed to configure Telegram webhook: {e}") from e
    logger.info("Telegram webhook configured: %s", url)
    return {"success": True, "url": url, "result": result.get("result")}


def create_app(deps: Optional[Dependencies] = None) -> FastAPI:
    if deps is None:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        deps = build_dependencies(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create database tables on startup if they don't exist.
        if deps.engine is not None:
            init_db(deps.engine)
        deps.worker.start()
        if deps.settings.telegram_webhook_url and deps.notifier.telegram_client is not None:
            try:
                setup_telegram_webhook(deps)
            except ShopError as e:
                logger.error("Telegram webhook setup failed: %s", e.message)
        yield
        deps.worker.stop()
        if deps.notifier.events is not None:
            deps.notifier.events.close()

    app = FastAPI(title="Shop checkout service", lifespan=lifespan)
    app.state.deps = deps

    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    # --- Endpoints ---

    @app.get("/")
    def root():
        """Health check endpoint."""
        return {"message": "Checkout service is running"}

    @app.post("/orders/calculate-price")
    def calculate_price(req: CalculatePriceRequest, db: Session = Depends(get_db), deps=Depends(get_deps)):
        """Prices a cart without creating anything."""
        cart = [line.to_cart_line() for line in req.products]
        breakdown = quote_cart(db, cart, req.type or SHIPPING, req.promocode, now=deps.clock())
        return {"success": True, "data": breakdown.as_dict()}

    @app.get("/orders/{order_id}")
    def read_order(order_id: int, db: Session = Depends(get_db)):
        return order_to_dict(get_order(db, OrderRef(order_id)))

    @app.post("/payments/initiate")
    def initiate_payment(req: InitiatePaymentRequest, db: Session = Depends(get_db), deps=Depends(get_deps)):
        """
        Full checkout: creates the order, then its payment.

        Card payments of individuals go through the gateway and the response
        carries the gateway's payment link; everything else is settled offline.
        """
        req.check_payer()
        use_gateway = req.uses_gateway

        try:
            result = create_order(
                db,
                deps,
                req.cart,
                req.address,
                comment=req.comment,
                promocode_name=req.promocode,
                payment_method=req.payment_method,
                notify=not use_gateway,
            )
            order = result.order
            payment = create_payment_for_order(db, deps, OrderRef(order.id), req.payment_method, use_gateway)
        except ShopError as e:
            logger.error("Payment initiation failed: %s", e.message)
            raise

        if use_gateway:
            notify_order_created(deps, order)
        else:
            if order.address.type == SELF_SHIPPING:
                subject, html = order_created_email_self_pickup(order)
            else:
                subject, html = order_created_email_invoice(order)
            deps.notifier.email(order.address.email, subject, html)

        return {
            "success": True,
            "orderId": order.id,
            "orderNumber": order.order_number,
            "totalAmount": order.total_amount,
            "paymentId": payment.payment.id,
            "hashId": str(payment.gateway_ref) if payment.gateway_ref else None,
            "paymentLink": payment.payment_link,
            "price": result.price.as_dict(),
        }

    def _redirect_outcome(gateway_order_id: Optional[str], outcome: str, page: str, db: Session, deps):
        if not gateway_order_id:
            raise ValidationError("Missing required parameter: orderId")

        client_url = deps.settings.base_client_url
        try:
            PaymentReconciler(deps).apply_by_gateway_ref(db, GatewayRef(gateway_order_id), outcome)
        except Exception as e:
            logger.exception("Payment %s handler failed for %s", outcome, gateway_order_id)
            message = e.message if isinstance(e, ShopError) else "Payment processing error"
            return RedirectResponse(f"{client_url}/payment-error?message={quote(message)}", status_code=302)
        return RedirectResponse(f"{client_url}/{page}?orderId={quote(gateway_order_id)}", status_code=302)

    @app.get("/payments/success")
    def payment_success(orderId: Optional[str] = None, db: Session = Depends(get_db), deps=Depends(get_deps)):
        """The gateway sends the buyer here after a successful payment."""
        return _redirect_outcome(orderId, PAYMENT_SUCCESS, "payment-success", db, deps)

    @app.get("/payments/failure")
    def payment_failure(orderId: Optional[str] = None, db: Session = Depends(get_db), deps=Depends(get_deps)):
        return _redirect_outcome(orderId, PAYMENT_DECLINED, "payment-failure", db, deps)

    @app.post("/payments/poll")
    def poll_payment(orderId: str, db: Session = Depends(get_db), deps=Depends(get_deps)):
        """Asks the gateway for the payment's state and applies it."""
        ref = GatewayRef(orderId)
        payment = payment_by_gateway_ref(db, ref)
        status = deps.gateway.get_order_status(ref.value)
        if status != PAYMENT_PENDING:
            payment = PaymentReconciler(deps).apply(db, payment, status)
        return {"gatewayStatus": status, "payment": payment_to_dict(payment)}

    @app.put("/payments/{payment_id}/status")
    def update_payment_status(
        payment_id: int, req: PaymentStatusUpdate, db: Session = Depends(get_db), deps=Depends(get_deps)
    ):
        """Sets a payment's status directly, for payments settled offline or corrections."""
        payment = PaymentReconciler(deps).apply(db, get_payment(db, payment_id), req.status)
        return payment_to_dict(payment)

    @app.post("/payments/telegram-callback")
    async def telegram_callback(request: Request):
        # Telegram gives the webhook a few seconds; answer first, work later.
        try:
            update = await request.json()
        except ValueError:
            logger.warning("Telegram callback with a non-JSON body ignored")
            return {"ok": True}

        callback_query = update.get("callback_query") if isinstance(update, dict) else None
        if callback_query:
            deps.worker.submit("telegram-callback", handle_operator_callback, deps, callback_query)
        return {"ok": True}

    @app.get("/payments/setup-telegram-webhook")
    def setup_webhook(url: Optional[str] = None, deps=Depends(get_deps)):
        return setup_telegram_webhook(deps, url)

    @app.post("/promocodes/validate")
    def promocode_validate(req: ValidatePromocodeRequest, db: Session = Depends(get_db), deps=Depends(get_deps)):
        name = req.name.strip()
        if not name:
            raise ValidationError("Promocode name is required")
        return validate_promocode(db, name, deps.clock())

    return app


app = create_app()

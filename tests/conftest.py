"""Pytest fixtures for shop_service tests."""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from shop_service.config import Settings
from shop_service.database import build_engine, build_session_factory, init_db
from shop_service.dependencies import Dependencies
from shop_service.errors import GatewayError
from shop_service.gateway import Registration
from shop_service.models import Product, Promocode
from shop_service.notifications import NotificationError, Notifier
from shop_service.worker import TaskWorker

NOW = datetime(2026, 10, 19, 12, 0, 0)


class FixedClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeGateway:
    """Stands in for the Alfa-Bank client."""

    def __init__(self):
        self.registrations = []
        self.error = None
        self.status = "pending"

    def register_payment(self, order_id, amount):
        if self.error:
            raise GatewayError(self.error)
        self.registrations.append((order_id, amount))
        gateway_id = f"gw-{order_id}-{len(self.registrations)}"
        return Registration(gateway_order_id=gateway_id, form_url=f"https://pay.test/form?mdOrder={gateway_id}")

    def get_order_status(self, gateway_order_id):
        return self.status


class FakeTelegram:
    def __init__(self):
        self.messages = []
        self.answers = []
        self.webhooks = []
        self.fail = False

    def send_message(self, text, buttons=None, chat_id=None):
        if self.fail:
            raise NotificationError("telegram is down")
        self.messages.append((text, buttons))
        return {"ok": True}

    def answer_callback_query(self, callback_query_id, text):
        self.answers.append((callback_query_id, text))
        return {"ok": True}

    def set_webhook(self, url):
        if self.fail:
            raise NotificationError("bad webhook")
        self.webhooks.append(url)
        return {"ok": True, "result": True}


class FakeEmail:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, html):
        if self.fail:
            raise NotificationError("resend is down")
        self.sent.append((to, subject, html))
        return "email-1"


class FakeEvents:
    def __init__(self):
        self.published = []

    def publish(self, routing_key, message):
        self.published.append((routing_key, message))

    def close(self):
        pass

    def keys(self):
        return [key for key, _ in self.published]


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def email():
    return FakeEmail()


@pytest.fixture
def events():
    return FakeEvents()


@pytest.fixture
def deps(clock, gateway, telegram, email, events):
    engine = build_engine("sqlite://")
    init_db(engine)
    settings = Settings(
        database_url="sqlite://",
        base_client_url="http://client.test",
        telegram_bot_token="token",
        telegram_chat_id="chat",
    )
    deps = Dependencies(
        settings=settings,
        session_factory=build_session_factory(engine),
        gateway=gateway,
        notifier=Notifier(telegram=telegram, email=email, events=events),
        engine=engine,
        clock=clock,
        worker=TaskWorker(),
    )
    yield deps
    deps.worker.stop()
    engine.dispose()


@pytest.fixture
def db(deps):
    session = deps.session_factory()
    yield session
    session.close()


@pytest.fixture
def products(db):
    """A small catalog: ring (stock 5), earrings (stock 3), chain (untracked stock)."""
    catalog = {
        "ring": Product(slug="ring", title="Silver ring", articul="R-1", price=400, stock=5),
        "earrings": Product(slug="earrings", title="Gold earrings", articul="E-7", price=300, stock=3),
        "chain": Product(slug="chain", title="Chain", price=100, stock=None),
        "hidden": Product(slug="hidden", title="Prototype", price=50, stock=1, is_hidden=True),
        "retired": Product(slug="retired", title="Old brooch", price=70, stock=1, is_active=False),
        "no-price": Product(slug="no-price", title="Custom piece", price=None, stock=1),
    }
    db.add_all(catalog.values())
    db.commit()
    return catalog


@pytest.fixture
def make_promocode(db):
    def make(name="SALE10", type="order", percent=10, usages=5, is_actual=True, valid_until=None):
        promocode = Promocode(
            name=name,
            type=type,
            percent_discount=percent,
            available_usages=usages,
            is_actual=is_actual,
            valid_until=valid_until,
        )
        db.add(promocode)
        db.commit()
        return promocode

    return make


@pytest.fixture
def client(deps):
    from shop_service.main import create_app

    with TestClient(create_app(deps)) as test_client:
        yield test_client

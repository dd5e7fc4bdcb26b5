"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")

import json
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dtos.orders import OrderCreateDTO
from application.dtos.payments import GatewayIntent, GatewayRefund, GatewayValidation, RedirectSession, WebhookEvent
from application.services.config import GatewayConfig, MarketplaceConfig
from application.services.ledger_service import TransactionLedger
from application.services.order_service import OrderService
from domain.common.actor import Actor, Role
from domain.common.exceptions import GatewayError
from domain.coupon.entity import Coupon, CouponType
from infrastructure.composition import uow_factory as build_uow_factory
from infrastructure.models import Base, ServiceModel, VendorModel


VENDOR_USER_ID = 50


class RecordingNotifier:
    """Collects published events instead of queueing emails."""

    def __init__(self):
        self.events = []

    async def publish(self, events):
        self.events.extend(events)

    def names(self):
        return [type(e).__name__ for e in self.events]


class FailingNotifier:
    async def publish(self, events):
        raise RuntimeError("broker down")


class StubCardGateway:
    provider = "stripe"

    def __init__(self):
        self.intents = []
        self.refunds = []

    async def create_intent(self, *, amount, currency, metadata, idempotency_key):
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents.append(
            {"id": intent_id, "amount": amount, "currency": currency, "metadata": metadata, "key": idempotency_key}
        )
        return GatewayIntent(intent_id=intent_id, status="requires_payment_method", client_secret=f"{intent_id}_secret")

    async def refund(self, *, intent_id, amount, currency, reason=None, idempotency_key=None):
        self.refunds.append({"intent_id": intent_id, "amount": amount, "key": idempotency_key})
        return GatewayRefund(
            refund_id=f"re_test_{len(self.refunds)}", status="succeeded", provider=self.provider, amount=amount
        )

    def parse_webhook(self, headers, body):
        payload = json.loads(body)
        return WebhookEvent(id=payload["id"], type=payload["type"], provider=self.provider, data=payload["data"])


class StubRedirectGateway:
    """Answers validation calls from a per-transaction script."""

    provider = "sslcommerz"

    def __init__(self):
        self.sessions = []
        self.validations = {}
        self.refunds = []
        self.fail_validation = False

    async def init_session(self, req):
        self.sessions.append(req)
        return RedirectSession(
            gateway_url=f"https://sandbox.sslcommerz.com/pay/{req.tran_id}", session_key=f"sess-{req.tran_id}"
        )

    def script(self, tran_id, *, status="VALID", outcome="success", amount=None, currency="BDT"):
        self.validations[tran_id] = GatewayValidation(
            status=status,
            outcome=outcome,
            tran_id=tran_id,
            amount=amount,
            currency=currency,
            val_id=f"val-{tran_id}",
            bank_tran_id=f"bank-{tran_id}",
        )

    async def _lookup(self, tran_id):
        if self.fail_validation:
            raise GatewayError("validation endpoint unreachable", provider=self.provider)
        return self.validations[tran_id]

    async def validate(self, val_id):
        return await self._lookup(val_id.removeprefix("val-"))

    async def query_by_transaction(self, tran_id):
        return await self._lookup(tran_id)

    async def refund(self, *, bank_tran_id, amount, remarks, reference):
        self.refunds.append({"bank_tran_id": bank_tran_id, "amount": amount, "reference": reference})
        return GatewayRefund(refund_id=f"rf-{len(self.refunds)}", status="success", provider=self.provider)

    async def refund_query(self, refund_ref_id):
        return {"refund_ref_id": refund_ref_id, "status": "refunded"}


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(bind=engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    return build_uow_factory(session_factory)


@pytest.fixture
async def catalog(session_factory):
    """An approved vendor offering one service priced 1000 at 10% off."""
    async with session_factory() as session:
        vendor = VendorModel(
            user_id=VENDOR_USER_ID,
            company_name="Sparkle Cleaning",
            email="vendor@example.com",
            approval_status="approved",
            is_active=True,
            total_revenue=Decimal("0"),
            commission=Decimal("0"),
            total_orders=0,
        )
        session.add(vendor)
        await session.flush()
        service = ServiceModel(
            vendor_id=vendor.id,
            category_id=3,
            name="Deep Clean",
            price=Decimal("1000.00"),
            discount=Decimal("10"),
            duration=120,
        )
        session.add(service)
        await session.commit()
        return {"vendor_id": vendor.id, "service_id": service.id}


@pytest.fixture
def customer():
    return Actor(id=7, role=Role.USER, email="alice@example.com", name="Alice", phone="+8801700000000")


@pytest.fixture
def vendor_actor():
    return Actor(id=VENDOR_USER_ID, role=Role.VENDOR, email="vendor@example.com")


@pytest.fixture
def admin():
    return Actor(id=1, role=Role.ADMIN)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def marketplace_config():
    return MarketplaceConfig(platform_fee_percent=Decimal("5"))


@pytest.fixture
def gateway_config():
    return GatewayConfig(commission_rate=Decimal("10"))


@pytest.fixture
def order_service(uow_factory, marketplace_config, notifier):
    return OrderService(uow_factory, marketplace_config, notifier)


@pytest.fixture
def card_gateway():
    return StubCardGateway()


@pytest.fixture
def redirect_gateway():
    return StubRedirectGateway()


@pytest.fixture
def ledger(uow_factory, gateway_config, notifier, card_gateway, redirect_gateway):
    return TransactionLedger(
        uow_factory,
        gateway_config,
        notifier,
        card_gateway=card_gateway,
        redirect_gateway=redirect_gateway,
    )


def _order_request(service_id, *, days_ahead=3, time="10:30", **extra):
    return OrderCreateDTO(
        service_id=service_id,
        scheduled_date=date.today() + timedelta(days=days_ahead),
        scheduled_time=time,
        **extra,
    )


@pytest.fixture
def order_request():
    return _order_request


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


@pytest.fixture
async def placed_order(order_service, catalog, customer):
    return await order_service.create(customer, _order_request(catalog["service_id"]))


@pytest.fixture
async def accepted_order(order_service, placed_order, vendor_actor):
    return await order_service.accept(vendor_actor, placed_order.id)


@pytest.fixture
async def fixed_coupon(uow_factory):
    now = datetime.now(timezone.utc)
    async with uow_factory() as uow:
        return await uow.coupon_repository.create(
            Coupon(
                id=None,
                code="save200",
                name="Save 200",
                type=CouponType.FIXED,
                value=Decimal("200"),
                min_order_amount=Decimal("500"),
                start_date=now - timedelta(days=1),
                end_date=now + timedelta(days=30),
            )
        )

import asyncio
import functools

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import checkout.attempts
from checkout.backend import BackendClient
from checkout.database import Base
from checkout.expiry import ExpiryClock
from checkout.gateway import GatewayRuntime
from checkout.session import CheckoutSession

# Setup test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db(monkeypatch):
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(checkout.attempts, "SessionLocal", TestingSessionLocal)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def backend(mocker):
    return mocker.create_autospec(BackendClient, instance=True)


@pytest.fixture
def runtime(mocker):
    fetch = mocker.AsyncMock(return_value=b"window.Gateway = {};")
    return GatewayRuntime(script_url="https://gateway.test/checkout.js", fetch=fetch)


async def never(_seconds):
    await asyncio.Event().wait()


async def instant(_seconds):
    await asyncio.sleep(0)


# clocks that never tick, for tests that are not about expiry
frozen_clock = functools.partial(ExpiryClock.for_target, sleep=never)


@pytest.fixture
def make_session(backend, runtime):
    sessions = []

    def factory(kind, target_id, clock_factory=frozen_clock):
        session = CheckoutSession(kind, target_id, backend, runtime=runtime, clock_factory=clock_factory)
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        session.close()


LINK_PAYLOAD = {
    "paymentLink": {
        "amount": 2500,
        "description": "Invoice #42",
        "merchant": "Acme Traders",
        "customerName": "Ravi Kumar",
        "customerEmail": "ravi@example.com",
    }
}

STATIC_QR_PAYLOAD = {
    "qrCode": {"isStatic": True, "merchant": "Corner Cafe", "description": None}
}


def dynamic_qr_payload(remaining_seconds, amount=1500):
    return {
        "qrCode": {
            "isStatic": False,
            "amount": amount,
            "remainingSeconds": remaining_seconds,
            "merchant": "Corner Cafe",
        }
    }


EMBEDDED_ORDER = {
    "success": True,
    "gatewayMode": "embedded",
    "key": "rzp_test_key",
    "order": {"id": "order_abc", "amount": 500, "currency": "INR"},
}

REDIRECT_ORDER = {
    "success": True,
    "gateway": "payu",
    "payuData": {
        "payuUrl": "https://secure.payu.test/_payment",
        "key": "merchant-key",
        "txnid": "txn_001",
        "amount": "25.00",
        "hash": "abc123",
        "udf1": None,
    },
}

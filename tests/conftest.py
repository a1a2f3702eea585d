"""Pytest bootstrap configuration.

Environment variables are set before any application module is imported so
that module-level settings and the default engine never touch ./payment.db.
"""
import base64
import json
import os
import tempfile
import time
import uuid
from typing import Optional

_TMP = tempfile.mkdtemp(prefix="payment-tests-")
os.environ.setdefault("DATABASE__URL", f"sqlite+aiosqlite:///{_TMP}/default.db")
os.environ.setdefault("RECONCILER__ENABLED", "false")

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy.ext.asyncio import async_sessionmaker

from application.services.reconciliation_service import ReconcileLock, ReconciliationService
from domain.order.entity import OrderInfo, OrderStatus, PaymentType
from domain.product.entity import Product
from infrastructure.database import build_engine, create_tables
from infrastructure.external.payments.alipay_crypto import rsa2_sign
from infrastructure.unit_of_work import uow_factory as make_uow_factory
from tests.support import API_V3_KEY, PLATFORM_SERIAL, FakeGateway


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def uow_factory(engine):
    return make_uow_factory(async_sessionmaker(bind=engine, expire_on_commit=False))


@pytest.fixture
def lock():
    return ReconcileLock()


@pytest.fixture
def core(uow_factory, lock):
    return ReconciliationService(uow_factory, lock=lock)


@pytest_asyncio.fixture
async def products(uow_factory):
    async with uow_factory() as uow:
        java = await uow.product_repository.create(Product(id=None, title="Java课程", price=1))
        bigdata = await uow.product_repository.create(Product(id=None, title="大数据课程", price=100))
    return [java, bigdata]


@pytest.fixture
def make_order(uow_factory, products):
    async def _make(
        order_no: str = "ORDER_20261016101500000001",
        *,
        payment_type: PaymentType = PaymentType.WXPAY,
        status: OrderStatus = OrderStatus.NOTPAY,
        product: Optional[Product] = None,
        create_time=None,
    ) -> OrderInfo:
        product = product or products[0]
        async with uow_factory() as uow:
            return await uow.order_repository.create(
                OrderInfo(
                    id=None,
                    order_no=order_no,
                    product_id=product.id,
                    title=product.title,
                    total_fee=product.price,
                    payment_type=payment_type,
                    order_status=status,
                    create_time=create_time,
                )
            )
    return _make


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture(scope="session")
def platform_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def alipay_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def wechat_notification(platform_key):
    """Build a signed and encrypted WeChat Pay notification: returns (headers, body)."""

    def _build(plaintext: str, *, event_type: str = "TRANSACTION.SUCCESS", timestamp: Optional[int] = None):
        nonce = uuid.uuid4().hex[:12]
        associated_data = "transaction"
        ciphertext = AESGCM(API_V3_KEY.encode()).encrypt(
            nonce.encode(), plaintext.encode("utf-8"), associated_data.encode()
        )
        body = json.dumps(
            {
                "id": str(uuid.uuid4()),
                "create_time": "2026-10-16T10:15:00+08:00",
                "resource_type": "encrypt-resource",
                "event_type": event_type,
                "summary": "支付成功",
                "resource": {
                    "original_type": "transaction",
                    "algorithm": "AEAD_AES_256_GCM",
                    "ciphertext": base64.b64encode(ciphertext).decode(),
                    "associated_data": associated_data,
                    "nonce": nonce,
                },
            },
            ensure_ascii=False,
        )
        ts = str(timestamp if timestamp is not None else int(time.time()))
        sign_nonce = uuid.uuid4().hex
        signature = platform_key.sign(
            f"{ts}\n{sign_nonce}\n{body}\n".encode("utf-8"), padding.PKCS1v15(), hashes.SHA256()
        )
        headers = {
            "Wechatpay-Serial": PLATFORM_SERIAL,
            "Wechatpay-Signature": base64.b64encode(signature).decode(),
            "Wechatpay-Timestamp": ts,
            "Wechatpay-Nonce": sign_nonce,
            "Content-Type": "application/json",
        }
        return headers, body

    return _build


@pytest.fixture
def alipay_notification(alipay_key):
    def _build(order_no: str, *, total_amount: str = "0.01", trade_status: str = "TRADE_SUCCESS", app_id: str = "2021000000000001"):
        params = {
            "app_id": app_id,
            "charset": "utf-8",
            "notify_id": uuid.uuid4().hex,
            "notify_time": "2026-10-16 10:15:00",
            "notify_type": "trade_status_sync",
            "out_trade_no": order_no,
            "trade_no": "2026101622001400000000000001",
            "trade_status": trade_status,
            "total_amount": total_amount,
            "buyer_pay_amount": total_amount,
            "sign_type": "RSA2",
            "version": "1.0",
        }
        params["sign"] = rsa2_sign(params, alipay_key)
        return params

    return _build

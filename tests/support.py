"""Shared test helpers: gateway payload builders and an in-memory gateway."""
import json
from datetime import timedelta
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from domain.common.exceptions import GatewayError
from domain.common.timeutil import utcnow
from domain.order.entity import OrderInfo, PaymentType


API_V3_KEY = "0123456789abcdef0123456789abcdef"
PLATFORM_SERIAL = "5157F09EFDC096DE15EBE81A47057A7232F1B8E1"


async def load_order(uow_factory, order_no: str) -> OrderInfo:
    async with uow_factory(readonly=True) as uow:
        return await uow.order_repository.get_by_order_no(order_no)


async def count_logs(uow_factory, order_no: str) -> int:
    async with uow_factory(readonly=True) as uow:
        return await uow.payment_log_repository.count_by_order_no(order_no)


def wechat_transaction(order_no: str, trade_state: str = "SUCCESS", total: int = 1) -> str:
    """Plaintext of a WeChat Pay transaction (notification resource or query answer)."""
    return json.dumps(
        {
            "appid": "wx_test_app",
            "mchid": "1900000001",
            "out_trade_no": order_no,
            "transaction_id": "4200000000" + order_no[-10:],
            "trade_type": "NATIVE",
            "trade_state": trade_state,
            "trade_state_desc": trade_state,
            "amount": {"total": total, "payer_total": total, "currency": "CNY"},
        },
        ensure_ascii=False,
    )


def wechat_refund(refund_no: str, order_no: str, status: str = "SUCCESS", field: str = "refund_status") -> str:
    return json.dumps(
        {
            "out_trade_no": order_no,
            "out_refund_no": refund_no,
            "refund_id": "50000000" + refund_no[-10:],
            field: status,
        }
    )


class FakeGateway:
    """In-memory GatewayClient recording every call."""

    def __init__(self, payment_type: PaymentType = PaymentType.WXPAY) -> None:
        self.payment_type = payment_type
        self.created: list[str] = []
        self.closed: list[str] = []
        self.refunds: list[str] = []
        self.order_answers: dict[str, Optional[str]] = {}
        self.refund_answers: dict[str, str] = {}
        self.refund_status = "PROCESSING"
        self.close_error: Optional[GatewayError] = None
        self.refund_error: Optional[GatewayError] = None
        self.query_error: Optional[Exception] = None

    async def create_payment(self, order: OrderInfo) -> str:
        self.created.append(order.order_no)
        return f"weixin://wxpay/bizpayurl?pr={order.order_no}"

    async def query_order(self, order_no: str) -> Optional[str]:
        if self.query_error is not None:
            raise self.query_error
        return self.order_answers.get(order_no)

    async def close_order(self, order_no: str) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed.append(order_no)

    async def create_refund(self, order, refund, reason) -> str:
        if self.refund_error is not None:
            raise self.refund_error
        self.refunds.append(refund.refund_no)
        return wechat_refund(refund.refund_no, order.order_no, self.refund_status, field="status")

    async def query_refund(self, refund_no: str, order_no: Optional[str] = None) -> str:
        return self.refund_answers[refund_no]

    async def aclose(self) -> None:
        return None


def private_key_pem(key) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


def self_signed_certificate(key, serial_number: int) -> str:
    """PEM certificate standing in for a WeChat Pay platform certificate."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Tenpay.com Root CA")])
    now = utcnow()
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(serial_number)
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode()

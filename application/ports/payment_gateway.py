"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application services depend on this Protocol; infrastructure implements the
WeChat Pay and Alipay adapters. Every method returns the raw response text
(plaintext JSON) so the reconciliation core can parse and persist it as-is.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from domain.order.entity import OrderInfo, PaymentType
from domain.refund.entity import RefundInfo


@runtime_checkable
class GatewayClient(Protocol):
    """Outbound gateway protocol. Non-2xx answers raise GatewayError."""

    payment_type: PaymentType

    async def create_payment(self, order: OrderInfo) -> str:
        """Create a payment and return the customer handoff (QR code URL or redirect URL)."""
        ...

    async def query_order(self, order_no: str) -> Optional[str]:
        """Return the order JSON, or None when the gateway has no such order."""
        ...

    async def close_order(self, order_no: str) -> None: ...

    async def create_refund(self, order: OrderInfo, refund: RefundInfo, reason: Optional[str]) -> str: ...

    async def query_refund(self, refund_no: str, order_no: Optional[str] = None) -> str: ...

    async def aclose(self) -> None: ...

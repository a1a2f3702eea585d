"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WechatResource(BaseModel):
    """Encrypted resource carried by a WeChat Pay v3 notification."""

    algorithm: str = "AEAD_AES_256_GCM"
    ciphertext: str
    associated_data: str = ""
    nonce: str
    original_type: Optional[str] = None


class WechatCallback(BaseModel):
    provider: Literal["wxpay"] = "wxpay"
    id: str
    event_type: Optional[str] = None
    resource_type: Optional[str] = None
    summary: Optional[str] = None
    resource: WechatResource


class AlipayCallback(BaseModel):
    provider: Literal["alipay"] = "alipay"
    params: dict[str, str]

    @property
    def out_trade_no(self) -> Optional[str]:
        return self.params.get("out_trade_no")


Callback = Annotated[Union[WechatCallback, AlipayCallback], Field(discriminator="provider")]
callback_adapter: TypeAdapter = TypeAdapter(Callback)


class PaymentOutcome(BaseModel):
    """A gateway's view of one order, normalised to the WeChat trade_state vocabulary."""

    order_no: str
    trade_state: str
    transaction_id: Optional[str] = None
    trade_type: Optional[str] = None
    payer_total: Optional[int] = None
    raw: str


class RefundOutcome(BaseModel):
    refund_no: str
    order_no: Optional[str] = None
    refund_status: str
    refund_id: Optional[str] = None
    raw: str


class CallbackReply(BaseModel):
    """What the notify endpoint answers to the gateway."""

    status_code: int = 200
    body: Any = None


class PaymentHandoff(_CamelModel):
    code_url: str
    order_no: str


class OrderInfoDTO(_CamelModel):
    id: Optional[int] = None
    order_no: str
    product_id: int
    title: str
    total_fee: int
    payment_type: str
    order_status: str
    code_url: Optional[str] = None
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None

    @classmethod
    def from_entity(cls, order) -> "OrderInfoDTO":
        return cls(
            id=order.id,
            order_no=order.order_no,
            product_id=order.product_id,
            title=order.title,
            total_fee=order.total_fee,
            payment_type=order.payment_type.value,
            order_status=order.order_status.value,
            code_url=order.code_url,
            create_time=order.create_time,
            update_time=order.update_time,
        )


class RefundInfoDTO(_CamelModel):
    refund_no: str
    order_no: str
    total_fee: int
    refund: int
    reason: Optional[str] = None
    payment_type: str
    refund_status: str
    refund_id: Optional[str] = None
    create_time: Optional[datetime] = None

    @classmethod
    def from_entity(cls, refund) -> "RefundInfoDTO":
        return cls(
            refund_no=refund.refund_no,
            order_no=refund.order_no,
            total_fee=refund.total_fee,
            refund=refund.refund,
            reason=refund.reason,
            payment_type=refund.payment_type.value,
            refund_status=refund.refund_status.value,
            refund_id=refund.refund_id,
            create_time=refund.create_time,
        )


class ProductDTO(_CamelModel):
    id: int
    title: str
    price: int

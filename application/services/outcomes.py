"""
Parsing of gateway plaintext (decrypted notifications, query and refund
responses) into PaymentOutcome / RefundOutcome.

WeChat Pay plaintext is used as-is. Alipay plaintext is the JSON-encoded
parameter map (notification form or unwrapped OpenAPI response); its
trade_status is mapped onto the WeChat trade_state vocabulary.
"""
from __future__ import annotations

import json
from typing import Any

from application.dtos.payments import PaymentOutcome, RefundOutcome
from domain.common.exceptions import DomainValidationException
from domain.common.money import yuan_to_fen
from domain.order.entity import PaymentType
from shared.codes.payment_codes import ALIPAY_TRADE_STATUS_TO_TRADE_STATE


def _load(plaintext: str) -> dict[str, Any]:
    try:
        data = json.loads(plaintext)
    except ValueError:
        raise DomainValidationException("网关报文不是合法的JSON", field="plaintext")
    if not isinstance(data, dict):
        raise DomainValidationException("网关报文不是JSON对象", field="plaintext")
    return data


def _require(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value:
            return str(value)
    raise DomainValidationException(f"网关报文缺少字段: {keys[0]}", field=keys[0])


def parse_payment_outcome(payment_type: PaymentType, plaintext: str) -> PaymentOutcome:
    data = _load(plaintext)
    order_no = _require(data, "out_trade_no")

    if PaymentType(payment_type) is PaymentType.WXPAY:
        amount = data.get("amount") or {}
        return PaymentOutcome(
            order_no=order_no,
            trade_state=_require(data, "trade_state"),
            transaction_id=data.get("transaction_id"),
            trade_type=data.get("trade_type"),
            payer_total=amount.get("payer_total"),
            raw=plaintext,
        )

    trade_status = _require(data, "trade_status")
    paid = data.get("buyer_pay_amount") or data.get("total_amount")
    return PaymentOutcome(
        order_no=order_no,
        # unknown statuses pass through and are ignored by the core
        trade_state=ALIPAY_TRADE_STATUS_TO_TRADE_STATE.get(trade_status, trade_status),
        transaction_id=data.get("trade_no"),
        trade_type=data.get("trade_type") or "PAGE_PAY",
        payer_total=yuan_to_fen(paid) if paid else None,
        raw=plaintext,
    )


def parse_refund_outcome(payment_type: PaymentType, plaintext: str) -> RefundOutcome:
    data = _load(plaintext)
    if PaymentType(payment_type) is PaymentType.WXPAY:
        # refund notifications carry refund_status, create/query responses carry status
        return RefundOutcome(
            refund_no=_require(data, "out_refund_no"),
            order_no=data.get("out_trade_no"),
            refund_status=_require(data, "refund_status", "status"),
            refund_id=data.get("refund_id"),
            raw=plaintext,
        )

    return RefundOutcome(
        refund_no=_require(data, "out_request_no", "out_refund_no"),
        order_no=data.get("out_trade_no"),
        refund_status=_require(data, "refund_status"),
        refund_id=data.get("trade_no"),
        raw=plaintext,
    )

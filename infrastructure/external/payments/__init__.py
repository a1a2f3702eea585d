"""
Factories for payment gateway clients and their crypto collaborators.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import GatewayClient
from core.settings import PaymentSettings, payment_settings
from domain.order.entity import PaymentType


def get_payment_gateway(payment_type: PaymentType, settings: Optional[PaymentSettings] = None) -> GatewayClient:
    cfg = settings or payment_settings
    payment_type = PaymentType(payment_type)
    if payment_type is PaymentType.WXPAY:
        from .wechatpay_client import WechatPayClient
        return WechatPayClient(cfg.wechat, timeouts=cfg.timeouts, retry=cfg.retry)
    if payment_type is PaymentType.ALIPAY:
        from .alipay_client import AlipayClient
        return AlipayClient(cfg.alipay, timeouts=cfg.timeouts, retry=cfg.retry)
    raise ValueError(f"Unsupported payment type: {payment_type}")

"""
支付日志 - 网关成功结果的只追加审计记录
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from domain.order.entity import PaymentType


@dataclass(frozen=True)
class PaymentLog:
    order_no: str
    payment_type: PaymentType
    transaction_id: Optional[str]
    trade_type: Optional[str]
    trade_state: str
    payer_total: Optional[int]
    content: str
    id: Optional[int] = None
    create_time: Optional[datetime] = None

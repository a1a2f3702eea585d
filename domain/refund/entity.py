"""
退款领域实体
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.timeutil import ensure_utc
from domain.order.entity import PaymentType


class RefundStatus(str, Enum):
    """退款状态枚举"""
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    ABNORMAL = "ABNORMAL"


@dataclass
class RefundInfo:
    """
    退款单

    业务规则：
    1. 只能针对支付成功的订单发起（由对账核心保证）
    2. 退款金额大于0且不超过订单金额
    3. PROCESSING 之外的状态均为终态
    """

    id: Optional[int]
    refund_no: str
    order_no: str
    total_fee: int
    refund: int
    payment_type: PaymentType
    reason: Optional[str] = None
    refund_status: RefundStatus = RefundStatus.PROCESSING
    refund_id: Optional[str] = None
    content_return: Optional[str] = None
    content_notify: Optional[str] = None
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None

    def __post_init__(self):
        if self.refund <= 0:
            raise DomainValidationException(f"退款金额必须大于0: {self.refund}", field="refund")
        if self.refund > self.total_fee:
            raise DomainValidationException(
                f"退款金额 {self.refund} 超过订单金额 {self.total_fee}",
                field="refund",
            )
        self.payment_type = PaymentType(self.payment_type)
        self.refund_status = RefundStatus(self.refund_status)
        self.create_time = ensure_utc(self.create_time)
        self.update_time = ensure_utc(self.update_time)

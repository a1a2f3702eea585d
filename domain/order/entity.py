"""
订单领域实体 - 订单聚合根与状态机
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.timeutil import ensure_utc


class PaymentType(str, Enum):
    """支付方式"""
    WXPAY = "wxpay"
    ALIPAY = "alipay"


class OrderStatus(str, Enum):
    """订单状态枚举"""
    NOTPAY = "NOTPAY"                        # 未支付
    SUCCESS = "SUCCESS"                      # 支付成功
    CLOSED = "CLOSED"                        # 超时已关闭
    CANCEL = "CANCEL"                        # 用户已取消
    REFUND_PROCESSING = "REFUND_PROCESSING"  # 退款中
    REFUND_SUCCESS = "REFUND_SUCCESS"        # 已退款
    REFUND_ABNORMAL = "REFUND_ABNORMAL"      # 退款异常


# 允许的状态转换；未出现在 key 中的状态均为终态
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.NOTPAY: frozenset({OrderStatus.SUCCESS, OrderStatus.CLOSED, OrderStatus.CANCEL}),
    OrderStatus.SUCCESS: frozenset({OrderStatus.REFUND_PROCESSING}),
    OrderStatus.REFUND_PROCESSING: frozenset({OrderStatus.REFUND_SUCCESS, OrderStatus.REFUND_ABNORMAL}),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def sources_of(target: OrderStatus) -> tuple[OrderStatus, ...]:
    """能够转换到 target 的所有源状态（用于条件更新）"""
    return tuple(src for src, targets in ORDER_TRANSITIONS.items() if target in targets)


@dataclass
class OrderInfo:
    """
    订单聚合根

    业务规则：
    1. order_no 全局唯一，创建后不可变
    2. 金额以分为单位，必须大于0
    3. 状态转换必须遵循状态机，终态不可再转换
    """

    id: Optional[int]
    order_no: str
    product_id: int
    title: str
    total_fee: int
    payment_type: PaymentType
    order_status: OrderStatus = OrderStatus.NOTPAY
    code_url: Optional[str] = None
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None

    def __post_init__(self):
        if self.total_fee <= 0:
            raise DomainValidationException(
                f"订单金额必须大于0: {self.total_fee}",
                field="total_fee",
            )
        self.payment_type = PaymentType(self.payment_type)
        self.order_status = OrderStatus(self.order_status)
        self.create_time = ensure_utc(self.create_time)
        self.update_time = ensure_utc(self.update_time)

"""
订单仓储接口 - 定义订单数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from .entity import OrderInfo, OrderStatus, PaymentType


class OrderRepository(ABC):
    """订单仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, order: OrderInfo) -> OrderInfo:
        """创建订单；同商品同支付方式已有未支付订单时抛出 UnpaidOrderExistsException"""
        pass

    @abstractmethod
    async def get_by_order_no(self, order_no: str) -> Optional[OrderInfo]:
        pass

    @abstractmethod
    async def find_unpaid(self, product_id: int, payment_type: PaymentType) -> Optional[OrderInfo]:
        """查找已存在但未支付的订单"""
        pass

    @abstractmethod
    async def list_by_create_time_desc(self) -> List[OrderInfo]:
        pass

    @abstractmethod
    async def list_stale(
        self,
        status: OrderStatus,
        payment_type: PaymentType,
        created_before: datetime,
    ) -> List[OrderInfo]:
        """查询创建时间早于 created_before 且处于 status 的订单"""
        pass

    @abstractmethod
    async def save_code_url(self, order_no: str, code_url: str) -> None:
        pass

    @abstractmethod
    async def transition_status(
        self,
        order_no: str,
        from_statuses: Iterable[OrderStatus],
        to_status: OrderStatus,
    ) -> bool:
        """条件更新：仅当当前状态属于 from_statuses 时更新，返回是否命中"""
        pass

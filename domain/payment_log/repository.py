from abc import ABC, abstractmethod
from typing import List

from .entity import PaymentLog


class PaymentLogRepository(ABC):
    """支付日志仓储：只允许追加"""

    @abstractmethod
    async def append(self, entry: PaymentLog) -> PaymentLog:
        pass

    @abstractmethod
    async def list_by_order_no(self, order_no: str) -> List[PaymentLog]:
        pass

    @abstractmethod
    async def count_by_order_no(self, order_no: str) -> int:
        pass

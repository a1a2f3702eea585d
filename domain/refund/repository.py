"""
退款仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from domain.order.entity import PaymentType
from .entity import RefundInfo, RefundStatus


class RefundRepository(ABC):

    @abstractmethod
    async def create(self, refund: RefundInfo) -> RefundInfo:
        pass

    @abstractmethod
    async def get_by_refund_no(self, refund_no: str) -> Optional[RefundInfo]:
        pass

    @abstractmethod
    async def list_stale(
        self,
        status: RefundStatus,
        payment_type: PaymentType,
        created_before: datetime,
    ) -> List[RefundInfo]:
        pass

    @abstractmethod
    async def transition_status(
        self,
        refund_no: str,
        from_status: RefundStatus,
        to_status: RefundStatus,
        *,
        refund_id: Optional[str] = None,
        content_return: Optional[str] = None,
        content_notify: Optional[str] = None,
    ) -> bool:
        """条件更新退款状态，同时记录网关原始报文"""
        pass

    @abstractmethod
    async def save_content(
        self,
        refund_no: str,
        *,
        refund_id: Optional[str] = None,
        content_return: Optional[str] = None,
        content_notify: Optional[str] = None,
    ) -> None:
        """仅记录网关报文，不改变状态"""
        pass

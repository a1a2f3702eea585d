"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Optional, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository
from infrastructure.repositories.payment_log_repository import SQLAlchemyPaymentLogRepository
from infrastructure.repositories.product_repository import SQLAlchemyProductRepository
from infrastructure.repositories.refund_repository import SQLAlchemyRefundRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.order_repository = SQLAlchemyOrderRepository(self.session)
        self.refund_repository = SQLAlchemyRefundRepository(self.session)
        self.payment_log_repository = SQLAlchemyPaymentLogRepository(self.session)
        self.product_repository = SQLAlchemyProductRepository(self.session)
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            tx = getattr(self, "_transaction", None)
            if tx is not None and tx.is_active:
                await tx.close()
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.order_repository = None
            self.refund_repository = None
            self.payment_log_repository = None
            self.product_repository = None

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


def uow_factory(session_factory: Callable[[], AsyncSession] = AsyncSessionLocal) -> Callable[..., SQLAlchemyUnitOfWork]:
    """返回 Unit of Work 工厂，应用服务每个事务调用一次"""

    def _make(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    return _make

"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import UnpaidOrderExistsException
from domain.order.entity import OrderInfo, OrderStatus, PaymentType
from domain.order.repository import OrderRepository
from infrastructure.models.order_info import OrderInfoModel


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderInfoModel) -> OrderInfo:
        """将数据库模型转换为领域实体"""
        return OrderInfo(
            id=model.id,
            order_no=model.order_no,
            product_id=model.product_id,
            title=model.title,
            total_fee=model.total_fee,
            payment_type=PaymentType(model.payment_type),
            order_status=OrderStatus(model.order_status),
            code_url=model.code_url,
            create_time=model.create_time,
            update_time=model.update_time,
        )

    def _to_model(self, entity: OrderInfo) -> OrderInfoModel:
        """将领域实体转换为数据库模型"""
        now = datetime.now(timezone.utc)
        return OrderInfoModel(
            id=entity.id,
            order_no=entity.order_no,
            product_id=entity.product_id,
            title=entity.title,
            total_fee=entity.total_fee,
            payment_type=entity.payment_type.value,
            order_status=entity.order_status.value,
            code_url=entity.code_url,
            create_time=entity.create_time or now,
            update_time=entity.update_time or now,
        )

    async def create(self, order: OrderInfo) -> OrderInfo:
        """创建订单；唯一索引冲突时由调用方的 Unit of Work 回滚"""
        try:
            db_order = self._to_model(order)
            self.session.add(db_order)
            await self.session.flush()
            await self.session.refresh(db_order)
        except IntegrityError:
            logger.warning(
                "order_create_conflict",
                order_no=order.order_no,
                product_id=order.product_id,
                payment_type=order.payment_type.value,
            )
            raise UnpaidOrderExistsException(order.product_id, order.payment_type.value)
        logger.info(
            "order_created",
            order_no=db_order.order_no,
            product_id=db_order.product_id,
            payment_type=db_order.payment_type,
            total_fee=db_order.total_fee,
        )
        return self._to_entity(db_order)

    async def get_by_order_no(self, order_no: str) -> Optional[OrderInfo]:
        result = await self.session.execute(
            select(OrderInfoModel).where(OrderInfoModel.order_no == order_no)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def find_unpaid(self, product_id: int, payment_type: PaymentType) -> Optional[OrderInfo]:
        result = await self.session.execute(
            select(OrderInfoModel).where(
                OrderInfoModel.product_id == product_id,
                OrderInfoModel.payment_type == PaymentType(payment_type).value,
                OrderInfoModel.order_status == OrderStatus.NOTPAY.value,
            )
        )
        db_order = result.scalars().first()
        return self._to_entity(db_order) if db_order else None

    async def list_by_create_time_desc(self) -> List[OrderInfo]:
        result = await self.session.execute(
            select(OrderInfoModel).order_by(
                OrderInfoModel.create_time.desc(), OrderInfoModel.id.desc()
            )
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_stale(
        self,
        status: OrderStatus,
        payment_type: PaymentType,
        created_before: datetime,
    ) -> List[OrderInfo]:
        result = await self.session.execute(
            select(OrderInfoModel)
            .where(
                OrderInfoModel.order_status == OrderStatus(status).value,
                OrderInfoModel.payment_type == PaymentType(payment_type).value,
                OrderInfoModel.create_time <= created_before,
            )
            .order_by(OrderInfoModel.create_time.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def save_code_url(self, order_no: str, code_url: str) -> None:
        await self.session.execute(
            update(OrderInfoModel)
            .where(OrderInfoModel.order_no == order_no)
            .values(code_url=code_url, update_time=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )

    async def transition_status(
        self,
        order_no: str,
        from_statuses: Iterable[OrderStatus],
        to_status: OrderStatus,
    ) -> bool:
        sources = [OrderStatus(s).value for s in from_statuses]
        result = await self.session.execute(
            update(OrderInfoModel)
            .where(
                OrderInfoModel.order_no == order_no,
                OrderInfoModel.order_status.in_(sources),
            )
            .values(order_status=OrderStatus(to_status).value, update_time=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount == 1
        logger.info(
            "order_status_transitioned" if updated else "order_status_transition_skipped",
            order_no=order_no,
            from_statuses=sources,
            to_status=OrderStatus(to_status).value,
        )
        return updated

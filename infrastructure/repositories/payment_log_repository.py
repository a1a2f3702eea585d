"""
支付日志仓储实现（只追加）
"""
from datetime import datetime, timezone
from typing import List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.order.entity import PaymentType
from domain.payment_log.entity import PaymentLog
from domain.payment_log.repository import PaymentLogRepository
from infrastructure.models.payment_info import PaymentInfoModel


logger = get_logger(__name__)


class SQLAlchemyPaymentLogRepository(PaymentLogRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentInfoModel) -> PaymentLog:
        return PaymentLog(
            id=model.id,
            order_no=model.order_no,
            payment_type=PaymentType(model.payment_type),
            transaction_id=model.transaction_id,
            trade_type=model.trade_type,
            trade_state=model.trade_state,
            payer_total=model.payer_total,
            content=model.content,
            create_time=model.create_time,
        )

    async def append(self, entry: PaymentLog) -> PaymentLog:
        now = datetime.now(timezone.utc)
        db_entry = PaymentInfoModel(
            order_no=entry.order_no,
            payment_type=PaymentType(entry.payment_type).value,
            transaction_id=entry.transaction_id,
            trade_type=entry.trade_type,
            trade_state=entry.trade_state,
            payer_total=entry.payer_total,
            content=entry.content,
            create_time=now,
            update_time=now,
        )
        self.session.add(db_entry)
        await self.session.flush()
        await self.session.refresh(db_entry)
        logger.info(
            "payment_log_appended",
            order_no=db_entry.order_no,
            transaction_id=db_entry.transaction_id,
            trade_state=db_entry.trade_state,
        )
        return self._to_entity(db_entry)

    async def list_by_order_no(self, order_no: str) -> List[PaymentLog]:
        result = await self.session.execute(
            select(PaymentInfoModel)
            .where(PaymentInfoModel.order_no == order_no)
            .order_by(PaymentInfoModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count_by_order_no(self, order_no: str) -> int:
        result = await self.session.execute(
            select(func.count(PaymentInfoModel.id)).where(PaymentInfoModel.order_no == order_no)
        )
        return result.scalar_one()

"""
退款仓储实现
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.order.entity import PaymentType
from domain.refund.entity import RefundInfo, RefundStatus
from domain.refund.repository import RefundRepository
from infrastructure.models.refund_info import RefundInfoModel


logger = get_logger(__name__)


def _content_values(
    refund_id: Optional[str],
    content_return: Optional[str],
    content_notify: Optional[str],
) -> dict:
    values = {}
    if refund_id is not None:
        values["refund_id"] = refund_id
    if content_return is not None:
        values["content_return"] = content_return
    if content_notify is not None:
        values["content_notify"] = content_notify
    return values


class SQLAlchemyRefundRepository(RefundRepository):
    """退款仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundInfoModel) -> RefundInfo:
        return RefundInfo(
            id=model.id,
            refund_no=model.refund_no,
            order_no=model.order_no,
            total_fee=model.total_fee,
            refund=model.refund,
            payment_type=PaymentType(model.payment_type),
            reason=model.reason,
            refund_status=RefundStatus(model.refund_status),
            refund_id=model.refund_id,
            content_return=model.content_return,
            content_notify=model.content_notify,
            create_time=model.create_time,
            update_time=model.update_time,
        )

    def _to_model(self, entity: RefundInfo) -> RefundInfoModel:
        now = datetime.now(timezone.utc)
        return RefundInfoModel(
            id=entity.id,
            refund_no=entity.refund_no,
            order_no=entity.order_no,
            total_fee=entity.total_fee,
            refund=entity.refund,
            payment_type=entity.payment_type.value,
            reason=entity.reason,
            refund_status=entity.refund_status.value,
            refund_id=entity.refund_id,
            content_return=entity.content_return,
            content_notify=entity.content_notify,
            create_time=entity.create_time or now,
            update_time=entity.update_time or now,
        )

    async def create(self, refund: RefundInfo) -> RefundInfo:
        db_refund = self._to_model(refund)
        self.session.add(db_refund)
        await self.session.flush()
        await self.session.refresh(db_refund)

        logger.info(
            "refund_created",
            refund_no=db_refund.refund_no,
            order_no=db_refund.order_no,
            refund=db_refund.refund,
        )
        return self._to_entity(db_refund)

    async def get_by_refund_no(self, refund_no: str) -> Optional[RefundInfo]:
        result = await self.session.execute(
            select(RefundInfoModel).where(RefundInfoModel.refund_no == refund_no)
        )
        db_refund = result.scalar_one_or_none()
        return self._to_entity(db_refund) if db_refund else None

    async def list_stale(
        self,
        status: RefundStatus,
        payment_type: PaymentType,
        created_before: datetime,
    ) -> List[RefundInfo]:
        result = await self.session.execute(
            select(RefundInfoModel)
            .where(
                RefundInfoModel.refund_status == RefundStatus(status).value,
                RefundInfoModel.payment_type == PaymentType(payment_type).value,
                RefundInfoModel.create_time <= created_before,
            )
            .order_by(RefundInfoModel.create_time.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

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
        values = _content_values(refund_id, content_return, content_notify)
        values.update(
            refund_status=RefundStatus(to_status).value,
            update_time=datetime.now(timezone.utc),
        )
        result = await self.session.execute(
            update(RefundInfoModel)
            .where(
                RefundInfoModel.refund_no == refund_no,
                RefundInfoModel.refund_status == RefundStatus(from_status).value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount == 1
        logger.info(
            "refund_status_transitioned" if updated else "refund_status_transition_skipped",
            refund_no=refund_no,
            from_status=RefundStatus(from_status).value,
            to_status=RefundStatus(to_status).value,
        )
        return updated

    async def save_content(
        self,
        refund_no: str,
        *,
        refund_id: Optional[str] = None,
        content_return: Optional[str] = None,
        content_notify: Optional[str] = None,
    ) -> None:
        values = _content_values(refund_id, content_return, content_notify)
        if not values:
            return
        values["update_time"] = datetime.now(timezone.utc)
        await self.session.execute(
            update(RefundInfoModel)
            .where(RefundInfoModel.refund_no == refund_no)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

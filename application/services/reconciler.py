"""
后台对账 - 定期扫描超时未支付订单与处理中退款，主动向网关查询并收敛本地状态
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, Mapping

from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.timeutil import utcnow
from domain.order.entity import OrderStatus, PaymentType
from domain.refund.entity import RefundStatus


logger = get_logger(__name__)


class Reconciler:
    """
    对账任务

    - 单笔订单/退款失败只记录日志，不会中断本轮扫描
    - 同一任务上一轮尚未结束时，本轮直接跳过
    """

    def __init__(
        self,
        payment_services: Mapping[PaymentType, PaymentService],
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        stale_after_minutes: int = 5,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._services = dict(payment_services)
        self._uow_factory = uow_factory
        self._stale_after = timedelta(minutes=stale_after_minutes)
        self._now = now
        self._running: set[str] = set()

    @property
    def payment_types(self) -> list[PaymentType]:
        return list(self._services)

    @contextmanager
    def _exclusive(self, task: str) -> Iterator[bool]:
        if task in self._running:
            yield False
            return
        self._running.add(task)
        try:
            yield True
        finally:
            self._running.discard(task)

    async def sweep_stale_orders(self, payment_type: PaymentType) -> int:
        """处理超时未支付订单，返回本轮检查的订单数"""
        payment_type = PaymentType(payment_type)
        service = self._services[payment_type]
        task = f"stale_orders:{payment_type.value}"

        with self._exclusive(task) as acquired:
            if not acquired:
                logger.info("reconcile_sweep_skipped", task=task)
                return 0

            created_before = self._now() - self._stale_after
            async with self._uow_factory(readonly=True) as uow:
                orders = await uow.order_repository.list_stale(
                    OrderStatus.NOTPAY, payment_type, created_before
                )

            for order in orders:
                try:
                    await service.check_order_status(order.order_no)
                except Exception:
                    logger.error("reconcile_order_failed", order_no=order.order_no, exc_info=True)
            logger.info("reconcile_sweep_finished", task=task, checked=len(orders))
            return len(orders)

    async def sweep_stale_refunds(self, payment_type: PaymentType) -> int:
        """处理超时仍在退款中的退款单，返回本轮检查的退款单数"""
        payment_type = PaymentType(payment_type)
        service = self._services[payment_type]
        task = f"stale_refunds:{payment_type.value}"

        with self._exclusive(task) as acquired:
            if not acquired:
                logger.info("reconcile_sweep_skipped", task=task)
                return 0

            created_before = self._now() - self._stale_after
            async with self._uow_factory(readonly=True) as uow:
                refunds = await uow.refund_repository.list_stale(
                    RefundStatus.PROCESSING, payment_type, created_before
                )

            for refund in refunds:
                try:
                    await service.check_refund_status(refund.refund_no)
                except Exception:
                    logger.error("reconcile_refund_failed", refund_no=refund.refund_no, exc_info=True)
            logger.info("reconcile_sweep_finished", task=task, checked=len(refunds))
            return len(refunds)

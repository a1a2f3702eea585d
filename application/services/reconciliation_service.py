"""
对账核心（application/services）- 所有订单/退款状态变更的唯一入口

回调处理、用户操作（取消、退款）以及后台对账任务都通过本服务修改状态：
1. 以订单号为键非阻塞地获取进程内对账锁，获取失败直接返回（由持有者完成收敛）
2. 锁内重新读取状态，非可转换状态视为幂等空操作
3. 使用条件更新（UPDATE ... WHERE status IN (...)）写入新状态，源状态取自订单状态机，
   支付成功日志与状态变更在同一个 Unit of Work 中提交
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from application.services.outcomes import parse_payment_outcome, parse_refund_outcome
from core.logging_config import get_logger
from domain.common.exceptions import (
    OrderBusyException,
    OrderNotFoundException,
    OrderNotRefundableException,
    OrderStatusConflictException,
    RefundNotFoundException,
)
from domain.common.numbering import new_refund_no
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus, PaymentType, can_transition, sources_of
from domain.payment_log.entity import PaymentLog
from domain.refund.entity import RefundInfo, RefundStatus
from shared.codes.payment_codes import REFUND_STATUS_TO_LOCAL, TRADE_STATE_TO_ORDER_STATUS


logger = get_logger(__name__)


class ReconcileLock:
    """
    进程内的键控互斥锁注册表（非阻塞、不可重入）

    同一订单号同一时刻只允许一个持有者；不同订单互不影响。
    锁在协程挂起期间保持持有，因此对同一事件循环内的并发任务同样有效。
    """

    def __init__(self) -> None:
        self._held: set[str] = set()
        self._guard = threading.Lock()

    @contextmanager
    def try_acquire(self, key: str) -> Iterator[bool]:
        with self._guard:
            acquired = key not in self._held
            if acquired:
                self._held.add(key)
        try:
            yield acquired
        finally:
            if acquired:
                with self._guard:
                    self._held.discard(key)

    def is_held(self, key: str) -> bool:
        with self._guard:
            return key in self._held


# 进程级单例：回调、用户操作与对账任务必须共享同一把锁
reconcile_lock = ReconcileLock()

_REFUND_TO_ORDER_STATUS = {
    RefundStatus.SUCCESS: OrderStatus.REFUND_SUCCESS,
    RefundStatus.ABNORMAL: OrderStatus.REFUND_ABNORMAL,
}


class ReconciliationService:
    """对账核心"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        lock: ReconcileLock = reconcile_lock,
    ) -> None:
        self._uow_factory = uow_factory
        self._lock = lock

    async def apply_payment_outcome(self, payment_type: PaymentType, plaintext: str) -> bool:
        """
        应用一次网关支付结果（通知解密后的明文或主动查单结果）

        Returns:
            False 表示对账锁被占用而跳过，True 表示已处理（包括幂等空操作）
        """
        outcome = parse_payment_outcome(payment_type, plaintext)
        order_no = outcome.order_no

        with self._lock.try_acquire(order_no) as acquired:
            if not acquired:
                logger.info("reconcile_lock_busy", order_no=order_no, operation="apply_payment_outcome")
                return False

            async with self._uow_factory() as uow:
                order = await uow.order_repository.get_by_order_no(order_no)
                if order is None:
                    logger.warning("payment_outcome_unknown_order", order_no=order_no)
                    return True
                if order.payment_type != PaymentType(payment_type):
                    logger.warning(
                        "payment_outcome_type_mismatch",
                        order_no=order_no,
                        order_payment_type=order.payment_type.value,
                        payment_type=PaymentType(payment_type).value,
                    )
                    return True
                if order.order_status != OrderStatus.NOTPAY:
                    logger.info(
                        "payment_outcome_ignored",
                        order_no=order_no,
                        order_status=order.order_status.value,
                        trade_state=outcome.trade_state,
                    )
                    return True

                target_name = TRADE_STATE_TO_ORDER_STATUS.get(outcome.trade_state)
                if target_name is None:
                    logger.info("payment_outcome_pending", order_no=order_no, trade_state=outcome.trade_state)
                    return True

                target = OrderStatus(target_name)
                updated = await uow.order_repository.transition_status(
                    order_no, sources_of(target), target
                )
                if updated and target == OrderStatus.SUCCESS:
                    await uow.payment_log_repository.append(
                        PaymentLog(
                            order_no=order_no,
                            payment_type=order.payment_type,
                            transaction_id=outcome.transaction_id,
                            trade_type=outcome.trade_type,
                            trade_state=outcome.trade_state,
                            payer_total=outcome.payer_total,
                            content=outcome.raw,
                        )
                    )
            logger.info(
                "payment_outcome_applied",
                order_no=order_no,
                trade_state=outcome.trade_state,
                order_status=target.value,
                updated=updated,
            )
            return True

    async def apply_refund_outcome(
        self,
        payment_type: PaymentType,
        plaintext: str,
        *,
        from_response: bool = False,
    ) -> bool:
        """
        应用一次网关退款结果

        from_response 为 True 时原始报文记录为申请退款返回参数，否则记录为通知/查询参数。
        """
        outcome = parse_refund_outcome(payment_type, plaintext)
        refund_no = outcome.refund_no
        order_no = outcome.order_no or await self._order_no_of_refund(refund_no)
        content = {"content_return": outcome.raw} if from_response else {"content_notify": outcome.raw}

        with self._lock.try_acquire(order_no) as acquired:
            if not acquired:
                logger.info("reconcile_lock_busy", order_no=order_no, operation="apply_refund_outcome")
                return False

            async with self._uow_factory() as uow:
                refund = await uow.refund_repository.get_by_refund_no(refund_no)
                if refund is None:
                    logger.warning("refund_outcome_unknown_refund", refund_no=refund_no)
                    return True
                if refund.refund_status != RefundStatus.PROCESSING:
                    logger.info(
                        "refund_outcome_ignored",
                        refund_no=refund_no,
                        refund_status=refund.refund_status.value,
                    )
                    return True

                target_name = REFUND_STATUS_TO_LOCAL.get(outcome.refund_status)
                if target_name is None:
                    await uow.refund_repository.save_content(
                        refund_no, refund_id=outcome.refund_id, **content
                    )
                    logger.info("refund_outcome_pending", refund_no=refund_no, refund_status=outcome.refund_status)
                    return True

                target = RefundStatus(target_name)
                updated = await uow.refund_repository.transition_status(
                    refund_no,
                    RefundStatus.PROCESSING,
                    target,
                    refund_id=outcome.refund_id,
                    **content,
                )
                if updated:
                    await uow.order_repository.transition_status(
                        refund.order_no,
                        sources_of(_REFUND_TO_ORDER_STATUS[target]),
                        _REFUND_TO_ORDER_STATUS[target],
                    )
            logger.info(
                "refund_outcome_applied",
                refund_no=refund_no,
                order_no=refund.order_no,
                refund_status=target.value,
                updated=updated,
            )
            return True

    async def close_order(
        self,
        order_no: str,
        to_status: OrderStatus = OrderStatus.CLOSED,
    ) -> Optional[OrderStatus]:
        """
        关闭未支付订单（超时关闭 CLOSED 或用户取消 CANCEL）

        Returns:
            对账锁被占用时返回 None，否则返回处理后的订单状态
        """
        with self._lock.try_acquire(order_no) as acquired:
            if not acquired:
                logger.info("reconcile_lock_busy", order_no=order_no, operation="close_order")
                return None

            async with self._uow_factory() as uow:
                order = await uow.order_repository.get_by_order_no(order_no)
                if order is None:
                    raise OrderNotFoundException(order_no)
                if not can_transition(order.order_status, to_status):
                    logger.info(
                        "order_close_ignored",
                        order_no=order_no,
                        order_status=order.order_status.value,
                        to_status=to_status.value,
                    )
                    return order.order_status
                await uow.order_repository.transition_status(order_no, sources_of(to_status), to_status)
                current = await uow.order_repository.get_by_order_no(order_no)
            logger.info("order_closed", order_no=order_no, order_status=current.order_status.value)
            return current.order_status

    async def begin_refund(self, order_no: str, reason: Optional[str] = None) -> RefundInfo:
        """订单 SUCCESS -> REFUND_PROCESSING，并在同一事务中创建 PROCESSING 退款单"""
        with self._lock.try_acquire(order_no) as acquired:
            if not acquired:
                raise OrderBusyException(order_no)

            async with self._uow_factory() as uow:
                order = await uow.order_repository.get_by_order_no(order_no)
                if order is None:
                    raise OrderNotFoundException(order_no)
                if order.order_status != OrderStatus.SUCCESS:
                    raise OrderNotRefundableException(order_no, order.order_status.value)

                updated = await uow.order_repository.transition_status(
                    order_no, sources_of(OrderStatus.REFUND_PROCESSING), OrderStatus.REFUND_PROCESSING
                )
                if not updated:
                    current = await uow.order_repository.get_by_order_no(order_no)
                    raise OrderStatusConflictException(order_no, current.order_status.value)

                refund = await uow.refund_repository.create(
                    RefundInfo(
                        id=None,
                        refund_no=new_refund_no(),
                        order_no=order_no,
                        total_fee=order.total_fee,
                        refund=order.total_fee,
                        payment_type=order.payment_type,
                        reason=reason,
                    )
                )
            logger.info("refund_begun", order_no=order_no, refund_no=refund.refund_no, refund=refund.refund)
            return refund

    async def reject_refund(self, refund_no: str, content: Optional[str] = None) -> bool:
        """网关同步拒绝退款：退款单 -> ABNORMAL，订单 -> REFUND_ABNORMAL"""
        order_no = await self._order_no_of_refund(refund_no)

        with self._lock.try_acquire(order_no) as acquired:
            if not acquired:
                logger.info("reconcile_lock_busy", order_no=order_no, operation="reject_refund")
                return False

            async with self._uow_factory() as uow:
                updated = await uow.refund_repository.transition_status(
                    refund_no,
                    RefundStatus.PROCESSING,
                    RefundStatus.ABNORMAL,
                    content_return=content,
                )
                if updated:
                    await uow.order_repository.transition_status(
                        order_no, sources_of(OrderStatus.REFUND_ABNORMAL), OrderStatus.REFUND_ABNORMAL
                    )
            logger.warning("refund_rejected", refund_no=refund_no, order_no=order_no, updated=updated)
            return True

    async def _order_no_of_refund(self, refund_no: str) -> str:
        async with self._uow_factory(readonly=True) as uow:
            refund = await uow.refund_repository.get_by_refund_no(refund_no)
        if refund is None:
            raise RefundNotFoundException(refund_no)
        return refund.order_no

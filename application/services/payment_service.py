"""
Application service orchestrating payment use-cases for one gateway.

This class depends only on the application GatewayClient port. Gateway
implementations are provided by infrastructure and injected from the
composition root (API dependencies / reconciler startup), keeping
dependencies one-way. Every status change is delegated to the
ReconciliationService.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payments import PaymentHandoff
from application.ports.payment_gateway import GatewayClient
from application.services.order_service import OrderService
from application.services.outcomes import parse_payment_outcome
from application.services.reconciliation_service import ReconciliationService
from core.logging_config import get_logger
from domain.common.exceptions import (
    GatewayError,
    OrderBusyException,
    OrderNotFoundException,
    OrderStatusConflictException,
    RefundNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus
from domain.refund.entity import RefundInfo


logger = get_logger(__name__)

# Trade states after which the gateway order must be closed to refuse late payment
_CLOSE_AT_GATEWAY = {"CLOSED", "PAYERROR", "REVOKED"}


class PaymentService:
    def __init__(
        self,
        gateway: GatewayClient,
        uow_factory: Callable[..., AbstractUnitOfWork],
        reconciliation: Optional[ReconciliationService] = None,
    ) -> None:
        self.gateway = gateway
        self.payment_type = gateway.payment_type
        self._uow_factory = uow_factory
        self._orders = OrderService(uow_factory)
        self._core = reconciliation or ReconciliationService(uow_factory)

    async def create_payment(self, product_id: int) -> PaymentHandoff:
        """Create (or reuse) the unpaid order and return its payment handoff."""
        order = await self._orders.create_or_get_unpaid(product_id, self.payment_type)
        if order.code_url:
            logger.info("payment_handoff_reused", order_no=order.order_no, payment_type=self.payment_type.value)
            return PaymentHandoff(code_url=order.code_url, order_no=order.order_no)

        code_url = await self.gateway.create_payment(order)
        if code_url:
            await self._orders.save_code_url(order.order_no, code_url)
        logger.info("payment_created", order_no=order.order_no, payment_type=self.payment_type.value)
        return PaymentHandoff(code_url=code_url, order_no=order.order_no)

    async def cancel_order(self, order_no: str) -> None:
        """User cancel: close at the gateway first; the local CANCEL only follows a successful close."""
        order = await self._orders.get_order(order_no)
        if order.order_status != OrderStatus.NOTPAY:
            raise OrderStatusConflictException(order_no, order.order_status.value)
        await self.gateway.close_order(order_no)

        status = await self._core.close_order(order_no, OrderStatus.CANCEL)
        if status is None:
            raise OrderBusyException(order_no)
        if status != OrderStatus.CANCEL:
            raise OrderStatusConflictException(order_no, status.value)
        logger.info("order_cancelled", order_no=order_no)

    async def query_order(self, order_no: str) -> str:
        body = await self.gateway.query_order(order_no)
        if body is None:
            raise OrderNotFoundException(order_no)
        return body

    async def refund(self, order_no: str, reason: Optional[str] = None) -> RefundInfo:
        order = await self._orders.get_order(order_no)
        refund = await self._core.begin_refund(order_no, reason)

        try:
            body = await self.gateway.create_refund(order, refund, reason)
        except GatewayError as exc:
            logger.error(
                "refund_gateway_rejected",
                order_no=order_no,
                refund_no=refund.refund_no,
                status_code=exc.status_code,
            )
            await self._core.reject_refund(refund.refund_no, exc.body)
            raise

        await self._core.apply_refund_outcome(self.payment_type, body, from_response=True)
        return await self._get_refund(refund.refund_no)

    async def query_refund(self, refund_no: str) -> str:
        refund = await self._get_refund(refund_no)
        return await self.gateway.query_refund(refund_no, refund.order_no)

    async def check_order_status(self, order_no: str) -> str:
        """
        Reconcile one local order against the gateway.

        Returns the gateway trade state that drove the decision ("NOT_EXIST"
        when the gateway has no such order).
        """
        body = await self.gateway.query_order(order_no)
        if body is None:
            logger.warning("order_not_at_gateway", order_no=order_no)
            await self._core.close_order(order_no, OrderStatus.CLOSED)
            await self._close_at_gateway_quietly(order_no)
            return "NOT_EXIST"

        outcome = parse_payment_outcome(self.payment_type, body)
        trade_state = outcome.trade_state
        logger.info("order_status_checked", order_no=order_no, trade_state=trade_state)

        if trade_state == "NOTPAY":
            # timed out: refuse late payment at the gateway before closing locally
            await self.gateway.close_order(order_no)
            await self._core.close_order(order_no, OrderStatus.CLOSED)
        elif trade_state == "SUCCESS":
            await self._core.apply_payment_outcome(self.payment_type, body)
        elif trade_state in _CLOSE_AT_GATEWAY:
            await self._core.apply_payment_outcome(self.payment_type, body)
            await self._close_at_gateway_quietly(order_no)
        return trade_state

    async def check_refund_status(self, refund_no: str) -> None:
        body = await self.query_refund(refund_no)
        await self._core.apply_refund_outcome(self.payment_type, body)

    async def _close_at_gateway_quietly(self, order_no: str) -> None:
        try:
            await self.gateway.close_order(order_no)
        except GatewayError as exc:
            logger.warning(
                "gateway_close_failed",
                order_no=order_no,
                status_code=exc.status_code,
                body=exc.body,
            )

    async def _get_refund(self, refund_no: str) -> RefundInfo:
        async with self._uow_factory(readonly=True) as uow:
            refund = await uow.refund_repository.get_by_refund_no(refund_no)
        if refund is None:
            raise RefundNotFoundException(refund_no)
        return refund

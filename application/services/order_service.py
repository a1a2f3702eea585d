"""
订单应用服务 - 订单创建（OrderFactory）与查询
"""
from __future__ import annotations

from typing import Callable, List, Optional

from core.logging_config import get_logger
from domain.common.exceptions import (
    OrderNotFoundException,
    ProductMissingException,
    UnpaidOrderExistsException,
)
from domain.common.numbering import new_order_no
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderInfo, OrderStatus, PaymentType
from domain.product.entity import Product


logger = get_logger(__name__)


class OrderService:
    """订单服务：同一商品+支付方式复用未支付订单"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def create_or_get_unpaid(self, product_id: int, payment_type: PaymentType) -> OrderInfo:
        """
        获取或创建未支付订单

        并发创建时依赖 (product_id, payment_type) 上的未支付唯一索引，
        冲突方回滚后重新读取胜出者的订单。
        """
        payment_type = PaymentType(payment_type)
        async with self._uow_factory(readonly=True) as uow:
            existing = await uow.order_repository.find_unpaid(product_id, payment_type)
            if existing is not None:
                logger.info("order_reused", order_no=existing.order_no, product_id=product_id)
                return existing
            product = await uow.product_repository.get_by_id(product_id)
        if product is None:
            raise ProductMissingException(product_id)

        try:
            async with self._uow_factory() as uow:
                return await uow.order_repository.create(self._build_order(product, payment_type))
        except UnpaidOrderExistsException:
            async with self._uow_factory(readonly=True) as uow:
                winner = await uow.order_repository.find_unpaid(product_id, payment_type)
            if winner is None:
                # 胜出订单已在此间被支付或关闭
                raise
            logger.info("order_create_race_resolved", order_no=winner.order_no, product_id=product_id)
            return winner

    @staticmethod
    def _build_order(product: Product, payment_type: PaymentType) -> OrderInfo:
        return OrderInfo(
            id=None,
            order_no=new_order_no(),
            product_id=product.id,
            title=product.title,
            total_fee=product.price,
            payment_type=payment_type,
            order_status=OrderStatus.NOTPAY,
        )

    async def save_code_url(self, order_no: str, code_url: str) -> None:
        async with self._uow_factory() as uow:
            await uow.order_repository.save_code_url(order_no, code_url)

    async def get_order(self, order_no: str) -> OrderInfo:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_no(order_no)
        if order is None:
            raise OrderNotFoundException(order_no)
        return order

    async def list_orders(self) -> List[OrderInfo]:
        """按创建时间倒序列出订单"""
        async with self._uow_factory(readonly=True) as uow:
            return await uow.order_repository.list_by_create_time_desc()

    async def get_order_status(self, order_no: str) -> Optional[OrderStatus]:
        """本地订单状态，订单不存在时返回 None"""
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_no(order_no)
        return None if order is None else order.order_status

    async def list_products(self) -> List[Product]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.product_repository.list_all()

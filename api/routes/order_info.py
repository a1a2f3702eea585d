"""
订单API路由 - 订单列表与前端支付状态轮询
"""
from typing import List

from fastapi import APIRouter, Depends

from api.dependencies import get_order_service
from application.dtos.payments import OrderInfoDTO
from application.services.order_service import OrderService
from core.response import paying_response, success_response
from domain.order.entity import OrderStatus


router = APIRouter(prefix="/api/order-info", tags=["商品订单管理"])


@router.get("/list", summary="订单列表")
async def list_orders(service: OrderService = Depends(get_order_service)):
    orders = await service.list_orders()
    items: List[OrderInfoDTO] = [OrderInfoDTO.from_entity(o) for o in orders]
    return success_response(data={"list": items})


@router.get("/query-order-status/{order_no}", summary="查询本地订单状态")
async def query_order_status(order_no: str, service: OrderService = Depends(get_order_service)):
    """前端轮询：已支付返回 code 0，否则（含订单不存在）返回 code 101"""
    status = await service.get_order_status(order_no)
    if status == OrderStatus.SUCCESS:
        return success_response(message="支付成功")
    return paying_response()

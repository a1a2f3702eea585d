"""
微信支付API路由 - Native 扫码支付、回调通知、取消、查单与退款

notify 路由须在 /native/{product_id} 之前注册。
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_callback_service, get_wechat_payment_service
from application.dtos.payments import PaymentHandoff, RefundInfoDTO
from application.services.callback_service import CallbackService
from application.services.payment_service import PaymentService
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/api/wx-pay", tags=["微信支付"])


@router.post("/native/notify", summary="支付结果通知", include_in_schema=False)
async def native_notify(
    request: Request,
    callbacks: CallbackService = Depends(get_callback_service),
):
    reply = await callbacks.handle_wechat_payment(dict(request.headers), await request.body())
    return JSONResponse(status_code=reply.status_code, content=reply.body)


@router.post("/refunds/notify", summary="退款结果通知", include_in_schema=False)
async def refunds_notify(
    request: Request,
    callbacks: CallbackService = Depends(get_callback_service),
):
    reply = await callbacks.handle_wechat_refund(dict(request.headers), await request.body())
    return JSONResponse(status_code=reply.status_code, content=reply.body)


@router.post("/native/{product_id}", summary="Native下单", response_model=ApiResponse[PaymentHandoff])
async def native_pay(
    product_id: int,
    service: PaymentService = Depends(get_wechat_payment_service),
):
    """
    为商品生成支付二维码链接

    同一商品存在未支付订单时复用该订单及其 codeUrl。
    """
    handoff = await service.create_payment(product_id)
    return success_response(data=handoff)


@router.post("/cancel/{order_no}", summary="用户取消订单", response_model=ApiResponse[None])
async def cancel(
    order_no: str,
    service: PaymentService = Depends(get_wechat_payment_service),
):
    await service.cancel_order(order_no)
    return success_response(message="订单已取消")


@router.get("/query/{order_no}", summary="查询订单")
async def query(
    order_no: str,
    service: PaymentService = Depends(get_wechat_payment_service),
):
    body = await service.query_order(order_no)
    return success_response(data={"bodyAsString": body}, message="查询成功")


@router.post("/refunds/{order_no}/{reason}", summary="申请退款", response_model=ApiResponse[RefundInfoDTO])
async def refunds(
    order_no: str,
    reason: str,
    service: PaymentService = Depends(get_wechat_payment_service),
):
    refund = await service.refund(order_no, reason)
    return success_response(data=RefundInfoDTO.from_entity(refund))


@router.get("/query-refund/{refund_no}", summary="查询退款")
async def query_refund(
    refund_no: str,
    service: PaymentService = Depends(get_wechat_payment_service),
):
    body = await service.query_refund(refund_no)
    return success_response(data={"bodyAsString": body}, message="查询成功")

"""
支付宝API路由 - 电脑网站支付、异步通知、取消、查单与退款

路径与微信支付路由一一对应；notify 路由须在 /native/{product_id} 之前注册。
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from api.dependencies import get_alipay_payment_service, get_callback_service
from application.dtos.payments import PaymentHandoff, RefundInfoDTO
from application.services.callback_service import CallbackService
from application.services.payment_service import PaymentService
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/api/ali-pay", tags=["支付宝"])


@router.post("/native/notify", summary="异步通知", include_in_schema=False)
async def trade_notify(
    request: Request,
    callbacks: CallbackService = Depends(get_callback_service),
):
    """支付宝以表单提交通知，应答纯文本 success / failure"""
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}
    return PlainTextResponse(await callbacks.handle_alipay_payment(params))


@router.post("/native/{product_id}", summary="电脑网站支付下单", response_model=ApiResponse[PaymentHandoff])
async def native_pay(
    product_id: int,
    service: PaymentService = Depends(get_alipay_payment_service),
):
    """codeUrl 为已签名的收银台跳转地址"""
    handoff = await service.create_payment(product_id)
    return success_response(data=handoff)


@router.post("/cancel/{order_no}", summary="用户取消订单", response_model=ApiResponse[None])
async def cancel(
    order_no: str,
    service: PaymentService = Depends(get_alipay_payment_service),
):
    await service.cancel_order(order_no)
    return success_response(message="订单已取消")


@router.get("/query/{order_no}", summary="查询订单")
async def query(
    order_no: str,
    service: PaymentService = Depends(get_alipay_payment_service),
):
    body = await service.query_order(order_no)
    return success_response(data={"bodyAsString": body}, message="查询成功")


@router.post("/refunds/{order_no}/{reason}", summary="申请退款", response_model=ApiResponse[RefundInfoDTO])
async def refund(
    order_no: str,
    reason: str,
    service: PaymentService = Depends(get_alipay_payment_service),
):
    info = await service.refund(order_no, reason)
    return success_response(data=RefundInfoDTO.from_entity(info))


@router.get("/query-refund/{refund_no}", summary="查询退款")
async def query_refund(
    refund_no: str,
    service: PaymentService = Depends(get_alipay_payment_service),
):
    body = await service.query_refund(refund_no)
    return success_response(data={"bodyAsString": body}, message="查询成功")

"""
统一响应格式定义

所有业务接口返回 {code, message, data, error}；网关回调接口例外，
按网关约定的格式应答（见 application/services/callback_service.py）。
"""
from typing import Any, Optional, Generic, TypeVar
from pydantic import BaseModel, Field, field_serializer
from datetime import datetime, timezone
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


T = TypeVar("T")


class ErrorDetail(BaseModel):
    """错误详情"""
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """UTC ISO8601，Z 结尾"""
        ts = timestamp.replace(tzinfo=timezone.utc) if timestamp.tzinfo is None else timestamp.astimezone(timezone.utc)
        return ts.isoformat().replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    """统一响应模型"""
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def success_response(
    data: Any = None,
    message: str = "成功",
    code: int = BusinessCode.SUCCESS
) -> Response:
    return Response(code=code, message=message, data=data)


def paying_response(message: str = "支付中...") -> Response:
    """
    前端轮询订单状态时"尚未支付"的应答

    HTTP 状态仍为 200，前端依据 code=101 继续轮询。
    """
    return Response(code=PaymentCode.ORDER_PAYING, message=message)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None
) -> Response:
    """
    创建错误响应

    Args:
        code: 业务状态码（BusinessCode 或 PaymentCode）
        message: 错误消息
        error_type: 错误类型，对应异常的 error_type
        details: 错误详情，例如订单号、网关返回的原始报文
        field: 参数校验失败时的字段
        request_id: 请求ID，与日志中的 request_id 一致
    """
    return Response(
        code=code,
        message=message,
        error=ErrorDetail(
            type=error_type,
            details=details,
            field=field,
            request_id=request_id
        )
    )

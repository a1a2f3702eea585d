"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class ProductMissingException(BusinessException):
    def __init__(self, product_id: int):
        super().__init__(
            code=BusinessCode.PRODUCT_NOT_FOUND,
            message=f"商品不存在: {product_id}",
            error_type="ProductMissing",
            details={"product_id": product_id},
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_no: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message=f"订单不存在: {order_no}",
            error_type="OrderNotFound",
            details={"order_no": order_no},
        )


class RefundNotFoundException(BusinessException):
    def __init__(self, refund_no: str):
        super().__init__(
            code=BusinessCode.REFUND_NOT_FOUND,
            message=f"退款单不存在: {refund_no}",
            error_type="RefundNotFound",
            details={"refund_no": refund_no},
        )


class OrderNotRefundableException(BusinessException):
    def __init__(self, order_no: str, status: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_REFUNDABLE,
            message=f"订单状态为 {status}，不可退款",
            error_type="OrderNotRefundable",
            details={"order_no": order_no, "order_status": status},
        )


class OrderBusyException(BusinessException):
    """订单正被其他请求处理（对账锁未获取到）"""

    def __init__(self, order_no: str):
        super().__init__(
            code=BusinessCode.ORDER_BUSY,
            message=f"订单正在处理中，请稍后重试: {order_no}",
            error_type="OrderBusy",
            details={"order_no": order_no},
        )


class OrderStatusConflictException(BusinessException):
    def __init__(self, order_no: str, status: str):
        super().__init__(
            code=BusinessCode.ORDER_STATUS_CONFLICT,
            message=f"订单状态已变为 {status}",
            error_type="OrderStatusConflict",
            details={"order_no": order_no, "order_status": status},
        )


class UnpaidOrderExistsException(BusinessException):
    """同一商品+支付方式已存在未支付订单（唯一索引冲突）"""

    def __init__(self, product_id: int, payment_type: str):
        super().__init__(
            code=BusinessCode.UNPAID_ORDER_EXISTS,
            message=f"商品 {product_id} 已存在未支付订单",
            error_type="UnpaidOrderExists",
            details={"product_id": product_id, "payment_type": payment_type},
        )


class GatewayError(BusinessException):
    """支付网关返回非 2xx 或网络错误"""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
    ):
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(
            code=code,
            message=message,
            error_type="GatewayError",
            details={"provider": provider, "status_code": status_code, "body": body},
        )


class DecryptionFailedException(BusinessException):
    def __init__(self, message: str = "通知解密失败", *, provider: str):
        super().__init__(
            code=PaymentCode.DECRYPTION_ERROR,
            message=message,
            error_type="DecryptionFailed",
            details={"provider": provider},
        )


class GatewayNotConfiguredException(BusinessException):
    """支付方式缺少商户配置，无法发起网关调用"""

    def __init__(self, provider: str, missing: list[str]):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message=f"支付方式未配置: {provider}",
            error_type="GatewayNotConfigured",
            details={"provider": provider, "missing": missing},
        )

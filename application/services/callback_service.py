"""
回调处理服务 - 网关异步通知的验签、解密与分发

回调接口始终返回网关约定格式的应答：
- 微信支付：200 {"code":"SUCCESS","message":"成功"}，失败时 500 {"code":"ERROR","message":...}
  使网关按其重试策略重新投递
- 支付宝：纯文本 "success" / "failure"

验签失败的通知不会触达数据库。
"""
from __future__ import annotations

import json
from typing import Callable, Mapping, Optional, Union

from application.dtos.payments import CallbackReply, callback_adapter
from application.ports.crypto import AEADCipher, NotificationVerifier, ParamsVerifier
from application.services.reconciliation_service import ReconciliationService
from core.logging_config import get_logger
from domain.common.exceptions import DecryptionFailedException, DomainValidationException
from domain.common.money import yuan_to_fen
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import PaymentType


logger = get_logger(__name__)

WECHAT_ACK = CallbackReply(status_code=200, body={"code": "SUCCESS", "message": "成功"})
WECHAT_SIGNATURE_ERROR = CallbackReply(status_code=500, body={"code": "ERROR", "message": "通知验签失败"})
WECHAT_SYSTEM_ERROR = CallbackReply(status_code=500, body={"code": "ERROR", "message": "系统错误"})

ALIPAY_SUCCESS = "success"
ALIPAY_FAILURE = "failure"


class CallbackService:
    """网关回调处理"""

    def __init__(
        self,
        reconciliation: ReconciliationService,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        wechat_verifier: Optional[NotificationVerifier] = None,
        wechat_cipher: Optional[AEADCipher] = None,
        alipay_verifier: Optional[ParamsVerifier] = None,
        alipay_app_id: Optional[str] = None,
    ) -> None:
        self._core = reconciliation
        self._uow_factory = uow_factory
        self._wechat_verifier = wechat_verifier
        self._wechat_cipher = wechat_cipher
        self._alipay_verifier = alipay_verifier
        self._alipay_app_id = alipay_app_id

    async def handle_wechat_payment(self, headers: Mapping[str, str], body: Union[bytes, str]) -> CallbackReply:
        """支付结果通知"""
        return await self._handle_wechat("payment", headers, body)

    async def handle_wechat_refund(self, headers: Mapping[str, str], body: Union[bytes, str]) -> CallbackReply:
        """退款结果通知"""
        return await self._handle_wechat("refund", headers, body)

    async def _handle_wechat(self, kind: str, headers: Mapping[str, str], body: Union[bytes, str]) -> CallbackReply:
        try:
            # 非 UTF-8 报文同样按格式错误处理（UnicodeDecodeError 属于 ValueError）
            body = body.decode("utf-8") if isinstance(body, bytes) else body
            callback = callback_adapter.validate_python({**json.loads(body), "provider": "wxpay"})
        except (ValueError, TypeError) as exc:
            logger.warning("wechat_notify_malformed", kind=kind, error=str(exc))
            return WECHAT_SYSTEM_ERROR

        log = logger.bind(kind=kind, notification_id=callback.id, event_type=callback.event_type)
        if self._wechat_verifier is None or self._wechat_cipher is None:
            log.error("wechat_notify_not_configured")
            return WECHAT_SYSTEM_ERROR

        try:
            if not await self._wechat_verifier.validate(headers, body, callback.id):
                log.warning("wechat_notify_signature_invalid")
                return WECHAT_SIGNATURE_ERROR

            resource = callback.resource
            plaintext = self._wechat_cipher.decrypt(
                resource.associated_data, resource.nonce, resource.ciphertext
            )

            if kind == "payment":
                applied = await self._core.apply_payment_outcome(PaymentType.WXPAY, plaintext)
            else:
                applied = await self._core.apply_refund_outcome(PaymentType.WXPAY, plaintext)
        except DecryptionFailedException:
            log.error("wechat_notify_decrypt_failed")
            return WECHAT_SYSTEM_ERROR
        except Exception:
            log.error("wechat_notify_failed", exc_info=True)
            return WECHAT_SYSTEM_ERROR

        # 锁被占用时同样应答成功：持有者会完成状态收敛
        log.info("wechat_notify_handled", applied=applied)
        return WECHAT_ACK

    async def handle_alipay_payment(self, form: Mapping[str, str]) -> str:
        """支付宝异步通知，应答 success 或 failure 纯文本"""
        callback = callback_adapter.validate_python({"provider": "alipay", "params": dict(form)})
        params = callback.params
        order_no = callback.out_trade_no
        log = logger.bind(order_no=order_no, notify_id=params.get("notify_id"))

        if self._alipay_verifier is None:
            log.error("alipay_notify_not_configured")
            return ALIPAY_FAILURE
        if not self._alipay_verifier.validate(params):
            log.warning("alipay_notify_signature_invalid")
            return ALIPAY_FAILURE

        try:
            rejection = await self._check_alipay_params(params)
            if rejection is not None:
                log.warning("alipay_notify_rejected", reason=rejection)
                return ALIPAY_FAILURE

            applied = await self._core.apply_payment_outcome(
                PaymentType.ALIPAY, json.dumps(params, ensure_ascii=False)
            )
        except Exception:
            log.error("alipay_notify_failed", exc_info=True)
            return ALIPAY_FAILURE

        log.info("alipay_notify_handled", applied=applied, trade_status=params.get("trade_status"))
        return ALIPAY_SUCCESS

    async def _check_alipay_params(self, params: Mapping[str, str]) -> Optional[str]:
        """校验商户订单号、金额与 app_id，返回拒绝原因"""
        order_no = params.get("out_trade_no")
        if not order_no:
            return "missing_out_trade_no"

        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_no(order_no)
        if order is None:
            return "order_not_found"

        try:
            total = yuan_to_fen(params.get("total_amount", ""))
        except DomainValidationException:
            return "total_amount_invalid"
        if total != order.total_fee:
            return "total_amount_mismatch"

        if self._alipay_app_id and params.get("app_id") != self._alipay_app_id:
            return "app_id_mismatch"
        return None

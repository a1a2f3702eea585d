"""
Alipay OpenAPI adapter over httpx (RSA2).

- alipay.trade.page.pay: the customer handoff is a signed redirect URL
- alipay.trade.query / close / refund / fastpay.refund.query via the gateway

Responses are unwrapped from ``<method>_response`` and returned as JSON
text; refund answers are normalised to carry ``out_request_no`` and
``refund_status`` so they read like refund notifications.
"""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from core.settings import AlipaySettings, PaymentRetry, PaymentTimeouts
from domain.common.exceptions import GatewayNotConfiguredException
from domain.common.money import fen_to_yuan
from domain.order.entity import OrderInfo, PaymentType
from domain.refund.entity import RefundInfo
from infrastructure.external.payments.alipay_crypto import load_private_key, rsa2_sign
from infrastructure.external.payments.base import BasePaymentClient, read_pem


# Gateway timestamps are Beijing time
_CST = timezone(timedelta(hours=8))

SUCCESS_CODE = "10000"
TRADE_NOT_EXIST = "ACQ.TRADE_NOT_EXIST"


class AlipayClient(BasePaymentClient):
    payment_type = PaymentType.ALIPAY

    def __init__(
        self,
        settings: AlipaySettings,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        retry: Optional[PaymentRetry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeouts=timeouts, retry=retry, transport=transport)
        missing = [name for name in ("app_id", "private_key") if not getattr(settings, name)]
        if missing:
            raise GatewayNotConfiguredException(self.payment_type.value, missing)
        self._cfg = settings
        self._private_key = load_private_key(read_pem(settings.private_key))

    def _signed_params(self, method: str, biz_content: dict[str, Any], **extra: Optional[str]) -> dict[str, str]:
        params = {
            "app_id": self._cfg.app_id,
            "method": method,
            "format": "JSON",
            "charset": "utf-8",
            "sign_type": self._cfg.sign_type,
            "timestamp": datetime.now(_CST).strftime("%Y-%m-%d %H:%M:%S"),
            "version": "1.0",
            "biz_content": json.dumps(biz_content, ensure_ascii=False, separators=(",", ":")),
        }
        params.update({k: v for k, v in extra.items() if v})
        params["sign"] = rsa2_sign(params, self._private_key)
        return params

    async def create_payment(self, order: OrderInfo) -> str:
        params = self._signed_params(
            "alipay.trade.page.pay",
            {
                "out_trade_no": order.order_no,
                "product_code": "FAST_INSTANT_TRADE_PAY",
                "total_amount": fen_to_yuan(order.total_fee),
                "subject": order.title,
            },
            notify_url=self._cfg.notify_url,
            return_url=self._cfg.return_url,
        )
        self._log("alipay_page_pay_created", order_no=order.order_no)
        return f"{self._cfg.gateway}?{urlencode(params)}"

    async def query_order(self, order_no: str) -> Optional[str]:
        data = await self._execute("alipay.trade.query", {"out_trade_no": order_no}, allow_not_found=True)
        return None if data is None else json.dumps(data, ensure_ascii=False)

    async def close_order(self, order_no: str) -> None:
        await self._execute("alipay.trade.close", {"out_trade_no": order_no})
        self._log("alipay_order_closed", order_no=order_no)

    async def create_refund(self, order: OrderInfo, refund: RefundInfo, reason: Optional[str]) -> str:
        data = await self._execute(
            "alipay.trade.refund",
            {
                "out_trade_no": order.order_no,
                "out_request_no": refund.refund_no,
                "refund_amount": fen_to_yuan(refund.refund),
                "refund_reason": reason,
            },
        )
        data.setdefault("out_request_no", refund.refund_no)
        # fund_change=Y means the money has been returned by this call
        data["refund_status"] = "REFUND_SUCCESS" if data.get("fund_change") == "Y" else "PROCESSING"
        self._log("alipay_refund_created", order_no=order.order_no, refund_no=refund.refund_no)
        return json.dumps(data, ensure_ascii=False)

    async def query_refund(self, refund_no: str, order_no: Optional[str] = None) -> str:
        biz = {"out_request_no": refund_no}
        if order_no:
            biz["out_trade_no"] = order_no
        data = await self._execute("alipay.trade.fastpay.refund.query", biz)
        data.setdefault("out_request_no", refund_no)
        data.setdefault("refund_status", "PROCESSING")
        return json.dumps(data, ensure_ascii=False)

    async def _execute(
        self,
        method: str,
        biz_content: dict[str, Any],
        *,
        allow_not_found: bool = False,
    ) -> Optional[dict[str, Any]]:
        params = self._signed_params(method, {k: v for k, v in biz_content.items() if v is not None})
        response = await self._send(
            "POST",
            self._cfg.gateway,
            data=params,
            headers={"Content-Type": "application/x-www-form-urlencoded;charset=utf-8"},
        )
        if response.status_code != 200:
            raise self._error(response)

        try:
            payload = response.json()
        except ValueError:
            raise self._error(response, "支付宝网关响应不是合法的JSON")
        data = payload.get(method.replace(".", "_") + "_response") or {}

        if data.get("code") == SUCCESS_CODE:
            return data
        if allow_not_found and data.get("sub_code") == TRADE_NOT_EXIST:
            self._log("alipay_trade_not_exist", method=method, out_trade_no=biz_content.get("out_trade_no"))
            return None
        raise self._error(response, data.get("sub_msg") or data.get("msg") or "支付宝网关返回错误")

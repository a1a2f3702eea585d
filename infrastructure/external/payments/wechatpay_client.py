"""
WeChat Pay v3 adapter over httpx.

- Native (QR code) payment, order query/close, refund create/query
- Requests signed with the merchant private key (WECHATPAY2-SHA256-RSA2048)
- Platform certificate download for notification verification

Every method returns the raw response body so the reconciliation core can
parse and persist exactly what the gateway answered.
"""
from __future__ import annotations

import json
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx

from core.settings import PaymentRetry, PaymentTimeouts, WechatSettings
from domain.common.exceptions import GatewayNotConfiguredException
from domain.order.entity import OrderInfo, PaymentType
from domain.refund.entity import RefundInfo
from infrastructure.external.payments.base import BasePaymentClient, read_pem
from infrastructure.external.payments.wechat_crypto import (
    AesGcmCipher,
    build_authorization,
    load_private_key,
)


# URL templates (relative to the apiV3 domain)
NATIVE_PAY = "/v3/pay/transactions/native"
ORDER_QUERY_BY_NO = "/v3/pay/transactions/out-trade-no/{order_no}"
CLOSE_ORDER_BY_NO = "/v3/pay/transactions/out-trade-no/{order_no}/close"
DOMESTIC_REFUNDS = "/v3/refund/domestic/refunds"
DOMESTIC_REFUNDS_QUERY = "/v3/refund/domestic/refunds/{refund_no}"
CERTIFICATES = "/v3/certificates"

# Notify paths (relative to notify_domain)
NATIVE_NOTIFY = "/api/wx-pay/native/notify"
REFUND_NOTIFY = "/api/wx-pay/refunds/notify"

NOT_FOUND_CODES = {"ORDER_NOT_EXIST", "RESOURCE_NOT_EXISTS"}


class WechatPayClient(BasePaymentClient):
    payment_type = PaymentType.WXPAY

    def __init__(
        self,
        settings: WechatSettings,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        retry: Optional[PaymentRetry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeouts=timeouts, retry=retry, transport=transport)
        missing = [
            name for name in ("app_id", "mch_id", "mch_serial_no", "private_key_path")
            if not getattr(settings, name)
        ]
        if missing:
            raise GatewayNotConfiguredException(self.payment_type.value, missing)
        self._cfg = settings
        self._private_key = load_private_key(read_pem(settings.private_key_path))

    async def create_payment(self, order: OrderInfo) -> str:
        payload = {
            "appid": self._cfg.app_id,
            "mchid": self._cfg.mch_id,
            "description": order.title,
            "out_trade_no": order.order_no,
            "notify_url": self._cfg.notify_domain + NATIVE_NOTIFY,
            "amount": {"total": order.total_fee, "currency": "CNY"},
        }
        body = await self._request("POST", NATIVE_PAY, payload=payload)
        # 204 carries no body and therefore no code_url
        code_url = json.loads(body).get("code_url", "") if body else ""
        self._log("wechat_native_created", order_no=order.order_no)
        return code_url

    async def query_order(self, order_no: str) -> Optional[str]:
        path = ORDER_QUERY_BY_NO.format(order_no=quote(order_no, safe=""))
        return await self._request("GET", path, params={"mchid": self._cfg.mch_id}, allow_not_found=True)

    async def close_order(self, order_no: str) -> None:
        path = CLOSE_ORDER_BY_NO.format(order_no=quote(order_no, safe=""))
        await self._request("POST", path, payload={"mchid": self._cfg.mch_id})
        self._log("wechat_order_closed", order_no=order_no)

    async def create_refund(self, order: OrderInfo, refund: RefundInfo, reason: Optional[str]) -> str:
        payload = {
            "out_trade_no": order.order_no,
            "out_refund_no": refund.refund_no,
            "reason": reason,
            "notify_url": self._cfg.notify_domain + REFUND_NOTIFY,
            "amount": {"refund": refund.refund, "total": order.total_fee, "currency": "CNY"},
        }
        body = await self._request("POST", DOMESTIC_REFUNDS, payload=payload)
        self._log("wechat_refund_created", order_no=order.order_no, refund_no=refund.refund_no)
        return body

    async def query_refund(self, refund_no: str, order_no: Optional[str] = None) -> str:
        path = DOMESTIC_REFUNDS_QUERY.format(refund_no=quote(refund_no, safe=""))
        return await self._request("GET", path)

    async def fetch_platform_certificates(self) -> dict[str, str]:
        """Download platform certificates and decrypt them with the APIv3 key."""
        if not self._cfg.api_v3_key:
            raise RuntimeError("WECHAT api_v3_key is required to download platform certificates")
        cipher = AesGcmCipher(self._cfg.api_v3_key)
        data = json.loads(await self._request("GET", CERTIFICATES))
        certs: dict[str, str] = {}
        for item in data.get("data", []):
            enc = item.get("encrypt_certificate") or {}
            certs[str(item["serial_no"])] = cipher.decrypt(
                enc.get("associated_data", ""), enc["nonce"], enc["ciphertext"]
            )
        return certs

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
        allow_not_found: bool = False,
    ) -> Optional[str]:
        url_path = f"{path}?{urlencode(params)}" if params else path
        body = json.dumps(payload, ensure_ascii=False, separators=(",", ":")) if payload is not None else ""
        headers = {
            "Accept": "application/json",
            "Authorization": build_authorization(
                mch_id=self._cfg.mch_id,
                serial_no=self._cfg.mch_serial_no,
                private_key=self._private_key,
                method=method,
                url_path=url_path,
                body=body,
            ),
        }
        if payload is not None:
            headers["Content-Type"] = "application/json"

        response = await self._send(
            method,
            self._cfg.domain.rstrip("/") + url_path,
            content=body.encode("utf-8") if body else None,
            headers=headers,
        )
        if response.status_code == 200:
            return response.text
        if response.status_code == 204:
            return ""
        if allow_not_found and response.status_code == 404 and self._error_code(response) in NOT_FOUND_CODES:
            self._log("wechat_order_not_exist", url_path=url_path)
            return None
        raise self._error(response)

    @staticmethod
    def _error_code(response: httpx.Response) -> Optional[str]:
        try:
            return response.json().get("code")
        except ValueError:
            return None

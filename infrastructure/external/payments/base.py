"""
Base payment client implementing shared concerns: http, retry, logging, key loading.

Concrete gateways subclass it and implement the GatewayClient port.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from core.settings import PaymentRetry, PaymentTimeouts
from domain.common.exceptions import GatewayError
from domain.order.entity import PaymentType
from shared.codes.payment_codes import PaymentCode


logger = get_logger(__name__)


def read_pem(value: Optional[str]) -> str:
    """Accept either PEM text or a path to a PEM file."""
    if not value:
        return ""
    raw = value.strip()
    if "-----BEGIN" not in raw:
        path = Path(raw)
        if path.is_file():
            raw = path.read_text(encoding="utf-8").strip()
    # env files often carry escaped newlines
    return raw.replace("\\n", "\n")


class BasePaymentClient:
    payment_type: PaymentType

    def __init__(
        self,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        retry: Optional[PaymentRetry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or PaymentTimeouts()
        self._retry_cfg = retry or PaymentRetry()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._timeouts_cfg.total,
            connect=self._timeouts_cfg.connect,
            read=self._timeouts_cfg.read,
            write=self._timeouts_cfg.write,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        # Kept open for reuse; aclose() releases the pool.
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg.max) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg.base_backoff, min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send with retry on transport errors; the body is fully read before returning."""
        try:
            response = await self._retry(lambda: self.client.request(method, url, **kwargs))
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            logger.error(
                "gateway_transport_error",
                payment_type=self.payment_type.value,
                method=method,
                url=url,
                error=str(exc),
            )
            timed_out = isinstance(exc, httpx.TimeoutException)
            raise GatewayError(
                f"支付网关请求超时: {exc}" if timed_out else f"支付网关请求失败: {exc}",
                provider=self.payment_type.value,
                code=PaymentCode.TIMEOUT if timed_out else PaymentCode.PROVIDER_ERROR,
            ) from exc
        self._log("gateway_response", method=method, url=url, status_code=response.status_code)
        return response

    def _error(self, response: httpx.Response, message: str = "支付网关返回错误") -> GatewayError:
        logger.warning(
            "gateway_error",
            payment_type=self.payment_type.value,
            status_code=response.status_code,
            body=response.text,
        )
        return GatewayError(
            message,
            provider=self.payment_type.value,
            status_code=response.status_code,
            body=response.text,
        )

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            payment_type=self.payment_type.value,
            **kwargs,
        )

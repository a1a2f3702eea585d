"""
API依赖项 - 应用服务装配（组合根）

网关客户端、对账核心与平台证书缓存在进程内复用；
测试通过 app.dependency_overrides 替换这里的任一提供者。
"""
from __future__ import annotations

from typing import Callable, Dict, Optional

from fastapi import Depends

from application.ports.payment_gateway import GatewayClient
from application.services.callback_service import CallbackService
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.reconciliation_service import ReconciliationService
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import PaymentType
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.alipay_crypto import AlipayVerifier
from infrastructure.external.payments.base import read_pem
from infrastructure.external.payments.wechat_crypto import (
    AesGcmCipher,
    PlatformCertificateStore,
    WechatPayVerifier,
)
from infrastructure.unit_of_work import uow_factory


logger = get_logger(__name__)

_uow_factory = uow_factory()
_reconciliation: Optional[ReconciliationService] = None
_gateways: Dict[PaymentType, GatewayClient] = {}
_callback_service: Optional[CallbackService] = None


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return _uow_factory


def get_reconciliation_service() -> ReconciliationService:
    global _reconciliation
    if _reconciliation is None:
        _reconciliation = ReconciliationService(_uow_factory)
    return _reconciliation


def get_gateway(payment_type: PaymentType) -> GatewayClient:
    """按支付方式懒加载网关客户端；配置缺失时抛出 GatewayNotConfiguredException"""
    payment_type = PaymentType(payment_type)
    gateway = _gateways.get(payment_type)
    if gateway is None:
        gateway = get_payment_gateway(payment_type)
        _gateways[payment_type] = gateway
    return gateway


async def get_wechat_gateway() -> GatewayClient:
    return get_gateway(PaymentType.WXPAY)


async def get_alipay_gateway() -> GatewayClient:
    return get_gateway(PaymentType.ALIPAY)


def build_payment_service(payment_type: PaymentType) -> PaymentService:
    """供路由之外（对账任务）使用的同一套装配"""
    return PaymentService(get_gateway(payment_type), _uow_factory, get_reconciliation_service())


async def get_wechat_payment_service(
    gateway: GatewayClient = Depends(get_wechat_gateway),
    uow: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    core: ReconciliationService = Depends(get_reconciliation_service),
) -> PaymentService:
    return PaymentService(gateway, uow, core)


async def get_alipay_payment_service(
    gateway: GatewayClient = Depends(get_alipay_gateway),
    uow: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    core: ReconciliationService = Depends(get_reconciliation_service),
) -> PaymentService:
    return PaymentService(gateway, uow, core)


async def get_order_service(
    uow: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> OrderService:
    return OrderService(uow)


def _wechat_certificate_fetcher():
    async def _fetch():
        return await get_gateway(PaymentType.WXPAY).fetch_platform_certificates()
    return _fetch


def build_callback_service(
    settings: PaymentSettings = payment_settings,
    uow: Optional[Callable[..., AbstractUnitOfWork]] = None,
    reconciliation: Optional[ReconciliationService] = None,
) -> CallbackService:
    """
    装配回调服务

    未配置的支付方式对应的验签/解密组件为 None，其回调一律按失败应答。
    """
    wechat, alipay = settings.wechat, settings.alipay

    wechat_verifier = None
    wechat_cipher = None
    if wechat.api_v3_key:
        store = PlatformCertificateStore(
            wechat.platform_cert_dir,
            fetcher=_wechat_certificate_fetcher(),
            refresh_interval=wechat.cert_refresh_seconds,
        )
        wechat_verifier = WechatPayVerifier(store, tolerance_seconds=settings.webhook.tolerance_seconds)
        wechat_cipher = AesGcmCipher(wechat.api_v3_key)
    else:
        logger.warning("wechat_callback_disabled", reason="api_v3_key not configured")

    alipay_verifier = None
    if alipay.alipay_public_key:
        alipay_verifier = AlipayVerifier.from_pem(read_pem(alipay.alipay_public_key))
    else:
        logger.warning("alipay_callback_disabled", reason="alipay_public_key not configured")

    return CallbackService(
        reconciliation or get_reconciliation_service(),
        uow or _uow_factory,
        wechat_verifier=wechat_verifier,
        wechat_cipher=wechat_cipher,
        alipay_verifier=alipay_verifier,
        alipay_app_id=alipay.app_id,
    )


async def get_callback_service() -> CallbackService:
    global _callback_service
    if _callback_service is None:
        _callback_service = build_callback_service()
    return _callback_service


async def close_gateways() -> None:
    """释放网关 HTTP 连接池（应用关闭时调用）"""
    while _gateways:
        payment_type, gateway = _gateways.popitem()
        await gateway.aclose()
        logger.info("gateway_closed", payment_type=payment_type.value)

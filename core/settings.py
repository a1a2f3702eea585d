"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so that gateway credentials can be
reloaded or overridden in tests without touching the application settings.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    # Must stay well below the 5s budget gateways give callback handlers
    total: float = 4.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300


class ReconcilerSettings(BaseModel):
    enabled: bool = False
    interval_seconds: float = 30.0
    stale_after_minutes: int = 5


class AlipaySettings(BaseModel):
    app_id: Optional[str] = None
    # PEM text or a path to a PEM file
    private_key: Optional[str] = None
    alipay_public_key: Optional[str] = None
    gateway: str = "https://openapi.alipay.com/gateway.do"
    notify_url: Optional[str] = None
    return_url: Optional[str] = None
    sign_type: str = "RSA2"


class WechatSettings(BaseModel):
    app_id: Optional[str] = None
    mch_id: Optional[str] = None
    mch_serial_no: Optional[str] = None
    private_key_path: Optional[str] = None
    platform_cert_dir: Optional[str] = None
    api_v3_key: Optional[str] = None
    domain: str = "https://api.mch.weixin.qq.com"
    notify_domain: str = "http://localhost:8090"
    # Minimum interval between two platform certificate downloads
    cert_refresh_seconds: int = 600

    @field_validator("api_v3_key")
    @classmethod
    def _check_api_v3_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v.encode("utf-8")) != 32:
            raise ValueError("api_v3_key must be exactly 32 bytes")
        return v


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    reconciler: ReconcilerSettings = Field(default_factory=ReconcilerSettings)

    alipay: AlipaySettings = Field(default_factory=AlipaySettings)
    wechat: WechatSettings = Field(default_factory=WechatSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()

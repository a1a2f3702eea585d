"""
Crypto collaborator ports used by the callback handler.
"""
from __future__ import annotations

from typing import Mapping, Protocol, runtime_checkable


@runtime_checkable
class NotificationVerifier(Protocol):
    """Verifies an inbound WeChat Pay notification against its signature headers."""

    async def validate(self, headers: Mapping[str, str], body: str, notification_id: str) -> bool: ...


@runtime_checkable
class ParamsVerifier(Protocol):
    """Verifies a form-encoded Alipay notification (sign over the sorted params)."""

    def validate(self, params: Mapping[str, str]) -> bool: ...


@runtime_checkable
class AEADCipher(Protocol):
    def decrypt(self, associated_data: str, nonce: str, ciphertext: str) -> str: ...

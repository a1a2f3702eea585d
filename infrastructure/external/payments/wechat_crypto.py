"""
WeChat Pay v3 cryptography: request signing, notification verification,
AES-256-GCM resource decryption and platform certificate management.
"""
from __future__ import annotations

import base64
import time
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Mapping, Optional, cast

from cryptography import x509
from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from core.logging_config import get_logger
from domain.common.exceptions import DecryptionFailedException


logger = get_logger(__name__)

PROVIDER = "wxpay"
AUTH_SCHEMA = "WECHATPAY2-SHA256-RSA2048"


def load_private_key(pem: str) -> RSAPrivateKey:
    return cast(RSAPrivateKey, load_pem_private_key(pem.encode("utf-8"), password=None))


def certificate_serial(cert: x509.Certificate) -> str:
    return format(cert.serial_number, "X")


def build_authorization(
    *,
    mch_id: str,
    serial_no: str,
    private_key: RSAPrivateKey,
    method: str,
    url_path: str,
    body: str,
    timestamp: Optional[int] = None,
    nonce_str: Optional[str] = None,
) -> str:
    """Authorization header for a v3 API call, signed over METHOD\\nPATH\\nTS\\nNONCE\\nBODY\\n."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    nonce_str = nonce_str or uuid.uuid4().hex
    message = f"{method}\n{url_path}\n{timestamp}\n{nonce_str}\n{body}\n".encode("utf-8")
    signature = base64.b64encode(
        private_key.sign(message, padding.PKCS1v15(), hashes.SHA256())
    ).decode("utf-8")
    return (
        f'{AUTH_SCHEMA} mchid="{mch_id}",nonce_str="{nonce_str}",'
        f'signature="{signature}",timestamp="{timestamp}",serial_no="{serial_no}"'
    )


class AesGcmCipher:
    """AEAD_AES_256_GCM decryption keyed by the merchant APIv3 key."""

    def __init__(self, api_v3_key: str) -> None:
        key = api_v3_key.encode("utf-8")
        if len(key) != 32:
            raise ValueError("api_v3_key must be exactly 32 bytes")
        self._aesgcm = AESGCM(key)

    def decrypt(self, associated_data: str, nonce: str, ciphertext: str) -> str:
        try:
            plain = self._aesgcm.decrypt(
                nonce.encode("utf-8"),
                base64.b64decode(ciphertext),
                (associated_data or "").encode("utf-8"),
            )
            return plain.decode("utf-8")
        except (InvalidTag, ValueError) as exc:
            raise DecryptionFailedException(provider=PROVIDER) from exc


CertificateFetcher = Callable[[], Awaitable[Mapping[str, str]]]


class PlatformCertificateStore:
    """
    WeChat Pay platform certificates keyed by serial number.

    Certificates are loaded from ``*.pem`` files in the configured directory.
    An unknown serial triggers a download through ``fetcher`` (GET
    /v3/certificates), at most once per ``refresh_interval`` seconds.
    """

    def __init__(
        self,
        cert_dir: Optional[str] = None,
        *,
        fetcher: Optional[CertificateFetcher] = None,
        refresh_interval: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._keys: dict[str, RSAPublicKey] = {}
        self._fetcher = fetcher
        self._refresh_interval = refresh_interval
        self._clock = clock
        self._last_refresh: Optional[float] = None
        if cert_dir:
            self.load_dir(cert_dir)

    def load_dir(self, cert_dir: str) -> int:
        directory = Path(cert_dir)
        if not directory.is_dir():
            logger.warning("wechat_cert_dir_missing", cert_dir=cert_dir)
            return 0
        loaded = 0
        for path in sorted(directory.glob("*.pem")):
            self.add_pem(path.read_text(encoding="utf-8"))
            loaded += 1
        logger.info("wechat_platform_certs_loaded", cert_dir=cert_dir, count=loaded)
        return loaded

    def add_pem(self, pem: str, serial_no: Optional[str] = None) -> str:
        cert = x509.load_pem_x509_certificate(pem.encode("utf-8"))
        serial = (serial_no or certificate_serial(cert)).upper()
        self._keys[serial] = cast(RSAPublicKey, cert.public_key())
        return serial

    def add_key(self, serial_no: str, public_key: RSAPublicKey) -> None:
        self._keys[serial_no.upper()] = public_key

    async def get(self, serial_no: str) -> Optional[RSAPublicKey]:
        serial = serial_no.upper()
        key = self._keys.get(serial)
        if key is not None or self._fetcher is None:
            return key

        now = self._clock()
        if self._last_refresh is not None and now - self._last_refresh < self._refresh_interval:
            return None
        self._last_refresh = now

        certs = await self._fetcher()
        for fetched_serial, pem in certs.items():
            self.add_pem(pem, fetched_serial)
        logger.info("wechat_platform_certs_refreshed", count=len(certs), requested_serial=serial)
        return self._keys.get(serial)


class WechatPayVerifier:
    """Verifies inbound notifications: RSA-SHA256 over ``timestamp\\nnonce\\nbody\\n``."""

    REQUIRED_HEADERS = ("wechatpay-serial", "wechatpay-signature", "wechatpay-timestamp", "wechatpay-nonce")

    def __init__(
        self,
        store: PlatformCertificateStore,
        *,
        tolerance_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._tolerance = tolerance_seconds
        self._clock = clock

    async def validate(self, headers: Mapping[str, str], body: str, notification_id: str) -> bool:
        lowered = {k.lower(): v for k, v in headers.items()}
        missing = [h for h in self.REQUIRED_HEADERS if not lowered.get(h)]
        if missing:
            logger.warning("wechat_signature_headers_missing", notification_id=notification_id, missing=missing)
            return False

        try:
            timestamp = int(lowered["wechatpay-timestamp"])
        except ValueError:
            return False
        if abs(self._clock() - timestamp) > self._tolerance:
            logger.warning("wechat_signature_expired", notification_id=notification_id, timestamp=timestamp)
            return False

        serial = lowered["wechatpay-serial"]
        public_key = await self._store.get(serial)
        if public_key is None:
            logger.warning("wechat_platform_cert_unknown", notification_id=notification_id, serial=serial)
            return False

        message = f"{lowered['wechatpay-timestamp']}\n{lowered['wechatpay-nonce']}\n{body}\n".encode("utf-8")
        try:
            signature = base64.b64decode(lowered["wechatpay-signature"], validate=True)
            public_key.verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
        except (InvalidSignature, ValueError):
            logger.warning("wechat_signature_mismatch", notification_id=notification_id, serial=serial)
            return False
        return True

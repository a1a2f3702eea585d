import base64
import time

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from domain.common.exceptions import DecryptionFailedException
from infrastructure.external.payments.wechat_crypto import (
    AesGcmCipher,
    PlatformCertificateStore,
    WechatPayVerifier,
    build_authorization,
)
from tests.support import API_V3_KEY, PLATFORM_SERIAL, self_signed_certificate


def test_cipher_decrypts_gateway_resource():
    ciphertext = AESGCM(API_V3_KEY.encode()).encrypt(b"0123456789ab", b'{"trade_state":"SUCCESS"}', b"transaction")
    plain = AesGcmCipher(API_V3_KEY).decrypt("transaction", "0123456789ab", base64.b64encode(ciphertext).decode())
    assert plain == '{"trade_state":"SUCCESS"}'


def test_cipher_rejects_tampered_associated_data():
    ciphertext = AESGCM(API_V3_KEY.encode()).encrypt(b"0123456789ab", b"{}", b"transaction")
    with pytest.raises(DecryptionFailedException):
        AesGcmCipher(API_V3_KEY).decrypt("refund", "0123456789ab", base64.b64encode(ciphertext).decode())


def test_cipher_requires_32_byte_key():
    with pytest.raises(ValueError):
        AesGcmCipher("too-short")


def test_authorization_header_is_verifiable(platform_key):
    header = build_authorization(
        mch_id="1900000001",
        serial_no="MCH_SERIAL",
        private_key=platform_key,
        method="GET",
        url_path="/v3/certificates",
        body="",
        timestamp=1760000000,
        nonce_str="abc",
    )
    schema, _, params = header.partition(" ")
    fields = dict(item.split("=", 1) for item in params.split(","))
    fields = {k: v.strip('"') for k, v in fields.items()}

    assert schema == "WECHATPAY2-SHA256-RSA2048"
    assert fields["mchid"] == "1900000001"
    assert fields["serial_no"] == "MCH_SERIAL"
    platform_key.public_key().verify(
        base64.b64decode(fields["signature"]),
        b"GET\n/v3/certificates\n1760000000\nabc\n\n",
        padding.PKCS1v15(),
        hashes.SHA256(),
    )


@pytest.mark.asyncio
async def test_store_loads_certificates_from_directory(tmp_path, platform_key):
    (tmp_path / "wechatpay_1.pem").write_text(self_signed_certificate(platform_key, 0xABC123))
    store = PlatformCertificateStore(str(tmp_path))
    assert await store.get("abc123") is not None
    assert await store.get("FFFF") is None


@pytest.mark.asyncio
async def test_store_refreshes_unknown_serial_at_most_once_per_interval(platform_key):
    now = {"t": 1000.0}
    fetched = []

    async def fetcher():
        fetched.append(now["t"])
        return {"NEW_SERIAL": self_signed_certificate(platform_key, 42)}

    store = PlatformCertificateStore(fetcher=fetcher, refresh_interval=600, clock=lambda: now["t"])

    assert await store.get("MISSING") is None
    assert await store.get("MISSING") is None
    assert len(fetched) == 1
    assert await store.get("new_serial") is not None

    now["t"] += 601
    assert await store.get("MISSING") is None
    assert len(fetched) == 2


def _signed_headers(key, body: str, timestamp: int):
    nonce = "n0nce"
    signature = key.sign(f"{timestamp}\n{nonce}\n{body}\n".encode(), padding.PKCS1v15(), hashes.SHA256())
    return {
        "Wechatpay-Serial": PLATFORM_SERIAL,
        "Wechatpay-Signature": base64.b64encode(signature).decode(),
        "Wechatpay-Timestamp": str(timestamp),
        "Wechatpay-Nonce": nonce,
    }


@pytest.mark.asyncio
async def test_verifier(platform_key):
    store = PlatformCertificateStore()
    store.add_key(PLATFORM_SERIAL, platform_key.public_key())
    verifier = WechatPayVerifier(store, tolerance_seconds=300)
    body = '{"id":"EV-1"}'
    now = int(time.time())

    assert await verifier.validate(_signed_headers(platform_key, body, now), body, "EV-1")
    assert not await verifier.validate(_signed_headers(platform_key, body, now), body + " ", "EV-1")
    assert not await verifier.validate(_signed_headers(platform_key, body, now - 3600), body, "EV-1")

    headers = _signed_headers(platform_key, body, now)
    del headers["Wechatpay-Nonce"]
    assert not await verifier.validate(headers, body, "EV-1")

    headers = _signed_headers(platform_key, body, now)
    headers["Wechatpay-Serial"] = "UNKNOWN"
    assert not await verifier.validate(headers, body, "EV-1")

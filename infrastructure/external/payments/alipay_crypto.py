"""
Alipay OpenAPI RSA2 (SHA256withRSA) signing and verification.

The signed content is the parameter map sorted by key, joined as
``k=v&k=v``, leaving out ``sign``, ``sign_type`` and empty values.
"""
from __future__ import annotations

import base64
from typing import Mapping, cast

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from cryptography.hazmat.primitives.serialization import load_pem_private_key, load_pem_public_key

from core.logging_config import get_logger


logger = get_logger(__name__)

_EXCLUDED = {"sign", "sign_type"}


def _armor(key: str, label: str) -> str:
    # Alipay console exports bare base64 keys without PEM armor
    if "-----BEGIN" in key:
        return key
    body = "".join(key.split())
    lines = [body[i:i + 64] for i in range(0, len(body), 64)]
    return "\n".join([f"-----BEGIN {label}-----", *lines, f"-----END {label}-----"])


def load_private_key(pem: str) -> RSAPrivateKey:
    return cast(RSAPrivateKey, load_pem_private_key(_armor(pem, "PRIVATE KEY").encode("utf-8"), password=None))


def load_public_key(pem: str) -> RSAPublicKey:
    return cast(RSAPublicKey, load_pem_public_key(_armor(pem, "PUBLIC KEY").encode("utf-8")))


def sign_content(params: Mapping[str, str]) -> str:
    items = sorted(
        (k, str(v)) for k, v in params.items()
        if k not in _EXCLUDED and v is not None and str(v) != ""
    )
    return "&".join(f"{k}={v}" for k, v in items)


def rsa2_sign(params: Mapping[str, str], private_key: RSAPrivateKey) -> str:
    signature = private_key.sign(sign_content(params).encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("utf-8")


def rsa2_verify(params: Mapping[str, str], public_key: RSAPublicKey) -> bool:
    sign = params.get("sign")
    if not sign:
        return False
    try:
        signature = base64.b64decode(sign, validate=True)
        public_key.verify(signature, sign_content(params).encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    except (InvalidSignature, ValueError):
        return False
    return True


class AlipayVerifier:
    """Verifies asynchronous notifications with the Alipay public key."""

    def __init__(self, public_key: RSAPublicKey) -> None:
        self._public_key = public_key

    @classmethod
    def from_pem(cls, pem: str) -> "AlipayVerifier":
        return cls(load_public_key(pem))

    def validate(self, params: Mapping[str, str]) -> bool:
        ok = rsa2_verify(params, self._public_key)
        if not ok:
            logger.warning("alipay_signature_mismatch", out_trade_no=params.get("out_trade_no"))
        return ok

"""金额换算：本地统一以分（整数）存储，支付宝接口使用"元.分"字符串"""
from decimal import Decimal, InvalidOperation

from domain.common.exceptions import DomainValidationException


def fen_to_yuan(fen: int) -> str:
    return f"{fen // 100}.{fen % 100:02d}"


def yuan_to_fen(yuan: str) -> int:
    try:
        value = Decimal(str(yuan).strip())
    except InvalidOperation:
        raise DomainValidationException(f"金额格式错误: {yuan}", field="amount")
    fen = value * 100
    if fen != fen.to_integral_value():
        raise DomainValidationException(f"金额精度超过分: {yuan}", field="amount")
    return int(fen)

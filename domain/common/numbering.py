"""
业务单号生成
"""
from __future__ import annotations

import random
from datetime import datetime
from typing import Optional

ORDER_PREFIX = "ORDER_"
REFUND_PREFIX = "REFUND_"


def _business_no(prefix: str, now: Optional[datetime] = None) -> str:
    """<prefix><yyyyMMddHHmmssSSS><3位随机数>"""
    now = now or datetime.now()
    stamp = now.strftime("%Y%m%d%H%M%S") + f"{now.microsecond // 1000:03d}"
    return f"{prefix}{stamp}{random.randint(0, 999):03d}"


def new_order_no(now: Optional[datetime] = None) -> str:
    return _business_no(ORDER_PREFIX, now)


def new_refund_no(now: Optional[datetime] = None) -> str:
    return _business_no(REFUND_PREFIX, now)

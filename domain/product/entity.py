"""
商品实体（只读，由商品目录维护）
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class Product:
    id: Optional[int]
    title: str
    price: int  # 单位：分
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None

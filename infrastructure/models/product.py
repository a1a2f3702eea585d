"""
商品数据库模型
"""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone

from .base import Base


class ProductModel(Base):
    __tablename__ = "t_product"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(256), nullable=False, comment="商品名称")
    price = Column(Integer, nullable=False, comment="价格（分）")

    create_time = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间",
    )
    update_time = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间",
    )

    def __repr__(self):
        return f"<ProductModel(id={self.id}, title='{self.title}', price={self.price})>"

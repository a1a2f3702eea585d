"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, DateTime, Index, text
from datetime import datetime, timezone

from .base import Base


class OrderInfoModel(Base):
    """
    订单数据库模型

    所有业务规则都在 domain.order.entity.OrderInfo 中
    """
    __tablename__ = "t_order_info"

    id = Column(Integer, primary_key=True, index=True)

    order_no = Column(String(50), unique=True, index=True, nullable=False, comment="商户订单编号")
    product_id = Column(Integer, nullable=False, comment="商品ID")
    title = Column(String(256), nullable=False, comment="订单标题")
    total_fee = Column(Integer, nullable=False, comment="订单金额（分）")
    payment_type = Column(String(20), nullable=False, comment="支付方式: wxpay/alipay")
    code_url = Column(String(1024), nullable=True, comment="支付二维码链接/跳转地址")

    order_status = Column(
        String(32),
        nullable=False,
        default="NOTPAY",
        index=True,
        comment="订单状态: NOTPAY/SUCCESS/CLOSED/CANCEL/REFUND_PROCESSING/REFUND_SUCCESS/REFUND_ABNORMAL",
    )

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

    __table_args__ = (
        # 同一商品+支付方式最多只有一笔未支付订单
        Index(
            "uq_order_unpaid_product_type",
            "product_id",
            "payment_type",
            unique=True,
            sqlite_where=text("order_status = 'NOTPAY'"),
            postgresql_where=text("order_status = 'NOTPAY'"),
        ),
        Index("ix_order_status_type_created", "order_status", "payment_type", "create_time"),
    )

    def __repr__(self):
        return (
            f"<OrderInfoModel(id={self.id}, order_no='{self.order_no}', "
            f"total_fee={self.total_fee}, status='{self.order_status}')>"
        )

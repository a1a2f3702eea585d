"""
退款数据库模型
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from datetime import datetime, timezone

from .base import Base


class RefundInfoModel(Base):
    """退款单数据库模型"""
    __tablename__ = "t_refund_info"

    id = Column(Integer, primary_key=True, index=True)

    refund_no = Column(String(50), unique=True, index=True, nullable=False, comment="商户退款单编号")
    order_no = Column(String(50), index=True, nullable=False, comment="商户订单编号")
    refund_id = Column(String(64), nullable=True, comment="支付渠道退款单号")

    total_fee = Column(Integer, nullable=False, comment="原订单金额（分）")
    refund = Column(Integer, nullable=False, comment="退款金额（分）")
    reason = Column(String(256), nullable=True, comment="退款原因")
    payment_type = Column(String(20), nullable=False, comment="支付方式")

    refund_status = Column(
        String(32),
        nullable=False,
        default="PROCESSING",
        index=True,
        comment="退款状态: PROCESSING/SUCCESS/ABNORMAL",
    )

    content_return = Column(Text, nullable=True, comment="申请退款返回参数")
    content_notify = Column(Text, nullable=True, comment="退款结果通知/查询参数")

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
        Index("ix_refund_status_type_created", "refund_status", "payment_type", "create_time"),
    )

    def __repr__(self):
        return (
            f"<RefundInfoModel(id={self.id}, refund_no='{self.refund_no}', "
            f"refund={self.refund}, status='{self.refund_status}')>"
        )

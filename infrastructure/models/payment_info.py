"""
支付日志数据库模型（只追加）
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, UniqueConstraint
from datetime import datetime, timezone

from .base import Base


class PaymentInfoModel(Base):
    __tablename__ = "t_payment_info"

    id = Column(Integer, primary_key=True, index=True)

    order_no = Column(String(50), index=True, nullable=False, comment="商户订单编号")
    payment_type = Column(String(20), nullable=False, comment="支付方式")
    transaction_id = Column(String(64), nullable=True, comment="支付渠道交易号")
    trade_type = Column(String(32), nullable=True, comment="交易类型")
    trade_state = Column(String(32), nullable=False, comment="交易状态")
    payer_total = Column(Integer, nullable=True, comment="用户实际支付金额（分）")
    content = Column(Text, nullable=False, comment="通知/查询原始报文")

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
        # 一笔订单最多记录一条成功支付日志
        UniqueConstraint("order_no", "payment_type", name="uq_payment_info_order_type"),
    )

from datetime import datetime

import pytest

from domain.common.exceptions import DomainValidationException
from domain.common.money import fen_to_yuan, yuan_to_fen
from domain.common.numbering import new_order_no, new_refund_no
from domain.order.entity import OrderInfo, OrderStatus, PaymentType, can_transition, sources_of
from domain.refund.entity import RefundInfo, RefundStatus


def _order(**overrides):
    data = dict(
        id=None,
        order_no="ORDER_20261016101500000001",
        product_id=1,
        title="Java课程",
        total_fee=1,
        payment_type="wxpay",
    )
    data.update(overrides)
    return OrderInfo(**data)


def test_order_coerces_enums_and_defaults_to_notpay():
    order = _order()
    assert order.payment_type is PaymentType.WXPAY
    assert order.order_status is OrderStatus.NOTPAY


def test_order_rejects_non_positive_amount():
    with pytest.raises(DomainValidationException):
        _order(total_fee=0)


def test_order_naive_timestamps_are_read_as_utc():
    order = _order(create_time=datetime(2026, 10, 16, 2, 15))
    assert order.create_time.utcoffset().total_seconds() == 0


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (OrderStatus.NOTPAY, OrderStatus.SUCCESS, True),
        (OrderStatus.NOTPAY, OrderStatus.CANCEL, True),
        (OrderStatus.SUCCESS, OrderStatus.REFUND_PROCESSING, True),
        (OrderStatus.REFUND_PROCESSING, OrderStatus.REFUND_ABNORMAL, True),
        (OrderStatus.SUCCESS, OrderStatus.CLOSED, False),
        (OrderStatus.CLOSED, OrderStatus.SUCCESS, False),
        (OrderStatus.REFUND_SUCCESS, OrderStatus.REFUND_PROCESSING, False),
    ],
)
def test_order_state_machine(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_sources_of_refund_success():
    assert sources_of(OrderStatus.REFUND_SUCCESS) == (OrderStatus.REFUND_PROCESSING,)


@pytest.mark.parametrize(
    "target, sources",
    [
        (OrderStatus.SUCCESS, (OrderStatus.NOTPAY,)),
        (OrderStatus.CLOSED, (OrderStatus.NOTPAY,)),
        (OrderStatus.CANCEL, (OrderStatus.NOTPAY,)),
        (OrderStatus.REFUND_PROCESSING, (OrderStatus.SUCCESS,)),
        (OrderStatus.REFUND_ABNORMAL, (OrderStatus.REFUND_PROCESSING,)),
        (OrderStatus.NOTPAY, ()),
    ],
)
def test_conditional_update_sources(target, sources):
    assert sources_of(target) == sources


def test_refund_amount_bounded_by_order_total():
    with pytest.raises(DomainValidationException):
        RefundInfo(id=None, refund_no="REFUND_1", order_no="ORDER_1", total_fee=100, refund=101, payment_type="wxpay")
    refund = RefundInfo(id=None, refund_no="REFUND_1", order_no="ORDER_1", total_fee=100, refund=100, payment_type="alipay")
    assert refund.refund_status is RefundStatus.PROCESSING
    assert refund.payment_type is PaymentType.ALIPAY


def test_money_conversion():
    assert fen_to_yuan(1) == "0.01"
    assert fen_to_yuan(12345) == "123.45"
    assert yuan_to_fen("0.01") == 1
    assert yuan_to_fen("100") == 10000
    with pytest.raises(DomainValidationException):
        yuan_to_fen("0.001")
    with pytest.raises(DomainValidationException):
        yuan_to_fen("abc")


def test_business_numbers():
    now = datetime(2026, 10, 16, 10, 15, 0, 123000)
    order_no = new_order_no(now)
    assert order_no.startswith("ORDER_20261016101500123")
    assert len(order_no) == len("ORDER_") + 17 + 3
    assert new_refund_no(now).startswith("REFUND_20261016101500123")

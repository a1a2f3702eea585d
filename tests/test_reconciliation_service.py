import json
from datetime import datetime, timezone

import pytest

from application.services.reconciliation_service import ReconcileLock
from domain.common.exceptions import (
    DomainValidationException,
    OrderBusyException,
    OrderNotRefundableException,
)
from domain.order.entity import OrderStatus, PaymentType
from domain.refund.entity import RefundStatus
from tests.support import count_logs, load_order, wechat_refund, wechat_transaction


ORDER_NO = "ORDER_20261016101500000001"
FAR_FUTURE = datetime(2100, 1, 1, tzinfo=timezone.utc)


def test_reconcile_lock_is_keyed_and_non_reentrant():
    lock = ReconcileLock()
    with lock.try_acquire("A") as first:
        assert first
        with lock.try_acquire("A") as again:
            assert not again
        with lock.try_acquire("B") as other:
            assert other
        assert lock.is_held("A")
    assert not lock.is_held("A")


@pytest.mark.asyncio
async def test_success_outcome_is_idempotent(core, uow_factory, make_order):
    await make_order(ORDER_NO)
    plaintext = wechat_transaction(ORDER_NO)

    for _ in range(3):
        assert await core.apply_payment_outcome(PaymentType.WXPAY, plaintext)

    order = await load_order(uow_factory, ORDER_NO)
    assert order.order_status == OrderStatus.SUCCESS
    assert await count_logs(uow_factory, ORDER_NO) == 1

    async with uow_factory(readonly=True) as uow:
        [log] = await uow.payment_log_repository.list_by_order_no(ORDER_NO)
    assert log.trade_state == "SUCCESS"
    assert log.payer_total == 1
    assert log.content == plaintext


@pytest.mark.asyncio
async def test_terminal_order_ignores_late_success(core, uow_factory, make_order):
    await make_order(ORDER_NO, status=OrderStatus.CLOSED)
    assert await core.apply_payment_outcome(PaymentType.WXPAY, wechat_transaction(ORDER_NO))
    order = await load_order(uow_factory, ORDER_NO)
    assert order.order_status == OrderStatus.CLOSED
    assert await count_logs(uow_factory, ORDER_NO) == 0


@pytest.mark.asyncio
async def test_closed_trade_state_closes_order_without_log(core, uow_factory, make_order):
    await make_order(ORDER_NO)
    await core.apply_payment_outcome(PaymentType.WXPAY, wechat_transaction(ORDER_NO, "PAYERROR"))
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.CLOSED
    assert await count_logs(uow_factory, ORDER_NO) == 0


@pytest.mark.asyncio
async def test_pending_trade_states_leave_order_untouched(core, uow_factory, make_order):
    await make_order(ORDER_NO)
    for state in ("NOTPAY", "USERPAYING"):
        assert await core.apply_payment_outcome(PaymentType.WXPAY, wechat_transaction(ORDER_NO, state))
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.NOTPAY


@pytest.mark.asyncio
async def test_busy_lock_skips_without_mutation(core, lock, uow_factory, make_order):
    await make_order(ORDER_NO)
    with lock.try_acquire(ORDER_NO):
        applied = await core.apply_payment_outcome(PaymentType.WXPAY, wechat_transaction(ORDER_NO))
    assert applied is False
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.NOTPAY
    assert await count_logs(uow_factory, ORDER_NO) == 0


@pytest.mark.asyncio
async def test_unknown_order_and_wrong_payment_type_are_ignored(core, uow_factory, make_order):
    assert await core.apply_payment_outcome(PaymentType.WXPAY, wechat_transaction("ORDER_UNKNOWN"))

    await make_order(ORDER_NO, payment_type=PaymentType.ALIPAY)
    assert await core.apply_payment_outcome(PaymentType.WXPAY, wechat_transaction(ORDER_NO))
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.NOTPAY


@pytest.mark.asyncio
async def test_malformed_plaintext_is_rejected(core):
    with pytest.raises(DomainValidationException):
        await core.apply_payment_outcome(PaymentType.WXPAY, "not json")
    with pytest.raises(DomainValidationException):
        await core.apply_payment_outcome(PaymentType.WXPAY, json.dumps({"trade_state": "SUCCESS"}))


@pytest.mark.asyncio
async def test_alipay_outcome_maps_trade_status(core, uow_factory, make_order):
    await make_order(ORDER_NO, payment_type=PaymentType.ALIPAY)
    plaintext = json.dumps(
        {"out_trade_no": ORDER_NO, "trade_status": "TRADE_SUCCESS", "trade_no": "2026101622001", "total_amount": "0.01"}
    )
    await core.apply_payment_outcome(PaymentType.ALIPAY, plaintext)
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.SUCCESS

    async with uow_factory(readonly=True) as uow:
        [log] = await uow.payment_log_repository.list_by_order_no(ORDER_NO)
    assert log.transaction_id == "2026101622001"
    assert log.payer_total == 1


@pytest.mark.asyncio
async def test_close_and_cancel(core, uow_factory, make_order):
    await make_order(ORDER_NO)
    assert await core.close_order(ORDER_NO, OrderStatus.CANCEL) == OrderStatus.CANCEL
    # already terminal: reports the current status instead of overwriting it
    assert await core.close_order(ORDER_NO, OrderStatus.CLOSED) == OrderStatus.CANCEL


@pytest.mark.asyncio
async def test_close_when_busy_returns_none(core, lock, make_order):
    await make_order(ORDER_NO)
    with lock.try_acquire(ORDER_NO):
        assert await core.close_order(ORDER_NO) is None


@pytest.mark.asyncio
async def test_refund_requires_paid_order(core, uow_factory, make_order):
    await make_order(ORDER_NO)
    with pytest.raises(OrderNotRefundableException):
        await core.begin_refund(ORDER_NO, "不想要了")

    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.NOTPAY
    async with uow_factory(readonly=True) as uow:
        assert await uow.refund_repository.list_stale(RefundStatus.PROCESSING, PaymentType.WXPAY, FAR_FUTURE) == []


@pytest.mark.asyncio
async def test_refund_busy(core, lock, make_order):
    await make_order(ORDER_NO, status=OrderStatus.SUCCESS)
    with lock.try_acquire(ORDER_NO):
        with pytest.raises(OrderBusyException):
            await core.begin_refund(ORDER_NO)


@pytest.mark.asyncio
async def test_refund_lifecycle(core, uow_factory, make_order):
    await make_order(ORDER_NO, status=OrderStatus.SUCCESS)
    refund = await core.begin_refund(ORDER_NO, "不想要了")
    assert refund.refund_no.startswith("REFUND_")
    assert refund.refund == refund.total_fee
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.REFUND_PROCESSING

    # still processing at the gateway: the body is recorded, nothing moves
    processing = wechat_refund(refund.refund_no, ORDER_NO, "PROCESSING", field="status")
    await core.apply_refund_outcome(PaymentType.WXPAY, processing, from_response=True)
    async with uow_factory(readonly=True) as uow:
        stored = await uow.refund_repository.get_by_refund_no(refund.refund_no)
    assert stored.refund_status == RefundStatus.PROCESSING
    assert stored.content_return == processing

    notify = wechat_refund(refund.refund_no, ORDER_NO, "SUCCESS")
    for _ in range(2):
        await core.apply_refund_outcome(PaymentType.WXPAY, notify)

    async with uow_factory(readonly=True) as uow:
        stored = await uow.refund_repository.get_by_refund_no(refund.refund_no)
    assert stored.refund_status == RefundStatus.SUCCESS
    assert stored.content_notify == notify
    assert stored.refund_id is not None
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.REFUND_SUCCESS


@pytest.mark.asyncio
async def test_reject_refund_marks_abnormal(core, uow_factory, make_order):
    await make_order(ORDER_NO, status=OrderStatus.SUCCESS)
    refund = await core.begin_refund(ORDER_NO)
    assert await core.reject_refund(refund.refund_no, '{"code":"NOT_ENOUGH"}')

    async with uow_factory(readonly=True) as uow:
        stored = await uow.refund_repository.get_by_refund_no(refund.refund_no)
    assert stored.refund_status == RefundStatus.ABNORMAL
    assert stored.content_return == '{"code":"NOT_ENOUGH"}'
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.REFUND_ABNORMAL

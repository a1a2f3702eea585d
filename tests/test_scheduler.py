import asyncio

import pytest

from domain.order.entity import PaymentType
from infrastructure.tasks import PeriodicRunner, start_reconciler


@pytest.mark.asyncio
async def test_runner_keeps_going_after_failures():
    calls = []

    async def job():
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("boom")

    runner = PeriodicRunner(name="test", interval_seconds=0.01, job=job)
    runner.start()
    while len(calls) < 3:
        await asyncio.sleep(0.01)
    await runner.stop()

    assert len(calls) >= 3
    assert runner.stop_event.is_set()


@pytest.mark.asyncio
async def test_stop_interrupts_the_wait():
    runs = []

    async def job():
        runs.append(1)

    runner = PeriodicRunner(name="slow", interval_seconds=3600, job=job)
    runner.start()
    await asyncio.sleep(0.05)
    await asyncio.wait_for(runner.stop(), timeout=1)
    assert runs == [1]


class _RecordingReconciler:
    payment_types = list(PaymentType)

    def __init__(self):
        self.calls = []

    async def sweep_stale_orders(self, payment_type):
        self.calls.append(("orders", payment_type))

    async def sweep_stale_refunds(self, payment_type):
        self.calls.append(("refunds", payment_type))


@pytest.mark.asyncio
async def test_start_reconciler_runs_every_sweep():
    reconciler = _RecordingReconciler()
    stop = asyncio.Event()

    runners = start_reconciler(reconciler, interval_seconds=3600, stop_event=stop)
    await asyncio.sleep(0.05)
    stop.set()
    for runner in runners:
        await runner.stop()

    assert sorted(r.name for r in runners) == [
        "reconcile-orders-alipay",
        "reconcile-orders-wxpay",
        "reconcile-refunds-alipay",
        "reconcile-refunds-wxpay",
    ]
    assert set(reconciler.calls) == {
        ("orders", PaymentType.WXPAY),
        ("refunds", PaymentType.WXPAY),
        ("orders", PaymentType.ALIPAY),
        ("refunds", PaymentType.ALIPAY),
    }

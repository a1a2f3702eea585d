"""
事件循环内的周期任务

对账任务必须与回调处理共享进程内对账锁，因此直接运行在应用的事件循环中，
由应用 lifespan 启动与停止。
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional

from application.services.reconciler import Reconciler
from core.logging_config import get_logger


logger = get_logger(__name__)


class PeriodicRunner:
    """
    每隔 interval_seconds 执行一次 job，直到 stop_event 被设置

    - 单次执行异常只记录日志，循环继续
    - 停止信号在两次执行之间生效，不会打断正在执行的 job
    """

    def __init__(
        self,
        *,
        name: str,
        interval_seconds: float,
        job: Callable[[], Awaitable[object]],
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.name = name
        self._interval = float(interval_seconds)
        self._job = job
        self._stop_event = stop_event or asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop_event

    async def run(self) -> None:
        logger.info("periodic_task_started", task=self.name, interval_seconds=self._interval)
        while not self._stop_event.is_set():
            try:
                await self._job()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("periodic_task_failed", task=self.name, exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
        logger.info("periodic_task_stopped", task=self.name)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=self.name)
        return self._task

    async def stop(self, timeout: float = 10.0) -> None:
        self._stop_event.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("periodic_task_stop_timeout", task=self.name)
            self._task.cancel()
        finally:
            self._task = None


def start_reconciler(
    reconciler: Reconciler,
    *,
    interval_seconds: float,
    stop_event: Optional[asyncio.Event] = None,
) -> List[PeriodicRunner]:
    """为每种支付方式启动订单与退款两个对账任务，共享同一个停止信号"""
    stop_event = stop_event or asyncio.Event()
    runners: List[PeriodicRunner] = []
    for payment_type in reconciler.payment_types:
        runners.append(
            PeriodicRunner(
                name=f"reconcile-orders-{payment_type.value}",
                interval_seconds=interval_seconds,
                job=lambda pt=payment_type: reconciler.sweep_stale_orders(pt),
                stop_event=stop_event,
            )
        )
        runners.append(
            PeriodicRunner(
                name=f"reconcile-refunds-{payment_type.value}",
                interval_seconds=interval_seconds,
                job=lambda pt=payment_type: reconciler.sweep_stale_refunds(pt),
                stop_event=stop_event,
            )
        )
    for runner in runners:
        runner.start()
    return runners

"""
LoadMonitor - мониторинг нагрузки CPU и памяти

Два независимых цикла:
- замер (каждые LOAD_SAMPLE_INTERVAL секунд) публикует новый SystemLoadSnapshot
- корректировка (каждые LOAD_ADJUST_INTERVAL секунд) передает последний снимок
  в TierQueueManager
"""
import asyncio
import logging
from typing import Callable, Tuple, Optional

import psutil

from vidqueue import config
from vidqueue.models.system_load import SystemLoadSnapshot
from vidqueue.scheduler.context import SchedulerContext

logger = logging.getLogger(__name__)

Sampler = Callable[[], Tuple[float, float]]


def psutil_sampler() -> Tuple[float, float]:
    """Загрузка CPU и памяти хоста в процентах"""
    # interval=None - не блокирует, считает от предыдущего вызова
    return psutil.cpu_percent(interval=None), psutil.virtual_memory().percent


class LoadMonitor:
    """
    Args:
        context: Общее состояние (сюда публикуется снимок)
        on_adjust: Шаг корректировки уровней (TierQueueManager.apply_load)
        sampler: Источник замеров (для тестов)
    """

    def __init__(
        self,
        context: SchedulerContext,
        on_adjust: Callable[[SystemLoadSnapshot], None],
        sampler: Optional[Sampler] = None,
        sample_interval: float = config.LOAD_SAMPLE_INTERVAL,
        adjust_interval: float = config.LOAD_ADJUST_INTERVAL,
    ):
        self.context = context
        self.on_adjust = on_adjust
        self.sampler = sampler or psutil_sampler
        self.sample_interval = sample_interval
        self.adjust_interval = adjust_interval

    def sample_once(self) -> SystemLoadSnapshot:
        """Сделать замер и опубликовать снимок"""
        cpu_percent, memory_percent = self.sampler()
        snapshot = SystemLoadSnapshot.from_sample(cpu_percent, memory_percent)
        self.context.publish_snapshot(snapshot)
        logger.info(
            f"[SYSTEM_LOAD] CPU: {snapshot.cpu_percent:.2f}%, Memory: {snapshot.memory_percent:.2f}%, "
            f"Overloaded: {snapshot.is_overloaded} ({snapshot.level.value})"
        )
        return snapshot

    def adjust_once(self) -> None:
        """Передать последний снимок в корректировку очередей"""
        self.on_adjust(self.context.snapshot)

    async def _sample_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sample_interval)
            try:
                self.sample_once()
            except Exception as e:
                logger.error(f"[SYSTEM_LOAD] Error monitoring system load: {e}", exc_info=True)

    async def _adjust_loop(self) -> None:
        while True:
            await asyncio.sleep(self.adjust_interval)
            try:
                self.adjust_once()
            except Exception as e:
                logger.error(f"[SYSTEM_LOAD] Error adjusting queues: {e}", exc_info=True)

    def start(self) -> None:
        """Первый замер сразу, затем циклы как фоновые задачи контекста"""
        self.sample_once()
        self.adjust_once()
        self.context.spawn(self._sample_loop(), name='load-sample')
        self.context.spawn(self._adjust_loop(), name='load-adjust')
        logger.info(
            f"[SYSTEM_LOAD] Monitoring started (sample every {self.sample_interval:.0f}s, "
            f"adjust every {self.adjust_interval:.0f}s)"
        )

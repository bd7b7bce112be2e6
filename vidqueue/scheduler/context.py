"""
SchedulerContext - общее состояние планировщика

Снимок нагрузки, состояния уровней, состояние бэкенда очередей и фоновые
задачи (таймеры, отложенные удаления) хранятся здесь, а не в переменных модулей.
"""
import os
import asyncio
import logging
from enum import Enum
from typing import Dict, Set, Optional, Coroutine, Any

from vidqueue import config
from vidqueue.models.system_load import SystemLoadSnapshot
from vidqueue.models.tier import Tier, TierState

logger = logging.getLogger(__name__)


class BackendState(str, Enum):
    UNAVAILABLE = 'unavailable'
    CONNECTING = 'connecting'
    AVAILABLE = 'available'


def default_tier_states() -> Dict[Tier, TierState]:
    return {
        Tier.HIGH: TierState(Tier.HIGH, config.PREMIUM_CONCURRENCY),
        Tier.MID: TierState(Tier.MID, config.FREE_CONCURRENCY),
        Tier.LOW: TierState(Tier.LOW, config.ANONYMOUS_CONCURRENCY),
    }


class SchedulerContext:
    """
    Состояние процесса планировщика

    - snapshot: заменяется целиком (LoadMonitor - единственный писатель)
    - tier_states: меняются при инициализации и шагом корректировки нагрузки
    - backend_state и queues: меняются только TierQueueManager под backend_lock
    """

    def __init__(self, tier_states: Optional[Dict[Tier, TierState]] = None):
        self.snapshot = SystemLoadSnapshot()
        self.tier_states = tier_states or default_tier_states()
        self.backend_state = BackendState.UNAVAILABLE
        self.queues: Dict[Tier, Any] = {}
        self.backend_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def backend_available(self) -> bool:
        return self.backend_state == BackendState.AVAILABLE and bool(self.queues)

    def publish_snapshot(self, snapshot: SystemLoadSnapshot) -> None:
        self.snapshot = snapshot

    def spawn(self, coro: Coroutine, name: str = None) -> asyncio.Task:
        """Запустить фоновую задачу, которая будет отменена при остановке"""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error:
            logger.error(f"[SCHEDULER] Фоновая задача {task.get_name()} завершилась с ошибкой: {error}",
                         exc_info=error)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def schedule_deletion(self, path: str, delay_seconds: float) -> asyncio.Task:
        """Удалить файл через delay_seconds (best effort)"""
        logger.info(f"[SCHEDULER] Файл {path} будет удален через {delay_seconds:.0f}s")
        return self.spawn(_delete_later(path, delay_seconds), name=f"delete:{os.path.basename(path)}")

    async def cancel_tasks(self) -> None:
        """Отменить все фоновые задачи (таймеры, отложенные удаления)"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"[SCHEDULER] Отменено фоновых задач: {len(tasks)}")
        self._tasks.clear()


async def _delete_later(path: str, delay_seconds: float) -> None:
    await asyncio.sleep(delay_seconds)
    try:
        await asyncio.to_thread(os.remove, path)
        logger.info(f"[SCHEDULER] Удален файл анонимного пользователя: {path}")
    except FileNotFoundError:
        logger.debug(f"[SCHEDULER] Файл уже удален: {path}")
    except OSError as e:
        logger.warning(f"[SCHEDULER] Не удалось удалить файл {path}: {e}")

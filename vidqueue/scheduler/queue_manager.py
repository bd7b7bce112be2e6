"""
TierQueueManager - три очереди уровней и состояние бэкенда

Состояния бэкенда: Unavailable -> Connecting -> Available, и Available -> Unavailable
при любой ошибке соединения. Автоматического переподключения нет: connect()
вызывается при старте (или явно).
"""
import asyncio
import logging
from typing import Dict, List, Optional, Callable, Any

from redis.exceptions import RedisError

from vidqueue import config
from vidqueue.database.redis_db import RedisTaskQueue
from vidqueue.models.acquisition_request import AcquisitionRequest
from vidqueue.models.system_load import SystemLoadSnapshot, LoadLevel
from vidqueue.models.tier import Tier
from vidqueue.scheduler.context import SchedulerContext, BackendState
from vidqueue.scheduler.tier_queue import TierQueue, JobHandler
from vidqueue.services.errors import BackendUnavailableError

logger = logging.getLogger(__name__)

# Какие уровни работают при каждом уровне нагрузки (HIGH не ставится на паузу никогда)
ACTIVE_TIERS = {
    LoadLevel.NORMAL: (Tier.HIGH, Tier.MID, Tier.LOW),
    LoadLevel.MODERATE: (Tier.HIGH, Tier.MID),
    LoadLevel.SEVERE: (Tier.HIGH,),
}


class TierQueueManager:
    """
    Владелец очередей premium-queue, free-queue и anonymous-queue

    Args:
        context: Общее состояние планировщика
        handler: Обработчик задачи для всех уровней
        redis_url: URL Redis; None - только прямая обработка
        queue_factory: Фабрика очереди Redis (name, redis_url)
        shutdown_timeout: Сколько ждать выполняющиеся задачи при остановке процесса
    """

    def __init__(
        self,
        context: SchedulerContext,
        handler: JobHandler,
        redis_url: Optional[str] = config.REDIS_URL,
        queue_factory: Callable[[str, str], RedisTaskQueue] = RedisTaskQueue,
        poll_timeout: int = config.QUEUE_POLL_TIMEOUT,
        shutdown_timeout: float = config.SHUTDOWN_TIMEOUT,
    ):
        self.context = context
        self.handler = handler
        self.redis_url = redis_url
        self.queue_factory = queue_factory
        self.poll_timeout = poll_timeout
        self.shutdown_timeout = shutdown_timeout
        # Очереди, отключенные после ошибки Redis, которые еще дорабатывают задачи
        self._retired: List[TierQueue] = []

    async def connect(self) -> bool:
        """
        Создать очереди и проверить соединение

        Returns:
            True если бэкенд доступен
        """
        if not self.redis_url:
            logger.info("[QUEUE_MANAGER] REDIS_URL не задан, работаем в режиме прямой обработки")
            return False

        async with self.context.backend_lock:
            if self.context.backend_state == BackendState.AVAILABLE:
                return True

            self.context.backend_state = BackendState.CONNECTING
            logger.info("[QUEUE_MANAGER] Подключение к Redis...")
            queues: Dict[Tier, TierQueue] = {}
            try:
                for tier in Tier:
                    queues[tier] = TierQueue(
                        self.context.tier_states[tier],
                        self.queue_factory(tier.queue_name, self.redis_url),
                        self.handler,
                        self._on_queue_error,
                        poll_timeout=self.poll_timeout,
                    )
                for queue in queues.values():
                    await queue.task_queue.ping()
            except (RedisError, OSError) as e:
                logger.error(f"[QUEUE_MANAGER] Redis недоступен, используем прямую обработку: {e}")
                self.context.backend_state = BackendState.UNAVAILABLE
                await self._close_queues(list(queues.values()))
                return False

            self.context.queues = queues
            self.context.backend_state = BackendState.AVAILABLE
            for queue in queues.values():
                queue.start()

        logger.info("[QUEUE_MANAGER] Очереди инициализированы")
        return True

    def _on_queue_error(self, queue: TierQueue, error: Exception) -> None:
        self.mark_unavailable(f"{queue.name}: {error}")

    def mark_unavailable(self, reason: str) -> None:
        """
        Перевести бэкенд в Unavailable (ошибка соединения в любой очереди)

        Состояние и очереди меняются синхронно. Очереди перестают брать новые задачи,
        а уже выполняющиеся дорабатывают до конца в фоне.
        """
        if self.context.backend_state != BackendState.AVAILABLE:
            return

        logger.error(f"[QUEUE_MANAGER] Redis unavailable, switching to direct processing: {reason}")
        queues = self.context.queues
        self.context.queues = {}
        self.context.backend_state = BackendState.UNAVAILABLE
        self._retired.extend(queues.values())
        self.context.spawn(self._retire_queues(list(queues.values())), name='queues-teardown')

    async def _retire_queues(self, queues: List[TierQueue]) -> None:
        await asyncio.gather(*(queue.close(timeout=None) for queue in queues))
        for queue in queues:
            if queue in self._retired:
                self._retired.remove(queue)

    async def _close_queues(self, queues: List[TierQueue]) -> None:
        await asyncio.gather(*(queue.close(timeout=self.shutdown_timeout) for queue in queues))

    async def enqueue(self, tier: Tier, request: AcquisitionRequest) -> None:
        """
        Поставить задачу в очередь уровня

        Raises:
            BackendUnavailableError: Очередей нет
            RedisError, OSError: Ошибка Redis при добавлении
        """
        queue = self.context.queues.get(tier)
        if queue is None:
            raise BackendUnavailableError("Queue backend is not available")
        await queue.add(request)

    def _set_paused(self, tier: Tier, paused: bool) -> None:
        state = self.context.tier_states[tier]
        if state.paused == paused:
            return
        state.paused = paused
        logger.info(f"[QUEUE_MANAGER] {'Paused' if paused else 'Resumed'} {state.tier_name}")
        queue = self.context.queues.get(tier)
        if queue is not None:
            queue.apply_state()

    def apply_load(self, snapshot: SystemLoadSnapshot) -> None:
        """
        Корректировка уровней по нагрузке

        - нет перегрузки: все уровни работают
        - перегрузка (cpu и память <= 90): пауза только для low
        - сильная перегрузка (> 90): работает только high
        """
        active = ACTIVE_TIERS[snapshot.level]
        if snapshot.level != LoadLevel.NORMAL:
            logger.warning(
                f"[QUEUE_MANAGER] System {snapshot.level.value} overload "
                f"(cpu {snapshot.cpu_percent:.1f}%, memory {snapshot.memory_percent:.1f}%)"
            )
        for tier in Tier:
            self._set_paused(tier, tier not in active)

    async def queue_lengths(self) -> Dict[Tier, Optional[int]]:
        """Количество ожидающих задач по уровням (None - неизвестно)"""
        lengths: Dict[Tier, Optional[int]] = {}
        for tier in Tier:
            queue = self.context.queues.get(tier)
            if queue is None:
                lengths[tier] = None
                continue
            try:
                lengths[tier] = await queue.length()
            except (RedisError, OSError) as e:
                logger.warning(f"[QUEUE_MANAGER] Не удалось получить длину {queue.name}: {e}")
                lengths[tier] = None
        return lengths

    async def system_status(self) -> Dict[str, Any]:
        """Отчет о состоянии: нагрузка, бэкенд, уровни"""
        lengths = await self.queue_lengths()
        return {
            'systemLoad': self.context.snapshot.to_dict(),
            'backend': self.context.backend_state.value,
            'redisAvailable': self.context.backend_available,
            'queues': {
                state.tier_name: {
                    'tier': tier.value,
                    'concurrency': state.concurrency,
                    'paused': state.paused,
                    'waiting': lengths[tier],
                }
                for tier, state in self.context.tier_states.items()
            },
            'backgroundTasks': self.context.pending_tasks,
        }

    async def close(self) -> None:
        """
        Закрыть все очереди при остановке процесса

        Включая отключенные после ошибки Redis: их задачи получают shutdown_timeout на завершение.
        """
        async with self.context.backend_lock:
            queues = list(self.context.queues.values()) + self._retired
            self.context.queues = {}
            self._retired = []
            self.context.backend_state = BackendState.UNAVAILABLE
        await self._close_queues(queues)
        logger.info("[QUEUE_MANAGER] Все очереди закрыты")

"""
TierQueue - очередь одного уровня и ее пул worker'ов

Каждый worker в цикле берет задачу из Redis (BRPOP) и передает ее в обработчик.
Пауза останавливает получение новых задач, но не прерывает выполняющиеся.
"""
import asyncio
import logging
from typing import Callable, Awaitable, List, Optional

from redis.exceptions import RedisError

from vidqueue import config
from vidqueue.database.redis_db import RedisTaskQueue
from vidqueue.models.acquisition_request import AcquisitionRequest
from vidqueue.models.tier import Tier, TierState

logger = logging.getLogger(__name__)

JobHandler = Callable[[AcquisitionRequest], Awaitable[object]]


class TierQueue:
    """
    Очередь уровня: Redis-список + N worker'ов (N = concurrency)

    Args:
        state: Состояние уровня (concurrency, paused)
        task_queue: Очередь в Redis
        handler: Обработчик задачи (JobProcessor.process)
        on_error: Вызывается при ошибке соединения с Redis
    """

    def __init__(
        self,
        state: TierState,
        task_queue: RedisTaskQueue,
        handler: JobHandler,
        on_error: Callable[['TierQueue', Exception], None],
        poll_timeout: int = config.QUEUE_POLL_TIMEOUT,
    ):
        self.state = state
        self.task_queue = task_queue
        self.handler = handler
        self.on_error = on_error
        self.poll_timeout = poll_timeout
        self._resumed = asyncio.Event()
        self._workers: List[asyncio.Task] = []
        self._closing = False
        self.apply_state()

    @property
    def tier(self) -> Tier:
        return self.state.tier

    @property
    def name(self) -> str:
        return self.state.tier_name

    def apply_state(self) -> None:
        """Синхронизировать пул с TierState.paused"""
        if self.state.paused:
            self._resumed.clear()
        else:
            self._resumed.set()

    def start(self) -> None:
        """Запустить worker'ов"""
        for index in range(self.state.concurrency):
            task = asyncio.ensure_future(self._worker_loop(index))
            task.set_name(f"{self.name}:worker-{index}")
            self._workers.append(task)
        logger.info(f"[QUEUE] {self.name}: запущено worker'ов: {self.state.concurrency}")

    async def add(self, request: AcquisitionRequest) -> None:
        """Поставить задачу в очередь (ошибки Redis пробрасываются)"""
        await self.task_queue.push(request.to_json())
        logger.info(f"[QUEUE] Job {request.job_id} added to {self.name}")

    async def length(self) -> int:
        return await self.task_queue.length()

    async def _next_request(self) -> Optional[AcquisitionRequest]:
        task_json = await self.task_queue.pop(timeout=self.poll_timeout)
        if task_json is None:
            return None
        try:
            return AcquisitionRequest.from_json(task_json)
        except (ValueError, TypeError) as e:
            logger.error(f"[QUEUE] {self.name}: невалидная задача пропущена: {e}")
            return None

    async def _worker_loop(self, index: int) -> None:
        """Основной цикл worker'а - слушает очередь и обрабатывает задачи"""
        while not self._closing:
            await self._resumed.wait()
            if self._closing:
                break

            try:
                request = await self._next_request()
            except (RedisError, OSError) as e:
                logger.error(f"[QUEUE] {self.name} error: {e}")
                self.on_error(self, e)
                return

            if request is None:
                continue

            logger.info(f"[QUEUE] {self.name}[{index}] Processing job {request.job_id}")
            try:
                await self.handler(request)
                logger.info(f"[QUEUE] {self.name}: job {request.job_id} completed")
            except Exception as e:
                # Ошибка одной задачи не останавливает worker
                logger.error(f"[QUEUE] {self.name}: job {request.job_id} failed: {e}", exc_info=True)

    async def close(self, timeout: Optional[float] = config.SHUTDOWN_TIMEOUT) -> None:
        """
        Остановить worker'ов и закрыть соединение

        Новые задачи больше не берутся. Выполняющиеся задачи получают timeout секунд
        на завершение, затем отменяются; timeout=None - ждать их завершения без ограничения.
        """
        self._closing = True
        self._resumed.set()
        current = asyncio.current_task()
        workers = [task for task in self._workers if task is not current]
        if workers:
            done, pending = await asyncio.wait(workers, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(f"[QUEUE] {self.name}: отменено незавершенных задач: {len(pending)}")
                await asyncio.gather(*pending, return_exceptions=True)
        self._workers.clear()

        try:
            await self.task_queue.close()
        except (RedisError, OSError) as e:
            logger.warning(f"[QUEUE] {self.name}: ошибка при закрытии соединения: {e}")
        logger.info(f"[QUEUE] {self.name} closed")

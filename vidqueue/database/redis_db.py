"""
Модуль для работы с Redis
Очередь задач одного уровня: LPUSH при добавлении, BRPOP в worker (FIFO)
"""
import logging
from typing import Optional
from redis import asyncio as redis

from vidqueue import config

logger = logging.getLogger(__name__)

QUEUE_KEY_PREFIX = "queue:"


class RedisTaskQueue:
    """
    Очередь задач в Redis

    Ошибки Redis не перехватываются: вызывающий код переводит
    бэкенд в состояние Unavailable.
    """

    def __init__(self, name: str, redis_url: str = None):
        """
        Args:
            name: Имя очереди (premium-queue, free-queue, anonymous-queue)
            redis_url: URL для подключения к Redis (по умолчанию REDIS_URL)
        """
        self.name = name
        self.key = f"{QUEUE_KEY_PREFIX}{name}"
        self.redis_client = redis.from_url(redis_url or config.REDIS_URL, decode_responses=True)

    async def ping(self) -> bool:
        """Проверка соединения"""
        return bool(await self.redis_client.ping())

    async def push(self, task_json: str) -> None:
        """Добавить задачу (LPUSH - в начало списка)"""
        await self.redis_client.lpush(self.key, task_json)
        logger.debug(f"[QUEUE] Задача добавлена в {self.name}")

    async def pop(self, timeout: int = config.QUEUE_POLL_TIMEOUT) -> Optional[str]:
        """
        Получить задачу (блокирующее ожидание)

        Args:
            timeout: Максимальное время ожидания в секундах

        Returns:
            JSON задачи или None при timeout
        """
        # BRPOP - блокирующее извлечение элемента из конца списка (FIFO)
        result = await self.redis_client.brpop(self.key, timeout=timeout)
        if result:
            _, task_json = result
            return task_json
        return None

    async def length(self) -> int:
        """Количество задач, ожидающих в очереди"""
        return await self.redis_client.llen(self.key)

    async def close(self):
        """Закрыть подключение к Redis"""
        await self.redis_client.close()

"""
Записи задач (внешнее хранилище)

Планировщик только читает и обновляет записи через JobRepository.
PostgresJobRepository использует asyncpg, InMemoryJobRepository - для
режима без БД и тестов.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Dict, Any

import asyncpg

from vidqueue import config

logger = logging.getLogger(__name__)

STATUS_PENDING = 'pending'
STATUS_PROCESSING = 'processing'
STATUS_COMPLETED = 'completed'
STATUS_FAILED = 'failed'

# Поля, которые планировщик может обновлять
UPDATABLE_FIELDS = (
    'progress',
    'status',
    'error_message',
    'artifact_path',
    'file_size_bytes',
    'file_type',
    'expires_at',
)


def _check_fields(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Неизвестные поля записи задачи: {sorted(unknown)}")


class JobRepository(ABC):
    """Интерфейс хранилища записей задач"""

    async def connect(self):
        pass

    async def close(self):
        pass

    @abstractmethod
    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Получить запись задачи или None"""
        pass

    @abstractmethod
    async def update(self, job_id: str, **fields) -> None:
        """
        Обновить поля записи

        Args:
            job_id: ID задачи
            **fields: progress, status, error_message, artifact_path,
                      file_size_bytes, file_type, expires_at
        """
        pass


class InMemoryJobRepository(JobRepository):
    """Записи в памяти процесса"""

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        record = self.records.get(str(job_id))
        return dict(record) if record is not None else None

    async def update(self, job_id: str, **fields) -> None:
        _check_fields(fields)
        async with self._lock:
            record = self.records.setdefault(str(job_id), {'job_id': str(job_id), 'status': STATUS_PENDING})
            record.update(fields)
            record['updated_at'] = datetime.utcnow()


class PostgresJobRepository(JobRepository):
    """Записи задач в таблице videos (PostgreSQL)"""

    def __init__(self, database_url: str = None):
        """
        Args:
            database_url: URL для подключения к PostgreSQL (по умолчанию DATABASE_URL)
        """
        self.database_url = database_url or config.DATABASE_URL
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Создать пул подключений к PostgreSQL"""
        try:
            self.pool = await asyncpg.create_pool(
                self.database_url,
                min_size=1,
                max_size=10,
                command_timeout=60
            )
            logger.info("Подключение к PostgreSQL установлено")
        except Exception as e:
            logger.error(f"Ошибка подключения к PostgreSQL: {e}")
            raise

    async def close(self):
        """Закрыть пул подключений"""
        if self.pool:
            await self.pool.close()
            logger.info("Подключение к PostgreSQL закрыто")

    async def init_schema(self):
        """Создание таблицы videos (для локальной разработки)"""
        if not self.pool:
            await self.connect()

        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS videos (
                    job_id VARCHAR(255) PRIMARY KEY,
                    status VARCHAR(20) NOT NULL DEFAULT 'pending',
                    progress INTEGER NOT NULL DEFAULT 0,
                    error_message TEXT,
                    artifact_path TEXT,
                    file_size_bytes BIGINT,
                    file_type VARCHAR(20),
                    expires_at TIMESTAMP,
                    created_at TIMESTAMP NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP NOT NULL DEFAULT NOW()
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_videos_expires_at ON videos(expires_at)
            """)
        logger.info("Схема БД инициализирована")

    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM videos WHERE job_id = $1", str(job_id))
        return dict(row) if row else None

    async def update(self, job_id: str, **fields) -> None:
        _check_fields(fields)
        if not fields:
            return

        columns = list(fields)
        assignments = ', '.join(f"{column} = ${index + 2}" for index, column in enumerate(columns))
        query = f"UPDATE videos SET {assignments}, updated_at = NOW() WHERE job_id = $1"

        async with self.pool.acquire() as conn:
            result = await conn.execute(query, str(job_id), *[fields[column] for column in columns])
        if result == 'UPDATE 0':
            logger.warning(f"Запись задачи не найдена: job_id={job_id}")

"""
Скрипт для создания таблицы записей задач в PostgreSQL
Запускать из корневой директории проекта: python run_migrations.py
"""
import sys
import os

# Добавляем корневую директорию в PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import asyncio
import logging
from vidqueue import config
from vidqueue.database.job_repository import PostgresJobRepository

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def run_migrations():
    """Инициализация схемы (таблица videos)"""
    if not config.DATABASE_URL:
        logger.error("DATABASE_URL не установлен в переменных окружения")
        return

    repository = PostgresJobRepository(config.DATABASE_URL)
    try:
        await repository.init_schema()
        logger.info("✅ Миграции выполнены")
    finally:
        await repository.close()


if __name__ == "__main__":
    asyncio.run(run_migrations())

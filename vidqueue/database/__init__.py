"""
Модуль для работы с базами данных
"""
from .redis_db import RedisTaskQueue
from .job_repository import JobRepository, InMemoryJobRepository, PostgresJobRepository

__all__ = ['RedisTaskQueue', 'JobRepository', 'InMemoryJobRepository', 'PostgresJobRepository']

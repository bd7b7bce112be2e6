"""
Результаты приема и выполнения задачи
"""
from dataclasses import dataclass
from typing import Optional

from .tier import Tier

STATUS_COMPLETED = 'completed'
STATUS_FAILED = 'failed'


@dataclass(frozen=True)
class ExtractionResult:
    """
    Итог выполнения одной задачи (создается ровно один раз)

    Attributes:
        job_id: ID задачи
        status: completed | failed
        artifact_path: Путь к скачанному файлу (если completed)
        file_size_bytes: Размер файла
        file_type: Расширение файла без точки
        error_message: Текст ошибки (если failed)
    """
    job_id: str
    status: str
    artifact_path: Optional[str] = None
    file_size_bytes: Optional[int] = None
    file_type: Optional[str] = None
    error_message: Optional[str] = None

    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    def is_failed(self) -> bool:
        return self.status == STATUS_FAILED


@dataclass(frozen=True)
class QueuedResponse:
    """
    Ответ AdmissionRouter, когда задача поставлена в очередь

    estimated_wait_seconds - только подсказка для интерфейса, не гарантия.
    """
    job_id: str
    tier: Tier
    estimated_wait_seconds: int
    queued: bool = True

    @property
    def queue_name(self) -> str:
        return self.tier.queue_name

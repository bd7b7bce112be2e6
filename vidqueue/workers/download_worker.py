"""
JobProcessor - обработка одной задачи на скачивание

Используется worker'ами всех уровней и прямой обработкой (одинаковая логика).

Алгоритм:
1. Прогресс 5%
2. Директория пользователя (или anonymous)
3. Скачивание через YtDlpService
4. Прогресс 80%, размер и тип файла
5. Срок хранения по классу пользователя
6. status=completed, прогресс 100%
7. Для анонимных - отложенное удаление файла
При ошибке или отмене: status=failed, прогресс 0, текст ошибки (обрезан), исключение пробрасывается.
"""
import os
import re
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from vidqueue import config
from vidqueue.database.job_repository import (
    JobRepository,
    STATUS_PROCESSING,
    STATUS_COMPLETED,
    STATUS_FAILED,
)
from vidqueue.models.acquisition_request import AcquisitionRequest
from vidqueue.models.extraction_result import ExtractionResult
from vidqueue.models.tier import Tier
from vidqueue.scheduler.context import SchedulerContext
from vidqueue.services.ytdlp_service import YtDlpService
from vidqueue.utils.utils import truncate, format_file_size, get_platform

logger = logging.getLogger(__name__)

PROGRESS_STARTED = 5
PROGRESS_DOWNLOADED = 80
PROGRESS_DONE = 100

ENTITLEMENT_PREMIUM = 'premium'
ENTITLEMENT_REGISTERED = 'registered'
ENTITLEMENT_ANONYMOUS = 'anonymous'

CANCELLED_MESSAGE = 'Задача отменена при остановке обработчика'

_UNSAFE_DIR_CHARS = re.compile(r'[^\w.-]')


def entitlement_for(request: AcquisitionRequest) -> str:
    """
    Класс пользователя для срока хранения

    premium - уровень HIGH или caller_id в policy_settings['premiumUsers'],
    registered - есть caller_id, иначе anonymous.
    """
    if not request.caller_id:
        return ENTITLEMENT_ANONYMOUS
    premium_users = {str(user_id) for user_id in request.policy_settings.get('premiumUsers') or []}
    if request.tier_hint == Tier.HIGH or request.caller_id in premium_users:
        return ENTITLEMENT_PREMIUM
    return ENTITLEMENT_REGISTERED


def retention_period(entitlement: str, settings: Dict[str, Any]) -> timedelta:
    """Срок хранения файла (настройки задачи приоритетнее значений по умолчанию)"""
    if entitlement == ENTITLEMENT_PREMIUM:
        return timedelta(days=float(settings.get('premiumStorageDays') or config.PREMIUM_STORAGE_DAYS))
    if entitlement == ENTITLEMENT_REGISTERED:
        return timedelta(days=float(settings.get('freeStorageDays') or config.FREE_STORAGE_DAYS))
    return timedelta(minutes=float(settings.get('anonymousFileTTLMinutes') or config.ANONYMOUS_FILE_TTL_MINUTES))


class JobProcessor:
    """
    Исполнитель задачи

    Args:
        context: Общее состояние (для отложенных удалений)
        ytdlp: Сервис yt-dlp
        repository: Хранилище записей задач
        download_dir: Корневая директория файлов
    """

    def __init__(
        self,
        context: SchedulerContext,
        ytdlp: YtDlpService,
        repository: JobRepository,
        download_dir: str = config.DOWNLOAD_DIR,
        error_limit: int = config.ERROR_MESSAGE_LIMIT,
    ):
        self.context = context
        self.ytdlp = ytdlp
        self.repository = repository
        self.download_dir = download_dir
        self.error_limit = error_limit

    def output_dir_for(self, caller_id: Optional[str]) -> str:
        """Директория пользователя: DOWNLOAD_DIR/{caller_id} или DOWNLOAD_DIR/anonymous"""
        if not caller_id:
            return os.path.join(self.download_dir, config.ANONYMOUS_DIR_NAME)
        name = _UNSAFE_DIR_CHARS.sub('_', str(caller_id)).strip('.') or '_'
        return os.path.join(self.download_dir, name)

    async def process(self, request: AcquisitionRequest) -> ExtractionResult:
        """
        Выполнить задачу

        Returns:
            ExtractionResult со status=completed

        Raises:
            Любая ошибка скачивания (после сохранения status=failed)
        """
        job_id = request.job_id
        logger.info(
            f"[worker] Processing job {job_id}: {request.source_url} "
            f"(platform: {get_platform(request.source_url)}, format: {request.quality_key or request.format_selector})"
        )

        try:
            await self.repository.update(job_id, status=STATUS_PROCESSING, progress=PROGRESS_STARTED)

            output_dir = self.output_dir_for(request.caller_id)
            path = await self.ytdlp.download(
                request.source_url,
                request.format_selector,
                output_dir,
                quality_key=request.quality_key,
            )

            await self.repository.update(job_id, progress=PROGRESS_DOWNLOADED)

            file_size = await asyncio.to_thread(os.path.getsize, path)
            file_type = os.path.splitext(path)[1].lstrip('.').lower() or None

            entitlement = entitlement_for(request)
            retention = retention_period(entitlement, request.policy_settings)
            expires_at = datetime.utcnow() + retention

            await self.repository.update(
                job_id,
                status=STATUS_COMPLETED,
                progress=PROGRESS_DONE,
                artifact_path=path,
                file_size_bytes=file_size,
                file_type=file_type,
                expires_at=expires_at,
                error_message=None,
            )

            if entitlement == ENTITLEMENT_ANONYMOUS:
                self.context.schedule_deletion(path, retention.total_seconds())

            logger.info(f"[worker] ✅ Job {job_id} completed: {path} ({format_file_size(file_size)}, {entitlement})")
            return ExtractionResult(
                job_id=job_id,
                status=STATUS_COMPLETED,
                artifact_path=path,
                file_size_bytes=file_size,
                file_type=file_type,
            )

        except asyncio.CancelledError:
            logger.warning(f"[worker] Job {job_id} cancelled")
            await self._mark_failed(job_id, CANCELLED_MESSAGE)
            raise

        except Exception as e:
            logger.error(f"[worker] ❌ Job {job_id} failed: {e}", exc_info=True)
            await self._mark_failed(job_id, str(e))
            raise

    async def _mark_failed(self, job_id: str, message: str) -> None:
        """Сохранить status=failed (ошибка сохранения только логируется)"""
        try:
            await self.repository.update(
                job_id,
                status=STATUS_FAILED,
                progress=0,
                error_message=truncate(message, self.error_limit),
            )
        except Exception as update_error:
            logger.error(f"[worker] Ошибка при сохранении статуса задачи {job_id}: {update_error}")

"""
AdmissionRouter - единая точка приема задач

Если очереди доступны - задача ставится в очередь своего уровня,
иначе обрабатывается сразу (прямая обработка).
"""
import logging
from typing import Union, Dict, Any

from redis.exceptions import RedisError

from vidqueue import config
from vidqueue.models.acquisition_request import AcquisitionRequest
from vidqueue.models.extraction_result import ExtractionResult, QueuedResponse, STATUS_FAILED
from vidqueue.models.tier import Tier
from vidqueue.scheduler.context import SchedulerContext
from vidqueue.scheduler.queue_manager import TierQueueManager
from vidqueue.services.entitlement import EntitlementResolver
from vidqueue.services.errors import AcquisitionError, BackendUnavailableError
from vidqueue.utils.utils import truncate

logger = logging.getLogger(__name__)

# Примерное ожидание в секундах (подсказка для интерфейса)
ESTIMATED_WAIT_SECONDS = {
    Tier.HIGH: 10,
    Tier.MID: 30,
    Tier.LOW: 60,
}
OVERLOADED_WAIT_SECONDS = {
    Tier.HIGH: 30,
    Tier.MID: 120,
    Tier.LOW: 300,
}


def estimated_wait(tier: Tier, overloaded: bool) -> int:
    table = OVERLOADED_WAIT_SECONDS if overloaded else ESTIMATED_WAIT_SECONDS
    return table[tier]


class AdmissionRouter:
    """
    Прием задач: очередь уровня или прямая обработка

    Args:
        context: Общее состояние планировщика
        queue_manager: Очереди уровней
        processor: Обработчик задач (для прямой обработки)
        entitlements: Определение уровня пользователя
    """

    def __init__(
        self,
        context: SchedulerContext,
        queue_manager: TierQueueManager,
        processor,
        entitlements: EntitlementResolver,
    ):
        self.context = context
        self.queue_manager = queue_manager
        self.processor = processor
        self.entitlements = entitlements

    async def submit(
        self,
        request: Union[AcquisitionRequest, Dict[str, Any]],
    ) -> Union[QueuedResponse, ExtractionResult]:
        """
        Принять задачу

        Args:
            request: AcquisitionRequest или payload вызывающей стороны

        Returns:
            QueuedResponse - задача в очереди;
            ExtractionResult - задача выполнена сразу (Redis недоступен)
            или payload с jobId отклонен (status=failed)

        Raises:
            ValueError: Payload без jobId, которому нельзя сопоставить результат
        """
        if isinstance(request, dict):
            try:
                request = AcquisitionRequest.from_payload(request)
            except ValueError as e:
                return _rejected_payload(request, e)

        tier = await self.entitlements.resolve_tier(request.caller_id)
        request = request.with_tier(tier)

        if not self.context.backend_available:
            logger.info(f"[DIRECT_PROCESS] Redis unavailable, processing job {request.job_id} directly")
            return await self.process_directly(request)

        try:
            await self.queue_manager.enqueue(tier, request)
        except (RedisError, OSError, BackendUnavailableError) as e:
            logger.error(f"[QUEUE] Failed to add job {request.job_id} to queue, falling back to direct processing: {e}")
            self.queue_manager.mark_unavailable(str(e))
            return await self.process_directly(request)

        wait_seconds = estimated_wait(tier, self.context.snapshot.is_overloaded)
        logger.info(f"[QUEUE] Job {request.job_id} queued in {tier.queue_name} (~{wait_seconds}s)")
        return QueuedResponse(job_id=request.job_id, tier=tier, estimated_wait_seconds=wait_seconds)

    async def process_directly(self, request: AcquisitionRequest) -> ExtractionResult:
        """
        Прямая обработка без очереди

        Ошибка скачивания уже сохранена в записи задачи JobProcessor'ом,
        здесь она превращается в итоговый ExtractionResult.
        """
        try:
            return await self.processor.process(request)
        except (AcquisitionError, OSError, ValueError) as e:
            logger.error(f"[DIRECT_PROCESS] Job {request.job_id} failed: {e}")
            return ExtractionResult(
                job_id=request.job_id,
                status=STATUS_FAILED,
                error_message=truncate(str(e), config.ERROR_MESSAGE_LIMIT),
            )


def _rejected_payload(payload: Dict[str, Any], error: ValueError) -> ExtractionResult:
    job_id = payload.get('jobId', payload.get('job_id'))
    if job_id is None:
        raise error
    logger.error(f"[QUEUE] Job {job_id} rejected: {error}")
    return ExtractionResult(
        job_id=str(job_id),
        status=STATUS_FAILED,
        error_message=truncate(str(error), config.ERROR_MESSAGE_LIMIT),
    )

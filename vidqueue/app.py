"""
Сборка и запуск планировщика скачиваний

SchedulerApp связывает компоненты:
AdmissionRouter -> (TierQueueManager -> JobProcessor) или прямая обработка -> YtDlpService
"""
import signal
import asyncio
import logging
from typing import Optional, Union, Dict, Any

from vidqueue import config
from vidqueue.database.job_repository import JobRepository, InMemoryJobRepository, PostgresJobRepository
from vidqueue.models.acquisition_request import AcquisitionRequest
from vidqueue.models.extraction_result import ExtractionResult, QueuedResponse
from vidqueue.scheduler.admission import AdmissionRouter
from vidqueue.scheduler.context import SchedulerContext
from vidqueue.scheduler.load_monitor import LoadMonitor, Sampler
from vidqueue.scheduler.queue_manager import TierQueueManager
from vidqueue.services.entitlement import EntitlementResolver, StaticEntitlementResolver
from vidqueue.services.ytdlp_service import YtDlpService
from vidqueue.workers.download_worker import JobProcessor

logger = logging.getLogger(__name__)


def build_repository() -> JobRepository:
    """PostgreSQL если задан DATABASE_URL, иначе записи в памяти"""
    if config.DATABASE_URL:
        return PostgresJobRepository(config.DATABASE_URL)
    logger.warning("DATABASE_URL не задан, записи задач хранятся в памяти")
    return InMemoryJobRepository()


class SchedulerApp:
    """
    Процесс планировщика

    Использование:
        async with SchedulerApp() as app:
            await app.submit(payload)
    """

    def __init__(
        self,
        ytdlp: Optional[YtDlpService] = None,
        repository: Optional[JobRepository] = None,
        entitlements: Optional[EntitlementResolver] = None,
        redis_url: Optional[str] = config.REDIS_URL,
        sampler: Optional[Sampler] = None,
        download_dir: str = config.DOWNLOAD_DIR,
    ):
        self.context = SchedulerContext()
        self.ytdlp = ytdlp or YtDlpService()
        self.repository = repository or build_repository()
        self.processor = JobProcessor(self.context, self.ytdlp, self.repository, download_dir=download_dir)
        self.queue_manager = TierQueueManager(self.context, self.processor.process, redis_url=redis_url)
        self.load_monitor = LoadMonitor(self.context, self.queue_manager.apply_load, sampler=sampler)
        self.router = AdmissionRouter(
            self.context,
            self.queue_manager,
            self.processor,
            entitlements or StaticEntitlementResolver(),
        )

    async def start(self) -> None:
        await self.repository.connect()
        await self.queue_manager.connect()
        self.load_monitor.start()
        logger.info(f"[SCHEDULER] Запущен (backend: {self.context.backend_state.value})")

    async def shutdown(self) -> None:
        """Закрыть очереди, отменить таймеры и отложенные удаления, закрыть БД"""
        logger.info("[SCHEDULER] Остановка...")
        try:
            await self.queue_manager.close()
            await self.context.cancel_tasks()
        finally:
            await self.repository.close()
        logger.info("[SCHEDULER] Остановлен")

    async def __aenter__(self) -> 'SchedulerApp':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    async def submit(
        self,
        request: Union[AcquisitionRequest, Dict[str, Any]],
    ) -> Union[QueuedResponse, ExtractionResult]:
        return await self.router.submit(request)

    async def system_status(self) -> Dict[str, Any]:
        return await self.queue_manager.system_status()


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows: остается KeyboardInterrupt
            pass


async def run() -> None:
    """Работать до SIGINT/SIGTERM"""
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    async with SchedulerApp() as app:
        status = await app.system_status()
        logger.info(f"[SCHEDULER] Статус: {status}")
        await stop_event.wait()
        logger.info("[SCHEDULER] Получен сигнал остановки")


def main() -> None:
    """Главная функция процесса планировщика"""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("[SCHEDULER] Получен сигнал остановки (KeyboardInterrupt)")


if __name__ == "__main__":
    main()

"""
Планировщик: очереди уровней, мониторинг нагрузки и прием задач
"""
from .context import SchedulerContext, BackendState
from .tier_queue import TierQueue
from .queue_manager import TierQueueManager
from .load_monitor import LoadMonitor
from .admission import AdmissionRouter

__all__ = [
    'SchedulerContext',
    'BackendState',
    'TierQueue',
    'TierQueueManager',
    'LoadMonitor',
    'AdmissionRouter',
]

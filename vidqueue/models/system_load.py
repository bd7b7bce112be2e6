"""
SystemLoadSnapshot - снимок нагрузки системы
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from vidqueue import config


class LoadLevel(str, Enum):
    NORMAL = 'normal'
    MODERATE = 'moderate'
    SEVERE = 'severe'


def is_overloaded(cpu_percent: float, memory_percent: float,
                  threshold: float = config.OVERLOAD_THRESHOLD) -> bool:
    """Перегрузка: CPU или память строго выше порога (ровно 80% - не перегрузка)"""
    return cpu_percent > threshold or memory_percent > threshold


def classify_load(cpu_percent: float, memory_percent: float,
                  threshold: float = config.OVERLOAD_THRESHOLD,
                  severe_threshold: float = config.SEVERE_OVERLOAD_THRESHOLD) -> LoadLevel:
    """Уровень нагрузки для корректировки очередей"""
    if not is_overloaded(cpu_percent, memory_percent, threshold):
        return LoadLevel.NORMAL
    if cpu_percent > severe_threshold or memory_percent > severe_threshold:
        return LoadLevel.SEVERE
    return LoadLevel.MODERATE


@dataclass(frozen=True)
class SystemLoadSnapshot:
    """
    Снимок нагрузки

    Неизменяемый: монитор публикует новый объект целиком, читатели
    никогда не видят частично обновленные данные.
    """
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    is_overloaded: bool = False
    sampled_at: Optional[datetime] = field(default=None)
    level: LoadLevel = LoadLevel.NORMAL

    @classmethod
    def from_sample(cls, cpu_percent: float, memory_percent: float,
                    sampled_at: Optional[datetime] = None) -> 'SystemLoadSnapshot':
        return cls(
            cpu_percent=cpu_percent,
            memory_percent=memory_percent,
            is_overloaded=is_overloaded(cpu_percent, memory_percent),
            sampled_at=sampled_at or datetime.utcnow(),
            level=classify_load(cpu_percent, memory_percent),
        )

    def to_dict(self) -> dict:
        return {
            'cpu': round(self.cpu_percent, 2),
            'memory': round(self.memory_percent, 2),
            'isOverloaded': self.is_overloaded,
            'level': self.level.value,
            'timestamp': self.sampled_at.isoformat() if self.sampled_at else None,
        }

"""
Уровни очередей (tier) и их состояние
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Tier(str, Enum):
    """Уровень очереди: high (premium), mid (registered/free), low (anonymous)"""
    HIGH = 'high'
    MID = 'mid'
    LOW = 'low'

    @property
    def queue_name(self) -> str:
        return QUEUE_NAMES[self]


QUEUE_NAMES = {
    Tier.HIGH: 'premium-queue',
    Tier.MID: 'free-queue',
    Tier.LOW: 'anonymous-queue',
}


def tier_for_subscription(caller_id: Optional[str], subscription: Optional[str]) -> Tier:
    """
    Определить уровень по пользователю и его подписке

    Args:
        caller_id: ID пользователя или None (анонимный)
        subscription: Ответ сервиса подписок ('premium' | 'free') или None

    Returns:
        premium -> HIGH, free/registered -> MID, без пользователя -> LOW
    """
    if not caller_id:
        return Tier.LOW
    if subscription == 'premium':
        return Tier.HIGH
    return Tier.MID


@dataclass
class TierState:
    """
    Состояние одного уровня

    Изменяется только при инициализации очередей и шагом корректировки нагрузки.
    """
    tier: Tier
    concurrency: int
    paused: bool = False

    @property
    def tier_name(self) -> str:
        return self.tier.queue_name

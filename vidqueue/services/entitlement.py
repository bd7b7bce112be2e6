"""
Определение уровня пользователя (внешний сервис подписок)
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional, Iterable

from vidqueue import config
from vidqueue.models.tier import Tier, tier_for_subscription

logger = logging.getLogger(__name__)

SUBSCRIPTION_PREMIUM = 'premium'
SUBSCRIPTION_FREE = 'free'


class EntitlementResolver(ABC):
    """Интерфейс сервиса подписок"""

    @abstractmethod
    async def resolve_subscription(self, caller_id: str) -> str:
        """Вернуть 'premium' или 'free' для пользователя"""
        pass

    async def resolve_tier(self, caller_id: Optional[str]) -> Tier:
        """
        Уровень очереди для пользователя

        Без caller_id - анонимный (LOW), запрос к сервису подписок не делается.
        """
        if not caller_id:
            return Tier.LOW
        subscription = await self.resolve_subscription(caller_id)
        return tier_for_subscription(caller_id, subscription)


class StaticEntitlementResolver(EntitlementResolver):
    """Premium-пользователи заданы списком (PREMIUM_USER_IDS)"""

    def __init__(self, premium_user_ids: Optional[Iterable[str]] = None):
        if premium_user_ids is None:
            premium_user_ids = config.PREMIUM_USER_IDS
        self.premium_user_ids = {str(user_id) for user_id in premium_user_ids}

    async def resolve_subscription(self, caller_id: str) -> str:
        if str(caller_id) in self.premium_user_ids:
            return SUBSCRIPTION_PREMIUM
        return SUBSCRIPTION_FREE

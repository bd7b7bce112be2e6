"""
AcquisitionRequest - задача на скачивание
Сериализуется в JSON для передачи через очередь Redis
"""
import json
from dataclasses import dataclass, asdict, field, replace
from typing import Optional, Dict, Any

from .tier import Tier


@dataclass(frozen=True)
class AcquisitionRequest:
    """
    Запрос на скачивание (неизменяемый после создания)

    Attributes:
        source_url: URL видео
        format_selector: Селектор формата (720p, audio_mp3_128, best, format_id...)
        job_id: ID записи задачи во внешнем хранилище
        caller_id: ID пользователя или None для анонимного
        quality_key: Ключ качества из списка вариантов (приоритетнее format_selector)
        tier_hint: Уровень, определенный при приеме задачи
        policy_settings: Настройки хранения (premiumUsers, premiumStorageDays, ...)
    """
    source_url: str
    format_selector: str
    job_id: str
    caller_id: Optional[str] = None
    quality_key: Optional[str] = None
    tier_hint: Optional[Tier] = None
    policy_settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'AcquisitionRequest':
        """
        Создать запрос из payload вызывающей стороны

        Поддерживает как camelCase (sourceUrl, formatSelector), так и snake_case ключи.

        Raises:
            ValueError: Нет URL, ID задачи или селектор формата пустой
        """
        def pick(*keys, default=None):
            for key in keys:
                if payload.get(key) is not None:
                    return payload[key]
            return default

        source_url = pick('sourceUrl', 'source_url', 'url')
        job_id = pick('jobId', 'job_id', 'videoId')
        format_selector = pick('formatSelector', 'format_selector', 'formatId')
        if isinstance(source_url, str):
            source_url = source_url.strip()
        if isinstance(format_selector, str):
            format_selector = format_selector.strip()
        if not source_url or job_id is None or not format_selector:
            raise ValueError(f"Невалидный payload задачи: {payload}")

        caller_id = pick('callerId', 'caller_id', 'userId')
        tier = pick('tierHint', 'tier_hint')
        return cls(
            source_url=source_url,
            format_selector=format_selector,
            job_id=str(job_id),
            caller_id=str(caller_id) if caller_id is not None else None,
            quality_key=pick('qualityKey', 'quality_key'),
            tier_hint=Tier(tier) if tier else None,
            policy_settings=dict(pick('policySettings', 'policy_settings', 'settings', default={})),
        )

    def with_tier(self, tier: Tier) -> 'AcquisitionRequest':
        """Копия запроса с установленным уровнем"""
        return replace(self, tier_hint=tier)

    def to_json(self) -> str:
        """Сериализация запроса в JSON"""
        data = asdict(self)
        data['tier_hint'] = self.tier_hint.value if self.tier_hint else None
        return json.dumps(data)

    @classmethod
    def from_json(cls, json_str: str) -> 'AcquisitionRequest':
        """Десериализация запроса из JSON"""
        data = json.loads(json_str)
        if data.get('tier_hint'):
            data['tier_hint'] = Tier(data['tier_hint'])
        return cls(**data)

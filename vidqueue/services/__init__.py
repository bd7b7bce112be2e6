"""
Сервисы: yt-dlp, разбор его вывода, варианты качества, уровни пользователей
"""
from .entitlement import EntitlementResolver, StaticEntitlementResolver
from .errors import (
    AcquisitionError,
    ExtractionError,
    ExtractionTimeoutError,
    MetadataParseError,
    ArtifactNotFoundError,
    EmptyArtifactError,
    SubtitleUnavailableError,
    BackendUnavailableError,
)
from .output_parser import ExtractionOutputParser, DownloadOutputState
from .ytdlp_service import YtDlpService, DownloadHandle

__all__ = [
    'EntitlementResolver',
    'StaticEntitlementResolver',
    'AcquisitionError',
    'ExtractionError',
    'ExtractionTimeoutError',
    'MetadataParseError',
    'ArtifactNotFoundError',
    'EmptyArtifactError',
    'SubtitleUnavailableError',
    'BackendUnavailableError',
    'ExtractionOutputParser',
    'DownloadOutputState',
    'YtDlpService',
    'DownloadHandle',
]

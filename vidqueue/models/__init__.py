"""
Модели данных для системы скачивания видео
"""
from .acquisition_request import AcquisitionRequest
from .extraction_result import ExtractionResult, QueuedResponse
from .format_selector import FormatSelector, SelectorKind
from .system_load import SystemLoadSnapshot, LoadLevel
from .tier import Tier, TierState
from .video_metadata import VideoMetadata, QualityOption, SubtitleDescriptor

__all__ = [
    'AcquisitionRequest',
    'ExtractionResult',
    'QueuedResponse',
    'FormatSelector',
    'SelectorKind',
    'SystemLoadSnapshot',
    'LoadLevel',
    'Tier',
    'TierState',
    'VideoMetadata',
    'QualityOption',
    'SubtitleDescriptor',
]

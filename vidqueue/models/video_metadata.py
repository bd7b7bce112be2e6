"""
Метаданные видео, варианты качества и субтитры
"""
from dataclasses import dataclass, field
from typing import Optional, List


@dataclass
class QualityOption:
    """
    Вариант качества для выбора пользователем

    Attributes:
        label: Подпись (например, '1080p (FHD)')
        quality_key: Ключ качества (1080p, audio_mp3_128, best_available)
        kind: 'video' или 'audio'
        format_id: format_id из yt-dlp или готовое выражение -f
        ext: Ожидаемое расширение файла
        height: Разрешение (для видео)
        details: Краткое описание
        requires_premium: Требуется ли premium (разрешение > 720p)
        estimated_size_bytes: Размер файла (из yt-dlp или оценка)
        file_size_approx: Размер в человекочитаемом виде
        synthesized: Вариант собран из video-only + bestaudio
    """
    label: str
    quality_key: str
    kind: str
    format_id: str
    ext: str
    height: Optional[int] = None
    details: str = ''
    requires_premium: bool = False
    estimated_size_bytes: Optional[float] = None
    file_size_approx: str = ''
    synthesized: bool = False


@dataclass
class VideoMetadata:
    """Информация о видео из --dump-json"""
    id: str
    title: Optional[str]
    thumbnail: Optional[str]
    duration: str
    duration_seconds: float = 0
    formats: List[QualityOption] = field(default_factory=list)

    @property
    def video_options(self) -> List[QualityOption]:
        return [option for option in self.formats if option.kind == 'video']

    @property
    def audio_options(self) -> List[QualityOption]:
        return [option for option in self.formats if option.kind == 'audio']


@dataclass
class SubtitleDescriptor:
    """Строка из отчета --list-subs"""
    lang_code: str
    lang_name: str
    formats: List[str] = field(default_factory=lambda: ['srt'])

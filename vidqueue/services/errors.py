"""
Исключения системы скачивания
"""
from typing import Optional


class AcquisitionError(Exception):
    """Базовое исключение для всех ошибок скачивания"""


class ExtractionError(AcquisitionError):
    """
    yt-dlp завершился с ненулевым кодом

    Attributes:
        exit_code: Код выхода процесса (None, если процесс был убит)
        stderr_excerpt: Ограниченный фрагмент stderr
    """

    def __init__(self, exit_code: Optional[int], stderr_excerpt: str = "", message: Optional[str] = None):
        self.exit_code = exit_code
        self.stderr_excerpt = stderr_excerpt
        if message is None:
            message = f"yt-dlp exited with code {exit_code}: {stderr_excerpt}"
        super().__init__(message)


class ExtractionTimeoutError(ExtractionError):
    """yt-dlp не уложился в PROCESSING_TIMEOUT и был остановлен"""

    def __init__(self, timeout: float, stderr_excerpt: str = ""):
        self.timeout = timeout
        super().__init__(None, stderr_excerpt, f"yt-dlp timed out after {timeout:.0f}s")


class MetadataParseError(ExtractionError):
    """Не удалось разобрать JSON из --dump-json"""

    def __init__(self, reason: str, output_excerpt: str = ""):
        super().__init__(0, output_excerpt, f"Failed to parse video info: {reason}")


class ArtifactNotFoundError(AcquisitionError):
    """Процесс завершился успешно, но итоговый файл не найден"""


class EmptyArtifactError(AcquisitionError):
    """Найденный файл имеет размер 0 байт (файл удаляется)"""


class SubtitleUnavailableError(AcquisitionError):
    """Для видео нет субтитров запрошенного языка или формата"""

    def __init__(self, lang: str, message: Optional[str] = None):
        self.lang = lang
        super().__init__(message or f"No {lang} subtitles available for this video")


class BackendUnavailableError(AcquisitionError):
    """Очередь (Redis) недоступна"""

"""
Утилиты для работы с URL, размерами файлов и длительностью
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Известные опечатки в доменах платформ -> правильный домен
HOST_CORRECTIONS = {
    'tiktiktok.com': 'tiktok.com',
}


def correct_url(url: str) -> str:
    """
    Исправить известные опечатки в домене перед вызовом yt-dlp

    Применяется перед КАЖДЫМ вызовом (метаданные, скачивание, стрим, субтитры).
    """
    url = url.strip()
    corrected = url
    for wrong, right in HOST_CORRECTIONS.items():
        if wrong in corrected:
            corrected = corrected.replace(wrong, right)
    if corrected != url:
        logger.info(f"[YTDLP] Corrected URL from {url} to {corrected}")
    return corrected


def get_platform(url: str) -> str:
    """Определение платформы по URL (для логов)"""
    url_lower = url.lower()

    if 'youtube.com' in url_lower or 'youtu.be' in url_lower:
        return 'youtube'
    elif 'instagram.com' in url_lower:
        return 'instagram'
    elif 'tiktok.com' in url_lower:
        return 'tiktok'
    else:
        return 'unknown'


def format_file_size(size_bytes: Optional[float]) -> str:
    """
    Размер файла в человекочитаемом виде

    Args:
        size_bytes: Размер в байтах

    Returns:
        Строка вида '12.34 MB' или 'Unknown'
    """
    if not size_bytes:
        return 'Unknown'

    units = ['B', 'KB', 'MB', 'GB']
    size = float(size_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.2f} {units[unit_index]}"


def format_duration(seconds: Optional[float]) -> str:
    """Длительность в формате HH:MM:SS (часы опускаются, если их нет)"""
    if not seconds:
        return 'Unknown'

    seconds = int(seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def truncate(text: Optional[str], limit: int) -> str:
    """Обрезать текст до limit символов"""
    if not text:
        return ''
    return text[:limit]

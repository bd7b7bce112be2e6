"""
Построение списка вариантов качества из сырых форматов yt-dlp
"""
import logging
from typing import Optional, Dict, Any, List

from vidqueue.models.format_selector import resolution_expression
from vidqueue.models.video_metadata import QualityOption, VideoMetadata
from vidqueue.utils.utils import format_file_size, format_duration

logger = logging.getLogger(__name__)

# Средняя эффективность сжатия для оценки размера по битрейту
COMPRESSION_FACTOR = 0.7

# Минимальное разрешение для вариантов, собранных из video-only форматов
MIN_SYNTHESIZED_HEIGHT = 480

# Разрешения выше этого требуют premium
PREMIUM_HEIGHT = 720

# Вариант аудио, который добавляется всегда
DEFAULT_AUDIO_OPTION = {
    'label': 'Audio (MP3 - 128kbps)',
    'quality_key': 'audio_mp3_128',
    'format_id': 'bestaudio',
    'ext': 'mp3',
}


def assumed_bitrate_kbps(height: int) -> int:
    """Предполагаемый битрейт (kbps) для разрешения"""
    if height >= 2160:
        return 15000
    if height >= 1440:
        return 8000
    if height >= 1080:
        return 4000
    if height >= 720:
        return 2000
    if height >= 480:
        return 1000
    return 700


def estimate_size_bytes(bitrate_kbps: float, duration_seconds: float) -> float:
    """Оценка размера файла: bitrate * 1000 * duration * 0.7 / 8"""
    return bitrate_kbps * 1000 * (duration_seconds or 0) * COMPRESSION_FACTOR / 8


def resolution_label(height: int) -> str:
    """Подпись для разрешения: '1080p (FHD)'"""
    if height >= 2160:
        suffix = ' (4K)'
    elif height >= 1440:
        suffix = ' (2K)'
    elif height >= 1080:
        suffix = ' (FHD)'
    elif height >= 720:
        suffix = ' (HD)'
    else:
        suffix = ''
    return f"{height}p{suffix}"


def _has_video(fmt: Dict[str, Any]) -> bool:
    return bool(fmt.get('vcodec')) and fmt.get('vcodec') != 'none'


def _has_audio(fmt: Dict[str, Any]) -> bool:
    return bool(fmt.get('acodec')) and fmt.get('acodec') != 'none'


def partition_formats(formats: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Разделить форматы на video+audio, video-only и audio-only"""
    groups = {'video_audio': [], 'video_only': [], 'audio_only': []}
    for fmt in formats:
        if _has_video(fmt) and _has_audio(fmt):
            groups['video_audio'].append(fmt)
        elif _has_video(fmt):
            groups['video_only'].append(fmt)
        elif _has_audio(fmt):
            groups['audio_only'].append(fmt)
    return groups


def _muxed_size(fmt: Dict[str, Any], height: int, duration: float) -> float:
    if fmt.get('filesize_approx'):
        return fmt['filesize_approx']
    if fmt.get('filesize'):
        return fmt['filesize']
    if fmt.get('tbr'):
        return estimate_size_bytes(fmt['tbr'], duration)
    return estimate_size_bytes(assumed_bitrate_kbps(height), duration)


def build_quality_options(info: Dict[str, Any]) -> List[QualityOption]:
    """
    Построить варианты качества

    1. Для каждого разрешения среди video+audio форматов - формат с наибольшим tbr
    2. Для разрешений >= 480p без готового video+audio - выражение
       bestvideo[height<=n]+bestaudio с оценкой размера по таблице битрейтов
    3. Сортировка по разрешению по убыванию
    4. Лучший реальный audio-only формат (если есть) и всегда MP3 128kbps

    Args:
        info: Словарь из --dump-json

    Returns:
        Список QualityOption (видео, затем аудио)
    """
    formats = info.get('formats') or []
    duration = info.get('duration') or 0
    groups = partition_formats(formats)

    logger.info(
        f"[YTDLP] Format counts: video+audio={len(groups['video_audio'])}, "
        f"video-only={len(groups['video_only'])}, audio-only={len(groups['audio_only'])}"
    )

    video_options: List[QualityOption] = []

    # Лучший video+audio формат для каждого разрешения
    best_by_height: Dict[int, Dict[str, Any]] = {}
    for fmt in groups['video_audio']:
        height = fmt.get('height') or 0
        if height <= 0:
            continue
        current = best_by_height.get(height)
        if current is None or (fmt.get('tbr') or 0) > (current.get('tbr') or 0):
            best_by_height[height] = fmt

    for height, fmt in best_by_height.items():
        size = _muxed_size(fmt, height, duration)
        video_options.append(QualityOption(
            label=resolution_label(height),
            quality_key=f"{height}p",
            kind='video',
            format_id=fmt.get('format_id'),
            ext=fmt.get('ext') or 'mp4',
            height=height,
            details='MP4, Video + Audio',
            requires_premium=height > PREMIUM_HEIGHT,
            estimated_size_bytes=size,
            file_size_approx=format_file_size(size),
        ))

    # Разрешения, для которых есть только отдельное видео
    covered = set(best_by_height)
    all_heights = {
        fmt.get('height') for fmt in groups['video_audio'] + groups['video_only']
        if (fmt.get('height') or 0) > 0
    }
    for height in sorted(all_heights, reverse=True):
        if height < MIN_SYNTHESIZED_HEIGHT or height in covered:
            continue
        size = estimate_size_bytes(assumed_bitrate_kbps(height), duration)
        logger.info(f"[YTDLP] Adding synthesized option for {height}p: {format_file_size(size)}")
        video_options.append(QualityOption(
            label=resolution_label(height),
            quality_key=f"{height}p",
            kind='video',
            format_id=resolution_expression(height),
            ext='mp4',
            height=height,
            details='MP4, Video + Audio (merged)',
            requires_premium=height > PREMIUM_HEIGHT,
            estimated_size_bytes=size,
            file_size_approx=format_file_size(size),
            synthesized=True,
        ))

    video_options.sort(key=lambda option: option.height or 0, reverse=True)

    if not video_options and formats:
        video_options.append(QualityOption(
            label='Best available quality',
            quality_key='best_available',
            kind='video',
            format_id='best',
            ext='mp4',
            details='Best available quality',
        ))

    audio_options: List[QualityOption] = []
    best_audio = _best_audio_format(groups['audio_only'])
    if best_audio:
        ext = best_audio.get('ext') or 'webm'
        abr = _bitrate_token(best_audio.get('abr'))
        audio_options.append(QualityOption(
            label=f"Audio ({ext.upper()} - {abr}kbps)",
            quality_key=f"audio_{ext}_{abr}",
            kind='audio',
            format_id=best_audio.get('format_id'),
            ext=ext,
            details=f"{ext.upper()}, Audio only",
            estimated_size_bytes=best_audio.get('filesize') or best_audio.get('filesize_approx'),
            file_size_approx=format_file_size(best_audio.get('filesize') or best_audio.get('filesize_approx')),
        ))

    # MP3 с постоянным битрейтом - сжатие не учитываем
    mp3_size = 128 * 1000 * duration / 8 if duration else None
    audio_options.append(QualityOption(
        label=DEFAULT_AUDIO_OPTION['label'],
        quality_key=DEFAULT_AUDIO_OPTION['quality_key'],
        kind='audio',
        format_id=DEFAULT_AUDIO_OPTION['format_id'],
        ext=DEFAULT_AUDIO_OPTION['ext'],
        details='MP3, Audio only',
        estimated_size_bytes=mp3_size,
        file_size_approx=format_file_size(mp3_size),
    ))

    return video_options + audio_options


def _best_audio_format(audio_formats: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    best = None
    for fmt in audio_formats:
        if best is None or (fmt.get('abr') or 0) > (best.get('abr') or 0):
            best = fmt
    return best


def _bitrate_token(abr: Optional[float]) -> str:
    if not abr:
        return '128'
    return str(int(round(abr)))


def build_video_metadata(info: Dict[str, Any]) -> VideoMetadata:
    """Собрать VideoMetadata из словаря --dump-json"""
    duration_seconds = info.get('duration') or 0
    return VideoMetadata(
        id=info.get('id'),
        title=info.get('title'),
        thumbnail=info.get('thumbnail'),
        duration=info.get('duration_string') or format_duration(duration_seconds),
        duration_seconds=duration_seconds,
        formats=build_quality_options(info),
    )

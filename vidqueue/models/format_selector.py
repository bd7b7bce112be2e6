"""
FormatSelector - преобразование ключа качества в аргументы yt-dlp

Каждый селектор детерминированно превращается в одно выражение -f.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

# Контейнер, в который перепаковывается видео
DEFAULT_CONTAINER = 'mp4'

DEFAULT_AUDIO_CODEC = 'mp3'
DEFAULT_AUDIO_BITRATE = '128'

BEST_SENTINELS = ('best', 'best_available')
BEST_EXPRESSION = 'bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best'

_RESOLUTION_RE = re.compile(r'^(\d+)p$')


class SelectorKind(str, Enum):
    RESOLUTION = 'resolution'
    AUDIO = 'audio'
    BEST = 'best'
    NATIVE = 'native'
    FORMAT_ID = 'format_id'


def resolution_expression(height: int) -> str:
    """Видео не выше height + лучшее аудио, затем единый поток, затем что угодно"""
    return f"bestvideo[height<={height}]+bestaudio/best[height<={height}]/best"


@dataclass(frozen=True)
class FormatSelector:
    """
    Разобранный селектор формата

    Attributes:
        kind: Тип селектора
        token: Исходная строка
        height: Разрешение для RESOLUTION
        audio_codec: Кодек для AUDIO
        audio_bitrate: Битрейт (kbps) для AUDIO
    """
    kind: SelectorKind
    token: str
    height: Optional[int] = None
    audio_codec: Optional[str] = None
    audio_bitrate: Optional[str] = None

    @classmethod
    def parse(cls, token: str) -> 'FormatSelector':
        """
        Разобрать строку селектора

        '{n}p' -> RESOLUTION, 'audio_{codec}_{bitrate}' -> AUDIO, 'best' -> BEST,
        строка с '+' или '/' -> NATIVE (готовое выражение yt-dlp), иначе FORMAT_ID.
        """
        token = (token or '').strip()
        if not token:
            raise ValueError("Пустой селектор формата")

        match = _RESOLUTION_RE.match(token)
        if match:
            return cls(SelectorKind.RESOLUTION, token, height=int(match.group(1)))

        if token.startswith('audio_'):
            parts = token.split('_')
            codec = parts[1] if len(parts) >= 2 and parts[1] else DEFAULT_AUDIO_CODEC
            bitrate = parts[2] if len(parts) >= 3 and parts[2] else DEFAULT_AUDIO_BITRATE
            return cls(SelectorKind.AUDIO, token, audio_codec=codec, audio_bitrate=bitrate)

        if token in BEST_SENTINELS:
            return cls(SelectorKind.BEST, token)

        if '+' in token or '/' in token:
            return cls(SelectorKind.NATIVE, token)

        return cls(SelectorKind.FORMAT_ID, token)

    @classmethod
    def for_download(cls, format_selector: str, quality_key: Optional[str] = None) -> 'FormatSelector':
        """Для скачивания в файл ключ качества приоритетнее format_selector"""
        return cls.parse(quality_key or format_selector)

    @classmethod
    def for_stream(cls, format_selector: str, quality_key: Optional[str] = None) -> 'FormatSelector':
        """Для стрима готовое выражение из format_selector используется как есть"""
        if format_selector and ('+' in format_selector or '/' in format_selector):
            return cls.parse(format_selector)
        return cls.parse(quality_key or format_selector)

    @property
    def expression(self) -> str:
        """Выражение для аргумента -f"""
        if self.kind == SelectorKind.RESOLUTION:
            return resolution_expression(self.height)
        if self.kind == SelectorKind.AUDIO:
            return 'bestaudio'
        if self.kind == SelectorKind.BEST:
            return BEST_EXPRESSION
        return self.token

    def _audio_args(self) -> List[str]:
        args = [
            '-f', self.expression,
            '--extract-audio',
            '--audio-format', self.audio_codec,
            '--audio-quality', f'{self.audio_bitrate}K',
        ]
        if self.audio_codec == 'mp3':
            args.extend(['--postprocessor-args', 'FFmpegExtractAudio:-c:a libmp3lame -q:a 2'])
        return args

    def download_args(self) -> List[str]:
        """Аргументы выбора формата для скачивания в файл"""
        if self.kind == SelectorKind.RESOLUTION:
            return [
                '-f', self.expression,
                '--merge-output-format', DEFAULT_CONTAINER,
                '--remux-video', DEFAULT_CONTAINER,
                '--force-overwrites',
                '--no-keep-fragments',
                '--no-part',
                '--embed-metadata',
                '--embed-thumbnail',
            ]
        if self.kind == SelectorKind.AUDIO:
            return self._audio_args() + ['--no-keep-video', '--force-overwrites']
        if self.kind in (SelectorKind.BEST, SelectorKind.NATIVE):
            return ['-f', self.expression, '--merge-output-format', DEFAULT_CONTAINER]
        # Конкретный format_id (обратная совместимость)
        return ['-f', self.expression]

    def stream_args(self) -> List[str]:
        """Аргументы выбора формата для вывода в stdout"""
        if self.kind == SelectorKind.AUDIO:
            args = self._audio_args()
        elif self.kind == SelectorKind.FORMAT_ID:
            args = ['-f', self.expression]
        else:
            args = ['-f', self.expression, '--merge-output-format', DEFAULT_CONTAINER]
        return args + ['-o', '-', '--no-part', '--no-mtime']

"""
YtDlpService - низкоуровневый сервис для работы с yt-dlp
Используется в JobProcessor и в режиме прямой обработки
"""
import os
import sys
import json
import time
import shutil
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, List, Callable, AsyncIterator, Dict, Any

import yt_dlp

from vidqueue import config
from vidqueue.models.format_selector import FormatSelector
from vidqueue.models.video_metadata import VideoMetadata, SubtitleDescriptor
from vidqueue.services.errors import (
    ExtractionError,
    ExtractionTimeoutError,
    MetadataParseError,
    ArtifactNotFoundError,
    SubtitleUnavailableError,
)
from vidqueue.services.output_parser import (
    DownloadOutputState,
    ExtractionOutputParser,
    validate_artifact,
    parse_subtitle_listing,
    is_no_subtitles_report,
    is_subtitle_unavailable_report,
)
from vidqueue.services.quality_options import build_video_metadata
from vidqueue.utils.utils import correct_url

logger = logging.getLogger(__name__)

# --dump-json печатает одну строку на несколько мегабайт
STREAM_LIMIT = 32 * 1024 * 1024

CHUNK_SIZE = 64 * 1024

COMMON_FFMPEG_PATHS = (
    r'C:\ffmpeg\bin\ffmpeg.exe',
    r'C:\Program Files\ffmpeg\bin\ffmpeg.exe',
    r'C:\Program Files (x86)\ffmpeg\bin\ffmpeg.exe',
    '/usr/bin/ffmpeg',
    '/usr/local/bin/ffmpeg',
)

_NOT_RESOLVED = object()


def find_ffmpeg() -> Optional[str]:
    """
    Найти ffmpeg: сначала в PATH, затем в стандартных директориях установки

    Returns:
        Путь к ffmpeg или None (слияние форматов будет недоступно)
    """
    path = shutil.which('ffmpeg')
    if path:
        logger.info(f"[YtDlpService] Found ffmpeg in PATH: {path}")
        return path

    for candidate in COMMON_FFMPEG_PATHS:
        if os.path.isfile(candidate):
            logger.info(f"[YtDlpService] Found ffmpeg at: {candidate}")
            return candidate

    logger.warning("[YtDlpService] ffmpeg not found, format merging may fail")
    return None


def ytdlp_command(ytdlp_path: str) -> List[str]:
    """
    Команда запуска yt-dlp

    Если исполняемый файл не найден, запускаем установленный пакет yt_dlp
    через текущий интерпретатор.
    """
    if os.path.isfile(ytdlp_path) or shutil.which(ytdlp_path):
        return [ytdlp_path]
    logger.info(f"[YtDlpService] {ytdlp_path} not found, using python -m yt_dlp {yt_dlp.version.__version__}")
    return [sys.executable, '-m', 'yt_dlp']


def stderr_excerpt(stderr: str, limit: int) -> str:
    """Последние limit символов stderr (ошибка обычно в конце)"""
    stderr = (stderr or '').strip()
    if len(stderr) <= limit:
        return stderr
    return stderr[-limit:]


@dataclass
class ProcessOutput:
    """Результат завершившегося вызова yt-dlp"""
    returncode: int
    stdout: str
    stderr: str


class DownloadHandle:
    """
    Запущенный процесс yt-dlp, пишущий медиа в stdout

    Потребитель читает данные через iter_chunks() и затем вызывает wait(),
    который поднимает ExtractionError при ненулевом коде выхода.
    """

    def __init__(self, process, stderr_limit: int = config.STDERR_EXCERPT_LIMIT):
        self.process = process
        self.stderr_limit = stderr_limit
        # stderr читается параллельно, чтобы процесс не заблокировался на заполненном pipe
        self._stderr_task = asyncio.ensure_future(process.stderr.read())

    async def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.process.stdout.read(chunk_size)
            if not chunk:
                break
            yield chunk

    async def wait(self) -> None:
        stderr = (await self._stderr_task).decode('utf-8', errors='ignore')
        returncode = await self.process.wait()
        if returncode != 0:
            excerpt = stderr_excerpt(stderr, self.stderr_limit)
            logger.error(f"[YtDlpService] Stream failed with code {returncode}: {excerpt}")
            raise ExtractionError(returncode, excerpt)

    async def abort(self) -> None:
        """Остановить процесс (например, клиент отключился)"""
        if self.process.returncode is None:
            self.process.kill()
        await self.process.wait()
        self._stderr_task.cancel()


class YtDlpService:
    """
    Низкоуровневый сервис для работы с yt-dlp

    Ответственность:
    - Получение метаданных и вариантов качества
    - Скачивание в файл с поиском итогового файла
    - Скачивание в stdout для прямой отдачи
    - Список и скачивание субтитров

    НЕ знает об очередях, пользователях и записях задач.
    Сам не повторяет вызовы: решение о повторе за вызывающим кодом.
    """

    def __init__(
        self,
        ytdlp_path: str = config.YTDLP_PATH,
        timeout: float = config.PROCESSING_TIMEOUT,
        stderr_limit: int = config.STDERR_EXCERPT_LIMIT,
        parser: Optional[ExtractionOutputParser] = None,
        ffmpeg_path=_NOT_RESOLVED,
    ):
        """
        Args:
            ytdlp_path: Путь к yt-dlp
            timeout: Максимальное время одного вызова в секундах (0 - без ограничения)
            stderr_limit: Сколько символов stderr сохранять в ошибке
            parser: Разбор вывода (для тестов)
            ffmpeg_path: Путь к ffmpeg; если не передан - ищется при первом вызове
        """
        self.command = ytdlp_command(ytdlp_path)
        self.timeout = timeout
        self.stderr_limit = stderr_limit
        self.parser = parser or ExtractionOutputParser()
        self._ffmpeg_path = ffmpeg_path
        self._last_unique_id = 0

    @property
    def ffmpeg_path(self) -> Optional[str]:
        if self._ffmpeg_path is _NOT_RESOLVED:
            self._ffmpeg_path = find_ffmpeg()
        return self._ffmpeg_path

    def _ffmpeg_args(self) -> List[str]:
        if self.ffmpeg_path:
            return ['--ffmpeg-location', self.ffmpeg_path]
        return []

    def _next_unique_id(self) -> str:
        """Монотонно растущий ID на основе времени в миллисекундах"""
        unique_id = max(int(time.time() * 1000), self._last_unique_id + 1)
        self._last_unique_id = unique_id
        return str(unique_id)

    async def _spawn(self, args: List[str]):
        cmd = self.command + args
        logger.info(f"[YtDlpService] Executing: {' '.join(cmd)}")
        try:
            return await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except FileNotFoundError as e:
            raise ExtractionError(None, str(e), f"yt-dlp executable not found: {self.command[0]}") from e

    async def _run(self, args: List[str], on_line: Optional[Callable[[str], None]] = None) -> ProcessOutput:
        """
        Запустить yt-dlp и дождаться завершения

        stdout читается построчно, каждая строка передается в on_line.

        Raises:
            ExtractionTimeoutError: Превышен timeout, процесс убит
        """
        process = await self._spawn(args)
        stdout_lines: List[str] = []
        stderr_chunks: List[bytes] = []

        async def read_stdout() -> None:
            async for raw in process.stdout:
                line = raw.decode('utf-8', errors='ignore').rstrip('\r\n')
                stdout_lines.append(line)
                if on_line:
                    on_line(line)

        async def read_stderr() -> None:
            while True:
                chunk = await process.stderr.read(CHUNK_SIZE)
                if not chunk:
                    break
                stderr_chunks.append(chunk)

        async def communicate() -> None:
            await asyncio.gather(read_stdout(), read_stderr())
            await process.wait()

        try:
            if self.timeout and self.timeout > 0:
                await asyncio.wait_for(communicate(), self.timeout)
            else:
                await communicate()
        except asyncio.TimeoutError:
            logger.error(f"[YtDlpService] Process timed out after {self.timeout}s, killing")
            if process.returncode is None:
                process.kill()
            await process.wait()
            stderr = b''.join(stderr_chunks).decode('utf-8', errors='ignore')
            raise ExtractionTimeoutError(self.timeout, stderr_excerpt(stderr, self.stderr_limit))

        return ProcessOutput(
            returncode=process.returncode,
            stdout='\n'.join(stdout_lines),
            stderr=b''.join(stderr_chunks).decode('utf-8', errors='ignore'),
        )

    def _raise_for_exit(self, result: ProcessOutput, action: str) -> None:
        if result.returncode != 0:
            excerpt = stderr_excerpt(result.stderr, self.stderr_limit)
            logger.error(f"[YtDlpService] {action} failed with code {result.returncode}: {excerpt}")
            raise ExtractionError(result.returncode, excerpt)

    async def fetch_info(self, url: str) -> Dict[str, Any]:
        """
        Получить сырой словарь --dump-json

        Raises:
            ExtractionError: yt-dlp завершился с ошибкой
            MetadataParseError: Вывод не является JSON
        """
        url = correct_url(url)
        result = await self._run(['--dump-json', '--no-playlist', '--flat-playlist', url])
        self._raise_for_exit(result, 'Metadata lookup')

        payload = next((line for line in result.stdout.splitlines() if line.lstrip().startswith('{')), None)
        if payload is None:
            raise MetadataParseError('no JSON object in output', result.stdout[:self.stderr_limit])
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise MetadataParseError(str(e), payload[:self.stderr_limit]) from e

    async def fetch_metadata(self, url: str) -> VideoMetadata:
        """
        Получить метаданные видео и варианты качества

        Args:
            url: URL видео

        Returns:
            VideoMetadata
        """
        info = await self.fetch_info(url)
        metadata = build_video_metadata(info)
        logger.info(f"[YtDlpService] Metadata for {metadata.id}: {len(metadata.formats)} options")
        return metadata

    async def download(
        self,
        url: str,
        format_selector: str,
        output_dir: str,
        quality_key: Optional[str] = None,
    ) -> str:
        """
        Скачать видео в файл

        Args:
            url: URL видео
            format_selector: Селектор формата (1080p, audio_mp3_128, best, выражение yt-dlp, format_id)
            output_dir: Директория для файла
            quality_key: Ключ качества (приоритетнее format_selector)

        Returns:
            Путь к итоговому файлу

        Raises:
            ExtractionError: yt-dlp завершился с ошибкой
            ArtifactNotFoundError: Файл не найден
            EmptyArtifactError: Файл пустой (удален)
        """
        url = correct_url(url)
        selector = FormatSelector.for_download(format_selector, quality_key)
        await asyncio.to_thread(os.makedirs, output_dir, exist_ok=True)

        unique_id = self._next_unique_id()
        template = os.path.join(output_dir, f"{unique_id}.%(ext)s")
        args = selector.download_args() + [
            '-o', template,
            '--no-playlist',
            '--print', 'after_move:filepath',
        ] + self._ffmpeg_args() + [url]

        logger.info(f"[YtDlpService] Скачиваю в файл: {url} (формат: {selector.expression})")

        state = DownloadOutputState()
        result = await self._run(args, lambda line: self.parser.feed(state, line))
        self._raise_for_exit(result, 'Download')

        path = await asyncio.to_thread(self.parser.resolve_artifact, state, output_dir, unique_id)
        path = await asyncio.to_thread(validate_artifact, path)
        logger.info(f"[YtDlpService] Видео скачано в файл: {path}")
        return path

    async def stream_download(
        self,
        url: str,
        format_selector: str,
        quality_key: Optional[str] = None,
    ) -> DownloadHandle:
        """
        Запустить скачивание в stdout для прямой отдачи клиенту

        Returns:
            DownloadHandle - чтение чанков и ожидание завершения
        """
        url = correct_url(url)
        selector = FormatSelector.for_stream(format_selector, quality_key)
        args = selector.stream_args() + ['--no-playlist'] + self._ffmpeg_args() + [url]

        logger.info(f"[YtDlpService] Скачиваю в поток: {url} (формат: {selector.expression})")
        process = await self._spawn(args)
        return DownloadHandle(process, self.stderr_limit)

    async def list_subtitles(self, url: str) -> List[SubtitleDescriptor]:
        """
        Список доступных субтитров

        Отсутствие субтитров - пустой список, а не ошибка.
        """
        url = correct_url(url)
        result = await self._run(['--list-subs', '--no-playlist', url])

        if is_no_subtitles_report(result.stdout, result.stderr):
            logger.info(f"[YtDlpService] No subtitles available for {url}")
            return []

        self._raise_for_exit(result, 'Subtitle listing')
        subtitles = parse_subtitle_listing(result.stdout)
        logger.info(f"[YtDlpService] Found {len(subtitles)} subtitle languages")
        return subtitles

    async def download_subtitle(
        self,
        url: str,
        lang: str,
        sub_format: str,
        output_dir: str,
        base_name: str,
    ) -> str:
        """
        Скачать субтитры одного языка

        Returns:
            Путь к файлу субтитров

        Raises:
            SubtitleUnavailableError: Нет субтитров этого языка/формата
            ExtractionError: yt-dlp завершился с другой ошибкой
        """
        url = correct_url(url)
        await asyncio.to_thread(os.makedirs, output_dir, exist_ok=True)
        args = [
            '--write-sub',
            '--skip-download',
            '--no-playlist',
            '--sub-lang', lang,
            '--sub-format', sub_format,
            '-o', os.path.join(output_dir, f"{base_name}.%(ext)s"),
            url,
        ]

        state = DownloadOutputState()
        result = await self._run(args, lambda line: self.parser.feed(state, line))

        if result.returncode != 0 and is_subtitle_unavailable_report(result.stdout, result.stderr):
            raise SubtitleUnavailableError(lang)
        self._raise_for_exit(result, 'Subtitle download')

        try:
            path = await asyncio.to_thread(
                self.parser.resolve_subtitle, state, output_dir, base_name, lang, sub_format
            )
        except ArtifactNotFoundError:
            # yt-dlp может завершиться с кодом 0 и только предупредить об отсутствии субтитров
            if is_no_subtitles_report(result.stdout, result.stderr) or \
                    is_subtitle_unavailable_report(result.stdout, result.stderr):
                raise SubtitleUnavailableError(lang)
            raise

        logger.info(f"[YtDlpService] Subtitle saved: {path}")
        return path

    async def list_supported_sites(self) -> List[str]:
        """Список экстракторов yt-dlp (--list-extractors)"""
        result = await self._run(['--list-extractors'])
        self._raise_for_exit(result, 'Extractor listing')
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

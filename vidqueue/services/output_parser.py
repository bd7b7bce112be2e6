"""
Разбор вывода yt-dlp и поиск итогового файла

Не запускает процессы: получает строки вывода и работает с файловой системой,
поэтому эвристики тестируются на сохраненных примерах вывода.
"""
import os
import re
import logging
from dataclasses import dataclass, field
from typing import Optional, List, Tuple

from vidqueue.models.video_metadata import SubtitleDescriptor
from vidqueue.services.errors import ArtifactNotFoundError, EmptyArtifactError
from vidqueue.utils.utils import format_file_size

logger = logging.getLogger(__name__)

MERGE_RE = re.compile(r'\[Merger\] Merging formats into "(.+)"')
DESTINATION_RE = re.compile(r'\[(?:download|ExtractAudio)\] Destination: (.+)')
SUBTITLE_WRITE_RE = re.compile(r'Writing video subtitles to: (.+)')

PREFERRED_EXT = '.mp4'
VIDEO_EXTS = ('.mp4', '.mkv', '.webm', '.avi', '.mov')
AUDIO_EXTS = ('.mp3', '.m4a', '.ogg', '.opus', '.wav', '.flac')

# Расширения незавершенных или служебных файлов
PLACEHOLDER_EXTS = ('', '.part', '.ytdl', '.txt', '.tmp', '.temp')

NO_SUBTITLES_MARKERS = ('There are no subtitles', 'has no subtitles')
SUBTITLE_UNAVAILABLE_MARKERS = ('Requested format is not available', 'No subtitles found')
SUBTITLE_FORMATS = ('vtt', 'srt', 'ttml', 'srv1', 'srv2', 'srv3', 'json3', 'ass')

# Семейства контейнеров: каноническое расширение -> допустимые расширения
CONTAINER_FAMILIES = {
    'mp4': ('.mp4', '.m4a', '.m4v', '.mov', '.3gp'),
    'm4a': ('.m4a', '.mp4'),
    'webm': ('.webm', '.mkv', '.mka'),
    'mkv': ('.mkv', '.webm', '.mka'),
    'mp3': ('.mp3',),
    'ogg': ('.ogg', '.opus', '.oga'),
    'flac': ('.flac',),
    'wav': ('.wav',),
    'avi': ('.avi',),
}


@dataclass
class DownloadOutputState:
    """
    Накопитель сигналов о пути к файлу из вывода yt-dlp

    Каждая строка stdout передается в ExtractionOutputParser.feed(),
    который обновляет только этот объект.
    """
    printed_paths: List[str] = field(default_factory=list)
    merged_path: Optional[str] = None
    destination_path: Optional[str] = None
    subtitle_path: Optional[str] = None

    @property
    def printed_path(self) -> Optional[str]:
        """Последний выведенный путь, который существует на диске"""
        for path in reversed(self.printed_paths):
            if os.path.isfile(path):
                return path
        return None


class ExtractionOutputParser:
    """
    Разбор построчного вывода yt-dlp

    Порядок приоритета итогового файла:
    1. Путь из --print after_move:filepath
    2. Файл из '[Merger] Merging formats into'
    3. Файл из '[download] Destination:'
    4. Поиск в директории по уникальному ID
    """

    def feed(self, state: DownloadOutputState, line: str) -> None:
        """Обработать одну строку stdout"""
        line = line.strip()
        if not line:
            return

        match = MERGE_RE.search(line)
        if match:
            state.merged_path = match.group(1).strip()
            logger.debug(f"[YTDLP_FILE_DETECTION] Detected merged output file: {state.merged_path}")
            return

        match = DESTINATION_RE.search(line)
        if match:
            state.destination_path = match.group(1).strip()
            logger.debug(f"[YTDLP_FILE_DETECTION] Detected download destination: {state.destination_path}")
            return

        match = SUBTITLE_WRITE_RE.search(line)
        if match:
            state.subtitle_path = match.group(1).strip()
            logger.debug(f"[YTDLP] Detected subtitle file: {state.subtitle_path}")
            return

        # --print выводит путь отдельной строкой без префикса [...]
        if not line.startswith('[') and _looks_like_path(line):
            state.printed_paths.append(line)
            logger.debug(f"[YTDLP_FILE_PATH] Potential file path: {line}")

    def resolve_artifact(self, state: DownloadOutputState, output_dir: str, unique_id: str) -> str:
        """
        Найти итоговый файл по приоритету сигналов

        Raises:
            ArtifactNotFoundError: Ни один источник не дал существующий файл
        """
        candidates = (
            ('--print filepath', state.printed_path),
            ('merged file', state.merged_path),
            ('download destination', state.destination_path),
        )
        for source, path in candidates:
            if path and os.path.isfile(path):
                logger.info(f"[YTDLP_FILE_DETECTION] Using {source}: {path}")
                return path

        logger.info(f"[YTDLP_FILE_DETECTION] Searching for files in directory: {output_dir}")
        path = scan_for_artifact(output_dir, unique_id)
        if not path:
            raise ArtifactNotFoundError(f"Downloaded file not found in {output_dir} (id {unique_id})")
        return path

    def resolve_subtitle(self, state: DownloadOutputState, output_dir: str,
                         base_name: str, lang: str, sub_format: str) -> str:
        """
        Найти файл субтитров: сначала из вывода, затем в директории

        Raises:
            ArtifactNotFoundError: Файл не найден
        """
        if state.subtitle_path and os.path.isfile(state.subtitle_path):
            return state.subtitle_path

        logger.info("[YTDLP] Subtitle file not detected from stdout, searching in directory")
        try:
            files = sorted(os.listdir(output_dir))
        except OSError as e:
            raise ArtifactNotFoundError(f"Error reading directory {output_dir}: {e}") from e

        matching = [
            name for name in files
            if name.startswith(base_name) and f'.{lang}.' in name and name.endswith(f'.{sub_format}')
        ]
        if not matching:
            raise ArtifactNotFoundError(f"Subtitle file {base_name}.{lang}.{sub_format} not found")
        return os.path.join(output_dir, matching[0])


def _looks_like_path(line: str) -> bool:
    return os.path.isabs(line) or os.sep in line


def _file_infos(output_dir: str, unique_id: str) -> List[Tuple[str, int, str]]:
    infos = []
    for name in os.listdir(output_dir):
        if not name.startswith(unique_id):
            continue
        path = os.path.join(output_dir, name)
        if not os.path.isfile(path):
            continue
        infos.append((path, os.path.getsize(path), os.path.splitext(name)[1].lower()))
    return infos


def scan_for_artifact(output_dir: str, unique_id: str) -> Optional[str]:
    """
    Поиск файла по префиксу уникального ID

    Предпочтение: самый большой .mp4 > самый большой видеофайл > самый большой файл.
    """
    try:
        infos = _file_infos(output_dir, str(unique_id))
    except OSError as e:
        logger.error(f"[YTDLP_ERROR] Error reading directory {output_dir}: {e}")
        return None

    if not infos:
        logger.warning(f"[YTDLP_ERROR] No matching files found in {output_dir}")
        return None

    for exts in ((PREFERRED_EXT,), VIDEO_EXTS):
        matching = [info for info in infos if info[2] in exts]
        if matching:
            path, size, _ = max(matching, key=lambda info: info[1])
            logger.info(f"[YTDLP_FILE_DETECTION] Found file: {path} ({format_file_size(size)})")
            return path

    path, size, _ = max(infos, key=lambda info: info[1])
    logger.info(f"[YTDLP_FILE_DETECTION] No video file found, using largest file: {path} ({format_file_size(size)})")
    return path


def sniff_container(header: bytes) -> Optional[str]:
    """
    Определить контейнер по первым байтам файла

    Returns:
        Каноническое расширение без точки или None
    """
    if len(header) >= 12 and header[4:8] == b'ftyp':
        if header[8:12] == b'M4A ':
            return 'm4a'
        return 'mp4'
    if header.startswith(b'\x1a\x45\xdf\xa3'):
        return 'webm' if b'webm' in header[:64] else 'mkv'
    if header.startswith(b'ID3') or (len(header) >= 2 and header[0] == 0xFF and header[1] & 0xE0 == 0xE0):
        return 'mp3'
    if header.startswith(b'OggS'):
        return 'ogg'
    if header.startswith(b'fLaC'):
        return 'flac'
    if header.startswith(b'RIFF') and len(header) >= 12:
        if header[8:12] == b'WAVE':
            return 'wav'
        if header[8:12] == b'AVI ':
            return 'avi'
    return None


def _read_header(path: str, size: int = 64) -> bytes:
    with open(path, 'rb') as f:
        return f.read(size)


def _rename_extension(path: str, new_ext: str) -> str:
    base = os.path.splitext(path)[0]
    new_path = f"{base}.{new_ext}"
    if os.path.exists(new_path):
        logger.warning(f"[YTDLP_FIX] Cannot rename {path}: {new_path} already exists")
        return path
    os.rename(path, new_path)
    logger.info(f"[YTDLP_FIX] Renamed {path} to {new_path}")
    return new_path


def validate_artifact(path: str) -> str:
    """
    Проверить скачанный файл и исправить расширение

    - файл 0 байт удаляется, EmptyArtifactError
    - расширение отсутствует или служебное (.part, .ytdl, ...) -> по сигнатуре, иначе .mp4
    - расширение не совпадает с сигнатурой -> переименование

    Returns:
        Итоговый путь (возможно, переименованный)
    """
    size = os.path.getsize(path)
    if size == 0:
        logger.error(f"[YTDLP_ERROR] File size is zero, removing empty file: {path}")
        os.remove(path)
        raise EmptyArtifactError(f"Downloaded file is empty: {path}")

    ext = os.path.splitext(path)[1].lower()
    detected = sniff_container(_read_header(path))
    logger.info(f"[YTDLP_FILE_INFO] File size: {format_file_size(size)}, extension: {ext or '-'}, detected: {detected or '-'}")

    if ext in PLACEHOLDER_EXTS:
        return _rename_extension(path, detected or 'mp4')

    if ext not in VIDEO_EXTS + AUDIO_EXTS:
        logger.warning(f"[YTDLP_WARNING] File has unexpected extension: {ext}")
        return _rename_extension(path, detected) if detected else path

    if detected and ext not in CONTAINER_FAMILIES[detected]:
        logger.warning(f"[YTDLP_FIX] Extension {ext} does not match {detected} signature")
        return _rename_extension(path, detected)

    return path


def is_no_subtitles_report(*outputs: str) -> bool:
    """yt-dlp сообщил, что субтитров нет (в любом потоке)"""
    return any(marker in (output or '') for output in outputs for marker in NO_SUBTITLES_MARKERS)


def is_subtitle_unavailable_report(*outputs: str) -> bool:
    """yt-dlp сообщил, что нет субтитров нужного языка или формата"""
    return any(marker in (output or '') for output in outputs for marker in SUBTITLE_UNAVAILABLE_MARKERS)


def _split_formats(text: str) -> List[str]:
    return [fmt.strip() for fmt in re.split(r',\s*', text) if fmt.strip()]


def _parse_subtitle_row(line: str) -> Optional[SubtitleDescriptor]:
    columns = re.split(r'\s{2,}', line.strip())
    if len(columns) >= 3:
        formats = _split_formats(' '.join(columns[2:]))
        return SubtitleDescriptor(columns[0], columns[1], formats or ['srt'])
    if len(columns) == 2:
        code, rest = columns
        if ',' in rest or rest in SUBTITLE_FORMATS:
            return SubtitleDescriptor(code, code, _split_formats(rest))
        return SubtitleDescriptor(code, rest)

    parts = line.split()
    if len(parts) >= 2:
        formats = _split_formats(' '.join(parts[2:]))
        return SubtitleDescriptor(parts[0], parts[1], formats or ['srt'])
    return None


def parse_subtitle_listing(output: str) -> List[SubtitleDescriptor]:
    """
    Разобрать отчет --list-subs

    Формат:
        [info] Available subtitles for ID:
        Language  Name     Formats
        en        English  vtt, ttml, srv3

    Раздел заканчивается на следующей строке с префиксом [...].
    """
    subtitles = []
    in_section = False
    in_table = False

    for line in output.splitlines():
        if 'Available subtitles' in line:
            in_section = True
            in_table = False
            continue
        if not in_section:
            continue
        if line.startswith('['):
            in_section = False
            continue
        if not in_table:
            if line.strip().startswith('Language'):
                in_table = True
            continue
        if not line.strip():
            continue

        descriptor = _parse_subtitle_row(line)
        if descriptor:
            subtitles.append(descriptor)

    return subtitles

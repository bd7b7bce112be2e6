"""
Конфигурация планировщика скачиваний
Все значения читаются из переменных окружения (.env)
"""
import os
import shutil
from dotenv import load_dotenv

load_dotenv()


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


# --------- Очередь (Redis) ---------

# Отсутствие REDIS_URL - валидная конфигурация: работаем только в режиме прямой обработки
REDIS_URL = os.getenv("REDIS_URL") or None

# Время блокирующего ожидания задачи из очереди (BRPOP), секунды
QUEUE_POLL_TIMEOUT = _get_int("QUEUE_POLL_TIMEOUT", 1)

# Количество одновременных задач на каждый уровень
PREMIUM_CONCURRENCY = _get_int("PREMIUM_CONCURRENCY", 5)
FREE_CONCURRENCY = _get_int("FREE_CONCURRENCY", 3)
ANONYMOUS_CONCURRENCY = _get_int("ANONYMOUS_CONCURRENCY", 2)

# --------- Мониторинг нагрузки ---------

LOAD_SAMPLE_INTERVAL = _get_float("LOAD_SAMPLE_INTERVAL", 30.0)
LOAD_ADJUST_INTERVAL = _get_float("LOAD_ADJUST_INTERVAL", 10.0)
OVERLOAD_THRESHOLD = _get_float("OVERLOAD_THRESHOLD", 80.0)
SEVERE_OVERLOAD_THRESHOLD = _get_float("SEVERE_OVERLOAD_THRESHOLD", 90.0)

# --------- yt-dlp ---------

YTDLP_PATH = os.getenv("YTDLP_PATH") or shutil.which("yt-dlp") or "yt-dlp"

# Максимальное время работы одного вызова yt-dlp (0 - без ограничения)
PROCESSING_TIMEOUT = _get_float("PROCESSING_TIMEOUT", 1800.0)

# Сколько символов stderr сохранять в ошибке
STDERR_EXCERPT_LIMIT = _get_int("STDERR_EXCERPT_LIMIT", 1000)

# --------- Файлы ---------

DOWNLOAD_DIR = os.getenv("DOWNLOAD_DIR", os.path.join(os.getcwd(), "downloads"))
ANONYMOUS_DIR_NAME = "anonymous"

# --------- Хранение ---------

PREMIUM_STORAGE_DAYS = _get_float("PREMIUM_STORAGE_DAYS", 30)
FREE_STORAGE_DAYS = _get_float("FREE_STORAGE_DAYS", 7)
ANONYMOUS_FILE_TTL_MINUTES = _get_float("ANONYMOUS_FILE_TTL_MINUTES", 5)

# Максимальная длина сообщения об ошибке в записи задачи
ERROR_MESSAGE_LIMIT = _get_int("ERROR_MESSAGE_LIMIT", 200)

# --------- Внешние сервисы ---------

PREMIUM_USER_IDS = [
    user_id.strip()
    for user_id in os.getenv("PREMIUM_USER_IDS", "").split(",")
    if user_id.strip()
]

DATABASE_URL = os.getenv("DATABASE_URL") or None

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Сколько ждать завершения текущих задач при остановке, секунды
SHUTDOWN_TIMEOUT = _get_float("SHUTDOWN_TIMEOUT", 30.0)

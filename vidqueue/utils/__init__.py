"""
Утилиты для работы с URL, размерами и длительностью
"""
from .utils import (
    correct_url,
    get_platform,
    format_file_size,
    format_duration,
    truncate
)

__all__ = [
    'correct_url',
    'get_platform',
    'format_file_size',
    'format_duration',
    'truncate'
]

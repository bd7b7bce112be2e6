"""
Обработка задач на скачивание
"""
from .download_worker import JobProcessor

__all__ = ['JobProcessor']

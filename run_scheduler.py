"""
Скрипт для запуска планировщика скачиваний
Запускать из корневой директории проекта: python run_scheduler.py
"""
import sys
import os

# Добавляем корневую директорию в PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from vidqueue.app import main

if __name__ == "__main__":
    main()

"""
vidqueue - планировщик скачиваний видео через yt-dlp с очередями по уровням пользователей
"""

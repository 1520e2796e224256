import os
from pathlib import Path

from dotenv import load_dotenv

# .env лежит в корне проекта
env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=env_path)

# Telegram
BOT_TOKEN = os.getenv("BOT_TOKEN")
ADMIN_TELEGRAM_IDS = [
    int(value) for value in os.getenv("ADMIN_TELEGRAM_IDS", "").split(",") if value.strip()
]

# Локальный кэш (SQLite)
DATABASE_PATH = os.getenv("DATABASE_PATH", "studio.db")

# Облачное хранилище (Supabase REST). Без ключей бот работает офлайн
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")
REMOTE_TIMEOUT_SECONDS = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "10"))

# EmailJS. Пока ключи не заданы, письма только логируются
EMAILJS_SERVICE_ID = os.getenv("EMAILJS_SERVICE_ID", "")
EMAILJS_TEMPLATE_ID = os.getenv("EMAILJS_TEMPLATE_ID", "")
EMAILJS_PUBLIC_KEY = os.getenv("EMAILJS_PUBLIC_KEY", "")
EMAILJS_API_URL = os.getenv("EMAILJS_API_URL", "https://api.emailjs.com/api/v1.0/email/send")

# Расписание
TIMEZONE = os.getenv("TIMEZONE", "America/Sao_Paulo")
SCHEDULE_START_HOUR = int(os.getenv("SCHEDULE_START_HOUR", "7"))
SCHEDULE_HOURS_COUNT = int(os.getenv("SCHEDULE_HOURS_COUNT", "14"))

# Минимальное время показа индикатора синхронизации, сек
SYNC_INDICATOR_DELAY = float(os.getenv("SYNC_INDICATOR_DELAY", "0.8"))

STUDIO_NAME = os.getenv("STUDIO_NAME", "Студия пилатеса")

MESSAGES = {
    'welcome': (
        "👋 Добро пожаловать в «{studio}»!\n\n"
        "Здесь можно посмотреть расписание занятий, записаться на свободное место "
        "и отменить свою запись."
    ),
    'welcome_admin': (
        "👋 Панель администратора «{studio}».\n\n"
        "Настраивайте сетку занятий, отмечайте посещаемость и управляйте местами."
    ),
    'ask_email': (
        "📧 Укажите e-mail, на который будут приходить подтверждения записи:"
    ),
    'email_saved': "✅ E-mail сохранён. Теперь можно записываться на занятия.",
    'booking_success': (
        "✅ <b>Вы записаны!</b>\n\n"
        "📅 Дата: {date}\n"
        "🕐 Время: {time}\n"
        "🏷 Занятие: {service}\n"
        "💰 Стоимость: {price}"
    ),
    'cancel_success': (
        "❌ Запись на {date} в {time} отменена."
    ),
    'seat_taken': "😔 Это место уже занято. Выберите другое.",
    'not_allowed': "⛔ Это действие доступно только администратору.",
    'import_success': "✅ Данные восстановлены из резервной копии.",
    'import_error': "❌ Ошибка импорта данных: {error}",
}

import logging
import sys
import os
from telegram.ext import Application, CommandHandler, CallbackQueryHandler, MessageHandler, filters
from config import BOT_TOKEN
from bot.handlers import BotHandlers


def setup_logging():
    """Настройка логирования с поддержкой Unicode"""
    # Настраиваем кодировку для Windows
    if sys.platform == "win32":
        os.environ["PYTHONIOENCODING"] = "utf-8"

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    logger = logging.getLogger()
    logger.setLevel(logging.INFO)

    file_handler = logging.FileHandler('bot.log', encoding='utf-8')
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # httpx пишет каждый запрос на INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main():
    """Основная функция запуска бота"""
    setup_logging()
    logger = logging.getLogger(__name__)

    if not BOT_TOKEN:
        logger.error("Не задан BOT_TOKEN (переменная окружения или .env)")
        sys.exit(1)

    try:
        handlers = BotHandlers()

        # Данные загружаются до начала опроса
        application = (
            Application.builder()
            .token(BOT_TOKEN)
            .post_init(handlers.post_init)
            .post_shutdown(handlers.post_shutdown)
            .build()
        )

        # Регистрация обработчиков
        application.add_handler(CommandHandler("start", handlers.start))
        application.add_handler(CommandHandler("help", handlers.help_command))
        application.add_handler(CommandHandler("schedule", handlers.schedule_command))
        application.add_handler(CommandHandler("mybookings", handlers.my_bookings))
        application.add_handler(CommandHandler("services", handlers.services_command))
        application.add_handler(CommandHandler("configure", handlers.configure_command))
        application.add_handler(CommandHandler("export", handlers.export_command))
        application.add_handler(CallbackQueryHandler(handlers.button_handler))
        application.add_handler(MessageHandler(filters.Document.FileExtension("json"), handlers.handle_backup_document))
        application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handlers.handle_text))

        # Запуск бота
        logger.info("Бот запущен и готов к работе")
        application.run_polling()

    except Exception as e:
        logger.error(f"Критическая ошибка при запуске бота: {e}")
        raise


if __name__ == '__main__':
    main()

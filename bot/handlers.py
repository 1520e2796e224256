import asyncio
import json
import logging
import re
from dataclasses import replace
from datetime import datetime
from typing import Dict

from telegram import Update
from telegram.error import BadRequest
from telegram.ext import Application, ContextTypes

from config import ADMIN_TELEGRAM_IDS, MESSAGES, STUDIO_NAME, SYNC_INDICATOR_DELAY
from database.models import AttendanceStatus, Caller, UserRole
from services.backup import BackupImportError
from services.schedule import studio_today
from services.studio import StudioStore
from .keyboards import BotKeyboards
from utils.helpers import (
    format_booking_list, format_date, format_day_grid, format_price, format_slot, parse_configure_args,
    service_name,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_callback(data: str, parts: int):
    """'book_2024-06-03_09-00_1' -> ['2024-06-03', '09:00', '1']"""
    _, rest = data.split('_', 1)
    values = rest.split('_', parts - 1)
    values[1] = values[1].replace('-', ':')
    return values


class BotHandlers:
    """Класс обработчиков команд бота"""

    def __init__(self, store: StudioStore = None):
        self.keyboards = BotKeyboards()
        self.store = store or StudioStore()
        self.user_sessions: Dict[int, Dict] = {}  # Сессии пользователей

    async def post_init(self, application: Application):
        """Загрузка данных перед запуском опроса"""
        await self.store.load_all()

    async def post_shutdown(self, application: Application):
        remote = self.store.gateway.remote
        if remote is not None:
            await remote.close()

    def caller_for(self, user) -> Caller:
        if user.id in ADMIN_TELEGRAM_IDS:
            return Caller(role=UserRole.ADMIN, name=user.full_name)
        return Caller(role=UserRole.CLIENT, student_id=f"tg{user.id}", name=user.full_name)

    async def _with_sync_indicator(self, query, operation):
        """Показывает индикатор синхронизации не меньше SYNC_INDICATOR_DELAY секунд"""
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            await query.edit_message_reply_markup(reply_markup=self.keyboards.processing_keyboard())
        except BadRequest as e:
            logger.debug(f"Не удалось показать индикатор: {e}")

        result = await operation

        remaining = SYNC_INDICATOR_DELAY - (loop.time() - started)
        if remaining > 0:
            await asyncio.sleep(remaining)
        return result

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Обработчик команды /start"""
        user = update.effective_user
        caller = self.caller_for(user)
        logger.info(f"Пользователь {user.id} ({user.username}) запустил бота")

        if not caller.is_admin:
            await self.store.ensure_student(caller.student_id, user.full_name)

        text = MESSAGES['welcome_admin' if caller.is_admin else 'welcome'].format(studio=STUDIO_NAME)
        await update.message.reply_text(text, reply_markup=self.keyboards.main_menu(caller.is_admin))

    async def help_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Обработчик команды /help"""
        caller = self.caller_for(update.effective_user)
        help_text = (
            "🤖 <b>Помощь по боту</b>\n\n"
            "📋 <b>Доступные команды:</b>\n"
            "/start - Главное меню\n"
            "/schedule [ГГГГ-ММ-ДД] - Расписание дня\n"
            "/mybookings - Мои записи\n"
            "/help - Эта справка\n"
        )
        if caller.is_admin:
            help_text += (
                "\n🛠 <b>Администратор:</b>\n"
                "/services - Услуги и их коды\n"
                "/configure today|week|month мест услуга|- часы|all\n"
                "   например: /configure week 3 serv1 9 10 18\n"
                "/export - Резервная копия\n"
                "Отправьте файл .json, чтобы восстановить данные из копии\n"
            )

        # Определяем, откуда пришел запрос
        if update.message:
            await update.message.reply_text(
                help_text,
                parse_mode='HTML',
                reply_markup=self.keyboards.back_to_main()
            )
        else:
            query = update.callback_query
            await query.edit_message_text(
                help_text,
                parse_mode='HTML',
                reply_markup=self.keyboards.back_to_main()
            )

    async def schedule_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Обработчик команды /schedule"""
        day = studio_today().strftime('%Y-%m-%d')
        if context.args:
            try:
                day = datetime.strptime(context.args[0], '%Y-%m-%d').strftime('%Y-%m-%d')
            except ValueError:
                await update.message.reply_text("❌ Дата должна быть в формате ГГГГ-ММ-ДД")
                return

        caller = self.caller_for(update.effective_user)
        grid = self.store.day_grid(day)
        await update.message.reply_text(
            format_day_grid(day, grid, self.store.data.services),
            parse_mode='HTML',
            reply_markup=self.keyboards.day_keyboard(day, grid, caller.is_admin)
        )

    async def show_day(self, update: Update, context: ContextTypes.DEFAULT_TYPE, day: str):
        """Сетка дня"""
        query = update.callback_query
        caller = self.caller_for(update.effective_user)
        grid = self.store.day_grid(day)

        await query.edit_message_text(
            format_day_grid(day, grid, self.store.data.services),
            parse_mode='HTML',
            reply_markup=self.keyboards.day_keyboard(day, grid, caller.is_admin)
        )

    async def show_slot(self, update: Update, context: ContextTypes.DEFAULT_TYPE, day: str, hour: str):
        """Места слота"""
        query = update.callback_query
        caller = self.caller_for(update.effective_user)
        slot = self.store.slot(day, hour)

        await query.edit_message_text(
            format_slot(slot, self.store.data.services, self.store.data.students,
                        viewer_id=caller.student_id, is_admin=caller.is_admin),
            reply_markup=self.keyboards.slot_keyboard(slot, caller)
        )

    async def my_bookings(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Показать будущие записи пользователя"""
        caller = self.caller_for(update.effective_user)
        bookings = self.store.student_bookings(caller.student_id) if caller.student_id else []

        new_text = "📋 У вас пока нет записей на занятия." if not bookings else \
            "📋 <b>Ваши записи:</b>\n\n" + format_booking_list(bookings, self.store.data.services)
        new_markup = self.keyboards.back_to_main()

        try:
            if update.message:
                await update.message.reply_text(new_text, parse_mode='HTML', reply_markup=new_markup)
            else:
                await update.callback_query.edit_message_text(new_text, parse_mode='HTML', reply_markup=new_markup)
        except BadRequest as e:
            logger.error(f"Ошибка отображения записей: {e}")

    async def book(self, update: Update, context: ContextTypes.DEFAULT_TYPE, day: str, hour: str, index: int):
        """Запись клиента на место"""
        query = update.callback_query
        user = update.effective_user
        caller = self.caller_for(user)
        if caller.is_admin:
            await self.show_slot(update, context, day, hour)
            return

        student = await self.store.ensure_student(caller.student_id, user.full_name)

        if not student.email:
            # Сначала спрашиваем e-mail, запись выполним после ответа
            self.user_sessions[user.id] = {
                'waiting_for_email': True,
                'pending_booking': (day, hour, index),
            }
            await query.edit_message_text(MESSAGES['ask_email'])
            return

        result = await self._with_sync_indicator(query, self.store.book_seat(day, hour, index, caller))
        if not result.applied:
            slot = self.store.slot(day, hour)
            await query.edit_message_text(
                MESSAGES['seat_taken'],
                reply_markup=self.keyboards.slot_keyboard(slot, caller)
            )
            return

        await query.edit_message_text(
            self._booking_text(day, hour, index),
            parse_mode='HTML',
            reply_markup=self.keyboards.back_to_main()
        )

    def _booking_text(self, day: str, hour: str, index: int) -> str:
        slot = self.store.slot(day, hour)
        return MESSAGES['booking_success'].format(
            date=format_date(day),
            time=hour,
            service=service_name(self.store.data.services, slot.service_id),
            price=format_price(slot.enrollments[index].price),
        )

    async def cancel(self, update: Update, context: ContextTypes.DEFAULT_TYPE, day: str, hour: str, index: int):
        """Отмена своей записи"""
        query = update.callback_query
        caller = self.caller_for(update.effective_user)

        result = await self._with_sync_indicator(query, self.store.cancel_seat(day, hour, index, caller))
        if not result.applied:
            await self.show_slot(update, context, day, hour)
            return

        await query.edit_message_text(
            MESSAGES['cancel_success'].format(date=format_date(day), time=hour),
            reply_markup=self.keyboards.back_to_main()
        )

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Обработка e-mail клиента"""
        user = update.effective_user
        session_data = self.user_sessions.get(user.id)

        if not session_data or not session_data.get('waiting_for_email'):
            return  # Игнорируем, если пользователь не в процессе записи

        email = update.message.text.strip()
        if not EMAIL_RE.match(email):
            await update.message.reply_text(
                "❌ Пожалуйста, укажите корректный e-mail.\n\nНапример: maria@email.com"
            )
            return

        caller = self.caller_for(user)
        student = await self.store.ensure_student(caller.student_id, user.full_name)
        await self.store.update_student(replace(student, email=email))
        del self.user_sessions[user.id]

        day, hour, index = session_data['pending_booking']
        result = await self.store.book_seat(day, hour, index, caller)
        if result.applied:
            await update.message.reply_text(
                self._booking_text(day, hour, index),
                parse_mode='HTML',
                reply_markup=self.keyboards.back_to_main()
            )
        else:
            await update.message.reply_text(
                f"{MESSAGES['email_saved']}\n{MESSAGES['seat_taken']}",
                reply_markup=self.keyboards.main_menu()
            )

    # --- Администратор ---

    async def _admin_only(self, update: Update) -> bool:
        caller = self.caller_for(update.effective_user)
        if caller.is_admin:
            return True
        if update.callback_query:
            await update.callback_query.edit_message_text(
                MESSAGES['not_allowed'], reply_markup=self.keyboards.back_to_main()
            )
        else:
            await update.message.reply_text(MESSAGES['not_allowed'])
        return False

    async def services_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Список услуг с кодами для /configure"""
        if not await self._admin_only(update):
            return

        services = self.store.data.services
        text = "🏷 <b>Услуги:</b>\n\n" + "\n".join(
            f"<code>{s.id}</code> — {s.name}, {format_price(s.price)}" for s in services
        ) if services else "Услуги не настроены."
        await update.message.reply_text(text, parse_mode='HTML')

    async def configure_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Массовая настройка сетки: /configure <период> <мест> <услуга|-> <часы|all>"""
        if not await self._admin_only(update):
            return

        caller = self.caller_for(update.effective_user)
        try:
            args = parse_configure_args(context.args or [])
            anchor = studio_today()
            await self.store.batch_configure(
                anchor, args.period, args.hours, args.capacity, args.service_id, caller
            )
        except ValueError as e:
            await update.message.reply_text(f"❌ {e}")
            return

        await update.message.reply_text(
            f"✅ Сетка настроена: {len(args.hours)} ч., период {args.period.value}, "
            f"{args.capacity} мест, услуга {args.service_id or 'не изменена'}.",
            reply_markup=self.keyboards.main_menu(is_admin=True)
        )

    async def show_seat(self, update: Update, context: ContextTypes.DEFAULT_TYPE, day: str, hour: str, index: int):
        query = update.callback_query
        slot = self.store.slot(day, hour)
        if not 0 <= index < len(slot.enrollments):
            await self.show_slot(update, context, day, hour)
            return

        seat = slot.enrollments[index]
        student = self.store.data.find_student(seat.student_id)
        await query.edit_message_text(
            f"📅 {format_date(day)}, 🕐 {hour}\n"
            f"Место {index + 1}: {student.name if student else '—'}\n"
            f"Статус: {seat.status.value}, цена: {format_price(seat.price)}",
            reply_markup=self.keyboards.seat_keyboard(slot, index)
        )

    async def set_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                         day: str, hour: str, index: int, status: str):
        query = update.callback_query
        caller = self.caller_for(update.effective_user)
        await self._with_sync_indicator(
            query, self.store.update_seat(day, hour, index, caller, status=AttendanceStatus(status))
        )
        await self.show_seat(update, context, day, hour, index)

    async def show_students(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                            day: str, hour: str, index: int):
        query = update.callback_query
        slot = self.store.slot(day, hour)
        await query.edit_message_text(
            f"👤 Выберите клиента для места {index + 1} ({format_date(day)}, {hour}):",
            reply_markup=self.keyboards.students_keyboard(slot, index, self.store.data.students)
        )

    async def assign_student(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                             day: str, hour: str, index: int, student_id: str):
        query = update.callback_query
        caller = self.caller_for(update.effective_user)
        await self._with_sync_indicator(
            query,
            self.store.update_seat(day, hour, index, caller, student_id=None if student_id == '-' else student_id)
        )
        await self.show_seat(update, context, day, hour, index)

    async def add_seat(self, update: Update, context: ContextTypes.DEFAULT_TYPE, day: str, hour: str):
        query = update.callback_query
        caller = self.caller_for(update.effective_user)
        slot = self.store.slot(day, hour)
        if not slot.service_id:
            await query.edit_message_text(
                "🏷 Сначала назначьте услугу для этого часа.",
                reply_markup=self.keyboards.slot_keyboard(slot, caller)
            )
            return
        await self._with_sync_indicator(query, self.store.add_seat(day, hour, caller))
        await self.show_slot(update, context, day, hour)

    async def remove_seat(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                          day: str, hour: str, index: int):
        query = update.callback_query
        caller = self.caller_for(update.effective_user)
        await self._with_sync_indicator(query, self.store.remove_seat(day, hour, index, caller))
        await self.show_slot(update, context, day, hour)

    async def show_services(self, update: Update, context: ContextTypes.DEFAULT_TYPE, day: str, hour: str):
        query = update.callback_query
        slot = self.store.slot(day, hour)
        await query.edit_message_text(
            f"🏷 Услуга для {format_date(day)}, {hour}:",
            reply_markup=self.keyboards.services_keyboard(slot, self.store.data.services, slot.service_id)
        )

    async def set_service(self, update: Update, context: ContextTypes.DEFAULT_TYPE,
                          day: str, hour: str, service_id: str):
        query = update.callback_query
        caller = self.caller_for(update.effective_user)
        await self._with_sync_indicator(
            query, self.store.set_slot_service(day, hour, None if service_id == '-' else service_id, caller)
        )
        await self.show_slot(update, context, day, hour)

    async def export_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Выгрузка резервной копии"""
        if not await self._admin_only(update):
            return

        backup = self.store.export_backup()
        filename = f"backup-{datetime.now().strftime('%Y%m%d-%H%M%S')}.json"
        await update.message.reply_document(
            document=json.dumps(backup, ensure_ascii=False, indent=2).encode('utf-8'),
            filename=filename,
            caption="💾 Резервная копия данных"
        )

    async def handle_backup_document(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Восстановление из присланного файла .json"""
        if not await self._admin_only(update):
            return

        try:
            telegram_file = await update.message.document.get_file()
            raw = await telegram_file.download_as_bytearray()
            await self.store.import_backup(json.loads(raw.decode('utf-8')))
        except (BackupImportError, ValueError) as e:
            logger.error(f"Ошибка импорта резервной копии: {e}")
            await update.message.reply_text(MESSAGES['import_error'].format(error=e))
            return

        await update.message.reply_text(
            MESSAGES['import_success'],
            reply_markup=self.keyboards.main_menu(is_admin=True)
        )

    async def button_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Общий обработчик кнопок"""
        query = update.callback_query
        data = query.data or ''

        try:
            await query.answer()
        except BadRequest as e:
            logger.warning(f"Не удалось ответить на callback query: {e}")

        admin_actions = ('seat_', 'status_', 'assign_', 'pick_', 'addseat_', 'rmseat_', 'svcmenu_', 'svc_')

        try:
            if data.startswith(admin_actions) and not await self._admin_only(update):
                return

            if data == 'schedule_today':
                await self.show_day(update, context, studio_today().strftime('%Y-%m-%d'))
            elif data == 'processing':
                logger.debug("Нажата кнопка индикатора синхронизации")
            elif data.startswith('day_'):
                await self.show_day(update, context, data.split('_', 1)[1])
            elif data.startswith('slot_'):
                day, hour = parse_callback(data, 2)
                await self.show_slot(update, context, day, hour)
            elif data.startswith('book_'):
                day, hour, index = parse_callback(data, 3)
                await self.book(update, context, day, hour, int(index))
            elif data.startswith('cancel_'):
                day, hour, index = parse_callback(data, 3)
                await self.cancel(update, context, day, hour, int(index))
            elif data.startswith('seat_'):
                day, hour, index = parse_callback(data, 3)
                await self.show_seat(update, context, day, hour, int(index))
            elif data.startswith('status_'):
                day, hour, index, status = parse_callback(data, 4)
                await self.set_status(update, context, day, hour, int(index), status)
            elif data.startswith('assign_'):
                day, hour, index = parse_callback(data, 3)
                await self.show_students(update, context, day, hour, int(index))
            elif data.startswith('pick_'):
                day, hour, index, student_id = parse_callback(data, 4)
                await self.assign_student(update, context, day, hour, int(index), student_id)
            elif data.startswith('addseat_'):
                day, hour = parse_callback(data, 2)
                await self.add_seat(update, context, day, hour)
            elif data.startswith('rmseat_'):
                day, hour, index = parse_callback(data, 3)
                await self.remove_seat(update, context, day, hour, int(index))
            elif data.startswith('svcmenu_'):
                day, hour = parse_callback(data, 2)
                await self.show_services(update, context, day, hour)
            elif data.startswith('svc_'):
                day, hour, service_id = parse_callback(data, 3)
                await self.set_service(update, context, day, hour, service_id)
            elif data == 'my_bookings':
                await self.my_bookings(update, context)
            elif data == 'help':
                await self.help_command(update, context)
            elif data == 'back_to_main':
                user = update.effective_user
                self.user_sessions.pop(user.id, None)
                caller = self.caller_for(user)
                text = MESSAGES['welcome_admin' if caller.is_admin else 'welcome'].format(studio=STUDIO_NAME)
                await query.edit_message_text(text, reply_markup=self.keyboards.main_menu(caller.is_admin))
            else:
                logger.warning(f"Неизвестная команда: {data}")

        except (BadRequest, ValueError) as e:
            logger.error(f"Ошибка обработки кнопки {data}: {e}")
            try:
                await query.edit_message_text(
                    "❌ Произошла ошибка. Возвращаюсь в главное меню.",
                    reply_markup=self.keyboards.back_to_main()
                )
            except BadRequest:
                # Если не удалось отредактировать сообщение, отправляем новое
                await context.bot.send_message(
                    chat_id=update.effective_chat.id,
                    text="❌ Произошла ошибка. Используйте /start для перезапуска.",
                )

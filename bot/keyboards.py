from datetime import datetime, timedelta
from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from database.models import AttendanceStatus, Caller, ClassSlot, Service, Student
from utils.helpers import STATUS_LABELS, format_price


def hour_code(hour: str) -> str:
    """'09:00' -> '09-00' для callback_data"""
    return hour.replace(":", "-")


def shift_date(day: str, days: int) -> str:
    return (datetime.strptime(day, '%Y-%m-%d') + timedelta(days=days)).strftime('%Y-%m-%d')


class BotKeyboards:
    """Класс для создания клавиатур бота"""

    @staticmethod
    def main_menu(is_admin: bool = False, processing: bool = False) -> InlineKeyboardMarkup:
        """Главное меню"""
        keyboard = [
            [InlineKeyboardButton("⏳ Загружаем расписание..." if processing
                else "📅 Расписание на сегодня",
                callback_data='schedule_today' if not processing else 'processing')],
        ]
        if not is_admin:
            keyboard.append([InlineKeyboardButton("📋 Мои записи", callback_data='my_bookings')])
        keyboard.append([InlineKeyboardButton("ℹ️ Помощь", callback_data='help')])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def day_keyboard(day: str, grid: List[ClassSlot], is_admin: bool = False) -> InlineKeyboardMarkup:
        """Часы дня: клиент видит только настроенные, администратор — все"""
        keyboard = []

        row = []
        for slot in grid:
            if not is_admin and not slot.service_id:
                continue
            label = f"🕐 {slot.hour}"
            if slot.service_id:
                label += f" ({slot.filled_seats}/{len(slot.enrollments)})"
            row.append(InlineKeyboardButton(label, callback_data=f'slot_{day}_{hour_code(slot.hour)}'))

            if len(row) == 3:
                keyboard.append(row)
                row = []

        if row:
            keyboard.append(row)

        keyboard.append([
            InlineKeyboardButton("◀️", callback_data=f'day_{shift_date(day, -1)}'),
            InlineKeyboardButton("Сегодня", callback_data='schedule_today'),
            InlineKeyboardButton("▶️", callback_data=f'day_{shift_date(day, 1)}'),
        ])
        keyboard.append([InlineKeyboardButton("◀️ В главное меню", callback_data='back_to_main')])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def slot_keyboard(slot: ClassSlot, caller: Caller) -> InlineKeyboardMarkup:
        """Действия с местами слота в зависимости от роли"""
        code = f"{slot.date}_{hour_code(slot.hour)}"
        keyboard = []

        if caller.is_admin:
            for index, seat in enumerate(slot.enrollments):
                keyboard.append([InlineKeyboardButton(
                    f"✏️ Место {index + 1}", callback_data=f'seat_{code}_{index}'
                )])
            keyboard.append([
                InlineKeyboardButton("➕ Место", callback_data=f'addseat_{code}'),
                InlineKeyboardButton("🏷 Услуга", callback_data=f'svcmenu_{code}'),
            ])
        else:
            own = [i for i, seat in enumerate(slot.enrollments) if seat.student_id == caller.student_id]
            if own:
                keyboard.append([InlineKeyboardButton(
                    "❌ Отменить запись", callback_data=f'cancel_{code}_{own[0]}'
                )])
            else:
                free = [i for i, seat in enumerate(slot.enrollments) if seat.is_open]
                if free:
                    keyboard.append([InlineKeyboardButton(
                        "✅ Записаться", callback_data=f'book_{code}_{free[0]}'
                    )])

        keyboard.append([InlineKeyboardButton("◀️ К расписанию дня", callback_data=f'day_{slot.date}')])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def seat_keyboard(slot: ClassSlot, index: int) -> InlineKeyboardMarkup:
        """Статусы и действия для места (администратор)"""
        code = f"{slot.date}_{hour_code(slot.hour)}_{index}"
        keyboard = []

        row = []
        for status in AttendanceStatus:
            row.append(InlineKeyboardButton(STATUS_LABELS[status], callback_data=f'status_{code}_{status.value}'))
            if len(row) == 2:
                keyboard.append(row)
                row = []
        if row:
            keyboard.append(row)

        keyboard.append([
            InlineKeyboardButton("👤 Назначить клиента", callback_data=f'assign_{code}'),
            InlineKeyboardButton("🗑 Удалить место", callback_data=f'rmseat_{code}'),
        ])
        keyboard.append([InlineKeyboardButton(
            "◀️ Назад", callback_data=f'slot_{slot.date}_{hour_code(slot.hour)}'
        )])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def students_keyboard(slot: ClassSlot, index: int, students: List[Student]) -> InlineKeyboardMarkup:
        """Выбор клиента для места"""
        code = f"{slot.date}_{hour_code(slot.hour)}_{index}"
        keyboard = [
            [InlineKeyboardButton(student.name, callback_data=f'pick_{code}_{student.id}')]
            for student in students[:30]
        ]
        keyboard.append([InlineKeyboardButton("⚪ Освободить место", callback_data=f'pick_{code}_-')])
        keyboard.append([InlineKeyboardButton("◀️ Назад", callback_data=f'seat_{code}')])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def services_keyboard(slot: ClassSlot, services: List[Service],
                          current: Optional[str] = None) -> InlineKeyboardMarkup:
        """Выбор услуги для слота"""
        code = f"{slot.date}_{hour_code(slot.hour)}"
        keyboard = []
        for service in services:
            mark = "✅ " if service.id == current else ""
            keyboard.append([InlineKeyboardButton(
                f"{mark}{service.name} — {format_price(service.price)}",
                callback_data=f'svc_{code}_{service.id}'
            )])
        keyboard.append([InlineKeyboardButton("🚫 Без услуги", callback_data=f'svc_{code}_-')])
        keyboard.append([InlineKeyboardButton("◀️ Назад", callback_data=f'slot_{code}')])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def processing_keyboard() -> InlineKeyboardMarkup:
        """Клавиатура во время обработки"""
        return InlineKeyboardMarkup([
            [InlineKeyboardButton("⏳ Синхронизация...", callback_data='processing')]
        ])

    @staticmethod
    def back_to_main() -> InlineKeyboardMarkup:
        """Кнопка возврата в главное меню"""
        keyboard = [
            [InlineKeyboardButton("◀️ В главное меню", callback_data='back_to_main')]
        ]
        return InlineKeyboardMarkup(keyboard)

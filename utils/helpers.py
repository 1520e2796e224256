import logging
from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional

from database.models import AttendanceStatus, ClassSlot, Service, Student
from services.schedule import ConfigPeriod, HOURS

logger = logging.getLogger(__name__)

WEEKDAYS = {
    0: 'понедельник', 1: 'вторник', 2: 'среда', 3: 'четверг',
    4: 'пятница', 5: 'суббота', 6: 'воскресенье'
}

MONTHS = {
    1: 'января', 2: 'февраля', 3: 'марта', 4: 'апреля',
    5: 'мая', 6: 'июня', 7: 'июля', 8: 'августа',
    9: 'сентября', 10: 'октября', 11: 'ноября', 12: 'декабря'
}

STATUS_LABELS = {
    AttendanceStatus.OPEN: '⚪ Свободно',
    AttendanceStatus.BOOKED: '🟡 Записан',
    AttendanceStatus.PRESENT: '✅ Присутствовал',
    AttendanceStatus.ABSENT: '❌ Пропустил',
    AttendanceStatus.RESCHEDULED: '🔁 Перенесено',
}


def format_date(date_str: str) -> str:
    """Форматирование даты для отображения"""
    try:
        date_obj = datetime.strptime(date_str, '%Y-%m-%d')
        return f"{date_obj.day} {MONTHS[date_obj.month]} ({WEEKDAYS[date_obj.weekday()]})"

    except ValueError as e:
        logger.error(f"Ошибка форматирования даты {date_str}: {e}")
        return date_str


def format_price(value: float) -> str:
    return f"{value:g}"


def service_name(services: Iterable[Service], service_id: Optional[str]) -> str:
    service = next((s for s in services if s.id == service_id), None)
    return service.name if service else 'Занятие'


def format_day_grid(day: str, grid: List[ClassSlot], services: List[Service]) -> str:
    """Текст сетки дня: только часы с назначенной услугой"""
    lines = [f"📅 <b>{format_date(day)}</b>\n"]
    configured = [slot for slot in grid if slot.service_id]

    if not configured:
        lines.append("Занятий на этот день пока нет.")
        return "\n".join(lines)

    for slot in configured:
        lines.append(
            f"🕐 {slot.hour} — {service_name(services, slot.service_id)} "
            f"({slot.filled_seats}/{len(slot.enrollments)})"
        )
    return "\n".join(lines)


def format_slot(slot: ClassSlot, services: List[Service], students: List[Student],
                viewer_id: Optional[str] = None, is_admin: bool = False) -> str:
    """Текст слота со списком мест. Клиент видит имена только в своих местах"""
    names = {s.id: s.name for s in students}
    lines = [
        f"📅 {format_date(slot.date)}, 🕐 {slot.hour}",
        f"🏷 {service_name(services, slot.service_id) if slot.service_id else 'Услуга не назначена'}",
        f"👥 Вместимость: {slot.capacity}, мест: {len(slot.enrollments)}\n",
    ]

    for index, seat in enumerate(slot.enrollments, start=1):
        if seat.is_open:
            who = '—'
        elif is_admin or seat.student_id == viewer_id:
            who = names.get(seat.student_id, seat.student_id)
        else:
            who = 'занято'
        line = f"{index}. {who} · {STATUS_LABELS.get(seat.status, seat.status.value)}"
        if is_admin:
            line += f" · {format_price(seat.price)}"
        lines.append(line)

    if slot.capacity < len(slot.enrollments):
        lines.append("\n⚠️ Мест больше, чем вместимость.")
    return "\n".join(lines)


def format_booking_list(bookings: List[Dict], services: List[Service]) -> str:
    """Форматирование списка записей для отображения"""
    if not bookings:
        return "Записи отсутствуют."

    formatted_bookings = []
    for booking in bookings:
        status = AttendanceStatus.parse(booking['status'])
        formatted_bookings.append(
            f"📅 {format_date(booking['date'])}\n"
            f"🕐 {booking['time']}\n"
            f"🏷 {service_name(services, booking['service_id'])}\n"
            f"📋 {STATUS_LABELS[status]}\n"
            f"💰 {format_price(booking['price'])}\n"
        )

    return "\n".join(formatted_bookings)


def _normalize_hour(value: str) -> str:
    head = value.split(':')[0]
    if head.isdigit() and value in (head, f"{head}:00"):
        return f"{int(head):02d}:00"
    return value


class ConfigureArgs(NamedTuple):
    period: ConfigPeriod
    capacity: int
    service_id: Optional[str]
    hours: List[str]


def parse_configure_args(args: List[str], hours: List[str] = HOURS) -> ConfigureArgs:
    """Разбор аргументов /configure <today|week|month> <мест> <услуга|-> <часы...|all>"""
    if len(args) < 4:
        raise ValueError("Формат: /configure <today|week|month> <мест> <id услуги или -> <часы или all>")

    try:
        period = ConfigPeriod(args[0].lower())
    except ValueError:
        raise ValueError(f"Неизвестный период: {args[0]}")

    try:
        capacity = int(args[1])
    except ValueError:
        raise ValueError(f"Количество мест должно быть числом: {args[1]}")
    if capacity < 1:
        raise ValueError("Количество мест должно быть больше нуля")

    service_id = None if args[2] == '-' else args[2]

    if len(args) == 4 and args[3].lower() == 'all':
        selected = list(hours)
    else:
        selected = []
        for value in args[3:]:
            hour = _normalize_hour(value)
            if hour not in hours:
                raise ValueError(f"Час {value} вне расписания ({hours[0]}–{hours[-1]})")
            if hour not in selected:
                selected.append(hour)

    return ConfigureArgs(period, capacity, service_id, selected)

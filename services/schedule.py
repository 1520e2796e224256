import calendar
import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from pytz import timezone

from config import TIMEZONE, SCHEDULE_START_HOUR, SCHEDULE_HOURS_COUNT
from database.models import AttendanceStatus, Caller, ClassSlot, Enrollment, Service

logger = logging.getLogger(__name__)

DATE_FORMAT = '%Y-%m-%d'


class ConfigPeriod(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


def hour_template(start_hour: int = SCHEDULE_START_HOUR, count: int = SCHEDULE_HOURS_COUNT) -> List[str]:
    """Фиксированный список часов рабочего дня: '07:00', '08:00', ..."""
    return [f"{start_hour + i:02d}:00" for i in range(count)]


HOURS = hour_template()


def studio_today() -> date:
    return datetime.now(timezone(TIMEZONE)).date()


def build_day_grid(day: str, slots: Iterable[ClassSlot], hours: Sequence[str] = HOURS) -> List[ClassSlot]:
    """Полная сетка дня: сохранённый слот либо пустая заглушка на каждый час шаблона"""
    by_hour = {slot.hour: slot for slot in slots if slot.date == day}
    return [by_hour.get(hour) or ClassSlot(date=day, hour=hour) for hour in hours]


def period_dates(anchor: date, period: ConfigPeriod) -> List[str]:
    """Даты периода: сегодня / 7 дней от даты / до конца месяца включительно"""
    period = ConfigPeriod(period)
    if period == ConfigPeriod.TODAY:
        days = 1
    elif period == ConfigPeriod.WEEK:
        days = 7
    else:
        days = calendar.monthrange(anchor.year, anchor.month)[1] - anchor.day + 1
    return [(anchor + timedelta(days=i)).strftime(DATE_FORMAT) for i in range(days)]


def _service_price(services: Iterable[Service], service_id: Optional[str]) -> float:
    if service_id is None:
        return 0
    service = next((s for s in services if s.id == service_id), None)
    return service.price if service else 0


def _open_seats(count: int, price: float) -> List[Enrollment]:
    return [Enrollment(price=price) for _ in range(count)]


def configure_batch(slots: Sequence[ClassSlot], dates: Iterable[str], hours: Iterable[str],
                    capacity: int, service_id: Optional[str] = None,
                    services: Iterable[Service] = ()) -> List[ClassSlot]:
    """Массовая настройка сетки по датам и часам.

    Новый слот получает capacity свободных мест. У существующего меняется
    вместимость, услуга меняется только если она указана, недостающие места
    добавляются. Лишние места при уменьшении вместимости не удаляются.
    """
    if not isinstance(capacity, int) or capacity < 1:
        raise ValueError(f"Вместимость должна быть положительным целым числом, получено {capacity!r}")

    services = list(services)
    hours = list(hours)
    result = list(slots)
    index: Dict = {slot.key: i for i, slot in enumerate(result)}
    created = updated = 0

    for day in dates:
        for hour in hours:
            position = index.get((day, hour))

            if position is None:
                price = _service_price(services, service_id)
                result.append(ClassSlot(
                    date=day,
                    hour=hour,
                    service_id=service_id,
                    capacity=capacity,
                    enrollments=_open_seats(capacity, price),
                ))
                index[(day, hour)] = len(result) - 1
                created += 1
                continue

            existing = result[position]
            effective_service = service_id if service_id is not None else existing.service_id
            enrollments = list(existing.enrollments)
            missing = capacity - len(enrollments)
            if missing > 0:
                enrollments.extend(_open_seats(missing, _service_price(services, effective_service)))

            result[position] = replace(
                existing,
                capacity=capacity,
                service_id=effective_service,
                enrollments=enrollments,
            )
            updated += 1

    logger.info(f"Массовая настройка: создано {created}, обновлено {updated} слотов")
    return result


def put_slot(slots: Sequence[ClassSlot], slot: ClassSlot) -> List[ClassSlot]:
    """Замена слота с тем же (date, hour) либо добавление нового"""
    result = [existing for existing in slots if existing.key != slot.key]
    result.append(slot)
    return result


def assign_service(slot: ClassSlot, service_id: Optional[str], services: Iterable[Service],
                   caller: Caller) -> ClassSlot:
    """Назначение услуги слоту; пустой слот с услугой получает одно свободное место"""
    if not caller.is_admin:
        logger.debug(f"Смена услуги {slot.date} {slot.hour} недоступна роли {caller.role.value}")
        return slot

    enrollments = list(slot.enrollments)
    if service_id and not enrollments:
        enrollments = _open_seats(1, _service_price(services, service_id))
    return replace(slot, service_id=service_id, enrollments=enrollments)


def add_seat(slot: ClassSlot, services: Iterable[Service], caller: Caller) -> ClassSlot:
    """Добавление свободного места по текущей цене услуги"""
    if not caller.is_admin or not slot.service_id:
        return slot
    seat = Enrollment(price=_service_price(services, slot.service_id))
    return replace(slot, enrollments=list(slot.enrollments) + [seat])


def remove_seat(slot: ClassSlot, index: int, caller: Caller) -> ClassSlot:
    """Удаление места; индексы остальных мест сдвигаются"""
    if not caller.is_admin or not 0 <= index < len(slot.enrollments):
        return slot
    enrollments = [seat for i, seat in enumerate(slot.enrollments) if i != index]
    return replace(slot, enrollments=enrollments)


def student_bookings(slots: Iterable[ClassSlot], student_id: str,
                     now: Optional[datetime] = None) -> List[Dict]:
    """Предстоящие занятия клиента, по возрастанию даты и времени"""
    tz = timezone(TIMEZONE)
    now = now or datetime.now(tz)
    if now.tzinfo is None:
        now = tz.localize(now)

    bookings = []
    for slot in slots:
        try:
            slot_datetime = tz.localize(datetime.strptime(f"{slot.date} {slot.hour}", f"{DATE_FORMAT} %H:%M"))
        except ValueError:
            logger.warning(f"Слот с неверной датой или временем пропущен: {slot.date} {slot.hour}")
            continue
        if slot_datetime < now:
            continue
        for index, seat in enumerate(slot.enrollments):
            if seat.student_id == student_id and seat.status != AttendanceStatus.OPEN:
                bookings.append({
                    'date': slot.date,
                    'time': slot.hour,
                    'service_id': slot.service_id,
                    'seat': index,
                    'status': seat.status.value,
                    'price': seat.price,
                })

    bookings.sort(key=lambda b: (b['date'], b['time']))
    return bookings

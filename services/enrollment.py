import logging
from dataclasses import replace
from enum import Enum
from typing import NamedTuple, Optional

from database.models import AttendanceStatus, Caller, ClassSlot, Enrollment, UserRole

logger = logging.getLogger(__name__)

# Маркер "поле не меняется" для admin_update_seat
UNCHANGED = object()


class NotificationAction(str, Enum):
    BOOKING = "booking"
    CANCELLATION = "cancellation"


class TransitionResult(NamedTuple):
    slot: ClassSlot
    applied: bool
    action: Optional[NotificationAction] = None


def _ignored(slot: ClassSlot, reason: str) -> TransitionResult:
    # недопустимые переходы молча игнорируются
    logger.debug(f"Переход для {slot.date} {slot.hour} проигнорирован: {reason}")
    return TransitionResult(slot, False)


def _seat(slot: ClassSlot, index: int) -> Optional[Enrollment]:
    if 0 <= index < len(slot.enrollments):
        return slot.enrollments[index]
    return None


def _with_seat(slot: ClassSlot, index: int, seat: Enrollment) -> ClassSlot:
    enrollments = list(slot.enrollments)
    enrollments[index] = seat
    return replace(slot, enrollments=enrollments)


def admin_update_seat(slot: ClassSlot, index: int, caller: Caller,
                      student_id=UNCHANGED, status: Optional[AttendanceStatus] = None) -> TransitionResult:
    """Административное изменение места: любой клиент и любой статус"""
    if not caller.is_admin:
        return _ignored(slot, f"роль {caller.role.value} не может менять места напрямую")

    seat = _seat(slot, index)
    if seat is None:
        return _ignored(slot, f"нет места с индексом {index}")

    changes = {}
    if student_id is not UNCHANGED:
        changes['student_id'] = student_id
    if status is not None:
        changes['status'] = AttendanceStatus(status)
    if not changes:
        return _ignored(slot, "нет изменений")

    described = ", ".join(f"{k}={getattr(v, 'value', v)}" for k, v in changes.items())
    logger.info(
        f"Администратор {caller.name or '-'} изменил место {index} в {slot.date} {slot.hour}: {described}"
    )
    return TransitionResult(_with_seat(slot, index, replace(seat, **changes)), True)


def book_seat(slot: ClassSlot, index: int, caller: Caller) -> TransitionResult:
    """Самостоятельная запись клиента на свободное место (open -> booked)"""
    if caller.role != UserRole.CLIENT or not caller.student_id:
        return _ignored(slot, "запись доступна только клиенту")

    seat = _seat(slot, index)
    if seat is None:
        return _ignored(slot, f"нет места с индексом {index}")
    if not seat.is_open:
        return _ignored(slot, "место уже занято")

    booked = replace(seat, student_id=caller.student_id, status=AttendanceStatus.BOOKED)
    logger.info(f"Клиент {caller.student_id} записался на {slot.date} {slot.hour} (место {index})")
    return TransitionResult(_with_seat(slot, index, booked), True, NotificationAction.BOOKING)


def cancel_seat(slot: ClassSlot, index: int, caller: Caller) -> TransitionResult:
    """Отмена клиентом своей записи (booked -> open)"""
    if caller.role != UserRole.CLIENT or not caller.student_id:
        return _ignored(slot, "отмена доступна только клиенту")

    seat = _seat(slot, index)
    if seat is None:
        return _ignored(slot, f"нет места с индексом {index}")
    if seat.student_id != caller.student_id:
        return _ignored(slot, "место принадлежит другому клиенту")

    released = replace(seat, student_id=None, status=AttendanceStatus.OPEN)
    logger.info(f"Клиент {caller.student_id} отменил запись на {slot.date} {slot.hour} (место {index})")
    return TransitionResult(_with_seat(slot, index, released), True, NotificationAction.CANCELLATION)

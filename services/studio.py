import asyncio
import logging
from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import uuid4

from config import DATABASE_PATH
from cloud_api.manager import SupabaseManager
from database.manager import DatabaseManager
from database.models import (
    AdminUser, AttendanceStatus, Caller, ClassSlot, Expense, Instructor, Service, Student, StudentLabel,
)
from database.store import (
    ADMINS, CLASSES, COLLECTIONS, EXPENSES, INITIAL_ADMINS, INITIAL_SERVICES, INSTRUCTORS, LABELS,
    SERVICES, STUDENTS, Collection, EntityStore,
)
from .backup import export_backup, parse_backup
from .enrollment import NotificationAction, TransitionResult, admin_update_seat, book_seat, cancel_seat, UNCHANGED
from .notifications import Notification, Notifier
from .persistence import PersistenceGateway
from .schedule import (
    ConfigPeriod, add_seat, assign_service, build_day_grid, configure_batch, period_dates, put_slot,
    remove_seat, student_bookings,
)

logger = logging.getLogger(__name__)

SEEDS = {
    ADMINS.table: INITIAL_ADMINS,
    SERVICES.table: INITIAL_SERVICES,
}


def _new_id(prefix: str) -> str:
    return f"{prefix}{uuid4().hex[:12]}"


class StudioStore:
    """Центральное хранилище: команды меняют коллекции и явно вызывают сохранение"""

    def __init__(self, gateway: Optional[PersistenceGateway] = None, notifier: Optional[Notifier] = None):
        if gateway is None:
            gateway = PersistenceGateway(DatabaseManager(DATABASE_PATH), SupabaseManager())
        self.gateway = gateway
        self.notifier = notifier or Notifier()
        self.data = EntityStore()

    async def _save(self, collection: Collection) -> bool:
        return await self.gateway.save(collection.table, self.data.rows(collection))

    async def load_all(self) -> EntityStore:
        """Загрузка всех коллекций (облако -> локальный кэш -> начальные данные)"""
        async def load(collection: Collection):
            seed = [item.to_dict() for item in SEEDS.get(collection.table, [])]
            rows = await self.gateway.load(collection.table, seed)
            items = []
            for row in rows:
                try:
                    items.append(collection.model.from_dict(row))
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    logger.warning(f"Пропущена повреждённая запись {collection.table}: {e}")
            self.data.replace(collection, items)

        await asyncio.gather(*(load(collection) for collection in COLLECTIONS))
        logger.info(
            f"Данные загружены: {len(self.data.students)} клиентов, {len(self.data.classes)} слотов, "
            f"{len(self.data.services)} услуг"
        )
        return self.data

    # --- Клиенты, администраторы, инструкторы ---

    async def add_student(self, name: str, email: str = "", notes: str = "",
                          student_id: Optional[str] = None) -> Student:
        first_name = name.split(' ')[0] if name else 'student'
        student = Student(
            id=student_id or _new_id('s'),
            name=name,
            email=email,
            join_date=date.today().isoformat(),
            notes=notes,
            avatar_url=f"https://picsum.photos/seed/{first_name}/200",
        )
        self.data.students = self.data.students + [student]
        await self._save(STUDENTS)
        return student

    async def update_student(self, student: Student) -> List[Student]:
        self.data.students = [student if s.id == student.id else s for s in self.data.students]
        await self._save(STUDENTS)
        return self.data.students

    async def ensure_student(self, student_id: str, name: str) -> Student:
        """Клиент по идентификатору; создаётся при первом обращении"""
        student = self.data.find_student(student_id)
        if student is None:
            student = await self.add_student(name, student_id=student_id)
            logger.info(f"Зарегистрирован новый клиент {student_id} ({name})")
        return student

    async def add_admin(self, name: str, email: str, password: str) -> AdminUser:
        admin = AdminUser(id=_new_id('adm'), name=name, email=email, password=password)
        self.data.admins = self.data.admins + [admin]
        await self._save(ADMINS)
        return admin

    async def add_instructor(self, name: str, specialty: str = "") -> Instructor:
        first_name = name.split(' ')[0] if name else 'instructor'
        instructor = Instructor(
            id=_new_id('i'),
            name=name,
            specialty=specialty,
            avatar_url=f"https://picsum.photos/seed/{first_name}/200",
        )
        self.data.instructors = self.data.instructors + [instructor]
        await self._save(INSTRUCTORS)
        return instructor

    async def add_expense(self, expense_date: str, description: str, amount: float) -> Expense:
        expense = Expense(id=_new_id('e'), date=expense_date, description=description, amount=amount)
        self.data.expenses = self.data.expenses + [expense]
        await self._save(EXPENSES)
        return expense

    # --- Каталог услуг и метки ---

    async def add_service(self, name: str, price: float) -> Service:
        if price < 0:
            raise ValueError("Цена услуги не может быть отрицательной")
        service = Service(id=_new_id('serv'), name=name, price=price)
        self.data.services = self.data.services + [service]
        await self._save(SERVICES)
        return service

    async def update_service(self, service: Service) -> List[Service]:
        """Новая цена не меняет цену уже назначенных мест"""
        if service.price < 0:
            raise ValueError("Цена услуги не может быть отрицательной")
        self.data.services = [service if s.id == service.id else s for s in self.data.services]
        await self._save(SERVICES)
        return self.data.services

    async def remove_service(self, service_id: str) -> List[Service]:
        self.data.services = [s for s in self.data.services if s.id != service_id]
        await self._save(SERVICES)
        return self.data.services

    async def add_label(self, name: str) -> StudentLabel:
        label = StudentLabel(id=_new_id('lab'), name=name)
        self.data.labels = self.data.labels + [label]
        await self._save(LABELS)
        return label

    async def remove_label(self, label_id: str) -> List[StudentLabel]:
        self.data.labels = [l for l in self.data.labels if l.id != label_id]
        await self._save(LABELS)
        return self.data.labels

    # --- Расписание ---

    def day_grid(self, day: str) -> List[ClassSlot]:
        return build_day_grid(day, self.data.classes)

    def slot(self, day: str, hour: str) -> ClassSlot:
        return self.data.find_slot(day, hour) or ClassSlot(date=day, hour=hour)

    async def batch_configure(self, anchor: date, period: ConfigPeriod, hours: List[str], capacity: int,
                              service_id: Optional[str], caller: Caller) -> List[ClassSlot]:
        """Массовая настройка сетки (только администратор)"""
        if not caller.is_admin:
            logger.warning(f"Массовая настройка отклонена для роли {caller.role.value}")
            return self.data.classes

        if service_id is not None and self.data.find_service(service_id) is None:
            raise ValueError(f"Услуга {service_id} не найдена")

        dates = period_dates(anchor, period)
        self.data.classes = configure_batch(
            self.data.classes, dates, hours, capacity, service_id, self.data.services
        )
        await self._save(CLASSES)
        return self.data.classes

    async def _put_slot(self, slot: ClassSlot) -> ClassSlot:
        self.data.classes = put_slot(self.data.classes, slot)
        await self._save(CLASSES)
        return slot

    async def set_slot_service(self, day: str, hour: str, service_id: Optional[str], caller: Caller) -> ClassSlot:
        current = self.slot(day, hour)
        updated = assign_service(current, service_id, self.data.services, caller)
        if updated is current:
            return current
        return await self._put_slot(updated)

    async def add_seat(self, day: str, hour: str, caller: Caller) -> ClassSlot:
        current = self.slot(day, hour)
        updated = add_seat(current, self.data.services, caller)
        if updated is current:
            return current
        return await self._put_slot(updated)

    async def remove_seat(self, day: str, hour: str, index: int, caller: Caller) -> ClassSlot:
        current = self.slot(day, hour)
        updated = remove_seat(current, index, caller)
        if updated is current:
            return current
        return await self._put_slot(updated)

    async def update_seat(self, day: str, hour: str, index: int, caller: Caller,
                          student_id=UNCHANGED, status: Optional[AttendanceStatus] = None) -> TransitionResult:
        result = admin_update_seat(self.slot(day, hour), index, caller, student_id=student_id, status=status)
        if result.applied:
            await self._put_slot(result.slot)
        return result

    async def book_seat(self, day: str, hour: str, index: int, caller: Caller) -> TransitionResult:
        result = book_seat(self.slot(day, hour), index, caller)
        await self._apply_client_transition(result, caller)
        return result

    async def cancel_seat(self, day: str, hour: str, index: int, caller: Caller) -> TransitionResult:
        result = cancel_seat(self.slot(day, hour), index, caller)
        await self._apply_client_transition(result, caller)
        return result

    async def _apply_client_transition(self, result: TransitionResult, caller: Caller):
        if not result.applied:
            return

        slot = await self._put_slot(result.slot)
        student = self.data.find_student(caller.student_id)
        if student is None:
            logger.warning(f"Клиент {caller.student_id} не найден, уведомление не отправлено")
            return

        date_formatted = datetime.strptime(slot.date, '%Y-%m-%d').strftime('%d.%m.%Y')
        if result.action == NotificationAction.BOOKING:
            message = f"Вы успешно записались на занятие {date_formatted} в {slot.hour}."
        else:
            message = f"Ваша запись на {date_formatted} в {slot.hour} отменена."

        await self.notifier.send(Notification(
            to_name=student.name,
            to_email=student.email,
            class_date=date_formatted,
            class_time=slot.hour,
            action_type=result.action,
            message=message,
        ))

    def student_bookings(self, student_id: str, now: Optional[datetime] = None) -> List[Dict]:
        return student_bookings(self.data.classes, student_id, now)

    # --- Резервная копия ---

    def export_backup(self) -> Dict:
        return export_backup(self.data)

    async def import_backup(self, payload) -> EntityStore:
        """Полная замена всех коллекций; BackupImportError, если копия некорректна"""
        parsed = parse_backup(payload)
        for collection in COLLECTIONS:
            self.data.replace(collection, parsed[collection.attr])

        for collection in COLLECTIONS:
            await self._save(collection)
        logger.info("Данные восстановлены из резервной копии")
        return self.data

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Tuple, Type

from .models import AdminUser, ClassSlot, Expense, Instructor, Service, Student, StudentLabel


class Collection(NamedTuple):
    """Описание коллекции: имя атрибута, таблица, модель и ключ"""
    attr: str
    table: str
    model: Type
    key: Tuple[str, ...] = ('id',)


STUDENTS = Collection('students', 'students', Student)
ADMINS = Collection('admins', 'admins', AdminUser)
INSTRUCTORS = Collection('instructors', 'instructors', Instructor)
SERVICES = Collection('services', 'services', Service)
LABELS = Collection('labels', 'student_labels', StudentLabel)
EXPENSES = Collection('expenses', 'expenses', Expense)
CLASSES = Collection('classes', 'classes', ClassSlot, key=('date', 'hour'))

COLLECTIONS = (STUDENTS, ADMINS, INSTRUCTORS, SERVICES, LABELS, EXPENSES, CLASSES)

# Начальные данные, если нет ни облака, ни локального кэша
INITIAL_ADMINS = [AdminUser(id='adm1', name='Администратор', email='admin@studio.local', password='admin')]
INITIAL_SERVICES = [
    Service(id='serv1', name='Пилатес', price=25),
    Service(id='serv2', name='Физиотерапия', price=50),
]


@dataclass
class EntityStore:
    """Коллекции сущностей в памяти, без бизнес-правил"""
    students: List[Student] = field(default_factory=list)
    admins: List[AdminUser] = field(default_factory=list)
    instructors: List[Instructor] = field(default_factory=list)
    services: List[Service] = field(default_factory=list)
    labels: List[StudentLabel] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    classes: List[ClassSlot] = field(default_factory=list)

    def rows(self, collection: Collection) -> List[dict]:
        return [item.to_dict() for item in getattr(self, collection.attr)]

    def replace(self, collection: Collection, items: List) -> None:
        setattr(self, collection.attr, list(items))

    def find_student(self, student_id: Optional[str]) -> Optional[Student]:
        return next((s for s in self.students if s.id == student_id), None)

    def find_service(self, service_id: Optional[str]) -> Optional[Service]:
        return next((s for s in self.services if s.id == service_id), None)

    def find_slot(self, date: str, hour: str) -> Optional[ClassSlot]:
        return next((c for c in self.classes if c.date == date and c.hour == hour), None)

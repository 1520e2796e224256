import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class AttendanceStatus(str, Enum):
    """Статус места в занятии"""
    OPEN = "open"
    BOOKED = "booked"
    PRESENT = "present"
    ABSENT = "absent"
    RESCHEDULED = "rescheduled"

    @classmethod
    def parse(cls, value) -> "AttendanceStatus":
        """Разбор статуса из строки; неизвестные значения считаются свободным местом"""
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"Неизвестный статус места {value!r}, используем '{cls.OPEN.value}'")
            return cls.OPEN


class UserRole(str, Enum):
    ADMIN = "admin"
    CLIENT = "client"


@dataclass(frozen=True)
class Caller:
    """Кто выполняет действие: роль и (для клиента) его идентификатор"""
    role: UserRole
    student_id: Optional[str] = None
    name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass
class Enrollment:
    """Место в занятии. Цена фиксируется в момент назначения"""
    student_id: Optional[str] = None
    status: AttendanceStatus = AttendanceStatus.OPEN
    price: float = 0

    @property
    def is_open(self) -> bool:
        return self.student_id is None

    def to_dict(self) -> Dict:
        return {
            'student_id': self.student_id,
            'status': self.status.value,
            'price': self.price,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Enrollment":
        return cls(
            student_id=data.get('student_id') or None,
            status=AttendanceStatus.parse(data.get('status', AttendanceStatus.OPEN.value)),
            price=data.get('price') or 0,
        )


@dataclass
class ClassSlot:
    """Часовой слот расписания; идентичность — пара (date, hour)"""
    date: str
    hour: str
    service_id: Optional[str] = None
    capacity: int = 0
    enrollments: List[Enrollment] = field(default_factory=list)

    @property
    def key(self):
        return self.date, self.hour

    @property
    def filled_seats(self) -> int:
        return sum(1 for e in self.enrollments if not e.is_open)

    def to_dict(self) -> Dict:
        return {
            'date': self.date,
            'hour': self.hour,
            'service_id': self.service_id,
            'capacity': self.capacity,
            'enrollments': [e.to_dict() for e in self.enrollments],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ClassSlot":
        """Слот из сохранённой строки. Неверные date/hour -> ValueError, прочее получает значения по умолчанию"""
        slot_date, hour = data['date'], data['hour']
        # строка отбрасывается целиком, если её нельзя поставить в сетку
        datetime.strptime(f"{slot_date} {hour}", '%Y-%m-%d %H:%M')

        return cls(
            date=slot_date,
            hour=hour,
            service_id=data.get('service_id') or None,
            capacity=max(0, int(data.get('capacity') or 0)),
            enrollments=_parse_enrollments(data.get('enrollments')),
        )


def _parse_enrollments(raw) -> List[Enrollment]:
    """Места слота; поле может прийти JSON-строкой (колонка text вместо jsonb)"""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning(f"Не удалось разобрать места слота: {raw!r}")
            return []

    if not isinstance(raw, list):
        return []

    enrollments = []
    for entry in raw:
        if not isinstance(entry, dict):
            logger.warning(f"Пропущено повреждённое место слота: {entry!r}")
            continue
        enrollments.append(Enrollment.from_dict(entry))
    return enrollments


@dataclass
class Service:
    """Услуга каталога (пилатес, физиотерапия и т.п.)"""
    id: str
    name: str
    price: float = 0

    def to_dict(self) -> Dict:
        return {'id': self.id, 'name': self.name, 'price': self.price}

    @classmethod
    def from_dict(cls, data: Dict) -> "Service":
        return cls(id=data['id'], name=data.get('name', ''), price=data.get('price') or 0)


@dataclass
class Student:
    """Клиент студии"""
    id: str
    name: str
    email: str = ""
    join_date: str = ""
    notes: str = ""
    avatar_url: str = ""

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'join_date': self.join_date,
            'notes': self.notes,
            'avatar_url': self.avatar_url,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Student":
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            email=data.get('email') or '',
            join_date=data.get('join_date') or '',
            notes=data.get('notes') or '',
            avatar_url=data.get('avatar_url') or '',
        )


@dataclass
class AdminUser:
    # пароль хранится открытым текстом, как и в исходной схеме данных
    id: str
    name: str
    email: str = ""
    password: str = ""

    def to_dict(self) -> Dict:
        return {'id': self.id, 'name': self.name, 'email': self.email, 'password': self.password}

    @classmethod
    def from_dict(cls, data: Dict) -> "AdminUser":
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            email=data.get('email') or '',
            password=data.get('password') or '',
        )


@dataclass
class Instructor:
    id: str
    name: str
    specialty: str = ""
    avatar_url: str = ""

    def to_dict(self) -> Dict:
        return {'id': self.id, 'name': self.name, 'specialty': self.specialty, 'avatar_url': self.avatar_url}

    @classmethod
    def from_dict(cls, data: Dict) -> "Instructor":
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            specialty=data.get('specialty') or '',
            avatar_url=data.get('avatar_url') or '',
        )


@dataclass
class StudentLabel:
    id: str
    name: str

    def to_dict(self) -> Dict:
        return {'id': self.id, 'name': self.name}

    @classmethod
    def from_dict(cls, data: Dict) -> "StudentLabel":
        return cls(id=data['id'], name=data.get('name', ''))


@dataclass
class Expense:
    """Расход студии; с расписанием не связан"""
    id: str
    date: str
    description: str = ""
    amount: float = 0

    def to_dict(self) -> Dict:
        return {'id': self.id, 'date': self.date, 'description': self.description, 'amount': self.amount}

    @classmethod
    def from_dict(cls, data: Dict) -> "Expense":
        return cls(
            id=data['id'],
            date=data.get('date', ''),
            description=data.get('description') or '',
            amount=data.get('amount') or 0,
        )

"""Vocabulary and record types for the halaqah reporting core.

The stored vocabulary (statuses, levels, time-slots, roles and progress
dimensions) is kept in Indonesian exactly as it appears in the database and
in the generated reports. Records are immutable dataclasses produced by the
gateway; the aggregation and report modules only read them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


class _Vocabulary(str, Enum):
    """String enum that renders as its stored value."""

    def __str__(self) -> str:
        return self.value

    def __format__(self, format_spec: str) -> str:
        return format(self.value, format_spec)


class Marhalah(_Vocabulary):
    Mutawassithah = 'Mutawassithah'
    Aliyah = 'Aliyah'
    Jamiah = 'Jamiah'


class Waktu(_Vocabulary):
    Shubuh = 'Shubuh'
    Dhuha = 'Dhuha'
    Ashar = 'Ashar'
    Isya = 'Isya'


class AttendanceStatus(_Vocabulary):
    Hadir = 'Hadir'
    Izin = 'Izin'
    Sakit = 'Sakit'
    Alpa = 'Alpa'
    Terlambat = 'Terlambat'


class Peran(_Vocabulary):
    Santri = 'Santri'
    Musammi = 'Musammi'


class ProgressType(_Vocabulary):
    Hafalan = 'Hafalan'
    Murojaah = 'Murojaah'
    Ziyadah = 'Ziyadah'


class RatingCategory(_Vocabulary):
    Hafalan = 'Hafalan'
    Bacaan = 'Bacaan'
    Sikap = 'Sikap'


ALL_MARHALAH: Tuple[Marhalah, ...] = tuple(Marhalah)
ALL_WAKTU: Tuple[Waktu, ...] = tuple(Waktu)
ALL_ATTENDANCE_STATUS: Tuple[AttendanceStatus, ...] = tuple(AttendanceStatus)

# Column order used by the recap tables: Terlambat is listed before Alpa there.
RECAP_STATUS_ORDER: Tuple[AttendanceStatus, ...] = (
    AttendanceStatus.Hadir,
    AttendanceStatus.Izin,
    AttendanceStatus.Sakit,
    AttendanceStatus.Terlambat,
    AttendanceStatus.Alpa,
)

PREDEFINED_GROUP_TYPES: Tuple[str, ...] = ('Halaqah Utama', 'Halaqah Pagi')
DEFAULT_RATING_LABELS: Tuple[str, ...] = ('Mumtaz', 'Jayyid Jiddan', 'Jayyid', 'Maqbul', 'Rasib')
DEFAULT_DISPLAY_ORDER = 999


@dataclass(frozen=True)
class StudyGroupType:
    """Study group type: one of the predefined labels or an admin-defined one."""

    label: str
    is_custom: bool = False

    @classmethod
    def parse(cls, label: Optional[str]) -> 'StudyGroupType':
        label = (label or PREDEFINED_GROUP_TYPES[0]).strip()
        return cls(label=label, is_custom=label not in PREDEFINED_GROUP_TYPES)

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class Student:
    id: int
    name: str
    level: Marhalah
    class_label: str
    code: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = None


@dataclass(frozen=True)
class Teacher:
    id: int
    name: str
    level: Marhalah
    class_label: str
    code: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class ClassSupervisor:
    id: int
    name: str
    level: Marhalah
    class_label: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class StudyGroup:
    id: int
    name: str
    teacher: Teacher
    students: Tuple[Student, ...]
    level: Marhalah
    group_type: StudyGroupType
    time_slots: Tuple[Waktu, ...]
    display_order: int = DEFAULT_DISPLAY_ORDER


@dataclass(frozen=True)
class AttendanceEntry:
    """Attendance row joined with the display data of the person it refers to."""

    id: int
    date: str
    time_slot: Waktu
    person_id: int
    name: str
    level: Marhalah
    class_label: str
    role: Peran
    status: AttendanceStatus
    study_group_id: int


@dataclass(frozen=True)
class ProgressEntry:
    id: int
    student_id: int
    month_key: str
    dimension: ProgressType
    value: str


@dataclass(frozen=True)
class EvaluationEntry:
    id: int
    student_id: int
    month_key: str
    memorization_quality: Optional[str] = None
    recitation_quality: Optional[str] = None
    conduct: Optional[str] = None
    teacher_remark: Optional[str] = None
    supervisor_remark: Optional[str] = None
    institution_remark: Optional[str] = None


@dataclass(frozen=True)
class EvaluationRatingOption:
    id: int
    category: str
    label: str
    score: Optional[int] = None


@dataclass(frozen=True)
class ClassTarget:
    id: int
    level: Marhalah
    class_label: str
    ziyadah_start: float = 0
    ziyadah_end: float = 0
    murojaah_start: float = 0
    murojaah_end: float = 0
    hafalan_start: float = 0
    hafalan_end: float = 0


@dataclass(frozen=True)
class ReplySnapshot:
    """Copy of the message being replied to, kept even if the original is deleted."""

    id: int
    name: str
    content: str

    SNIPPET_LENGTH = 50

    @classmethod
    def from_message(cls, message: 'ChatMessage') -> 'ReplySnapshot':
        content = message.content
        if len(content) > cls.SNIPPET_LENGTH:
            content = content[:cls.SNIPPET_LENGTH] + '...'
        return cls(id=message.id, name=message.display_name, content=content)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional['ReplySnapshot']:
        if not data:
            return None
        return cls(id=data.get('id'), name=data.get('name') or '', content=data.get('content') or '')

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'content': self.content}


@dataclass(frozen=True)
class ChatMessage:
    id: int
    content: str
    sender_email: str
    organization_id: str
    sender_name: Optional[str] = None
    reply_to: Optional[ReplySnapshot] = None
    created_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.sender_name or self.sender_email.split('@')[0]


class RatingOptions:
    """Label lookup for the evaluation rating dropdowns.

    A tenant may configure its own labels per category; a category without
    any configured label uses :data:`DEFAULT_RATING_LABELS`.
    """

    def __init__(self, options: Iterable[EvaluationRatingOption]) -> None:
        self._options = list(options)

    def labels_for(self, category: str) -> List[str]:
        custom = [option for option in self._options if option.category == str(category)]
        if not custom:
            return list(DEFAULT_RATING_LABELS)
        custom.sort(key=lambda option: option.score or 0, reverse=True)
        return [option.label for option in custom]

    def is_custom(self, category: str) -> bool:
        return any(option.category == str(category) for option in self._options)


@dataclass
class DataSnapshot:
    """Everything :meth:`gateway.DataGateway.load_all` returns for one tenant."""

    students: List[Student] = field(default_factory=list)
    teachers: List[Teacher] = field(default_factory=list)
    class_supervisors: List[ClassSupervisor] = field(default_factory=list)
    study_groups: List[StudyGroup] = field(default_factory=list)
    attendance: List[AttendanceEntry] = field(default_factory=list)
    progress: List[ProgressEntry] = field(default_factory=list)
    evaluations: List[EvaluationEntry] = field(default_factory=list)
    rating_options: List[EvaluationRatingOption] = field(default_factory=list)
    class_targets: List[ClassTarget] = field(default_factory=list)

    @property
    def ratings(self) -> RatingOptions:
        return RatingOptions(self.rating_options)

    def student(self, student_id: int) -> Optional[Student]:
        return next((s for s in self.students if s.id == student_id), None)

    def evaluation(self, student_id: int, month_key: str) -> Optional[EvaluationEntry]:
        return next(
            (e for e in self.evaluations if e.student_id == student_id and e.month_key == month_key),
            None,
        )

    def class_supervisor(self, level: str, class_label: str) -> Optional[ClassSupervisor]:
        return next(
            (w for w in self.class_supervisors if w.level == level and w.class_label == class_label),
            None,
        )

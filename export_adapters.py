"""Export payloads for spreadsheet and fixed-layout document files.

Two shapes are produced from the same rows:

* spreadsheet rows: a list of dicts, one per row, whose keys are the column
  headers (field names made readable, nothing else renamed);
* document tables: ``(headers, rows)`` where every cell is already a string,
  empty values are shown as ``-`` and class cells read ``Kelas (Marhalah)``.

Writing the actual xlsx or pdf file is left to the caller.
"""

from __future__ import annotations

import dataclasses
import re
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from aggregation import sort_key, fold
from domain import (AttendanceEntry, ClassSupervisor, EvaluationEntry, Student, StudyGroup,
                    Teacher)

MISSING = '-'

Getter = Union[str, Callable[[Any], Any]]
Column = Tuple[str, Getter]
DocumentTable = Tuple[List[str], List[List[str]]]

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')
_ACRONYMS = {'id': 'ID', 'hp': 'HP'}


def human_header(field: str) -> str:
    """``PersenKehadiran`` -> ``Persen Kehadiran``, ``class_label`` -> ``Class Label``."""

    words = _CAMEL_BOUNDARY.sub(' ', field).replace('_', ' ').split()
    return ' '.join(_ACRONYMS.get(word.lower(), word[:1].upper() + word[1:]) for word in words)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return ', '.join(str(_plain(item)) for item in value)
    return value


def _as_mapping(row: Any) -> Mapping[str, Any]:
    if dataclasses.is_dataclass(row) and not isinstance(row, type):
        return {f.name: getattr(row, f.name) for f in dataclasses.fields(row)}
    return row


def cell(value: Any) -> str:
    value = _plain(value)
    if value is None or value == '':
        return MISSING
    return str(value)


def class_cell(class_label: Optional[str], level: Any) -> str:
    return f"{class_label} ({_plain(level)})"


def to_spreadsheet_rows(rows: Iterable[Any], fields: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
    """Rows keyed by readable headers. ``fields`` limits and orders the columns."""

    result = []
    for row in rows:
        data = _as_mapping(row)
        keys = fields or list(data.keys())
        result.append({human_header(key): _plain(data.get(key)) for key in keys})
    return result


def to_document_table(rows: Iterable[Any], columns: Sequence[Column]) -> DocumentTable:
    headers = [header for header, _ in columns]
    values = []
    for row in rows:
        data = _as_mapping(row)
        line = []
        for _, getter in columns:
            raw = getter(row) if callable(getter) else data.get(getter)
            line.append(cell(raw))
        values.append(line)
    return headers, values


# ---------------------------------------------------------------------------
# Recap layouts
# ---------------------------------------------------------------------------

_COUNTER_COLUMNS: List[Column] = [
    ('Hadir', 'Hadir'),
    ('Izin', 'Izin'),
    ('Sakit', 'Sakit'),
    ('Alpa', 'Alpa'),
    ('Telat', 'Terlambat'),
    ('Total', 'Total'),
]


def person_recap_table(rows: Iterable[Mapping[str, Any]]) -> DocumentTable:
    columns = [
        ('Nama', 'Nama'),
        ('Peran', 'Peran'),
        ('Kelas', lambda r: class_cell(r['Kelas'], r['Marhalah'])),
    ] + _COUNTER_COLUMNS
    return to_document_table(rows, columns)


def class_recap_table(rows: Iterable[Mapping[str, Any]]) -> DocumentTable:
    columns = [('Kelas', lambda r: class_cell(r['Kelas'], r['Marhalah']))] + _COUNTER_COLUMNS
    columns.append(('Kehadiran', 'PersenKehadiran'))
    return to_document_table(rows, columns)


def session_recap_table(rows: Iterable[Mapping[str, Any]]) -> DocumentTable:
    columns = [('Tanggal', 'Tanggal'), ('Waktu', 'Waktu')] + _COUNTER_COLUMNS
    return to_document_table(rows, columns)


_DETAIL_FIELDS = ('id', 'date', 'time_slot', 'person_id', 'name', 'level', 'class_label',
                  'role', 'status', 'study_group_id')


def attendance_detail_rows(entries: Iterable[AttendanceEntry]) -> List[Dict[str, Any]]:
    return to_spreadsheet_rows(entries, _DETAIL_FIELDS)


def attendance_detail_table(entries: Iterable[AttendanceEntry]) -> DocumentTable:
    columns = [
        ('Tanggal', 'date'),
        ('Waktu', 'time_slot'),
        ('Nama', 'name'),
        ('Peran', 'role'),
        ('Kelas', lambda e: class_cell(e.class_label, e.level)),
        ('Status', 'status'),
    ]
    return to_document_table(entries, columns)


# ---------------------------------------------------------------------------
# Roster layouts
# ---------------------------------------------------------------------------

def student_table(students: Iterable[Student]) -> DocumentTable:
    columns = [
        ('ID', 'id'),
        ('Nama', 'name'),
        ('Marhalah', 'level'),
        ('Kelas', 'class_label'),
        ('Wali', 'guardian_name'),
        ('No HP', 'guardian_phone'),
    ]
    return to_document_table(students, columns)


def teacher_table(teachers: Iterable[Teacher]) -> DocumentTable:
    columns = [
        ('Kode', 'code'),
        ('Nama', 'name'),
        ('Marhalah', 'level'),
        ('Kelas', 'class_label'),
        ('No HP', 'phone'),
    ]
    return to_document_table(teachers, columns)


def supervisor_table(supervisors: Iterable[ClassSupervisor]) -> DocumentTable:
    columns = [
        ('Nama', 'name'),
        ('Marhalah', 'level'),
        ('Kelas', 'class_label'),
        ('No HP', 'phone'),
    ]
    return to_document_table(supervisors, columns)


def guardian_rows(students: Iterable[Student]) -> List[Dict[str, Any]]:
    return [
        {
            'Nama Santri': s.name,
            'Kelas': s.class_label,
            'Marhalah': s.level.value,
            'Nama Wali': s.guardian_name or MISSING,
            'No HP Wali': s.guardian_phone or MISSING,
        }
        for s in students
    ]


def guardian_table(students: Iterable[Student]) -> DocumentTable:
    columns = [
        ('Nama Santri', 'name'),
        ('Kelas', lambda s: class_cell(s.class_label, s.level)),
        ('Nama Wali', 'guardian_name'),
        ('No HP Wali', 'guardian_phone'),
    ]
    return to_document_table(students, columns)


def study_group_rows(groups: Sequence[StudyGroup]) -> List[Dict[str, Any]]:
    """One row for each group's teacher followed by one per member, by name."""

    rows = []
    for index, group in enumerate(groups, start=1):
        base = {
            'ID': group.id,
            'No Urut': group.display_order or index,
            'Nama Halaqah': group.name,
            'Jenis': group.group_type.label,
            'Marhalah': group.level.value,
        }
        rows.append({
            **base,
            'Peran': 'Musammi',
            'Person ID': group.teacher.id,
            'Nama Anggota': group.teacher.name,
            'Kelas': MISSING,
            'Kode': group.teacher.code or MISSING,
        })
        for student in sorted(group.students, key=lambda s: (fold(s.name), s.name)):
            rows.append({
                **base,
                'Peran': 'Santri',
                'Person ID': student.id,
                'Nama Anggota': student.name,
                'Kelas': student.class_label,
                'Kode': student.code or MISSING,
            })
    return rows


def study_group_table(groups: Sequence[StudyGroup]) -> DocumentTable:
    columns = [(header, header) for header in
               ('ID', 'Nama Halaqah', 'Peran', 'Person ID', 'Nama Anggota', 'Kelas')]
    return to_document_table(study_group_rows(groups), columns)


def evaluation_rows(students: Iterable[Student], evaluations: Iterable[EvaluationEntry],
                    month: str) -> List[Dict[str, Any]]:
    by_student = {e.student_id: e for e in evaluations if e.month_key == month}
    rows = []
    for student in sorted(students, key=lambda s: sort_key(s.level, s.class_label, s.name)):
        evaluation = by_student.get(student.id)
        row = {'Nama': student.name, 'Kelas': class_cell(student.class_label, student.level)}
        for header, attribute in _EVALUATION_COLUMNS:
            row[header] = cell(getattr(evaluation, attribute, None))
        rows.append(row)
    return rows


_EVALUATION_COLUMNS = (
    ('Hafalan', 'memorization_quality'),
    ('Bacaan', 'recitation_quality'),
    ('Sikap', 'conduct'),
    ('Catatan Musammi', 'teacher_remark'),
    ('Catatan Muroqib', 'supervisor_remark'),
    ('Catatan Lajnah', 'institution_remark'),
)

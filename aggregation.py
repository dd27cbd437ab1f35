"""Recapitulation and trend calculations over loaded attendance data.

All functions here are pure: they take the record lists produced by the
gateway, never modify them, and return freshly built rows. Rows are plain
dictionaries keyed with the labels the reports and exports show (``Nama``,
``Kelas``, ``Hadir`` ...), so they can be handed to the JSON API or to the
export adapters unchanged.

Ordering follows one rule everywhere a roster or recap is listed: marhalah in
its fixed order, then class label compared naturally (``2A`` before ``10A``),
then name compared case-insensitively. The per-session recap is the only
exception; it lists the most recent date first.
"""

from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import (Any, Callable, Dict, Hashable, Iterable, Iterator, List, Optional,
                    Sequence, Tuple, TypeVar, Union)

from domain import (ALL_ATTENDANCE_STATUS, ALL_MARHALAH, ALL_WAKTU, RECAP_STATUS_ORDER,
                    AttendanceEntry, AttendanceStatus, Peran, ProgressEntry, ProgressType)

T = TypeVar('T')
K = TypeVar('K', bound=Hashable)

DateLike = Union[date, str]

DATE_FORMAT = '%Y-%m-%d'
TOTAL = 'Total'
WEEKDAY_ABBR = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')
MONTH_ABBR = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
              'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec')
DEFAULT_TREND_DAYS = 30

_DIGITS_RE = re.compile(r'(\d+)')
_NUMBER_PREFIX_RE = re.compile(r'^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?')
# Wide enough to hold any finite float with its decimals.
_FLOAT_CONTEXT = Context(prec=400)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def resolve_or_skip(records: Iterable[T], resolve: Callable[[T], Optional[K]]) -> Iterator[Tuple[T, K]]:
    """Yield ``(record, resolved)`` pairs, silently skipping unresolvable records.

    ``resolve`` returns ``None`` or raises :class:`LookupError` when a record
    points at something that no longer exists. Historical data is allowed to
    rot; it is dropped from derived views instead of failing them.
    """

    for record in records:
        try:
            resolved = resolve(record)
        except LookupError:
            continue
        if resolved is None:
            continue
        yield record, resolved


def as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value, DATE_FORMAT).date()


def month_key(value: DateLike) -> str:
    return as_date(value).strftime('%Y-%m')


def empty_counters(order: Sequence[AttendanceStatus] = RECAP_STATUS_ORDER) -> Dict[str, int]:
    return {status.value: 0 for status in order}


def _count(row: Dict[str, Any], status: AttendanceStatus) -> None:
    if status.value in row:
        row[status.value] += 1
    row[TOTAL] = row.get(TOTAL, 0) + 1


def _js_round(value: float) -> int:
    """Round half away from zero for non-negative values, as browsers do."""

    return int(Decimal(value).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def to_fixed(value: float, digits: int = 1) -> str:
    if not math.isfinite(value):
        value = 0.0
    quantum = Decimal(1).scaleb(-digits)
    return str(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP, context=_FLOAT_CONTEXT))


def attendance_percentage(present: int, total: int) -> str:
    if total <= 0:
        return '0%'
    return f"{_js_round(present / total * 100)}%"


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def fold(text: Optional[str]) -> str:
    """Case and accent insensitive form of ``text`` for comparisons."""

    decomposed = unicodedata.normalize('NFKD', text or '')
    stripped = ''.join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def natural_key(text: Optional[str]) -> Tuple[Tuple[int, int, str], ...]:
    """Sort key comparing digit runs by value: ``'2A' < '10A'``."""

    parts = _DIGITS_RE.split(fold(text))
    key = []
    for index, part in enumerate(parts):
        if not part:
            continue
        if index % 2:
            key.append((0, int(part), ''))
        else:
            key.append((1, 0, part))
    return tuple(key)


def level_index(level: Optional[str]) -> int:
    """Position of ``level`` in the marhalah order; unknown levels sort last."""

    try:
        return ALL_MARHALAH.index(level)
    except ValueError:
        return len(ALL_MARHALAH)


def time_slot_index(time_slot: Optional[str]) -> int:
    try:
        return ALL_WAKTU.index(time_slot)
    except ValueError:
        return len(ALL_WAKTU)


def sort_key(level: Optional[str], class_label: Optional[str], name: Optional[str] = None) -> tuple:
    return (level_index(level), natural_key(class_label), fold(name), name or '')


def sort_people(people: Iterable[T]) -> List[T]:
    """Sort students, teachers or supervisors by level, class and name."""

    return sorted(people, key=lambda p: sort_key(p.level, p.class_label, p.name))


def count_by_level(people: Iterable[Any]) -> Dict[str, int]:
    counts = {level.value: 0 for level in ALL_MARHALAH}
    for person in people:
        if person.level in counts:
            counts[str(person.level)] += 1
    return counts


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def filter_attendance(
    entries: Iterable[AttendanceEntry],
    start: Optional[str] = None,
    end: Optional[str] = None,
    level: Optional[str] = None,
    class_label: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    name_query: Optional[str] = None,
) -> List[AttendanceEntry]:
    """Apply the recap filter bar. Date bounds are inclusive; empty values are ignored."""

    query = (name_query or '').lower()
    result = []
    for entry in entries:
        if start and entry.date < start:
            continue
        if end and entry.date > end:
            continue
        if level and entry.level != level:
            continue
        if class_label and entry.class_label != class_label:
            continue
        if role and entry.role != role:
            continue
        if status and entry.status != status:
            continue
        if query and query not in entry.name.lower():
            continue
        result.append(entry)
    return result


# ---------------------------------------------------------------------------
# Recap tables
# ---------------------------------------------------------------------------

def person_recap(entries: Iterable[AttendanceEntry]) -> List[Dict[str, Any]]:
    """One row per (role, person) with the five status counters and a total."""

    groups: Dict[Tuple[str, int], Dict[str, Any]] = {}
    for entry, key in resolve_or_skip(entries, lambda e: (e.role.value, e.person_id)
                                      if e.person_id is not None else None):
        row = groups.get(key)
        if row is None:
            row = groups[key] = {
                'id': entry.person_id,
                'Peran': entry.role.value,
                'Marhalah': entry.level.value,
                'Kelas': entry.class_label,
                'Nama': entry.name,
                **empty_counters(),
                TOTAL: 0,
            }
        _count(row, entry.status)
    return sorted(groups.values(), key=lambda r: sort_key(r['Marhalah'], r['Kelas'], r['Nama']))


def class_recap(entries: Iterable[AttendanceEntry]) -> List[Dict[str, Any]]:
    """One row per (marhalah, class) with counters and the attendance percentage.

    Teachers' rows are counted as well when their level and class match.
    """

    groups: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for entry, key in resolve_or_skip(entries, lambda e: (e.level.value, e.class_label)
                                      if e.class_label is not None else None):
        row = groups.get(key)
        if row is None:
            row = groups[key] = {
                'key': f"{key[0]}-{key[1]}",
                'Marhalah': key[0],
                'Kelas': key[1],
                **empty_counters(),
                TOTAL: 0,
            }
        _count(row, entry.status)
    for row in groups.values():
        row['PersenKehadiran'] = attendance_percentage(row[AttendanceStatus.Hadir.value], row[TOTAL])
    return sorted(groups.values(), key=lambda r: sort_key(r['Marhalah'], r['Kelas']))


def session_recap(entries: Iterable[AttendanceEntry]) -> List[Dict[str, Any]]:
    """One row per (date, time-slot), most recent date first."""

    groups: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for entry, key in resolve_or_skip(entries, lambda e: (e.date, e.time_slot.value)
                                      if e.date else None):
        row = groups.get(key)
        if row is None:
            row = groups[key] = {'Tanggal': key[0], 'Waktu': key[1], **empty_counters(), TOTAL: 0}
        _count(row, entry.status)
    rows = sorted(groups.values(), key=lambda r: time_slot_index(r['Waktu']))
    return sorted(rows, key=lambda r: r['Tanggal'], reverse=True)


def session_class_breakdown(entries: Iterable[AttendanceEntry], on_date: str,
                            time_slot: str) -> List[Dict[str, Any]]:
    """Per-class counters for a single session (date and time-slot)."""

    session = [e for e in entries if e.date == on_date and e.time_slot == time_slot]
    rows = class_recap(session)
    for row in rows:
        del row['PersenKehadiran']
    return rows


def status_totals(entries: Iterable[AttendanceEntry]) -> List[Dict[str, Any]]:
    """Pie chart series: total per status over ``entries``."""

    counts = empty_counters(ALL_ATTENDANCE_STATUS)
    for entry in entries:
        counts[entry.status.value] += 1
    return [{'name': name, 'value': value} for name, value in counts.items()]


def time_slot_totals(entries: Iterable[AttendanceEntry]) -> List[Dict[str, Any]]:
    groups = {slot.value: {'name': slot.value, **empty_counters(ALL_ATTENDANCE_STATUS)}
              for slot in ALL_WAKTU}
    for entry in entries:
        group = groups.get(entry.time_slot.value)
        if group is not None:
            group[entry.status.value] += 1
    return list(groups.values())


def person_detail(entries: Iterable[AttendanceEntry], person_id: int,
                  role: str) -> List[AttendanceEntry]:
    """Entries of one person, newest first."""

    matches = [e for e in entries if e.person_id == person_id and e.role == role]
    return sorted(matches, key=lambda e: e.date, reverse=True)


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DisplayDate:
    date: str
    is_today: bool


def resolve_display_date(entries: Iterable[AttendanceEntry], today: DateLike) -> DisplayDate:
    """Pick today when it has data, else the latest recorded date, else today."""

    today_str = as_date(today).strftime(DATE_FORMAT)
    dates = {e.date for e in entries}
    if today_str in dates:
        return DisplayDate(today_str, True)
    if dates:
        return DisplayDate(max(dates), False)
    return DisplayDate(today_str, True)


def level_status_counts(entries: Iterable[AttendanceEntry], on_date: str) -> Dict[str, Dict[str, int]]:
    stats = {level.value: empty_counters(ALL_ATTENDANCE_STATUS) for level in ALL_MARHALAH}
    for entry in entries:
        if entry.date != on_date:
            continue
        level_stats = stats.get(entry.level.value)
        if level_stats is not None:
            level_stats[entry.status.value] += 1
    return stats


def _counts_by_date(entries: Iterable[AttendanceEntry]) -> Dict[str, Dict[str, int]]:
    by_date: Dict[str, Dict[str, int]] = {}
    for entry in entries:
        counts = by_date.setdefault(entry.date, empty_counters(ALL_ATTENDANCE_STATUS))
        counts[entry.status.value] += 1
    return by_date


def weekly_trend(entries: Iterable[AttendanceEntry], today: DateLike) -> List[Dict[str, Any]]:
    """Seven daily buckets ending today, oldest first."""

    today = as_date(today)
    by_date = _counts_by_date(entries)
    buckets = []
    for offset in range(7):
        day = today - timedelta(days=offset)
        key = day.strftime(DATE_FORMAT)
        bucket = {'name': WEEKDAY_ABBR[day.weekday()], 'date': key}
        bucket.update(by_date.get(key) or empty_counters(ALL_ATTENDANCE_STATUS))
        buckets.append(bucket)
    buckets.reverse()
    return buckets


def daily_trend(entries: Iterable[AttendanceEntry], today: DateLike,
                start: Optional[DateLike] = None,
                end: Optional[DateLike] = None) -> List[Dict[str, Any]]:
    """One zero-filled bucket per day of the window, in date order.

    Without ``end`` the window ends today; without ``start`` it begins
    :data:`DEFAULT_TREND_DAYS` days before its end.
    """

    end_day = as_date(end) if end else as_date(today)
    start_day = as_date(start) if start else end_day - timedelta(days=DEFAULT_TREND_DAYS)

    days: Dict[str, Dict[str, Any]] = {}
    day = start_day
    while day <= end_day:
        key = day.strftime(DATE_FORMAT)
        days[key] = {
            'date': f"{day.day:02d} {MONTH_ABBR[day.month - 1]}",
            'fullDate': key,
            **empty_counters(ALL_ATTENDANCE_STATUS),
        }
        day += timedelta(days=1)

    for entry in entries:
        bucket = days.get(entry.date)
        if bucket is not None:
            bucket[entry.status.value] += 1
    return list(days.values())


# ---------------------------------------------------------------------------
# Per-student statistics
# ---------------------------------------------------------------------------

def student_attendance_stats(
    entries: Iterable[AttendanceEntry],
    student_id: int,
    month: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> Dict[str, int]:
    """Status counters of one student for a month key or an inclusive date window."""

    stats = empty_counters(ALL_ATTENDANCE_STATUS)
    for entry in entries:
        if entry.person_id != student_id or entry.role != Peran.Santri:
            continue
        if month and not entry.date.startswith(month):
            continue
        if start and entry.date < start:
            continue
        if end and entry.date > end:
            continue
        stats[entry.status.value] += 1
    return stats


def parse_progress_number(value: Optional[str]) -> float:
    """Read the leading number of a progress value; text without one counts as 0."""

    match = _NUMBER_PREFIX_RE.match(value or '')
    number = float(match.group(0)) if match else 0.0
    return number if math.isfinite(number) else 0.0


def _progress_matches(progress: Iterable[ProgressEntry], student_id: int, dimension: str,
                      start_month: Optional[str], end_month: Optional[str]) -> List[ProgressEntry]:
    return [
        p for p in progress
        if p.student_id == student_id
        and p.dimension == dimension
        and (not start_month or p.month_key >= start_month)
        and (not end_month or p.month_key <= end_month)
    ]


def latest_progress_value(progress: Iterable[ProgressEntry], student_id: int, dimension: str,
                          start_month: Optional[str] = None,
                          end_month: Optional[str] = None) -> Optional[str]:
    """Value of the most recent month in range, or ``None`` when there is none."""

    matches = _progress_matches(progress, student_id, dimension, start_month, end_month)
    if not matches:
        return None
    return max(matches, key=lambda p: p.month_key).value


def average_progress_value(progress: Iterable[ProgressEntry], student_id: int, dimension: str,
                           start_month: Optional[str] = None,
                           end_month: Optional[str] = None) -> Optional[str]:
    """Unweighted mean over the months in range, one decimal, or ``None``."""

    matches = _progress_matches(progress, student_id, dimension, start_month, end_month)
    if not matches:
        return None
    total = sum(parse_progress_number(p.value) for p in matches)
    return to_fixed(total / len(matches), 1)


@dataclass(frozen=True)
class ProgressSummary:
    total_memorized: Optional[str]
    average_review: Optional[str]
    average_new: Optional[str]


def progress_summary(progress: Iterable[ProgressEntry], student_id: int,
                     start_month: Optional[str] = None,
                     end_month: Optional[str] = None) -> ProgressSummary:
    progress = list(progress)
    return ProgressSummary(
        total_memorized=latest_progress_value(progress, student_id, ProgressType.Hafalan,
                                              start_month, end_month),
        average_review=average_progress_value(progress, student_id, ProgressType.Murojaah,
                                              start_month, end_month),
        average_new=average_progress_value(progress, student_id, ProgressType.Ziyadah,
                                           start_month, end_month),
    )


# ---------------------------------------------------------------------------
# Class report helpers
# ---------------------------------------------------------------------------

def problem_students(entries: Iterable[AttendanceEntry], level: str,
                     class_label: str) -> List[Tuple[str, List[Tuple[str, int]]]]:
    """Students of a class with any non-present entry, with per-status counts.

    Students are ordered by name; each student's statuses by count, highest
    first, ties in status vocabulary order.
    """

    tallies: Dict[str, Dict[AttendanceStatus, int]] = {}
    for entry in entries:
        if entry.level != level or entry.class_label != class_label:
            continue
        if entry.status == AttendanceStatus.Hadir:
            continue
        counts = tallies.setdefault(entry.name, {})
        counts[entry.status] = counts.get(entry.status, 0) + 1

    result = []
    for name in sorted(tallies, key=lambda n: (fold(n), n)):
        counts = tallies[name]
        ordered = sorted(counts.items(),
                         key=lambda item: (-item[1], ALL_ATTENDANCE_STATUS.index(item[0])))
        result.append((name, [(status.value, count) for status, count in ordered]))
    return result

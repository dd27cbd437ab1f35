"""WhatsApp text reports for guardians and class supervisors.

Three templates are produced here:

* the monthly evaluation report sent to a student's guardian,
* the class attendance summary sent to the class supervisor,
* the extended guardian report for a date range, carrying a free-text note
  the operator may change per student.

Formatting functions are pure and take no clock; the same input always gives
the same text. A report for someone without a phone number is still built so
the operator can copy it by hand, but :meth:`ReportPreview.send_link` refuses
to produce a link for it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from aggregation import (ProgressSummary, as_date, class_recap, filter_attendance,
                         problem_students, progress_summary, student_attendance_stats)
from domain import AttendanceEntry, ClassSupervisor, DataSnapshot, EvaluationEntry, Student
from errors import MissingContactInfo

MONTHS_ID = ('Januari', 'Februari', 'Maret', 'April', 'Mei', 'Juni', 'Juli',
             'Agustus', 'September', 'Oktober', 'November', 'Desember')

DEFAULT_COUNTRY_PREFIX = '62'
DEFAULT_PARENT_NAME = 'Bapak/Ibu'
DEFAULT_INSTITUTION = 'Tim Lajnah Al-Qur’an Ma’had Al-Faruq As-Salafy Kalibagor'
DEFAULT_NOTE = (
    'Kami memohon doa dari Bapak agar ananda senantiasa diberikan *kemudahan, '
    'keistiqamahan, serta keberkahan dalam menuntut ilmu dan menjaga hafalan Al-Qur’an*.'
)
ALL_PRESENT_MARKER = '(Nihil - Semua Hadir)'
NO_REMARKS_LINE = '(Tidak ada catatan khusus)'
CLASS_REPORT_TRAILER = '_Laporan ini dibuat otomatis oleh sistem absensi halaqah._'

GREETING = 'Assalamu’alaikum warahmatullahi wabarakatuh.'
FAREWELL = 'Wassalamu’alaikum warahmatullahi wabarakatuh.'

_NON_DIGITS = re.compile(r'\D')
# Characters encodeURIComponent leaves as they are, besides letters and digits.
_URI_SAFE = "-_.!~*'()"


# ---------------------------------------------------------------------------
# Phone numbers and links
# ---------------------------------------------------------------------------

def normalize_phone(raw: Optional[str], country_prefix: str = DEFAULT_COUNTRY_PREFIX) -> str:
    """Keep digits only and swap a leading ``0`` for the country prefix."""

    digits = _NON_DIGITS.sub('', raw or '')
    if digits.startswith('0'):
        digits = country_prefix + digits[1:]
    return digits


def build_whatsapp_link(phone: str, text: str, country_prefix: str = DEFAULT_COUNTRY_PREFIX) -> str:
    number = normalize_phone(phone, country_prefix)
    return f"https://wa.me/{number}?text={quote(text, safe=_URI_SAFE)}"


@dataclass(frozen=True)
class ReportPreview:
    """A generated report waiting for the operator to send or copy it."""

    name: str
    recipient: str
    phone: Optional[str]
    text: str

    @property
    def can_send(self) -> bool:
        return bool(normalize_phone(self.phone))

    def send_link(self, country_prefix: str = DEFAULT_COUNTRY_PREFIX) -> str:
        if not self.can_send:
            raise MissingContactInfo(self.name)
        return build_whatsapp_link(self.phone, self.text, country_prefix)

    def to_dict(self, country_prefix: str = DEFAULT_COUNTRY_PREFIX) -> Dict[str, Any]:
        data = {
            'name': self.name,
            'recipient': self.recipient,
            'phone': self.phone or '',
            'text': self.text,
            'can_send': self.can_send,
            'link': None,
            'warning': None,
        }
        if self.can_send:
            data['link'] = self.send_link(country_prefix)
        else:
            data['warning'] = MissingContactInfo(self.name).detail
        return data


# ---------------------------------------------------------------------------
# Period labels
# ---------------------------------------------------------------------------

def format_indonesian_date(value) -> str:
    """``2024-01-05`` -> ``05 Januari 2024``."""

    day = as_date(value)
    return f"{day.day:02d} {MONTHS_ID[day.month - 1]} {day.year}"


def format_indonesian_month(month_key: str) -> str:
    """``2024-01`` -> ``Januari 2024``."""

    year, month = month_key.split('-')[:2]
    return f"{MONTHS_ID[int(month) - 1]} {year}"


def format_period(start: Optional[str], end: Optional[str]) -> str:
    if start and start == end:
        return start
    return f"{start or '...'} s.d {end or '...'}"


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _with_unit(value: Optional[str], unit: str, missing: str) -> str:
    return f"{value} {unit}" if value else missing


def format_evaluation_report(student: Student, month: str, stats: Mapping[str, int],
                             progress: ProgressSummary,
                             evaluation: Optional[EvaluationEntry]) -> str:
    """Monthly evaluation report for the guardian of ``student``."""

    parent_name = student.guardian_name or DEFAULT_PARENT_NAME
    lines = [
        GREETING,
        '',
        f"Kepada Ykh. {parent_name}",
        f"Wali santri dari *{student.name}*",
        '',
        f"Berikut kami sampaikan *Laporan Evaluasi Bulanan* santri periode "
        f"*{format_indonesian_month(month)}*:",
        '',
        '📊 *STATISTIK KEHADIRAN*',
        f"✅ Hadir: {stats.get('Hadir', 0)}",
        f"🤒 Sakit: {stats.get('Sakit', 0)}",
        f"📩 Izin: {stats.get('Izin', 0)}",
        f"❌ Alpa: {stats.get('Alpa', 0)}",
        f"⏰ Terlambat: {stats.get('Terlambat', 0)}",
        '',
        '📈 *CAPAIAN TAHFIDZ*',
        f"📖 Total Hafalan: {_with_unit(progress.total_memorized, 'Juz', '-')}",
        f"🔄 Murojaah: {_with_unit(progress.average_review, 'Juz', '-')}",
        f"➕ Ziyadah: {_with_unit(progress.average_new, 'Hal', '-')}",
        '',
        '📝 *PENILAIAN & EVALUASI*',
        f"• Kualitas Hafalan: *{(evaluation and evaluation.memorization_quality) or '-'}*",
        f"• Kualitas Bacaan: *{(evaluation and evaluation.recitation_quality) or '-'}*",
        f"• Sikap & Prilaku: *{(evaluation and evaluation.conduct) or '-'}*",
        '',
        '📋 *CATATAN PENGASUH*',
    ]

    remarks = [
        ('👤 Musammi', evaluation.teacher_remark if evaluation else None),
        ('👀 Muroqib', evaluation.supervisor_remark if evaluation else None),
        ('🏛 Lajnah', evaluation.institution_remark if evaluation else None),
    ]
    written = [f'{label}: "{text}"' for label, text in remarks if text]
    lines.extend(written or [NO_REMARKS_LINE])

    lines += [
        '',
        'Demikian laporan ini kami sampaikan. Jazakumullahu khairan atas perhatiannya.',
        FAREWELL,
    ]
    return '\n'.join(lines)


def format_problem_students(problems: Sequence[Tuple[str, Sequence[Tuple[str, int]]]]) -> List[str]:
    if not problems:
        return [ALL_PRESENT_MARKER]
    lines = []
    for index, (name, counts) in enumerate(problems, start=1):
        detail = ', '.join(f"{status} ({count})" for status, count in counts)
        lines.append(f"{index}. {name} — {detail}")
    return lines


def format_class_report(row: Mapping[str, Any], start: Optional[str], end: Optional[str],
                        problems: Sequence[Tuple[str, Sequence[Tuple[str, int]]]]) -> str:
    """Class attendance summary built from a :func:`aggregation.class_recap` row."""

    lines = [
        '*LAPORAN ABSENSI KELAS*',
        f"Kelas: {row['Kelas']} ({row['Marhalah']})",
        f"Periode: {format_period(start, end)}",
        '',
        f"Hadir: {row['Hadir']} | Izin: {row['Izin']} | Sakit: {row['Sakit']} | "
        f"Alpa: {row['Alpa']} | Telat: {row['Terlambat']}",
        '',
        '*DAFTAR SANTRI BERMASALAH*',
    ]
    lines.extend(format_problem_students(problems))
    lines += ['', CLASS_REPORT_TRAILER]
    return '\n'.join(lines)


def format_guardian_report(student: Student, start: str, end: str, stats: Mapping[str, int],
                           progress: ProgressSummary, note: Optional[str] = None,
                           institution: Optional[str] = None) -> str:
    """Extended guardian report for a date range.

    ``note`` replaces the default closing prayer when given, even if empty.
    """

    parent_name = student.guardian_name or DEFAULT_PARENT_NAME
    institution = institution or DEFAULT_INSTITUTION
    note = DEFAULT_NOTE if note is None else note
    total = progress.total_memorized
    review = _with_unit(progress.average_review, 'juz', '–')
    new = _with_unit(progress.average_new, 'hal', '–')

    lines = [
        GREETING,
        '',
        'Kepada Ykh.',
        parent_name,
        f"Wali santri dari *Ananda {student.name}*",
        '',
        'Bismillah, semoga Allah senantiasa melimpahkan rahmat dan keberkahan kepada kita semua.',
        '',
        f"Kami dari *{institution}* bermaksud menyampaikan laporan singkat terkait "
        f"*perkembangan ananda {student.name} di bidang tahfidz Al-Qur’an* selama periode "
        f"*{format_indonesian_date(start)} s.d. {format_indonesian_date(end)}*, "
        f"dengan rincian sebagai berikut:",
        '',
        '*1. Statistik Absensi Halaqah Tahfidz*',
        '',
        f"* Hadir: {stats.get('Hadir', 0)} kali",
        f"* Izin: {stats.get('Izin', 0)} kali",
        f"* Sakit: {stats.get('Sakit', 0)} kali",
        f"* Alpa: {stats.get('Alpa', 0)} kali",
        f"* Terlambat: {stats.get('Terlambat', 0)} kali",
        '',
        '*2. Perkembangan Hafalan*',
        '',
        f"* Total hafalan: *{total} juz*" if total else '* Total hafalan: –',
        f"* Rata-rata muroja’ah: {review}",
        f"* Rata-rata ziyādah: {new}",
        '',
        '*3. Catatan dari Kami*',
        note,
        '',
        'Demikian laporan ini kami sampaikan. Atas perhatian dan kerja sama Bapak, '
        'kami ucapkan *jazākumullāhu khairan*.',
        '',
        FAREWELL,
    ]
    return '\n'.join(lines)


# ---------------------------------------------------------------------------
# Preview builders
# ---------------------------------------------------------------------------

def evaluation_previews(snapshot: DataSnapshot, student_ids: Iterable[int],
                        month: str) -> List[ReportPreview]:
    previews = []
    for student_id in student_ids:
        student = snapshot.student(student_id)
        if student is None:
            continue
        stats = student_attendance_stats(snapshot.attendance, student_id, month=month)
        progress = progress_summary(snapshot.progress, student_id, month, month)
        text = format_evaluation_report(student, month, stats, progress,
                                        snapshot.evaluation(student_id, month))
        previews.append(ReportPreview(
            name=student.name,
            recipient=student.guardian_name or DEFAULT_PARENT_NAME,
            phone=student.guardian_phone,
            text=text,
        ))
    return previews


def guardian_previews(snapshot: DataSnapshot, student_ids: Iterable[int], start: str, end: str,
                      notes: Optional[Mapping[int, str]] = None,
                      institution: Optional[str] = None) -> List[ReportPreview]:
    notes = notes or {}
    start_month, end_month = start[:7], end[:7]
    previews = []
    for student_id in student_ids:
        student = snapshot.student(student_id)
        if student is None:
            continue
        stats = student_attendance_stats(snapshot.attendance, student_id, start=start, end=end)
        progress = progress_summary(snapshot.progress, student_id, start_month, end_month)
        text = format_guardian_report(student, start, end, stats, progress,
                                      note=notes.get(student_id), institution=institution)
        previews.append(ReportPreview(
            name=student.name,
            recipient=student.guardian_name or DEFAULT_PARENT_NAME,
            phone=student.guardian_phone,
            text=text,
        ))
    return previews


def class_previews(entries: Iterable[AttendanceEntry], supervisors: Iterable[ClassSupervisor],
                   class_keys: Iterable[str], start: Optional[str] = None,
                   end: Optional[str] = None, level: Optional[str] = None) -> List[ReportPreview]:
    """Class summaries for the selected ``Marhalah-Kelas`` keys."""

    filtered = filter_attendance(entries, start=start, end=end, level=level)
    rows = {row['key']: row for row in class_recap(filtered)}
    supervisors = list(supervisors)
    previews = []
    for key in class_keys:
        row = rows.get(key)
        if row is None:
            continue
        problems = problem_students(filtered, row['Marhalah'], row['Kelas'])
        supervisor = next((w for w in supervisors
                           if w.level == row['Marhalah'] and w.class_label == row['Kelas']), None)
        previews.append(ReportPreview(
            name=f"{row['Kelas']} ({row['Marhalah']})",
            recipient=supervisor.name if supervisor else 'Wali Kelas',
            phone=supervisor.phone if supervisor else None,
            text=format_class_report(row, start, end, problems),
        ))
    return previews

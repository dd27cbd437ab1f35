"""Tenant-scoped data access.

:class:`DataGateway` is the only code that reads or writes the database. It
resolves the caller's organization once, filters every query by it, stamps it
on every insert and never lets an update move a row to another organization.
Reads come back as the immutable records from :mod:`domain`; every mutation
commits, reloads the full data set and returns it, mirroring how the
dashboard refreshes after each change.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Type

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
from aggregation import as_date, resolve_or_skip
from app_logging import StorageTimer, bind_log_context, get_logger
from domain import (DEFAULT_DISPLAY_ORDER, AttendanceEntry, AttendanceStatus, ChatMessage,
                    ClassSupervisor, ClassTarget, DataSnapshot, EvaluationEntry,
                    EvaluationRatingOption, Marhalah, Peran, ProgressEntry, ProgressType,
                    RatingCategory, ReplySnapshot, Student, StudyGroup, StudyGroupType, Teacher,
                    Waktu)
from errors import (MutationFailure, NoTenantAssigned, NotFoundInTenant, NotMessageOwner,
                    Unauthenticated)

_logger = get_logger("app.gateway")

# Keys that callers may send but that never reach an UPDATE statement.
_PROTECTED_FIELDS = frozenset({'organization_id', 'id'})

_GROUP_FIELDS = {
    'name': 'nama',
    'teacher_id': 'musammi_id',
    'level': 'marhalah',
    'group_type': 'jenis',
    'time_slots': 'waktu',
    'display_order': 'no_urut',
}
_STUDENT_FIELDS = {
    'name': 'nama',
    'level': 'marhalah',
    'class_label': 'kelas',
    'code': 'kode',
    'guardian_name': 'nama_wali',
    'guardian_phone': 'no_hp_wali',
}
_TEACHER_FIELDS = {
    'name': 'nama',
    'level': 'marhalah',
    'class_label': 'kelas',
    'code': 'kode',
    'phone': 'no_hp',
}
_SUPERVISOR_FIELDS = {'name': 'nama', 'level': 'marhalah', 'class_label': 'kelas', 'phone': 'no_hp'}
_ATTENDANCE_FIELDS = {'status': 'status', 'date': 'date', 'time_slot': 'waktu'}
_EVALUATION_FIELDS = {
    'memorization_quality': 'kualitas_hafalan',
    'recitation_quality': 'kualitas_bacaan',
    'conduct': 'sikap_prilaku',
    'teacher_remark': 'catatan_musammi',
    'supervisor_remark': 'catatan_muroqib',
    'institution_remark': 'catatan_lajnah',
}
_TARGET_FIELDS = {
    'ziyadah_start': 'target_ziyadah_start',
    'ziyadah_end': 'target_ziyadah_end',
    'murojaah_start': 'target_murojaah_start',
    'murojaah_end': 'target_murojaah_end',
    'hafalan_start': 'target_hafalan_start',
    'hafalan_end': 'target_hafalan_end',
}

_PERSON_MODELS = {Peran.Santri.value: models.Santri, Peran.Musammi.value: models.Musammi}


@dataclass(frozen=True)
class AuthContext:
    """Identity of the caller, supplied per request by the web layer."""

    user_id: Optional[str]


def _encode(field: str, value: Any) -> Any:
    """Validate vocabulary values before they are written."""

    if field == 'level':
        return Marhalah(value).value
    if field == 'time_slot':
        return Waktu(value).value
    if field == 'time_slots':
        slots = [Waktu(slot).value for slot in value or []]
        if not slots:
            raise ValueError('At least one time-slot is required')
        return slots
    if field == 'status':
        return AttendanceStatus(value).value
    if field == 'role':
        return Peran(value).value
    if field == 'dimension':
        return ProgressType(value).value
    if field == 'category':
        return RatingCategory(value).value
    if field == 'group_type':
        return StudyGroupType.parse(value).label
    if field == 'date':
        return as_date(value).isoformat()
    if field == 'display_order':
        return int(value) if value not in (None, '') else DEFAULT_DISPLAY_ORDER
    return value


def _changes_for(changes: Mapping[str, Any], field_map: Mapping[str, str]) -> Dict[str, Any]:
    """Translate an update payload to column values, dropping tenant reassignment."""

    changes = {k: v for k, v in changes.items() if k not in _PROTECTED_FIELDS}
    unknown = sorted(set(changes) - set(field_map))
    if unknown:
        raise ValueError(f"Unknown field(s): {', '.join(unknown)}")
    return {field_map[key]: _encode(key, value) for key, value in changes.items()}


def _decoded(enum_type, value):
    try:
        return enum_type(value)
    except ValueError:
        return None


class DataGateway:
    """Reads and writes one organization's data on behalf of one user."""

    def __init__(self, session: Session, auth: AuthContext) -> None:
        self.session = session
        self.auth = auth
        self.snapshot = DataSnapshot()
        self._tenant_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Tenant
    # ------------------------------------------------------------------

    def resolve_tenant(self) -> str:
        """Return the caller's organization id, looking it up on first use only."""

        if self._tenant_id is not None:
            return self._tenant_id
        if not self.auth.user_id:
            raise Unauthenticated()
        profile = self.session.get(models.Profile, self.auth.user_id)
        if profile is None or not profile.organization_id:
            raise NoTenantAssigned()
        self._tenant_id = profile.organization_id
        bind_log_context(organization_id=self._tenant_id)
        return self._tenant_id

    def _scoped(self, model: Type[Any]):
        return self.session.query(model).filter(model.organization_id == self.resolve_tenant())

    def _get(self, model: Type[Any], row_id: int) -> Any:
        row = self._scoped(model).filter(model.id == row_id).first()
        if row is None:
            raise NotFoundInTenant(f"{model.__tablename__} {row_id} tidak ditemukan")
        return row

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_all(self) -> DataSnapshot:
        """Fetch and join every record set of the caller's organization."""

        self.resolve_tenant()
        with StorageTimer() as timer:
            snapshot = self._load_core()
            snapshot.progress = self._load_optional('student_progress', self._load_progress)
            snapshot.evaluations = self._load_optional('student_evaluation', self._load_evaluations)
            snapshot.rating_options = self._load_optional('evaluation_settings',
                                                          self._load_rating_options)
            snapshot.class_targets = self._load_optional('class_targets', self._load_class_targets)
        self.snapshot = snapshot
        _logger.info(
            "snapshot loaded",
            extra={
                "students": len(snapshot.students),
                "study_groups": len(snapshot.study_groups),
                "attendance": len(snapshot.attendance),
                "storage_time_ms": timer.elapsed_ms,
            },
        )
        return snapshot

    def _load_optional(self, table: str, loader: Callable[[], List[Any]]) -> List[Any]:
        try:
            return loader()
        except SQLAlchemyError as exc:
            self.session.rollback()
            _logger.warning("partial load degradation", extra={"table": table, "error": str(exc)})
            return []

    def _load_core(self) -> DataSnapshot:
        students = [s for _, s in resolve_or_skip(
            self._scoped(models.Santri).order_by(models.Santri.nama).all(), _student)]
        teachers = [t for _, t in resolve_or_skip(
            self._scoped(models.Musammi).order_by(models.Musammi.nama).all(), _teacher)]
        supervisors = [w for _, w in resolve_or_skip(
            self._scoped(models.WaliKelas).order_by(models.WaliKelas.kelas).all(), _supervisor)]
        group_rows = self._scoped(models.Halaqah).all()
        links = self._scoped(models.HalaqahSantri).all()
        attendance_rows = self._scoped(models.Attendance).order_by(models.Attendance.id).all()

        teacher_by_id = {t.id: t for t in teachers}
        student_by_id = {s.id: s for s in students}

        member_ids: Dict[int, set] = {}
        for link in links:
            member_ids.setdefault(link.halaqah_id, set()).add(link.santri_id)

        def study_group(row) -> Optional[StudyGroup]:
            teacher = teacher_by_id.get(row.musammi_id)
            level = _decoded(Marhalah, row.marhalah)
            if teacher is None or level is None:
                return None
            ids = member_ids.get(row.id, set())
            slots = [slot for slot in (_decoded(Waktu, w) for w in row.waktu or []) if slot]
            return StudyGroup(
                id=row.id,
                name=row.nama,
                teacher=teacher,
                students=tuple(s for s in students if s.id in ids),
                level=level,
                group_type=StudyGroupType.parse(row.jenis),
                time_slots=tuple(slots),
                display_order=row.no_urut or DEFAULT_DISPLAY_ORDER,
            )

        groups = [g for _, g in resolve_or_skip(group_rows, study_group)]
        groups.sort(key=lambda g: g.display_order)

        def attendance_entry(row) -> Optional[AttendanceEntry]:
            role = _decoded(Peran, row.peran)
            people = student_by_id if role == Peran.Santri else teacher_by_id
            person = people.get(row.person_id)
            status = _decoded(AttendanceStatus, row.status)
            slot = _decoded(Waktu, row.waktu)
            if role is None or person is None or row.halaqah_id is None or not (status and slot):
                return None
            return AttendanceEntry(
                id=row.id,
                date=row.date,
                time_slot=slot,
                person_id=row.person_id,
                name=person.name,
                level=person.level,
                class_label=person.class_label,
                role=role,
                status=status,
                study_group_id=row.halaqah_id,
            )

        attendance = [a for _, a in resolve_or_skip(attendance_rows, attendance_entry)]
        dropped = len(attendance_rows) - len(attendance)
        if dropped:
            _logger.debug("unresolved attendance rows skipped", extra={"count": dropped})

        return DataSnapshot(
            students=students,
            teachers=teachers,
            class_supervisors=supervisors,
            study_groups=groups,
            attendance=attendance,
        )

    def _load_progress(self) -> List[ProgressEntry]:
        rows = self._scoped(models.StudentProgress).all()
        return [p for _, p in resolve_or_skip(rows, _progress)]

    def _load_evaluations(self) -> List[EvaluationEntry]:
        return [
            EvaluationEntry(
                id=row.id,
                student_id=row.santri_id,
                month_key=row.month_key,
                memorization_quality=row.kualitas_hafalan,
                recitation_quality=row.kualitas_bacaan,
                conduct=row.sikap_prilaku,
                teacher_remark=row.catatan_musammi,
                supervisor_remark=row.catatan_muroqib,
                institution_remark=row.catatan_lajnah,
            )
            for row in self._scoped(models.StudentEvaluation).all()
        ]

    def _load_rating_options(self) -> List[EvaluationRatingOption]:
        rows = self._scoped(models.EvaluationSetting).order_by(
            models.EvaluationSetting.score.desc(), models.EvaluationSetting.id).all()
        return [EvaluationRatingOption(id=r.id, category=r.category, label=r.label, score=r.score)
                for r in rows]

    def _load_class_targets(self) -> List[ClassTarget]:
        return [t for _, t in resolve_or_skip(self._scoped(models.ClassTarget).all(), _class_target)]

    def list_chat_messages(self) -> List[ChatMessage]:
        rows = self._scoped(models.Chat).order_by(models.Chat.created_at, models.Chat.id).all()
        return [_chat_message(row) for row in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @contextmanager
    def _writing(self, action: str, **details: Any) -> Iterator[str]:
        """Run a write inside one transaction; storage errors become MutationFailure."""

        tenant = self.resolve_tenant()
        try:
            with StorageTimer():
                yield tenant
                self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            message = str(getattr(exc, 'orig', None) or exc)
            _logger.warning("mutation failed", extra={"action": action, "error": message})
            raise MutationFailure(message) from exc
        except Exception:
            self.session.rollback()
            raise
        _logger.info("mutation applied", extra={"action": action, **details})

    def add_student(self, name: str, level: str, class_label: str, code: Optional[str] = None,
                    guardian_name: Optional[str] = None,
                    guardian_phone: Optional[str] = None) -> DataSnapshot:
        with self._writing('add_student') as tenant:
            self.session.add(models.Santri(
                organization_id=tenant, nama=name, marhalah=_encode('level', level),
                kelas=class_label, kode=code, nama_wali=guardian_name, no_hp_wali=guardian_phone,
            ))
        return self.load_all()

    def add_teacher(self, name: str, level: str, class_label: str, code: Optional[str] = None,
                    phone: Optional[str] = None) -> DataSnapshot:
        with self._writing('add_teacher') as tenant:
            self.session.add(models.Musammi(
                organization_id=tenant, nama=name, marhalah=_encode('level', level),
                kelas=class_label, kode=code, no_hp=phone,
            ))
        return self.load_all()

    def add_class_supervisor(self, name: str, level: str, class_label: str,
                             phone: Optional[str] = None) -> DataSnapshot:
        with self._writing('add_class_supervisor') as tenant:
            self.session.add(models.WaliKelas(
                organization_id=tenant, nama=name, marhalah=_encode('level', level),
                kelas=class_label, no_hp=phone,
            ))
        return self.load_all()

    def _update_row(self, action: str, model: Type[Any], row_id: int, field_map: Mapping[str, str],
                    changes: Mapping[str, Any]) -> DataSnapshot:
        values = _changes_for(changes, field_map)
        with self._writing(action, row_id=row_id):
            row = self._get(model, row_id)
            for column, value in values.items():
                setattr(row, column, value)
        return self.load_all()

    def update_student(self, student_id: int, **changes: Any) -> DataSnapshot:
        """Edit a student, including the guardian name and phone."""

        return self._update_row('update_student', models.Santri, student_id, _STUDENT_FIELDS, changes)

    def update_teacher(self, teacher_id: int, **changes: Any) -> DataSnapshot:
        return self._update_row('update_teacher', models.Musammi, teacher_id, _TEACHER_FIELDS, changes)

    def update_class_supervisor(self, supervisor_id: int, **changes: Any) -> DataSnapshot:
        return self._update_row('update_class_supervisor', models.WaliKelas, supervisor_id,
                                _SUPERVISOR_FIELDS, changes)

    def delete_student(self, student_id: int) -> DataSnapshot:
        """Delete only the student row.

        Attendance, progress, evaluations and membership links stay in
        storage; they no longer resolve and drop out of every snapshot.
        """

        with self._writing('delete_student', student_id=student_id):
            self.session.delete(self._get(models.Santri, student_id))
        return self.load_all()

    def delete_teacher(self, teacher_id: int) -> DataSnapshot:
        """Delete only the teacher row; groups they lead stop resolving."""

        with self._writing('delete_teacher', teacher_id=teacher_id):
            self.session.delete(self._get(models.Musammi, teacher_id))
        return self.load_all()

    def delete_class_supervisor(self, supervisor_id: int) -> DataSnapshot:
        with self._writing('delete_class_supervisor', supervisor_id=supervisor_id):
            self.session.delete(self._get(models.WaliKelas, supervisor_id))
        return self.load_all()

    def add_study_group(self, name: str, teacher_id: int, level: str, group_type: Optional[str],
                        time_slots: Sequence[str], student_ids: Iterable[int] = (),
                        display_order: Optional[int] = None) -> DataSnapshot:
        with self._writing('add_study_group', teacher_id=teacher_id) as tenant:
            self._get(models.Musammi, teacher_id)
            group = models.Halaqah(
                organization_id=tenant,
                nama=name,
                musammi_id=teacher_id,
                marhalah=_encode('level', level),
                jenis=_encode('group_type', group_type),
                waktu=_encode('time_slots', time_slots),
                no_urut=_encode('display_order', display_order),
            )
            self.session.add(group)
            self.session.flush()
            for student_id in dict.fromkeys(student_ids):
                self._get(models.Santri, student_id)
                self.session.add(models.HalaqahSantri(
                    organization_id=tenant, halaqah_id=group.id, santri_id=student_id))
        return self.load_all()

    def update_study_group(self, group_id: int, **changes: Any) -> DataSnapshot:
        values = _changes_for(changes, _GROUP_FIELDS)
        with self._writing('update_study_group', group_id=group_id):
            group = self._get(models.Halaqah, group_id)
            if 'musammi_id' in values:
                self._get(models.Musammi, values['musammi_id'])
            for column, value in values.items():
                setattr(group, column, value)
        return self.load_all()

    def delete_study_group(self, group_id: int) -> DataSnapshot:
        """Delete a group together with its membership links and attendance rows."""

        with self._writing('delete_study_group', group_id=group_id):
            group = self._get(models.Halaqah, group_id)
            self._scoped(models.HalaqahSantri).filter(
                models.HalaqahSantri.halaqah_id == group_id).delete(synchronize_session=False)
            self._scoped(models.Attendance).filter(
                models.Attendance.halaqah_id == group_id).delete(synchronize_session=False)
            self.session.delete(group)
        return self.load_all()

    def add_member(self, group_id: int, student_id: int) -> DataSnapshot:
        with self._writing('add_member', group_id=group_id, student_id=student_id) as tenant:
            self._get(models.Halaqah, group_id)
            self._get(models.Santri, student_id)
            self.session.add(models.HalaqahSantri(
                organization_id=tenant, halaqah_id=group_id, santri_id=student_id))
        return self.load_all()

    def remove_member(self, group_id: int, student_id: int) -> DataSnapshot:
        with self._writing('remove_member', group_id=group_id, student_id=student_id):
            self._scoped(models.HalaqahSantri).filter(
                models.HalaqahSantri.halaqah_id == group_id,
                models.HalaqahSantri.santri_id == student_id,
            ).delete(synchronize_session=False)
        return self.load_all()

    def add_attendance_entries(self, entries: Iterable[Mapping[str, Any]]) -> DataSnapshot:
        """Insert attendance rows given as ``date``, ``time_slot``, ``person_id``,
        ``role``, ``status`` and ``study_group_id``.

        The person and the study group must both belong to the caller's
        organization; otherwise nothing from the batch is written.
        """

        entries = list(entries)
        with self._writing('add_attendance_entries', count=len(entries)) as tenant:
            for entry in entries:
                role = _encode('role', entry['role'])
                person_id = int(entry['person_id'])
                group_id = entry.get('study_group_id')
                if group_id is None:
                    raise ValueError('study_group_id is required for attendance entries')
                self._get(models.Halaqah, int(group_id))
                self._get(_PERSON_MODELS[role], person_id)
                self.session.add(models.Attendance(
                    organization_id=tenant,
                    date=_encode('date', entry['date']),
                    waktu=_encode('time_slot', entry['time_slot']),
                    person_id=person_id,
                    peran=role,
                    status=_encode('status', entry['status']),
                    halaqah_id=int(group_id),
                ))
        return self.load_all()

    def update_attendance_entry(self, entry_id: int, **changes: Any) -> DataSnapshot:
        values = _changes_for(changes, _ATTENDANCE_FIELDS)
        with self._writing('update_attendance_entry', entry_id=entry_id):
            row = self._get(models.Attendance, entry_id)
            for column, value in values.items():
                setattr(row, column, value)
        return self.load_all()

    def delete_attendance_entry(self, entry_id: int) -> DataSnapshot:
        with self._writing('delete_attendance_entry', entry_id=entry_id):
            self.session.delete(self._get(models.Attendance, entry_id))
        return self.load_all()

    def delete_attendance_batch(self, on_date: str, time_slot: str) -> DataSnapshot:
        """Delete every attendance row of one session (date and time-slot)."""

        with self._writing('delete_attendance_batch', date=on_date, time_slot=time_slot):
            self._scoped(models.Attendance).filter(
                models.Attendance.date == _encode('date', on_date),
                models.Attendance.waktu == _encode('time_slot', time_slot),
            ).delete(synchronize_session=False)
        return self.load_all()

    def upsert_progress_batch(self, records: Iterable[Mapping[str, Any]]) -> DataSnapshot:
        """Insert or replace progress values keyed by student, month and dimension."""

        records = list(records)
        with self._writing('upsert_progress_batch', count=len(records)) as tenant:
            for record in records:
                student_id = int(record['student_id'])
                month = record['month_key']
                dimension = _encode('dimension', record['dimension'])
                row = self._scoped(models.StudentProgress).filter_by(
                    santri_id=student_id, month_key=month, progress_type=dimension).first()
                if row is None:
                    row = models.StudentProgress(organization_id=tenant, santri_id=student_id,
                                                 month_key=month, progress_type=dimension)
                    self.session.add(row)
                row.value = str(record['value'])
        return self.load_all()

    def delete_progress(self, progress_id: int) -> DataSnapshot:
        with self._writing('delete_progress', progress_id=progress_id):
            self.session.delete(self._get(models.StudentProgress, progress_id))
        return self.load_all()

    def delete_progress_by_month(self, month: str, dimension: str) -> DataSnapshot:
        with self._writing('delete_progress_by_month', month=month, dimension=dimension):
            self._scoped(models.StudentProgress).filter(
                models.StudentProgress.month_key == month,
                models.StudentProgress.progress_type == _encode('dimension', dimension),
            ).delete(synchronize_session=False)
        return self.load_all()

    def upsert_class_target(self, level: str, class_label: str, **targets: Any) -> DataSnapshot:
        values = _changes_for(targets, _TARGET_FIELDS)
        level = _encode('level', level)
        with self._writing('upsert_class_target', level=level, class_label=class_label) as tenant:
            row = self._scoped(models.ClassTarget).filter_by(marhalah=level, kelas=class_label).first()
            if row is None:
                row = models.ClassTarget(organization_id=tenant, marhalah=level, kelas=class_label)
                self.session.add(row)
            for column, value in values.items():
                setattr(row, column, float(value or 0))
        return self.load_all()

    def upsert_evaluation(self, student_id: int, month_key: str, **fields: Any) -> DataSnapshot:
        """Create or update the evaluation of a student for a month.

        Only the given fields change; the others keep their stored value.
        """

        values = _changes_for(fields, _EVALUATION_FIELDS)
        with self._writing('upsert_evaluation', student_id=student_id, month=month_key) as tenant:
            self._get(models.Santri, student_id)
            row = self._scoped(models.StudentEvaluation).filter_by(
                santri_id=student_id, month_key=month_key).first()
            if row is None:
                row = models.StudentEvaluation(organization_id=tenant, santri_id=student_id,
                                               month_key=month_key)
                self.session.add(row)
            for column, value in values.items():
                setattr(row, column, value)
        return self.load_all()

    def add_rating_option(self, category: str, label: str, score: Optional[int] = 0) -> DataSnapshot:
        label = (label or '').strip()
        if not label:
            raise ValueError('Label is required')
        with self._writing('add_rating_option', category=category) as tenant:
            self.session.add(models.EvaluationSetting(
                organization_id=tenant, category=_encode('category', category),
                label=label, score=score))
        return self.load_all()

    def delete_rating_option(self, option_id: int) -> DataSnapshot:
        with self._writing('delete_rating_option', option_id=option_id):
            self.session.delete(self._get(models.EvaluationSetting, option_id))
        return self.load_all()

    def _sender(self):
        """E-mail and display name stamped on the caller's chat messages."""

        self.resolve_tenant()
        profile = self.session.get(models.Profile, self.auth.user_id)
        return profile.email or self.auth.user_id, profile.full_name

    def post_chat_message(self, content: str, reply_to_id: Optional[int] = None) -> ChatMessage:
        content = (content or '').strip()
        if not content:
            raise ValueError('Message is empty')
        with self._writing('post_chat_message') as tenant:
            email, name = self._sender()
            reply = None
            if reply_to_id is not None:
                reply = ReplySnapshot.from_message(_chat_message(self._get(models.Chat, reply_to_id)))
            row = models.Chat(
                organization_id=tenant,
                content=content,
                sender_email=email,
                sender_name=name,
                reply_to=reply.to_dict() if reply else None,
            )
            self.session.add(row)
            self.session.flush()
            message = _chat_message(row)
        return message

    def delete_chat_message(self, message_id: int) -> None:
        with self._writing('delete_chat_message', message_id=message_id):
            row = self._get(models.Chat, message_id)
            if row.sender_email != self._sender()[0]:
                raise NotMessageOwner()
            self.session.delete(row)


# ---------------------------------------------------------------------------
# Row decoders
# ---------------------------------------------------------------------------

def _student(row) -> Optional[Student]:
    level = _decoded(Marhalah, row.marhalah)
    if level is None:
        return None
    return Student(id=row.id, name=row.nama, level=level, class_label=row.kelas, code=row.kode,
                   guardian_name=row.nama_wali or None, guardian_phone=row.no_hp_wali or None)


def _teacher(row) -> Optional[Teacher]:
    level = _decoded(Marhalah, row.marhalah)
    if level is None:
        return None
    return Teacher(id=row.id, name=row.nama, level=level, class_label=row.kelas, code=row.kode,
                   phone=row.no_hp or None)


def _supervisor(row) -> Optional[ClassSupervisor]:
    level = _decoded(Marhalah, row.marhalah)
    if level is None:
        return None
    return ClassSupervisor(id=row.id, name=row.nama, level=level, class_label=row.kelas,
                           phone=row.no_hp or None)


def _progress(row) -> Optional[ProgressEntry]:
    dimension = _decoded(ProgressType, row.progress_type)
    if dimension is None:
        return None
    return ProgressEntry(id=row.id, student_id=row.santri_id, month_key=row.month_key,
                         dimension=dimension, value=row.value)


def _class_target(row) -> Optional[ClassTarget]:
    level = _decoded(Marhalah, row.marhalah)
    if level is None:
        return None
    return ClassTarget(
        id=row.id, level=level, class_label=row.kelas,
        ziyadah_start=row.target_ziyadah_start, ziyadah_end=row.target_ziyadah_end,
        murojaah_start=row.target_murojaah_start, murojaah_end=row.target_murojaah_end,
        hafalan_start=row.target_hafalan_start, hafalan_end=row.target_hafalan_end,
    )


def _chat_message(row) -> ChatMessage:
    return ChatMessage(
        id=row.id,
        content=row.content,
        sender_email=row.sender_email,
        sender_name=row.sender_name,
        organization_id=row.organization_id,
        reply_to=ReplySnapshot.from_dict(row.reply_to),
        created_at=row.created_at,
    )

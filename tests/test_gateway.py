import logging

import pytest
from sqlalchemy import text

from errors import MutationFailure, NoTenantAssigned, NotFoundInTenant, NotMessageOwner, Unauthenticated
from gateway import AuthContext, DataGateway
from models import Attendance, Halaqah, HalaqahSantri, Profile, Santri, StudentProgress, db


def _seed_group(gateway):
    gateway.add_teacher('Ustadz Salman', 'Mutawassithah', '1A', code='M-01', phone='0812')
    gateway.add_student('Ahmad', 'Mutawassithah', '1A', guardian_phone='0813')
    snapshot = gateway.add_student('Bilal', 'Mutawassithah', '1A')
    teacher = snapshot.teachers[0]
    ids = [s.id for s in snapshot.students]
    snapshot = gateway.add_study_group('Halaqah Salman', teacher.id, 'Mutawassithah',
                                       'Halaqah Utama', ['Shubuh', 'Ashar'], student_ids=ids)
    return snapshot


def test_resolve_tenant_requires_a_user(ctx):
    with pytest.raises(Unauthenticated):
        DataGateway(db.session, AuthContext(user_id=None)).resolve_tenant()


@pytest.mark.parametrize('user_id', ['user-none', 'no-such-profile'])
def test_resolve_tenant_requires_an_organization(ctx, user_id):
    with pytest.raises(NoTenantAssigned):
        DataGateway(db.session, AuthContext(user_id=user_id)).load_all()


def test_resolve_tenant_is_memoised(gateway):
    assert gateway.resolve_tenant() == 'org-a'
    db.session.get(Profile, 'user-a').organization_id = 'org-b'
    db.session.commit()
    assert gateway.resolve_tenant() == 'org-a'


def test_inserts_are_stamped_and_reads_are_isolated(gateway, other_gateway):
    snapshot = gateway.add_student('Ahmad', 'Aliyah', '10', guardian_name='Bapak Hasan')

    assert [s.name for s in snapshot.students] == ['Ahmad']
    assert Santri.query.one().organization_id == 'org-a'
    assert other_gateway.load_all().students == []


def test_load_all_joins_groups_and_attendance(gateway):
    snapshot = _seed_group(gateway)
    group = snapshot.study_groups[0]
    assert group.teacher.name == 'Ustadz Salman'
    assert [s.name for s in group.students] == ['Ahmad', 'Bilal']
    assert [str(slot) for slot in group.time_slots] == ['Shubuh', 'Ashar']
    assert not group.group_type.is_custom

    ahmad = snapshot.students[0]
    snapshot = gateway.add_attendance_entries([
        {'date': '2024-01-05', 'time_slot': 'Shubuh', 'person_id': ahmad.id, 'role': 'Santri',
         'status': 'Izin', 'study_group_id': group.id},
        {'date': '2024-01-05', 'time_slot': 'Shubuh', 'person_id': group.teacher.id,
         'role': 'Musammi', 'status': 'Hadir', 'study_group_id': group.id},
    ])
    by_role = {e.role.value: e for e in snapshot.attendance}
    assert by_role['Santri'].name == 'Ahmad' and by_role['Santri'].class_label == '1A'
    assert by_role['Musammi'].name == 'Ustadz Salman'


def test_unresolvable_rows_are_dropped(gateway):
    snapshot = _seed_group(gateway)
    group = snapshot.study_groups[0]
    db.session.add_all([
        Attendance(organization_id='org-a', date='2024-01-05', waktu='Shubuh', person_id=999,
                   peran='Santri', status='Hadir', halaqah_id=group.id),
        Attendance(organization_id='org-a', date='2024-01-05', waktu='Shubuh',
                   person_id=snapshot.students[0].id, peran='Santri', status='Hadir',
                   halaqah_id=None),
        Halaqah(organization_id='org-a', nama='Tanpa Musammi', musammi_id=999,
                marhalah='Aliyah', jenis='Halaqah Pagi', waktu=['Dhuha']),
        HalaqahSantri(organization_id='org-a', halaqah_id=group.id, santri_id=999),
    ])
    db.session.commit()

    snapshot = gateway.load_all()
    assert snapshot.attendance == []
    assert [g.name for g in snapshot.study_groups] == ['Halaqah Salman']
    assert len(snapshot.study_groups[0].students) == 2


def test_update_strips_organization_and_validates(gateway, other_gateway):
    group_id = _seed_group(gateway).study_groups[0].id

    snapshot = gateway.update_study_group(group_id, organization_id='org-b', name='Halaqah Baru',
                                          group_type='Tahsin')
    assert snapshot.study_groups[0].name == 'Halaqah Baru'
    assert snapshot.study_groups[0].group_type.is_custom
    assert db.session.get(Halaqah, group_id).organization_id == 'org-a'

    with pytest.raises(ValueError):
        gateway.update_study_group(group_id, level='Ibtidaiyah')
    with pytest.raises(ValueError):
        gateway.update_study_group(group_id, colour='red')
    with pytest.raises(NotFoundInTenant):
        other_gateway.update_study_group(group_id, name='Diambil')


def test_delete_study_group_cascades(gateway):
    snapshot = _seed_group(gateway)
    group = snapshot.study_groups[0]
    gateway.add_attendance_entries([
        {'date': '2024-01-05', 'time_slot': 'Shubuh', 'person_id': snapshot.students[0].id,
         'role': 'Santri', 'status': 'Hadir', 'study_group_id': group.id},
    ])

    snapshot = gateway.delete_study_group(group.id)

    assert snapshot.study_groups == [] and snapshot.attendance == []
    assert HalaqahSantri.query.count() == 0
    assert Attendance.query.count() == 0
    assert len(snapshot.students) == 2


def test_members_can_be_added_and_removed(gateway):
    snapshot = _seed_group(gateway)
    group = snapshot.study_groups[0]
    ahmad = snapshot.students[0]

    snapshot = gateway.remove_member(group.id, ahmad.id)
    assert [s.name for s in snapshot.study_groups[0].students] == ['Bilal']
    snapshot = gateway.add_member(group.id, ahmad.id)
    assert len(snapshot.study_groups[0].students) == 2


def test_storage_errors_become_mutation_failure(gateway):
    snapshot = _seed_group(gateway)
    group = snapshot.study_groups[0]

    with pytest.raises(MutationFailure) as excinfo:
        gateway.add_member(group.id, snapshot.students[0].id)
    assert 'UNIQUE' in excinfo.value.detail.upper()
    # The session is usable again after the rollback.
    assert len(gateway.load_all().students) == 2


def test_attendance_updates_and_batch_delete(gateway):
    snapshot = _seed_group(gateway)
    group = snapshot.study_groups[0]
    entries = [
        {'date': '2024-01-05', 'time_slot': slot, 'person_id': s.id, 'role': 'Santri',
         'status': 'Hadir', 'study_group_id': group.id}
        for s in snapshot.students for slot in ('Shubuh', 'Ashar')
    ]
    snapshot = gateway.add_attendance_entries(entries)
    first = snapshot.attendance[0]

    snapshot = gateway.update_attendance_entry(first.id, status='Sakit')
    assert next(e for e in snapshot.attendance if e.id == first.id).status == 'Sakit'

    snapshot = gateway.delete_attendance_batch('2024-01-05', 'Shubuh')
    assert {e.time_slot.value for e in snapshot.attendance} == {'Ashar'}

    snapshot = gateway.delete_attendance_entry(snapshot.attendance[0].id)
    assert len(snapshot.attendance) == 1


def test_progress_upsert_replaces_by_key(gateway):
    ahmad = gateway.add_student('Ahmad', 'Mutawassithah', '1A').students[0]
    record = {'student_id': ahmad.id, 'month_key': '2024-01', 'dimension': 'Murojaah', 'value': '2'}
    gateway.upsert_progress_batch([record])
    snapshot = gateway.upsert_progress_batch([
        dict(record, value='3'),
        dict(record, dimension='Ziyadah', value='1'),
    ])

    assert StudentProgress.query.count() == 2
    assert {p.dimension.value: p.value for p in snapshot.progress} == {'Murojaah': '3', 'Ziyadah': '1'}

    snapshot = gateway.delete_progress_by_month('2024-01', 'Murojaah')
    assert [p.dimension.value for p in snapshot.progress] == ['Ziyadah']
    snapshot = gateway.delete_progress(snapshot.progress[0].id)
    assert snapshot.progress == []


def test_evaluation_upsert_changes_only_given_fields(gateway):
    ahmad = gateway.add_student('Ahmad', 'Mutawassithah', '1A').students[0]
    gateway.upsert_evaluation(ahmad.id, '2024-01', memorization_quality='Jayyid',
                              teacher_remark='Rajin')
    snapshot = gateway.upsert_evaluation(ahmad.id, '2024-01', memorization_quality='Mumtaz')

    evaluation = snapshot.evaluation(ahmad.id, '2024-01')
    assert evaluation.memorization_quality == 'Mumtaz'
    assert evaluation.teacher_remark == 'Rajin'
    assert len(snapshot.evaluations) == 1


def test_class_target_upsert_is_keyed_by_level_and_class(gateway):
    gateway.upsert_class_target('Aliyah', '10', ziyadah_start=1, ziyadah_end=5)
    snapshot = gateway.upsert_class_target('Aliyah', '10', ziyadah_end=6, organization_id='org-b')

    assert len(snapshot.class_targets) == 1
    target = snapshot.class_targets[0]
    assert (target.ziyadah_start, target.ziyadah_end) == (1, 6)


def test_rating_options(gateway):
    gateway.add_rating_option('Sikap', 'Cukup', score=1)
    snapshot = gateway.add_rating_option('Sikap', 'Baik', score=3)
    assert snapshot.ratings.labels_for('Sikap') == ['Baik', 'Cukup']

    snapshot = gateway.delete_rating_option(snapshot.rating_options[0].id)
    assert snapshot.ratings.labels_for('Sikap') == ['Cukup']
    with pytest.raises(ValueError):
        gateway.add_rating_option('Sikap', '   ')


def test_missing_optional_table_degrades_to_empty(gateway, caplog):
    gateway.add_student('Ahmad', 'Mutawassithah', '1A')
    db.session.execute(text('DROP TABLE student_progress'))
    db.session.commit()

    with caplog.at_level(logging.WARNING, logger='app.gateway'):
        snapshot = gateway.load_all()

    assert snapshot.progress == []
    assert [s.name for s in snapshot.students] == ['Ahmad']
    assert any(r.getMessage() == 'partial load degradation' for r in caplog.records)


def test_chat_reply_snapshot_and_sender_only_delete(ctx, gateway):
    first = gateway.post_chat_message('Assalamu’alaikum, ' + 'x' * 60)
    assert first.display_name == 'Admin A'

    colleague = DataGateway(db.session, AuthContext(user_id='user-a2'))
    reply = colleague.post_chat_message('Wa’alaikumussalam', reply_to_id=first.id)
    assert reply.reply_to.name == 'Admin A'
    assert reply.reply_to.content.endswith('...')
    assert reply.display_name == 'staff'

    with pytest.raises(NotMessageOwner):
        colleague.delete_chat_message(first.id)
    gateway.delete_chat_message(first.id)

    messages = colleague.list_chat_messages()
    assert [m.id for m in messages] == [reply.id]
    assert messages[0].reply_to.name == 'Admin A'

    other = DataGateway(db.session, AuthContext(user_id='user-b'))
    assert other.list_chat_messages() == []


def test_attendance_requires_people_and_groups_of_the_tenant(gateway, other_gateway):
    snapshot = _seed_group(gateway)
    group = snapshot.study_groups[0]
    ahmad = snapshot.students[0]
    foreign_group = _seed_group(other_gateway).study_groups[0]

    def entry(**overrides):
        values = {'date': '2024-01-05', 'time_slot': 'Shubuh', 'person_id': ahmad.id,
                  'role': 'Santri', 'status': 'Hadir', 'study_group_id': group.id}
        values.update(overrides)
        return values

    with pytest.raises(ValueError):
        gateway.add_attendance_entries([entry(study_group_id=None)])
    with pytest.raises(NotFoundInTenant):
        gateway.add_attendance_entries([entry(), entry(person_id=999)])
    with pytest.raises(NotFoundInTenant):
        gateway.add_attendance_entries([entry(study_group_id=foreign_group.id)])
    with pytest.raises(NotFoundInTenant):
        gateway.add_attendance_entries([entry(role='Musammi', person_id=foreign_group.teacher.id)])

    assert Attendance.query.count() == 0
    assert len(gateway.add_attendance_entries([entry()]).attendance) == 1


def test_roster_records_can_be_edited(gateway, other_gateway):
    snapshot = _seed_group(gateway)
    ahmad, teacher = snapshot.students[0], snapshot.teachers[0]
    snapshot = gateway.add_class_supervisor('Ustadz Ridwan', 'Mutawassithah', '1A')
    supervisor = snapshot.class_supervisors[0]

    snapshot = gateway.update_student(ahmad.id, guardian_name='Ibu Aminah',
                                      guardian_phone='0815', organization_id='org-b')
    assert (snapshot.students[0].guardian_name, snapshot.students[0].guardian_phone) == \
        ('Ibu Aminah', '0815')
    assert db.session.get(Santri, ahmad.id).organization_id == 'org-a'

    snapshot = gateway.update_teacher(teacher.id, class_label='2B', phone='0816')
    assert snapshot.teachers[0].class_label == '2B'
    snapshot = gateway.update_class_supervisor(supervisor.id, level='Aliyah')
    assert str(snapshot.class_supervisors[0].level) == 'Aliyah'

    with pytest.raises(ValueError):
        gateway.update_student(ahmad.id, level='Ibtidaiyah')
    with pytest.raises(NotFoundInTenant):
        other_gateway.update_teacher(teacher.id, name='Diambil')
    with pytest.raises(NotFoundInTenant):
        other_gateway.delete_student(ahmad.id)

    snapshot = gateway.delete_class_supervisor(supervisor.id)
    assert snapshot.class_supervisors == []


def test_deleting_a_student_keeps_history_in_storage(gateway):
    snapshot = _seed_group(gateway)
    group = snapshot.study_groups[0]
    ahmad, bilal = snapshot.students
    gateway.add_attendance_entries([
        {'date': '2024-01-05', 'time_slot': 'Shubuh', 'person_id': s.id, 'role': 'Santri',
         'status': 'Hadir', 'study_group_id': group.id}
        for s in (ahmad, bilal)
    ])

    snapshot = gateway.delete_student(ahmad.id)

    assert [s.name for s in snapshot.students] == ['Bilal']
    assert [e.name for e in snapshot.attendance] == ['Bilal']
    assert [s.name for s in snapshot.study_groups[0].students] == ['Bilal']
    assert Attendance.query.count() == 2

    snapshot = gateway.delete_study_group(group.id)
    assert Attendance.query.count() == 0


def test_deleting_a_teacher_hides_their_groups(gateway):
    snapshot = _seed_group(gateway)
    snapshot = gateway.delete_teacher(snapshot.teachers[0].id)
    assert snapshot.teachers == [] and snapshot.study_groups == []
    assert Halaqah.query.count() == 1

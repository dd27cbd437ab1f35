from datetime import datetime

from domain import (DEFAULT_RATING_LABELS, AttendanceStatus, ChatMessage, DataSnapshot,
                    EvaluationEntry, EvaluationRatingOption, Marhalah, RatingOptions,
                    ReplySnapshot, StudyGroupType)

from conftest import make_student


def test_vocabulary_renders_as_stored_value():
    assert str(Marhalah.Aliyah) == 'Aliyah'
    assert f"{AttendanceStatus.Terlambat}" == 'Terlambat'
    assert Marhalah('Jamiah') == 'Jamiah'


def test_study_group_type_keeps_custom_labels():
    assert StudyGroupType.parse('Halaqah Pagi') == StudyGroupType('Halaqah Pagi', False)
    custom = StudyGroupType.parse('Tahsin Sore')
    assert custom.is_custom and custom.label == 'Tahsin Sore'
    assert StudyGroupType.parse(None).label == 'Halaqah Utama'


def test_rating_options_fall_back_to_default_scale():
    options = RatingOptions([
        EvaluationRatingOption(id=1, category='Sikap', label='Cukup', score=1),
        EvaluationRatingOption(id=2, category='Sikap', label='Baik', score=3),
    ])
    assert options.labels_for('Sikap') == ['Baik', 'Cukup']
    assert options.labels_for('Bacaan') == list(DEFAULT_RATING_LABELS)
    assert options.is_custom('Sikap') and not options.is_custom('Hafalan')


def _message(content, sender_name=None):
    return ChatMessage(id=4, content=content, sender_email='fulan@pondok.test',
                       organization_id='org-a', sender_name=sender_name,
                       created_at=datetime(2024, 1, 5, 8, 0))


def test_reply_snapshot_truncates_long_content():
    reply = ReplySnapshot.from_message(_message('x' * 60))
    assert reply.content == 'x' * 50 + '...'
    assert reply.name == 'fulan'
    assert ReplySnapshot.from_message(_message('pendek', 'Fulan')).content == 'pendek'


def test_reply_snapshot_round_trips_through_storage_dict():
    reply = ReplySnapshot(id=1, name='Fulan', content='halo')
    assert ReplySnapshot.from_dict(reply.to_dict()) == reply
    assert ReplySnapshot.from_dict(None) is None


def test_snapshot_lookups():
    snapshot = DataSnapshot(
        students=[make_student(1), make_student(2, name='Bilal')],
        evaluations=[EvaluationEntry(id=1, student_id=2, month_key='2024-01')],
    )
    assert snapshot.student(2).name == 'Bilal'
    assert snapshot.student(3) is None
    assert snapshot.evaluation(2, '2024-01').id == 1
    assert snapshot.evaluation(2, '2024-02') is None
    assert snapshot.ratings.labels_for('Hafalan') == list(DEFAULT_RATING_LABELS)

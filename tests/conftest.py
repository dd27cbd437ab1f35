import sys
from pathlib import Path
from typing import Generator

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app import create_app
from domain import AttendanceEntry, AttendanceStatus, Marhalah, Peran, Student, Waktu
from gateway import AuthContext, DataGateway
from models import Organization, Profile, db


@pytest.fixture
def app(monkeypatch: pytest.MonkeyPatch) -> Generator:
    monkeypatch.setenv('REQUEST_LOG_SAMPLE_RATE', '1')
    application = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'INSTITUTION_NAME': 'Ma’had Uji',
    })
    with application.app_context():
        db.session.add_all([
            Organization(id='org-a', name='Ma’had A'),
            Organization(id='org-b', name='Ma’had B'),
            Profile(id='user-a', organization_id='org-a', full_name='Admin A', email='admin@a.test'),
            Profile(id='user-a2', organization_id='org-a', full_name=None, email='staff@a.test'),
            Profile(id='user-b', organization_id='org-b', full_name='Admin B', email='admin@b.test'),
            Profile(id='user-none', organization_id=None, email='lost@nowhere.test'),
        ])
        db.session.commit()
    yield application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture
def gateway(ctx) -> DataGateway:
    return DataGateway(db.session, AuthContext(user_id='user-a'))


@pytest.fixture
def other_gateway(ctx) -> DataGateway:
    return DataGateway(db.session, AuthContext(user_id='user-b'))


def make_entry(entry_id=1, date='2024-01-05', status='Hadir', name='Ahmad', person_id=1,
               role='Santri', level='Mutawassithah', class_label='1A', time_slot='Shubuh',
               group_id=1) -> AttendanceEntry:
    return AttendanceEntry(
        id=entry_id,
        date=date,
        time_slot=Waktu(time_slot),
        person_id=person_id,
        name=name,
        level=Marhalah(level),
        class_label=class_label,
        role=Peran(role),
        status=AttendanceStatus(status),
        study_group_id=group_id,
    )


def make_student(student_id=1, name='Ahmad', level='Mutawassithah', class_label='1A',
                 guardian_name='Bapak Hasan', guardian_phone='081234567890') -> Student:
    return Student(id=student_id, name=name, level=Marhalah(level), class_label=class_label,
                   guardian_name=guardian_name, guardian_phone=guardian_phone)


@pytest.fixture
def entry():
    return make_entry


@pytest.fixture
def student():
    return make_student

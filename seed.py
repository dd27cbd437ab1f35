"""Seed the database with a demo organization.

This script creates one organization with an admin profile, a few students,
teachers and class supervisors, two study groups and a week of attendance so
the dashboard and the reports have something to show. It can be run locally
before the first launch of the app.

Usage:
    python seed.py [user-id]

The optional ``user-id`` becomes the admin profile id; send it as the
``X-User-ID`` header when calling the API.
"""

import sys
import uuid
from datetime import date, timedelta

from flask import Flask

from config import Config
from db_utils import ensure_schema
from models import (db, Attendance, Halaqah, HalaqahSantri, Musammi, Organization, Profile,
                    Santri, StudentProgress, WaliKelas)

DEMO_USER_ID = 'demo-admin'

STUDENTS = [
    ('S-001', 'Ahmad Fauzi', 'Mutawassithah', '1A', 'Bapak Hasan', '081234567801'),
    ('S-002', 'Bilal Ramadhan', 'Mutawassithah', '1A', 'Ibu Aminah', '081234567802'),
    ('S-003', 'Dzaky Hidayat', 'Mutawassithah', '1B', 'Bapak Yusuf', ''),
    ('S-004', 'Fadhil Akbar', 'Aliyah', '10', 'Ibu Khadijah', '081234567804'),
    ('S-005', 'Hanif Maulana', 'Aliyah', '10', 'Bapak Umar', '081234567805'),
]

TEACHERS = [
    ('M-01', 'Ustadz Abdullah', 'Mutawassithah', '1A', '081298765401'),
    ('M-02', 'Ustadz Salman', 'Aliyah', '10', '081298765402'),
]

SUPERVISORS = [
    ('Ustadz Ridwan', 'Mutawassithah', '1A', '081277700001'),
    ('Ustadz Zaid', 'Aliyah', '10', None),
]

# Status rotation for the generated week; index by day offset and student.
STATUS_CYCLE = ['Hadir', 'Hadir', 'Izin', 'Hadir', 'Alpa', 'Hadir', 'Terlambat', 'Sakit']


def create_app() -> Flask:
    """Create a standalone Flask application for seeding.

    The main app is not imported so seeding stays independent of the API
    routes and middleware.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    db.init_app(app)
    return app


def seed_data(user_id: str = DEMO_USER_ID, today: date = None) -> str:
    """Insert the demo organization and return its id."""
    today = today or date.today()
    org_id = str(uuid.uuid4())
    db.session.add(Organization(id=org_id, name='Ma’had Demo'))
    profile = db.session.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id, full_name='Admin Demo', email=f'{user_id}@example.org')
        db.session.add(profile)
    profile.organization_id = org_id

    students = [
        Santri(organization_id=org_id, kode=code, nama=name, marhalah=level, kelas=kelas,
               nama_wali=wali, no_hp_wali=phone or None)
        for code, name, level, kelas, wali, phone in STUDENTS
    ]
    teachers = [
        Musammi(organization_id=org_id, kode=code, nama=name, marhalah=level, kelas=kelas, no_hp=phone)
        for code, name, level, kelas, phone in TEACHERS
    ]
    db.session.add_all(students + teachers)
    db.session.add_all(
        WaliKelas(organization_id=org_id, nama=name, marhalah=level, kelas=kelas, no_hp=phone)
        for name, level, kelas, phone in SUPERVISORS
    )
    db.session.flush()

    groups = []
    for order, teacher in enumerate(teachers, start=1):
        group = Halaqah(organization_id=org_id, nama=f'Halaqah {teacher.nama.split()[-1]}',
                        musammi_id=teacher.id, marhalah=teacher.marhalah, jenis='Halaqah Utama',
                        waktu=['Shubuh', 'Ashar'], no_urut=order)
        db.session.add(group)
        groups.append(group)
    db.session.flush()

    members = {}
    for student in students:
        group = next(g for g in groups if g.marhalah == student.marhalah)
        members.setdefault(group.id, []).append(student)
        db.session.add(HalaqahSantri(organization_id=org_id, halaqah_id=group.id,
                                     santri_id=student.id))

    for offset in range(7):
        day = (today - timedelta(days=offset)).isoformat()
        for group, teacher in zip(groups, teachers):
            db.session.add(Attendance(organization_id=org_id, date=day, waktu='Shubuh',
                                      person_id=teacher.id, peran='Musammi', status='Hadir',
                                      halaqah_id=group.id))
            for index, student in enumerate(members.get(group.id, [])):
                status = STATUS_CYCLE[(offset + index) % len(STATUS_CYCLE)]
                db.session.add(Attendance(organization_id=org_id, date=day, waktu='Shubuh',
                                          person_id=student.id, peran='Santri', status=status,
                                          halaqah_id=group.id))

    month = today.strftime('%Y-%m')
    for index, student in enumerate(students):
        for progress_type, value in (('Hafalan', f'{index + 2} Juz'),
                                     ('Murojaah', str(5 + index)),
                                     ('Ziyadah', str(1 + index))):
            db.session.add(StudentProgress(organization_id=org_id, santri_id=student.id,
                                           month_key=month, progress_type=progress_type,
                                           value=value))
    db.session.commit()
    return org_id


def main() -> None:
    user_id = sys.argv[1] if len(sys.argv) > 1 else DEMO_USER_ID
    app = create_app()
    with app.app_context():
        if not ensure_schema(db):
            sys.exit('Database unavailable.')
        org_id = seed_data(user_id)
    print(f'Seeded organization {org_id} for user {user_id}.')


if __name__ == '__main__':
    main()

"""Database models for the halaqah attendance service.

Every table except :class:`Organization` carries an ``organization_id``
column. The data gateway filters every read by it and stamps it on every
insert; nothing else in the application queries these tables directly.

* :class:`Profile` – maps an authenticated user id to its organization.
* :class:`Santri`, :class:`Musammi`, :class:`WaliKelas` – people.
* :class:`Halaqah` and :class:`HalaqahSantri` – study groups and membership.
* :class:`Attendance` – one row per person, date and time-slot.
* :class:`StudentProgress`, :class:`StudentEvaluation`,
  :class:`EvaluationSetting`, :class:`ClassTarget` – optional feature tables.
* :class:`Chat` – internal chat messages.
"""

from datetime import datetime

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()


class Organization(db.Model):
    __tablename__ = 'organizations'

    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(200), nullable=False)

    def __repr__(self) -> str:
        return f"<Organization {self.name}>"


class Profile(db.Model):
    """Authenticated user. ``organization_id`` may be empty for new accounts."""

    __tablename__ = 'profiles'

    id = db.Column(db.String(64), primary_key=True)
    organization_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=True)
    full_name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(200), nullable=True)
    role = db.Column(db.String(50), nullable=False, default='admin')

    def __repr__(self) -> str:
        return f"<Profile {self.id} org={self.organization_id}>"


class Santri(db.Model):
    __tablename__ = 'santri'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    kode = db.Column(db.String(50), nullable=True)
    nama = db.Column(db.String(200), nullable=False)
    marhalah = db.Column(db.String(20), nullable=False)
    kelas = db.Column(db.String(50), nullable=False)
    nama_wali = db.Column(db.String(200), nullable=True)
    no_hp_wali = db.Column(db.String(30), nullable=True)

    def __repr__(self) -> str:
        return f"<Santri {self.nama}>"


class Musammi(db.Model):
    __tablename__ = 'musammi'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    kode = db.Column(db.String(50), nullable=True)
    nama = db.Column(db.String(200), nullable=False)
    marhalah = db.Column(db.String(20), nullable=False)
    kelas = db.Column(db.String(50), nullable=False)
    no_hp = db.Column(db.String(30), nullable=True)

    def __repr__(self) -> str:
        return f"<Musammi {self.nama}>"


class WaliKelas(db.Model):
    __tablename__ = 'wali_kelas'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    nama = db.Column(db.String(200), nullable=False)
    marhalah = db.Column(db.String(20), nullable=False)
    kelas = db.Column(db.String(50), nullable=False)
    no_hp = db.Column(db.String(30), nullable=True)

    def __repr__(self) -> str:
        return f"<WaliKelas {self.nama} {self.kelas}>"


class Halaqah(db.Model):
    """Study group. ``waktu`` holds the list of time-slots as JSON."""

    __tablename__ = 'halaqah'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    nama = db.Column(db.String(200), nullable=False)
    musammi_id = db.Column(db.Integer, nullable=True)
    marhalah = db.Column(db.String(20), nullable=False)
    jenis = db.Column(db.String(100), nullable=False)
    waktu = db.Column(db.JSON, nullable=False, default=list)
    no_urut = db.Column(db.Integer, nullable=True, default=999)

    def __repr__(self) -> str:
        return f"<Halaqah {self.nama}>"


class HalaqahSantri(db.Model):
    __tablename__ = 'halaqah_santri'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    halaqah_id = db.Column(db.Integer, nullable=False)
    santri_id = db.Column(db.Integer, nullable=False)

    __table_args__ = (db.UniqueConstraint('halaqah_id', 'santri_id', name='uix_halaqah_santri'),)


class Attendance(db.Model):
    """Attendance of one person (santri or musammi) for a date and time-slot.

    ``person_id`` is not a foreign key: deleting a person leaves the history in
    place and the gateway drops the orphaned rows when it loads them.
    """

    __tablename__ = 'attendance'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    date = db.Column(db.String(10), nullable=False)
    waktu = db.Column(db.String(10), nullable=False)
    person_id = db.Column(db.Integer, nullable=False)
    peran = db.Column(db.String(10), nullable=False)
    status = db.Column(db.String(12), nullable=False)
    halaqah_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return (f"<Attendance {self.peran}={self.person_id} date={self.date} "
                f"waktu={self.waktu} status={self.status}>")


class StudentProgress(db.Model):
    __tablename__ = 'student_progress'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    santri_id = db.Column(db.Integer, nullable=False)
    month_key = db.Column(db.String(7), nullable=False)
    progress_type = db.Column(db.String(10), nullable=False)
    value = db.Column(db.String(100), nullable=False)

    __table_args__ = (db.UniqueConstraint('santri_id', 'month_key', 'progress_type',
                                          name='uix_progress_month_type'),)


class StudentEvaluation(db.Model):
    __tablename__ = 'student_evaluation'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    santri_id = db.Column(db.Integer, nullable=False)
    month_key = db.Column(db.String(7), nullable=False)
    kualitas_hafalan = db.Column(db.String(100), nullable=True)
    kualitas_bacaan = db.Column(db.String(100), nullable=True)
    sikap_prilaku = db.Column(db.String(100), nullable=True)
    catatan_musammi = db.Column(db.Text, nullable=True)
    catatan_muroqib = db.Column(db.Text, nullable=True)
    catatan_lajnah = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint('santri_id', 'month_key', name='uix_evaluation_month'),)


class EvaluationSetting(db.Model):
    __tablename__ = 'evaluation_settings'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    category = db.Column(db.String(20), nullable=False)
    label = db.Column(db.String(100), nullable=False)
    score = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class ClassTarget(db.Model):
    __tablename__ = 'class_targets'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    marhalah = db.Column(db.String(20), nullable=False)
    kelas = db.Column(db.String(50), nullable=False)
    target_ziyadah_start = db.Column(db.Float, nullable=False, default=0)
    target_ziyadah_end = db.Column(db.Float, nullable=False, default=0)
    target_murojaah_start = db.Column(db.Float, nullable=False, default=0)
    target_murojaah_end = db.Column(db.Float, nullable=False, default=0)
    target_hafalan_start = db.Column(db.Float, nullable=False, default=0)
    target_hafalan_end = db.Column(db.Float, nullable=False, default=0)

    __table_args__ = (db.UniqueConstraint('organization_id', 'marhalah', 'kelas',
                                          name='uix_class_target'),)


class Chat(db.Model):
    """Chat message. ``reply_to`` is a JSON snapshot, not a foreign key."""

    __tablename__ = 'chat'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    sender_email = db.Column(db.String(200), nullable=False)
    sender_name = db.Column(db.String(200), nullable=True)
    reply_to = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

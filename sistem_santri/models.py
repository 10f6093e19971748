# ======================== DATABASE MODELS ========================
# Berkas ini mendefinisikan struktur tabel (models) untuk database menggunakan SQLAlchemy.

from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

# Inisialisasi objek SQLAlchemy
db = SQLAlchemy()

PERAN_STAF = ("admin", "ustadz", "super_admin")
STATUS_SANTRI = ("Mutqin", "Mutawassith", "Dhaif")
ASPEK_KRITERIA = ("adab", "discipline")
ALASAN_ABSEN = ("sakit", "izin", "tanpa_keterangan")
KATEGORI_MATERI = ("Surah", "Juz", "Kitab")
# Nilai kolom `students.halaqah` untuk santri yang belum punya halaqah
HALAQAH_KOSONG = "Belum ditentukan"


# --- Akun staf (admin / ustadz / super admin) ---
class Profile(db.Model):
    """
    Akun staf lembaga. Kolom `role` menentukan dashboard yang boleh dibuka.
    """
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    full_name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="ustadz")
    password_hash = db.Column(db.String(256), nullable=False)
    avatar_url = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    assignments = db.relationship(
        "AdminGuruAssignment", backref="admin", cascade="all, delete-orphan", lazy=True
    )

    @property
    def teacher_id(self):
        # Ustadz dan super admin dicocokkan ke data guru lewat email
        if self.role not in ("ustadz", "super_admin") or not self.email:
            return None
        guru = Teacher.query.filter(db.func.lower(Teacher.email) == self.email.lower()).first()
        return guru.id if guru else None

    @property
    def assigned_guru_ids(self):
        if self.role != "admin":
            return []
        return [a.guru_id for a in self.assignments]

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "avatar_url": self.avatar_url,
            "teacher_id": self.teacher_id,
            "assigned_guru_ids": self.assigned_guru_ids,
        }


# --- Data guru / ustadz pengampu halaqah ---
class Teacher(db.Model):
    __tablename__ = "teachers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120))
    phone = db.Column(db.String(20))  # Nomor HP untuk pengingat WhatsApp
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
        }


# --- Penugasan admin biasa ke guru tertentu ---
class AdminGuruAssignment(db.Model):
    """
    Admin biasa hanya melihat santri dari halaqah guru yang ditugaskan kepadanya.
    """
    __tablename__ = "admin_guru_assignments"
    __table_args__ = (db.UniqueConstraint("admin_id", "guru_id"),)

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    guru_id = db.Column(db.Integer, db.ForeignKey("teachers.id"), nullable=False)


# --- Halaqah (kelompok belajar) ---
class Halaqah(db.Model):
    __tablename__ = "halaqah"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey("teachers.id"))
    status = db.Column(db.String(20), default="active", nullable=False)  # active / inactive

    teacher = db.relationship("Teacher", backref="halaqah_list", lazy=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "teacher_id": self.teacher_id,
            "teacher_name": self.teacher.name if self.teacher else None,
            "status": self.status,
        }


# --- Data Santri ---
class Student(db.Model):
    """
    Model ini merepresentasikan tabel 'students'.
    `status` dan `average_score` diisi ulang oleh server setiap ada nilai baru.
    """
    __tablename__ = "students"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    halaqah = db.Column(db.String(100), nullable=False)  # Nama halaqah
    status = db.Column(db.String(20), default="Dhaif", nullable=False)
    average_score = db.Column(db.Float, default=0, nullable=False)
    avatar_url = db.Column(db.String(200))
    wali_name = db.Column(db.String(100))
    wali_phone = db.Column(db.String(20))
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "halaqah": self.halaqah,
            "status": self.status,
            "average_score": self.average_score or 0,
            "wali_name": self.wali_name,
            "wali_phone": self.wali_phone,
        }


# --- Materi hafalan / kurikulum ---
class CurriculumItem(db.Model):
    __tablename__ = "curriculum_items"

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(20), nullable=False)  # Surah / Juz / Kitab
    name = db.Column(db.String(100), nullable=False)
    surah_number = db.Column(db.Integer)
    ayat_start = db.Column(db.Integer)
    ayat_end = db.Column(db.Integer)
    page_start = db.Column(db.Integer)
    page_end = db.Column(db.Integer)
    total_pages = db.Column(db.Integer)

    def to_dict(self):
        return {
            "id": self.id,
            "category": self.category,
            "name": self.name,
            "surah_number": self.surah_number,
            "ayat_start": self.ayat_start,
            "ayat_end": self.ayat_end,
            "page_start": self.page_start,
            "page_end": self.page_end,
            "total_pages": self.total_pages,
        }


# --- Kriteria penilaian harian ---
class CriteriaRef(db.Model):
    """
    Kriteria adab / kedisiplinan. Urutan diatur lewat `sort_order` per aspek,
    kriteria tidak dihapus melainkan dinonaktifkan lewat `is_active`.
    """
    __tablename__ = "criteria_ref"

    id = db.Column(db.Integer, primary_key=True)
    aspect = db.Column(db.String(20), nullable=False)  # adab / discipline
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=1)

    def to_dict(self):
        return {
            "id": self.id,
            "aspect": self.aspect,
            "title": self.title,
            "description": self.description,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }


# --- Sesi harian ---
class SessionRef(db.Model):
    __tablename__ = "sessions_ref"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    time_start = db.Column(db.Time)
    time_end = db.Column(db.Time)
    sort_order = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "time_start": self.time_start.strftime("%H:%M") if self.time_start else None,
            "time_end": self.time_end.strftime("%H:%M") if self.time_end else None,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
        }


# --- Penilaian harian per santri / sesi / kriteria ---
class DailyAssessment(db.Model):
    """
    Satu baris untuk setiap kombinasi (tanggal, santri, sesi, kriteria).
    `absence_reason` hanya terisi untuk kriteria kehadiran yang tidak dipenuhi.
    """
    __tablename__ = "daily_assessments"
    __table_args__ = (
        db.UniqueConstraint("date", "student_id", "session_id", "criteria_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions_ref.id"), nullable=False)
    criteria_id = db.Column(db.Integer, db.ForeignKey("criteria_ref.id"), nullable=False)
    is_compliant = db.Column(db.Boolean, default=True, nullable=False)
    absence_reason = db.Column(db.String(20))  # sakit / izin / tanpa_keterangan
    created_by = db.Column(db.Integer, db.ForeignKey("profiles.id"))

    student = db.relationship("Student", lazy=True)
    session = db.relationship("SessionRef", lazy=True)
    criteria = db.relationship("CriteriaRef", lazy=True)

    def to_dict(self):
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "student_id": self.student_id,
            "session_id": self.session_id,
            "criteria_id": self.criteria_id,
            "is_compliant": self.is_compliant,
            "absence_reason": self.absence_reason,
        }


# --- Nilai setoran harian ---
class DailyScore(db.Model):
    __tablename__ = "daily_scores"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)
    ustadz_id = db.Column(db.Integer, db.ForeignKey("profiles.id"))
    curriculum_id = db.Column(db.Integer, db.ForeignKey("curriculum_items.id"))
    adab = db.Column(db.Integer)
    disiplin = db.Column(db.Integer)
    setoran = db.Column(db.Integer)
    note = db.Column(db.Text)
    hafalan_type = db.Column(db.String(20))  # baru / murojaah
    created_at = db.Column(db.DateTime, default=datetime.now)

    curriculum = db.relationship("CurriculumItem", lazy=True)

    def to_dict(self):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "ustadz_id": self.ustadz_id,
            "curriculum_id": self.curriculum_id,
            "curriculum_name": self.curriculum.name if self.curriculum else None,
            "adab": self.adab,
            "disiplin": self.disiplin,
            "setoran": self.setoran,
            "note": self.note,
            "hafalan_type": self.hafalan_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# --- Akun wali santri (login dengan nomor HP) ---
class WaliSantri(db.Model):
    """
    Identitas wali terpisah dari akun staf. Nomor HP selalu disimpan dalam
    format lokal `08...`.
    """
    __tablename__ = "wali_santri"

    id = db.Column(db.Integer, primary_key=True)
    phone = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    children = db.relationship(
        "WaliSantriChildren", backref="wali", cascade="all, delete-orphan", lazy=True
    )

    def to_dict(self):
        return {
            "id": self.id,
            "phone": self.phone,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "children_count": len(self.children),
        }


# --- Relasi wali <-> santri ---
class WaliSantriChildren(db.Model):
    __tablename__ = "wali_santri_children"
    __table_args__ = (db.UniqueConstraint("wali_id", "student_id"),)

    id = db.Column(db.Integer, primary_key=True)
    wali_id = db.Column(db.Integer, db.ForeignKey("wali_santri.id"), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)


# --- Pengumuman ---
class Announcement(db.Model):
    __tablename__ = "announcements"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    target = db.Column(db.String(10), default="semua", nullable=False)  # semua / wali / guru
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("profiles.id"))
    created_at = db.Column(db.DateTime, default=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "target": self.target,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

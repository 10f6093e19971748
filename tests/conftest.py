# tests/conftest.py
"""
Fixture bersama: database SQLite in-memory yang dibuat ulang untuk setiap test,
data awal (staf, guru, halaqah, santri, kriteria, sesi, wali), dan helper login.
"""
import os

# Harus diatur sebelum aplikasi di-import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["FONNTE_TOKEN"] = ""

from datetime import time

import pytest
from werkzeug.security import generate_password_hash

from sistem_santri.app import app as flask_app
from sistem_santri.layanan import buat_wali
from sistem_santri.models import (
    AdminGuruAssignment,
    CriteriaRef,
    CurriculumItem,
    Halaqah,
    Profile,
    SessionRef,
    Student,
    Teacher,
    WaliSantriChildren,
    db,
)

PASSWORD_STAF = "rahasia123"
NOMOR_WALI = "081234567890"
PASSWORD_WALI = "567890"


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True, FONNTE_TOKEN="")
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _profil(email, nama, role):
    profile = Profile(
        email=email,
        full_name=nama,
        role=role,
        password_hash=generate_password_hash(PASSWORD_STAF),
    )
    db.session.add(profile)
    return profile


@pytest.fixture
def data(app):
    """Data awal yang dipakai hampir semua test view."""
    super_admin = _profil("super@pesantren.id", "Super Admin", "super_admin")
    admin = _profil("admin@pesantren.id", "Admin Biasa", "admin")
    ustadz = _profil("ahmad@pesantren.id", "Ustadz Ahmad", "ustadz")

    guru_ahmad = Teacher(name="Ustadz Ahmad", email="ahmad@pesantren.id", phone="081111111111")
    guru_umar = Teacher(name="Ustadz Umar", email="umar@pesantren.id", phone="082222222222")
    db.session.add_all([guru_ahmad, guru_umar])
    db.session.flush()

    db.session.add_all([
        Halaqah(name="Al-Fatih", teacher_id=guru_ahmad.id, status="active"),
        Halaqah(name="Al-Ikhlas", teacher_id=guru_umar.id, status="active"),
    ])

    santri_a = Student(name="Abdullah", halaqah="Al-Fatih", status="Mutqin", average_score=92)
    santri_b = Student(name="Bilal", halaqah="Al-Fatih", status="Dhaif", average_score=60)
    santri_c = Student(name="Hasan", halaqah="Al-Ikhlas", status="Mutawassith", average_score=80)
    db.session.add_all([santri_a, santri_b, santri_c])

    hadir = CriteriaRef(aspect="discipline", title="Kehadiran", sort_order=1)
    rapi = CriteriaRef(aspect="discipline", title="Kerapian", sort_order=2)
    sopan = CriteriaRef(aspect="adab", title="Sopan santun", sort_order=1)
    db.session.add_all([hadir, rapi, sopan])

    subuh = SessionRef(name="Subuh", time_start=time(4, 30), time_end=time(6, 0), sort_order=1)
    maghrib = SessionRef(name="Maghrib", time_start=time(18, 0), time_end=time(19, 0), sort_order=2)
    db.session.add_all([subuh, maghrib])

    materi = CurriculumItem(category="Surah", name="An-Naba", surah_number=78)
    db.session.add(materi)
    db.session.commit()

    db.session.add(AdminGuruAssignment(admin_id=admin.id, guru_id=guru_umar.id))
    db.session.commit()

    wali = buat_wali(NOMOR_WALI, "Bapak Abdullah")
    db.session.add(WaliSantriChildren(wali_id=wali.id, student_id=santri_a.id))
    db.session.commit()

    return {
        "super_admin": super_admin,
        "admin": admin,
        "ustadz": ustadz,
        "guru_ahmad": guru_ahmad,
        "guru_umar": guru_umar,
        "santri_a": santri_a,
        "santri_b": santri_b,
        "santri_c": santri_c,
        "hadir": hadir,
        "rapi": rapi,
        "sopan": sopan,
        "subuh": subuh,
        "maghrib": maghrib,
        "materi": materi,
        "wali": wali,
    }


def login_staf(client, email, password=PASSWORD_STAF):
    return client.post("/login", data={"email": email, "password": password})


def login_wali(client, phone=NOMOR_WALI, password=PASSWORD_WALI):
    return client.post("/wali/login", data={"phone": phone, "password": password})

# ======================== LAYANAN DATA ========================
# Operasi yang menyentuh lebih dari satu baris atau tabel. Fungsi bernama
# login_wali / get_wali_* / change_wali_password dipanggil oleh dashboard
# wali dengan kontrak yang sama seperti prosedur di database.

from datetime import date, timedelta

from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from sistem_santri import metrik
from sistem_santri.app_logger import get_logger
from sistem_santri.helpers import format_jam, normalisasi_nomor_hp, password_default
from sistem_santri.models import (
    CriteriaRef,
    DailyAssessment,
    DailyScore,
    Halaqah,
    Profile,
    SessionRef,
    Student,
    Teacher,
    WaliSantri,
    WaliSantriChildren,
    db,
)

logger = get_logger(__name__)


# ======================== AKUN STAF ========================
def cari_profil(email):
    if not email:
        return None
    return Profile.query.filter(db.func.lower(Profile.email) == email.strip().lower()).first()


def login_staf(email, password):
    if not email or not password:
        return None
    profile = cari_profil(email)
    if profile and check_password_hash(profile.password_hash, password):
        return profile
    return None


def buat_profil(email, full_name, role, password):
    profile = Profile(
        email=email.strip().lower(),
        full_name=full_name.strip(),
        role=role,
        password_hash=generate_password_hash(password),
    )
    db.session.add(profile)
    db.session.commit()
    return profile


# ======================== AKUN WALI ========================
def buat_wali(phone, name):
    nomor = normalisasi_nomor_hp(phone)
    wali = WaliSantri(
        phone=nomor,
        name=name.strip(),
        password_hash=generate_password_hash(password_default(nomor)),
        is_active=True,
    )
    db.session.add(wali)
    db.session.commit()
    return wali


def reset_password_wali(wali):
    wali.password_hash = generate_password_hash(password_default(wali.phone))
    db.session.commit()


def login_wali(phone, password):
    """Mengembalikan akun wali aktif yang cocok, atau None."""
    nomor = normalisasi_nomor_hp(phone)
    if not nomor or not password:
        return None
    wali = WaliSantri.query.filter_by(phone=nomor, is_active=True).first()
    if wali and check_password_hash(wali.password_hash, password):
        return wali
    return None


def change_wali_password(wali_id, old_password, new_password):
    wali = db.session.get(WaliSantri, wali_id)
    if wali is None or not check_password_hash(wali.password_hash, old_password):
        return False
    wali.password_hash = generate_password_hash(new_password)
    db.session.commit()
    return True


def anak_wali(wali_id):
    return (
        Student.query.join(WaliSantriChildren, WaliSantriChildren.student_id == Student.id)
        .filter(WaliSantriChildren.wali_id == wali_id)
        .order_by(Student.name.asc())
        .all()
    )


def get_wali_children_by_phone(phone):
    wali = WaliSantri.query.filter_by(phone=normalisasi_nomor_hp(phone)).first()
    if wali is None:
        return []
    return [
        {
            "id": s.id,
            "name": s.name,
            "halaqah": s.halaqah,
            "status": s.status,
            "average_score": s.average_score or 0,
        }
        for s in anak_wali(wali.id)
    ]


def get_wali_dashboard_summary(phone, hari_ini=None):
    """
    Ringkasan per anak: status, rata-rata nilai, status kehadiran hari ini,
    dan persentase hadir 30 hari terakhir.
    """
    hari_ini = hari_ini or date.today()
    anak = get_wali_children_by_phone(phone)
    kriteria = kriteria_kehadiran()

    for child in anak:
        child["kehadiran_hari_ini"] = None
        child["persen_hadir_30_hari"] = 0
        if kriteria is None:
            continue

        catatan = DailyAssessment.query.filter(
            DailyAssessment.student_id == child["id"],
            DailyAssessment.criteria_id == kriteria.id,
            DailyAssessment.date > hari_ini - timedelta(days=30),
            DailyAssessment.date <= hari_ini,
        ).all()

        per_hari = {}
        for baris in catatan:
            per_hari.setdefault(baris.date, []).append(baris)

        child["kehadiran_hari_ini"] = metrik.status_hari(per_hari.get(hari_ini, []))
        hadir = sum(1 for daftar in per_hari.values() if metrik.status_hari(daftar) == metrik.HADIR)
        child["persen_hadir_30_hari"] = metrik.persentase(hadir, len(per_hari))

    return anak


def simpan_anak_wali(wali_id, student_ids):
    """
    Menyamakan daftar anak seorang wali dengan `student_ids`. Relasi yang tidak
    dipilih lagi dihapus dan yang baru ditambahkan dalam satu transaksi.
    """
    diinginkan = {int(s) for s in student_ids}
    sekarang = {
        r.student_id: r for r in WaliSantriChildren.query.filter_by(wali_id=wali_id).all()
    }

    try:
        for student_id, relasi in sekarang.items():
            if student_id not in diinginkan:
                db.session.delete(relasi)
        for student_id in diinginkan - set(sekarang):
            db.session.add(WaliSantriChildren(wali_id=wali_id, student_id=student_id))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Gagal menyimpan anak untuk wali %s", wali_id)
        raise

    return sorted(diinginkan)


# ======================== DATA REFERENSI ========================
def urutan_berikutnya(model, **filter_kolom):
    """
    `sort_order` untuk baris baru: urutan terbesar yang ada ditambah satu.
    Selama penomoran tidak berlubang hasilnya sama dengan jumlah baris + 1.
    """
    query = db.session.query(db.func.max(model.sort_order))
    for kolom, nilai in filter_kolom.items():
        query = query.filter(getattr(model, kolom) == nilai)
    return (query.scalar() or 0) + 1


def ubah_status_aktif(model, id):
    """Membalik `is_active` tepat satu baris. Mengembalikan baris atau None."""
    baris = db.session.get(model, id)
    if baris is None:
        return None
    baris.is_active = not baris.is_active
    db.session.commit()
    return baris


ASPEK_KEHADIRAN = "discipline"


def adalah_kriteria_kehadiran(kriteria):
    return kriteria.aspect == ASPEK_KEHADIRAN and "kehadiran" in kriteria.title.lower()


def kriteria_kehadiran():
    """
    Kriteria kedisiplinan yang judulnya memuat "kehadiran". Kriteria aktif
    didahulukan, yang nonaktif tetap dipakai agar riwayat lama terbaca.
    """
    return (
        CriteriaRef.query.filter(
            CriteriaRef.aspect == ASPEK_KEHADIRAN,
            CriteriaRef.title.ilike("%kehadiran%"),
        )
        .order_by(CriteriaRef.is_active.desc(), CriteriaRef.sort_order.asc())
        .first()
    )


# ======================== CAKUPAN SANTRI ========================
def halaqah_guru(teacher_id):
    if teacher_id is None:
        return []
    return Halaqah.query.filter_by(teacher_id=teacher_id, status="active").order_by(Halaqah.name).all()


def nama_halaqah_terlihat(profile):
    """
    Nama halaqah yang boleh dilihat staf. None berarti tanpa batasan.
    """
    if profile.role == "super_admin":
        return None
    if profile.role == "admin":
        guru_ids = profile.assigned_guru_ids
        if not guru_ids:
            return []
        return [h.name for h in Halaqah.query.filter(Halaqah.teacher_id.in_(guru_ids)).all()]
    return [h.name for h in halaqah_guru(profile.teacher_id)]


def santri_terlihat(profile, halaqah_saja=False):
    query = Student.query
    nama = nama_halaqah_terlihat(profile)
    if halaqah_saja and profile.role == "super_admin":
        # Super admin di dashboard guru hanya melihat halaqah miliknya sendiri
        nama = [h.name for h in halaqah_guru(profile.teacher_id)]
    if nama is not None:
        if not nama:
            return []
        query = query.filter(Student.halaqah.in_(nama))
    return query.order_by(Student.name.asc()).all()


# ======================== PENILAIAN HARIAN ========================
def simpan_penilaian_harian(tanggal, session_id, santri, kriteria, kepatuhan, alasan, created_by=None):
    """
    Menyimpan (insert atau update) penilaian satu sesi untuk semua santri dan
    kriteria. `kepatuhan` memetakan (student_id, criteria_id) ke bool, nilai
    yang tidak ada dianggap patuh. `alasan` memetakan student_id ke alasan absen.
    """
    ada = {
        (a.student_id, a.criteria_id): a
        for a in DailyAssessment.query.filter_by(date=tanggal, session_id=session_id).all()
    }

    jumlah = 0
    try:
        for s in santri:
            for k in kriteria:
                patuh = kepatuhan.get((s.id, k.id), True)
                alasan_absen = None
                if adalah_kriteria_kehadiran(k) and not patuh:
                    alasan_absen = alasan.get(s.id) or "tanpa_keterangan"

                baris = ada.get((s.id, k.id))
                if baris is None:
                    baris = DailyAssessment(
                        date=tanggal,
                        student_id=s.id,
                        session_id=session_id,
                        criteria_id=k.id,
                    )
                    db.session.add(baris)
                baris.is_compliant = patuh
                baris.absence_reason = alasan_absen
                baris.created_by = created_by
                jumlah += 1
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Gagal menyimpan penilaian %s sesi %s", tanggal, session_id)
        raise

    return jumlah


# ======================== NILAI SETORAN ========================
def perbarui_statistik_santri(student):
    """Menghitung ulang rata-rata dan status santri dari semua nilainya."""
    skor = DailyScore.query.filter_by(student_id=student.id).all()
    rata = metrik.rata_rata([metrik.nilai_harian(s) for s in skor])
    student.average_score = round(rata, 2)
    student.status = metrik.hitung_status(rata)
    return student


def simpan_nilai_harian(student, ustadz_id, setoran, adab=None, disiplin=None,
                        curriculum_id=None, note=None, hafalan_type=None):
    skor = DailyScore(
        student_id=student.id,
        ustadz_id=ustadz_id,
        curriculum_id=curriculum_id,
        adab=adab,
        disiplin=disiplin,
        setoran=setoran,
        note=note,
        hafalan_type=hafalan_type,
    )
    try:
        db.session.add(skor)
        db.session.flush()
        perbarui_statistik_santri(student)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Gagal menyimpan nilai santri %s", student.id)
        raise
    return skor


# ======================== LAPORAN BELUM MASUK ========================
def laporan_belum_masuk(tanggal, profile):
    """
    Pasangan (guru, sesi) yang halaqahnya belum punya penilaian sama sekali
    pada tanggal tersebut.
    """
    sesi_aktif = SessionRef.query.filter_by(is_active=True).order_by(SessionRef.sort_order).all()

    query = Halaqah.query.filter(Halaqah.status == "active", Halaqah.teacher_id.isnot(None))
    if profile.role == "admin":
        guru_ids = profile.assigned_guru_ids
        if not guru_ids:
            return []
        query = query.filter(Halaqah.teacher_id.in_(guru_ids))
    halaqah_list = query.order_by(Halaqah.name).all()

    belum = []
    for sesi in sesi_aktif:
        sudah = {
            nama for (nama,) in db.session.query(Student.halaqah)
            .join(DailyAssessment, DailyAssessment.student_id == Student.id)
            .filter(DailyAssessment.date == tanggal, DailyAssessment.session_id == sesi.id)
            .distinct()
            .all()
        }
        for h in halaqah_list:
            if h.name in sudah or h.teacher is None:
                continue
            belum.append({
                "teacher_id": h.teacher.id,
                "teacher_name": h.teacher.name,
                "phone": h.teacher.phone or "",
                "halaqah": h.name,
                "session_id": sesi.id,
                "session_name": sesi.name,
                "session_time": "%s - %s" % (format_jam(sesi.time_start), format_jam(sesi.time_end)),
            })
    return belum


def jumlah_guru(profile):
    if profile.role == "super_admin":
        return Teacher.query.count()
    return len(profile.assigned_guru_ids)

# ======================== DASHBOARD USTADZ ========================
from datetime import date

from flask import Blueprint, g, request

from sistem_santri import layanan, metrik
from sistem_santri.helpers import ambil_input, ambil_int, parse_tanggal, rentang_tanggal, respon
from sistem_santri.laporan import laporan_guru
from sistem_santri.models import (
    ALASAN_ABSEN,
    HALAQAH_KOSONG,
    Announcement,
    CriteriaRef,
    CurriculumItem,
    DailyAssessment,
    DailyScore,
    SessionRef,
    Student,
    db,
)

guru_bp = Blueprint("guru", __name__, url_prefix="/dashboard/guru")


def _santri_guru():
    return layanan.santri_terlihat(g.profile, halaqah_saja=True)


@guru_bp.route("")
def beranda():
    """Ringkasan halaqah ustadz: jumlah santri, rata-rata, sebaran status, pengumuman."""
    santri = _santri_guru()
    pengumuman = (
        Announcement.query.filter(Announcement.is_active.is_(True), Announcement.target.in_(["semua", "guru"]))
        .order_by(Announcement.created_at.desc())
        .limit(5)
        .all()
    )
    return respon("success", "Dashboard ustadz", data={
        "profil": g.profile.to_dict(),
        "halaqah": [h.to_dict() for h in layanan.halaqah_guru(g.profile.teacher_id)],
        "total_santri": len(santri),
        "rata_rata": round(metrik.rata_rata([s.average_score for s in santri]), 1),
        "status": metrik.hitung_status_santri(santri),
        "per_halaqah": metrik.ringkasan_halaqah(santri),
        "pengumuman": [a.to_dict() for a in pengumuman],
    })


@guru_bp.route("/santri")
def santri():
    cari = (request.args.get("cari") or "").lower()
    data = [s.to_dict() for s in _santri_guru() if cari in s.name.lower()]
    return respon("success", "Daftar santri", data=data)


# ======================== KELOLA HALAQAH USTADZ ========================
def _nama_halaqah_guru():
    return [h.name for h in layanan.halaqah_guru(g.profile.teacher_id)]


def _rentang_dari_request(bawaan="30days"):
    """(mulai, selesai) dari ?mulai=&selesai= atau pilihan ?rentang=."""
    mulai = parse_tanggal(request.args.get("mulai"))
    selesai = parse_tanggal(request.args.get("selesai"))
    if mulai and selesai:
        if mulai > selesai:
            raise ValueError("mulai setelah selesai")
        return mulai, selesai
    return rentang_tanggal(request.args.get("rentang", bawaan))


@guru_bp.route("/halaqah")
def halaqah():
    """
    Santri di satu halaqah milik ustadz (?nama=, bawaan halaqah pertama)
    beserta persentase kepatuhan adab dan kedisiplinan, ditambah daftar
    santri yang belum punya halaqah.
    """
    daftar_halaqah = _nama_halaqah_guru()
    terpilih = request.args.get("nama") or (daftar_halaqah[0] if daftar_halaqah else None)
    if terpilih is not None and terpilih not in daftar_halaqah:
        return respon("danger", "Halaqah tidak ditemukan", code=404)
    try:
        mulai, selesai = _rentang_dari_request()
    except ValueError:
        return respon("danger", "Rentang tanggal tidak valid", code=400)

    anggota = []
    if terpilih is not None:
        anggota = Student.query.filter_by(halaqah=terpilih).order_by(Student.name).all()

    catatan = []
    if anggota:
        catatan = DailyAssessment.query.filter(
            DailyAssessment.student_id.in_([s.id for s in anggota]),
            DailyAssessment.date >= mulai,
            DailyAssessment.date <= selesai,
        ).all()
    aspek_kriteria = dict(db.session.query(CriteriaRef.id, CriteriaRef.aspect).all())

    santri_halaqah = []
    for s in anggota:
        persen = metrik.persen_patuh_per_aspek([c for c in catatan if c.student_id == s.id], aspek_kriteria)
        baris = s.to_dict()
        baris["persen_adab"] = persen["adab"]
        baris["persen_disiplin"] = persen["discipline"]
        santri_halaqah.append(baris)

    tanpa_halaqah = Student.query.filter(
        db.or_(Student.halaqah == HALAQAH_KOSONG, Student.halaqah == "")
    ).order_by(Student.name).all()

    return respon("success", "Halaqah ustadz", data={
        "halaqah": daftar_halaqah,
        "terpilih": terpilih,
        "santri": santri_halaqah,
        "santri_tanpa_halaqah": [s.to_dict() for s in tanpa_halaqah],
    })


@guru_bp.route("/halaqah/tambah", methods=["POST"])
def tambah_ke_halaqah():
    """Memasukkan santri yang belum punya halaqah ke halaqah milik ustadz."""
    data = ambil_input()
    nama = data.get("halaqah")
    if nama not in _nama_halaqah_guru():
        return respon("danger", "Halaqah tidak ditemukan", code=404)
    try:
        santri_pilih = db.session.get(Student, ambil_int(data, "student_id") or 0)
    except ValueError:
        return respon("danger", "Data santri tidak valid", code=400)
    if santri_pilih is None:
        return respon("danger", "Santri tidak ditemukan", code=404)
    if santri_pilih.halaqah not in (HALAQAH_KOSONG, ""):
        return respon("danger", "Santri sudah terdaftar di halaqah lain", code=400)

    santri_pilih.halaqah = nama
    db.session.commit()
    return respon("success", f"{santri_pilih.name} berhasil ditambahkan ke halaqah {nama}",
                  data=santri_pilih.to_dict())


@guru_bp.route("/halaqah/keluarkan", methods=["POST"])
def keluarkan_dari_halaqah():
    """Mengeluarkan santri dari halaqah ustadz; halaqahnya kembali 'Belum ditentukan'."""
    try:
        student_id = ambil_int(ambil_input(), "student_id")
    except ValueError:
        return respon("danger", "Data santri tidak valid", code=400)
    santri_pilih = next((s for s in _santri_guru() if s.id == student_id), None)
    if santri_pilih is None:
        return respon("danger", "Santri tidak ditemukan di halaqah Anda", code=404)

    santri_pilih.halaqah = HALAQAH_KOSONG
    db.session.commit()
    return respon("success", f"{santri_pilih.name} dikeluarkan dari halaqah", data=santri_pilih.to_dict())


# ======================== LAPORAN USTADZ ========================
@guru_bp.route("/laporan")
def laporan():
    """Rekap setoran dan penilaian santri halaqah dalam rentang tanggal."""
    try:
        mulai, selesai = _rentang_dari_request()
    except ValueError:
        return respon("danger", "Rentang tanggal tidak valid", code=400)

    return respon("success", "Laporan ustadz", data={
        "mulai": mulai.isoformat(),
        "selesai": selesai.isoformat(),
        "santri": laporan_guru(_santri_guru(), mulai, selesai),
    })


# ======================== NILAI SETORAN ========================
@guru_bp.route("/nilai", methods=["GET", "POST"])
def nilai():
    """
    - GET: santri halaqah beserta nilai terakhir dan daftar materi.
    - POST: menyimpan nilai setoran. Nilai bisa dikirim langsung (`setoran`)
      atau dihitung dari jumlah kesalahan (`error1` .. `error4`).
    """
    if request.method == "POST":
        data = ambil_input()
        try:
            student_id = ambil_int(data, "student_id")
            curriculum_id = ambil_int(data, "curriculum_id")
            adab = ambil_int(data, "adab")
            disiplin = ambil_int(data, "disiplin")
            setoran = ambil_int(data, "setoran")
            kesalahan = [ambil_int(data, f"error{i}") or 0 for i in range(1, 5)]
        except ValueError:
            return respon("danger", "Gagal: nilai harus berupa angka", code=400)

        santri_pilih = next((s for s in _santri_guru() if s.id == student_id), None)
        if santri_pilih is None:
            return respon("danger", "Gagal: santri tidak ditemukan di halaqah Anda", code=404)
        if curriculum_id is None or db.session.get(CurriculumItem, curriculum_id) is None:
            return respon("danger", "Gagal: Mohon pilih materi hafalan!", code=400)
        for n in (adab, disiplin, setoran):
            if n is not None and not 0 <= n <= 100:
                return respon("danger", "Gagal: nilai harus di antara 0 dan 100", code=400)

        if setoran is None:
            setoran = metrik.nilai_setoran(kesalahan)
        jenis = data.get("hafalan_type", "baru")
        if jenis not in ("baru", "murojaah"):
            return respon("danger", "Gagal: jenis hafalan tidak valid", code=400)

        skor = layanan.simpan_nilai_harian(
            santri_pilih,
            g.profile.id,
            setoran,
            adab=adab,
            disiplin=disiplin,
            curriculum_id=curriculum_id,
            note=(data.get("note") or "").strip() or None,
            hafalan_type=jenis,
        )
        label = "Hafalan Baru" if jenis == "baru" else "Murojaah"
        return respon("success", f"Nilai setoran ({label}) berhasil disimpan!", data={
            "nilai": skor.to_dict(),
            "santri": santri_pilih.to_dict(),
        }, code=201)

    hasil = []
    for s in _santri_guru():
        terakhir = (
            DailyScore.query.filter_by(student_id=s.id)
            .order_by(DailyScore.created_at.desc(), DailyScore.id.desc())
            .first()
        )
        baris = s.to_dict()
        baris["nilai_terakhir"] = terakhir.to_dict() if terakhir else None
        hasil.append(baris)

    materi = CurriculumItem.query.order_by(
        CurriculumItem.category, CurriculumItem.surah_number, CurriculumItem.name
    ).all()
    return respon("success", "Nilai santri", data={
        "santri": hasil,
        "materi": [m.to_dict() for m in materi],
    })


@guru_bp.route("/nilai/<int:student_id>")
def riwayat_nilai(student_id):
    santri_pilih = next((s for s in _santri_guru() if s.id == student_id), None)
    if santri_pilih is None:
        return respon("danger", "Santri tidak ditemukan di halaqah Anda", code=404)

    riwayat = (
        DailyScore.query.filter_by(student_id=student_id)
        .order_by(DailyScore.created_at.desc(), DailyScore.id.desc())
        .all()
    )
    return respon("success", "Riwayat nilai", data={
        "santri": santri_pilih.to_dict(),
        "riwayat": [r.to_dict() for r in riwayat],
    })


# ======================== PENILAIAN HARIAN ========================
@guru_bp.route("/penilaian-harian", methods=["GET", "POST"])
def penilaian_harian():
    """
    Penilaian adab dan kedisiplinan per sesi.
    GET memuat santri, kriteria aktif, sesi aktif, dan penilaian yang sudah ada
    untuk `tanggal` + `session_id`. POST menyimpan seluruh isian sesi tersebut.
    """
    santri = _santri_guru()
    kriteria = (
        CriteriaRef.query.filter_by(is_active=True)
        .order_by(CriteriaRef.aspect, CriteriaRef.sort_order)
        .all()
    )
    sesi_aktif = SessionRef.query.filter_by(is_active=True).order_by(SessionRef.sort_order).all()

    if request.method == "POST":
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return respon("danger", "Data penilaian tidak valid", code=400)
        try:
            tanggal = parse_tanggal(data.get("tanggal"), date.today())
            session_id = int(data.get("session_id"))
        except (TypeError, ValueError):
            return respon("danger", "Tanggal atau sesi tidak valid", code=400)
        if session_id not in {s.id for s in sesi_aktif}:
            return respon("danger", "Sesi tidak ditemukan atau tidak aktif", code=400)

        id_santri = {s.id for s in santri}
        kepatuhan = {}
        try:
            for baris in data.get("penilaian", []):
                kunci = (int(baris["student_id"]), int(baris["criteria_id"]))
                if kunci[0] in id_santri:
                    kepatuhan[kunci] = bool(baris.get("is_compliant", True))
        except (KeyError, TypeError, ValueError):
            return respon("danger", "Data penilaian tidak valid", code=400)

        isian_alasan = data.get("alasan") or {}
        if not isinstance(isian_alasan, dict):
            return respon("danger", "Data penilaian tidak valid", code=400)
        alasan = {}
        try:
            for student_id, reason in isian_alasan.items():
                if reason not in ALASAN_ABSEN:
                    return respon("danger", "Alasan ketidakhadiran tidak valid", code=400)
                alasan[int(student_id)] = reason
        except (TypeError, ValueError):
            return respon("danger", "Data penilaian tidak valid", code=400)

        jumlah = layanan.simpan_penilaian_harian(
            tanggal, session_id, santri, kriteria, kepatuhan, alasan, created_by=g.profile.id
        )
        return respon("success", "Data penilaian berhasil disimpan!", data={"jumlah": jumlah})

    try:
        tanggal = parse_tanggal(request.args.get("tanggal"), date.today())
    except ValueError:
        return respon("danger", "Format tanggal harus YYYY-MM-DD", code=400)
    session_id = request.args.get("session_id", type=int)
    if session_id is None and sesi_aktif:
        session_id = sesi_aktif[0].id

    ada = []
    if session_id is not None and santri:
        ada = DailyAssessment.query.filter(
            DailyAssessment.date == tanggal,
            DailyAssessment.session_id == session_id,
            DailyAssessment.student_id.in_([s.id for s in santri]),
        ).all()

    return respon("success", "Penilaian harian", data={
        "tanggal": tanggal.isoformat(),
        "session_id": session_id,
        "santri": [{"id": s.id, "name": s.name, "halaqah": s.halaqah} for s in santri],
        "kriteria": [k.to_dict() for k in kriteria],
        "sesi": [s.to_dict() for s in sesi_aktif],
        "penilaian": [a.to_dict() for a in ada],
        "sudah_diisi": bool(ada),
    })

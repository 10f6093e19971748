# ======================== DASHBOARD ADMIN ========================
from datetime import date, datetime

from flask import Blueprint, current_app, g, request, send_file

from sistem_santri import impor, layanan, metrik
from sistem_santri.app_logger import get_logger
from sistem_santri.helpers import (
    ambil_bool,
    ambil_input,
    ambil_int,
    ambil_list,
    normalisasi_nomor_hp,
    parse_jam,
    parse_tanggal,
    rentang_tanggal,
    respon,
)
from sistem_santri.laporan import buat_excel_kehadiran, data_kehadiran_bulanan, ringkasan_laporan
from sistem_santri.models import (
    ASPEK_KRITERIA,
    KATEGORI_MATERI,
    STATUS_SANTRI,
    AdminGuruAssignment,
    Announcement,
    CriteriaRef,
    CurriculumItem,
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
from sistem_santri.notifikasi import kirim_pengingat

logger = get_logger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/dashboard/admin")

KOLOM_ANGKA_MATERI = ("surah_number", "ayat_start", "ayat_end", "page_start", "page_end", "total_pages")


def _cari_atau_404(model, id, pesan):
    baris = db.session.get(model, id)
    if baris is None:
        return None, respon("danger", pesan, code=404)
    return baris, None


def _halaqah_terjangkau(nama):
    nama_terlihat = layanan.nama_halaqah_terlihat(g.profile)
    return nama_terlihat is None or nama in nama_terlihat


def _santri_atau_404(id):
    """Santri yang boleh dikelola staf ini. Di luar cakupan dianggap tidak ada."""
    santri_pilih = db.session.get(Student, id)
    if santri_pilih is None or not _halaqah_terjangkau(santri_pilih.halaqah):
        return None, respon("danger", "Santri tidak ditemukan", code=404)
    return santri_pilih, None


# ======================== BERANDA ADMIN ========================
@admin_bp.route("")
def beranda():
    """Statistik santri, kehadiran hari ini, dan laporan sesi yang belum masuk."""
    profile = g.profile
    santri = layanan.santri_terlihat(profile)
    hari_ini = date.today()

    ringkasan = ringkasan_laporan(santri)
    ringkasan["total_guru"] = layanan.jumlah_guru(profile)

    kehadiran = metrik.ringkasan_kehadiran([])
    kriteria = layanan.kriteria_kehadiran()
    if kriteria and santri:
        catatan = DailyAssessment.query.filter(
            DailyAssessment.date == hari_ini,
            DailyAssessment.criteria_id == kriteria.id,
            DailyAssessment.student_id.in_([s.id for s in santri]),
        ).all()
        kehadiran = metrik.ringkasan_kehadiran(catatan)

    return respon("success", "Dashboard admin", data={
        "statistik": ringkasan,
        "kehadiran_hari_ini": kehadiran,
        "laporan_belum_masuk": layanan.laporan_belum_masuk(hari_ini, profile),
    })


# ======================== KELOLA SANTRI ========================
@admin_bp.route("/santri", methods=["GET", "POST"])
def santri():
    """
    Mengelola data santri.
    - GET: daftar santri, bisa dicari per nama dan difilter per halaqah.
    - POST: menambah santri baru.
    """
    if request.method == "POST":
        data = ambil_input()
        nama = (data.get("name") or "").strip()
        halaqah = (data.get("halaqah") or "").strip()
        if not nama or not halaqah:
            return respon("danger", "Nama dan halaqah santri harus diisi", code=400)
        if not _halaqah_terjangkau(halaqah):
            return respon("danger", "Halaqah tidak ditemukan", code=404)

        santri_baru = Student(
            name=nama,
            halaqah=halaqah,
            wali_name=(data.get("wali_name") or "").strip() or None,
            wali_phone=normalisasi_nomor_hp(data.get("wali_phone")) or None,
        )
        db.session.add(santri_baru)
        db.session.commit()
        return respon("success", "Data santri berhasil ditambahkan", data=santri_baru.to_dict(), code=201)

    cari_nama = request.args.get("cari_nama")
    filter_halaqah = request.args.get("halaqah")

    nama_halaqah = layanan.nama_halaqah_terlihat(g.profile)
    query = Student.query
    if nama_halaqah is not None:
        query = query.filter(Student.halaqah.in_(nama_halaqah))
    if cari_nama:
        query = query.filter(Student.name.ilike(f"%{cari_nama}%"))
    if filter_halaqah:
        query = query.filter(Student.halaqah == filter_halaqah)

    data_santri = query.order_by(Student.name.asc()).all()
    return respon("success", "Daftar santri", data=[s.to_dict() for s in data_santri])


@admin_bp.route("/santri/<int:id>", methods=["POST"])
def update_santri(id):
    santri_edit, gagal = _santri_atau_404(id)
    if gagal:
        return gagal

    data = ambil_input()
    nama = (data.get("name") or santri_edit.name).strip()
    status = data.get("status", santri_edit.status)
    if status not in STATUS_SANTRI:
        return respon("danger", "Status santri tidak valid", code=400)

    halaqah = (data.get("halaqah") or santri_edit.halaqah).strip()
    if not _halaqah_terjangkau(halaqah):
        return respon("danger", "Halaqah tidak ditemukan", code=404)

    santri_edit.name = nama
    santri_edit.halaqah = halaqah
    santri_edit.status = status
    if "wali_name" in data:
        santri_edit.wali_name = data.get("wali_name") or None
    if "wali_phone" in data:
        santri_edit.wali_phone = normalisasi_nomor_hp(data.get("wali_phone")) or None
    db.session.commit()
    return respon("success", "Data santri berhasil diperbarui", data=santri_edit.to_dict())


@admin_bp.route("/santri/<int:id>/hapus", methods=["POST"])
def hapus_santri(id):
    """Menghapus santri beserta penilaian, nilai, dan relasi walinya."""
    santri_hapus, gagal = _santri_atau_404(id)
    if gagal:
        return gagal

    DailyAssessment.query.filter_by(student_id=id).delete()
    DailyScore.query.filter_by(student_id=id).delete()
    WaliSantriChildren.query.filter_by(student_id=id).delete()
    db.session.delete(santri_hapus)
    db.session.commit()
    return respon("success", "Data santri berhasil dihapus")


@admin_bp.route("/santri/impor", methods=["POST"])
def impor_santri():
    """
    Impor santri dari file CSV (field `file`). Dengan `pratinjau=1` hasil
    pembacaan hanya ditampilkan tanpa disimpan.
    """
    berkas = request.files.get("file")
    if berkas is None or not berkas.filename:
        return respon("danger", "Pilih file CSV terlebih dahulu", code=400)

    try:
        daftar = impor.baca_csv_santri(impor.baca_teks(berkas))
    except impor.ImporGagal as e:
        return respon("danger", str(e), code=400)

    nama_terlihat = layanan.nama_halaqah_terlihat(g.profile)
    if nama_terlihat is not None:
        for baris in daftar:
            if baris["valid"] and baris["halaqah"] not in nama_terlihat:
                baris.update(valid=False, error="Halaqah di luar cakupan Anda")

    if ambil_bool(request.form, "pratinjau"):
        return respon("success", "Pratinjau impor santri", data=daftar)
    if not any(b["valid"] for b in daftar):
        return respon("danger", "Tidak ada data valid untuk diimpor", data={"tidak_valid": daftar}, code=400)

    hasil = impor.impor_santri(daftar)
    if not hasil["diimpor"]:
        return respon("warning", f"Semua data ({hasil['duplikat']}) terdeteksi duplikat (nomor HP sudah ada).",
                      data=hasil, code=400)
    return respon("success", f"{hasil['diimpor']} santri berhasil diimpor", data=hasil, code=201)


# ======================== KELOLA GURU ========================
@admin_bp.route("/guru", methods=["GET", "POST"])
def guru():
    if request.method == "POST":
        data = ambil_input()
        nama = (data.get("name") or "").strip()
        if not nama:
            return respon("danger", "Nama guru harus diisi", code=400)

        # Password opsional: jika diisi, akun login ustadz dibuat sekaligus
        email = (data.get("email") or "").strip().lower() or None
        password = data.get("password") or ""
        if password:
            if not email:
                return respon("danger", "Email harus diisi untuk membuat akun login guru", code=400)
            if len(password) < 6:
                return respon("danger", "Password minimal 6 karakter", code=400)
            if layanan.cari_profil(email):
                return respon("danger", f"Email {email} sudah terdaftar", code=400)

        guru_baru = Teacher(
            name=nama,
            email=email,
            phone=normalisasi_nomor_hp(data.get("phone")) or None,
        )
        db.session.add(guru_baru)
        if password:
            layanan.buat_profil(email, nama, "ustadz", password)
            logger.info("Akun ustadz %s dibuat oleh %s", email, g.profile.email)
        else:
            db.session.commit()
        return respon("success", "Guru berhasil ditambahkan", data=guru_baru.to_dict(), code=201)

    query = Teacher.query
    if g.profile.role == "admin":
        if not g.profile.assigned_guru_ids:
            return respon("success", "Daftar guru", data=[])
        query = query.filter(Teacher.id.in_(g.profile.assigned_guru_ids))
    return respon("success", "Daftar guru", data=[t.to_dict() for t in query.order_by(Teacher.name).all()])


@admin_bp.route("/guru/<int:id>", methods=["POST"])
def update_guru(id):
    guru_edit, gagal = _cari_atau_404(Teacher, id, "Guru tidak ditemukan")
    if gagal:
        return gagal

    data = ambil_input()
    guru_edit.name = (data.get("name") or guru_edit.name).strip()
    if "email" in data:
        guru_edit.email = (data.get("email") or "").strip().lower() or None
    if "phone" in data:
        guru_edit.phone = normalisasi_nomor_hp(data.get("phone")) or None
    db.session.commit()
    return respon("success", "Data guru berhasil diperbarui", data=guru_edit.to_dict())


@admin_bp.route("/guru/<int:id>/toggle", methods=["POST"])
def toggle_guru(id):
    guru_ubah = layanan.ubah_status_aktif(Teacher, id)
    if guru_ubah is None:
        return respon("danger", "Guru tidak ditemukan", code=404)
    return respon("success", "Status guru berhasil diubah", data=guru_ubah.to_dict())


@admin_bp.route("/guru/<int:id>/hapus", methods=["POST"])
def hapus_guru(id):
    guru_hapus, gagal = _cari_atau_404(Teacher, id, "Guru tidak ditemukan")
    if gagal:
        return gagal

    Halaqah.query.filter_by(teacher_id=id).update({"teacher_id": None})
    AdminGuruAssignment.query.filter_by(guru_id=id).delete()
    db.session.delete(guru_hapus)
    db.session.commit()
    return respon("success", "Guru berhasil dihapus")


# ======================== KELOLA HALAQAH ========================
@admin_bp.route("/halaqah", methods=["GET", "POST"])
def halaqah():
    if request.method == "POST":
        data = ambil_input()
        nama = (data.get("name") or "").strip()
        if not nama:
            return respon("danger", "Nama halaqah harus diisi", code=400)
        if Halaqah.query.filter_by(name=nama).first():
            return respon("danger", f"Halaqah {nama} sudah ada", code=400)

        halaqah_baru = Halaqah(name=nama, teacher_id=ambil_int(data, "teacher_id"), status="active")
        db.session.add(halaqah_baru)
        db.session.commit()
        return respon("success", "Halaqah berhasil ditambahkan", data=halaqah_baru.to_dict(), code=201)

    daftar = Halaqah.query.order_by(Halaqah.name).all()
    jumlah = dict(
        db.session.query(Student.halaqah, db.func.count(Student.id)).group_by(Student.halaqah).all()
    )
    hasil = []
    for h in daftar:
        baris = h.to_dict()
        baris["jumlah_santri"] = jumlah.get(h.name, 0)
        hasil.append(baris)
    return respon("success", "Daftar halaqah", data=hasil)


@admin_bp.route("/halaqah/<int:id>", methods=["POST"])
def update_halaqah(id):
    halaqah_edit, gagal = _cari_atau_404(Halaqah, id, "Halaqah tidak ditemukan")
    if gagal:
        return gagal

    data = ambil_input()
    nama_baru = (data.get("name") or halaqah_edit.name).strip()
    if nama_baru != halaqah_edit.name:
        if Halaqah.query.filter(Halaqah.name == nama_baru, Halaqah.id != id).first():
            return respon("danger", f"Halaqah {nama_baru} sudah ada", code=400)
        # Santri menyimpan nama halaqah, jadi ikut diganti
        Student.query.filter_by(halaqah=halaqah_edit.name).update({"halaqah": nama_baru})
        halaqah_edit.name = nama_baru
    if "teacher_id" in data:
        halaqah_edit.teacher_id = ambil_int(data, "teacher_id")
    if data.get("status") in ("active", "inactive"):
        halaqah_edit.status = data.get("status")
    db.session.commit()
    return respon("success", "Halaqah berhasil diperbarui", data=halaqah_edit.to_dict())


@admin_bp.route("/halaqah/<int:id>/hapus", methods=["POST"])
def hapus_halaqah(id):
    halaqah_hapus, gagal = _cari_atau_404(Halaqah, id, "Halaqah tidak ditemukan")
    if gagal:
        return gagal

    if Student.query.filter_by(halaqah=halaqah_hapus.name).count():
        return respon("warning", "Halaqah masih memiliki santri, pindahkan santri terlebih dahulu", code=400)
    db.session.delete(halaqah_hapus)
    db.session.commit()
    return respon("success", "Halaqah berhasil dihapus")


# ======================== KELOLA KURIKULUM ========================
@admin_bp.route("/kurikulum", methods=["GET", "POST"])
def kurikulum():
    if request.method == "POST":
        data = ambil_input()
        nama = (data.get("name") or "").strip()
        kategori = data.get("category")
        if not nama or kategori not in KATEGORI_MATERI:
            return respon("danger", "Nama dan kategori materi harus diisi", code=400)

        materi = CurriculumItem(
            category=kategori,
            name=nama,
            surah_number=ambil_int(data, "surah_number"),
            ayat_start=ambil_int(data, "ayat_start"),
            ayat_end=ambil_int(data, "ayat_end"),
            page_start=ambil_int(data, "page_start"),
            page_end=ambil_int(data, "page_end"),
            total_pages=ambil_int(data, "total_pages"),
        )
        db.session.add(materi)
        db.session.commit()
        return respon("success", "Materi berhasil ditambahkan", data=materi.to_dict(), code=201)

    daftar = CurriculumItem.query.order_by(
        CurriculumItem.category, CurriculumItem.surah_number, CurriculumItem.name
    ).all()
    return respon("success", "Daftar materi", data=[m.to_dict() for m in daftar])


@admin_bp.route("/kurikulum/<int:id>", methods=["POST"])
def update_kurikulum(id):
    materi, gagal = _cari_atau_404(CurriculumItem, id, "Materi tidak ditemukan")
    if gagal:
        return gagal

    data = ambil_input()
    materi.name = (data.get("name") or materi.name).strip()
    if data.get("category") in KATEGORI_MATERI:
        materi.category = data.get("category")
    for kolom in KOLOM_ANGKA_MATERI:
        if kolom in data:
            setattr(materi, kolom, ambil_int(data, kolom))
    db.session.commit()
    return respon("success", "Materi berhasil diperbarui", data=materi.to_dict())


@admin_bp.route("/kurikulum/impor", methods=["POST"])
def impor_kurikulum():
    """Impor materi Surah atau Kitab dari file CSV (field `file` dan `category`)."""
    kategori = request.form.get("category", "Surah")
    if kategori not in ("Surah", "Kitab"):
        return respon("danger", "Kategori impor harus Surah atau Kitab", code=400)
    berkas = request.files.get("file")
    if berkas is None or not berkas.filename:
        return respon("danger", "Pilih file CSV terlebih dahulu", code=400)

    try:
        daftar = impor.baca_csv_kurikulum(impor.baca_teks(berkas), kategori)
    except impor.ImporGagal as e:
        return respon("danger", str(e), code=400)
    if not daftar:
        return respon("danger", "Tidak ada materi yang bisa diimpor", code=400)

    jumlah = impor.impor_kurikulum(daftar)
    return respon("success", f"Berhasil import {jumlah} item.", data={"diimpor": jumlah}, code=201)


@admin_bp.route("/kurikulum/<int:id>/hapus", methods=["POST"])
def hapus_kurikulum(id):
    materi, gagal = _cari_atau_404(CurriculumItem, id, "Materi tidak ditemukan")
    if gagal:
        return gagal

    DailyScore.query.filter_by(curriculum_id=id).update({"curriculum_id": None})
    db.session.delete(materi)
    db.session.commit()
    return respon("success", "Materi berhasil dihapus")


# ======================== KRITERIA PENILAIAN ========================
@admin_bp.route("/kriteria", methods=["GET", "POST"])
def kriteria():
    if request.method == "POST":
        data = ambil_input()
        judul = (data.get("title") or "").strip()
        aspek = data.get("aspect", "discipline")
        if not judul:
            return respon("danger", "Judul kriteria harus diisi", code=400)
        if aspek not in ASPEK_KRITERIA:
            return respon("danger", "Aspek kriteria tidak valid", code=400)

        kriteria_baru = CriteriaRef(
            aspect=aspek,
            title=judul,
            description=(data.get("description") or "").strip() or None,
            sort_order=layanan.urutan_berikutnya(CriteriaRef, aspect=aspek),
        )
        db.session.add(kriteria_baru)
        db.session.commit()
        return respon("success", "Kriteria berhasil ditambah", data=kriteria_baru.to_dict(), code=201)

    query = CriteriaRef.query
    aspek = request.args.get("aspect")
    if aspek:
        query = query.filter_by(aspect=aspek)
    cari = request.args.get("cari")
    if cari:
        query = query.filter(
            db.or_(CriteriaRef.title.ilike(f"%{cari}%"), CriteriaRef.description.ilike(f"%{cari}%"))
        )
    daftar = query.order_by(CriteriaRef.sort_order.asc()).all()
    return respon("success", "Daftar kriteria", data=[k.to_dict() for k in daftar])


@admin_bp.route("/kriteria/<int:id>", methods=["POST"])
def update_kriteria(id):
    kriteria_edit, gagal = _cari_atau_404(CriteriaRef, id, "Kriteria tidak ditemukan")
    if gagal:
        return gagal

    data = ambil_input()
    judul = (data.get("title") or "").strip()
    aspek = data.get("aspect", kriteria_edit.aspect)
    if not judul:
        return respon("danger", "Judul kriteria harus diisi", code=400)
    if aspek not in ASPEK_KRITERIA:
        return respon("danger", "Aspek kriteria tidak valid", code=400)

    if aspek != kriteria_edit.aspect:
        # Pindah aspek: masuk di urutan paling akhir aspek tujuan
        kriteria_edit.sort_order = layanan.urutan_berikutnya(CriteriaRef, aspect=aspek)
        kriteria_edit.aspect = aspek
    kriteria_edit.title = judul
    kriteria_edit.description = (data.get("description") or "").strip() or None
    db.session.commit()
    return respon("success", "Kriteria berhasil diupdate", data=kriteria_edit.to_dict())


@admin_bp.route("/kriteria/<int:id>/toggle", methods=["POST"])
def toggle_kriteria(id):
    kriteria_ubah = layanan.ubah_status_aktif(CriteriaRef, id)
    if kriteria_ubah is None:
        return respon("danger", "Gagal mengubah status kriteria", code=404)
    aksi = "aktifkan" if kriteria_ubah.is_active else "nonaktifkan"
    return respon("success", f"Kriteria berhasil di{aksi}", data=kriteria_ubah.to_dict())


# ======================== SESI HARIAN ========================
@admin_bp.route("/sesi", methods=["GET", "POST"])
def sesi():
    if request.method == "POST":
        data = ambil_input()
        nama = (data.get("name") or "").strip()
        if not nama:
            return respon("danger", "Nama sesi harus diisi", code=400)
        try:
            mulai = parse_jam(data.get("time_start"))
            selesai = parse_jam(data.get("time_end"))
        except ValueError:
            return respon("danger", "Format jam harus HH:MM", code=400)

        sesi_baru = SessionRef(
            name=nama,
            time_start=mulai,
            time_end=selesai,
            sort_order=layanan.urutan_berikutnya(SessionRef),
        )
        db.session.add(sesi_baru)
        db.session.commit()
        return respon("success", "Sesi berhasil ditambah", data=sesi_baru.to_dict(), code=201)

    daftar = SessionRef.query.order_by(SessionRef.sort_order.asc()).all()
    return respon("success", "Daftar sesi", data={
        "sesi": [s.to_dict() for s in daftar],
        "jumlah_aktif": sum(1 for s in daftar if s.is_active),
    })


@admin_bp.route("/sesi/<int:id>", methods=["POST"])
def update_sesi(id):
    sesi_edit, gagal = _cari_atau_404(SessionRef, id, "Sesi tidak ditemukan")
    if gagal:
        return gagal

    data = ambil_input()
    nama = (data.get("name") or "").strip()
    if not nama:
        return respon("danger", "Nama sesi harus diisi", code=400)
    try:
        sesi_edit.time_start = parse_jam(data.get("time_start"))
        sesi_edit.time_end = parse_jam(data.get("time_end"))
    except ValueError:
        return respon("danger", "Format jam harus HH:MM", code=400)
    sesi_edit.name = nama
    db.session.commit()
    return respon("success", "Sesi berhasil diupdate", data=sesi_edit.to_dict())


@admin_bp.route("/sesi/<int:id>/toggle", methods=["POST"])
def toggle_sesi(id):
    sesi_ubah = layanan.ubah_status_aktif(SessionRef, id)
    if sesi_ubah is None:
        return respon("danger", "Gagal mengubah status sesi", code=404)
    aksi = "aktifkan" if sesi_ubah.is_active else "nonaktifkan"
    return respon("success", f"Sesi berhasil di{aksi}", data=sesi_ubah.to_dict())


@admin_bp.route("/sesi/<int:id>/hapus", methods=["POST"])
def hapus_sesi(id):
    sesi_hapus, gagal = _cari_atau_404(SessionRef, id, "Sesi tidak ditemukan")
    if gagal:
        return gagal

    if DailyAssessment.query.filter_by(session_id=id).first():
        return respon("danger", "Gagal menghapus sesi. Mungkin sudah ada data penilaian yang terkait.", code=400)
    db.session.delete(sesi_hapus)
    db.session.commit()
    return respon("success", "Sesi berhasil dihapus")


# ======================== AKUN WALI SANTRI ========================
@admin_bp.route("/wali", methods=["GET", "POST"])
def wali():
    if request.method == "POST":
        data = ambil_input()
        nomor = normalisasi_nomor_hp(data.get("phone"))
        nama = (data.get("name") or "").strip()
        if not nomor or not nama:
            return respon("danger", "Nomor HP dan nama wali harus diisi", code=400)
        if WaliSantri.query.filter_by(phone=nomor).first():
            return respon("danger", f"Nomor HP {nomor} sudah terdaftar", code=400)

        wali_baru = layanan.buat_wali(nomor, nama)
        return respon("success", "Akun wali berhasil dibuat", data=wali_baru.to_dict(), code=201)

    cari = (request.args.get("cari") or "").strip()
    query = WaliSantri.query
    if cari:
        query = query.filter(db.or_(WaliSantri.name.ilike(f"%{cari}%"), WaliSantri.phone.ilike(f"%{cari}%")))
    daftar = query.order_by(WaliSantri.created_at.desc(), WaliSantri.id.desc()).all()
    return respon("success", "Daftar wali", data=[w.to_dict() for w in daftar])


@admin_bp.route("/wali/<int:id>", methods=["POST"])
def update_wali(id):
    wali_edit, gagal = _cari_atau_404(WaliSantri, id, "Wali tidak ditemukan")
    if gagal:
        return gagal

    data = ambil_input()
    nomor = normalisasi_nomor_hp(data.get("phone")) or wali_edit.phone
    nama = (data.get("name") or "").strip() or wali_edit.name
    if WaliSantri.query.filter(WaliSantri.phone == nomor, WaliSantri.id != id).first():
        return respon("danger", f"Nomor HP {nomor} sudah digunakan wali lain", code=400)

    wali_edit.phone = nomor
    wali_edit.name = nama
    db.session.commit()
    return respon("success", "Data wali berhasil diperbarui", data=wali_edit.to_dict())


@admin_bp.route("/wali/<int:id>/toggle", methods=["POST"])
def toggle_wali(id):
    wali_ubah = layanan.ubah_status_aktif(WaliSantri, id)
    if wali_ubah is None:
        return respon("danger", "Wali tidak ditemukan", code=404)
    return respon("success", "Status akun wali berhasil diubah", data=wali_ubah.to_dict())


@admin_bp.route("/wali/<int:id>/reset-password", methods=["POST"])
def reset_password_wali(id):
    wali_reset, gagal = _cari_atau_404(WaliSantri, id, "Wali tidak ditemukan")
    if gagal:
        return gagal

    layanan.reset_password_wali(wali_reset)
    return respon("success", "Password berhasil direset!")


@admin_bp.route("/wali/<int:id>/hapus", methods=["POST"])
def hapus_wali(id):
    wali_hapus, gagal = _cari_atau_404(WaliSantri, id, "Wali tidak ditemukan")
    if gagal:
        return gagal

    db.session.delete(wali_hapus)
    db.session.commit()
    return respon("success", "Akun wali berhasil dihapus")


@admin_bp.route("/wali/<int:id>/anak", methods=["GET", "POST"])
def anak_wali(id):
    wali_pilih, gagal = _cari_atau_404(WaliSantri, id, "Wali tidak ditemukan")
    if gagal:
        return gagal

    if request.method == "POST":
        data = ambil_input()
        try:
            student_ids = [int(s) for s in ambil_list(data, "student_ids") if str(s).strip()]
        except ValueError:
            return respon("danger", "Data santri tidak valid", code=400)

        ada = {s.id for s in Student.query.filter(Student.id.in_(student_ids)).all()} if student_ids else set()
        if ada != set(student_ids):
            return respon("danger", "Sebagian santri tidak ditemukan", code=400)

        hasil = layanan.simpan_anak_wali(wali_pilih.id, student_ids)
        return respon("success", "Data anak berhasil disimpan", data=hasil)

    return respon("success", "Anak wali", data={
        "wali": wali_pilih.to_dict(),
        "student_ids": sorted(r.student_id for r in wali_pilih.children),
        "santri": [
            {"id": s.id, "name": s.name, "halaqah": s.halaqah}
            for s in Student.query.order_by(Student.name).all()
        ],
    })


# ======================== REKAP KEHADIRAN ========================
@admin_bp.route("/kehadiran")
def kehadiran():
    """Rekap ketidakhadiran santri dalam rentang 7 / 30 / 90 hari atau semua."""
    rentang = request.args.get("rentang", "30days")
    mulai, selesai = rentang_tanggal(rentang)

    kriteria_hadir = layanan.kriteria_kehadiran()
    santri_list = layanan.santri_terlihat(g.profile)
    if kriteria_hadir is None or not santri_list:
        return respon("success", "Rekap kehadiran", data=[])

    catatan = DailyAssessment.query.filter(
        DailyAssessment.criteria_id == kriteria_hadir.id,
        DailyAssessment.is_compliant.is_(False),
        DailyAssessment.student_id.in_([s.id for s in santri_list]),
        DailyAssessment.date >= mulai,
        DailyAssessment.date <= selesai,
        DailyAssessment.absence_reason.isnot(None),
    ).all()

    rekap = metrik.rekap_ketidakhadiran(santri_list, catatan)
    cari = (request.args.get("cari") or "").lower()
    if cari:
        rekap = [r for r in rekap if cari in r["name"].lower() or cari in (r["halaqah"] or "").lower()]
    return respon("success", "Rekap kehadiran", data=rekap)


@admin_bp.route("/kehadiran/<int:student_id>")
def detail_kehadiran(student_id):
    santri_pilih, gagal = _santri_atau_404(student_id)
    if gagal:
        return gagal

    mulai, selesai = rentang_tanggal(request.args.get("rentang", "30days"))
    kriteria_hadir = layanan.kriteria_kehadiran()
    if kriteria_hadir is None:
        return respon("success", "Detail kehadiran", data=[])

    catatan = (
        DailyAssessment.query.filter(
            DailyAssessment.student_id == santri_pilih.id,
            DailyAssessment.criteria_id == kriteria_hadir.id,
            DailyAssessment.is_compliant.is_(False),
            DailyAssessment.date >= mulai,
            DailyAssessment.date <= selesai,
        )
        .order_by(DailyAssessment.date.desc())
        .all()
    )
    return respon("success", "Detail kehadiran", data=[
        {
            "date": c.date.isoformat(),
            "session_name": c.session.name if c.session else None,
            "absence_reason": c.absence_reason or "tanpa_keterangan",
        }
        for c in catatan
    ])


# ======================== LAPORAN ========================
@admin_bp.route("/laporan")
def laporan():
    return respon("success", "Laporan santri", data=ringkasan_laporan(layanan.santri_terlihat(g.profile)))


@admin_bp.route("/laporan/ekspor")
def ekspor_laporan():
    """Mengunduh rekap kehadiran bulanan satu halaqah dalam format Excel."""
    bulan = request.args.get("bulan") or datetime.now().strftime("%Y-%m")
    nama_halaqah = request.args.get("halaqah")
    if not nama_halaqah:
        return respon("danger", "Mohon pilih bulan dan halaqah", code=400)

    try:
        tahun, bulan_int = map(int, bulan.split("-"))
    except ValueError:
        return respon("danger", "Format bulan harus YYYY-MM", code=400)

    nama_terlihat = layanan.nama_halaqah_terlihat(g.profile)
    if nama_terlihat is not None and nama_halaqah not in nama_terlihat:
        return respon("danger", "Halaqah tidak ditemukan", code=404)

    kriteria_hadir = layanan.kriteria_kehadiran()
    data = []
    if kriteria_hadir is not None:
        data = data_kehadiran_bulanan(nama_halaqah, tahun, bulan_int, kriteria_hadir.id)
    if not data:
        return respon("warning", f"Tidak ada data kehadiran untuk halaqah {nama_halaqah} di bulan ini", code=404)

    file_excel = buat_excel_kehadiran(data)
    return send_file(
        file_excel,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=f"Laporan_Kehadiran_{nama_halaqah}_{bulan}.xlsx",
    )


# ======================== PENGUMUMAN ========================
@admin_bp.route("/pengumuman", methods=["GET", "POST"])
def pengumuman():
    if request.method == "POST":
        data = ambil_input()
        judul = (data.get("title") or "").strip()
        isi = (data.get("content") or "").strip()
        target = data.get("target", "semua")
        if not judul or not isi:
            return respon("danger", "Judul dan isi pengumuman harus diisi", code=400)
        if target not in ("semua", "wali", "guru"):
            return respon("danger", "Target pengumuman tidak valid", code=400)

        baru = Announcement(
            title=judul,
            content=isi,
            target=target,
            is_active=ambil_bool(data, "is_active", True),
            created_by=g.profile.id,
        )
        db.session.add(baru)
        db.session.commit()
        return respon("success", "Pengumuman berhasil dibuat", data=baru.to_dict(), code=201)

    daftar = Announcement.query.order_by(Announcement.created_at.desc(), Announcement.id.desc()).all()
    return respon("success", "Daftar pengumuman", data=[a.to_dict() for a in daftar])


@admin_bp.route("/pengumuman/<int:id>", methods=["POST"])
def update_pengumuman(id):
    item, gagal = _cari_atau_404(Announcement, id, "Pengumuman tidak ditemukan")
    if gagal:
        return gagal

    data = ambil_input()
    item.title = (data.get("title") or item.title).strip()
    item.content = (data.get("content") or item.content).strip()
    if data.get("target") in ("semua", "wali", "guru"):
        item.target = data.get("target")
    db.session.commit()
    return respon("success", "Pengumuman berhasil diperbarui", data=item.to_dict())


@admin_bp.route("/pengumuman/<int:id>/toggle", methods=["POST"])
def toggle_pengumuman(id):
    item = layanan.ubah_status_aktif(Announcement, id)
    if item is None:
        return respon("danger", "Pengumuman tidak ditemukan", code=404)
    return respon("success", "Status pengumuman berhasil diubah", data=item.to_dict())


@admin_bp.route("/pengumuman/<int:id>/hapus", methods=["POST"])
def hapus_pengumuman(id):
    item, gagal = _cari_atau_404(Announcement, id, "Pengumuman tidak ditemukan")
    if gagal:
        return gagal

    db.session.delete(item)
    db.session.commit()
    return respon("success", "Pengumuman berhasil dihapus")


# ======================== PENGINGAT WHATSAPP ========================
@admin_bp.route("/pengingat", methods=["POST"])
def pengingat():
    """Mengirim pengingat WA ke ustadz yang belum mengisi penilaian hari ini."""
    token = current_app.config.get("FONNTE_TOKEN")
    if not token:
        return respon("warning", "Token Fonnte belum diatur, pengingat WA tidak dikirim", code=400)

    tanggal = parse_tanggal(ambil_input().get("tanggal"), date.today())
    belum = layanan.laporan_belum_masuk(tanggal, g.profile)
    if not belum:
        return respon("success", "Semua laporan sesi sudah masuk", data={"terkirim": 0, "gagal": 0})

    terkirim, gagal_kirim = kirim_pengingat(belum, tanggal, token, current_app.config["FONNTE_URL"])
    status = "success" if not gagal_kirim else "warning"
    return respon(status, f"{terkirim} pengingat terkirim, {gagal_kirim} gagal", data={
        "terkirim": terkirim,
        "gagal": gagal_kirim,
    })


# ======================== KELOLA ADMIN (SUPER ADMIN) ========================
@admin_bp.route("/kelola-admin", methods=["GET", "POST"])
def kelola_admin():
    if request.method == "POST":
        data = ambil_input()
        email = (data.get("email") or "").strip().lower()
        nama = (data.get("full_name") or "").strip()
        password = data.get("password") or ""
        if not email or not nama:
            return respon("danger", "Email dan nama admin harus diisi", code=400)
        if len(password) < 6:
            return respon("danger", "Password minimal 6 karakter", code=400)
        if layanan.cari_profil(email):
            return respon("danger", f"Email {email} sudah terdaftar", code=400)

        admin_baru = layanan.buat_profil(email, nama, "admin", password)
        logger.info("Admin baru %s dibuat oleh %s", email, g.profile.email)
        return respon("success", "Admin berhasil ditambahkan", data=admin_baru.to_dict(), code=201)

    daftar = Profile.query.filter_by(role="admin").order_by(Profile.full_name).all()
    return respon("success", "Daftar admin", data={
        "admin": [a.to_dict() for a in daftar],
        "guru": [t.to_dict() for t in Teacher.query.order_by(Teacher.name).all()],
    })


@admin_bp.route("/kelola-admin/<int:id>/guru", methods=["POST"])
def atur_guru_admin(id):
    """Mengganti seluruh daftar guru yang ditugaskan ke seorang admin."""
    admin_pilih = Profile.query.filter_by(id=id, role="admin").first()
    if admin_pilih is None:
        return respon("danger", "Admin tidak ditemukan", code=404)

    try:
        guru_ids = {int(x) for x in ambil_list(ambil_input(), "guru_ids") if str(x).strip()}
    except ValueError:
        return respon("danger", "Data guru tidak valid", code=400)

    sekarang = {a.guru_id: a for a in admin_pilih.assignments}
    for guru_id, penugasan in sekarang.items():
        if guru_id not in guru_ids:
            db.session.delete(penugasan)
    for guru_id in guru_ids - set(sekarang):
        db.session.add(AdminGuruAssignment(admin_id=id, guru_id=guru_id))
    db.session.commit()
    return respon("success", "Penugasan guru berhasil disimpan", data=sorted(guru_ids))


@admin_bp.route("/kelola-admin/<int:id>/hapus", methods=["POST"])
def hapus_admin(id):
    admin_hapus = Profile.query.filter_by(id=id, role="admin").first()
    if admin_hapus is None:
        return respon("danger", "Admin tidak ditemukan", code=404)

    db.session.delete(admin_hapus)
    db.session.commit()
    return respon("success", "Admin berhasil dihapus")

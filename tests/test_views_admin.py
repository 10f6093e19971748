import io
from datetime import date

import pytest

from sistem_santri.models import (
    CriteriaRef,
    CurriculumItem,
    DailyAssessment,
    Halaqah,
    Profile,
    SessionRef,
    Student,
    WaliSantri,
    WaliSantriChildren,
    db,
)
from tests.conftest import login_staf, login_wali


@pytest.fixture
def super_admin(client, data):
    login_staf(client, "super@pesantren.id")
    return client


def _absen(data, santri, tanggal, alasan, sesi="subuh"):
    db.session.add(DailyAssessment(
        date=tanggal,
        student_id=data[santri].id,
        session_id=data[sesi].id,
        criteria_id=data["hadir"].id,
        is_compliant=alasan is None,
        absence_reason=alasan,
    ))


# ======================== BERANDA & SANTRI ========================
def test_beranda_admin(super_admin, data):
    isi = super_admin.get("/dashboard/admin").get_json()["data"]
    assert isi["statistik"]["total_santri"] == 3
    assert isi["statistik"]["total_guru"] == 2
    assert isi["statistik"]["status"] == {"Mutqin": 1, "Mutawassith": 1, "Dhaif": 1}


def test_daftar_santri_dibatasi_penugasan(client, data):
    login_staf(client, "admin@pesantren.id")
    nama = [s["name"] for s in client.get("/dashboard/admin/santri").get_json()["data"]]
    assert nama == ["Hasan"]


def test_cari_dan_tambah_santri(super_admin, data):
    resp = super_admin.get("/dashboard/admin/santri?cari_nama=bil")
    assert [s["name"] for s in resp.get_json()["data"]] == ["Bilal"]

    resp = super_admin.post("/dashboard/admin/santri", data={
        "name": "Zaid", "halaqah": "Al-Ikhlas", "wali_phone": "+62 811 000 111",
    })
    assert resp.status_code == 201
    assert resp.get_json()["data"]["wali_phone"] == "0811000111"

    assert super_admin.post("/dashboard/admin/santri", data={"name": "Tanpa Halaqah"}).status_code == 400


def test_hapus_santri_menghapus_relasi_wali(super_admin, data):
    santri_id = data["santri_a"].id
    assert super_admin.post(f"/dashboard/admin/santri/{santri_id}/hapus").status_code == 200
    assert db.session.get(Student, santri_id) is None
    assert WaliSantriChildren.query.filter_by(student_id=santri_id).count() == 0


# ======================== GURU & HALAQAH ========================
def test_admin_tanpa_penugasan_melihat_daftar_guru_kosong(client, data):
    login_staf(client, "super@pesantren.id")
    client.post("/dashboard/admin/kelola-admin", data={
        "email": "kosong@pesantren.id", "full_name": "Admin Kosong", "password": "rahasia123",
    })
    client.get("/logout")

    login_staf(client, "kosong@pesantren.id")
    assert client.get("/dashboard/admin/guru").get_json()["data"] == []
    assert client.get("/dashboard/admin/santri").get_json()["data"] == []


def test_ganti_nama_halaqah_ikut_mengganti_santri(super_admin, data):
    halaqah = Halaqah.query.filter_by(name="Al-Fatih").one()
    resp = super_admin.post(f"/dashboard/admin/halaqah/{halaqah.id}", data={"name": "Al-Fatih 2"})
    assert resp.status_code == 200
    assert Student.query.filter_by(halaqah="Al-Fatih 2").count() == 2


def test_halaqah_berisi_santri_tidak_bisa_dihapus(super_admin, data):
    halaqah = Halaqah.query.filter_by(name="Al-Ikhlas").one()
    resp = super_admin.post(f"/dashboard/admin/halaqah/{halaqah.id}/hapus")
    assert resp.status_code == 400
    assert db.session.get(Halaqah, halaqah.id) is not None


# ======================== KRITERIA & SESI ========================
def test_tambah_kriteria_urutan_per_aspek(super_admin, data):
    resp = super_admin.post("/dashboard/admin/kriteria", data={"aspect": "adab", "title": "Salam"})
    assert resp.status_code == 201
    assert resp.get_json()["data"]["sort_order"] == 2

    resp = super_admin.post("/dashboard/admin/kriteria", data={"aspect": "discipline", "title": "Tepat waktu"})
    assert resp.get_json()["data"]["sort_order"] == 3


def test_tambah_kriteria_tanpa_judul(super_admin, data):
    resp = super_admin.post("/dashboard/admin/kriteria", data={"aspect": "adab", "title": "  "})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Judul kriteria harus diisi"


def test_filter_kriteria(super_admin, data):
    resp = super_admin.get("/dashboard/admin/kriteria?aspect=adab")
    assert [k["title"] for k in resp.get_json()["data"]] == ["Sopan santun"]
    resp = super_admin.get("/dashboard/admin/kriteria?cari=rapi")
    assert [k["title"] for k in resp.get_json()["data"]] == ["Kerapian"]


def test_toggle_kriteria_hanya_mengubah_satu_baris(super_admin, data):
    resp = super_admin.post(f"/dashboard/admin/kriteria/{data['rapi'].id}/toggle")
    assert resp.get_json()["message"] == "Kriteria berhasil dinonaktifkan"

    aktif = {k.title: k.is_active for k in CriteriaRef.query.all()}
    assert aktif == {"Kehadiran": True, "Kerapian": False, "Sopan santun": True}

    resp = super_admin.post(f"/dashboard/admin/kriteria/{data['rapi'].id}/toggle")
    assert resp.get_json()["message"] == "Kriteria berhasil diaktifkan"
    assert super_admin.post("/dashboard/admin/kriteria/999/toggle").status_code == 404


def test_tambah_sesi(super_admin, data):
    resp = super_admin.post("/dashboard/admin/sesi", data={
        "name": "Isya", "time_start": "19:30", "time_end": "20:30",
    })
    assert resp.status_code == 201
    sesi = resp.get_json()["data"]
    assert sesi["sort_order"] == 3
    assert sesi["time_start"] == "19:30"

    isi = super_admin.get("/dashboard/admin/sesi").get_json()["data"]
    assert isi["jumlah_aktif"] == 3


def test_tambah_sesi_jam_tidak_valid(super_admin, data):
    resp = super_admin.post("/dashboard/admin/sesi", data={"name": "Isya", "time_start": "jam tujuh"})
    assert resp.status_code == 400
    assert super_admin.post("/dashboard/admin/sesi", data={"name": ""}).status_code == 400


def test_sesi_dengan_penilaian_tidak_bisa_dihapus(super_admin, data):
    _absen(data, "santri_a", date(2024, 5, 10), None)
    db.session.commit()

    resp = super_admin.post(f"/dashboard/admin/sesi/{data['subuh'].id}/hapus")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Gagal menghapus sesi. Mungkin sudah ada data penilaian yang terkait."
    assert super_admin.post(f"/dashboard/admin/sesi/{data['maghrib'].id}/hapus").status_code == 200


# ======================== AKUN WALI ========================
def test_buat_akun_wali(super_admin, client, data):
    resp = super_admin.post("/dashboard/admin/wali", data={"phone": "+62 857-1111-2222", "name": "Ibu Aisyah"})
    assert resp.status_code == 201
    assert resp.get_json()["data"]["phone"] == "085711112222"

    client.get("/logout")
    resp = login_wali(client, phone="085711112222", password="112222")
    assert resp.headers["Location"].endswith("/dashboard/wali")


def test_nomor_wali_duplikat_ditolak(super_admin, data):
    resp = super_admin.post("/dashboard/admin/wali", data={"phone": "6281234567890", "name": "Lain"})
    assert resp.status_code == 400
    assert WaliSantri.query.count() == 1


def test_atur_anak_wali(super_admin, data):
    wali_id = data["wali"].id
    b, c = data["santri_b"].id, data["santri_c"].id

    resp = super_admin.post(f"/dashboard/admin/wali/{wali_id}/anak", json={"student_ids": [b, c]})
    assert resp.get_json()["data"] == sorted([b, c])
    isi = super_admin.get(f"/dashboard/admin/wali/{wali_id}/anak").get_json()["data"]
    assert isi["student_ids"] == sorted([b, c])

    super_admin.post(f"/dashboard/admin/wali/{wali_id}/anak", json={"student_ids": []})
    assert WaliSantriChildren.query.filter_by(wali_id=wali_id).count() == 0


def test_atur_anak_wali_santri_tidak_ada(super_admin, data):
    wali_id = data["wali"].id
    resp = super_admin.post(f"/dashboard/admin/wali/{wali_id}/anak", json={"student_ids": [999]})
    assert resp.status_code == 400
    assert WaliSantriChildren.query.filter_by(wali_id=wali_id).count() == 1


def test_reset_password_wali(super_admin, data):
    from sistem_santri import layanan

    layanan.change_wali_password(data["wali"].id, "567890", "passwordbaru")
    resp = super_admin.post(f"/dashboard/admin/wali/{data['wali'].id}/reset-password")
    assert resp.get_json()["message"] == "Password berhasil direset!"
    assert layanan.login_wali("081234567890", "567890") is not None


# ======================== KEHADIRAN & LAPORAN ========================
def test_rekap_kehadiran(super_admin, data):
    hari_ini = date.today()
    _absen(data, "santri_b", hari_ini, "sakit")
    _absen(data, "santri_b", hari_ini, "tanpa_keterangan", sesi="maghrib")
    _absen(data, "santri_c", hari_ini, "izin")
    _absen(data, "santri_a", hari_ini, None)
    db.session.commit()

    rekap = super_admin.get("/dashboard/admin/kehadiran?rentang=7days").get_json()["data"]
    assert [r["name"] for r in rekap][:2] == ["Bilal", "Hasan"]
    assert rekap[0]["total_absences"] == 2
    assert rekap[0]["sakit"] == 1

    detail = super_admin.get(f"/dashboard/admin/kehadiran/{data['santri_b'].id}").get_json()["data"]
    assert len(detail) == 2

    kehadiran = super_admin.get("/dashboard/admin").get_json()["data"]["kehadiran_hari_ini"]
    assert kehadiran["alpha"] == 1
    assert kehadiran["permission"] == 1
    assert kehadiran["present"] == 1


def test_ekspor_excel(super_admin, data):
    _absen(data, "santri_a", date(2024, 5, 1), None)
    _absen(data, "santri_b", date(2024, 5, 1), "sakit")
    db.session.commit()

    resp = super_admin.get("/dashboard/admin/laporan/ekspor?bulan=2024-05&halaqah=Al-Fatih")
    assert resp.status_code == 200
    assert resp.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert resp.data[:2] == b"PK"


def test_ekspor_excel_tanpa_data(super_admin, data):
    resp = super_admin.get("/dashboard/admin/laporan/ekspor?bulan=2024-06&halaqah=Al-Fatih")
    assert resp.status_code == 404
    assert super_admin.get("/dashboard/admin/laporan/ekspor?bulan=2024-06").status_code == 400


# ======================== PENGINGAT & PENGUMUMAN ========================
def test_pengingat_tanpa_token(super_admin, data):
    resp = super_admin.post("/dashboard/admin/pengingat", data={"tanggal": "2024-05-10"})
    assert resp.status_code == 400
    assert resp.get_json()["status"] == "warning"


class _ResponPalsu:
    status_code = 200


def test_pengingat_terkirim(super_admin, app, data, monkeypatch):
    terkirim = []

    def post_palsu(url, headers=None, data=None, timeout=None):
        terkirim.append(data["target"])
        return _ResponPalsu()

    monkeypatch.setattr("sistem_santri.notifikasi.requests.post", post_palsu)
    monkeypatch.setitem(app.config, "FONNTE_TOKEN", "token-uji")

    resp = super_admin.post("/dashboard/admin/pengingat", data={"tanggal": "2024-05-10"})
    assert resp.get_json()["data"] == {"terkirim": 4, "gagal": 0}
    assert set(terkirim) == {"6281111111111", "6282222222222"}


def test_pengumuman(super_admin, data):
    resp = super_admin.post("/dashboard/admin/pengumuman", data={
        "title": "Libur", "content": "Libur akhir pekan", "target": "wali",
    })
    assert resp.status_code == 201
    pengumuman_id = resp.get_json()["data"]["id"]

    resp = super_admin.post(f"/dashboard/admin/pengumuman/{pengumuman_id}/toggle")
    assert resp.get_json()["data"]["is_active"] is False
    assert super_admin.post("/dashboard/admin/pengumuman", data={"title": "x", "target": "semua"}).status_code == 400


# ======================== KELOLA ADMIN ========================
def test_kelola_admin(super_admin, data):
    resp = super_admin.post("/dashboard/admin/kelola-admin", data={
        "email": "baru@pesantren.id", "full_name": "Admin Baru", "password": "123",
    })
    assert resp.status_code == 400

    resp = super_admin.post("/dashboard/admin/kelola-admin", data={
        "email": "baru@pesantren.id", "full_name": "Admin Baru", "password": "123456",
    })
    assert resp.status_code == 201
    admin_id = resp.get_json()["data"]["id"]

    guru_ids = [data["guru_ahmad"].id, data["guru_umar"].id]
    resp = super_admin.post(f"/dashboard/admin/kelola-admin/{admin_id}/guru", json={"guru_ids": guru_ids})
    assert resp.get_json()["data"] == sorted(guru_ids)

    resp = super_admin.post(f"/dashboard/admin/kelola-admin/{admin_id}/guru", json={"guru_ids": [guru_ids[0]]})
    assert resp.get_json()["data"] == [guru_ids[0]]

    assert super_admin.post(f"/dashboard/admin/kelola-admin/{admin_id}/hapus").status_code == 200


# ======================== URUTAN TAMPIL ========================
def test_urutan_sesi_tidak_bentrok_setelah_hapus(super_admin, data):
    assert super_admin.post(f"/dashboard/admin/sesi/{data['subuh'].id}/hapus").status_code == 200
    resp = super_admin.post("/dashboard/admin/sesi", data={"name": "Isya"})
    assert resp.get_json()["data"]["sort_order"] == 3

    urutan = [s.sort_order for s in SessionRef.query.all()]
    assert len(urutan) == len(set(urutan))


def test_pindah_aspek_kriteria_di_urutan_akhir(super_admin, data):
    resp = super_admin.post(f"/dashboard/admin/kriteria/{data['sopan'].id}", data={
        "title": "Sopan santun", "aspect": "discipline",
    })
    assert resp.status_code == 200
    assert resp.get_json()["data"]["sort_order"] == 3

    urutan = [k.sort_order for k in CriteriaRef.query.filter_by(aspect="discipline").all()]
    assert sorted(urutan) == [1, 2, 3]


# ======================== CAKUPAN ADMIN ========================
@pytest.fixture
def admin_umar(client, data):
    """Admin yang hanya ditugaskan ke Ustadz Umar (halaqah Al-Ikhlas)."""
    login_staf(client, "admin@pesantren.id")
    return client


def test_admin_tidak_bisa_mengubah_santri_di_luar_cakupan(admin_umar, data):
    abdullah = data["santri_a"]
    resp = admin_umar.post(f"/dashboard/admin/santri/{abdullah.id}", data={"name": "Diubah"})
    assert resp.status_code == 404
    assert db.session.get(Student, abdullah.id).name == "Abdullah"

    hasan = data["santri_c"]
    resp = admin_umar.post(f"/dashboard/admin/santri/{hasan.id}", data={"halaqah": "Al-Fatih"})
    assert resp.status_code == 404
    assert db.session.get(Student, hasan.id).halaqah == "Al-Ikhlas"

    resp = admin_umar.post(f"/dashboard/admin/santri/{hasan.id}", data={"name": "Hasan Basri"})
    assert resp.status_code == 200


def test_admin_tidak_bisa_menghapus_santri_di_luar_cakupan(admin_umar, data):
    abdullah_id = data["santri_a"].id
    assert admin_umar.post(f"/dashboard/admin/santri/{abdullah_id}/hapus").status_code == 404
    assert db.session.get(Student, abdullah_id) is not None
    assert WaliSantriChildren.query.filter_by(student_id=abdullah_id).count() == 1


def test_admin_tidak_bisa_melihat_kehadiran_di_luar_cakupan(admin_umar, data):
    assert admin_umar.get(f"/dashboard/admin/kehadiran/{data['santri_a'].id}").status_code == 404
    assert admin_umar.get(f"/dashboard/admin/kehadiran/{data['santri_c'].id}").status_code == 200


def test_admin_tidak_bisa_menambah_santri_di_luar_cakupan(admin_umar, data):
    resp = admin_umar.post("/dashboard/admin/santri", data={"name": "Zaid", "halaqah": "Al-Fatih"})
    assert resp.status_code == 404
    assert Student.query.filter_by(name="Zaid").count() == 0

    resp = admin_umar.post("/dashboard/admin/santri", data={"name": "Zaid", "halaqah": "Al-Ikhlas"})
    assert resp.status_code == 201


# ======================== IMPOR CSV ========================
CSV_SANTRI = (
    "Nama Santri;Halaqah;Nama Wali;No HP Wali\n"
    "Zaid;Al-Fatih;Pak Zaid;0813 1111 2222\n"
    "Yusuf;Al-Hikmah;Bu Yusuf;+62 813-3333-4444\n"
    "Tanpa Nomor;Al-Fatih;;\n"
    "Sudah Ada;Al-Fatih;Pak Lama;081234567890\n"
)


def _unggah(client, url, isi, **form):
    form["file"] = (io.BytesIO(isi.encode("utf-8")), "data.csv")
    return client.post(url, data=form, content_type="multipart/form-data")


def test_impor_santri_csv(super_admin, data):
    data["santri_a"].wali_phone = "081234567890"
    db.session.commit()

    resp = _unggah(super_admin, "/dashboard/admin/santri/impor", CSV_SANTRI)
    assert resp.status_code == 201
    isi = resp.get_json()
    assert isi["message"] == "2 santri berhasil diimpor"
    assert isi["data"]["duplikat"] == 1
    assert isi["data"]["halaqah_baru"] == ["Al-Hikmah"]
    assert [b["error"] for b in isi["data"]["tidak_valid"]] == ["No HP Wali kosong"]

    zaid = Student.query.filter_by(name="Zaid").one()
    assert zaid.wali_phone == "081311112222"
    assert zaid.wali_name == "Pak Zaid"
    assert Halaqah.query.filter_by(name="Al-Hikmah").one().status == "active"


def test_impor_santri_pratinjau_tidak_menyimpan(super_admin, data):
    resp = _unggah(super_admin, "/dashboard/admin/santri/impor", CSV_SANTRI, pratinjau="1")
    assert resp.status_code == 200
    assert [b["name"] for b in resp.get_json()["data"]] == ["Zaid", "Yusuf", "Tanpa Nomor", "Sudah Ada"]
    assert Student.query.count() == 3
    assert Halaqah.query.filter_by(name="Al-Hikmah").count() == 0


def test_impor_santri_semua_duplikat(super_admin, data):
    isi = "nama,halaqah,wa\nZaid,Al-Fatih,081311112222\n"
    assert _unggah(super_admin, "/dashboard/admin/santri/impor", isi).status_code == 201

    resp = _unggah(super_admin, "/dashboard/admin/santri/impor", isi)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Semua data (1) terdeteksi duplikat (nomor HP sudah ada)."
    assert Student.query.filter_by(name="Zaid").count() == 1


def test_impor_santri_file_tidak_lengkap(super_admin, data):
    resp = super_admin.post("/dashboard/admin/santri/impor", data={}, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Pilih file CSV terlebih dahulu"

    resp = _unggah(super_admin, "/dashboard/admin/santri/impor", "nama,wa\nZaid,0813\n")
    assert resp.status_code == 400
    assert "halaqah" in resp.get_json()["message"]


def test_impor_santri_admin_dibatasi_cakupan(admin_umar, data):
    isi = "nama,halaqah,no hp\nZaid,Al-Fatih,081311112222\n"
    resp = _unggah(admin_umar, "/dashboard/admin/santri/impor", isi)
    assert resp.status_code == 400
    assert resp.get_json()["data"]["tidak_valid"][0]["error"] == "Halaqah di luar cakupan Anda"
    assert Student.query.filter_by(name="Zaid").count() == 0


def test_impor_kurikulum_surah(super_admin, data):
    isi = (
        "nama,nomor,ayat awal,ayat akhir,hal awal,hal akhir\n"
        "Al-Mulk,67,1,30,562,564\n"
        "Al-Qalam,68,1,52,564,566\n"
    )
    resp = _unggah(super_admin, "/dashboard/admin/kurikulum/impor", isi, category="Surah")
    assert resp.status_code == 201
    assert resp.get_json()["message"] == "Berhasil import 2 item."

    mulk = CurriculumItem.query.filter_by(name="Al-Mulk").one()
    assert (mulk.surah_number, mulk.ayat_start, mulk.ayat_end) == (67, 1, 30)
    assert (mulk.page_start, mulk.page_end) == (562, 564)


def test_impor_kurikulum_kitab(super_admin, data):
    resp = _unggah(super_admin, "/dashboard/admin/kurikulum/impor", "Safinatun Najah,40\n", category="Kitab")
    assert resp.status_code == 201
    kitab = CurriculumItem.query.filter_by(name="Safinatun Najah").one()
    assert kitab.category == "Kitab"
    assert kitab.total_pages == 40

    resp = _unggah(super_admin, "/dashboard/admin/kurikulum/impor", "x,1\n", category="Juz")
    assert resp.status_code == 400


# ======================== AKUN GURU ========================
def test_tambah_guru_dengan_akun_login(super_admin, client, data):
    resp = super_admin.post("/dashboard/admin/guru", data={
        "name": "Ustadz Salim", "email": "Salim@Pesantren.id", "password": "rahasia123",
    })
    assert resp.status_code == 201
    assert Profile.query.filter_by(email="salim@pesantren.id").one().role == "ustadz"

    client.get("/logout")
    login_staf(client, "salim@pesantren.id")
    assert client.get("/dashboard").headers["Location"].endswith("/dashboard/guru")


def test_tambah_guru_akun_login_tidak_valid(super_admin, data):
    resp = super_admin.post("/dashboard/admin/guru", data={"name": "Tanpa Email", "password": "rahasia123"})
    assert resp.status_code == 400

    resp = super_admin.post("/dashboard/admin/guru", data={
        "name": "Ganda", "email": "ahmad@pesantren.id", "password": "rahasia123",
    })
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Email ahmad@pesantren.id sudah terdaftar"

    resp = super_admin.post("/dashboard/admin/guru", data={
        "name": "Pendek", "email": "pendek@pesantren.id", "password": "123",
    })
    assert resp.status_code == 400
    assert Profile.query.filter_by(email="pendek@pesantren.id").count() == 0

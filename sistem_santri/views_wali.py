# ======================== DASHBOARD WALI SANTRI ========================
from flask import Blueprint, current_app, g, request

from sistem_santri import layanan, metrik
from sistem_santri.helpers import ambil_input, daftar_tanggal_mundur, respon
from sistem_santri.models import Announcement, DailyAssessment, DailyScore, SessionRef

wali_bp = Blueprint("wali", __name__, url_prefix="/dashboard/wali")

# Riwayat kehadiran paling panjang yang bisa diminta lewat ?hari=
BATAS_HARI_KEHADIRAN = 90


def _pengumuman_wali(batas=None):
    query = Announcement.query.filter(
        Announcement.is_active.is_(True), Announcement.target.in_(["semua", "wali"])
    ).order_by(Announcement.created_at.desc(), Announcement.id.desc())
    if batas:
        query = query.limit(batas)
    return query.all()


def _anak_milik_wali(student_id):
    """Santri hanya bisa dibuka oleh wali yang terhubung dengannya."""
    return next((s for s in layanan.anak_wali(g.wali.id) if s.id == student_id), None)


@wali_bp.route("")
def beranda():
    return respon("success", "Dashboard wali", data={
        "wali": {"id": g.wali.id, "name": g.wali.name, "phone": g.wali.phone},
        "anak": layanan.get_wali_dashboard_summary(g.wali.phone),
        "pengumuman": [a.to_dict() for a in _pengumuman_wali(batas=3)],
    })


@wali_bp.route("/anak/<int:student_id>")
def detail_anak(student_id):
    """Profil anak, riwayat nilai, penilaian harian terbaru, dan ringkasan kehadiran."""
    anak = _anak_milik_wali(student_id)
    if anak is None:
        return respon("danger", "Data anak tidak ditemukan", code=404)

    nilai = (
        DailyScore.query.filter_by(student_id=anak.id)
        .order_by(DailyScore.created_at.desc(), DailyScore.id.desc())
        .limit(20)
        .all()
    )
    penilaian = (
        DailyAssessment.query.filter_by(student_id=anak.id)
        .order_by(DailyAssessment.date.desc())
        .limit(50)
        .all()
    )

    kehadiran = {"hadir": 0, "sakit": 0, "izin": 0, "alpha": 0, "persen_hadir": 0}
    kriteria = layanan.kriteria_kehadiran()
    if kriteria is not None:
        catatan = DailyAssessment.query.filter_by(student_id=anak.id, criteria_id=kriteria.id).all()
        for baris in catatan:
            kehadiran[metrik.status_catatan(baris)] += 1
        kehadiran["persen_hadir"] = metrik.persentase(kehadiran["hadir"], len(catatan))

    return respon("success", "Detail anak", data={
        "anak": anak.to_dict(),
        "nilai": [n.to_dict() for n in nilai],
        "penilaian": [
            dict(p.to_dict(), criteria_title=p.criteria.title if p.criteria else None,
                 session_name=p.session.name if p.session else None)
            for p in penilaian
        ],
        "kehadiran": kehadiran,
    })


@wali_bp.route("/kehadiran")
def kehadiran():
    """Kehadiran per sesi untuk beberapa hari terakhir, terbaru lebih dulu."""
    anak = layanan.anak_wali(g.wali.id)
    pilihan = request.args.get("anak", "all")
    if pilihan != "all":
        anak = [a for a in anak if str(a.id) == pilihan]

    hari = request.args.get("hari", type=int) or current_app.config["KEHADIRAN_HARI_WALI"]
    hari = max(1, min(hari, BATAS_HARI_KEHADIRAN))
    tanggal_list = daftar_tanggal_mundur(hari)
    kriteria = layanan.kriteria_kehadiran()
    if kriteria is None or not anak:
        return respon("success", "Kehadiran anak", data=[])

    sesi_aktif = SessionRef.query.filter_by(is_active=True).order_by(SessionRef.sort_order).all()
    catatan = DailyAssessment.query.filter(
        DailyAssessment.student_id.in_([a.id for a in anak]),
        DailyAssessment.criteria_id == kriteria.id,
        DailyAssessment.date.in_(tanggal_list),
    ).all()
    peta = {(c.date, c.student_id, c.session_id): c for c in catatan}

    hasil = []
    for tanggal in tanggal_list:
        for a in anak:
            hasil.append({
                "date": tanggal.isoformat(),
                "student_id": a.id,
                "student_name": a.name,
                "sessions": [
                    {
                        "name": s.name,
                        "is_present": bool(peta.get((tanggal, a.id, s.id)) and peta[(tanggal, a.id, s.id)].is_compliant),
                    }
                    for s in sesi_aktif
                ],
            })
    return respon("success", "Kehadiran anak", data=hasil)


@wali_bp.route("/pengumuman")
def pengumuman():
    return respon("success", "Pengumuman", data=[a.to_dict() for a in _pengumuman_wali()])


@wali_bp.route("/settings", methods=["GET", "POST"])
def settings():
    """Ganti password wali."""
    if request.method == "POST":
        data = ambil_input()
        lama = data.get("old_password") or ""
        baru = data.get("new_password") or ""
        konfirmasi = data.get("confirm_password") or ""

        if not lama:
            return respon("danger", "Password lama harus diisi", code=400)
        if not baru:
            return respon("danger", "Password baru harus diisi", code=400)
        if len(baru) < 6:
            return respon("danger", "Password baru minimal 6 karakter", code=400)
        if baru != konfirmasi:
            return respon("danger", "Konfirmasi password tidak cocok", code=400)
        if baru == lama:
            return respon("danger", "Password baru harus berbeda dengan password lama", code=400)

        if not layanan.change_wali_password(g.wali.id, lama, baru):
            return respon("danger", "Password lama salah", code=400)
        return respon("success", "Password berhasil diubah")

    return respon("success", "Pengaturan akun", data={"name": g.wali.name, "phone": g.wali.phone})

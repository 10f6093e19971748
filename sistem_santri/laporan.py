# ======================== LAPORAN & EKSPOR EXCEL ========================
import io
from collections import OrderedDict
from datetime import datetime, time, timedelta

import pandas as pd

from sistem_santri import metrik
from sistem_santri.models import CriteriaRef, DailyAssessment, DailyScore, Student, db

KODE_STATUS = {
    metrik.HADIR: "H",
    metrik.SAKIT: "S",
    metrik.IZIN: "I",
    metrik.ALPHA: "A",
}


def ringkasan_laporan(santri):
    """Total santri, rata-rata global, sebaran status, dan rincian per halaqah."""
    status = metrik.hitung_status_santri(santri)
    total = len(santri)
    return {
        "total_santri": total,
        "total_halaqah": len({s.halaqah for s in santri}),
        "rata_rata": round(metrik.rata_rata([s.average_score for s in santri]), 1),
        "status": status,
        "persen_status": {k: metrik.persentase(v, total) for k, v in status.items()},
        "per_halaqah": metrik.ringkasan_halaqah(santri),
    }


def data_kehadiran_bulanan(halaqah, tahun, bulan, criteria_id):
    """
    Status kehadiran harian (sudah digabung antar sesi) untuk santri satu
    halaqah dalam satu bulan: list of (nama, id, tanggal, status).
    """
    catatan = (
        db.session.query(Student.name, DailyAssessment)
        .join(DailyAssessment, DailyAssessment.student_id == Student.id)
        .filter(
            Student.halaqah == halaqah,
            DailyAssessment.criteria_id == criteria_id,
            db.extract("year", DailyAssessment.date) == tahun,
            db.extract("month", DailyAssessment.date) == bulan,
        )
        .all()
    )

    per_hari = {}
    for nama, baris in catatan:
        per_hari.setdefault((nama, baris.student_id, baris.date), []).append(baris)

    return [
        (nama, student_id, tanggal, metrik.status_hari(daftar))
        for (nama, student_id, tanggal), daftar in sorted(per_hari.items(), key=lambda x: (x[0][0], x[0][2]))
    ]


def buat_excel_kehadiran(data):
    """
    Membuat file Excel format pivot (crosstab): satu baris per santri, satu
    kolom per tanggal, ditambah kolom total hadir. Mengembalikan BytesIO.
    """
    df = pd.DataFrame(data, columns=["Nama", "ID", "Tanggal", "Status"])

    df["Tanggal"] = pd.to_datetime(df["Tanggal"])
    df["Hari"] = df["Tanggal"].dt.strftime("%d")
    df["Status"] = df["Status"].map(KODE_STATUS)

    df_pivot = pd.pivot_table(
        df,
        values="Status",
        index=["Nama", "ID"],
        columns="Hari",
        aggfunc="first",
    )
    df_pivot.reset_index(inplace=True)

    total_hadir = df.groupby(["Nama", "ID"])["Status"].apply(
        lambda x: (x == "H").sum()
    ).reset_index(name="Total Hadir")

    df_final = pd.merge(df_pivot, total_hadir, on=["Nama", "ID"])

    kolom_hari = [str(d).zfill(2) for d in range(1, 32)]
    kolom_final = ["Nama"] + [c for c in kolom_hari if c in df_final.columns] + ["Total Hadir"]
    df_final = df_final[kolom_final]
    df_final = df_final.fillna("-")

    hasil = io.BytesIO()
    df_final.to_excel(hasil, index=False, engine="openpyxl")
    hasil.seek(0)
    return hasil


# ======================== LAPORAN USTADZ ========================
def keterangan_materi(item):
    if item.category == "Surah" and item.ayat_start and item.ayat_end:
        return f"ayat {item.ayat_start}-{item.ayat_end}"
    if item.page_start and item.page_end:
        return f"hlm {item.page_start}-{item.page_end}"
    if item.total_pages:
        return f"{item.total_pages} hlm"
    return ""


def laporan_guru(santri, mulai, selesai):
    """
    Rekap per santri dalam rentang tanggal: jumlah dan rata-rata setoran,
    jumlah hafalan baru / murojaah, materi yang disetorkan, dan persentase
    kepatuhan adab serta kedisiplinan.
    """
    if not santri:
        return []
    ids = [s.id for s in santri]

    skor = (
        DailyScore.query.filter(
            DailyScore.student_id.in_(ids),
            DailyScore.created_at >= datetime.combine(mulai, time.min),
            DailyScore.created_at < datetime.combine(selesai + timedelta(days=1), time.min),
        )
        .order_by(DailyScore.created_at.desc(), DailyScore.id.desc())
        .all()
    )
    penilaian = DailyAssessment.query.filter(
        DailyAssessment.student_id.in_(ids),
        DailyAssessment.date >= mulai,
        DailyAssessment.date <= selesai,
    ).all()
    aspek_kriteria = dict(db.session.query(CriteriaRef.id, CriteriaRef.aspect).all())

    hasil = []
    for s in santri:
        skor_santri = [n for n in skor if n.student_id == s.id]

        materi = OrderedDict()
        for n in skor_santri:
            if n.curriculum is not None and n.curriculum_id not in materi:
                materi[n.curriculum_id] = {
                    "id": n.curriculum.id,
                    "name": n.curriculum.name,
                    "category": n.curriculum.category,
                    "keterangan": keterangan_materi(n.curriculum),
                }

        persen = metrik.persen_patuh_per_aspek(
            [p for p in penilaian if p.student_id == s.id], aspek_kriteria
        )
        hasil.append({
            "student_id": s.id,
            "name": s.name,
            "wali_phone": s.wali_phone or "",
            "total_setoran": len(skor_santri),
            "rata_setoran": metrik.bulatkan(metrik.rata_rata([n.setoran for n in skor_santri])),
            "hafalan_baru": sum(1 for n in skor_santri if n.hafalan_type == "baru"),
            "murojaah": sum(1 for n in skor_santri if n.hafalan_type == "murojaah"),
            "persen_adab": persen["adab"],
            "persen_disiplin": persen["discipline"],
            "materi": list(materi.values()),
            "nilai": [n.to_dict() for n in skor_santri],
        })
    return hasil

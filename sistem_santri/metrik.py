# ======================== PERHITUNGAN METRIK ========================
# Fungsi murni untuk angka yang ditampilkan di dashboard. Semua fungsi
# menerima baris mentah (dict atau objek model) dan tidak menyentuh database.

from collections import OrderedDict

HADIR = "hadir"
SAKIT = "sakit"
IZIN = "izin"
ALPHA = "alpha"

# Semakin besar angkanya semakin kuat statusnya dalam satu hari
PRIORITAS_STATUS = {HADIR: 0, IZIN: 1, SAKIT: 2, ALPHA: 3}

BATAS_MUTQIN = 90
BATAS_MUTAWASSITH = 76


def _nilai(baris, kunci, default=None):
    if isinstance(baris, dict):
        return baris.get(kunci, default)
    return getattr(baris, kunci, default)


def bulatkan(angka):
    """Pembulatan setengah ke atas, sama seperti tampilan persentase di dashboard."""
    if angka < 0:
        return -int(-angka + 0.5)
    return int(angka + 0.5)


def rata_rata(nilai):
    """Rata-rata aritmetika. Daftar kosong menghasilkan 0, bukan NaN."""
    nilai = [n or 0 for n in nilai]
    if not nilai:
        return 0
    return sum(nilai) / len(nilai)


def persentase(jumlah, total):
    if not total:
        return 0
    return bulatkan(jumlah / total * 100)


def status_catatan(baris):
    """Status satu baris penilaian kriteria kehadiran."""
    if _nilai(baris, "is_compliant"):
        return HADIR
    alasan = _nilai(baris, "absence_reason")
    if alasan in (SAKIT, IZIN):
        return alasan
    return ALPHA


def status_hari(catatan):
    """
    Status kehadiran satu santri dalam satu hari dari beberapa sesi.
    Urutan prioritas: alpha > sakit > izin > hadir, jadi satu sesi alpha
    membuat seluruh hari tercatat alpha. Tanpa catatan hasilnya None.
    """
    status = None
    for baris in catatan:
        baru = status_catatan(baris)
        if status is None or PRIORITAS_STATUS[baru] > PRIORITAS_STATUS[status]:
            status = baru
    return status


def ringkasan_kehadiran(catatan):
    """
    Mengelompokkan catatan kehadiran per santri lalu menghitung jumlah dan
    persentase tiap kategori. Santri tanpa catatan tidak ikut dihitung.
    """
    per_santri = OrderedDict()
    for baris in catatan:
        per_santri.setdefault(_nilai(baris, "student_id"), []).append(baris)

    jumlah = {HADIR: 0, SAKIT: 0, IZIN: 0, ALPHA: 0}
    for daftar in per_santri.values():
        jumlah[status_hari(daftar)] += 1

    total = len(per_santri)
    return {
        "present": jumlah[HADIR],
        "sick": jumlah[SAKIT],
        "permission": jumlah[IZIN],
        "alpha": jumlah[ALPHA],
        "total": total,
        "persen": {status: persentase(n, total) for status, n in jumlah.items()},
    }


def rekap_ketidakhadiran(santri, catatan):
    """
    Total ketidakhadiran (sakit / izin / alpha) per santri, diurutkan dari yang
    paling sering tidak hadir. Catatan yang hadir diabaikan.
    """
    rekap = OrderedDict()
    for s in santri:
        rekap[_nilai(s, "id")] = {
            "id": _nilai(s, "id"),
            "name": _nilai(s, "name"),
            "halaqah": _nilai(s, "halaqah"),
            "total_absences": 0,
            "sakit": 0,
            "izin": 0,
            "alpha": 0,
        }

    for baris in catatan:
        data = rekap.get(_nilai(baris, "student_id"))
        status = status_catatan(baris)
        if data is None or status == HADIR:
            continue
        data["total_absences"] += 1
        data[status] += 1

    return sorted(rekap.values(), key=lambda d: d["total_absences"], reverse=True)


def hitung_status(rata):
    if rata >= BATAS_MUTQIN:
        return "Mutqin"
    if rata >= BATAS_MUTAWASSITH:
        return "Mutawassith"
    return "Dhaif"


def nilai_setoran(kesalahan, maks_kesalahan=20):
    """Nilai setoran dari jumlah kesalahan bacaan, dibatasi 0 sampai 100."""
    total = sum(int(k or 0) for k in kesalahan)
    nilai = bulatkan((1 - total / maks_kesalahan) * 100)
    return max(0, min(100, nilai))


def nilai_harian(skor):
    """Rata-rata adab, disiplin, dan setoran yang terisi pada satu baris nilai."""
    komponen = [_nilai(skor, k) for k in ("adab", "disiplin", "setoran")]
    komponen = [k for k in komponen if k is not None]
    return rata_rata(komponen)


def hitung_status_santri(santri):
    jumlah = {"Mutqin": 0, "Mutawassith": 0, "Dhaif": 0}
    for s in santri:
        status = _nilai(s, "status")
        if status in jumlah:
            jumlah[status] += 1
    return jumlah


def ringkasan_halaqah(santri):
    """Jumlah santri, rata-rata nilai, dan sebaran status untuk tiap halaqah."""
    kelompok = OrderedDict()
    for s in sorted(santri, key=lambda s: _nilai(s, "halaqah") or ""):
        kelompok.setdefault(_nilai(s, "halaqah"), []).append(s)

    hasil = []
    for nama, anggota in kelompok.items():
        hasil.append({
            "halaqah": nama,
            "jumlah_santri": len(anggota),
            "rata_rata": round(rata_rata([_nilai(s, "average_score") for s in anggota]), 1),
            "status": hitung_status_santri(anggota),
        })
    return hasil


def persen_patuh_per_aspek(catatan, aspek_kriteria):
    """
    Persentase penilaian yang dipenuhi untuk tiap aspek. `aspek_kriteria`
    memetakan criteria_id ke aspeknya; aspek tanpa catatan bernilai 0.
    """
    jumlah = {"adab": [0, 0], "discipline": [0, 0]}
    for baris in catatan:
        aspek = aspek_kriteria.get(_nilai(baris, "criteria_id"))
        if aspek not in jumlah:
            continue
        jumlah[aspek][1] += 1
        if _nilai(baris, "is_compliant"):
            jumlah[aspek][0] += 1
    return {aspek: persentase(patuh, total) for aspek, (patuh, total) in jumlah.items()}

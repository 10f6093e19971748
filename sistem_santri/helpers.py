# ======================== FUNGSI HELPER ========================
import re
from datetime import date, datetime, timedelta

from flask import jsonify, request

RENTANG_HARI = {"7days": 7, "30days": 30, "90days": 90}


def normalisasi_nomor_hp(nomor):
    """
    Menormalkan nomor HP ke format lokal (08...).
    Misalnya: '+62 812-3456' -> '08123456', '8123456' -> '08123456'.
    Bentuk lain dibiarkan apa adanya, panjang nomor tidak divalidasi.
    """
    bersih = re.sub(r"\D", "", nomor or "")
    if bersih.startswith("62"):
        bersih = "0" + bersih[2:]
    if not bersih.startswith("08") and bersih.startswith("8"):
        bersih = "0" + bersih
    return bersih


def format_nomor_hp(nomor):
    """
    Memformat nomor HP ke format internasional (62...) untuk WhatsApp.
    Misalnya: '0812...' -> '62812...'
    """
    nomor = (nomor or "").strip()
    if nomor.startswith("0"):
        return "62" + nomor[1:]
    elif nomor.startswith("+62"):
        return nomor[1:]
    return nomor


def password_default(nomor):
    """Password awal wali: 6 digit terakhir nomor HP yang sudah dinormalkan."""
    return normalisasi_nomor_hp(nomor)[-6:]


def rentang_tanggal(pilihan, hari_ini=None):
    """Mengubah pilihan rentang ('7days', '30days', '90days', 'all') menjadi (mulai, selesai)."""
    hari_ini = hari_ini or date.today()
    if pilihan in RENTANG_HARI:
        return hari_ini - timedelta(days=RENTANG_HARI[pilihan]), hari_ini
    return date(2020, 1, 1), hari_ini


def daftar_tanggal_mundur(jumlah_hari, hari_ini=None):
    hari_ini = hari_ini or date.today()
    return [hari_ini - timedelta(days=i) for i in range(jumlah_hari)]


def parse_tanggal(teks, default=None):
    if not teks:
        return default
    return datetime.strptime(teks, "%Y-%m-%d").date()


def parse_jam(teks):
    if not teks:
        return None
    return datetime.strptime(teks[:5], "%H:%M").time()


def format_jam(jam):
    return jam.strftime("%H:%M") if jam else ""


# ======================== RESPON JSON ========================
def respon(status, message, data=None, code=200):
    """Respon JSON standar: status success / warning / danger beserta pesan."""
    isi = {"status": status, "message": message}
    if data is not None:
        isi["data"] = data
    return jsonify(isi), code


def ambil_input():
    """Data form atau JSON dari request saat ini."""
    return request.get_json(silent=True) or request.form


def ambil_list(data, kunci):
    if hasattr(data, "getlist"):
        return data.getlist(kunci)
    nilai = data.get(kunci) or []
    return nilai if isinstance(nilai, list) else [nilai]


def ambil_bool(data, kunci, default=False):
    nilai = data.get(kunci)
    if nilai is None:
        return default
    if isinstance(nilai, bool):
        return nilai
    return str(nilai).lower() in ("1", "true", "on", "ya", "yes")


def ambil_int(data, kunci):
    nilai = data.get(kunci)
    if nilai in (None, ""):
        return None
    return int(nilai)

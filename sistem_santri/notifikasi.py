# ======================== NOTIFIKASI WHATSAPP ========================
# Pengingat ke ustadz yang belum mengisi penilaian sesi, dikirim lewat Fonnte.

import requests

from sistem_santri.app_logger import get_logger
from sistem_santri.helpers import format_nomor_hp

logger = get_logger(__name__)


def pesan_pengingat(laporan, tanggal):
    return (
        f"Assalamu'alaikum Ustadz {laporan['teacher_name']}, penilaian halaqah "
        f"{laporan['halaqah']} untuk {laporan['session_name']} ({laporan['session_time']}) "
        f"tanggal {tanggal.strftime('%d-%m-%Y')} belum diisi."
    )


def kirim_whatsapp(token, url, nomor, pesan):
    """Mengirim satu pesan. True jika Fonnte menjawab 200."""
    headers = {"Authorization": token}
    data = {"target": format_nomor_hp(nomor), "message": pesan}
    try:
        response = requests.post(url, headers=headers, data=data, timeout=10)
    except requests.RequestException as e:
        logger.warning("Notifikasi WA ke %s gagal: %s", nomor, e)
        return False

    if response.status_code != 200:
        logger.warning("Notifikasi WA ke %s gagal. Kode: %s", nomor, response.status_code)
        return False
    return True


def kirim_pengingat(daftar_laporan, tanggal, token, url):
    """
    Mengirim pengingat untuk setiap laporan yang belum masuk.
    Mengembalikan (terkirim, gagal); laporan tanpa nomor HP dihitung gagal.
    """
    terkirim = 0
    gagal = 0
    for laporan in daftar_laporan:
        if not laporan.get("phone"):
            gagal += 1
            continue
        if kirim_whatsapp(token, url, laporan["phone"], pesan_pengingat(laporan, tanggal)):
            terkirim += 1
        else:
            gagal += 1
    logger.info("Pengingat WA: %s terkirim, %s gagal", terkirim, gagal)
    return terkirim, gagal

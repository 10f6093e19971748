# ======================== IMPOR CSV ========================
# Impor massal santri dan materi kurikulum dari file CSV. Pemisah kolom
# boleh koma atau titik koma, ditentukan dari baris pertama.

import io
import re

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError

from sistem_santri.app_logger import get_logger
from sistem_santri.helpers import normalisasi_nomor_hp
from sistem_santri.models import CurriculumItem, Halaqah, Student, db

logger = get_logger(__name__)

KATA_NOMOR_HP = ("hp", "whatsapp", "telp", "phone")
KATA_WALI = ("wali", "orang tua", "parent")

# Urutan kolom CSV materi per kategori (tanpa header)
KOLOM_SURAH = ["name", "surah_number", "ayat_start", "ayat_end", "page_start", "page_end"]
KOLOM_KITAB = ["name", "total_pages"]


class ImporGagal(ValueError):
    """File CSV tidak bisa dibaca; pesan ditampilkan apa adanya ke pengguna."""


def baca_teks(berkas):
    """Isi file upload sebagai teks. BOM dari Excel ikut dibuang."""
    try:
        return berkas.read().decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ImporGagal("File harus berupa CSV dengan encoding UTF-8") from e


def _baca_tabel(teks, **opsi):
    baris = [b for b in teks.splitlines() if b.strip()]
    if not baris:
        raise ImporGagal("File CSV kosong")
    pemisah = ";" if ";" in baris[0] else ","
    try:
        df = pd.read_csv(
            io.StringIO("\n".join(baris)),
            sep=pemisah,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            **opsi,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ImporGagal("Format CSV tidak valid") from e
    return df.fillna("")


def _kolom_nomor_hp(nama):
    return any(k in nama for k in KATA_NOMOR_HP) or re.search(r"\bwa\b", nama) is not None


def _cari_kolom(header, cocok):
    return next((i for i, h in enumerate(header) if cocok(h)), None)


def _angka(teks):
    try:
        return int(float(str(teks).strip()))
    except (OverflowError, ValueError):
        return None


# ======================== SANTRI ========================
def baca_csv_santri(teks):
    """
    Membaca CSV santri. Kolom dikenali dari header (tidak peka huruf besar):
    nama / name, halaqah / kelas, nomor HP wali (hp, wa, telp, phone), dan
    nama wali. Mengembalikan list dict per baris beserta status validasinya.
    """
    df = _baca_tabel(teks)
    header = [str(h).strip().lower() for h in df.columns]

    i_nama = _cari_kolom(header, lambda h: ("nama" in h or h == "name")
                         and "wali" not in h and "orang tua" not in h)
    i_halaqah = _cari_kolom(header, lambda h: "halaqah" in h or "kelas" in h or h == "class")
    i_hp = _cari_kolom(header, _kolom_nomor_hp)
    i_wali = _cari_kolom(header, lambda h: any(k in h for k in KATA_WALI) and not _kolom_nomor_hp(h))

    if i_nama is None:
        raise ImporGagal("Kolom 'nama' atau 'name' tidak ditemukan di header CSV")
    if i_halaqah is None:
        raise ImporGagal("Kolom 'halaqah' atau 'kelas' tidak ditemukan di header CSV")

    hasil = []
    for nomor_baris, nilai in enumerate(df.itertuples(index=False), start=2):
        nilai = [str(v).strip() for v in nilai]
        nama = nilai[i_nama]
        halaqah = nilai[i_halaqah]
        if not nama and not halaqah:
            continue

        baris = {
            "baris": nomor_baris,
            "name": nama,
            "halaqah": halaqah,
            "wali_name": (nilai[i_wali] if i_wali is not None else "") or None,
            "wali_phone": normalisasi_nomor_hp(nilai[i_hp]) if i_hp is not None else "",
            "valid": True,
            "error": None,
        }
        if not nama:
            baris.update(valid=False, error="Nama kosong")
        elif not halaqah:
            baris.update(valid=False, error="Halaqah kosong")
        elif not baris["wali_phone"]:
            baris.update(valid=False, error="No HP Wali kosong")
        hasil.append(baris)

    if not hasil:
        raise ImporGagal("File CSV harus memiliki header dan minimal 1 baris data")
    return hasil


def impor_santri(daftar):
    """
    Menyimpan baris valid dalam satu transaksi. Santri yang nomor HP walinya
    sudah tercatat dilewati sebagai duplikat. Halaqah yang belum ada dibuat
    otomatis. Mengembalikan ringkasan jumlah.
    """
    sudah_ada = {
        normalisasi_nomor_hp(hp)
        for (hp,) in db.session.query(Student.wali_phone).filter(Student.wali_phone.isnot(None)).all()
    }
    sudah_ada.discard("")
    halaqah_ada = {nama for (nama,) in db.session.query(Halaqah.name).all()}

    baru = [b for b in daftar if b["valid"] and b["wali_phone"] not in sudah_ada]
    duplikat = sum(1 for b in daftar if b["valid"] and b["wali_phone"] in sudah_ada)
    halaqah_baru = sorted({b["halaqah"] for b in baru} - halaqah_ada)

    try:
        for nama in halaqah_baru:
            db.session.add(Halaqah(name=nama, status="active"))
        for b in baru:
            db.session.add(Student(
                name=b["name"],
                halaqah=b["halaqah"],
                wali_name=b["wali_name"],
                wali_phone=b["wali_phone"],
            ))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Gagal mengimpor %s santri dari CSV", len(baru))
        raise

    logger.info("Impor CSV: %s santri baru, %s duplikat, %s halaqah baru", len(baru), duplikat, len(halaqah_baru))
    return {
        "diimpor": len(baru),
        "duplikat": duplikat,
        "tidak_valid": [b for b in daftar if not b["valid"]],
        "halaqah_baru": halaqah_baru,
    }


# ======================== KURIKULUM ========================
def baca_csv_kurikulum(teks, kategori):
    """
    CSV materi tanpa header wajib. Surah: nama, nomor surah, ayat awal,
    ayat akhir, halaman awal, halaman akhir. Kitab: nama, jumlah halaman.
    Baris pertama yang memuat "nama" / "name" dianggap header.
    """
    kolom = KOLOM_SURAH if kategori == "Surah" else KOLOM_KITAB
    df = _baca_tabel(teks, header=None)
    df = df.reindex(columns=range(len(kolom))).fillna("")
    df.columns = kolom

    if len(df) and any(k in str(df.iloc[0]["name"]).lower() for k in ("nama", "name")):
        df = df.iloc[1:]

    hasil = []
    for baris in df.to_dict("records"):
        nama = str(baris.pop("name")).strip()
        if not nama:
            continue
        item = {"category": kategori, "name": nama}
        item.update({k: _angka(v) for k, v in baris.items()})
        hasil.append(item)
    return hasil


def impor_kurikulum(daftar):
    try:
        for item in daftar:
            db.session.add(CurriculumItem(**item))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Gagal mengimpor materi dari CSV")
        raise
    return len(daftar)

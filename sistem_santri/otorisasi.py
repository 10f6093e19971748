# ======================== OTORISASI RUTE ========================
# Dua jenis identitas yang terpisah: staf (admin / ustadz / super admin) dan
# wali santri. Identitas ditentukan sekali per request lalu dicocokkan ke
# tabel kebijakan rute di bawah.

from collections import namedtuple

Staf = namedtuple("Staf", ["profile_id", "role"])
Wali = namedtuple("Wali", ["wali_id", "phone", "name"])
Keputusan = namedtuple("Keputusan", ["izinkan", "alihkan_ke"])

JENIS_STAF = "staf"
JENIS_WALI = "wali"
JENIS_APA_SAJA = "apa_saja"

LOGIN_STAF = "/login"
LOGIN_WALI = "/wali/login"
BERANDA_ADMIN = "/dashboard/admin"
BERANDA_GURU = "/dashboard/guru"
BERANDA_WALI = "/dashboard/wali"

PREFIX_WALI = "/dashboard/wali"

# (prefix rute, jenis identitas, peran staf yang boleh); prefix terpanjang dulu
KEBIJAKAN_RUTE = (
    ("/dashboard/wali", JENIS_WALI, None),
    ("/dashboard/admin/kelola-admin", JENIS_STAF, frozenset(["super_admin"])),
    ("/dashboard/admin", JENIS_STAF, frozenset(["admin", "super_admin"])),
    ("/dashboard/guru", JENIS_STAF, frozenset(["ustadz", "super_admin"])),
    ("/dashboard", JENIS_APA_SAJA, None),
    ("/pengaturan", JENIS_APA_SAJA, None),
)

IZINKAN = Keputusan(True, None)


def _cocok(path, prefix):
    return path == prefix or path.startswith(prefix + "/")


def cari_kebijakan(path):
    """Aturan pertama yang prefix-nya cocok, atau None untuk rute publik."""
    for aturan in KEBIJAKAN_RUTE:
        if _cocok(path, aturan[0]):
            return aturan
    return None


def resolve_identitas(staf, wali, path):
    """
    Memilih satu identitas aktif untuk request ini. Sesi wali diutamakan di
    bagian wali, selain itu sesi staf diutamakan.
    """
    if wali is not None and _cocok(path, PREFIX_WALI):
        return wali
    if staf is not None:
        return staf
    return wali


def beranda_untuk(identitas):
    if isinstance(identitas, Wali):
        return BERANDA_WALI
    if isinstance(identitas, Staf):
        if identitas.role == "admin":
            return BERANDA_ADMIN
        if identitas.role in ("ustadz", "super_admin"):
            return BERANDA_GURU
    return LOGIN_STAF


def periksa_akses(identitas, path):
    aturan = cari_kebijakan(path)
    if aturan is None:
        return IZINKAN
    _, jenis, peran = aturan

    if jenis == JENIS_WALI:
        if isinstance(identitas, Wali):
            return IZINKAN
        return Keputusan(False, LOGIN_WALI)

    if identitas is None:
        return Keputusan(False, LOGIN_STAF)

    if jenis == JENIS_APA_SAJA:
        return IZINKAN

    if isinstance(identitas, Wali):
        return Keputusan(False, BERANDA_WALI)

    if peran is None or identitas.role in peran:
        return IZINKAN
    return Keputusan(False, beranda_untuk(identitas))

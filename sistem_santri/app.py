# ======================== IMPORTS & SETUP APLIKASI ========================
import click
from flask import Flask, g, redirect, request, session, url_for
from sqlalchemy.exc import SQLAlchemyError

from sistem_santri import layanan, otorisasi
from sistem_santri.app_logger import get_logger
from sistem_santri.config import Config
from sistem_santri.helpers import ambil_input, respon
from sistem_santri.models import PERAN_STAF, Profile, WaliSantri, db
from sistem_santri.views_admin import admin_bp
from sistem_santri.views_guru import guru_bp
from sistem_santri.views_wali import wali_bp

logger = get_logger(__name__)

app = Flask(__name__)
app.config.from_object(Config)
db.init_app(app)

app.register_blueprint(admin_bp)
app.register_blueprint(guru_bp)
app.register_blueprint(wali_bp)

with app.app_context():
    db.create_all()

# Kunci sesi yang disimpan di cookie
KUNCI_STAF = "staf_id"
KUNCI_WALI = "wali_session"
UKURAN_FONT = ("kecil", "normal", "besar")
MODE_TAMPILAN = ("grid", "list")


# ======================== IDENTITAS & OTORISASI ========================
def muat_staf():
    """Profil staf dari sesi. Sesi tanpa profil dianggap belum login."""
    staf_id = session.get(KUNCI_STAF)
    if staf_id is None:
        return None
    profile = db.session.get(Profile, staf_id)
    if profile is None:
        logger.warning("User login tetapi profil %s tidak ditemukan", staf_id)
        session.pop(KUNCI_STAF, None)
    return profile


def muat_wali():
    data = session.get(KUNCI_WALI)
    if not data:
        return None
    wali = db.session.get(WaliSantri, data.get("id"))
    if wali is None or not wali.is_active:
        session.pop(KUNCI_WALI, None)
        return None
    return wali


@app.before_request
def periksa_sesi():
    if request.endpoint == "static":
        return None

    g.profile = muat_staf()
    g.wali = muat_wali()

    staf = otorisasi.Staf(g.profile.id, g.profile.role) if g.profile else None
    wali = otorisasi.Wali(g.wali.id, g.wali.phone, g.wali.name) if g.wali else None
    g.identitas = otorisasi.resolve_identitas(staf, wali, request.path)

    keputusan = otorisasi.periksa_akses(g.identitas, request.path)
    if not keputusan.izinkan:
        return redirect(keputusan.alihkan_ke)
    return None


@app.errorhandler(SQLAlchemyError)
def gagal_database(e):
    db.session.rollback()
    logger.exception("Kesalahan database pada %s", request.path)
    return respon("danger", "Terjadi kesalahan pada server. Silakan coba lagi.", data=[], code=500)


# ======================== HALAMAN PUBLIK ========================
@app.route("/")
def beranda():
    return respon("success", "Sistem Manajemen Santri", data={
        "login_staf": url_for("login"),
        "login_wali": url_for("login_wali"),
    })


# ======================== AUTENTIKASI STAF ========================
@app.route("/login", methods=["GET", "POST"])
def login():
    """Rute untuk halaman login staf (admin / ustadz)."""
    if request.method == "POST":
        data = ambil_input()
        profile = layanan.login_staf(data.get("email"), data.get("password"))
        if profile is None:
            return respon("danger", "Email atau password salah. Silakan coba lagi.", code=401)
        session[KUNCI_STAF] = profile.id
        logger.info("Staf %s login sebagai %s", profile.email, profile.role)
        return redirect(url_for("dashboard"))

    if g.profile:
        return redirect(url_for("dashboard"))
    return respon("success", "Silakan login dengan email dan password.")


@app.route("/logout")
def logout():
    """Rute untuk logout staf, menghapus sesi staf saja."""
    session.pop(KUNCI_STAF, None)
    return redirect(url_for("login"))


# ======================== AUTENTIKASI WALI ========================
@app.route("/wali/login", methods=["GET", "POST"])
def login_wali():
    if request.method == "POST":
        data = ambil_input()
        wali = layanan.login_wali(data.get("phone", ""), data.get("password", ""))
        if wali is None:
            return respon("danger", "Nomor HP atau password salah", code=401)
        session[KUNCI_WALI] = {"id": wali.id, "phone": wali.phone, "name": wali.name}
        logger.info("Wali %s login", wali.phone)
        return redirect(otorisasi.BERANDA_WALI)

    if g.wali:
        return redirect(otorisasi.BERANDA_WALI)
    return respon("success", "Silakan login dengan nomor HP dan password.")


@app.route("/wali/logout")
def logout_wali():
    session.pop(KUNCI_WALI, None)
    return redirect(url_for("login_wali"))


# ======================== DASHBOARD ========================
@app.route("/dashboard")
def dashboard():
    """Mengalihkan ke dashboard sesuai peran."""
    return redirect(otorisasi.beranda_untuk(g.identitas))


@app.route("/pengaturan/tampilan", methods=["GET", "POST"])
def pengaturan_tampilan():
    """Preferensi ukuran huruf dan mode tampilan, disimpan di cookie sesi."""
    if request.method == "POST":
        data = ambil_input()
        ukuran = data.get("font_size", session.get("font_size", "normal"))
        mode = data.get("view_mode", session.get("view_mode", "grid"))
        if ukuran not in UKURAN_FONT or mode not in MODE_TAMPILAN:
            return respon("danger", "Pilihan tampilan tidak valid", code=400)
        session["font_size"] = ukuran
        session["view_mode"] = mode
        return respon("success", "Pengaturan tampilan disimpan", data={"font_size": ukuran, "view_mode": mode})

    return respon("success", "Pengaturan tampilan", data={
        "font_size": session.get("font_size", "normal"),
        "view_mode": session.get("view_mode", "grid"),
    })


# ======================== PERINTAH CLI ========================
@app.cli.command("buat-staf")
@click.argument("email")
@click.argument("nama")
@click.argument("peran", type=click.Choice(PERAN_STAF))
@click.password_option()
def buat_staf(email, nama, peran, password):
    """Membuat akun staf baru, misalnya super admin pertama pada database kosong."""
    if len(password) < 6:
        raise click.BadParameter("Password minimal 6 karakter", param_hint="--password")
    if layanan.cari_profil(email):
        raise click.ClickException(f"Email {email} sudah terdaftar")

    profile = layanan.buat_profil(email, nama, peran, password)
    logger.info("Akun staf %s dibuat lewat CLI sebagai %s", profile.email, peran)
    click.echo(f"Akun {profile.email} ({peran}) berhasil dibuat")


# ======================== MAIN ========================
if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0")

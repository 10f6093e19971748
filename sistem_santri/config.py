# ======================== KONFIGURASI APLIKASI ========================
# Semua nilai dibaca dari environment agar bisa diganti tanpa mengubah kode.

import os


class Config:
    SECRET_KEY = os.environ.get("SESSION_SECRET", "santri_secret")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///santri.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Token Fonnte untuk notifikasi WhatsApp; kosong berarti fitur pengingat mati
    FONNTE_TOKEN = os.environ.get("FONNTE_TOKEN", "")
    FONNTE_URL = os.environ.get("FONNTE_URL", "https://api.fonnte.com/send")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Jumlah hari riwayat kehadiran yang ditampilkan di dashboard wali
    KEHADIRAN_HARI_WALI = int(os.environ.get("KEHADIRAN_HARI_WALI", "7"))

"""Sistem Manajemen Santri: dashboard admin, ustadz, dan wali santri."""

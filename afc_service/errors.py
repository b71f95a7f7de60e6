# afc_service/errors.py
"""Exception domain yang dipetakan ke respons JSON oleh middleware."""

from __future__ import annotations


class ServiceError(Exception):
    status_code = 500
    default_message = "Terjadi kesalahan"

    def __init__(self, message: str | None = None, **extra):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.extra = extra


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Data tidak valid"


class AuthError(ServiceError):
    status_code = 401
    default_message = "Sesi tidak valid, silakan login kembali"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Anda tidak memiliki akses"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Data tidak ditemukan"


class IllegalTransition(ServiceError):
    status_code = 409
    default_message = "Perubahan status tidak diizinkan"


class StoreError(ServiceError):
    status_code = 502
    default_message = "Gagal menghubungi penyimpanan data"


class UpstreamTimeout(ServiceError):
    status_code = 504
    default_message = "Timeout - koneksi terlalu lambat"

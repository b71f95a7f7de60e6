# afc_service/db/models.py
"""
Cermin tabel Supabase dalam SQLAlchemy.

Kolom status sengaja disimpan sebagai String (sama seperti tabel hosted);
validasi status dilakukan di afc_service.domain.status.
"""
import uuid
from sqlalchemy import (
    CHAR, Column, String, DateTime, Integer, Text, Boolean, Index, func
)
from . import Base


def _uuid() -> str:
    return str(uuid.uuid4())


# ===== Models =====

class Booking(Base):
    __tablename__ = "bookings"
    id = Column(CHAR(36), primary_key=True, default=_uuid)
    booking_id = Column(String(64), index=True)

    nama = Column(String(255))
    no_hp = Column(String(32), index=True)
    alamat = Column(Text)
    cluster = Column(String(128))

    jenis_layanan = Column(String(128))
    jumlah_unit = Column(Integer)
    merk = Column(String(128))
    tanggal_kunjungan = Column(String(32))
    waktu_kunjungan = Column(String(32))
    teknisi = Column(String(64))
    kode_teknisi = Column(String(64))
    tanggal_selesai = Column(String(32))

    status = Column(String(32), default="pending", index=True)
    catatan = Column(Text)
    catatan_reschedule = Column(Text)
    catatan_internal = Column(Text)
    kode_referral = Column(String(64))
    foto = Column(Text)
    timestamp = Column(String(64))

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class WorkReport(Base):
    __tablename__ = "work_reports"
    id = Column(CHAR(36), primary_key=True, default=_uuid)
    booking_id = Column(String(64), index=True)

    nama_pelanggan = Column(String(255), nullable=False)
    alamat_pelanggan = Column(Text)
    no_wa_pelanggan = Column(String(32), nullable=False, index=True)

    no_unit = Column(String(32))
    merk = Column(String(128))
    spek_unit = Column(String(255))
    foto_url = Column(Text)
    units = Column(Text)
    tanggal_dikerjakan = Column(String(32))
    jenis_pekerjaan = Column(String(128), nullable=False)
    teknisi = Column(String(64), nullable=False)
    helper = Column(String(128))
    keterangan = Column(Text)
    internal_notes = Column(Text)
    keterangan_komplain = Column(Text)

    status = Column(String(32), default="pending_approval", index=True)
    approved_by = Column(String(128))
    approved_at = Column(DateTime)
    approval_notes = Column(Text)
    rejection_reason = Column(Text)

    referral_counted = Column(Boolean, nullable=False, default=False)
    total_referrals = Column(Integer, default=0)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_work_reports_booking_referral", "booking_id", "referral_counted"),
    )


class SystemAccount(Base):
    __tablename__ = "system_accounts"
    id = Column(CHAR(36), primary_key=True, default=_uuid)
    username = Column(String(64), nullable=False, unique=True)
    password = Column(String(128), nullable=False)
    name = Column(String(128), nullable=False)
    role = Column(String(32), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class TechnicianCode(Base):
    __tablename__ = "technician_codes"
    id = Column(CHAR(36), primary_key=True, default=_uuid)
    code = Column(String(16), nullable=False, unique=True)
    name = Column(String(128))
    account_id = Column(CHAR(36))
    active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, default=0)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class Partner(Base):
    __tablename__ = "partners"
    partner_id = Column(String(64), primary_key=True)
    nama_lengkap = Column(String(255), nullable=False)
    nomor_whatsapp = Column(String(32), nullable=False)
    email = Column(String(255))
    alamat = Column(Text)
    tanggal_bergabung = Column(String(32))
    status = Column(String(32), default="active")
    total_poin = Column(Integer, default=0)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class Customer(Base):
    __tablename__ = "customers"
    id = Column(CHAR(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    phone_number = Column(String(32), nullable=False, index=True)
    address = Column(Text, nullable=False, default="")
    cluster = Column(String(128))

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class ApprovalStep(Base):
    """Jejak setiap langkah saga persetujuan per booking."""
    __tablename__ = "approval_steps"
    id = Column(CHAR(36), primary_key=True, default=_uuid)
    booking_id = Column(String(64), nullable=False, index=True)
    report_id = Column(CHAR(36))
    step = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False)
    detail = Column(Text)
    attempts = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


TABLES = {
    "bookings": Booking,
    "work_reports": WorkReport,
    "system_accounts": SystemAccount,
    "technician_codes": TechnicianCode,
    "partners": Partner,
    "customers": Customer,
    "approval_steps": ApprovalStep,
}

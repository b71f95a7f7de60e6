# afc_service/services/messaging.py
"""Gateway WhatsApp keluar dan penyusun isi pesan."""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

import requests

from ..utils.timez import format_ddmmyyyy

logger = logging.getLogger(__name__)


def normalize_phone(phone: str | None) -> str:
    """0812… -> 62812…, +62… -> 62…, selain itu diberi awalan 62."""
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        return ""
    if digits.startswith("0"):
        return "62" + digits[1:]
    if digits.startswith("62"):
        return digits
    return "62" + digits


def mask_phone(phone: str | None) -> str:
    """Penyamaran tampilan untuk teknisi (bukan kontrol akses)."""
    text = phone or ""
    if len(text) <= 6:
        return "*" * len(text)
    return text[:4] + "*" * (len(text) - 6) + text[-2:]


class WhatsAppGateway:
    """
    Kirim pesan lewat endpoint HTTP gateway WhatsApp.
    Kegagalan hanya dicatat; pemanggil menerima False.
    """

    def __init__(self, url: str | None, api_key: str | None, session_id: str | None = "f1", timeout: int = 15):
        self.url = url
        self.api_key = api_key
        self.session_id = session_id
        self.timeout = timeout

    def send(self, number: str, message: str) -> bool:
        target = normalize_phone(number)
        if not target:
            logger.warning("Nomor WhatsApp kosong; pesan dilewati.")
            return False
        if not self.url:
            logger.warning("WA_API_URL tidak di-set; pesan ke %s tidak dikirim.", target)
            return False
        try:
            response = requests.post(
                self.url,
                headers={"Content-Type": "application/json", "x-api-key": self.api_key or ""},
                json={"sessionId": self.session_id, "number": target, "message": message},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Gagal kirim WA ke %s: %s", target, e)
            return False
        if response.ok:
            logger.info("Pesan WA terkirim ke %s", target)
            return True
        logger.warning("Gagal kirim WA ke %s: %s - %s", target, response.status_code, response.text[:200])
        return False


# ---------- Penyusun pesan ----------

def chat_link(phone: str, message: str) -> str:
    return f"https://wa.me/{normalize_phone(phone)}?text={quote(message)}"


def confirmation_message(booking: dict, brand: str = "AFC Service") -> str:
    return (
        f"Halo {booking.get('nama') or ''}, booking Anda telah dikonfirmasi!\n\n"
        f"Detail:\n"
        f"📅 Tanggal: {booking.get('tanggal_kunjungan') or '-'}\n"
        f"⏰ Waktu: {booking.get('waktu_kunjungan') or '-'}\n"
        f"🏠 Alamat: {booking.get('alamat') or '-'}\n"
        f"🔧 Layanan: {booking.get('jenis_layanan') or '-'}\n\n"
        f"Terima kasih telah mempercayai {brand}!"
    )


def reschedule_message(booking: dict, new_date: str, reason: str | None, brand: str) -> str:
    return (
        f"*RESCHEDULE KUNJUNGAN TEKNISI*\n"
        f"*Kode Booking* : {booking.get('booking_id') or 'N/A'}\n\n"
        f"Yth. Bapak/Ibu *{booking.get('nama') or ''}*\n"
        f"*Nomor HP* : {booking.get('no_hp') or '-'}\n"
        f"*Alamat* : {booking.get('alamat') or '-'}\n\n"
        f"Sesuai konfirmasi Bapak/Ibu bahwa jadwal kunjungan teknisi telah kami "
        f"lakukan penjadwalan ulang (RESCHEDULE).\n\n"
        f"📅 *Jadwal Kunjungan Baru:*\n{format_ddmmyyyy(new_date)}\n\n"
        f"📝 *Keterangan:*\n{reason or 'Penjadwalan ulang sesuai kesepakatan'}\n\n"
        f"Terima kasih, semoga Bapak/Ibu selalu dalam keadaan sehat.\n\n*{brand}*"
    )


def _unit_lines(report: dict) -> list[str]:
    lines = []
    if report.get("no_unit"):
        lines.append(f"• No Unit: *{report['no_unit']}*")
    if report.get("merk"):
        lines.append(f"• Merk: *{report['merk']}*")
    if report.get("spek_unit"):
        lines.append(f"• Model: *{report['spek_unit']}*")
    return lines


def work_report_message(reports: list[dict], brand: str) -> str:
    """Gabungkan semua unit satu booking menjadi satu pesan laporan."""
    head = reports[0]
    parts = [
        f"*LAPORAN KERJA TEKNISI {brand}*",
        f"Kode Booking : *{head.get('booking_id') or 'Manual'}*",
        "",
        f"📅 Tanggal : *{head.get('tanggal_dikerjakan') or '-'}*",
        f"👤 Nama Pelanggan : *Bpk/Ibu {head.get('nama_pelanggan') or ''}*",
        f"📱 No HP : *{head.get('no_wa_pelanggan') or '-'}*",
        f"📍 Alamat : *{head.get('alamat_pelanggan') or '-'}*",
        f"👨‍🔧 Nama Teknisi : *{head.get('teknisi') or '-'}*",
        f"📦 Total Unit : *{len(reports)}* unit",
    ]
    if len(reports) > 1:
        parts += ["", "🔧 DETAIL SEMUA UNIT:"]
        for idx, r in enumerate(reports, 1):
            parts += ["", f"*UNIT {idx}:*"]
            if r.get("jenis_pekerjaan"):
                parts.append(f"📋 Layanan: *{r['jenis_pekerjaan']}*")
            parts += _unit_lines(r)
            note = (r.get("keterangan") or "").strip()
            if note:
                parts.append(f"📝 Catatan: *{note}*")
    else:
        if head.get("jenis_pekerjaan"):
            parts += ["", f"📋 DETAIL LAYANAN : *{head['jenis_pekerjaan']}*"]
        unit = _unit_lines(head)
        if unit:
            parts += ["", "🔧 DETAIL UNIT:"] + unit
        note = (head.get("keterangan") or "").strip()
        if note:
            parts += ["", "📝 CATATAN TEKNISI :", f"*{note}*"]
    parts += [
        "",
        "Status: *✅ Selesai dikerjakan*",
        "",
        "Terima kasih telah mempercayakan perawatan & perbaikan AC kepada kami.",
        "",
        f"*{brand}*",
    ]
    return "\n".join(parts)


def affiliate_message(partner: dict, brand: str) -> str:
    return (
        f"🎉 *SELAMAT! POIN AFFILIATE ANDA BERTAMBAH* 🎉\n\n"
        f"Halo *{partner.get('nama_lengkap') or ''}*,\n\n"
        f"🏆 ANDA MENDAPAT +1 POIN!\n\n"
        f"Pelanggan yang Anda referensikan telah selesai dikerjakan.\n\n"
        f"Terima kasih telah menjadi partner affiliate {brand}.\n\n"
        f"Referensikan terus teman dan keluarga anda yang lain untuk mendapat lebih banyak poin!\n\n"
        f"*{brand}*\nPartner Affiliate Program"
    )


def reminder_message(booking: dict, brand: str) -> str:
    return (
        f"*REMINDER*\n\n"
        f"Bapak/Ibu *{booking.get('nama') or ''}*,\n\n"
        f"Teknisi kami *BESOK* akan melakukan kunjungan *SESUAI* dengan tanggal booking "
        f"Bapak/Ibu ke alamat *{booking.get('alamat') or '-'}*\n\n"
        f"Mohon pastikan :\n"
        f"✅ Ada orang yang di rumah saat teknisi datang\n"
        f"✅ Jika ada perubahan, mohon *SEGERA* hubungi kami\n\n"
        f"Terima kasih🙏\n\n*{brand}*"
    )

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import settings
from app.models.booking import BookingDetails, BookingStatus
from app.services.intervals import as_utc

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send_booking_confirmation(self, details: BookingDetails) -> bool: ...

    async def send_booking_notification(self, details: BookingDetails) -> bool: ...

    async def send_booking_cancellation(self, details: BookingDetails, reason: str | None = None) -> bool: ...


def _send_email_sync(to_email: str, subject: str, html_body: str, reply_to: str | None = None) -> bool:
    """Send email via SMTP (blocking). Run it off the event loop."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send")
        return False
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Email sent to %s", to_email)
        return True
    except Exception as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)
        return False


def _html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _host_zone(details: BookingDetails) -> ZoneInfo:
    try:
        return ZoneInfo(details.host.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(settings.default_timezone)


def format_booking_time(details: BookingDetails) -> tuple[str, str]:
    """(date, "HH:MM – HH:MM (zone)") in the host's timezone."""
    tz = _host_zone(details)
    start = as_utc(details.booking.start_time).astimezone(tz)
    end = as_utc(details.booking.end_time).astimezone(tz)
    return start.strftime("%A, %B %d, %Y"), f"{start:%H:%M} – {end:%H:%M} ({tz.key})"


def _location_line(details: BookingDetails) -> str:
    location = details.event_type.location or {}
    value = location.get("address") or location.get("link") or location.get("phone") or location.get("instructions")
    return _html_escape(value) if value else ""


def _layout(title: str, heading: str, intro: str, rows: list[tuple[str, str]], extra: str = "") -> str:
    details_html = "".join(
        f"""
                    <p style="margin:12px 0 0 0;font-size:12px;text-transform:uppercase;letter-spacing:0.5px;color:#6b7280;">{label}</p>
                    <p style="margin:0;font-size:16px;font-weight:600;color:#111827;">{value}</p>"""
        for label, value in rows
        if value
    )
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
</head>
<body style="margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background-color:#f3f4f6;">
    <tr>
      <td align="center" style="padding:40px 16px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:560px;background:#ffffff;border-radius:12px;overflow:hidden;">
          <tr>
            <td style="padding:32px 32px 24px 32px;">
              <h1 style="margin:0 0 8px 0;font-size:22px;font-weight:600;color:#111827;">{heading}</h1>
              <p style="margin:0 0 24px 0;font-size:15px;color:#6b7280;">{intro}</p>
              <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background:#f9fafb;border-radius:8px;margin-bottom:24px;">
                <tr>
                  <td style="padding:8px 24px 20px 24px;">{details_html}
                  </td>
                </tr>
              </table>
              {extra}
            </td>
          </tr>
          <tr>
            <td style="padding:24px 32px 32px 32px;background:#f9fafb;border-top:1px solid #e5e7eb;">
              <p style="margin:0;font-size:13px;color:#6b7280;">{settings.site_name}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def _notes_section(label: str, text: str | None) -> str:
    if not text:
        return ""
    return f"""
              <p style="margin:0 0 8px 0;color:#374151;"><strong>{label}</strong></p>
              <p style="margin:0 0 24px 0;color:#6b7280;font-size:14px;">{_html_escape(text)}</p>"""


def _host_name(details: BookingDetails) -> str:
    return _html_escape(details.host.full_name or details.host.email)


def build_confirmation_html(details: BookingDetails) -> str:
    """Guest-facing mail. Pending bookings say the host still has to accept."""
    booking, event_type = details.booking, details.event_type
    date_str, time_str = format_booking_time(details)
    guest = _html_escape(booking.guest_name)
    if booking.status == BookingStatus.PENDING:
        heading = "Booking request received"
        intro = f"Hi {guest}, {_host_name(details)} will confirm your request shortly."
    else:
        heading = "Booking confirmed"
        intro = f"Hi {guest}, your meeting with {_host_name(details)} is booked."
    rows = [
        ("Event", _html_escape(event_type.title)),
        ("Date", date_str),
        (f"Time ({event_type.duration} minutes)", time_str),
        ("Location", _location_line(details)),
    ]
    return _layout(heading, heading, intro, rows, _notes_section("Your notes:", booking.guest_notes))


def build_notification_html(details: BookingDetails) -> str:
    """Host-facing mail about a new booking."""
    booking, event_type = details.booking, details.event_type
    date_str, time_str = format_booking_time(details)
    heading = "New booking request" if booking.status == BookingStatus.PENDING else "New booking"
    rows = [
        ("Event", _html_escape(event_type.title)),
        ("Date", date_str),
        ("Time", time_str),
        ("Guest", _html_escape(booking.guest_name)),
        ("Email", _html_escape(booking.guest_email)),
        ("Phone", _html_escape(booking.guest_phone or "")),
    ]
    intro = f"{_html_escape(booking.guest_name)} booked {_html_escape(event_type.title)}."
    return _layout(heading, heading, intro, rows, _notes_section("Guest notes:", booking.guest_notes))


def build_cancellation_html(details: BookingDetails, reason: str | None = None) -> str:
    booking, event_type = details.booking, details.event_type
    date_str, time_str = format_booking_time(details)
    heading = "Booking cancelled"
    intro = f"Hi {_html_escape(booking.guest_name)}, your booking with {_host_name(details)} has been cancelled."
    rows = [
        ("Event", _html_escape(event_type.title)),
        ("Date", date_str),
        ("Time", time_str),
    ]
    return _layout(heading, heading, intro, rows, _notes_section("Reason:", reason))


class EmailNotifier:
    """SMTP-backed notifier. Sending runs in a worker thread; failures only log."""

    async def _send(self, to_email: str, subject: str, html: str, reply_to: str | None = None) -> bool:
        return await asyncio.to_thread(_send_email_sync, to_email, subject, html, reply_to)

    async def send_booking_confirmation(self, details: BookingDetails) -> bool:
        title = details.event_type.title
        if details.booking.status == BookingStatus.PENDING:
            subject = f"Booking request received: {title}"
        else:
            subject = f"Booking confirmed: {title} with {details.host.full_name or details.host.email}"
        return await self._send(
            details.booking.guest_email, subject, build_confirmation_html(details), reply_to=details.host.email
        )

    async def send_booking_notification(self, details: BookingDetails) -> bool:
        subject = f"New booking: {details.event_type.title} with {details.booking.guest_name}"
        return await self._send(
            details.host.email, subject, build_notification_html(details), reply_to=details.booking.guest_email
        )

    async def send_booking_cancellation(self, details: BookingDetails, reason: str | None = None) -> bool:
        subject = f"Booking cancelled: {details.event_type.title}"
        return await self._send(
            details.booking.guest_email, subject, build_cancellation_html(details, reason), reply_to=details.host.email
        )

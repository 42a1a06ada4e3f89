import logging
import smtplib
from collections.abc import Sequence
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.core.config import settings

logger = logging.getLogger(__name__)

Detail = tuple[str, str]


def _send_email_sync(to_email: str, subject: str, text_body: str, html_body: str) -> None:
    """Send email via SMTP (blocking). Run from a worker thread or background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping %r to %s", subject, to_email)
        return
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    # Clients show the last part they can render
    msg.attach(MIMEText(text_body, "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Appointment email %r sent to %s", subject, to_email)
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("Failed to send appointment email to %s: %s", to_email, e)


def _html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _detail_rows(details: Sequence[Detail]) -> str:
    rows = []
    for label, value in details:
        if not value:
            continue
        rows.append(
            '<tr><td style="padding:6px 0;font-size:14px;color:#6b7280;width:96px;">'
            f"{_html_escape(label)}</td>"
            '<td style="padding:6px 0;font-size:14px;color:#111827;font-weight:600;">'
            f"{_html_escape(value)}</td></tr>"
        )
    if not rows:
        return ""
    return (
        '<table role="presentation" cellspacing="0" cellpadding="0" '
        'style="width:100%;margin:0 0 24px 0;border-top:1px solid #f1e4d8;border-bottom:1px solid #f1e4d8;">'
        + "".join(rows)
        + "</table>"
    )


def build_notification_html(
    recipient_name: str, headline: str, body: str, details: Sequence[Detail] = ()
) -> str:
    """Appointment notification card: headline, message, booking details, dashboard link."""
    logo = ""
    if settings.email_logo_url:
        logo = (
            f'<img src="{settings.email_logo_url}" alt="{_html_escape(settings.site_name)}" '
            'width="96" style="display:block;margin:0 auto 20px auto;" />'
        )
    greeting = _html_escape(recipient_name) or "there"
    dashboard = f"{settings.site_url.rstrip('/')}/dashboard/appointments"
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{_html_escape(headline)}</title>
</head>
<body style="margin:0;padding:0;background:#faf6f2;font-family:Helvetica,Arial,sans-serif;">
  <div style="max-width:520px;margin:0 auto;padding:32px 16px;">
    {logo}
    <div style="background:#ffffff;border-radius:10px;padding:28px;border:1px solid #f1e4d8;">
      <h1 style="margin:0 0 16px 0;font-size:20px;color:#3f2a1d;">{_html_escape(headline)}</h1>
      <p style="margin:0 0 12px 0;font-size:15px;color:#3f2a1d;">Hi {greeting},</p>
      <p style="margin:0 0 20px 0;font-size:15px;line-height:1.5;color:#4b3b30;">{_html_escape(body)}</p>
      {_detail_rows(details)}
      <a href="{dashboard}" style="display:inline-block;padding:10px 18px;border-radius:6px;background:#7c3f1d;color:#ffffff;font-size:14px;text-decoration:none;">View appointment</a>
    </div>
    <p style="margin:20px 0 0 0;text-align:center;font-size:12px;color:#8c7b70;">
      {_html_escape(settings.site_name)} &middot; {_html_escape(settings.contact_email)}
    </p>
  </div>
</body>
</html>
"""


def build_notification_text(
    recipient_name: str, body: str, details: Sequence[Detail] = ()
) -> str:
    lines = [f"Hi {recipient_name or 'there'},", "", body, ""]
    lines += [f"{label}: {value}" for label, value in details if value]
    lines += ["", f"{settings.site_url.rstrip('/')}/dashboard/appointments", f"- {settings.site_name}"]
    return "\n".join(lines)


def send_notification_email(
    to_email: str,
    recipient_name: str | None,
    subject: str,
    headline: str,
    body: str,
    details: Sequence[Detail] = (),
) -> None:
    """Compose and send one appointment notification (blocking)."""
    name = recipient_name or ""
    _send_email_sync(
        to_email,
        f"{settings.site_name}: {subject}",
        build_notification_text(name, body, details),
        build_notification_html(name, headline, body, details),
    )

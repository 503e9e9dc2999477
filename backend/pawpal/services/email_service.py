# Overview: Service-layer operations for email; composes notification mail, queues it and delivers over SMTP.

"""
Email Service

Mail is never sent inline with a database change. Callers queue an
EmailOutbox row in the same transaction as the change; after commit,
dispatch_pending() hands the queued ids to a small thread pool that
delivers them over SMTP.

DELIVERY:
- At-least-once: a row is marked sent only after the SMTP server accepts it
- A failed send marks the row failed with the error; `flask email flush` retries
- Delivery problems are logged and never surface to the HTTP caller
"""

import smtplib
import ssl
from concurrent.futures import ThreadPoolExecutor
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, g, render_template
from sqlalchemy import inspect

from ..extensions import db
from ..models import EmailOutbox
from ..models.notifications import OUTBOX_PENDING, OUTBOX_SENT, OUTBOX_FAILED
from pawpal.time_utils import utcnow


TYPE_COLORS = {
    "success": "#10b981",
    "error": "#ef4444",
    "info": "#3b82f6",
    "warning": "#f59e0b",
    "order_confirmed": "#8b5cf6",
    "appointment_confirmed": "#8b5cf6",
}

# Notification types mapped onto the color scheme above
TYPE_ALIASES = {
    "payment_verified": "success",
    "receipt_rejected": "error",
    "document_verified": "success",
    "document_rejected": "error",
    "documents_verified": "success",
    "appointment_cancelled": "warning",
    "appointment_completed": "success",
    "order_cancelled": "warning",
    "order_deleted": "warning",
    "order_refunded": "warning",
}

MAX_ATTEMPTS = 5

_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="pawpal-mail")


class EmailDeliveryError(Exception):
    """Raised when the SMTP server rejects or cannot accept a message."""
    pass


def color_for(notification_type: str) -> str:
    key = TYPE_ALIASES.get(notification_type, notification_type)
    return TYPE_COLORS.get(key, TYPE_COLORS["info"])


def render_notification(
    *,
    user_name: str,
    title: str,
    message: str,
    notification_type: str = "info",
    action_url: str | None = None,
    action_text: str | None = None,
) -> tuple[str, str, str]:
    """Returns (subject, html_body, text_body) for a notification email."""
    context = {
        "user_name": user_name,
        "title": title,
        "message": message,
        "color": color_for(notification_type),
        "action_url": action_url,
        "action_text": action_text,
        "year": utcnow().year,
    }
    html = render_template("email/notification.html", **context)
    text = render_template("email/notification.txt", **context)
    return f"{title} - Pawpal", html, text


def queue_email(*, to: str, subject: str, html: str, text: str) -> EmailOutbox:
    """
    Stage an outgoing message in the current transaction.

    Nothing is sent until the caller commits and calls dispatch_pending().
    """
    row = EmailOutbox(
        to_address=to,
        subject=subject,
        html_body=html,
        text_body=text,
        status=OUTBOX_PENDING,
        attempts=0,
    )
    db.session.add(row)
    g.setdefault("queued_emails", []).append(row)
    return row


def queue_notification_email(
    *,
    to: str,
    user_name: str,
    title: str,
    message: str,
    notification_type: str = "info",
    action_url: str | None = None,
    action_text: str | None = None,
) -> EmailOutbox:
    subject, html, text = render_notification(
        user_name=user_name,
        title=title,
        message=message,
        notification_type=notification_type,
        action_url=action_url,
        action_text=action_text,
    )
    return queue_email(to=to, subject=subject, html=html, text=text)


def _build_message(row: EmailOutbox, sender: str) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = row.subject
    msg["From"] = sender
    msg["To"] = row.to_address
    msg.attach(MIMEText(row.text_body, "plain", "utf-8"))
    msg.attach(MIMEText(row.html_body, "html", "utf-8"))
    return msg


def send_via_smtp(row: EmailOutbox) -> None:
    """
    Deliver one outbox row using the configured SMTP server.

    SMTP_SECURE=true uses implicit TLS (port 465); otherwise STARTTLS is
    attempted when the server offers it.
    """
    config = current_app.config
    host = config.get("SMTP_HOST")
    if not host:
        raise EmailDeliveryError("SMTP_HOST is not configured")

    port = config.get("SMTP_PORT", 587)
    context = ssl.create_default_context()
    msg = _build_message(row, config.get("EMAIL_FROM"))

    try:
        if config.get("SMTP_SECURE"):
            server = smtplib.SMTP_SSL(host, port, context=context, timeout=30)
        else:
            server = smtplib.SMTP(host, port, timeout=30)
        with server:
            if not config.get("SMTP_SECURE"):
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=context)
                    server.ehlo()
            if config.get("SMTP_USER"):
                server.login(config["SMTP_USER"], config.get("SMTP_PASS") or "")
            server.sendmail(msg["From"], [row.to_address], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        raise EmailDeliveryError(str(e)) from e


def deliver(outbox_id: int) -> bool:
    """
    Attempt delivery of one queued message and record the outcome.

    Returns True when the message was sent.
    """
    row = db.session.get(EmailOutbox, outbox_id)
    if row is None or row.status == OUTBOX_SENT:
        return False

    row.attempts += 1
    try:
        send_via_smtp(row)
    except EmailDeliveryError as e:
        row.status = OUTBOX_FAILED
        row.last_error = str(e)[:1000]
        db.session.commit()
        current_app.logger.warning(
            "Email %s to %s failed (attempt %s): %s", row.id, row.to_address, row.attempts, e
        )
        return False

    row.status = OUTBOX_SENT
    row.sent_at = utcnow()
    row.last_error = None
    db.session.commit()
    current_app.logger.info("Email %s sent to %s", row.id, row.to_address)
    return True


def _deliver_batch(app, outbox_ids: list[int]) -> None:
    with app.app_context():
        for outbox_id in outbox_ids:
            try:
                deliver(outbox_id)
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Unexpected error delivering email %s", outbox_id)


def dispatch_pending(outbox_ids: list[int] | None = None) -> None:
    """
    Deliver mail queued during this request once its transaction committed.

    With EMAIL_ASYNC the work runs on the mail thread pool; otherwise it
    runs inline (tests, CLI). Without SMTP_HOST rows stay pending.
    """
    app = current_app._get_current_object()
    if outbox_ids is None:
        queued = g.pop("queued_emails", [])
        outbox_ids = [row.id for row in queued if inspect(row).persistent]
    if not app.config.get("SMTP_HOST"):
        return
    if not outbox_ids:
        return

    if app.config.get("EMAIL_ASYNC"):
        _executor.submit(_deliver_batch, app, list(outbox_ids))
    else:
        _deliver_batch(app, list(outbox_ids))


def flush_outbox(*, include_failed: bool = True, limit: int = 100) -> dict:
    """
    Synchronously retry queued mail. Used by `flask email flush`.

    Failed rows are retried until MAX_ATTEMPTS.
    """
    statuses = [OUTBOX_PENDING, OUTBOX_FAILED] if include_failed else [OUTBOX_PENDING]
    rows = (
        db.session.query(EmailOutbox.id)
        .filter(EmailOutbox.status.in_(statuses), EmailOutbox.attempts < MAX_ATTEMPTS)
        .order_by(EmailOutbox.id.asc())
        .limit(limit)
        .all()
    )
    sent = failed = 0
    for (outbox_id,) in rows:
        if deliver(outbox_id):
            sent += 1
        else:
            failed += 1
    return {"attempted": len(rows), "sent": sent, "failed": failed}

import base64
import logging
import smtplib
import uuid
from datetime import datetime, timezone
from email.message import EmailMessage

import requests
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.email_log import EmailLog
from app.repositories.base import commit, store_call

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


def queue_email(db: Session, to_email: str, subject: str, body: str, related_ref: str = "",
                attachments: list[tuple[str, bytes, str]] | None = None) -> str:
    """Queue and attempt immediate send. Body is stored so the worker can retry on failure.

    attachments: list of (filename, content_bytes, mime_type)
    """
    eid = str(uuid.uuid4())
    log = EmailLog(id=eid, to_email=to_email, subject=subject, body=body, status="queued", related_ref=related_ref)
    db.add(log)
    commit(db, "email_logs.queue")

    try:
        send_email(to_email, subject, body, attachments=attachments or [])
        log.status = "sent"
        log.sent_at = datetime.now(timezone.utc)
    except (OSError, RuntimeError, requests.RequestException) as e:
        # worker retries via process_pending_emails
        logger.warning("email %s to %s not sent yet: %s", eid, to_email, e)
        log.status = "failed"
    commit(db, "email_logs.update")
    return eid


def send_password_reset(db: Session, to_email: str, link: str, user_id: str) -> str:
    body = (
        "We received a request to reset your Carpool Connect password.\n\n"
        f"Open this link to choose a new one (valid for {settings.RESET_TOKEN_EXPIRE_MINUTES} minutes):\n"
        f"{link}\n\n"
        "If you didn't ask for this, you can ignore this email."
    )
    return queue_email(db, to_email, "Reset your password", body, related_ref=f"password_reset:{user_id}")


def send_email(to_email: str, subject: str, body: str, attachments: list[tuple[str, bytes, str]]):
    """Send email via SendGrid if configured, otherwise SMTP (MailHog recommended for local)."""
    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body, attachments)
        return

    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    for filename, content, mime in attachments:
        maintype, subtype = (mime.split("/", 1) + ["octet-stream"])[:2]
        msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)
    logger.info("sent %r to %s via smtp", subject, to_email)


def _send_via_sendgrid(to_email: str, subject: str, body: str, attachments: list[tuple[str, bytes, str]]):
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }
    if attachments:
        payload["attachments"] = [
            {
                "content": base64.b64encode(content).decode("utf-8"),
                "type": mime,
                "filename": filename,
                "disposition": "attachment",
            }
            for filename, content, mime in attachments
        ]

    r = requests.post(
        SENDGRID_URL,
        json=payload,
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"SendGrid error {r.status_code}: {r.text}")
    logger.info("sent %r to %s via sendgrid", subject, to_email)


def process_pending_emails(db: Session, limit: int = 50) -> dict:
    """Retry up to `limit` queued or failed emails. Returns counts."""
    q = (
        select(EmailLog)
        .where(EmailLog.status.in_(["queued", "failed"]), EmailLog.body.is_not(None), EmailLog.body != "")
        .order_by(EmailLog.created_at.asc())
        .limit(limit)
    )
    with store_call(db, "email_logs.pending"):
        pending = db.execute(q).scalars().all()

    sent, failed = 0, 0
    for log in pending:
        try:
            send_email(log.to_email, log.subject, log.body, [])
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            sent += 1
        except (OSError, RuntimeError, requests.RequestException) as e:
            logger.warning("retry of email %s failed: %s", log.id, e)
            log.status = "failed"
            failed += 1
    if pending:
        commit(db, "email_logs.process")
    return {"processed": len(pending), "sent": sent, "failed": failed}

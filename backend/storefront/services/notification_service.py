# Overview: Best-effort customer email for refund decisions.

"""
Refund Notifications

Delivery is best effort: a failed send is logged and reported through the
return value, never raised, so a refund decision is not undone by a mail
outage. Refund.email_notification_sent becomes True only after the approval
notice went out; once set, no further notices are sent for that refund.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Refund
from ..statuses import REFUND_STATUS_APPROVED, REFUND_STATUS_PROCESSED, REFUND_STATUS_REJECTED

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 10

_SUBJECTS = {
    REFUND_STATUS_APPROVED: "Your refund {number} has been approved",
    REFUND_STATUS_REJECTED: "Your refund {number} was not approved",
    REFUND_STATUS_PROCESSED: "Your refund {number} has been paid out",
}


def send_email(to_address: str, subject: str, body: str) -> None:
    """Send one plain-text email over SMTP. Raises on transport failure."""
    config = current_app.config

    message = EmailMessage()
    message["From"] = config["MAIL_DEFAULT_SENDER"]
    message["To"] = to_address
    message["Subject"] = subject
    message.set_content(body)

    with smtplib.SMTP(config["MAIL_SERVER"], config["MAIL_PORT"], timeout=SMTP_TIMEOUT_SECONDS) as smtp:
        if config["MAIL_USE_TLS"]:
            smtp.starttls()
        if config.get("MAIL_USERNAME"):
            smtp.login(config["MAIL_USERNAME"], config.get("MAIL_PASSWORD") or "")
        smtp.send_message(message)


def _format_cents(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def build_refund_message(refund: Refund) -> tuple[str, str]:
    subject = _SUBJECTS[refund.status].format(number=refund.refund_number)

    name = refund.customer.first_name if refund.customer and refund.customer.first_name else "there"
    product = refund.product.name if refund.product else f"product {refund.product_id}"
    order_number = refund.order.order_number if refund.order else refund.order_id

    lines = [
        f"Hi {name},",
        "",
        f"Refund {refund.refund_number} for {refund.quantity} x {product} "
        f"(order {order_number}) is now {refund.status}.",
        f"Refund amount: {_format_cents(refund.refund_amount_cents)}",
    ]
    if refund.status == REFUND_STATUS_REJECTED and refund.rejection_reason:
        lines.append(f"Reason: {refund.rejection_reason}")
    lines += ["", "Thank you for shopping with us."]
    return subject, "\n".join(lines)


def send_refund_status(refund: Refund) -> bool:
    """
    Notify the customer about the refund's current status.

    Returns True if an email was sent.
    """
    if refund.status not in _SUBJECTS:
        return False

    if refund.email_notification_sent:
        logger.info("Refund %s notification already sent; skipping", refund.refund_number)
        return False

    if not current_app.config.get("MAIL_ENABLED"):
        logger.warning("Mail disabled; refund %s notification not sent", refund.refund_number)
        return False

    email = refund.customer.email if refund.customer else None
    if not email:
        logger.warning("Refund %s has no customer email; notification not sent", refund.refund_number)
        return False

    subject, body = build_refund_message(refund)
    try:
        send_email(email, subject, body)
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send refund %s notification to %s", refund.refund_number, email)
        return False

    logger.info("Refund %s notification (%s) sent to %s", refund.refund_number, refund.status, email)

    if refund.status == REFUND_STATUS_APPROVED:
        refund.email_notification_sent = True
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to record notification flag for refund %s", refund.refund_number)

    return True

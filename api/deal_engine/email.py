import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional
from .config import EMAIL_HOST, EMAIL_PASSWORD, EMAIL_PORT, EMAIL_SENDER, EMAIL_SENDER_NAME, EMAIL_USER

logger = logging.getLogger(__name__)

def smtp_configured() -> bool:
    return bool(EMAIL_USER and EMAIL_PASSWORD)

def build_message(to: str, subject: str, body: str, html_body: Optional[str] = None,
                  sender_name: Optional[str] = None, reply_to: Optional[str] = None) -> EmailMessage:
    display_name = (sender_name or EMAIL_SENDER_NAME).strip()
    msg = EmailMessage()
    msg["From"] = formataddr((display_name, EMAIL_SENDER)) if display_name else EMAIL_SENDER
    msg["To"] = to
    msg["Subject"] = subject
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.set_content(body or "")
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    return msg

def send_email(to: str, subject: str, body: str, html_body: Optional[str] = None,
               sender_name: Optional[str] = None, reply_to: Optional[str] = None):
    msg = build_message(to, subject, body, html_body, sender_name, reply_to)
    if not smtp_configured():
        # no SMTP credentials: local runs and tests only see the log line
        logger.info("email (not sent) to=%s subject=%s from=%s\n%s", to, subject, msg["From"], body)
        return
    with smtplib.SMTP(EMAIL_HOST, EMAIL_PORT) as smtp:
        smtp.starttls()
        smtp.login(EMAIL_USER, EMAIL_PASSWORD)
        smtp.send_message(msg)
    logger.info("email sent to %s: %s", to, subject)

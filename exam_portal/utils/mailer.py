# exam_portal/utils/mailer.py
import logging
import smtplib
from email.message import EmailMessage

import requests
from flask import current_app

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def _send_resend(config, recipient, subject, text, html):
    response = requests.post(
        RESEND_URL,
        headers={"Authorization": f"Bearer {config['RESEND_API_KEY']}"},
        json={
            "from": config["MAIL_FROM"],
            "to": [recipient],
            "subject": subject,
            "text": text,
            "html": html,
        },
        timeout=10,
    )
    response.raise_for_status()


def _send_smtp(config, recipient, subject, text, html):
    message = EmailMessage()
    message["From"] = config["MAIL_FROM"]
    message["To"] = recipient
    message["Subject"] = subject
    message.set_content(text)
    if html:
        message.add_alternative(html, subtype="html")

    with smtplib.SMTP(config["SMTP_HOST"], config["SMTP_PORT"], timeout=10) as smtp:
        smtp.starttls()
        if config.get("SMTP_USER"):
            smtp.login(config["SMTP_USER"], config["SMTP_PASSWORD"])
        smtp.send_message(message)


def send_mail(recipient, subject, text, html=None):
    """Send a mail through the configured provider. Returns False on failure."""
    config = current_app.config
    provider = config.get("MAIL_PROVIDER", "console")

    try:
        if provider == "resend":
            _send_resend(config, recipient, subject, text, html)
        elif provider == "smtp":
            _send_smtp(config, recipient, subject, text, html)
        else:
            logger.info("Mail to %s | %s | %s", recipient, subject, text)
    except (requests.RequestException, smtplib.SMTPException, OSError) as e:
        logger.warning("Error sending email to %s: %s", recipient, e)
        return False

    logger.info("Email sent successfully to %s via %s", recipient, provider)
    return True


def send_otp_mail(recipient, code, minutes, purpose="confirm"):
    if purpose == "reset":
        subject = "Password reset code"
        intro = "Enter this code to reset your password"
    else:
        subject = "Welcome! Confirm your account"
        intro = "Enter this code to confirm your account"

    text = f"{intro}: {code}. This code expires in {minutes} minutes."
    html = (
        f"<p>{intro}: <strong>{code}</strong></p>"
        f"<p>This code expires in {minutes} minutes.</p>"
    )
    return send_mail(recipient, subject, text, html)

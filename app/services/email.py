import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import requests

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"

BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{subject}</title>
    <style>
        body {{ margin: 0; padding: 0; font-family: 'Helvetica Neue', Helvetica, Arial, sans-serif; color: #333333; background-color: #f6f6f6; }}
        .container {{ max-width: 600px; margin: 0 auto; background: #ffffff; }}
        .header {{ background: #1f1f1f; color: #ffffff; padding: 32px; text-align: center; }}
        .content {{ padding: 32px; }}
        .summary {{ background: #f2f2f2; border-radius: 6px; padding: 16px 20px; margin: 20px 0; }}
        .button {{ background: #1f1f1f; color: #ffffff; padding: 14px 32px; text-decoration: none; border-radius: 6px; display: inline-block; }}
        .footer {{ padding: 24px; text-align: center; color: #888888; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1 style="margin: 0;">{brand}</h1></div>
        <div class="content">{content}</div>
        <div class="footer">This is a transactional email from {brand}.</div>
    </div>
</body>
</html>
"""


def notify_safely(send, *args, **kwargs) -> bool:
    """Run a notifier call without letting its failure reach the caller."""
    try:
        return bool(send(*args, **kwargs))
    except Exception:
        logger.exception("Notification %s failed", getattr(send, "__name__", send))
        return False


def _format_money(amount) -> str:
    return f"${Decimal(amount):,.2f}"


def _format_date(value) -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime("%B %d, %Y")
    return str(value)


class EmailService:
    """Transactional email over the SendGrid HTTP API.

    Every public ``send_*`` method is fire-and-forget: failures are logged and
    reported through the boolean return value, never raised.
    """

    def __init__(self, api_key: str, from_email: str, from_name: str, frontend_url: str):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.frontend_url = frontend_url.rstrip("/")

    def send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        if not self.api_key:
            logger.warning("SENDGRID_API_KEY missing, skipping email '%s' to %s", subject, to_email)
            return False

        data = {
            "personalizations": [{"to": [{"email": to_email}], "subject": subject}],
            "from": {"email": self.from_email, "name": self.from_name},
            "reply_to": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": self.extract_plain_text(html_content)},
                {"type": "text/html", "value": html_content},
            ],
            "categories": ["transactional", "bookings"],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = requests.post(SENDGRID_URL, json=data, headers=headers, timeout=30)
        except requests.RequestException as e:
            logger.warning("Email '%s' to %s failed: %s", subject, to_email, e)
            return False

        if response.status_code == 202:
            logger.info("Email '%s' sent to %s", subject, to_email)
            return True

        logger.warning(
            "SendGrid rejected email '%s' to %s: %s %s",
            subject, to_email, response.status_code, response.text,
        )
        return False

    @staticmethod
    def extract_plain_text(html_content: str) -> str:
        """Extract plain text from HTML content for better deliverability"""
        text = re.sub(r"<style[^>]*>.*?</style>", " ", html_content, flags=re.S)
        text = re.sub(r"<[^>]+>", " ", text)
        text = re.sub(r"&nbsp;", " ", text)
        text = re.sub(r"&amp;", "&", text)
        text = re.sub(r"\s+", " ", text)
        return text.strip()

    def render(self, subject: str, content: str) -> str:
        return BASE_TEMPLATE.format(subject=subject, brand=self.from_name, content=content)

    def _deliver(self, to_email: str, subject: str, content: str) -> bool:
        try:
            return self.send_email(to_email, subject, self.render(subject, content))
        except Exception:
            logger.exception("Unexpected error sending '%s' to %s", subject, to_email)
            return False

    def send_booking_confirmation(self, booking) -> bool:
        subject = "Booking Confirmation"
        content = f"""
            <h2>Hi {booking.contact_name},</h2>
            <p>Your booking for <strong>{booking.package.name}</strong> is confirmed.</p>
            <div class="summary">
                <p>Date: {_format_date(booking.booking_date)} at {booking.booking_time}</p>
                <p>Location: {booking.location or 'Studio'}</p>
                <p>Package price: {_format_money(booking.package_price)}</p>
                <p>Deposit: {_format_money(booking.deposit_amount)}</p>
                <p>Remaining: {_format_money(booking.remaining_amount)}</p>
            </div>
        """
        return self._deliver(booking.contact_email, subject, content)

    def send_payment_receipt(self, booking, payment) -> bool:
        subject = "Payment Receipt"
        content = f"""
            <h2>Hi {booking.contact_name},</h2>
            <p>We received your {payment.payment_type.value.lower()} payment. Thank you!</p>
            <div class="summary">
                <p>Amount: {_format_money(payment.amount)}</p>
                <p>Total paid: {_format_money(booking.total_paid)} of {_format_money(booking.package_price)}</p>
                <p>Transaction: {payment.stripe_payment_intent_id}</p>
            </div>
        """
        return self._deliver(booking.contact_email, subject, content)

    def send_booking_cancellation(self, booking) -> bool:
        subject = "Booking Cancelled"
        content = f"""
            <h2>Hi {booking.contact_name},</h2>
            <p>Your booking on {_format_date(booking.booking_date)} has been cancelled.</p>
            <div class="summary"><p>Reason: {booking.cancellation_reason or 'Not specified'}</p></div>
        """
        return self._deliver(booking.contact_email, subject, content)

    def send_photo_delivery(self, booking, delivery, expires_at: Optional[datetime] = None) -> bool:
        subject = "Your Photos Are Ready!"
        access_link = f"{self.frontend_url}/deliveries/{delivery.id}"
        expiry = f"<p>Available until {_format_date(expires_at)}.</p>" if expires_at else ""
        content = f"""
            <h2>Hi {booking.contact_name},</h2>
            <p>Your album <strong>{delivery.album_name}</strong> with {delivery.photo_count} photos is ready.</p>
            {expiry}
            <p style="text-align: center;"><a href="{access_link}" class="button">View your photos</a></p>
        """
        return self._deliver(booking.contact_email, subject, content)

"""
Celery tasks for order processing.

Tasks:
    - send_order_notification: Email the shop admin about a placed order
"""
import logging
import smtplib
from datetime import datetime, timezone as dt_timezone

from celery import shared_task
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def _format_created_at(created_at_ms: int) -> str:
    moment = datetime.fromtimestamp(created_at_ms / 1000, tz=dt_timezone.utc)
    return moment.strftime('%Y-%m-%d %H:%M:%S UTC')


def _email_context(payload: dict) -> dict:
    return {**payload, 'created_at_display': _format_created_at(payload['created_at'])}


def build_text_body(payload: dict) -> str:
    rendered = render_to_string('orders/emails/order_notification.txt', _email_context(payload))
    # Blank separators are dropped along with absent optional fields
    return "\n".join(line for line in rendered.splitlines() if line.strip())


def build_html_body(payload: dict) -> str:
    return render_to_string('orders/emails/order_notification.html', _email_context(payload))


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(smtplib.SMTPException, ConnectionError),
    retry_backoff=True
)
def send_order_notification(self, payload: dict):
    """
    Email the shop admin the details of a freshly placed order.

    Args:
        payload: OrderResult as a dict

    Returns:
        Dict with the delivery status
    """
    recipient = getattr(settings, 'ORDER_NOTIFICATION_EMAIL', '')
    order_number = payload['order_number']

    if not recipient:
        logger.warning(
            f"ORDER_NOTIFICATION_EMAIL is not set, skipping email for order {order_number}"
        )
        return {'status': 'skipped', 'message': 'No notification recipient configured'}

    reply_to = payload['customer'].get('email')
    message = EmailMultiAlternatives(
        subject=f"New order {order_number}",
        body=build_text_body(payload),
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[recipient],
        reply_to=[reply_to] if reply_to else None,
    )
    message.attach_alternative(build_html_body(payload), 'text/html')
    message.send(fail_silently=False)

    logger.info(f"Notification sent for order {order_number} to {recipient}")
    return {
        'status': 'success',
        'order_number': order_number,
        'message': f'Notification sent for order {order_number}'
    }

# messaging/tasks.py
from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from templated_email import send_templated_mail
import logging

from .models import Message
from .services import identity

logger = logging.getLogger(__name__)

User = get_user_model()


@shared_task(
    name="messaging.send_new_message_email",
    max_retries=3,
    default_retry_delay=60,
    retry_backoff=True,
    retry_jitter=True,
)
def send_new_message_email(message_id: str) -> None:
    """
    Email the receiver of a direct message that something is waiting in
    their inbox. The sender is shown the same way the inbox shows it.
    """
    try:
        message = Message.objects.get(id=message_id)
    except Message.DoesNotExist:
        logger.error(f"Message {message_id} not found, skipping email notification")
        return

    receiver = User.objects.filter(pk=message.receiver_id).first()
    if receiver is None or not receiver.email:
        logger.info(f"No email address for receiver of message {message_id}")
        return

    sender = User.objects.filter(pk=message.sender_id).first()
    sender_name = (
        identity.mask_display(sender, receiver.role).nickname if sender else None
    )

    try:
        send_templated_mail(
            template_name="messaging/new_message",
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[receiver.email],
            context={
                "recipient_name": receiver.display_name,
                "sender_name": sender_name or settings.MESSAGING.get("SUPPORT_DISPLAY_NAME"),
                "preview": message.preview(),
                "site_url": settings.SITE_URL,
            },
        )
        logger.info(f"New message email sent for message {message_id}")
    except Exception as exc:
        logger.error(f"Failed to send new message email for {message_id}: {str(exc)}")
        raise send_new_message_email.retry(exc=exc)

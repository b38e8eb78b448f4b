# users/signals.py
import logging

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from users.models import Role, User

logger = logging.getLogger(__name__)


@receiver(post_save, sender=User)
def send_welcome_message(sender, instance, created, **kwargs):
    """
    Greet every newly registered plain user with a direct message from the
    operator. Best effort: a failure here must never block registration.
    """
    if not created or instance.role != Role.USER:
        return

    # Imported lazily, the messaging app depends on users.
    from messaging.services.message_store import send_welcome_message as deliver

    def _deliver():
        try:
            deliver(instance)
        except Exception as e:
            logger.error(
                f"Failed to send welcome message to user {instance.id}: {str(e)}",
                exc_info=True,
            )

    transaction.on_commit(_deliver)

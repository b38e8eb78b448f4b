# messaging/services/broadcaster.py
import logging
from typing import List

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from courses.models import Course, CourseGroup, Enrollment
from messaging.serializers import hidden_payload, message_payload
from messaging.services import identity
from users.models import Role

logger = logging.getLogger(__name__)


def user_room(user_id) -> str:
    return f"user_{user_id}"


def group_room(group_id) -> str:
    return f"group_{group_id}"


def course_room(course_id) -> str:
    return f"course_{course_id}"


class RealtimeBroadcaster:
    """
    Fire-and-forget fan-out of message events to per-user, per-group and
    per-course rooms. Delivery is not guaranteed; clients converge by
    polling the message history.
    """

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        if self._channel_layer is not None:
            return self._channel_layer
        return get_channel_layer()

    def rooms_for(self, message, actor_id=None) -> List[str]:
        rooms = [user_room(message.sender_id)]
        if actor_id and str(actor_id) != str(message.sender_id):
            rooms.append(user_room(actor_id))

        if message.course_id is None:
            rooms.append(user_room(message.receiver_id))
            return rooms

        if message.group_id:
            rooms.append(group_room(message.group_id))
        else:
            group_ids = CourseGroup.objects.filter(
                course_id=message.course_id
            ).values_list("id", flat=True)
            rooms.extend(group_room(group_id) for group_id in group_ids)
        rooms.append(course_room(message.course_id))
        return rooms

    def emit(self, message, event: str = "new_message", actor_id=None) -> bool:
        """
        Push a message event to every interested room.

        Returns:
            bool: True if every room was reached, False otherwise. Never raises.
        """
        channel_layer = self.channel_layer
        if not channel_layer:
            logger.warning("No channel layer available for WebSocket message delivery")
            return False

        try:
            payload = {
                "type": "chat.message",
                "event": event,
                "message": (
                    hidden_payload(message)
                    if event == "message_hidden"
                    else message_payload(message)
                ),
                "timestamp": timezone.now().isoformat(),
            }
            rooms = self.rooms_for(message, actor_id=actor_id)
        except Exception as e:
            logger.error(f"Failed to prepare broadcast for message {message.id}: {str(e)}", exc_info=True)
            return False

        delivered = True
        for room in rooms:
            try:
                async_to_sync(channel_layer.group_send)(room, payload)
            except Exception as e:
                delivered = False
                logger.error(f"Failed to deliver {event} to {room}: {str(e)}", exc_info=True)

        logger.debug(f"Sent {event} for message {message.id} to {len(rooms)} rooms")
        return delivered

    def emit_on_commit(self, message, event: str = "new_message", actor_id=None) -> None:
        """Broadcast once the surrounding transaction commits."""
        transaction.on_commit(lambda: self.emit(message, event=event, actor_id=actor_id))


def rooms_for_user(user) -> List[str]:
    """Rooms a realtime connection of this user should join."""
    rooms = [user_room(user.id)]

    group_ids = (
        Enrollment.objects.filter(user_id=user.id, group__isnull=False)
        .exclude(status="cancelled")
        .values_list("group_id", flat=True)
    )
    rooms.extend(group_room(group_id) for group_id in group_ids)

    if user.role == Role.OWNER:
        # Direct messages may be addressed to any support alias.
        rooms.extend(user_room(alias_id) for alias_id in identity.get_alias_set().ids)
        course_ids = Course.objects.values_list("id", flat=True)
    elif user.role in (Role.SPECIALIST, Role.ADMIN):
        course_ids = (
            Course.objects.filter(
                Q(specialist_id=user.id) | Q(groups__specialist_id=user.id)
            )
            .distinct()
            .values_list("id", flat=True)
        )
    else:
        course_ids = []
    rooms.extend(course_room(course_id) for course_id in course_ids)
    return list(dict.fromkeys(rooms))


# Singleton instance for use throughout the application
broadcaster = RealtimeBroadcaster()

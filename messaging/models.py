# messaging/models.py
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class ConversationType(models.TextChoices):
    DIRECT = "direct", "Direct Message"
    GROUP = "group", "Course Group Chat"


class MessageType(models.TextChoices):
    TEXT = "text", "Text"
    IMAGE = "image", "Image"
    STICKER = "sticker", "Sticker"
    SCHEDULE = "schedule", "Schedule"
    ALERT = "alert", "Alert"


class Message(models.Model):
    """
    A chat message, either direct (receiver set) or scoped to a course
    (course set, optionally narrowed to one group). Only ``read`` and
    ``hidden`` change after creation.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Users live in an external store; a row may outlive its sender/receiver.
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name="sent_messages",
    )
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
        related_name="received_messages",
    )
    course = models.ForeignKey(
        "courses.Course",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="messages",
    )
    # Null on a course message means "every group of the course".
    group = models.ForeignKey(
        "courses.CourseGroup",
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
        related_name="messages",
    )
    content = models.TextField(blank=True)
    type = models.CharField(
        max_length=20, choices=MessageType.choices, default=MessageType.TEXT
    )
    metadata = models.JSONField(default=dict, blank=True)
    reply_to = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replies",
    )
    hidden = models.BooleanField(default=False)
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["receiver", "read"], name="msg_receiver_read_idx"),
            models.Index(fields=["course", "created_at"], name="msg_course_created_idx"),
            models.Index(fields=["sender", "created_at"], name="msg_sender_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(receiver__isnull=False, course__isnull=True)
                    | Q(receiver__isnull=True, course__isnull=False)
                ),
                name="message_direct_xor_course",
            ),
        ]

    def __str__(self):
        return f"Message #{self.id} ({self.conversation_type})"

    @property
    def conversation_type(self):
        if self.course_id:
            return ConversationType.GROUP
        return ConversationType.DIRECT

    def clean(self):
        super().clean()
        if bool(self.receiver_id) == bool(self.course_id):
            raise ValidationError(
                "A message needs exactly one of a receiver or a course."
            )
        if self.group_id and not self.course_id:
            raise ValidationError("Only course messages can carry a group.")

    def preview(self, length=None):
        return preview_text(self.type, self.content, length)


def preview_text(message_type, content, length=None):
    """Short text shown in conversation lists for a message."""
    if message_type == MessageType.IMAGE:
        return str(_("📷 Image"))
    if message_type == MessageType.SCHEDULE:
        return str(_("📅 New session scheduled"))
    if length is None:
        length = settings.MESSAGING.get("PREVIEW_LENGTH", 100)
    content = content or ""
    return content[:length] + ("..." if len(content) > length else "")

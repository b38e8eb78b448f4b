# messaging/serializers.py
from rest_framework import serializers

from .models import ConversationType, MessageType


class DisplayIdentitySerializer(serializers.Serializer):
    id = serializers.CharField()
    nickname = serializers.CharField()
    avatar = serializers.CharField(allow_null=True)
    isSupport = serializers.BooleanField(source="is_support")
    isCourse = serializers.BooleanField(source="is_course")


class ReplyPreviewSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    content = serializers.CharField(allow_blank=True)
    type = serializers.CharField()
    senderName = serializers.CharField(source="sender_name", allow_null=True)


class MessageSerializer(serializers.Serializer):
    """
    Read-only representation of a message. The store attaches
    ``sender_display`` (alias-masked for the viewer) and ``reply_preview``
    to instances before serialization.
    """

    id = serializers.UUIDField()
    content = serializers.CharField(allow_blank=True)
    senderId = serializers.UUIDField(source="sender_id")
    senderName = serializers.SerializerMethodField()
    senderAvatar = serializers.SerializerMethodField()
    receiverId = serializers.UUIDField(source="receiver_id", allow_null=True)
    courseId = serializers.UUIDField(source="course_id", allow_null=True)
    groupId = serializers.UUIDField(source="group_id", allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at")
    read = serializers.BooleanField()
    hidden = serializers.BooleanField()
    type = serializers.CharField()
    metadata = serializers.JSONField()
    replyTo = serializers.SerializerMethodField()

    def get_senderName(self, obj):
        display = getattr(obj, "sender_display", None)
        return display.nickname if display else None

    def get_senderAvatar(self, obj):
        display = getattr(obj, "sender_display", None)
        return display.avatar if display else None

    def get_replyTo(self, obj):
        preview = getattr(obj, "reply_preview", None)
        if not preview:
            return None
        return ReplyPreviewSerializer(preview).data


class ConversationSerializer(serializers.Serializer):
    id = serializers.CharField()
    type = serializers.CharField()
    user = DisplayIdentitySerializer(source="display")
    lastMessage = serializers.CharField(source="last_message", allow_blank=True)
    lastMessageAt = serializers.DateTimeField(source="last_message_at")
    unreadCount = serializers.IntegerField(source="unread_count")


class SendMessageSerializer(serializers.Serializer):
    MESSAGE_TYPE_CHOICES = (
        (MessageType.TEXT, "Text Message"),
        (MessageType.STICKER, "Sticker"),
        (MessageType.ALERT, "Alert"),
    )

    content = serializers.CharField(
        max_length=5000, allow_blank=True, trim_whitespace=False, default=""
    )
    type = serializers.ChoiceField(
        choices=ConversationType.choices, default=ConversationType.DIRECT
    )
    replyToId = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    msgType = serializers.ChoiceField(choices=MESSAGE_TYPE_CHOICES, default=MessageType.TEXT)


class ImageMessageSerializer(serializers.Serializer):
    image = serializers.FileField()
    type = serializers.ChoiceField(
        choices=ConversationType.choices, default=ConversationType.DIRECT
    )
    replyToId = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class ScheduleSessionSerializer(serializers.Serializer):
    date = serializers.CharField(help_text="Session date, YYYY-MM-DD")
    time = serializers.CharField(help_text="Session start time, HH:MM")
    title = serializers.CharField(max_length=200, required=False, allow_blank=True)


class ConversationTypeSerializer(serializers.Serializer):
    type = serializers.ChoiceField(
        choices=ConversationType.choices, default=ConversationType.DIRECT
    )


class HideMessageSerializer(serializers.Serializer):
    hidden = serializers.BooleanField()


def message_payload(message):
    """JSON-safe dict used for realtime events."""
    return dict(MessageSerializer(message).data)


def hidden_payload(message):
    """Hide events carry no content, only what clients need to drop the message."""
    return {"id": str(message.id), "hidden": True}

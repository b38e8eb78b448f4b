# messaging/views.py
import logging

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import permissions, status
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import ValidationError
from .models import ConversationType
from .permissions import IsModerator
from .serializers import (
    ConversationSerializer,
    ConversationTypeSerializer,
    DisplayIdentitySerializer,
    HideMessageSerializer,
    ImageMessageSerializer,
    MessageSerializer,
    ScheduleSessionSerializer,
    SendMessageSerializer,
)
from .services import aggregator, message_store, read_state
from .throttling import ImageUploadThrottle, MessageSendThrottle

logger = logging.getLogger(__name__)

TYPE_PARAMETER = OpenApiParameter(
    name="type",
    type=OpenApiTypes.STR,
    location=OpenApiParameter.QUERY,
    enum=[ConversationType.DIRECT, ConversationType.GROUP],
    description="Conversation type, defaults to direct",
)


def _query_type(request):
    serializer = ConversationTypeSerializer(data=request.query_params)
    if not serializer.is_valid():
        raise ValidationError("Conversation type must be direct or group.")
    return serializer.validated_data["type"]


class ConversationListView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        description="Direct partners and course chats of the current user, newest first",
        responses={200: ConversationSerializer(many=True)},
    )
    def get(self, request):
        conversations = aggregator.list_conversations(request.user)
        return Response(
            {"conversations": ConversationSerializer(conversations, many=True).data}
        )


class ConversationPurgeView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        description="Delete the whole direct message history with a partner",
        parameters=[TYPE_PARAMETER],
        responses={
            200: {"type": "object", "properties": {"deleted": {"type": "integer"}}}
        },
    )
    def delete(self, request, pk):
        if _query_type(request) != ConversationType.DIRECT:
            raise ValidationError("Only direct conversations can be deleted.")
        deleted = message_store.purge_direct_conversation(request.user, pk)
        return Response({"deleted": deleted})


class UnreadCountView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        description="Number of unread direct messages for the current user",
        responses={
            200: {"type": "object", "properties": {"unreadCount": {"type": "integer"}}}
        },
    )
    def get(self, request):
        return Response({"unreadCount": read_state.unread_count(request.user)})


class MarkReadView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        description="Mark a direct or course conversation as read",
        request=ConversationTypeSerializer,
        responses={
            200: {"type": "object", "properties": {"updated": {"type": "integer"}}}
        },
    )
    def put(self, request, pk):
        serializer = ConversationTypeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        updated = read_state.mark_read(request.user, pk, serializer.validated_data["type"])
        return Response({"updated": updated})


class SupportContactView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        description="Resolve the platform operator as a support contact",
        request=None,
        responses={200: DisplayIdentitySerializer},
    )
    def post(self, request):
        contact = message_store.support_contact()
        return Response({"user": DisplayIdentitySerializer(contact).data})


class ConversationMessagesView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get_throttles(self):
        if self.request.method == "POST":
            return [MessageSendThrottle()]
        return super().get_throttles()

    @extend_schema(
        description="Message history of a conversation. Marks direct conversations as read.",
        parameters=[TYPE_PARAMETER],
        responses={200: MessageSerializer(many=True)},
    )
    def get(self, request, pk):
        messages = message_store.fetch_messages(request.user, pk, _query_type(request))
        return Response({"messages": MessageSerializer(messages, many=True).data})

    @extend_schema(
        description="Send a text, sticker or alert message",
        request=SendMessageSerializer,
        responses={201: MessageSerializer},
    )
    def post(self, request, pk):
        serializer = SendMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        message = message_store.send_message(
            request.user,
            pk,
            conversation_type=data["type"],
            content=data["content"],
            msg_type=data["msgType"],
            reply_to_id=data.get("replyToId"),
        )
        return Response(
            {"message": MessageSerializer(message).data}, status=status.HTTP_201_CREATED
        )


class ImageMessageView(APIView):
    permission_classes = [permissions.IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser]
    throttle_classes = [ImageUploadThrottle]

    @extend_schema(
        description="Upload an image; it is re-encoded before the message is stored",
        request={"multipart/form-data": ImageMessageSerializer},
        responses={201: MessageSerializer},
    )
    def post(self, request, pk):
        serializer = ImageMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        message = message_store.send_image(
            request.user,
            pk,
            data["image"],
            conversation_type=data["type"],
            reply_to_id=data.get("replyToId"),
        )
        return Response(
            {"message": MessageSerializer(message).data}, status=status.HTTP_201_CREATED
        )


class ScheduleSessionView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        description="Schedule a live session for a course or one of its groups",
        request=ScheduleSessionSerializer,
        responses={201: MessageSerializer},
    )
    def post(self, request, pk):
        serializer = ScheduleSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        message = message_store.schedule_session(
            request.user,
            pk,
            date=data["date"],
            time=data["time"],
            title=data.get("title"),
        )
        return Response(
            {"message": MessageSerializer(message).data}, status=status.HTTP_201_CREATED
        )


class HideMessageView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsModerator]

    @extend_schema(
        description="Hide or unhide a message. The row is kept for auditing.",
        request=HideMessageSerializer,
        responses={200: MessageSerializer},
    )
    def put(self, request, pk):
        serializer = HideMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = message_store.set_hidden(
            request.user, pk, serializer.validated_data["hidden"]
        )
        return Response({"message": MessageSerializer(message).data})

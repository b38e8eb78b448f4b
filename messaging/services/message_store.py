# messaging/services/message_store.py
"""
Write and read paths for chat messages, direct and course-scoped.

Writes resolve the sending identity (support aliasing) and the group scope
before persisting, then broadcast after commit. Reads apply moderation
filtering, attach masked sender identities and reply previews, and mark
direct conversations as read.
"""
import logging
import secrets
import uuid
from datetime import datetime
from typing import Iterable, List, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from courses.models import Session
from messaging.exceptions import AuthorizationError, NotFoundError, ValidationError
from messaging.models import ConversationType, Message, MessageType
from messaging.services import group_routing, identity, read_state
from messaging.services.broadcaster import broadcaster
from messaging.services.image_processing import discard_chat_image, store_chat_image
from users.models import STAFF_ROLES, Role

logger = logging.getLogger(__name__)

User = get_user_model()

MODERATOR_ROLES = frozenset({Role.SPECIALIST, Role.OWNER})
SCHEDULER_ROLES = frozenset({Role.ADMIN, Role.OWNER})


class ReplyPreview:
    __slots__ = ("id", "content", "type", "sender_name")

    def __init__(self, id, content, type, sender_name):
        self.id = id
        self.content = content
        self.type = type
        self.sender_name = sender_name


def _parse_uuid(value) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _get_user_or_404(user_id):
    user_id = _parse_uuid(user_id)
    user = User.objects.filter(pk=user_id).first() if user_id else None
    if user is None:
        raise NotFoundError("User not found.")
    return user


def _resolve_reply_to(sender, reply_to_id, reachable: Q) -> Optional[Message]:
    """
    Reply targets must be messages the sender can currently read in the
    same conversation. Anything else, including malformed ids, degrades to
    a plain message.
    """
    reply_to_id = _parse_uuid(reply_to_id)
    if reply_to_id is None:
        return None
    reply_to = (
        Message.objects.filter(reachable, pk=reply_to_id)
        .filter(hidden_filter(sender))
        .first()
    )
    if reply_to is None:
        logger.info(f"Reply target {reply_to_id} not reachable, storing message without reply")
    return reply_to


def hidden_filter(viewer) -> Q:
    if viewer.role in STAFF_ROLES:
        return Q()
    return Q(hidden=False)


def direct_conversation_filter(viewer, partner_id, alias_set=None) -> Q:
    alias_set = alias_set or identity.get_alias_set()
    viewer_ids = identity.resolve_query_identities(viewer.id, viewer.role, alias_set)
    partner_ids = identity.resolve_partner_identities(partner_id, viewer.role, alias_set)
    return Q(course__isnull=True) & (
        Q(sender_id__in=viewer_ids, receiver_id__in=partner_ids)
        | Q(sender_id__in=partner_ids, receiver_id__in=viewer_ids)
    )


def attach_display(messages: Iterable[Message], viewer_role, alias_set=None) -> List[Message]:
    """Attach alias-masked sender identities; senders missing from the user store get none."""
    messages = list(messages)
    alias_set = alias_set or identity.get_alias_set()
    senders = User.objects.in_bulk({m.sender_id for m in messages})
    for message in messages:
        sender = senders.get(message.sender_id)
        message.sender_display = (
            identity.mask_display(sender, viewer_role, alias_set) if sender else None
        )
    return messages


def _attach_reply_previews(messages: List[Message], reachable=None) -> None:
    """
    Reply previews only point at messages the viewer can currently reach;
    anything else drops the preview.
    """
    by_id = reachable if reachable is not None else {m.id: m for m in messages}
    for message in messages:
        parent = by_id.get(message.reply_to_id) if message.reply_to_id else None
        if parent is None:
            message.reply_preview = None
            continue
        display = getattr(parent, "sender_display", None)
        message.reply_preview = ReplyPreview(
            id=parent.id,
            content=parent.content,
            type=parent.type,
            sender_name=display.nickname if display else None,
        )


def _create_message(
    sender,
    target_key,
    conversation_type,
    *,
    content,
    msg_type,
    metadata=None,
    reply_to_id=None,
) -> Message:
    alias_set = identity.get_alias_set()

    if conversation_type == ConversationType.GROUP:
        scope = group_routing.resolve_course_scope(target_key)
        group_routing.ensure_course_access(sender, scope.course)
        reply_to = _resolve_reply_to(
            sender,
            reply_to_id,
            Q(course=scope.course)
            & group_routing.group_visibility_filter(sender, scope.course.id),
        )
        group_id = group_routing.resolve_group_id(
            sender.id, scope.course.id, reply_to.id if reply_to else None
        )
        # Only staff address a group directly; unplaced students post course-wide.
        if group_id is None and scope.group is not None and sender.role in STAFF_ROLES:
            group_id = scope.group.id
        message = Message.objects.create(
            sender_id=sender.id,
            course=scope.course,
            group_id=group_id,
            content=content,
            type=msg_type,
            metadata=metadata or {},
            reply_to=reply_to,
        )
        receiver = None
    else:
        receiver = _get_user_or_404(target_key)
        reply_to = _resolve_reply_to(
            sender,
            reply_to_id,
            direct_conversation_filter(sender, receiver.id, alias_set),
        )
        sender_id = identity.choose_send_identity(
            sender.id, sender.role, receiver.role, alias_set
        )
        message = Message.objects.create(
            sender_id=sender_id,
            receiver=receiver,
            content=content,
            type=msg_type,
            metadata=metadata or {},
            reply_to=reply_to,
        )

    attach_display([message] + ([reply_to] if reply_to else []), sender.role, alias_set)
    _attach_reply_previews([message], reachable={reply_to.id: reply_to} if reply_to else {})

    broadcaster.emit_on_commit(message, actor_id=sender.id)
    if receiver is not None and receiver.role == Role.USER:
        _notify_by_email(message)

    logger.info(
        f"User {sender.id} sent {msg_type} message {message.id} ({conversation_type} {target_key})"
    )
    return message


def _notify_by_email(message) -> None:
    if not settings.MESSAGING.get("EMAIL_NOTIFICATIONS", False):
        return

    def _enqueue():
        from messaging.tasks import send_new_message_email

        try:
            send_new_message_email.delay(str(message.id))
        except Exception as e:
            logger.error(
                f"Failed to enqueue email notification for message {message.id}: {str(e)}",
                exc_info=True,
            )

    transaction.on_commit(_enqueue)


def send_message(
    sender,
    target_key,
    conversation_type=ConversationType.DIRECT,
    content="",
    msg_type=MessageType.TEXT,
    reply_to_id=None,
) -> Message:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Message content cannot be empty.")

    if msg_type in (MessageType.IMAGE, MessageType.SCHEDULE):
        raise ValidationError(f"Messages of type {msg_type} have their own endpoint.")
    if msg_type == MessageType.ALERT and sender.role not in STAFF_ROLES:
        raise AuthorizationError("Only staff can send alerts.")

    with transaction.atomic():
        return _create_message(
            sender,
            target_key,
            conversation_type,
            content=content,
            msg_type=msg_type,
            reply_to_id=reply_to_id,
        )


def send_image(sender, target_key, upload, conversation_type=ConversationType.DIRECT, reply_to_id=None) -> Message:
    stored = store_chat_image(upload)
    try:
        with transaction.atomic():
            return _create_message(
                sender,
                target_key,
                conversation_type,
                content=stored.url,
                msg_type=MessageType.IMAGE,
                metadata=stored.metadata,
                reply_to_id=reply_to_id,
            )
    except Exception:
        discard_chat_image(stored.name)
        raise


def fetch_messages(viewer, key, conversation_type=ConversationType.DIRECT) -> List[Message]:
    alias_set = identity.get_alias_set()

    if conversation_type == ConversationType.GROUP:
        scope = group_routing.resolve_course_scope(key)
        group_routing.ensure_course_access(viewer, scope.course)
        query = Q(course=scope.course) & group_routing.group_visibility_filter(
            viewer, scope.course.id
        )
    else:
        if _parse_uuid(key) is None:
            raise NotFoundError("User not found.")
        query = direct_conversation_filter(viewer, key, alias_set)

    messages = list(
        Message.objects.filter(query)
        .filter(hidden_filter(viewer))
        .order_by("created_at")
    )
    attach_display(messages, viewer.role, alias_set)
    _attach_reply_previews(messages)

    if conversation_type != ConversationType.GROUP:
        read_state.mark_read(viewer, key, ConversationType.DIRECT)

    return messages


def _parse_schedule(date, time):
    if not date or not time:
        raise ValidationError("Both date and time are required to schedule a session.")
    try:
        scheduled_at = datetime.fromisoformat(f"{str(date).strip()}T{str(time).strip()}")
    except ValueError:
        raise ValidationError("Invalid date or time format.")
    if timezone.is_naive(scheduled_at):
        scheduled_at = timezone.make_aware(scheduled_at)
    return scheduled_at


def can_schedule(actor, course) -> bool:
    if actor.role in SCHEDULER_ROLES:
        return True
    if course.specialist_id == actor.id:
        return True
    return actor.role == Role.SPECIALIST and course.groups.filter(specialist_id=actor.id).exists()


def schedule_session(actor, key, date=None, time=None, title=None) -> Message:
    scheduled_at = _parse_schedule(date, time)
    scope = group_routing.resolve_course_scope(key)
    if not can_schedule(actor, scope.course):
        raise AuthorizationError("You are not allowed to schedule sessions for this course.")

    title = (title or "").strip() or "New session"
    with transaction.atomic():
        session = Session.objects.create(
            course=scope.course,
            group=scope.group,
            title=title,
            scheduled_at=scheduled_at,
            channel_name=f"session_{secrets.token_hex(6)}",
        )
        message = Message.objects.create(
            sender_id=actor.id,
            course=scope.course,
            group=scope.group,
            content=f"New session scheduled: {title}",
            type=MessageType.SCHEDULE,
            metadata={
                "session_id": str(session.id),
                "scheduled_at": scheduled_at.isoformat(),
                "title": title,
            },
        )
        attach_display([message], actor.role)
        message.reply_preview = None
        broadcaster.emit_on_commit(message, actor_id=actor.id)

    logger.info(f"User {actor.id} scheduled session {session.id} for course {scope.course.id}")
    return message


def set_hidden(actor, message_id, hidden: bool) -> Message:
    if actor.role not in MODERATOR_ROLES:
        raise AuthorizationError("Only specialists and the owner can moderate messages.")

    message_id = _parse_uuid(message_id)
    if message_id is None or not Message.objects.filter(pk=message_id).update(hidden=hidden):
        raise NotFoundError("Message not found.")

    message = Message.objects.get(pk=message_id)
    attach_display([message], actor.role)
    message.reply_preview = None
    broadcaster.emit_on_commit(
        message, event="message_hidden" if hidden else "message_unhidden", actor_id=actor.id
    )
    logger.info(f"User {actor.id} set hidden={hidden} on message {message_id}")
    return message


def purge_direct_conversation(viewer, partner_id) -> int:
    if _parse_uuid(partner_id) is None:
        raise NotFoundError("User not found.")
    deleted, _ = Message.objects.filter(direct_conversation_filter(viewer, partner_id)).delete()
    logger.info(f"User {viewer.id} purged {deleted} direct messages with {partner_id}")
    return deleted


def support_contact():
    alias_set = identity.get_alias_set()
    owner = User.objects.filter(pk=alias_set.owner_id).first() if alias_set.owner_id else None
    if owner is None:
        raise NotFoundError("Support is not available right now.")
    return identity.support_identity(owner.id, avatar=owner.avatar)


def send_welcome_message(user) -> Optional[Message]:
    """Greeting from the operator to a newly registered user."""
    alias_set = identity.get_alias_set()
    if alias_set.owner_id is None:
        logger.warning(f"No owner account, skipping welcome message for user {user.id}")
        return None

    message = Message.objects.create(
        sender_id=alias_set.owner_id,
        receiver=user,
        content=settings.MESSAGING.get("WELCOME_MESSAGE", "Welcome!"),
        type=MessageType.TEXT,
    )
    attach_display([message], user.role, alias_set)
    message.reply_preview = None
    broadcaster.emit_on_commit(message)
    logger.info(f"Sent welcome message {message.id} to user {user.id}")
    return message

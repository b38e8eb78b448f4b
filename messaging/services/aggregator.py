# messaging/services/aggregator.py
"""
Builds a viewer's conversation list by merging direct-message partners with
the course and group chats the viewer belongs to. Rebuilt on every request.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List
from urllib.parse import quote

from django.contrib.auth import get_user_model
from django.db.models import OuterRef, Q, Subquery

from courses.models import Course, Enrollment
from messaging.models import ConversationType, Message, preview_text
from messaging.services import identity
from users.models import STAFF_ROLES, Role

logger = logging.getLogger(__name__)

User = get_user_model()

EMPTY_COURSE_PREVIEW = "Welcome to the course chat"


@dataclass
class Conversation:
    id: str
    type: str
    display: identity.DisplayIdentity
    last_message: str
    last_message_at: datetime
    unread_count: int = 0


def course_avatar(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(name)}&background=random"


def _direct_conversations(viewer, alias_set) -> List[Conversation]:
    viewer_ids = identity.resolve_query_identities(viewer.id, viewer.role, alias_set)
    rows = (
        Message.objects.filter(course__isnull=True)
        .filter(Q(sender_id__in=viewer_ids) | Q(receiver_id__in=viewer_ids))
        .order_by("-created_at")
    )
    if viewer.role not in STAFF_ROLES:
        rows = rows.filter(hidden=False)

    latest: Dict = {}
    unread: Dict = {}
    for row in rows.values("sender_id", "receiver_id", "content", "type", "read", "created_at"):
        sender_id, receiver_id = row["sender_id"], row["receiver_id"]

        # Traffic between two support aliases has no human counterpart.
        if sender_id in alias_set and receiver_id in alias_set:
            continue

        if sender_id in viewer_ids:
            partner_id, incoming = receiver_id, False
        else:
            partner_id, incoming = sender_id, True
        partner_id = identity.canonical_partner_id(partner_id, viewer.role, alias_set)

        if partner_id not in latest:
            latest[partner_id] = row
            unread[partner_id] = 0
        if incoming and not row["read"]:
            unread[partner_id] += 1

    partners = User.objects.in_bulk(list(latest.keys()))
    conversations = []
    for partner_id, row in latest.items():
        partner = partners.get(partner_id)
        if partner is None:
            logger.debug(f"Skipping conversation with missing user {partner_id}")
            continue
        conversations.append(
            Conversation(
                id=str(partner_id),
                type=ConversationType.DIRECT,
                display=identity.mask_display(partner, viewer.role, alias_set),
                last_message=preview_text(row["type"], row["content"]),
                last_message_at=row["created_at"],
                unread_count=unread[partner_id],
            )
        )
    return conversations


def _latest_message_subquery(viewer, group_ref=None):
    messages = Message.objects.filter(course_id=OuterRef("course_id" if group_ref else "pk"))
    if group_ref:
        messages = messages.filter(Q(group_id=OuterRef(group_ref)) | Q(group__isnull=True))
    if viewer.role not in STAFF_ROLES:
        messages = messages.filter(hidden=False)
    return Subquery(messages.order_by("-created_at").values("id")[:1])


def _group_conversations(viewer) -> List[Conversation]:
    if viewer.role in STAFF_ROLES:
        courses = Course.objects.all()
        if viewer.role != Role.OWNER:
            courses = courses.filter(
                Q(specialist_id=viewer.id) | Q(groups__specialist_id=viewer.id)
            ).distinct()
        entries = [
            (str(course.id), course.title, course.created_at, course.latest_message_id)
            for course in courses.annotate(latest_message_id=_latest_message_subquery(viewer))
        ]
    else:
        enrollments = (
            Enrollment.objects.filter(user_id=viewer.id)
            .exclude(status="cancelled")
            .select_related("course", "group")
            .annotate(latest_message_id=_latest_message_subquery(viewer, group_ref="group_id"))
        )
        entries = [
            (
                str(e.group_id or e.course_id),
                e.group.name if e.group else e.course.title,
                e.course.created_at,
                e.latest_message_id,
            )
            for e in enrollments
        ]

    latest = Message.objects.in_bulk([entry[3] for entry in entries if entry[3]])
    conversations = []
    for key, name, created_at, message_id in entries:
        message = latest.get(message_id)
        conversations.append(
            Conversation(
                id=key,
                type=ConversationType.GROUP,
                display=identity.DisplayIdentity(
                    id=key, nickname=name, avatar=course_avatar(name), is_course=True
                ),
                last_message=message.preview() if message else EMPTY_COURSE_PREVIEW,
                last_message_at=message.created_at if message else created_at,
            )
        )
    return conversations


def list_conversations(viewer) -> List[Conversation]:
    alias_set = identity.get_alias_set()
    conversations = _direct_conversations(viewer, alias_set) + _group_conversations(viewer)
    conversations.sort(key=lambda c: c.last_message_at, reverse=True)
    logger.debug(f"Built {len(conversations)} conversations for user {viewer.id}")
    return conversations

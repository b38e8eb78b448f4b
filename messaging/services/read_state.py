# messaging/services/read_state.py
import logging

from messaging.models import ConversationType, Message
from messaging.services import group_routing, identity
from users.models import Role

logger = logging.getLogger(__name__)


def mark_read(viewer, key, conversation_type=ConversationType.DIRECT) -> int:
    """
    Mark everything addressed to the viewer in a conversation as read.

    Each case is a single conditional UPDATE on unread rows, so repeated
    calls are safe and return 0 once the conversation is caught up.

    Returns:
        int: number of messages flipped to read
    """
    alias_set = identity.get_alias_set()
    viewer_ids = identity.resolve_query_identities(viewer.id, viewer.role, alias_set)

    if conversation_type == ConversationType.GROUP:
        scope = group_routing.resolve_course_scope(key)
        group_routing.ensure_course_access(viewer, scope.course)
        updated = (
            Message.objects.filter(course=scope.course, read=False)
            .exclude(sender_id__in=viewer_ids)
            .update(read=True)
        )
    else:
        partner_ids = identity.resolve_partner_identities(key, viewer.role, alias_set)
        updated = Message.objects.filter(
            course__isnull=True,
            sender_id__in=partner_ids,
            receiver_id__in=viewer_ids,
            read=False,
        ).update(read=True)

    if updated:
        logger.debug(f"Marked {updated} messages read for user {viewer.id} ({conversation_type} {key})")
    return updated


def unread_count(viewer) -> int:
    """Unread direct messages addressed to the viewer, excluding traffic between support aliases."""
    alias_set = identity.get_alias_set()
    viewer_ids = identity.resolve_query_identities(viewer.id, viewer.role, alias_set)
    queryset = Message.objects.filter(
        course__isnull=True, receiver_id__in=viewer_ids, read=False
    )
    if viewer.role == Role.OWNER:
        queryset = queryset.exclude(sender_id__in=alias_set.ids)
    else:
        queryset = queryset.filter(hidden=False)
    return queryset.count()

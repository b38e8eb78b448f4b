# messaging/services/group_routing.py
"""
Course chat scoping. Students see their own group's traffic plus course-wide
broadcasts; staff see the whole course.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from django.db.models import Q

from courses.models import Course, CourseGroup, Enrollment
from messaging.exceptions import AuthorizationError, NotFoundError
from messaging.models import Message
from users.models import STAFF_ROLES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CourseScope:
    course: Course
    group: Optional[CourseGroup] = None


def _parse_key(key) -> Optional[uuid.UUID]:
    if isinstance(key, uuid.UUID):
        return key
    try:
        return uuid.UUID(str(key))
    except (TypeError, ValueError):
        return None


def resolve_course_scope(key) -> CourseScope:
    """A group conversation key is either a group id or a course id."""
    key = _parse_key(key)
    if key is None:
        raise NotFoundError("Unknown course or group.")

    group = CourseGroup.objects.select_related("course").filter(pk=key).first()
    if group is not None:
        return CourseScope(course=group.course, group=group)

    course = Course.objects.filter(pk=key).first()
    if course is None:
        raise NotFoundError("Unknown course or group.")
    return CourseScope(course=course)


def get_enrollment(user_id, course_id) -> Optional[Enrollment]:
    return (
        Enrollment.objects.filter(user_id=user_id, course_id=course_id)
        .exclude(status="cancelled")
        .first()
    )


def ensure_course_access(user, course) -> Optional[Enrollment]:
    """Staff may use any course chat; students need an enrollment."""
    if user.role in STAFF_ROLES:
        return None
    enrollment = get_enrollment(user.id, course.id)
    if enrollment is None:
        logger.warning(f"User {user.id} tried to access course chat {course.id} without enrollment")
        raise AuthorizationError("You are not enrolled in this course.")
    return enrollment


def resolve_group_id(sender_id, course_id, reply_to_id=None) -> Optional[uuid.UUID]:
    """
    Pick the group a new course message belongs to:
    the sender's own group, else the group of the message being replied to,
    else None (broadcast to every group).
    """
    group_id = (
        Enrollment.objects.filter(
            user_id=sender_id, course_id=course_id, group__isnull=False
        )
        .exclude(status="cancelled")
        .values_list("group_id", flat=True)
        .first()
    )
    if group_id:
        return group_id

    if reply_to_id:
        return (
            Message.objects.filter(pk=reply_to_id, course_id=course_id)
            .values_list("group_id", flat=True)
            .first()
        )
    return None


def group_visibility_filter(user, course_id) -> Q:
    if user.role in STAFF_ROLES:
        return Q()
    enrollment = get_enrollment(user.id, course_id)
    if enrollment is not None and enrollment.group_id:
        return Q(group_id=enrollment.group_id) | Q(group__isnull=True)
    return Q(group__isnull=True)

import uuid

import pytest

from courses.factories import EnrollmentFactory
from messaging.exceptions import AuthorizationError, NotFoundError
from messaging.factories import CourseMessageFactory
from messaging.models import Message
from messaging.services import group_routing

pytestmark = pytest.mark.django_db


def test_scope_from_group_key(course, group_a):
    scope = group_routing.resolve_course_scope(group_a.id)
    assert scope.course == course
    assert scope.group == group_a


def test_scope_from_course_key(course):
    scope = group_routing.resolve_course_scope(str(course.id))
    assert scope.course == course
    assert scope.group is None


@pytest.mark.parametrize("key", [uuid.uuid4(), "nope", None])
def test_unknown_scope_is_not_found(key):
    with pytest.raises(NotFoundError):
        group_routing.resolve_course_scope(key)


def test_sender_group_wins(course, group_a, student_in_a):
    assert group_routing.resolve_group_id(student_in_a.id, course.id) == group_a.id


def test_reply_inherits_group_for_unassigned_sender(course, group_b, specialist):
    parent = CourseMessageFactory(course=course, group=group_b)
    assert group_routing.resolve_group_id(specialist.id, course.id, parent.id) == group_b.id


def test_reply_to_other_course_is_ignored(course, group_b, specialist):
    parent = CourseMessageFactory(group=group_b)
    assert group_routing.resolve_group_id(specialist.id, course.id, parent.id) is None


def test_no_group_and_no_reply_is_broadcast(course, specialist):
    assert group_routing.resolve_group_id(specialist.id, course.id) is None


def test_cancelled_enrollment_does_not_route(course, group_a, student):
    EnrollmentFactory(user=student, course=course, group=group_a, status="cancelled")
    assert group_routing.resolve_group_id(student.id, course.id) is None


def test_student_without_enrollment_is_refused(course, student):
    with pytest.raises(AuthorizationError):
        group_routing.ensure_course_access(student, course)


def test_staff_need_no_enrollment(course, owner, specialist):
    assert group_routing.ensure_course_access(owner, course) is None
    assert group_routing.ensure_course_access(specialist, course) is None


def test_visibility_isolates_groups(course, group_a, group_b, student_in_a, specialist):
    in_a = CourseMessageFactory(course=course, group=group_a)
    in_b = CourseMessageFactory(course=course, group=group_b)
    broadcast = CourseMessageFactory(course=course, group=None)

    def visible(user):
        return set(
            Message.objects.filter(course=course)
            .filter(group_routing.group_visibility_filter(user, course.id))
            .values_list("id", flat=True)
        )

    assert visible(student_in_a) == {in_a.id, broadcast.id}
    assert visible(specialist) == {in_a.id, in_b.id, broadcast.id}


def test_unplaced_student_sees_only_broadcasts(course, group_a, student):
    EnrollmentFactory(user=student, course=course, group=None)
    CourseMessageFactory(course=course, group=group_a)
    broadcast = CourseMessageFactory(course=course, group=None)

    visible = Message.objects.filter(course=course).filter(
        group_routing.group_visibility_filter(student, course.id)
    )
    assert list(visible.values_list("id", flat=True)) == [broadcast.id]

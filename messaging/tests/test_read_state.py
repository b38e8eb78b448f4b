import threading

import pytest
from django.db import connection
from django.test.utils import CaptureQueriesContext

from messaging.exceptions import AuthorizationError
from messaging.factories import CourseMessageFactory, DirectMessageFactory
from messaging.models import ConversationType, Message
from messaging.services import read_state
from users.factories import UserFactory

pytestmark = pytest.mark.django_db


@pytest.fixture
def support_inbox(owner, alias_settings):
    system = UserFactory(username="system", role="admin")
    legacy = UserFactory(username="legacy", role="admin")
    alias_settings(owner, system, legacy)
    return system, legacy


def test_mark_read_is_idempotent(owner, student, support_inbox):
    system, legacy = support_inbox
    DirectMessageFactory(sender=student, receiver=system)
    DirectMessageFactory(sender=student, receiver=legacy)
    DirectMessageFactory(sender=student, receiver=owner)

    first = read_state.mark_read(owner, student.id, ConversationType.DIRECT)
    second = read_state.mark_read(owner, student.id, ConversationType.DIRECT)

    assert first == 3
    assert second == 0
    assert read_state.unread_count(owner) == 0


def test_mark_read_is_a_single_conditional_update(student, specialist):
    DirectMessageFactory(sender=specialist, receiver=student)

    with CaptureQueriesContext(connection) as queries:
        read_state.mark_read(student, specialist.id)

    updates = [q["sql"] for q in queries.captured_queries if q["sql"].startswith("UPDATE")]
    assert len(updates) == 1
    assert '"read"' in updates[0].split("WHERE", 1)[1]


@pytest.mark.django_db(transaction=True)
def test_concurrent_mark_read_flips_each_row_once(student, specialist):
    if connection.vendor == "sqlite":
        pytest.skip("needs a database that accepts concurrent writers")
    for _ in range(5):
        DirectMessageFactory(sender=specialist, receiver=student)

    barrier = threading.Barrier(2)
    results = []

    def worker():
        try:
            barrier.wait()
            results.append(read_state.mark_read(student, specialist.id))
        finally:
            connection.close()

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(results) == 5
    assert Message.objects.filter(receiver=student, read=False).count() == 0


def test_mark_read_leaves_own_messages_untouched(student, specialist):
    outgoing = DirectMessageFactory(sender=student, receiver=specialist)
    DirectMessageFactory(sender=specialist, receiver=student)

    assert read_state.mark_read(student, specialist.id) == 1
    outgoing.refresh_from_db()
    assert not outgoing.read


def test_user_marking_support_thread_spans_all_aliases(owner, student, support_inbox):
    system, legacy = support_inbox
    DirectMessageFactory(sender=system, receiver=student)
    DirectMessageFactory(sender=legacy, receiver=student)
    DirectMessageFactory(sender=owner, receiver=student)

    assert read_state.mark_read(student, owner.id) == 3
    assert read_state.unread_count(student) == 0


def test_mark_read_ignores_course_messages(course, student, specialist):
    CourseMessageFactory(course=course, sender=specialist)
    DirectMessageFactory(sender=specialist, receiver=student)

    assert read_state.mark_read(student, specialist.id) == 1
    assert Message.objects.filter(course=course, read=False).count() == 1


def test_group_mark_read_excludes_own_messages(course, group_a, student_in_a, specialist):
    CourseMessageFactory(course=course, group=group_a, sender=specialist)
    own = CourseMessageFactory(course=course, group=group_a, sender=student_in_a)

    assert read_state.mark_read(student_in_a, group_a.id, ConversationType.GROUP) == 1
    assert read_state.mark_read(student_in_a, course.id, ConversationType.GROUP) == 0
    own.refresh_from_db()
    assert not own.read


def test_group_mark_read_requires_enrollment(course, student):
    with pytest.raises(AuthorizationError):
        read_state.mark_read(student, course.id, ConversationType.GROUP)


def test_unread_count_excludes_alias_to_alias_traffic(owner, student, support_inbox):
    system, legacy = support_inbox
    DirectMessageFactory(sender=system, receiver=legacy)
    DirectMessageFactory(sender=student, receiver=system)

    assert read_state.unread_count(owner) == 1


def test_unread_count_skips_hidden_for_users(student, specialist):
    DirectMessageFactory(sender=specialist, receiver=student, hidden=True)
    DirectMessageFactory(sender=specialist, receiver=student)

    assert read_state.unread_count(student) == 1

import uuid
from datetime import timedelta
from unittest import mock

import pytest
from django.utils import timezone

from courses.factories import EnrollmentFactory
from courses.models import Session
from messaging.exceptions import AuthorizationError, NotFoundError, ValidationError
from messaging.factories import CourseMessageFactory, DirectMessageFactory
from messaging.models import ConversationType, Message, MessageType
from messaging.services import message_store
from users.factories import SpecialistFactory, UserFactory

pytestmark = pytest.mark.django_db


@pytest.mark.parametrize("content", ["", "   ", None])
def test_empty_content_is_rejected(student, specialist, content):
    with pytest.raises(ValidationError):
        message_store.send_message(student, specialist.id, content=content)
    assert not Message.objects.exists()


def test_direct_send_persists_and_returns_display(student, specialist):
    message = message_store.send_message(student, specialist.id, content="Hello there")

    assert message.receiver_id == specialist.id
    assert message.sender_id == student.id
    assert message.course_id is None
    assert message.sender_display.nickname == student.display_name


def test_direct_send_to_unknown_user(student):
    with pytest.raises(NotFoundError):
        message_store.send_message(student, uuid.uuid4(), content="Anyone?")


def test_missing_reply_target_degrades_to_plain_message(student, specialist):
    message = message_store.send_message(
        student, specialist.id, content="Re:", reply_to_id=uuid.uuid4()
    )
    assert message.reply_to_id is None
    assert message.reply_preview is None


def test_malformed_reply_target_degrades_to_plain_message(student, specialist):
    message = message_store.send_message(
        student, specialist.id, content="Re:", reply_to_id="12"
    )
    assert message.reply_to_id is None


def test_reply_carries_preview(student, specialist):
    parent = DirectMessageFactory(sender=specialist, receiver=student, content="How are you?")
    message = message_store.send_message(
        student, specialist.id, content="Better", reply_to_id=str(parent.id)
    )

    assert message.reply_to_id == parent.id
    assert message.reply_preview.content == "How are you?"
    assert message.reply_preview.sender_name == specialist.display_name


def test_reply_to_another_conversation_is_dropped(student, specialist):
    private = DirectMessageFactory(
        sender=specialist, receiver=UserFactory(), content="secret diagnosis"
    )
    message = message_store.send_message(
        student, specialist.id, content="Re:", reply_to_id=str(private.id)
    )

    assert message.reply_to_id is None
    assert message.reply_preview is None


def test_reply_to_hidden_message_is_dropped_for_students(student, specialist):
    hidden = DirectMessageFactory(sender=student, receiver=specialist, hidden=True)
    message = message_store.send_message(
        student, specialist.id, content="Re:", reply_to_id=hidden.id
    )
    assert message.reply_to_id is None


def test_reply_to_other_group_is_dropped(course, group_b, student_in_a, student_in_b):
    other = CourseMessageFactory(course=course, group=group_b, sender=student_in_b)
    message = message_store.send_message(
        student_in_a, course.id, ConversationType.GROUP, content="Re:", reply_to_id=other.id
    )

    assert message.reply_to_id is None
    assert message.reply_preview is None


def test_alerts_are_staff_only(student, specialist):
    with pytest.raises(AuthorizationError):
        message_store.send_message(
            student, specialist.id, content="!", msg_type=MessageType.ALERT
        )

    alert = message_store.send_message(
        specialist, student.id, content="Please check in", msg_type=MessageType.ALERT
    )
    assert alert.type == MessageType.ALERT


def test_owner_to_user_is_stamped_with_system_identity(owner, student, alias_settings):
    system = UserFactory(username="system", role="admin")
    alias_settings(owner, system)

    message = message_store.send_message(owner, student.id, content="We are here to help")

    assert message.sender_id == system.id
    assert message.sender_display.is_support


def test_group_send_routes_to_sender_group(course, group_a, student_in_a):
    message = message_store.send_message(
        student_in_a, course.id, ConversationType.GROUP, content="Hi group"
    )
    assert message.course_id == course.id
    assert message.group_id == group_a.id
    assert message.receiver_id is None


def test_staff_reply_inherits_group(course, group_b, specialist, student_in_b):
    parent = CourseMessageFactory(course=course, group=group_b, sender=student_in_b)
    reply = message_store.send_message(
        specialist, course.id, ConversationType.GROUP, content="Noted", reply_to_id=parent.id
    )
    assert reply.group_id == group_b.id


def test_staff_message_to_course_is_broadcast(course, specialist):
    message = message_store.send_message(
        specialist, course.id, ConversationType.GROUP, content="Welcome all"
    )
    assert message.group_id is None


def test_staff_message_to_group_key_stays_in_group(group_a, specialist):
    message = message_store.send_message(
        specialist, group_a.id, ConversationType.GROUP, content="Hi A"
    )
    assert message.group_id == group_a.id


def test_unplaced_student_posting_to_group_key_goes_course_wide(course, group_b):
    student = EnrollmentFactory(course=course, group=None).user
    message = message_store.send_message(
        student, group_b.id, ConversationType.GROUP, content="Hello?"
    )

    assert message.group_id is None
    fetched = message_store.fetch_messages(student, course.id, ConversationType.GROUP)
    assert message.id in [m.id for m in fetched]


def test_group_send_requires_enrollment(course, student):
    with pytest.raises(AuthorizationError):
        message_store.send_message(student, course.id, ConversationType.GROUP, content="Hi")


def test_fetch_hides_moderated_messages_from_students(student, specialist):
    visible = DirectMessageFactory(sender=specialist, receiver=student)
    DirectMessageFactory(sender=student, receiver=specialist, hidden=True)

    assert [m.id for m in message_store.fetch_messages(student, specialist.id)] == [visible.id]
    assert len(message_store.fetch_messages(specialist, student.id)) == 2


def test_fetch_orders_oldest_first(student, specialist):
    now = timezone.now()
    later = DirectMessageFactory(sender=specialist, receiver=student, created_at=now)
    earlier = DirectMessageFactory(
        sender=student, receiver=specialist, created_at=now - timedelta(minutes=5)
    )

    fetched = message_store.fetch_messages(student, specialist.id)
    assert [m.id for m in fetched] == [earlier.id, later.id]


def test_direct_fetch_marks_incoming_read(student, specialist):
    incoming = DirectMessageFactory(sender=specialist, receiver=student)
    outgoing = DirectMessageFactory(sender=student, receiver=specialist)

    message_store.fetch_messages(student, specialist.id)

    incoming.refresh_from_db()
    outgoing.refresh_from_db()
    assert incoming.read
    assert not outgoing.read


def test_fetch_excludes_other_conversations(student, specialist):
    DirectMessageFactory(sender=specialist, receiver=UserFactory())
    mine = DirectMessageFactory(sender=specialist, receiver=student)

    assert [m.id for m in message_store.fetch_messages(student, specialist.id)] == [mine.id]


def test_reply_preview_dropped_when_parent_unreachable(student, specialist):
    parent = DirectMessageFactory(sender=specialist, receiver=student, hidden=True)
    reply = DirectMessageFactory(sender=specialist, receiver=student, reply_to=parent)

    fetched = {m.id: m for m in message_store.fetch_messages(student, specialist.id)}
    assert fetched[reply.id].reply_preview is None

    staff_view = {m.id: m for m in message_store.fetch_messages(specialist, student.id)}
    assert staff_view[reply.id].reply_preview.id == parent.id


def test_group_fetch_respects_isolation(course, group_a, group_b, student_in_a):
    own = CourseMessageFactory(course=course, group=group_a)
    CourseMessageFactory(course=course, group=group_b)
    broadcast = CourseMessageFactory(course=course, group=None)

    fetched = message_store.fetch_messages(student_in_a, group_a.id, ConversationType.GROUP)
    assert {m.id for m in fetched} == {own.id, broadcast.id}


def test_fetch_survives_deleted_sender(student, specialist):
    ghost = UserFactory()
    DirectMessageFactory(sender=ghost, receiver=student)
    ghost_id = ghost.id
    ghost.delete()

    fetched = message_store.fetch_messages(student, ghost_id)
    assert len(fetched) == 1
    assert fetched[0].sender_display is None


def test_schedule_session_creates_message_and_session(course, specialist):
    message = message_store.schedule_session(
        specialist, course.id, date="2025-03-01", time="18:00", title="Session 1"
    )

    assert message.type == MessageType.SCHEDULE
    assert message.course_id == course.id
    assert message.metadata["scheduled_at"] == "2025-03-01T18:00:00+00:00"
    assert message.metadata["title"] == "Session 1"
    session = Session.objects.get(pk=message.metadata["session_id"])
    assert session.course == course
    assert session.group is None


def test_schedule_for_group_key_scopes_session(group_a, specialist):
    message = message_store.schedule_session(specialist, group_a.id, date="2025-03-02", time="09:30")

    assert message.group_id == group_a.id
    assert message.metadata["title"] == "New session"
    assert Session.objects.get(pk=message.metadata["session_id"]).group == group_a


def test_assigned_group_specialist_may_schedule(course):
    from courses.factories import CourseGroupFactory

    helper = SpecialistFactory()
    CourseGroupFactory(course=course, specialist=helper)
    assert message_store.schedule_session(helper, course.id, date="2025-03-01", time="10:00")


@pytest.mark.parametrize(
    "date,time",
    [(None, "18:00"), ("2025-03-01", ""), ("01/03/2025", "18:00"), ("2025-03-01", "6pm")],
)
def test_schedule_requires_valid_date_and_time(course, specialist, date, time):
    with pytest.raises(ValidationError):
        message_store.schedule_session(specialist, course.id, date=date, time=time)
    assert not Session.objects.exists()


def test_schedule_refused_for_students_and_other_specialists(course, student_in_a):
    with pytest.raises(AuthorizationError):
        message_store.schedule_session(student_in_a, course.id, date="2025-03-01", time="18:00")
    with pytest.raises(AuthorizationError):
        message_store.schedule_session(
            SpecialistFactory(), course.id, date="2025-03-01", time="18:00"
        )


def test_set_hidden_toggles_flag(student, specialist):
    message = DirectMessageFactory(sender=student, receiver=specialist)

    message_store.set_hidden(specialist, message.id, True)
    message.refresh_from_db()
    assert message.hidden

    message_store.set_hidden(specialist, message.id, False)
    message.refresh_from_db()
    assert not message.hidden


def test_set_hidden_refused_for_non_moderators(student, specialist):
    message = DirectMessageFactory(sender=student, receiver=specialist)
    with pytest.raises(AuthorizationError):
        message_store.set_hidden(student, message.id, True)


def test_set_hidden_unknown_message(specialist):
    with pytest.raises(NotFoundError):
        message_store.set_hidden(specialist, uuid.uuid4(), True)


def test_purge_removes_only_that_conversation(student, specialist):
    DirectMessageFactory(sender=student, receiver=specialist)
    DirectMessageFactory(sender=specialist, receiver=student)
    other = DirectMessageFactory(sender=student, receiver=UserFactory())

    assert message_store.purge_direct_conversation(student, specialist.id) == 2
    assert list(Message.objects.values_list("id", flat=True)) == [other.id]


def test_support_contact_is_masked_owner(owner):
    contact = message_store.support_contact()
    assert contact.id == str(owner.id)
    assert contact.is_support


def test_support_contact_without_owner(db):
    with pytest.raises(NotFoundError):
        message_store.support_contact()


def test_welcome_message_without_owner_is_skipped(student):
    assert message_store.send_welcome_message(student) is None


def test_image_is_discarded_when_insert_fails(student, specialist):
    upload = mock.Mock()
    stored = mock.Mock(name="stored", url="/media/x.webp", metadata={})
    stored.name = "chat-images/x.webp"

    with mock.patch.object(message_store, "store_chat_image", return_value=stored), \
            mock.patch.object(message_store, "discard_chat_image") as discard, \
            mock.patch.object(Message.objects, "create", side_effect=RuntimeError("db down")):
        with pytest.raises(RuntimeError):
            message_store.send_image(student, specialist.id, upload)

    discard.assert_called_once_with("chat-images/x.webp")

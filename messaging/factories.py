# messaging/factories.py
import factory

from users.factories import UserFactory

from .models import Message, MessageType


class DirectMessageFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Message

    sender = factory.SubFactory(UserFactory)
    receiver = factory.SubFactory(UserFactory)
    content = factory.Sequence(lambda n: f"Message {n}")
    type = MessageType.TEXT


class CourseMessageFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Message

    sender = factory.SubFactory(UserFactory)
    course = factory.SubFactory("courses.factories.CourseFactory")
    group = None
    content = factory.Sequence(lambda n: f"Course message {n}")
    type = MessageType.TEXT

# courses/factories.py
import factory

from users.factories import SpecialistFactory, UserFactory

from .models import Course, CourseGroup, Enrollment


class CourseFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Course

    title = factory.Sequence(lambda n: f"Course {n}")
    specialist = factory.SubFactory(SpecialistFactory)


class CourseGroupFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CourseGroup

    course = factory.SubFactory(CourseFactory)
    name = factory.Sequence(lambda n: f"Group {n}")
    specialist = factory.SelfAttribute("course.specialist")


class EnrollmentFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Enrollment

    user = factory.SubFactory(UserFactory)
    course = factory.SubFactory(CourseFactory)
    group = None
    status = "active"

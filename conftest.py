import pytest
from rest_framework.test import APIClient

from courses.factories import CourseFactory, CourseGroupFactory, EnrollmentFactory
from users.factories import OwnerFactory, SpecialistFactory, UserFactory


@pytest.fixture
def owner(db):
    return OwnerFactory()


@pytest.fixture
def specialist(db):
    return SpecialistFactory()


@pytest.fixture
def student(db):
    return UserFactory()


@pytest.fixture
def course(specialist):
    return CourseFactory(specialist=specialist, title="Mindful Mornings")


@pytest.fixture
def group_a(course):
    return CourseGroupFactory(course=course, name="Group A")


@pytest.fixture
def group_b(course):
    return CourseGroupFactory(course=course, name="Group B")


@pytest.fixture
def student_in_a(course, group_a):
    return EnrollmentFactory(course=course, group=group_a).user


@pytest.fixture
def student_in_b(course, group_b):
    return EnrollmentFactory(course=course, group=group_b).user


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for(api_client):
    def _client_for(user):
        api_client.force_authenticate(user=user)
        return api_client

    return _client_for


@pytest.fixture
def alias_settings(settings):
    """Configure reserved system and legacy accounts for the support inbox."""

    def _configure(owner, system, legacy=None):
        settings.MESSAGING = {
            **settings.MESSAGING,
            "OWNER_USER_ID": str(owner.id),
            "SYSTEM_USER_ID": str(system.id),
            "LEGACY_USER_ID": str(legacy.id) if legacy else None,
        }

    return _configure

import logging

import pytest

from users.factories import UserFactory
from users.models import Role

pytestmark = pytest.mark.django_db


def test_display_name_prefers_nickname():
    user = UserFactory(nickname="Salma", first_name="Salma", last_name="K")
    assert user.display_name == "Salma"

    user.nickname = ""
    assert user.display_name == "Salma K"


def test_staff_role_flags(owner, specialist, student):
    assert owner.is_owner and owner.is_staff_role
    assert specialist.is_staff_role and not specialist.is_owner
    assert not student.is_staff_role


def test_role_change_is_logged(student, caplog):
    with caplog.at_level(logging.INFO, logger="users.models"):
        student.role = Role.SPECIALIST
        student.save()

    assert "changed from user to specialist" in caplog.text


def test_unchanged_role_is_not_logged(student, caplog):
    with caplog.at_level(logging.INFO, logger="users.models"):
        student.nickname = "Sam"
        student.save()

    assert "role changed" not in caplog.text

# users/models.py
import uuid
import logging

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone
from model_utils import FieldTracker

logger = logging.getLogger(__name__)


class Role(models.TextChoices):
    USER = "user", "User"
    SPECIALIST = "specialist", "Specialist"
    ADMIN = "admin", "Admin"
    OWNER = "owner", "Owner"


# Roles allowed to see moderation-hidden messages and whole-course traffic.
STAFF_ROLES = frozenset({Role.SPECIALIST, Role.ADMIN, Role.OWNER})


class User(AbstractUser):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    nickname = models.CharField(max_length=100, blank=True)
    avatar = models.CharField(max_length=500, blank=True, null=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.USER)
    email = models.EmailField(unique=True)
    created_at = models.DateTimeField(default=timezone.now)

    tracker = FieldTracker(["role"])

    REQUIRED_FIELDS = ["email"]

    class Meta:
        db_table = "users_user"
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["created_at"]
        indexes = [models.Index(fields=["role"], name="users_user_role_idx")]

    def __str__(self):
        return self.nickname or self.username

    @property
    def display_name(self):
        return self.nickname or self.get_full_name() or self.username

    @property
    def is_owner(self):
        return self.role == Role.OWNER

    @property
    def is_staff_role(self):
        return self.role in STAFF_ROLES

    def save(self, *args, **kwargs):
        # The tracker resets during save, so read it first.
        role_changed = not self._state.adding and self.tracker.has_changed("role")
        previous_role = self.tracker.previous("role") if role_changed else None
        super().save(*args, **kwargs)

        if role_changed:
            logger.info(f"User {self.id} role changed from {previous_role} to {self.role}")

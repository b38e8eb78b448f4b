# messaging/permissions.py
from rest_framework.permissions import BasePermission

from users.models import Role


class IsModerator(BasePermission):
    """
    Only specialists and the owner may hide or unhide messages
    """

    message = "Only specialists and the owner can moderate messages."

    def has_permission(self, request, view):
        user = request.user
        return bool(
            user
            and user.is_authenticated
            and getattr(user, "role", None) in (Role.SPECIALIST, Role.OWNER)
        )

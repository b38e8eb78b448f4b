# messaging/middleware.py
import logging
from urllib.parse import parse_qs

from channels.auth import AuthMiddlewareStack
from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from .exceptions import WebSocketAuthenticationError

logger = logging.getLogger(__name__)

User = get_user_model()


@database_sync_to_async
def get_user_for_token(raw_token):
    try:
        token = AccessToken(raw_token)
    except TokenError as e:
        raise WebSocketAuthenticationError(str(e))

    user_id = token.get(api_settings.USER_ID_CLAIM)
    user = User.objects.filter(**{api_settings.USER_ID_FIELD: user_id}).first()
    if user is None or not user.is_active:
        raise WebSocketAuthenticationError(f"No active user for token subject {user_id}")
    return user


class JWTAuthMiddleware(BaseMiddleware):
    """
    Authenticates WebSocket connections from a ``?token=<access token>``
    query parameter. Connections without a valid token get AnonymousUser
    and are rejected by the consumer.
    """

    async def __call__(self, scope, receive, send):
        query = parse_qs(scope.get("query_string", b"").decode())
        raw_token = (query.get("token") or [None])[0]

        if raw_token:
            try:
                scope["user"] = await get_user_for_token(raw_token)
            except WebSocketAuthenticationError as e:
                logger.warning(f"Rejected WebSocket token: {str(e)}")
                scope["user"] = AnonymousUser()
        elif "user" not in scope:
            scope["user"] = AnonymousUser()

        return await super().__call__(scope, receive, send)


def JWTAuthMiddlewareStack(inner):
    """Session auth first, then a query-string JWT overrides it when present."""
    return AuthMiddlewareStack(JWTAuthMiddleware(inner))

import uuid
from unittest import mock

import pytest
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.tokens import AccessToken

from messaging.consumers import MessagingConsumer
from messaging.middleware import JWTAuthMiddleware
from messaging.routing import websocket_urlpatterns
from users.factories import UserFactory
from users.models import User

pytestmark = pytest.mark.django_db(transaction=True)


def connect_as(user, rooms):
    communicator = WebsocketCommunicator(MessagingConsumer.as_asgi(), "/ws/messages/")
    communicator.scope["user"] = user
    patcher = mock.patch("messaging.consumers.rooms_for_user", return_value=rooms)
    return communicator, patcher


def test_anonymous_connection_is_rejected():
    async def scenario():
        communicator, patcher = connect_as(AnonymousUser(), [])
        with patcher:
            connected, _ = await communicator.connect()
        assert not connected

    async_to_sync(scenario)()


def test_connection_receives_room_broadcasts():
    user = User(id=uuid.uuid4(), username="listener")
    room = f"user_{user.id}"

    async def scenario():
        communicator, patcher = connect_as(user, [room])
        with patcher:
            connected, _ = await communicator.connect()
            assert connected

            await get_channel_layer().group_send(
                room,
                {
                    "type": "chat.message",
                    "event": "new_message",
                    "message": {"id": "abc", "content": "hi"},
                    "timestamp": "2025-03-01T18:00:00+00:00",
                },
            )
            event = await communicator.receive_json_from()
            assert event["type"] == "new_message"
            assert event["message"]["content"] == "hi"

            await communicator.send_json_to({"type": "ping"})
            assert await communicator.receive_json_from() == {"type": "pong"}

            await communicator.disconnect()

    async_to_sync(scenario)()


def test_jwt_middleware_authenticates_query_token():
    user = UserFactory()
    token = str(AccessToken.for_user(user))
    seen = {}

    async def inner(scope, receive, send):
        seen["user"] = scope["user"]

    async def scenario():
        middleware = JWTAuthMiddleware(inner)
        await middleware({"type": "websocket", "query_string": f"token={token}".encode()}, None, None)

    async_to_sync(scenario)()
    assert seen["user"].pk == user.pk


def test_jwt_middleware_rejects_bad_token():
    seen = {}

    async def inner(scope, receive, send):
        seen["user"] = scope["user"]

    async def scenario():
        middleware = JWTAuthMiddleware(inner)
        await middleware({"type": "websocket", "query_string": b"token=garbage"}, None, None)

    async_to_sync(scenario)()
    assert seen["user"].is_anonymous


def test_websocket_route_is_registered():
    assert websocket_urlpatterns[0].pattern.match("ws/messages/")

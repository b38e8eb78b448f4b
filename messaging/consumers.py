# messaging/consumers.py
import asyncio
import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.conf import settings
from django.utils import timezone

from messaging.exceptions import AuthorizationError, NotFoundError
from messaging.models import ConversationType
from messaging.services import read_state
from messaging.services.broadcaster import rooms_for_user

logger = logging.getLogger(__name__)


class MessagingConsumer(AsyncWebsocketConsumer):
    """
    Push channel for message events. Joins the user's personal room, the
    rooms of their groups and, for staff, their course rooms. Clients only
    receive here; sending goes through the HTTP API.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.rooms = []
        self.heartbeat_task = None

    async def connect(self):
        try:
            self.user = self.scope.get("user")
            if self.user is None or self.user.is_anonymous:
                logger.warning("Anonymous WebSocket connection rejected")
                await self.close()
                return

            self.rooms = await database_sync_to_async(rooms_for_user)(self.user)
            for room in self.rooms:
                await self.channel_layer.group_add(room, self.channel_name)

            await self.accept()

            self.last_ping = timezone.now()
            self.heartbeat_interval = getattr(settings, "WEBSOCKET_HEARTBEAT_INTERVAL", 30)
            self.heartbeat_task = asyncio.create_task(self.send_heartbeat())

            logger.info(f"User {self.user.id} connected to {len(self.rooms)} message rooms")

        except Exception as e:
            logger.error(f"Error in connect: {str(e)}", exc_info=True)
            await self.close()

    async def disconnect(self, close_code):
        try:
            if self.heartbeat_task:
                self.heartbeat_task.cancel()
                try:
                    await self.heartbeat_task
                except asyncio.CancelledError:
                    pass

            for room in self.rooms:
                await self.channel_layer.group_discard(room, self.channel_name)

            if self.rooms:
                logger.info(f"User {self.user.id} disconnected ({close_code})")
        except Exception as e:
            logger.error(f"Error in disconnect: {str(e)}", exc_info=True)

    async def receive(self, text_data=None, bytes_data=None):
        try:
            data = json.loads(text_data or "{}")
            message_type = data.get("type", "")
            self.last_ping = timezone.now()

            if message_type in ["ping", "pong", "heartbeat"]:
                if message_type == "ping":
                    await self.send(text_data=json.dumps({"type": "pong"}))
                return

            if message_type == "read":
                await self.handle_read(data)
            else:
                logger.warning(f"Unknown message type received: {message_type}")

        except json.JSONDecodeError:
            logger.error("Invalid JSON received")
        except Exception as e:
            logger.error(f"Error in receive: {str(e)}", exc_info=True)

    async def send_heartbeat(self):
        try:
            while True:
                await asyncio.sleep(self.heartbeat_interval)
                try:
                    await self.send(text_data=json.dumps({"type": "heartbeat"}))
                except Exception as send_error:
                    logger.error(f"Failed to send heartbeat: {str(send_error)}")
                    break
        except asyncio.CancelledError:
            logger.debug("Heartbeat task cancelled normally")

    async def handle_read(self, data):
        """Client-side read acknowledgement for the open conversation."""
        key = data.get("conversation_id")
        conversation_type = data.get("conversation_type", ConversationType.DIRECT)
        if not key or conversation_type not in ConversationType.values:
            return

        try:
            updated = await database_sync_to_async(read_state.mark_read)(
                self.user, key, conversation_type
            )
        except (AuthorizationError, NotFoundError) as e:
            logger.warning(f"Read acknowledgement for {key} refused: {str(e)}")
            return

        await self.send(
            text_data=json.dumps(
                {"type": "read_ack", "conversation_id": key, "updated": updated}
            )
        )

    async def chat_message(self, event):
        """Relay a broadcast message event to the client."""
        await self.send(
            text_data=json.dumps(
                {
                    "type": event.get("event", "new_message"),
                    "message": event["message"],
                    "timestamp": event.get("timestamp"),
                }
            )
        )

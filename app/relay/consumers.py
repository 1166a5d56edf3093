"""
WebSocket consumer for the chat relay.

This module implements the real-time side of the relay: one connection
per client session, registered in the presence registry so the
dispatcher can push new messages to it.

Consumers:
    RelayConsumer: Handles a user's WebSocket session

Authentication:
    Users are authenticated via JWT token passed as query parameter or
    subprotocol. JWTAuthMiddleware attaches a TokenUser (or
    AnonymousUser) to self.scope["user"].

Session Lifecycle:
    Connecting -> Connected (handle registered) -> Disconnected
    Each reconnect is a fresh registration. Clients re-fetch history
    (with their last cursor) and unread counts after reconnecting, since
    pushes are best-effort.

Message Types (from client):
    - message: Send a message {"receiver_id", "body", "client_token"?}
    - read: Mark a conversation read {"counterpart_id"}
    - heartbeat: Keep the presence registration alive

Message Types (to client):
    - message: New message pushed by the dispatcher
    - message.sent: Acknowledgement of the client's own send
    - message.deleted: A message was deleted for everyone by its sender
    - read: Acknowledgement of a read marker
    - heartbeat: Heartbeat acknowledgement
    - error: Error response with error_code

Close Codes:
    4001: Not authenticated
    1011: Presence registry unavailable
"""

from __future__ import annotations

import logging

from asgiref.sync import sync_to_async
from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from core.exceptions import BaseApplicationError, ValidationError
from relay.exceptions import DeliveryFault
from relay.presence import PresenceRegistry
from relay.serializers import MessageSerializer
from relay.services import RelayDispatcher, UnreadTracker

logger = logging.getLogger(__name__)


class RelayConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for real-time message delivery.

    Handles:
        - Connection authentication
        - Presence registration and heartbeats
        - Sending messages through RelayDispatcher
        - Read markers
        - Forwarding pushed events to the client

    Attributes:
        user_id: Identifier of the authenticated user (after connect)
        registered: Whether this connection's handle is in the registry
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id: str | None = None
        self.registered = False

    async def connect(self):
        """
        Handle WebSocket connection.

        Rejects anonymous users, registers the connection handle in the
        presence registry, then accepts.
        """
        user = self.scope.get("user")

        if not user or not user.is_authenticated:
            logger.warning("Rejected unauthenticated relay connection")
            await self.close(code=4001)
            return

        self.user_id = str(user.id)

        try:
            await sync_to_async(PresenceRegistry.register)(
                self.user_id, self.channel_name
            )
        except DeliveryFault as e:
            logger.error(f"Could not register user {self.user_id}: {e}")
            await self.close(code=1011)
            return

        self.registered = True

        if "jwt" in self.scope.get("subprotocols", []):
            await self.accept(subprotocol="jwt")
        else:
            await self.accept()
        logger.info(f"User {self.user_id} connected on {self.channel_name}")

    async def disconnect(self, close_code):
        """
        Handle WebSocket disconnection.

        Removes the handle from the presence registry.
        """
        if not self.registered:
            return

        self.registered = False
        try:
            await sync_to_async(PresenceRegistry.unregister)(self.channel_name)
        except DeliveryFault as e:
            # Registration expires with its TTL
            logger.warning(f"Could not unregister {self.channel_name}: {e}")
        logger.info(f"User {self.user_id} disconnected (code {close_code})")

    async def receive_json(self, content, **kwargs):
        """
        Handle incoming WebSocket frames.

        Expected message format:
            {"type": "message", "receiver_id": "u2", "body": "Hello!"}
            {"type": "message", "receiver_id": "u2", "body": "Hi", "client_token": "c-1"}
            {"type": "read", "counterpart_id": "u2"}
            {"type": "heartbeat"}

        Args:
            content: Parsed JSON message from client
        """
        if not isinstance(content, dict):
            await self._send_error(
                ValidationError("Frames must be JSON objects", error_code="INVALID_FRAME")
            )
            return

        message_type = content.get("type")
        handler = {
            "message": self._handle_message,
            "read": self._handle_read,
            "heartbeat": self._handle_heartbeat,
        }.get(message_type)

        if handler is None:
            await self.send_json(
                {
                    "type": "error",
                    "error_code": "UNKNOWN_TYPE",
                    "message": f"Unknown message type: {message_type}",
                }
            )
            return

        try:
            await handler(content)
        except BaseApplicationError as e:
            await self._send_error(e)

    async def _send_error(self, error: BaseApplicationError):
        payload = {
            "type": "error",
            "error_code": error.error_code,
            "message": error.message,
        }
        if error.details:
            payload["details"] = error.details
        if getattr(error, "retryable", False):
            payload["retryable"] = True
        await self.send_json(payload)

    async def _handle_message(self, content):
        """
        Handle an outgoing message from this user.

        Persists and counts through RelayDispatcher, pushes to the
        receiver, and acknowledges with the stored message.
        """
        message, _created = await RelayDispatcher.asend(
            sender_id=self.user_id,
            receiver_id=content.get("receiver_id"),
            body=content.get("body"),
            client_token=content.get("client_token"),
        )
        await self.send_json(
            {
                "type": "message.sent",
                "message": MessageSerializer(message).data,
            }
        )

    async def _handle_read(self, content):
        counterpart_id = content.get("counterpart_id")
        await database_sync_to_async(UnreadTracker.mark_read)(
            self.user_id, counterpart_id
        )
        await self.send_json(
            {"type": "read", "counterpart_id": counterpart_id, "count": 0}
        )

    async def _handle_heartbeat(self, content):
        await sync_to_async(PresenceRegistry.refresh)(self.user_id, self.channel_name)
        await self.send_json({"type": "heartbeat"})

    async def relay_message(self, event):
        """
        Handle relay.message events from channel layer.

        Sends the pushed message to the WebSocket client.
        """
        await self.send_json(
            {
                "type": "message",
                "message": event["message"],
            }
        )

    async def relay_deleted(self, event):
        """Handle relay.deleted events from channel layer."""
        await self.send_json(
            {
                "type": "message.deleted",
                "message_id": event["message_id"],
            }
        )

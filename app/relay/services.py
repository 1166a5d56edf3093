"""
Service layer for the chat relay.

This module contains the business logic shared by the HTTP API and the
WebSocket consumer:

- MessageStore: Durable, ordered message log per conversation pair
- UnreadTracker: Per-(owner, counterpart) unread counters
- RelayDispatcher: Persist, count, then push to the receiver's live handles

Send Pipeline:
    1. MessageStore.append         (atomic insert, server timestamp)
    2. UnreadTracker.on_message_delivered (atomic F() increment)
    3. PresenceRegistry.handles_for + channel layer send per handle

    Steps 1 and 2 run in one transaction: a failure there fails the send
    and nothing is counted or pushed. Step 3 runs after commit and never
    fails the send; a handle that cannot be reached within
    PUSH_TIMEOUT_SECONDS is logged as a DeliveryFault and pruned.

Concurrency:
    No application-level locks. Inserts are single statements, counter
    increments are UPDATE ... SET count = count + 1, and lazy counter
    creation and idempotent retries are resolved by unique constraints.
    Conversations never contend with each other.

Usage:
    from relay.services import MessageStore, RelayDispatcher, UnreadTracker

    message, created = RelayDispatcher.send("u1", "u2", "hello")
    page = MessageStore.list_conversation("u2", "u1")
    UnreadTracker.mark_read("u2", "u1")
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from asgiref.sync import async_to_sync, sync_to_async
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService
from relay.constants import (
    DELIVERY_CONFIG,
    MESSAGE_CONFIG,
    history_max_page_size,
    history_page_size,
    push_timeout_seconds,
)
from relay.cursors import HistoryCursor
from relay.exceptions import DeliveryFault, ForbiddenError, StorageFault
from relay.managers import conversation_key_for
from relay.models import Message, MessageDeletion, UnreadCounter
from relay.presence import PresenceRegistry

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

logger = logging.getLogger(__name__)


@contextmanager
def storage_errors(operation: str) -> Generator[None, None, None]:
    """
    Translate database failures into relay errors.

    IntegrityError that escapes a service's own handling becomes a
    ConflictError; any other DatabaseError (connection loss, statement
    timeout) becomes a retryable StorageFault.
    """
    try:
        yield
    except IntegrityError as e:
        logger.warning(f"Integrity error during {operation}: {e}")
        raise ConflictError(
            "Operation conflicts with existing data",
            details={"operation": operation},
        ) from e
    except DatabaseError as e:
        logger.exception(f"Storage failure during {operation}")
        raise StorageFault(
            "Message storage is unavailable, retry later",
            details={"operation": operation},
        ) from e


def _require_user_id(value, field: str) -> str:
    """Normalize an opaque user identifier, rejecting blank or oversized ones."""
    if value is None or not str(value).strip():
        raise ValidationError(
            f"{field} is required",
            details={field: ["This field is required."]},
        )
    user_id = str(value)
    if len(user_id) > MESSAGE_CONFIG.MAX_USER_ID_LENGTH:
        raise ValidationError(
            f"{field} is too long",
            details={
                field: [
                    f"Ensure this field has no more than "
                    f"{MESSAGE_CONFIG.MAX_USER_ID_LENGTH} characters."
                ]
            },
        )
    return user_id


@dataclass
class HistoryPage:
    """
    One page of conversation history.

    Attributes:
        messages: Messages in ascending id (storage) order
        next_cursor: Position after the last returned message; pass it back
            to continue, or keep it to catch up after a reconnect. Equals
            the input cursor when the page is empty.
        has_more: Whether more messages exist after this page
    """

    messages: list[Message]
    next_cursor: str | None
    has_more: bool


# =============================================================================
# Message Store
# =============================================================================


class MessageStore(BaseService):
    """
    Durable, ordered log of direct messages.

    Handles:
    - Appending messages with server-assigned id and timestamp
    - Idempotent appends keyed by (sender_id, client_token)
    - Cursor-based history per conversation pair
    - Per-party deletion
    """

    @staticmethod
    def conversation_key(user_a: str, user_b: str) -> str:
        """Canonical key of the unordered pair."""
        return conversation_key_for(user_a, user_b)

    @classmethod
    def _validate_pair(cls, user_a, user_b, names=("sender_id", "receiver_id")):
        first = _require_user_id(user_a, names[0])
        second = _require_user_id(user_b, names[1])
        if first == second:
            raise ValidationError(
                "A conversation needs two different users",
                error_code="SELF_ADDRESSED",
                details={names[0]: first, names[1]: second},
            )
        return first, second

    @staticmethod
    def _validate_body(body) -> str:
        if not isinstance(body, str) or not body.strip():
            raise ValidationError(
                "Message body cannot be empty",
                details={"body": ["This field may not be blank."]},
            )
        if len(body) > MESSAGE_CONFIG.MAX_BODY_LENGTH:
            raise ValidationError(
                f"Message body exceeds {MESSAGE_CONFIG.MAX_BODY_LENGTH} characters",
                details={"body": [f"Length {len(body)} exceeds maximum."]},
            )
        return body

    @staticmethod
    def _validate_client_token(client_token) -> str | None:
        if client_token is None or client_token == "":
            return None
        client_token = str(client_token)
        if len(client_token) > MESSAGE_CONFIG.MAX_CLIENT_TOKEN_LENGTH:
            raise ValidationError(
                "client_token is too long",
                details={"client_token": ["Too long."]},
            )
        return client_token

    @classmethod
    def _replay(cls, existing: Message, receiver_id: str, body: str) -> Message:
        """Return the stored message for a retried send, or reject a reused token."""
        if existing.receiver_id != receiver_id or existing.body != body:
            raise ConflictError(
                "client_token was already used for a different message",
                error_code="IDEMPOTENCY_CONFLICT",
                details={
                    "client_token": existing.client_token,
                    "message_id": existing.id,
                },
            )
        cls.get_logger().info(
            f"Replayed message {existing.id} for client_token {existing.client_token}"
        )
        return existing

    @classmethod
    def append(
        cls,
        sender_id,
        receiver_id,
        body: str,
        client_token: str | None = None,
    ) -> tuple[Message, bool]:
        """
        Persist a new message.

        Args:
            sender_id: Author identifier
            receiver_id: Recipient identifier
            body: Non-empty text content
            client_token: Optional idempotency token. A retry with the same
                token returns the originally stored message.

        Returns:
            Tuple (message, created). created is False for a replayed token.

        Raises:
            ValidationError: Blank ids or body, self-addressed, body too long
            ConflictError: client_token reused with a different payload
            StorageFault: Database unavailable
        """
        sender_id, receiver_id = cls._validate_pair(sender_id, receiver_id)
        body = cls._validate_body(body)
        client_token = cls._validate_client_token(client_token)

        with storage_errors("append"):
            if client_token:
                existing = Message.objects.filter(
                    sender_id=sender_id, client_token=client_token
                ).first()
                if existing:
                    return cls._replay(existing, receiver_id, body), False

            try:
                # Savepoint keeps an enclosing transaction usable after a
                # duplicate-token race.
                with transaction.atomic():
                    message = Message.objects.create(
                        sender_id=sender_id,
                        receiver_id=receiver_id,
                        body=body,
                        client_token=client_token,
                    )
            except IntegrityError:
                if not client_token:
                    raise
                existing = Message.objects.get(
                    sender_id=sender_id, client_token=client_token
                )
                return cls._replay(existing, receiver_id, body), False

        cls.get_logger().info(
            f"Stored message {message.id} from {sender_id} to {receiver_id}"
        )
        return message, True

    @classmethod
    def get_message(cls, message_id) -> Message:
        """
        Fetch a message by id.

        Raises:
            ValidationError: If message_id is not an integer
            NotFoundError: If no such message exists
        """
        try:
            pk = int(message_id)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "Invalid message id",
                details={"message_id": str(message_id)},
            ) from e

        with storage_errors("get_message"):
            message = Message.objects.filter(pk=pk).first()
        if message is None:
            raise NotFoundError(
                f"Message {pk} not found",
                details={"message_id": pk},
            )
        return message

    @staticmethod
    def _page_size(limit) -> int:
        if limit is None:
            return history_page_size()
        try:
            size = int(limit)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "Invalid page size",
                details={"page_size": str(limit)},
            ) from e
        if size < 1:
            raise ValidationError(
                "Page size must be at least 1",
                details={"page_size": size},
            )
        return min(size, history_max_page_size())

    @classmethod
    def list_conversation(
        cls,
        user_a,
        user_b,
        *,
        requester_id=None,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> HistoryPage:
        """
        List messages between two users in the order they were stored.

        Messages the requester deleted from their own view are excluded.
        The result is re-queryable: passing next_cursor back returns only
        messages stored after the last one seen.

        Args:
            user_a: One participant
            user_b: The other participant
            requester_id: Whose view to return (defaults to user_a)
            cursor: Opaque position from a previous page
            limit: Page size, clamped to the configured maximum

        Returns:
            HistoryPage

        Raises:
            ValidationError: Invalid pair, cursor or limit
            ForbiddenError: requester_id is not one of the pair
            StorageFault: Database unavailable
        """
        user_a, user_b = cls._validate_pair(user_a, user_b, ("user_a", "user_b"))
        requester_id = user_a if requester_id is None else str(requester_id)
        if requester_id not in (user_a, user_b):
            raise ForbiddenError("Not a participant in this conversation")

        page_size = cls._page_size(limit)
        position = HistoryCursor.decode(cursor) if cursor else None

        with storage_errors("list_conversation"):
            queryset = Message.objects.for_pair(user_a, user_b).visible_to(
                requester_id
            )
            if position is not None:
                queryset = queryset.after(position.message_id)
            rows = list(queryset.order_by("id")[: page_size + 1])

        messages = rows[:page_size]
        if messages:
            next_cursor = HistoryCursor.for_message(messages[-1]).encode()
        else:
            next_cursor = cursor

        return HistoryPage(
            messages=messages,
            next_cursor=next_cursor,
            has_more=len(rows) > page_size,
        )

    @classmethod
    def delete(cls, message_id, requester_id, for_everyone: bool = False) -> Message:
        """
        Remove a message from the requester's view.

        Idempotent: deleting an already deleted message succeeds again.

        Args:
            message_id: Message to delete
            requester_id: User asking for the deletion
            for_everyone: Also remove it from the other participant's view.
                Only the sender may do this.

        Returns:
            The deleted message

        Raises:
            NotFoundError: Unknown message id
            ForbiddenError: Requester is not a participant, or requested
                for_everyone without being the sender
            StorageFault: Database unavailable
        """
        requester_id = _require_user_id(requester_id, "requester_id")
        message = cls.get_message(message_id)

        if not message.is_participant(requester_id):
            raise ForbiddenError(
                "Not a participant in this conversation",
                details={"message_id": message.id},
            )
        if for_everyone and message.sender_id != requester_id:
            raise ForbiddenError(
                "Only the sender can delete a message for everyone",
                details={"message_id": message.id},
            )

        parties = (
            [message.sender_id, message.receiver_id] if for_everyone else [requester_id]
        )
        with storage_errors("delete"), cls.atomic():
            for user_id in parties:
                MessageDeletion.objects.get_or_create(message=message, user_id=user_id)

        scope = "everyone" if for_everyone else "requester"
        cls.get_logger().info(
            f"Message {message.id} deleted for {scope} by {requester_id}"
        )
        return message


# =============================================================================
# Unread Tracker
# =============================================================================


class UnreadTracker(BaseService):
    """
    Per-(owner, counterpart) unread message counters.

    Counters are created on the first delivered message and never
    deleted; they persist at zero after mark_read.
    """

    @classmethod
    def on_message_delivered(cls, receiver_id, sender_id) -> None:
        """
        Increment the receiver's counter for the sender by exactly one.

        The increment is a single UPDATE with an F() expression, so
        concurrent deliveries are all counted.

        Raises:
            StorageFault: Database unavailable
        """
        receiver_id = str(receiver_id)
        sender_id = str(sender_id)

        with storage_errors("on_message_delivered"), cls.atomic():
            UnreadCounter.objects.get_or_create(
                owner_id=receiver_id, counterpart_id=sender_id
            )
            UnreadCounter.objects.filter(
                owner_id=receiver_id, counterpart_id=sender_id
            ).update(count=F("count") + 1, updated_at=timezone.now())

        cls.get_logger().debug(f"Incremented unread {receiver_id} <- {sender_id}")

    @classmethod
    def mark_read(cls, owner_id, counterpart_id) -> None:
        """
        Reset the owner's counter for a counterpart to zero.

        Idempotent; does nothing when no counter exists yet.

        Raises:
            StorageFault: Database unavailable
        """
        owner_id = _require_user_id(owner_id, "owner_id")
        counterpart_id = _require_user_id(counterpart_id, "counterpart_id")

        with storage_errors("mark_read"):
            UnreadCounter.objects.filter(
                owner_id=owner_id, counterpart_id=counterpart_id
            ).exclude(count=0).update(count=0, updated_at=timezone.now())

        cls.get_logger().debug(f"Marked {owner_id} <- {counterpart_id} read")

    @classmethod
    def get_count(cls, owner_id, counterpart_id) -> int:
        """Get the unread count for one conversation (0 if none)."""
        with storage_errors("get_count"):
            count = (
                UnreadCounter.objects.filter(
                    owner_id=str(owner_id), counterpart_id=str(counterpart_id)
                )
                .values_list("count", flat=True)
                .first()
            )
        return count or 0

    @classmethod
    def get_counts(cls, owner_id) -> dict[str, int]:
        """
        Get all unread counts for an owner.

        Read with a single query so every entry comes from the same
        snapshot.

        Returns:
            Mapping of counterpart_id to count
        """
        with storage_errors("get_counts"):
            rows = UnreadCounter.objects.filter(owner_id=str(owner_id)).values_list(
                "counterpart_id", "count"
            )
            return dict(rows)


# =============================================================================
# Relay Dispatcher
# =============================================================================


class RelayDispatcher(BaseService):
    """
    Orchestrates a send: persist, count, push.

    HTTP views call send() and the WebSocket consumer calls asend(); both
    share record() and push(), so the transports carry no business logic
    of their own.
    """

    @staticmethod
    def message_event(message: Message) -> dict[str, Any]:
        """Build the channel layer event for a new message."""
        from relay.serializers import MessageSerializer

        return {
            "type": DELIVERY_CONFIG.EVENT_MESSAGE,
            "message": dict(MessageSerializer(message).data),
        }

    @staticmethod
    def deleted_event(message: Message) -> dict[str, Any]:
        return {
            "type": DELIVERY_CONFIG.EVENT_DELETED,
            "message_id": message.id,
        }

    @classmethod
    def record(
        cls,
        sender_id,
        receiver_id,
        body: str,
        client_token: str | None = None,
    ) -> tuple[Message, bool]:
        """
        Persist a message and count it for the receiver in one transaction.

        A replayed client_token returns the stored message without
        counting it a second time.

        Returns:
            Tuple (message, created)

        Raises:
            ValidationError, ConflictError, StorageFault
        """
        with storage_errors("record"), cls.atomic():
            message, created = MessageStore.append(
                sender_id, receiver_id, body, client_token=client_token
            )
            if created:
                UnreadTracker.on_message_delivered(
                    message.receiver_id, message.sender_id
                )
        return message, created

    @classmethod
    async def _push_one(cls, channel_layer, handle: str, event: dict) -> bool:
        try:
            await asyncio.wait_for(
                channel_layer.send(handle, event),
                timeout=push_timeout_seconds(),
            )
            return True
        except asyncio.TimeoutError:
            fault = DeliveryFault(f"Push to {handle} timed out", handle=handle)
        except Exception as e:
            fault = DeliveryFault(f"Push to {handle} failed: {e}", handle=handle)

        logger.warning(f"{fault}; pruning handle")
        try:
            await sync_to_async(PresenceRegistry.unregister)(handle)
        except DeliveryFault as e:
            logger.warning(f"Could not prune handle {handle}: {e}")
        return False

    @classmethod
    async def push(cls, user_id, event: dict) -> int:
        """
        Push an event to every live handle of a user.

        Handles are pushed concurrently, each bounded by
        PUSH_TIMEOUT_SECONDS. Never raises: failures are logged and the
        failing handles pruned.

        Args:
            user_id: Recipient of the event
            event: Channel layer message (must carry "type")

        Returns:
            Number of handles that accepted the event
        """
        try:
            handles = await sync_to_async(PresenceRegistry.handles_for)(user_id)
        except DeliveryFault as e:
            logger.warning(f"Presence lookup failed for {user_id}, skipping push: {e}")
            return 0

        if not handles:
            logger.debug(f"User {user_id} offline, message waits for next fetch")
            return 0

        channel_layer = get_channel_layer()
        results = await asyncio.gather(
            *(cls._push_one(channel_layer, handle, event) for handle in handles)
        )
        delivered = sum(1 for ok in results if ok)
        logger.debug(f"Pushed {event['type']} to {delivered}/{len(handles)} handle(s)")
        return delivered

    @classmethod
    async def asend(
        cls,
        sender_id,
        receiver_id,
        body: str,
        client_token: str | None = None,
    ) -> tuple[Message, bool]:
        """
        Async send for the WebSocket consumer.

        Returns:
            Tuple (message, created); pushes only when created
        """
        message, created = await database_sync_to_async(cls.record)(
            sender_id, receiver_id, body, client_token
        )
        if created:
            await cls.push(message.receiver_id, cls.message_event(message))
        return message, created

    @classmethod
    def send(
        cls,
        sender_id,
        receiver_id,
        body: str,
        client_token: str | None = None,
    ) -> tuple[Message, bool]:
        """
        Sync send for HTTP views and background jobs.

        Returns:
            Tuple (message, created); pushes only when created
        """
        message, created = cls.record(sender_id, receiver_id, body, client_token)
        if created:
            async_to_sync(cls.push)(message.receiver_id, cls.message_event(message))
        return message, created

    @classmethod
    def delete(cls, message_id, requester_id, for_everyone: bool = False) -> Message:
        """
        Delete a message and notify the counterpart when deleted for everyone.

        Raises:
            NotFoundError, ForbiddenError, StorageFault
        """
        message = MessageStore.delete(message_id, requester_id, for_everyone)
        if for_everyone:
            counterpart = message.counterpart_of(requester_id)
            async_to_sync(cls.push)(counterpart, cls.deleted_event(message))
        return message

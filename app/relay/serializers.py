"""
Serializers for relay API.

This module provides serializers for the relay:
- MessageSerializer: Message representation (HTTP responses and push events)
- MessageCreateSerializer: Send a new message
- HistoryPageSerializer: One page of conversation history
- UnreadCountsSerializer: Bulk unread counts for the badge list
- MarkReadResponseSerializer: Result of marking a conversation read
- PresenceSerializer: Online status of a user

Design Decisions:
    - Read and write serializers are separate for clarity
    - The push payload is MessageSerializer output, identical to what the
      HTTP API returns, so clients de-duplicate by id
    - Business validation (self-addressed, blank body) lives in
      MessageStore so both transports share it; serializers only check
      shape and size
"""

from __future__ import annotations

from rest_framework import serializers

from relay.constants import MESSAGE_CONFIG
from relay.models import Message


class MessageSerializer(serializers.ModelSerializer):
    """
    Serializer for reading messages.

    Fields:
        id: Server-assigned message identifier
        sender_id: Author of the message
        receiver_id: Recipient of the message
        body: Text content
        client_token: Idempotency token supplied by the sender, if any
        created_at: Server persistence timestamp
    """

    class Meta:
        model = Message
        fields = [
            "id",
            "sender_id",
            "receiver_id",
            "body",
            "client_token",
            "created_at",
        ]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    """
    Serializer for sending a message.

    The sender is always the authenticated user; it is never accepted
    from the payload.
    """

    receiver_id = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_USER_ID_LENGTH,
        help_text="Identifier of the recipient",
    )
    body = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_BODY_LENGTH,
        trim_whitespace=False,
        help_text="Message text",
    )
    client_token = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_CLIENT_TOKEN_LENGTH,
        required=False,
        allow_null=True,
        help_text="Client-generated idempotency token; reuse it when retrying",
    )


class HistoryPageSerializer(serializers.Serializer):
    """One page of a conversation, in the order messages were stored."""

    results = MessageSerializer(many=True, source="messages")
    next_cursor = serializers.CharField(allow_null=True)
    has_more = serializers.BooleanField()


class UnreadCountsSerializer(serializers.Serializer):
    counts = serializers.DictField(child=serializers.IntegerField(min_value=0))
    total = serializers.IntegerField(min_value=0)


class MarkReadResponseSerializer(serializers.Serializer):
    counterpart_id = serializers.CharField()
    count = serializers.IntegerField()


class PresenceSerializer(serializers.Serializer):
    user_id = serializers.CharField()
    online = serializers.BooleanField()

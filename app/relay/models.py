"""
Relay models for direct messaging.

This module defines the persisted state of the relay:
- Message: Immutable direct message between two users
- MessageDeletion: Per-party deletion marker (the "deleted for" set)
- UnreadCounter: Per-(owner, counterpart) unread tally

Design Decisions:
    - Users are external; identifiers are opaque strings from the
      identity provider, not foreign keys to a local user table
    - Messages are never updated after creation; deleting "for me"
      adds a MessageDeletion row instead of mutating the message
    - Ordering is by id: ids come from the database sequence, so a
      later insert always sorts after an earlier one. created_at is
      stamped by the database clock, shared by every relay process
    - Idempotent sends are enforced by a partial unique constraint on
      (sender_id, client_token)
    - Unread counters are created lazily and persist at zero

Usage:
    from relay.models import Message, UnreadCounter

    Message.objects.for_pair("u1", "u2").visible_to("u1")
    UnreadCounter.objects.filter(owner_id="u2", counterpart_id="u1")
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q
from django.db.models.functions import Now

from core.models import BaseModel
from relay.constants import MESSAGE_CONFIG
from relay.managers import MessageQuerySet, conversation_key_for


class Message(BaseModel):
    """
    A direct message from one user to another.

    Fields:
        sender_id: Identifier of the author
        receiver_id: Identifier of the recipient
        conversation_key: Canonical unordered pair key ("<lower>:<higher>")
        body: Text content (non-empty)
        client_token: Optional idempotency token supplied by the sender
        created_at: Persistence timestamp from the database clock

    Invariants:
        - sender_id != receiver_id (database check constraint)
        - (sender_id, client_token) is unique when client_token is set
        - Immutable once created
    """

    sender_id = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_USER_ID_LENGTH,
        help_text="Identifier of the user who sent the message",
    )
    receiver_id = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_USER_ID_LENGTH,
        help_text="Identifier of the user the message is addressed to",
    )
    conversation_key = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_USER_ID_LENGTH * 2 + 1,
        editable=False,
        help_text="Canonical key of the unordered sender/receiver pair",
    )
    body = models.TextField(
        help_text="Message text content",
    )
    client_token = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_CLIENT_TOKEN_LENGTH,
        null=True,
        blank=True,
        help_text="Client-generated idempotency token for safe retries",
    )
    created_at = models.DateTimeField(
        db_default=Now(),
        editable=False,
        help_text="Timestamp assigned by the database when the message was stored",
    )

    objects = MessageQuerySet.as_manager()

    class Meta:
        db_table = "relay_message"
        verbose_name = "message"
        verbose_name_plural = "messages"
        ordering = ["id"]
        indexes = [
            models.Index(
                fields=["conversation_key", "id"],
                name="relay_msg_conv_id_idx",
            ),
            models.Index(
                fields=["receiver_id", "created_at"],
                name="relay_msg_receiver_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~Q(sender_id=F("receiver_id")),
                name="relay_message_not_self_addressed",
            ),
            models.UniqueConstraint(
                fields=["sender_id", "client_token"],
                condition=Q(client_token__isnull=False),
                name="relay_message_unique_client_token",
            ),
        ]

    def __str__(self) -> str:
        return f"Message {self.pk} from {self.sender_id} to {self.receiver_id}"

    def save(self, *args, **kwargs):
        """Derive conversation_key from the participants before saving."""
        self.conversation_key = conversation_key_for(self.sender_id, self.receiver_id)
        super().save(*args, **kwargs)

    def is_participant(self, user_id: str) -> bool:
        """Check whether the user is the sender or the receiver."""
        return str(user_id) in (self.sender_id, self.receiver_id)

    def counterpart_of(self, user_id: str) -> str:
        """Return the other participant relative to user_id."""
        return self.receiver_id if str(user_id) == self.sender_id else self.sender_id


class MessageDeletion(BaseModel):
    """
    Marks a message as deleted from one participant's view.

    The set of MessageDeletion rows for a message is its "deleted for"
    set. created_at records when the participant deleted it.
    """

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="deletions",
        help_text="The deleted message",
    )
    user_id = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_USER_ID_LENGTH,
        help_text="Participant who deleted the message from their view",
    )

    class Meta:
        db_table = "relay_message_deletion"
        verbose_name = "message deletion"
        verbose_name_plural = "message deletions"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user_id"],
                name="relay_deletion_unique_per_user",
            ),
        ]

    def __str__(self) -> str:
        return f"Message {self.message_id} deleted for {self.user_id}"


class UnreadCounter(BaseModel):
    """
    Unread message count for one side of a conversation.

    Keyed by (owner_id, counterpart_id): the number of messages owner_id
    received from counterpart_id since owner_id last marked the
    conversation read. Created on the first delivered message and
    never deleted.
    """

    owner_id = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_USER_ID_LENGTH,
        help_text="User the count belongs to (the recipient)",
    )
    counterpart_id = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_USER_ID_LENGTH,
        help_text="The other participant (the sender of the counted messages)",
    )
    count = models.PositiveIntegerField(
        default=0,
        help_text="Messages received and not yet marked read",
    )

    class Meta:
        db_table = "relay_unread_counter"
        verbose_name = "unread counter"
        verbose_name_plural = "unread counters"
        ordering = ["owner_id", "counterpart_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["owner_id", "counterpart_id"],
                name="relay_unread_unique_pair",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.owner_id} has {self.count} unread from {self.counterpart_id}"

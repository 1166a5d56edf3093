"""
QuerySet for relay messages.

Chainable filters used by MessageStore and the purge task:
- for_pair(): messages exchanged between two users (either direction)
- visible_to(): excludes messages the user has deleted from their view
- after(): keyset filter strictly after a message id
- involving(): messages sent or received by a user
- deleted_by_both(): messages every participant has deleted

Usage:
    Message.objects.for_pair("u1", "u2").visible_to("u1").after(42)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models
from django.db.models import Count, Max, Q

if TYPE_CHECKING:
    from datetime import datetime


def conversation_key_for(user_a: str, user_b: str) -> str:
    """
    Build the canonical key for an unordered conversation pair.

    The key is identical for (a, b) and (b, a) and backs the history index.

    Args:
        user_a: One participant's identifier
        user_b: The other participant's identifier

    Returns:
        "<lower>:<higher>" string
    """
    low, high = sorted((str(user_a), str(user_b)))
    return f"{low}:{high}"


class MessageQuerySet(models.QuerySet):
    """QuerySet with conversation, visibility and cursor filters."""

    def for_pair(self, user_a: str, user_b: str) -> MessageQuerySet:
        """
        Filter to messages exchanged between two users.

        The conversation_key filter uses the history index; the direction
        filter keeps the result exact even if identifiers contain ':'.
        """
        return self.filter(conversation_key=conversation_key_for(user_a, user_b)).filter(
            Q(sender_id=user_a, receiver_id=user_b)
            | Q(sender_id=user_b, receiver_id=user_a)
        )

    def visible_to(self, user_id: str) -> MessageQuerySet:
        """Exclude messages the user has deleted from their own view."""
        return self.exclude(deletions__user_id=user_id)

    def after(self, message_id: int) -> MessageQuerySet:
        """Filter to messages stored after the given message id."""
        return self.filter(id__gt=message_id)

    def involving(self, user_id: str) -> MessageQuerySet:
        return self.filter(Q(sender_id=user_id) | Q(receiver_id=user_id))

    def deleted_by_both(self, before: datetime | None = None) -> MessageQuerySet:
        """
        Filter to messages both participants have deleted.

        Args:
            before: Only include messages whose latest deletion is older
                than this timestamp

        Returns:
            Annotated queryset with deletion_count and last_deleted_at
        """
        qs = self.annotate(
            deletion_count=Count("deletions__user_id", distinct=True),
            last_deleted_at=Max("deletions__created_at"),
        ).filter(deletion_count__gte=2)
        if before is not None:
            qs = qs.filter(last_deleted_at__lt=before)
        return qs

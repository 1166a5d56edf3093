"""
Celery tasks for relay app.

This module defines background maintenance for the relay:
- Purging messages that both participants have deleted

Related files:
    - services.py: MessageStore (per-party deletion)
    - managers.py: MessageQuerySet.deleted_by_both
    - config/settings.py: CELERY_BEAT_SCHEDULE entry

Usage:
    from relay.tasks import purge_deleted_messages

    purge_deleted_messages.delay()
"""

import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

from relay.constants import RETENTION_CONFIG, purge_after_days

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def purge_deleted_messages(self, older_than_days: int | None = None) -> int:
    """
    Hard-delete messages that every participant has deleted.

    A message deleted by only one side stays visible to the other and is
    never purged. Deletion markers cascade with the message.

    Args:
        older_than_days: Only purge messages whose latest deletion is older
            than this (defaults to RELAY_PURGE_AFTER_DAYS)

    Returns:
        Number of messages purged
    """
    from relay.models import Message

    days = purge_after_days() if older_than_days is None else older_than_days
    cutoff = timezone.now() - timedelta(days=days)

    purged = 0
    while True:
        batch = list(
            Message.objects.deleted_by_both(before=cutoff).values_list("id", flat=True)[
                : RETENTION_CONFIG.PURGE_BATCH_SIZE
            ]
        )
        if not batch:
            break
        Message.objects.filter(id__in=batch).delete()
        purged += len(batch)

    logger.info(f"Purged {purged} message(s) deleted by both participants")
    return purged

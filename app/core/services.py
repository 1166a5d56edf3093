"""
Base service layer patterns for business logic encapsulation.

This module provides the foundation for the service layer:
- BaseService: Base class with per-service logging and transactions

Service Layer Philosophy:
    Services encapsulate business logic separate from views and models.
    Views and consumers handle transport concerns, models handle data,
    services handle logic. Both the HTTP API and the WebSocket consumer
    call the same service methods.

Error Handling:
    Services raise core.exceptions subclasses for expected failures
    (validation, not found, forbidden, conflict). The transport layer
    converts them with to_dict().

Usage:
    from core.services import BaseService
    from relay.models import UnreadCounter

    class UnreadTracker(BaseService):
        @classmethod
        def mark_read(cls, owner_id: str, counterpart_id: str) -> None:
            with cls.atomic():
                UnreadCounter.objects.filter(
                    owner_id=owner_id, counterpart_id=counterpart_id
                ).update(count=0)

            cls.get_logger().debug(f"Marked {owner_id} <- {counterpart_id} read")

Related:
    - core.exceptions: Domain error hierarchy
    - relay.services: MessageStore, UnreadTracker, RelayDispatcher
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management

    Design Notes:
        - Use @staticmethod or @classmethod (no instance state)
        - Services should be stateless
        - Raise core.exceptions for expected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.

        Returns:
            Logger instance for this service

        Example:
            class MessageStore(BaseService):
                @classmethod
                def append(cls, sender_id, receiver_id, body):
                    cls.get_logger().info(f"Appending message from {sender_id}")
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls, savepoint: bool = True) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        All database operations within this context manager are
        wrapped in a transaction. If any operation fails, all
        changes are rolled back. Nested use creates a savepoint, so an
        IntegrityError inside an inner block can be caught and handled
        without breaking the outer transaction.

        Args:
            savepoint: Whether nested blocks create savepoints

        Yields:
            None

        Example:
            with cls.atomic():
                message = Message.objects.create(...)
                UnreadCounter.objects.filter(...).update(count=F("count") + 1)
                # If the counter update fails, the message is rolled back too
        """
        with transaction.atomic(savepoint=savepoint):
            yield

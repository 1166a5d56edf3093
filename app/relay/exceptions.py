"""
Relay-specific exceptions for messaging operations.

This module extends the core exception hierarchy with the failure modes
of the relay: authorization failures on conversations, storage outages
and failed pushes to live connections.

Exception Hierarchy:
    ForbiddenError (PermissionDeniedError) - Requester is not a participant
    RelayError (base for relay infrastructure)
    ├── StorageFault - Persistence unavailable or timed out (retryable)
    └── DeliveryFault - Push to a connection handle failed (never surfaced)

Propagation:
    - ValidationError, NotFoundError, ForbiddenError and ConflictError
      reach the caller of the request/response API unchanged.
    - StorageFault reaches the caller as a retryable error (HTTP 503).
    - DeliveryFault is absorbed by RelayDispatcher; the stale handle is
      pruned and the sender still sees success.

Usage:
    from relay.exceptions import ForbiddenError, StorageFault

    if requester_id not in (message.sender_id, message.receiver_id):
        raise ForbiddenError(
            "Not a participant in this conversation",
            details={"message_id": message.id},
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, PermissionDeniedError

if TYPE_CHECKING:
    from typing import Any


class ForbiddenError(PermissionDeniedError):
    """
    Raised when the requester is not a participant in the target conversation.

    The error never reveals whether the conversation or message belongs
    to other users beyond the fact that access is forbidden.
    """

    default_error_code: str = "FORBIDDEN"


# =============================================================================
# Relay Infrastructure Exceptions
# =============================================================================


class RelayError(BaseApplicationError):
    """
    Base exception for relay infrastructure failures.

    Attributes:
        retryable: Whether the caller may safely retry the operation
    """

    default_error_code: str = "RELAY_ERROR"
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["retryable"] = self.retryable
        return result


class StorageFault(RelayError):
    """
    Raised when the database is unavailable or a statement times out.

    This is the one error class eligible for retry. Idempotent operations
    (delete, mark read) may be retried as-is; sends should be retried with
    the same client_token so the retry cannot persist a duplicate.

    Example:
        try:
            message = Message.objects.create(...)
        except DatabaseError as e:
            raise StorageFault(
                "Message storage unavailable",
                details={"operation": "append"},
            ) from e
    """

    default_error_code: str = "STORAGE_UNAVAILABLE"
    retryable: bool = True


class DeliveryFault(RelayError):
    """
    Raised when a push to a live connection handle fails.

    Covers channel layer errors, full channels and push timeouts. Only
    raised inside the delivery path; the dispatcher logs it and prunes
    the handle.
    """

    default_error_code: str = "DELIVERY_FAILED"

    def __init__(self, message: str, handle: str | None = None, **kwargs):
        self.handle = handle
        super().__init__(message, **kwargs)

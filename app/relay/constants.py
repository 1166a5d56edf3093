"""
Constants and configuration for relay module features.

This module centralizes configuration values for:
- Message validation (body and identifier limits)
- History retrieval (page sizes)
- Presence tracking (Redis keys, TTLs)
- Delivery (push timeouts, channel layer event types)
- Retention (purge of messages deleted by both parties)

Tunables that operators may need to change are also exposed as
RELAY_* Django settings; the helpers at the bottom of this module
read the setting and fall back to the value defined here.

Import example:
    from relay.constants import MESSAGE_CONFIG, PRESENCE_CONFIG
"""

from typing import Final

from django.conf import settings


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message validation."""

    # Content limits
    MAX_BODY_LENGTH: Final[int] = 10000  # Characters

    # Opaque identifiers issued by the identity provider
    MAX_USER_ID_LENGTH: Final[int] = 64

    # Client-generated idempotency token
    MAX_CLIENT_TOKEN_LENGTH: Final[int] = 64


# =============================================================================
# History Configuration
# =============================================================================


class HISTORY_CONFIG:
    """Configuration for conversation history retrieval."""

    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 100


# =============================================================================
# Presence Configuration
# =============================================================================


class PRESENCE_CONFIG:
    """Configuration for the presence registry."""

    # TTL for registrations (seconds); refreshed by client heartbeats
    PRESENCE_TTL_SECONDS: Final[int] = 120

    # How often clients should send a heartbeat
    HEARTBEAT_INTERVAL_SECONDS: Final[int] = 30

    # Redis key prefixes
    KEY_PREFIX_USER_HANDLES: Final[str] = "relay:presence:user"
    KEY_PREFIX_HANDLE_OWNER: Final[str] = "relay:presence:handle"


# =============================================================================
# Delivery Configuration
# =============================================================================


class DELIVERY_CONFIG:
    """Configuration for pushing messages to live connections."""

    # Upper bound on a single push to a single handle
    PUSH_TIMEOUT_SECONDS: Final[float] = 2.0

    # Channel layer event types (dispatched to RelayConsumer handlers)
    EVENT_MESSAGE: Final[str] = "relay.message"
    EVENT_DELETED: Final[str] = "relay.deleted"


# =============================================================================
# Retention Configuration
# =============================================================================


class RETENTION_CONFIG:
    """Configuration for the purge of fully deleted messages."""

    # Messages deleted by both parties are hard-deleted after this many days
    PURGE_AFTER_DAYS: Final[int] = 30

    # Rows removed per purge batch
    PURGE_BATCH_SIZE: Final[int] = 500


# =============================================================================
# Settings Overrides
# =============================================================================


def push_timeout_seconds() -> float:
    """Per-handle push timeout, overridable via RELAY_PUSH_TIMEOUT_SECONDS."""
    return float(
        getattr(
            settings,
            "RELAY_PUSH_TIMEOUT_SECONDS",
            DELIVERY_CONFIG.PUSH_TIMEOUT_SECONDS,
        )
    )


def presence_ttl_seconds() -> int:
    """Presence TTL, overridable via RELAY_PRESENCE_TTL_SECONDS."""
    return int(
        getattr(
            settings,
            "RELAY_PRESENCE_TTL_SECONDS",
            PRESENCE_CONFIG.PRESENCE_TTL_SECONDS,
        )
    )


def history_page_size() -> int:
    return int(
        getattr(settings, "RELAY_HISTORY_PAGE_SIZE", HISTORY_CONFIG.DEFAULT_PAGE_SIZE)
    )


def history_max_page_size() -> int:
    return int(
        getattr(settings, "RELAY_HISTORY_MAX_PAGE_SIZE", HISTORY_CONFIG.MAX_PAGE_SIZE)
    )


def purge_after_days() -> int:
    return int(
        getattr(settings, "RELAY_PURGE_AFTER_DAYS", RETENTION_CONFIG.PURGE_AFTER_DAYS)
    )

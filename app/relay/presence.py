"""
Redis-backed presence registry.

Maps a user identifier to the live WebSocket connections ("handles") the
user currently holds. A handle is the consumer's Channels channel name,
which the Redis channel layer can route from any relay process, so one
shared registry serves every instance of the relay.

Redis Layout:
    relay:presence:user:<user_id>    SET of handles owned by the user
    relay:presence:handle:<handle>   STRING with the owning user_id

    Both keys carry a TTL (PRESENCE_TTL_SECONDS) refreshed by client
    heartbeats, so registrations left behind by a crashed process expire
    on their own. Set members whose handle key has expired are pruned
    lazily by handles_for().

Design Decisions:
    - Redis-only storage (no database persistence)
    - Additive registration: a user may hold many handles at once
    - Multi-key writes go through a MULTI/EXEC pipeline
    - Redis failures surface as DeliveryFault; callers treat presence as
      a latency optimisation and fall back to "offline"

Usage:
    from relay.presence import PresenceRegistry

    PresenceRegistry.register("u2", channel_name)
    PresenceRegistry.handles_for("u2")      # {"specific.abc!def"}
    PresenceRegistry.unregister(channel_name)  # "u2"
"""

from __future__ import annotations

import logging

from redis.exceptions import RedisError

from core.services import BaseService
from relay.constants import PRESENCE_CONFIG, presence_ttl_seconds
from relay.exceptions import DeliveryFault

logger = logging.getLogger(__name__)


def _decode(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class PresenceRegistry(BaseService):
    """
    Shared registry of live connection handles per user.

    All methods are synchronous; async callers wrap them with
    asgiref's sync_to_async.
    """

    @staticmethod
    def _get_redis_client():
        """
        Get raw Redis client.

        Returns Redis client from django-redis.
        """
        from django_redis import get_redis_connection

        return get_redis_connection("default")

    @staticmethod
    def _user_key(user_id) -> str:
        """Build Redis key for a user's handle set."""
        return f"{PRESENCE_CONFIG.KEY_PREFIX_USER_HANDLES}:{user_id}"

    @staticmethod
    def _handle_key(handle: str) -> str:
        """Build Redis key for a handle's owner."""
        return f"{PRESENCE_CONFIG.KEY_PREFIX_HANDLE_OWNER}:{handle}"

    @classmethod
    def _write_registration(cls, user_id, handle: str) -> None:
        ttl = presence_ttl_seconds()
        user_key = cls._user_key(user_id)

        pipeline = cls._get_redis_client().pipeline(transaction=True)
        pipeline.sadd(user_key, handle)
        pipeline.expire(user_key, ttl)
        pipeline.set(cls._handle_key(handle), str(user_id), ex=ttl)
        pipeline.execute()

    @classmethod
    def register(cls, user_id, handle: str) -> None:
        """
        Associate a live handle with a user.

        Additive: existing handles of the same user are kept.

        Args:
            user_id: Authenticated user identifier
            handle: Channel name of the connection

        Raises:
            DeliveryFault: If Redis is unreachable
        """
        try:
            cls._write_registration(user_id, handle)
        except RedisError as e:
            raise DeliveryFault(
                "Presence registry unavailable",
                handle=handle,
                details={"operation": "register", "user_id": str(user_id)},
            ) from e

        cls.get_logger().debug(f"Registered handle {handle} for user {user_id}")

    @classmethod
    def refresh(cls, user_id, handle: str) -> None:
        """
        Extend the TTL of a registration (client heartbeat).

        Re-adds the handle if it had been pruned, so a heartbeat after a
        short Redis hiccup restores presence.

        Raises:
            DeliveryFault: If Redis is unreachable
        """
        try:
            cls._write_registration(user_id, handle)
        except RedisError as e:
            raise DeliveryFault(
                "Presence registry unavailable",
                handle=handle,
                details={"operation": "refresh", "user_id": str(user_id)},
            ) from e

    @classmethod
    def unregister(cls, handle: str) -> str | None:
        """
        Remove a handle from the registry.

        Args:
            handle: Channel name of the connection

        Returns:
            The user_id that owned the handle, or None if it was unknown
            (already unregistered or expired)

        Raises:
            DeliveryFault: If Redis is unreachable
        """
        try:
            redis_client = cls._get_redis_client()
            handle_key = cls._handle_key(handle)
            owner = redis_client.get(handle_key)
            if owner is None:
                redis_client.delete(handle_key)
                return None

            user_id = _decode(owner)
            pipeline = redis_client.pipeline(transaction=True)
            pipeline.srem(cls._user_key(user_id), handle)
            pipeline.delete(handle_key)
            pipeline.execute()
        except RedisError as e:
            raise DeliveryFault(
                "Presence registry unavailable",
                handle=handle,
                details={"operation": "unregister"},
            ) from e

        cls.get_logger().debug(f"Unregistered handle {handle} for user {user_id}")
        return user_id

    @classmethod
    def handles_for(cls, user_id) -> set[str]:
        """
        Get the live handles of a user.

        Members whose handle key has expired are removed from the user's
        set before returning.

        Args:
            user_id: User identifier

        Returns:
            Set of channel names; empty when the user is offline

        Raises:
            DeliveryFault: If Redis is unreachable
        """
        try:
            redis_client = cls._get_redis_client()
            user_key = cls._user_key(user_id)
            members = [_decode(m) for m in redis_client.smembers(user_key)]
            if not members:
                return set()

            pipeline = redis_client.pipeline()
            for handle in members:
                pipeline.exists(cls._handle_key(handle))
            alive = pipeline.execute()

            live = {h for h, exists in zip(members, alive) if exists}
            stale = [h for h in members if h not in live]
            if stale:
                redis_client.srem(user_key, *stale)
                logger.info(f"Pruned {len(stale)} expired handle(s) for user {user_id}")
        except RedisError as e:
            raise DeliveryFault(
                "Presence registry unavailable",
                details={"operation": "handles_for", "user_id": str(user_id)},
            ) from e

        return live

    @classmethod
    def is_online(cls, user_id) -> bool:
        """Check whether the user has at least one live handle."""
        return bool(cls.handles_for(user_id))

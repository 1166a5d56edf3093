"""
Relay app for real-time direct messaging.

This app handles:
- Durable, ordered message history per conversation pair
- Per-(owner, counterpart) unread counters
- Presence registry of live WebSocket connections (Redis)
- Dispatch of new messages to online recipients
- Per-party message deletion

Related apps:
    - core: BaseModel, BaseService and the exception hierarchy

WebSocket Support:
    Uses Django Channels for real-time delivery.
    See consumers.py for the WebSocket handler.
    See routing.py for WebSocket URL patterns.

Usage:
    from relay.services import RelayDispatcher, UnreadTracker

    # Persist, count and push in one call
    message, created = RelayDispatcher.send(
        sender_id="u1",
        receiver_id="u2",
        body="hello",
    )

    UnreadTracker.get_count("u2", "u1")  # 1
"""

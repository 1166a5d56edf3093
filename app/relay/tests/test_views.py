"""
Tests for relay API endpoints.

This module tests:
- Authentication requirements
- Sending, history paging, deletion, unread counts, presence
- Mapping of domain errors to HTTP status codes

Testing Philosophy:
    Requests go through the full DRF stack with real JWTs minted by
    simplejwt, so identity flows exactly as in production.
"""

import pytest
from django.urls import reverse
from rest_framework import status

from core.exceptions import BaseApplicationError
from relay.exceptions import DeliveryFault, ForbiddenError, StorageFault
from relay.models import Message, MessageDeletion
from relay.presence import PresenceRegistry
from relay.services import MessageStore, RelayDispatcher, UnreadTracker
from relay.tests.factories import MessageFactory, UnreadCounterFactory
from relay.views import error_status_for

SEND_URL = "/api/v1/relay/messages/"
UNREAD_URL = "/api/v1/relay/unread/"


def history_url(counterpart_id):
    return reverse("relay:conversation-messages", args=[counterpart_id])


def read_url(counterpart_id):
    return reverse("relay:conversation-read", args=[counterpart_id])


def delete_url(message_id):
    return reverse("relay:message-delete", args=[message_id])


# =============================================================================
# TestAuthentication
# =============================================================================


class TestAuthentication:
    """Every relay endpoint requires a valid access token."""

    @pytest.mark.parametrize(
        "method,url",
        [
            ("post", SEND_URL),
            ("get", UNREAD_URL),
            ("get", "/api/v1/relay/conversations/u2/messages/"),
            ("post", "/api/v1/relay/conversations/u2/read/"),
            ("delete", "/api/v1/relay/messages/1/"),
            ("get", "/api/v1/relay/presence/u2/"),
        ],
    )
    def test_anonymous_request_is_rejected(self, db, api_client, method, url):
        response = getattr(api_client, method)(url)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_invalid_token_is_rejected(self, db, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer not-a-token")

        response = api_client.get(UNREAD_URL)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# =============================================================================
# TestMessageSendView
# =============================================================================


class TestMessageSendView:
    """
    Tests for POST /api/v1/relay/messages/.

    Verifies:
    - The sender is the authenticated user
    - 201 for a new message, 200 for a replay, 409 for a token conflict
    - Validation failures are 400 and store nothing
    """

    def test_send_returns_201_with_stored_message(self, db, client_for):
        """
        A valid send returns the stored message.

        Why it matters: The client needs the server id and timestamp to
        place the message and de-duplicate pushes.
        """
        response = client_for("u1").post(
            SEND_URL, {"receiver_id": "u2", "body": "hello"}, format="json"
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["sender_id"] == "u1"
        assert response.data["receiver_id"] == "u2"
        assert response.data["body"] == "hello"
        assert Message.objects.filter(pk=response.data["id"]).exists()
        assert UnreadTracker.get_count("u2", "u1") == 1

    def test_sender_cannot_be_spoofed(self, db, client_for):
        response = client_for("u1").post(
            SEND_URL,
            {"sender_id": "u9", "receiver_id": "u2", "body": "hello"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["sender_id"] == "u1"

    def test_retry_returns_200_with_same_message(self, db, client_for):
        client = client_for("u1")
        payload = {"receiver_id": "u2", "body": "hello", "client_token": "c-1"}

        first = client.post(SEND_URL, payload, format="json")
        second = client.post(SEND_URL, payload, format="json")

        assert first.status_code == status.HTTP_201_CREATED
        assert second.status_code == status.HTTP_200_OK
        assert second.data["id"] == first.data["id"]
        assert UnreadTracker.get_count("u2", "u1") == 1

    def test_reused_token_with_new_body_returns_409(self, db, client_for):
        client = client_for("u1")
        client.post(
            SEND_URL,
            {"receiver_id": "u2", "body": "hello", "client_token": "c-1"},
            format="json",
        )

        response = client.post(
            SEND_URL,
            {"receiver_id": "u2", "body": "changed", "client_token": "c-1"},
            format="json",
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "IDEMPOTENCY_CONFLICT"

    def test_self_addressed_returns_400(self, db, client_for):
        response = client_for("u1").post(
            SEND_URL, {"receiver_id": "u1", "body": "me"}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "SELF_ADDRESSED"
        assert not Message.objects.exists()

    @pytest.mark.parametrize("body", ["", "   "])
    def test_blank_body_returns_400(self, db, client_for, body):
        response = client_for("u1").post(
            SEND_URL, {"receiver_id": "u2", "body": body}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert not Message.objects.exists()

    def test_missing_receiver_returns_400(self, db, client_for):
        response = client_for("u1").post(SEND_URL, {"body": "hi"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_storage_outage_returns_retryable_503(self, db, client_for, mocker):
        """
        A database outage is reported as retryable.

        Why it matters: Clients retry 503s with the same client_token and
        nothing else.
        """
        mocker.patch.object(
            MessageStore, "append", side_effect=StorageFault("Message storage is unavailable")
        )

        response = client_for("u1").post(
            SEND_URL, {"receiver_id": "u2", "body": "hi"}, format="json"
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.data["error_code"] == "STORAGE_UNAVAILABLE"
        assert response.data["retryable"] is True

    def test_push_reaches_online_receiver(self, db, client_for, mocker):
        pushed = []

        async def fake_push(user_id, event):
            pushed.append((user_id, event))
            return 1

        mocker.patch.object(RelayDispatcher, "push", new=fake_push)

        response = client_for("u1").post(
            SEND_URL, {"receiver_id": "u2", "body": "hello"}, format="json"
        )

        assert pushed[0][0] == "u2"
        assert pushed[0][1]["message"]["id"] == response.data["id"]


# =============================================================================
# TestConversationMessagesView
# =============================================================================


class TestConversationMessagesView:
    """
    Tests for GET /api/v1/relay/conversations/{counterpart_id}/messages/.

    Verifies:
    - Ascending order across both directions
    - Cursor paging and catch-up
    - Per-party deletion filtering
    """

    def test_lists_conversation_in_order(self, db, client_for):
        first, _ = MessageStore.append("u1", "u2", "one")
        second, _ = MessageStore.append("u2", "u1", "two")
        MessageStore.append("u1", "u3", "other conversation")

        response = client_for("u2").get(history_url("u1"))

        assert response.status_code == status.HTTP_200_OK
        assert [m["id"] for m in response.data["results"]] == [first.id, second.id]
        assert response.data["has_more"] is False
        assert response.data["next_cursor"]

    def test_pages_with_cursor(self, db, client_for):
        ids = [MessageStore.append("u1", "u2", f"m{i}")[0].id for i in range(3)]
        client = client_for("u2")

        first = client.get(history_url("u1"), {"page_size": 2})
        second = client.get(
            history_url("u1"), {"page_size": 2, "cursor": first.data["next_cursor"]}
        )

        assert [m["id"] for m in first.data["results"]] == ids[:2]
        assert first.data["has_more"] is True
        assert [m["id"] for m in second.data["results"]] == ids[2:]
        assert second.data["has_more"] is False

    def test_cursor_catches_up_after_reconnect(self, db, client_for):
        """
        A stored cursor returns exactly the messages missed since.

        Why it matters: Pushes are best effort; this is how a client
        recovers anything it missed while disconnected.
        """
        MessageStore.append("u1", "u2", "seen")
        client = client_for("u2")
        cursor = client.get(history_url("u1")).data["next_cursor"]
        missed, _ = MessageStore.append("u1", "u2", "missed")

        response = client.get(history_url("u1"), {"cursor": cursor})

        assert [m["id"] for m in response.data["results"]] == [missed.id]

    def test_hides_messages_deleted_by_requester(self, db, client_for):
        message = MessageFactory(sender_id="u1", receiver_id="u2", deleted_for=["u2"])

        receiver_view = client_for("u2").get(history_url("u1"))
        sender_view = client_for("u1").get(history_url("u2"))

        assert receiver_view.data["results"] == []
        assert [m["id"] for m in sender_view.data["results"]] == [message.id]

    def test_invalid_cursor_returns_400(self, db, client_for):
        response = client_for("u2").get(history_url("u1"), {"cursor": "garbage!"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "INVALID_CURSOR"

    def test_invalid_page_size_returns_400(self, db, client_for):
        response = client_for("u2").get(history_url("u1"), {"page_size": "zero"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_own_id_as_counterpart_returns_400(self, db, client_for):
        response = client_for("u2").get(history_url("u2"))

        assert response.status_code == status.HTTP_400_BAD_REQUEST


# =============================================================================
# TestMessageDeleteView
# =============================================================================


class TestMessageDeleteView:
    """
    Tests for DELETE /api/v1/relay/messages/{id}/.

    Verifies:
    - 204 for participants, idempotent
    - scope=everyone is sender-only
    - 403 for non-participants, 404 for unknown ids
    """

    def test_receiver_deletes_for_self(self, db, client_for):
        message = MessageFactory(sender_id="u1", receiver_id="u2")

        response = client_for("u2").delete(delete_url(message.id))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert MessageDeletion.objects.filter(message=message, user_id="u2").exists()
        assert not MessageDeletion.objects.filter(message=message, user_id="u1").exists()

    def test_repeat_delete_returns_204(self, db, client_for):
        message = MessageFactory(sender_id="u1", receiver_id="u2")
        client = client_for("u2")

        client.delete(delete_url(message.id))
        response = client.delete(delete_url(message.id))

        assert response.status_code == status.HTTP_204_NO_CONTENT

    def test_sender_deletes_for_everyone(self, db, client_for):
        message = MessageFactory(sender_id="u1", receiver_id="u2")

        response = client_for("u1").delete(f"{delete_url(message.id)}?scope=everyone")

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert MessageDeletion.objects.filter(message=message).count() == 2

    def test_receiver_cannot_delete_for_everyone(self, db, client_for):
        message = MessageFactory(sender_id="u1", receiver_id="u2")

        response = client_for("u2").delete(f"{delete_url(message.id)}?scope=everyone")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error_code"] == "FORBIDDEN"

    def test_non_participant_returns_403(self, db, client_for):
        """
        Outsiders cannot delete messages in conversations they are not in.

        Why it matters: Message ids are sequential and guessable.
        """
        message = MessageFactory(sender_id="u1", receiver_id="u2")

        response = client_for("u3").delete(delete_url(message.id))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert not MessageDeletion.objects.exists()

    def test_unknown_message_returns_404(self, db, client_for):
        response = client_for("u1").delete(delete_url(999999))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "NOT_FOUND"

    def test_invalid_scope_returns_400(self, db, client_for):
        message = MessageFactory(sender_id="u1", receiver_id="u2")

        response = client_for("u1").delete(f"{delete_url(message.id)}?scope=all")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


# =============================================================================
# TestUnreadViews
# =============================================================================


class TestUnreadViews:
    """Tests for GET /unread/ and POST /conversations/{id}/read/."""

    def test_unread_counts(self, db, client_for):
        UnreadCounterFactory(owner_id="u2", counterpart_id="u1", count=2)
        UnreadCounterFactory(owner_id="u2", counterpart_id="u3", count=1)

        response = client_for("u2").get(UNREAD_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"counts": {"u1": 2, "u3": 1}, "total": 3}

    def test_unread_counts_empty(self, db, client_for):
        response = client_for("u2").get(UNREAD_URL)

        assert response.data == {"counts": {}, "total": 0}

    def test_mark_read(self, db, client_for):
        UnreadCounterFactory(owner_id="u2", counterpart_id="u1", count=2)

        response = client_for("u2").post(read_url("u1"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"counterpart_id": "u1", "count": 0}
        assert UnreadTracker.get_count("u2", "u1") == 0

    def test_mark_read_only_affects_requester(self, db, client_for):
        UnreadCounterFactory(owner_id="u1", counterpart_id="u2", count=3)

        client_for("u2").post(read_url("u1"))

        assert UnreadTracker.get_count("u1", "u2") == 3


# =============================================================================
# TestUserPresenceView
# =============================================================================


class TestUserPresenceView:
    """Tests for GET /api/v1/relay/presence/{user_id}/."""

    def test_online_user(self, db, client_for):
        PresenceRegistry.register("u2", "handle-a")

        response = client_for("u1").get("/api/v1/relay/presence/u2/")

        assert response.data == {"user_id": "u2", "online": True}

    def test_offline_user(self, db, client_for):
        response = client_for("u1").get("/api/v1/relay/presence/u2/")

        assert response.data == {"user_id": "u2", "online": False}


# =============================================================================
# TestErrorStatusMapping
# =============================================================================


class TestErrorStatusMapping:
    """Tests for error_status_for()."""

    def test_delivery_fault_maps_to_503(self):
        assert error_status_for(DeliveryFault("down")) == 503

    def test_forbidden_maps_to_403(self):
        assert error_status_for(ForbiddenError("no")) == 403

    def test_unknown_application_error_maps_to_500(self):
        assert error_status_for(BaseApplicationError("boom")) == 500

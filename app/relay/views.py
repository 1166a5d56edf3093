"""
API views for the chat relay.

This module provides the request/response side of the relay. Clients use
it to fetch history, send without a socket, delete, and read unread
counts, in particular after reconnecting when pushes may have been missed.

URL Structure:
    /api/v1/relay/conversations/{counterpart_id}/messages/  GET
    /api/v1/relay/conversations/{counterpart_id}/read/      POST
    /api/v1/relay/messages/                                 POST
    /api/v1/relay/messages/{id}/                            DELETE
    /api/v1/relay/unread/                                   GET
    /api/v1/relay/presence/{user_id}/                       GET

Design Decisions:
    - The requester is always the authenticated user; conversations are
      addressed by counterpart so a user can only read their own
      conversations
    - All operations go through the service layer
    - Domain errors are mapped to HTTP statuses in RelayAPIView
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
)
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from relay.exceptions import RelayError
from relay.presence import PresenceRegistry
from relay.serializers import (
    HistoryPageSerializer,
    MarkReadResponseSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    PresenceSerializer,
    UnreadCountsSerializer,
)
from relay.services import MessageStore, RelayDispatcher, UnreadTracker

# Most specific first
ERROR_STATUS_MAP = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (RelayError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def error_status_for(exc: BaseApplicationError) -> int:
    """Map a domain error to its HTTP status code."""
    for error_class, status_code in ERROR_STATUS_MAP:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class RelayAPIView(APIView):
    """
    Base view for relay endpoints.

    Converts BaseApplicationError raised by services into JSON error
    responses; everything else is handled by DRF.
    """

    permission_classes = [IsAuthenticated]

    def handle_exception(self, exc):
        if isinstance(exc, BaseApplicationError):
            return Response(exc.to_dict(), status=error_status_for(exc))
        return super().handle_exception(exc)

    @property
    def requester_id(self) -> str:
        return str(self.request.user.id)


class ConversationMessagesView(RelayAPIView):
    """
    Conversation history with one counterpart.

    GET /api/v1/relay/conversations/{counterpart_id}/messages/
        List messages in storage order, excluding those the requester deleted.
    """

    @extend_schema(
        operation_id="get_history",
        summary="Get conversation history",
        description=(
            "Returns messages exchanged with the counterpart in ascending "
            "server-timestamp order. Pass next_cursor back as cursor to fetch "
            "the following page, or to catch up on messages stored since the "
            "cursor was issued (e.g. after a reconnect)."
        ),
        parameters=[
            OpenApiParameter(
                name="cursor",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Opaque cursor from a previous response",
            ),
            OpenApiParameter(
                name="page_size",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Messages per page (default 50, max 100)",
            ),
        ],
        responses={
            200: HistoryPageSerializer,
            400: OpenApiResponse(description="Invalid cursor or page size"),
        },
        tags=["Relay - Messages"],
    )
    def get(self, request, counterpart_id: str):
        page = MessageStore.list_conversation(
            self.requester_id,
            counterpart_id,
            requester_id=self.requester_id,
            cursor=request.query_params.get("cursor") or None,
            limit=request.query_params.get("page_size"),
        )
        return Response(HistoryPageSerializer(page).data)


class MessageSendView(RelayAPIView):
    """
    Send a message.

    POST /api/v1/relay/messages/
        Persist, count and push a message from the authenticated user.
    """

    @extend_schema(
        operation_id="post_message",
        summary="Send a message",
        description=(
            "Stores the message durably, increments the receiver's unread count "
            "and pushes it to the receiver's live connections. A retry with the "
            "same client_token returns the stored message with status 200."
        ),
        request=MessageCreateSerializer,
        responses={
            201: OpenApiResponse(response=MessageSerializer, description="Message stored"),
            200: OpenApiResponse(
                response=MessageSerializer,
                description="Retry of an already stored message",
            ),
            400: OpenApiResponse(description="Empty body or self-addressed message"),
            409: OpenApiResponse(description="client_token reused with a different payload"),
            503: OpenApiResponse(description="Storage unavailable, retry with the same client_token"),
        },
        tags=["Relay - Messages"],
    )
    def post(self, request):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        message, created = RelayDispatcher.send(
            sender_id=self.requester_id,
            receiver_id=serializer.validated_data["receiver_id"],
            body=serializer.validated_data["body"],
            client_token=serializer.validated_data.get("client_token"),
        )

        return Response(
            MessageSerializer(message).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class MessageDeleteView(RelayAPIView):
    """
    Delete a message.

    DELETE /api/v1/relay/messages/{id}/?scope=me|everyone
        Remove the message from the requester's view ("me", default), or
        from both participants' views ("everyone", sender only).
    """

    SCOPES = ("me", "everyone")

    @extend_schema(
        operation_id="delete_message",
        summary="Delete a message",
        parameters=[
            OpenApiParameter(
                name="scope",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                enum=["me", "everyone"],
                description="Whose view to delete the message from",
            ),
        ],
        responses={
            204: OpenApiResponse(description="Deleted (also for repeat deletes)"),
            403: OpenApiResponse(description="Not a participant"),
            404: OpenApiResponse(description="Message not found"),
        },
        tags=["Relay - Messages"],
    )
    def delete(self, request, message_id: int):
        scope = request.query_params.get("scope", "me")
        if scope not in self.SCOPES:
            raise ValidationError(
                f"Invalid scope: {scope}",
                details={"scope": list(self.SCOPES)},
            )

        RelayDispatcher.delete(
            message_id,
            self.requester_id,
            for_everyone=scope == "everyone",
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


class UnreadCountsView(RelayAPIView):
    """
    Unread counts for the authenticated user.

    GET /api/v1/relay/unread/
    """

    @extend_schema(
        operation_id="get_unread_counts",
        summary="Get unread counts",
        description="Unread counts per counterpart, read in a single snapshot.",
        responses={200: UnreadCountsSerializer},
        tags=["Relay - Unread"],
    )
    def get(self, request):
        counts = UnreadTracker.get_counts(self.requester_id)
        return Response(
            UnreadCountsSerializer({"counts": counts, "total": sum(counts.values())}).data
        )


class MarkReadView(RelayAPIView):
    """
    Mark a conversation read.

    POST /api/v1/relay/conversations/{counterpart_id}/read/
    """

    @extend_schema(
        operation_id="mark_read",
        summary="Mark conversation read",
        description="Resets the unread count for the counterpart to zero. Idempotent.",
        request=None,
        responses={200: MarkReadResponseSerializer},
        tags=["Relay - Unread"],
    )
    def post(self, request, counterpart_id: str):
        UnreadTracker.mark_read(self.requester_id, counterpart_id)
        return Response(
            MarkReadResponseSerializer(
                {"counterpart_id": counterpart_id, "count": 0}
            ).data
        )


class UserPresenceView(RelayAPIView):
    """
    Online status of a user.

    GET /api/v1/relay/presence/{user_id}/
    """

    @extend_schema(
        operation_id="get_user_presence",
        summary="Get user presence",
        description="Whether the user currently holds at least one live connection.",
        responses={
            200: PresenceSerializer,
            503: OpenApiResponse(description="Presence registry unavailable"),
        },
        tags=["Relay - Presence"],
    )
    def get(self, request, user_id: str):
        online = PresenceRegistry.is_online(user_id)
        return Response(PresenceSerializer({"user_id": user_id, "online": online}).data)

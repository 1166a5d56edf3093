"""
URL configuration for relay app.

URL Structure:
    /api/v1/relay/conversations/{counterpart_id}/messages/  GET
    /api/v1/relay/conversations/{counterpart_id}/read/      POST
    /api/v1/relay/messages/                                 POST
    /api/v1/relay/messages/{id}/                            DELETE
    /api/v1/relay/unread/                                   GET
    /api/v1/relay/presence/{user_id}/                       GET
"""

from django.urls import path

from relay import views

app_name = "relay"

urlpatterns = [
    path(
        "conversations/<str:counterpart_id>/messages/",
        views.ConversationMessagesView.as_view(),
        name="conversation-messages",
    ),
    path(
        "conversations/<str:counterpart_id>/read/",
        views.MarkReadView.as_view(),
        name="conversation-read",
    ),
    path("messages/", views.MessageSendView.as_view(), name="message-send"),
    path(
        "messages/<int:message_id>/",
        views.MessageDeleteView.as_view(),
        name="message-delete",
    ),
    path("unread/", views.UnreadCountsView.as_view(), name="unread-counts"),
    path(
        "presence/<str:user_id>/",
        views.UserPresenceView.as_view(),
        name="user-presence",
    ),
]

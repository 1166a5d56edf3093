"""
Smoke tests for the relay admin pages.
"""

from django.urls import reverse

from relay.tests.factories import MessageFactory, UnreadCounterFactory


class TestRelayAdmin:
    """Admin changelists and detail pages render for staff."""

    def test_message_changelist(self, admin_client):
        MessageFactory(sender_id="u1", receiver_id="u2", body="x" * 80)

        response = admin_client.get(reverse("admin:relay_message_changelist"))

        assert response.status_code == 200

    def test_message_detail_shows_deletions(self, admin_client):
        message = MessageFactory(sender_id="u1", receiver_id="u2", deleted_for=["u2"])

        response = admin_client.get(
            reverse("admin:relay_message_change", args=[message.pk])
        )

        assert response.status_code == 200

    def test_messages_cannot_be_added(self, admin_client):
        response = admin_client.get(reverse("admin:relay_message_add"))

        assert response.status_code == 403

    def test_unread_counter_changelist(self, admin_client):
        UnreadCounterFactory(owner_id="u2", counterpart_id="u1", count=3)

        response = admin_client.get(reverse("admin:relay_unreadcounter_changelist"))

        assert response.status_code == 200

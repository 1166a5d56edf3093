"""
Django admin configuration for relay models.

Provides admin interfaces for:
- Message inspection (read-only; messages are immutable)
- Deletion markers
- Unread counters
"""

from django.contrib import admin

from relay.models import Message, MessageDeletion, UnreadCounter


class MessageDeletionInline(admin.TabularInline):
    """Inline display of deletion markers in message admin."""

    model = MessageDeletion
    extra = 0
    readonly_fields = ["user_id", "created_at"]
    can_delete = False


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "sender_id",
        "receiver_id",
        "body_preview",
        "created_at",
    ]
    list_filter = ["created_at"]
    search_fields = ["sender_id", "receiver_id", "conversation_key", "client_token"]
    readonly_fields = [
        "sender_id",
        "receiver_id",
        "conversation_key",
        "body",
        "client_token",
        "created_at",
        "updated_at",
    ]
    inlines = [MessageDeletionInline]
    ordering = ["-id"]

    @admin.display(description="Body")
    def body_preview(self, obj):
        """Show truncated body."""
        return obj.body[:50] + "..." if len(obj.body) > 50 else obj.body

    def has_add_permission(self, request):
        return False


@admin.register(UnreadCounter)
class UnreadCounterAdmin(admin.ModelAdmin):
    """Admin interface for UnreadCounter model."""

    list_display = ["owner_id", "counterpart_id", "count", "updated_at"]
    search_fields = ["owner_id", "counterpart_id"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["owner_id", "counterpart_id"]

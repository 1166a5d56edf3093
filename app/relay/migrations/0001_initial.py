"""
Initial schema for the relay app.

Tables created:
    - relay_message: Direct messages, indexed by (conversation_key, id)
    - relay_message_deletion: Per-party deletion markers
    - relay_unread_counter: Unread counts keyed by (owner_id, counterpart_id)
"""

import django.db.models.deletion
import django.db.models.functions.datetime
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Message",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        db_default=django.db.models.functions.datetime.Now(),
                        editable=False,
                        help_text="Timestamp assigned by the database when the message was stored",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "sender_id",
                    models.CharField(
                        help_text="Identifier of the user who sent the message",
                        max_length=64,
                    ),
                ),
                (
                    "receiver_id",
                    models.CharField(
                        help_text="Identifier of the user the message is addressed to",
                        max_length=64,
                    ),
                ),
                (
                    "conversation_key",
                    models.CharField(
                        editable=False,
                        help_text="Canonical key of the unordered sender/receiver pair",
                        max_length=129,
                    ),
                ),
                ("body", models.TextField(help_text="Message text content")),
                (
                    "client_token",
                    models.CharField(
                        blank=True,
                        help_text="Client-generated idempotency token for safe retries",
                        max_length=64,
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "message",
                "verbose_name_plural": "messages",
                "db_table": "relay_message",
                "ordering": ["id"],
                "indexes": [
                    models.Index(
                        fields=["conversation_key", "id"],
                        name="relay_msg_conv_id_idx",
                    ),
                    models.Index(
                        fields=["receiver_id", "created_at"],
                        name="relay_msg_receiver_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("sender_id", models.F("receiver_id")), _negated=True
                        ),
                        name="relay_message_not_self_addressed",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("client_token__isnull", False)),
                        fields=("sender_id", "client_token"),
                        name="relay_message_unique_client_token",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MessageDeletion",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "user_id",
                    models.CharField(
                        help_text="Participant who deleted the message from their view",
                        max_length=64,
                    ),
                ),
                (
                    "message",
                    models.ForeignKey(
                        help_text="The deleted message",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="deletions",
                        to="relay.message",
                    ),
                ),
            ],
            options={
                "verbose_name": "message deletion",
                "verbose_name_plural": "message deletions",
                "db_table": "relay_message_deletion",
                "ordering": ["created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("message", "user_id"),
                        name="relay_deletion_unique_per_user",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="UnreadCounter",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "owner_id",
                    models.CharField(
                        help_text="User the count belongs to (the recipient)",
                        max_length=64,
                    ),
                ),
                (
                    "counterpart_id",
                    models.CharField(
                        help_text="The other participant (the sender of the counted messages)",
                        max_length=64,
                    ),
                ),
                (
                    "count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Messages received and not yet marked read",
                    ),
                ),
            ],
            options={
                "verbose_name": "unread counter",
                "verbose_name_plural": "unread counters",
                "db_table": "relay_unread_counter",
                "ordering": ["owner_id", "counterpart_id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("owner_id", "counterpart_id"),
                        name="relay_unread_unique_pair",
                    ),
                ],
            },
        ),
    ]

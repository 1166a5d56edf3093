"""
Opaque history cursors.

A HistoryCursor marks a position in a conversation by the id of the last
message a client has seen. Message ids come from the database sequence,
so every message stored after that position has a larger id no matter
which relay process wrote it or what its clock said. Clients receive the
cursor as a base64 JSON string, store it, and pass it back to fetch
everything after that position (next page, or catch-up after reconnect).
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass

from core.exceptions import ValidationError


@dataclass(frozen=True)
class HistoryCursor:
    """Keyset position in a conversation's id ordering."""

    message_id: int

    @classmethod
    def for_message(cls, message) -> HistoryCursor:
        return cls(message_id=message.pk)

    def encode(self) -> str:
        """Encode cursor as URL-safe base64 JSON string."""
        data = {"id": self.message_id}
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode()

    @classmethod
    def decode(cls, encoded: str) -> HistoryCursor:
        """
        Decode cursor from its string form.

        Raises:
            ValidationError: If the cursor is malformed
        """
        try:
            data = json.loads(base64.urlsafe_b64decode(encoded.encode()).decode())
            message_id = int(data["id"])
        except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            raise ValidationError(
                "Invalid cursor",
                error_code="INVALID_CURSOR",
                details={"cursor": encoded},
            ) from e
        if message_id < 0:
            raise ValidationError(
                "Invalid cursor",
                error_code="INVALID_CURSOR",
                details={"cursor": encoded},
            )
        return cls(message_id=message_id)

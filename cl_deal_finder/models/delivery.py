"""
Email delivery result models.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

MAX_ERROR_MESSAGE_LENGTH = 500


@dataclass
class DeliveryResult:
    """Outcome of sending one digest email, after any retries."""

    success: bool
    delivery_time: datetime
    error_message: Optional[str]
    message_id: Optional[str] = None
    recipient: Optional[str] = None
    attempts: int = 1

    def validate(self) -> bool:
        """Validate delivery result data."""
        if not isinstance(self.success, bool):
            raise ValueError("success must be a boolean")

        if not isinstance(self.delivery_time, datetime):
            raise ValueError("delivery_time must be a datetime object")

        if not isinstance(self.attempts, int) or self.attempts < 1:
            raise ValueError("attempts must be a positive integer")

        if self.success:
            if self.error_message:
                raise ValueError("a successful delivery cannot carry an error_message")
            return True

        if not isinstance(self.error_message, str) or not self.error_message:
            raise ValueError("error_message should be provided when success is False")

        if len(self.error_message) > MAX_ERROR_MESSAGE_LENGTH:
            raise ValueError(
                f"error_message too long (max {MAX_ERROR_MESSAGE_LENGTH} characters)"
            )

        if self.message_id is not None:
            raise ValueError("a failed delivery has no provider message_id")

        return True

"""Status record persisted next to the two image slots.

The record is the durable pointer to the slot holding the most recent
completely written image. It is stored as a flat JSON object with sorted
keys::

    {"IsPrimary": true, "Timestamp": "2024-05-01T21:14:03.512345+00:00"}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime

__all__ = [
    "PRIMARY_STEM",
    "SECONDARY_STEM",
    "STATUS_FILE_NAME",
    "StatusRecord",
    "image_name",
]

PRIMARY_STEM = "primary"
SECONDARY_STEM = "secondary"
STATUS_FILE_NAME = "status.json"


def image_name(is_primary: bool, extension: str = "jpg") -> str:
    """File name of an image slot.

    Example:
        >>> image_name(True)
        'primary.jpg'
        >>> image_name(False, "png")
        'secondary.png'
    """
    stem = PRIMARY_STEM if is_primary else SECONDARY_STEM
    return f"{stem}.{extension}"


@dataclass(frozen=True)
class StatusRecord:
    """Which slot holds the latest image, and when it was stored.

    Attributes:
        is_primary: True when ``primary.<ext>`` is the current slot.
        timestamp: When the current slot was written; None before the first
            successful store.
    """

    is_primary: bool = False
    timestamp: datetime | None = None

    def to_json(self) -> str:
        """Serialize with stable key order."""
        payload = {
            "IsPrimary": self.is_primary,
            "Timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
        return json.dumps(payload, sort_keys=True)

    @classmethod
    def from_json(cls, text: str | bytes) -> StatusRecord:
        """Parse a persisted record.

        Raises:
            ValueError: If the text is not a JSON object with a boolean
                ``IsPrimary`` and an ISO-8601 (or null) ``Timestamp``.
        """
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Status record is not valid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise ValueError("Status record must be a JSON object")
        is_primary = payload.get("IsPrimary")
        if not isinstance(is_primary, bool):
            raise ValueError(f"IsPrimary must be a boolean, got {is_primary!r}")

        raw_timestamp = payload.get("Timestamp")
        if raw_timestamp is None:
            return cls(is_primary=is_primary)
        if not isinstance(raw_timestamp, str):
            raise ValueError(f"Timestamp must be a string, got {raw_timestamp!r}")
        return cls(
            is_primary=is_primary,
            timestamp=datetime.fromisoformat(raw_timestamp),
        )

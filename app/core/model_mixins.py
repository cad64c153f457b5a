"""
Reusable model mixins.

Mixins:
    UUIDPrimaryKeyMixin: UUID primary key instead of an integer
    MetadataMixin: JSON metadata with get/set helpers

Usage:
    class Payment(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
        ...
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a UUID as primary key.

    Gateway metadata and webhook payloads carry these ids, so they must not
    be guessable or reveal record counts.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class MetadataMixin(models.Model):
    """
    Flexible JSON metadata storage.

    Example:
        payout.set_meta("gateway_response_code", "400")
        payout.get_meta("gateway_response_code")
    """

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Flexible key-value metadata storage",
    )

    class Meta:
        abstract = True

    def get_meta(self, key: str, default: Any = None) -> Any:
        return self.metadata.get(key, default)

    def set_meta(self, key: str, value: Any, save: bool = True) -> None:
        """
        Set a metadata value; ``value`` must be JSON-serializable.

        Pass ``save=False`` when the caller saves the row itself.
        """
        self.metadata[key] = value
        if save:
            self.save(update_fields=["metadata", "updated_at"])

    def has_meta(self, key: str) -> bool:
        return key in self.metadata

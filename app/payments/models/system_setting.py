"""
SystemSetting model for operator-tunable payment settings.

Values are stored as text and cast according to ``type``. Reads go through
``payments.services.system_settings.SystemSettingsStore`` which caches
them in-process and is invalidated on every write.

Usage:
    from payments.services.system_settings import get_settings_store

    store = get_settings_store()
    store.set("gateway_fee_rate", "4.5", setting_type=SettingType.FLOAT)
    store.get_decimal("gateway_fee_rate", "4.0")  # Decimal("4.5")
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from django.db import models

from core.models import BaseModel

from payments.state_machines import SettingType


class SystemSetting(BaseModel):
    """
    A single key/value setting.

    Known keys:
        gateway_fee_rate: processing fee percentage (default 4.0)
        zeen_fee_rate_<tier>: platform fee percentage per tier
        free_tier_deposit_percentage: Starter deposit (default 20)
        minimum_deposit_percentage: Premium minimum deposit (default 15)
    """

    key = models.CharField(
        max_length=100,
        unique=True,
        help_text="Setting key",
    )

    value = models.TextField(
        blank=True,
        default="",
        help_text="Raw value, cast according to type",
    )

    type = models.CharField(
        max_length=10,
        choices=SettingType.choices,
        default=SettingType.STRING,
        help_text="Value type used when casting",
    )

    group = models.CharField(
        max_length=50,
        default="general",
        db_index=True,
        help_text="Settings group (fees, payouts, ...)",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="What the setting controls",
    )

    class Meta:
        ordering = ["group", "key"]
        verbose_name = "System Setting"
        verbose_name_plural = "System Settings"

    def __str__(self) -> str:
        return f"{self.key}={self.value}"

    def get_typed_value(self) -> Any:
        """Cast the stored text to its declared type."""
        if self.type == SettingType.INTEGER:
            return int(self.value)
        if self.type == SettingType.FLOAT:
            # Decimal keeps rates exact ("4.5" stays 4.5)
            return Decimal(self.value)
        if self.type == SettingType.BOOLEAN:
            return self.value.strip().lower() in ("1", "true", "yes", "on")
        if self.type == SettingType.JSON:
            return json.loads(self.value) if self.value else None
        return self.value

    @staticmethod
    def serialize(value: Any, setting_type: str) -> str:
        if setting_type == SettingType.JSON:
            return json.dumps(value)
        if setting_type == SettingType.BOOLEAN:
            return "true" if value else "false"
        return str(value)

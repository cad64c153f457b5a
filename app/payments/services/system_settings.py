"""
In-process cache over SystemSetting rows.

One store is built per process (``get_settings_store``) and handed to the
objects that need settings, e.g. ``FeeCalculator(store)``. Writes made
through the store invalidate the cached key; ``invalidate()`` with no
argument drops everything (used by tests and after bulk edits).

Usage:
    store = get_settings_store()
    rate = store.get_decimal("gateway_fee_rate", "4.0")
"""

from __future__ import annotations

import logging
import threading
from decimal import Decimal
from typing import Any

from core.money import to_decimal

from payments.models import SystemSetting
from payments.state_machines import SettingType

logger = logging.getLogger(__name__)

_MISSING = object()


class SystemSettingsStore:
    """
    Cached access to SystemSetting values.

    Missing keys are cached as missing too, so a default is not re-queried
    on every fee calculation.
    """

    def __init__(self):
        self._cache: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            value = self._cache.get(key, _MISSING)
        if value is _MISSING:
            setting = SystemSetting.objects.filter(key=key).first()
            value = setting.get_typed_value() if setting else None
            with self._lock:
                self._cache[key] = value
        return default if value is None else value

    def get_decimal(self, key: str, default: Decimal | str | int) -> Decimal:
        return to_decimal(self.get(key, default))

    def get_int(self, key: str, default: int) -> int:
        return int(self.get(key, default))

    def get_bool(self, key: str, default: bool = False) -> bool:
        return bool(self.get(key, default))

    def set(
        self,
        key: str,
        value: Any,
        setting_type: str = SettingType.STRING,
        group: str = "general",
        description: str = "",
    ) -> SystemSetting:
        """Create or update a setting and invalidate its cached value."""
        setting, _ = SystemSetting.objects.update_or_create(
            key=key,
            defaults={
                "value": SystemSetting.serialize(value, setting_type),
                "type": setting_type,
                "group": group,
                "description": description,
            },
        )
        self.invalidate(key)
        logger.info(
            f"System setting {key} updated",
            extra={"key": key, "group": group},
        )
        return setting

    def invalidate(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)


_store: SystemSettingsStore | None = None
_store_lock = threading.Lock()


def get_settings_store() -> SystemSettingsStore:
    """Return the process-wide store, creating it on first use."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = SystemSettingsStore()
    return _store

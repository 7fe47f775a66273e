"""
CountConfig schema.

The runtime settings of the count engine.  YAML files are parsed into this
type by ``count_config.loader``; callers obtain it only through
``count_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class CountConfig:
    """Validated, immutable count settings."""

    config_id: str
    version: int
    currency: str = "USD"
    value_places: int = 2  # rounding of money and percentages in reports
    significant_variance_quantity: Decimal = Decimal("1")
    significant_variance_ratio: Decimal = Decimal("0.10")
    lock_timeout_seconds: float = 5.0
    default_storage_areas: tuple[str, ...] = ()
    checksum: str = ""

    def __post_init__(self) -> None:
        if not self.config_id:
            raise ValueError("config_id must not be empty")
        if len(self.currency) != 3:
            raise ValueError(f"currency must be a 3-letter code, got '{self.currency}'")
        if self.value_places < 0:
            raise ValueError("value_places cannot be negative")
        if self.significant_variance_quantity < 0:
            raise ValueError("significant_variance_quantity cannot be negative")
        if self.significant_variance_ratio < 0:
            raise ValueError("significant_variance_ratio cannot be negative")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        names = self.default_storage_areas
        if any(not name.strip() for name in names):
            raise ValueError("default_storage_areas must not contain blank names")
        if len(set(names)) != len(names):
            raise ValueError("default_storage_areas must be unique")

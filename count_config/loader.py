"""
Configuration Loader (``count_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``count_config.schema.CountConfig``.  The single public entry point for
runtime config is ``count_config.get_active_config()``; this module is the
tooling underneath it.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys have no silent defaults.
* Decimal settings are read through ``str`` so YAML floats never leak
  binary fractions into thresholds.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError`` from ``CountConfig``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from count_config.schema import CountConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{field_name} must be a decimal number, got {value!r}") from e


def parse_count_config(data: dict[str, Any]) -> CountConfig:
    """
    Parse a configuration dict into a CountConfig.

    ``config_id`` and ``version`` are required; every other section falls
    back to the CountConfig defaults when absent.
    """
    significance = data.get("significance") or {}
    locking = data.get("locking") or {}
    defaults = CountConfig(config_id="defaults", version=0)

    return CountConfig(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        currency=str(data.get("currency", defaults.currency)),
        value_places=int(data.get("value_places", defaults.value_places)),
        significant_variance_quantity=parse_decimal(
            significance.get("quantity", defaults.significant_variance_quantity),
            "significance.quantity",
        ),
        significant_variance_ratio=parse_decimal(
            significance.get("ratio", defaults.significant_variance_ratio),
            "significance.ratio",
        ),
        lock_timeout_seconds=float(
            locking.get("timeout_seconds", defaults.lock_timeout_seconds)
        ),
        default_storage_areas=tuple(
            str(name) for name in data.get("default_storage_areas", ())
        ),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

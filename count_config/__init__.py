"""
count_config -- single public entrypoint for count configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services never read configuration files or
    environment variables directly.

Architecture position:
    Configuration -- YAML-driven settings.  Sits beside ``count_kernel``
    and below ``count_services``.  The kernel and the engines MUST NEVER
    import from ``count_config``; services translate settings into plain
    engine arguments (thresholds, timeouts).

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Deterministic: the same YAML always produces the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- malformed or out-of-range settings.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``COUNT_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying a count's significance thresholds to the exact
    configuration that produced them.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from count_config.loader import load_yaml_file, parse_count_config
from count_config.schema import CountConfig

_logger = logging.getLogger("count_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "COUNT_CONFIG_PATH"


def get_active_config(config_path: Path | None = None) -> CountConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: the ``config_path`` argument, then the
    ``COUNT_CONFIG_PATH`` environment variable, then the packaged
    ``sets/default.yaml``.

    Non-goals:
        - Does NOT cache; callers hold the returned config for as long as
          they need it.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If a setting is out of range.
        KeyError: If ``config_id`` or ``version`` is missing.
    """
    if config_path is None:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        config_path = Path(env_path) if env_path else _DEFAULT_CONFIG_PATH

    config = parse_count_config(load_yaml_file(config_path))

    _logger.info(
        "COUNT_CONFIG_TRACE",
        extra={
            "trace_type": "COUNT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(config_path),
            "default_area_count": len(config.default_storage_areas),
        },
    )
    return config


__all__ = ["CountConfig", "get_active_config"]

"""
erp_config -- single public entrypoint for ERP configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- YAML-driven.  This package sits above ``erp_kernel``.
    The kernel MUST NEVER import from ``erp_config``; ``erp_config.bridges``
    translates configuration into kernel objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - ``DATABASE_URL`` in the environment overrides ``database.url``.
    - Chain definitions are validated before a config is returned.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``ERP_CONFIG_TRACE`` log entry with the config checksum and chain
    count, tying approval chains back to the configuration that seeded them.
"""

from __future__ import annotations

import os
from pathlib import Path

from erp_config.loader import load_yaml_file, parse_config
from erp_config.schema import ChainDefinition, ErpConfig, LevelDefinition
from erp_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> ErpConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to erp_config/sets/default.yaml.

    Returns:
        ErpConfig -- frozen, validated configuration.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)
    config = parse_config(data, database_url=os.environ.get("DATABASE_URL"))

    _logger.info(
        "ERP_CONFIG_TRACE",
        extra={
            "trace_type": "ERP_CONFIG_TRACE",
            "config_path": str(path),
            "checksum": config.checksum,
            "chain_count": len(config.chains),
            "lock_timeout_seconds": config.lock_timeout_seconds,
        },
    )
    return config


__all__ = [
    "ChainDefinition",
    "ErpConfig",
    "LevelDefinition",
    "get_active_config",
]

"""
Configuration Loader (``erp_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``erp_config.schema`` dataclasses.  The single public entry point for
runtime config is ``erp_config.get_active_config()``; this module is the
parsing half of it.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Chain entity types must be known ``EntityType`` values and appear once.
* Chain levels must be numbered ``1..N`` with no gaps or duplicates.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from erp_config.schema import ChainDefinition, ErpConfig, LevelDefinition
from erp_kernel.domain.approval_values import EntityType

_KNOWN_ENTITY_TYPES = frozenset(e.value for e in EntityType)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_level(data: dict[str, Any]) -> LevelDefinition:
    level_order = int(data["level_order"])
    if level_order < 1:
        raise ValueError(f"level_order must be >= 1, got {level_order}")
    name = str(data["level_name"]).strip()
    if not name:
        raise ValueError(f"level {level_order} has a blank level_name")
    return LevelDefinition(
        level_order=level_order,
        level_name=name,
        approver_user_id=int(data["approver_user_id"]),
        required=bool(data.get("required", True)),
    )


def parse_chain(data: dict[str, Any]) -> ChainDefinition:
    """
    Parse a ``ChainDefinition`` from a dict.

    Raises:
        ValueError: unknown entity type or non-contiguous level numbering.
        KeyError: a required key is missing.
    """
    entity_type = str(data["entity_type"]).upper()
    if entity_type not in _KNOWN_ENTITY_TYPES:
        raise ValueError(
            f"Unknown entity_type {entity_type!r}; "
            f"expected one of {sorted(_KNOWN_ENTITY_TYPES)}"
        )

    levels = tuple(sorted(
        (parse_level(item) for item in data.get("levels") or []),
        key=lambda level: level.level_order,
    ))
    orders = [level.level_order for level in levels]
    if orders != list(range(1, len(levels) + 1)):
        raise ValueError(
            f"Chain for {entity_type} has level orders {orders}; "
            "they must be sequential starting from 1"
        )

    return ChainDefinition(
        entity_type=entity_type,
        name=data.get("name") or f"{entity_type} approval",
        description=data.get("description"),
        active=bool(data.get("active", True)),
        levels=levels,
    )


def parse_config(data: dict[str, Any], database_url: str | None = None) -> ErpConfig:
    """
    Parse the whole configuration document.

    Args:
        data: Parsed YAML document.
        database_url: Overrides ``database.url`` when given.
    """
    database = data.get("database") or {}
    url = database_url or database.get("url")
    if not url:
        raise ValueError("database.url is required (or set DATABASE_URL)")

    chains = tuple(parse_chain(item) for item in data.get("approval_chains") or [])
    seen: set[str] = set()
    for chain in chains:
        if chain.entity_type in seen:
            raise ValueError(f"Duplicate approval chain for {chain.entity_type}")
        seen.add(chain.entity_type)

    locks = data.get("locks") or {}
    timeout = float(locks.get("timeout_seconds", 5.0))
    if timeout <= 0:
        raise ValueError(f"locks.timeout_seconds must be positive, got {timeout}")

    logging_section = data.get("logging") or {}
    return ErpConfig(
        database_url=url,
        lock_timeout_seconds=timeout,
        log_level=str(logging_section.get("level", "INFO")).upper(),
        chains=chains,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

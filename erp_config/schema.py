"""
Configuration schema (``erp_config.schema``).

Frozen dataclasses produced by ``erp_config.loader``.  Plain data only:
no I/O and no kernel types, so the schema can be inspected and compared
without a database.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LevelDefinition:
    level_order: int
    level_name: str
    approver_user_id: int
    required: bool = True


@dataclass(frozen=True)
class ChainDefinition:
    """Approval chain for one entity type as declared in YAML."""

    entity_type: str
    name: str
    levels: tuple[LevelDefinition, ...]
    description: str | None = None
    active: bool = True


@dataclass(frozen=True)
class ErpConfig:
    """The runtime configuration returned by ``get_active_config()``."""

    database_url: str
    lock_timeout_seconds: float = 5.0
    log_level: str = "INFO"
    chains: tuple[ChainDefinition, ...] = field(default_factory=tuple)
    checksum: str = ""

    def chain_for(self, entity_type: str) -> ChainDefinition | None:
        for chain in self.chains:
            if chain.entity_type == entity_type:
                return chain
        return None

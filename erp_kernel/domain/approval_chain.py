"""
Approval chain template (``erp_kernel.domain.approval_chain``).

Responsibility
--------------
Per-entity-type configuration of the ordered approver levels.  The
template materializes fresh, all-PENDING decision slots when a document
is submitted; the request keeps that snapshot, so later template edits
never reach in-flight requests.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.

Invariants enforced
-------------------
* Level orders, when present, are exactly ``1..N`` -- no gaps, no
  duplicates.  An empty chain is allowed (not configured yet).
* ``replace_all_levels`` is the only mutation path for levels; the
  level tuple is validated before it is swapped in.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from erp_kernel.domain.approval_values import (
    ApprovalLevelDecision,
    ChainLevel,
    EntityType,
    UserId,
)
from erp_kernel.exceptions import (
    ApprovalChainNotConfiguredError,
    InvalidChainConfigurationError,
)


def validate_level_orders(levels: Iterable[ChainLevel]) -> tuple[ChainLevel, ...]:
    """Validate contiguous 1-based ordering; return levels sorted by order.

    Raises:
        InvalidChainConfigurationError: on gaps, duplicates or a sequence
            not starting at 1.
    """
    ordered = tuple(sorted(levels, key=lambda level: level.level_order))
    orders = [level.level_order for level in ordered]
    for expected, actual in enumerate(orders, start=1):
        if actual != expected:
            raise InvalidChainConfigurationError(
                orders, "level orders must be sequential starting from 1",
            )
    return ordered


class ApprovalChainTemplate:
    """Ordered approver chain for one entity type.

    Templates are configured by administrators and rarely change.
    """

    def __init__(
        self,
        entity_type: EntityType,
        name: str,
        levels: Iterable[ChainLevel] = (),
        *,
        id: int | None = None,
        description: str | None = None,
        active: bool = True,
    ) -> None:
        self.id = id
        self.entity_type = entity_type
        self.name = name
        self.description = description
        self.active = active
        self._levels: tuple[ChainLevel, ...] = validate_level_orders(levels)

    def __repr__(self) -> str:
        return (
            f"<ApprovalChainTemplate {self.id} {self.entity_type.value} "
            f"levels={len(self._levels)}>"
        )

    @property
    def levels(self) -> tuple[ChainLevel, ...]:
        return self._levels

    @property
    def total_levels(self) -> int:
        return len(self._levels)

    def has_levels(self) -> bool:
        return bool(self._levels)

    def replace_all_levels(self, new_levels: Iterable[ChainLevel]) -> None:
        """Swap the whole level list atomically.

        The new list is fully validated before anything is replaced, so a
        failed call leaves the template untouched.
        """
        self._levels = validate_level_orders(new_levels)

    def create_level_decisions(self) -> list[ApprovalLevelDecision]:
        """Project the current levels into fresh PENDING decision slots."""
        if not self.has_levels():
            raise ApprovalChainNotConfiguredError(self.entity_type.value)
        return [
            ApprovalLevelDecision(
                level_order=level.level_order,
                level_name=level.level_name,
                expected_approver_user_id=level.approver_user_id,
            )
            for level in self._levels
        ]

    def get_approver_user_id_at(self, level_order: int) -> UserId | None:
        for level in self._levels:
            if level.level_order == level_order:
                return level.approver_user_id
        return None


class ApprovalChainTemplateProvider(Protocol):
    """Source of the active template for an entity type (levels loaded)."""

    def get_active_template(self, entity_type: EntityType) -> ApprovalChainTemplate:
        ...

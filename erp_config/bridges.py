"""
Config -> Kernel Bridges.

Functions that turn ``ErpConfig`` into kernel objects.  They live here
(the producer) because the kernel must NEVER import erp_config.

Usage:
    from erp_config import get_active_config
    from erp_config.bridges import seed_chain_templates

    config = get_active_config()
    with session_scope() as session:
        seed_chain_templates(session, config)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from erp_config.schema import ChainDefinition, ErpConfig
from erp_kernel.domain.approval_chain import ApprovalChainTemplate
from erp_kernel.domain.approval_values import ChainLevel, EntityType
from erp_kernel.logging_config import get_logger
from erp_kernel.services.chain_template_repository import (
    ApprovalChainTemplateRepository,
)
from erp_kernel.services.document_lock import DocumentLockService

logger = get_logger("config.bridges")


def build_chain_levels(chain: ChainDefinition) -> tuple[ChainLevel, ...]:
    return tuple(
        ChainLevel(
            level_order=level.level_order,
            level_name=level.level_name,
            approver_user_id=level.approver_user_id,
            required=level.required,
        )
        for level in chain.levels
    )


def build_lock_service(config: ErpConfig) -> DocumentLockService:
    return DocumentLockService(timeout_seconds=config.lock_timeout_seconds)


def seed_chain_templates(session: Session, config: ErpConfig) -> list[int]:
    """Create or replace one template per configured chain. Flushes only.

    Existing templates keep their id; their levels go through
    ``replace_all_levels`` so in-flight requests are unaffected.

    Returns:
        Template ids in configuration order.
    """
    repo = ApprovalChainTemplateRepository(session)
    ids: list[int] = []

    for chain in config.chains:
        entity_type = EntityType(chain.entity_type)
        levels = build_chain_levels(chain)
        template = repo.find_by_entity_type(entity_type)

        if template is None:
            template = repo.add(ApprovalChainTemplate(
                entity_type,
                chain.name,
                levels,
                description=chain.description,
                active=chain.active,
            ))
            action = "created"
        else:
            template.name = chain.name
            template.description = chain.description
            template.active = chain.active
            template.replace_all_levels(levels)
            repo.save(template)
            action = "updated"

        logger.info(
            "approval_chain_seeded",
            extra={
                "entity_type": entity_type.value,
                "template_id": template.id,
                "total_levels": template.total_levels,
                "action": action,
            },
        )
        ids.append(template.id)

    return ids

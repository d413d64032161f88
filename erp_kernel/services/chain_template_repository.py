"""
ApprovalChainTemplateRepository -- persistence for approval chain templates.

Responsibility:
    Implements ``ApprovalChainTemplateProvider`` over the
    ``approval_chain_templates`` / ``approval_chain_levels`` tables and
    gives administrators a replace-all write path for levels.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Level ordering is validated by the domain template before any row is
      touched; the rows then mirror the validated tuple.
    - One template per entity type (UNIQUE constraint).

Failure modes:
    - ChainTemplateNotFoundError: no (active) template for the lookup.
"""

from __future__ import annotations

from sqlalchemy import select

from erp_kernel.domain.approval_chain import ApprovalChainTemplate
from erp_kernel.domain.approval_values import EntityType
from erp_kernel.exceptions import ChainTemplateNotFoundError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.approval import ApprovalChainTemplateModel
from erp_kernel.services.base import BaseService

logger = get_logger("services.chain_template_repository")


class ApprovalChainTemplateRepository(BaseService[ApprovalChainTemplateModel]):
    """Template provider and admin write path. Flushes, never commits."""

    def get_active_template(self, entity_type: EntityType) -> ApprovalChainTemplate:
        """Return the active template for ``entity_type`` with levels loaded."""
        model = self.session.execute(
            select(ApprovalChainTemplateModel).where(
                ApprovalChainTemplateModel.entity_type == entity_type.value,
                ApprovalChainTemplateModel.is_active.is_(True),
            )
        ).scalar_one_or_none()
        if model is None:
            raise ChainTemplateNotFoundError(entity_type.value)
        return model.to_domain()

    def find_by_entity_type(self, entity_type: EntityType) -> ApprovalChainTemplate | None:
        """Return the template for ``entity_type`` whether active or not."""
        model = self._find_model(entity_type)
        return model.to_domain() if model is not None else None

    def get(self, template_id: int) -> ApprovalChainTemplate:
        return self._load_model(template_id).to_domain()

    def list_all(self) -> list[ApprovalChainTemplate]:
        models = self.session.execute(
            select(ApprovalChainTemplateModel).order_by(
                ApprovalChainTemplateModel.entity_type,
            )
        ).scalars().all()
        return [model.to_domain() for model in models]

    def add(self, template: ApprovalChainTemplate) -> ApprovalChainTemplate:
        """Insert a new template; assigns its id."""
        model = ApprovalChainTemplateModel.from_domain(template)
        self.session.add(model)
        self.session.flush()
        template.id = model.id
        logger.info(
            "approval_chain_template_created",
            extra={
                "template_id": model.id,
                "entity_type": template.entity_type.value,
                "total_levels": template.total_levels,
            },
        )
        return template

    def save(self, template: ApprovalChainTemplate) -> ApprovalChainTemplate:
        """Write header fields and the whole level list of an existing template."""
        model = self._load_model(template.id)
        model.name = template.name
        model.description = template.description
        model.is_active = template.active
        model.sync_levels(template.levels)
        self.session.flush()
        logger.info(
            "approval_chain_levels_replaced",
            extra={
                "template_id": model.id,
                "entity_type": model.entity_type,
                "total_levels": template.total_levels,
            },
        )
        return template

    def _find_model(self, entity_type: EntityType) -> ApprovalChainTemplateModel | None:
        return self.session.execute(
            select(ApprovalChainTemplateModel).where(
                ApprovalChainTemplateModel.entity_type == entity_type.value,
            )
        ).scalar_one_or_none()

    def _load_model(self, template_id: int | None) -> ApprovalChainTemplateModel:
        model = (
            self.session.get(ApprovalChainTemplateModel, template_id)
            if template_id is not None else None
        )
        if model is None:
            raise ChainTemplateNotFoundError(str(template_id))
        return model

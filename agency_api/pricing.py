"""
Pricing plan CRUD.
"""

from __future__ import annotations

import logging
from typing import List

from agency_api.db import PricingPlanRepository, is_valid_id
from agency_api.errors import NotFoundError, ValidationError
from agency_api.models import PricingPlan, utcnow
from agency_api.schemas import PricingPlanRequest

logger = logging.getLogger(__name__)


class PricingPlanService:
    def __init__(self, plans: PricingPlanRepository):
        self._plans = plans

    def list(self) -> List[PricingPlan]:
        return self._plans.list()

    def get(self, plan_id: str) -> PricingPlan:
        if not is_valid_id(plan_id):
            raise ValidationError("Invalid pricing plan ID")
        plan = self._plans.get(plan_id)
        if plan is None:
            raise NotFoundError("Pricing plan not found")
        return plan

    def create(self, request: PricingPlanRequest) -> PricingPlan:
        if not request.name or request.price is None or request.price == "":
            raise ValidationError("Name and price are required")
        now = utcnow()
        plan = PricingPlan(
            name=request.name,
            price=request.price,
            features=list(request.features or []),
            description=request.description,
            is_popular=bool(request.is_popular),
            created_at=now,
            updated_at=now,
        )
        plan = self._plans.insert(plan)
        logger.info("Created pricing plan %s (%s)", plan.name, plan.id)
        return plan

    def update(self, plan_id: str, request: PricingPlanRequest) -> PricingPlan:
        self.get(plan_id)
        changes = request.model_dump(by_alias=True, exclude_none=True)
        if not changes:
            raise ValidationError("No fields to update")
        changes["updatedAt"] = utcnow()
        plan = self._plans.update(plan_id, changes)
        if plan is None:
            raise NotFoundError("Pricing plan not found")
        return plan

    def delete(self, plan_id: str) -> None:
        self.get(plan_id)
        self._plans.delete(plan_id)
        logger.info("Deleted pricing plan %s", plan_id)

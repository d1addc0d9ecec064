"""
Risk & impact estimation for a plan, before anything runs.

Only the executors' read-only ``preview`` capability is used here.
"""

import logging
from typing import Dict, List, Mapping, Optional, Tuple

from .executors import ExecutorRegistry
from .types import ActionImpact, ActionPlan, ActionSpec, ActionType, Impact, RiskLevel

logger = logging.getLogger(__name__)

# (risk, reversible) per action type
DEFAULT_RISK_TABLE: Dict[ActionType, Tuple[RiskLevel, bool]] = {
    ActionType.SEND_EMAIL: (RiskLevel.HIGH, False),
    ActionType.SEND_ALERT: (RiskLevel.HIGH, False),
    ActionType.WEBHOOK: (RiskLevel.HIGH, False),
    ActionType.RUN_COMMAND: (RiskLevel.HIGH, False),
    ActionType.UPDATE_PRICE: (RiskLevel.MEDIUM, True),
    ActionType.APPLY_DISCOUNT: (RiskLevel.MEDIUM, True),
    ActionType.UPDATE_INVENTORY: (RiskLevel.MEDIUM, True),
    ActionType.BULK_UPDATE_PRODUCTS: (RiskLevel.MEDIUM, True),
    ActionType.SYNC_PLATFORM: (RiskLevel.LOW, True),
    ActionType.GENERATE_REPORT: (RiskLevel.LOW, True),
    ActionType.WAIT: (RiskLevel.LOW, True),
    ActionType.CONDITIONAL_BRANCH: (RiskLevel.LOW, True),
}

# Actions that never touch platform items
_NO_ITEMS = (ActionType.WAIT, ActionType.CONDITIONAL_BRANCH)


class RiskEstimator:
    """
    Scores a plan: overall risk, affected items and reversibility.

    Args:
        registry: Executors to ask for read-only previews
        risk_table: Risk and reversibility per action type; types missing from
            the table are treated as high risk and irreversible
    """

    def __init__(
        self,
        registry: ExecutorRegistry,
        risk_table: Optional[Mapping[ActionType, Tuple[RiskLevel, bool]]] = None
    ):
        self.registry = registry
        self.risk_table = dict(DEFAULT_RISK_TABLE if risk_table is None else risk_table)

    def base_risk(self, action_type: ActionType) -> Tuple[RiskLevel, bool]:
        return self.risk_table.get(action_type, (RiskLevel.HIGH, False))

    async def _estimate_action(self, action: ActionSpec) -> ActionImpact:
        risk, reversible = self.base_risk(action.type)

        if action.type in _NO_ITEMS:
            return ActionImpact(action.id, action.type, risk, 0, reversible)

        executor = self.registry.get(action.type)
        if executor is None:
            logger.warning(f"No executor for {action.type.value}, impact of '{action.id}' unknown")
            return ActionImpact(action.id, action.type, risk, None, False)

        try:
            preview = await executor.preview(dict(action.parameters))
        except Exception as e:
            logger.warning(f"Preview failed for action '{action.id}': {e}")
            preview = None

        if preview is None:
            # Unknown reach: treat as irreversible
            return ActionImpact(action.id, action.type, risk, None, False)

        return ActionImpact(
            action.id,
            action.type,
            risk,
            preview.count_estimate,
            reversible and preview.reversible and preview.count_estimate is not None,
        )

    async def estimate(self, plan: ActionPlan) -> Impact:
        """
        Estimate the impact of a plan.

        Returns:
            Impact; ``affected_items_estimate`` is None if any action could not
            be counted without side effects
        """
        per_action: List[ActionImpact] = []
        for action in plan.ordered():
            per_action.append(await self._estimate_action(action))

        if not per_action:
            return Impact(
                risk_level=RiskLevel.LOW,
                affected_items_estimate=0,
                reversible=True,
                description="No actions to run",
            )

        risk = max((a.risk_level for a in per_action), key=lambda r: r.rank)
        if any(a.count_estimate is None for a in per_action):
            affected: Optional[int] = None
        else:
            affected = sum(a.count_estimate for a in per_action)
        reversible = all(a.reversible for a in per_action)

        impact = Impact(
            risk_level=risk,
            affected_items_estimate=affected,
            reversible=reversible,
            description=describe_impact(per_action, affected, reversible),
            per_action=tuple(per_action),
        )
        logger.info(f"Estimated {risk.value} risk for {len(per_action)} action(s), affected items: {affected}")
        return impact


def describe_impact(per_action: List[ActionImpact], affected: Optional[int], reversible: bool) -> str:
    """One-line human summary of an estimate."""
    count = len(per_action)
    noun = "action" if count == 1 else "actions"
    if affected is None:
        reach = "an unknown number of items"
    else:
        reach = f"{affected} item" + ("" if affected == 1 else "s")

    irreversible = [a.action_id for a in per_action if not a.reversible]
    text = f"{count} {noun} affecting {reach}."
    if reversible:
        text += " All changes can be reverted."
    else:
        text += f" Not reversible: {', '.join(irreversible)}."
    return text

"""
Shapes a dry-run execution into a reviewable summary.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from .retry import delay_schedule
from .types import ActionResult, ActionStatus, ExecutionLog, Impact, RetryPolicy, RiskLevel


@dataclass
class PreviewItem:
    action_id: str
    action_type: str
    status: str
    summary: str
    affected_count: Optional[int] = None
    error: Optional[str] = None


@dataclass
class PreviewSummary:
    """What a plan would do, for explicit confirmation before it runs."""
    execution_id: str
    total_actions: int
    would_succeed: int
    would_fail: int
    skipped: int
    items: List[PreviewItem] = field(default_factory=list)
    impact: Optional[Impact] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def can_proceed(self) -> bool:
        return self.would_fail == 0


def _affected_count(output: Any) -> Optional[int]:
    if not isinstance(output, dict):
        return None
    for key in ("count_estimate", "affected_count"):
        value = output.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _summarize(result: ActionResult) -> str:
    label = result.action_type.value.replace("_", " ")
    if result.skipped:
        return f"Would skip {label}"
    if result.status == ActionStatus.FAILED:
        return f"Would fail: {label}"
    if result.fallback_for:
        return f"Would run {label} as fallback for {result.fallback_for}"
    count = _affected_count(result.output)
    if count is not None:
        return f"Would {label} on {count} item" + ("" if count == 1 else "s")
    return f"Would {label}"


def render_preview(log: ExecutionLog, impact: Optional[Impact] = None) -> PreviewSummary:
    """
    Project a test-mode execution (and optional impact estimate) into a summary.

    Args:
        log: Finalized dry-run execution log
        impact: Estimate from the RiskEstimator, if one was made

    Returns:
        PreviewSummary
    """
    items = [
        PreviewItem(
            action_id=r.action_id,
            action_type=r.action_type.value,
            status="skipped" if r.skipped else r.status.value,
            summary=_summarize(r),
            affected_count=_affected_count(r.output),
            error=r.error,
        )
        for r in log.actions_executed
    ]

    warnings: List[str] = []
    if not log.test_mode:
        warnings.append("Preview built from a live execution")
    for step in log.trace.steps:
        warnings.extend(step.warnings)
    if impact is not None:
        if impact.risk_level == RiskLevel.HIGH:
            warnings.append("High risk: review carefully before confirming")
        if not impact.reversible:
            warnings.append("Some changes cannot be undone")
        if impact.affected_items_estimate is None:
            warnings.append("Number of affected items is unknown")

    return PreviewSummary(
        execution_id=log.id,
        total_actions=len(items),
        would_succeed=sum(1 for r in log.actions_executed if r.status == ActionStatus.COMPLETED and not r.skipped),
        would_fail=sum(1 for r in log.actions_executed if r.status == ActionStatus.FAILED),
        skipped=sum(1 for r in log.actions_executed if r.skipped),
        items=items,
        impact=impact,
        warnings=warnings,
    )


def format_seconds(seconds: float) -> str:
    """Compact duration: 45s, 2m, 1h."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    return f"{seconds // 3600}h"


def format_delay_schedule(policy: RetryPolicy) -> str:
    """Retry delays as shown next to the policy settings, e.g. '1m, 2m, 4m'."""
    return ", ".join(format_seconds(d) for d in delay_schedule(policy))


def format_preview(summary: PreviewSummary) -> str:
    """Plain-text rendering of a preview summary."""
    lines = []
    if summary.impact is not None:
        affected = summary.impact.affected_items_estimate
        lines.append(f"Risk: {summary.impact.risk_level.value.upper()}")
        lines.append(f"Items affected: {affected if affected is not None else 'Unknown'}")
        lines.append(f"Reversible: {'Yes' if summary.impact.reversible else 'No'}")
        lines.append(summary.impact.description)
        lines.append("")
    lines.append(
        f"{summary.total_actions} action(s): {summary.would_succeed} ok, "
        f"{summary.would_fail} failing, {summary.skipped} skipped"
    )
    for item in summary.items:
        line = f"  [{item.status}] {item.action_id}: {item.summary}"
        if item.error:
            line += f" ({item.error})"
        lines.append(line)
    for warning in summary.warnings:
        lines.append(f"! {warning}")
    return "\n".join(lines)

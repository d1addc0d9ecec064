"""
Persisted format for pipeline records.

Payloads (trigger data, outputs, metadata) are kept as dynamic values:
None, bool, int, float, str, lists and str-keyed dicts. ``to_dynamic``
converts anything else into that shape.
"""

import dataclasses
import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .types import (
    ActionPlan,
    ActionResult,
    ActionSpec,
    ActionStatus,
    ActionType,
    Automation,
    ExecutionLog,
    ExecutionStatus,
    ExecutionTrace,
    PlanSource,
    RetryPolicy,
    Statistics,
    TraceStep,
    TraceStepStatus,
)


def to_dynamic(value: Any) -> Any:
    """
    Convert a value into the dynamic-value shape.

    Tuples become lists, sets become sorted lists, datetimes ISO strings,
    enums their values and dataclasses dicts. Dict keys become strings.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return to_dynamic(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_dynamic(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamic(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((to_dynamic(v) for v in value), key=lambda v: json.dumps(v, sort_keys=True))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_dynamic(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    # Postgres may return a trailing Z
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


# ============================================================================
# Plans and policies
# ============================================================================

def action_spec_to_dict(action: ActionSpec) -> Dict[str, Any]:
    return {
        "id": action.id,
        "type": action.type.value,
        "order": action.order,
        "parameters": to_dynamic(action.parameters),
        "platform_targets": sorted(action.platform_targets),
        "depends_on": list(action.depends_on),
    }


def action_spec_from_dict(data: Dict[str, Any]) -> ActionSpec:
    return ActionSpec(
        id=data.get("id") or data.get("action_id"),
        type=ActionType(data.get("type") or data.get("action_type")),
        order=data["order"],
        parameters=dict(data.get("parameters") or data.get("config") or {}),
        platform_targets=frozenset(data.get("platform_targets") or ()),
        depends_on=tuple(data.get("depends_on") or ()),
    )


def plan_to_dict(plan: ActionPlan) -> Dict[str, Any]:
    return {
        "actions": [action_spec_to_dict(a) for a in plan.actions],
        "source": plan.source.value,
        "owner_id": plan.owner_id,
    }


def plan_from_dict(data: Dict[str, Any]) -> ActionPlan:
    """
    Build a plan from its stored form.

    Actions without an explicit ``order`` are numbered by list position.
    """
    actions = []
    for i, raw in enumerate(data.get("actions") or []):
        raw = dict(raw)
        raw.setdefault("order", i)
        actions.append(action_spec_from_dict(raw))
    return ActionPlan(
        actions=tuple(actions),
        source=PlanSource(data.get("source", PlanSource.COMMAND.value)),
        owner_id=data.get("owner_id"),
    )


def automation_to_dict(automation: Automation) -> Dict[str, Any]:
    return {
        "id": automation.id,
        "name": automation.name,
        "plan": plan_to_dict(automation.plan),
        "retry_policy": automation.retry_policy.to_dict(),
        "is_active": automation.is_active,
    }


def automation_from_dict(data: Dict[str, Any]) -> Automation:
    plan_data = data.get("plan") or {"actions": data.get("actions") or []}
    plan_data = {"source": PlanSource.AUTOMATION.value, "owner_id": data["id"], **plan_data}
    return Automation(
        id=data["id"],
        name=data.get("name", ""),
        plan=plan_from_dict(plan_data),
        retry_policy=RetryPolicy.from_dict(data.get("retry_policy") or data.get("error_recovery")),
        is_active=bool(data.get("is_active", True)),
    )


# ============================================================================
# Execution records
# ============================================================================

def action_result_to_dict(result: ActionResult) -> Dict[str, Any]:
    return {
        "action_id": result.action_id,
        "action_type": result.action_type.value,
        "status": result.status.value,
        "attempt_count": result.attempt_count,
        "output": to_dynamic(result.output),
        "error": result.error,
        "duration_ms": result.duration_ms,
        "skipped": result.skipped,
        "fallback_for": result.fallback_for,
    }


def action_result_from_dict(data: Dict[str, Any]) -> ActionResult:
    return ActionResult(
        action_id=data["action_id"],
        action_type=ActionType(data["action_type"]),
        status=ActionStatus(data["status"]),
        attempt_count=int(data.get("attempt_count", 0)),
        output=data.get("output"),
        error=data.get("error"),
        duration_ms=int(data.get("duration_ms", 0)),
        skipped=bool(data.get("skipped", False)),
        fallback_for=data.get("fallback_for"),
    )


def trace_step_to_dict(step: TraceStep) -> Dict[str, Any]:
    return {
        "index": step.index,
        "name": step.name,
        "status": step.status.value,
        "duration_ms": step.duration_ms,
        "timestamp": step.timestamp.isoformat(),
        "input": to_dynamic(step.input),
        "output": to_dynamic(step.output),
        "error": step.error,
        "error_stack": step.error_stack,
        "warnings": list(step.warnings),
        "metadata": to_dynamic(step.metadata),
    }


def trace_step_from_dict(data: Dict[str, Any]) -> TraceStep:
    return TraceStep(
        index=int(data["index"]),
        name=data["name"],
        status=TraceStepStatus(data["status"]),
        duration_ms=int(data.get("duration_ms", 0)),
        timestamp=_parse_datetime(data["timestamp"]),
        input=data.get("input"),
        output=data.get("output"),
        error=data.get("error"),
        error_stack=data.get("error_stack"),
        warnings=tuple(data.get("warnings") or ()),
        metadata=dict(data.get("metadata") or {}),
    )


def execution_log_to_dict(log: ExecutionLog) -> Dict[str, Any]:
    """Persisted form of an execution log, trace steps in recorded order."""
    return {
        "id": log.id,
        "automation_id": log.automation_id,
        "command_text": log.command_text,
        "timestamp": log.timestamp.isoformat(),
        "status": log.status.value,
        "trigger_data": to_dynamic(log.trigger_data),
        "actions_executed": [action_result_to_dict(r) for r in log.actions_executed],
        "execution_time_ms": log.execution_time_ms,
        "error_message": log.error_message,
        "test_mode": log.test_mode,
        "trace": [trace_step_to_dict(s) for s in log.trace.steps],
    }


def execution_log_from_dict(data: Dict[str, Any]) -> ExecutionLog:
    steps = sorted(
        (trace_step_from_dict(s) for s in data.get("trace") or []),
        key=lambda s: s.index,
    )
    return ExecutionLog(
        id=data["id"],
        automation_id=data.get("automation_id"),
        command_text=data.get("command_text"),
        timestamp=_parse_datetime(data["timestamp"]),
        status=ExecutionStatus(data["status"]),
        trigger_data=dict(data.get("trigger_data") or {}),
        actions_executed=[action_result_from_dict(r) for r in data.get("actions_executed") or []],
        execution_time_ms=int(data.get("execution_time_ms", 0)),
        error_message=data.get("error_message"),
        test_mode=bool(data.get("test_mode", False)),
        trace=ExecutionTrace(execution_id=data["id"], steps=steps),
    )


def dumps_execution_log(log: ExecutionLog) -> str:
    return json.dumps(execution_log_to_dict(log))


def loads_execution_log(text: str) -> ExecutionLog:
    return execution_log_from_dict(json.loads(text))


# ============================================================================
# Statistics
# ============================================================================

def statistics_to_dict(stats: Statistics) -> Dict[str, Any]:
    return {
        "automation_id": stats.automation_id,
        "total_runs": stats.total_runs,
        "successful_runs": stats.successful_runs,
        "failed_runs": stats.failed_runs,
        "retried_runs": stats.retried_runs,
        "average_execution_time_ms": stats.average_execution_time_ms,
        "last_run": stats.last_run.isoformat() if stats.last_run else None,
        "recent_execution_ids": list(stats.recent_execution_ids),
    }


def statistics_from_dict(data: Dict[str, Any]) -> Statistics:
    return Statistics(
        automation_id=data["automation_id"],
        total_runs=int(data.get("total_runs", 0)),
        successful_runs=int(data.get("successful_runs", 0)),
        failed_runs=int(data.get("failed_runs", 0)),
        retried_runs=int(data.get("retried_runs", 0)),
        average_execution_time_ms=float(data.get("average_execution_time_ms", 0.0)),
        last_run=_parse_datetime(data.get("last_run")),
        recent_execution_ids=tuple(data.get("recent_execution_ids") or ()),
    )

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Rule configuration dataclasses (coRun, slotRestriction, loadLimit, ...).

These objects are produced by the rule-builder front end and exported next to
the cleaned datasets. They are captured as configuration only; nothing in this
package schedules or allocates with them.

Prioritization weights are a flat numeric record which by convention sums to
1.0. is_balanced() reports on that convention but nothing rejects an
unbalanced set.
"""

__all__ = [
    "CoRunRule",
    "SlotRestrictionRule",
    "LoadLimitRule",
    "PhaseWindowRule",
    "PrecedenceRule",
    "PrioritizationWeights",
    "RulesConfig",
]


@dataclass(frozen=True)
class CoRunRule:
    tasks: list[str]


@dataclass(frozen=True)
class SlotRestrictionRule:
    group: list[str]
    min_common_slots: int


@dataclass(frozen=True)
class LoadLimitRule:
    group: list[str]
    max_slots_per_phase: int


@dataclass(frozen=True)
class PhaseWindowRule:
    task: str
    allowed_phases: list[int]


@dataclass(frozen=True)
class PrecedenceRule:
    rule_a: str
    rule_b: str
    priority: str  # "high" | "low"


DEFAULT_WEIGHTS: dict[str, float] = {
    "PriorityLevel": 0.4,
    "RequestedTaskIDs": 0.3,
    "PreferredPhases": 0.2,
    "Fairness": 0.1,
}


@dataclass(frozen=True)
class PrioritizationWeights:
    """Flat factor -> weight record."""
    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    def total(self) -> float:
        return float(sum(self.weights.values()))

    def is_balanced(self, tolerance: float = 0.01) -> bool:
        return abs(self.total() - 1.0) < tolerance

    def to_dict(self) -> dict[str, float]:
        return dict(self.weights)


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


@dataclass(frozen=True)
class RulesConfig:
    """Root rules object, keyed the same way as the exported rules.json."""
    co_run: list[CoRunRule] = field(default_factory=list)
    slot_restriction: list[SlotRestrictionRule] = field(default_factory=list)
    load_limit: list[LoadLimitRule] = field(default_factory=list)
    phase_window: list[PhaseWindowRule] = field(default_factory=list)
    precedence: list[PrecedenceRule] = field(default_factory=list)
    prioritization: PrioritizationWeights | None = None

    @staticmethod
    def from_dict(data: dict[str, Any] | None) -> RulesConfig:
        """Build from the exported JSON shape; unknown keys and malformed entries are ignored."""
        data = data or {}

        def _entries(key: str) -> list[dict[str, Any]]:
            raw = data.get(key)
            if not isinstance(raw, list):
                return []
            return [e for e in raw if isinstance(e, dict)]

        prioritization = None
        raw_weights = data.get("prioritization")
        if isinstance(raw_weights, dict):
            prioritization = PrioritizationWeights(
                weights={
                    str(k): float(v)
                    for k, v in raw_weights.items()
                    if isinstance(v, (int, float)) and not isinstance(v, bool)
                }
            )

        return RulesConfig(
            co_run=[CoRunRule(tasks=_str_list(e.get("tasks"))) for e in _entries("coRun")],
            slot_restriction=[
                SlotRestrictionRule(
                    group=_str_list(e.get("group")),
                    min_common_slots=int(e.get("minCommonSlots", 0)),
                )
                for e in _entries("slotRestriction")
            ],
            load_limit=[
                LoadLimitRule(
                    group=_str_list(e.get("group")),
                    max_slots_per_phase=int(e.get("maxSlotsPerPhase", 0)),
                )
                for e in _entries("loadLimit")
            ],
            phase_window=[
                PhaseWindowRule(
                    task=str(e.get("task", "")),
                    allowed_phases=[int(p) for p in e.get("allowedPhases", []) or []],
                )
                for e in _entries("phaseWindow")
            ],
            precedence=[
                PrecedenceRule(
                    rule_a=str(e.get("ruleA", "")),
                    rule_b=str(e.get("ruleB", "")),
                    priority=str(e.get("priority", "low")),
                )
                for e in _entries("precedence")
            ],
            prioritization=prioritization,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "coRun": [{"tasks": list(r.tasks)} for r in self.co_run],
            "slotRestriction": [
                {"group": list(r.group), "minCommonSlots": r.min_common_slots}
                for r in self.slot_restriction
            ],
            "loadLimit": [
                {"group": list(r.group), "maxSlotsPerPhase": r.max_slots_per_phase}
                for r in self.load_limit
            ],
            "phaseWindow": [
                {"task": r.task, "allowedPhases": list(r.allowed_phases)} for r in self.phase_window
            ],
            "precedence": [
                {"ruleA": r.rule_a, "ruleB": r.rule_b, "priority": r.priority}
                for r in self.precedence
            ],
        }
        if self.prioritization is not None:
            out["prioritization"] = self.prioritization.to_dict()
        return out

from __future__ import annotations

from dataclasses import dataclass, field

"""Validation result models for the clients / workers / tasks pipeline.

EntityStat holds per-entity counts after a validation pass; ValidationSummary
aggregates them for the SUMMARY output line and for the CLI exit code.
"""

__all__ = [
    "EntityStat",
    "ValidationSummary",
    "BulkFixResult",
]


@dataclass(frozen=True)
class EntityStat:
    """Per-entity validation statistics."""
    entity: str
    rows: int  # データ行数
    error_rows: int  # エラーを含む行数
    errors: int  # セル単位のエラー数


@dataclass(frozen=True)
class ValidationSummary:
    """Aggregated result of a full validation pass."""
    entity_stats: list[EntityStat]
    ready: bool  # 3 エンティティ全てアップロード済みか
    elapsed_seconds: float = 0.0

    @property
    def total_rows(self) -> int:
        return sum(s.rows for s in self.entity_stats)

    @property
    def error_rows(self) -> int:
        return sum(s.error_rows for s in self.entity_stats)

    @property
    def errors(self) -> int:
        return sum(s.errors for s in self.entity_stats)

    @property
    def clean(self) -> bool:
        return self.ready and self.errors == 0


@dataclass(frozen=True)
class BulkFixResult:
    """Outcome of a bulk "fix all" application.

    applied: (entity, row, field) triples written into the datasets
    skipped: triples dropped because the target cell had no active error
    """
    applied: list[tuple[str, int, str]] = field(default_factory=list)
    skipped: list[tuple[str, int, str]] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.applied)

from __future__ import annotations

from ..models.validation_result import ValidationSummary

"""Summary line rendering for the SUMMARY output.

Format:
SUMMARY entities={loaded}/{total} rows={rows} error_rows={error_rows} errors={errors} clean={yes|no}
"""


def render_summary_line(summary: ValidationSummary) -> str:
    """Render a SUMMARY line from a ValidationSummary.

    Examples:
        >>> from data_alchemist.models.validation_result import EntityStat, ValidationSummary
        >>> s = ValidationSummary(
        ...     entity_stats=[EntityStat("clients", 2, 1, 1), EntityStat("workers", 1, 0, 0),
        ...                   EntityStat("tasks", 1, 0, 0)],
        ...     ready=True, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(s)
        'SUMMARY entities=3/3 rows=4 error_rows=1 errors=1 clean=no'
    """
    loaded = sum(1 for s in summary.entity_stats if s.rows > 0)
    total = len(summary.entity_stats)
    return (
        f"SUMMARY entities={loaded}/{total} "
        f"rows={summary.total_rows} "
        f"error_rows={summary.error_rows} "
        f"errors={summary.errors} "
        f"clean={'yes' if summary.clean else 'no'}"
    )


def render_entity_lines(summary: ValidationSummary) -> list[str]:
    """One short line per entity for INFO output."""
    return [
        f"{s.entity}: rows={s.rows} error_rows={s.error_rows} errors={s.errors}"
        for s in summary.entity_stats
    ]

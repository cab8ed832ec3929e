from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from data_alchemist.config.loader import (
    AlchemistConfig,
    ConfigError,
    load_config,
    load_rules,
    resolve_config_path,
)
from data_alchemist.excel.reader import (
    MissingColumnsError,
    SheetReadError,
    read_entity_table,
    read_table,
)
from data_alchemist.logging.error_log import ErrorLogBuffer, records_from_cells
from data_alchemist.logging.init import log_summary, set_debug, setup_logging
from data_alchemist.models.entity import EntityKind
from data_alchemist.services.progress import ProgressTracker
from data_alchemist.services.session import ValidationSession
from data_alchemist.services.summary import render_entity_lines, render_summary_line

"""CLI entrypoint.

Flow:
- Load .env and the YAML config
- Read clients / workers / tasks files and run the full validation pass
- Optionally apply a bulk-fix JSON file (only cells that still carry an error)
- Write the JSON Lines error log and, optionally, a state snapshot
- Print the SUMMARY line; exit 0 clean / 2 errors remain / 1 fatal
"""

EXIT_CLEAN = 0
EXIT_ERRORS_REMAIN = 2
EXIT_FATAL = 1


def _load_env_file(path: Path, override: bool = False) -> None:
    """Load .env using python-dotenv (DATA_ALCHEMIST_CONFIG 等)."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Validate clients / workers / tasks data files")
    p.add_argument("--config", type=Path, default=None, help="Config YAML path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print file headers & first rows then exit")
    p.add_argument("--fixes", type=Path, default=None, help="Bulk fix JSON {entity: {row: {field: value}}}")
    p.add_argument("--snapshot", type=Path, default=None, help="Write the validated state as JSON here")
    return p.parse_args(argv)


def _inspect_data(cfg: AlchemistConfig) -> int:
    for kind in EntityKind:
        path = Path(cfg.inputs.path_for(kind))
        print(f"FILE: {kind} {path.name}")
        try:
            sheet = read_table(path, keep_na_strings=cfg.keep_na_strings)
        except SheetReadError as e:
            print(f"  read_error: {e}")
            continue
        print(f"  cols={sheet.columns}")
        print("  sample_rows=", sheet.rows[:3])
    return EXIT_CLEAN


def _read_fixes(path: Path) -> Any:
    if not path.exists():
        raise ConfigError(f"fixes file not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid fixes file: {e}") from e


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみ sys.argv を読む ([] はテストからの明示呼び出し)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"))

    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    config_path = resolve_config_path(args.config)
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg)

    rules = None
    if cfg.rules_file:
        try:
            rules = load_rules(Path(cfg.rules_file))
        except ConfigError as e:
            logger.error(f"rules: {e}")
            return EXIT_FATAL

    session = ValidationSession(debounce_seconds=cfg.debounce_seconds)
    with ProgressTracker(len(EntityKind) + 1) as progress:
        for kind in EntityKind:
            path = Path(cfg.inputs.path_for(kind))
            progress.start_step(str(kind))
            try:
                sheet = read_entity_table(kind, path, keep_na_strings=cfg.keep_na_strings)
            except (SheetReadError, MissingColumnsError) as e:
                logger.error(f"read {kind}: {e}")
                return EXIT_FATAL
            session.load_dataset(kind, sheet.rows, file_name=path.name, columns=sheet.columns)
            progress.finish_step(rows=len(sheet.rows))

        progress.start_step("validate")
        summary = session.validate_all()
        progress.finish_step(errors=summary.errors)

    if not session.is_ready():
        empty = [str(k) for k in EntityKind if not session.rows(k)]
        logger.error(f"not ready: no data rows for {', '.join(empty)}")
        log_summary(render_summary_line(summary)[len("SUMMARY "):])
        return EXIT_FATAL

    if args.fixes is not None:
        try:
            fixes = _read_fixes(args.fixes)
        except ConfigError as e:
            logger.error(f"fixes: {e}")
            return EXIT_FATAL
        session.changes.apply_bulk_fix(fixes)
        summary = session.summary(elapsed_seconds=summary.elapsed_seconds)

    if rules is not None:
        logger.info(
            f"rules: coRun={len(rules.co_run)} slotRestriction={len(rules.slot_restriction)} "
            f"loadLimit={len(rules.load_limit)} phaseWindow={len(rules.phase_window)} "
            f"precedence={len(rules.precedence)}"
        )
        if rules.prioritization is not None and not rules.prioritization.is_balanced():
            logger.warning(f"prioritization weights sum to {rules.prioritization.total():.2f}, expected 1.00")

    for line in render_entity_lines(summary):
        logger.info(line)

    records = records_from_cells(session.errors.iter_cells())
    if records:
        buffer = ErrorLogBuffer(Path(cfg.logs_directory))
        buffer.extend(records)
        log_path = buffer.flush()
        logger.info(f"error log: {log_path} ({len(records)} record(s))")

    if args.snapshot is not None:
        args.snapshot.parent.mkdir(parents=True, exist_ok=True)
        args.snapshot.write_text(session.snapshot().to_json(), encoding="utf-8")
        logger.info(f"snapshot written: {args.snapshot}")

    # log_summary が "SUMMARY " を付けるので本文のみ渡す
    log_summary(render_summary_line(summary)[len("SUMMARY "):])
    return EXIT_CLEAN if summary.clean else EXIT_ERRORS_REMAIN


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

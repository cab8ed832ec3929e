from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.entity import EntityKind, expected_columns, parse_entity

"""CSV / Excel reader for clients, workers and tasks uploads.

- 1行目をヘッダ行、2行目以降をデータ行として扱う。
- Every cell is read as text (dtype=str); typing is the normalizer's job.
- Blank cells become None; rows where every cell is blank are skipped, and the
  row index of the remaining rows is their position in the returned list.
- Header cells are stripped. Columns the entity schema expects but the file
  lacks raise MissingColumnsError in strict mode; otherwise they are logged
  and the rows surface "required" errors during validation.
"""

__all__ = [
    "SheetData",
    "SheetReadError",
    "MissingColumnsError",
    "SUPPORTED_SUFFIXES",
    "read_table",
    "read_entity_table",
]

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".csv", ".xlsx", ".xls")


class SheetReadError(Exception):
    """Raised when a file cannot be read as a table."""

class MissingColumnsError(Exception):
    """Raised when expected columns are missing in the header (strict mode)."""

@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[dict[str, Any]]  # 生データ (列名→文字列 or None)


def _na_options(keep_na_strings: list[str] | None) -> dict[str, Any]:
    # Pandas default NA values から keep_na_strings を除外
    if not keep_na_strings:
        return {"keep_default_na": True, "na_values": None}
    import pandas._libs.parsers as parsers

    custom_na = set(parsers.STR_NA_VALUES) - set(keep_na_strings)
    return {"keep_default_na": False, "na_values": sorted(custom_na)}


def _frame_to_rows(df: pd.DataFrame) -> tuple[list[str], list[dict[str, Any]]]:
    columns = [str(c).strip() for c in df.columns]
    rows: list[dict[str, Any]] = []
    for raw in df.itertuples(index=False, name=None):
        values = [None if pd.isna(v) else v for v in raw]
        if all(v is None or (isinstance(v, str) and v.strip() == "") for v in values):
            continue
        rows.append(dict(zip(columns, values, strict=False)))
    return columns, rows


def read_table(path: Path, keep_na_strings: list[str] | None = None) -> SheetData:
    """Read a CSV or the first sheet of an Excel workbook into raw records.

    Parameters
    ----------
    path: CSV / XLSX ファイルパス
    keep_na_strings: Pandasの既定NaN変換から除外する文字列リスト (例: ['NA'])
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise SheetReadError(f"unsupported file type: {path.name}")
    if not path.exists():
        raise SheetReadError(f"file not found: {path}")
    na = _na_options(keep_na_strings)
    try:
        if suffix == ".csv":
            df = pd.read_csv(path, dtype=str, skip_blank_lines=True, **na)
            sheet_name = path.stem
        else:
            xls = pd.ExcelFile(path)
            if not xls.sheet_names:
                raise SheetReadError(f"workbook has no sheets: {path.name}")
            sheet_name = str(xls.sheet_names[0])
            df = xls.parse(sheet_name, dtype=str, **na)
    except SheetReadError:
        raise
    except pd.errors.EmptyDataError as e:
        raise SheetReadError(f"empty file: {path.name}") from e
    except (ValueError, OSError) as e:
        raise SheetReadError(f"cannot read {path.name}: {e}") from e

    columns, rows = _frame_to_rows(df)
    return SheetData(sheet_name=sheet_name, columns=columns, rows=rows)


def read_entity_table(
    entity: EntityKind | str,
    path: Path,
    *,
    keep_na_strings: list[str] | None = None,
    strict: bool = False,
) -> SheetData:
    """read_table() plus a header check against the entity's schema columns."""
    kind = parse_entity(entity)
    sheet = read_table(path, keep_na_strings=keep_na_strings)
    missing = [c for c in expected_columns(kind) if c not in sheet.columns]
    if missing:
        if strict:
            raise MissingColumnsError(f"{kind} file '{Path(path).name}' missing columns: {missing}")
        logger.warning(f"{kind} file '{Path(path).name}' missing columns: {missing}")
    return sheet

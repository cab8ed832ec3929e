from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from data_alchemist.models.error_record import ErrorRecord

"""Validation error log generation & buffering module.

- JSON Lines 固定スキーマ (追加キー禁止)
- 実行ごとに `logs/validation-YYYYMMDD-HHMMSS.log` (UTC) を生成 (必要時)
- バッファリングして flush タイミングで書き出し
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "records_from_cells",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


def records_from_cells(cells: Iterable[tuple[object, int, str, str]]) -> list[ErrorRecord]:
    """(entity, row, field, message) tuples -> ErrorRecord list (ErrorMap.iter_cells() order)."""
    return [ErrorRecord.create(str(entity), row, field, message) for entity, row, field, message in cells]


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush writes JSON Lines.

    - flush() 呼び出し時にファイル (なければ生成) へ一括追記
    - ファイルパスは初回アクセスで決定
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = Path(logs_dir) if logs_dir is not None else LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"validation-{stamp}.log"
        return self._file_path

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def extend(self, records: Iterable[ErrorRecord]) -> None:
        self._records.extend(records)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path:
        if not self._records:
            return self.file_path  # 空でもファイルパス確定のみ
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the per-run error log.

Execution-time failures (entity creation errors, unparseable invoice rows) are
recorded per row and written as JSON Lines by logging.error_log. row=-1 marks
a source-level error where no specific row applies.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        source: uploaded file name (or '<batch>' when not file based)
        row: 1-based data row. -1 when the row is unknown
        error_type: classification in UPPER_SNAKE_CASE
        message: human readable reason, as reported by the entity store
    """
    timestamp: str
    source: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(source: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            source=source,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # no extra keys: the log schema is exactly the dataclass fields
        return json.dumps(asdict(self), ensure_ascii=False)

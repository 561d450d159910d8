from __future__ import annotations

import json
import logging
from collections import Counter, defaultdict
from datetime import date, datetime
from pathlib import Path
from typing import Collection, Dict, Iterable, List, Optional

from shotscan.models import SessionType, StoredPatternRecord
from shotscan.processing.history import DateFilter, filter_records

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 200
DEFAULT_RECENT_LIMIT = 50


class PatternHistory:
    """Append-only collection of session records, persisted as JSON."""

    def __init__(self, records: Iterable[StoredPatternRecord] = ()) -> None:
        self._records: List[StoredPatternRecord] = list(records)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> List[StoredPatternRecord]:
        return list(self._records)

    def append(self, record: StoredPatternRecord) -> None:
        self._records.append(record)

    def clear(self) -> None:
        self._records = []

    def query(
        self,
        date_filter: DateFilter = DateFilter.ALL_TIME,
        session_types: Optional[Collection[SessionType]] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[StoredPatternRecord]:
        """Matching records, most recent first."""
        matched = filter_records(self._records, date_filter, session_types, now=now)
        matched.reverse()
        return matched[:limit]

    def recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[StoredPatternRecord]:
        ordered = sorted(self._records, key=lambda record: record.timestamp, reverse=True)
        return ordered[:limit]

    def session_dates(self) -> List[date]:
        return sorted({record.timestamp.date() for record in self._records})

    def records_by_day(self) -> Dict[date, List[StoredPatternRecord]]:
        grouped: Dict[date, List[StoredPatternRecord]] = defaultdict(list)
        for record in sorted(self._records, key=lambda item: item.timestamp):
            grouped[record.timestamp.date()].append(record)
        return dict(grouped)

    def session_type_distribution(self) -> Dict[SessionType, int]:
        return dict(Counter(record.session_type for record in self._records))

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"version": 1, "records": [record.to_dict() for record in self._records]}
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> "PatternHistory":
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (ValueError, OSError) as exc:
            # ValueError covers JSONDecodeError and UnicodeDecodeError
            logger.warning("Failed to read history file %s: %s", path, exc)
            return cls()
        raw_records = data.get("records", []) if isinstance(data, dict) else data
        if not isinstance(raw_records, list):
            logger.warning("History file %s holds no record list", path)
            return cls()
        records = []
        for index, item in enumerate(raw_records):
            try:
                records.append(StoredPatternRecord.from_dict(item))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed history record %d: %s", index, exc)
        return cls(records)

"""
Append-only usage ledger.

Persists one JSON line per admitted API call and reads them back for
spend aggregation.
"""

import json
import logging
from pathlib import Path
from typing import List, Protocol, Union

from xc_cli.core.errors import MalformedLedgerEntry
from .models import UsageRecord

logger = logging.getLogger(__name__)


class UsageLedger(Protocol):
    """Append-only store of usage records."""

    def append(self, record: UsageRecord) -> None:
        ...

    def load_all(self) -> List[UsageRecord]:
        ...


class JsonlUsageLedger:
    """Ledger backed by a newline-delimited JSON file.

    There is no update or delete operation. Each append is a single write
    on a file opened in append mode, so concurrent writers interleave whole
    lines rather than corrupting each other.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def append(self, record: UsageRecord) -> None:
        """Append a single record, creating the file on first use."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(record.to_json_dict()) + "\n"
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line)

    def load_all(self) -> List[UsageRecord]:
        """Read all records in write order.

        Malformed lines are skipped so that a partial write or a crash
        mid-append never breaks aggregation.

        Returns:
            List of usage records, oldest first
        """
        if not self.path.exists():
            return []

        records = []
        # Decoded per line so invalid UTF-8 only costs that line
        with open(self.path, "rb") as f:
            for line_no, raw in enumerate(f, start=1):
                try:
                    line = raw.decode("utf-8").strip()
                    if not line:
                        continue
                    records.append(UsageRecord.from_json_dict(json.loads(line)))
                except (UnicodeDecodeError, json.JSONDecodeError, MalformedLedgerEntry) as e:
                    logger.debug("Skipping malformed ledger line %d in %s: %s", line_no, self.path, e)
        return records

    def tail(self, limit: int) -> List[UsageRecord]:
        """Return the most recent `limit` records, oldest first."""
        if limit <= 0:
            return []
        return self.load_all()[-limit:]


class InMemoryUsageLedger:
    """Ledger kept in a list, for tests and dry runs."""

    def __init__(self, records: List[UsageRecord] = None):
        self.records: List[UsageRecord] = list(records or [])

    def append(self, record: UsageRecord) -> None:
        self.records.append(record)

    def load_all(self) -> List[UsageRecord]:
        return list(self.records)

    def tail(self, limit: int) -> List[UsageRecord]:
        if limit <= 0:
            return []
        return list(self.records[-limit:])

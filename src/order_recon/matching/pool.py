"""Per-run working set of records still available for matching."""

from collections import defaultdict
from datetime import date
from typing import Iterable

from ..models.record import OrderRecord, RecordOrigin
from ..utils.exceptions import PartitionViolationError


class RecordPool:
    """
    Remaining POS and platform records for one reconciliation run.

    The pool only shrinks. A record consumed by one stage is never offered
    to a later one.
    """

    def __init__(
        self,
        pos_records: Iterable[OrderRecord],
        source_records: Iterable[OrderRecord],
    ):
        self.pos_remaining = self._index(pos_records, RecordOrigin.POS)
        self.source_remaining = self._index(source_records, RecordOrigin.SOURCE)

    @staticmethod
    def _index(records: Iterable[OrderRecord], origin: RecordOrigin) -> dict[int, OrderRecord]:
        indexed: dict[int, OrderRecord] = {}
        for record in records:
            if record.origin is not origin:
                raise PartitionViolationError(
                    f"{record.origin.value} record {record.seq} offered as {origin.value}"
                )
            if record.seq in indexed:
                raise PartitionViolationError(
                    f"duplicate {origin.value} record sequence {record.seq}"
                )
            indexed[record.seq] = record
        return indexed

    def remaining(self, origin: RecordOrigin) -> dict[int, OrderRecord]:
        if origin is RecordOrigin.POS:
            return self.pos_remaining
        return self.source_remaining

    def records(self, origin: RecordOrigin) -> list[OrderRecord]:
        """Remaining records of one side in insertion order."""
        return sorted(self.remaining(origin).values(), key=lambda r: r.seq)

    def by_date(self, origin: RecordOrigin) -> dict[date, list[OrderRecord]]:
        """Remaining records grouped by date, dates ascending, records by seq."""
        grouped: dict[date, list[OrderRecord]] = defaultdict(list)
        for record in self.records(origin):
            grouped[record.date].append(record)
        return {day: grouped[day] for day in sorted(grouped)}

    def consume(self, records: Iterable[OrderRecord]) -> None:
        """
        Remove matched records from the pool.

        Raises:
            PartitionViolationError: If a record is no longer available
        """
        records = list(records)
        if len({r.key for r in records}) != len(records):
            raise PartitionViolationError("record listed twice in one match")
        for record in records:
            pool = self.remaining(record.origin)
            if pool.get(record.seq) != record:
                raise PartitionViolationError(
                    f"{record.origin.value} record {record.seq} consumed twice or unknown"
                )
        for record in records:
            del self.remaining(record.origin)[record.seq]

    def __len__(self) -> int:
        return len(self.pos_remaining) + len(self.source_remaining)

    def __repr__(self) -> str:
        return (
            f"RecordPool(pos_remaining={len(self.pos_remaining)}, "
            f"source_remaining={len(self.source_remaining)})"
        )

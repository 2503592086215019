"""Match result variants and the reconciliation outcome."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional, Union

from ..utils.exceptions import PartitionViolationError
from .record import MalformedRecord, OrderRecord, RecordOrigin


class MatchKind(Enum):
    """Discriminator for the match result variants."""

    EXACT = "exact"
    PROBABLE = "probable"
    GROUPED = "grouped"
    MIDNIGHT = "midnight"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class ExactMatch:
    """Identical date and amount on both sides."""

    pos_record: OrderRecord
    source_record: OrderRecord
    kind: MatchKind = field(default=MatchKind.EXACT, init=False)

    @property
    def date(self) -> date:
        return self.pos_record.date

    @property
    def amount(self) -> Decimal:
        return self.pos_record.amount

    @property
    def records(self) -> tuple[OrderRecord, ...]:
        return (self.pos_record, self.source_record)


@dataclass(frozen=True)
class ProbableMatch:
    """Same date, amounts within tolerance."""

    pos_record: OrderRecord
    source_record: OrderRecord
    kind: MatchKind = field(default=MatchKind.PROBABLE, init=False)

    @property
    def pos_value(self) -> Decimal:
        return self.pos_record.amount

    @property
    def source_value(self) -> Decimal:
        return self.source_record.amount

    @property
    def date(self) -> date:
        return self.pos_record.date

    @property
    def difference(self) -> Decimal:
        return self.source_value - self.pos_value

    @property
    def records(self) -> tuple[OrderRecord, ...]:
        return (self.pos_record, self.source_record)


@dataclass(frozen=True)
class GroupedMatch:
    """Several POS records on one date whose sum explains one source record."""

    pos_records: tuple[OrderRecord, ...]
    source_record: OrderRecord
    kind: MatchKind = field(default=MatchKind.GROUPED, init=False)

    @property
    def pos_values(self) -> list[Decimal]:
        return [record.amount for record in self.pos_records]

    @property
    def source_value(self) -> Decimal:
        return self.source_record.amount

    @property
    def date(self) -> date:
        return self.source_record.date

    @property
    def difference(self) -> Decimal:
        return self.source_value - sum(self.pos_values, Decimal("0"))

    @property
    def records(self) -> tuple[OrderRecord, ...]:
        return (*self.pos_records, self.source_record)


@dataclass(frozen=True)
class MidnightMatch:
    """Amounts agree but the dates are one calendar day apart."""

    pos_record: OrderRecord
    source_record: OrderRecord
    kind: MatchKind = field(default=MatchKind.MIDNIGHT, init=False)

    @property
    def pos_value(self) -> Decimal:
        return self.pos_record.amount

    @property
    def pos_date(self) -> date:
        return self.pos_record.date

    @property
    def source_value(self) -> Decimal:
        return self.source_record.amount

    @property
    def source_date(self) -> date:
        return self.source_record.date

    @property
    def difference(self) -> Decimal:
        return self.source_value - self.pos_value

    @property
    def records(self) -> tuple[OrderRecord, ...]:
        return (self.pos_record, self.source_record)


@dataclass(frozen=True)
class UnmatchedRecord:
    """A record left over after every stage."""

    record: OrderRecord
    kind: MatchKind = field(default=MatchKind.UNMATCHED, init=False)

    @property
    def origin(self) -> RecordOrigin:
        return self.record.origin

    @property
    def value(self) -> Decimal:
        return self.record.amount

    @property
    def date(self) -> date:
        return self.record.date

    @property
    def records(self) -> tuple[OrderRecord, ...]:
        return (self.record,)


MatchResult = Union[ExactMatch, ProbableMatch, GroupedMatch, MidnightMatch, UnmatchedRecord]


def _money(value: Decimal) -> float:
    # Two-decimal rupee amounts; float() of a quantized Decimal is stable.
    return float(value.quantize(Decimal("0.01")))


def _day(value: date) -> str:
    return value.isoformat()


@dataclass
class ReconciliationOutcome:
    """
    Final artifact of one reconciliation run.

    Every normalized input record lands in exactly one bucket.
    """

    matched_values: list[ExactMatch] = field(default_factory=list)
    unmatched_in_pos: list[UnmatchedRecord] = field(default_factory=list)
    unmatched_in_source: list[UnmatchedRecord] = field(default_factory=list)
    probable_matches: list[ProbableMatch] = field(default_factory=list)
    combined_probable_matches: list[GroupedMatch] = field(default_factory=list)
    midnight_matches: list[MidnightMatch] = field(default_factory=list)

    total_pos_records: int = 0
    total_source_records: int = 0
    malformed_records: list[MalformedRecord] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def match_count(self) -> int:
        """Number of exact matches."""
        return len(self.matched_values)

    def add(self, result: MatchResult) -> None:
        """Route a result into its bucket."""
        match result:
            case ExactMatch():
                self.matched_values.append(result)
            case ProbableMatch():
                self.probable_matches.append(result)
            case GroupedMatch():
                self.combined_probable_matches.append(result)
            case MidnightMatch():
                self.midnight_matches.append(result)
            case UnmatchedRecord(record=OrderRecord(origin=RecordOrigin.POS)):
                self.unmatched_in_pos.append(result)
            case UnmatchedRecord(record=OrderRecord(origin=RecordOrigin.SOURCE)):
                self.unmatched_in_source.append(result)
            case _:
                raise TypeError(f"Unknown match result: {result!r}")

    def extend(self, results: Iterable[MatchResult]) -> None:
        for result in results:
            self.add(result)

    def results(self) -> list[MatchResult]:
        """All results, bucket by bucket."""
        return [
            *self.matched_values,
            *self.probable_matches,
            *self.combined_probable_matches,
            *self.midnight_matches,
            *self.unmatched_in_pos,
            *self.unmatched_in_source,
        ]

    def verify_partition(
        self,
        pos_records: Iterable[OrderRecord],
        source_records: Iterable[OrderRecord],
    ) -> None:
        """
        Check that every input record appears in exactly one bucket.

        Raises:
            PartitionViolationError: If a record is missing, duplicated or foreign
        """
        expected = Counter(r.key for r in pos_records)
        expected.update(r.key for r in source_records)

        seen: Counter = Counter()
        for result in self.results():
            seen.update(r.key for r in result.records)

        duplicated = [k for k, n in seen.items() if n > 1]
        missing = [k for k in expected if k not in seen]
        foreign = [k for k in seen if k not in expected]

        if duplicated or missing or foreign:
            raise PartitionViolationError(
                f"Outcome is not a partition of the input: "
                f"{len(duplicated)} duplicated, {len(missing)} missing, "
                f"{len(foreign)} unknown record(s)"
            )

    def to_dict(self) -> dict[str, Any]:
        """Render the outcome in the shape the results view consumes."""
        return {
            "matchedValues": [
                {"amount": _money(m.amount), "date": _day(m.date)} for m in self.matched_values
            ],
            "unmatchedInPos": [
                {"amount": _money(u.value), "date": _day(u.date)} for u in self.unmatched_in_pos
            ],
            "unmatchedInSource": [
                {"amount": _money(u.value), "date": _day(u.date)}
                for u in self.unmatched_in_source
            ],
            "probableMatches": [
                {
                    "posValue": _money(m.pos_value),
                    "sourceValue": _money(m.source_value),
                    "date": _day(m.date),
                    "difference": _money(m.difference),
                }
                for m in self.probable_matches
            ],
            "combinedProbableMatches": [
                {
                    "posValues": [_money(v) for v in m.pos_values],
                    "sourceValue": _money(m.source_value),
                    "date": _day(m.date),
                    "difference": _money(m.difference),
                }
                for m in self.combined_probable_matches
            ],
            "midnightMatches": [
                {
                    "posValue": _money(m.pos_value),
                    "posDate": _day(m.pos_date),
                    "sourceValue": _money(m.source_value),
                    "sourceDate": _day(m.source_date),
                    "difference": _money(m.difference),
                }
                for m in self.midnight_matches
            ],
            "matchCount": self.match_count,
            "totalPOSRecords": self.total_pos_records,
            "totalSourceRecords": self.total_source_records,
            "malformedRecords": len(self.malformed_records),
        }


@dataclass
class ReconciliationSummary:
    """Summary of the reconciliation process."""

    reconciliation_date: datetime
    period_start: Optional[date]
    period_end: Optional[date]

    # Input counts
    total_pos_records: int
    total_source_records: int
    malformed_count: int

    # Bucket counts
    exact_count: int
    probable_count: int
    grouped_count: int
    midnight_count: int
    pos_only_count: int
    source_only_count: int

    # Sum of signed differences over probable, grouped and midnight matches
    total_difference: Decimal

    malformed_pos_count: int = 0
    processing_time_seconds: float = 0.0
    config_file_used: Optional[str] = None

    @property
    def matched_pos_count(self) -> int:
        """POS records explained by any kind of match."""
        normalized = self.total_pos_records - self.malformed_pos_count
        return normalized - self.pos_only_count

    @property
    def exact_match_rate(self) -> float:
        """Percentage of POS records matched exactly."""
        if self.total_pos_records == 0:
            return 0.0
        return (self.exact_count / self.total_pos_records) * 100

    @property
    def pos_match_rate(self) -> float:
        """Percentage of POS records matched by any stage."""
        if self.total_pos_records == 0:
            return 0.0
        return (self.matched_pos_count / self.total_pos_records) * 100

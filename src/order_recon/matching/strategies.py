"""
Matching stages for order reconciliation.
Each stage claims records from the shared pool using one matching rule.
"""

from abc import ABC, abstractmethod
from bisect import insort
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from functools import partial
from typing import Optional
import logging

from ..models.record import OrderRecord, RecordOrigin
from ..models.result import ExactMatch, GroupedMatch, MatchResult, MidnightMatch, ProbableMatch
from .context import RunContext
from .pool import RecordPool
from .tolerance import AmountTolerance

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


class MatchingStrategy(ABC):
    """Abstract base class for matching strategies."""

    name: str = "stage"

    @abstractmethod
    def run(self, pool: RecordPool, context: RunContext) -> list[MatchResult]:
        """
        Claim matches from the pool.

        Selections are computed first and consumed from the pool only once
        the whole stage has finished, so an interrupted stage leaves the
        pool untouched.

        Args:
            pool: Records still unmatched
            context: Executor and deadline for this run

        Returns:
            Match results in deterministic order
        """
        pass


class ExactMatchStrategy(MatchingStrategy):
    """
    Exact match stage - identical date and rounded amount.
    Highest confidence matching tier.
    """

    name = "exact"

    def run(self, pool: RecordPool, context: RunContext) -> list[MatchResult]:
        context.check_deadline(self.name)

        pos_by_key: dict[tuple[date, Decimal], list[OrderRecord]] = defaultdict(list)
        for record in pool.records(RecordOrigin.POS):
            pos_by_key[(record.date, record.amount)].append(record)

        source_by_key: dict[tuple[date, Decimal], list[OrderRecord]] = defaultdict(list)
        for record in pool.records(RecordOrigin.SOURCE):
            source_by_key[(record.date, record.amount)].append(record)

        pairs: list[tuple[OrderRecord, OrderRecord]] = []
        for key, pos_records in pos_by_key.items():
            # k-th POS record pairs with the k-th platform record of the same key
            pairs.extend(zip(pos_records, source_by_key.get(key, [])))

        pairs.sort(key=lambda pair: (pair[0].date, pair[0].seq))

        results: list[MatchResult] = []
        for pos_record, source_record in pairs:
            pool.consume((pos_record, source_record))
            results.append(ExactMatch(pos_record=pos_record, source_record=source_record))
        return results


class ProbableMatchStrategy(MatchingStrategy):
    """
    Amount tolerance stage - same date, amounts within tolerance.
    Smallest differences are claimed first.
    """

    name = "probable"

    def __init__(self, tolerance: AmountTolerance):
        """
        Initialize with tolerance.

        Args:
            tolerance: Allowed amount difference policy
        """
        self.tolerance = tolerance

    def run(self, pool: RecordPool, context: RunContext) -> list[MatchResult]:
        pos_by_date = pool.by_date(RecordOrigin.POS)
        source_by_date = pool.by_date(RecordOrigin.SOURCE)

        work = [
            (day, (pos_by_date[day], source_by_date[day]))
            for day in pos_by_date
            if day in source_by_date
        ]

        results: list[MatchResult] = []
        match_date = partial(self.match_date, context=context)
        for day, pairs in context.map_by_date(match_date, work, self.name):
            logger.debug(f"Probable {day}: {len(pairs)} pair(s)")
            results.extend(
                ProbableMatch(pos_record=p, source_record=s) for p, s in pairs
            )

        for result in results:
            pool.consume(result.records)
        return results

    def match_date(
        self,
        day: date,
        records: tuple[list[OrderRecord], list[OrderRecord]],
        context: Optional[RunContext] = None,
    ) -> list[tuple[OrderRecord, OrderRecord]]:
        """Greedy minimum-difference pairing for one date."""
        pos_records, source_records = records

        candidates = []
        for pos_record in pos_records:
            if context is not None:
                context.checkpoint(self.name)
            for source_record in source_records:
                if self.tolerance.within(pos_record.amount, source_record.amount):
                    difference = abs(source_record.amount - pos_record.amount)
                    candidates.append((difference, pos_record.seq, source_record.seq,
                                       pos_record, source_record))

        return _claim_greedily(candidates)


class GroupedMatchStrategy(MatchingStrategy):
    """
    Many-to-one stage - several POS tickets on one date summing to a
    single platform order, found by a size-capped subset search.
    """

    name = "grouped"

    # Search nodes visited between cancellation checks
    CHECK_EVERY = 4096

    def __init__(
        self,
        tolerance: AmountTolerance,
        min_group_size: int = 2,
        max_group_size: int = 5,
    ):
        """
        Initialize with tolerance and group size bounds.

        Args:
            tolerance: Allowed difference between the group sum and the target
            min_group_size: Smallest group tried
            max_group_size: Largest group tried; bounds the search cost
        """
        self.tolerance = tolerance
        self.min_group_size = min_group_size
        self.max_group_size = max_group_size

    def run(self, pool: RecordPool, context: RunContext) -> list[MatchResult]:
        pos_by_date = pool.by_date(RecordOrigin.POS)
        source_by_date = pool.by_date(RecordOrigin.SOURCE)

        work = [
            (day, (pos_by_date[day], source_records))
            for day, source_records in source_by_date.items()
            if len(pos_by_date.get(day, ())) >= self.min_group_size
        ]

        results: list[MatchResult] = []
        match_date = partial(self.match_date, context=context)
        for day, groups in context.map_by_date(match_date, work, self.name):
            logger.debug(f"Grouped {day}: {len(groups)} group(s)")
            results.extend(
                GroupedMatch(pos_records=group, source_record=s) for group, s in groups
            )

        for result in results:
            pool.consume(result.records)
        return results

    def match_date(
        self,
        day: date,
        records: tuple[list[OrderRecord], list[OrderRecord]],
        context: Optional[RunContext] = None,
    ) -> list[tuple[tuple[OrderRecord, ...], OrderRecord]]:
        """Find groups for each platform record of one date, in insertion order."""
        pos_records, source_records = records
        free = list(pos_records)

        groups: list[tuple[tuple[OrderRecord, ...], OrderRecord]] = []
        for source_record in source_records:
            if context is not None:
                context.checkpoint(self.name)
            if len(free) < self.min_group_size:
                break
            group = self.find_group(free, source_record.amount, context)
            if group is None:
                continue
            taken = {r.seq for r in group}
            free = [r for r in free if r.seq not in taken]
            groups.append((group, source_record))
        return groups

    def find_group(
        self,
        candidates: list[OrderRecord],
        target: Decimal,
        context: Optional[RunContext] = None,
    ) -> Optional[tuple[OrderRecord, ...]]:
        """
        Smallest group of candidates whose sum is within tolerance of target.

        Candidates must be in insertion order; the returned group keeps it.
        """
        limit = self.tolerance.limit(target)
        reach = _suffix_reach(
            [r.amount for r in candidates], min(self.max_group_size, len(candidates))
        )
        for size in range(self.min_group_size, self.max_group_size + 1):
            if size > len(candidates):
                break
            group = self._best_of_size(candidates, reach, size, target, limit, context)
            if group is not None:
                return group
        return None

    def _best_of_size(
        self,
        candidates: list[OrderRecord],
        reach: list[list[Decimal]],
        size: int,
        target: Decimal,
        limit: Decimal,
        context: Optional[RunContext],
    ) -> Optional[tuple[OrderRecord, ...]]:
        # Depth-first over index combinations in lexicographic order, so the
        # first subset reaching the minimum difference is the tie-break winner.
        ceiling = target + limit
        floor = target - limit
        best: Optional[tuple[OrderRecord, ...]] = None
        best_diff: Optional[Decimal] = None
        chosen: list[OrderRecord] = []
        visited = 0

        def walk(start: int, running: Decimal) -> bool:
            nonlocal best, best_diff, visited
            if len(chosen) == size:
                diff = abs(target - running)
                if diff <= limit and (best_diff is None or diff < best_diff):
                    best, best_diff = tuple(chosen), diff
                return best_diff == 0

            visited += 1
            if context is not None and visited % self.CHECK_EVERY == 0:
                context.checkpoint(self.name)

            needed = size - len(chosen)
            for i in range(start, len(candidates) - needed + 1):
                # reach[needed][i] only shrinks as i grows: nothing later can
                # lift the sum to the floor either
                if running + reach[needed][i] < floor:
                    break
                amount = candidates[i].amount
                # Amounts are non-negative: an overshoot cannot be undone
                if running + amount > ceiling:
                    continue
                chosen.append(candidates[i])
                done = walk(i + 1, running + amount)
                chosen.pop()
                if done:
                    return True
            return False

        walk(0, Decimal("0"))
        return best


class MidnightMatchStrategy(MatchingStrategy):
    """
    Date-shifted stage - amounts agree but the dates are exactly one day
    apart, absorbing orders that straddle a day-close boundary.

    All one-day-apart pairs within tolerance are ranked together, so an
    identical amount is never lost to an earlier near miss.
    """

    name = "midnight"

    def __init__(self, tolerance: AmountTolerance):
        """
        Initialize with tolerance.

        Args:
            tolerance: Allowed amount difference when no exact amount exists
        """
        self.tolerance = tolerance

    def run(self, pool: RecordPool, context: RunContext) -> list[MatchResult]:
        source_by_date = pool.by_date(RecordOrigin.SOURCE)

        candidates = []
        for pos_record in pool.records(RecordOrigin.POS):
            context.checkpoint(self.name)
            for source_record in self.neighbours(pos_record, source_by_date):
                difference = abs(source_record.amount - pos_record.amount)
                candidates.append((difference, pos_record.seq, source_record.seq,
                                   pos_record, source_record))

        results: list[MatchResult] = [
            MidnightMatch(pos_record=p, source_record=s)
            for p, s in _claim_greedily(candidates)
        ]
        results.sort(key=lambda m: m.pos_record.seq)

        for result in results:
            pool.consume(result.records)
        return results

    def neighbours(
        self,
        pos_record: OrderRecord,
        source_by_date: dict[date, list[OrderRecord]],
    ) -> list[OrderRecord]:
        """Source records one day either side whose amount is within tolerance."""
        return [
            s
            for day in (pos_record.date - ONE_DAY, pos_record.date + ONE_DAY)
            for s in source_by_date.get(day, ())
            if self.tolerance.within(pos_record.amount, s.amount)
        ]


def _claim_greedily(
    candidates: list[tuple[Decimal, int, int, OrderRecord, OrderRecord]],
) -> list[tuple[OrderRecord, OrderRecord]]:
    """Take candidate pairs by (difference, pos seq, source seq), each record once."""
    candidates.sort(key=lambda c: c[:3])

    used_pos: set[int] = set()
    used_source: set[int] = set()
    pairs: list[tuple[OrderRecord, OrderRecord]] = []
    for _, pos_seq, source_seq, pos_record, source_record in candidates:
        if pos_seq in used_pos or source_seq in used_source:
            continue
        used_pos.add(pos_seq)
        used_source.add(source_seq)
        pairs.append((pos_record, source_record))
    return pairs


def _suffix_reach(amounts: list[Decimal], max_count: int) -> list[list[Decimal]]:
    """
    ``reach[k][i]`` is the largest sum of ``k`` amounts taken from ``amounts[i:]``.

    Entries where fewer than ``k`` amounts remain are left at zero; the
    search never reads them.
    """
    n = len(amounts)
    reach = [[Decimal("0")] * (n + 1) for _ in range(max_count + 1)]
    top: list[Decimal] = []
    for i in range(n - 1, -1, -1):
        insort(top, amounts[i])
        if len(top) > max_count:
            top.pop(0)
        running = Decimal("0")
        for k, amount in enumerate(reversed(top), start=1):
            running += amount
            reach[k][i] = running
    return reach

"""
Tests for the individual matching stages, pool and tolerance policy.
"""

import random
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal
from itertools import combinations

import pytest

from order_recon.matching.context import RunContext
from order_recon.matching.pool import RecordPool
from order_recon.matching.strategies import (
    ExactMatchStrategy,
    GroupedMatchStrategy,
    MidnightMatchStrategy,
    ProbableMatchStrategy,
)
from order_recon.matching.tolerance import AmountTolerance
from order_recon.models.record import RecordOrigin
from order_recon.utils.exceptions import PartitionViolationError, RunTimeoutError

from conftest import DAY, pos, src

DEFAULT_TOLERANCE = AmountTolerance(amount=Decimal("10"), percent=Decimal("5"))
ZERO_TOLERANCE = AmountTolerance(amount=None, percent=None)


def run_stage(stage, pos_records, source_records):
    pool = RecordPool(pos_records, source_records)
    results = stage.run(pool, RunContext())
    return results, pool


class TestAmountTolerance:
    def test_min_takes_tighter_bound(self):
        assert DEFAULT_TOLERANCE.limit(Decimal("100")) == Decimal("5")
        assert DEFAULT_TOLERANCE.limit(Decimal("1000")) == Decimal("10")

    def test_max_takes_looser_bound(self):
        tolerance = AmountTolerance(amount=Decimal("10"), percent=Decimal("5"), combine="max")
        assert tolerance.limit(Decimal("100")) == Decimal("10")
        assert tolerance.limit(Decimal("1000")) == Decimal("50")

    def test_single_bound(self):
        assert AmountTolerance(amount=None, percent=Decimal("2")).limit(Decimal("50")) == 1
        assert AmountTolerance(amount=Decimal("3"), percent=None).limit(Decimal("50")) == 3

    def test_no_bounds_means_identical_amounts_only(self):
        assert ZERO_TOLERANCE.within(Decimal("10.00"), Decimal("10.00"))
        assert not ZERO_TOLERANCE.within(Decimal("10.00"), Decimal("10.01"))


class TestRecordPool:
    def test_by_date_orders_dates_and_sequence(self):
        later = DAY + timedelta(days=1)
        pool = RecordPool(pos((5, later), (1, DAY), (2, DAY)), [])

        grouped = pool.by_date(RecordOrigin.POS)

        assert list(grouped) == [DAY, later]
        assert [r.seq for r in grouped[DAY]] == [1, 2]

    def test_consume_twice_is_a_defect(self):
        records = pos((1, DAY))
        pool = RecordPool(records, [])
        pool.consume(records)

        with pytest.raises(PartitionViolationError):
            pool.consume(records)

    def test_duplicate_sequence_rejected(self):
        with pytest.raises(PartitionViolationError):
            RecordPool(pos((1, DAY)) + pos((2, DAY)), [])

    def test_wrong_side_rejected(self):
        with pytest.raises(PartitionViolationError):
            RecordPool(src((1, DAY)), [])


class TestExactMatchStrategy:
    def test_pairs_in_insertion_order(self):
        results, pool = run_stage(
            ExactMatchStrategy(),
            pos((100, DAY), (100, DAY), (100, DAY)),
            src((100, DAY), (100, DAY)),
        )

        assert [(m.pos_record.seq, m.source_record.seq) for m in results] == [(0, 0), (1, 1)]
        assert [r.seq for r in pool.records(RecordOrigin.POS)] == [2]
        assert pool.records(RecordOrigin.SOURCE) == []

    def test_requires_same_date(self):
        results, _ = run_stage(
            ExactMatchStrategy(),
            pos((100, DAY)),
            src((100, DAY + timedelta(days=1))),
        )
        assert results == []

    def test_rounded_amounts_compare_equal(self):
        results, _ = run_stage(ExactMatchStrategy(), pos(("99.999", DAY)), src(("100", DAY)))
        assert len(results) == 1


class TestProbableMatchStrategy:
    def test_difference_at_tolerance_is_matched(self):
        results, _ = run_stage(
            ProbableMatchStrategy(DEFAULT_TOLERANCE), pos(("95.00", DAY)), src(("100.00", DAY))
        )

        assert len(results) == 1
        assert results[0].difference == Decimal("5.00")

    def test_one_paisa_beyond_tolerance_is_not_matched(self):
        results, pool = run_stage(
            ProbableMatchStrategy(DEFAULT_TOLERANCE), pos(("94.99", DAY)), src(("100.00", DAY))
        )

        assert results == []
        assert len(pool) == 2

    def test_absolute_bound_boundary(self):
        at_limit, _ = run_stage(
            ProbableMatchStrategy(DEFAULT_TOLERANCE), pos(("990.00", DAY)), src(("1000.00", DAY))
        )
        beyond, _ = run_stage(
            ProbableMatchStrategy(DEFAULT_TOLERANCE), pos(("989.99", DAY)), src(("1000.00", DAY))
        )

        assert len(at_limit) == 1
        assert beyond == []

    def test_smallest_difference_claimed_first(self):
        results, pool = run_stage(
            ProbableMatchStrategy(DEFAULT_TOLERANCE),
            pos((100, DAY), (103, DAY)),
            src((104, DAY), (110, DAY)),
        )

        assert [(m.pos_value, m.source_value) for m in results] == [
            (Decimal("103.00"), Decimal("104.00"))
        ]
        assert [r.amount for r in pool.records(RecordOrigin.POS)] == [Decimal("100.00")]

    def test_tie_goes_to_earliest_pos_record(self):
        results, _ = run_stage(
            ProbableMatchStrategy(DEFAULT_TOLERANCE),
            pos((98, DAY), (102, DAY)),
            src((100, DAY),),
        )

        assert len(results) == 1
        assert results[0].pos_record.seq == 0
        assert results[0].difference == Decimal("2.00")

    def test_dates_are_not_mixed(self):
        results, _ = run_stage(
            ProbableMatchStrategy(DEFAULT_TOLERANCE),
            pos((100, DAY)),
            src((101, DAY + timedelta(days=1))),
        )
        assert results == []


class TestGroupedMatchStrategy:
    def test_smallest_group_wins(self):
        results, _ = run_stage(
            GroupedMatchStrategy(ZERO_TOLERANCE),
            pos((50, DAY), (30, DAY), (20, DAY), (50, DAY)),
            src((100, DAY),),
        )

        assert len(results) == 1
        assert [r.seq for r in results[0].pos_records] == [0, 3]

    def test_lexicographic_tie_break(self):
        results, pool = run_stage(
            GroupedMatchStrategy(ZERO_TOLERANCE),
            pos((60, DAY), (40, DAY), (60, DAY), (40, DAY)),
            src((100, DAY),),
        )

        assert [r.seq for r in results[0].pos_records] == [0, 1]
        assert [r.seq for r in pool.records(RecordOrigin.POS)] == [2, 3]

    def test_minimal_difference_within_size(self):
        tolerance = AmountTolerance(amount=Decimal("10"), percent=None)
        results, _ = run_stage(
            GroupedMatchStrategy(tolerance),
            pos((55, DAY), (40, DAY), (47, DAY)),
            src((100, DAY),),
        )

        group = results[0]
        assert group.pos_values == [Decimal("55.00"), Decimal("47.00")]
        assert group.difference == Decimal("-2.00")

    def test_group_at_size_cap_is_found(self):
        results, _ = run_stage(
            GroupedMatchStrategy(ZERO_TOLERANCE, max_group_size=4),
            pos((10, DAY), (20, DAY), (30, DAY), (40, DAY)),
            src((100, DAY),),
        )

        assert len(results) == 1
        assert len(results[0].pos_records) == 4

    def test_group_beyond_size_cap_is_not_found(self):
        results, pool = run_stage(
            GroupedMatchStrategy(ZERO_TOLERANCE, max_group_size=3),
            pos((10, DAY), (20, DAY), (30, DAY), (40, DAY)),
            src((100, DAY),),
        )

        assert results == []
        assert len(pool.records(RecordOrigin.SOURCE)) == 1

    def test_pos_records_not_reused_across_groups(self):
        results, _ = run_stage(
            GroupedMatchStrategy(ZERO_TOLERANCE),
            pos((60, DAY), (40, DAY), (70, DAY), (30, DAY)),
            src((100, DAY), (100, DAY)),
        )

        assert [[r.seq for r in m.pos_records] for m in results] == [[0, 1], [2, 3]]

    def test_only_same_date_records_are_grouped(self):
        results, _ = run_stage(
            GroupedMatchStrategy(ZERO_TOLERANCE),
            pos((60, DAY), (40, DAY + timedelta(days=1))),
            src((100, DAY),),
        )
        assert results == []

    def test_pruned_search_agrees_with_exhaustive_search(self):
        rng = random.Random(42)
        for _ in range(25):
            amounts = [Decimal(rng.randint(20, 400)) / 4 for _ in range(rng.randint(4, 11))]
            picked = rng.sample(amounts, rng.randint(2, 4))
            target = sum(picked, Decimal("0")) + Decimal(rng.randint(-300, 300)) / 100
            candidates = pos(*[(a, DAY) for a in amounts])

            found = GroupedMatchStrategy(DEFAULT_TOLERANCE).find_group(candidates, target)
            expected = _exhaustive_group(candidates, target, DEFAULT_TOLERANCE)

            assert found == expected

    def test_large_target_among_many_tickets_finishes_quickly(self):
        rng = random.Random(3)
        tickets = pos(*[(rng.randint(200, 600), DAY) for _ in range(80)])

        started = time.perf_counter()
        results, _ = run_stage(GroupedMatchStrategy(DEFAULT_TOLERANCE), tickets, src((2900, DAY),))
        elapsed = time.perf_counter() - started

        assert elapsed < 5.0
        for group in results:
            assert abs(group.difference) <= DEFAULT_TOLERANCE.limit(group.source_value)

    def test_unreachable_target_is_not_matched(self):
        results, pool = run_stage(
            GroupedMatchStrategy(DEFAULT_TOLERANCE),
            pos(*[(10, DAY) for _ in range(40)]),
            src((5000, DAY),),
        )

        assert results == []
        assert len(pool.records(RecordOrigin.POS)) == 40


class TestMidnightMatchStrategy:
    def test_next_day_exact(self):
        results, _ = run_stage(
            MidnightMatchStrategy(DEFAULT_TOLERANCE),
            pos((50, DAY)),
            src((50, DAY + timedelta(days=1))),
        )

        assert len(results) == 1
        assert results[0].pos_date == DAY
        assert results[0].source_date == DAY + timedelta(days=1)

    def test_previous_day_within_tolerance(self):
        results, _ = run_stage(
            MidnightMatchStrategy(DEFAULT_TOLERANCE),
            pos((100, DAY)),
            src((103, DAY - timedelta(days=1))),
        )

        assert len(results) == 1
        assert results[0].difference == Decimal("3.00")

    def test_two_days_apart_is_never_matched(self):
        results, pool = run_stage(
            MidnightMatchStrategy(DEFAULT_TOLERANCE),
            pos((50, DAY)),
            src((50, DAY + timedelta(days=2)), (50, DAY - timedelta(days=2))),
        )

        assert results == []
        assert len(pool) == 3

    def test_same_day_is_not_a_midnight_match(self):
        results, _ = run_stage(
            MidnightMatchStrategy(DEFAULT_TOLERANCE), pos((50, DAY)), src((50, DAY))
        )
        assert results == []

    def test_exact_amount_preferred(self):
        results, _ = run_stage(
            MidnightMatchStrategy(DEFAULT_TOLERANCE),
            pos((100, DAY)),
            src((101, DAY - timedelta(days=1)), (100, DAY + timedelta(days=1))),
        )

        assert results[0].source_record.seq == 1
        assert results[0].difference == 0

    def test_exact_amount_not_lost_to_earlier_near_miss(self):
        results, pool = run_stage(
            MidnightMatchStrategy(DEFAULT_TOLERANCE),
            pos((100, DAY), (103, DAY)),
            src((103, DAY + timedelta(days=1)),),
        )

        assert [m.pos_record.seq for m in results] == [1]
        assert results[0].difference == 0
        assert [r.seq for r in pool.records(RecordOrigin.POS)] == [0]

    def test_source_record_used_once(self):
        results, pool = run_stage(
            MidnightMatchStrategy(DEFAULT_TOLERANCE),
            pos((50, DAY), (50, DAY + timedelta(days=2))),
            src((50, DAY + timedelta(days=1)),),
        )

        assert [m.pos_record.seq for m in results] == [0]
        assert [r.seq for r in pool.records(RecordOrigin.POS)] == [1]


class TestRunContext:
    def test_parallel_wait_past_deadline_raises_and_cancels(self):
        executor = ThreadPoolExecutor(max_workers=2)
        context = RunContext(executor=executor, timeout_seconds=0.2)

        def slow(day, item):
            context.cancelled.wait(30)
            return item

        started = time.perf_counter()
        with pytest.raises(RunTimeoutError):
            list(context.map_by_date(slow, [(DAY, 1), (DAY + timedelta(days=1), 2)], "test"))
        executor.shutdown(wait=True)

        assert context.cancelled.is_set()
        assert time.perf_counter() - started < 10

    def test_checkpoint_after_cancel_raises(self):
        context = RunContext()
        context.checkpoint("before")

        context.cancel()

        with pytest.raises(RunTimeoutError):
            context.checkpoint("after")

    def test_parallel_results_keep_input_order(self):
        with ThreadPoolExecutor(max_workers=3) as executor:
            context = RunContext(executor=executor)
            work = [(DAY + timedelta(days=d), d) for d in range(6)]

            results = list(context.map_by_date(lambda day, item: item * 2, work, "test"))

        assert results == [(day, d * 2) for day, d in work]


def _exhaustive_group(candidates, target, tolerance, min_size=2, max_size=5):
    limit = tolerance.limit(target)
    for size in range(min_size, max_size + 1):
        best, best_diff = None, None
        for combo in combinations(candidates, size):
            diff = abs(target - sum((r.amount for r in combo), Decimal("0")))
            if diff <= limit and (best_diff is None or diff < best_diff):
                best, best_diff = combo, diff
        if best is not None:
            return best
    return None

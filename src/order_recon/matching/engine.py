"""
Multi-stage matching engine for order reconciliation.
Runs the matching stages in fixed priority order over one record pool.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional
import logging
import time

from ..config import ReconConfig
from ..models.record import MalformedRecord, OrderRecord, RecordOrigin
from ..models.result import (
    ReconciliationOutcome,
    ReconciliationSummary,
    UnmatchedRecord,
)
from ..parsers.record_normalizer import RecordNormalizer
from ..utils.exceptions import RunTimeoutError
from .context import RunContext
from .pool import RecordPool
from .strategies import (
    ExactMatchStrategy,
    GroupedMatchStrategy,
    MatchingStrategy,
    MidnightMatchStrategy,
    ProbableMatchStrategy,
)
from .tolerance import AmountTolerance

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """
    Main reconciliation engine that orchestrates the matching process.

    Exact matches are claimed first so a looser stage cannot take them;
    grouped matching runs before midnight matching because a same-day
    explanation is preferred to crossing a date boundary.
    """

    def __init__(self, config: ReconConfig, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the reconciliation engine.

        Args:
            config: Application configuration
            clock: Monotonic time source used for the run budget
        """
        self.config = config
        self.clock = clock
        self.tolerance = AmountTolerance.from_config(config.matching.tolerance)
        self.normalizer = RecordNormalizer(config)
        self.strategies = self._build_strategies()

    def _build_strategies(self) -> list[MatchingStrategy]:
        """
        Build matching stages from configuration.

        Returns:
            Stages in execution order
        """
        matching = self.config.matching
        strategies: list[MatchingStrategy] = [ExactMatchStrategy()]

        if matching.probable.enabled:
            strategies.append(ProbableMatchStrategy(self.tolerance))
        if matching.grouped.enabled:
            strategies.append(
                GroupedMatchStrategy(
                    self.tolerance,
                    min_group_size=matching.grouped.min_group_size,
                    max_group_size=matching.grouped.max_group_size,
                )
            )
        if matching.midnight.enabled:
            strategies.append(MidnightMatchStrategy(self.tolerance))

        for strategy in strategies:
            logger.debug(f"Loaded matching stage: {strategy.name}")
        return strategies

    def reconcile_rows(
        self,
        pos_rows: Iterable[Mapping[str, Any]],
        pos_type: str,
        source_rows: Iterable[Mapping[str, Any]],
        source_type: str,
    ) -> ReconciliationOutcome:
        """
        Normalize raw rows from both sides and reconcile them.

        Args:
            pos_rows: Raw POS export rows
            pos_type: POS platform tag (e.g. "petpooja")
            source_rows: Raw platform export rows
            source_type: Platform tag (e.g. "swiggy")

        Returns:
            Reconciliation outcome including malformed-row diagnostics

        Raises:
            UnsupportedPlatformTypeError: If either platform tag is unknown
        """
        # Resolve both profiles before touching any rows
        self.normalizer.profile_for(pos_type, RecordOrigin.POS)
        self.normalizer.profile_for(source_type, RecordOrigin.SOURCE)

        pos_report = self.normalizer.normalize(pos_rows, pos_type, RecordOrigin.POS)
        source_report = self.normalizer.normalize(source_rows, source_type, RecordOrigin.SOURCE)

        return self.reconcile(
            pos_report.records,
            source_report.records,
            malformed=[*pos_report.malformed, *source_report.malformed],
            total_pos=pos_report.total_rows,
            total_source=source_report.total_rows,
        )

    def reconcile(
        self,
        pos_records: list[OrderRecord],
        source_records: list[OrderRecord],
        malformed: Iterable[MalformedRecord] = (),
        total_pos: Optional[int] = None,
        total_source: Optional[int] = None,
    ) -> ReconciliationOutcome:
        """
        Perform reconciliation between POS and platform records.

        Args:
            pos_records: Normalized POS records
            source_records: Normalized platform records
            malformed: Rows rejected during normalization
            total_pos: Raw POS row count (defaults to len(pos_records))
            total_source: Raw platform row count (defaults to len(source_records))

        Returns:
            Outcome with every record in exactly one bucket

        Raises:
            RunTimeoutError: If the configured time budget is exceeded
            PartitionViolationError: If the stages lost or duplicated a record
        """
        logger.info(
            f"Starting reconciliation: {len(pos_records)} POS records, "
            f"{len(source_records)} platform records"
        )
        if not pos_records or not source_records:
            logger.info("One side has no usable records; every record will be unmatched")

        outcome = ReconciliationOutcome(
            total_pos_records=len(pos_records) if total_pos is None else total_pos,
            total_source_records=len(source_records) if total_source is None else total_source,
            malformed_records=list(malformed),
        )
        pool = RecordPool(pos_records, source_records)

        engine_config = self.config.engine
        executor = None
        if engine_config.max_workers > 1:
            executor = ThreadPoolExecutor(
                max_workers=engine_config.max_workers,
                thread_name_prefix="order-recon",
            )
        context = RunContext(
            executor=executor,
            timeout_seconds=engine_config.timeout_seconds,
            clock=self.clock,
        )

        try:
            for strategy in self.strategies:
                context.check_deadline(strategy.name)
                stage_results = strategy.run(pool, context)
                outcome.extend(stage_results)
                logger.debug(
                    f"Stage {strategy.name}: {len(stage_results)} matches, "
                    f"{len(pool.pos_remaining)} POS and "
                    f"{len(pool.source_remaining)} platform remaining"
                )
        except RunTimeoutError as e:
            self._drain(pool, outcome)
            outcome.elapsed_seconds = context.elapsed()
            logger.error(f"Reconciliation timed out: {e}")
            raise RunTimeoutError(str(e), partial=outcome) from e
        finally:
            # Workers still searching stop at their next checkpoint
            context.cancel()
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)

        self._drain(pool, outcome)
        outcome.elapsed_seconds = context.elapsed()
        outcome.verify_partition(pos_records, source_records)

        logger.info(
            f"Reconciliation complete in {outcome.elapsed_seconds:.2f}s: "
            f"{outcome.match_count} exact, {len(outcome.probable_matches)} probable, "
            f"{len(outcome.combined_probable_matches)} grouped, "
            f"{len(outcome.midnight_matches)} midnight, "
            f"{len(outcome.unmatched_in_pos)} POS-only, "
            f"{len(outcome.unmatched_in_source)} platform-only"
        )
        return outcome

    def _drain(self, pool: RecordPool, outcome: ReconciliationOutcome) -> None:
        """Move every remaining record into the unmatched buckets."""
        leftovers = pool.records(RecordOrigin.POS) + pool.records(RecordOrigin.SOURCE)
        pool.consume(leftovers)
        outcome.extend(UnmatchedRecord(record=r) for r in leftovers)

    def generate_summary(self, outcome: ReconciliationOutcome) -> ReconciliationSummary:
        """
        Generate a summary of the reconciliation results.

        Args:
            outcome: Result of a reconciliation run

        Returns:
            Reconciliation summary object
        """
        differences = [
            *(m.difference for m in outcome.probable_matches),
            *(m.difference for m in outcome.combined_probable_matches),
            *(m.difference for m in outcome.midnight_matches),
        ]
        total_difference = sum(differences, Decimal("0"))

        all_dates = [r.date for result in outcome.results() for r in result.records]

        malformed_pos = sum(
            1 for m in outcome.malformed_records if m.origin is RecordOrigin.POS
        )

        return ReconciliationSummary(
            reconciliation_date=datetime.now(),
            period_start=min(all_dates) if all_dates else None,
            period_end=max(all_dates) if all_dates else None,
            total_pos_records=outcome.total_pos_records,
            total_source_records=outcome.total_source_records,
            malformed_count=len(outcome.malformed_records),
            exact_count=outcome.match_count,
            probable_count=len(outcome.probable_matches),
            grouped_count=len(outcome.combined_probable_matches),
            midnight_count=len(outcome.midnight_matches),
            pos_only_count=len(outcome.unmatched_in_pos),
            source_only_count=len(outcome.unmatched_in_source),
            total_difference=total_difference,
            malformed_pos_count=malformed_pos,
            processing_time_seconds=outcome.elapsed_seconds,
            config_file_used=self.config.config_file_path,
        )

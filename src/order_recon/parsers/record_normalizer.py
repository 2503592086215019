"""
Platform-aware record normalizer.
Converts raw export rows into canonical OrderRecord instances.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional
import logging
import re

import pandas as pd

from ..config import PlatformProfile, ReconConfig
from ..models.record import MalformedRecord, OrderRecord, RecordOrigin
from ..utils.exceptions import MalformedRecordError, UnsupportedPlatformTypeError

logger = logging.getLogger(__name__)

_CURRENCY_TOKENS = re.compile(r"(₹|\$|INR|Rs\.?)", re.IGNORECASE)


@dataclass
class NormalizationReport:
    """Records accepted from one side plus the rows that were rejected."""

    origin: RecordOrigin
    platform: str
    records: list[OrderRecord] = field(default_factory=list)
    malformed: list[MalformedRecord] = field(default_factory=list)
    total_rows: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.records


class RecordNormalizer:
    """
    Normalizer for POS and platform order rows.

    The platform tag picks a column-mapping profile from configuration;
    rows with an unusable amount or date are reported, not dropped silently.
    """

    def __init__(self, config: ReconConfig):
        """
        Initialize the normalizer with configuration.

        Args:
            config: Application configuration object
        """
        self.config = config

    def profile_for(self, platform: str, origin: RecordOrigin) -> PlatformProfile:
        """
        Look up the profile for a platform tag on a given side.

        Raises:
            UnsupportedPlatformTypeError: If the tag is unknown or belongs to the other side
        """
        tag = (platform or "").strip().lower()
        profile = self.config.platforms.get(tag)
        if profile is None or profile.side != origin.value:
            raise UnsupportedPlatformTypeError(platform, side=origin.value)
        return profile

    def normalize(
        self,
        rows: Iterable[Mapping[str, Any]],
        platform: str,
        origin: RecordOrigin,
    ) -> NormalizationReport:
        """
        Normalize raw rows from one side.

        Args:
            rows: Raw rows keyed by export column name
            platform: Platform tag (e.g. "petpooja", "swiggy")
            origin: Which side the rows belong to

        Returns:
            NormalizationReport with accepted records and malformed rows
        """
        profile = self.profile_for(platform, origin)
        report = NormalizationReport(origin=origin, platform=platform)

        for idx, row in enumerate(rows):
            report.total_rows += 1
            try:
                record = self.normalize_row(row, profile, origin, seq=len(report.records))
            except MalformedRecordError as e:
                logger.warning(f"{origin.value} row {idx}: {e}, skipping")
                report.malformed.append(
                    MalformedRecord(origin=origin, row_index=idx, reason=str(e), raw=dict(row))
                )
                continue
            report.records.append(record)

        logger.info(
            f"Normalized {len(report.records)} of {report.total_rows} {platform} rows "
            f"({len(report.malformed)} malformed)"
        )
        return report

    def normalize_row(
        self,
        row: Mapping[str, Any],
        profile: PlatformProfile,
        origin: RecordOrigin,
        seq: int,
    ) -> OrderRecord:
        """
        Convert one raw row to an OrderRecord.

        Raises:
            MalformedRecordError: If the amount or date cannot be used
        """
        mappings = profile.column_mappings

        amount = self.parse_amount(_lookup(row, mappings["amount"]))
        order_date = self.parse_date(_lookup(row, mappings["date"]), profile)

        raw_id = None
        id_col = mappings.get("id")
        if id_col:
            raw_id = _format_id(_lookup(row, id_col))

        return OrderRecord(
            origin=origin,
            amount=amount,
            date=order_date,
            seq=seq,
            raw_id=raw_id,
        )

    def parse_amount(self, amount_value: Any) -> Decimal:
        """
        Parse an amount cell.

        Args:
            amount_value: Amount value (string, number, or None)

        Returns:
            Non-negative Decimal amount

        Raises:
            MalformedRecordError: If missing, non-numeric or negative
        """
        if _is_missing(amount_value):
            raise MalformedRecordError("missing amount")
        if isinstance(amount_value, bool):
            raise MalformedRecordError(f"non-numeric amount {amount_value!r}")

        text = amount_value
        if isinstance(amount_value, str):
            text = _CURRENCY_TOKENS.sub("", amount_value).replace(",", "").strip()

        try:
            amount = Decimal(str(text))
        except (InvalidOperation, ValueError) as e:
            raise MalformedRecordError(f"non-numeric amount {amount_value!r}") from e

        if not amount.is_finite():
            raise MalformedRecordError(f"non-numeric amount {amount_value!r}")
        if amount < 0:
            raise MalformedRecordError(f"negative amount {amount_value!r}")

        return amount

    def parse_date(self, date_value: Any, profile: PlatformProfile) -> date:
        """
        Parse a date cell, dropping any time-of-day.

        Args:
            date_value: Date value (string, date, datetime or Timestamp)
            profile: Platform profile supplying date formats

        Returns:
            Calendar date

        Raises:
            MalformedRecordError: If the value cannot be parsed
        """
        if _is_missing(date_value):
            raise MalformedRecordError("missing date")

        # datetime (and pandas Timestamp) first: both are date subclasses
        if isinstance(date_value, datetime):
            return date_value.date()
        if isinstance(date_value, date):
            return date_value
        if not isinstance(date_value, str):
            raise MalformedRecordError(f"unparsable date {date_value!r}")

        text = date_value.strip()
        for date_format in profile.date_formats:
            try:
                return datetime.strptime(text, date_format).date()
            except ValueError:
                continue

        # Fall back to the pandas parser
        try:
            parsed = pd.to_datetime(text, dayfirst=profile.dayfirst)
        except (ValueError, TypeError, OverflowError) as e:
            raise MalformedRecordError(f"unparsable date {date_value!r}") from e
        if pd.isna(parsed):
            raise MalformedRecordError(f"unparsable date {date_value!r}")
        return parsed.date()


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return bool(pd.api.types.is_scalar(value) and pd.isna(value))


def _lookup(row: Mapping[str, Any], column: str) -> Any:
    """Fetch a cell by column name, tolerating case and surrounding spaces."""
    if column in row:
        return row[column]
    wanted = column.strip().lower()
    for key, value in row.items():
        if isinstance(key, str) and key.strip().lower() == wanted:
            return value
    return None


def _format_id(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()

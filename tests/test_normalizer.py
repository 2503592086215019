"""
Tests for the record normalizer and export file reader.
"""

from datetime import date, datetime
from decimal import Decimal

import pandas as pd
import pytest

from order_recon.models.record import OrderRecord, RecordOrigin
from order_recon.parsers.file_reader import read_export_file, read_export_files
from order_recon.parsers.record_normalizer import RecordNormalizer
from order_recon.utils.exceptions import (
    FileReadError,
    MalformedRecordError,
    UnsupportedPlatformTypeError,
)


@pytest.fixture
def normalizer(config):
    return RecordNormalizer(config)


@pytest.fixture
def petpooja(config):
    return config.platforms["petpooja"]


class TestParseAmount:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("₹1,234.50", Decimal("1234.50")),
            ("Rs. 99", Decimal("99")),
            (" 250 ", Decimal("250")),
            (100, Decimal("100")),
            (12.5, Decimal("12.5")),
        ],
    )
    def test_accepts_common_formats(self, normalizer, raw, expected):
        assert normalizer.parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "", None, float("nan"), "-1", -0.01, True, "Infinity"])
    def test_rejects_unusable_amounts(self, normalizer, raw):
        with pytest.raises(MalformedRecordError):
            normalizer.parse_amount(raw)


class TestParseDate:
    def test_datetime_drops_time_of_day(self, normalizer, petpooja):
        assert normalizer.parse_date(datetime(2024, 1, 5, 23, 50), petpooja) == date(2024, 1, 5)

    def test_timezone_aware_keeps_wall_clock_date(self, normalizer, petpooja):
        stamp = pd.Timestamp("2024-01-05 23:50", tz="Asia/Kolkata")
        assert normalizer.parse_date(stamp, petpooja) == date(2024, 1, 5)

    def test_configured_formats_are_day_first(self, normalizer, petpooja):
        assert normalizer.parse_date("05/01/2024", petpooja) == date(2024, 1, 5)

    def test_iso_with_offset_falls_back_to_pandas(self, normalizer, petpooja):
        assert normalizer.parse_date("2024-01-05T23:50:00+05:30", petpooja) == date(2024, 1, 5)

    @pytest.mark.parametrize("raw", ["not a date", "", None, 45296])
    def test_rejects_unparsable_dates(self, normalizer, petpooja, raw):
        with pytest.raises(MalformedRecordError):
            normalizer.parse_date(raw, petpooja)


class TestNormalize:
    def test_builds_records_with_sequence(self, normalizer):
        report = normalizer.normalize(
            [
                {"Invoice No.": 1001.0, "Date": "2024-01-05", "Grand Total": "100.005"},
                {"Invoice No.": None, "Date": "2024-01-06", "Grand Total": 40},
            ],
            "petpooja",
            RecordOrigin.POS,
        )

        assert report.total_rows == 2
        assert report.malformed == []
        first, second = report.records
        assert first.amount == Decimal("100.01")
        assert first.raw_id == "1001"
        assert first.seq == 0
        assert second.raw_id is None
        assert second.seq == 1

    def test_malformed_rows_are_reported(self, normalizer):
        report = normalizer.normalize(
            [
                {"Bill Amount": "n/a", "Date": "2024-01-05"},
                {"Bill Amount": "120", "Date": "2024-01-05"},
            ],
            "swiggy",
            RecordOrigin.SOURCE,
        )

        assert len(report.records) == 1
        assert report.records[0].seq == 0
        assert report.malformed[0].row_index == 0
        assert report.malformed[0].origin is RecordOrigin.SOURCE
        assert "amount" in report.malformed[0].reason

    def test_column_names_tolerate_case_and_spaces(self, normalizer):
        report = normalizer.normalize(
            [{" bill amount ": 75, "TRANSACTION DATE": "2024-02-01"}],
            "zomatopay",
            RecordOrigin.SOURCE,
        )

        assert report.records[0].amount == Decimal("75.00")
        assert report.records[0].date == date(2024, 2, 1)

    def test_platform_tag_is_case_insensitive(self, normalizer):
        report = normalizer.normalize([], "EazyDiner", RecordOrigin.SOURCE)
        assert report.is_empty

    @pytest.mark.parametrize(
        "platform, origin",
        [("square", RecordOrigin.POS), ("ristas", RecordOrigin.SOURCE), ("", RecordOrigin.POS)],
    )
    def test_unsupported_platforms(self, normalizer, platform, origin):
        with pytest.raises(UnsupportedPlatformTypeError):
            normalizer.normalize([], platform, origin)


class TestOrderRecord:
    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            OrderRecord(origin=RecordOrigin.POS, amount=Decimal("-1"), date=date(2024, 1, 1), seq=0)

    @pytest.mark.parametrize("amount", ["NaN", "sNaN", "Infinity"])
    def test_non_finite_amount_rejected(self, amount):
        with pytest.raises(ValueError):
            OrderRecord(
                origin=RecordOrigin.POS, amount=Decimal(amount), date=date(2024, 1, 1), seq=0
            )

    def test_amount_rounded_half_up(self):
        record = OrderRecord(
            origin=RecordOrigin.POS, amount=Decimal("10.125"), date=date(2024, 1, 1), seq=0
        )
        assert record.amount == Decimal("10.13")


class TestReadExportFile:
    def test_reads_csv(self, tmp_path):
        path = tmp_path / "pos.csv"
        path.write_text("Date,Grand Total\n2024-01-05,100\n,\n2024-01-06,40\n")

        rows = read_export_file(path)

        assert [row["Grand Total"] for row in rows] == [100, 40]

    def test_reads_excel(self, tmp_path):
        path = tmp_path / "swiggy.xlsx"
        pd.DataFrame({"Date": ["2024-01-05"], "Bill Amount": [104]}).to_excel(path, index=False)

        rows = read_export_file(path)

        assert rows == [{"Date": "2024-01-05", "Bill Amount": 104}]

    def test_concatenates_several_files(self, tmp_path):
        first = tmp_path / "a.csv"
        second = tmp_path / "b.csv"
        first.write_text("Date,Bill Amount\n2024-01-05,1\n")
        second.write_text("Date,Bill Amount\n2024-01-06,2\n")

        rows = read_export_files([first, second])

        assert [row["Bill Amount"] for row in rows] == [1, 2]

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "orders.txt"
        path.write_text("hello")

        with pytest.raises(FileReadError):
            read_export_file(path)

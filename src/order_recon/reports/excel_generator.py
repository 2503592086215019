"""
Excel report generator for reconciliation results.
Creates a multi-sheet workbook, one sheet per result bucket.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence
import logging

from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import ReconConfig, SheetConfig
from ..models.result import ReconciliationOutcome, ReconciliationSummary
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
MATCH_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
VARIANCE_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
MONEY_FORMAT = "#,##0.00"


class ExcelReportGenerator:
    """Generates Excel reconciliation reports with multiple sheets."""

    def __init__(self, config: ReconConfig):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config
        self.sheet_config = config.output.sheets
        self.currency = config.output.currency_symbol

    def generate_report(
        self,
        summary: ReconciliationSummary,
        outcome: ReconciliationOutcome,
        output_path: Path,
        pos_file: Optional[str] = None,
        source_files: Sequence[str] = (),
    ) -> Path:
        """
        Generate the complete reconciliation report.

        Args:
            summary: Reconciliation summary
            outcome: Categorized results of the run
            output_path: Path for output file
            pos_file: POS export name, shown on the summary sheet
            source_files: Platform export names, shown on the summary sheet

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be saved
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()
        if wb.active:
            wb.remove(wb.active)

        sheets = self.sheet_config
        if sheets.summary.enabled:
            self._create_summary_sheet(wb, summary, pos_file, source_files)

        if sheets.matched.enabled:
            self._write_table(
                wb,
                sheets.matched,
                ["Date", "Amount", "POS ID", "Platform ID"],
                [
                    [m.date, float(m.amount), m.pos_record.raw_id or "",
                     m.source_record.raw_id or ""]
                    for m in outcome.matched_values
                ],
                MATCH_FILL,
                money_columns={2},
            )

        if sheets.probable.enabled:
            self._write_table(
                wb,
                sheets.probable,
                ["Date", "POS Value", "Platform Value", "Difference", "POS ID", "Platform ID"],
                [
                    [m.date, float(m.pos_value), float(m.source_value), float(m.difference),
                     m.pos_record.raw_id or "", m.source_record.raw_id or ""]
                    for m in outcome.probable_matches
                ],
                VARIANCE_FILL,
                money_columns={2, 3, 4},
            )

        if sheets.grouped.enabled:
            self._write_table(
                wb,
                sheets.grouped,
                ["Date", "POS Values (Grouped)", "POS Total", "Platform Value", "Difference",
                 "POS IDs", "Platform ID"],
                [
                    [
                        m.date,
                        ", ".join(f"{v:.2f}" for v in m.pos_values),
                        float(sum(m.pos_values)),
                        float(m.source_value),
                        float(m.difference),
                        ", ".join(r.raw_id or "-" for r in m.pos_records),
                        m.source_record.raw_id or "",
                    ]
                    for m in outcome.combined_probable_matches
                ],
                VARIANCE_FILL,
                money_columns={3, 4, 5},
            )

        if sheets.midnight.enabled:
            self._write_table(
                wb,
                sheets.midnight,
                ["POS Date", "POS Value", "Platform Date", "Platform Value", "Difference"],
                [
                    [m.pos_date, float(m.pos_value), m.source_date, float(m.source_value),
                     float(m.difference)]
                    for m in outcome.midnight_matches
                ],
                VARIANCE_FILL,
                money_columns={2, 4, 5},
            )

        if sheets.pos_only.enabled:
            self._write_table(
                wb,
                sheets.pos_only,
                ["Date", "Amount", "POS ID"],
                [[u.date, float(u.value), u.record.raw_id or ""]
                 for u in outcome.unmatched_in_pos],
                UNMATCHED_FILL,
                money_columns={2},
            )

        if sheets.source_only.enabled:
            self._write_table(
                wb,
                sheets.source_only,
                ["Date", "Amount", "Platform ID"],
                [[u.date, float(u.value), u.record.raw_id or ""]
                 for u in outcome.unmatched_in_source],
                UNMATCHED_FILL,
                money_columns={2},
            )

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Failed to save {output_path}: {e}") from e
        logger.info(f"Report saved: {output_path}")

        return output_path

    def _create_summary_sheet(
        self,
        wb: Workbook,
        summary: ReconciliationSummary,
        pos_file: Optional[str],
        source_files: Sequence[str],
    ) -> None:
        """Create the summary sheet with key metrics."""
        ws = wb.create_sheet(self.sheet_config.summary.name)

        ws["A1"] = "Order Reconciliation Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        period = "-"
        if summary.period_start and summary.period_end:
            period = f"{summary.period_start} to {summary.period_end}"

        rows: list[tuple[str, Any]] = [
            ("File Information", None),
            ("POS File:", pos_file or "-"),
            ("Platform Files:", ", ".join(source_files) or "-"),
            ("Reconciliation Date:", summary.reconciliation_date.strftime("%Y-%m-%d %H:%M:%S")),
            ("Order Period:", period),
            ("", None),
            ("Record Counts", None),
            ("Total POS Records:", summary.total_pos_records),
            ("Total Platform Records:", summary.total_source_records),
            ("Malformed Rows:", summary.malformed_count),
            ("Exact Matches:", summary.exact_count),
            ("Probable Matches:", summary.probable_count),
            ("Grouped Matches:", summary.grouped_count),
            ("Midnight Matches:", summary.midnight_count),
            ("Unmatched in POS:", summary.pos_only_count),
            ("Unmatched in Platform:", summary.source_only_count),
            ("", None),
            ("Match Rates", None),
            ("Exact Match Rate:", f"{summary.exact_match_rate:.1f}%"),
            ("POS Match Rate:", f"{summary.pos_match_rate:.1f}%"),
            ("Total Difference:", f"{self.currency}{summary.total_difference:,.2f}"),
            ("", None),
            ("Generated At:", datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
            ("Config File:", summary.config_file_used or "Default"),
            ("Processing Time:", f"{summary.processing_time_seconds:.2f} seconds"),
        ]

        for i, (label, value) in enumerate(rows, start=3):
            ws[f"A{i}"] = label
            if value is None:
                ws[f"A{i}"].font = Font(bold=True)
            else:
                ws[f"B{i}"] = value

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _write_table(
        self,
        wb: Workbook,
        sheet: SheetConfig,
        headers: list[str],
        rows: list[list[Any]],
        fill: PatternFill,
        money_columns: set[int],
    ) -> None:
        """Write a header row and data rows to a new sheet."""
        ws = wb.create_sheet(sheet.name)

        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

        for row_num, row_data in enumerate(rows, start=2):
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                cell.fill = fill
                if col in money_columns:
                    cell.number_format = MONEY_FORMAT

        self._auto_fit_columns(ws)

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = 0
            column = column_cells[0].column_letter

            for cell in column_cells:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))

            ws.column_dimensions[column].width = min(max_length + 2, 50)

"""JSON results envelope consumed by the results view."""

from pathlib import Path
from typing import Any, Optional, Sequence
import json
import logging

from ..models.result import ReconciliationOutcome
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)


def build_envelope(
    outcome: ReconciliationOutcome,
    pos_file: Optional[str] = None,
    source_files: Sequence[str] = (),
    pos_type: Optional[str] = None,
    source_type: Optional[str] = None,
) -> dict[str, Any]:
    """Wrap an outcome with the upload metadata the results view stores."""
    return {
        "posFile": pos_file,
        "sourceFiles": list(source_files),
        "posType": pos_type,
        "sourceType": source_type,
        "results": outcome.to_dict(),
    }


def dumps_outcome(outcome: ReconciliationOutcome, indent: Optional[int] = 2) -> str:
    """Serialize an outcome; identical outcomes give identical text."""
    return json.dumps(outcome.to_dict(), indent=indent, ensure_ascii=False)


def write_json_report(envelope: dict[str, Any], output_path: Path) -> Path:
    """
    Write a results envelope to disk.

    Raises:
        ReportGenerationError: If the file cannot be written
    """
    logger.info(f"Writing JSON results: {output_path}")
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(envelope, f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise ReportGenerationError(f"Failed to write {output_path}: {e}") from e
    return output_path

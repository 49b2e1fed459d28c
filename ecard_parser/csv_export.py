"""
CSV Exporter
============
Writes batches of extraction results to tab-delimited text files.

Each flushed batch gets its own timestamped file in the CSV folder:

    CSV-2024-05-01-13-45-10.txt
    CSV-2024-05-01-13-45-10-1.txt   # second batch within the same second
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from .models import CSV_COLUMNS, ExtractionResult

logger = logging.getLogger(__name__)

CSV_DELIMITER = "\t"


def csv_file_name(timestamp: Optional[datetime] = None) -> str:
    """File name for a batch written at the given time."""
    timestamp = timestamp or datetime.now()
    return timestamp.strftime("CSV-%Y-%m-%d-%H-%M-%S") + ".txt"


def _unique_path(csv_dir: Path, file_name: str) -> Path:
    path = csv_dir / file_name
    stem, suffix = path.stem, path.suffix
    counter = 1
    while path.exists():
        path = csv_dir / f"{stem}-{counter}{suffix}"
        counter += 1
    return path


def write_rows(results: Sequence[ExtractionResult], path: Path):
    """Write a header row and one row per result to path."""
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f, delimiter=CSV_DELIMITER)
        writer.writerow(CSV_COLUMNS.keys())
        for result in results:
            writer.writerow(result.to_row())


def write_batch(
    results: Sequence[ExtractionResult],
    csv_dir: str,
    timestamp: Optional[datetime] = None,
) -> Optional[Path]:
    """
    Write one batch of results to a new file in csv_dir.

    Returns:
        Path of the written file, or None if the batch was empty or the
        write failed (the failure is logged).
    """
    if not results:
        logger.error("Refusing to write CSV file: batch is empty")
        return None

    out_dir = Path(csv_dir)
    path = _unique_path(out_dir, csv_file_name(timestamp))

    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        write_rows(results, path)
    except OSError as e:
        logger.error(f"Failed to write CSV file {path}: {e}")
        return None

    logger.info(f"CSV file written as {path} ({len(results)} rows)")
    return path
